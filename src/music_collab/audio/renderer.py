"""Deterministic offline renderer: note timeline to 16-bit mono PCM."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from music_collab.audio.wav import encode_wav, wav_header
from music_collab.timeline.models import NoteEvent, Project, Track, Version

SAMPLE_RATE = 44_100
MIN_DURATION_SEC = 0.5
TAIL_PAD_SEC = 0.5
ATTACK_SEC = 0.005
RELEASE_SEC = 0.08
MIN_NOTE_SEC = 0.02
VOICE_GAIN = 0.18
NORMALIZE_CEILING = 0.99


@dataclass(frozen=True, slots=True)
class RenderedAudio:
    sample_rate: int
    samples: tuple[int, ...]
    header: bytes

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def duration_sec(self) -> float:
        return self.sample_count / self.sample_rate

    def to_bytes(self) -> bytes:
        return encode_wav(self.samples, self.sample_rate)


def render(project: Project, sample_rate: int = SAMPLE_RATE) -> RenderedAudio:
    return render_tracks(project.tracks, sample_rate=sample_rate)


def render_version(version: Version, sample_rate: int = SAMPLE_RATE) -> RenderedAudio:
    return render_tracks(version.tracks, sample_rate=sample_rate)


def render_tracks(tracks: Iterable[Track], sample_rate: int = SAMPLE_RATE) -> RenderedAudio:
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    events = [event for track in tracks for event in track.events.values()]
    buffer = mix_events(events, sample_rate)
    _normalize(buffer, ceiling=NORMALIZE_CEILING)
    samples = tuple(quantize_sample(value) for value in buffer)
    return RenderedAudio(
        sample_rate=sample_rate,
        samples=samples,
        header=wav_header(len(samples), sample_rate),
    )


def total_samples(events: Iterable[NoteEvent], sample_rate: int = SAMPLE_RATE) -> int:
    end = max((event.end_time for event in events), default=0.0)
    total_sec = max(MIN_DURATION_SEC, end + TAIL_PAD_SEC)
    return math.ceil(total_sec * sample_rate)


def mix_events(events: list[NoteEvent], sample_rate: int = SAMPLE_RATE) -> list[float]:
    """Sum one sine voice per event into a float buffer; no voice limit."""
    buffer = [0.0] * total_samples(events, sample_rate)
    for event in events:
        _render_voice(buffer, event, sample_rate)
    return buffer


def midi_to_freq(pitch: int) -> float:
    return 440.0 * (2 ** ((pitch - 69) / 12.0))


def envelope(t: float, duration: float) -> float:
    env = t / ATTACK_SEC if t < ATTACK_SEC else 1.0
    release_t = t - duration
    if release_t > 0:
        env *= math.exp(-release_t / RELEASE_SEC)
    return env


def quantize_sample(value: float) -> int:
    clipped = min(max(value, -1.0), 1.0)
    scaled = clipped * 32768.0 if clipped < 0 else clipped * 32767.0
    # Round half away from zero.
    magnitude = math.floor(abs(scaled) + 0.5)
    return -magnitude if scaled < 0 else magnitude


def _render_voice(buffer: list[float], event: NoteEvent, sample_rate: int) -> None:
    start_idx = max(0, math.floor(event.start_time * sample_rate))
    duration = max(MIN_NOTE_SEC, event.duration)
    end_idx = min(len(buffer), start_idx + math.floor((duration + RELEASE_SEC) * sample_rate))
    freq = midi_to_freq(event.pitch)
    amp = VOICE_GAIN * min(max(event.velocity / 127.0, 0.0), 1.0)
    omega = 2.0 * math.pi * freq

    for idx in range(start_idx, end_idx):
        t = (idx - start_idx) / sample_rate
        buffer[idx] += math.sin(omega * t) * amp * envelope(t, duration)


def _normalize(buffer: list[float], ceiling: float) -> None:
    peak = max((abs(value) for value in buffer), default=0.0)
    if peak <= ceiling:
        return
    gain = ceiling / peak
    for i, value in enumerate(buffer):
        buffer[i] = value * gain
