"""Canonical PCM WAV container: encoding for exports, decoding for inspection."""

from __future__ import annotations

import io
import re
import struct
import wave
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Sequence

HEADER_SIZE = 44
PCM_FORMAT_TAG = 1
CHANNELS = 1
BITS_PER_SAMPLE = 16
CONTENT_TYPE = "audio/wav"

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_-]+")


def wav_header(sample_count: int, sample_rate: int) -> bytes:
    block_align = CHANNELS * BITS_PER_SAMPLE // 8
    byte_rate = sample_rate * block_align
    data_size = sample_count * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        CHANNELS,
        sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def encode_wav(samples: Sequence[int], sample_rate: int) -> bytes:
    body = struct.pack(f"<{len(samples)}h", *samples)
    return wav_header(len(samples), sample_rate) + body


def content_length(sample_count: int) -> int:
    return HEADER_SIZE + 2 * sample_count


def export_filename(project_name: str, now: datetime | None = None) -> str:
    stamp = now or datetime.now(UTC)
    safe = _UNSAFE_NAME.sub("_", project_name or "project") or "project"
    return f"{safe}-{int(stamp.timestamp() * 1000)}.wav"


@dataclass(slots=True)
class LoadedWaveform:
    sample_rate: int
    channels: int
    sample_width: int
    frame_count: int
    samples: list[float]

    @property
    def duration_sec(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / self.sample_rate


def load_wav_mono(source: str | Path | bytes) -> LoadedWaveform:
    if isinstance(source, bytes):
        handle: io.BytesIO | str = io.BytesIO(source)
    else:
        file_path = Path(source)
        if not file_path.exists():
            raise FileNotFoundError(str(file_path))
        handle = str(file_path)

    with wave.open(handle, "rb") as wav:
        channels = wav.getnchannels()
        sample_width = wav.getsampwidth()
        sample_rate = wav.getframerate()
        frame_count = wav.getnframes()
        raw = wav.readframes(frame_count)

    if channels <= 0:
        raise ValueError("invalid channel count in wav file")
    if sample_width != 2:
        raise ValueError(f"unsupported sample width: {sample_width}")

    values = struct.unpack(f"<{len(raw) // 2}h", raw[: len(raw) // 2 * 2])
    samples: list[float] = []
    for frame_start in range(0, len(values) - channels + 1, channels):
        total = sum(values[frame_start : frame_start + channels])
        samples.append(max(min(total / channels / 32768.0, 1.0), -1.0))
    return LoadedWaveform(
        sample_rate=sample_rate,
        channels=channels,
        sample_width=sample_width,
        frame_count=frame_count,
        samples=samples,
    )
