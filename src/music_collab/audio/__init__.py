"""Audio rendering and WAV container exports."""

from music_collab.audio.renderer import SAMPLE_RATE, RenderedAudio, render, render_tracks, render_version
from music_collab.audio.wav import CONTENT_TYPE, encode_wav, export_filename, load_wav_mono, wav_header

__all__ = [
    "CONTENT_TYPE",
    "RenderedAudio",
    "SAMPLE_RATE",
    "encode_wav",
    "export_filename",
    "load_wav_mono",
    "render",
    "render_tracks",
    "render_version",
    "wav_header",
]
