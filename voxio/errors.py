"""Error types and engine-wide tuning constants."""

from __future__ import annotations

BUFFER_MS = 250
CHANNEL_COUNT = 16
PENDING_CAPACITY = 8192
RESAMPLER_CHUNK_SIZE = 1024
RESAMPLER_SUBCHUNK_SIZE = 2
SAMPLE_TAP_CAPACITY = 2048
SEEK_PREFILL_MS = 10
SEEK_FADE_MS = 30
MAX_PROBE_PACKETS = 10


class VoxError(Exception):
    """Base class for every error raised by the playback engine."""

    template = "{}"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(self.template.format(detail))


class FileOpenError(VoxError):
    """A file could not be opened."""

    template = "Failed to open file: {}"


class OutputError(VoxError):
    """The audio output failed."""

    template = "output error: {}"


class DecoderError(VoxError):
    """A file could not be read or decoded."""

    template = "decoder error: {}"


class ResamplerError(VoxError):
    """The resampler could not be built or run."""

    template = "resampler error: {}"


class SeekError(VoxError):
    """A seek could not be carried out."""

    template = "seek error: {}"


class ChannelClosedError(VoxError):
    """The command channel to the worker is gone."""

    template = "Vox channel closed"