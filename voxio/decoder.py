"""Reading and decoding of RIFF/WAVE audio files into float samples."""

from __future__ import annotations

import math
import os
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

import numpy as np

from voxio.errors import DecoderError, FileOpenError, SeekError, VoxError

_PACKET_FRAMES = 1152
_FORMAT_PCM = 0x0001
_FORMAT_FLOAT = 0x0003
_FORMAT_EXTENSIBLE = 0xFFFE


@dataclass(frozen=True)
class AudioInfo:
    sample_rate: int
    channels: int
    n_frames: int | None


@dataclass(frozen=True)
class _SampleFormat:
    container: int
    is_float: bool

    def decode(self, raw: bytes) -> np.ndarray:
        if self.is_float:
            dtype = "<f4" if self.container == 4 else "<f8"
            return np.frombuffer(raw, dtype=dtype).astype(np.float32)
        if self.container == 1:
            return ((np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128.0) / 128.0).astype(
                np.float32
            )
        if self.container == 2:
            return (np.frombuffer(raw, dtype="<i2") / 32768.0).astype(np.float32)
        if self.container == 3:
            b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
            value = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
            value = np.where(value & 0x800000, value - 0x1000000, value)
            return (value / 8388608.0).astype(np.float32)
        return (np.frombuffer(raw, dtype="<i4") / 2147483648.0).astype(np.float32)


@dataclass(frozen=True)
class _Layout:
    sample_rate: int
    channels: int
    block_align: int
    sample_format: _SampleFormat


def _parse_fmt(body: bytes) -> _Layout:
    if len(body) < 16:
        raise DecoderError("malformed fmt chunk")
    tag, channels, rate, _byte_rate, block_align, _bits = struct.unpack("<HHIIHH", body[:16])
    if tag == _FORMAT_EXTENSIBLE:
        if len(body) < 26:
            raise DecoderError("malformed extensible fmt chunk")
        (tag,) = struct.unpack("<H", body[24:26])
    if tag not in (_FORMAT_PCM, _FORMAT_FLOAT):
        raise DecoderError(f"unsupported codec 0x{tag:04x}")
    if channels == 0 or rate == 0 or block_align == 0 or block_align % channels:
        raise DecoderError("invalid stream parameters")
    container = block_align // channels
    allowed = (4, 8) if tag == _FORMAT_FLOAT else (1, 2, 3, 4)
    if container not in allowed:
        raise DecoderError(f"unsupported sample size of {container} bytes")
    return _Layout(rate, channels, block_align, _SampleFormat(container, tag == _FORMAT_FLOAT))


def _read_layout(stream: BinaryIO) -> tuple[_Layout | None, int, int]:
    """Return the format, the data offset and the data length in bytes."""
    header = stream.read(12)
    if len(header) < 12 or header[:4] != b"RIFF" or header[8:12] != b"WAVE":
        raise DecoderError("unsupported format")
    layout: _Layout | None = None
    while True:
        chunk_header = stream.read(8)
        if len(chunk_header) < 8:
            return layout, 0, 0
        chunk_id = chunk_header[:4]
        (size,) = struct.unpack("<I", chunk_header[4:])
        if chunk_id == b"fmt ":
            layout = _parse_fmt(stream.read(size))
            if size & 1:
                stream.seek(1, os.SEEK_CUR)
        elif chunk_id == b"data":
            start = stream.tell()
            end = stream.seek(0, os.SEEK_END)
            stream.seek(start)
            return layout, start, min(size, end - start)
        else:
            stream.seek(size + (size & 1), os.SEEK_CUR)


class VoxDecoder:
    """Decodes one audio stream packet by packet, honouring gapless trimming.

    ``delay_samples`` frames at the start and ``padding_samples`` frames at
    the end of the stream are treated as encoder priming and dropped.
    """

    def __init__(
        self,
        stream: BinaryIO,
        layout: _Layout,
        data_start: int,
        data_frames: int,
    ) -> None:
        self._stream = stream
        self._layout = layout
        self._data_start = data_start
        self._data_frames = data_frames
        self._frame_pos = 0
        self.info = AudioInfo(layout.sample_rate, layout.channels, data_frames)
        self.delay_samples = 0
        self.padding_samples = 0
        self.total_samples: int | None = data_frames
        self.samples_decoded = 0

    def next_packet(self) -> np.ndarray | None:
        """Return the next run of interleaved samples, or None at the end."""
        channels = self.info.channels
        block_align = self._layout.block_align
        valid_start = self.delay_samples
        valid_end = (
            max(self.total_samples - self.padding_samples, 0)
            if self.total_samples is not None
            else None
        )

        while True:
            remaining = self._data_frames - self._frame_pos
            if remaining <= 0:
                return None
            raw = self._stream.read(min(_PACKET_FRAMES, remaining) * block_align)
            frames = len(raw) // block_align
            if frames == 0:
                return None
            self._frame_pos += frames
            samples = self._layout.sample_format.decode(raw[: frames * block_align])

            start = self.samples_decoded
            end = start + frames
            self.samples_decoded = end

            if end <= valid_start or (valid_end is not None and start >= valid_end):
                continue

            skip_start = max(valid_start - start, 0)
            skip_end = max(end - valid_end, 0) if valid_end is not None else 0
            return samples[skip_start * channels : len(samples) - skip_end * channels]

    def __iter__(self) -> Iterator[np.ndarray]:
        while (packet := self.next_packet()) is not None:
            yield packet

    def playable_duration(self) -> float | None:
        """Duration in seconds without delay and padding, if the length is known."""
        if self.total_samples is None:
            return None
        frames = max(self.total_samples - (self.delay_samples + self.padding_samples), 0)
        return frames / self.info.sample_rate

    def seek(self, secs: float) -> int:
        """Move to ``secs`` and return the frame actually landed on."""
        if not math.isfinite(secs) or secs < 0:
            raise SeekError(f"invalid position {secs}")
        frame = int(secs * self.info.sample_rate)
        if frame > self._data_frames:
            raise SeekError("seek position out of range")
        self._stream.seek(self._data_start + frame * self._layout.block_align)
        self._frame_pos = frame
        self.samples_decoded = frame
        return frame

    def close(self) -> None:
        self._stream.close()

    def __enter__(self) -> VoxDecoder:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _open_format_reader(path: str) -> tuple[BinaryIO, _Layout | None, int, int]:
    try:
        stream = open(path, "rb")
    except OSError as exc:
        raise FileOpenError(path) from exc
    try:
        layout, start, size = _read_layout(stream)
    except BaseException:
        stream.close()
        raise
    return stream, layout, start, size


def open_decoder(path: str | os.PathLike[str]) -> VoxDecoder:
    """Open an audio file for decoding."""
    path = os.fspath(path)
    try:
        stream, layout, start, size = _open_format_reader(path)
    except VoxError as exc:
        raise DecoderError(f"Format reader error: {exc}") from exc
    if layout is None or start == 0:
        stream.close()
        raise DecoderError("No track!")
    return VoxDecoder(stream, layout, start, size // layout.block_align)