"""Block-based FFT sample-rate conversion of interleaved audio."""

from __future__ import annotations

import math
from collections.abc import Callable, MutableSequence

import numpy as np

from voxio.errors import RESAMPLER_CHUNK_SIZE, RESAMPLER_SUBCHUNK_SIZE, ResamplerError

_CUTOFF = 0.95


class VoxResampler:
    """Converts interleaved samples from ``input_rate`` to ``output_rate``.

    Input is consumed in fixed-size chunks; each chunk is split into
    sub-chunks that are low-pass filtered and resampled in the frequency
    domain, with overlap-add between consecutive sub-chunks.
    """

    def __init__(
        self,
        input_rate: int,
        output_rate: int,
        channels: int,
        chunk_size: int = RESAMPLER_CHUNK_SIZE,
        sub_chunks: int = RESAMPLER_SUBCHUNK_SIZE,
    ) -> None:
        if input_rate <= 0 or output_rate <= 0:
            raise ResamplerError(f"invalid rates {input_rate} -> {output_rate}")
        if channels <= 0:
            raise ResamplerError(f"invalid channel count {channels}")
        if chunk_size <= 0 or sub_chunks <= 0:
            raise ResamplerError("chunk size and sub-chunk count must be positive")

        self.input_rate = input_rate
        self.output_rate = output_rate
        self.channels = channels

        divisor = math.gcd(input_rate, output_rate)
        min_in = input_rate // divisor
        min_out = output_rate // divisor
        fft_chunks = max(1, math.ceil(chunk_size / min_in / sub_chunks))
        self._fft_in = fft_chunks * min_in
        self._fft_out = fft_chunks * min_out
        self._sub_chunks = sub_chunks

        cutoff = 0.5 * _CUTOFF * min(1.0, output_rate / input_rate)
        offsets = np.arange(self._fft_in) - (self._fft_in - 1) / 2.0
        taps = 2.0 * cutoff * np.sinc(2.0 * cutoff * offsets) * np.blackman(self._fft_in)
        taps /= taps.sum()
        self._filter = np.fft.rfft(taps, 2 * self._fft_in)[:, None]
        self._overlap = np.zeros((self._fft_out, channels))

    def input_frames_next(self) -> int:
        """Frames of input needed for the next chunk."""
        return self._fft_in * self._sub_chunks

    @property
    def output_frames_max(self) -> int:
        return self._fft_out * self._sub_chunks

    def _resample_block(self, block: np.ndarray) -> np.ndarray:
        spectrum = np.fft.rfft(block, 2 * self._fft_in, axis=0) * self._filter
        bins = self._fft_out + 1
        if bins <= spectrum.shape[0]:
            spectrum = spectrum[:bins]
        else:
            padding = np.zeros((bins - spectrum.shape[0], self.channels), dtype=spectrum.dtype)
            spectrum = np.vstack([spectrum, padding])
        out = np.fft.irfft(spectrum, 2 * self._fft_out, axis=0) * (self._fft_out / self._fft_in)
        result = out[: self._fft_out] + self._overlap
        self._overlap = out[self._fft_out :].copy()
        return result

    def _process_chunk(self, frames: np.ndarray) -> np.ndarray:
        blocks = np.split(frames, self._sub_chunks)
        return np.vstack([self._resample_block(block) for block in blocks])

    def process(
        self,
        pending: MutableSequence[float],
        output: Callable[[np.ndarray], None],
    ) -> None:
        """Resample every whole chunk in ``pending``, removing what was used.

        ``output`` receives each converted chunk as interleaved float32 samples.
        """
        needed = self.input_frames_next() * self.channels
        while len(pending) >= needed:
            frames = np.asarray(pending[:needed], dtype=np.float64).reshape(-1, self.channels)
            converted = self._process_chunk(frames)
            del pending[:needed]
            output(converted.astype(np.float32).ravel())

    def flush(
        self,
        pending: MutableSequence[float],
        output: Callable[[np.ndarray], None],
    ) -> None:
        """Pad what is left in ``pending`` with silence and resample it."""
        if not pending:
            return
        needed = self.input_frames_next() * self.channels
        del pending[needed:]
        pending.extend([0.0] * (needed - len(pending)))
        self.process(pending, output)

    def reset(self) -> None:
        """Forget all state carried between chunks."""
        self._overlap = np.zeros((self._fft_out, self.channels))


def make_resampler(input_rate: int, output_rate: int, channels: int) -> VoxResampler | None:
    """Build a resampler, or return None when no conversion is needed."""
    if input_rate == output_rate:
        return None
    return VoxResampler(input_rate, output_rate, channels)