import numpy as np
import pytest

from voxio.errors import ResamplerError
from voxio.resampler import VoxResampler, make_resampler


def _collect(resampler, pending):
    chunks = []
    resampler.process(pending, chunks.append)
    return chunks


def test_same_rate_needs_no_resampler():
    assert make_resampler(48000, 48000, 2) is None


def test_different_rates_give_resampler():
    r = make_resampler(44100, 48000, 2)
    assert r.input_rate == 44100
    assert r.channels == 2


@pytest.mark.parametrize("rates", [(0, 48000), (44100, 0), (-1, 48000)])
def test_invalid_rate_rejected(rates):
    with pytest.raises(ResamplerError):
        make_resampler(rates[0], rates[1], 2)


def test_invalid_channels_rejected():
    with pytest.raises(ResamplerError):
        VoxResampler(44100, 48000, 0)


@pytest.mark.parametrize("rates", [(44100, 48000), (48000, 44100), (22050, 48000), (96000, 44100)])
def test_chunk_ratio_matches_rates(rates):
    r = VoxResampler(rates[0], rates[1], 2)
    assert r.output_frames_max * rates[0] == r.input_frames_next() * rates[1]


def test_process_consumes_whole_chunks():
    r = VoxResampler(44100, 48000, 2)
    needed = r.input_frames_next() * 2
    pending = [0.0] * (needed * 2 + 10)
    chunks = _collect(r, pending)
    assert len(chunks) == 2
    assert len(pending) == 10
    assert all(len(c) == r.output_frames_max * 2 for c in chunks)
    assert all(c.dtype == np.float32 for c in chunks)


def test_process_waits_for_enough_input():
    r = VoxResampler(44100, 48000, 1)
    pending = [0.5] * (r.input_frames_next() - 1)
    assert _collect(r, pending) == []
    assert len(pending) == r.input_frames_next() - 1


def test_flush_empties_pending():
    r = VoxResampler(48000, 44100, 2)
    pending = [0.1] * 6
    chunks = []
    r.flush(pending, chunks.append)
    assert pending == []
    assert len(chunks) == 1
    assert len(chunks[0]) == r.output_frames_max * 2


def test_flush_of_empty_outputs_nothing():
    r = VoxResampler(48000, 44100, 2)
    chunks = []
    r.flush([], chunks.append)
    assert chunks == []


@pytest.mark.parametrize("rates", [(44100, 48000), (48000, 44100)])
def test_constant_signal_keeps_level(rates):
    r = VoxResampler(rates[0], rates[1], 2)
    pending = [1.0] * (r.input_frames_next() * 2 * 6)
    chunks = _collect(r, pending)
    steady = np.concatenate(chunks[2:])
    assert np.allclose(steady, 1.0, atol=1e-2)


def test_reset_makes_output_repeatable():
    r = VoxResampler(44100, 48000, 1)
    rng = np.random.default_rng(7)
    signal = list(rng.uniform(-1, 1, r.input_frames_next() * 2))
    first = np.concatenate(_collect(r, list(signal)))
    r.reset()
    second = np.concatenate(_collect(r, list(signal)))
    assert np.array_equal(first, second)


def test_silence_stays_silent():
    r = VoxResampler(22050, 48000, 2)
    chunks = _collect(r, [0.0] * (r.input_frames_next() * 2))
    assert len(chunks) == 1
    assert len(chunks[0]) == r.output_frames_max * 2
    assert int(np.count_nonzero(chunks[0])) == 0