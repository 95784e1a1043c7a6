import queue
import struct
import wave

import numpy as np
import pytest

from voxio.errors import FileOpenError
from voxio.state import SharedState
from voxio.worker import (
    Play,
    QueueNext,
    SampleRing,
    Seek,
    SeekPosition,
    Shutdown,
    Stop,
    VoxWorker,
    map_frames,
    push_samples_mapped,
    push_samples_mapped_count,
    spawn,
)

RATE = 8000


def write_wav(path, frames, rate=RATE, channels=1, value=1000):
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(struct.pack("<h", value) * (frames * channels))
    return str(path)


def make_worker(rate=RATE, channels=1, capacity=200_000):
    commands = queue.Queue()
    ring = SampleRing(capacity)
    state = SharedState()
    return VoxWorker(commands, ring, state, rate, channels), commands, ring, state


def run_to_end(worker, limit=1000):
    for _ in range(limit):
        if worker.current is None:
            return
        worker.decode_step()
    raise AssertionError("track did not end")


def test_map_frames_mono_duplicates():
    out = map_frames([0.5, -0.5], 1, 2)
    assert out.tolist() == [0.5, 0.5, -0.5, -0.5]


def test_map_frames_drops_extra_channels():
    out = map_frames([0.25, 0.5, -0.25, -0.5], 2, 1)
    assert out.tolist() == [0.25, -0.25]


def test_map_frames_missing_channels_are_silent():
    out = map_frames(np.array([0.25, 0.5], dtype=np.float32), 2, 4)
    assert out.tolist() == [0.25, 0.5, 0.0, 0.0]


def test_sample_ring_push_pop_and_full():
    ring = SampleRing(2)
    assert ring.push(1.0)
    assert ring.push(2.0)
    assert not ring.push(3.0)
    assert ring.pop() == 1.0
    assert ring.pop() == 2.0
    assert ring.pop() is None


def test_sample_ring_drain():
    ring = SampleRing(4)
    ring.push(1.0)
    ring.push(2.0)
    assert ring.drain() == 2
    assert len(ring) == 0


def test_push_count_stops_at_capacity():
    ring = SampleRing(3)
    pushed = push_samples_mapped_count(ring, [0.1, 0.2, 0.3, 0.4], 1, 2)
    assert pushed == ring.capacity
    assert len(ring) == ring.capacity


def test_push_blocking_delivers_all():
    ring = SampleRing(16)
    push_samples_mapped(ring, [0.5, 0.25], 1, 2)
    assert [ring.pop() for _ in range(4)] == [0.5, 0.5, 0.25, 0.25]


def test_seek_position_resolve():
    assert SeekPosition.absolute(3.0).resolve(10.0) == 3.0
    assert SeekPosition.offset(2.0).resolve(10.0) == 12.0


def test_play_sets_state(tmp_path):
    path = write_wav(tmp_path / "a.wav", RATE)
    worker, _, _, state = make_worker()
    worker.handle_command(Play(path))
    assert state.active
    assert not state.paused
    assert state.duration_secs == pytest.approx(1.0)
    assert worker.resampler is None


def test_play_missing_file_deactivates(tmp_path):
    worker, _, _, state = make_worker()
    worker.handle_command(Play(str(tmp_path / "missing.wav")))
    assert not state.active
    assert worker.current is None


def test_queue_next_missing_file_raises(tmp_path):
    worker, _, _, _ = make_worker()
    with pytest.raises(FileOpenError):
        worker.handle_command(QueueNext(str(tmp_path / "missing.wav")))


def test_decode_pushes_mapped_samples(tmp_path):
    path = write_wav(tmp_path / "a.wav", 100, value=16384)
    worker, _, ring, _ = make_worker(channels=2)
    worker.handle_command(Play(path))
    worker.decode_step()
    assert len(ring) == 200
    assert ring.pop() == pytest.approx(0.5)


def test_track_end_stops_playback(tmp_path):
    path = write_wav(tmp_path / "a.wav", 3000)
    worker, _, ring, state = make_worker()
    worker.handle_command(Play(path))
    run_to_end(worker)
    assert len(ring) == 3000
    assert state.take_track_ended()
    assert not state.active


def test_gapless_transition(tmp_path):
    first = write_wav(tmp_path / "a.wav", 500)
    second = write_wav(tmp_path / "b.wav", 700)
    worker, _, ring, state = make_worker()
    worker.handle_command(Play(first))
    worker.handle_command(QueueNext(second))
    worker.decode_step()
    worker.decode_step()
    assert state.take_track_ended()
    assert worker.current is not None
    assert worker.queued is None
    run_to_end(worker)
    assert len(ring) == 1200


def test_stop_clears_everything(tmp_path):
    path = write_wav(tmp_path / "a.wav", 500)
    worker, _, _, state = make_worker()
    worker.handle_command(Play(path))
    worker.handle_command(QueueNext(path))
    worker.handle_command(Stop())
    assert worker.current is None
    assert worker.queued is None
    assert not state.active


def test_shutdown_requested():
    worker, _, _, _ = make_worker()
    assert worker.handle_command(Shutdown()) is True


def test_seek_absolute_sets_position_and_prefills(tmp_path):
    path = write_wav(tmp_path / "a.wav", RATE)
    worker, commands, ring, state = make_worker()
    worker.handle_command(Play(path))
    state.start_seek()
    commands.put(Seek(SeekPosition.absolute(0.5)))
    assert worker.poll_commands() is False
    assert state.samples == 4000
    assert not state.seeking
    assert len(ring) >= 80


def test_relative_seeks_accumulate(tmp_path):
    path = write_wav(tmp_path / "a.wav", RATE)
    worker, commands, _, state = make_worker()
    worker.handle_command(Play(path))
    commands.put(Seek(SeekPosition.offset(0.25)))
    commands.put(Seek(SeekPosition.offset(0.25)))
    worker.poll_commands()
    assert worker.elapsed() == pytest.approx(0.5)


def test_seek_past_end_ends_track(tmp_path):
    path = write_wav(tmp_path / "a.wav", RATE)
    worker, commands, _, state = make_worker()
    worker.handle_command(Play(path))
    commands.put(Seek(SeekPosition.absolute(5.0)))
    worker.poll_commands()
    assert state.take_track_ended()
    assert worker.current is None


def test_poll_play_discards_earlier_queue_next(tmp_path):
    first = write_wav(tmp_path / "a.wav", 500)
    second = write_wav(tmp_path / "b.wav", 600)
    worker, commands, _, _ = make_worker()
    worker.handle_command(Play(first))
    commands.put(QueueNext(first))
    commands.put(Play(second))
    worker.poll_commands()
    assert worker.queued is None
    assert worker.current.info.n_frames == 600


def test_poll_shutdown_returns_true(tmp_path):
    path = write_wav(tmp_path / "a.wav", 500)
    worker, commands, _, _ = make_worker()
    worker.handle_command(Play(path))
    commands.put(Shutdown())
    assert worker.poll_commands() is True


def test_resampled_playback(tmp_path):
    path = write_wav(tmp_path / "a.wav", RATE)
    worker, _, ring, state = make_worker(rate=16000)
    worker.handle_command(Play(path))
    assert worker.resampler is not None
    run_to_end(worker)
    assert worker.resampler is None
    assert len(ring) > RATE
    assert not state.active


def test_spawn_runs_and_shuts_down(tmp_path):
    path = write_wav(tmp_path / "a.wav", 500)
    commands = queue.Queue()
    ring = SampleRing(100_000)
    state = SharedState()
    thread = spawn(commands, ring, state, RATE, 1)
    commands.put(Play(path))
    commands.put(Shutdown())
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert state.active