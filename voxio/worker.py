"""The decoding worker: turns commands into samples pushed to the output ring."""

from __future__ import annotations

import queue
import sys
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from voxio.decoder import VoxDecoder, open_decoder
from voxio.errors import SEEK_PREFILL_MS, FileOpenError, VoxError
from voxio.resampler import VoxResampler, make_resampler
from voxio.state import SharedState

_FULL_RING_SLEEP = 0.0001
_PAUSED_SLEEP = 0.005


@dataclass(frozen=True)
class SeekPosition:
    """A seek target: an absolute time, or an offset from the current position."""

    seconds: float
    relative: bool = False

    @classmethod
    def absolute(cls, seconds: float) -> SeekPosition:
        return cls(seconds, relative=False)

    @classmethod
    def offset(cls, delta: float) -> SeekPosition:
        return cls(delta, relative=True)

    def resolve(self, current: float) -> float:
        """Return the absolute target in seconds, given the current position."""
        return current + self.seconds if self.relative else self.seconds


@dataclass(frozen=True)
class Play:
    path: str


@dataclass(frozen=True)
class QueueNext:
    path: str


@dataclass(frozen=True)
class Seek:
    position: SeekPosition


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class Shutdown:
    pass


Command = Play | QueueNext | Seek | Stop | Shutdown


class SampleRing:
    """A bounded single-producer, single-consumer queue of samples."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: deque[float] = deque()
        self._lock = threading.Lock()

    def push(self, sample: float) -> bool:
        """Append one sample; return False if the ring is full."""
        with self._lock:
            if len(self._items) >= self.capacity:
                return False
            self._items.append(float(sample))
            return True

    def pop(self) -> float | None:
        """Remove and return the oldest sample, or None when empty."""
        with self._lock:
            return self._items.popleft() if self._items else None

    def drain(self) -> int:
        """Discard every buffered sample and return how many there were."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
            return count

    def _offer(self, values: Sequence[float]) -> int:
        """Append as many of ``values`` as fit and return how many were taken."""
        with self._lock:
            room = self.capacity - len(self._items)
            taken = min(room, len(values))
            if taken > 0:
                self._items.extend(values[:taken])
            return max(taken, 0)

    def __len__(self) -> int:
        return len(self._items)


def map_frames(
    samples: Iterable[float] | np.ndarray, input_channels: int, output_channels: int
) -> np.ndarray:
    """Map interleaved frames from ``input_channels`` to ``output_channels``.

    Shared channels are copied, mono is duplicated to every output channel,
    and any other missing channel is silent. A trailing partial frame is dropped.
    """
    data = np.asarray(list(samples) if not isinstance(samples, np.ndarray) else samples,
                      dtype=np.float32)
    frames = len(data) // input_channels
    source = data[: frames * input_channels].reshape(frames, input_channels)
    out = np.zeros((frames, output_channels), dtype=np.float32)
    shared = min(input_channels, output_channels)
    out[:, :shared] = source[:, :shared]
    if input_channels == 1 and output_channels > 1:
        out[:, 1:] = source[:, :1]
    return out.ravel()


def push_samples_mapped(
    producer: SampleRing,
    samples: Iterable[float] | np.ndarray,
    input_channels: int,
    output_channels: int,
) -> None:
    """Push mapped samples, waiting whenever the ring is full."""
    values = map_frames(samples, input_channels, output_channels).tolist()
    while values:
        taken = producer._offer(values)
        if taken:
            del values[:taken]
        else:
            time.sleep(_FULL_RING_SLEEP)


def push_samples_mapped_count(
    producer: SampleRing,
    samples: Iterable[float] | np.ndarray,
    input_channels: int,
    output_channels: int,
) -> int:
    """Push mapped samples without waiting; return how many were accepted."""
    values = map_frames(samples, input_channels, output_channels).tolist()
    return producer._offer(values)


@dataclass
class _QueuedTrack:
    decoder: VoxDecoder
    resampler: VoxResampler | None
    input_channels: int


class VoxWorker:
    """Decodes the current track into the output ring and reacts to commands."""

    def __init__(
        self,
        commands: queue.Queue,
        producer: SampleRing,
        state: SharedState,
        output_rate: int,
        output_channels: int,
    ) -> None:
        self.commands = commands
        self.producer = producer
        self.state = state
        self.output_rate = output_rate
        self.output_channels = output_channels

        self.current: VoxDecoder | None = None
        self.queued: _QueuedTrack | None = None
        self.resampler: VoxResampler | None = None
        self.pending: list[float] = []
        self.input_channels = 2

    def run(self) -> None:
        """Process commands and decode until a Shutdown command arrives."""
        try:
            while True:
                if self.current is not None:
                    if self.poll_commands():
                        return
                    # Decoding while paused would block on a full ring.
                    if self.state.paused:
                        time.sleep(_PAUSED_SLEEP)
                    else:
                        self.decode_step()
                elif self.handle_command(self.commands.get()):
                    return
        finally:
            self._release()

    def handle_command(self, cmd: Command) -> bool:
        """Carry out one command; return True if it asks the worker to stop."""
        match cmd:
            case Play(path):
                self._handle_play(path)
            case QueueNext(path):
                self._queue_next(path)
            case Stop():
                self._stop_playback()
            case Shutdown():
                return True
        return False

    def poll_commands(self) -> bool:
        """Handle every waiting command, coalescing plays, seeks and queued tracks.

        Returns True if a Shutdown command was received.
        """
        pending_seek: float | None = None
        pending_next: str | None = None
        pending_play: str | None = None

        while True:
            try:
                cmd = self.commands.get_nowait()
            except queue.Empty:
                break
            match cmd:
                case Play(path):
                    # A new play invalidates any queued next track.
                    pending_next = None
                    pending_play = path
                case Seek(position):
                    current = pending_seek if pending_seek is not None else self.elapsed()
                    pending_seek = position.resolve(current)
                case QueueNext(path):
                    pending_next = path
                case _:
                    if pending_play is not None:
                        self._handle_play(pending_play)
                        pending_play = None
                    if pending_seek is not None:
                        self._handle_seek(pending_seek)
                        pending_seek = None
                    if pending_next is not None:
                        self._queue_next(pending_next)
                        pending_next = None
                    if self.handle_command(cmd):
                        return True

        if pending_play is not None:
            self._handle_play(pending_play)
        if pending_seek is not None:
            self._handle_seek(pending_seek)
        if pending_next is not None:
            self._queue_next(pending_next)
        return False

    def decode_step(self) -> None:
        """Decode one packet of the current track, or handle its end."""
        if self.current is None:
            return
        packet = self.current.next_packet()
        if packet is None:
            self._handle_track_end()
        else:
            self._process_samples(packet)

    def elapsed(self) -> float:
        """Seconds of output played so far."""
        return self.state.samples / (self.output_rate * self.output_channels)

    # Decoding

    def _push(self, samples: Sequence[float] | np.ndarray) -> None:
        push_samples_mapped(self.producer, samples, self.input_channels, self.output_channels)

    def _process_samples(self, samples: np.ndarray) -> None:
        if self.resampler is not None:
            self.pending.extend(samples.tolist())
            self.resampler.process(self.pending, self._push)
        else:
            self._push(samples)

    def _handle_track_end(self) -> None:
        self.state.signal_track_ended()
        self.state.reset_samples()
        queued, self.queued = self.queued, None
        if queued is not None:
            self._transition_to(queued)
        else:
            self._flush_resampler()
            self._stop_playback()

    def _transition_to(self, queued: _QueuedTrack) -> None:
        if self.resampler is not None and queued.resampler is not None:
            same_rate = self.resampler.input_rate == queued.resampler.input_rate
        else:
            same_rate = self.resampler is None and queued.resampler is None

        if not same_rate:
            self._flush_resampler()
            self.pending.clear()
            self.resampler = queued.resampler
        self._replace_current(queued.decoder)
        self.input_channels = queued.input_channels

    def _flush_resampler(self) -> None:
        if self.resampler is not None:
            self.resampler.flush(self.pending, self._push)

    # Playback commands

    def _replace_current(self, decoder: VoxDecoder | None) -> None:
        if self.current is not None and self.current is not decoder:
            self.current.close()
        self.current = decoder

    def _handle_play(self, path: str) -> None:
        self.pending.clear()
        if self.resampler is not None:
            self.resampler.reset()
        self.state.reset_samples()
        self.state.active = True
        self.state.set_paused(False)

        try:
            decoder = open_decoder(path)
        except VoxError as exc:
            print(f"Failed to open {path}: {exc}", file=sys.stderr)
            self.state.active = False
        else:
            info = decoder.info
            duration = decoder.playable_duration()
            if duration is None:
                duration = info.n_frames / info.sample_rate if info.n_frames is not None else 0.0
            self.state.duration_secs = duration
            self.input_channels = info.channels
            try:
                self.resampler = make_resampler(info.sample_rate, self.output_rate, info.channels)
            except VoxError:
                decoder.close()
                raise
            self._replace_current(decoder)

        self.state.finish_seek()

    def _queue_next(self, path: str) -> None:
        try:
            decoder = open_decoder(path)
        except VoxError as exc:
            raise FileOpenError(path) from exc
        info = decoder.info
        try:
            resampler = make_resampler(info.sample_rate, self.output_rate, info.channels)
        except VoxError:
            decoder.close()
            raise
        if self.queued is not None:
            self.queued.decoder.close()
        self.queued = _QueuedTrack(decoder, resampler, info.channels)

    def _handle_seek(self, target_secs: float) -> None:
        decoder = self.current
        if decoder is None:
            self.state.finish_seek()
            return

        info = decoder.info
        duration = (
            info.n_frames / info.sample_rate if info.n_frames is not None else float("inf")
        )
        if target_secs >= duration:
            self.state.finish_seek()
            self._handle_track_end()
            return

        try:
            actual_ts = decoder.seek(max(target_secs, 0.0))
        except VoxError:
            self.state.finish_seek()
            raise

        self.pending.clear()
        if self.resampler is not None:
            self.resampler.reset()

        actual_secs = actual_ts / info.sample_rate
        self.state.samples = int(actual_secs * self.output_rate * self.output_channels)

        generation = self.state.seek_generation
        self._prefill_after_seek(generation)
        self.state.finish_seek()

    def _prefill_after_seek(self, seek_generation: int) -> None:
        target = (self.output_rate * self.output_channels * SEEK_PREFILL_MS) // 1000
        prefilled = 0

        def count(samples: Sequence[float] | np.ndarray) -> None:
            nonlocal prefilled
            prefilled += push_samples_mapped_count(
                self.producer, samples, self.input_channels, self.output_channels
            )

        while prefilled < target:
            if self.state.seek_generation != seek_generation:
                return
            if self.current is None:
                break
            packet = self.current.next_packet()
            if packet is None:
                break
            if self.resampler is not None:
                self.pending.extend(packet.tolist())
                self.resampler.process(self.pending, count)
            else:
                count(packet)

    def _stop_playback(self) -> None:
        self.state.reset_samples()
        self.state.active = False
        self.resampler = None
        self.pending.clear()
        self._replace_current(None)
        if self.queued is not None:
            self.queued.decoder.close()
            self.queued = None

    def _release(self) -> None:
        self._replace_current(None)
        if self.queued is not None:
            self.queued.decoder.close()
            self.queued = None


def spawn(
    commands: queue.Queue,
    producer: SampleRing,
    state: SharedState,
    output_rate: int,
    output_channels: int,
) -> threading.Thread:
    """Start a worker on a daemon thread and return the thread."""
    worker = VoxWorker(commands, producer, state, output_rate, output_channels)

    def target() -> None:
        try:
            worker.run()
        except VoxError as exc:
            print(f"Decoder thread error: {exc}", file=sys.stderr)

    thread = threading.Thread(target=target, name="vox-decoder", daemon=True)
    thread.start()
    return thread


__all__: list[str] = [
    "Command",
    "Play",
    "QueueNext",
    "SampleRing",
    "Seek",
    "SeekPosition",
    "Shutdown",
    "Stop",
    "VoxWorker",
    "map_frames",
    "push_samples_mapped",
    "push_samples_mapped_count",
    "spawn",
]