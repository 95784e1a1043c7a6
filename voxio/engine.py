"""The public playback engine: ties the worker, the output ring and the output together."""

from __future__ import annotations

import os
import queue
import threading
import time
from collections.abc import Callable
from typing import Protocol

import numpy as np

from voxio.errors import (
    BUFFER_MS,
    CHANNEL_COUNT,
    SAMPLE_TAP_CAPACITY,
    SEEK_FADE_MS,
    FileOpenError,
    OutputError,
    SeekError,
)
from voxio.state import SharedState
from voxio.tap import SampleTap
from voxio.worker import (
    Play,
    QueueNext,
    SampleRing,
    Seek,
    SeekPosition,
    Shutdown,
    Stop,
    spawn,
)

_JOIN_TIMEOUT = 1.0


class OutputCallback:
    """Fills output buffers from the sample ring.

    Outputs silence while paused, idle or seeking, drops stale samples when a
    seek starts or playback resumes, and fades in after a seek completes.
    """

    def __init__(
        self,
        state: SharedState,
        consumer: SampleRing,
        tap: SampleTap,
        fade_total_samples: int,
    ) -> None:
        self.state = state
        self.consumer = consumer
        self.tap = tap
        self.fade_total_samples = fade_total_samples
        self._last_seek_generation = state.seek_generation
        self._was_seeking = False
        self._was_inactive = True
        self._fade_remaining = 0

    def __call__(self, data: np.ndarray) -> None:
        """Fill ``data`` in place with the next output samples."""
        generation = self.state.seek_generation
        if generation != self._last_seek_generation:
            self._last_seek_generation = generation
            self.consumer.drain()

        seeking = self.state.seeking
        inactive = self.state.paused or not self.state.active or seeking
        if inactive:
            data[:] = 0.0
            self._was_seeking = seeking
            self._was_inactive = True
            return

        # Catches stale samples the generation check may have missed.
        if self._was_inactive:
            self.consumer.drain()
            self._was_inactive = False

        if self._was_seeking and not seeking:
            self._fade_remaining = self.fade_total_samples
        self._was_seeking = seeking

        popped: list[float] = []
        while len(popped) < len(data):
            sample = self.consumer.pop()
            if sample is None:
                break
            popped.append(sample)

        values = np.asarray(popped, dtype=np.float32)
        fade = min(self._fade_remaining, len(values))
        if fade > 0:
            remaining = self._fade_remaining - np.arange(fade)
            values[:fade] *= (1.0 - remaining / self.fade_total_samples).astype(np.float32)
            self._fade_remaining -= fade

        data[: len(values)] = values
        data[len(values) :] = 0.0

        if len(values):
            self.state.add_samples(len(values))
        self.tap.push(data)


class AudioOutput(Protocol):
    """What the engine needs from an audio output device."""

    sample_rate: int
    channels: int

    def start(self, callback: Callable[[np.ndarray], None]) -> None: ...

    def stop(self) -> None: ...


class NullOutput:
    """An output device that discards audio.

    With ``realtime`` set it pulls blocks from the callback at the pace of
    the sample rate on a background thread; otherwise it only keeps the
    callback in ``self.callback`` so that the caller can drive it.
    """

    def __init__(
        self,
        sample_rate: int = 44100,
        channels: int = 2,
        block_frames: int = 512,
        realtime: bool = True,
    ) -> None:
        if sample_rate <= 0 or channels <= 0 or block_frames <= 0:
            raise OutputError("invalid output configuration")
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_frames = block_frames
        self.realtime = realtime
        self.callback: Callable[[np.ndarray], None] | None = None
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self, callback: Callable[[np.ndarray], None]) -> None:
        self.callback = callback
        self._stopped.clear()
        if self.realtime and self._thread is None:
            self._thread = threading.Thread(target=self._pump, name="vox-output", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(_JOIN_TIMEOUT)
            self._thread = None

    def _pump(self) -> None:
        period = self.block_frames / self.sample_rate
        while not self._stopped.is_set():
            callback = self.callback
            if callback is not None:
                callback(np.zeros(self.block_frames * self.channels, dtype=np.float32))
            time.sleep(period)


class Vox:
    """An audio playback engine with gapless transitions and a sample tap."""

    def __init__(self, output: AudioOutput | None = None) -> None:
        self._output = output if output is not None else NullOutput()
        rate = self._output.sample_rate
        channels = self._output.channels

        buffer_size = max(1, rate * channels * BUFFER_MS // 1000)
        self._ring = SampleRing(buffer_size)
        self._tap = SampleTap(SAMPLE_TAP_CAPACITY)
        self._state = SharedState()
        fade_total = rate * channels * SEEK_FADE_MS // 1000
        self._callback = OutputCallback(self._state, self._ring, self._tap, fade_total)

        try:
            self._output.start(self._callback)
        except OutputError:
            raise
        except Exception as exc:
            raise OutputError(str(exc)) from exc

        self._commands: queue.Queue = queue.Queue(maxsize=CHANNEL_COUNT)
        self._thread = spawn(self._commands, self._ring, self._state, rate, channels)
        self._sps = float(rate * channels)
        self._closed = False

    def _send(self, command: object, error: type[Exception]) -> None:
        if self._closed or not self._thread.is_alive():
            raise error("Channel closed")
        self._commands.put(command)

    def play(self, path: str | os.PathLike[str]) -> None:
        """Start playing the audio file at ``path``."""
        name = os.fspath(path)
        if not os.path.exists(name):
            raise FileOpenError(name)
        if self._closed or not self._thread.is_alive():
            raise OutputError("Channel closed")
        self._state.start_seek()
        self._state.reset_samples()
        self._state.active = True
        self._send(Play(name), OutputError)

    def set_next(self, path: str | os.PathLike[str]) -> None:
        """Set the track to follow the current one without a gap.

        Each call replaces the previous choice. If the command channel is
        full the request is dropped, since only the latest one matters.
        """
        name = os.fspath(path)
        if not os.path.exists(name):
            raise FileOpenError(name)
        if self._closed:
            return
        try:
            self._commands.put_nowait(QueueNext(name))
        except queue.Full:
            pass

    def seek_to(self, pos: float) -> None:
        """Seek to ``pos`` seconds; ignored when nothing is loaded."""
        if not self._state.active:
            return
        self._state.start_seek()
        self._send(Seek(SeekPosition.absolute(pos)), SeekError)

    def seek_relative(self, increment: float) -> None:
        """Seek by ``increment`` seconds; ignored when nothing is loaded."""
        if not self._state.active:
            return
        self._state.start_seek()
        self._send(Seek(SeekPosition.offset(increment)), SeekError)

    def toggle_playback(self) -> None:
        """Pause if playing, resume if paused."""
        self._state.toggle_playback()

    def is_paused(self) -> bool:
        return self._state.paused

    def is_active(self) -> bool:
        return self._state.active

    def pause(self) -> None:
        self._state.set_paused(True)

    def resume(self) -> None:
        self._state.set_paused(False)

    def stop(self) -> None:
        """Stop the current and any queued track."""
        self._send(Stop(), OutputError)

    def position(self) -> float:
        """Playback position in seconds."""
        return self._state.samples / self._sps

    def duration(self) -> float:
        """Playable duration of the current track in seconds."""
        return self._state.duration_secs

    def get_latest_samples(self, amount: int) -> list[float]:
        """Take up to ``amount`` of the most recently output samples."""
        return self._tap.get_latest(amount)

    def track_ended(self) -> bool:
        """Return whether a track ended since the last call."""
        return self._state.take_track_ended()

    def close(self) -> None:
        """Shut the worker down and stop the output."""
        if self._closed:
            return
        self._closed = True
        try:
            self._commands.put(Shutdown(), timeout=_JOIN_TIMEOUT)
        except queue.Full:
            pass
        self._output.stop()
        self._thread.join(_JOIN_TIMEOUT)

    def __enter__(self) -> Vox:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()