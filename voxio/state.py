"""Playback state shared between the control side, the worker and the output."""

from __future__ import annotations

import threading


class SharedState:
    """Thread-safe flags and counters describing the player."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active = False
        self._paused = False
        self._samples = 0
        self._track_ended = False
        self._seeking = False
        self._seek_generation = 0
        self._duration_micros = 0

    @property
    def active(self) -> bool:
        """True while a track is loaded (playing or paused)."""
        return self._active

    @active.setter
    def active(self, value: bool) -> None:
        self._active = bool(value)

    @property
    def paused(self) -> bool:
        return self._paused

    def set_paused(self, val: bool) -> None:
        """Set the paused flag; pausing is ignored when nothing is loaded."""
        with self._lock:
            if val and not self._active:
                return
            self._paused = bool(val)

    def toggle_playback(self) -> None:
        """Flip the paused flag, or clear it when nothing is loaded."""
        with self._lock:
            self._paused = (not self._paused) if self._active else False

    @property
    def samples(self) -> int:
        """Output samples played so far."""
        return self._samples

    @samples.setter
    def samples(self, value: int) -> None:
        with self._lock:
            self._samples = int(value)

    def add_samples(self, val: int) -> None:
        with self._lock:
            self._samples += int(val)

    def reset_samples(self) -> None:
        with self._lock:
            self._samples = 0

    @property
    def duration_secs(self) -> float:
        """Playable duration of the current track, in seconds."""
        return self._duration_micros / 1_000_000.0

    @duration_secs.setter
    def duration_secs(self, secs: float) -> None:
        self._duration_micros = max(0, int(secs * 1_000_000.0))

    def signal_track_ended(self) -> None:
        self._track_ended = True

    def take_track_ended(self) -> bool:
        """Return whether a track ended since the last call, clearing the flag."""
        with self._lock:
            ended, self._track_ended = self._track_ended, False
        return ended

    @property
    def seeking(self) -> bool:
        return self._seeking

    @property
    def seek_generation(self) -> int:
        return self._seek_generation

    def start_seek(self) -> None:
        """Mark a seek as pending, then advance the seek generation."""
        with self._lock:
            self._seeking = True
            self._seek_generation += 1

    def finish_seek(self) -> None:
        self._seeking = False