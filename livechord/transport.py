"""Playback transport state as seen by the detector."""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass(frozen=True)
class TransportState:
    """Snapshot of the external player."""

    is_playing: bool
    current_time: float


class Transport(Protocol):
    def state(self) -> TransportState: ...


class ManualTransport:
    """Transport whose state is pushed in by the playback controller."""

    def __init__(self, is_playing: bool = False, current_time: float = 0.0) -> None:
        self._lock = threading.Lock()
        self._state = TransportState(is_playing, current_time)

    def update(self, is_playing: bool | None = None, current_time: float | None = None) -> None:
        with self._lock:
            self._state = TransportState(
                self._state.is_playing if is_playing is None else is_playing,
                self._state.current_time if current_time is None else current_time,
            )

    def state(self) -> TransportState:
        with self._lock:
            return self._state


class WallClockTransport:
    """
    Transport driven by a monotonic clock, for running without a player.

    ``play()`` resumes from the current position; ``seek()`` works while
    playing or paused.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._offset = 0.0
        self._started_at: float | None = None

    def _position(self) -> float:
        if self._started_at is None:
            return self._offset
        return self._offset + self._clock() - self._started_at

    def play(self) -> None:
        with self._lock:
            if self._started_at is None:
                self._started_at = self._clock()

    def pause(self) -> None:
        with self._lock:
            self._offset = self._position()
            self._started_at = None

    def seek(self, seconds: float) -> None:
        with self._lock:
            self._offset = max(seconds, 0.0)
            if self._started_at is not None:
                self._started_at = self._clock()

    def state(self) -> TransportState:
        with self._lock:
            return TransportState(self._started_at is not None, self._position())
