"""DetectionScheduler: the periodic listen-and-detect loop."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Sequence

from livechord.audio_sources import AcquisitionResult, AcquisitionStrategy, AudioSource
from livechord.config import DetectionConfig
from livechord.detector import ChordDetector
from livechord.errors import AudioGraphLeakError
from livechord.insertion import DetectionEvent
from livechord.position_resolver import MusicalPosition
from livechord.transport import Transport

logger = logging.getLogger(__name__)

DetectionListener = Callable[[DetectionEvent], None]
StatusListener = Callable[["SchedulerState", str], None]
PositionProvider = Callable[[float], MusicalPosition | None]


class SchedulerState(Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    DEGRADED = "degraded"  # acquiring through a fallback strategy
    ACTIVE = "active"


class DetectionScheduler:
    """
    Owns the audio source and the detection timer.

    State machine
    -------------
    ``IDLE -> ACQUIRING (-> DEGRADED) -> ACTIVE -> IDLE``

    ``start()`` returns immediately; acquisition and the timer run on a
    worker thread. Strategies are tried in order and the first that binds
    a source wins. Moving past the first strategy puts the scheduler in
    DEGRADED while it keeps trying. If every strategy fails the scheduler
    returns to IDLE and reports "detection unavailable" through
    ``on_status``; nothing is raised.

    While ACTIVE the timer fires every ``tick_interval_ms``. A tick only
    samples audio when the transport is playing, auto-detection is enabled
    and the playback time resolves to a bar. Otherwise the tick is skipped
    and the timer keeps running, so pausing does not re-acquire audio.

    ``stop()`` is idempotent. Once it returns, no further event is
    emitted: ticks and stop share one lock, and stop releases the source
    before handing back control.
    """

    def __init__(
        self,
        strategies: Sequence[AcquisitionStrategy],
        transport: Transport,
        position_provider: PositionProvider,
        detector: ChordDetector | None = None,
        config: DetectionConfig | None = None,
        on_status: StatusListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config if config is not None else DetectionConfig()
        self.detector = detector if detector is not None else ChordDetector.from_config(self.config)
        self.strategies = list(strategies)
        self.transport = transport
        self.position_provider = position_provider
        self.on_status = on_status
        self._clock = clock

        self._lock = threading.RLock()
        self._listeners: list[DetectionListener] = []
        self._state = SchedulerState.IDLE
        self._source: AudioSource | None = None
        self._cancel = threading.Event()
        self._worker: threading.Thread | None = None
        self._auto_detection = True
        self._started_at = 0.0
        self._last_timestamp = 0.0
        self.unavailable_reason: str | None = None

    # ------------------------------------------------------------------
    # Observers and toggles
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def source(self) -> AudioSource | None:
        with self._lock:
            return self._source

    @property
    def auto_detection_enabled(self) -> bool:
        return self._auto_detection

    def set_auto_detection(self, enabled: bool) -> None:
        """Turning this off makes the next tick a no-op; the source stays bound."""
        with self._lock:
            self._auto_detection = enabled

    def add_listener(self, listener: DetectionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: DetectionListener) -> None:
        with self._lock:
            self._listeners.remove(listener)

    def _set_state(self, state: SchedulerState, message: str = "") -> None:
        self._state = state
        logger.debug("Scheduler %s %s", state.value, message)
        if self.on_status is not None:
            self.on_status(state, message)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Begin acquisition and detection on a background thread.

        Calling start while already running is a no-op.

        Raises:
            AudioGraphLeakError: If a previous source is still bound.
        """
        with self._lock:
            if self._state is not SchedulerState.IDLE:
                return
            if self._source is not None:
                raise AudioGraphLeakError(
                    f"Audio source '{self._source.name}' is still bound; stop() before starting again."
                )
            cancel = threading.Event()
            self._cancel = cancel
            self._set_state(SchedulerState.ACQUIRING)
            self._worker = threading.Thread(
                target=self._run, args=(cancel,), name="livechord-detector", daemon=True
            )
            self._worker.start()

    def stop(self) -> None:
        """
        Cancel the timer and release the audio source.

        Safe to call repeatedly; stopping an idle scheduler does nothing.

        Raises:
            AudioGraphLeakError: If the bound source fails to close.
        """
        self._cancel.set()
        with self._lock:
            worker, self._worker = self._worker, None
            was_running = self._state is not SchedulerState.IDLE
            try:
                self._release_source()
            finally:
                if was_running:
                    self._set_state(SchedulerState.IDLE, "stopped")
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=max(self.config.tick_interval, 1.0))

    def rebind(self, strategies: Sequence[AcquisitionStrategy] | None = None) -> None:
        """Release the current source completely, then acquire again."""
        self.stop()
        if strategies is not None:
            self.strategies = list(strategies)
        self.start()

    def _release_source(self) -> None:
        source, self._source = self._source, None
        if source is None:
            return
        self.detector.reset()
        try:
            source.close()
        except Exception as exc:
            logger.error("Failed to release audio source '%s': %s", source.name, exc)
            raise AudioGraphLeakError(f"Audio source '{source.name}' did not release cleanly.") from exc

    def _run(self, cancel: threading.Event) -> None:
        if not self.acquire(cancel):
            return
        interval = self.config.tick_interval
        while not cancel.wait(interval):
            self.tick()

    def acquire(self, cancel: threading.Event | None = None) -> bool:
        """
        Try each strategy in order until one binds a source.

        Returns:
            True when a source is bound and the scheduler is ACTIVE.

        Raises:
            AudioGraphLeakError: If a source is already bound.
        """
        with self._lock:
            if self._source is not None:
                raise AudioGraphLeakError(f"Audio source '{self._source.name}' is already bound.")
        cancel = cancel if cancel is not None else threading.Event()
        reasons: list[str] = []

        for attempt, strategy in enumerate(self.strategies):
            if cancel.is_set():
                return False
            if attempt > 0:
                with self._lock:
                    if not cancel.is_set():
                        self._set_state(SchedulerState.DEGRADED, f"trying {strategy.name}")

            try:
                result = strategy.acquire()
            except Exception as exc:
                logger.exception("Audio strategy %s raised", strategy.name)
                result = AcquisitionResult.failed(str(exc) or type(exc).__name__)
            if not result.ok:
                logger.info("Audio via %s unavailable: %s", strategy.name, result.reason)
                reasons.append(f"{strategy.name}: {result.reason}")
                continue

            with self._lock:
                if cancel.is_set():
                    # Stopped while waiting on the device; do not keep it.
                    result.source.close()
                    return False
                self._source = result.source
                self.unavailable_reason = None
                self._started_at = self._clock()
                self._last_timestamp = 0.0
                self._set_state(SchedulerState.ACTIVE, f"listening via {strategy.name}")
            logger.info("Chord detection active via %s", strategy.name)
            return True

        with self._lock:
            if cancel.is_set():
                return False
            self.unavailable_reason = "; ".join(reasons) or "no acquisition strategies configured"
            logger.warning("Chord detection unavailable (%s)", self.unavailable_reason)
            self._set_state(SchedulerState.IDLE, "detection unavailable")
        return False

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def tick(self) -> DetectionEvent | None:
        """
        Run one detection pass and notify listeners on a match.

        Returns:
            The emitted event, or None when the tick was skipped.
        """
        with self._lock:
            if self._state is not SchedulerState.ACTIVE or self._source is None:
                return None
            if not self._auto_detection:
                return None

            transport = self.transport.state()
            if not transport.is_playing:
                return None

            position = self.position_provider(transport.current_time)
            if position is None:
                return None

            samples = self._source.read_window(self.detector.window_size, transport.current_time)
            match = self.detector.detect(samples, self._source.sample_rate)
            if match is None:
                return None

            timestamp = max(self._clock() - self._started_at, self._last_timestamp)
            self._last_timestamp = timestamp
            event = DetectionEvent(
                chord=match.label,
                position=position,
                timestamp=timestamp,
                playback_time=transport.current_time,
                confidence=match.confidence,
            )
            logger.debug("Detected %s at %.2fs (%s)", event.chord, event.playback_time, position)
            for listener in list(self._listeners):
                listener(event)
            return event
