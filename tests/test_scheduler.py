"""Unit tests for DetectionScheduler lifecycle and ticks (fake audio, no devices)."""

import threading
import time

import numpy as np
import pytest

from livechord.arrangement import Arrangement
from livechord.audio_sources import AcquisitionResult, AcquisitionStrategy, AudioSource
from livechord.config import DetectionConfig
from livechord.errors import AudioGraphLeakError
from livechord.insertion import AutoInsertPolicy, DetectionEvent
from livechord.pitch_mapper import pitch_class_frequency
from livechord.position_resolver import MusicalPosition
from livechord.scheduler import DetectionScheduler, SchedulerState
from livechord.song_layout import Section, SongLayout
from livechord.transport import ManualTransport

SAMPLE_RATE = 44100


def _c_major(n: int = 4096) -> np.ndarray:
    t = np.arange(n) / SAMPLE_RATE
    return sum(0.3 * np.sin(2 * np.pi * pitch_class_frequency(note, 4) * t) for note in ("C", "E", "G"))


class _FakeSource(AudioSource):
    name = "fake"

    def __init__(self, samples: np.ndarray, fail_close: bool = False) -> None:
        self.samples = samples
        self.sample_rate = SAMPLE_RATE
        self.fail_close = fail_close
        self.closed = 0

    def read_window(self, size: int, playback_time: float) -> np.ndarray:
        return self.samples[-size:]

    def close(self) -> None:
        self.closed += 1
        if self.fail_close:
            raise RuntimeError("device busy")


class _FakeStrategy(AcquisitionStrategy):
    def __init__(self, name: str, source: AudioSource | None = None, gate: threading.Event | None = None) -> None:
        self.name = name
        self.source = source
        self.gate = gate
        self.calls = 0

    def acquire(self) -> AcquisitionResult:
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=2.0)
        if self.source is None:
            return AcquisitionResult.failed("permission denied")
        return AcquisitionResult.bound(self.source)


class _RaisingStrategy(AcquisitionStrategy):
    name = "system audio"

    def __init__(self) -> None:
        self.calls = 0

    def acquire(self) -> AcquisitionResult:
        self.calls += 1
        raise RuntimeError("boom")


class _EditingSource(_FakeSource):
    """Deletes the first section from another thread while a window is read."""

    def __init__(self, samples: np.ndarray, arrangement: Arrangement) -> None:
        super().__init__(samples)
        self.arrangement = arrangement
        self.pending_edit = True

    def read_window(self, size: int, playback_time: float) -> np.ndarray:
        if self.pending_edit:
            self.pending_edit = False
            editor = threading.Thread(target=self.arrangement.delete_section, args=(0,))
            editor.start()
            editor.join(timeout=2.0)
        return super().read_window(size, playback_time)


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _scheduler(
    strategies: list[AcquisitionStrategy],
    transport: ManualTransport | None = None,
    position: MusicalPosition | None = MusicalPosition(0, 1),
    **kwargs,
) -> DetectionScheduler:
    return DetectionScheduler(
        strategies=strategies,
        transport=transport if transport is not None else ManualTransport(is_playing=True, current_time=5.0),
        position_provider=lambda seconds: position,
        config=DetectionConfig(tick_interval_ms=20),
        **kwargs,
    )


def test_acquire_first_strategy_goes_active() -> None:
    source = _FakeSource(_c_major())
    scheduler = _scheduler([_FakeStrategy("media", source)])
    assert scheduler.acquire()
    assert scheduler.state is SchedulerState.ACTIVE
    assert scheduler.source is source


def test_fallback_passes_through_degraded() -> None:
    states: list[SchedulerState] = []
    source = _FakeSource(_c_major())
    scheduler = _scheduler(
        [_FakeStrategy("media"), _FakeStrategy("system audio"), _FakeStrategy("microphone", source)],
        on_status=lambda state, message: states.append(state),
    )
    assert scheduler.acquire()
    assert states == [SchedulerState.DEGRADED, SchedulerState.DEGRADED, SchedulerState.ACTIVE]
    assert scheduler.source is source


def test_exhausted_chain_reports_unavailable_and_stays_idle() -> None:
    messages: list[str] = []
    scheduler = _scheduler(
        [_FakeStrategy("media"), _FakeStrategy("microphone")],
        on_status=lambda state, message: messages.append(message),
    )
    assert not scheduler.acquire()
    assert scheduler.state is SchedulerState.IDLE
    assert messages[-1] == "detection unavailable"
    assert "permission denied" in scheduler.unavailable_reason
    assert scheduler.tick() is None


def test_tick_emits_event_to_listeners() -> None:
    clock = _Clock()
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major()))], clock=clock)
    events: list[DetectionEvent] = []
    scheduler.add_listener(events.append)
    scheduler.acquire()

    clock.now = 101.5
    event = scheduler.tick()

    assert event is not None
    assert events == [event]
    assert event.chord == "C"
    assert event.position == MusicalPosition(0, 1)
    assert event.playback_time == 5.0
    assert event.confidence == pytest.approx(1.0)


def test_tick_skipped_while_paused() -> None:
    transport = ManualTransport(is_playing=False, current_time=5.0)
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major()))], transport=transport)
    scheduler.acquire()
    assert scheduler.tick() is None
    transport.update(is_playing=True)
    assert scheduler.tick() is not None


def test_tick_skipped_when_auto_detection_disabled() -> None:
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major()))])
    scheduler.acquire()
    scheduler.set_auto_detection(False)
    assert scheduler.tick() is None
    assert scheduler.state is SchedulerState.ACTIVE
    scheduler.set_auto_detection(True)
    assert scheduler.tick() is not None


def test_tick_skipped_without_position() -> None:
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major()))], position=None)
    scheduler.acquire()
    assert scheduler.tick() is None


def test_insufficient_peaks_emit_nothing() -> None:
    t = np.arange(4096) / SAMPLE_RATE
    single_tone = 0.3 * np.sin(2 * np.pi * 440.0 * t)
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(single_tone))])
    events: list[DetectionEvent] = []
    scheduler.add_listener(events.append)
    scheduler.acquire()
    assert scheduler.tick() is None
    assert events == []


def test_timestamps_never_decrease() -> None:
    clock = _Clock()
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major()))], clock=clock)
    scheduler.acquire()
    clock.now = 105.0
    first = scheduler.tick()
    clock.now = 104.0
    second = scheduler.tick()
    assert first is not None and second is not None
    assert second.timestamp >= first.timestamp


def test_stop_twice_is_noop_and_halts_events() -> None:
    source = _FakeSource(_c_major())
    scheduler = _scheduler([_FakeStrategy("media", source)])
    events: list[DetectionEvent] = []
    scheduler.add_listener(events.append)
    scheduler.acquire()
    scheduler.tick()

    scheduler.stop()
    scheduler.stop()

    assert source.closed == 1
    assert scheduler.state is SchedulerState.IDLE
    assert scheduler.tick() is None
    assert len(events) == 1


def test_stop_on_idle_scheduler_is_noop() -> None:
    statuses: list[SchedulerState] = []
    scheduler = _scheduler([], on_status=lambda state, message: statuses.append(state))
    scheduler.stop()
    assert statuses == []


def test_failed_release_is_a_leak_error() -> None:
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major(), fail_close=True))])
    scheduler.acquire()
    with pytest.raises(AudioGraphLeakError):
        scheduler.stop()
    assert scheduler.state is SchedulerState.IDLE
    scheduler.stop()


def test_background_loop_emits_then_stops() -> None:
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major()))])
    received = threading.Event()
    events: list[DetectionEvent] = []

    def listener(event: DetectionEvent) -> None:
        events.append(event)
        received.set()

    scheduler.add_listener(listener)
    scheduler.start()
    assert received.wait(timeout=5.0)
    scheduler.stop()
    count = len(events)
    time.sleep(0.1)
    assert len(events) == count
    assert scheduler.state is SchedulerState.IDLE


def test_start_twice_does_not_reacquire() -> None:
    gate = threading.Event()
    strategy = _FakeStrategy("media", _FakeSource(_c_major()), gate=gate)
    scheduler = _scheduler([strategy])
    scheduler.start()
    scheduler.start()
    gate.set()
    scheduler.stop()
    assert strategy.calls == 1


def test_stop_during_acquisition_releases_late_source() -> None:
    gate = threading.Event()
    source = _FakeSource(_c_major())
    strategy = _FakeStrategy("media", source, gate=gate)
    scheduler = _scheduler([strategy])
    scheduler.start()
    assert scheduler.state is SchedulerState.ACQUIRING

    worker = scheduler._worker
    scheduler._cancel.set()
    gate.set()
    worker.join(timeout=2.0)
    scheduler.stop()

    assert source.closed == 1
    assert scheduler.source is None
    assert scheduler.state is SchedulerState.IDLE


def test_rebind_releases_previous_source_first() -> None:
    first = _FakeSource(_c_major())
    second = _FakeSource(_c_major())
    scheduler = _scheduler([_FakeStrategy("media", first)])
    scheduler.acquire()

    scheduler.rebind([_FakeStrategy("microphone", second)])
    deadline = time.monotonic() + 2.0
    while scheduler.source is not second and time.monotonic() < deadline:
        time.sleep(0.01)

    assert first.closed == 1
    assert scheduler.source is second
    scheduler.stop()
    assert second.closed == 1


def test_acquire_with_bound_source_is_a_leak_error() -> None:
    scheduler = _scheduler([_FakeStrategy("media", _FakeSource(_c_major()))])
    scheduler.acquire()
    with pytest.raises(AudioGraphLeakError):
        scheduler.acquire()
    scheduler.stop()


def test_raising_strategy_falls_through_to_next() -> None:
    source = _FakeSource(_c_major())
    raising = _RaisingStrategy()
    fallback = _FakeStrategy("microphone", source)
    scheduler = _scheduler([raising, fallback])
    assert scheduler.acquire()
    assert (raising.calls, fallback.calls) == (1, 1)
    assert scheduler.source is source
    assert scheduler.state is SchedulerState.ACTIVE
    scheduler.stop()


def test_raising_strategy_does_not_stall_background_acquisition() -> None:
    fallback = _FakeStrategy("microphone", _FakeSource(_c_major()))
    scheduler = _scheduler([_RaisingStrategy(), fallback])
    scheduler.start()
    deadline = time.monotonic() + 2.0
    while scheduler.state is not SchedulerState.ACTIVE and time.monotonic() < deadline:
        time.sleep(0.01)
    assert scheduler.state is SchedulerState.ACTIVE
    assert fallback.calls == 1
    scheduler.stop()


def test_only_raising_strategies_report_unavailable() -> None:
    scheduler = _scheduler([_RaisingStrategy()])
    assert not scheduler.acquire()
    assert scheduler.state is SchedulerState.IDLE
    assert "boom" in scheduler.unavailable_reason


def test_section_deleted_mid_tick_leaves_no_orphan_chord() -> None:
    arrangement = Arrangement(
        SongLayout(
            tempo=60,
            sections=(Section("A", "0:00", "0:15", 4), Section("B", "0:16", "0:31", 4)),
        )
    )
    scheduler = DetectionScheduler(
        strategies=[_FakeStrategy("media", _EditingSource(_c_major(), arrangement))],
        transport=ManualTransport(is_playing=True, current_time=20.0),
        position_provider=arrangement.resolve,
        config=DetectionConfig(tick_interval_ms=20),
    )
    scheduler.add_listener(AutoInsertPolicy.for_arrangement(arrangement))
    scheduler.acquire()

    stale = scheduler.tick()
    assert stale is not None and stale.position == MusicalPosition(1, 1)
    assert [s.name for s in arrangement.layout.sections] == ["B"]
    assert arrangement.grid.to_dict() == {}

    fresh = scheduler.tick()
    assert fresh is not None and fresh.position == MusicalPosition(0, 1)
    assert arrangement.grid.to_dict() == {"0-1-0-0": "C"}
    scheduler.stop()
