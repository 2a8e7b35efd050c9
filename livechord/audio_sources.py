"""Audio sources and the ordered strategies used to acquire one."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Final

import numpy as np

from livechord.media_loader import MediaLoader

logger = logging.getLogger(__name__)

# Device names that usually expose system playback as an input.
LOOPBACK_KEYWORDS: Final[tuple[str, ...]] = (
    "loopback",
    "stereo mix",
    "what u hear",
    "monitor",
    "blackhole",
)


# ── Sources ──────────────────────────────────────────────────────────────────

class AudioSource(ABC):
    """A bound audio input the detector can pull sample windows from."""

    name: str = "audio"
    sample_rate: float

    @abstractmethod
    def read_window(self, size: int, playback_time: float) -> np.ndarray:
        """
        Return up to ``size`` of the most recent samples.

        Args:
            size:          Window length in samples.
            playback_time: Transport position; only file-backed sources use it.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the underlying stream. Closing twice is a no-op."""


class MediaAudioSource(AudioSource):
    """
    Decoded media track read in step with the transport.

    The window returned ends at ``playback_time``, which mirrors tapping the
    player's own output without needing a capture device.
    """

    name = "media"

    def __init__(self, samples: np.ndarray, sample_rate: float) -> None:
        self._samples: np.ndarray | None = samples
        self.sample_rate = sample_rate

    def read_window(self, size: int, playback_time: float) -> np.ndarray:
        if self._samples is None:
            return np.empty(0)
        end = min(int(round(playback_time * self.sample_rate)), len(self._samples))
        if end <= 0:
            return np.empty(0)
        return self._samples[max(0, end - size):end]

    def close(self) -> None:
        self._samples = None


class SampleRingBuffer:
    """
    Bounded mono sample buffer between an audio callback and the detector.

    One thread writes (the device callback), one thread reads (the
    scheduler). Writes never wait on anything but this buffer's own lock,
    and the oldest samples are dropped when full.
    """

    def __init__(self, capacity: int) -> None:
        self._samples: deque[float] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def write(self, block: np.ndarray) -> None:
        mono = block.mean(axis=1) if block.ndim > 1 else block.ravel()
        with self._lock:
            self._samples.extend(mono.tolist())

    def snapshot(self, size: int) -> np.ndarray:
        with self._lock:
            data = np.fromiter(self._samples, dtype=np.float32, count=len(self._samples))
        return data[-size:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


class StreamAudioSource(AudioSource):
    """Live input stream (loopback or microphone) feeding a SampleRingBuffer."""

    def __init__(self, stream: Any, buffer: SampleRingBuffer, sample_rate: float, name: str) -> None:
        self._stream = stream
        self._buffer = buffer
        self.sample_rate = sample_rate
        self.name = name

    def read_window(self, size: int, playback_time: float) -> np.ndarray:
        return self._buffer.snapshot(size)

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()


# ── Acquisition strategies ─────────────────────────────────────────────────

@dataclass(frozen=True)
class AcquisitionResult:
    """Outcome of one acquisition attempt: a bound source or the reason it failed."""

    source: AudioSource | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.source is not None

    @classmethod
    def bound(cls, source: AudioSource) -> AcquisitionResult:
        return cls(source=source)

    @classmethod
    def failed(cls, reason: str) -> AcquisitionResult:
        return cls(reason=reason)


class AcquisitionStrategy(ABC):
    """One way of obtaining audio. ``acquire()`` reports failure instead of raising."""

    name: str = "strategy"

    @abstractmethod
    def acquire(self) -> AcquisitionResult:
        """Try to bind a source."""


class MediaTrackStrategy(AcquisitionStrategy):
    """Decode the song's own media (file path or URL)."""

    name = "media track"

    def __init__(self, media: str | None, loader_factory: Callable[[], MediaLoader] = MediaLoader) -> None:
        self.media = media
        self._loader_factory = loader_factory

    def acquire(self) -> AcquisitionResult:
        if not self.media:
            return AcquisitionResult.failed("no media track supplied")
        try:
            with self._loader_factory() as loader:
                samples, sample_rate = loader.load(self.media)
        except Exception as exc:
            return AcquisitionResult.failed(f"could not decode '{self.media}': {exc}")
        if len(samples) == 0:
            return AcquisitionResult.failed(f"'{self.media}' contains no audio")
        return AcquisitionResult.bound(MediaAudioSource(samples, sample_rate))


class _InputStreamStrategy(AcquisitionStrategy):
    """Shared sounddevice plumbing for live capture strategies."""

    def __init__(self, sample_rate: int = 44100, buffer_seconds: float = 2.0, blocksize: int = 1024) -> None:
        self.sample_rate = sample_rate
        self.buffer_seconds = buffer_seconds
        self.blocksize = blocksize

    @abstractmethod
    def _select_device(self, sd: Any) -> tuple[int | None, str] | None:
        """Return (device index or None for default, display name), or None if unusable."""

    def acquire(self) -> AcquisitionResult:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:
            return AcquisitionResult.failed(f"audio input unavailable: {exc}")

        try:
            selected = self._select_device(sd)
        except sd.PortAudioError as exc:
            return AcquisitionResult.failed(f"cannot list audio devices: {exc}")
        if selected is None:
            return AcquisitionResult.failed(f"no {self.name} device found")
        device, label = selected

        buffer = SampleRingBuffer(int(self.sample_rate * self.buffer_seconds))

        def callback(indata, frames, time, status):
            if status:
                logger.debug("Input status on %s: %s", label, status)
            buffer.write(indata)

        try:
            stream = sd.InputStream(
                device=device,
                channels=1,
                samplerate=self.sample_rate,
                blocksize=self.blocksize,
                callback=callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            return AcquisitionResult.failed(f"cannot open {label}: {exc}")

        return AcquisitionResult.bound(StreamAudioSource(stream, buffer, self.sample_rate, name=label))


class LoopbackCaptureStrategy(_InputStreamStrategy):
    """Capture system playback through a loopback / monitor input device."""

    name = "system audio"

    def _select_device(self, sd: Any) -> tuple[int | None, str] | None:
        for index, device in enumerate(sd.query_devices()):
            device_name = str(device["name"])
            if device["max_input_channels"] <= 0:
                continue
            if any(keyword in device_name.lower() for keyword in LOOPBACK_KEYWORDS):
                return index, device_name
        return None


class MicrophoneStrategy(_InputStreamStrategy):
    """Fall back to the default input device."""

    name = "microphone"

    def _select_device(self, sd: Any) -> tuple[int | None, str] | None:
        try:
            device = sd.query_devices(kind="input")
        except (ValueError, sd.PortAudioError):
            return None
        return None, str(device["name"])


def default_strategies(media: str | None, sample_rate: int = 44100) -> list[AcquisitionStrategy]:
    """Media track first, then system audio, then the microphone."""
    return [
        MediaTrackStrategy(media),
        LoopbackCaptureStrategy(sample_rate=sample_rate),
        MicrophoneStrategy(sample_rate=sample_rate),
    ]
