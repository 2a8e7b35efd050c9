"""Exception types raised by livechord.

Recoverable conditions (no audio, silent tick, no template match) are not
exceptions; they surface as ``None`` results or as a detection status.
"""


class LiveChordError(Exception):
    """Base class for all livechord errors."""


class LayoutError(LiveChordError, ValueError):
    """Song layout data is malformed (bad ``m:ss`` clock, negative counts, ...)."""


class AudioGraphLeakError(LiveChordError, RuntimeError):
    """
    A previously bound audio source could not be released.

    This is distinct from "no audio access": it means a stream or capture
    handle is still alive and binding a new one would leave two graphs
    feeding the detector.
    """
