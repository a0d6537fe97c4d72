"""
Typed failures raised by the drop-test engine.
All of them derive from ValueError so existing `except ValueError` callers keep working.
"""


class DropTestError(ValueError):
    """엔진 내부에서 발생하는 모든 예외의 부모 클래스"""


class InsufficientData(DropTestError):
    """Too few samples for the requested statistic."""


class NonFiniteSample(InsufficientData):
    """NaN or inf in the input series."""


class DegenerateTimebase(DropTestError):
    """Zero or negative time delta."""


class NonMonotonicTimebase(DegenerateTimebase):
    """Timestamps go backwards."""


class InvalidWindow(DropTestError):
    """Even, too small or too large filter window, or polynomial order >= window."""


class CutoffOutOfRange(DropTestError):
    """Cutoff request at or above the Nyquist safety margin."""


class NoSignificantPeak(DropTestError):
    pass


class NoFreeFallFound(DropTestError):
    pass
