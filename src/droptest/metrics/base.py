"""
Base interface for all injury metrics.
Strategy Pattern implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import numpy as np

from droptest.core import ProcessedSignal, TimeRange
from droptest.errors import InsufficientData
from droptest.windows import window_indices


class MetricStrategy(ABC):
    """모든 분석 메트릭의 부모 클래스"""

    # 일부 메트릭은 임계값 목록 등 파라미터가 필요할 수 있음
    def __init__(self, **kwargs):
        self.params = kwargs

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def calculate(self, signal: ProcessedSignal, window: TimeRange) -> Dict[str, Any]:
        """신호와 분석 구간을 받아 InjuryMetrics 필드 딕셔너리로 반환"""
        pass


def scoped_segment(
    signal: ProcessedSignal, window: TimeRange
) -> Tuple[np.ndarray, np.ndarray, Optional[Tuple[int, int]]]:
    """(time_ms, metric accel, index span) of the samples inside the window."""
    span = window_indices(signal.time_ms, window)
    if span is None:
        raise InsufficientData(
            f"Window {window.min_ms:.1f}-{window.max_ms:.1f} ms holds fewer than 2 samples"
        )
    start, end = span
    return signal.time_ms[start : end + 1], signal.metric_accel_g[start : end + 1], span
