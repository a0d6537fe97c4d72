"""
Core data structures for drop-test analysis.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class RawSample:
    """파싱된 원본 샘플 1개 (ms, 채널 단위 가속도 - 보통 G)"""

    time_ms: float
    accel: float


@dataclass(frozen=True)
class RawSeries:
    """
    Raw (time, acceleration) channel as delivered by the ingestion layer.
    Columnar so the filter bank can work on whole arrays.
    """

    time_ms: np.ndarray
    accel_g: np.ndarray

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[float, float]]) -> "RawSeries":
        data = np.asarray(list(pairs), dtype=float)
        if data.size == 0:
            return cls(time_ms=np.empty(0), accel_g=np.empty(0))
        return cls(time_ms=data[:, 0].copy(), accel_g=data[:, 1].copy())

    @classmethod
    def from_samples(cls, samples: Iterable[RawSample]) -> "RawSeries":
        return cls.from_pairs((s.time_ms, s.accel) for s in samples)

    def __len__(self) -> int:
        return len(self.time_ms)


@dataclass
class ProcessedSignal:
    """
    처리된 낙하 시험 신호 컨테이너.
    이 객체 하나만 있으면 어떤 분석기(Metric)든 계산이 가능합니다.

    Derived series are present only when they were computed; a failed or
    disabled filter leaves its key out of `series` (absent, not zero).
    """

    time_ms: np.ndarray  # 시간 (ms), origin 기준 재정렬 -> time_ms[0] == 0
    raw_accel_g: np.ndarray  # 원본 가속도 (G)
    sample_rate_hz: float  # 샘플링 레이트 (Hz)
    origin_ms: float = 0.0  # 원본 시간축 기준 origin
    resampled: bool = False
    series: Dict[str, np.ndarray] = field(default_factory=dict)
    primary: Optional[str] = None  # filtered_accel_g 로 쓰이는 필터 이름
    jerk: Optional[np.ndarray] = None  # G/s
    failures: Dict[str, str] = field(default_factory=dict)
    deviations: List[str] = field(default_factory=list)

    @property
    def dt(self) -> float:
        """Time step (seconds)"""
        return 1.0 / self.sample_rate_hz

    @property
    def filtered_accel_g(self) -> Optional[np.ndarray]:
        if self.primary is None:
            return None
        return self.series.get(self.primary)

    @property
    def metric_accel_g(self) -> np.ndarray:
        """Series the injury metrics run on: primary filtered output, else raw."""
        filtered = self.filtered_accel_g
        return filtered if filtered is not None else self.raw_accel_g

    def __len__(self) -> int:
        return len(self.time_ms)

    def to_records(self) -> List[Dict[str, Any]]:
        """One dict per grid tick for charting. Missing series come out as None."""
        filtered = self.filtered_accel_g
        records = []
        for i in range(len(self.time_ms)):
            rec = {
                "time_ms": float(self.time_ms[i]),
                "accel_raw": float(self.raw_accel_g[i]),
                "accel_filtered": float(filtered[i]) if filtered is not None else None,
                "jerk": float(self.jerk[i]) if self.jerk is not None else None,
            }
            for name, values in self.series.items():
                rec[name] = float(values[i])
            records.append(rec)
        return records


@dataclass(frozen=True)
class ImpactWindow:
    """Contiguous index range into a sample array (start <= peak <= end)."""

    start_idx: int
    end_idx: int
    peak_idx: int
    start_time_ms: float
    end_time_ms: float
    peak_accel: float

    @property
    def duration_ms(self) -> float:
        return self.end_time_ms - self.start_time_ms


@dataclass(frozen=True)
class TimeRange:
    """{minMs, maxMs} range used for zoom requests and metric scoping."""

    min_ms: float
    max_ms: float

    @property
    def span_ms(self) -> float:
        return self.max_ms - self.min_ms

    def is_valid(self) -> bool:
        return bool(np.isfinite(self.min_ms) and np.isfinite(self.max_ms)) and self.max_ms > self.min_ms
