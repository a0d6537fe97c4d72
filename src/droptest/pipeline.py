"""
Analysis Pipeline Manager.
compute(raw, config) -> (ProcessedSignal, InjuryMetrics), recomputed from
scratch on every configuration change.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from droptest.core import ProcessedSignal, RawSeries, TimeRange
from droptest.errors import DropTestError
from droptest.filter_config import PipelineConfig
from droptest.metrics.base import MetricStrategy
from droptest.metrics.dri import DRIMetric, DRIResult
from droptest.metrics.energy import ImpactEnergyMetric, ImpactEnergyResult
from droptest.metrics.hic import HICMetric
from droptest.metrics.kinematics import BasicKinematics, LimitCheck
from droptest.processing import SignalProcessor
from droptest.windows import full_range


class InjuryMetrics(BaseModel):
    peak_accel: Optional[float] = None
    peak_time_ms: Optional[float] = None
    total_duration_ms: Optional[float] = None
    time_over_thresholds: Dict[float, float] = Field(default_factory=dict)  # G -> ms
    hic: Dict[float, float] = Field(default_factory=dict)  # window ms -> score
    dri: Optional[DRIResult] = None
    energy: Optional[ImpactEnergyResult] = None
    limit_checks: List[LimitCheck] = Field(default_factory=list)

    # Diagnostics
    window_min_ms: float
    window_max_ms: float
    source_series: str  # 메트릭 계산에 사용된 시리즈 ("raw" 또는 필터 이름)
    sample_count: int
    errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def exceeds_limits(self) -> bool:
        return any(c.exceeded for c in self.limit_checks)


class DropTestPipeline:
    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self.metrics: List[MetricStrategy] = []

    def add_metric(self, metric: MetricStrategy):
        self.metrics.append(metric)
        return self

    @classmethod
    def default(cls, config: Optional[PipelineConfig] = None) -> "DropTestPipeline":
        pipeline = cls(config)
        pipeline.add_metric(BasicKinematics(thresholds_g=pipeline.config.thresholds_g))
        pipeline.add_metric(HICMetric(windows_ms=pipeline.config.hic_windows_ms))
        pipeline.add_metric(DRIMetric())
        pipeline.add_metric(ImpactEnergyMetric())
        return pipeline

    def process(self, raw: RawSeries) -> ProcessedSignal:
        return SignalProcessor.process(raw, self.config)

    def evaluate(self, signal: ProcessedSignal, window: Optional[TimeRange] = None) -> InjuryMetrics:
        """
        등록된 메트릭을 계산합니다. 메트릭 하나가 실패해도 나머지는 계속 계산됩니다.
        """
        window = window or full_range(signal)

        results = {}
        errors: Dict[str, str] = {}
        for metric in self.metrics:
            try:
                results.update(metric.calculate(signal, window))
            except DropTestError as e:
                logger.error(f"Metric {metric.name} failed: {e}")
                errors[metric.name] = str(e)

        inside = (signal.time_ms >= window.min_ms) & (signal.time_ms <= window.max_ms)
        return InjuryMetrics(
            **results,
            window_min_ms=window.min_ms,
            window_max_ms=window.max_ms,
            source_series=signal.primary or "raw",
            sample_count=int(np.count_nonzero(inside)),
            errors=errors,
        )

    def run(self, raw: RawSeries, window: Optional[TimeRange] = None) -> Tuple[ProcessedSignal, InjuryMetrics]:
        """데이터를 받아 신호 처리 후 등록된 메트릭을 계산합니다."""
        signal = self.process(raw)
        return signal, self.evaluate(signal, window)


def compute(
    raw: RawSeries,
    config: Optional[PipelineConfig] = None,
    window: Optional[TimeRange] = None,
) -> Tuple[ProcessedSignal, InjuryMetrics]:
    """Pure entry point for hosts: the whole series and metrics, nothing cached."""
    return DropTestPipeline.default(config).run(raw, window)
