"""
Filter configuration models (Pydantic v2).
Each filter kind carries its own typed parameter set, tagged by `kind`.
Values are range-checked here; window sizes are sanitized again against
the actual series length right before use.
"""

from typing import Annotated, Any, Dict, Iterable, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from droptest.config import settings


class _FilterBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False


class ButterworthConfig(_FilterBase):
    kind: Literal["butterworth"] = "butterworth"
    cutoff_hz: float = Field(50.0, gt=0)
    order: int = Field(4, ge=1, le=8)
    zero_phase: bool = True


class BandStopConfig(_FilterBase):
    kind: Literal["band_stop"] = "band_stop"
    center_hz: float = Field(30.0, gt=0)
    bandwidth_hz: float = Field(10.0, gt=0)
    order: int = Field(2, ge=1, le=8)
    zero_phase: bool = True


class SavitzkyGolayConfig(_FilterBase):
    kind: Literal["savitzky_golay"] = "savitzky_golay"
    window_size: float = 17
    polynomial: float = 3
    # 링잉 주파수 기반 자동 윈도우 (spectrum.analyze_impact 추천값 사용)
    auto_window: bool = False


class MovingAverageConfig(_FilterBase):
    kind: Literal["moving_average"] = "moving_average"
    window_size: float = 9


class CfcConfig(_FilterBase):
    kind: Literal["cfc"] = "cfc"
    cfc: float = Field(default_factory=lambda: float(settings.DEFAULT_CFC_CLASS), gt=0)


class JerkConfig(_FilterBase):
    kind: Literal["jerk"] = "jerk"
    window_size: float = 15
    polynomial: float = 3


AccelFilter = Annotated[
    Union[ButterworthConfig, BandStopConfig, SavitzkyGolayConfig, MovingAverageConfig, CfcConfig],
    Field(discriminator="kind"),
]

_ACCEL_FILTER_ADAPTER = TypeAdapter(AccelFilter)

FilterName = Literal["cfc", "butterworth", "savitzky_golay", "moving_average", "band_stop"]

# primary 가 지정되지 않았을 때의 우선순위
PRIMARY_PRIORITY = ("cfc", "butterworth", "savitzky_golay", "moving_average", "band_stop")


class FilterConfig(BaseModel):
    """
    Named set of filter descriptors.
    `primary` picks which enabled filter becomes the filtered acceleration
    (and the jerk input); unset means the first enabled one in priority order.
    """

    model_config = ConfigDict(extra="forbid")

    cfc: CfcConfig = Field(default_factory=CfcConfig)
    butterworth: ButterworthConfig = Field(default_factory=ButterworthConfig)
    savitzky_golay: SavitzkyGolayConfig = Field(default_factory=SavitzkyGolayConfig)
    moving_average: MovingAverageConfig = Field(default_factory=MovingAverageConfig)
    band_stop: BandStopConfig = Field(default_factory=BandStopConfig)
    jerk: JerkConfig = Field(default_factory=JerkConfig)
    primary: Optional[FilterName] = None

    @classmethod
    def from_descriptors(
        cls, descriptors: Iterable[Mapping[str, Any]], primary: Optional[str] = None, **extra
    ) -> "FilterConfig":
        """
        Build from loose `{kind, enabled, ...}` records (e.g. UI state).
        Unknown kinds or bad parameters raise pydantic.ValidationError.
        """
        fields: Dict[str, Any] = dict(extra)
        for raw in descriptors:
            descriptor = _ACCEL_FILTER_ADAPTER.validate_python(dict(raw))
            fields[descriptor.kind] = descriptor
        return cls(primary=primary, **fields)

    def accel_filters(self) -> Dict[str, AccelFilter]:
        return {name: getattr(self, name) for name in PRIMARY_PRIORITY}

    def enabled_filters(self) -> Dict[str, AccelFilter]:
        return {name: f for name, f in self.accel_filters().items() if f.enabled}

    def primary_name(self) -> Optional[str]:
        enabled = self.enabled_filters()
        if self.primary is not None:
            return self.primary if self.primary in enabled else None
        for name in PRIMARY_PRIORITY:
            if name in enabled:
                return name
        return None


class PipelineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    filters: FilterConfig = Field(default_factory=FilterConfig)
    resample: bool = True
    detect_origin: bool = True
    hic_windows_ms: Tuple[float, ...] = Field(default_factory=lambda: tuple(settings.HIC_WINDOWS_MS))
    thresholds_g: Tuple[float, ...] = Field(default_factory=lambda: tuple(settings.TIME_OVER_THRESHOLDS_G))


DEFAULT_FILTER_CONFIG = FilterConfig()
