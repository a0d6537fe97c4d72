"""
Single drop-test analysis.
Loads one CSV (time, acceleration), runs the full pipeline and prints the
injury metrics. Optionally plots raw / filtered acceleration and jerk.

    python scripts/analyze_drop_test.py data/test_01.csv --cfc 60 --jerk --plot
"""

import argparse
import os

import matplotlib.pyplot as plt
import pandas as pd
from loguru import logger

from droptest.config import settings
from droptest.core import RawSeries, TimeRange
from droptest.errors import DropTestError
from droptest.filter_config import CfcConfig, FilterConfig, JerkConfig, PipelineConfig
from droptest.pipeline import InjuryMetrics, compute
from droptest.windows import first_hit_range, full_range


def setup_logging():
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    logger.add(
        os.path.join(settings.LOG_DIR, "droptest_{time:YYYYMMDD}.log"),
        level=settings.LOG_LEVEL,
        rotation="10 MB",
        encoding="utf-8",
    )


def load_csv(csv_path, time_unit="ms") -> RawSeries:
    """
    첫 두 개의 숫자 컬럼을 (시간, 가속도) 로 사용합니다.
    헤더가 없거나 단위 행이 섞여 있어도 숫자로 변환되지 않는 행은 버립니다.
    """
    df = pd.read_csv(csv_path, sep=None, engine="python")
    df = df.apply(pd.to_numeric, errors="coerce")
    df = df.dropna(axis=1, how="all").dropna(axis=0, how="any")
    if df.shape[1] < 2:
        raise ValueError(f"'{csv_path}' needs at least two numeric columns (time, accel)")

    time_values = df.iloc[:, 0].to_numpy(dtype=float)
    if time_unit == "s":
        time_values = time_values * 1000.0
    return RawSeries(time_ms=time_values, accel_g=df.iloc[:, 1].to_numpy(dtype=float))


def build_config(cfc=None, jerk=False) -> PipelineConfig:
    filters = FilterConfig(
        cfc=CfcConfig(enabled=cfc is not None, cfc=cfc or settings.DEFAULT_CFC_CLASS),
        jerk=JerkConfig(enabled=jerk),
    )
    return PipelineConfig(filters=filters)


def summarize(metrics: InjuryMetrics) -> dict:
    """InjuryMetrics -> 평평한 dict (표 출력 / CSV 저장용)"""
    row = {
        "source": metrics.source_series,
        "peak_g": metrics.peak_accel,
        "peak_time_ms": metrics.peak_time_ms,
        "duration_ms": metrics.total_duration_ms,
    }
    for g, ms in sorted(metrics.time_over_thresholds.items()):
        row[f"time_over_{g:g}g_ms"] = ms
    for w, score in sorted(metrics.hic.items()):
        row[f"hic{w:g}"] = score
    row["dri"] = metrics.dri.dri if metrics.dri else None
    if metrics.energy:
        row["impact_speed_mps"] = metrics.energy.impact_speed_mps
        row["rebound_speed_mps"] = metrics.energy.rebound_speed_mps
        row["cor"] = metrics.energy.cor
        row["energy_return_pct"] = metrics.energy.energy_return_percent
        row["bounce_height_cm"] = metrics.energy.bounce_height_cm
    row["exceeds_limits"] = metrics.exceeds_limits
    return row


def plot_signal(sig, zoom: TimeRange, title: str):
    rows = 2 if sig.jerk is not None else 1
    fig, axs = plt.subplots(rows, 1, figsize=(10, 4 * rows), sharex=True, squeeze=False)
    axs = axs[:, 0]

    axs[0].plot(sig.time_ms, sig.raw_accel_g, label="Raw", color="lightgray")
    if sig.filtered_accel_g is not None:
        axs[0].plot(sig.time_ms, sig.filtered_accel_g, label=sig.primary, color="red", linewidth=2)
    axs[0].set_ylabel("Acceleration [G]")
    axs[0].set_title(title)
    axs[0].legend()
    axs[0].grid(True)

    if sig.jerk is not None:
        axs[1].plot(sig.time_ms, sig.jerk, color="blue")
        axs[1].set_ylabel("Jerk [G/s]")
        axs[1].grid(True)

    axs[-1].set_xlabel("Time [ms]")
    axs[-1].set_xlim(zoom.min_ms, zoom.max_ms)
    plt.tight_layout()
    plt.show()


def main():
    parser = argparse.ArgumentParser(description="Analyze a single drop-test CSV")
    parser.add_argument("csv_path", help="CSV with time and acceleration columns")
    parser.add_argument("--time-unit", choices=["ms", "s"], default="ms")
    parser.add_argument("--cfc", type=float, default=None, help="CFC class (e.g. 60); raw if omitted")
    parser.add_argument("--jerk", action="store_true", help="Compute jerk (SG derivative)")
    parser.add_argument("--first-hit", action="store_true", help="Scope metrics to the first impact")
    parser.add_argument("--plot", action="store_true")
    args = parser.parse_args()

    setup_logging()
    print(f"[*] Loading {args.csv_path}...")
    raw = load_csv(args.csv_path, args.time_unit)
    print(f"[*] {len(raw)} samples loaded")

    config = build_config(args.cfc, args.jerk)
    sig, metrics = compute(raw, config)
    zoom = full_range(sig)
    try:
        zoom = first_hit_range(sig)
    except DropTestError as e:
        logger.warning(f"First hit not found ({e}); using full range")
    if args.first_hit:
        sig, metrics = compute(raw, config, window=zoom)

    print(f"[*] Sample rate: {sig.sample_rate_hz:.1f} Hz, origin at {sig.origin_ms:.1f} ms")
    for name, message in sig.failures.items():
        print(f"[!] Filter {name} failed: {message}")
    for note in sig.deviations:
        print(f"[!] {note}")

    print("\n=== Injury Metrics ===")
    for k, v in summarize(metrics).items():
        print(f"  - {k}: {v}")
    for check in metrics.limit_checks:
        status = "EXCEEDED" if check.exceeded else "ok"
        print(f"  - {check.threshold_g:g} G for {check.measured_ms:.2f} ms (limit {check.max_ms:g} ms): {status}")
    for name, message in metrics.errors.items():
        print(f"[!] Metric {name} failed: {message}")

    if args.plot:
        plot_signal(sig, zoom, os.path.basename(args.csv_path))


if __name__ == "__main__":
    main()
