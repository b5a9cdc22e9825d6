# agroclima_match/explain/charts.py
from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from ..schemas.inputs import Crop
from ..schemas.outputs import ErrorEntry

logger = logging.getLogger(__name__)

CROP_CONDITIONS = "crop-conditions"
K_VALUES = "k-values"
CHART_KINDS = (CROP_CONDITIONS, K_VALUES)

VARIABLE_COLORS: Dict[str, str] = {
    "temperature_2m_max": "#ff6384",
    "temperature_2m_min": "#36a2eb",
    "soil_moisture_0_to_10cm_mean": "#4bc0c0",
    "precipitation_sum": "#9966ff",
    "relative_humidity_2m_mean": "#ff9f40",
    "wind_speed_10m_mean": "#ffcd56",
}

FIGSIZE = (8, 6)  # 800x600 at dpi=100


@dataclass(frozen=True)
class ChartSeries:
    label: str
    data: List[Optional[float]]
    color: str = "#4bc0c0"


@dataclass(frozen=True)
class ChartSpec:
    chart_type: str  # line | radar | bar
    title: str
    labels: List[str]
    series: List[ChartSeries] = field(default_factory=list)
    x_title: str = ""
    y_title: str = ""
    r_max: Optional[float] = None


# =============================================================================
# SPECS
# =============================================================================

def build_chart_spec(kind: str, crop: Crop) -> ChartSpec:
    if kind == CROP_CONDITIONS:
        days = list(crop.daily_weather or ())
        labels = [d.date.strftime("%Y-%m-%d") for d in days]
        series = [
            ChartSeries(label=var, data=[d.value(var) for d in days], color=color)
            for var, color in VARIABLE_COLORS.items()
            if any(d.has(var) for d in days)
        ]
        return ChartSpec(
            chart_type="line",
            title=f"{crop.name} ({crop.variety}, {crop.region}) Weather Conditions",
            labels=labels,
            series=series,
            x_title="Date",
            y_title="Value",
        )

    if kind == K_VALUES:
        k_values = {k: v for k, v in (crop.k_values or {}).items() if v is not None}
        labels = list(k_values.keys())
        data = [float(v) for v in k_values.values()]
        return ChartSpec(
            chart_type="radar",
            title=f"{crop.name} ({crop.variety}) K-Value Distribution",
            labels=labels,
            series=[ChartSeries(label="K Values", data=data)],
            r_max=max(data) * 1.1 if data else None,
        )

    return ChartSpec(
        chart_type="bar",
        title="No valid visualization type",
        labels=["No valid visualization type"],
        series=[ChartSeries(label="Error", data=[0.0], color="#ff6384")],
    )


# =============================================================================
# RENDER
# =============================================================================

def render_chart(spec: ChartSpec) -> bytes:
    """ChartSpec -> PNG bytes."""
    if spec.chart_type == "radar":
        fig = plt.figure(figsize=FIGSIZE)
        ax = fig.add_subplot(111, polar=True)
        n = len(spec.labels)
        if n:
            angles = [2 * math.pi * i / n for i in range(n)]
            for s in spec.series:
                values = [0.0 if v is None else v for v in s.data]
                ax.plot(angles + angles[:1], values + values[:1], color=s.color, linewidth=2, label=s.label)
                ax.fill(angles + angles[:1], values + values[:1], color=s.color, alpha=0.2)
            ax.set_xticks(angles)
            ax.set_xticklabels(spec.labels, fontsize=8)
            if spec.r_max:
                ax.set_ylim(0, spec.r_max)
    else:
        fig, ax = plt.subplots(figsize=FIGSIZE)
        if spec.chart_type == "line":
            x = list(range(len(spec.labels)))
            for s in spec.series:
                values = [math.nan if v is None else v for v in s.data]
                ax.plot(x, values, color=s.color, linewidth=2, marker="o", markersize=1, label=s.label)
            step = max(1, len(x) // 10)
            ax.set_xticks(x[::step])
            ax.set_xticklabels(spec.labels[::step], rotation=45, ha="right")
        else:
            for s in spec.series:
                ax.bar(spec.labels, s.data, color=s.color, label=s.label)
        ax.set_xlabel(spec.x_title)
        ax.set_ylabel(spec.y_title)

    ax.set_title(spec.title, fontsize=14)
    if spec.series:
        ax.legend(loc="upper left", fontsize=8)

    buf = io.BytesIO()
    try:
        fig.savefig(buf, format="png", bbox_inches="tight", facecolor="white")
    finally:
        plt.close(fig)
    return buf.getvalue()


def chart_filename(crop_name: str, kind: str, stamp: Optional[str] = None) -> str:
    stamp = stamp or datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return f"{'-'.join(crop_name.split())}_{kind}_{stamp}.png"


def _missing_data(kind: str, crop: Crop) -> bool:
    if kind == CROP_CONDITIONS:
        return not crop.has_weather
    if kind == K_VALUES:
        return not crop.k_values
    return False


def save_crop_charts(
    crops: Mapping[str, Crop],
    out_dir: Path | str,
    kind: str,
    renderer: Callable[[ChartSpec], bytes] = render_chart,
) -> Tuple[List[Dict[str, str]], List[ErrorEntry]]:
    """
    Renders one chart per crop into out_dir/kind/. Returns the written files
    and the per-crop errors (missing data, render failures).
    """
    type_dir = Path(out_dir) / kind
    type_dir.mkdir(parents=True, exist_ok=True)

    written: List[Dict[str, str]] = []
    errors: List[ErrorEntry] = []
    for name, crop in crops.items():
        if _missing_data(kind, crop):
            errors.append(ErrorEntry(message=f"Missing data for {kind} visualization", crop=name))
            continue

        try:
            image = renderer(build_chart_spec(kind, crop))
            path = type_dir / chart_filename(name, kind)
            path.write_bytes(image)
        except Exception as e:
            logger.error("[%s] chart %s failed: %s", name, kind, e)
            errors.append(ErrorEntry(message=f"Error generating visualization: {e}", crop=name))
            continue

        written.append({"crop": name, "type": kind, "path": str(path)})

    return written, errors
