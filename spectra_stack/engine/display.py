"""Preparing decoded spectra for an overlay plot.

Converts Y to the display semantic, applies per-spectrum scaling and
normalisation, derives the shared Y range and axis ticks, and picks band
positions in a wavenumber window.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from spectra_stack.engine.geometry import (
    WAVENUMBER_MAX,
    WAVENUMBER_MIN,
    find_local_maxima,
    find_local_minima,
)
from spectra_stack.engine.spectrum_model import DisplayRange, ExtremumPoint, SpectrumSignal
from spectra_stack.engine.units import YUnitsKind, classify_y_units, get_display_y

GRID_POINTS = 800
MAJOR_TICK_STEP = 500.0
MINOR_TICK_STEP = 100.0
HEADROOM_MIN = 0.02
HEADROOM_FRACTION = 0.05
MIN_Y_SPAN = 0.01


@dataclass(frozen=True, eq=False)
class DisplaySeries:
    x: np.ndarray
    y: np.ndarray
    units: YUnitsKind


def wavenumber_grid(
    w_min: float = WAVENUMBER_MIN,
    w_max: float = WAVENUMBER_MAX,
    points: int = GRID_POINTS,
) -> np.ndarray:
    """Evenly spaced rendering grid, independent of the data's own sampling."""

    count = int(points) if math.isfinite(points) else GRID_POINTS
    return np.linspace(float(w_min), float(w_max), max(count, 2))


def nice_ticks(minimum: float, maximum: float, max_ticks: int = 6) -> List[float]:
    """Round tick values (1, 2 or 5 times a power of ten) covering the range."""

    if not (math.isfinite(minimum) and math.isfinite(maximum)):
        return []
    span = (maximum - minimum) or 1.0
    raw_step = abs(span) / max(max_ticks - 1, 1)
    magnitude = 10 ** math.floor(math.log10(raw_step))
    norm = raw_step / magnitude
    if norm <= 1:
        factor = 1
    elif norm <= 2:
        factor = 2
    elif norm <= 5:
        factor = 5
    else:
        factor = 10
    step = factor * magnitude
    start = math.ceil(minimum / step) * step
    count = int(math.floor((maximum + step * 0.001 - start) / step)) + 1
    return [start + i * step for i in range(max(count, 0))]


def wavenumber_ticks(
    w_min: float,
    w_max: float,
    major_step: float = MAJOR_TICK_STEP,
    minor_step: float = MINOR_TICK_STEP,
) -> Tuple[List[float], List[float]]:
    """Major and minor ticks; minors skip positions already taken by a major."""

    if not all(math.isfinite(v) for v in (w_min, w_max, major_step, minor_step)):
        return [], []
    if major_step <= 0 or minor_step <= 0:
        return [], []
    eps = 1e-3
    majors = [
        float(w)
        for w in np.arange(math.ceil(w_min / major_step) * major_step, w_max + eps, major_step)
        if w >= w_min - eps
    ]
    minors = [
        float(w)
        for w in np.arange(math.ceil(w_min / minor_step) * minor_step, w_max + eps, minor_step)
        if w >= w_min - eps and abs(round(w / major_step) * major_step - w) > eps
    ]
    return majors, minors


def normalize_y(y: Sequence[float]) -> np.ndarray:
    arr = np.asarray(y, dtype=float)
    if arr.size == 0:
        return arr.copy()
    low = float(np.nanmin(arr))
    span = (float(np.nanmax(arr)) - low) or 1.0
    return (arr - low) / span


def apply_scale_y(y: Sequence[float], scale: Optional[float], display_units: object) -> np.ndarray:
    """Scale Y; transmittance scales the deviation from 1 so baselines stay aligned."""

    arr = np.asarray(y, dtype=float)
    factor = 1.0 if scale is None else float(scale)
    if factor == 1.0:
        return arr.copy()
    if classify_y_units(display_units) is YUnitsKind.TRANSMITTANCE:
        return 1.0 + (arr - 1.0) * factor
    return arr * factor


def prepare_display_series(
    signal: SpectrumSignal,
    display_units: object = YUnitsKind.TRANSMITTANCE,
    normalize: bool = False,
    scale: Optional[float] = None,
) -> DisplaySeries:
    units = classify_y_units(display_units)
    y = get_display_y(signal.y, signal.y_units, units)
    if normalize:
        y = normalize_y(y)
    return DisplaySeries(x=np.asarray(signal.x, dtype=float), y=apply_scale_y(y, scale, units), units=units)


def _with_headroom(max_y: float, normalize: bool) -> float:
    if not normalize and max_y > 1:
        return max_y + max(HEADROOM_MIN, (max_y - 1) * HEADROOM_FRACTION)
    return max_y


def compute_display_range(
    series: Iterable[DisplaySeries],
    w_min: float = WAVENUMBER_MIN,
    w_max: float = WAVENUMBER_MAX,
    normalize: bool = False,
    y_min_offset: float = 0.0,
) -> DisplayRange:
    """Shared Y range for stacked spectra.

    The top is at least 1 and gains headroom when transmittance overshoots
    1; ``y_min_offset`` raises the floor but never closer than
    ``MIN_Y_SPAN`` below the top.
    """

    values = [np.asarray(s.y, dtype=float) for s in series]
    values = [v[np.isfinite(v)] for v in values]
    values = [v for v in values if v.size]
    if values:
        stacked = np.concatenate(values)
        base_min = 0.0 if normalize else float(stacked.min())
        base_max = max(float(stacked.max()), 1.0)
    else:
        base_min, base_max = 0.0, 1.0
    top = _with_headroom(base_max, normalize)
    bottom = min(top - MIN_Y_SPAN, base_min + y_min_offset)
    return DisplayRange(min_x=float(w_min), max_x=float(w_max), min_y=bottom, max_y=top)


def pick_extrema(series: DisplaySeries, w_min: float, w_max: float) -> List[ExtremumPoint]:
    """Band positions: dips for transmittance, peaks for absorbance."""

    low, high = (w_min, w_max) if w_min <= w_max else (w_max, w_min)
    if series.units is YUnitsKind.ABSORBANCE:
        return find_local_maxima(series.x, series.y, low, high)
    return find_local_minima(series.x, series.y, low, high)
