"""Plot geometry for IR spectra.

IR plots run high wavenumber on the left.  With the piecewise ("broken")
axis the range above ``IR_BREAK`` occupies the left half of the plot and the
range below it the right half, whatever their wavenumber spans.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from spectra_stack.engine.spectrum_model import DisplayRange, ExtremumPoint, PlotRect, SvgPoint

__all__ = [
    "IR_BREAK",
    "WAVENUMBER_MIN",
    "WAVENUMBER_MAX",
    "wavenumber_to_norm_x",
    "norm_x_to_wavenumber",
    "data_to_svg_coords",
    "interpolate_at",
    "spectrum_to_path",
    "smooth_path_d",
    "find_local_minima",
    "find_local_maxima",
]

IR_BREAK = 2000.0
WAVENUMBER_MIN = 500.0
WAVENUMBER_MAX = 4000.0
PATH_TENSION = 1.0 / 6.0


def _ordered(min_x: float, max_x: float):
    return (max_x, min_x) if min_x > max_x else (min_x, max_x)


def _clip_unit(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


def _is_split(min_x: float, max_x: float, piecewise: bool, ir_break: float) -> bool:
    return piecewise and min_x < ir_break < max_x


def wavenumber_to_norm_x(
    w: float,
    min_x: float,
    max_x: float,
    piecewise: bool = True,
    ir_break: float = IR_BREAK,
) -> float:
    """Map wavenumber ``w`` to a horizontal position in [0, 1] (0 = left)."""

    min_x, max_x = _ordered(min_x, max_x)
    if not _is_split(min_x, max_x, piecewise, ir_break):
        span = max_x - min_x
        if span == 0:
            return 0.0 if w >= max_x else 1.0
        return _clip_unit(1.0 - (w - min_x) / span)
    if w >= ir_break:
        span = max_x - ir_break
        return _clip_unit(0.5 * (max_x - w) / span) if span else 0.0
    span = ir_break - min_x
    return _clip_unit(0.5 + 0.5 * (ir_break - w) / span) if span else 1.0


def norm_x_to_wavenumber(
    norm_x: float,
    min_x: float,
    max_x: float,
    piecewise: bool = True,
    ir_break: float = IR_BREAK,
) -> float:
    """Inverse of :func:`wavenumber_to_norm_x`; ``norm_x`` is clamped to [0, 1]."""

    min_x, max_x = _ordered(min_x, max_x)
    norm_x = _clip_unit(norm_x)
    if not _is_split(min_x, max_x, piecewise, ir_break):
        return float(min_x + (1.0 - norm_x) * (max_x - min_x))
    if norm_x <= 0.5:
        span = max_x - ir_break
        return float(max_x - 2.0 * norm_x * span)
    span = ir_break - min_x
    return float(ir_break - (norm_x - 0.5) * 2.0 * span)


def data_to_svg_coords(
    wx: float,
    wy: float,
    plot_rect: PlotRect,
    data_range: DisplayRange,
    piecewise: bool = True,
) -> SvgPoint:
    """Place a data point inside ``plot_rect``; larger ``wy`` is drawn higher."""

    norm_x = wavenumber_to_norm_x(wx, data_range.min_x, data_range.max_x, piecewise)
    range_y = (data_range.max_y - data_range.min_y) or 1.0
    norm_y = (wy - data_range.min_y) / range_y
    return SvgPoint(
        x=plot_rect.x + norm_x * plot_rect.width,
        y=plot_rect.y + (1.0 - norm_y) * plot_rect.height,
    )


def interpolate_at(x_arr: Sequence[float], y_arr: Sequence[float], target_x: float) -> float:
    """Linear interpolation on ascending ``x_arr``; never extrapolates."""

    xs = np.asarray(x_arr, dtype=float)
    ys = np.asarray(y_arr, dtype=float)
    if xs.size == 0:
        return float("nan")
    return float(np.interp(target_x, xs, ys))


def spectrum_to_path(
    data,
    grid_x: Sequence[float],
    plot_rect: PlotRect,
    data_range: DisplayRange,
    piecewise: bool = True,
) -> List[SvgPoint]:
    """Resample ``data`` (anything with ``x``/``y``) onto ``grid_x`` in plot space."""

    xs = np.asarray(data.x, dtype=float)
    ys = np.asarray(data.y, dtype=float)
    grid = np.asarray(grid_x, dtype=float)
    if xs.size == 0 or grid.size == 0:
        return []
    resampled = np.interp(grid, xs, ys)
    return [
        data_to_svg_coords(float(wx), float(wy), plot_rect, data_range, piecewise)
        for wx, wy in zip(grid, resampled)
    ]


def _fmt(value: float) -> str:
    return np.format_float_positional(float(value), precision=3, trim="-")


def smooth_path_d(points: Sequence[SvgPoint]) -> str:
    """SVG path ``d`` through ``points`` as Catmull-Rom cubic segments."""

    if not points:
        return ""
    first = points[0]
    commands = [f"M {_fmt(first.x)} {_fmt(first.y)}"]
    last_index = len(points) - 1
    for i in range(last_index):
        p0 = points[i - 1] if i > 0 else points[0]
        p1 = points[i]
        p2 = points[i + 1]
        p3 = points[i + 2] if i + 2 <= last_index else points[last_index]
        cp1x = p1.x + (p2.x - p0.x) * PATH_TENSION
        cp1y = p1.y + (p2.y - p0.y) * PATH_TENSION
        cp2x = p2.x - (p3.x - p1.x) * PATH_TENSION
        cp2y = p2.y - (p3.y - p1.y) * PATH_TENSION
        commands.append(
            f"C {_fmt(cp1x)} {_fmt(cp1y)}, {_fmt(cp2x)} {_fmt(cp2y)}, {_fmt(p2.x)} {_fmt(p2.y)}"
        )
    return " ".join(commands)


def _local_extrema(x_arr, y_arr, w_min: float, w_max: float, maxima: bool) -> List[ExtremumPoint]:
    xs = np.asarray(x_arr, dtype=float)
    ys = np.asarray(y_arr, dtype=float)
    if xs.size < 3 or ys.size != xs.size:
        return []
    centre = ys[1:-1]
    if maxima:
        mask = (centre >= ys[:-2]) & (centre >= ys[2:])
    else:
        mask = (centre <= ys[:-2]) & (centre <= ys[2:])
    inner_x = xs[1:-1]
    mask &= (inner_x >= w_min) & (inner_x <= w_max)
    return [ExtremumPoint(float(w), float(v)) for w, v in zip(inner_x[mask], centre[mask])]


def find_local_minima(x_arr, y_arr, w_min: float, w_max: float) -> List[ExtremumPoint]:
    """Interior points no higher than both neighbours, within ``[w_min, w_max]``.

    Transmittance bands are dips.  Plateaus report every interior point.
    """

    return _local_extrema(x_arr, y_arr, w_min, w_max, maxima=False)


def find_local_maxima(x_arr, y_arr, w_min: float, w_max: float) -> List[ExtremumPoint]:
    """Interior points no lower than both neighbours; absorbance bands are peaks."""

    return _local_extrema(x_arr, y_arr, w_min, w_max, maxima=True)
