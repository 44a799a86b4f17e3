import numpy as np
import pytest

from spectra_stack.engine.display import (
    DisplaySeries,
    apply_scale_y,
    compute_display_range,
    nice_ticks,
    normalize_y,
    pick_extrema,
    prepare_display_series,
    wavenumber_grid,
    wavenumber_ticks,
)
from spectra_stack.engine.spectrum_model import SpectrumSignal
from spectra_stack.engine.units import YUnitsKind


def test_wavenumber_grid():
    grid = wavenumber_grid()
    assert grid.size == 800
    assert grid[0] == 500 and grid[-1] == 4000
    assert wavenumber_grid(1000, 2000, 1).size == 2


def test_nice_ticks():
    assert nice_ticks(0, 1, 6) == pytest.approx([0, 0.2, 0.4, 0.6, 0.8, 1.0])
    assert nice_ticks(0.13, 0.87, 6) == pytest.approx([0.2, 0.4, 0.6, 0.8])
    assert nice_ticks(float("nan"), 1) == []


def test_wavenumber_ticks():
    majors, minors = wavenumber_ticks(500, 1200)
    assert majors == [500, 1000]
    assert minors == [600, 700, 800, 900, 1100, 1200]


def test_normalize_y():
    np.testing.assert_allclose(normalize_y([2, 4, 6]), [0, 0.5, 1])
    np.testing.assert_allclose(normalize_y([3, 3]), [0, 0])
    assert normalize_y([]).size == 0


def test_apply_scale_y():
    np.testing.assert_allclose(apply_scale_y([1.0, 0.8], 2.0, "transmittance"), [1.0, 0.6])
    np.testing.assert_allclose(apply_scale_y([0.1, 0.4], 2.0, YUnitsKind.ABSORBANCE), [0.2, 0.8])
    y = np.array([0.5])
    out = apply_scale_y(y, None, "absorbance")
    out[0] = 9
    assert y[0] == 0.5


def test_prepare_display_series_converts_units():
    signal = SpectrumSignal(x=[1000, 2000], y=[0.1, 1.0])
    series = prepare_display_series(signal, "absorbance")
    assert series.units is YUnitsKind.ABSORBANCE
    np.testing.assert_allclose(series.y, [1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(signal.y, [0.1, 1.0])


def test_compute_display_range_headroom_and_offset():
    a = DisplaySeries(x=np.array([1000.0, 2000.0]), y=np.array([0.2, 1.4]), units=YUnitsKind.TRANSMITTANCE)
    rng = compute_display_range([a])
    assert rng.min_x == 500 and rng.max_x == 4000
    assert rng.min_y == pytest.approx(0.2)
    assert rng.max_y == pytest.approx(1.42)

    clamped = compute_display_range([a], y_min_offset=5.0)
    assert clamped.min_y == pytest.approx(clamped.max_y - 0.01)

    empty = compute_display_range([])
    assert (empty.min_y, empty.max_y) == (0.0, 1.0)


def test_pick_extrema_follows_display_units():
    x = np.array([1000.0, 1100.0, 1200.0])
    transmittance = DisplaySeries(x=x, y=np.array([0.9, 0.2, 0.9]), units=YUnitsKind.TRANSMITTANCE)
    absorbance = DisplaySeries(x=x, y=np.array([0.1, 0.8, 0.1]), units=YUnitsKind.ABSORBANCE)
    assert [p.wavenumber for p in pick_extrema(transmittance, 4000, 500)] == [1100]
    assert [p.wavenumber for p in pick_extrema(absorbance, 500, 4000)] == [1100]


def test_grid_and_ticks_tolerate_bad_numbers():
    nan = float("nan")
    assert wavenumber_ticks(500, 4000, 0.0, 100.0) == ([], [])
    assert wavenumber_ticks(500, 4000, 500.0, -100.0) == ([], [])
    assert wavenumber_ticks(nan, 4000) == ([], [])
    assert wavenumber_ticks(500, float("inf")) == ([], [])
    assert wavenumber_grid(500, 4000, nan).size == 800
    assert wavenumber_grid(500, 4000, float("inf")).size == 800
