from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple

import numpy as np

from spectra_stack.engine.units import XUnitsKind, YUnitsKind


def _frozen_array(values) -> np.ndarray:
    arr = np.array(values, dtype=float, ndmin=1)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class SpectrumSignal:
    x: np.ndarray                   # wavenumber (cm^-1), ascending
    y: np.ndarray                   # transmittance or absorbance, index-aligned with x
    x_units: XUnitsKind = XUnitsKind.WAVENUMBER
    y_units: YUnitsKind = YUnitsKind.TRANSMITTANCE
    title: str = "Spectrum"
    meta: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        x = _frozen_array(self.x)
        y = _frozen_array(self.y)
        if x.size != y.size:
            raise ValueError(f"x and y differ in length ({x.size} != {y.size})")
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)

    def __len__(self) -> int:
        return int(self.x.size)

    @property
    def min_wavenumber(self) -> float:
        return float(self.x[0])

    @property
    def max_wavenumber(self) -> float:
        return float(self.x[-1])


@dataclass(frozen=True)
class DisplayRange:
    min_x: float
    max_x: float
    min_y: float
    max_y: float


@dataclass(frozen=True)
class PlotRect:
    x: float
    y: float
    width: float
    height: float


class SvgPoint(NamedTuple):
    x: float
    y: float


class ExtremumPoint(NamedTuple):
    wavenumber: float
    value: float
