"""Unit handling for infrared abscissa and ordinate channels.

JCAMP-DX files describe their axes with free-text ``##XUNITS=`` and
``##YUNITS=`` labels.  The helpers here resolve those labels to a small set
of canonical kinds and convert the data so downstream geometry always works
in wavenumbers (cm^-1) with a known Y semantic.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Sequence, Union

import numpy as np

__all__ = [
    "XUnitsKind",
    "YUnitsKind",
    "classify_x_units",
    "classify_y_units",
    "match_y_units",
    "to_wavenumbers",
    "absorbance_to_transmittance",
    "transmittance_to_absorbance",
    "get_display_y",
]

ArrayLike = Union[float, Sequence[float], np.ndarray]


class XUnitsKind(str, Enum):
    WAVENUMBER = "wavenumber"
    WAVELENGTH_UM = "micrometers"
    WAVELENGTH_NM = "nanometers"
    UNKNOWN = "unknown"


class YUnitsKind(str, Enum):
    TRANSMITTANCE = "transmittance"
    ABSORBANCE = "absorbance"


XUNITS_WAVENUMBER = ("1/CM", "CM^-1", "CM-1", "1/CM-1", "WAVENUMBERS", "WAVENUMBER")
XUNITS_MICROMETERS = ("MICROMETERS", "MICROMETER", "MICRONS", "MICRON", "UM")
XUNITS_NANOMETERS = ("NANOMETERS", "NANOMETER", "NM")
YUNITS_ABSORBANCE = ("ABSORBANCE", "ABS")
YUNITS_TRANSMITTANCE = (
    "TRANSMITTANCE",
    "TRANSMISSION",
    "% TRANSMITTANCE",
    "% TRANSMISSION",
    "%TRANSMITTANCE",
    "%TRANSMISSION",
    "%T",
)

MIN_TRANSMITTANCE = 1e-10


def _normalise_label(value: object | None) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    # micro sign and Greek mu both spell "um"
    return str(value).strip().replace("\u00b5", "u").replace("\u03bc", "u").upper()


def _matches_one_of(label: str, values: Iterable[str]) -> bool:
    if not label:
        return False
    return any(label == v or label.startswith(v + " ") for v in values)


def classify_x_units(raw: object | None) -> XUnitsKind:
    """Resolve an ``XUNITS`` label.

    Empty labels default to wavenumbers so unlabelled IR files plot sanely;
    a non-empty label that matches nothing is reported as ``UNKNOWN`` and
    callers keep the raw values.
    """

    if isinstance(raw, XUnitsKind):
        return raw
    label = _normalise_label(raw)
    if not label or _matches_one_of(label, XUNITS_WAVENUMBER):
        return XUnitsKind.WAVENUMBER
    if _matches_one_of(label, XUNITS_MICROMETERS):
        return XUnitsKind.WAVELENGTH_UM
    if _matches_one_of(label, XUNITS_NANOMETERS):
        return XUnitsKind.WAVELENGTH_NM
    return XUnitsKind.UNKNOWN


def match_y_units(raw: object | None) -> Optional[YUnitsKind]:
    """Return the recognised Y kind for ``raw`` or ``None`` when unmatched."""

    if isinstance(raw, YUnitsKind):
        return raw
    label = _normalise_label(raw)
    if _matches_one_of(label, YUNITS_ABSORBANCE):
        return YUnitsKind.ABSORBANCE
    if _matches_one_of(label, YUNITS_TRANSMITTANCE):
        return YUnitsKind.TRANSMITTANCE
    return None


def classify_y_units(raw: object | None) -> YUnitsKind:
    return match_y_units(raw) or YUnitsKind.TRANSMITTANCE


def _finish(result: np.ndarray, scalar: bool):
    if scalar:
        return float(result)
    return result


def to_wavenumbers(x: ArrayLike, kind: object | None) -> np.ndarray:
    """Convert abscissa values to wavenumbers (cm^-1).

    Wavelengths that are zero or negative map to ``0`` rather than raising;
    ``UNKNOWN`` units pass through unchanged.
    """

    arr = np.array(x, dtype=float, ndmin=1)
    resolved = classify_x_units(kind)
    if resolved is XUnitsKind.WAVELENGTH_UM:
        scale = 1e4
    elif resolved is XUnitsKind.WAVELENGTH_NM:
        scale = 1e7
    else:
        return arr
    out = np.zeros_like(arr)
    positive = arr > 0
    out[positive] = scale / arr[positive]
    return out


def absorbance_to_transmittance(a: ArrayLike):
    """Return transmittance (0-1) for absorbance ``a``; ``a <= 0`` maps to 1."""

    scalar = np.ndim(a) == 0
    arr = np.asarray(a, dtype=float)
    with np.errstate(over="ignore", under="ignore", invalid="ignore"):
        result = np.where(arr <= 0, 1.0, np.power(10.0, -arr))
    return _finish(result, scalar)


def transmittance_to_absorbance(t: ArrayLike):
    """Return absorbance for transmittance ``t``.

    Values above 1 are read as percent transmittance.  The fraction is
    clamped to ``MIN_TRANSMITTANCE`` before ``-log10`` so opaque samples
    give a large finite absorbance.
    """

    scalar = np.ndim(t) == 0
    arr = np.asarray(t, dtype=float)
    with np.errstate(invalid="ignore"):
        fraction = np.where(arr > 1, arr / 100.0, arr)
        fraction = np.maximum(fraction, MIN_TRANSMITTANCE)
        result = -np.log10(fraction)
    return _finish(result, scalar)


def get_display_y(y: ArrayLike, data_units: object | None, display_units: object | None) -> np.ndarray:
    """Return ``y`` expressed in ``display_units``.

    The input is never modified; matching semantics return a copy.
    """

    arr = np.array(y, dtype=float, ndmin=1)
    if arr.size == 0:
        return arr
    source = classify_y_units(data_units)
    target = classify_y_units(display_units)
    if source is target:
        return arr
    if source is YUnitsKind.ABSORBANCE:
        return absorbance_to_transmittance(arr)
    return transmittance_to_absorbance(arr)
