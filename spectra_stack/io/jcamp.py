"""JCAMP-DX decoding into a :class:`SpectrumSignal`.

``decode`` splits the text into ordered header entries and the first data
table, decodes the table (AFFN, PAC or the ASDF SQZ/DIF/DUP forms), applies
``XFACTOR``/``YFACTOR``, converts the abscissa to wavenumbers and sorts the
points ascending.  Only a missing or empty table is an error; everything
else degrades to best-effort output with advisories attached.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from spectra_stack.engine.spectrum_model import SpectrumSignal
from spectra_stack.engine.units import (
    XUnitsKind,
    classify_x_units,
    classify_y_units,
    match_y_units,
    to_wavenumbers,
)
from spectra_stack.io.jcamp_asdf import (
    Encoding,
    RawPoints,
    decode_data_lines,
    format_affn_block,
    is_xpp,
    looks_like_plain_affn,
)
from spectra_stack.io.jcamp_header import (
    DATA_START_RE,
    RawHeaderEntry,
    header_values,
    scan_header,
)

__all__ = [
    "JCAMP_EXTENSIONS",
    "NoSpectralDataError",
    "Advisory",
    "JcampDecodeResult",
    "decode",
    "decode_data_block_to_affn",
    "read_jcamp",
    "iter_jcamp_files",
]

logger = logging.getLogger(__name__)

JCAMP_EXTENSIONS = (".jdx", ".jcamp", ".dx")
NUMBER_RE = re.compile(r"[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?")

AMBIGUOUS_ENCODING = "ambiguous_encoding"
UNSUPPORTED_UNITS = "unsupported_units"
MALFORMED_TOKENS = "malformed_tokens"
X_CHECKPOINT_DRIFT = "x_checkpoint_drift"
MISSING_DELTAX = "missing_deltax"
_DEBUG_ADVISORIES = {MALFORMED_TOKENS, X_CHECKPOINT_DRIFT}


class NoSpectralDataError(ValueError):
    """Raised when a file has no data table or the table yields no points."""

    def __init__(self, reason: str):
        super().__init__(f"No spectral data found in JCAMP-DX file: {reason}")
        self.reason = reason


class Advisory(NamedTuple):
    code: str
    message: str


@dataclass(frozen=True)
class JcampDecodeResult:
    signal: SpectrumSignal
    header_entries: Tuple[RawHeaderEntry, ...]
    headers: Dict[str, str]
    encoding: Encoding
    advisories: Tuple[Advisory, ...] = ()
    skipped_tokens: int = 0

    @property
    def min_wavenumber(self) -> float:
        return self.signal.min_wavenumber

    @property
    def max_wavenumber(self) -> float:
        return self.signal.max_wavenumber


class _DataTable(NamedTuple):
    label_line: str
    descriptor: str
    lines: List[str]


def _parse_numeric(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        match = NUMBER_RE.search(value)
        if match:
            try:
                return float(match.group(0))
            except ValueError:
                return None
    return None


def _parse_factor(headers: Dict[str, str], key: str) -> float:
    factor = _parse_numeric(headers.get(key))
    if factor is None or factor == 0 or not np.isfinite(factor):
        return 1.0
    return factor


def _parse_count(value: Optional[str]) -> Optional[int]:
    number = _parse_numeric(value)
    if number is None or not np.isfinite(number):
        return None
    return int(round(number))


def _locate_table(lines: Sequence[str], start: Optional[int]) -> Optional[_DataTable]:
    if start is None:
        return None
    label_line = lines[start]
    descriptor = label_line.split("=", 1)[1].strip() if "=" in label_line else ""
    body: List[str] = []
    for line in lines[start + 1 :]:
        if line.lstrip().startswith("##"):
            break
        body.append(line)
    return _DataTable(label_line, descriptor, body)


def _decode_table(table: _DataTable, headers: Dict[str, str]) -> RawPoints:
    return decode_data_lines(
        table.lines,
        table.descriptor,
        deltax=_parse_numeric(headers.get("DELTAX")),
        firstx=_parse_numeric(headers.get("FIRSTX")),
        lastx=_parse_numeric(headers.get("LASTX")),
        npoints=_parse_count(headers.get("NPOINTS")),
        xfactor=_parse_factor(headers, "XFACTOR"),
    )


def _advisories_for(raw: RawPoints, headers: Dict[str, str], x_kind: XUnitsKind) -> List[Advisory]:
    advisories: List[Advisory] = []
    if not raw.guess.confident:
        advisories.append(
            Advisory(
                AMBIGUOUS_ENCODING,
                f"Could not confirm the data compression scheme; decoded as {raw.guess.scheme.value}.",
            )
        )
    if x_kind is XUnitsKind.UNKNOWN:
        advisories.append(
            Advisory(UNSUPPORTED_UNITS, f"Unrecognised XUNITS {headers.get('XUNITS')!r}; X values left unconverted.")
        )
    y_label = headers.get("YUNITS", "").strip()
    if y_label and match_y_units(y_label) is None:
        advisories.append(
            Advisory(UNSUPPORTED_UNITS, f"Unrecognised YUNITS {y_label!r}; treated as transmittance.")
        )
    if raw.skipped_tokens:
        advisories.append(Advisory(MALFORMED_TOKENS, f"Skipped {raw.skipped_tokens} malformed token(s)."))
    if raw.drift_lines:
        advisories.append(
            Advisory(X_CHECKPOINT_DRIFT, f"{raw.drift_lines} line(s) start away from the expected X position.")
        )
    return advisories


def _sorted_unique(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Sort ascending by ``x``; where ``x`` repeats the last value read wins."""

    order = np.argsort(x, kind="stable")
    x_sorted = x[order]
    y_sorted = y[order]
    if x_sorted.size > 1:
        keep = np.append(x_sorted[1:] != x_sorted[:-1], True)
        x_sorted = x_sorted[keep]
        y_sorted = y_sorted[keep]
    return x_sorted, y_sorted


def decode(text: str) -> JcampDecodeResult:
    """Decode JCAMP-DX ``text`` into a signal plus its ordered header entries.

    Raises
    ------
    NoSpectralDataError
        If the data table is missing or no valid point can be recovered.
    """

    lines = text.splitlines()
    entries, start = scan_header(lines)
    headers = header_values(entries)
    table = _locate_table(lines, start)
    if table is None:
        raise NoSpectralDataError("no XYDATA, XYPOINTS, PEAK TABLE or DATA TABLE section")
    if not any(line.strip() for line in table.lines):
        raise NoSpectralDataError("data section is empty")

    raw = _decode_table(table, headers)
    x_kind = classify_x_units(headers.get("XUNITS"))
    advisories = _advisories_for(raw, headers, x_kind)
    if is_xpp(table.descriptor) and raw.step is None and raw.x:
        advisories.append(
            Advisory(
                MISSING_DELTAX,
                f"DELTAX could not be determined; kept one point per line and dropped {raw.dropped_points}.",
            )
        )
    for advisory in advisories:
        level = logging.DEBUG if advisory.code in _DEBUG_ADVISORIES else logging.WARNING
        logger.log(level, "%s", advisory.message)

    x = np.asarray(raw.x, dtype=float) * _parse_factor(headers, "XFACTOR")
    y = np.asarray(raw.y, dtype=float) * _parse_factor(headers, "YFACTOR")
    finite = np.isfinite(x) & np.isfinite(y)
    x, y = x[finite], y[finite]
    if x.size == 0:
        raise NoSpectralDataError("no valid numeric points in data section")

    x = to_wavenumbers(x, x_kind)
    x, y = _sorted_unique(x, y)
    signal = SpectrumSignal(
        x=x,
        y=y,
        x_units=x_kind,
        y_units=classify_y_units(headers.get("YUNITS")),
        title=headers.get("TITLE") or "Spectrum",
    )
    logger.debug(
        "Decoded %d points (%s) spanning %.4g-%.4g",
        len(signal),
        raw.guess.scheme.value,
        signal.min_wavenumber,
        signal.max_wavenumber,
    )
    return JcampDecodeResult(
        signal=signal,
        header_entries=entries,
        headers=headers,
        encoding=raw.guess.scheme,
        advisories=tuple(advisories),
        skipped_tokens=raw.skipped_tokens,
    )


def decode_data_block_to_affn(text: str) -> Optional[str]:
    """Re-expand a compressed data table as one ``X Y`` pair per line.

    Values stay in file units (before ``XFACTOR``/``YFACTOR``) and in file
    order so the original header still applies.  Returns ``None`` when the
    table already reads as plain AFFN, cannot be decoded, or is an X++ table
    whose DELTAX cannot be resolved.
    """

    lines = text.splitlines()
    entries, start = scan_header(lines)
    if start is None:
        return None
    if looks_like_plain_affn("\n".join(lines[start:])):
        return None
    table = _locate_table(lines, start)
    raw = _decode_table(table, header_values(entries))
    if not raw.x:
        return None
    if raw.dropped_points:
        logger.warning("Cannot expand data table: DELTAX unresolved, %d ordinate(s) would be lost", raw.dropped_points)
        return None
    label = DATA_START_RE.match(table.label_line).group(1).upper()
    label = re.sub(r"\s+", " ", label)
    return format_affn_block(raw.x, raw.y, label=label)


def read_jcamp(path: str | Path) -> JcampDecodeResult:
    path = Path(path)
    text = path.read_text(encoding="utf-8", errors="replace")
    return decode(text)


def iter_jcamp_files(root: str | Path, extensions: Iterable[str] = JCAMP_EXTENSIONS) -> Iterator[Path]:
    suffixes = {ext.lower() for ext in extensions}
    for file_path in sorted(Path(root).rglob("*")):
        if file_path.is_file() and file_path.suffix.lower() in suffixes:
            yield file_path
