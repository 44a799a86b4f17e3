"""Ordered JCAMP-DX header entries and the editing helpers built on them.

Headers are kept as an ordered tuple of :class:`MetadataEntry` and
:class:`RawLine` values rather than a mapping, so duplicate labels, comments
and structural lines survive a load/edit/save cycle unchanged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

__all__ = [
    "MetadataEntry",
    "RawLine",
    "RawHeaderEntry",
    "JcampDocument",
    "KNOWN_KEYS",
    "KEY_FORMAT_GUIDES",
    "scan_header",
    "parse_jcamp_for_editing",
    "serialize_jcamp",
    "header_values",
    "apply_group_edits",
    "append_audit_trail",
    "audit_trail",
    "available_keys",
    "format_guide",
]

KEY_RE = re.compile(r"^##([A-Za-z0-9 /\-]+)=(.*)$")
DATA_START_RE = re.compile(r"^##\s*(XYDATA|XYPOINTS|PEAK\s*TABLE|DATA\s*TABLE)\s*=", re.IGNORECASE)
COMMENT_RE = re.compile(r"^\s*\$\$")
CONTINUATION_RE = re.compile(r"^\s*\+")

AUDIT_TRAIL_KEY = "AUDIT TRAIL"

KNOWN_KEYS: Tuple[str, ...] = (
    "TITLE",
    "AUDIT TRAIL",
    "JCAMP-DX",
    "DATA TYPE",
    "ORIGIN",
    "OWNER",
    "CAS REGISTRY NO",
    "FUNCTIONAL GROUPS",
    "DATE",
    "XUNITS",
    "YUNITS",
    "XLABEL",
    "YLABEL",
    "MOLFORM",
    "STATE",
    "NAMES",
    "CLASS",
    "SAMPLE DESCRIPTION",
    "CAS NAME",
    "CITATION",
    "SOURCE REFERENCE",
    "SPECTROMETER/DATA SYSTEM",
    "INSTRUMENT PARAMETERS",
    "SAMPLING PROCEDURE",
    "DATA PROCESSING",
    "RESOLUTION",
    "PATH LENGTH",
    "XFACTOR",
    "YFACTOR",
    "DELTAX",
    "FIRSTX",
    "LASTX",
    "FIRSTY",
    "MAXX",
    "MINX",
    "MAXY",
    "MINY",
    "NPOINTS",
)

KEY_FORMAT_GUIDES: Dict[str, str] = {
    "TITLE": "Short description of the spectrum, usable as a plot title.",
    "JCAMP-DX": "Format version, e.g. 4.24 or 5.01.",
    "DATA TYPE": "e.g. INFRARED SPECTRUM or RAMAN SPECTRUM.",
    "ORIGIN": "Contributing organisation and address. Required.",
    "OWNER": "Copyright holder, or PUBLIC DOMAIN. Required.",
    "CAS REGISTRY NO": "CAS number, e.g. 111-36-4.",
    "FUNCTIONAL GROUPS": "Comma separated, e.g. Ester, Carbonyl, Aromatic.",
    "DATE": "YY/MM/DD.",
    "TIME": "HH:MM:SS.",
    "XUNITS": "1/CM, MICROMETERS, NANOMETERS or SECONDS.",
    "YUNITS": "TRANSMITTANCE, ABSORBANCE, REFLECTANCE or ARBITRARY UNITS.",
    "XLABEL": "Axis label, e.g. Wavenumbers (cm-1).",
    "YLABEL": "Axis label, e.g. % Transmission.",
    "MOLFORM": "Hill order: C, then H, then the rest alphabetically. e.g. C4 H8 O2.",
    "STATE": "solid, liquid, gas, solution, ...",
    "NAMES": "Common or trade names, one per line.",
    "CLASS": "Coblentz class (1-4) and IUPAC class (A, B, C).",
    "SAMPLE DESCRIPTION": "Composition, origin and appearance.",
    "CAS NAME": "Chemical Abstracts name.",
    "CITATION": "Literature reference for the spectrum.",
    "SOURCE REFERENCE": "File name, library name or serial number.",
    "SPECTROMETER/DATA SYSTEM": "Manufacturer, model and software.",
    "INSTRUMENT PARAMETERS": "Relevant instrument settings.",
    "SAMPLING PROCEDURE": "Mode first (transmission, ATR, ...), then accessories.",
    "DATA PROCESSING": "Background subtraction, smoothing, ...",
    "RESOLUTION": "Nominal resolution in XUNITS.",
    "PATH LENGTH": "Cell path in cm, e.g. 0.012.",
    "XFACTOR": "Multiplier applied to X values.",
    "YFACTOR": "Multiplier applied to Y values.",
    "DELTAX": "Nominal X spacing between points.",
    "FIRSTX": "First abscissa value.",
    "LASTX": "Last abscissa value.",
    "FIRSTY": "First ordinate value.",
    "MAXX": "Largest X value.",
    "MINX": "Smallest X value.",
    "MAXY": "Largest Y value.",
    "MINY": "Smallest Y value.",
    "NPOINTS": "Number of data points.",
    "AUDIT TRAIL": "Provenance and processing history, one event per line.",
}


@dataclass(frozen=True)
class MetadataEntry:
    """A ``##KEY=value`` header with continuation lines folded into ``value``.

    ``source_lines`` holds the lines the entry was read from; they are
    written back verbatim for as long as ``value`` is left untouched.
    """

    key: str
    value: str
    source_lines: Tuple[str, ...] = ()
    original_value: Optional[str] = None

    def render(self) -> str:
        if self.source_lines and self.value == self.original_value:
            return "\n".join(self.source_lines)
        return f"##{self.key}={self.value}"


@dataclass(frozen=True)
class RawLine:
    content: str

    def render(self) -> str:
        return self.content


RawHeaderEntry = Union[MetadataEntry, RawLine]


@dataclass(frozen=True)
class JcampDocument:
    header_entries: Tuple[RawHeaderEntry, ...]
    data_block: str


def _fold_value(first: str, continuation: Sequence[str]) -> str:
    parts = [first.strip()]
    for line in continuation:
        if CONTINUATION_RE.match(line):
            line = CONTINUATION_RE.sub("", line, count=1)
        parts.append(line.rstrip())
    return "\n".join(parts).strip()


def _build_entry(label: str, first: str, source: List[str]) -> MetadataEntry:
    value = _fold_value(first, source[1:])
    return MetadataEntry(
        key=label.strip().upper(),
        value=value,
        source_lines=tuple(source),
        original_value=value,
    )


def scan_header(lines: Sequence[str]) -> Tuple[Tuple[RawHeaderEntry, ...], Optional[int]]:
    """Split ``lines`` into header entries and the index of the data-start label.

    The index is ``None`` when no ``##XYDATA=``/``##XYPOINTS=``/``##PEAK
    TABLE=``/``##DATA TABLE=`` label is present.
    """

    entries: List[RawHeaderEntry] = []
    pending: Optional[Tuple[str, str, List[str]]] = None

    def flush() -> None:
        nonlocal pending
        if pending is not None:
            entries.append(_build_entry(*pending))
            pending = None

    for index, line in enumerate(lines):
        if DATA_START_RE.match(line):
            flush()
            return tuple(entries), index
        match = KEY_RE.match(line)
        if match:
            flush()
            pending = (match.group(1), match.group(2), [line])
        elif line.startswith("##") or COMMENT_RE.match(line):
            flush()
            entries.append(RawLine(line))
        elif pending is not None:
            pending[2].append(line)
        else:
            entries.append(RawLine(line))
    flush()
    return tuple(entries), None


def parse_jcamp_for_editing(text: str) -> JcampDocument:
    lines = text.splitlines()
    entries, start = scan_header(lines)
    data_block = "\n".join(lines[start:]) if start is not None else ""
    return JcampDocument(header_entries=entries, data_block=data_block)


def serialize_jcamp(
    header_entries: Iterable[RawHeaderEntry],
    data_block: str = "",
    newline: str = "\n",
) -> str:
    """Join entries back into JCAMP-DX text, followed by ``data_block``."""

    parts = [entry.render() for entry in header_entries]
    if data_block:
        parts.append(data_block)
    text = "\n".join(parts)
    if newline != "\n":
        text = text.replace("\n", newline)
    return text + newline if text else text


def header_values(header_entries: Iterable[RawHeaderEntry]) -> Dict[str, str]:
    """Mapping of upper-cased keys to values; later duplicates win."""

    values: Dict[str, str] = {}
    for entry in header_entries:
        if isinstance(entry, MetadataEntry):
            values[entry.key] = entry.value
    return values


def apply_group_edits(
    header_entries: Iterable[RawHeaderEntry],
    edits: Mapping[str, object],
) -> Tuple[RawHeaderEntry, ...]:
    """Apply ``edits`` to the first entry of each key, appending missing keys.

    Blank edit values are ignored so a half-filled group form does not wipe
    existing metadata.
    """

    pending = {
        key.strip().upper(): str(value)
        for key, value in edits.items()
        if value is not None and str(value).strip() != ""
    }
    result: List[RawHeaderEntry] = []
    for entry in header_entries:
        if isinstance(entry, MetadataEntry) and entry.key in pending:
            result.append(replace(entry, value=pending.pop(entry.key)))
        else:
            result.append(entry)
    for key, value in pending.items():
        result.append(MetadataEntry(key=key, value=value))
    return tuple(result)


def audit_trail(header_entries: Iterable[RawHeaderEntry]) -> str:
    for entry in header_entries:
        if isinstance(entry, MetadataEntry) and entry.key == AUDIT_TRAIL_KEY:
            return entry.value
    return ""


def append_audit_trail(
    header_entries: Sequence[RawHeaderEntry],
    additions: Sequence[str],
    original: str = "",
) -> Tuple[RawHeaderEntry, ...]:
    """Set the ``AUDIT TRAIL`` value to ``original`` followed by ``additions``."""

    cleaned = [item.strip() for item in additions if item and item.strip()]
    if not cleaned:
        return tuple(header_entries)
    combined = "\n".join(cleaned)
    value = f"{original}\n{combined}" if original else combined
    result = list(header_entries)
    for index, entry in enumerate(result):
        if isinstance(entry, MetadataEntry) and entry.key == AUDIT_TRAIL_KEY:
            result[index] = replace(entry, value=value)
            break
    else:
        result.append(MetadataEntry(key=AUDIT_TRAIL_KEY, value=value))
    return tuple(result)


def available_keys(header_entries: Iterable[RawHeaderEntry]) -> List[str]:
    """Known keys that can still be added to ``header_entries``."""

    present = {entry.key for entry in header_entries if isinstance(entry, MetadataEntry)}
    return [key for key in KNOWN_KEYS if key != AUDIT_TRAIL_KEY and key not in present]


def format_guide(key: object) -> Optional[str]:
    if not isinstance(key, str) or not key.strip():
        return None
    return KEY_FORMAT_GUIDES.get(key.strip().upper())
