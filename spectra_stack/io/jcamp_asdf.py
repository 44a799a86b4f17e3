"""Numeric decoding of JCAMP-DX data tables.

Handles AFFN and PAC (plain signed decimals) as well as the ASDF
compressed forms: SQZ pseudo-digits, DIF deltas and DUP repeat counts.

Pseudo-digit alphabet::

    SQZ  @ A B C D E F G H I   a  b  c  d  e  f  g  h  i
          0 1 2 3 4 5 6 7 8 9  -1 -2 -3 -4 -5 -6 -7 -8 -9
    DIF  % J K L M N O P Q R   j  k  l  m  n  o  p  q  r
          0 1 2 3 4 5 6 7 8 9  -1 -2 -3 -4 -5 -6 -7 -8 -9
    DUP    S T U V W X Y Z s
           1 2 3 4 5 6 7 8 9
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

__all__ = [
    "Encoding",
    "EncodingGuess",
    "RawPoints",
    "detect_encoding",
    "tokenize_asdf",
    "parse_affn_values",
    "decode_data_lines",
    "is_xpp",
    "looks_like_plain_affn",
    "is_likely_compressed",
    "format_affn_block",
]

logger = logging.getLogger(__name__)


class Encoding(str, Enum):
    AFFN = "AFFN"
    PAC = "PAC"
    SQZ = "SQZ"
    DIF = "DIF"
    DUP = "DUP"


class EncodingGuess(NamedTuple):
    scheme: Encoding
    confident: bool


def _pseudo_digits(chars: str, start: int, sign: int = 1) -> Dict[str, int]:
    return {ch: sign * (start + offset) for offset, ch in enumerate(chars)}


SQZ_DIGITS: Dict[str, int] = {"@": 0, **_pseudo_digits("ABCDEFGHI", 1), **_pseudo_digits("abcdefghi", 1, -1)}
DIF_DIGITS: Dict[str, int] = {"%": 0, **_pseudo_digits("JKLMNOPQR", 1), **_pseudo_digits("jklmnopqr", 1, -1)}
DUP_DIGITS: Dict[str, int] = {**_pseudo_digits("STUVWXYZ", 1), "s": 9}
ASDF_CHARS = frozenset(SQZ_DIGITS) | frozenset(DIF_DIGITS) | frozenset(DUP_DIGITS)

SEPARATORS = " \t,;"
COMMENT_MARK = "$$"

_AFFN_NUMBER = r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
AFFN_TOKEN_RE = re.compile(_AFFN_NUMBER)
PAC_TOKEN_RE = re.compile(rf"(?:{_AFFN_NUMBER})+")
SPLIT_RE = re.compile(r"[\s,;]+")
PAC_JOIN_RE = re.compile(r"[\d.][+-]\d")
SIGNED_EXPONENT_RE = re.compile(r"[\d.][eE][+-]\d")
BARE_EXPONENT_RE = re.compile(r"[\d.][eE]\d")
PLAIN_AFFN_LINE_RE = re.compile(r"^\d[\d.\s]*$")
MARKER_RE = re.compile(r"[A-Za-z%@]")


def strip_comment(line: str) -> str:
    idx = line.find(COMMENT_MARK)
    return line if idx < 0 else line[:idx]


def detect_encoding(lines: Sequence[str]) -> EncodingGuess:
    """Classify the compression scheme of a data table from its characters.

    ``E``/``e`` are both the squeezed 5/-5 and the AFFN exponent marker;
    when every occurrence sits in exponent position with an explicit sign
    the table is AFFN, without a sign the guess is AFFN but unconfident.
    Characters outside the ASDF alphabet also yield an unconfident AFFN.
    """

    body = "\n".join(strip_comment(line) for line in lines)
    markers = set(MARKER_RE.findall(body))
    if not markers:
        scheme = Encoding.PAC if PAC_JOIN_RE.search(body) else Encoding.AFFN
        return EncodingGuess(scheme, True)
    if markers - ASDF_CHARS:
        return EncodingGuess(Encoding.AFFN, False)
    if markers <= {"E", "e"}:
        exponent_hits = len(SIGNED_EXPONENT_RE.findall(body)) + len(BARE_EXPONENT_RE.findall(body))
        total = body.count("E") + body.count("e")
        if exponent_hits == total:
            confident = len(BARE_EXPONENT_RE.findall(body)) == 0
            return EncodingGuess(Encoding.AFFN, confident)
        return EncodingGuess(Encoding.SQZ, True)
    if markers & set(DUP_DIGITS):
        return EncodingGuess(Encoding.DUP, True)
    if markers & set(DIF_DIGITS):
        return EncodingGuess(Encoding.DIF, True)
    return EncodingGuess(Encoding.SQZ, True)


class AsdfToken(NamedTuple):
    kind: str           # "abs", "dif", "dup" or "bad"
    value: float


def tokenize_asdf(text: str) -> List[AsdfToken]:
    """Split one line of ASDF text into tokens.

    A malformed token is reported as ``("bad", nan)`` in place so later
    values keep their positions.
    """

    tokens: List[AsdfToken] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in SEPARATORS:
            i += 1
            continue
        if ch in SQZ_DIGITS:
            kind, lead = "abs", str(SQZ_DIGITS[ch])
        elif ch in DIF_DIGITS:
            kind, lead = "dif", str(DIF_DIGITS[ch])
        elif ch in DUP_DIGITS:
            kind, lead = "dup", str(DUP_DIGITS[ch])
        elif ch.isdigit() or ch in "+-.":
            kind, lead = "abs", ch
        else:
            kind, lead = "bad", ""
        j = i + 1
        while j < n and (text[j].isdigit() or text[j] == "."):
            j += 1
        if kind != "bad":
            try:
                tokens.append(AsdfToken(kind, float(lead + text[i + 1 : j])))
            except ValueError:
                kind = "bad"
        if kind == "bad":
            logger.debug("Skipping malformed token %r", text[i:j])
            tokens.append(AsdfToken("bad", float("nan")))
        i = j
    return tokens


def parse_affn_values(text: str) -> List[Optional[float]]:
    """Parse AFFN/PAC text; unparseable pieces become ``None``."""

    values: List[Optional[float]] = []
    for piece in SPLIT_RE.split(text.strip()):
        if not piece:
            continue
        if PAC_TOKEN_RE.fullmatch(piece):
            values.extend(float(tok) for tok in AFFN_TOKEN_RE.findall(piece))
        else:
            logger.debug("Skipping malformed token %r", piece)
            values.append(None)
    return values


@dataclass
class _Line:
    x: float
    ys: List[Optional[float]]
    ended_dif: bool = False
    skip_first: bool = False

    @property
    def slots(self) -> int:
        return len(self.ys)


@dataclass
class RawPoints:
    """Decoded points in file units (before ``XFACTOR``/``YFACTOR``)."""

    x: List[float] = field(default_factory=list)
    y: List[float] = field(default_factory=list)
    guess: EncodingGuess = EncodingGuess(Encoding.AFFN, True)
    skipped_tokens: int = 0
    drift_lines: int = 0
    dropped_points: int = 0     # ordinates lost to an unresolved X++ step
    step: Optional[float] = None


def _asdf_line_values(
    tokens: Sequence[AsdfToken], last_value: Optional[float]
) -> Tuple[List[Optional[float]], bool, Optional[float], int]:
    ys: List[Optional[float]] = []
    bad = 0
    previous: Optional[Tuple[str, float]] = None
    for token in tokens:
        if token.kind == "abs":
            last_value = token.value
            ys.append(last_value)
            previous = ("abs", token.value)
        elif token.kind == "dif":
            if last_value is None:
                ys.append(None)
                bad += 1
                previous = None
                continue
            last_value += token.value
            ys.append(last_value)
            previous = ("dif", token.value)
        elif token.kind == "dup":
            count = int(token.value)
            if previous is None or count < 1:
                bad += 1
                continue
            for _ in range(count - 1):
                if previous[0] == "abs":
                    ys.append(previous[1])
                else:
                    last_value += previous[1]
                    ys.append(last_value)
        else:
            ys.append(None)
            bad += 1
            previous = None
    ended_dif = previous is not None and previous[0] == "dif"
    return ys, ended_dif, last_value, bad


def _split_lines(lines: Sequence[str], guess: EncodingGuess) -> Tuple[List[_Line], int]:
    """Decode each data line into its leading X and the Y values that follow."""

    parsed: List[_Line] = []
    bad = 0
    asdf = guess.confident and guess.scheme in {Encoding.SQZ, Encoding.DIF, Encoding.DUP}
    last_value: Optional[float] = None
    for raw in lines:
        text = strip_comment(raw).strip()
        if not text:
            continue
        if asdf:
            tokens = tokenize_asdf(text)
            if not tokens or tokens[0].kind != "abs":
                bad += len(tokens)
                continue
            ys, ended_dif, last_value, line_bad = _asdf_line_values(tokens[1:], last_value)
            bad += line_bad
            line = _Line(x=tokens[0].value, ys=ys, ended_dif=ended_dif)
        else:
            values = parse_affn_values(text)
            bad += sum(1 for v in values if v is None)
            if not values or values[0] is None:
                continue
            line = _Line(x=values[0], ys=values[1:])
        if parsed and parsed[-1].ended_dif and line.ys:
            line.skip_first = True
        parsed.append(line)
    return parsed, bad


def _resolve_step(
    parsed: Sequence[_Line],
    deltax: Optional[float],
    firstx: Optional[float],
    lastx: Optional[float],
    npoints: Optional[int],
    xfactor: float,
) -> Optional[float]:
    if deltax is not None:
        return deltax / xfactor
    if firstx is not None and lastx is not None and npoints and npoints > 1:
        return (lastx - firstx) / (npoints - 1) / xfactor
    deltas = []
    for current, following in zip(parsed, parsed[1:]):
        span = current.slots - (1 if following.skip_first else 0)
        if span > 0:
            deltas.append((following.x - current.x) / span)
    if deltas:
        return float(np.median(deltas))
    return None


def _expand_xpp(parsed: Sequence[_Line], step: Optional[float], result: RawPoints) -> None:
    previous: Optional[_Line] = None
    for line in parsed:
        if previous is not None and step:
            expected = previous.x + previous.slots * step - (step if line.skip_first else 0.0)
            if abs(line.x - expected) > abs(step):
                result.drift_lines += 1
                logger.debug("X checkpoint %.6g differs from expected %.6g", line.x, expected)
        for index, value in enumerate(line.ys):
            if index == 0 and line.skip_first:
                continue
            if value is None:
                continue
            if step is None and index > 0:
                result.dropped_points += sum(1 for v in line.ys[index:] if v is not None)
                break
            result.x.append(line.x + index * (step or 0.0))
            result.y.append(value)
        previous = line


def is_xpp(descriptor: str) -> bool:
    """True for ``(X++(Y..Y))``-style tables, whitespace ignored."""

    return "X++" in "".join(descriptor.split()).upper()


def _group_width(descriptor: str) -> int:
    inner = descriptor.strip().strip("()").split("..", 1)[0]
    letters = [ch for ch in inner.upper() if ch.isalpha()]
    return max(2, len(letters))


def _expand_pairs(parsed: Sequence[_Line], descriptor: str, result: RawPoints) -> None:
    width = _group_width(descriptor)
    flat: List[Optional[float]] = []
    for line in parsed:
        flat.append(line.x)
        flat.extend(line.ys)
    usable = len(flat) - len(flat) % width
    result.skipped_tokens += len(flat) - usable
    for start in range(0, usable, width):
        x_val, y_val = flat[start], flat[start + 1]
        if x_val is None or y_val is None:
            continue
        result.x.append(x_val)
        result.y.append(y_val)


def decode_data_lines(
    lines: Sequence[str],
    descriptor: str = "(X++(Y..Y))",
    *,
    deltax: Optional[float] = None,
    firstx: Optional[float] = None,
    lastx: Optional[float] = None,
    npoints: Optional[int] = None,
    xfactor: float = 1.0,
) -> RawPoints:
    """Decode the numeric lines of a data table into file-unit points.

    ``descriptor`` is the text after ``##XYDATA=`` (or the equivalent
    label).  ``(X++(Y..Y))`` tables place each Y at ``X_line + i * DELTAX``;
    anything else is read as interleaved ``X Y`` groups.
    """

    guess = detect_encoding(lines)
    parsed, bad = _split_lines(lines, guess)
    result = RawPoints(guess=guess, skipped_tokens=bad)
    if is_xpp(descriptor):
        step = _resolve_step(parsed, deltax, firstx, lastx, npoints, xfactor or 1.0)
        result.step = step
        _expand_xpp(parsed, step, result)
    else:
        _expand_pairs(parsed, descriptor, result)
    return result


def looks_like_plain_affn(data_block: str) -> bool:
    """True when the first numeric line after the data label is plain digits."""

    block_lines = data_block.split("\n")
    second = block_lines[1].strip() if len(block_lines) > 1 else ""
    return bool(PLAIN_AFFN_LINE_RE.match(second))


def is_likely_compressed(data_block: str) -> bool:
    return bool(data_block) and bool(MARKER_RE.search(data_block)) and not looks_like_plain_affn(data_block)


def _format_number(value: float) -> str:
    return np.format_float_positional(float(value), precision=10, trim="-")


def format_affn_block(x: Sequence[float], y: Sequence[float], label: str = "XYDATA") -> str:
    """Render points as a ``(XY..XY)`` table with one ``X Y`` pair per line."""

    rows = [f"##{label}=(XY..XY)"]
    rows.extend(f"{_format_number(xv)} {_format_number(yv)}" for xv, yv in zip(x, y))
    rows.append("##END=")
    return "\n".join(rows)
