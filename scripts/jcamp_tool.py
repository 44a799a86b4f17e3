#!/usr/bin/env python3
"""Command-line utilities for JCAMP-DX infrared spectra.

Subcommands:
  headers  index header metadata of every JCAMP-DX file under a directory
  expand   rewrite a compressed (SQZ/DIF/DUP) file with plain X Y pairs
  peaks    list band positions inside a wavenumber window
"""
from __future__ import annotations

import argparse
import csv
import json
import logging
import os
import sys
from collections import OrderedDict
from pathlib import Path
from typing import List, MutableMapping, Sequence

from spectra_stack.engine.display import pick_extrema, prepare_display_series
from spectra_stack.engine.display_config import load_display_recipe, resolve_display_config
from spectra_stack.io.jcamp import (
    NoSpectralDataError,
    decode_data_block_to_affn,
    iter_jcamp_files,
    read_jcamp,
)
from spectra_stack.io.jcamp_header import (
    MetadataEntry,
    header_values,
    parse_jcamp_for_editing,
    serialize_jcamp,
)

logger = logging.getLogger(__name__)


def normalize_key(label: str) -> str:
    """Normalize a JCAMP-DX header label to snake_case."""
    cleaned = label.strip().lower()
    sanitized = []
    prev_underscore = False
    for char in cleaned:
        if char.isalnum():
            sanitized.append(char)
            prev_underscore = False
        elif not prev_underscore:
            sanitized.append("_")
            prev_underscore = True
    normalized = "".join(sanitized).strip("_")
    return normalized or "field"


def build_records(
    root: Path,
    relative_to: Path | None = None,
    include_raw_headers: bool = False,
) -> List[OrderedDict[str, object]]:
    records: List[OrderedDict[str, object]] = []
    for file_path in iter_jcamp_files(root):
        text = file_path.read_text(encoding="utf-8", errors="replace")
        document = parse_jcamp_for_editing(text)
        record: OrderedDict[str, object] = OrderedDict()
        if relative_to is not None:
            try:
                rel_path = file_path.resolve().relative_to(relative_to)
            except ValueError:
                rel_path = Path(os.path.relpath(file_path.resolve(), relative_to))
        else:
            rel_path = file_path.relative_to(root)
        record["path"] = rel_path.as_posix()
        for key, value in header_values(document.header_entries).items():
            record[normalize_key(key)] = value
        if include_raw_headers:
            record["_raw_headers"] = [
                {"label": entry.key, "value": entry.value}
                for entry in document.header_entries
                if isinstance(entry, MetadataEntry)
            ]
        records.append(record)
    return records


def determine_fields(
    records: Sequence[MutableMapping[str, object]],
    requested_fields: Sequence[str] | None,
    include_raw_headers: bool,
) -> List[str]:
    if requested_fields:
        ordered: List[str] = []
        for field in requested_fields:
            normalized = normalize_key(field)
            if normalized != "path" and normalized not in ordered:
                ordered.append(normalized)
        final_fields = ["path"] + ordered
    else:
        collected = {key for record in records for key in record if key not in {"path", "_raw_headers"}}
        final_fields = ["path"] + sorted(collected)
    if include_raw_headers and "_raw_headers" not in final_fields:
        final_fields.append("_raw_headers")
    return final_fields


def output_json(records: Sequence[MutableMapping[str, object]]) -> None:
    json.dump(records, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def output_csv(records: Sequence[MutableMapping[str, object]], fields: Sequence[str]) -> None:
    writer = csv.DictWriter(sys.stdout, fieldnames=fields)
    writer.writeheader()
    for record in records:
        row = {}
        for field in fields:
            value = record.get(field)
            if isinstance(value, (dict, list)):
                row[field] = json.dumps(value, ensure_ascii=False)
            elif value is None:
                row[field] = ""
            else:
                row[field] = value
        writer.writerow(row)


def cmd_headers(args: argparse.Namespace) -> int:
    root = Path(args.root)
    if not root.is_dir():
        raise SystemExit(f"Root directory not found: {root}")
    relative_to = Path(args.relative_to).resolve() if args.relative_to else None
    records = build_records(root, relative_to=relative_to, include_raw_headers=args.include_raw_headers)
    fields = determine_fields(records, args.fields, args.include_raw_headers)
    prepared = [OrderedDict((field, record.get(field)) for field in fields) for record in records]
    logger.info("Indexed %d file(s) under %s", len(prepared), root)
    if args.format == "json":
        output_json(prepared)
    else:
        output_csv(prepared, fields)
    return 0


def cmd_expand(args: argparse.Namespace) -> int:
    source = Path(args.input)
    text = source.read_text(encoding="utf-8", errors="replace")
    affn = decode_data_block_to_affn(text)
    if affn is None:
        logger.info("%s has no compressed data table; nothing to expand", source.name)
        return 1
    document = parse_jcamp_for_editing(text)
    output = Path(args.output) if args.output else source.with_name(f"{source.stem}_affn{source.suffix}")
    output.write_text(serialize_jcamp(document.header_entries, affn), encoding="utf-8")
    logger.info("Wrote %s", output)
    return 0


def cmd_peaks(args: argparse.Namespace) -> int:
    overrides = load_display_recipe(args.recipe).params if args.recipe else {}
    overrides = dict(overrides)
    overrides.update(
        {
            "wavenumber_min": args.min,
            "wavenumber_max": args.max,
            "display_y_units": args.units,
        }
    )
    cfg = resolve_display_config(overrides)
    try:
        result = read_jcamp(args.input)
    except NoSpectralDataError as exc:
        logger.error("%s: %s", args.input, exc.reason)
        return 2
    series = prepare_display_series(result.signal, display_units=cfg["display_y_units"])
    extrema = pick_extrema(series, float(cfg["wavenumber_min"]), float(cfg["wavenumber_max"]))
    logger.info("Found %d extrema in %s", len(extrema), Path(args.input).name)
    writer = csv.writer(sys.stdout)
    writer.writerow(["wavenumber", cfg["display_y_units"]])
    for point in extrema:
        writer.writerow([f"{point.wavenumber:.4f}", f"{point.value:.6g}"])
    return 0


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    headers = sub.add_parser("headers", help="Index JCAMP-DX header metadata.")
    headers.add_argument("root", help="Root directory containing JCAMP-DX files.")
    headers.add_argument("--format", choices=("json", "csv"), default="json", help="Output format (default: json).")
    headers.add_argument("--fields", nargs="*", help="Subset of normalized metadata fields to include.")
    headers.add_argument("--relative-to", dest="relative_to", help="Base directory for emitted paths.")
    headers.add_argument(
        "--include-raw-headers",
        action="store_true",
        help="Include a `_raw_headers` field with unnormalized label/value pairs.",
    )
    headers.set_defaults(func=cmd_headers)

    expand = sub.add_parser("expand", help="Write an AFFN-expanded copy of a compressed file.")
    expand.add_argument("input", help="JCAMP-DX file to expand.")
    expand.add_argument("-o", "--output", help="Destination (default: <name>_affn<ext> beside the input).")
    expand.set_defaults(func=cmd_expand)

    peaks = sub.add_parser("peaks", help="List band positions in a wavenumber window.")
    peaks.add_argument("input", help="JCAMP-DX file to analyse.")
    peaks.add_argument("--min", type=float, default=None, help="Lower wavenumber bound (cm^-1).")
    peaks.add_argument("--max", type=float, default=None, help="Upper wavenumber bound (cm^-1).")
    peaks.add_argument(
        "--units",
        choices=("transmittance", "absorbance"),
        default=None,
        help="Y semantic used for picking (minima for transmittance, maxima for absorbance).",
    )
    peaks.add_argument("--recipe", help="YAML display recipe providing defaults.")
    peaks.set_defaults(func=cmd_peaks)
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(levelname)s] %(message)s',
    )
    try:
        return args.func(args)
    except BrokenPipeError:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
