from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from spectra_stack.engine.geometry import IR_BREAK, WAVENUMBER_MAX, WAVENUMBER_MIN

DISPLAY_Y_UNITS = ("transmittance", "absorbance")

DEFAULT_DISPLAY_CONFIG: Dict[str, object] = {
    "wavenumber_min": WAVENUMBER_MIN,
    "wavenumber_max": WAVENUMBER_MAX,
    "ir_break": IR_BREAK,
    "grid_points": 800,
    "piecewise": True,
    "display_y_units": "transmittance",
    "normalize_y": False,
    "y_min_offset": 0.0,
    "major_tick_step": 500.0,
    "minor_tick_step": 100.0,
    "max_y_ticks": 6,
}


def resolve_display_config(overrides: Optional[Dict[str, object]] = None) -> Dict[str, object]:
    """Return display configuration merged over the shared defaults."""

    resolved = dict(DEFAULT_DISPLAY_CONFIG)
    if overrides:
        resolved.update({k: v for k, v in overrides.items() if v is not None})
    units = str(resolved.get("display_y_units") or "transmittance").strip().lower()
    resolved["display_y_units"] = units
    return resolved


@dataclass
class DisplayRecipe:
    params: Dict[str, Any] = field(default_factory=dict)
    version: str = "0.1.0"

    def resolved(self) -> Dict[str, object]:
        return resolve_display_config(self.params)

    def validate(self) -> list[str]:
        errs = []
        cfg = self.resolved()
        try:
            w_min = float(cfg["wavenumber_min"])
            w_max = float(cfg["wavenumber_max"])
            if w_min >= w_max:
                errs.append("Wavenumber window min must be less than max")
            if w_min < 0:
                errs.append("Wavenumber window must not be negative")
        except (TypeError, ValueError):
            errs.append("Wavenumber window bounds must be numeric")

        try:
            if int(cfg["grid_points"]) < 2:
                errs.append("Grid must have at least 2 points")
        except (TypeError, ValueError):
            errs.append("Grid points must be an integer")

        for key, label in (("major_tick_step", "Major tick step"), ("minor_tick_step", "Minor tick step")):
            try:
                if float(cfg[key]) <= 0:
                    errs.append(f"{label} must be positive")
            except (TypeError, ValueError):
                errs.append(f"{label} must be numeric")

        try:
            if int(cfg["max_y_ticks"]) < 2:
                errs.append("At least 2 Y ticks are required")
        except (TypeError, ValueError):
            errs.append("Y tick count must be an integer")

        if cfg["display_y_units"] not in DISPLAY_Y_UNITS:
            errs.append("Display Y units must be transmittance or absorbance")

        try:
            if float(cfg["y_min_offset"]) < 0:
                errs.append("Y minimum offset must not be negative")
        except (TypeError, ValueError):
            errs.append("Y minimum offset must be numeric")
        return errs

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "params": dict(self.params)}


def load_display_recipe(path: str | Path) -> DisplayRecipe:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            content = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to parse display recipe {path}: {exc}") from exc
    if not isinstance(content, dict):
        raise ValueError(f"Display recipe {path} must contain a mapping")
    params = content.get("params", {})
    if not isinstance(params, dict):
        raise ValueError(f"Display recipe {path} has a non-mapping 'params' section")
    return DisplayRecipe(params=dict(params), version=str(content.get("version", "0.1.0")))


def save_display_recipe(recipe: DisplayRecipe, path: str | Path) -> Path:
    path = Path(path)
    if path.suffix.lower() not in {".yaml", ".yml"}:
        path = path.with_suffix(".yaml")
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(recipe.to_dict(), handle, sort_keys=False)
    return path
