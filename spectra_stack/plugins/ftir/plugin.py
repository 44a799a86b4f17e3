import logging
from html import escape
from pathlib import Path

import numpy as np

from spectra_stack.engine.display import (
    compute_display_range,
    pick_extrema,
    prepare_display_series,
    wavenumber_grid,
)
from spectra_stack.engine.display_config import resolve_display_config
from spectra_stack.engine.geometry import smooth_path_d, spectrum_to_path
from spectra_stack.engine.plugin_api import BatchResult, SpectroscopyPlugin
from spectra_stack.engine.spectrum_model import PlotRect, SpectrumSignal
from spectra_stack.io.jcamp import JCAMP_EXTENSIONS, NoSpectralDataError, read_jcamp

logger = logging.getLogger(__name__)


class FtirPlugin(SpectroscopyPlugin):
    id = "ftir"
    label = "FTIR"
    xlabel = "Wavenumber (cm⁻¹)"

    def detect(self, paths):
        return any(str(p).lower().endswith(JCAMP_EXTENSIONS) for p in paths)

    def load(self, paths):
        specs = []
        for path in paths:
            path = Path(path)
            if path.suffix.lower() not in JCAMP_EXTENSIONS:
                logger.debug("Skipping non-JCAMP file %s", path)
                continue
            try:
                result = read_jcamp(path)
            except NoSpectralDataError as exc:
                logger.warning("%s: %s", path.name, exc.reason)
                continue
            meta = dict(result.signal.meta)
            meta.update(
                {
                    "source": str(path),
                    "axis_key": "wavenumber",
                    "axis_unit": "cm^-1",
                    "encoding": result.encoding.value,
                    "headers": dict(result.headers),
                    "advisories": [a.code for a in result.advisories],
                }
            )
            specs.append(
                SpectrumSignal(
                    x=result.signal.x,
                    y=result.signal.y,
                    x_units=result.signal.x_units,
                    y_units=result.signal.y_units,
                    title=result.signal.title,
                    meta=meta,
                )
            )
        return specs

    def validate(self, specs, recipe):
        cfg = resolve_display_config((recipe or {}).get("display"))
        w_min = float(cfg["wavenumber_min"])
        w_max = float(cfg["wavenumber_max"])
        errors = []
        for spec in specs:
            if len(spec) == 0:
                errors.append(f"{spec.title}: no data points")
            elif spec.max_wavenumber < w_min or spec.min_wavenumber > w_max:
                errors.append(f"{spec.title}: no data inside {w_min:g}-{w_max:g} cm^-1")
        return errors

    def analyze(self, specs, recipe):
        cfg = resolve_display_config((recipe or {}).get("display"))
        w_min = float(cfg["wavenumber_min"])
        w_max = float(cfg["wavenumber_max"])
        processed = []
        qc_rows = []
        for spec in specs:
            series = prepare_display_series(
                spec,
                display_units=cfg["display_y_units"],
                normalize=bool(cfg["normalize_y"]),
            )
            extrema = pick_extrema(series, w_min, w_max)
            meta = dict(spec.meta)
            meta.setdefault("features", {})
            meta["features"]["extrema"] = [
                {"wavenumber": p.wavenumber, "value": p.value} for p in extrema
            ]
            processed.append(
                SpectrumSignal(
                    x=spec.x,
                    y=spec.y,
                    x_units=spec.x_units,
                    y_units=spec.y_units,
                    title=spec.title,
                    meta=meta,
                )
            )
            in_window = (series.x >= w_min) & (series.x <= w_max)
            qc_rows.append(
                {
                    "title": spec.title,
                    "points": len(spec),
                    "extrema": len(extrema),
                    "y_min": float(np.min(series.y[in_window])) if in_window.any() else float("nan"),
                    "y_max": float(np.max(series.y[in_window])) if in_window.any() else float("nan"),
                }
            )
        return processed, qc_rows

    def _overlay_svg(self, specs, cfg, width=800.0, height=400.0) -> bytes:
        w_min = float(cfg["wavenumber_min"])
        w_max = float(cfg["wavenumber_max"])
        piecewise = bool(cfg["piecewise"])
        series = [
            prepare_display_series(s, display_units=cfg["display_y_units"], normalize=bool(cfg["normalize_y"]))
            for s in specs
        ]
        data_range = compute_display_range(
            series, w_min, w_max, normalize=bool(cfg["normalize_y"]), y_min_offset=float(cfg["y_min_offset"])
        )
        rect = PlotRect(x=0.0, y=0.0, width=width, height=height)
        grid = wavenumber_grid(w_min, w_max, int(cfg["grid_points"]))
        paths = []
        for spec, s in zip(specs, series):
            d = smooth_path_d(spectrum_to_path(s, grid, rect, data_range, piecewise))
            paths.append(f'<path d="{d}" fill="none" stroke="black"><title>{escape(spec.title)}</title></path>')
        body = "".join(paths)
        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{width:g}" height="{height:g}" '
            f'viewBox="0 0 {width:g} {height:g}">{body}</svg>'
        )
        return svg.encode("utf-8")

    def export(self, specs, qc, recipe):
        cfg = resolve_display_config((recipe or {}).get("display"))
        audit = [f"{row['title']}: {row['extrema']} extrema" for row in qc]
        figures = {"overlay.svg": self._overlay_svg(specs, cfg)} if specs else {}
        return BatchResult(processed=specs, qc_table=qc, figures=figures, audit=audit, report_text=None)
