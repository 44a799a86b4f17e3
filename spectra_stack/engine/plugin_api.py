from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from spectra_stack.engine.spectrum_model import SpectrumSignal


@dataclass
class BatchResult:
    processed: List[SpectrumSignal]
    qc_table: List[Dict[str, Any]]
    figures: Dict[str, bytes]       # SVG bytes keyed by figure name
    audit: List[str] = field(default_factory=list)
    report_text: Optional[str] = None


class SpectroscopyPlugin:
    """Technique plugin: claims files, loads them as signals and annotates them."""

    id: str = "base"
    label: str = "Base"
    xlabel: str = "x"

    def detect(self, paths: Iterable[str]) -> bool:
        raise NotImplementedError

    def load(self, paths: Iterable[str]) -> List[SpectrumSignal]:
        raise NotImplementedError

    def analyze(
        self, specs: List[SpectrumSignal], recipe: Dict[str, Any]
    ) -> Tuple[List[SpectrumSignal], List[Dict[str, Any]]]:
        raise NotImplementedError
