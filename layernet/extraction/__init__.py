"""layernet.extraction: subnetwork extraction across layers (lazy)."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_lazy_symbols: dict[str, tuple[str, str]] = {
    # Orchestration
    "Extractor": ("layernet.extraction.orchestrator", "Extractor"),
    "ExtractionState": ("layernet.extraction.orchestrator", "ExtractionState"),
    "ExtractionStrategy": ("layernet.extraction.strategy", "ExtractionStrategy"),
    "Slice": ("layernet.extraction.strategy", "Slice"),
    "CancellationToken": ("layernet.extraction.cancel", "CancellationToken"),
    "TemporaryGraphs": ("layernet.extraction.cancel", "TemporaryGraphs"),
    # Settings
    "ExtractionConfig": ("layernet.extraction.config", "ExtractionConfig"),
    "PollingConfig": ("layernet.extraction.config", "PollingConfig"),
    "ShortestPathsConfig": ("layernet.extraction.config", "ShortestPathsConfig"),
    "WeightType": ("layernet.extraction.config", "WeightType"),
    # Services
    "ExtractedNetwork": ("layernet.extraction.result", "ExtractedNetwork"),
    "SubnetworkExtractionService": ("layernet.extraction.service", "SubnetworkExtractionService"),
    "SubmitPollService": ("layernet.extraction.service", "SubmitPollService"),
    "poll_until": ("layernet.extraction.service", "poll_until"),
    "KShortestPathsService": ("layernet.extraction.shortest_paths", "KShortestPathsService"),
}

__all__ = sorted(_lazy_symbols)


def __getattr__(name: str) -> Any:
    if name in _lazy_symbols:
        mod, attr = _lazy_symbols[name]
        return getattr(import_module(mod), attr)
    raise AttributeError(name)


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(__all__))
