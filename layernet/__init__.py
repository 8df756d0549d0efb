# layernet/__init__.py
"""layernet: temporal and multilayer networks, single import."""

from __future__ import annotations

from importlib import import_module
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version
from typing import Any

# Lazily exposed submodules (imported on first attribute access)
_lazy_submodules = {
    # namespaces
    "io": "layernet.io",
    "core": "layernet.core",
    "algorithms": "layernet.algorithms",
    "extraction": "layernet.extraction",
    # direct convenience
    "edges": "layernet.algorithms.edges",
    "constants": "layernet.core.constants",
    "errors": "layernet.core.errors",
}

# Curated top-level symbols (lazy). name -> (module, attribute)
_lazy_symbols: dict[str, tuple[str, str]] = {
    # Core
    "MlnGraph": ("layernet.core.graph", "MlnGraph"),
    "GraphStore": ("layernet.core._GraphStore", "GraphStore"),
    "MultilayerNetworkModel": ("layernet.core.builder", "MultilayerNetworkModel"),
    "TableType": ("layernet.core.builder", "TableType"),
    "ColumnType": ("layernet.core.columns", "ColumnType"),
    # Errors
    "MlnError": ("layernet.core.errors", "MlnError"),
    "FormatError": ("layernet.core.errors", "FormatError"),
    "ExtractionError": ("layernet.core.errors", "ExtractionError"),
    "ExtractionCancelled": ("layernet.core.errors", "ExtractionCancelled"),
    # Writing / reading
    "MultilayerNetwork": ("layernet.io.writer", "MultilayerNetwork"),
    "flatten": ("layernet.io.writer", "flatten"),
    "aggregate": ("layernet.io.writer", "aggregate"),
    "materialize": ("layernet.io.writer", "materialize"),
    "select_layers": ("layernet.io.writer", "select_layers"),
    "build_from_flattened": ("layernet.io.reader", "build_from_flattened"),
    "convert_tables": ("layernet.io.converter", "convert_tables"),
    # Extraction
    "Extractor": ("layernet.extraction.orchestrator", "Extractor"),
    "ExtractionConfig": ("layernet.extraction.config", "ExtractionConfig"),
    "ExtractionStrategy": ("layernet.extraction.strategy", "ExtractionStrategy"),
    "KShortestPathsService": ("layernet.extraction.shortest_paths", "KShortestPathsService"),
}

__all__ = sorted(set(list(_lazy_submodules) + list(_lazy_symbols)))


def __getattr__(name: str) -> Any:  # PEP 562: lazy attribute resolution
    if name in _lazy_submodules:
        return import_module(_lazy_submodules[name])
    if name in _lazy_symbols:
        mod, attr = _lazy_symbols[name]
        return getattr(import_module(mod), attr)
    raise AttributeError(name)


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(__all__))


try:
    __version__ = _pkg_version("layernet")
except PackageNotFoundError:
    __version__ = "0.0.0"
