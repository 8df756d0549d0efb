"""layernet.io: building, validating, writing and reading multilayer networks (lazy)."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_lazy_symbols: dict[str, tuple[str, str]] = {
    # Raw tables
    "ConverterOptions": ("layernet.io.converter", "ConverterOptions"),
    "convert_tables": ("layernet.io.converter", "convert_tables"),
    "check_consistency": ("layernet.io.converter", "check_consistency"),
    # Validation
    "validate_model": ("layernet.io.validator", "validate_model"),
    "validate_layered_collection": ("layernet.io.validator", "validate_layered_collection"),
    "validate_flattened_graph": ("layernet.io.validator", "validate_flattened_graph"),
    "validate_aggregated_graph": ("layernet.io.validator", "validate_aggregated_graph"),
    # Writing
    "LayeredCollection": ("layernet.io.writer", "LayeredCollection"),
    "MultilayerNetwork": ("layernet.io.writer", "MultilayerNetwork"),
    "flatten": ("layernet.io.writer", "flatten"),
    "aggregate": ("layernet.io.writer", "aggregate"),
    "select_layers": ("layernet.io.writer", "select_layers"),
    "layer_networks": ("layernet.io.writer", "layer_networks"),
    "inter_edge_tables": ("layernet.io.writer", "inter_edge_tables"),
    "materialize": ("layernet.io.writer", "materialize"),
    "materialize_from_flattened": ("layernet.io.writer", "materialize_from_flattened"),
    # Reading
    "layer_ids_from_flattened": ("layernet.io.reader", "layer_ids_from_flattened"),
    "layer_count_from_flattened": ("layernet.io.reader", "layer_count_from_flattened"),
    "model_from_flattened": ("layernet.io.reader", "model_from_flattened"),
    "model_from_layered_collection": ("layernet.io.reader", "model_from_layered_collection"),
    "build_from_flattened": ("layernet.io.reader", "build_from_flattened"),
}

__all__ = sorted(_lazy_symbols)


def __getattr__(name: str) -> Any:
    if name in _lazy_symbols:
        mod, attr = _lazy_symbols[name]
        return getattr(import_module(mod), attr)
    raise AttributeError(name)


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(__all__))
