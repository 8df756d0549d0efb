"""Fixed column names, labels and naming conventions of multilayer networks."""

from __future__ import annotations

# Column names
NAME = "name"
WEIGHT = "Weight"
DIRECTION = "Direction"
SOURCE = "Source"
TARGET = "Target"

# Reserved columns of flattened / aggregated graphs
LAYER_ID = "Layer ID"
EDGE_LABEL = "Edge label"
INTRA_LABEL = "intra-layer"
INTER_LABEL = "inter-layer"
EDGE_LABELS = (INTRA_LABEL, INTER_LABEL)
RESERVED_COLUMNS = frozenset({LAYER_ID, EDGE_LABEL})

# Query markers
IS_QUERY = "isQuery"
QUERY_PREFIX = "Query_"

# Graph-level flags
IS_MLN = "Multi-layer network"
FLAT_NETWORK = "Flattened network"
AGG_NETWORK = "Aggregated network"

INTERACTION_SEPARATOR = " (interacts with) "
TEMPORARY_NETWORK = "temporary_network"


def interaction_name(source: str, target: str) -> str:
    """Edge name of a ``source -> target`` interaction."""
    return f"{source}{INTERACTION_SEPARATOR}{target}"


def parse_interaction(value: str) -> tuple[str, str]:
    """Split an interaction string back into ``(source, target)``.

    Raises
    --
    ValueError
        If ``value`` does not contain exactly one separator.

    """
    parts = str(value).split(INTERACTION_SEPARATOR)
    if len(parts) != 2:
        raise ValueError(
            f"Cannot parse {value!r}: expected '<source>{INTERACTION_SEPARATOR}<target>'"
        )
    return parts[0], parts[1]


def flattened_node_name(name: str, layer_id: int) -> str:
    return f"{name}_{layer_id}"


def original_name(flattened_name: str) -> str:
    """Strip the ``_<layer>`` suffix of a flattened node name."""
    head, sep, _tail = str(flattened_name).rpartition("_")
    return head if sep else str(flattened_name)


def inter_edge_table_name(layer_id: int) -> str:
    """Name of the table holding the ``layer_id -> layer_id + 1`` coupling."""
    return f"{layer_id}->{layer_id + 1}_Inter-Edge"


def layer_network_name(layer_id: int, n_layers: int) -> str:
    """Zero-padded layer graph name, e.g. ``03_Layer`` for layer 3 of 12."""
    width = len(str(n_layers))
    return f"{str(layer_id).zfill(width)}_Layer"


def query_column_name(layer_id: int) -> str:
    return f"{QUERY_PREFIX}{layer_id}"
