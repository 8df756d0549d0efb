"""Slicing strategies and the query / attribute plumbing shared by every extraction."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import polars as pl

from ..core.columns import ColumnType
from ..core.constants import IS_QUERY, LAYER_ID, NAME
from ..core.errors import ExtractionError, MlnWarning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slice:
    """Layers handed to one service call and where its query nodes come from."""

    layers: tuple[int, ...]
    source_layer: int
    target_layer: int


class ExtractionStrategy(str, Enum):
    """How the flattened graph is cut before calling the service.

    ``GLOBAL``
        one slice with every layer, sources from the first, targets from the last;
    ``PAIRWISE``
        one slice per consecutive pair ``(k, k+1)``;
    ``ONE_BY_ONE``
        one slice per layer, sources and targets from the same layer.
    """

    GLOBAL = "global"
    PAIRWISE = "pairwise"
    ONE_BY_ONE = "one_by_one"

    def plan(self, layer_ids: Iterable[int]) -> list[Slice]:
        ids = [int(k) for k in layer_ids]
        if not ids:
            return []
        if self is ExtractionStrategy.GLOBAL:
            return [Slice(tuple(ids), ids[0], ids[-1])]
        if self is ExtractionStrategy.PAIRWISE:
            if len(ids) == 1:
                return [Slice((ids[0],), ids[0], ids[0])]
            return [Slice((a, b), a, b) for a, b in zip(ids, ids[1:])]
        return [Slice((k,), k, k) for k in ids]


def check_layer_list(layer_ids: Iterable[int]) -> None:
    """Ensure ``layer_ids`` is an ascending run of consecutive integers.

    Raises
    --
    ExtractionError
        Otherwise, before anything has been materialised.

    """
    ids = list(layer_ids)
    for previous, current in zip(ids, ids[1:]):
        if current != previous + 1:
            raise ExtractionError(
                "The extraction cannot work on a non-continuous layer list: "
                f"{ids} (expected consecutive ascending layer IDs).",
                "Extraction failure",
            ).add_context(layer_ids=ids)


def query_nodes(graph, layer_id: int, column: str) -> dict[str, Optional[str]]:
    """Query nodes of one layer read from ``column``.

    Returns
    ---
    dict[str, Optional[str]]
        Flattened node name -> target hint. Boolean cells set to ``True`` give
        ``None``; non-empty string cells give the string itself. Empty when
        the column does not exist.

    """
    df = graph.vertex_attributes
    if column not in df.columns:
        return {}
    rows = df.filter(pl.col(LAYER_ID) == layer_id).select(NAME, column)
    ctype = ColumnType.from_polars(df.schema[column])
    out: dict[str, Optional[str]] = {}
    for name, value in rows.iter_rows():
        if name is None:
            continue
        if ctype is ColumnType.BOOL and value is True:
            out[name] = None
        elif ctype is ColumnType.STRING and value:
            out[name] = value
    return out


def add_is_query_column(graph, names: Iterable[str]) -> bool:
    """Create the boolean ``isQuery`` column from a set of flattened node names.

    Returns
    ---
    bool
        ``False`` when the column already existed and was left untouched.

    """
    if graph.vertex_column_dtype(IS_QUERY) is not None:
        warnings.warn(
            f"The column '{IS_QUERY}' already exists; query nodes are not marked.",
            MlnWarning,
            stacklevel=2,
        )
        return False
    wanted = set(names)
    graph.vertex_attributes = graph.vertex_attributes.with_columns(
        pl.col(NAME).is_in(list(wanted)).fill_null(False).alias(IS_QUERY)
    )
    return True


def merge_attributes(extracted, graph) -> None:
    """Write the attributes of an :class:`ExtractedNetwork` onto ``graph``.

    Nodes are matched on the ``name`` column and edges on the names of their
    endpoints (structural source first). Names absent from ``graph`` are
    skipped; columns missing from ``graph`` are created with the extracted type.
    """
    by_name: dict[str, list] = {}
    for vid, name in graph.vertex_values(NAME).items():
        by_name.setdefault(name, []).append(vid)

    for attr in extracted.node_attribute_names():
        ctype = extracted.node_attribute_type(attr)
        values = extracted.node_attribute(attr)
        if graph.vertex_column_dtype(attr) is None:
            graph.add_vertex_column(attr, ctype.to_polars())
        mapping = {}
        for node, value in zip(extracted.nodes, values):
            for vid in by_name.get(node, ()):
                mapping[vid] = value
        if mapping:
            graph.set_vertex_values(attr, mapping, dtype=graph.vertex_column_dtype(attr))

    for attr in extracted.edge_attribute_names():
        ctype = extracted.edge_attribute_type(attr)
        values = extracted.edge_attribute(attr)
        if graph.edge_column_dtype(attr) is None:
            graph.add_edge_column(attr, ctype.to_polars())
        mapping = {}
        for (source, target), value in zip(extracted.edges, values):
            for u in by_name.get(source, ()):
                for v in by_name.get(target, ()):
                    for eid in graph.connecting_edges(u, v):
                        if graph.get_edge(eid)[0] == u:
                            mapping[eid] = value
        if mapping:
            graph.set_edge_values(attr, mapping, dtype=graph.edge_column_dtype(attr))
    logger.debug(
        "merged %d node and %d edge attributes into %r",
        len(extracted.node_attribute_names()),
        len(extracted.edge_attribute_names()),
        graph.name,
    )
