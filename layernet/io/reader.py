"""Read multilayer networks back: layer ids, models and rebuilt projections."""

from __future__ import annotations

import logging

import polars as pl

from ..core.builder import MultilayerNetworkModel, TableType
from ..core.columns import ColumnType
from ..core.constants import (
    DIRECTION,
    EDGE_LABEL,
    FLAT_NETWORK,
    INTER_LABEL,
    INTRA_LABEL,
    IS_MLN,
    LAYER_ID,
    NAME,
    RESERVED_COLUMNS,
    SOURCE,
    TARGET,
    WEIGHT,
    inter_edge_table_name,
    original_name,
)
from ..core.errors import BuilderError, FormatError
from .validator import (
    check_layer_ids,
    validate_flattened_graph,
    validate_layered_collection,
)
from .writer import materialize_from_flattened

logger = logging.getLogger(__name__)

_NODE_MAIN = {"vertex_id", NAME, WEIGHT} | RESERVED_COLUMNS
_EDGE_MAIN = {"edge_id", NAME, WEIGHT, DIRECTION, SOURCE, TARGET} | RESERVED_COLUMNS


def layer_ids_from_flattened(graph) -> list[int]:
    """Sorted distinct ``Layer ID`` values of the node table.

    Raises
    --
    FormatError
        If the column is absent or any node has no layer id.

    """
    df = graph.vertex_attributes
    if LAYER_ID not in df.columns or df.get_column(LAYER_ID).null_count():
        raise FormatError(
            f"Column '{LAYER_ID}' of the flattened network is expected to have a defined "
            "value in each cell.",
            "Naming convention of layer IDs is not respected",
        )
    return sorted(set(df.get_column(LAYER_ID).to_list()))


def layer_count_from_flattened(graph) -> int:
    """Number of layers of a flattened graph (its largest layer id)."""
    ids = layer_ids_from_flattened(graph)
    return ids[-1] if ids else 0


def _other_columns(df: pl.DataFrame, main: set) -> list[tuple[str, ColumnType, list]]:
    """Free columns of ``df`` with at least one defined value."""
    out = []
    for col, dtype in df.schema.items():
        if col in main or df.get_column(col).null_count() == df.height:
            continue
        try:
            ctype = ColumnType.from_polars(dtype)
        except ValueError as err:
            raise FormatError(
                f"The column '{col}' has the unsupported type {dtype}.",
                "Unsupported column type",
                cause=err,
            ) from err
        out.append((col, ctype, df.get_column(col).to_list()))
    return out


def _fill_edge_layer(model, table, index, sources, targets, df) -> None:
    model.add_source_column(table, index, sources)
    model.add_target_column(table, index, targets)
    weights = df.get_column(WEIGHT).to_list() if WEIGHT in df.columns else [None] * len(sources)
    model.add_weight(table, index, weights)
    directions = df.get_column(DIRECTION).to_list() if DIRECTION in df.columns else []
    model.add_direction(table, index, [bool(d) for d in directions])
    for col, ctype, values in _other_columns(df, _EDGE_MAIN):
        model.add_other_column(table, index, col, ctype, values)


def _fill_node_layer(model, index, names, df) -> None:
    model.add_node_column(TableType.NODE, index, names)
    model.add_weight(TableType.NODE, index, df.get_column(WEIGHT).to_list())
    for col, ctype, values in _other_columns(df, _NODE_MAIN):
        model.add_other_column(TableType.NODE, index, col, ctype, values)


def model_from_flattened(graph) -> MultilayerNetworkModel:
    """Read a flattened graph back into a model.

    Node names lose their ``_<k>`` suffix. Columns left undefined on a whole
    layer are not carried into that layer.

    Raises
    --
    FormatError
        The graph is not a valid flattened graph or its layer ids have gaps.

    """
    validate_flattened_graph(graph)
    ids = layer_ids_from_flattened(graph)
    check_layer_ids(ids)
    model = MultilayerNetworkModel(max(ids) if ids else 1)
    names = graph.vertex_values(NAME)
    nodes = graph.vertex_attributes
    edges = graph.edge_attributes
    try:
        for k in range(1, model.n_layers + 1):
            df = nodes.filter(pl.col(LAYER_ID) == k)
            _fill_node_layer(
                model, k - 1, [original_name(n) for n in df.get_column(NAME).to_list()], df
            )
            for table, label in ((TableType.INTRA_EDGE, INTRA_LABEL), (TableType.INTER_EDGE, INTER_LABEL)):
                if table is TableType.INTER_EDGE and k == model.n_layers:
                    continue
                edf = edges.filter((pl.col(LAYER_ID) == k) & (pl.col(EDGE_LABEL) == label))
                ends = [graph.get_edge(e) for e in edf.get_column("edge_id").to_list()]
                _fill_edge_layer(
                    model,
                    table,
                    k - 1,
                    [original_name(names[s]) for s, _ in ends],
                    [original_name(names[t]) for _, t in ends],
                    edf,
                )
    except BuilderError as err:
        raise FormatError(err.message, err.title, cause=err) from err
    logger.debug("read a %d-layer model from flattened graph %r", model.n_layers, graph.name)
    return model


def model_from_layered_collection(collection) -> MultilayerNetworkModel:
    """Read layer graphs and inter-layer tables back into a model.

    Raises
    --
    FormatError
        The collection does not pass :func:`validate_layered_collection`.

    """
    validate_layered_collection(collection)
    layers = collection.layers
    model = MultilayerNetworkModel(len(layers))
    try:
        for k in sorted(layers):
            graph = layers[k]
            nodes = graph.vertex_attributes
            _fill_node_layer(model, k - 1, [str(n) for n in nodes.get_column(NAME).to_list()], nodes)
            names = graph.vertex_values(NAME)
            edges = graph.edge_attributes
            ends = [graph.get_edge(e) for e in edges.get_column("edge_id").to_list()]
            _fill_edge_layer(
                model,
                TableType.INTRA_EDGE,
                k - 1,
                [names[s] for s, _ in ends],
                [names[t] for _, t in ends],
                edges,
            )
            if k < len(layers):
                table = collection.inter_edge_tables[inter_edge_table_name(k)]
                _fill_edge_layer(
                    model,
                    TableType.INTER_EDGE,
                    k - 1,
                    [str(s) for s in table.get_column(SOURCE).to_list()],
                    [str(t) for t in table.get_column(TARGET).to_list()],
                    table,
                )
    except BuilderError as err:
        raise FormatError(err.message, err.title, cause=err) from err
    return model


def build_from_flattened(graph, store=None):
    """Turn any graph shaped like a flattened network into a multilayer network.

    The graph is flagged as flattened, checked (format and per-layer name
    uniqueness), then the aggregated graph and per-layer views are derived
    for the layer ids found in its node table.

    Returns
    ---
    MultilayerNetwork

    """
    graph.set_graph_attribute(IS_MLN, True)
    graph.set_graph_attribute(FLAT_NETWORK, True)
    validate_flattened_graph(graph)
    layer_ids = layer_ids_from_flattened(graph)
    return materialize_from_flattened(graph, layer_ids, store=store)
