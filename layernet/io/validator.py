"""Structural checks run before any conversion reads a multilayer network.

Column problems (missing or mistyped columns, duplicated names, undefined
labels) are collected and reported together in one :class:`FormatError`.
Layer-ID contiguity and inter-layer table naming abort at the first violation.
"""

from __future__ import annotations

import logging

import polars as pl

from ..core.columns import ColumnType
from ..core.constants import (
    AGG_NETWORK,
    DIRECTION,
    EDGE_LABEL,
    EDGE_LABELS,
    FLAT_NETWORK,
    IS_MLN,
    LAYER_ID,
    NAME,
    SOURCE,
    TARGET,
    WEIGHT,
    inter_edge_table_name,
)
from ..core.errors import FormatError

logger = logging.getLogger(__name__)

_TYPE_LABELS = {
    ColumnType.STRING: "String",
    ColumnType.DOUBLE: "Double",
    ColumnType.BOOL: "Boolean",
    ColumnType.INT: "Integer",
    ColumnType.INT_LIST: "List of Integer",
}


def _column_type(dtype):
    if dtype is None:
        return None
    try:
        return ColumnType.from_polars(dtype)
    except ValueError:
        return None


def _check_column(schema, column, expected, where, missing, invalid):
    """Append to ``missing`` / ``invalid`` when ``column`` is absent or mistyped."""
    if column not in schema:
        missing.append(f"'{column}' in {where}")
    elif _column_type(schema[column]) is not expected:
        invalid.append(f"'{column}' in {where} is not of type '{_TYPE_LABELS[expected]}'")


def _main_column_problems(graph, edge_where="(intra-layer) edge table"):
    """Missing and invalid main columns of a graph: node name/weight, edge name/weight/direction."""
    missing, invalid = [], []
    vs, es = graph.vertex_attributes.schema, graph.edge_attributes.schema
    _check_column(vs, NAME, ColumnType.STRING, "node table", missing, invalid)
    _check_column(vs, WEIGHT, ColumnType.DOUBLE, "node table", missing, invalid)
    _check_column(es, NAME, ColumnType.STRING, edge_where, missing, invalid)
    _check_column(es, WEIGHT, ColumnType.DOUBLE, edge_where, missing, invalid)
    _check_column(es, DIRECTION, ColumnType.BOOL, edge_where, missing, invalid)
    return missing, invalid


def _raise_problems(missing, invalid, other, subject, title):
    problems = []
    if missing:
        problems.append(f"The following columns were not found {subject}: {missing}")
    if invalid:
        problems.append(f"The following columns do not have a valid type {subject}: {invalid}")
    problems.extend(other)
    if problems:
        raise FormatError("\n".join(problems), title, problems=problems)


def _duplicates(values):
    seen, dup = set(), []
    for v in values:
        if v in seen and v not in dup:
            dup.append(v)
        seen.add(v)
    return dup


def _is_flagged(graph, flag) -> bool:
    return bool(graph.get_graph_attribute(IS_MLN)) and bool(graph.get_graph_attribute(flag))


def check_layer_ids(layer_ids) -> None:
    """Layer IDs must read ``1, 2, ..., N``. Fails on the first gap.

    Raises
    --
    FormatError
        Naming convention of layer IDs is not respected.

    """
    for expected, layer_id in enumerate(sorted(layer_ids), start=1):
        if layer_id != expected:
            raise FormatError(
                f"The layer ID '{layer_id}' is expected to be '{expected}'.\n\n"
                "Layer ID must be such as an ID of '1' means that the layer is the 1st layer "
                "which is directly followed by the layers 2, 3 and so on, until the last layer, "
                "without gaps.",
                "Naming convention of layer IDs is not respected",
            )


def validate_layered_collection(collection) -> None:
    """Check a :class:`~layernet.io.writer.LayeredCollection`.

    Parameters
    --
    collection : LayeredCollection
        ``layers`` maps layer id to layer graph, ``inter_edge_tables`` maps
        ``"<k>-><k+1>_Inter-Edge"`` to a polars DataFrame.

    Raises
    --
    FormatError
        - immediately, for an empty collection, non-contiguous layer IDs or a
          missing inter-layer edge table;
        - with every problem listed, for missing or mistyped columns and for
          duplicated node names within a layer.

    """
    layers = collection.layers
    if not layers:
        raise FormatError(
            "No network-layers were identified within the selected multi-layer network.",
            "No layers within the multi-layer network",
        )
    check_layer_ids(layers.keys())

    n = len(layers)
    tables = collection.inter_edge_tables
    for layer_id in sorted(layers):
        expected = []
        if layer_id > 1:
            expected.append(inter_edge_table_name(layer_id - 1))
        if layer_id < n:
            expected.append(inter_edge_table_name(layer_id))
        absent = [name for name in expected if name not in tables]
        if absent:
            raise FormatError(
                f"No inter-layer edge table for the layer ID '{layer_id}' was found, "
                f"while it is expected to be '{' and '.join(expected)}'.\n\n"
                "Names of inter-layer edge tables must follow the rule: "
                "[layer N]->[layer N+1]_Inter-Edge.",
                "Naming convention of the inter-layer edge table is not respected",
            )

    missing, invalid, other = [], [], []
    for layer_id in sorted(layers):
        graph = layers[layer_id]
        m, i = _main_column_problems(graph)
        missing.extend(f"{p} of layer {layer_id}" for p in m)
        invalid.extend(f"{p} of layer {layer_id}" for p in i)
        if layer_id < n:
            table = tables[inter_edge_table_name(layer_id)]
            schema = table.schema
            where = f"inter-layer edge table {inter_edge_table_name(layer_id)}"
            _check_column(schema, SOURCE, ColumnType.STRING, where, missing, invalid)
            _check_column(schema, TARGET, ColumnType.STRING, where, missing, invalid)
            _check_column(schema, NAME, ColumnType.STRING, where, missing, invalid)
            _check_column(schema, WEIGHT, ColumnType.DOUBLE, where, missing, invalid)
            _check_column(schema, DIRECTION, ColumnType.BOOL, where, missing, invalid)
        if NAME in graph.vertex_attributes.columns:
            names = graph.vertex_attributes.get_column(NAME).to_list()
            dup = _duplicates(names)
            if dup:
                other.append(f"Some node names are duplicated within the layer {layer_id}: {dup}")
    _raise_problems(
        missing,
        invalid,
        other,
        "within the layers",
        "Format of the tables related to layers is not valid",
    )
    logger.debug("layered collection with %d layers is valid", n)


def validate_flattened_graph(graph) -> None:
    """Check a flattened graph.

    Raises
    --
    FormatError
        Immediately when the graph is not flagged as flattened or when the node
        layer ids are not exactly ``1..N``; otherwise with every problem found:
        main columns, ``Layer ID`` (int) on nodes and edges, ``Edge label``
        fully populated with ``intra-layer`` / ``inter-layer``, undefined layer
        ids, names duplicated within a layer.

    """
    if not _is_flagged(graph, FLAT_NETWORK):
        raise FormatError(
            "Current network was not recognized as flattened network.\n\n"
            f"Flattened network should have the graph attributes '{IS_MLN}' and "
            f"'{FLAT_NETWORK}' set as True.",
            "Unknown flattened network",
        )
    nodes = graph.vertex_attributes
    if LAYER_ID in nodes.columns and nodes.schema[LAYER_ID].is_integer():
        check_layer_ids(set(nodes.get_column(LAYER_ID).drop_nulls().to_list()))

    missing, invalid = _main_column_problems(graph, "edge table")
    other = []
    vs, es = graph.vertex_attributes.schema, graph.edge_attributes.schema
    _check_column(vs, LAYER_ID, ColumnType.INT, "node table", missing, invalid)
    _check_column(es, LAYER_ID, ColumnType.INT, "edge table", missing, invalid)
    _check_column(es, EDGE_LABEL, ColumnType.STRING, "edge table", missing, invalid)

    if not missing and not invalid:
        edges = graph.edge_attributes
        labels = edges.get_column(EDGE_LABEL)
        if labels.null_count():
            other.append(
                f"Column '{EDGE_LABEL}' of the flattened network is expected to have "
                "a defined value in each cell."
            )
        unknown = sorted(set(labels.drop_nulls().to_list()) - set(EDGE_LABELS))
        if unknown:
            other.append(
                f"Column '{EDGE_LABEL}' of the flattened network should only contain "
                f"the values 'inter-layer' or 'intra-layer', found {unknown}."
            )
        nodes = graph.vertex_attributes
        if nodes.get_column(LAYER_ID).null_count():
            other.append(f"Some nodes have no '{LAYER_ID}'.")
        if edges.get_column(LAYER_ID).null_count():
            other.append(f"Some edges have no '{LAYER_ID}'.")
        dup = (
            nodes.drop_nulls(LAYER_ID)
            .group_by(LAYER_ID, NAME)
            .len()
            .filter(pl.col("len") > 1)
            .sort(LAYER_ID, NAME)
        )
        for layer_id, name, _count in dup.iter_rows():
            other.append(
                f"The node name '{name}' is duplicated within the layer {layer_id} "
                "of the flattened network."
            )
    _raise_problems(
        missing,
        invalid,
        other,
        "for the flattened network",
        "Format of the tables related to flattened network is not valid",
    )


def validate_aggregated_graph(graph) -> None:
    """Check an aggregated graph (list-of-int ``Layer ID`` on nodes and edges).

    Raises
    --
    FormatError
        Immediately when the graph is not flagged as aggregated, otherwise with
        every problem found.

    """
    if not _is_flagged(graph, AGG_NETWORK):
        raise FormatError(
            "Current network was not recognized as aggregated network.\n\n"
            f"Aggregated network should have the graph attributes '{IS_MLN}' and "
            f"'{AGG_NETWORK}' set as True.",
            "Unknown aggregated network",
        )
    missing, invalid = _main_column_problems(graph, "edge table")
    other = []
    vs, es = graph.vertex_attributes.schema, graph.edge_attributes.schema
    _check_column(vs, LAYER_ID, ColumnType.INT_LIST, "node table", missing, invalid)
    _check_column(es, LAYER_ID, ColumnType.INT_LIST, "edge table", missing, invalid)
    if not missing and not invalid:
        for kind, df in (("nodes", graph.vertex_attributes), ("edges", graph.edge_attributes)):
            if df.get_column(LAYER_ID).null_count():
                other.append(f"Some {kind} have no '{LAYER_ID}'.")
        dup = _duplicates(graph.vertex_attributes.get_column(NAME).to_list())
        if dup:
            other.append(
                f"The node names {dup} are duplicated within the aggregated network, "
                "regardless the layer."
            )
    _raise_problems(
        missing,
        invalid,
        other,
        "for the aggregated network",
        "Format of the tables related to aggregated network is not valid",
    )


def validate_model(model) -> None:
    """Check a :class:`~layernet.core.builder.MultilayerNetworkModel` before writing it.

    Every problem is listed: layer counts, required columns, unequal column
    lengths within a layer and duplicated node names within a layer.

    Raises
    --
    FormatError

    """
    n = model.n_layers
    problems = []
    counts = (
        ("node", model.node_layers, n),
        ("intra-layer edge", model.intra_edge_layers, n),
        ("inter-layer edge", model.inter_edge_layers, n - 1),
    )
    for label, layers, expected in counts:
        if len(layers) != expected:
            problems.append(f"Expected {expected} {label} layers, found {len(layers)}.")

    for k, layer in enumerate(model.node_layers, start=1):
        if layer.names is None:
            problems.append(f"Node layer {k} has no node name column.")
        if layer.weight is None:
            problems.append(f"Node layer {k} has no weight column.")
        dup = _duplicates(layer.node_names())
        if dup:
            problems.append(f"Some node names are duplicated within the layer {k}: {dup}")

    edge_layers = [("intra-layer", k, layer) for k, layer in enumerate(model.intra_edge_layers, start=1)]
    edge_layers += [("inter-layer", k, layer) for k, layer in enumerate(model.inter_edge_layers, start=1)]
    for label, k, layer in edge_layers:
        for attr, what in (
            ("sources", "source"),
            ("targets", "target"),
            ("weight", "weight"),
            ("directions", "direction"),
        ):
            if getattr(layer, attr) is None:
                problems.append(f"The {label} edge layer {k} has no {what} column.")

    node_layers = [("node", k, layer) for k, layer in enumerate(model.node_layers, start=1)]
    for label, k, layer in node_layers + edge_layers:
        lengths = layer.column_lengths()
        if len(set(lengths.values())) > 1:
            problems.append(f"Columns of the {label} layer {k} have different lengths: {lengths}")

    if problems:
        raise FormatError(
            "\n".join(problems), "Multi-layer network model is not valid", problems=problems
        )
