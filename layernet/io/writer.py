"""Write a multilayer network: flattened graph, aggregated graph and per-layer views."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import polars as pl

from ..core.columns import ColumnType
from ..core.constants import (
    AGG_NETWORK,
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
    flattened_node_name,
    inter_edge_table_name,
    interaction_name,
    layer_network_name,
    original_name,
)
from ..core.errors import WriterError
from ..core.graph import MlnGraph
from .validator import validate_model

logger = logging.getLogger(__name__)


@dataclass
class LayeredCollection:
    """Per-layer graphs keyed by layer id plus the inter-layer edge tables keyed by name."""

    layers: dict[int, MlnGraph] = field(default_factory=dict)
    inter_edge_tables: dict[str, pl.DataFrame] = field(default_factory=dict)


@dataclass
class MultilayerNetwork:
    """Every projection of one multilayer network.

    Attributes
    --
    name : str
    flattened : MlnGraph
        Nodes ``<name>_<k>`` tagged with ``Layer ID``; edges tagged with
        ``Layer ID`` and ``Edge label``.
    aggregated : MlnGraph
        One node per original name, one undirected edge per unordered pair.
    layers : dict[int, MlnGraph]
        Layer graphs keyed by layer id.
    inter_edge_tables : dict[str, pl.DataFrame]
        ``"<k>-><k+1>_Inter-Edge"`` -> couplings of layer ``k``.

    """

    name: str
    flattened: MlnGraph
    aggregated: MlnGraph
    layers: dict[int, MlnGraph] = field(default_factory=dict)
    inter_edge_tables: dict[str, pl.DataFrame] = field(default_factory=dict)

    def layered_collection(self) -> LayeredCollection:
        return LayeredCollection(self.layers, self.inter_edge_tables)

    def graphs(self) -> list[MlnGraph]:
        return [self.flattened, self.aggregated, *self.layers.values()]


def _publish(graph: MlnGraph, store) -> MlnGraph:
    if store is not None and graph not in store:
        store.register(graph)
    return graph


def _new_graph(name: str, store=None, directed=None) -> MlnGraph:
    if store is not None:
        return store.create_graph(name, directed=directed)
    return MlnGraph(name=name, directed=directed)


class _ColumnAccumulator:
    """Collect ``{id: value}`` per column across layers, then write each column once."""

    def __init__(self):
        self.values: dict[str, dict] = {}
        self.types: dict[str, ColumnType] = {}

    def declare(self, name: str, ctype: ColumnType) -> None:
        if name not in self.types:
            self.types[name] = ctype
            self.values[name] = {}
        elif self.types[name] is not ctype:
            raise WriterError(
                f"The column '{name}' is declared as '{self.types[name].value}' and "
                f"'{ctype.value}' in different layers.",
                "Incompatible column types",
            )

    def put(self, name: str, ids, values) -> None:
        self.values[name].update(zip(ids, values))

    def write(self, setter) -> None:
        for name, ctype in self.types.items():
            setter(name, self.values[name], dtype=ctype)


def _layer_columns(acc: _ColumnAccumulator, layer, ids) -> None:
    if layer.weight is not None:
        acc.declare(WEIGHT, ColumnType.DOUBLE)
        acc.put(WEIGHT, ids, layer.weight.values())
    for col in layer.others.values():
        acc.declare(col.name, col.type)
        acc.put(col.name, ids, col.values())


def flatten(model, name: str = FLAT_NETWORK, store=None) -> MlnGraph:
    """Write a :class:`MultilayerNetworkModel` as one flattened graph.

    Parameters
    --
    model : MultilayerNetworkModel
    name : str, optional
        Name of the flattened graph.
    store : GraphStore, optional
        Registry to publish the graph into once complete.

    Returns
    ---
    MlnGraph
        Nodes named ``<name>_<k>``, edges named by their interaction string,
        ``Layer ID`` on nodes and edges, ``Edge label`` on edges.

    Raises
    --
    WriterError
        Duplicated node name within a layer, or an edge endpoint missing from
        its node layer. Nothing is published in that case.

    Notes
    -
    Structural orientation of every edge follows its ``Direction`` value.

    """
    graph = MlnGraph(name=name)
    graph.set_graph_attribute(IS_MLN, True)
    graph.set_graph_attribute(FLAT_NETWORK, True)

    nodes = _ColumnAccumulator()
    edges = _ColumnAccumulator()
    for acc in (nodes, edges):
        acc.declare(NAME, ColumnType.STRING)
        acc.declare(WEIGHT, ColumnType.DOUBLE)
        acc.declare(LAYER_ID, ColumnType.INT)
    edges.declare(DIRECTION, ColumnType.BOOL)
    edges.declare(EDGE_LABEL, ColumnType.STRING)

    # 1. Node layers
    per_layer: list[set] = []
    for k, layer in enumerate(model.node_layers, start=1):
        names = layer.node_names()
        seen = set(names)
        if len(seen) != len(names):
            raise WriterError(
                f"Node names are not unique within the layer {k}", "Duplicated node names"
            )
        per_layer.append(seen)
        ids = [flattened_node_name(n, k) for n in names]
        graph.add_vertices(ids)
        nodes.put(NAME, ids, ids)
        nodes.put(LAYER_ID, ids, [k] * len(ids))
        _layer_columns(nodes, layer, ids)

    def _resolve(node, k):
        if node not in per_layer[k - 1]:
            raise WriterError(
                f"Node name '{node}' is not contained by the layer {k}", "Node name not found"
            )
        return flattened_node_name(node, k)

    # 2. Intra-layer then inter-layer edges
    couplings = [(k, k, layer, INTRA_LABEL) for k, layer in enumerate(model.intra_edge_layers, 1)]
    couplings += [(k, k + 1, layer, INTER_LABEL) for k, layer in enumerate(model.inter_edge_layers, 1)]
    for src_layer, tgt_layer, layer, label in couplings:
        sources = [_resolve(s, src_layer) for s in layer.source_names()]
        targets = [_resolve(t, tgt_layer) for t in layer.target_names()]
        directions = layer.directions.values() if layer.directions is not None else []
        directions = [bool(d) for d in directions] + [False] * (len(sources) - len(directions))
        ids = graph.add_edges(zip(sources, targets, directions))
        edges.put(NAME, ids, [interaction_name(s, t) for s, t in zip(sources, targets)])
        edges.put(DIRECTION, ids, directions)
        edges.put(LAYER_ID, ids, [src_layer] * len(ids))
        edges.put(EDGE_LABEL, ids, [label] * len(ids))
        _layer_columns(edges, layer, ids)

    nodes.write(graph.set_vertex_values)
    edges.write(graph.set_edge_values)
    logger.info(
        "flattened %d layers into %d nodes and %d edges",
        model.n_layers,
        graph.number_of_vertices(),
        graph.number_of_edges(),
    )
    return _publish(graph, store)


def aggregate(flattened: MlnGraph, name: str = AGG_NETWORK, store=None) -> MlnGraph:
    """Collapse a flattened graph across layers.

    One node per original name carrying the sorted list of its layer ids; one
    undirected edge per unordered pair of original names found on intra-layer
    edges, carrying the layer id of each occurrence. Other attributes are not
    kept.

    Parameters
    --
    flattened : MlnGraph
    name : str, optional
    store : GraphStore, optional

    Returns
    ---
    MlnGraph

    """
    node_layers: dict[str, set] = {}
    node_ids = flattened.vertex_values(LAYER_ID)
    for vid, name_ in flattened.vertex_values(NAME).items():
        node_layers.setdefault(original_name(name_), set()).add(node_ids[vid])

    edge_layers: dict[tuple, list] = {}
    names = flattened.vertex_values(NAME)
    labels = flattened.edge_values(EDGE_LABEL)
    edge_ids = flattened.edge_values(LAYER_ID)
    for eid, label in labels.items():
        if label != INTRA_LABEL:
            continue
        source, target = flattened.get_edge(eid)
        pair = tuple(sorted((original_name(names[source]), original_name(names[target]))))
        edge_layers.setdefault(pair, []).append(edge_ids[eid])

    graph = _new_graph(name, store, directed=False)
    graph.set_graph_attribute(IS_MLN, True)
    graph.set_graph_attribute(AGG_NETWORK, True)
    ids = list(node_layers)
    graph.add_vertices(ids)
    eids = graph.add_edges((s, t, False) for s, t in edge_layers)

    graph.set_vertex_values(NAME, dict(zip(ids, ids)), dtype=ColumnType.STRING)
    graph.add_vertex_column(WEIGHT, ColumnType.DOUBLE)
    graph.set_vertex_values(
        LAYER_ID, {v: sorted(node_layers[v]) for v in ids}, dtype=ColumnType.INT_LIST
    )
    graph.set_edge_values(
        NAME,
        {eid: interaction_name(s, t) for eid, (s, t) in zip(eids, edge_layers)},
        dtype=ColumnType.STRING,
    )
    graph.add_edge_column(WEIGHT, ColumnType.DOUBLE)
    graph.set_edge_values(DIRECTION, {eid: False for eid in eids}, dtype=ColumnType.BOOL)
    graph.set_edge_values(
        LAYER_ID,
        {eid: sorted(layers) for eid, layers in zip(eids, edge_layers.values())},
        dtype=ColumnType.INT_LIST,
    )
    logger.debug("aggregated into %d nodes and %d edges", len(ids), len(eids))
    return graph


def select_layers(
    flattened: MlnGraph,
    layer_ids: Iterable[int],
    node_subset: Optional[Iterable[str]] = None,
    name: Optional[str] = None,
    store=None,
) -> MlnGraph:
    """Copy part of a flattened graph.

    Parameters
    --
    flattened : MlnGraph
    layer_ids : Iterable[int]
        Layers to keep.
    node_subset : Iterable[str], optional
        Flattened node names to keep (all when omitted), restricted to the kept layers.
    name : str, optional
        Name of the copy; the flattened graph name when omitted.
    store : GraphStore, optional

    Returns
    ---
    MlnGraph
        A flattened graph holding the kept nodes and the edges between them
        that are intra-layer within a kept layer, or inter-layer from a kept
        layer ``k`` with ``k + 1`` also kept. Every column is copied and the
        graph is flagged as flattened.

    """
    layers = set(int(k) for k in layer_ids)
    vdf = flattened.vertex_attributes.filter(pl.col(LAYER_ID).is_in(list(layers)))
    if node_subset is not None:
        wanted = set(node_subset)
        vdf = vdf.filter(pl.col(NAME).is_in(list(wanted)))
    edf = flattened.edge_attributes.filter(
        ((pl.col(EDGE_LABEL) == INTRA_LABEL) & pl.col(LAYER_ID).is_in(list(layers)))
        | (
            (pl.col(EDGE_LABEL) == INTER_LABEL)
            & pl.col(LAYER_ID).is_in(list(layers))
            & (pl.col(LAYER_ID) + 1).is_in(list(layers))
        )
    )
    graph = flattened.subgraph(
        vdf.get_column("vertex_id").to_list(),
        edf.get_column("edge_id").to_list(),
        name=name if name is not None else flattened.name,
    )
    graph.set_graph_attribute(IS_MLN, True)
    graph.set_graph_attribute(FLAT_NETWORK, True)
    logger.debug(
        "selected layers %s: %d nodes, %d edges",
        sorted(layers),
        graph.number_of_vertices(),
        graph.number_of_edges(),
    )
    return graph if store is None else store.register(graph)


def layer_networks(flattened: MlnGraph, layer_ids: Iterable[int], store=None) -> dict[int, MlnGraph]:
    """One graph per layer id: its nodes and its intra-layer edges.

    Vertex ids stay the flattened names; the ``name`` column holds the original
    names. Reserved columns are dropped, every other column is copied.
    """
    layer_ids = list(layer_ids)
    out = {}
    for k in layer_ids:
        vdf = flattened.vertex_attributes.filter(pl.col(LAYER_ID) == k)
        edf = flattened.edge_attributes.filter(
            (pl.col(LAYER_ID) == k) & (pl.col(EDGE_LABEL) == INTRA_LABEL)
        )
        graph = flattened.subgraph(
            vdf.get_column("vertex_id").to_list(),
            edf.get_column("edge_id").to_list(),
            name=layer_network_name(k, len(layer_ids)),
        )
        graph.vertex_attributes = graph.vertex_attributes.drop(
            [c for c in RESERVED_COLUMNS if c in graph.vertex_attributes.columns]
        ).with_columns(
            pl.col(NAME).str.replace(r"_[^_]*$", "")
        )
        graph.edge_attributes = graph.edge_attributes.drop(
            [c for c in RESERVED_COLUMNS if c in graph.edge_attributes.columns]
        )
        graph.set_graph_attribute(IS_MLN, True)
        graph.set_graph_attribute(LAYER_ID, k)
        out[k] = graph if store is None else store.register(graph)
    return out


def inter_edge_tables(flattened: MlnGraph, layer_ids: Iterable[int]) -> dict[str, pl.DataFrame]:
    """Inter-layer edges of each consecutive pair of ``layer_ids`` as DataFrames.

    Columns are ``Source`` and ``Target`` (original names) followed by every
    non-reserved edge column.
    """
    layer_ids = list(layer_ids)
    names = flattened.vertex_values(NAME)
    out = {}
    for k in layer_ids[:-1]:
        edf = flattened.edge_attributes.filter(
            (pl.col(LAYER_ID) == k) & (pl.col(EDGE_LABEL) == INTER_LABEL)
        )
        eids = edf.get_column("edge_id").to_list()
        ends = [flattened.get_edge(e) for e in eids]
        endpoints = pl.DataFrame(
            {
                SOURCE: pl.Series(SOURCE, [original_name(names[s]) for s, _ in ends], dtype=pl.Utf8),
                TARGET: pl.Series(TARGET, [original_name(names[t]) for _, t in ends], dtype=pl.Utf8),
            }
        )
        rest = edf.drop(["edge_id"] + [c for c in RESERVED_COLUMNS if c in edf.columns])
        out[inter_edge_table_name(k)] = pl.concat([endpoints, rest], how="horizontal")
    return out


def materialize_from_flattened(
    flattened: MlnGraph,
    layer_ids: Iterable[int],
    store=None,
    name: Optional[str] = None,
) -> MultilayerNetwork:
    """Derive the aggregated graph and the per-layer views of a flattened graph.

    Parameters
    --
    flattened : MlnGraph
    layer_ids : Iterable[int]
        Layers to expose as layer graphs and inter-layer tables.
    store : GraphStore, optional
        Every derived graph (and the flattened one if absent) is registered there.
    name : str, optional
        Name of the bundle; the flattened graph name when omitted.

    Returns
    ---
    MultilayerNetwork

    """
    layer_ids = sorted(int(k) for k in layer_ids)
    _publish(flattened, store)
    aggregated = aggregate(flattened, store=store)
    layers = layer_networks(flattened, layer_ids, store=store)
    tables = inter_edge_tables(flattened, layer_ids)
    return MultilayerNetwork(
        name=name if name is not None else (flattened.name or FLAT_NETWORK),
        flattened=flattened,
        aggregated=aggregated,
        layers=layers,
        inter_edge_tables=tables,
    )


def materialize(model, name: str = "Multi-layer network", store=None) -> MultilayerNetwork:
    """Validate ``model`` and write all of its projections.

    Raises
    --
    FormatError
        The model is malformed.
    WriterError
        A node is duplicated in a layer or an edge endpoint cannot be resolved.

    """
    validate_model(model)
    flattened = flatten(model)
    mln = materialize_from_flattened(flattened, range(1, model.n_layers + 1), store=store, name=name)
    logger.info("materialized multilayer network %r with %d layers", name, model.n_layers)
    return mln
