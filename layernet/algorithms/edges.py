"""Edge direction and multi-edge normalisation.

The declared orientation of an edge is its ``Direction`` attribute (null reads
as undirected); the structural one is ``MlnGraph.is_directed_edge``. Rewrites
keep both in agreement: an edge whose structure disagrees is replaced by a
fresh edge carrying the same attribute row.

All operations accept an optional cancellation token (anything with a
``raise_if_cancelled()`` method) checked between nodes or batches.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Sequence

import numpy as np

from ..core.columns import ColumnType
from ..core.constants import (
    DIRECTION,
    EDGE_LABEL,
    INTRA_LABEL,
    NAME,
    WEIGHT,
    interaction_name,
)

logger = logging.getLogger(__name__)

# edges rewritten between two cancellation checks
_BATCH = 1000


def _check(token) -> None:
    if token is not None:
        token.raise_if_cancelled()


def _batches(items: list, size: Optional[int] = None):
    size = size or _BATCH
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _declared_directions(graph) -> dict[str, bool]:
    """``{edge_id: bool}`` from the ``Direction`` column, nulls as ``False``."""
    if graph.edge_column_dtype(DIRECTION) is None:
        return {eid: False for eid in graph.edges()}
    return {eid: bool(d) for eid, d in graph.edge_values(DIRECTION).items()}


# Edge direction


def reset_edge_direction(graph, edge_id: str, directed: bool) -> str:
    """Replace an edge by a copy with structural orientation ``directed``.

    Returns
    ---
    str
        Id of the new edge.

    """
    return _replace_edges(graph, [edge_id], directed)[edge_id]


def _replace_edges(graph, edge_ids: list, directed: bool) -> dict[str, str]:
    new_ids = graph.duplicate_edges(edge_ids, edge_directed=directed)
    graph.remove_edges(edge_ids)
    return dict(zip(edge_ids, new_ids))


def set_direction(graph, edges: Iterable[str], directed: bool, token=None) -> dict[str, str]:
    """Declare ``edges`` as (un)directed and align their structure.

    Edges are rewritten in batches of ``_BATCH`` with a cancellation check
    after each batch; a cancelled call leaves the earlier batches rewritten.

    Parameters
    --
    graph : MlnGraph
    edges : Iterable[str]
    directed : bool
    token : CancellationToken, optional

    Returns
    ---
    dict[str, str]
        ``{old_id: new_id}`` for the edges that had to be replaced.

    """
    _check(token)
    edges = list(dict.fromkeys(edges))
    replaced: dict[str, str] = {}
    for batch in _batches(edges):
        graph.set_edge_values(DIRECTION, {eid: bool(directed) for eid in batch}, dtype=ColumnType.BOOL)
        mismatched = [eid for eid in batch if graph.is_directed_edge(eid) != bool(directed)]
        if mismatched:
            replaced.update(_replace_edges(graph, mismatched, bool(directed)))
        _check(token)
    if edges:
        logger.debug("set %d edges as directed=%s (%d replaced)", len(edges), directed, len(replaced))
    return replaced


def _row_key(row: dict) -> tuple:
    return tuple(
        (k, tuple(v) if isinstance(v, list) else v)
        for k, v in sorted(row.items())
        if k not in ("edge_id", NAME)
    )


def _collapse_mirrors(graph) -> list[str]:
    """Drop ``v -> u`` edges that mirror a ``u -> v`` edge with the same attributes but name."""
    rows = {row["edge_id"]: _row_key(row) for row in graph.edge_attributes.iter_rows(named=True)}
    forward: dict[tuple, list] = {}
    for eid, (source, target) in graph.edge_definitions.items():
        if source != target:
            forward.setdefault((source, target, rows.get(eid)), []).append(eid)
    removed = set()
    for eid, (source, target) in graph.edge_definitions.items():
        if source == target or eid in removed:
            continue
        candidates = forward.get((target, source, rows.get(eid)), [])
        for other in candidates:
            if other not in removed and other != eid:
                removed.add(eid)
                candidates.remove(other)
                forward.get((source, target, rows.get(eid)), []).remove(eid)
                break
    if removed:
        graph.remove_edges(removed)
    return list(removed)


def set_as_undirected(graph, token=None, collapse_mirrors: bool = True) -> None:
    """Declare every edge undirected.

    With ``collapse_mirrors``, a pair ``u -> v`` / ``v -> u`` whose attribute
    rows only differ by name (the two halves written by
    :func:`set_as_directed`) is merged back into one edge.
    """
    set_direction(graph, graph.edges(), False, token)
    if collapse_mirrors:
        removed = _collapse_mirrors(graph)
        if removed:
            logger.debug("collapsed %d mirrored edges", len(removed))


def set_as_directed(graph, token=None) -> list[str]:
    """Declare every edge directed; undirected edges get a reverse twin.

    The twin copies the attribute row and is named
    ``"<target> (interacts with) <source>"`` after the vertex names.

    Returns
    ---
    list[str]
        Ids of the added reverse edges.

    """
    directions = _declared_directions(graph)
    undirected = [eid for eid in graph.edges() if not directions.get(eid)]
    if not undirected:
        _check(token)
        return []
    replaced = set_direction(graph, undirected, True, token)
    current = [replaced.get(eid, eid) for eid in undirected]
    names = (
        graph.vertex_values(NAME)
        if graph.vertex_column_dtype(NAME) is not None
        else {v: v for v in graph.vertices()}
    )
    twins = []
    for batch in _batches(current):
        added = graph.duplicate_edges(batch, reverse=True, edge_directed=True)
        labels = {}
        for eid in added:
            source, target = graph.get_edge(eid)
            labels[eid] = interaction_name(names.get(source) or source, names.get(target) or target)
        graph.set_edge_values(NAME, labels, dtype=ColumnType.STRING)
        twins.extend(added)
        _check(token)
    logger.debug("duplicated %d undirected edges into reverse twins", len(twins))
    return twins


def directed_intra_layer_edges(graph) -> list[str]:
    """Edges declared directed and labelled ``intra-layer``."""
    directions = _declared_directions(graph)
    if graph.edge_column_dtype(EDGE_LABEL) is None:
        return []
    return [
        eid
        for eid, label in graph.edge_values(EDGE_LABEL).items()
        if label == INTRA_LABEL and directions.get(eid)
    ]


# Multi-edges


def has_multi_edges(graph) -> bool:
    """True if two edges join the same pair of vertices, whatever their orientation."""
    if graph.number_of_edges() < 2:
        return False
    return graph.multiplicity_matrix().max() > 1


def aggregated_weight(graph, edges: Sequence[str], weights: Optional[dict] = None) -> float:
    """Sum of the non-null weights of ``edges`` divided by their count (0 if empty)."""
    if not edges:
        return 0.0
    if weights is None:
        weights = graph.edge_values(WEIGHT) if graph.edge_column_dtype(WEIGHT) is not None else {}
    values = np.array([weights.get(eid) for eid in edges], dtype=float)
    return float(np.nansum(values) / len(edges))


class EdgeState:
    """Live view of a graph while its multi-edges are being merged.

    Classifiers read declared directions and connecting edges through it, so
    the merges done so far are visible without touching the attribute tables.
    """

    def __init__(self, graph):
        self.graph = graph
        self.directions = _declared_directions(graph)
        self.weights = (
            graph.edge_values(WEIGHT) if graph.edge_column_dtype(WEIGHT) is not None else {}
        )
        self.removed: set = set()
        self.new_weights: dict = {}
        self.new_directions: dict = {}

    def connecting(self, u, v) -> list[str]:
        return [e for e in self.graph.connecting_edges(u, v) if e not in self.removed]

    def incident(self, u) -> list[str]:
        return [e for e in self.graph.incident_edges(u) if e not in self.removed]

    def neighbors(self, u) -> list[str]:
        out = {}
        for eid in self.incident(u):
            source, target = self.graph.get_edge(eid)
            out[target if source == u else source] = None
        return list(out)

    def is_directed(self, eid) -> bool:
        return self.directions.get(eid, False)

    def source(self, eid):
        return self.graph.get_edge(eid)[0]

    def merge(self, edges: list, directed: bool) -> str:
        """Keep ``edges[0]`` with the averaged weight and ``directed``; drop the rest."""
        kept = edges[0]
        weight = aggregated_weight(self.graph, edges, self.weights)
        self.weights[kept] = weight
        self.new_weights[kept] = weight
        self.directions[kept] = directed
        self.new_directions[kept] = directed
        self.removed.update(edges[1:])
        return kept


Classifier = Callable[[EdgeState, str, str], list]


def undirected_multi_edges(state: EdgeState, node, neighbor) -> list[str]:
    """Undirected edges of the pair."""
    return [e for e in state.connecting(node, neighbor) if not state.is_directed(e)]


def mixed_multi_edges(state: EdgeState, node, neighbor) -> list[str]:
    """Every edge of the pair, provided one of them is undirected."""
    edges = state.connecting(node, neighbor)
    if any(not state.is_directed(e) for e in edges):
        return edges
    return []


def opposite_directed_multi_edges(state: EdgeState, node, neighbor) -> list[str]:
    """Every edge of the pair, provided two directed edges point in opposite ways."""
    edges = state.connecting(node, neighbor)
    sources = {state.source(e) for e in edges if state.is_directed(e)}
    return edges if len(sources) > 1 else []


def outgoing_directed_multi_edges(state: EdgeState, node, neighbor) -> list[str]:
    """Directed edges of the pair whose source is ``node``."""
    return [
        e
        for e in state.connecting(node, neighbor)
        if state.is_directed(e) and state.source(e) == node
    ]


def incoming_directed_multi_edges(state: EdgeState, node, neighbor) -> list[str]:
    """Directed edges of the pair whose source is ``neighbor``."""
    return [
        e
        for e in state.connecting(node, neighbor)
        if state.is_directed(e) and state.source(e) == neighbor
    ]


def aggregate_multi_edges(
    graph,
    classifiers: Sequence[Classifier],
    output_directed: Sequence[bool],
    token=None,
) -> int:
    """Merge parallel edges selected by ``classifiers``.

    For each vertex with more live edges than neighbours, each classifier is
    applied in turn to every (vertex, neighbour) pair; when it selects two edges
    or more, the first one is kept with the average weight and the declared
    orientation ``output_directed[i]``, and the others are removed. Other
    attributes of the kept edge are left as they were.

    Parameters
    --
    graph : MlnGraph
    classifiers : Sequence[Classifier]
        ``classifier(state, node, neighbor) -> list[edge_id]``.
    output_directed : Sequence[bool]
        One orientation per classifier.
    token : CancellationToken, optional
        Checked before each vertex.

    Returns
    ---
    int
        Number of edges removed.

    Raises
    --
    ValueError
        If the two sequences differ in length.

    """
    if len(classifiers) != len(output_directed):
        raise ValueError("classifiers and output_directed must have the same length")
    state = EdgeState(graph)
    for node in graph.vertices():
        _check(token)
        neighbors = state.neighbors(node)
        if len(neighbors) >= len(state.incident(node)):
            continue
        for neighbor in neighbors:
            for classify, directed in zip(classifiers, output_directed):
                selected = classify(state, node, neighbor)
                if len(selected) > 1:
                    state.merge(selected, bool(directed))

    _check(token)
    if state.removed:
        graph.remove_edges(state.removed)
    kept_weights = {e: w for e, w in state.new_weights.items() if e not in state.removed}
    if kept_weights:
        graph.set_edge_values(WEIGHT, kept_weights, dtype=ColumnType.DOUBLE)
    kept_directions = {e: d for e, d in state.new_directions.items() if e not in state.removed}
    for directed in (True, False):
        edges = [e for e, d in kept_directions.items() if d is directed]
        if edges:
            set_direction(graph, edges, directed)
    logger.debug("merged multi-edges: %d edges removed", len(state.removed))
    return len(state.removed)


def aggregate_undirected_multi_edges(graph, token=None) -> int:
    return aggregate_multi_edges(graph, [undirected_multi_edges], [False], token)


def aggregate_identically_directed_multi_edges(graph, token=None) -> int:
    return aggregate_multi_edges(
        graph,
        [incoming_directed_multi_edges, outgoing_directed_multi_edges],
        [True, True],
        token,
    )


def aggregate_mixed_multi_edges(graph, token=None) -> int:
    """Reduce every pair to one edge: undirected when mixed or opposite, directed otherwise."""
    return aggregate_multi_edges(
        graph,
        [
            mixed_multi_edges,
            opposite_directed_multi_edges,
            incoming_directed_multi_edges,
            outgoing_directed_multi_edges,
        ],
        [False, False, True, True],
        token,
    )
