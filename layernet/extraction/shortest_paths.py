"""k-shortest simple paths between query sources and query targets, with networkx."""

from __future__ import annotations

import logging
import math
from itertools import islice
from typing import Iterator, Optional

import networkx as nx

from ..algorithms.edges import (
    aggregate_identically_directed_multi_edges,
    aggregate_undirected_multi_edges,
    has_multi_edges,
    set_as_directed,
    set_as_undirected,
)
from ..core.columns import ColumnType
from ..core.constants import DIRECTION, NAME
from ..core.errors import AppCallError
from .config import ShortestPathsConfig, WeightType
from .result import ExtractedNetwork
from .service import SubnetworkExtractionService

logger = logging.getLogger(__name__)

SCORE = "KSP_score"
RANK = "KSP_rank"

_SUPER_SOURCE = ("__layernet__", "source")
_SUPER_TARGET = ("__layernet__", "target")

MULTI_EDGES_MESSAGE = (
    "- The multi-layer network has multi-edges, but the k-shortest-paths service "
    "cannot process them (except for opposite edges within a directed network)."
)


class KShortestPathsService(SubnetworkExtractionService):
    """Rank the ``k`` cheapest simple paths from any query source to any query target.

    Paths are enumerated on a copy of the slice as a :class:`networkx.DiGraph`
    (undirected edges give both arcs) joined to a super source and a super
    sink, so one Yen enumeration covers every source/target pair.

    Edge cost depends on ``config.weight_type``:

    ``UNWEIGHTED``
        1 per edge;
    ``ADDITIVE``
        weight + penalty;
    ``PROBABILITIES``
        ``-log(weight)`` + penalty (edges of probability 0 are unusable).

    Missing weights count as 1.
    """

    name = "k-shortest-paths service"

    def __init__(self, config: Optional[ShortestPathsConfig] = None):
        self.config = config or ShortestPathsConfig()

    def __repr__(self) -> str:
        return f"KShortestPathsService(k={self.config.k}, directed={self.config.directed})"

    # Preconditions

    def _wrong_directions(self, graph) -> bool:
        directed = self.config.directed
        if graph.edge_column_dtype(DIRECTION) is None:
            return directed and graph.number_of_edges() > 0
        for value in graph.edge_values(DIRECTION).values():
            if bool(value) != directed:
                return True
        return False

    def _has_forbidden_multi_edges(self, graph) -> bool:
        if not self.config.directed:
            return has_multi_edges(graph)
        if graph.edge_column_dtype(DIRECTION) is None:
            return False
        seen = set()
        for eid, value in graph.edge_values(DIRECTION).items():
            if value:
                pair = graph.get_edge(eid)
                if pair in seen:
                    return True
                seen.add(pair)
        return False

    def check_preconditions(self, graph) -> Optional[str]:
        messages = []
        if self._wrong_directions(graph):
            if self.config.directed:
                messages.append(
                    "- The multi-layer network has undirected edges, while they are expected to be directed."
                )
            else:
                messages.append(
                    "- The multi-layer network has directed edges, while they are expected to be undirected."
                )
        if self._has_forbidden_multi_edges(graph):
            messages.append(MULTI_EDGES_MESSAGE)
        return "\n".join(messages) or None

    def normalize(self, graph, token=None) -> None:
        if self._wrong_directions(graph):
            if self.config.directed:
                set_as_directed(graph, token)
            else:
                set_as_undirected(graph, token)
        if self._has_forbidden_multi_edges(graph):
            if self.config.directed:
                aggregate_identically_directed_multi_edges(graph, token)
            else:
                aggregate_undirected_multi_edges(graph, token)

    # Extraction

    def _cost(self, weight) -> float:
        cfg = self.config
        if cfg.weight_type is WeightType.UNWEIGHTED:
            return 1.0
        weight = 1.0 if weight is None else float(weight)
        if cfg.weight_type is WeightType.ADDITIVE:
            if weight < 0:
                raise AppCallError(
                    f"Additive edge weights must be non-negative, got {weight}.",
                    "Invalid edge weights",
                )
            return weight + cfg.edge_penalty
        if weight > 1 or weight < 0:
            raise AppCallError(
                f"Edge probabilities must lie in [0, 1], got {weight}.",
                "Invalid edge weights",
            )
        if weight == 0:
            return math.inf
        return -math.log(weight) + cfg.edge_penalty

    def to_networkx(self, graph) -> nx.DiGraph:
        """Arc-weighted copy of ``graph`` keyed by vertex id (cheapest arc kept per pair)."""
        weights = (
            graph.edge_values(self.config.weight_column)
            if graph.edge_column_dtype(self.config.weight_column) is not None
            else {}
        )
        G = nx.DiGraph()
        G.add_nodes_from(graph.vertices())
        for eid in graph.edges():
            cost = self._cost(weights.get(eid))
            if math.isinf(cost):
                continue
            source, target = graph.get_edge(eid)
            arcs = [(source, target)]
            if not self.config.directed or not graph.is_directed_edge(eid):
                arcs.append((target, source))
            for u, v in arcs:
                if u == v:
                    continue
                if not G.has_edge(u, v) or G[u][v]["cost"] > cost:
                    G.add_edge(u, v, cost=cost)
        return G

    def _paths(self, G: nx.DiGraph, sources: set, targets: set) -> Iterator[list]:
        G.add_node(_SUPER_SOURCE)
        G.add_node(_SUPER_TARGET)
        for s in sources:
            G.add_edge(_SUPER_SOURCE, s, cost=0.0)
        for t in targets:
            G.add_edge(t, _SUPER_TARGET, cost=0.0)
        ends = sources | targets
        try:
            for path in nx.shortest_simple_paths(G, _SUPER_SOURCE, _SUPER_TARGET, weight="cost"):
                inner = path[1:-1]
                if not self.config.allow_sources_targets_in_paths and any(
                    node in ends for node in inner[1:-1]
                ):
                    continue
                yield inner
        except nx.NetworkXNoPath:
            return

    def _ranked(self, G: nx.DiGraph, sources: set, targets: set) -> list[tuple[list, float]]:
        def cost(path):
            return sum(G[u][v]["cost"] for u, v in zip(path, path[1:]))

        k = self.config.k
        ranked = [(p, cost(p)) for p in islice(self._paths(G, sources, targets), k)]
        if self.config.include_tied_paths and len(ranked) == k:
            last = ranked[-1][1]
            for path in self._paths(G, sources, targets):
                c = cost(path)
                if any(path == p for p, _ in ranked):
                    continue
                if not math.isclose(c, last):
                    if c > last:
                        break
                    continue
                ranked.append((path, c))
        return ranked

    def extract(self, graph, query_sources, query_targets, token=None) -> ExtractedNetwork:
        """Rank paths and report them as an :class:`ExtractedNetwork`.

        Nodes are the flattened names met on any path. Each edge carries the
        list of scores (``KSP_score``) and ranks (``KSP_rank``) of the paths
        using it; undirected extraction reports both orientations.

        Raises
        --
        AppCallError
            No query sources or targets in the slice, or no path at all.

        """
        if token is not None:
            token.raise_if_cancelled()
        names = graph.vertex_values(NAME) if graph.vertex_column_dtype(NAME) is not None else {}
        ids = {names.get(v) or v: v for v in graph.vertices()}
        sources = {ids[n] for n in query_sources if n in ids}
        targets = {ids[n] for n in query_targets if n in ids}
        missing = []
        if not sources:
            missing.append("Query-source nodes")
        if not targets:
            missing.append("Query-target nodes")
        if missing:
            raise AppCallError(
                f"The {self.name} was not called as some parameters are empty: {missing}",
                "Extraction aborted",
            ).add_context(missing=missing)

        G = self.to_networkx(graph)
        ranked = self._ranked(G, sources, targets)
        if not ranked:
            raise AppCallError(
                f"The {self.name} found no path between the query sources and targets.",
                "No data",
            )
        logger.debug("%d paths ranked on %r", len(ranked), graph.name)

        def label(v):
            return names.get(v) or v

        nodes: dict[str, None] = {}
        scores: dict[tuple, list] = {}
        ranks: dict[tuple, list] = {}
        for rank, (path, score) in enumerate(ranked, start=1):
            for v in path:
                nodes[label(v)] = None
            for u, v in zip(path, path[1:]):
                pairs = [(label(u), label(v))]
                if not self.config.directed:
                    pairs.append((label(v), label(u)))
                for pair in pairs:
                    scores.setdefault(pair, []).append(float(score))
                    ranks.setdefault(pair, []).append(rank)

        net = ExtractedNetwork(nodes, scores)
        net.add_edge_attribute(SCORE, list(scores.values()), ColumnType.DOUBLE_LIST)
        net.add_edge_attribute(RANK, list(ranks.values()), ColumnType.INT_LIST)
        return net
