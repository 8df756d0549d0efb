"""Shared fixtures and helpers for multilayer network tests."""

import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]  # project root
sys.path.insert(0, str(ROOT))

from layernet.core._GraphStore import GraphStore  # noqa: E402
from layernet.core.builder import MultilayerNetworkModel, TableType  # noqa: E402
from layernet.core.columns import ColumnType  # noqa: E402
from layernet.core.graph import MlnGraph  # noqa: E402

# ======================================================================
# HELPERS
# ======================================================================


def build_model(nodes, intra, inter=None, node_columns=None):
    """Model from plain lists.

    ``nodes`` holds the node names of each layer; ``intra`` / ``inter`` hold,
    per layer (per coupling), ``(source, target, weight, directed)`` tuples.
    ``node_columns`` maps a column name to its per-layer value lists.
    """
    n = len(nodes)
    inter = inter if inter is not None else [[] for _ in range(n - 1)]
    model = MultilayerNetworkModel(n)
    for k, names in enumerate(nodes):
        model.add_node_column(TableType.NODE, k, names)
        model.add_weight(TableType.NODE, k, [1.0] * len(names))
    for name, per_layer in (node_columns or {}).items():
        ctype = ColumnType.infer(v for values in per_layer for v in values)
        for k, values in enumerate(per_layer):
            model.add_other_column(TableType.NODE, k, name, ctype, values)
    for table, layers in ((TableType.INTRA_EDGE, intra), (TableType.INTER_EDGE, inter)):
        for k, rows in enumerate(layers):
            model.add_source_column(table, k, [r[0] for r in rows])
            model.add_target_column(table, k, [r[1] for r in rows])
            model.add_weight(table, k, [r[2] for r in rows])
            model.add_direction(table, k, [r[3] for r in rows])
    return model


def edge_pairs(graph, names=True):
    """Set of ``(source, target)`` per edge, with vertex names when available."""
    label = graph.vertex_values("name") if names and "name" in graph.vertex_columns() else {}
    return {
        (label.get(s, s), label.get(t, t)) for s, t in (graph.get_edge(e) for e in graph.edges())
    }


def undirected_adjacency(graph):
    return {frozenset(graph.get_edge(e)) for e in graph.edges()}


# ======================================================================
# FIXTURES
# ======================================================================


@pytest.fixture
def store():
    return GraphStore()


@pytest.fixture
def two_layer_model():
    """Layers ``[a, b]`` and ``[a, c]``; ``a -> b`` in layer 1; coupling ``a(1) -> a(2)``."""
    return build_model(
        nodes=[["a", "b"], ["a", "c"]],
        intra=[[("a", "b", 1.0, True)], []],
        inter=[[("a", "a", 1.0, True)]],
    )


@pytest.fixture
def three_layer_model():
    """Chain ``a - b - c`` in every layer, diagonal couplings; queries a (1), b (2), c (3)."""
    names = ["a", "b", "c"]
    return build_model(
        nodes=[names, names, names],
        intra=[[("a", "b", 1.0, False), ("b", "c", 1.0, False)] for _ in range(3)],
        inter=[[(n, n, 1.0, True) for n in names] for _ in range(2)],
        node_columns={
            "Query_1": [[True, False, False], [None] * 3, [None] * 3],
            "Query_2": [[None] * 3, [False, True, False], [None] * 3],
            "Query_3": [[None] * 3, [None] * 3, [False, False, True]],
        },
    )


@pytest.fixture
def multi_edge_graph():
    """Three undirected ``X - Y`` edges weighted 1, 2 and 3."""
    G = MlnGraph(name="multi")
    for w in (1.0, 2.0, 3.0):
        G.add_edge("X", "Y", edge_directed=False, Weight=w, Direction=False)
    G.set_vertex_values("name", {"X": "X", "Y": "Y"})
    return G


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
