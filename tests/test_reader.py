# test_reader.py
import polars as pl
import pytest

from conftest import build_model
from layernet.core.columns import ColumnType
from layernet.core.constants import (
    AGG_NETWORK,
    DIRECTION,
    EDGE_LABEL,
    FLAT_NETWORK,
    INTER_LABEL,
    INTRA_LABEL,
    LAYER_ID,
    NAME,
    WEIGHT,
)
from layernet.core.errors import FormatError
from layernet.core.graph import MlnGraph
from layernet.io.reader import (
    build_from_flattened,
    layer_count_from_flattened,
    layer_ids_from_flattened,
    model_from_flattened,
    model_from_layered_collection,
)
from layernet.io.writer import flatten, materialize


def _hand_made_flattened():
    """Two layers ``x - y`` / ``x`` with one coupling, built without the writer."""
    g = MlnGraph(name="by hand")
    g.add_vertices(["x_1", "y_1", "x_2"])
    g.set_vertex_values(NAME, {v: v for v in g.vertices()}, dtype=ColumnType.STRING)
    g.set_vertex_values(WEIGHT, {v: 1.0 for v in g.vertices()}, dtype=ColumnType.DOUBLE)
    g.set_vertex_values(LAYER_ID, {"x_1": 1, "y_1": 1, "x_2": 2}, dtype=ColumnType.INT)
    intra = g.add_edge("x_1", "y_1", edge_directed=False)
    inter = g.add_edge("x_1", "x_2", edge_directed=True)
    g.set_edge_values(NAME, {intra: "x_1 (interacts with) y_1", inter: "x_1 (interacts with) x_2"})
    g.set_edge_values(WEIGHT, {intra: 0.5, inter: 1.0}, dtype=ColumnType.DOUBLE)
    g.set_edge_values(DIRECTION, {intra: False, inter: True}, dtype=ColumnType.BOOL)
    g.set_edge_values(LAYER_ID, {intra: 1, inter: 1}, dtype=ColumnType.INT)
    g.set_edge_values(EDGE_LABEL, {intra: INTRA_LABEL, inter: INTER_LABEL})
    return g


class TestLayerIds:
    def test_from_flattened(self, three_layer_model):
        g = flatten(three_layer_model)
        assert layer_ids_from_flattened(g) == [1, 2, 3]
        assert layer_count_from_flattened(g) == 3

    def test_null_layer_id(self, two_layer_model):
        g = flatten(two_layer_model)
        g.set_vertex_attrs("c_2", **{LAYER_ID: None})
        with pytest.raises(FormatError) as ctx:
            layer_ids_from_flattened(g)
        assert ctx.value.title == "Naming convention of layer IDs is not respected"

    def test_missing_column(self):
        with pytest.raises(FormatError):
            layer_ids_from_flattened(MlnGraph())


class TestModelFromFlattened:
    def test_roundtrip(self, two_layer_model):
        model = model_from_flattened(flatten(two_layer_model))
        assert model.n_layers == 2
        assert model.node_names() == [["a", "b"], ["a", "c"]]
        assert model.intra_sources() == [["a"], []]
        assert model.intra_targets() == [["b"], []]
        assert model.inter_sources() == [["a"]]
        assert model.inter_targets() == [["a"]]
        assert model.intra_edge_layers[0].directions.values() == [True]

    def test_free_columns_per_layer(self, three_layer_model):
        model = model_from_flattened(flatten(three_layer_model))
        first, second = model.node_layers[0], model.node_layers[1]
        assert first.others["Query_1"].values() == [True, False, False]
        # undefined on the whole layer: not carried
        assert "Query_1" not in second.others
        assert second.others["Query_2"].values() == [False, True, False]

    def test_gap_in_layers(self, three_layer_model):
        g = flatten(three_layer_model)
        g.vertex_attributes = g.vertex_attributes.filter(pl.col(LAYER_ID) != 2)
        with pytest.raises(FormatError) as ctx:
            model_from_flattened(g)
        assert ctx.value.title == "Naming convention of layer IDs is not respected"

    def test_unflagged(self, two_layer_model):
        g = flatten(two_layer_model)
        g.graph_attributes.clear()
        with pytest.raises(FormatError):
            model_from_flattened(g)


class TestModelFromLayeredCollection:
    def test_roundtrip(self, two_layer_model):
        mln = materialize(two_layer_model)
        model = model_from_layered_collection(mln.layered_collection())
        assert model.node_names() == two_layer_model.node_names()
        assert model.intra_sources() == two_layer_model.intra_sources()
        assert model.inter_sources() == two_layer_model.inter_sources()
        assert model.inter_targets() == two_layer_model.inter_targets()

    def test_rewrite_gives_the_same_flattened_graph(self, three_layer_model):
        mln = materialize(three_layer_model)
        again = flatten(model_from_layered_collection(mln.layered_collection()))
        assert set(again.vertices()) == set(mln.flattened.vertices())
        assert again.number_of_edges() == mln.flattened.number_of_edges()

    def test_invalid_collection(self, two_layer_model):
        mln = materialize(two_layer_model)
        mln.inter_edge_tables.clear()
        with pytest.raises(FormatError):
            model_from_layered_collection(mln.layered_collection())


class TestBuildFromFlattened:
    def test_hand_made_graph(self, store):
        g = _hand_made_flattened()
        mln = build_from_flattened(g, store=store)
        assert g.get_graph_attribute(FLAT_NETWORK) is True
        assert mln.aggregated.get_graph_attribute(AGG_NETWORK) is True
        assert mln.aggregated.vertex_values(LAYER_ID) == {"x": [1, 2], "y": [1]}
        assert sorted(mln.layers) == [1, 2]
        assert list(mln.inter_edge_tables) == ["1->2_Inter-Edge"]
        assert "by hand" in store

    def test_duplicated_names_are_refused(self):
        g = _hand_made_flattened()
        g.set_vertex_attrs("y_1", name="x_1")
        with pytest.raises(FormatError):
            build_from_flattened(g)

    def test_missing_middle_layer_is_refused(self, three_layer_model, store):
        g = flatten(three_layer_model)
        for vid in [v for v, k in g.vertex_values(LAYER_ID).items() if k == 2]:
            g.remove_vertex(vid)
        with pytest.raises(FormatError) as ctx:
            build_from_flattened(g, store=store)
        assert ctx.value.title == "Naming convention of layer IDs is not respected"
        assert len(store) == 0

    def test_writer_output(self):
        m = build_model([["p", "q"]], [[("p", "q", 2.0, True)]])
        mln = build_from_flattened(flatten(m))
        assert list(mln.layers) == [1]
        assert mln.inter_edge_tables == {}
