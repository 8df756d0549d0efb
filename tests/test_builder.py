# test_builder.py
import os
import sys
import unittest

import polars as pl
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from layernet.core.builder import MultilayerNetworkModel, TableType
from layernet.core.columns import ColumnType, MlnColumn, coerce_value
from layernet.core.constants import (
    flattened_node_name,
    inter_edge_table_name,
    interaction_name,
    layer_network_name,
    original_name,
    parse_interaction,
    query_column_name,
)
from layernet.core.errors import (
    BuilderError,
    ExtractionCancelled,
    ExtractionError,
    FormatError,
    MlnError,
    Severity,
)


class TestModelConstruction(unittest.TestCase):
    def setUp(self):
        self.m = MultilayerNetworkModel(3)

    def test_layer_counts(self):
        self.assertEqual(self.m.n_layers, 3)
        self.assertEqual(len(self.m.get_tables(TableType.NODE)), 3)
        self.assertEqual(len(self.m.get_tables(TableType.INTRA_EDGE)), 3)
        self.assertEqual(len(self.m.get_tables(TableType.INTER_EDGE)), 2)

    def test_at_least_one_layer(self):
        with self.assertRaises(BuilderError):
            MultilayerNetworkModel(0)

    def test_unknown_table(self):
        with self.assertRaises(BuilderError):
            self.m.get_tables(7)

    def test_node_column_only_on_node_tables(self):
        with self.assertRaises(BuilderError) as ctx:
            self.m.add_node_column(TableType.INTRA_EDGE, 0, ["a"])
        self.assertEqual(ctx.exception.title, "Wrong table kind for this operation")

    def test_edge_columns_refused_on_node_tables(self):
        with self.assertRaises(BuilderError):
            self.m.add_source_column(TableType.NODE, 0, ["a"])
        with self.assertRaises(BuilderError):
            self.m.add_direction(TableType.NODE, 0, [True])

    def test_index_out_of_range(self):
        with self.assertRaises(BuilderError):
            self.m.add_node_column(TableType.NODE, 3, ["a"])
        with self.assertRaises(BuilderError):
            self.m.add_source_column(TableType.INTER_EDGE, 2, ["a"])

    def test_columns_are_typed(self):
        self.m.add_node_column(TableType.NODE, 0, ["a", "b"])
        self.m.add_weight(TableType.NODE, 0, [1, 2.5])
        layer = self.m.node_layers[0]
        self.assertEqual(layer.node_names(), ["a", "b"])
        self.assertEqual(layer.weight.values(), [1.0, 2.5])
        with self.assertRaises(BuilderError):
            self.m.add_weight(TableType.NODE, 1, ["heavy"])

    def test_other_columns(self):
        self.m.add_other_column(TableType.NODE, 0, "tags", ColumnType.STRING_LIST, [["x"], None])
        col = self.m.node_layers[0].others["tags"]
        self.assertEqual(col.values(), [["x"], None])
        with self.assertRaises(BuilderError):
            self.m.add_other_column(TableType.NODE, 0, "Layer ID", ColumnType.INT, [1])
        with self.assertRaises(BuilderError):
            self.m.add_other_column(TableType.NODE, 0, "name", ColumnType.STRING, ["a"])

    def test_read_helpers(self):
        self.m.add_node_column(TableType.NODE, 0, ["a", "b"])
        self.m.add_node_column(TableType.NODE, 1, ["b", "c"])
        self.m.add_source_column(TableType.INTER_EDGE, 0, ["a"])
        self.m.add_target_column(TableType.INTER_EDGE, 0, ["c"])
        self.assertEqual(self.m.node_names(), [["a", "b"], ["b", "c"], []])
        self.assertEqual(self.m.inter_sources(), [["a"], []])
        self.assertEqual(self.m.inter_targets(), [["c"], []])
        self.assertEqual(self.m.nodes_across_layers(), {"a", "b", "c"})
        self.assertEqual(self.m.node_layer_count(1), 2)


class TestColumns:
    @pytest.mark.parametrize(
        "ctype, dtype",
        [
            (ColumnType.STRING, pl.Utf8),
            (ColumnType.DOUBLE, pl.Float64),
            (ColumnType.BOOL, pl.Boolean),
            (ColumnType.INT, pl.Int64),
            (ColumnType.INT_LIST, pl.List(pl.Int64)),
        ],
    )
    def test_polars_mapping(self, ctype, dtype):
        assert ctype.to_polars() == dtype
        assert ColumnType.from_polars(dtype) is ctype

    def test_unsupported_dtype(self):
        with pytest.raises(ValueError):
            ColumnType.from_polars(pl.Date)

    def test_inference(self):
        assert ColumnType.infer([None, True]) is ColumnType.BOOL
        assert ColumnType.infer([None, [None, 2]]) is ColumnType.INT_LIST
        assert ColumnType.infer([None, None]) is ColumnType.STRING
        assert ColumnType.infer([], default=ColumnType.DOUBLE) is ColumnType.DOUBLE

    def test_coercion(self):
        assert coerce_value(2, ColumnType.DOUBLE) == 2.0
        assert coerce_value(float("nan"), ColumnType.DOUBLE) is None
        with pytest.raises(TypeError):
            coerce_value(True, ColumnType.INT)
        with pytest.raises(TypeError):
            coerce_value("x", ColumnType.DOUBLE_LIST)

    def test_column_series(self):
        col = MlnColumn.of("w", ColumnType.DOUBLE, [1, None])
        series = col.to_series()
        assert series.dtype == pl.Float64
        assert series.to_list() == [1.0, None]


class TestNamingConventions:
    def test_interaction_roundtrip(self):
        label = interaction_name("a", "b")
        assert label == "a (interacts with) b"
        assert parse_interaction(label) == ("a", "b")
        with pytest.raises(ValueError):
            parse_interaction("a - b")

    def test_flattened_names(self):
        assert flattened_node_name("gene_x", 3) == "gene_x_3"
        assert original_name("gene_x_3") == "gene_x"
        assert original_name("plain") == "plain"

    def test_table_and_layer_names(self):
        assert inter_edge_table_name(2) == "2->3_Inter-Edge"
        assert layer_network_name(3, 12) == "03_Layer"
        assert layer_network_name(3, 9) == "3_Layer"
        assert query_column_name(4) == "Query_4"


class TestErrors:
    def test_defaults_and_context(self):
        err = FormatError("bad").add_context(layer=2)
        assert isinstance(err, MlnError)
        assert err.title == "Wrong multi-layer network format"
        assert err.severity is Severity.ERROR
        assert err.problems == ["bad"]
        summary = err.to_dict()
        assert summary["type"] == "FormatError"
        assert summary["details"] == {"layer": 2}
        assert str(err) == "bad"

    def test_cancellation_is_an_extraction_error(self):
        err = ExtractionCancelled()
        assert isinstance(err, ExtractionError)
        assert err.severity is Severity.INFO
        assert err.title == "Extraction cancelled"

    def test_cause_is_chained(self):
        root = ValueError("root")
        err = BuilderError("wrapped", cause=root)
        assert err.__cause__ is root
        assert "ValueError" in err.to_dict()["cause"]


if __name__ == "__main__":
    unittest.main()
