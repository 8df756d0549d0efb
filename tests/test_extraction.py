# test_extraction.py
import pytest

from layernet.core.columns import ColumnType
from layernet.core.constants import IS_QUERY, LAYER_ID, NAME, TEMPORARY_NETWORK, original_name
from layernet.core.errors import AppCallError, ExtractionCancelled, ExtractionError, FormatError, MlnWarning
from layernet.core.graph import MlnGraph
from layernet.extraction.cancel import CancellationToken, TemporaryGraphs
from layernet.extraction.config import ExtractionConfig
from layernet.extraction.orchestrator import ExtractionState, Extractor
from layernet.extraction.result import ExtractedNetwork
from layernet.extraction.service import SubnetworkExtractionService
from layernet.extraction.strategy import (
    ExtractionStrategy,
    Slice,
    add_is_query_column,
    check_layer_list,
    merge_attributes,
    query_nodes,
)
from layernet.io.writer import flatten

# ======================================================================
# FAKE SERVICES
# ======================================================================


class KeepNames(SubnetworkExtractionService):
    """Returns the slice nodes whose original name is allowed for that slice."""

    name = "fake service"

    def __init__(self, allowed=None, store=None):
        self.allowed = allowed or {}
        self.store = store
        self.calls = []

    def extract(self, graph, query_sources, query_targets, token=None):
        layers = tuple(sorted(set(graph.vertex_values(LAYER_ID).values())))
        self.calls.append((layers, dict(query_sources), dict(query_targets)))
        if self.store is not None:
            assert graph in self.store
        keep = self.allowed.get(layers)
        names = [n for n in graph.vertex_values(NAME).values() if keep is None or original_name(n) in keep]
        net = ExtractedNetwork(names)
        net.add_node_attribute("hits", [len(self.calls)] * len(names), ColumnType.INT)
        return net


class Failing(SubnetworkExtractionService):
    def extract(self, graph, query_sources, query_targets, token=None):
        raise AppCallError("service unreachable", "Extraction aborted")


class CancelsDuringCall(SubnetworkExtractionService):
    def __init__(self, token):
        self.token = token

    def extract(self, graph, query_sources, query_targets, token=None):
        self.token.cancel()
        return ExtractedNetwork(graph.vertex_values(NAME).values())


class NeedsNormalizing(KeepNames):
    def __init__(self):
        super().__init__()
        self.normalized = 0

    def check_preconditions(self, graph):
        return None if self.normalized else "- Everything must be normalized."

    def normalize(self, graph, token=None):
        self.normalized += 1


@pytest.fixture
def flattened(three_layer_model, store):
    return flatten(three_layer_model, store=store)


# ======================================================================
# STRATEGIES AND QUERIES
# ======================================================================


class TestStrategies:
    def test_global(self):
        assert ExtractionStrategy.GLOBAL.plan([1, 2, 3]) == [Slice((1, 2, 3), 1, 3)]

    def test_pairwise(self):
        assert ExtractionStrategy.PAIRWISE.plan([2, 3, 4]) == [Slice((2, 3), 2, 3), Slice((3, 4), 3, 4)]
        assert ExtractionStrategy.PAIRWISE.plan([5]) == [Slice((5,), 5, 5)]

    def test_one_by_one(self):
        assert ExtractionStrategy.ONE_BY_ONE.plan([1, 2]) == [Slice((1,), 1, 1), Slice((2,), 2, 2)]

    def test_empty(self):
        assert ExtractionStrategy.GLOBAL.plan([]) == []

    @pytest.mark.parametrize("ids", [[1, 3], [2, 1], [1, 2, 2]])
    def test_non_continuous_layer_list(self, ids):
        with pytest.raises(ExtractionError) as ctx:
            check_layer_list(ids)
        assert ctx.value.title == "Extraction failure"
        assert ctx.value.details["layer_ids"] == ids


class TestQueries:
    def test_boolean_query_column(self, flattened):
        assert query_nodes(flattened, 1, "Query_1") == {"a_1": None}
        assert query_nodes(flattened, 2, "Query_1") == {}
        assert query_nodes(flattened, 1, "missing") == {}

    def test_string_query_column(self, flattened):
        flattened.set_vertex_values("Hint", {"a_1": "c_3", "b_1": ""})
        assert query_nodes(flattened, 1, "Hint") == {"a_1": "c_3"}

    def test_is_query_column(self, flattened):
        assert add_is_query_column(flattened, {"a_1", "c_3"})
        marked = {v for v, q in flattened.vertex_values(IS_QUERY).items() if q}
        assert marked == {"a_1", "c_3"}

    def test_existing_is_query_column_is_kept(self, flattened):
        flattened.set_vertex_values(IS_QUERY, {"b_2": True})
        with pytest.warns(MlnWarning):
            assert not add_is_query_column(flattened, {"a_1"})
        assert flattened.get_attr_vertex("a_1", IS_QUERY) is None

    def test_merge_attributes(self, flattened):
        net = ExtractedNetwork(["a_1", "unknown"], [("a_1", "b_1"), ("b_1", "a_1")])
        net.add_node_attribute("score", [1.5, 2.0])
        net.add_edge_attribute("rank", [[1, 2], [3]])
        merge_attributes(net, flattened)
        assert flattened.get_attr_vertex("a_1", "score") == 1.5
        assert flattened.get_attr_vertex("b_1", "score") is None
        (ab,) = [e for e in flattened.edges() if flattened.get_edge(e) == ("a_1", "b_1")]
        assert flattened.get_attr_edge(ab, "rank") == [1, 2]
        assert flattened.edge_column_dtype("rank") == ColumnType.INT_LIST.to_polars()

    def test_extracted_network_checks_lengths(self):
        net = ExtractedNetwork(["a_1"])
        with pytest.raises(ValueError):
            net.add_node_attribute("x", [1, 2])
        with pytest.raises(ValueError):
            net.add_node_attribute("x", ["text"], ColumnType.DOUBLE)


# ======================================================================
# ORCHESTRATION
# ======================================================================


class TestExtractor:
    def test_pairwise_union_and_queries(self, flattened, store):
        service = KeepNames({(1, 2): {"a", "b"}, (2, 3): {"b", "c"}}, store=store)
        config = ExtractionConfig(strategy=ExtractionStrategy.PAIRWISE, layer_ids=[1, 2, 3])
        mln = Extractor(service, store, config).run(flattened)

        assert [call[0] for call in service.calls] == [(1, 2), (2, 3)]
        assert service.calls[0][1:] == ({"a_1": None}, {"b_2": None})
        assert service.calls[1][1:] == ({"b_2": None}, {"c_3": None})

        result = mln.flattened
        names = {original_name(n) for n in result.vertex_values(NAME).values()}
        assert names == {"a", "b", "c"}
        assert "c_1" not in result.vertices()
        assert result.get_attr_vertex("b_2", IS_QUERY) is True
        assert result.get_attr_vertex("b_1", IS_QUERY) is False
        # the second slice answer is merged last
        assert result.get_attr_vertex("b_2", "hits") == 2
        assert result.get_attr_vertex("a_1", "hits") == 1

    def test_graphs_left_in_store(self, flattened, store):
        config = ExtractionConfig(layer_ids=[1, 2, 3], name="sub")
        mln = Extractor(KeepNames(), store, config).run(flattened)
        assert TEMPORARY_NETWORK not in store
        assert mln.flattened.name == "sub"
        assert mln.name == "sub"
        for graph in mln.graphs():
            assert graph in store
        assert sorted(mln.layers) == [1, 2, 3]

    def test_non_continuous_layers_fail_before_slicing(self, flattened, store):
        service = KeepNames()
        before = store.names()
        for strategy in ExtractionStrategy:
            for check in (True, False):
                config = ExtractionConfig(strategy=strategy, layer_ids=[1, 3], check_enabled=check)
                extractor = Extractor(service, store, config)
                with pytest.raises(ExtractionError):
                    extractor.run(flattened)
                assert extractor.state is ExtractionState.FAILED
        assert service.calls == []
        assert store.names() == before

    def test_plain_graph_is_refused(self, store):
        g = MlnGraph(name="plain")
        g.add_vertices(["u", "v"])
        g.add_edge("u", "v")
        service = KeepNames()
        extractor = Extractor(service, store, ExtractionConfig(layer_ids=[1]))
        with pytest.raises(FormatError) as ctx:
            extractor.run(g)
        assert ctx.value.title == "Unknown flattened network"
        assert extractor.state is ExtractionState.FAILED
        assert service.calls == []
        assert len(store) == 0

    def test_unknown_layers_are_refused(self, flattened, store):
        service = KeepNames()
        before = store.names()
        extractor = Extractor(service, store, ExtractionConfig(layer_ids=[3, 4]))
        with pytest.raises(ExtractionError) as ctx:
            extractor.run(flattened)
        assert ctx.value.details["absent"] == [4]
        assert service.calls == []
        assert store.names() == before

    def test_failing_service_leaves_store_clean(self, flattened, store):
        before = store.names()
        extractor = Extractor(Failing(), store, ExtractionConfig(layer_ids=[1, 2]))
        with pytest.raises(AppCallError):
            extractor.run(flattened)
        assert extractor.state is ExtractionState.FAILED
        assert store.names() == before

    def test_cancel_during_call(self, flattened, store):
        token = CancellationToken()
        before = store.names()
        extractor = Extractor(
            CancelsDuringCall(token),
            store,
            ExtractionConfig(strategy=ExtractionStrategy.ONE_BY_ONE, layer_ids=[1, 2, 3]),
            token=token,
        )
        with pytest.raises(ExtractionCancelled):
            extractor.run(flattened)
        assert extractor.state is ExtractionState.CANCELLED
        assert store.names() == before

    def test_cancel_before_run(self, flattened, store):
        service = KeepNames()
        extractor = Extractor(service, store, ExtractionConfig(layer_ids=[1]))
        extractor.cancel()
        with pytest.raises(ExtractionCancelled):
            extractor.run(flattened)
        assert service.calls == []

    def test_preconditions_trigger_normalization(self, flattened, store):
        service = NeedsNormalizing()
        seen = []
        extractor = Extractor(service, store, ExtractionConfig(layer_ids=[1, 2]), on_warning=seen.append)
        with pytest.warns(MlnWarning):
            extractor.run(flattened)
        assert service.normalized == 1
        assert "Everything must be normalized" in seen[0]
        assert extractor.state is ExtractionState.DONE

    def test_checks_can_be_disabled(self, flattened, store):
        service = NeedsNormalizing()
        Extractor(service, store, ExtractionConfig(layer_ids=[1, 2], check_enabled=False)).run(flattened)
        assert service.normalized == 0

    def test_existing_is_query_column_is_reported(self, flattened, store):
        flattened.set_vertex_values(IS_QUERY, {"a_1": False})
        seen = []
        with pytest.warns(MlnWarning):
            mln = Extractor(KeepNames(), store, ExtractionConfig(layer_ids=[1]), on_warning=seen.append).run(
                flattened
            )
        assert any(IS_QUERY in message for message in seen)
        assert mln.flattened.get_attr_vertex("a_1", IS_QUERY) is False


class TestConfigAndCleanup:
    def test_layer_ids_are_validated(self):
        with pytest.raises(ValueError):
            ExtractionConfig(layer_ids=[])
        with pytest.raises(ValueError):
            ExtractionConfig(layer_ids=[1, 1])

    def test_query_column_names(self):
        config = ExtractionConfig(layer_ids=[1, 2], query_columns={2: "Seeds"})
        assert config.query_column(1) == "Query_1"
        assert config.query_column(2) == "Seeds"

    def test_temporary_graphs_destroyed_on_error(self, store):
        with pytest.raises(RuntimeError):
            with TemporaryGraphs(store) as temp:
                temp.create()
                temp.create()
                raise RuntimeError("boom")
        assert len(store) == 0

    def test_kept_graphs_survive(self, store):
        with TemporaryGraphs(store) as temp:
            kept = temp.keep(temp.create("kept"))
            temp.release(temp.create())
        assert store.names() == ["kept"]
        assert kept in store
        assert temp.held == []

    def test_token(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(ExtractionCancelled):
            token.raise_if_cancelled()
        token.reset()
        assert not token.cancelled
