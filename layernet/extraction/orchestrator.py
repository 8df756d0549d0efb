"""Run a subnetwork extraction over the layers of a flattened graph."""

from __future__ import annotations

import logging
import warnings
from enum import Enum
from typing import Callable, Optional

from ..core.constants import IS_QUERY, TEMPORARY_NETWORK
from ..core.errors import ExtractionCancelled, ExtractionError, MlnWarning
from ..io.reader import layer_ids_from_flattened
from ..io.validator import validate_flattened_graph
from ..io.writer import MultilayerNetwork, materialize_from_flattened, select_layers
from .cancel import CancellationToken, TemporaryGraphs
from .config import ExtractionConfig
from .service import SubnetworkExtractionService
from .strategy import add_is_query_column, check_layer_list, merge_attributes, query_nodes

logger = logging.getLogger(__name__)


class ExtractionState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    PREPARING = "preparing"
    CALLING = "calling"
    MERGING = "merging"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Extractor:
    """Slice a flattened graph, call a service per slice and merge the answers.

    Parameters
    --
    service : SubnetworkExtractionService
    store : GraphStore
        Receives the temporary slice graphs (destroyed after each call) and
        every graph of the resulting multilayer network.
    config : ExtractionConfig
    token : CancellationToken, optional
        Shared with whoever may cancel; a private one is made when omitted.
    on_warning : callable, optional
        Called with the text of every non-fatal warning.

    Notes
    -
    The flattened graph is normalised in place when the service reports
    unmet preconditions. A failing slice call or a cancellation aborts the
    run and leaves no graph of it behind in ``store``.

    """

    def __init__(
        self,
        service: SubnetworkExtractionService,
        store,
        config: ExtractionConfig,
        token: Optional[CancellationToken] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.service = service
        self.store = store
        self.config = config
        self.token = token if token is not None else CancellationToken()
        self.on_warning = on_warning
        self.state = ExtractionState.IDLE

    def __repr__(self) -> str:
        return f"Extractor({self.config.strategy.value}, {self.service}, state={self.state.value})"

    def cancel(self) -> None:
        self.token.cancel()

    def _warn(self, message: str, emit: bool = True) -> None:
        if emit:
            warnings.warn(message, MlnWarning, stacklevel=3)
        if self.on_warning is not None:
            self.on_warning(message)

    def _check_format(self, flattened, layer_ids) -> None:
        self.state = ExtractionState.CHECKING
        validate_flattened_graph(flattened)
        available = set(layer_ids_from_flattened(flattened))
        absent = [k for k in layer_ids if k not in available]
        if absent:
            raise ExtractionError(
                f"The layers {absent} do not exist in the flattened network "
                f"(layers found: {sorted(available)}).",
                "Extraction failure",
            ).add_context(layer_ids=layer_ids, absent=absent)

    def _check(self, flattened) -> None:
        self.state = ExtractionState.CHECKING
        message = self.service.check_preconditions(flattened)
        if message:
            self._warn(
                "The multi-layer network does not meet the following criteria of "
                f"{self.service}. It will be updated according to these criteria.\n\n{message}"
            )
            self.service.normalize(flattened, self.token)

    def run(self, flattened) -> MultilayerNetwork:
        """Extract and return the resulting multilayer network.

        Raises
        --
        ExtractionError
            The layer list is not continuous or names a layer absent from
            ``flattened`` (nothing is materialised).
        FormatError
            ``flattened`` is not a valid flattened network.
        ExtractionCancelled
            The token was cancelled at a checkpoint.
        AppCallError
            A slice call failed.

        """
        try:
            result = self._run(flattened)
        except ExtractionCancelled:
            self.state = ExtractionState.CANCELLED
            logger.info("extraction cancelled")
            raise
        except Exception:
            self.state = ExtractionState.FAILED
            raise
        self.state = ExtractionState.DONE
        return result

    def _run(self, flattened) -> MultilayerNetwork:
        config = self.config
        layer_ids = list(config.layer_ids)
        check_layer_list(layer_ids)
        self._check_format(flattened, layer_ids)
        if config.check_enabled:
            self._check(flattened)
        self.token.raise_if_cancelled()

        self.state = ExtractionState.PREPARING
        slices = config.strategy.plan(layer_ids)
        logger.info(
            "%s extraction with %s over layers %s (%d slices)",
            config.strategy.value,
            self.service,
            layer_ids,
            len(slices),
        )

        with TemporaryGraphs(self.store) as temp:
            extracted = []
            queries: set = set()
            nodes: set = set()
            for i, piece in enumerate(slices, start=1):
                self.token.raise_if_cancelled()
                self.state = ExtractionState.CALLING
                graph = temp.adopt(
                    select_layers(flattened, piece.layers, name=TEMPORARY_NETWORK, store=self.store)
                )
                sources = query_nodes(graph, piece.source_layer, config.query_column(piece.source_layer))
                targets = query_nodes(graph, piece.target_layer, config.query_column(piece.target_layer))
                queries.update(sources)
                queries.update(targets)
                net = self.service.extract(graph, sources, targets, self.token)
                extracted.append(net)
                nodes.update(net.nodes)
                temp.release(graph)
                logger.debug("slice %d/%d %s: %d nodes returned", i, len(slices), piece.layers, len(net.nodes))
                self.token.raise_if_cancelled()

            self.state = ExtractionState.MERGING
            result = temp.adopt(
                select_layers(flattened, layer_ids, node_subset=nodes, name=config.name, store=self.store)
            )
            for net in extracted:
                self.token.raise_if_cancelled()
                merge_attributes(net, result)
            if not add_is_query_column(result, queries):
                self._warn(f"A column named '{IS_QUERY}' already exists in the multi-layer network.", emit=False)

            mln = materialize_from_flattened(result, layer_ids, store=self.store, name=config.name)
            for graph in mln.graphs():
                if graph is not result:
                    temp.adopt(graph)
            self.token.raise_if_cancelled()
            for graph in mln.graphs():
                temp.keep(graph)

        logger.info(
            "extracted %r: %d nodes, %d edges",
            mln.name,
            mln.flattened.number_of_vertices(),
            mln.flattened.number_of_edges(),
        )
        return mln
