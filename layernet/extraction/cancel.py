"""Cooperative cancellation and scoped ownership of temporary graphs."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..core.constants import TEMPORARY_NETWORK
from ..core.errors import ExtractionCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag set from any thread and polled by the worker at its checkpoints."""

    def __init__(self):
        self._event = threading.Event()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`ExtractionCancelled` once :meth:`cancel` was called."""
        if self._event.is_set():
            raise ExtractionCancelled()


class TemporaryGraphs:
    """Graphs created in a store for the duration of one operation.

    Used as a context manager: every graph still held when the block exits
    through an exception is destroyed. Graphs are given back with
    :meth:`release` (destroyed now) or :meth:`keep` (left in the store).

    Examples
    --
    >>> with TemporaryGraphs(store) as temp:
    ...     graph = temp.create()
    ...     token.raise_if_cancelled()
    ...     temp.release(graph)

    """

    def __init__(self, store):
        self.store = store
        self._held: list = []

    def __enter__(self) -> "TemporaryGraphs":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.destroy_all()
        return False

    @property
    def held(self) -> list:
        return list(self._held)

    def create(self, name: str = TEMPORARY_NETWORK, directed: Optional[bool] = None):
        return self.adopt(self.store.create_graph(name, directed=directed))

    def adopt(self, graph):
        """Hold a graph already registered in the store."""
        if graph not in self.store:
            self.store.register(graph)
        self._held.append(graph)
        return graph

    def release(self, graph) -> None:
        self._held.remove(graph)
        if graph in self.store:
            self.store.destroy_graph(graph)

    def keep(self, graph):
        self._held.remove(graph)
        return graph

    def destroy_all(self) -> None:
        for graph in reversed(self._held):
            if graph in self.store:
                self.store.destroy_graph(graph)
        if self._held:
            logger.debug("destroyed %d temporary graphs", len(self._held))
        self._held = []
