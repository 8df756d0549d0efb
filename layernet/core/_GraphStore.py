import logging
from typing import Iterator, Optional, Union

from .graph import MlnGraph

logger = logging.getLogger(__name__)


class GraphStore:
    """Registry of named graphs (the session every writer publishes into).

    Names are unique: asking for an existing name yields ``"<name> (1)"``,
    ``"<name> (2)"``, ... like a desktop session would.
    """

    def __init__(self):
        self._graphs: dict[str, MlnGraph] = {}

    def __repr__(self) -> str:
        return f"GraphStore({list(self._graphs)!r})"

    def _unique_name(self, name: str) -> str:
        if name not in self._graphs:
            return name
        i = 1
        while f"{name} ({i})" in self._graphs:
            i += 1
        return f"{name} ({i})"

    def create_graph(self, name: str, directed: Optional[bool] = None) -> MlnGraph:
        """Create and register an empty graph under a unique name."""
        graph = MlnGraph(name=self._unique_name(name), directed=directed)
        self._graphs[graph.name] = graph
        logger.debug("created graph %r", graph.name)
        return graph

    def register(self, graph: MlnGraph) -> MlnGraph:
        """Register an existing graph, renaming it when its name is taken."""
        graph.name = self._unique_name(graph.name or "graph")
        self._graphs[graph.name] = graph
        return graph

    def destroy_graph(self, graph: Union[MlnGraph, str]) -> None:
        """Unregister a graph (by object or name).

        Raises
        --
        KeyError
            If the graph is not registered.

        """
        name = graph.name if isinstance(graph, MlnGraph) else graph
        if name not in self._graphs or (
            isinstance(graph, MlnGraph) and self._graphs[name] is not graph
        ):
            raise KeyError(f"Graph {name} not found")
        del self._graphs[name]
        logger.debug("destroyed graph %r", name)

    def get(self, name: str) -> Optional[MlnGraph]:
        return self._graphs.get(name)

    def names(self) -> list[str]:
        return list(self._graphs)

    def __contains__(self, item) -> bool:
        if isinstance(item, MlnGraph):
            return self._graphs.get(item.name) is item
        return item in self._graphs

    def __len__(self) -> int:
        return len(self._graphs)

    def __iter__(self) -> Iterator[MlnGraph]:
        return iter(list(self._graphs.values()))
