"""In-memory multilayer network model assembled column by column."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Iterable, Union

from .columns import ColumnType, EdgeLayer, MlnColumn, NodeLayer
from .constants import DIRECTION, NAME, RESERVED_COLUMNS, SOURCE, TARGET, WEIGHT
from .errors import BuilderError

_STRUCTURAL_COLUMNS = frozenset({NAME, WEIGHT, DIRECTION, SOURCE, TARGET}) | RESERVED_COLUMNS


class TableType(IntEnum):
    NODE = 1
    INTRA_EDGE = 2
    INTER_EDGE = 3


class MultilayerNetworkModel:
    """``N`` node layers, ``N`` intra-layer edge layers and ``N-1`` inter-layer edge layers.

    Columns are appended with the ``add_*`` methods, addressing a table type and
    a 0-based layer index (inter-layer index ``k`` couples layer ``k`` to ``k+1``).
    Column lengths are not compared on insert; :func:`layernet.io.validator.validate_model`
    does it before conversion.

    Parameters
    --
    n_layers : int
        Number of layers, at least 1.

    Examples
    --
    >>> m = MultilayerNetworkModel(2)
    >>> m.add_node_column(TableType.NODE, 0, ["a", "b"])
    >>> m.add_weight(TableType.NODE, 0, [1.0, 1.0])

    """

    def __init__(self, n_layers: int):
        if int(n_layers) < 1:
            raise BuilderError(
                f"A multi-layer network needs at least one layer, got {n_layers}.",
                "Wrong number of layers",
            )
        self._n_layers = int(n_layers)
        self._node_layers = [NodeLayer() for _ in range(self._n_layers)]
        self._intra_layers = [EdgeLayer() for _ in range(self._n_layers)]
        self._inter_layers = [EdgeLayer() for _ in range(self._n_layers - 1)]

    def __repr__(self) -> str:
        counts = ", ".join(str(n.row_count) for n in self._node_layers)
        return f"MultilayerNetworkModel(n_layers={self._n_layers}, nodes=[{counts}])"

    @property
    def n_layers(self) -> int:
        return self._n_layers

    # Table access

    def get_tables(self, table: Union[TableType, int]) -> list:
        """Node, intra-edge or inter-edge layers, by table type."""
        try:
            table = TableType(table)
        except ValueError:
            raise BuilderError("Unknown requested table.", "Unknown table") from None
        if table is TableType.NODE:
            return self._node_layers
        if table is TableType.INTRA_EDGE:
            return self._intra_layers
        return self._inter_layers

    def _layer(self, table, index: int):
        tables = self.get_tables(table)
        if not 0 <= index < len(tables):
            raise BuilderError(
                f"Layer index {index} is out of range for {TableType(table).name} tables "
                f"(0..{len(tables) - 1}).",
                "Layer index out of range",
            )
        return tables[index]

    def _edge_layer(self, table, index: int) -> EdgeLayer:
        layer = self._layer(table, index)
        if not isinstance(layer, EdgeLayer):
            raise BuilderError("This is not an edge table.", "Wrong table kind for this operation")
        return layer

    # Column insertion

    def add_node_column(self, table, index: int, values: Iterable[Any]) -> None:
        layer = self._layer(table, index)
        if not isinstance(layer, NodeLayer):
            raise BuilderError(
                "Add node column is possible only for node tables.",
                "Wrong table kind for this operation",
            )
        layer.names = MlnColumn.of(NAME, ColumnType.STRING, values)

    def add_source_column(self, table, index: int, values: Iterable[Any]) -> None:
        self._edge_layer(table, index).sources = MlnColumn.of(SOURCE, ColumnType.STRING, values)

    def add_target_column(self, table, index: int, values: Iterable[Any]) -> None:
        self._edge_layer(table, index).targets = MlnColumn.of(TARGET, ColumnType.STRING, values)

    def add_direction(self, table, index: int, values: Iterable[Any]) -> None:
        self._edge_layer(table, index).directions = MlnColumn.of(
            DIRECTION, ColumnType.BOOL, values
        )

    def add_weight(self, table, index: int, values: Iterable[Any]) -> None:
        self._layer(table, index).weight = MlnColumn.of(WEIGHT, ColumnType.DOUBLE, values)

    def add_other_column(self, table, index: int, name: str, ctype, values: Iterable[Any]) -> None:
        """Append a free column. Structural and reserved names are refused."""
        if name in _STRUCTURAL_COLUMNS:
            raise BuilderError(
                f"The column name '{name}' is reserved.", "Reserved column name"
            )
        layer = self._layer(table, index)
        layer.others[name] = MlnColumn.of(name, ctype, values)

    # Read helpers

    @property
    def node_layers(self) -> list[NodeLayer]:
        return self._node_layers

    @property
    def intra_edge_layers(self) -> list[EdgeLayer]:
        return self._intra_layers

    @property
    def inter_edge_layers(self) -> list[EdgeLayer]:
        return self._inter_layers

    def node_names(self) -> list[list[str]]:
        return [layer.node_names() for layer in self._node_layers]

    def intra_sources(self) -> list[list[str]]:
        return [layer.source_names() for layer in self._intra_layers]

    def intra_targets(self) -> list[list[str]]:
        return [layer.target_names() for layer in self._intra_layers]

    def inter_sources(self) -> list[list[str]]:
        return [layer.source_names() for layer in self._inter_layers]

    def inter_targets(self) -> list[list[str]]:
        return [layer.target_names() for layer in self._inter_layers]

    def nodes_across_layers(self) -> set[str]:
        """Distinct node names over all layers."""
        return {name for names in self.node_names() for name in names}

    def node_layer_count(self, index: int) -> int:
        return len(self._layer(TableType.NODE, index).node_names())
