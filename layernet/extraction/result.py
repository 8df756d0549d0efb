"""Subnetwork returned by an extraction service."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from ..core.columns import ColumnType, coerce_value


class ExtractedNetwork:
    """Node names, ``(source, target)`` name pairs and typed attributes on both.

    Attributes are stored column-wise, one value per node (edge) in the order
    of :attr:`nodes` (:attr:`edges`); values may be scalars or lists.

    Examples
    --
    >>> net = ExtractedNetwork(["a_1", "b_1"], [("a_1", "b_1")])
    >>> net.add_edge_attribute("KSP_rank", [[1]])
    >>> net.edge_attribute_type("KSP_rank")
    <ColumnType.INT_LIST: 'int_list'>

    """

    def __init__(self, nodes: Iterable[str] = (), edges: Iterable[tuple[str, str]] = ()):
        self.nodes: list[str] = [str(n) for n in nodes]
        self.edges: list[tuple[str, str]] = [(str(s), str(t)) for s, t in edges]
        self._node_attrs: dict[str, tuple[ColumnType, list]] = {}
        self._edge_attrs: dict[str, tuple[ColumnType, list]] = {}

    def __repr__(self) -> str:
        return f"ExtractedNetwork(nodes={len(self.nodes)}, edges={len(self.edges)})"

    @staticmethod
    def _typed(name: str, values: list, expected: int, ctype: Optional[ColumnType]):
        if len(values) != expected:
            raise ValueError(
                f"Attribute '{name}' has {len(values)} values for {expected} elements"
            )
        ctype = ctype if ctype is not None else ColumnType.infer(values)
        try:
            return ctype, [coerce_value(v, ctype) for v in values]
        except TypeError as err:
            raise ValueError(f"Attribute '{name}' does not fit type {ctype.value}: {err}") from err

    def add_node_attribute(self, name: str, values: Iterable[Any], type: Optional[ColumnType] = None) -> None:
        """Attach one value per node; the type is inferred from the values when omitted.

        Raises
        --
        ValueError
            Wrong number of values, or values not fitting ``type``.

        """
        self._node_attrs[name] = self._typed(name, list(values), len(self.nodes), type)

    def add_edge_attribute(self, name: str, values: Iterable[Any], type: Optional[ColumnType] = None) -> None:
        self._edge_attrs[name] = self._typed(name, list(values), len(self.edges), type)

    def node_attribute_names(self) -> list[str]:
        return list(self._node_attrs)

    def edge_attribute_names(self) -> list[str]:
        return list(self._edge_attrs)

    def node_attribute(self, name: str) -> list:
        return self._node_attrs[name][1]

    def edge_attribute(self, name: str) -> list:
        return self._edge_attrs[name][1]

    def node_attribute_type(self, name: str) -> ColumnType:
        return self._node_attrs[name][0]

    def edge_attribute_type(self, name: str) -> ColumnType:
        return self._edge_attrs[name][0]
