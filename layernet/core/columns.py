"""Typed columns and the layer records built from them."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

import polars as pl

from .errors import BuilderError


class ColumnType(Enum):
    """Closed set of column types; each maps to exactly one polars dtype."""

    STRING = "string"
    DOUBLE = "double"
    BOOL = "bool"
    INT = "int"
    STRING_LIST = "string_list"
    DOUBLE_LIST = "double_list"
    BOOL_LIST = "bool_list"
    INT_LIST = "int_list"

    @property
    def is_list(self) -> bool:
        return self.value.endswith("_list")

    @property
    def element(self) -> "ColumnType":
        """Scalar type of the elements (``self`` for scalar types)."""
        if not self.is_list:
            return self
        return ColumnType(self.value[: -len("_list")])

    def as_list(self) -> "ColumnType":
        if self.is_list:
            return self
        return ColumnType(f"{self.value}_list")

    def to_polars(self) -> pl.DataType:
        inner = _SCALAR_TO_POLARS[self.element]
        return pl.List(inner) if self.is_list else inner

    @classmethod
    def from_polars(cls, dtype) -> "ColumnType":
        """Map a polars dtype back to its variant.

        Raises
        --
        ValueError
            For dtypes with no variant (structs, dates, ...).

        """
        if isinstance(dtype, pl.List):
            return cls.from_polars(dtype.inner).as_list()
        if dtype == pl.Utf8:
            return cls.STRING
        if dtype == pl.Boolean:
            return cls.BOOL
        if dtype.is_integer():
            return cls.INT
        if dtype.is_float():
            return cls.DOUBLE
        raise ValueError(f"Unsupported column dtype: {dtype}")

    @classmethod
    def of_value(cls, value: Any) -> Optional["ColumnType"]:
        """Variant for one Python value, ``None`` when it cannot tell (null, empty list)."""
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            for item in value:
                inner = cls.of_value(item)
                if inner is not None:
                    return inner.as_list()
            return None
        if isinstance(value, bool):
            return cls.BOOL
        if isinstance(value, int):
            return cls.INT
        if isinstance(value, float):
            return cls.DOUBLE
        return cls.STRING

    @classmethod
    def infer(cls, values: Iterable[Any], default: "ColumnType" = None) -> "ColumnType":
        """Variant from the first value that tells, ``default`` (or STRING) otherwise."""
        for v in values:
            t = cls.of_value(v)
            if t is not None:
                return t
        return default if default is not None else cls.STRING


_SCALAR_TO_POLARS = {
    ColumnType.STRING: pl.Utf8,
    ColumnType.DOUBLE: pl.Float64,
    ColumnType.BOOL: pl.Boolean,
    ColumnType.INT: pl.Int64,
}


def _coerce_scalar(value, ctype: ColumnType):
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if ctype is ColumnType.STRING:
        if isinstance(value, str):
            return value
    elif ctype is ColumnType.BOOL:
        if isinstance(value, bool):
            return value
    elif ctype is ColumnType.INT:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif ctype is ColumnType.DOUBLE:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    raise TypeError(value)


def coerce_value(value, ctype: ColumnType):
    """Return ``value`` converted to ``ctype`` (ints widen to floats).

    Raises
    --
    TypeError
        If the value does not fit the type.

    """
    if value is None:
        return None
    if ctype.is_list:
        if not isinstance(value, (list, tuple)):
            raise TypeError(value)
        return [_coerce_scalar(v, ctype.element) for v in value]
    return _coerce_scalar(value, ctype)


@dataclass(frozen=True)
class MlnColumn:
    """Named column of one type. Rows are immutable once built."""

    name: str
    type: ColumnType
    rows: tuple = ()

    @classmethod
    def of(cls, name: str, ctype: ColumnType, rows: Iterable[Any]) -> "MlnColumn":
        """Build a column, checking every non-null row against ``ctype``."""
        if not isinstance(ctype, ColumnType):
            ctype = ColumnType.from_polars(ctype)
        coerced = []
        for i, value in enumerate(rows):
            try:
                value = coerce_value(value, ctype)
            except TypeError:
                raise BuilderError(
                    f"Incompatible column values: row {i} of column '{name}' "
                    f"({value!r}) is not of type '{ctype.value}'.",
                    "Incompatible column values",
                ) from None
            if isinstance(value, list):
                value = tuple(value)
            coerced.append(value)
        return cls(name, ctype, tuple(coerced))

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def dtype(self):
        return self.type.to_polars()

    def values(self) -> list:
        """Rows as plain Python values (list cells as lists)."""
        return [list(v) if isinstance(v, tuple) else v for v in self.rows]

    def to_series(self) -> pl.Series:
        return pl.Series(self.name, self.values(), dtype=self.dtype)


@dataclass
class Layer:
    """Weight column plus any number of other named columns."""

    weight: Optional[MlnColumn] = None
    others: dict[str, MlnColumn] = field(default_factory=dict)

    def columns(self) -> list[MlnColumn]:
        cols = [self.weight] if self.weight is not None else []
        return cols + list(self.others.values())

    def column_lengths(self) -> dict[str, int]:
        return {col.name: len(col) for col in self.columns()}

    @property
    def row_count(self) -> int:
        lengths = list(self.column_lengths().values())
        return max(lengths) if lengths else 0


@dataclass
class NodeLayer(Layer):
    names: Optional[MlnColumn] = None

    def columns(self) -> list[MlnColumn]:
        cols = [self.names] if self.names is not None else []
        return cols + super().columns()

    def node_names(self) -> list:
        return self.names.values() if self.names is not None else []


@dataclass
class EdgeLayer(Layer):
    sources: Optional[MlnColumn] = None
    targets: Optional[MlnColumn] = None
    directions: Optional[MlnColumn] = None

    def columns(self) -> list[MlnColumn]:
        cols = [c for c in (self.sources, self.targets, self.directions) if c is not None]
        return cols + super().columns()

    def source_names(self) -> list:
        return self.sources.values() if self.sources is not None else []

    def target_names(self) -> list:
        return self.targets.values() if self.targets is not None else []
