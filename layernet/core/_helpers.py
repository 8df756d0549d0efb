import polars as pl

from .columns import ColumnType, coerce_value

_VERTEX_RESERVED = {"vertex_id"}
_EDGE_RESERVED = {"edge_id", "source", "target", "directed"}


def _pl_dtype_for_value(v):
    """Infer the polars dtype of a Python value.

    Lists infer their inner dtype from the first non-null element (``Utf8`` when
    nothing tells). ``None`` maps to ``pl.Null``.
    """
    if v is None:
        return pl.Null
    ctype = ColumnType.of_value(v)
    if ctype is None:  # empty or all-null list
        return pl.List(pl.Utf8)
    return ctype.to_polars()


def _resolve_dtype(dtype):
    """Accept a :class:`ColumnType` or a polars dtype, return the polars dtype."""
    if isinstance(dtype, ColumnType):
        return dtype.to_polars()
    return dtype


def _is_numeric(dtype) -> bool:
    return dtype != pl.Boolean and (dtype.is_integer() or dtype.is_float())


def _merge_dtype(current, incoming):
    """Dtype able to hold both sides: numeric supertype, else ``Utf8``."""
    if incoming == pl.Null or current == incoming:
        return current
    if current == pl.Null:
        return incoming
    if _is_numeric(current) and _is_numeric(incoming):
        if current.is_float() or incoming.is_float():
            return pl.Float64
        return pl.Int64
    if isinstance(current, pl.List) and isinstance(incoming, pl.List):
        return pl.List(_merge_dtype(current.inner, incoming.inner))
    return pl.Utf8


def _values_for_dtype(values, dtype):
    """Coerce Python values so that ``pl.Series(values, dtype=dtype)`` accepts them."""
    try:
        ctype = ColumnType.from_polars(dtype)
    except ValueError:
        return list(values)
    if ctype is ColumnType.STRING:
        return [None if v is None else str(v) for v in values]
    if ctype is ColumnType.STRING_LIST:
        return [None if v is None else [None if x is None else str(x) for x in v] for v in values]
    return [coerce_value(v, ctype) for v in values]


def _ensure_attr_columns(df: pl.DataFrame, attrs: dict) -> pl.DataFrame:
    """Create or widen columns of ``df`` so that ``attrs`` can be written."""
    schema = df.schema
    for col, val in attrs.items():
        target = _pl_dtype_for_value(val)
        if col not in schema:
            df = df.with_columns(pl.lit(None).cast(target).alias(col))
            continue
        merged = _merge_dtype(schema[col], target)
        if merged != schema[col]:
            df = df.with_columns(pl.col(col).cast(merged))
    return df

