"""Build a multilayer network model from raw node and edge tables.

Tables are any eager dataframe narwhals can wrap (polars, pandas, pyarrow).
Each column is given a role; the roles of one table are checked before any
of its values is read.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional, Sequence, Union

import narwhals as nw
from pydantic import BaseModel

from ..core.builder import MultilayerNetworkModel, TableType
from ..core.columns import ColumnType
from ..core.constants import parse_interaction, query_column_name
from ..core.errors import BuilderError, ConverterError

logger = logging.getLogger(__name__)

NODE = "node"
SOURCE = "source"
TARGET = "target"
INTERACTION = "interaction"
WEIGHT = "weight"
DIRECTION = "direction"
OTHER = "other"
ROLES = (NODE, SOURCE, TARGET, INTERACTION, WEIGHT, DIRECTION, OTHER)

_TABLE_LABELS = {
    TableType.NODE: "nodes",
    TableType.INTRA_EDGE: "intra-layer edges",
    TableType.INTER_EDGE: "inter-layer edges",
}


class ConverterOptions(BaseModel):
    """Defaults applied while converting raw tables."""

    model_config = {"frozen": True}

    default_node_weight: float = 1.0
    default_intra_edge_weight: float = 1.0
    default_inter_edge_weight: float = 1.0
    intra_edges_directed: bool = False
    inter_edges_directed: bool = True
    all_nodes_are_queries: bool = False
    diagonal_coupling: bool = False


def _where(table: TableType, index: int) -> str:
    return f"Error within the table {index + 1} for \"{_TABLE_LABELS[table]}\"."


def _per_layer(tables, count: int, table: TableType) -> list:
    """One frame per layer: a single frame is shared by every layer."""
    if isinstance(tables, (list, tuple)):
        if len(tables) != count:
            raise ConverterError(
                f"Expected {count} tables for \"{_TABLE_LABELS[table]}\", got {len(tables)}.",
                "Conversion error: wrong number of tables",
            )
        return [nw.from_native(t, eager_only=True) for t in tables]
    frame = nw.from_native(tables, eager_only=True)
    return [frame] * count


def _roles_per_layer(roles, count: int, table: TableType) -> list[dict]:
    if isinstance(roles, (list, tuple)):
        if len(roles) != count:
            raise ConverterError(
                f"Expected {count} role mappings for \"{_TABLE_LABELS[table]}\", got {len(roles)}.",
                "Conversion error: wrong number of tables",
            )
        return [dict(r) for r in roles]
    return [dict(roles)] * count


def check_roles(roles: dict[str, str], table: TableType, index: int = 0) -> dict[str, list[str]]:
    """Validate the column roles of one table.

    Parameters
    --
    roles : dict[str, str]
        Column name -> role.
    table : TableType
    index : int
        0-based position of the table, for messages.

    Returns
    ---
    dict[str, list[str]]
        Role -> column names.

    Raises
    --
    ConverterError
        Unknown, duplicated, missing or incompatible roles.

    """
    by_role: dict[str, list[str]] = {}
    for column, role in roles.items():
        if role not in ROLES:
            raise ConverterError(
                f"The type \"{role}\" for the column \"{column}\" is unknown.\n\n"
                f"{_where(table, index)}",
                "Conversion error: unknown column type",
            )
        if role != OTHER and role in by_role:
            raise ConverterError(
                f"The type \"{role}\" for the column \"{column}\" is duplicated.\n\n"
                f"{_where(table, index)}",
                "Conversion error: duplicated column type",
            )
        by_role.setdefault(role, []).append(column)

    if table is TableType.NODE:
        if NODE not in by_role:
            raise ConverterError(
                f"The following types have to be defined: \"['{NODE}']\".\n\n{_where(table, index)}",
                "Conversion error: missing column type",
            )
        misplaced = [r for r in (SOURCE, TARGET, INTERACTION, DIRECTION) if r in by_role]
        if misplaced:
            raise ConverterError(
                f"The types {misplaced} cannot be used for nodes.\n\n{_where(table, index)}",
                "Conversion error: incompatible column types",
            )
        return by_role

    missing = []
    if SOURCE not in by_role and INTERACTION not in by_role:
        missing.append('Source node (or "interacts with")')
    if TARGET not in by_role and INTERACTION not in by_role:
        missing.append('Target node (or "interacts with")')
    if missing:
        raise ConverterError(
            f"The following types have to be defined: \"{missing}\".\n\n{_where(table, index)}",
            "Conversion error: missing column type",
        )
    if (SOURCE in by_role or TARGET in by_role) and INTERACTION in by_role:
        raise ConverterError(
            'The types "source node" and "target node" are incompatible with "interact with".\n\n'
            f"{_where(table, index)}",
            "Conversion error: incompatibility with interact type",
        )
    if NODE in by_role:
        raise ConverterError(
            f"The type \"{NODE}\" cannot be used for edges.\n\n{_where(table, index)}",
            "Conversion error: incompatible column types",
        )
    return by_role


def _is_null(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _fill(values: list, default) -> list:
    return [default if _is_null(v) else v for v in values]


def _column_type(dtype, values) -> ColumnType:
    """Variant of a narwhals column, from its dtype or else its values."""
    if dtype == nw.String:
        return ColumnType.STRING
    if dtype == nw.Boolean:
        return ColumnType.BOOL
    if dtype.is_integer():
        return ColumnType.INT
    if dtype.is_float():
        return ColumnType.DOUBLE
    if isinstance(dtype, nw.List):
        return _column_type(dtype.inner, []).as_list()
    return ColumnType.infer(values)


def _node_names(values) -> list:
    return [None if v is None else str(v) for v in values]


def _convert_table(model, table: TableType, index: int, frame, roles, default_weight, default_direction):
    by_role = check_roles(roles, table, index)
    schema = frame.schema
    for column in roles:
        if column not in schema:
            raise ConverterError(
                f"The column \"{column}\" is not in the table.\n\n{_where(table, index)}",
                "Conversion error: missing column",
            )
    for role, check, label in (
        (WEIGHT, lambda d: d.is_numeric(), "'double' (float number)"),
        (DIRECTION, lambda d: d == nw.Boolean, "'boolean' (true/false)"),
    ):
        for column in by_role.get(role, []):
            if not check(schema[column]):
                raise ConverterError(
                    f"The {role} column \"{column}\" should be of type {label}.\n\n"
                    f"{_where(table, index)}",
                    "Conversion error: incompatible types within a selected table",
                )

    def values(column):
        return frame.get_column(column).to_list()

    n_rows = len(frame)
    if table is TableType.NODE:
        model.add_node_column(table, index, _node_names(values(by_role[NODE][0])))
    elif INTERACTION in by_role:
        column = by_role[INTERACTION][0]
        try:
            pairs = [parse_interaction(v) for v in values(column)]
        except ValueError as err:
            raise ConverterError(
                'The "interacts with" column cannot be parsed. It should fit the format: '
                f'"<source> (interacts with) <target>".\n\n{_where(table, index)}',
                "Conversion error: incompatible types within a selected table",
                cause=err,
            ) from err
        model.add_source_column(table, index, [s for s, _ in pairs])
        model.add_target_column(table, index, [t for _, t in pairs])
    else:
        model.add_source_column(table, index, _node_names(values(by_role[SOURCE][0])))
        model.add_target_column(table, index, _node_names(values(by_role[TARGET][0])))

    if WEIGHT in by_role:
        weights = [float(w) for w in _fill(values(by_role[WEIGHT][0]), default_weight)]
    else:
        weights = [default_weight] * n_rows
    model.add_weight(table, index, weights)

    if table is not TableType.NODE:
        if DIRECTION in by_role:
            directions = _fill(values(by_role[DIRECTION][0]), default_direction)
        else:
            directions = [default_direction] * n_rows
        model.add_direction(table, index, directions)

    for column in by_role.get(OTHER, []):
        vals = values(column)
        model.add_other_column(table, index, column, _column_type(schema[column], vals), vals)


def _diagonal_coupling(model, options: ConverterOptions) -> None:
    """Inter-layer edge ``x -> x`` for every name present in layers ``k`` and ``k+1``."""
    names = model.node_names()
    for k in range(model.n_layers - 1):
        following = set(names[k + 1])
        shared = [n for n in names[k] if n in following]
        model.add_source_column(TableType.INTER_EDGE, k, shared)
        model.add_target_column(TableType.INTER_EDGE, k, shared)
        model.add_weight(TableType.INTER_EDGE, k, [options.default_inter_edge_weight] * len(shared))
        model.add_direction(TableType.INTER_EDGE, k, [options.inter_edges_directed] * len(shared))


def check_consistency(model) -> None:
    """Every edge endpoint must be a node of the layer it refers to.

    Raises
    --
    ConverterError
        Titled "Conversion error: inconsistent tables".

    """
    names = [set(layer) for layer in model.node_names()]
    title = "Conversion error: inconsistent tables"
    for k, (sources, targets) in enumerate(zip(model.intra_sources(), model.intra_targets())):
        if not (set(sources) | set(targets)) <= names[k]:
            raise ConverterError(
                "Some nodes from intra-layer edges are not within the node table for the "
                f"layer {k + 1}.",
                title,
            )
    for k, (sources, targets) in enumerate(zip(model.inter_sources(), model.inter_targets())):
        if not set(sources) <= names[k]:
            raise ConverterError(
                f"Some sources from {k + 1}->{k + 2} inter-layer edges are not within the node "
                f"table of the layer {k + 1}.",
                title,
            )
        if not set(targets) <= names[k + 1]:
            raise ConverterError(
                f"Some targets from {k + 1}->{k + 2} inter-layer edges are not within the node "
                f"table of the layer {k + 2}.",
                title,
            )


Tables = Union[Any, Sequence[Any]]
Roles = Union[dict[str, str], Sequence[dict[str, str]]]


def convert_tables(
    n_layers: int,
    node_tables: Tables,
    intra_edge_tables: Tables,
    inter_edge_tables: Optional[Tables] = None,
    *,
    node_roles: Roles,
    intra_roles: Roles,
    inter_roles: Optional[Roles] = None,
    options: Optional[ConverterOptions] = None,
) -> MultilayerNetworkModel:
    """Convert raw tables into a :class:`MultilayerNetworkModel`.

    Parameters
    --
    n_layers : int
    node_tables, intra_edge_tables : dataframe or list of dataframes
        One frame shared by all layers, or one frame per layer.
    inter_edge_tables : dataframe or list of dataframes, optional
        One frame shared by all couplings, or ``n_layers - 1`` frames.
        Ignored with ``options.diagonal_coupling``.
    node_roles, intra_roles, inter_roles : dict or list of dict
        Column name -> role (``node``, ``source``, ``target``, ``interaction``,
        ``weight``, ``direction``, ``other``), one mapping for all tables or
        one per table.
    options : ConverterOptions, optional

    Returns
    ---
    MultilayerNetworkModel

    Raises
    --
    ConverterError
        Bad roles or column types, unparseable interactions, edges referring
        to absent nodes.

    Examples
    --
    >>> import polars as pl
    >>> nodes = [pl.DataFrame({"id": ["a", "b"]}), pl.DataFrame({"id": ["a", "c"]})]
    >>> edges = [pl.DataFrame({"s": ["a"], "t": ["b"]}), pl.DataFrame({"s": [], "t": []})]
    >>> m = convert_tables(2, nodes, edges, node_roles={"id": "node"},
    ...                    intra_roles={"s": "source", "t": "target"},
    ...                    options=ConverterOptions(diagonal_coupling=True))

    """
    options = options or ConverterOptions()
    try:
        model = MultilayerNetworkModel(n_layers)
        n = model.n_layers

        frames = _per_layer(node_tables, n, TableType.NODE)
        roles = _roles_per_layer(node_roles, n, TableType.NODE)
        for k in range(n):
            _convert_table(
                model, TableType.NODE, k, frames[k], roles[k], options.default_node_weight, None
            )
        if options.all_nodes_are_queries:
            for k in range(n):
                count = model.node_layer_count(k)
                model.add_other_column(
                    TableType.NODE, k, query_column_name(k + 1), ColumnType.BOOL, [True] * count
                )

        frames = _per_layer(intra_edge_tables, n, TableType.INTRA_EDGE)
        roles = _roles_per_layer(intra_roles, n, TableType.INTRA_EDGE)
        for k in range(n):
            _convert_table(
                model,
                TableType.INTRA_EDGE,
                k,
                frames[k],
                roles[k],
                options.default_intra_edge_weight,
                options.intra_edges_directed,
            )

        if options.diagonal_coupling:
            _diagonal_coupling(model, options)
        elif n > 1:
            if inter_edge_tables is None or inter_roles is None:
                raise ConverterError(
                    "Inter-layer edge tables and their column types are required unless "
                    "diagonal coupling is enabled.",
                    "Conversion error: missing column type",
                )
            frames = _per_layer(inter_edge_tables, n - 1, TableType.INTER_EDGE)
            roles = _roles_per_layer(inter_roles, n - 1, TableType.INTER_EDGE)
            for k in range(n - 1):
                _convert_table(
                    model,
                    TableType.INTER_EDGE,
                    k,
                    frames[k],
                    roles[k],
                    options.default_inter_edge_weight,
                    options.inter_edges_directed,
                )
    except BuilderError as err:
        raise ConverterError(
            f"{err.title}\n\n{err.message}", err.title, cause=err
        ) from err

    check_consistency(model)
    logger.info("converted %d layers from raw tables", model.n_layers)
    return model
