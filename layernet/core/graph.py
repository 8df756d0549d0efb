from __future__ import annotations

from typing import Iterable, Mapping, Optional

import numpy as np
import polars as pl
import scipy.sparse as sp

from ._helpers import (
    _EDGE_RESERVED,
    _VERTEX_RESERVED,
    _ensure_attr_columns,
    _merge_dtype,
    _pl_dtype_for_value,
    _resolve_dtype,
    _values_for_dtype,
)


class MlnGraph:
    """Graph with parallel edges, per-edge orientation and polars attribute tables.

    Structure lives in plain dicts (vertex -> incident edges, edge -> endpoints);
    attributes live in two Polars DF (DataFrame) keyed by ``vertex_id`` and
    ``edge_id``, one typed column per attribute. This is the graph every
    multilayer projection (flattened, aggregated, per-layer) is written to.

    Parameters
    --
    name : str, optional
        Display name of the graph.
    directed : bool, optional
        Default orientation for edges that do not state one. ``None`` means directed.

    Notes
    -
    - Vertex ids are strings.
    - Edge ids default to ``edge_<n>``.
    - Attribute tables are **pure**: structural keys are never stored as columns.

    """

    _VERTEX_RESERVED = _VERTEX_RESERVED
    _EDGE_RESERVED = _EDGE_RESERVED

    def __init__(self, name: Optional[str] = None, directed: Optional[bool] = None):
        self.name = name
        self.directed = directed

        self._incidence = {}  # vertex_id -> {edge_id: None}, ordered
        self.edge_definitions = {}  # edge_id -> (source, target)
        self.edge_directed = {}  # edge_id -> bool

        self.vertex_attributes = pl.DataFrame(schema={"vertex_id": pl.Utf8})
        self.edge_attributes = pl.DataFrame(schema={"edge_id": pl.Utf8})
        self.graph_attributes = {}

        self._next_edge_id = 0

    def __repr__(self) -> str:
        return (
            f"MlnGraph(name={self.name!r}, vertices={self.number_of_vertices()}, "
            f"edges={self.number_of_edges()})"
        )

    # Internal table plumbing

    def _table(self, kind: str) -> pl.DataFrame:
        return self.vertex_attributes if kind == "vertex" else self.edge_attributes

    def _set_table(self, kind: str, df: pl.DataFrame) -> None:
        if kind == "vertex":
            self.vertex_attributes = df
        else:
            self.edge_attributes = df

    @staticmethod
    def _key(kind: str) -> str:
        return "vertex_id" if kind == "vertex" else "edge_id"

    def _append_rows(self, kind: str, ids: list) -> None:
        if not ids:
            return
        key = self._key(kind)
        new = pl.DataFrame({key: pl.Series(key, ids, dtype=pl.Utf8)})
        df = self._table(kind)
        if df.width > 1:
            new = new.with_columns(
                [pl.lit(None).cast(dtype).alias(col) for col, dtype in df.schema.items() if col != key]
            )
        self._set_table(kind, pl.concat([df, new], how="vertical"))

    def _drop_rows(self, kind: str, ids) -> None:
        key = self._key(kind)
        self._set_table(kind, self._table(kind).filter(~pl.col(key).is_in(list(ids))))

    def _get_next_edge_id(self) -> str:
        """INTERNAL: fresh ``edge_<n>`` identifier (monotonic counter)."""
        while True:
            edge_id = f"edge_{self._next_edge_id}"
            self._next_edge_id += 1
            if edge_id not in self.edge_definitions:
                return edge_id

    # Build graph

    def add_vertex(self, vertex_id: str, **attributes) -> str:
        """Add (or upsert) a vertex.

        Parameters
        --
        vertex_id : str
        **attributes
            Vertex attributes to store.

        Returns
        ---
        str
            The vertex ID (echoed).

        """
        if vertex_id not in self._incidence:
            self._incidence[vertex_id] = {}
            self._append_rows("vertex", [vertex_id])
        if attributes:
            self.set_vertex_attrs(vertex_id, **attributes)
        return vertex_id

    def add_vertices(self, vertex_ids: Iterable[str]) -> list[str]:
        """Bulk-add vertices; already present ids are left untouched.

        Returns
        ---
        list[str]
            The ids that were new.

        """
        new = [v for v in dict.fromkeys(vertex_ids) if v not in self._incidence]
        for v in new:
            self._incidence[v] = {}
        self._append_rows("vertex", new)
        return new

    def _register_edge(self, source, target, edge_id, edge_directed) -> str:
        if edge_id is None:
            edge_id = self._get_next_edge_id()
        elif edge_id in self.edge_definitions:
            raise ValueError(f"Edge {edge_id} already exists")
        for v in (source, target):
            if v not in self._incidence:
                self._incidence[v] = {}
                self._append_rows("vertex", [v])
        if edge_directed is not None:
            is_dir = bool(edge_directed)
        elif self.directed is not None:
            is_dir = bool(self.directed)
        else:
            is_dir = True
        self.edge_definitions[edge_id] = (source, target)
        self.edge_directed[edge_id] = is_dir
        self._incidence[source][edge_id] = None
        self._incidence[target][edge_id] = None
        return edge_id

    def add_edge(
        self,
        source: str,
        target: str,
        edge_id: Optional[str] = None,
        edge_directed: Optional[bool] = None,
        **attributes,
    ) -> str:
        """Add an edge; missing endpoints are created.

        Parameters
        --
        source, target : str
        edge_id : str, optional
            Must be new. Generated when omitted.
        edge_directed : bool, optional
            Structural orientation; graph default when omitted.
        **attributes
            Edge attributes to store.

        Returns
        ---
        str
            The edge ID.

        Raises
        --
        ValueError
            If ``edge_id`` already exists.

        """
        edge_id = self._register_edge(source, target, edge_id, edge_directed)
        self._append_rows("edge", [edge_id])
        if attributes:
            self.set_edge_attrs(edge_id, **attributes)
        return edge_id

    def add_edges(self, edges: Iterable[tuple]) -> list[str]:
        """Bulk-add ``(source, target)`` or ``(source, target, directed)`` tuples.

        Returns
        ---
        list[str]
            Generated edge ids, in input order.

        """
        ids = []
        for edge in edges:
            source, target = edge[0], edge[1]
            directed = edge[2] if len(edge) > 2 else None
            ids.append(self._register_edge(source, target, None, directed))
        self._append_rows("edge", ids)
        return ids

    def duplicate_edges(
        self,
        edge_ids: Iterable[str],
        reverse: bool = False,
        edge_directed: Optional[bool] = None,
    ) -> list[str]:
        """Copy edges with their whole attribute row under fresh ids.

        Parameters
        --
        edge_ids : Iterable[str]
        reverse : bool
            Swap source and target on the copies.
        edge_directed : bool, optional
            Orientation of the copies; the original one when omitted.

        Returns
        ---
        list[str]
            New edge ids, aligned with ``edge_ids``.

        """
        edge_ids = list(edge_ids)
        new_ids = []
        for eid in edge_ids:
            source, target = self.get_edge(eid)
            if reverse:
                source, target = target, source
            directed = self.edge_directed[eid] if edge_directed is None else edge_directed
            new_ids.append(self._register_edge(source, target, None, directed))
        if not new_ids:
            return new_ids
        df = self.edge_attributes
        by_id = {
            row["edge_id"]: row
            for row in df.filter(pl.col("edge_id").is_in(edge_ids)).iter_rows(named=True)
        }
        rows = [{**by_id[old], "edge_id": new} for old, new in zip(edge_ids, new_ids)]
        self.edge_attributes = pl.concat(
            [df, pl.DataFrame(rows, schema=df.schema)], how="vertical"
        )
        return new_ids

    def remove_edge(self, edge_id: str) -> None:
        """Remove an edge.

        Raises
        --
        KeyError
            If the edge is not found.

        """
        self.remove_edges([edge_id])

    def remove_edges(self, edge_ids: Iterable[str]) -> None:
        edge_ids = list(dict.fromkeys(edge_ids))
        for eid in edge_ids:
            if eid not in self.edge_definitions:
                raise KeyError(f"Edge {eid} not found")
        for eid in edge_ids:
            source, target = self.edge_definitions.pop(eid)
            self.edge_directed.pop(eid, None)
            self._incidence[source].pop(eid, None)
            self._incidence[target].pop(eid, None)
        self._drop_rows("edge", edge_ids)

    def remove_vertex(self, vertex_id: str) -> None:
        """Remove a vertex and all incident edges.

        Raises
        --
        KeyError
            If the vertex is not found.

        """
        if vertex_id not in self._incidence:
            raise KeyError(f"Vertex {vertex_id} not found")
        incident = list(self._incidence[vertex_id])
        if incident:
            self.remove_edges(incident)
        del self._incidence[vertex_id]
        self._drop_rows("vertex", [vertex_id])

    # Structure queries

    def vertices(self) -> list[str]:
        return list(self._incidence)

    def edges(self) -> list[str]:
        return list(self.edge_definitions)

    def number_of_vertices(self) -> int:
        return len(self._incidence)

    def number_of_edges(self) -> int:
        return len(self.edge_definitions)

    def has_vertex(self, vertex_id: str) -> bool:
        return vertex_id in self._incidence

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self.edge_definitions

    def get_edge(self, edge_id: str) -> tuple[str, str]:
        """``(source, target)`` of an edge. ``KeyError`` when unknown."""
        try:
            return self.edge_definitions[edge_id]
        except KeyError:
            raise KeyError(f"Edge {edge_id} not found") from None

    def is_directed_edge(self, edge_id: str) -> bool:
        """Structural orientation of an edge (per-edge flag overrides graph default)."""
        if edge_id not in self.edge_definitions:
            raise KeyError(f"Edge {edge_id} not found")
        return self.edge_directed[edge_id]

    def get_directed_edges(self) -> list[str]:
        return [eid for eid, d in self.edge_directed.items() if d]

    def get_undirected_edges(self) -> list[str]:
        return [eid for eid, d in self.edge_directed.items() if not d]

    def incident_edges(self, vertex_id: str) -> list[str]:
        """All edges touching ``vertex_id``, in insertion order."""
        if vertex_id not in self._incidence:
            raise KeyError(f"Vertex {vertex_id} not found")
        return list(self._incidence[vertex_id])

    def neighbors(self, vertex_id: str) -> list[str]:
        """Distinct adjacent vertices regardless of orientation (self for loops)."""
        out = {}
        for eid in self.incident_edges(vertex_id):
            source, target = self.edge_definitions[eid]
            out[target if source == vertex_id else source] = None
        return list(out)

    def connecting_edges(self, u: str, v: str) -> list[str]:
        """Edges between ``u`` and ``v`` in either orientation, in insertion order."""
        if u not in self._incidence or v not in self._incidence:
            return []
        found = []
        for eid in self._incidence[u]:
            source, target = self.edge_definitions[eid]
            if (source == u and target == v) or (source == v and target == u):
                found.append(eid)
        return found

    def degree(self, vertex_id: str) -> int:
        return len(self.incident_edges(vertex_id))

    # Columns

    def _add_column(self, kind: str, name: str, dtype) -> None:
        dtype = _resolve_dtype(dtype)
        key = self._key(kind)
        if name == key:
            raise ValueError(f"'{name}' is the key column")
        df = self._table(kind)
        if name not in df.columns:
            self._set_table(kind, df.with_columns(pl.lit(None).cast(dtype).alias(name)))
            return
        current = df.schema[name]
        if current == dtype:
            return
        if df.get_column(name).null_count() == df.height:
            self._set_table(kind, df.with_columns(pl.lit(None).cast(dtype).alias(name)))
            return
        raise ValueError(f"Column '{name}' already exists with dtype {current}")

    def add_vertex_column(self, name: str, dtype) -> None:
        """Create an empty typed vertex column (``ColumnType`` or polars dtype).

        An existing column of the same dtype is kept; an all-null one is re-typed.

        Raises
        --
        ValueError
            If a populated column of another dtype already exists.

        """
        self._add_column("vertex", name, dtype)

    def add_edge_column(self, name: str, dtype) -> None:
        """Edge counterpart of :meth:`add_vertex_column`."""
        self._add_column("edge", name, dtype)

    def vertex_columns(self) -> list[str]:
        return [c for c in self.vertex_attributes.columns if c != "vertex_id"]

    def edge_columns(self) -> list[str]:
        return [c for c in self.edge_attributes.columns if c != "edge_id"]

    def vertex_column_dtype(self, name: str):
        """Polars dtype of a vertex column, ``None`` when absent."""
        return self.vertex_attributes.schema.get(name) if name != "vertex_id" else None

    def edge_column_dtype(self, name: str):
        return self.edge_attributes.schema.get(name) if name != "edge_id" else None

    def _upsert_row(self, kind: str, idx: str, attrs: dict) -> None:
        """INTERNAL: update one row of an attribute table, widening columns as needed."""
        key = self._key(kind)
        df = _ensure_attr_columns(self._table(kind), attrs)
        cond = pl.col(key) == pl.lit(idx)
        upds = []
        for col, value in attrs.items():
            dtype = df.schema[col]
            if isinstance(dtype, pl.List) or value is None:
                # list literals and typed nulls go through a one-row Series
                lit = pl.lit(pl.Series(col, _values_for_dtype([value], dtype), dtype=dtype))
            else:
                lit = pl.lit(_values_for_dtype([value], dtype)[0], dtype=dtype)
            upds.append(pl.when(cond).then(lit).otherwise(pl.col(col)).alias(col))
        self._set_table(kind, df.with_columns(upds))

    def set_vertex_attrs(self, vertex_id: str, **attrs) -> None:
        """Upsert vertex attributes. ``KeyError`` when the vertex is unknown."""
        if vertex_id not in self._incidence:
            raise KeyError(f"Vertex {vertex_id} not found")
        clean = {k: v for k, v in attrs.items() if k not in self._VERTEX_RESERVED}
        if clean:
            self._upsert_row("vertex", vertex_id, clean)

    def set_edge_attrs(self, edge_id: str, **attrs) -> None:
        """Upsert edge attributes. Structural keys are ignored."""
        if edge_id not in self.edge_definitions:
            raise KeyError(f"Edge {edge_id} not found")
        clean = {k: v for k, v in attrs.items() if k not in self._EDGE_RESERVED}
        if clean:
            self._upsert_row("edge", edge_id, clean)

    def _get_attr(self, kind: str, idx: str, key: str, default=None):
        df = self._table(kind)
        if key not in df.columns:
            return default
        rows = df.filter(pl.col(self._key(kind)) == idx)
        if rows.height == 0:
            return default
        val = rows.get_column(key)[0]
        if isinstance(val, pl.Series):
            val = val.to_list()
        return default if val is None else val

    def get_attr_vertex(self, vertex_id: str, key: str, default=None):
        """Single vertex attribute, or ``default`` when missing or null."""
        return self._get_attr("vertex", vertex_id, key, default)

    def get_attr_edge(self, edge_id: str, key: str, default=None):
        return self._get_attr("edge", edge_id, key, default)

    def _get_row(self, kind: str, idx: str) -> dict:
        key = self._key(kind)
        for row in self._table(kind).filter(pl.col(key) == idx).iter_rows(named=True):
            row.pop(key)
            return row
        return {}

    def get_vertex_attrs(self, vertex_id: str) -> dict:
        """Full attribute row of a vertex (without the key). ``{}`` if not found."""
        return self._get_row("vertex", vertex_id)

    def get_edge_attrs(self, edge_id: str) -> dict:
        return self._get_row("edge", edge_id)

    def _set_values(self, kind: str, name: str, values: Mapping, dtype=None) -> None:
        key = self._key(kind)
        if name == key:
            raise ValueError(f"'{name}' is the key column")
        df = self._table(kind)
        ids = df.get_column(key).to_list()
        pos = {idx: i for i, idx in enumerate(ids)}
        missing = [idx for idx in values if idx not in pos]
        if missing:
            raise KeyError(f"Unknown {kind} ids: {missing[:5]}")

        if dtype is not None:
            target = _resolve_dtype(dtype)
        else:
            target = pl.Null
            for v in values.values():
                target = _merge_dtype(target, _pl_dtype_for_value(v))
            if name in df.columns:
                target = _merge_dtype(df.schema[name], target)
            if target == pl.Null:
                target = pl.Utf8

        if name in df.columns and df.get_column(name).null_count() < df.height:
            current = df.get_column(name).cast(target).to_list()
        else:
            current = [None] * len(ids)
        for idx, v in values.items():
            current[pos[idx]] = v
        series = pl.Series(name, _values_for_dtype(current, target), dtype=target)
        self._set_table(kind, df.with_columns(series))

    def set_vertex_values(self, name: str, values: Mapping[str, object], dtype=None) -> None:
        """Bulk-write one vertex column from ``{vertex_id: value}``.

        Parameters
        --
        name : str
            Column name; created when absent.
        values : Mapping
            Only the listed vertices are written, other rows keep their value.
        dtype : ColumnType or polars dtype, optional
            Forces the column dtype; inferred from the values otherwise.

        """
        self._set_values("vertex", name, values, dtype)

    def set_edge_values(self, name: str, values: Mapping[str, object], dtype=None) -> None:
        """Edge counterpart of :meth:`set_vertex_values`."""
        self._set_values("edge", name, values, dtype)

    def _values(self, kind: str, name: str) -> dict:
        df = self._table(kind)
        if name not in df.columns or name == self._key(kind):
            raise KeyError(f"{kind.capitalize()} column {name} not found")
        return dict(zip(df.get_column(self._key(kind)).to_list(), df.get_column(name).to_list()))

    def vertex_values(self, name: str) -> dict:
        """Column as ``{vertex_id: value}``. ``KeyError`` when absent."""
        return self._values("vertex", name)

    def edge_values(self, name: str) -> dict:
        return self._values("edge", name)

    def set_graph_attribute(self, key, value) -> None:
        self.graph_attributes[key] = value

    def get_graph_attribute(self, key, default=None):
        return self.graph_attributes.get(key, default)

    # Matrix views

    def incidence_matrix(self) -> sp.csr_matrix:
        """Vertex x edge incidence (CSR).

        Columns encode orientation: ``+1`` on the source and ``-1`` on the target of
        directed edges, ``+1`` on both ends of undirected edges; loops hold one ``+1``.
        """
        vidx = {v: i for i, v in enumerate(self._incidence)}
        rows, cols, data = [], [], []
        for j, (eid, (source, target)) in enumerate(self.edge_definitions.items()):
            rows.append(vidx[source])
            cols.append(j)
            data.append(1.0)
            if source != target:
                rows.append(vidx[target])
                cols.append(j)
                data.append(-1.0 if self.edge_directed[eid] else 1.0)
        shape = (len(vidx), len(self.edge_definitions))
        return sp.csr_matrix((np.asarray(data, dtype=np.float32), (rows, cols)), shape=shape)

    def multiplicity_matrix(self) -> sp.csr_matrix:
        """Symmetric vertex x vertex count of edges per unordered pair, orientation ignored."""
        vidx = {v: i for i, v in enumerate(self._incidence)}
        n = len(vidx)
        if not self.edge_definitions:
            return sp.csr_matrix((n, n), dtype=np.int64)
        pairs = np.array(
            [(vidx[s], vidx[t]) for s, t in self.edge_definitions.values()], dtype=np.int64
        )
        loops = pairs[:, 0] == pairs[:, 1]
        rows = np.concatenate([pairs[:, 0], pairs[~loops, 1]])
        cols = np.concatenate([pairs[:, 1], pairs[~loops, 0]])
        data = np.ones(len(rows), dtype=np.int64)
        # duplicate coordinates are summed on conversion
        return sp.coo_matrix((data, (rows, cols)), shape=(n, n)).tocsr()

    # Copy

    def subgraph(
        self,
        vertex_ids: Iterable[str],
        edge_ids: Optional[Iterable[str]] = None,
        name: Optional[str] = None,
    ) -> "MlnGraph":
        """Induced copy on ``vertex_ids``, keeping ids and attribute rows.

        Parameters
        --
        vertex_ids : Iterable[str]
            Vertices to keep; unknown ids are ignored.
        edge_ids : Iterable[str], optional
            Edges to keep among those whose endpoints are both kept. All such
            edges when omitted.
        name : str, optional

        Returns
        ---
        MlnGraph
            A new graph; graph attributes are not copied.

        """
        keep_v = {v: None for v in vertex_ids if v in self._incidence}
        if edge_ids is None:
            candidates = self.edge_definitions
        else:
            candidates = [e for e in dict.fromkeys(edge_ids) if e in self.edge_definitions]
        keep_e = [
            e
            for e in candidates
            if self.edge_definitions[e][0] in keep_v and self.edge_definitions[e][1] in keep_v
        ]
        # keep the parent's vertex order
        order = [v for v in self._incidence if v in keep_v]

        new = MlnGraph(name=name, directed=self.directed)
        new._incidence = {v: {} for v in order}
        for eid in keep_e:
            source, target = self.edge_definitions[eid]
            new.edge_definitions[eid] = (source, target)
            new.edge_directed[eid] = self.edge_directed[eid]
            new._incidence[source][eid] = None
            new._incidence[target][eid] = None
        new.vertex_attributes = self.vertex_attributes.filter(pl.col("vertex_id").is_in(order))
        new.edge_attributes = self.edge_attributes.filter(pl.col("edge_id").is_in(keep_e))
        new._next_edge_id = self._next_edge_id
        return new

    def copy(self, name: Optional[str] = None) -> "MlnGraph":
        """Deep copy of structure, attribute tables and graph attributes."""
        new = MlnGraph(name=self.name if name is None else name, directed=self.directed)
        new._incidence = {v: dict(eids) for v, eids in self._incidence.items()}
        new.edge_definitions = dict(self.edge_definitions)
        new.edge_directed = dict(self.edge_directed)
        new.vertex_attributes = self.vertex_attributes.clone()
        new.edge_attributes = self.edge_attributes.clone()
        new.graph_attributes = dict(self.graph_attributes)
        new._next_edge_id = self._next_edge_id
        return new
