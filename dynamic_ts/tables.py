"""
The ancestry table store: append-only columnar node and edge tables, and
the conversions to and from tskit.
"""
import collections

import daiquiri
import numpy as np
import tskit

from . import exceptions
from .intervals import check_interval

logger = daiquiri.getLogger(__name__)

NULL = tskit.NULL
NODE_IS_SAMPLE = tskit.NODE_IS_SAMPLE


NodeTableRow = collections.namedtuple("NodeTableRow", ["time", "flags", "individual"])

EdgeTableRow = collections.namedtuple(
    "EdgeTableRow", ["left", "right", "parent", "child"]
)


def _column(name):
    def getter(self):
        return self._columns[name][: self.num_rows]

    return property(getter, doc=f"The '{name}' column of the table.")


class BaseTable(object):
    """
    A table of rows stored as numpy columns, grown by doubling as rows
    are appended. Column properties return views onto the live rows.
    """

    column_dtypes = {}
    row_class = None

    def __init__(self, max_rows_increment=1024):
        self.max_rows_increment = max(1, max_rows_increment)
        self.num_rows = 0
        self._columns = {
            name: np.zeros(self.max_rows_increment, dtype=dtype)
            for name, dtype in self.column_dtypes.items()
        }

    def _ensure_capacity(self, extra):
        capacity = len(next(iter(self._columns.values())))
        needed = self.num_rows + extra
        if needed > capacity:
            new_capacity = max(needed, 2 * capacity)
            for name, column in self._columns.items():
                expanded = np.zeros(new_capacity, dtype=column.dtype)
                expanded[: self.num_rows] = column[: self.num_rows]
                self._columns[name] = expanded

    def _append(self, **values):
        self._ensure_capacity(1)
        j = self.num_rows
        for name, value in values.items():
            self._columns[name][j] = value
        self.num_rows += 1
        return j

    def set_columns(self, **columns):
        """
        Replaces the contents of this table with the specified columns, which
        must all be given and have equal length.
        """
        if set(columns.keys()) != set(self.column_dtypes.keys()):
            raise ValueError(f"Must specify columns {sorted(self.column_dtypes)}")
        lengths = {len(column) for column in columns.values()}
        if len(lengths) != 1:
            raise ValueError("Columns must have equal length")
        num_rows = lengths.pop()
        self.num_rows = 0
        self._ensure_capacity(num_rows)
        for name, column in columns.items():
            self._columns[name][:num_rows] = column
        self.num_rows = num_rows

    def clear(self):
        self.num_rows = 0

    def truncate(self, num_rows):
        if not (0 <= num_rows <= self.num_rows):
            raise ValueError("Bad truncation length")
        self.num_rows = num_rows

    def copy(self):
        copy = type(self)(self.max_rows_increment)
        copy.set_columns(**self.asdict())
        return copy

    def asdict(self):
        return {name: getattr(self, name).copy() for name in self.column_dtypes}

    def __len__(self):
        return self.num_rows

    def __getitem__(self, index):
        if index < 0:
            index += self.num_rows
        if not (0 <= index < self.num_rows):
            raise IndexError("Row index out of bounds")
        return self.row_class(
            *[self._columns[name][index].item() for name in self.column_dtypes]
        )

    def __iter__(self):
        for j in range(self.num_rows):
            yield self[j]

    def __eq__(self, other):
        if type(self) is not type(other) or self.num_rows != other.num_rows:
            return False
        return all(
            np.array_equal(getattr(self, name), getattr(other, name))
            for name in self.column_dtypes
        )

    def __str__(self):
        names = list(self.column_dtypes)
        lines = ["id\t" + "\t".join(names)]
        for j, row in enumerate(self):
            lines.append(f"{j}\t" + "\t".join(str(value) for value in row))
        return "\n".join(lines)


class NodeTable(BaseTable):
    """
    Nodes are recorded individuals. The row index is the node id; time is
    the birth time as a forward generation index; individual is the
    persistent label of the individual, which survives simplification.
    """

    column_dtypes = {"time": np.int64, "flags": np.uint32, "individual": np.int64}
    row_class = NodeTableRow

    time = _column("time")
    flags = _column("flags")
    individual = _column("individual")

    def add_row(self, time, flags=0, individual=NULL):
        return self._append(time=time, flags=flags, individual=individual)


class EdgeTable(BaseTable):
    """
    Edges record the inheritance of the interval [left, right) by the child
    from the parent. No ordering is required on insertion.
    """

    column_dtypes = {
        "left": np.float64,
        "right": np.float64,
        "parent": np.int32,
        "child": np.int32,
    }
    row_class = EdgeTableRow

    left = _column("left")
    right = _column("right")
    parent = _column("parent")
    child = _column("child")

    def add_row(self, left, right, parent, child):
        return self._append(left=left, right=right, parent=parent, child=child)


def _edge_sort_keys(tables, start=0):
    edges = tables.edges
    parent = edges.parent[start:]
    # Most significant first.
    return (-tables.nodes.time[parent], parent, edges.child[start:], edges.left[start:])


def edges_sorted(tables):
    """
    Returns True if the edges are in canonical order.
    """
    if len(tables.edges) < 2:
        return True
    undecided = np.ones(len(tables.edges) - 1, dtype=bool)
    for key in _edge_sort_keys(tables):
        a = key[:-1]
        b = key[1:]
        if np.any(undecided & (a > b)):
            return False
        undecided &= a == b
    return True


def edge_sort_order(tables, start=0):
    """
    Returns the permutation putting the edges from start onwards into
    canonical order: by parent birth time from the most recent to the
    oldest, then by parent id, child id and left coordinate.
    """
    if start == 0 and edges_sorted(tables):
        return np.arange(len(tables.edges))
    # lexsort uses the last key as the primary one.
    return np.lexsort(_edge_sort_keys(tables, start)[::-1])


class TableCollection(object):
    """
    The node and edge tables describing the ancestry over a genome of
    length sequence_length.
    """

    def __init__(self, sequence_length):
        if not sequence_length > 0:
            raise exceptions.ConfigurationError("sequence_length must be > 0")
        self.sequence_length = sequence_length
        self.nodes = NodeTable()
        self.edges = EdgeTable()

    def add_node(self, time, flags=0, individual=NULL):
        return self.nodes.add_row(time=time, flags=flags, individual=individual)

    def add_edge(self, left, right, parent, child):
        """
        Appends an edge after checking that it refers to existing nodes,
        covers a valid interval and goes forward in time.
        """
        num_nodes = len(self.nodes)
        for u in (parent, child):
            if not (0 <= u < num_nodes):
                raise exceptions.StructuralValidityError(f"Node {u} out of bounds")
        check_interval(left, right, self.sequence_length)
        time = self.nodes.time
        if time[parent] >= time[child]:
            raise exceptions.StructuralValidityError(
                f"Parent {parent} (born {time[parent]}) is not older than "
                f"child {child} (born {time[child]})"
            )
        return self.edges.add_row(left, right, parent, child)

    @property
    def num_nodes(self):
        return len(self.nodes)

    @property
    def num_edges(self):
        return len(self.edges)

    def samples(self):
        return np.where((self.nodes.flags & NODE_IS_SAMPLE) != 0)[0].astype(np.int32)

    def check_integrity(self):
        """
        Raises a StructuralValidityError if the tables do not describe a valid
        ancestry.
        """
        num_nodes = len(self.nodes)
        edges = self.edges
        if len(edges) == 0:
            return
        for name in ("parent", "child"):
            column = getattr(edges, name)
            bad = np.where((column < 0) | (column >= num_nodes))[0]
            if len(bad) > 0:
                raise exceptions.StructuralValidityError(
                    f"Edge {bad[0]} has {name} {column[bad[0]]} out of bounds"
                )
        bad = np.where(
            ~((0 <= edges.left) & (edges.left < edges.right))
            | (edges.right > self.sequence_length)
        )[0]
        if len(bad) > 0:
            j = bad[0]
            raise exceptions.BadIntervalError(
                f"Edge {j} has bad interval [{edges.left[j]}, {edges.right[j]})"
            )
        time = self.nodes.time
        bad = np.where(time[edges.parent] >= time[edges.child])[0]
        if len(bad) > 0:
            j = bad[0]
            raise exceptions.StructuralValidityError(
                f"Edge {j}: parent {edges.parent[j]} is not older than "
                f"child {edges.child[j]}"
            )
        order = np.lexsort((edges.left, edges.child))
        child = edges.child[order]
        left = edges.left[order]
        right = edges.right[order]
        overlap = (child[1:] == child[:-1]) & (left[1:] < right[:-1])
        bad = np.where(overlap)[0]
        if len(bad) > 0:
            raise exceptions.StructuralValidityError(
                f"Edges for child {child[bad[0]]} overlap at {left[bad[0] + 1]}"
            )

    def _reorder_edges(self, order):
        columns = {name: column[order] for name, column in self.edges.asdict().items()}
        self.edges.set_columns(**columns)

    def sort(self, edge_start=0):
        """
        Sorts the edges into canonical order in place. The edges from
        edge_start onwards are those added since the last sort: they are
        sorted on their own and moved in front of the older edges, falling
        back to a full sort if the result is not in canonical order.
        """
        num_edges = len(self.edges)
        if 0 < edge_start < num_edges:
            tail = edge_sort_order(self, start=edge_start) + edge_start
            self._reorder_edges(np.concatenate([tail, np.arange(edge_start)]))
            if edges_sorted(self):
                return
        order = edge_sort_order(self)
        self._reorder_edges(order)

    def simplify(self, samples, keep_unary=False):
        """
        Simplifies the tables in place for the specified samples, and returns
        the map from old node ids to new ones (NULL for removed nodes).
        """
        # Import here to avoid the circular dependency.
        from .simplify import simplify_tables

        tables, node_map = simplify_tables(self, samples, keep_unary=keep_unary)
        self.nodes = tables.nodes
        self.edges = tables.edges
        return node_map

    def copy(self):
        copy = TableCollection(self.sequence_length)
        copy.nodes = self.nodes.copy()
        copy.edges = self.edges.copy()
        return copy

    def __eq__(self, other):
        return (
            isinstance(other, TableCollection)
            and self.sequence_length == other.sequence_length
            and self.nodes == other.nodes
            and self.edges == other.edges
        )

    def __str__(self):
        return "\n".join(
            [
                f"sequence_length = {self.sequence_length}",
                "nodes:",
                str(self.nodes),
                "edges:",
                str(self.edges),
            ]
        )

    def to_tskit(self, time=None):
        """
        Exports to a sorted tskit.TableCollection, converting birth times to
        times before the specified time (default: the most recent birth).
        """
        if time is None:
            time = int(self.nodes.time.max()) if len(self.nodes) > 0 else 0
        if len(self.nodes) > 0 and time < self.nodes.time.max():
            raise ValueError("Export time must not precede any birth")
        tables = tskit.TableCollection(self.sequence_length)
        tables.metadata_schema = tskit.MetadataSchema.permissive_json()
        tables.metadata = {"time": int(time)}
        tables.nodes.metadata_schema = tskit.MetadataSchema.permissive_json()
        for row in self.nodes:
            tables.nodes.add_row(
                flags=row.flags,
                time=time - row.time,
                metadata={"individual": row.individual},
            )
        tables.edges.set_columns(
            left=self.edges.left,
            right=self.edges.right,
            parent=self.edges.parent,
            child=self.edges.child,
        )
        tables.sort()
        return tables

    @classmethod
    def from_tskit(cls, tables, time=None):
        """
        Imports the nodes and edges of a tskit.TableCollection. If time is not
        given it is read from the top-level metadata written by to_tskit,
        falling back to the oldest node time.
        """
        if time is None:
            metadata = tables.metadata
            if isinstance(metadata, dict) and "time" in metadata:
                time = metadata["time"]
            else:
                time = tables.nodes.time.max() if tables.nodes.num_rows > 0 else 0
        ret = cls(tables.sequence_length)
        birth_time = np.rint(time - tables.nodes.time).astype(np.int64)
        individual = np.full(tables.nodes.num_rows, NULL, dtype=np.int64)
        for j, node in enumerate(tables.nodes):
            if isinstance(node.metadata, dict):
                individual[j] = node.metadata.get("individual", NULL)
        ret.nodes.set_columns(
            time=birth_time, flags=tables.nodes.flags, individual=individual
        )
        ret.edges.set_columns(
            left=tables.edges.left,
            right=tables.edges.right,
            parent=tables.edges.parent,
            child=tables.edges.child,
        )
        ret.check_integrity()
        return ret

    def dump(self, path, time=None):
        self.to_tskit(time).tree_sequence().dump(path)
        logger.info("Wrote %d nodes and %d edges to %s", self.num_nodes, self.num_edges, path)

    @classmethod
    def load(cls, path):
        ts = tskit.load(path)
        return cls.from_tskit(ts.dump_tables())
