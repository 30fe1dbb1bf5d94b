"""
Ancestry tracking with append-only node and edge tables and periodic
simplification.
"""
import daiquiri
import numpy as np

from . import exceptions
from .recombination import transmitted_segments
from .tables import NODE_IS_SAMPLE, NULL, TableCollection

logger = daiquiri.getLogger(__name__)

ENGINES = ("python", "tskit")


class TreeSequenceAncestry(object):
    """
    Records every birth in a TableCollection and simplifies the tables for
    the alive individuals every simplification_interval generations. The
    simplification engine is either our Simplifier ("python") or tskit's
    ("tskit").
    """

    def __init__(self, sequence_length, simplification_interval=1, engine="python"):
        if simplification_interval <= 0:
            raise exceptions.ConfigurationError("simplification_interval must be > 0")
        if engine not in ENGINES:
            raise exceptions.ConfigurationError(f"Unknown simplify engine '{engine}'")
        self.sequence_length = sequence_length
        self.simplification_interval = simplification_interval
        self.engine = engine
        self.tables = TableCollection(sequence_length)
        # Map from alive individuals to their node in the tables.
        self.node_of = {}
        self.num_simplifications = 0
        self.last_time_simplified = None
        # Edges before this index are in canonical order.
        self.edge_start = 0
        self.dirty = False

    def _node(self, individual):
        try:
            return self.node_of[individual]
        except KeyError:
            raise exceptions.AncestryStateError(f"Individual {individual} is not alive")

    def add_founder(self, individual, time):
        if individual in self.node_of:
            raise exceptions.AncestryStateError(f"Individual {individual} already exists")
        self.node_of[individual] = self.tables.add_node(time, individual=individual)
        self.dirty = True

    def record_birth(self, parents, offspring, breakpoints, time):
        """
        Appends a node for the offspring and an edge for each segment it
        inherits.
        """
        if offspring in self.node_of:
            raise exceptions.AncestryStateError(f"Individual {offspring} already exists")
        parent_nodes = {index: self._node(index) for index in parents}
        segments = transmitted_segments(parents, breakpoints, self.sequence_length)
        child = self.tables.add_node(time, individual=offspring)
        for seg in segments:
            self.tables.add_edge(seg.left, seg.right, parent_nodes[seg.node], child)
        self.node_of[offspring] = child
        self.dirty = True

    def record_death(self, individual):
        self._node(individual)
        del self.node_of[individual]
        self.dirty = True

    def samples(self):
        return sorted(self.node_of.values())

    def maybe_simplify(self, time):
        """
        Simplifies if time is a positive multiple of the simplification
        interval. Returns True if simplification happened.
        """
        if time > 0 and time % self.simplification_interval == 0:
            self.simplify(time)
            return True
        return False

    def finalize_generation(self, time):
        self.maybe_simplify(time)

    def finish(self, time):
        if self.dirty:
            self.simplify(time)

    def _simplify_tables(self, tables, samples):
        if self.engine == "tskit":
            tsk_tables = tables.to_tskit()
            node_map = tsk_tables.simplify(np.array(samples, dtype=np.int32))
            return TableCollection.from_tskit(tsk_tables), node_map
        tables.sort(edge_start=self.edge_start)
        node_map = tables.simplify(samples)
        return tables, node_map

    @staticmethod
    def _remap(node_of, node_map):
        remapped = {}
        for individual, node in node_of.items():
            new_node = node_map[node]
            if new_node == NULL:
                raise exceptions.AncestryStateError(
                    f"Alive individual {individual} removed by simplification"
                )
            remapped[individual] = int(new_node)
        return remapped

    def simplify(self, time=None):
        """
        Simplifies the tables for the alive individuals and remaps their
        nodes.
        """
        before = self.tables.num_nodes, self.tables.num_edges
        self.tables, node_map = self._simplify_tables(self.tables, self.samples())
        self.node_of = self._remap(self.node_of, node_map)
        self.edge_start = self.tables.num_edges
        self.num_simplifications += 1
        self.last_time_simplified = time
        self.dirty = False
        logger.debug(
            "Simplified at time %s: %d nodes, %d edges -> %d nodes, %d edges",
            time,
            before[0],
            before[1],
            self.tables.num_nodes,
            self.tables.num_edges,
        )
        return node_map

    def simplified_view(self):
        """
        Returns the simplified tables and alive node map, simplifying a copy
        of the tables if there were changes since the last simplification.
        """
        if not self.dirty:
            return self.tables, self.node_of
        tables, node_map = self._simplify_tables(self.tables.copy(), self.samples())
        return tables, self._remap(self.node_of, node_map)

    @property
    def num_nodes(self):
        return self.tables.num_nodes

    @property
    def num_edges(self):
        return self.tables.num_edges

    @property
    def alive(self):
        return sorted(self.node_of.keys())

    def edges(self):
        """
        Returns the sorted list of (left, right, parent, child) tuples of the
        simplified tables, labelled by individual.
        """
        tables, _ = self.simplified_view()
        label = tables.nodes.individual
        edges = tables.edges
        return sorted(
            zip(
                edges.left.tolist(),
                edges.right.tolist(),
                label[edges.parent].tolist(),
                label[edges.child].tolist(),
            )
        )

    def lineage(self, individual, position):
        """
        Returns the list of individuals on the path from the specified
        individual to the root at the specified position.
        """
        if not (0 <= position < self.sequence_length):
            raise exceptions.BadIntervalError(f"Position {position} out of bounds")
        tables, node_of = self.simplified_view()
        if individual not in node_of:
            raise exceptions.AncestryStateError(f"Individual {individual} is not alive")
        edges = tables.edges
        covers = (edges.left <= position) & (position < edges.right)
        u = node_of[individual]
        path = [individual]
        while True:
            index = np.flatnonzero(covers & (edges.child == u))
            if len(index) == 0:
                break
            u = edges.parent[index[0]]
            path.append(int(tables.nodes.individual[u]))
        return path

    def check_state(self):
        self.tables.check_integrity()
        labels = self.tables.nodes.individual
        for individual, node in self.node_of.items():
            if not (0 <= node < self.tables.num_nodes) or labels[node] != individual:
                raise exceptions.AncestryStateError(
                    f"Individual {individual} mapped to wrong node {node}"
                )

    def export(self):
        """
        Returns a copy of the current tables with the alive individuals
        marked as samples.
        """
        tables = self.tables.copy()
        flags = tables.nodes.flags & ~np.uint32(NODE_IS_SAMPLE)
        flags[self.samples()] |= np.uint32(NODE_IS_SAMPLE)
        tables.nodes.set_columns(
            time=tables.nodes.time, flags=flags, individual=tables.nodes.individual
        )
        return tables

    def to_tskit(self, time=None):
        return self.export().to_tskit(time)
