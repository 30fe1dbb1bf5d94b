"""
Simplification of ancestry tables: reduce the node and edge tables to the
minimal set that describes the genealogy of a set of samples.
"""
import daiquiri
import numpy as np

from . import exceptions
from .intervals import Segment, overlapping_segments
from .tables import NODE_IS_SAMPLE, NULL, TableCollection, edge_sort_order

logger = daiquiri.getLogger(__name__)


class AncestrySegment(Segment):
    """
    A segment in the chain of ancestry for an input node. The node it records
    is the *output* node ID.
    """

    def __init__(self, left, right, node, next=None):
        super().__init__(left, right, node)
        self.next = next

    def __str__(self):
        return f"({self.left}-{self.right}->{self.node}:next={self.next!r})"


class Simplifier(object):
    """
    Simplifies a table collection to its minimal representation given a
    list of samples. If keep_unary is True, nodes that are ancestral to the
    samples are kept even where they do not coalesce.
    """

    def __init__(self, tables, samples, keep_unary=False):
        tables.check_integrity()
        self.input_tables = tables
        self.keep_unary = keep_unary
        self.sequence_length = tables.sequence_length
        num_nodes = len(tables.nodes)
        self.samples = self._check_samples(samples, num_nodes)
        self.A_head = [None for _ in range(num_nodes)]
        self.A_tail = [None for _ in range(num_nodes)]
        self.tables = TableCollection(self.sequence_length)
        self.edge_buffer = {}
        self.node_id_map = np.zeros(num_nodes, dtype=np.int32) + NULL
        for sample_id in self.samples:
            output_id = self.record_node(sample_id, is_sample=True)
            self.add_ancestry(sample_id, 0, self.sequence_length, output_id)

    @staticmethod
    def _check_samples(samples, num_nodes):
        samples = [int(u) for u in samples]
        seen = set()
        for u in samples:
            if not (0 <= u < num_nodes):
                raise exceptions.BadSampleError(f"Sample {u} out of bounds")
            if u in seen:
                raise exceptions.BadSampleError(f"Duplicate sample {u}")
            seen.add(u)
        return samples

    def record_node(self, input_id, is_sample=False):
        """
        Adds a new node to the output table corresponding to the specified input
        node ID.
        """
        node = self.input_tables.nodes[input_id]
        # Need to zero out the sample flag
        flags = node.flags & ~NODE_IS_SAMPLE
        if is_sample:
            flags |= NODE_IS_SAMPLE
        output_id = self.tables.add_node(
            time=node.time, flags=flags, individual=node.individual
        )
        self.node_id_map[input_id] = output_id
        return output_id

    def flush_edges(self, parent):
        """
        Flush the edges to the output table after sorting and squashing
        any redundant records.
        """
        for child in sorted(self.edge_buffer.keys()):
            for edge in self.edge_buffer[child]:
                self.tables.edges.add_row(edge.left, edge.right, parent, child)
        self.edge_buffer.clear()

    def record_edge(self, left, right, child):
        """
        Adds an edge to the output list.
        """
        if child not in self.edge_buffer:
            self.edge_buffer[child] = [Segment(left, right)]
        else:
            last = self.edge_buffer[child][-1]
            if last.right == left:
                last.right = right
            else:
                self.edge_buffer[child].append(Segment(left, right))

    def add_ancestry(self, input_id, left, right, node):
        tail = self.A_tail[input_id]
        if tail is None:
            x = AncestrySegment(left, right, node)
            self.A_head[input_id] = x
            self.A_tail[input_id] = x
        else:
            if tail.right == left and tail.node == node:
                tail.right = right
            else:
                x = AncestrySegment(left, right, node)
                tail.next = x
                self.A_tail[input_id] = x

    def merge_labeled_ancestors(self, S, input_id):
        """
        All ancestry segments in S come together into a new parent.
        The new parent must be assigned and any overlapping segments coalesced.
        """
        output_id = int(self.node_id_map[input_id])
        is_sample = output_id != NULL
        if is_sample:
            # Free up the existing ancestry mapping.
            x = self.A_tail[input_id]
            assert x.left == 0 and x.right == self.sequence_length
            self.A_tail[input_id] = None
            self.A_head[input_id] = None

        prev_right = 0
        for left, right, X in overlapping_segments(S):
            if len(X) == 1:
                ancestry_node = X[0].node
                if is_sample or self.keep_unary:
                    if output_id == NULL:
                        output_id = self.record_node(input_id)
                    self.record_edge(left, right, X[0].node)
                    ancestry_node = output_id
            else:
                if output_id == NULL:
                    output_id = self.record_node(input_id)
                ancestry_node = output_id
                for x in X:
                    self.record_edge(left, right, x.node)
            if is_sample and left != prev_right:
                # Fill in any gaps in the ancestry for the sample
                self.add_ancestry(input_id, prev_right, left, output_id)
            self.add_ancestry(input_id, left, right, ancestry_node)
            prev_right = right

        if is_sample and prev_right != self.sequence_length:
            # If a trailing gap exists in the sample ancestry, fill it in.
            self.add_ancestry(input_id, prev_right, self.sequence_length, output_id)
        if output_id != NULL:
            self.flush_edges(output_id)

    def process_parent_edges(self, parent, edges):
        """
        Process all of the (left, right, child) edges for a given parent.
        """
        S = []
        for left, right, child in edges:
            x = self.A_head[child]
            while x is not None:
                if x.right > left and right > x.left:
                    y = Segment(max(x.left, left), min(x.right, right), x.node)
                    S.append(y)
                x = x.next
        self.merge_labeled_ancestors(S, parent)

    def simplify(self):
        edges = self.input_tables.edges
        order = edge_sort_order(self.input_tables)
        left = edges.left[order].tolist()
        right = edges.right[order].tolist()
        parent = edges.parent[order].tolist()
        child = edges.child[order].tolist()
        j = 0
        num_edges = len(order)
        while j < num_edges:
            u = parent[j]
            k = j
            while k < num_edges and parent[k] == u:
                k += 1
            self.process_parent_edges(
                u, list(zip(left[j:k], right[j:k], child[j:k]))
            )
            j = k
        # Parents born at the same time may be processed in a different order
        # in later passes, so put the output into canonical order.
        self.tables.sort()
        logger.debug(
            "Simplified %d nodes, %d edges to %d nodes, %d edges for %d samples",
            len(self.input_tables.nodes),
            num_edges,
            len(self.tables.nodes),
            len(self.tables.edges),
            len(self.samples),
        )
        return self.tables, self.node_id_map

    def check_state(self):
        num_nodes = len(self.A_head)
        for j in range(num_nodes):
            head = self.A_head[j]
            tail = self.A_tail[j]
            if head is None:
                assert tail is None
            else:
                x = head
                while x.next is not None:
                    x = x.next
                assert x == tail
                x = head.next
                while x is not None:
                    assert x.left < x.right
                    if x.next is not None:
                        assert x.right <= x.next.left
                        # We should also not have any squashable segments.
                        if x.right == x.next.left:
                            assert x.node != x.next.node
                    x = x.next


def simplify_tables(tables, samples, keep_unary=False):
    """
    Returns a new, simplified TableCollection for the specified samples and
    the map from input node ids to output node ids (NULL if removed). The
    input tables are not modified.
    """
    simplifier = Simplifier(tables, samples, keep_unary=keep_unary)
    return simplifier.simplify()
