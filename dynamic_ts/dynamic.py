"""
Ancestry tracking where we simplify inline, keeping a live graph of
individuals that is pruned as lineages are lost.

Each individual records the child segments it transmitted, the set of
parents that refer to it and its "ancestry": the mapping from intervals of
its genome to the nearest node below it (itself, a coalescence or a
sample). Alive individuals always map the whole genome to themselves.
When individuals die, the loss of ancestral material is propagated up the
graph one individual at a time, oldest last, so that only the part of the
graph that changes is visited. After each generation the graph is exactly
the simplified genealogy of the alive individuals.
"""
import heapq

import daiquiri

from . import exceptions
from .intervals import Segment, overlapping_segments, squash_append
from .recombination import transmitted_segments
from .tables import NODE_IS_SAMPLE, TableCollection

logger = daiquiri.getLogger(__name__)


class Individual(object):
    """
    Class representing a single individual that was alive at some time.
    """

    def __init__(self, index, time, is_alive=True):
        self.index = index
        self.time = time
        self.is_alive = is_alive
        # The child segments of this individual, keyed by the index of the
        # child. Each list is sorted and squashed.
        self.children = {}
        # The ancestry mapping for this individual, as derived from the children
        # segments. If this individual is currently alive, this is a single
        # segment mapping to itself. If not, each segment records the closest
        # node below where there is a sample or a coalescence.
        self.ancestry = []
        # The indexes of the individuals whose children include this one.
        self.parents = set()

    def __repr__(self):
        return (
            f"Individual(index={self.index}, time={self.time}, "
            f"is_alive={self.is_alive})"
        )

    def add_child_segment(self, child, left, right):
        squash_append(self.children.setdefault(child, []), left, right)


class DynamicAncestry(object):
    """
    The arena of individuals, addressed by their integer index, and the
    operations that keep it minimal.
    """

    def __init__(self, sequence_length):
        if not sequence_length > 0:
            raise exceptions.ConfigurationError("sequence_length must be > 0")
        self.sequence_length = sequence_length
        self.nodes = {}
        self.num_alive = 0
        self.deaths = []

    def _get(self, index):
        try:
            return self.nodes[index]
        except KeyError:
            raise exceptions.AncestryStateError(f"Unknown individual {index}")

    def _new_individual(self, index, time):
        if index in self.nodes:
            raise exceptions.AncestryStateError(f"Individual {index} already exists")
        ind = Individual(index, time)
        ind.ancestry = [Segment(0, self.sequence_length, index)]
        self.nodes[index] = ind
        self.num_alive += 1
        return ind

    def add_founder(self, individual, time):
        self._new_individual(individual, time)

    def record_birth(self, parents, offspring, breakpoints, time):
        """
        Records the birth of the offspring at the specified time, inheriting
        the genome from the parents, alternating at the breakpoints.
        """
        for index in parents:
            parent = self._get(index)
            if not parent.is_alive:
                raise exceptions.AncestryStateError(f"Parent {index} is not alive")
            if parent.time >= time:
                raise exceptions.StructuralValidityError(
                    f"Parent {index} (born {parent.time}) is not older than "
                    f"offspring born at {time}"
                )
        segments = transmitted_segments(parents, breakpoints, self.sequence_length)
        child = self._new_individual(offspring, time)
        for seg in segments:
            self.nodes[seg.node].add_child_segment(offspring, seg.left, seg.right)
            child.parents.add(seg.node)

    def record_death(self, individual):
        ind = self._get(individual)
        if not ind.is_alive:
            raise exceptions.AncestryStateError(f"Individual {individual} already dead")
        ind.is_alive = False
        self.num_alive -= 1
        self.deaths.append(individual)

    def finalize_generation(self, time):
        visits, removed = self.prune_extinct()
        logger.debug(
            "Generation %d: visited %d individuals, removed %d, %d remain",
            time,
            visits,
            removed,
            len(self.nodes),
        )

    def finish(self, time):
        pass

    def update_ancestry(self, ind, touched):
        """
        Recomputes the ancestry and child segments of the specified individual
        from the ancestry of its children. Returns True if the ancestry changed.
        """
        S = []
        for child_index, segments in ind.children.items():
            child = self.nodes[child_index]
            for e in segments:
                for x in child.ancestry:
                    if x.right > e.left and e.right > x.left:
                        S.append(
                            Segment(max(x.left, e.left), min(x.right, e.right), x.node)
                        )
            child.parents.discard(ind.index)
            touched.add(child_index)

        children = {}
        ancestry = []
        for left, right, X in overlapping_segments(S):
            if len(X) == 1:
                mapped = X[0].node
                # Alive individuals are samples, and so keep their unary edges.
                if ind.is_alive:
                    squash_append(children.setdefault(mapped, []), left, right)
            else:
                mapped = ind.index
                for x in X:
                    squash_append(children.setdefault(x.node, []), left, right)
            if not ind.is_alive:
                squash_append(ancestry, left, right, mapped)
        if ind.is_alive:
            ancestry = [Segment(0, self.sequence_length, ind.index)]

        ind.children = children
        for child_index in children:
            self.nodes[child_index].parents.add(ind.index)
        changed = ancestry != ind.ancestry
        ind.ancestry = ancestry
        return changed

    def prune_extinct(self):
        """
        Propagates the loss of ancestry from the individuals that died since
        the last call up through their ancestors, and removes individuals that
        no longer carry ancestry to the living. Returns the number of
        individuals visited and removed.
        """
        heap = [(-self.nodes[u].time, u) for u in self.deaths]
        heapq.heapify(heap)
        queued = set(self.deaths)
        self.deaths = []
        touched = set()
        visits = 0
        while len(heap) > 0:
            _, index = heapq.heappop(heap)
            queued.remove(index)
            ind = self.nodes[index]
            visits += 1
            touched.add(index)
            if self.update_ancestry(ind, touched):
                for parent in ind.parents:
                    if parent not in queued:
                        heapq.heappush(heap, (-self.nodes[parent].time, parent))
                        queued.add(parent)
        removed = 0
        for index in touched:
            ind = self.nodes.get(index)
            if ind is None or ind.is_alive or len(ind.children) > 0:
                continue
            if len(ind.parents) > 0:
                raise exceptions.AncestryStateError(
                    f"{ind} has no descendants but is still referenced"
                )
            del self.nodes[index]
            removed += 1
        return visits, removed

    @property
    def num_nodes(self):
        return len(self.nodes)

    @property
    def num_edges(self):
        return sum(
            len(segments)
            for ind in self.nodes.values()
            for segments in ind.children.values()
        )

    @property
    def alive(self):
        return sorted(ind.index for ind in self.nodes.values() if ind.is_alive)

    def edges(self):
        """
        Returns the sorted list of (left, right, parent, child) tuples in the
        graph, labelled by individual index.
        """
        edges = []
        for ind in self.nodes.values():
            for child, segments in ind.children.items():
                for seg in segments:
                    edges.append((seg.left, seg.right, ind.index, child))
        return sorted(edges)

    def lineage(self, individual, position):
        """
        Returns the list of individuals on the path from the specified
        individual to the root at the specified position.
        """
        if not (0 <= position < self.sequence_length):
            raise exceptions.BadIntervalError(f"Position {position} out of bounds")
        ind = self._get(individual)
        path = [individual]
        while True:
            next_ind = None
            for parent in ind.parents:
                for seg in self.nodes[parent].children[ind.index]:
                    if seg.left <= position < seg.right:
                        next_ind = self.nodes[parent]
                        break
                if next_ind is not None:
                    break
            if next_ind is None:
                break
            ind = next_ind
            path.append(ind.index)
        return path

    def check_state(self):
        """
        Checks the consistency of the graph, raising an AncestryStateError
        if something is wrong.
        """

        def fail(message):
            raise exceptions.AncestryStateError(message)

        num_alive = 0
        for ind in self.nodes.values():
            if ind.is_alive:
                num_alive += 1
                if ind.ancestry != [Segment(0, self.sequence_length, ind.index)]:
                    fail(f"{ind} does not map to itself")
            else:
                if len(ind.children) == 0:
                    fail(f"Dead {ind} with no children was not removed")
            for j in range(1, len(ind.ancestry)):
                if ind.ancestry[j - 1].right > ind.ancestry[j].left:
                    fail(f"{ind} has overlapping ancestry")
            for child, segments in ind.children.items():
                if child not in self.nodes:
                    fail(f"{ind} refers to removed child {child}")
                if ind.index not in self.nodes[child].parents:
                    fail(f"{ind} missing from parents of {child}")
                if self.nodes[child].time <= ind.time:
                    fail(f"{ind} is not older than child {child}")
                for j in range(1, len(segments)):
                    if segments[j - 1].right >= segments[j].left:
                        fail(f"Unsquashed or overlapping segments {ind} -> {child}")
            for parent in ind.parents:
                if parent not in self.nodes:
                    fail(f"{ind} refers to removed parent {parent}")
                if ind.index not in self.nodes[parent].children:
                    fail(f"{ind} missing from children of {parent}")
        if num_alive != self.num_alive:
            fail(f"Expected {self.num_alive} alive individuals, found {num_alive}")
        if len(self.deaths) > 0:
            fail("Deaths have not been propagated")

    def export(self):
        """
        Exports the graph to a TableCollection, with nodes in order of birth
        and the alive individuals marked as samples.
        """
        tables = TableCollection(self.sequence_length)
        individuals = sorted(self.nodes.values(), key=lambda ind: (ind.time, ind.index))
        node_map = {}
        for ind in individuals:
            node_map[ind.index] = tables.add_node(
                time=ind.time,
                flags=NODE_IS_SAMPLE if ind.is_alive else 0,
                individual=ind.index,
            )
        for left, right, parent, child in self.edges():
            tables.edges.add_row(left, right, node_map[parent], node_map[child])
        tables.sort()
        return tables

    def to_tskit(self, time=None):
        return self.export().to_tskit(time)
