"""
Tests for the tree sequence backend with periodic simplification.
"""
import pytest

from dynamic_ts import exceptions
from dynamic_ts.dynamic import DynamicAncestry
from dynamic_ts.treeseq import TreeSequenceAncestry

from . import tsutil


def founders(n, sequence_length=100, **kwargs):
    backend = TreeSequenceAncestry(sequence_length, **kwargs)
    for j in range(n):
        backend.add_founder(j, 0)
    return backend


def crossover_generation(backend):
    backend.record_birth((0, 1), 2, [40], 1)
    backend.record_birth((0, 1), 3, [60], 1)
    backend.record_death(0)
    backend.record_death(1)
    backend.finalize_generation(1)


class TestConfiguration:
    @pytest.mark.parametrize("interval", [0, -1])
    def test_bad_interval(self, interval):
        with pytest.raises(exceptions.ConfigurationError):
            TreeSequenceAncestry(10, simplification_interval=interval)

    def test_bad_engine(self):
        with pytest.raises(exceptions.ConfigurationError):
            TreeSequenceAncestry(10, engine="msprime")


class TestSimplificationInterval:
    @pytest.mark.parametrize(
        "interval, expected",
        [(1, [1, 2, 3, 4, 5, 6, 7]), (3, [3, 6]), (7, [7]), (10, [])],
    )
    def test_times(self, interval, expected):
        backend = founders(2, simplification_interval=interval)
        simplified = []
        for time in range(1, 8):
            backend.finalize_generation(time)
            if backend.last_time_simplified == time:
                simplified.append(time)
        assert simplified == expected
        assert backend.num_simplifications == len(expected)

    def test_time_zero_not_simplified(self):
        backend = founders(2)
        assert not backend.maybe_simplify(0)
        assert backend.num_simplifications == 0

    def test_finish_simplifies_when_dirty(self):
        backend = founders(2, simplification_interval=5)
        crossover_generation(backend)
        assert backend.dirty
        assert backend.num_nodes == 4
        backend.finish(1)
        assert not backend.dirty
        assert backend.num_simplifications == 1
        backend.finish(1)
        assert backend.num_simplifications == 1

    def test_edge_start_tracks_simplified_edges(self):
        backend = founders(4, simplification_interval=2)
        assert backend.edge_start == 0
        backend.record_birth((0, 1), 4, [30], 1)
        backend.record_birth((0, 1), 5, [60], 1)
        backend.record_birth((2, 3), 6, [50], 1)
        backend.record_birth((2, 3), 7, [20], 1)
        for j in range(4):
            backend.record_death(j)
        backend.finalize_generation(1)
        assert backend.edge_start == 0
        backend.finalize_generation(2)
        assert backend.edge_start == backend.num_edges > 0
        backend.record_birth((4, 6), 8, [40], 3)
        backend.record_birth((5, 7), 9, [], 3)
        for j in range(4, 8):
            backend.record_death(j)
        reference = TreeSequenceAncestry(100)
        reference.tables = backend.tables.copy()
        reference.node_of = dict(backend.node_of)
        backend.simplify(3)
        reference.simplify(3)
        backend.check_state()
        assert backend.tables == reference.tables
        assert backend.edge_start == backend.num_edges


class TestBackend:
    def test_founders(self):
        backend = founders(3)
        assert backend.alive == [0, 1, 2]
        assert backend.samples() == [0, 1, 2]
        assert backend.lineage(2, 0) == [2]

    def test_crossover(self):
        backend = founders(2)
        crossover_generation(backend)
        backend.check_state()
        assert backend.alive == [2, 3]
        assert backend.num_nodes == 4
        assert backend.edges() == [
            (0, 40, 0, 2),
            (0, 40, 0, 3),
            (60, 100, 1, 2),
            (60, 100, 1, 3),
        ]
        assert backend.lineage(2, 10) == [2, 0]
        assert backend.lineage(2, 50) == [2]

    def test_remap_after_simplify(self):
        backend = founders(4)
        backend.record_birth((0, 1), 4, [30], 1)
        backend.record_birth((2, 3), 5, [70], 1)
        for j in range(4):
            backend.record_death(j)
        backend.finalize_generation(1)
        backend.check_state()
        # No coalescence: only the alive individuals remain.
        assert backend.num_nodes == 2
        assert backend.num_edges == 0
        labels = backend.tables.nodes.individual
        for individual in backend.alive:
            assert labels[backend.node_of[individual]] == individual

    def test_dirty_queries_do_not_change_tables(self):
        backend = founders(2, simplification_interval=100)
        crossover_generation(backend)
        before = backend.tables.copy()
        assert backend.edges() == [
            (0, 40, 0, 2),
            (0, 40, 0, 3),
            (60, 100, 1, 2),
            (60, 100, 1, 3),
        ]
        assert backend.lineage(3, 70) == [3, 1]
        assert backend.tables == before
        assert backend.dirty

    def test_dead_parent(self):
        backend = founders(2)
        backend.record_death(1)
        with pytest.raises(exceptions.AncestryStateError):
            backend.record_birth((0, 1), 2, [], 1)

    def test_double_death(self):
        backend = founders(2)
        backend.record_death(1)
        with pytest.raises(exceptions.AncestryStateError):
            backend.record_death(1)

    def test_duplicate_founder(self):
        backend = founders(2)
        with pytest.raises(exceptions.AncestryStateError):
            backend.add_founder(0, 0)

    def test_not_alive_lineage(self):
        backend = founders(2)
        crossover_generation(backend)
        with pytest.raises(exceptions.AncestryStateError):
            backend.lineage(0, 10)

    def test_export(self):
        backend = founders(2)
        crossover_generation(backend)
        exported = backend.export()
        assert list(exported.samples()) == backend.samples()
        ts = backend.to_tskit().tree_sequence()
        assert ts.num_samples == 2
        assert ts.num_trees == 3


class TestEngines:
    @pytest.mark.parametrize("seed", range(1, 6))
    def test_python_tskit_agree(self, seed):
        tables, samples = tsutil.raw_wf_tables(
            8, 30, 6, recombination_rate=0.05, death_probability=0.7, seed=seed
        )
        results = []
        for engine in ["python", "tskit"]:
            backend = TreeSequenceAncestry(30, engine=engine)
            backend.tables = tables.copy()
            backend.node_of = {
                int(tables.nodes.individual[u]): u for u in samples
            }
            backend.simplify(6)
            backend.check_state()
            results.append((backend.edges(), backend.alive))
        assert results[0] == results[1]

    def test_tskit_engine_backend(self):
        backend = founders(2, engine="tskit")
        crossover_generation(backend)
        backend.check_state()
        assert backend.edges() == [
            (0, 40, 0, 2),
            (0, 40, 0, 3),
            (60, 100, 1, 2),
            (60, 100, 1, 3),
        ]


class TestAgainstDynamic:
    def test_manual_history(self):
        dynamic = DynamicAncestry(100)
        backend = TreeSequenceAncestry(100, simplification_interval=2)
        history = [
            [((0, 1), 4, [20]), ((2, 3), 5, [50]), ((1, 2), 6, [80])],
            [((4, 5), 7, [10, 60]), ((4, 6), 8, []), ((5, 6), 9, [30])],
            [((7, 8), 10, [45]), ((8, 9), 11, [55])],
        ]
        deaths = [[0, 1, 2, 3], [4, 5, 6], [7, 8, 9]]
        for graph in [dynamic, backend]:
            for j in range(4):
                graph.add_founder(j, 0)
            for time, (births, dead) in enumerate(zip(history, deaths), start=1):
                for parents, child, breakpoints in births:
                    graph.record_birth(parents, child, breakpoints, time)
                for individual in dead:
                    graph.record_death(individual)
                graph.finalize_generation(time)
            graph.finish(len(history))
            graph.check_state()
        assert dynamic.alive == backend.alive == [10, 11]
        assert dynamic.edges() == backend.edges()
        for position in [0, 15, 45, 70, 99]:
            for individual in [10, 11]:
                assert dynamic.lineage(individual, position) == backend.lineage(
                    individual, position
                )
