"""
A simple Wright-Fisher style forward simulator that delegates the recording
of ancestry to one of the ancestry backends.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Protocol, Tuple, runtime_checkable

import daiquiri
import numpy as np

from . import exceptions
from .dynamic import DynamicAncestry
from .recombination import generate_breakpoints
from .treeseq import ENGINES, TreeSequenceAncestry

logger = daiquiri.getLogger(__name__)

BACKENDS = ("dynamic", "tskit")
MATING_SYSTEMS = ("sexual", "asexual")


@runtime_checkable
class AncestryBackend(Protocol):
    """
    The operations the simulator needs from an ancestry backend.
    """

    sequence_length: float
    num_nodes: int
    num_edges: int

    def add_founder(self, individual: int, time: int) -> None:
        ...

    def record_birth(
        self, parents: Tuple[int, ...], offspring: int, breakpoints: List[float], time: int
    ) -> None:
        ...

    def record_death(self, individual: int) -> None:
        ...

    def finalize_generation(self, time: int) -> None:
        ...

    def finish(self, time: int) -> None:
        ...

    def lineage(self, individual: int, position: float) -> List[int]:
        ...


class SimulationStatus(IntEnum):
    COMPLETED = 0
    EXTINCT = 1


@dataclass
class SimulationConfig:
    population_size: int
    sequence_length: float
    num_generations: int
    recombination_rate: float = 0.0
    death_probability: float = 1.0
    replacement_probability: float = 1.0
    mating: str = "sexual"
    discrete_genome: bool = True
    backend: str = "dynamic"
    simplification_interval: int = 1
    simplify_engine: str = "python"
    seed: Optional[int] = None

    def validate(self):
        """
        Raises a ConfigurationError if any parameter is out of range.
        """
        if self.population_size <= 0:
            raise exceptions.ConfigurationError("population_size must be > 0")
        if not self.sequence_length > 0:
            raise exceptions.ConfigurationError("sequence_length must be > 0")
        if self.num_generations <= 0:
            raise exceptions.ConfigurationError("num_generations must be > 0")
        if self.recombination_rate < 0:
            raise exceptions.ConfigurationError("recombination_rate must be >= 0")
        for name in ("death_probability", "replacement_probability"):
            value = getattr(self, name)
            if not (0 <= value <= 1):
                raise exceptions.ConfigurationError(f"{name} must be in [0, 1]")
        if self.mating not in MATING_SYSTEMS:
            raise exceptions.ConfigurationError(f"Unknown mating system '{self.mating}'")
        if self.backend not in BACKENDS:
            raise exceptions.ConfigurationError(f"Unknown backend '{self.backend}'")
        if self.simplification_interval <= 0:
            raise exceptions.ConfigurationError("simplification_interval must be > 0")
        if self.simplify_engine not in ENGINES:
            raise exceptions.ConfigurationError(
                f"Unknown simplify engine '{self.simplify_engine}'"
            )


@dataclass
class SimulationResult:
    status: SimulationStatus
    generations: int
    time: int
    num_alive: int
    num_nodes: int
    num_edges: int

    @property
    def extinct(self):
        return self.status == SimulationStatus.EXTINCT


def make_backend(config: SimulationConfig) -> AncestryBackend:
    if config.backend == "dynamic":
        return DynamicAncestry(config.sequence_length)
    return TreeSequenceAncestry(
        config.sequence_length,
        simplification_interval=config.simplification_interval,
        engine=config.simplify_engine,
    )


class Simulator(object):
    """
    Simple Wright-Fisher simulator. Each generation every individual dies
    with probability death_probability, and each death is replaced with
    probability replacement_probability by the offspring of parents chosen
    uniformly with replacement from the population before the deaths.
    """

    def __init__(
        self,
        config: SimulationConfig,
        backend: Optional[AncestryBackend] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        config.validate()
        self.config = config
        self.rng = np.random.default_rng(config.seed) if rng is None else rng
        self.backend = make_backend(config) if backend is None else backend
        self.time = 0
        self.generations = 0
        self.population = list(range(config.population_size))
        self.next_individual = config.population_size
        for individual in self.population:
            self.backend.add_founder(individual, self.time)

    def choose_parents(self):
        n = len(self.population)
        if self.config.mating == "asexual":
            return (self.population[self.rng.integers(n)],)
        return (
            self.population[self.rng.integers(n)],
            self.population[self.rng.integers(n)],
        )

    def run_generation(self):
        """
        Implements a single generation.
        """
        config = self.config
        birth_time = self.time + 1
        deaths = [
            j
            for j in range(len(self.population))
            if self.rng.random() < config.death_probability
        ]
        replacements = []
        for j in deaths:
            if config.replacement_probability < 1:
                if not self.rng.random() < config.replacement_probability:
                    continue
            parents = self.choose_parents()
            breakpoints = []
            if len(parents) == 2:
                breakpoints = generate_breakpoints(
                    self.rng,
                    config.sequence_length,
                    config.recombination_rate,
                    discrete_genome=config.discrete_genome,
                )
            offspring = self.next_individual
            self.next_individual += 1
            self.backend.record_birth(parents, offspring, breakpoints, birth_time)
            replacements.append((j, offspring))
        for j in deaths:
            self.backend.record_death(self.population[j])
            self.population[j] = None
        for j, offspring in replacements:
            self.population[j] = offspring
        self.population = [u for u in self.population if u is not None]
        self.time = birth_time
        self.generations += 1
        self.backend.finalize_generation(self.time)

    def run(self):
        logger.info(
            "Running %d generations with N=%d, L=%s, backend=%s",
            self.config.num_generations,
            self.config.population_size,
            self.config.sequence_length,
            self.config.backend,
        )
        status = SimulationStatus.COMPLETED
        for _ in range(self.config.num_generations):
            self.run_generation()
            if len(self.population) == 0:
                status = SimulationStatus.EXTINCT
                logger.info("Population extinct at time %d", self.time)
                break
        self.backend.finish(self.time)
        result = SimulationResult(
            status=status,
            generations=self.generations,
            time=self.time,
            num_alive=len(self.population),
            num_nodes=self.backend.num_nodes,
            num_edges=self.backend.num_edges,
        )
        logger.info("Finished: %s", result)
        return result


def simulate(config, backend=None):
    """
    Runs the simulation described by the config and returns the result and
    the backend holding the ancestry.
    """
    sim = Simulator(config, backend=backend)
    return sim.run(), sim.backend
