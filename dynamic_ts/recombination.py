"""
Recombination breakpoints for a single meiosis, and the split of an
offspring genome into the segments transmitted by each parent.
"""
import math

import numpy as np

from . import exceptions
from .intervals import Segment


def generate_breakpoints(rng, sequence_length, rate, discrete_genome=True):
    """
    Returns the sorted list of distinct crossover positions in (0, L) for
    one meiosis. The number of crossovers is Poisson with mean rate * L and
    positions are uniform along the genome. Exactly one Poisson draw and
    one position draw per crossover are taken from ``rng``, so that the
    stream of random numbers consumed depends only on the outcome.
    """
    if sequence_length <= 0:
        raise exceptions.ConfigurationError("sequence_length must be > 0")
    if rate < 0:
        raise exceptions.ConfigurationError("recombination rate must be >= 0")
    num_breakpoints = rng.poisson(rate * sequence_length)
    if num_breakpoints == 0:
        return []
    if discrete_genome:
        # Integer positions in (0, L), including floor(L) when L is not integral.
        upper = math.ceil(sequence_length)
        if upper <= 1:
            return []
        x = rng.integers(1, upper, size=num_breakpoints)
    else:
        x = rng.uniform(0, sequence_length, size=num_breakpoints)
        x = x[x > 0]
    return np.unique(x).astype(np.float64).tolist()


def transmitted_segments(parents, breakpoints, sequence_length):
    """
    Splits [0, sequence_length) at the specified breakpoints and returns the
    list of Segments, each labelled with the parent it is inherited from.
    Sources alternate between the two parents starting with the first; with a
    single parent the whole genome comes from it.
    """
    if len(parents) == 0 or len(parents) > 2:
        raise ValueError("Must have one or two parents")
    segments = []
    left = 0
    source = 0
    if len(parents) == 2:
        for x in breakpoints:
            if not (0 < x < sequence_length):
                raise exceptions.BadIntervalError(
                    f"Breakpoint {x} outside (0, {sequence_length})"
                )
            if x <= left:
                raise exceptions.BadIntervalError("Breakpoints must be increasing")
            _append(segments, left, x, parents[source])
            left = x
            source = 1 - source
    _append(segments, left, sequence_length, parents[source])
    return segments


def _append(segments, left, right, parent):
    if len(segments) > 0 and segments[-1].node == parent:
        segments[-1].right = right
    else:
        segments.append(Segment(left, right, parent))
