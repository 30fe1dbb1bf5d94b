"""
Forward-time ancestry recording with inline ("dynamic") and periodic
table simplification.
"""
from .exceptions import *  # noqa: F401, F403
from .intervals import Segment, overlapping_segments  # noqa: F401
from .recombination import generate_breakpoints, transmitted_segments  # noqa: F401
from .tables import (  # noqa: F401
    NODE_IS_SAMPLE,
    NULL,
    EdgeTable,
    NodeTable,
    TableCollection,
)
from .simplify import Simplifier, simplify_tables  # noqa: F401
from .dynamic import DynamicAncestry, Individual  # noqa: F401
from .treeseq import TreeSequenceAncestry  # noqa: F401
from .simulator import (  # noqa: F401
    AncestryBackend,
    SimulationConfig,
    SimulationResult,
    SimulationStatus,
    Simulator,
    make_backend,
    simulate,
)

__version__ = "0.1.0"
