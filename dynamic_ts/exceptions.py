"""
Exceptions defined in dynamic_ts.
"""


class DynamicTsException(Exception):
    """
    Superclass of all exceptions thrown.
    """


class ConfigurationError(DynamicTsException, ValueError):
    """
    A simulation parameter is out of range. Raised before any
    generation is run.
    """


class StructuralValidityError(DynamicTsException):
    """
    The node and edge tables do not describe a valid ancestry: an edge
    refers to a missing node, a parent is not strictly older than its child,
    or the edges for a child overlap.
    """


class BadIntervalError(StructuralValidityError):
    """
    A genomic interval is empty or falls outside [0, sequence_length).
    """


class BadSampleError(StructuralValidityError):
    """
    The sample list contains an unknown or duplicate node.
    """


class AncestryStateError(DynamicTsException):
    """
    The internal state of an ancestry backend is inconsistent.
    """
