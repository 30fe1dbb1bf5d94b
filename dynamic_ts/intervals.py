"""
Half-open genomic intervals and the overlap sweep shared by the
simplifier and the dynamic ancestry backend.
"""
import sys

from . import exceptions


class Segment(object):
    """
    An ancestral segment mapping a given node to a half-open genomic
    interval [left, right).
    """

    def __init__(self, left, right, node=None):
        self.left = left
        self.right = right
        self.node = node

    def __repr__(self):
        return repr((self.left, self.right, self.node))

    def __eq__(self, o):
        return self.left == o.left and self.right == o.right and self.node == o.node

    def __lt__(self, other):
        return (self.left, self.right) < (other.left, other.right)


def check_interval(left, right, sequence_length):
    if not (0 <= left < right <= sequence_length):
        raise exceptions.BadIntervalError(
            f"Bad interval [{left}, {right}) for sequence length {sequence_length}"
        )


def intersect(a_left, a_right, b_left, b_right):
    """
    Returns the (left, right) overlap of the two intervals, or None if they
    do not overlap.
    """
    left = max(a_left, b_left)
    right = min(a_right, b_right)
    if left < right:
        return left, right
    return None


def squash_append(segments, left, right, node=None):
    """
    Appends [left, right) -> node to the specified list, extending the last
    segment instead if the two are contiguous and map to the same node.
    """
    if len(segments) > 0:
        last = segments[-1]
        if last.right == left and last.node == node:
            last.right = right
            return
    segments.append(Segment(left, right, node))


def overlapping_segments(segments):
    """
    Returns an iterator over the (left, right, X) tuples describing the
    distinct overlapping segments in the specified set.
    """
    S = sorted(segments, key=lambda x: x.left)
    n = len(S)
    if n == 0:
        return
    # Insert a sentinel at the end for convenience.
    S.append(Segment(sys.float_info.max, 0))
    right = S[0].left
    X = []
    j = 0
    while j < n:
        # Remove any elements of X with right <= left
        left = right
        X = [x for x in X if x.right > left]
        if len(X) == 0:
            left = S[j].left
        while j < n and S[j].left == left:
            X.append(S[j])
            j += 1
        j -= 1
        right = min(x.right for x in X)
        right = min(right, S[j + 1].left)
        yield left, right, X
        j += 1

    while len(X) > 0:
        left = right
        X = [x for x in X if x.right > left]
        if len(X) > 0:
            right = min(x.right for x in X)
            yield left, right, X
