"""Time-of-day interval comparisons for a single calendar day.

Intervals are half-open: ``[start, end)``. Two intervals that only touch at an
endpoint do not overlap.
"""

from datetime import time


def overlaps(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """
    Check whether two intervals share at least one instant.

    Args:
        a_start: Start of the first interval
        a_end: End of the first interval
        b_start: Start of the second interval
        b_end: End of the second interval

    Returns:
        True if the intervals overlap
    """
    return a_start < b_end and a_end > b_start


def contains(outer_start: time, outer_end: time, inner_start: time, inner_end: time) -> bool:
    """
    Check whether the inner interval lies entirely inside the outer one.

    Containment is inclusive on both ends, so an interval contains itself.

    Args:
        outer_start: Start of the enclosing interval
        outer_end: End of the enclosing interval
        inner_start: Start of the candidate interval
        inner_end: End of the candidate interval

    Returns:
        True if the outer interval contains the inner one
    """
    return inner_start >= outer_start and inner_end <= outer_end
