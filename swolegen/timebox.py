"""
Rough time-boxing helpers.
"""

DEFAULT_SECONDS_PER_SET = 90


def estimate_sets(duration_minutes, avg_seconds_per_set=DEFAULT_SECONDS_PER_SET):
    """Return how many sets fit in ``duration_minutes`` at the given pace."""
    if not avg_seconds_per_set or avg_seconds_per_set <= 0:
        avg_seconds_per_set = DEFAULT_SECONDS_PER_SET
    if not duration_minutes or duration_minutes <= 0:
        return 0
    return (duration_minutes * 60) // avg_seconds_per_set
