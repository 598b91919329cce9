"""
Error taxonomy for marHW.

Only structurally invalid input is fatal to a detection call. Conditions that
merely degrade the output (empty day-of-year buckets, statistics that need
more than one point) are reported as warnings and propagate as NaN, so one
anomalous pixel never brings down a batch run.
"""


class MarHWError(Exception):
    """Base class for all marHW errors."""


class InvalidInput(MarHWError, ValueError):
    """Raw observations are malformed or insufficient (unparseable dates,
    non-numeric values, duplicated dates, fewer than two distinct dates)."""


class InvalidBaseline(MarHWError, ValueError):
    """Baseline period is inverted, unparseable, outside the time series,
    or too short to populate every day-of-year bucket."""


class InsufficientData(UserWarning):
    """One or more day-of-year buckets received no baseline samples.
    The affected climatology values are set to NaN."""


class UndefinedStatistic(UserWarning):
    """An event statistic is undefined for the event's shape
    (variance of a single value, rate over a zero-length interval)."""
