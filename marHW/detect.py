"""
MarHW-Detect: Marine Heatwave Detection Module

Detects discrete extreme events (e.g. Marine Heatwaves or Marine Cold Spells
using Sea Surface Temperature) in a single daily time series.

Core capabilities:
- Gap filling onto a continuous daily calendar with explicit missing values
- Day-of-year climatology (seasonal mean & percentile threshold) over a baseline period
- Segmentation of threshold exceedances into events (duration & gap rules)
- Per-event timing, duration, intensity and onset/decline statistics

Each call is a pure function of its inputs, so detection over many pixels
parallelises trivially (see :mod:`marHW.batch`).
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
import xarray as xr

from .clim import build_climatology, check_clim_params
from .events import (
    WARM,
    Event,
    check_mode,
    check_segment_params,
    event_metrics,
    events_to_frame,
    flag_exceedances,
    segment_events,
)
from .exceptions import InvalidInput
from .logging_config import get_logger

logger = get_logger(__name__)

# Hobday et al. (2016) definition
DEFAULT_DETECT_PARAMS = {
    'min_duration': 5,
    'max_gap': 2,
    'mode': WARM,
    'window': 11,
    'threshold_percentile': 90,
    'smoothing_window': 31,
    'join_across_gaps': True,
}


# ============================
# Data Preparation Functions
# ============================

def _as_frame(observations, x, y):
    """Coerce the supported observation containers to a two-column DataFrame."""
    if isinstance(observations, xr.DataArray):
        if observations.ndim != 1:
            raise InvalidInput(f'Expected a 1D DataArray, got dimensions {list(observations.dims)}')
        dim = observations.dims[0]
        return pd.DataFrame({x: observations[dim].values, y: observations.values})

    if isinstance(observations, pd.Series):
        return pd.DataFrame({x: observations.index, y: observations.to_numpy()})

    if isinstance(observations, pd.DataFrame):
        missing = [col for col in (x, y) if col not in observations.columns]
        if missing:
            raise InvalidInput(f'Missing column(s) {missing}; found {list(observations.columns)}')
        return observations[[x, y]].reset_index(drop=True)

    try:
        return pd.DataFrame.from_records(list(observations), columns=[x, y])
    except (TypeError, ValueError) as err:
        raise InvalidInput('Observations must be (date, value) pairs') from err


def check_pad_length(max_pad_length):
    """Validate the interpolation limit of the gap filler."""
    if max_pad_length is not None and (int(max_pad_length) != max_pad_length or max_pad_length < 1):
        raise ValueError(f'max_pad_length must be a positive integer or None, got {max_pad_length}')


def _interpolate_short_gaps(ts, max_pad_length):
    """Linearly fill runs of at most ``max_pad_length`` missing days bounded by observations."""
    missing = ts.isna()
    run_id = (missing != missing.shift()).cumsum()
    run_length = missing.groupby(run_id).transform('sum')
    fillable = missing & (run_length <= max_pad_length)
    filled = ts.interpolate(method='linear', limit_area='inside')
    return ts.where(~fillable, filled)


def make_whole(observations, x='t', y='temp', max_pad_length=None):
    """
    Place observations on a continuous daily calendar.

    Parameters
    ----------
    observations : pandas.Series, pandas.DataFrame, xarray.DataArray or iterable
        A Series indexed by date, a DataFrame with a date column ``x`` and a
        value column ``y``, a 1D DataArray along time, or (date, value) pairs.
        Order does not matter.
    x, y : str, optional
        Column names used for DataFrame input
    max_pad_length : int, optional
        Interpolate runs of at most this many missing days that have
        observations on both sides. By default gaps stay missing.

    Returns
    -------
    pandas.Series
        Float values named 'temp' on a daily DatetimeIndex named 't' spanning
        the first to the last observed date; missing days are NaN.

    Raises
    ------
    InvalidInput
        If dates cannot be parsed, values are not numeric, a date is repeated,
        or fewer than two distinct dates are given.
    """
    check_pad_length(max_pad_length)

    frame = _as_frame(observations, x, y)

    try:
        dates = pd.to_datetime(frame[x])
    except (ValueError, TypeError, OverflowError) as err:
        raise InvalidInput(f'Could not parse dates in column {x!r}') from err
    if dates.isna().any():
        raise InvalidInput(f'{int(dates.isna().sum())} date(s) are missing or unparseable')
    if dates.dt.tz is not None:
        dates = dates.dt.tz_localize(None)
    dates = dates.dt.normalize()

    try:
        values = pd.to_numeric(frame[y]).to_numpy(dtype=np.float64, na_value=np.nan)
    except (ValueError, TypeError) as err:
        raise InvalidInput(f'Values in column {y!r} must be numeric') from err
    values = np.where(np.isfinite(values), values, np.nan)

    if dates.nunique() < 2:
        raise InvalidInput(f'At least 2 distinct dates are required, got {dates.nunique()}')
    duplicated = dates[dates.duplicated()]
    if not duplicated.empty:
        raise InvalidInput(f'Dates must be unique; repeated: {sorted(set(duplicated.dt.date))[:5]}')

    series = pd.Series(values, index=pd.DatetimeIndex(dates)).sort_index()
    calendar = pd.date_range(series.index[0], series.index[-1], freq='D', name='t')
    ts = series.reindex(calendar).rename('temp')

    if max_pad_length:
        ts = _interpolate_short_gaps(ts, max_pad_length)

    return ts


# ============================
# Detection Result
# ============================

@dataclass(frozen=True)
class DetectionResult:
    """
    Climatology and events detected in one time series.

    Attributes
    ----------
    climatology : pandas.DataFrame
        Per-day table: 'doy', 'temp', 'seas', 'thresh', 'exceed', 'event', 'event_no'
    events : tuple of Event
        Events ordered by start date
    mode : str
        'warm' or 'cold'
    """
    climatology: pd.DataFrame
    events: Tuple[Event, ...]
    mode: str = WARM

    @property
    def event(self) -> pd.DataFrame:
        """Event statistics, one row per event."""
        return events_to_frame(self.events)

    def __len__(self):
        return len(self.events)


def validate_params(**params):
    """
    Check detection parameters before any data is touched.

    Unknown keywords raise ``TypeError``; invalid values raise ``ValueError``.
    """
    unknown = set(params) - set(DEFAULT_DETECT_PARAMS) - {'max_pad_length'}
    if unknown:
        raise TypeError(f'Unknown detection parameter(s): {sorted(unknown)}')
    merged = {**DEFAULT_DETECT_PARAMS, **params}
    check_mode(merged['mode'])
    check_segment_params(merged['min_duration'], merged['max_gap'])
    check_clim_params(merged['window'], merged['threshold_percentile'], merged['smoothing_window'])
    check_pad_length(merged.get('max_pad_length'))
    return merged


# ============================
# Main Processing Pipeline
# ============================

def detect(series, baseline_start, baseline_end, min_duration=5, max_gap=2, mode=WARM,
           window=11, threshold_percentile=90, smoothing_window=31,
           join_across_gaps=True, max_pad_length: Optional[int] = None):
    """
    Detect extreme events in a daily time series.

    Workflow:
    1. Gap-fill the series onto a daily calendar
    2. Build the day-of-year climatology over the baseline period
    3. Flag threshold exceedances and segment them into events
    4. Compute per-event statistics

    Parameters
    ----------
    series : pandas.Series, pandas.DataFrame, xarray.DataArray or iterable
        Raw observations (anything accepted by :func:`make_whole`)
    baseline_start, baseline_end : date-like
        Inclusive baseline period for the climatology
    min_duration : int, optional
        Minimum event duration in days
    max_gap : int, optional
        Maximum number of days bridged between exceedance runs
    mode : {'warm', 'cold'}, optional
        Detect heatwaves (above threshold) or cold spells (below threshold).
        Cold spells are normally run with ``threshold_percentile=10``.
    window : int, optional
        Full pooling window width in days for the climatology
    threshold_percentile : float, optional
        Percentile defining the threshold
    smoothing_window : int or None, optional
        Moving-average width applied to the climatology curves
    join_across_gaps : bool, optional
        Whether to bridge gaps of at most ``max_gap`` days
    max_pad_length : int, optional
        Interpolate missing runs of at most this many days before detection

    Returns
    -------
    DetectionResult

    Raises
    ------
    InvalidInput
        If the raw observations are malformed
    InvalidBaseline
        If the baseline period does not fit the series
    """
    check_mode(mode)
    check_segment_params(min_duration, max_gap)

    ts = make_whole(series, max_pad_length=max_pad_length)

    clim = build_climatology(
        ts,
        baseline_start,
        baseline_end,
        window=window,
        threshold_percentile=threshold_percentile,
        smoothing_window=smoothing_window
    )

    flags = flag_exceedances(clim, mode)
    segments = segment_events(
        clim,
        min_duration=min_duration,
        max_gap=max_gap,
        mode=mode,
        join_across_gaps=join_across_gaps,
        flags=flags
    )
    events = tuple(
        event_metrics(members, event_no=i, mode=mode)
        for i, members in enumerate(segments, start=1)
    )

    # Per-day flags
    event_no = np.zeros(len(clim), dtype=np.int64)
    for ev in events:
        event_no[ev.index_start:ev.index_end + 1] = ev.event_no
    clim['exceed'] = flags
    clim['event'] = event_no > 0
    clim['event_no'] = event_no

    logger.debug('Detected %d %s events between %s and %s',
                 len(events), mode, ts.index[0].date(), ts.index[-1].date())

    return DetectionResult(climatology=clim, events=events, mode=mode)
