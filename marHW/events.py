"""
MarHW-Events: Exceedance Segmentation and Event Metrics

Turns a per-day climatology table into discrete extreme events:

1. Flag days where the observation crosses the seasonal threshold
   (above for warm events, below for cold events)
2. Group consecutive flagged days into runs
3. Join runs separated by at most ``max_gap`` days; the bridged days become
   part of the event
4. Drop events shorter than ``min_duration`` days
5. Summarise each event (timing, duration, intensity, onset/decline rates)

The climatology table must hold one row per calendar day, so that positions
in the table are calendar offsets.
"""

import warnings
from dataclasses import dataclass, field, fields
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from .exceptions import UndefinedStatistic
from .logging_config import get_logger

logger = get_logger(__name__)

WARM = 'warm'
COLD = 'cold'
MODES = (WARM, COLD)

# Hobday et al. (2018): multiples of the threshold-climatology difference
CATEGORIES = ('I Moderate', 'II Strong', 'III Severe', 'IV Extreme')


def check_mode(mode):
    """Validate the detection direction."""
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    return mode


def check_segment_params(min_duration, max_gap):
    """Validate the duration and gap rules."""
    if int(min_duration) != min_duration or min_duration < 1:
        raise ValueError(f'min_duration must be a positive integer, got {min_duration}')
    if int(max_gap) != max_gap or max_gap < 0:
        raise ValueError(f'max_gap must be a non-negative integer, got {max_gap}')


def _readonly(values, dtype=np.float64):
    arr = np.array(values, dtype=dtype, copy=True)
    arr.flags.writeable = False
    return arr


# ============================
# Data Structures
# ============================

@dataclass(frozen=True, eq=False)
class EventMembers:
    """
    The days of one segmented event with their observations and climatology.

    Bridged gap days are members with ``exceed`` False.
    """
    dates: pd.DatetimeIndex
    temp: np.ndarray
    seas: np.ndarray
    thresh: np.ndarray
    exceed: np.ndarray
    index_start: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'dates', pd.DatetimeIndex(self.dates))
        object.__setattr__(self, 'temp', _readonly(self.temp))
        object.__setattr__(self, 'seas', _readonly(self.seas))
        object.__setattr__(self, 'thresh', _readonly(self.thresh))
        object.__setattr__(self, 'exceed', _readonly(self.exceed, dtype=bool))

    @property
    def duration(self) -> int:
        return len(self.dates)

    @property
    def anomaly(self) -> np.ndarray:
        """Observation minus seasonal mean."""
        return self.temp - self.seas


@dataclass(frozen=True)
class Event:
    """Summary statistics of one extreme event."""
    event_no: int
    index_start: int
    index_peak: int
    index_end: int
    duration: int
    date_start: pd.Timestamp
    date_peak: pd.Timestamp
    date_end: pd.Timestamp
    intensity_mean: float
    intensity_max: float
    intensity_var: float
    intensity_cumulative: float
    intensity_mean_relThresh: float
    intensity_max_relThresh: float
    intensity_var_relThresh: float
    intensity_cumulative_relThresh: float
    intensity_mean_abs: float
    intensity_max_abs: float
    intensity_var_abs: float
    intensity_cumulative_abs: float
    rate_onset: float
    rate_decline: float
    members: EventMembers = field(repr=False, compare=False)

    def _ratios(self) -> np.ndarray:
        m = self.members
        with np.errstate(divide='ignore', invalid='ignore'):
            return np.abs(m.anomaly) / np.abs(m.thresh - m.seas)

    @property
    def category(self) -> str:
        """Hobday et al. (2018) category of the event, judged at its peak."""
        ratio = self._ratios()[self.index_peak - self.index_start]
        if not np.isfinite(ratio):
            return CATEGORIES[0]
        return CATEGORIES[int(np.clip(np.floor(ratio), 1, len(CATEGORIES))) - 1]

    @property
    def category_proportions(self) -> Dict[str, float]:
        """Fraction of the event's days falling in each category."""
        ratios = self._ratios()
        ratios = ratios[np.isfinite(ratios) & (ratios >= 1)]
        index = np.clip(np.floor(ratios), 1, len(CATEGORIES)).astype(int) - 1
        counts = np.bincount(index, minlength=len(CATEGORIES))
        return {name: counts[i] / self.duration for i, name in enumerate(CATEGORIES)}

    def to_dict(self) -> dict:
        """Event statistics without the member arrays."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != 'members'}


EVENT_COLUMNS = [f.name for f in fields(Event) if f.name != 'members']


# ============================
# Exceedance & Segmentation
# ============================

def flag_exceedances(clim, mode=WARM):
    """
    Flag days whose observation crosses the threshold.

    Parameters
    ----------
    clim : pandas.DataFrame
        Climatology table with 'temp' and 'thresh' columns
    mode : {'warm', 'cold'}
        Detect values above (warm) or below (cold) the threshold

    Returns
    -------
    numpy.ndarray
        Boolean flags; days with a missing observation or threshold are never flagged
    """
    check_mode(mode)
    temp = clim['temp'].to_numpy(dtype=np.float64)
    thresh = clim['thresh'].to_numpy(dtype=np.float64)
    valid = np.isfinite(temp) & np.isfinite(thresh)
    crossed = temp > thresh if mode == WARM else temp < thresh
    return valid & crossed


def find_runs(flags) -> List[Tuple[int, int]]:
    """Inclusive (start, end) positions of consecutive True values."""
    padded = np.concatenate(([0], np.asarray(flags, dtype=np.int8), [0]))
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1) - 1
    return [(int(s), int(e)) for s, e in zip(starts, ends)]


def join_runs(runs, max_gap=2) -> List[Tuple[int, int]]:
    """Merge runs separated by at most ``max_gap`` days (inclusive)."""
    merged = []
    for start, end in runs:
        if merged and start - merged[-1][1] - 1 <= max_gap:
            merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def segment_events(clim, min_duration=5, max_gap=2, mode=WARM, join_across_gaps=True, flags=None):
    """
    Segment flagged days into events.

    Parameters
    ----------
    clim : pandas.DataFrame
        Climatology table with 'temp', 'seas' and 'thresh' columns and one
        row per calendar day
    min_duration : int, optional
        Minimum event length in days; shorter events are discarded
    max_gap : int, optional
        Largest number of non-flagged days bridged between two runs
    mode : {'warm', 'cold'}
        Detection direction
    join_across_gaps : bool, optional
        Whether to bridge gaps at all
    flags : numpy.ndarray, optional
        Exceedance flags already computed with :func:`flag_exceedances`

    Returns
    -------
    list of EventMembers
        Ordered by start date
    """
    check_mode(mode)
    check_segment_params(min_duration, max_gap)

    if flags is None:
        flags = flag_exceedances(clim, mode)
    else:
        flags = np.asarray(flags, dtype=bool)
        if flags.shape != (len(clim),):
            raise ValueError(f'Got {flags.size} flags for {len(clim)} days')
    runs = find_runs(flags)
    if join_across_gaps:
        runs = join_runs(runs, max_gap)

    segments = []
    for start, end in runs:
        if end - start + 1 < min_duration:
            continue
        rows = clim.iloc[start:end + 1]
        segments.append(EventMembers(
            dates=rows.index,
            temp=rows['temp'].to_numpy(),
            seas=rows['seas'].to_numpy(),
            thresh=rows['thresh'].to_numpy(),
            exceed=flags[start:end + 1],
            index_start=start
        ))

    logger.debug('%d runs of exceedance, %d events retained (min_duration=%d, max_gap=%s)',
                 len(runs), len(segments), min_duration, max_gap if join_across_gaps else None)
    return segments


# ============================
# Event Metrics
# ============================

def _intensity(values, mode):
    """Mean, extreme, sample variance and sum over the finite values."""
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return np.nan, np.nan, np.nan, np.nan
    extreme = finite.max() if mode == WARM else finite.min()
    variance = finite.var(ddof=1) if finite.size >= 2 else np.nan
    return float(finite.mean()), float(extreme), float(variance), float(finite.sum())


def _rate(delta, n_days, name):
    if n_days <= 0:
        warnings.warn(f'{name} is undefined when the peak lies on the event boundary',
                      UndefinedStatistic, stacklevel=3)
        return np.nan
    return float(delta / n_days)


def event_metrics(members, event_no=1, mode=WARM):
    """
    Compute the summary statistics of one event.

    Intensities are computed relative to the seasonal mean (``intensity_*``),
    relative to the threshold (``*_relThresh``) and on the raw values
    (``*_abs``). Bridged days contribute their actual values; missing values
    are skipped by the aggregates but still count towards duration.

    Parameters
    ----------
    members : EventMembers
        The event's member days
    event_no : int, optional
        Sequence number of the event within its series
    mode : {'warm', 'cold'}
        Detection direction; selects max (warm) or min (cold) for ``intensity_max``

    Returns
    -------
    Event
    """
    check_mode(mode)
    anomaly = members.anomaly
    magnitude = np.abs(anomaly)

    # Peak: largest anomaly magnitude, earliest on ties
    peak = int(np.nanargmax(magnitude)) if np.isfinite(magnitude).any() else 0
    last = members.duration - 1

    mean, extreme, variance, cumulative = _intensity(anomaly, mode)
    mean_rel, extreme_rel, variance_rel, cumulative_rel = _intensity(members.temp - members.thresh, mode)
    mean_abs, extreme_abs, variance_abs, cumulative_abs = _intensity(members.temp, mode)

    if np.isfinite(anomaly).sum() < 2:
        warnings.warn('intensity_var needs at least two observed days',
                      UndefinedStatistic, stacklevel=2)

    dates = members.dates
    rate_onset = _rate(anomaly[peak] - anomaly[0], (dates[peak] - dates[0]).days, 'rate_onset')
    rate_decline = _rate(anomaly[peak] - anomaly[last], (dates[last] - dates[peak]).days, 'rate_decline')

    return Event(
        event_no=int(event_no),
        index_start=members.index_start,
        index_peak=members.index_start + peak,
        index_end=members.index_start + last,
        duration=members.duration,
        date_start=dates[0],
        date_peak=dates[peak],
        date_end=dates[last],
        intensity_mean=mean,
        intensity_max=extreme,
        intensity_var=variance,
        intensity_cumulative=cumulative,
        intensity_mean_relThresh=mean_rel,
        intensity_max_relThresh=extreme_rel,
        intensity_var_relThresh=variance_rel,
        intensity_cumulative_relThresh=cumulative_rel,
        intensity_mean_abs=mean_abs,
        intensity_max_abs=extreme_abs,
        intensity_var_abs=variance_abs,
        intensity_cumulative_abs=cumulative_abs,
        rate_onset=rate_onset,
        rate_decline=rate_decline,
        members=members
    )


def events_to_frame(events):
    """One row per event, in the column order of :class:`Event`."""
    if not events:
        return pd.DataFrame(columns=EVENT_COLUMNS)
    return pd.DataFrame([ev.to_dict() for ev in events], columns=EVENT_COLUMNS)
