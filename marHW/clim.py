"""
MarHW-Clim: Day-of-Year Climatology Builder

Estimates the seasonal cycle of a daily time series over a baseline period.
For every day-of-year the builder pools all baseline observations falling in a
centred window around that day (across every baseline year), and reduces the
pool to a seasonal mean ("seas") and a percentile threshold ("thresh"). Both
curves are then smoothed with a moving average that wraps around the
year boundary, and mapped back onto every date of the input series.

Day-of-year convention
----------------------
Days are counted on a fixed 366-day calendar: in non-leap years all days after
28 February are shifted by one, so 29 February is always day 60 and
31 December is always day 366. Day 60 is then populated in non-leap years
through the pooling window.

Percentile rule
---------------
Thresholds use linear interpolation between order statistics (numpy's
``'linear'`` method, R's type 7). Trend studies built on event counts are
sensitive to the exact threshold, so this rule is fixed.
"""

import warnings

import numpy as np
import pandas as pd
import xarray as xr
import flox.xarray

from .exceptions import InvalidBaseline, InsufficientData
from .logging_config import get_logger

logger = get_logger(__name__)

DOY = np.arange(1, 367)
MIN_BASELINE_DAYS = 365


# ============================
# Calendar Utilities
# ============================

def day_of_year(dates):
    """
    Day-of-year on a 366-day calendar (29 February is always day 60).

    Parameters
    ----------
    dates : array-like of datetime
        Dates to convert

    Returns
    -------
    numpy.ndarray
        Integer day-of-year in 1..366
    """
    dates = pd.DatetimeIndex(dates)
    doy = np.asarray(dates.dayofyear, dtype=np.int64)
    shift = ~np.asarray(dates.is_leap_year) & (np.asarray(dates.month) > 2)
    return doy + shift.astype(np.int64)


def check_clim_params(window, threshold_percentile, smoothing_window):
    """Validate climatology parameters."""
    if int(window) != window or window < 1 or window % 2 == 0:
        raise ValueError(f'window must be a positive odd number of days, got {window}')
    if not 0 < threshold_percentile < 100:
        raise ValueError(f'threshold_percentile must lie in (0, 100), got {threshold_percentile}')
    if smoothing_window is not None:
        if int(smoothing_window) != smoothing_window or smoothing_window < 1 or smoothing_window % 2 == 0:
            raise ValueError(f'smoothing_window must be a positive odd number of days or None, got {smoothing_window}')


def check_baseline(ts, baseline_start, baseline_end):
    """
    Parse and validate the baseline period against a time series.

    Parameters
    ----------
    ts : pandas.Series
        Gap-filled daily time series
    baseline_start, baseline_end : date-like
        Inclusive bounds of the baseline period

    Returns
    -------
    tuple of pandas.Timestamp
        Normalised (start, end)

    Raises
    ------
    InvalidBaseline
        If the bounds cannot be parsed, are inverted, fall outside the series,
        or span fewer than 365 days.
    """
    try:
        start = pd.Timestamp(baseline_start)
        end = pd.Timestamp(baseline_end)
    except (ValueError, TypeError) as err:
        raise InvalidBaseline(f'Could not parse baseline period ({baseline_start!r}, {baseline_end!r})') from err
    if pd.isna(start) or pd.isna(end):
        raise InvalidBaseline(f'Baseline period must have both bounds, got ({baseline_start!r}, {baseline_end!r})')
    start, end = start.normalize(), end.normalize()

    if start > end:
        raise InvalidBaseline(f'Baseline start {start.date()} is after baseline end {end.date()}')
    if start < ts.index[0] or end > ts.index[-1]:
        raise InvalidBaseline(
            f'Baseline {start.date()}..{end.date()} lies outside the time series '
            f'{ts.index[0].date()}..{ts.index[-1].date()}'
        )
    n_days = (end - start).days + 1
    if n_days < MIN_BASELINE_DAYS:
        raise InvalidBaseline(
            f'Baseline covers {n_days} days; at least {MIN_BASELINE_DAYS} are needed '
            'to populate every day-of-year bucket'
        )
    return start, end


# ============================
# Day-of-Year Reductions
# ============================

def compute_raw_climatology(baseline, window=11, threshold_percentile=90):
    """
    Pool baseline observations into day-of-year buckets and reduce them.

    Each observation on day-of-year k contributes to the buckets k-h .. k+h
    (h = window // 2), taken modulo 366 so that windows near the start and end
    of the year wrap around.

    Parameters
    ----------
    baseline : pandas.Series
        Daily values of the baseline period (NaN = missing)
    window : int, optional
        Full pooling window width in days (odd)
    threshold_percentile : float, optional
        Percentile for the threshold curve (0-100)

    Returns
    -------
    tuple of xarray.DataArray
        (seas, thresh), each with dimension 'doy' (1..366). Buckets without
        any sample are NaN.
    """
    half = window // 2
    values = baseline.to_numpy(dtype=np.float64)
    labels = day_of_year(baseline.index)

    valid = np.isfinite(values)
    values, labels = values[valid], labels[valid]

    if values.size == 0:
        empty = xr.DataArray(np.full(DOY.size, np.nan), dims='doy', coords={'doy': DOY})
        return empty, empty.copy()

    offsets = np.arange(-half, half + 1)
    pooled_labels = ((labels[np.newaxis, :] - 1 + offsets[:, np.newaxis]) % DOY.size + 1).ravel()
    pooled_values = np.broadcast_to(values, (offsets.size, values.size)).ravel()

    pooled = xr.DataArray(
        pooled_values,
        dims='sample',
        coords={'doy': ('sample', pooled_labels)},
        name='temp'
    )

    # Seasonal mean per day-of-year (empty buckets are filled with NaN)
    seas = flox.xarray.xarray_reduce(
        pooled,
        'doy',
        func='mean',
        expected_groups=DOY,
        fill_value=np.nan,
        isbin=False
    )

    # Threshold per day-of-year with linear interpolation between order statistics
    thresh = (
        pooled.groupby('doy')
        .quantile(threshold_percentile / 100.0, dim='sample', method='linear')
        .drop_vars('quantile')
        .reindex(doy=DOY)
    )

    return seas.rename('seas'), thresh.rename('thresh')


def smooth_climatology(curve, smoothing_window=31):
    """
    Centred moving average along day-of-year with circular (wrap) padding.

    Parameters
    ----------
    curve : xarray.DataArray
        Day-of-year curve with dimension 'doy' of length 366
    smoothing_window : int or None, optional
        Window width in days (odd). None or 1 returns the curve unchanged.

    Returns
    -------
    xarray.DataArray
        Smoothed curve. Days that were NaN before smoothing stay NaN;
        NaN neighbours are ignored inside each window.
    """
    if smoothing_window is None or smoothing_window <= 1:
        return curve

    pad = smoothing_window // 2
    curve_wrap = curve.drop_vars('doy').pad(doy=pad, mode='wrap')
    smoothed = (
        curve_wrap
        .rolling(doy=smoothing_window, center=True, min_periods=1)
        .mean()
        .isel(doy=slice(pad, DOY.size + pad))
    )
    smoothed = smoothed.assign_coords(doy=curve['doy'].values)

    return smoothed.where(curve.notnull())


# ============================
# Main Climatology Pipeline
# ============================

def build_climatology(ts, baseline_start, baseline_end, window=11,
                      threshold_percentile=90, smoothing_window=31):
    """
    Build the seasonal mean and threshold for every date of a time series.

    Workflow:
    1. Validate the baseline period against the series
    2. Pool and reduce baseline observations per day-of-year
    3. Smooth both curves with a wrapped moving average
    4. Map the curves back onto every date by day-of-year lookup

    Parameters
    ----------
    ts : pandas.Series
        Gap-filled daily time series (see :func:`marHW.make_whole`)
    baseline_start, baseline_end : date-like
        Inclusive baseline period used to estimate the seasonal statistics
    window : int, optional
        Full pooling window width in days (11 gives +/- 5 days)
    threshold_percentile : float, optional
        Percentile of the pooled sample used as threshold
    smoothing_window : int or None, optional
        Width of the moving average applied to both curves

    Returns
    -------
    pandas.DataFrame
        Indexed like ``ts`` with columns 'doy', 'temp', 'seas', 'thresh'

    Raises
    ------
    InvalidBaseline
        If the baseline period is invalid for this series
    """
    check_clim_params(window, threshold_percentile, smoothing_window)
    start, end = check_baseline(ts, baseline_start, baseline_end)

    baseline = ts.loc[start:end]
    seas_raw, thresh_raw = compute_raw_climatology(baseline, window, threshold_percentile)

    n_empty = int(seas_raw.isnull().sum())
    if n_empty:
        warnings.warn(
            f'{n_empty} of {DOY.size} day-of-year buckets have no baseline samples; '
            'their climatology is set to NaN and no exceedances are flagged there',
            InsufficientData,
            stacklevel=2
        )

    seas = smooth_climatology(seas_raw, smoothing_window)
    thresh = smooth_climatology(thresh_raw, smoothing_window)
    logger.debug('Climatology from %s to %s: window=%d, percentile=%s, smoothing=%s, empty buckets=%d',
                 start.date(), end.date(), window, threshold_percentile, smoothing_window, n_empty)

    doy = day_of_year(ts.index)
    return pd.DataFrame(
        {
            'doy': doy,
            'temp': ts.to_numpy(dtype=np.float64),
            'seas': seas.values[doy - 1],
            'thresh': thresh.values[doy - 1],
        },
        index=ts.index
    )
