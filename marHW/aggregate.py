"""
Annual aggregation of detected events.

Events are keyed on the year of their start date. The annual counts produced
here are what a downstream trend model (e.g. a Poisson GLM of events per
year) consumes; fitting that model is left to the caller.
"""

from typing import Optional

import numpy as np
import pandas as pd

# Metrics averaged per year by block_average
BLOCK_METRICS = [
    'duration',
    'intensity_mean',
    'intensity_max',
    'intensity_var',
    'intensity_cumulative',
    'rate_onset',
    'rate_decline',
]


def _event_frame(result_or_events):
    if isinstance(result_or_events, pd.DataFrame):
        return result_or_events
    return result_or_events.event


def block_average(result_or_events, start_year: Optional[int] = None,
                  end_year: Optional[int] = None) -> pd.DataFrame:
    """
    Annual summary of events.

    Parameters
    ----------
    result_or_events : DetectionResult or pandas.DataFrame
        A detection result, or an event table with at least 'date_start',
        'duration' and 'intensity_cumulative' columns
    start_year, end_year : int, optional
        Inclusive year range of the output. Defaults to the years spanned by
        the detection result's climatology, or by the events of a table.

    Returns
    -------
    pandas.DataFrame
        Indexed by 'year' with columns 'count', the annual means of
        BLOCK_METRICS, 'total_days' and 'total_icum'. Years without events have
        a count of 0 and NaN means.
    """
    events = _event_frame(result_or_events)

    if start_year is None or end_year is None:
        if isinstance(result_or_events, pd.DataFrame):
            years_seen = pd.DatetimeIndex(events['date_start']).year
        else:
            years_seen = result_or_events.climatology.index.year
        if len(years_seen) == 0:
            return pd.DataFrame(columns=['count'] + BLOCK_METRICS + ['total_days', 'total_icum'],
                                index=pd.Index([], name='year'))
        start_year = int(years_seen.min()) if start_year is None else start_year
        end_year = int(years_seen.max()) if end_year is None else end_year

    years = pd.Index(np.arange(start_year, end_year + 1), name='year')
    columns = ['count'] + BLOCK_METRICS + ['total_days', 'total_icum']
    if events.empty:
        block = pd.DataFrame(np.nan, index=years, columns=columns)
        block['count'] = 0
        block['total_days'] = 0
        block['total_icum'] = 0.0
        return block

    metrics = [col for col in BLOCK_METRICS if col in events.columns]

    events = events.assign(year=pd.DatetimeIndex(events['date_start']).year)
    grouped = events.groupby('year')

    block = grouped[metrics].mean().astype(np.float64)
    block.insert(0, 'count', grouped.size())
    block['total_days'] = grouped['duration'].sum()
    block['total_icum'] = grouped['intensity_cumulative'].sum()

    block = block.reindex(years)
    block['count'] = block['count'].fillna(0).astype(np.int64)
    block['total_days'] = block['total_days'].fillna(0)
    block['total_icum'] = block['total_icum'].fillna(0.0)
    return block


def annual_counts(events: pd.DataFrame, start_year: int, end_year: int,
                  pixel_col: str = 'pixel') -> pd.DataFrame:
    """
    Number of events starting in each year, per pixel.

    Parameters
    ----------
    events : pandas.DataFrame
        Event table with 'date_start' and a pixel identifier column
    start_year, end_year : int
        Inclusive year range; events outside it are ignored
    pixel_col : str, optional
        Name of the pixel identifier column

    Returns
    -------
    pandas.DataFrame
        Counts with index 'year' and one column per pixel that has events
    """
    years = pd.Index(np.arange(start_year, end_year + 1), name='year')
    if events.empty:
        return pd.DataFrame(index=years, columns=pd.Index([], name=pixel_col), dtype=np.int64)

    year = pd.DatetimeIndex(events['date_start']).year
    counts = (
        events.assign(year=year)
        .groupby(['year', pixel_col])
        .size()
        .unstack(pixel_col, fill_value=0)
    )
    return counts.reindex(years, fill_value=0).astype(np.int64)

