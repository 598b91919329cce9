"""
Event charts: lollipop plots of event metrics and event-line (flame) plots of
a single event against its climatology.
"""

import numpy as np
import pandas as pd

from ..detect import DetectionResult
from .base import PlotConfig, _setup_axes, get_label


def _event_frame(events):
    if isinstance(events, DetectionResult):
        return events.event
    return events


def lolli_plot(events, metric='intensity_max', xaxis='date_peak', n=1, config=None, ax=None):
    """
    Lollipop chart of one event metric.

    Each event is drawn as a stem from zero to the metric value with a point
    on top. The ``n`` events with the largest absolute metric are highlighted.

    Parameters
    ----------
    events : DetectionResult or pandas.DataFrame
        Detection result or event table
    metric : str, optional
        Event column plotted on the y axis
    xaxis : str, optional
        Event column plotted on the x axis (e.g. 'date_peak', 'date_start')
    n : int, optional
        Number of events to highlight; 0 highlights none
    config : PlotConfig, optional
        Colours, sizes and labels
    ax : matplotlib.axes.Axes, optional
        Axes to draw into; a new figure is created if None

    Returns
    -------
    tuple
        (figure, axes)
    """
    config = config if config is not None else PlotConfig()
    frame = _event_frame(events)
    for col in (metric, xaxis):
        if col not in frame.columns:
            raise ValueError(f"Column '{col}' not found in events; available: {list(frame.columns)}")
    if n < 0:
        raise ValueError(f'n must be non-negative, got {n}')

    fig, ax = _setup_axes(ax, config)

    x = frame[xaxis].to_numpy()
    y = frame[metric].to_numpy(dtype=np.float64)

    highlight = np.zeros(len(frame), dtype=bool)
    if n > 0 and len(frame) > 0:
        order = pd.Series(np.abs(y)).sort_values(ascending=False, kind='stable', na_position='last')
        highlight[order.index[:n]] = True

    colours = [config.colour_n if h else config.colour for h in highlight]

    ax.vlines(x, 0, y, colors=colours, linewidth=config.linewidth, zorder=1)
    ax.scatter(x, y, c=colours, s=config.size, zorder=2)
    ax.axhline(0, color='black', linewidth=0.5, zorder=0)

    ax.set_xlabel(get_label(xaxis, config))
    ax.set_ylabel(get_label(metric, config))
    if config.title:
        ax.set_title(config.title)

    return fig, ax


def event_line(result, event_no=None, spread=150, config=None, ax=None):
    """
    Plot the observations, seasonal mean and threshold around one event.

    The area between the observations and the threshold is filled on flagged
    days, and the selected event is filled in the highlight colour.

    Parameters
    ----------
    result : DetectionResult
        Output of :func:`marHW.detect`
    event_no : int, optional
        Event to centre on. Defaults to the event with the largest
        cumulative intensity magnitude.
    spread : int, optional
        Days shown either side of the event
    config : PlotConfig, optional
        Colours, sizes and labels
    ax : matplotlib.axes.Axes, optional
        Axes to draw into; a new figure is created if None

    Returns
    -------
    tuple
        (figure, axes)
    """
    if not result.events:
        raise ValueError('No events to plot')
    config = config if config is not None else PlotConfig()

    if event_no is None:
        chosen = max(result.events, key=lambda ev: abs(np.nan_to_num(ev.intensity_cumulative)))
    else:
        matches = [ev for ev in result.events if ev.event_no == event_no]
        if not matches:
            raise ValueError(f'No event with event_no={event_no}; there are {len(result.events)} events')
        chosen = matches[0]

    window = pd.Timedelta(days=spread)
    clim = result.climatology.loc[chosen.date_start - window:chosen.date_end + window]
    dates = clim.index

    fig, ax = _setup_axes(ax, config)

    ax.plot(dates, clim['temp'], color='black', linewidth=config.linewidth, label='Temperature')
    ax.plot(dates, clim['seas'], color=config.colour_seas, linewidth=config.linewidth,
            linestyle='--', label='Climatology')
    ax.plot(dates, clim['thresh'], color=config.colour_thresh, linewidth=config.linewidth,
            linestyle=':', label='Threshold')

    ax.fill_between(dates, clim['temp'], clim['thresh'], where=clim['exceed'].to_numpy(),
                    color=config.colour, interpolate=True, label='Exceedance')
    in_event = (clim['event_no'] == chosen.event_no).to_numpy()
    ax.fill_between(dates, clim['temp'], clim['thresh'], where=in_event & clim['exceed'].to_numpy(),
                    color=config.colour_n, interpolate=True, label=f'Event {chosen.event_no}')

    ax.set_xlabel('Date')
    ax.set_ylabel(config.labels.get('temp', f'Temperature [{config.var_units}]'))
    ax.set_title(config.title if config.title else
                 f'Event {chosen.event_no}: {chosen.date_start.date()} to {chosen.date_end.date()}')
    ax.legend(loc='upper left', fontsize='small')

    return fig, ax
