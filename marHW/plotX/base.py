from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import matplotlib.pyplot as plt


@dataclass
class PlotConfig:
    """Configuration class for plot parameters"""
    title: Optional[str] = None
    var_units: str = '°C'
    colour: str = 'salmon'
    colour_n: str = 'firebrick'
    colour_seas: str = 'grey'
    colour_thresh: str = 'forestgreen'
    size: float = 36
    linewidth: float = 1.0
    figsize: Tuple[float, float] = (7, 4)
    labels: Dict[str, str] = None

    def __post_init__(self):
        if self.labels is None:
            self.labels = {}


# Axis labels for the event table columns
METRIC_LABELS = {
    'duration': 'Duration [days]',
    'intensity_mean': 'Mean intensity [{units}]',
    'intensity_max': 'Maximum intensity [{units}]',
    'intensity_var': 'Intensity variance [{units}²]',
    'intensity_cumulative': 'Cumulative intensity [{units} x days]',
    'rate_onset': 'Onset rate [{units} / day]',
    'rate_decline': 'Decline rate [{units} / day]',
    'date_start': 'Start date',
    'date_peak': 'Peak date',
    'date_end': 'End date',
}


def get_label(name, config: PlotConfig):
    """Axis label for a column, preferring labels given in the config"""
    if name in config.labels:
        return config.labels[name]
    return METRIC_LABELS.get(name, name).format(units=config.var_units)


def _setup_axes(ax=None, config: Optional[PlotConfig] = None):
    """Create or use existing axes"""
    if ax is None:
        figsize = config.figsize if config is not None else (7, 4)
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()
    return fig, ax
