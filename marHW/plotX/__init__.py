from .base import PlotConfig, get_label
from .events import event_line, lolli_plot

__all__ = ['PlotConfig', 'get_label', 'lolli_plot', 'event_line']
