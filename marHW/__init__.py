"""
MarHW: Marine Heatwave Detection
================================

A Python package for detecting marine heatwaves (MHWs) and marine cold spells
(MCSs) in daily sea surface temperature time series, following the
Hobday et al. (2016) definition.

Core Functionality
-----------------
- make_whole: Place raw observations on a continuous daily calendar
- detect: Build the climatology, segment exceedances and summarise events
- detect_grid: Run detection independently at every pixel of a grid with Dask
- block_average: Annual summary of detected events

Example
-------
>>> import pandas as pd
>>> import marHW
>>> # Daily SST at a single location
>>> sst = pd.read_csv('sst.csv', parse_dates=['t']).set_index('t')['temp']
>>> result = marHW.detect(sst, '1983-01-01', '2012-12-31')
>>> result.event[['date_start', 'duration', 'intensity_max']]
>>> # Gridded data
>>> batch = marHW.detect_grid(sst_da, '1983-01-01', '2012-12-31', scheduler='processes')
>>> counts = batch.annual_counts(1983, 2022)
"""

# Import core functionality
from .detect import (
    make_whole,
    detect,
    DetectionResult,
    DEFAULT_DETECT_PARAMS
)

from .clim import (
    build_climatology,
    day_of_year
)

from .events import (
    Event,
    EventMembers,
    segment_events,
    event_metrics
)

from .aggregate import (
    block_average,
    annual_counts
)

from .batch import detect_grid, BatchResult

from .exceptions import (
    MarHWError,
    InvalidInput,
    InvalidBaseline,
    InsufficientData,
    UndefinedStatistic
)

from .logging_config import configure_logging

# Import plotting utilities
from .plotX import (
    lolli_plot,
    event_line,
    PlotConfig
)

# Convenience variables
__all__ = [
    # Core detection
    'make_whole',
    'detect',
    'DetectionResult',
    'DEFAULT_DETECT_PARAMS',
    'build_climatology',
    'day_of_year',
    'Event',
    'EventMembers',
    'segment_events',
    'event_metrics',

    # Aggregation & batch processing
    'block_average',
    'annual_counts',
    'detect_grid',
    'BatchResult',

    # Errors & logging
    'MarHWError',
    'InvalidInput',
    'InvalidBaseline',
    'InsufficientData',
    'UndefinedStatistic',
    'configure_logging',

    # Visualization
    'lolli_plot',
    'event_line',
    'PlotConfig',
]

# Version information
from importlib.metadata import version, PackageNotFoundError
try:
    __version__ = version("pyMHW_detect")
except PackageNotFoundError:
    # Package is not installed
    try:
        from setuptools_scm import get_version
        __version__ = get_version(root="..", relative_to=__file__)
    except (ImportError, LookupError):
        __version__ = "unknown"
