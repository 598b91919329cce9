"""
MarHW-Batch: Per-Pixel Detection over Gridded Data

Applies :func:`marHW.detect` independently to every spatial point of a
gridded (time, lat, lon) or unstructured (time, cell) DataArray. Each pixel
becomes one Dask task; there is no shared state between tasks, and a pixel
whose input is structurally invalid is recorded as a failure instead of
aborting its siblings.

Works with both unstructured & structured data:
- Structured data:   3D (time, ydim, xdim) data
- Unstructured data: 2D (time, xdim) data
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import dask
import numpy as np
import pandas as pd
import xarray as xr

from .aggregate import annual_counts
from .detect import detect, validate_params
from .events import EVENT_COLUMNS
from .exceptions import InvalidBaseline, InvalidInput
from .logging_config import configure_logging, get_logger

logger = get_logger(__name__)

# Suppress noisy distributed logging
logging.getLogger('distributed.shuffle._scheduler_plugin').setLevel(logging.ERROR)

DEFAULT_DIMENSIONS = {'time': 'time', 'xdim': 'lon', 'ydim': 'lat'}


# ============================
# Per-Pixel Task
# ============================

@dataclass(frozen=True)
class PixelOutcome:
    """What one per-pixel task hands back to the driver."""
    pixel: int
    events: Optional[pd.DataFrame] = None
    error: Optional[str] = None


def detect_pixel(pixel, times, values, baseline_start, baseline_end, detect_kwargs):
    """
    Run detection on one pixel, converting data errors into a failure record.

    Parameters
    ----------
    pixel : int
        Stable pixel identifier (flat index into the spatial grid)
    times : pandas.DatetimeIndex
        Time coordinate shared by all pixels
    values : array-like
        The pixel's time series
    baseline_start, baseline_end : date-like
        Baseline period
    detect_kwargs : dict
        Keyword arguments for :func:`marHW.detect`

    Returns
    -------
    PixelOutcome
    """
    series = pd.Series(np.asarray(values, dtype=np.float64), index=times)
    try:
        result = detect(series, baseline_start, baseline_end, **detect_kwargs)
    except (InvalidInput, InvalidBaseline) as err:
        return PixelOutcome(pixel=pixel, error=f'{type(err).__name__}: {err}')
    return PixelOutcome(pixel=pixel, events=result.event)


# ============================
# Batch Result
# ============================

@dataclass
class BatchResult:
    """
    Events detected over a grid.

    Attributes
    ----------
    events : pandas.DataFrame
        One row per event with a 'pixel' column and the pixel's coordinates
    failures : dict
        Pixel id -> error message for pixels whose detection failed
    mask : xarray.DataArray
        True where a pixel has at least one finite value (was processed)
    pixels : pandas.DataFrame
        Coordinates of every processed pixel, indexed by pixel id
    """
    events: pd.DataFrame
    failures: Dict[int, str]
    mask: xr.DataArray
    pixels: pd.DataFrame = field(repr=False)

    def annual_counts(self, start_year: int, end_year: int) -> xr.DataArray:
        """
        Number of events starting in each year at every pixel.

        Masked and failed pixels are NaN; processed pixels without events are 0.

        Returns
        -------
        xarray.DataArray
            Dimensions ('year', *spatial dimensions)
        """
        counts = annual_counts(self.events, start_year, end_year)
        spatial_dims = list(self.mask.dims)
        shape = self.mask.shape

        out = np.full((counts.index.size,) + shape, np.nan)
        flat = out.reshape(counts.index.size, -1)

        succeeded = [p for p in self.pixels.index if p not in self.failures]
        flat[:, succeeded] = 0.0
        for pixel in counts.columns:
            flat[:, pixel] = counts[pixel].to_numpy()

        coords = {'year': counts.index.values}
        coords.update({dim: self.mask[dim].values for dim in spatial_dims if dim in self.mask.coords})
        return xr.DataArray(out, dims=['year'] + spatial_dims, coords=coords, name='event_count')


# ============================
# Main Batch Driver
# ============================

def detect_grid(da, baseline_start, baseline_end, dimensions=None, client=None,
                scheduler='threads', verbose=None, quiet=None, **detect_kwargs):
    """
    Detect events independently at every spatial point of a DataArray.

    Parameters
    ----------
    da : xarray.DataArray
        Daily data with dimensions (time, ydim, xdim) or (time, xdim).
        May be numpy- or Dask-backed.
    baseline_start, baseline_end : date-like
        Baseline period for every pixel's climatology
    dimensions : dict, optional
        Mapping of 'time', 'xdim' and (for gridded data) 'ydim' to the
        dimension names in the data
    client : dask.distributed.Client, optional
        Client to compute the tasks on. If None, the local Dask ``scheduler`` is used.
    scheduler : str, optional
        Local Dask scheduler ('threads', 'processes' or 'synchronous')
    verbose, quiet : bool, optional
        Configure package logging (see :func:`marHW.logging_config.configure_logging`)
    **detect_kwargs
        Forwarded to :func:`marHW.detect`

    Returns
    -------
    BatchResult
    """
    if verbose is not None or quiet is not None:
        configure_logging(verbose=verbose, quiet=quiet)

    # Configuration errors apply to every pixel, so raise them before dispatch
    validate_params(**detect_kwargs)

    dimensions = dict(DEFAULT_DIMENSIONS if dimensions is None else dimensions)
    timedim = dimensions['time']
    spatial_dims = [dimensions[dim] for dim in ('ydim', 'xdim') if dim in dimensions]

    missing = [dim for dim in [timedim] + spatial_dims if dim not in da.dims]
    if missing or da.ndim != 1 + len(spatial_dims):
        raise ValueError(
            f'Expected dimensions ({timedim}, {", ".join(spatial_dims)}); found {list(da.dims)}'
        )
    da = da.transpose(timedim, *spatial_dims)

    mask = np.isfinite(da).any(dim=timedim).compute()
    times = pd.DatetimeIndex(da[timedim].values)
    spatial_shape = mask.shape

    pixel_records = []
    tasks = []
    for index in zip(*np.nonzero(mask.values)):
        pixel = int(np.ravel_multi_index(index, spatial_shape))
        record = {'pixel': pixel}
        for dim, i in zip(spatial_dims, index):
            record[dim] = da[dim].values[i] if dim in da.coords else i
        pixel_records.append(record)

        column = da.data[(slice(None),) + tuple(index)]
        tasks.append(dask.delayed(detect_pixel)(
            pixel, times, column, baseline_start, baseline_end, detect_kwargs
        ))

    pixels = pd.DataFrame(pixel_records, columns=['pixel'] + spatial_dims).set_index('pixel')
    logger.info('Dispatching %d pixel tasks (%d masked)', len(tasks), mask.size - len(tasks))

    if client is not None:
        outcomes = client.gather(client.compute(tasks))
    else:
        outcomes = dask.compute(*tasks, scheduler=scheduler)

    failures = {}
    frames = []
    for outcome in outcomes:
        if outcome.error is not None:
            failures[outcome.pixel] = outcome.error
            continue
        if not outcome.events.empty:
            frames.append(outcome.events.assign(pixel=outcome.pixel))

    if failures:
        logger.warning('Detection failed at %d of %d pixels', len(failures), len(tasks))

    columns = ['pixel'] + spatial_dims + EVENT_COLUMNS
    if frames:
        events = pd.concat(frames, ignore_index=True).join(pixels, on='pixel')[columns]
    else:
        events = pd.DataFrame(columns=columns)
    logger.info('Detected %d events', len(events))

    return BatchResult(events=events, failures=failures, mask=mask, pixels=pixels)
