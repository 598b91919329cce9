"""
Dask Helper: Utilities for running per-pixel detection on a Dask cluster
------------------------------------------------------------------------

This module provides utilities for configuring Dask and starting a local
cluster whose client can be handed to :func:`marHW.batch.detect_grid`.
"""

import logging
import re
import socket
import tempfile
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Dict, Optional, Union, Any

import dask
import psutil
from dask.distributed import Client, LocalCluster

from .logging_config import NOISY_LOGGERS, get_logger

logger = get_logger(__name__)

# Default configuration values
DEFAULT_DASK_CONFIG = {
    'array.slicing.split_large_chunks': False,
    'distributed.comm.timeouts.connect': '120s',  # Increased from default
    'distributed.comm.timeouts.tcp': '240s',      # Double the connection timeout
    'distributed.comm.retry.count': 10,           # More retries before giving up
}


def configure_dask(scratch_dir: Optional[Union[str, Path]] = None,
                   config: Optional[Dict[str, Any]] = None) -> TemporaryDirectory:
    """
    Configure Dask with a scratch directory and the package defaults.

    Parameters
    ----------
    scratch_dir : str or Path, optional
        Directory in which to create the Dask temporary directory.
        Defaults to the system temporary directory.
    config : dict, optional
        Additional Dask configuration settings to apply.

    Returns
    -------
    TemporaryDirectory
        Temporary directory object that should be kept alive while Dask is in use.
    """
    scratch_path = Path(scratch_dir) if scratch_dir else Path(tempfile.gettempdir())
    scratch_path.mkdir(parents=True, exist_ok=True)

    temp_dir = TemporaryDirectory(dir=scratch_path)

    dask.config.set(temporary_directory=temp_dir.name)
    dask.config.set(DEFAULT_DASK_CONFIG)

    if config:
        dask.config.set(config)

    return temp_dir


def get_cluster_info(client: Client) -> Dict[str, str]:
    """
    Get and print cluster connection information.

    Parameters
    ----------
    client : Client
        Dask client connected to a cluster.

    Returns
    -------
    dict
        Dictionary containing connection information.
    """
    hostname = socket.gethostname().split('.')[0]
    match = re.search(r':(\d+)/', client.dashboard_link or '')
    port = match.group(1) if match else ''

    print(f"Hostname: {hostname}")
    print(f"Forward Port: {hostname}:{port}")
    print(f"Dashboard Link: localhost:{port}/status")

    return {
        'hostname': hostname,
        'port': port,
        'dashboard_link': f"localhost:{port}/status"
    }


def start_local_cluster(n_workers: int = 4, threads_per_worker: int = 1,
                        scratch_dir: Optional[Union[str, Path]] = None,
                        **kwargs) -> Client:
    """
    Start a local Dask cluster for per-pixel detection.

    Detection tasks are short and CPU-bound, so one thread per worker
    process is the default.

    Parameters
    ----------
    n_workers : int, default=4
        Number of worker processes to start.
    threads_per_worker : int, default=1
        Number of threads per worker.
    scratch_dir : str or Path, optional
        Directory to use for temporary files.
    **kwargs
        Additional keyword arguments to pass to LocalCluster.

    Returns
    -------
    Client
        Dask client connected to the local cluster.
    """
    temp_dir = configure_dask(scratch_dir)

    physical_cores = psutil.cpu_count(logical=False) or 1
    logical_cores = psutil.cpu_count(logical=True) or physical_cores
    memory = psutil.virtual_memory()

    # Warn if requested resources exceed available
    total_threads = n_workers * threads_per_worker
    if total_threads > logical_cores:
        logger.warning("Requested %d workers with %d threads each, but only %d logical cores available. "
                       "Reducing to %d workers.", n_workers, threads_per_worker, logical_cores,
                       max(1, logical_cores // threads_per_worker))
        n_workers = max(1, logical_cores // threads_per_worker)
    elif total_threads > physical_cores:
        logger.warning("Requested %d workers with %d threads each, but only %d physical cores available. "
                       "Hyper-threading can reduce performance for compute-intensive tasks!",
                       n_workers, threads_per_worker, physical_cores)

    print(f"Memory per Worker: {memory.total / n_workers / (1024**3):.2f} GB")

    kwargs.setdefault('local_directory', temp_dir.name)
    cluster = LocalCluster(n_workers=n_workers, threads_per_worker=threads_per_worker, **kwargs)
    client = Client(cluster)

    # Keep the scratch directory alive for as long as the client
    client._marHW_scratch = temp_dir

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)

    get_cluster_info(client)

    return client
