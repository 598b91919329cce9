"""
Shared fixtures for the marHW test suite.

Synthetic SST series are a seasonal sinusoid with small Gaussian noise, so the
climatology is well defined and injected anomalies of a few degrees are
unambiguous events.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from marHW import detect

# Injected anomalies used across the detection tests
HEATWAVE = ("2008-07-01", "2008-07-20")
COLD_SPELL = ("2009-01-10", "2009-01-25")
BASELINE = ("2000-01-01", "2007-12-31")


def synthetic_sst(start="2000-01-01", end="2009-12-31", seed=0, noise=0.3):
    """Daily seasonal cycle around 15 degC with Gaussian noise."""
    t = pd.date_range(start, end, freq="D", name="t")
    rng = np.random.default_rng(seed)
    seasonal = 15 + 5 * np.sin(2 * np.pi * (t.dayofyear.to_numpy() - 80) / 365.25)
    return pd.Series(seasonal + rng.normal(0, noise, t.size), index=t, name="temp")


def sst_with_events():
    sst = synthetic_sst()
    sst.loc[HEATWAVE[0]:HEATWAVE[1]] += 4.0
    sst.loc[COLD_SPELL[0]:COLD_SPELL[1]] -= 4.0
    return sst


@pytest.fixture
def sst():
    """Ten years of daily SST with one heatwave and one cold spell."""
    return sst_with_events()


@pytest.fixture(scope="session")
def warm_result():
    """Warm-mode detection on the synthetic series (computed once)."""
    return detect(sst_with_events(), *BASELINE)


@pytest.fixture(scope="session")
def cold_result():
    """Cold-mode detection on the synthetic series (computed once)."""
    return detect(sst_with_events(), *BASELINE, mode="cold", threshold_percentile=10)


@pytest.fixture
def make_clim():
    """Build a climatology table with a flat seasonal mean and threshold."""

    def _make(temp, seas=0.0, thresh=1.0, start="2000-01-01"):
        temp = np.asarray(temp, dtype=np.float64)
        index = pd.date_range(start, periods=temp.size, freq="D", name="t")
        return pd.DataFrame(
            {
                "doy": np.arange(1, temp.size + 1),
                "temp": temp,
                "seas": np.full(temp.size, seas),
                "thresh": np.full(temp.size, thresh),
            },
            index=index,
        )

    return _make
