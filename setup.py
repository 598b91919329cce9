from setuptools import setup, find_packages


setup(
    name='pyMHW_detect',
    description='Marine heatwave and cold spell detection in daily SST time series',
    packages=find_packages(include=['marHW', 'marHW.*']),
    python_requires='>=3.9',
    install_requires=[
        'numpy',
        'pandas',
        'xarray',
        'dask[distributed]',
        'flox',
        'psutil',
        'matplotlib',
    ],
    extras_require={
        'test': ['pytest'],
    },
    use_scm_version={
        "write_to": "marHW/_version.py",
        "write_to_template": '__version__ = "{version}"',
        "tag_regex": r"^(?P<prefix>v)?(?P<version>[^\+]+)(?P<suffix>.*)?$",
        "fallback_version": "0.1.0",
    },
)
