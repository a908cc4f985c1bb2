"""nodeprep — checkout, runtime check, dependency cache and install for Node CI jobs."""

__version__ = "0.1.0"
