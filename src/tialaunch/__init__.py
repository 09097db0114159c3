"""tialaunch - impacted test selection launcher with testwise coverage."""

__version__ = "0.1.0"
