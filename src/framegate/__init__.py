"""framegate - access-gated gateway for framed web applications."""

__version__ = "0.3.0"
