"""stride - fitness coaching backend with live community chat."""

__version__ = "0.1.0"
