"""fundsheet - workbook-hosted fundamentals pipeline."""

__version__ = "0.4.0"
