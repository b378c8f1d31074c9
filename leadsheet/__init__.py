"""leadsheet: header-union merge, deduplication and geo normalization for lead tables."""

__version__ = "0.4.0"
