"""watchpost — periodic balance and pull-request checks with deduplicated alerts."""

__version__ = "0.1.0"
