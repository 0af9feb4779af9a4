"""dub - desktop overlay assistant runtime."""

__version__ = "1.2.0"
