"""Annual report extraction over a retrieval index."""

__version__ = "0.1.0"
