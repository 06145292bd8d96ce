"""Territory capture engine: hex-tile ownership built from running routes."""

__version__ = "0.1.0"
