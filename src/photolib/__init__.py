"""Self-hosted photo library with an asynchronous embedding pipeline."""

__version__ = "0.1.0"
