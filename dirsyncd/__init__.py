"""Directory mirroring with a manager, a worker pool and an interactive console."""

__version__ = "0.1.0"