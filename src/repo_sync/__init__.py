"""Bidirectional sync between a local file tree and a hosted Git repository."""

__version__ = "0.4.0"
