"""Bounded-concurrency batch image processor."""

__version__ = "0.1.0"
