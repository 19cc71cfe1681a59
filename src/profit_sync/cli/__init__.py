"""Command-line interface for profit-sync."""

from .main import cli

__all__ = ["cli"]
