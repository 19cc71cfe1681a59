"""Shared helpers (logging setup, timestamp handling)."""

from .logging_config import configure_third_party_loggers, set_log_level, setup_logging
from .timestamps import parse_timestamp, to_iso, to_naive_utc, utcnow

__all__ = [
    "configure_third_party_loggers",
    "set_log_level",
    "setup_logging",
    "parse_timestamp",
    "to_iso",
    "to_naive_utc",
    "utcnow",
]
