"""Utility modules.

This package provides shared utilities used across the codebase.
"""

from .deadline import Deadline
from .time import TS_UTC_PATTERN, format_ts_utc_z, now_ts_utc_z, utc_now

__all__ = [
    "Deadline",
    "TS_UTC_PATTERN",
    "format_ts_utc_z",
    "now_ts_utc_z",
    "utc_now",
]
