"""Shared utilities for the visa data refresh tools."""

# Common utilities
from utils.common import (
    elapsed,
    utc_now,
    format_timestamp,
    parse_timestamp,
    age_in_days,
    period_token,
    atomic_write_json,
    format_duration,
)

# Progress tracking
from utils.progress import (
    ProgressTracker,
    TerminalProgressTracker,
    SilentProgressTracker,
)

# HTTP utilities
from utils.http import (
    RetryStrategy,
    SessionManager,
    RequestThrottle,
)

# Configuration
from utils.config import (
    Config,
    RefreshConfig,
    KnownValues,
    REFRESH_PRESETS,
)

__all__ = [
    # Common
    "elapsed",
    "utc_now",
    "format_timestamp",
    "parse_timestamp",
    "age_in_days",
    "period_token",
    "atomic_write_json",
    "format_duration",
    # Progress
    "ProgressTracker",
    "TerminalProgressTracker",
    "SilentProgressTracker",
    # HTTP
    "RetryStrategy",
    "SessionManager",
    "RequestThrottle",
    # Config
    "Config",
    "RefreshConfig",
    "KnownValues",
    "REFRESH_PRESETS",
]
