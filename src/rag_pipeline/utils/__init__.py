"""
Utility Functions - Common helper functions and utilities

This module provides utility functions for:
- Hashing and identifiers
- Async retry with exponential backoff
- Timing and formatting

License: MIT
"""

from .helpers import (
    generate_hash,
    chunk_list,
    format_duration,
    backoff_delay,
    retry_async,
    truncate_text,
    Timer,
    create_unique_id,
)

__all__ = [
    "generate_hash",
    "chunk_list",
    "format_duration",
    "backoff_delay",
    "retry_async",
    "truncate_text",
    "Timer",
    "create_unique_id",
]
