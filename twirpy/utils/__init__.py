"""Utility functions for twirpy."""

from twirpy.utils.sanitize import describe_exception, sanitize_error_message

__all__ = [
    "describe_exception",
    "sanitize_error_message",
]
