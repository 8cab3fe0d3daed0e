"""Utility functions for Promoter."""

from promoter.utils.logging import configure_logging, get_logger, redact_secrets

__all__ = [
    "configure_logging",
    "get_logger",
    "redact_secrets",
]
