"""Utility modules."""

from .log import Log

__all__ = ["Log"]

# format_error lives in .error and imports the error types of every layer;
# import it from ctxbridge.util.error directly.
