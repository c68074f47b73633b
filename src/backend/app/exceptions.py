"""
Error types shared across the grading pipeline.

Only ConfigurationError ever reaches the caller of a grading round. The
other two are raised inside the per-backend pipeline and are always turned
into a BackendFailure before they leave the dispatcher.
"""
from __future__ import annotations

from typing import Optional


class ConfigurationError(ValueError):
    """Pre-flight problem with a request or the backend setup. No backend is called."""


class BackendCallError(RuntimeError):
    """A scoring backend answered, but not with a usable response envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NormalizationError(ValueError):
    """Backend text could not be turned into a Verdict by any strategy."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text
