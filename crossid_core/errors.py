"""
Error Taxonomy
==============

Exceptions raised or reported by the cross-validation engine.

Only ``ConfigurationError`` escapes the public surface. The others are
caught at the boundary and turned into result fields or log lines.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CrossIDError(Exception):
    """Base class for all engine errors."""

    code: str = "crossid_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(CrossIDError):
    """Invalid engine configuration. Fatal at construction time."""

    code = "configuration_error"


class ValidationError(CrossIDError):
    """Malformed input handed to pre-screening or cross-validation."""

    code = "validation_error"


class RateLimitExceeded(CrossIDError):
    """An identity key exceeded its attempt budget."""

    code = "rate_limit_exceeded"


class ComputationError(CrossIDError):
    """Unexpected internal fault, e.g. a corrupt cache entry."""

    code = "computation_error"
