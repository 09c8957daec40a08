"""
Pipeline Module
===============

End-to-end cross-validation engine and its background sweeper.
"""

from crossid_core.pipeline.engine import CrossValidationEngine, VerificationStatus
from crossid_core.pipeline.sweeper import Sweeper

__all__ = [
    "CrossValidationEngine",
    "VerificationStatus",
    "Sweeper",
]
