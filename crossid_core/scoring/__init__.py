"""
Scoring Module
==============

Confidence, risk, and pass/fail derivation.
"""

from crossid_core.scoring.risk_scorer import RiskScorer, RiskAssessment
from crossid_core.scoring.record import CrossValidationRecord, generate_verification_id

__all__ = [
    "RiskScorer",
    "RiskAssessment",
    "CrossValidationRecord",
    "generate_verification_id",
]
