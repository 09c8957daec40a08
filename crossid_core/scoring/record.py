"""
Cross-Validation Record
========================

Immutable outcome of one cross-validation.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional

from crossid_core.matching.cross_validator import PairwiseScore


def generate_verification_id() -> str:
    """Opaque verification identifier."""
    return f"ver_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class CrossValidationRecord:
    """
    Result of reconciling a source set.

    Attributes:
        verification_id: Opaque identifier, ``ver_<hex>``
        timestamp: When the record was computed (UTC)
        sources: Availability of every slot
        pairwise_scores: One score per pair of available sources
        overall_consistency: Mean positive pairwise score in [0, 100]
        confidence: Trust in the decision in [0, 100]
        risk_score: Residual risk in [0, 100]
        passed: Final decision
        issues: Human-readable problems, in a fixed order
        user_id_masked: Masked primary user ID
        cache_key: Canonical key of the input
    """
    verification_id: str
    timestamp: datetime
    sources: Dict[str, bool]
    pairwise_scores: List[PairwiseScore]
    overall_consistency: float
    confidence: float
    risk_score: float
    passed: bool
    issues: List[str] = field(default_factory=list)
    user_id_masked: str = "undefined"
    cache_key: Optional[str] = None

    @property
    def available_sources(self) -> int:
        return sum(1 for available in self.sources.values() if available)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "verification_id": self.verification_id,
            "timestamp": self.timestamp.isoformat(),
            "sources": dict(self.sources),
            "pairwise_scores": [p.to_dict() for p in self.pairwise_scores],
            "overall_consistency": self.overall_consistency,
            "confidence": self.confidence,
            "risk_score": self.risk_score,
            "passed": self.passed,
            "issues": list(self.issues),
            "user_id": self.user_id_masked,
        }

    def summary(self) -> Dict[str, Any]:
        """PII-masked status view."""
        return {
            "verification_id": self.verification_id,
            "user_id": self.user_id_masked,
            "passed": self.passed,
            "confidence": self.confidence,
            "risk_score": self.risk_score,
            "timestamp": self.timestamp.isoformat(),
        }
