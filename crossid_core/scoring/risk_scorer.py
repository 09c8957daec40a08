"""
Risk Scorer
===========

Turns source availability and pairwise consistency into a pass decision,
a confidence score, a risk score, and a list of issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from crossid_core.config import MatchingConfig
from crossid_core.matching.cross_validator import PairwiseScore
from crossid_core.matching.identity import SourceSet

ISSUE_PRIMARY_FAILED = "Identity verification failed"
ISSUE_INCONSISTENT = "Inconsistent information across sources"
ISSUE_LOW_CONFIDENCE = "Low confidence in verification"
ISSUE_HIGH_RISK = "High risk detected"


def _clamp(value: float) -> float:
    return float(min(max(value, 0.0), 100.0))


@dataclass(frozen=True)
class RiskAssessment:
    """Derived verdict for one cross-validation."""
    passed: bool
    confidence: float
    risk_score: float
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "confidence": self.confidence,
            "risk_score": self.risk_score,
            "issues": list(self.issues),
        }


class RiskScorer:
    """
    Scoring rules applied after cross-validation.

    Example:
        >>> scorer = RiskScorer(MatchingConfig())
        >>> assessment = scorer.assess(sources, pairwise, consistency)
    """

    def __init__(self, matching: Optional[MatchingConfig] = None):
        self.matching = matching or MatchingConfig()

    def determine_pass(self, sources: SourceSet, overall_consistency: float) -> bool:
        """
        Pass/fail decision.

        The primary source is mandatory. A lone source passes since there is
        nothing to cross-check. Two sources get a lenient threshold.
        """
        if not sources.is_available("primary"):
            return False

        count = len(sources.available())
        if count == 1:
            return True

        threshold = self.matching.fuzzy_threshold
        if count == 2:
            threshold *= self.matching.two_source_leniency

        return overall_consistency / 100.0 >= threshold

    def calculate_confidence(
        self,
        sources: SourceSet,
        pairwise: List[PairwiseScore],
        overall_consistency: float,
    ) -> float:
        count = len(sources.available())
        ratio = overall_consistency / 100.0

        if ratio < 0.5:
            confidence = count * 10 + ratio * 5
        else:
            confidence = count * 20 + overall_consistency * 0.3
            if sum(1 for p in pairwise if p.score > 0) >= 2:
                confidence += 20

        return _clamp(confidence)

    def calculate_risk_score(
        self,
        sources: SourceSet,
        overall_consistency: float,
        confidence: float,
    ) -> float:
        risk = 0.0
        if overall_consistency / 100.0 < 0.5:
            risk += 30
        missing = sum(1 for available in sources.availability().values() if not available)
        risk += missing * 15
        if confidence < 70:
            risk += 20
        return _clamp(risk)

    def identify_issues(
        self,
        sources: SourceSet,
        overall_consistency: float,
        confidence: float,
        risk_score: float,
    ) -> List[str]:
        issues = []
        if not sources.is_available("primary"):
            issues.append(ISSUE_PRIMARY_FAILED)
        if overall_consistency / 100.0 < 0.7:
            issues.append(ISSUE_INCONSISTENT)
        if confidence < 60:
            issues.append(ISSUE_LOW_CONFIDENCE)
        if risk_score > 50:
            issues.append(ISSUE_HIGH_RISK)
        return issues

    def assess(
        self,
        sources: SourceSet,
        pairwise: List[PairwiseScore],
        overall_consistency: float,
    ) -> RiskAssessment:
        """Run every scoring rule in order."""
        passed = self.determine_pass(sources, overall_consistency)
        confidence = self.calculate_confidence(sources, pairwise, overall_consistency)
        risk_score = self.calculate_risk_score(sources, overall_consistency, confidence)
        issues = self.identify_issues(sources, overall_consistency, confidence, risk_score)
        return RiskAssessment(
            passed=passed,
            confidence=confidence,
            risk_score=risk_score,
            issues=issues,
        )
