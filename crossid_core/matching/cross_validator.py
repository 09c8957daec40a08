"""
Cross Validator
================

Pairwise consistency scoring between available identity sources.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

import numpy as np

from crossid_core.config import MatchingConfig, WeightsConfig
from crossid_core.matching.fuzzy import FuzzyMatcher
from crossid_core.matching.identity import Identity, SourceSet


@dataclass(frozen=True)
class PairwiseScore:
    """
    Consistency score for one unordered pair of available sources.

    Attributes:
        pair: Slot names, e.g. ("primary", "secondary")
        score: Pair score in [0, 100]
        field_scores: Raw per-field similarity in [0, 1] for every field
            both sources provided
    """
    pair: Tuple[str, str]
    score: float
    field_scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pair": list(self.pair),
            "score": self.score,
            "field_scores": dict(self.field_scores),
        }


class CrossValidator:
    """
    Scores agreement between every pair of available sources.

    One weighting scheme applies to every pair. A field contributes its
    weight when both sources carry it and its similarity clears the
    configured threshold. With ``normalize_by_compared`` the earned points
    are scaled by the weight of the fields that could be compared, so a
    pair is not penalized for attributes one collaborator never reports.
    Scores saturate at 100 and never decrease as field similarity rises.

    Example:
        >>> validator = CrossValidator(MatchingConfig(), WeightsConfig())
        >>> pairwise, consistency = validator.validate(sources)
    """

    def __init__(
        self,
        matching: Optional[MatchingConfig] = None,
        weights: Optional[WeightsConfig] = None,
        matcher: Optional[FuzzyMatcher] = None,
    ):
        """
        Initialize the validator.

        Args:
            matching: Field thresholds
            weights: Points per matching field
            matcher: Shared fuzzy matcher (created if None)
        """
        self.matching = matching or MatchingConfig()
        self.weights = weights or WeightsConfig()
        self.matcher = matcher or FuzzyMatcher()

    def score_pair(
        self,
        a: Identity,
        b: Identity,
        pair: Tuple[str, str] = ("a", "b"),
    ) -> PairwiseScore:
        """Score one pair of identities."""
        field_scores: Dict[str, float] = {}
        earned = 0.0
        possible = 0.0

        if a.email and b.email:
            value = self.matcher.similarity(a.email, b.email)
            field_scores["email"] = value
            possible += self.weights.email
            if value >= self.matching.email_match_threshold:
                earned += self.weights.email

        if a.phone and b.phone:
            value = self.matcher.compare_phones(a.phone, b.phone)
            field_scores["phone"] = value
            possible += self.weights.phone
            if value >= self.matching.phone_match_threshold:
                earned += self.weights.phone

        if a.name and b.name:
            value = self.matcher.similarity(a.name, b.name)
            field_scores["name"] = value
            possible += self.weights.name
            if value >= self.matching.name_match_threshold:
                earned += self.weights.name

        if a.user_id and b.user_id:
            value = 1.0 if a.user_id == b.user_id else 0.0
            field_scores["user_id"] = value
            possible += self.weights.user_id
            earned += self.weights.user_id * value

        if self.weights.account > 0 and a.account_ref and b.account_ref:
            value = self.matcher.compare_accounts(a.account_ref, b.account_ref)
            field_scores["account"] = value
            possible += self.weights.account
            if value >= self.matching.fuzzy_threshold:
                earned += self.weights.account

        if self.weights.normalize_by_compared:
            score = earned / possible * 100.0 if possible > 0 else 0.0
        else:
            score = earned

        return PairwiseScore(
            pair=pair,
            score=float(min(max(score, 0.0), 100.0)),
            field_scores=field_scores,
        )

    def validate(self, sources: SourceSet) -> Tuple[List[PairwiseScore], float]:
        """
        Score all pairs of available sources.

        Returns:
            Pairwise scores (0, 1, or 3 of them) and the overall
            consistency: the mean of the positive pair scores, or 0.
        """
        pairwise = [
            self.score_pair(sources.get(x), sources.get(y), pair=(x, y))
            for x, y in sources.pairs()
        ]
        return pairwise, self.overall_consistency(pairwise)

    @staticmethod
    def overall_consistency(pairwise: List[PairwiseScore]) -> float:
        positive = [p.score for p in pairwise if p.score > 0]
        if not positive:
            return 0.0
        return float(min(max(np.mean(positive), 0.0), 100.0))
