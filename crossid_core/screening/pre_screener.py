"""
Pre-Screener
============

Cheap structural checks and the rate-limit gate applied to an identity
before cross-validation.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from crossid_core.config import ScreeningConfig
from crossid_core.errors import ValidationError
from crossid_core.matching.fuzzy import normalize_phone
from crossid_core.matching.identity import Identity
from crossid_core.screening.rate_limiter import RateLimiter
from crossid_core.utils.clock import Clock, SystemClock
from crossid_core.utils.masking import mask_pii

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")

ISSUE_EMAIL = "Invalid email format"
ISSUE_PHONE = "Invalid phone format"
ISSUE_USER_ID = "Invalid user ID"
ISSUE_SUSPICIOUS = "Suspicious patterns detected"
ISSUE_RATE_LIMIT = "Rate limit exceeded"

# Points deducted per failed check
DEDUCTIONS: Dict[str, int] = {
    ISSUE_EMAIL: 30,
    ISSUE_PHONE: 25,
    ISSUE_USER_ID: 20,
    ISSUE_SUSPICIOUS: 40,
    ISSUE_RATE_LIMIT: 50,
}


@dataclass(frozen=True)
class PreScreenResult:
    """
    Outcome of pre-screening one identity.

    Attributes:
        user_id_masked: Masked user ID
        passed: True only if no check failed
        score: 100 minus deductions, floored at 0
        issues: Failed checks in evaluation order
        timestamp: When screening ran
        duration_ms: Time spent screening
    """
    user_id_masked: str
    passed: bool
    score: int
    issues: List[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id_masked,
            "passed": self.passed,
            "score": self.score,
            "issues": list(self.issues),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "duration_ms": round(self.duration_ms, 2),
        }


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def is_valid_phone(phone: Optional[str], min_digits: int = 10) -> bool:
    if not phone or PHONE_PATTERN.match(phone) is None:
        return False
    return len(normalize_phone(phone)) >= min_digits


class PreScreener:
    """
    Structural validation with suspicious-pattern detection and rate limiting.

    Never raises for bad input; malformed identities come back as a failed
    result with score 0.

    Example:
        >>> screener = PreScreener(rate_limiter=RateLimiter())
        >>> result = screener.screen(identity)
        >>> result.passed, result.score
        (True, 100)
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[ScreeningConfig] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the screener.

        Args:
            rate_limiter: Attempt limiter (rate limiting disabled if None)
            config: Screening rules
            clock: Time source for result timestamps
        """
        self.rate_limiter = rate_limiter
        self.config = config or ScreeningConfig()
        self.clock = clock or SystemClock()
        self._suspicious = self._compile(self.config.suspicious_patterns)

    @staticmethod
    def _compile(tokens: Sequence[str]) -> List[re.Pattern]:
        return [re.compile(re.escape(token), re.IGNORECASE) for token in tokens]

    def screen(self, identity: Union[Identity, Dict[str, Any], Any]) -> PreScreenResult:
        """
        Screen one identity.

        Args:
            identity: An ``Identity`` or a mapping with identity fields

        Returns:
            PreScreenResult
        """
        start = time.perf_counter()
        try:
            candidate = self._coerce(identity)
        except ValidationError as e:
            logger.warning(f"Pre-screen rejected malformed input: {e.message}")
            return PreScreenResult(
                user_id_masked="undefined",
                passed=False,
                score=0,
                issues=[e.message],
                timestamp=self.clock.now(),
                duration_ms=(time.perf_counter() - start) * 1000,
            )

        issues = self.check(candidate)
        score = max(0, 100 - sum(DEDUCTIONS[issue] for issue in issues))
        result = PreScreenResult(
            user_id_masked=mask_pii(candidate.user_id),
            passed=not issues,
            score=score,
            issues=issues,
            timestamp=self.clock.now(),
            duration_ms=(time.perf_counter() - start) * 1000,
        )

        logger.debug(
            f"Pre-screen {result.user_id_masked}: "
            f"{'PASSED' if result.passed else 'FAILED'} ({result.score})"
        )
        return result

    def check(self, identity: Identity) -> List[str]:
        """Run every check and return the failed ones in order."""
        issues = []

        if not is_valid_email(identity.email):
            issues.append(ISSUE_EMAIL)

        if not is_valid_phone(identity.phone, self.config.min_phone_digits):
            issues.append(ISSUE_PHONE)

        if len(identity.user_id) < self.config.min_user_id_length:
            issues.append(ISSUE_USER_ID)

        if self.has_suspicious_patterns(identity):
            issues.append(ISSUE_SUSPICIOUS)

        if self.rate_limiter is not None and not self.rate_limiter.allow(identity.user_id):
            issues.append(ISSUE_RATE_LIMIT)

        return issues

    def has_suspicious_patterns(self, identity: Identity) -> bool:
        haystack = f"{identity.email or ''} {identity.phone or ''} {identity.user_id}"
        return any(pattern.search(haystack) for pattern in self._suspicious)

    @staticmethod
    def _coerce(identity: Any) -> Identity:
        if isinstance(identity, Identity):
            candidate = identity
        elif isinstance(identity, dict):
            candidate = Identity.from_dict(identity)
        else:
            raise ValidationError(
                "Malformed identity",
                details={"type": type(identity).__name__},
            )
        if not candidate.user_id:
            raise ValidationError("Missing user ID")
        return candidate
