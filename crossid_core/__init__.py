"""
CROSSID Core - Multi-Source Identity Cross-Validation
======================================================

Reconciles identity verification results from independent sources with:
- Levenshtein-based fuzzy matching for names and emails
- Format-tolerant phone number comparison
- Weighted pairwise consistency scoring
- Confidence and risk scoring with adaptive thresholds
- TTL verification cache and sliding-window rate limiting
- PII-masked audit logging

Example:
    >>> from crossid_core import CrossValidationEngine, Identity
    >>> engine = CrossValidationEngine.from_config("configs/default.yaml")
    >>> record = engine.cross_validate(
    ...     Identity(user_id="u1", email="bob@x.com", phone="+15551234567"),
    ...     Identity(email="bob@x.com", phone="(555) 123-4567"),
    ... )
    >>> record.passed
    True
"""

__version__ = "1.0.0"
__author__ = "CROSSID Project"

from crossid_core.config import (
    ValidationConfig,
    MatchingConfig,
    WeightsConfig,
    CacheConfig,
    RateLimitConfig,
    ScreeningConfig,
    ComplianceConfig,
    load_config,
)
from crossid_core.errors import (
    CrossIDError,
    ConfigurationError,
    ValidationError,
    RateLimitExceeded,
    ComputationError,
)
from crossid_core.matching import Identity, SourceSet, FuzzyMatcher, CrossValidator, PairwiseScore
from crossid_core.scoring import RiskScorer, RiskAssessment, CrossValidationRecord
from crossid_core.screening import RateLimiter, PreScreener, PreScreenResult
from crossid_core.store import Store, InMemoryStore, VerificationCache
from crossid_core.compliance import AuditLogger
from crossid_core.pipeline import CrossValidationEngine, VerificationStatus
from crossid_core.utils import Clock, SystemClock, ManualClock, mask_pii

__all__ = [
    # Version
    "__version__",
    # Config
    "ValidationConfig",
    "MatchingConfig",
    "WeightsConfig",
    "CacheConfig",
    "RateLimitConfig",
    "ScreeningConfig",
    "ComplianceConfig",
    "load_config",
    # Errors
    "CrossIDError",
    "ConfigurationError",
    "ValidationError",
    "RateLimitExceeded",
    "ComputationError",
    # Matching
    "Identity",
    "SourceSet",
    "FuzzyMatcher",
    "CrossValidator",
    "PairwiseScore",
    # Scoring
    "RiskScorer",
    "RiskAssessment",
    "CrossValidationRecord",
    # Screening
    "RateLimiter",
    "PreScreener",
    "PreScreenResult",
    # Stores
    "Store",
    "InMemoryStore",
    "VerificationCache",
    # Compliance
    "AuditLogger",
    # Engine
    "CrossValidationEngine",
    "VerificationStatus",
    # Utils
    "Clock",
    "SystemClock",
    "ManualClock",
    "mask_pii",
]
