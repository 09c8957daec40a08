"""
Cross-Validation Engine
========================

Public entry point: pre-screening, cross-validation with caching,
status lookup, configuration, and lifecycle.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional, Union

from crossid_core.compliance import AuditLogger
from crossid_core.config import ValidationConfig, build_config, load_config
from crossid_core.errors import ConfigurationError, ValidationError
from crossid_core.matching import SLOTS, CrossValidator, FuzzyMatcher, Identity, SourceSet
from crossid_core.pipeline.sweeper import Sweeper
from crossid_core.scoring import CrossValidationRecord, RiskScorer, generate_verification_id
from crossid_core.screening import PreScreener, PreScreenResult, RateLimiter
from crossid_core.store import InMemoryStore, Store, VerificationCache, make_cache_key
from crossid_core.utils.clock import Clock, SystemClock
from crossid_core.utils.log_setup import setup_logging
from crossid_core.utils.masking import mask_pii

logger = logging.getLogger(__name__)

IdentityInput = Union[Identity, Dict[str, Any]]

# Number of striped locks serializing work on the same cache key
_KEY_LOCK_STRIPES = 32


@dataclass(frozen=True)
class VerificationStatus:
    """
    Result of a status lookup.

    Attributes:
        verification_id: ID that was looked up
        found: Whether a live record exists
        record: The record, if found
        error: "Verification not found" when missing
    """
    verification_id: str
    found: bool
    record: Optional[CrossValidationRecord] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """PII-masked view."""
        if not self.found or self.record is None:
            return {"found": False, "error": self.error}
        return {"found": True, "verification": self.record.summary()}


@dataclass(frozen=True)
class _Components:
    """Everything derived from one configuration, swapped as a unit."""
    config: ValidationConfig
    cross_validator: CrossValidator
    risk_scorer: RiskScorer
    cache: VerificationCache
    rate_limiter: Optional[RateLimiter]
    pre_screener: PreScreener


def _coerce_identity(slot: str, value: Any) -> Optional[Identity]:
    if value is None or isinstance(value, Identity):
        return value
    if isinstance(value, dict):
        return Identity.from_dict(value)
    raise ValidationError(
        f"Malformed {slot} source",
        details={"slot": slot, "type": type(value).__name__},
    )


class CrossValidationEngine:
    """
    Multi-source identity cross-validation engine.

    Reconciles a mandatory primary source with optional secondary and
    tertiary sources into one pass/fail decision with confidence and risk
    scores. State lives in explicit stores passed at construction.

    Example:
        >>> engine = CrossValidationEngine()
        >>> engine.init()
        >>> screen = engine.pre_screen(primary)
        >>> record = engine.cross_validate(primary, secondary, tertiary)
        >>> print(record.passed, record.confidence, record.risk_score)
        >>> engine.shutdown()
    """

    def __init__(
        self,
        config: Optional[Union[ValidationConfig, Dict[str, Any]]] = None,
        clock: Optional[Clock] = None,
        cache_store: Optional[Store] = None,
        record_store: Optional[Store] = None,
        rate_store: Optional[Store] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (defaults if None)
            clock: Time source (wall clock if None)
            cache_store: Store for the verification cache
            record_store: Store indexing records by verification ID
            rate_store: Store for rate-limit windows
            audit_logger: Audit trail (created from config if None)

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config = self._validate_config(config)
        self.clock = clock if clock is not None else SystemClock()

        # Stores define __len__, so an empty one is falsy
        self.cache_store = (
            cache_store if cache_store is not None
            else InMemoryStore(name="verification_cache")
        )
        self.record_store = (
            record_store if record_store is not None
            else InMemoryStore(name="verification_records")
        )
        self.rate_store = (
            rate_store if rate_store is not None
            else InMemoryStore(name="rate_windows")
        )

        self.audit_logger = (
            audit_logger if audit_logger is not None
            else self._create_audit_logger(config)
        )
        self.matcher = FuzzyMatcher()

        self._config_lock = threading.Lock()
        self._components = self._build_components(config)

        self._key_locks = [threading.Lock() for _ in range(_KEY_LOCK_STRIPES)]
        self._metrics_lock = threading.Lock()
        self._metrics = self._empty_metrics()
        self._sweeper: Optional[Sweeper] = None
        self.initialized = False

    @classmethod
    def from_config(cls, config_path: str, **kwargs: Any) -> "CrossValidationEngine":
        """
        Create engine from a YAML file and apply its log level.

        Args:
            config_path: Path to YAML config file

        Returns:
            Configured CrossValidationEngine instance
        """
        config = load_config(config_path)
        setup_logging(config.log_level)
        return cls(config, **kwargs)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_config(
        config: Optional[Union[ValidationConfig, Dict[str, Any]]],
    ) -> ValidationConfig:
        if config is None:
            return ValidationConfig()
        if isinstance(config, ValidationConfig):
            # Re-validate: attribute assignment on pydantic models is unchecked
            return build_config(config.model_dump())
        if isinstance(config, dict):
            return build_config(config)
        raise ConfigurationError(f"Unsupported configuration type: {type(config).__name__}")

    def _create_audit_logger(self, config: ValidationConfig) -> AuditLogger:
        """Create audit logger from config."""
        return AuditLogger(
            log_path=config.compliance.audit_log_path,
            retention_days=config.compliance.log_retention_days,
            enabled=config.compliance.enabled,
            mask=config.compliance.mask_pii,
            clock=self.clock,
        )

    def _build_components(self, config: ValidationConfig) -> _Components:
        rate_limiter: Optional[RateLimiter] = None
        if config.rate_limit.enabled:
            rate_limiter = RateLimiter(
                window_seconds=config.rate_limit.window_seconds,
                max_attempts=config.rate_limit.max_attempts,
                store=self.rate_store,
                clock=self.clock,
            )
        return _Components(
            config=config,
            cross_validator=CrossValidator(
                matching=config.matching,
                weights=config.weights,
                matcher=self.matcher,
            ),
            risk_scorer=RiskScorer(matching=config.matching),
            cache=VerificationCache(
                store=self.cache_store,
                clock=self.clock,
                ttl_seconds=config.cache.cache_ttl_seconds,
            ),
            rate_limiter=rate_limiter,
            pre_screener=PreScreener(
                rate_limiter=rate_limiter,
                config=config.screening,
                clock=self.clock,
            ),
        )

    def _snapshot(self) -> _Components:
        with self._config_lock:
            return self._components

    @staticmethod
    def _empty_metrics() -> Dict[str, Any]:
        return {
            "total_validations": 0,
            "successful_validations": 0,
            "failed_validations": 0,
            "cross_validations": 0,
            "cache_hits": 0,
            "pre_screens": 0,
            "average_validation_time_ms": 0.0,
        }

    # Current components, read through one consistent snapshot each

    @property
    def config(self) -> ValidationConfig:
        return self._snapshot().config

    @property
    def cross_validator(self) -> CrossValidator:
        return self._snapshot().cross_validator

    @property
    def risk_scorer(self) -> RiskScorer:
        return self._snapshot().risk_scorer

    @property
    def cache(self) -> VerificationCache:
        return self._snapshot().cache

    @property
    def rate_limiter(self) -> Optional[RateLimiter]:
        return self._snapshot().rate_limiter

    @property
    def pre_screener(self) -> PreScreener:
        return self._snapshot().pre_screener

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self) -> None:
        """Validate configuration, sweep stale state, start background sweeping."""
        if self.initialized:
            return

        config = self._validate_config(self.config)
        for store in (self.cache_store, self.record_store, self.rate_store):
            store.init()
        self.sweep()

        if config.cache.background_sweep:
            self._sweeper = Sweeper(
                self.sweep,
                interval_seconds=config.cache.sweep_interval_seconds,
            )
            self._sweeper.start()

        self.initialized = True
        logger.info("Cross-validation engine initialized")

    def shutdown(self) -> None:
        """Stop background work and drop all in-memory state."""
        logger.info("Shutting down cross-validation engine")
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None
        for store in (self.cache_store, self.record_store, self.rate_store):
            store.teardown()
        self.initialized = False

    teardown = shutdown

    def __enter__(self) -> "CrossValidationEngine":
        self.init()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()

    def sweep(self) -> Dict[str, int]:
        """
        Remove expired cache entries, records, and rate windows.

        Returns:
            Number of entries removed per store
        """
        components = self._snapshot()
        rate_limiter = components.rate_limiter
        removed = {
            "cache": components.cache.sweep(),
            "records": self.record_store.sweep(self.clock.now()),
            "rate_windows": rate_limiter.sweep() if rate_limiter is not None else 0,
        }
        if any(removed.values()):
            logger.debug(f"Sweep removed {removed}")
            self.audit_logger.log_sweep(removed)
        return removed

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def pre_screen(self, identity: Any) -> PreScreenResult:
        """
        Structural checks and rate limiting for one identity.

        Never raises; malformed input yields a failed result.
        """
        result = self._snapshot().pre_screener.screen(identity)
        with self._metrics_lock:
            self._metrics["pre_screens"] += 1

        subject = getattr(identity, "user_id", None)
        if isinstance(identity, dict):
            subject = identity.get("user_id") or identity.get("userId")
        self.audit_logger.log_pre_screen(
            subject=subject,
            passed=result.passed,
            score=result.score,
            issues=result.issues,
        )
        return result

    def cross_validate(
        self,
        primary: Union[IdentityInput, SourceSet, None],
        secondary: Optional[IdentityInput] = None,
        tertiary: Optional[IdentityInput] = None,
    ) -> CrossValidationRecord:
        """
        Reconcile the available sources into a single record.

        Malformed or missing sources never raise; they produce a failed
        record whose first issue names the problem.

        Args:
            primary: Primary identity, or a complete ``SourceSet``
            secondary: Account-linking identity
            tertiary: Financial-aggregator identity

        Returns:
            CrossValidationRecord (the cached one for a repeated input)
        """
        start = time.perf_counter()
        components = self._snapshot()

        try:
            sources = self._source_set(primary, secondary, tertiary)
        except ValidationError as e:
            logger.warning(f"Cross-validation rejected malformed input: {e.message}")
            record = self._rejected(components, e)
            self._index(record)
            self._record_metrics(record, start, computed=True)
            self._audit(record, None, cached=False)
            return record

        key = make_cache_key(sources)
        with self._key_lock(key):
            cached = components.cache.get(key)
            if cached is None:
                record = self._compute(components, sources, key)
                self._index(record)
                with self._config_lock:
                    # Skip caching if configure() swapped components mid-flight
                    if self._components is components:
                        components.cache.put(key, record)

        if cached is not None:
            self._record_metrics(cached, start, computed=False)
            logger.debug(f"Cache hit for {cached.verification_id}")
            self._audit(cached, sources, cached=True)
            return cached

        self._record_metrics(record, start, computed=True)
        logger.info(
            f"Cross-validation {record.verification_id} for {record.user_id_masked}: "
            f"{'PASSED' if record.passed else 'FAILED'} "
            f"({record.confidence:.0f}% confidence, risk {record.risk_score:.0f})"
        )
        self._audit(record, sources, cached=False)
        return record

    def get_verification_status(self, verification_id: str) -> VerificationStatus:
        """Look up a previously computed record by its ID."""
        record = self.record_store.get(verification_id, now=self.clock.now())
        found = isinstance(record, CrossValidationRecord)
        self.audit_logger.log_status_lookup(verification_id, found)
        if not found:
            return VerificationStatus(
                verification_id=verification_id,
                found=False,
                error="Verification not found",
            )
        return VerificationStatus(verification_id=verification_id, found=True, record=record)

    def configure(self, **overrides: Any) -> ValidationConfig:
        """
        Apply configuration overrides.

        Accepts ``fuzzyThreshold``, ``phoneMatchThreshold``,
        ``emailMatchThreshold``, ``nameMatchThreshold``, ``cacheTTL``,
        ``rateLimitWindow``, ``rateLimitMax`` and their snake_case forms.
        Cached records are dropped since they were scored under the old
        settings. Rate-limit windows are kept.

        Raises:
            ConfigurationError: Unknown key or out-of-range value
        """
        with self._config_lock:
            new_config = self._components.config.with_overrides(**overrides)
            self._components = self._build_components(new_config)
            self._components.cache.clear()

        logger.info(f"Configuration updated: {sorted(overrides)}")
        self.audit_logger.log_config_change(dict(overrides))
        return new_config

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Engine counters and derived rates."""
        components = self._snapshot()
        with self._metrics_lock:
            metrics = dict(self._metrics)
        total = metrics["total_validations"]
        metrics["success_rate"] = (
            metrics["successful_validations"] / total * 100 if total else 0.0
        )
        metrics["cache_misses"] = components.cache.misses
        metrics["fuzzy_matches"] = self.matcher.comparisons
        metrics["cached_verifications"] = len(components.cache)
        metrics["stored_verifications"] = self.record_store.count()
        metrics["rate_limited_users"] = (
            len(components.rate_limiter) if components.rate_limiter is not None else 0
        )
        return metrics

    def health_check(self) -> Dict[str, Any]:
        """Validate configuration, sweep, and report status."""
        try:
            config = self._validate_config(self.config)
        except ConfigurationError as e:
            return {"status": "unhealthy", "error": e.message}

        self.sweep()
        return {
            "status": "healthy",
            "initialized": self.initialized,
            "background_sweep": self._sweeper is not None and self._sweeper.running,
            "metrics": self.get_metrics(),
            "config": config.thresholds(),
        }

    def is_healthy(self) -> bool:
        return self.initialized

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _source_set(
        primary: Union[IdentityInput, SourceSet, None],
        secondary: Optional[IdentityInput],
        tertiary: Optional[IdentityInput],
    ) -> SourceSet:
        if isinstance(primary, SourceSet):
            return primary
        if primary is None:
            raise ValidationError("Missing primary source")
        slots = {
            slot: _coerce_identity(slot, value)
            for slot, value in zip(SLOTS, (primary, secondary, tertiary))
        }
        return SourceSet(**slots)

    def _key_lock(self, key: str) -> threading.Lock:
        return self._key_locks[int(key[:8], 16) % _KEY_LOCK_STRIPES]

    def _compute(
        self,
        components: _Components,
        sources: SourceSet,
        key: str,
    ) -> CrossValidationRecord:
        pairwise, consistency = components.cross_validator.validate(sources)
        assessment = components.risk_scorer.assess(sources, pairwise, consistency)
        return CrossValidationRecord(
            verification_id=generate_verification_id(),
            timestamp=self.clock.now(),
            sources=sources.availability(),
            pairwise_scores=pairwise,
            overall_consistency=consistency,
            confidence=assessment.confidence,
            risk_score=assessment.risk_score,
            passed=assessment.passed,
            issues=assessment.issues,
            user_id_masked=mask_pii(sources.primary.user_id),
            cache_key=key,
        )

    def _rejected(
        self,
        components: _Components,
        error: ValidationError,
    ) -> CrossValidationRecord:
        """Failed record for input that could not be read as a source set."""
        sources = SourceSet(primary=Identity(success=False))
        assessment = components.risk_scorer.assess(sources, [], 0.0)
        return CrossValidationRecord(
            verification_id=generate_verification_id(),
            timestamp=self.clock.now(),
            sources=sources.availability(),
            pairwise_scores=[],
            overall_consistency=0.0,
            confidence=assessment.confidence,
            risk_score=assessment.risk_score,
            passed=False,
            issues=[error.message] + assessment.issues,
        )

    def _index(self, record: CrossValidationRecord) -> None:
        expiry = self.config.cache.verification_expiry_seconds
        self.record_store.set(
            record.verification_id,
            record,
            expires_at=record.timestamp + timedelta(seconds=expiry),
        )

    def _record_metrics(
        self,
        record: CrossValidationRecord,
        start: float,
        computed: bool,
    ) -> None:
        elapsed_ms = (time.perf_counter() - start) * 1000
        with self._metrics_lock:
            m = self._metrics
            m["total_validations"] += 1
            if computed:
                m["cross_validations"] += 1
            else:
                m["cache_hits"] += 1
            if record.passed:
                m["successful_validations"] += 1
            else:
                m["failed_validations"] += 1
            total = m["total_validations"]
            m["average_validation_time_ms"] = (
                m["average_validation_time_ms"] * (total - 1) + elapsed_ms
            ) / total

    def _audit(
        self,
        record: CrossValidationRecord,
        sources: Optional[SourceSet],
        cached: bool,
    ) -> None:
        self.audit_logger.log_cross_validation(
            verification_id=record.verification_id,
            subject=sources.primary.user_id if sources is not None else None,
            passed=record.passed,
            confidence=record.confidence,
            risk_score=record.risk_score,
            sources=record.sources,
            cached=cached,
        )

    def __repr__(self) -> str:
        return (
            f"CrossValidationEngine("
            f"cached={len(self.cache)}, "
            f"records={self.record_store.count()}, "
            f"initialized={self.initialized})"
        )
