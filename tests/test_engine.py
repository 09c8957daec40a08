"""
Test Cross-Validation Engine
============================
"""

import logging
import threading
import time

import pytest

from crossid_core.compliance.audit_logger import AuditLogger
from crossid_core.config import CacheConfig, ValidationConfig
from crossid_core.errors import ConfigurationError
from crossid_core.matching.identity import Identity, SourceSet
from crossid_core.pipeline.engine import CrossValidationEngine
from crossid_core.pipeline.sweeper import Sweeper
from crossid_core.scoring.risk_scorer import (
    ISSUE_HIGH_RISK,
    ISSUE_INCONSISTENT,
    ISSUE_PRIMARY_FAILED,
)
from crossid_core.screening.pre_screener import ISSUE_RATE_LIMIT
from crossid_core.store.cache import make_cache_key
from crossid_core.store.memory_store import InMemoryStore


class TestConstruction:
    """Tests for engine construction and configuration validation."""

    def test_defaults(self, clock):
        engine = CrossValidationEngine(clock=clock)

        assert engine.config == ValidationConfig()
        assert engine.rate_limiter is not None

    def test_dict_config(self, clock):
        engine = CrossValidationEngine({"matching": {"fuzzy_threshold": 0.6}}, clock=clock)

        assert engine.config.matching.fuzzy_threshold == 0.6

    def test_invalid_dict_config(self):
        with pytest.raises(ConfigurationError):
            CrossValidationEngine({"matching": {"fuzzy_threshold": 2}})

    def test_mutated_config_is_revalidated(self):
        config = ValidationConfig()
        config.matching.fuzzy_threshold = 5.0

        with pytest.raises(ConfigurationError):
            CrossValidationEngine(config)

    def test_unsupported_config_type(self):
        with pytest.raises(ConfigurationError):
            CrossValidationEngine(config="fuzzy=0.8")

    def test_from_config(self, tmp_path, clock):
        path = tmp_path / "engine.yaml"
        path.write_text("rate_limit:\n  max_attempts: 2\n")

        engine = CrossValidationEngine.from_config(str(path), clock=clock)

        assert engine.config.rate_limit.max_attempts == 2

    def test_rate_limit_disabled(self, clock):
        engine = CrossValidationEngine({"rate_limit": {"enabled": False}}, clock=clock)

        assert engine.rate_limiter is None


class TestLifecycle:
    """Tests for init, shutdown, and context management."""

    def test_init_is_idempotent(self, clock):
        engine = CrossValidationEngine(clock=clock)

        engine.init()
        engine.init()

        assert engine.is_healthy()
        engine.shutdown()
        assert not engine.is_healthy()

    def test_shutdown_drops_state(self, engine, bob_primary, bob_secondary):
        record = engine.cross_validate(bob_primary, bob_secondary)

        engine.shutdown()

        assert len(engine.cache) == 0
        assert not engine.get_verification_status(record.verification_id).found

    def test_context_manager(self, clock, bob_primary):
        with CrossValidationEngine(clock=clock) as engine:
            assert engine.initialized
            engine.cross_validate(bob_primary)

        assert not engine.initialized
        assert engine.record_store.count() == 0

    def test_injected_stores(self, clock, bob_primary):
        cache_store = InMemoryStore(name="cache")
        record_store = InMemoryStore(name="records")
        engine = CrossValidationEngine(
            clock=clock,
            cache_store=cache_store,
            record_store=record_store,
        )

        record = engine.cross_validate(bob_primary)

        assert cache_store.count() == 1
        assert record.verification_id in record_store

    def test_injected_stores_are_used(self, clock):
        cache_store = InMemoryStore(name="cache")
        rate_store = InMemoryStore(name="windows")
        engine = CrossValidationEngine(
            clock=clock,
            cache_store=cache_store,
            rate_store=rate_store,
        )

        assert engine.cache.store is cache_store
        assert engine.rate_limiter.store is rate_store

    def test_engines_with_separate_stores_are_isolated(self, clock, bob_primary):
        tenant_a = CrossValidationEngine(clock=clock, cache_store=InMemoryStore())
        tenant_b = CrossValidationEngine(clock=clock, cache_store=InMemoryStore())

        tenant_a.cross_validate(bob_primary)

        assert len(tenant_a.cache) == 1
        assert len(tenant_b.cache) == 0

    def test_background_sweep(self, clock):
        config = ValidationConfig(
            cache=CacheConfig(background_sweep=True, sweep_interval_seconds=0.01)
        )
        engine = CrossValidationEngine(config, clock=clock)
        engine.init()

        try:
            assert engine.health_check()["background_sweep"] is True
        finally:
            engine.shutdown()

        assert engine._sweeper is None


class TestCrossValidate:
    """Tests for cross_validate."""

    def test_end_to_end_two_sources(self, engine, bob_primary, bob_secondary):
        """Matching email and phone in different formats pass with low risk."""
        record = engine.cross_validate(bob_primary, bob_secondary)

        pair = record.pairwise_scores[0]
        assert pair.pair == ("primary", "secondary")
        assert pair.field_scores["email"] == 1.0
        assert pair.field_scores["phone"] >= 0.9
        assert record.overall_consistency >= 80
        assert record.passed is True
        assert record.confidence == 70.0
        assert record.risk_score == 15.0
        assert record.issues == []
        assert record.sources == {"primary": True, "secondary": True, "tertiary": False}

    def test_primary_only(self, engine):
        record = engine.cross_validate(Identity(user_id="u1", email="bob@x.com"))

        assert record.passed is True
        assert record.sources == {"primary": True, "secondary": False, "tertiary": False}
        assert record.pairwise_scores == []
        assert record.overall_consistency == 0.0
        assert record.confidence == 10.0
        assert record.risk_score == 80.0

    def test_mismatched_emails(self, engine):
        record = engine.cross_validate(
            Identity(user_id="u1", email="a@x.com"),
            Identity(user_id="u2", email="zzzzzz@totally-different.com"),
        )

        assert record.overall_consistency < 50
        assert record.passed is False
        assert record.confidence == 20.0
        assert record.risk_score == 65.0
        assert ISSUE_INCONSISTENT in record.issues
        assert ISSUE_HIGH_RISK in record.issues

    def test_three_sources(self, engine):
        record = engine.cross_validate(
            Identity(user_id="u1", email="bob@x.com", phone="+15551234567", name="Bob Smith"),
            Identity(user_id="u1", email="bob@x.com", phone="(555) 123-4567", name="Bob Smith"),
            Identity(email="BOB@x.com", phone="555-123-4567", account_ref="00123456"),
        )

        assert len(record.pairwise_scores) == 3
        assert record.overall_consistency == 100.0
        assert record.passed is True
        assert record.confidence == 100.0
        assert record.risk_score == 0.0
        assert record.issues == []

    def test_failed_primary(self, engine, bob_secondary):
        record = engine.cross_validate(
            Identity(user_id="u1", email="bob@x.com", success=False),
            bob_secondary,
        )

        assert record.passed is False
        assert record.sources["primary"] is False
        assert record.issues[0] == ISSUE_PRIMARY_FAILED

    def test_failed_secondary_is_missing(self, engine, bob_primary):
        failed = Identity(email="other@y.com", success=False)

        record = engine.cross_validate(bob_primary, failed)

        assert record.sources["secondary"] is False
        assert record.pairwise_scores == []
        assert record.passed is True

    def test_source_set_and_dict_inputs(self, engine):
        record = engine.cross_validate(SourceSet.from_dict({
            "primary": {"userId": "u1", "email": "bob@x.com", "success": True},
            "secondary": {"email": "bob@x.com", "success": True},
        }))
        same = engine.cross_validate(
            {"userId": "u1", "email": "bob@x.com", "success": True},
            {"email": "bob@x.com", "success": True},
        )

        assert record.passed is True
        assert same is record

    def test_missing_primary(self, engine):
        record = engine.cross_validate(None)

        assert record.passed is False
        assert record.sources["primary"] is False
        assert record.issues[0] == "Missing primary source"
        assert ISSUE_PRIMARY_FAILED in record.issues
        assert record.confidence == 0
        assert engine.get_verification_status(record.verification_id).found

    @pytest.mark.parametrize("primary,secondary", [
        ("not-an-identity", None),
        (Identity(user_id="u1"), "bob@x.com"),
        ({"userId": "u1", "success": "maybe"}, None),
    ])
    def test_malformed_sources_give_failed_record(self, engine, primary, secondary):
        record = engine.cross_validate(primary, secondary)

        assert record.passed is False
        assert record.risk_score == 95
        assert record.pairwise_scores == []
        assert record.user_id_masked == "undefined"

    def test_malformed_sources_are_counted(self, engine):
        engine.cross_validate("not-an-identity")

        metrics = engine.get_metrics()

        assert metrics["total_validations"] == 1
        assert metrics["failed_validations"] == 1
        assert metrics["cached_verifications"] == 0

    def test_record_masks_user_id(self, engine, valid_user):
        record = engine.cross_validate(valid_user)

        assert record.user_id_masked == "al****01"
        assert "alice_01" not in str(record.to_dict())


class TestCaching:
    """Tests for verification caching and expiry."""

    def test_idempotent_within_ttl(self, engine, clock, bob_primary, bob_secondary):
        first = engine.cross_validate(bob_primary, bob_secondary)
        clock.advance(hours=23)

        second = engine.cross_validate(bob_primary, bob_secondary)

        assert second is first
        assert second.verification_id == first.verification_id

    def test_recompute_after_ttl(self, engine, clock, bob_primary, bob_secondary):
        first = engine.cross_validate(bob_primary, bob_secondary)
        clock.advance(seconds=86401)

        removed = engine.sweep()
        second = engine.cross_validate(bob_primary, bob_secondary)

        assert removed["cache"] == 1
        assert removed["records"] == 1
        assert second.verification_id != first.verification_id
        assert second.timestamp > first.timestamp

    def test_different_inputs_not_shared(self, engine, bob_primary, bob_secondary):
        first = engine.cross_validate(bob_primary, bob_secondary)
        second = engine.cross_validate(bob_primary)

        assert first.verification_id != second.verification_id

    def test_name_change_is_not_served_from_cache(self, engine):
        matching = Identity(email="bob@x.com", phone="(555) 123-4567", name="Robert Smith")
        primary = Identity(
            user_id="u1", email="bob@x.com", phone="+15551234567", name="Robert Smith",
        )
        first = engine.cross_validate(primary, matching)

        renamed = Identity(email="bob@x.com", phone="(555) 123-4567", name="Zed Quux")
        second = engine.cross_validate(primary, renamed)

        assert second.verification_id != first.verification_id
        assert first.overall_consistency == 100.0
        assert second.overall_consistency < 100.0

    def test_cache_hit_audit_runs_outside_key_lock(self, clock, bob_primary, bob_secondary):
        held = []

        class RecordingAudit(AuditLogger):
            def log_cross_validation(self, **kwargs):
                key = make_cache_key(SourceSet(primary=bob_primary, secondary=bob_secondary))
                held.append(engine._key_lock(key).locked())

        engine = CrossValidationEngine(
            clock=clock,
            audit_logger=RecordingAudit(enabled=False, clock=clock),
        )
        engine.cross_validate(bob_primary, bob_secondary)
        engine.cross_validate(bob_primary, bob_secondary)

        assert held == [False, False]

    def test_concurrent_identical_requests(self, engine, bob_primary, bob_secondary):
        """Concurrent requests for one input compute exactly once."""
        results = []
        results_lock = threading.Lock()

        def validate():
            record = engine.cross_validate(bob_primary, bob_secondary)
            with results_lock:
                results.append(record.verification_id)

        threads = [threading.Thread(target=validate) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(results)) == 1
        assert engine.get_metrics()["cross_validations"] == 1
        assert engine.get_metrics()["cache_hits"] == 15


class TestStatusLookup:
    """Tests for get_verification_status."""

    def test_found(self, engine, bob_primary, bob_secondary):
        record = engine.cross_validate(bob_primary, bob_secondary)

        status = engine.get_verification_status(record.verification_id)

        assert status.found is True
        assert status.record is record
        data = status.to_dict()
        assert data["verification"]["user_id"] == "****"
        assert "bob@x.com" not in str(data)

    def test_not_found(self, engine):
        status = engine.get_verification_status("ver_missing")

        assert status.found is False
        assert status.error == "Verification not found"
        assert status.to_dict() == {"found": False, "error": "Verification not found"}

    def test_expired_record(self, engine, clock, bob_primary):
        record = engine.cross_validate(bob_primary)
        clock.advance(seconds=86400)

        status = engine.get_verification_status(record.verification_id)

        assert status.found is False


class TestPreScreen:
    """Tests for pre_screen through the engine."""

    def test_valid(self, engine, valid_user):
        result = engine.pre_screen(valid_user)

        assert result.passed is True
        assert result.score == 100

    def test_sixth_attempt_rate_limited(self, engine, valid_user):
        results = [engine.pre_screen(valid_user) for _ in range(6)]

        assert results[5].passed is False
        assert ISSUE_RATE_LIMIT in results[5].issues

    def test_rate_limit_resets_after_window(self, engine, clock, valid_user):
        for _ in range(6):
            engine.pre_screen(valid_user)
        clock.advance(seconds=3601)

        assert engine.pre_screen(valid_user).passed is True

    def test_malformed_input(self, engine):
        result = engine.pre_screen(["not", "an", "identity"])

        assert result.passed is False
        assert result.score == 0


class TestConfigure:
    """Tests for runtime reconfiguration."""

    def test_configure_updates_thresholds(self, engine):
        config = engine.configure(fuzzyThreshold=0.9, rateLimitMax=10)

        assert config.matching.fuzzy_threshold == 0.9
        assert engine.config.rate_limit.max_attempts == 10
        assert engine.risk_scorer.matching.fuzzy_threshold == 0.9
        assert engine.rate_limiter.max_attempts == 10

    def test_configure_clears_cache(self, engine, bob_primary, bob_secondary):
        first = engine.cross_validate(bob_primary, bob_secondary)

        engine.configure(emailMatchThreshold=0.95)
        second = engine.cross_validate(bob_primary, bob_secondary)

        assert second.verification_id != first.verification_id

    def test_configure_changes_outcome(self, engine):
        a = Identity(user_id="u1", name="Bob Smith")
        b = Identity(name="Bob Smyth")

        assert engine.cross_validate(a, b).passed is True

        engine.configure(nameMatchThreshold=0.95)

        assert engine.cross_validate(a, b).passed is False

    def test_rate_windows_survive_configure(self, engine, valid_user):
        for _ in range(5):
            assert engine.pre_screen(valid_user).passed is True

        engine.configure(fuzzyThreshold=0.7)
        result = engine.pre_screen(valid_user)

        assert result.passed is False
        assert ISSUE_RATE_LIMIT in result.issues

    def test_concurrent_configure_and_validate(self, engine, bob_primary, bob_secondary):
        errors = []

        def validate():
            try:
                for _ in range(20):
                    record = engine.cross_validate(bob_primary, bob_secondary)
                    assert record.passed is True
            except Exception as e:
                errors.append(e)

        def reconfigure():
            try:
                for i in range(20):
                    engine.configure(fuzzyThreshold=0.7 + (i % 2) * 0.1)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=validate) for _ in range(4)]
        threads.append(threading.Thread(target=reconfigure))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert engine.cache.store is engine.cache_store
        assert engine.config.matching.fuzzy_threshold == pytest.approx(0.8)

    def test_invalid_override_keeps_config(self, engine):
        with pytest.raises(ConfigurationError):
            engine.configure(fuzzyThreshold=1.5)

        assert engine.config.matching.fuzzy_threshold == 0.8

    def test_unknown_override(self, engine):
        with pytest.raises(ConfigurationError):
            engine.configure(maxRetries=3)


class TestMetricsAndHealth:
    """Tests for get_metrics and health_check."""

    def test_initial_metrics(self, engine):
        metrics = engine.get_metrics()

        assert metrics["total_validations"] == 0
        assert metrics["success_rate"] == 0.0
        assert metrics["average_validation_time_ms"] == 0.0

    def test_metrics_after_validations(self, engine, bob_primary, bob_secondary):
        engine.cross_validate(bob_primary, bob_secondary)
        engine.cross_validate(bob_primary, bob_secondary)
        engine.cross_validate(
            Identity(user_id="u1", email="a@x.com"),
            Identity(user_id="u2", email="zzzzzz@totally-different.com"),
        )
        engine.pre_screen(bob_primary)

        metrics = engine.get_metrics()

        assert metrics["total_validations"] == 3
        assert metrics["cross_validations"] == 2
        assert metrics["cache_hits"] == 1
        assert metrics["cache_misses"] == 2
        assert metrics["successful_validations"] == 2
        assert metrics["failed_validations"] == 1
        assert metrics["success_rate"] == pytest.approx(200 / 3)
        assert metrics["pre_screens"] == 1
        assert metrics["cached_verifications"] == 2
        assert metrics["stored_verifications"] == 2
        assert metrics["rate_limited_users"] == 1
        assert metrics["fuzzy_matches"] > 0
        assert metrics["average_validation_time_ms"] >= 0.0

    def test_health_check(self, engine):
        health = engine.health_check()

        assert health["status"] == "healthy"
        assert health["initialized"] is True
        assert health["background_sweep"] is False
        assert health["config"]["fuzzyThreshold"] == 0.8

    def test_health_check_invalid_config(self, engine):
        engine.config.matching.fuzzy_threshold = 3.0

        health = engine.health_check()

        assert health["status"] == "unhealthy"

    def test_health_check_sweeps(self, engine, clock, bob_primary):
        engine.cross_validate(bob_primary)
        clock.advance(seconds=86400)

        engine.health_check()

        assert len(engine.cache) == 0


class TestLogging:
    """Log output never carries raw identifiers."""

    def test_no_raw_pii_in_logs(self, engine, caplog, valid_user):
        caplog.set_level(logging.DEBUG, logger="crossid_core")
        secondary = Identity(email=valid_user.email, phone=valid_user.phone)

        for _ in range(6):
            engine.pre_screen(valid_user)
        engine.cross_validate(valid_user, secondary)
        engine.cross_validate(valid_user, secondary)

        assert caplog.records
        assert "alice_01" not in caplog.text
        assert "alice@example.com" not in caplog.text
        assert "7946" not in caplog.text


class TestSweeper:
    """Tests for the background Sweeper."""

    def _wait_for(self, condition, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(0.01)
        return False

    def test_run_once(self):
        calls = []
        sweeper = Sweeper(lambda: calls.append(1) or 3)

        assert sweeper.run_once() == 3
        assert sweeper.runs == 1
        assert calls == [1]

    def test_runs_periodically(self):
        sweeper = Sweeper(lambda: 0, interval_seconds=0.01)
        sweeper.start()

        try:
            assert sweeper.running
            assert self._wait_for(lambda: sweeper.runs >= 2)
        finally:
            sweeper.stop()

        assert not sweeper.running

    def test_failures_do_not_stop_loop(self):
        def boom():
            raise RuntimeError("store unavailable")

        sweeper = Sweeper(boom, interval_seconds=0.01)
        sweeper.start()

        try:
            assert self._wait_for(lambda: sweeper.failures >= 2)
            assert sweeper.running
        finally:
            sweeper.stop()
