"""
Tests for recovery validation
"""
import time
import threading
import pytest
from chaos_orchestrator.engine.recovery_validator import RecoveryValidator
from chaos_orchestrator.exceptions import AbortError, RecoveryTimeoutError, RecoveryValidationError
from chaos_orchestrator.models import ChaosMetrics, RecoveryThresholds


class FlakyCheck:
    """Health check failing a fixed number of times before passing"""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("service not ready")


def failing_check():
    raise ConnectionError("service down")


@pytest.fixture
def validator():
    return RecoveryValidator(RecoveryThresholds(max_recovery_time=1.0), poll_interval=0.05)


class TestValidateRecovery:
    """Test polling health checks until recovery"""

    def test_healthy_immediately(self, validator):
        validator.register_health_check("api", lambda: None)
        elapsed = validator.validate_recovery()
        assert elapsed < 0.5

    def test_no_health_checks_passes(self, validator):
        assert validator.validate_recovery() < 0.5

    def test_recovers_after_retries(self, validator):
        check = FlakyCheck(failures=2)
        validator.register_health_check("api", check)

        elapsed = validator.validate_recovery()
        assert check.calls == 3
        assert elapsed >= 0.05
        assert elapsed < 1.0

    def test_times_out(self, validator):
        """Test the timeout fires close to the maximum recovery time"""
        validator.register_health_check("api", failing_check)

        start = time.time()
        with pytest.raises(RecoveryTimeoutError, match="service down") as exc_info:
            validator.validate_recovery(max_recovery_time=0.3)
        elapsed = time.time() - start

        assert exc_info.value.elapsed >= 0.3
        assert elapsed < 1.0
        assert exc_info.value.errors == ["api: service down"]

    def test_only_selected_checks_run(self, validator):
        validator.register_health_check("api", lambda: None)
        validator.register_health_check("db", failing_check)

        assert validator.validate_recovery(names=["api"]) < 0.5
        assert validator.run_health_checks(["db", "missing"]) == ["db: service down"]

    def test_cancel_aborts(self, validator):
        validator.register_health_check("api", failing_check)
        cancel_event = threading.Event()
        cancel_event.set()

        with pytest.raises(AbortError):
            validator.validate_recovery(cancel_event=cancel_event)

    def test_metrics_checked_after_health(self, validator):
        validator.register_health_check("api", lambda: None)
        with pytest.raises(RecoveryValidationError, match="error rate too high"):
            validator.validate_recovery(metrics=ChaosMetrics(error_rate=0.2))

    def test_unregister(self, validator):
        validator.register_health_check("api", failing_check)
        assert validator.unregister_health_check("api")
        assert not validator.unregister_health_check("api")
        assert validator.health_check_names() == []


class TestValidateMetrics:
    """Test recovered metric thresholds"""

    def test_within_thresholds(self, validator):
        validator.validate_metrics(ChaosMetrics(total_operations=100, successful_ops=99, error_rate=0.01))

    def test_error_rate_too_high(self, validator):
        with pytest.raises(RecoveryValidationError, match="error rate too high"):
            validator.validate_metrics(ChaosMetrics(error_rate=0.06))

    def test_success_rate_too_low(self, validator):
        with pytest.raises(RecoveryValidationError, match="success rate too low"):
            validator.validate_metrics(ChaosMetrics(total_operations=100, successful_ops=90, error_rate=0.01))
