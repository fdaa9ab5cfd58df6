"""
Recovery Validator - Confirms the system returns to health after faults are removed
"""
import time
import logging
import threading
from typing import Dict, Iterable, List, Optional
from ..exceptions import AbortError, RecoveryTimeoutError, RecoveryValidationError
from ..interfaces import HealthCheck
from ..models import ChaosMetrics, RecoveryThresholds

logger = logging.getLogger(__name__)


class RecoveryValidator:
    """Polls registered health checks until they all pass or time runs out"""

    def __init__(self, thresholds: Optional[RecoveryThresholds] = None, poll_interval: float = 1.0):
        self.thresholds = thresholds or RecoveryThresholds()
        self.poll_interval = poll_interval
        self._health_checks: Dict[str, HealthCheck] = {}
        self._lock = threading.Lock()

    def register_health_check(self, name: str, check: HealthCheck) -> None:
        with self._lock:
            self._health_checks[name] = check
        logger.debug(f"Registered health check {name}")

    def unregister_health_check(self, name: str) -> bool:
        with self._lock:
            return self._health_checks.pop(name, None) is not None

    def health_check_names(self) -> List[str]:
        with self._lock:
            return list(self._health_checks.keys())

    def run_health_checks(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Run the selected health checks once and return their error messages"""
        with self._lock:
            if names is None:
                checks = list(self._health_checks.items())
            else:
                checks = []
                for name in names:
                    check = self._health_checks.get(name)
                    if check is None:
                        logger.warning(f"Health check {name} is not registered, skipping")
                        continue
                    checks.append((name, check))

        errors = []
        for name, check in checks:
            try:
                check()
            except Exception as e:
                errors.append(f"{name}: {e}")
        return errors

    def validate_recovery(
        self,
        names: Optional[Iterable[str]] = None,
        cancel_event: Optional[threading.Event] = None,
        metrics: Optional[ChaosMetrics] = None,
        max_recovery_time: Optional[float] = None
    ) -> float:
        """Block until the health checks pass and return how long that took.

        Raises RecoveryTimeoutError once the maximum recovery time has elapsed,
        AbortError when the cancel event fires, and RecoveryValidationError when
        the supplied metrics are outside thresholds.
        """
        names = list(names) if names is not None else None
        limit = max_recovery_time if max_recovery_time is not None else self.thresholds.max_recovery_time
        waiter = cancel_event or threading.Event()

        start = time.monotonic()
        deadline = start + limit
        attempts = 0

        while True:
            attempts += 1
            errors = self.run_health_checks(names)
            if not errors:
                break

            remaining = deadline - time.monotonic()
            if remaining > 0:
                logger.debug(f"Recovery attempt {attempts} failed: {'; '.join(errors)}")
                if waiter.wait(min(self.poll_interval, remaining)):
                    raise AbortError("recovery validation cancelled")

            if time.monotonic() >= deadline:
                elapsed = time.monotonic() - start
                raise RecoveryTimeoutError(
                    f"recovery validation timed out after {elapsed:.2f}s "
                    f"(max {limit:.2f}s): {'; '.join(errors)}",
                    elapsed=elapsed,
                    errors=errors
                )

        elapsed = time.monotonic() - start
        logger.info(f"Health checks passed after {elapsed:.2f}s ({attempts} attempt(s))")

        if metrics is not None:
            self.validate_metrics(metrics)

        return elapsed

    def validate_metrics(self, metrics: ChaosMetrics) -> None:
        """Fail when error or success rate is outside thresholds"""
        if metrics.error_rate > self.thresholds.max_error_rate:
            raise RecoveryValidationError(
                f"error rate too high: {metrics.error_rate * 100:.2f}% > "
                f"{self.thresholds.max_error_rate * 100:.2f}%"
            )

        success_rate = metrics.success_rate
        if success_rate < self.thresholds.min_success_rate:
            raise RecoveryValidationError(
                f"success rate too low: {success_rate * 100:.2f}% < "
                f"{self.thresholds.min_success_rate * 100:.2f}%"
            )
