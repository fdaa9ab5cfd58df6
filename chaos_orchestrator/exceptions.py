"""
Exception types raised across the chaos engine
"""
from typing import List, Optional


class ChaosError(Exception):
    """Base class for engine errors"""


class ValidationError(ChaosError):
    """Structural or policy violation; the experiment never runs"""

    def __init__(self, message: str, violations: Optional[List[str]] = None):
        super().__init__(message)
        self.violations = violations or [message]


class InjectionError(ChaosError):
    """A fault injector failed to apply or remove a fault"""

    def __init__(self, message: str, fault_id: Optional[str] = None):
        super().__init__(message)
        self.fault_id = fault_id


class FaultBackendError(InjectionError):
    """The infrastructure backend behind an injector could not be reached"""


class RecoveryTimeoutError(ChaosError):
    """Health checks did not pass within the maximum recovery time"""

    def __init__(self, message: str, elapsed: float = 0.0, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.elapsed = elapsed
        self.errors = errors or []


class RecoveryValidationError(ChaosError):
    """Recovered system metrics are outside the configured thresholds"""


class SchedulerRejection(ChaosError):
    """The scheduler refused to admit an experiment"""

    def __init__(self, message: str, experiment_id: Optional[str] = None):
        super().__init__(message)
        self.experiment_id = experiment_id


class AbortError(ChaosError):
    """The experiment was cancelled from outside"""


class InvalidTransitionError(ChaosError):
    """An experiment status change would move backwards"""


class ExperimentNotFoundError(ChaosError):
    """No experiment is registered under the given id"""
