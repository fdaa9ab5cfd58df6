"""
Error Handler - Centralized error handling and failure bookkeeping

Provides categorized error history, retry logic with exponential backoff,
and cleanup of injected faults after unexpected failures.
"""
import random
import time
import logging
from typing import Optional, Callable, Any, Dict, List, Tuple
from enum import Enum
from dataclasses import dataclass

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    LOW = "low"  # Non-critical, can continue
    MEDIUM = "medium"  # Degraded operation
    HIGH = "high"  # Needs cleanup
    FATAL = "fatal"  # Unrecoverable, must abort


class ErrorCategory(Enum):
    """Categories of errors for targeted handling"""
    VALIDATION = "validation"
    FAULT_INJECTION = "fault_injection"
    FAULT_REMOVAL = "fault_removal"
    OBSERVATION = "observation"
    RECOVERY = "recovery"
    SCHEDULING = "scheduling"
    REGION = "region"
    PERSISTENCE = "persistence"
    REPORTING = "reporting"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Context information for an error"""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception: Optional[Exception] = None
    component: Optional[str] = None
    experiment_id: Optional[str] = None
    fault_id: Optional[str] = None
    region: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True


class ErrorHandler:
    """
    Centralized error handling for the chaos engine.

    Provides:
    - Retry logic with exponential backoff
    - Error categorization and severity assessment
    - Continue/stop decisions for different error types
    - Cleanup of injected faults after unexpected failures
    """

    def __init__(self):
        self.error_history: List[ErrorContext] = []
        self.recovery_strategies: Dict[ErrorCategory, Callable] = {}
        self._register_default_strategies()

    def _register_default_strategies(self):
        """Register default strategies for error categories"""
        self.recovery_strategies[ErrorCategory.FAULT_INJECTION] = self._recover_fault_injection
        self.recovery_strategies[ErrorCategory.FAULT_REMOVAL] = self._recover_fault_removal
        self.recovery_strategies[ErrorCategory.OBSERVATION] = self._recover_observation
        self.recovery_strategies[ErrorCategory.REGION] = self._recover_region

    def handle_error(self, error_context: ErrorContext) -> bool:
        """Log and record an error; returns True when execution can continue"""
        self._log_error(error_context)
        self.error_history.append(error_context)

        if error_context.severity == ErrorSeverity.FATAL:
            logger.error(f"Fatal error encountered: {error_context.message}")
            return False

        if error_context.category in self.recovery_strategies:
            try:
                recovery_func = self.recovery_strategies[error_context.category]
                return recovery_func(error_context)
            except Exception as e:
                logger.error(f"Recovery strategy failed: {e}")
                return False

        logger.debug(f"No recovery strategy for {error_context.category.value}")
        return error_context.severity == ErrorSeverity.LOW

    def retry_with_backoff(
        self,
        operation: Callable,
        config: RetryConfig,
        error_category: ErrorCategory,
        operation_name: str = "operation",
        **kwargs
    ) -> Tuple[bool, Any]:
        """Execute an operation with retry logic and exponential backoff"""
        last_exception = None
        delay = config.initial_delay

        for attempt in range(config.max_attempts):
            try:
                logger.debug(f"Executing {operation_name} (attempt {attempt + 1}/{config.max_attempts})")
                result = operation(**kwargs)
                if attempt > 0:
                    logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
                return True, result

            except Exception as e:
                last_exception = e
                logger.warning(f"{operation_name} failed on attempt {attempt + 1}: {e}")

                error_context = ErrorContext(
                    category=error_category,
                    severity=ErrorSeverity.MEDIUM if attempt < config.max_attempts - 1 else ErrorSeverity.HIGH,
                    message=f"{operation_name} failed: {e}",
                    exception=e,
                    metadata={'attempt': attempt + 1, 'max_attempts': config.max_attempts}
                )
                self.error_history.append(error_context)

                if attempt < config.max_attempts - 1:
                    backoff_delay = min(
                        delay * (config.exponential_base ** attempt),
                        config.max_delay
                    )
                    if config.jitter:
                        backoff_delay *= (0.5 + random.random())

                    logger.info(f"Retrying in {backoff_delay:.2f} seconds...")
                    time.sleep(backoff_delay)

        logger.error(f"{operation_name} failed after {config.max_attempts} attempts")

        error_context = ErrorContext(
            category=error_category,
            severity=ErrorSeverity.HIGH,
            message=f"{operation_name} failed after all retry attempts: {last_exception}",
            exception=last_exception,
            metadata={'attempts': config.max_attempts}
        )
        self.error_history.append(error_context)

        return False, last_exception

    def _recover_fault_injection(self, error_context: ErrorContext) -> bool:
        """A failed injection leaves the remaining faults unaffected"""
        logger.info(f"Continuing without fault {error_context.fault_id or 'unknown'}")
        return True

    def _recover_fault_removal(self, error_context: ErrorContext) -> bool:
        """A failed removal must be escalated to forced cleanup"""
        return False

    def _recover_observation(self, error_context: ErrorContext) -> bool:
        """Missing observations degrade the results but do not stop the run"""
        return error_context.severity in [ErrorSeverity.LOW, ErrorSeverity.MEDIUM]

    def _recover_region(self, error_context: ErrorContext) -> bool:
        """A regional failure is isolated from the other regions"""
        logger.warning(f"Region {error_context.region} failed, other regions continue")
        return True

    def cleanup_after_failure(self, injector_registry=None) -> bool:
        """Remove every fault still held by the registered injectors"""
        logger.info("Starting cleanup after failure")

        cleanup_success = True

        if injector_registry:
            for name, injector in injector_registry.items():
                try:
                    leftover = injector.cleanup_all()
                    if leftover:
                        cleanup_success = False
                except Exception as e:
                    self.handle_error(ErrorContext(
                        category=ErrorCategory.FAULT_REMOVAL,
                        severity=ErrorSeverity.HIGH,
                        message=f"Failed to clean up injector {name}: {e}",
                        exception=e,
                        component=name
                    ))
                    cleanup_success = False

        if cleanup_success:
            logger.info("Cleanup completed successfully")
        else:
            logger.warning("Cleanup completed with errors")

        return cleanup_success

    def _log_error(self, error_context: ErrorContext):
        """Log error with appropriate level based on severity"""
        log_message = f"[{error_context.category.value}] {error_context.message}"

        if error_context.component:
            log_message = f"[{error_context.component}] {log_message}"

        if error_context.experiment_id:
            log_message += f" (experiment: {error_context.experiment_id})"

        if error_context.fault_id:
            log_message += f" (fault: {error_context.fault_id})"

        if error_context.region:
            log_message += f" (region: {error_context.region})"

        if error_context.severity == ErrorSeverity.FATAL:
            logger.critical(log_message)
        elif error_context.severity == ErrorSeverity.HIGH:
            logger.error(log_message)
        elif error_context.severity == ErrorSeverity.MEDIUM:
            logger.warning(log_message)
        else:
            logger.info(log_message)

        if error_context.exception and error_context.severity == ErrorSeverity.FATAL:
            logger.exception(error_context.exception)

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors encountered"""
        errors_by_category = {}
        errors_by_severity = {}

        for error in self.error_history:
            category = error.category.value
            errors_by_category[category] = errors_by_category.get(category, 0) + 1

            severity = error.severity.value
            errors_by_severity[severity] = errors_by_severity.get(severity, 0) + 1

        return {
            'total_errors': len(self.error_history),
            'by_category': errors_by_category,
            'by_severity': errors_by_severity,
            'recent_errors': [
                {
                    'category': e.category.value,
                    'severity': e.severity.value,
                    'message': e.message
                }
                for e in self.error_history[-10:]
            ]
        }

    def clear_history(self):
        """Clear error history"""
        self.error_history.clear()
        logger.info("Error history cleared")
