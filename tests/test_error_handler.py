"""
Tests for error handling and recovery mechanisms
"""
import pytest
import time
from unittest.mock import Mock

from chaos_orchestrator.engine.error_handler import (
    ErrorHandler, ErrorContext, ErrorCategory, ErrorSeverity, RetryConfig
)
from chaos_orchestrator.injectors import InjectorRegistry, NetworkFaultInjector
from chaos_orchestrator.models import ExperimentTarget, FaultCategory, FaultDefinition, FaultType


class TestErrorContext:
    """Test ErrorContext dataclass"""

    def test_create_error_context(self):
        """Test creating error context"""
        context = ErrorContext(
            category=ErrorCategory.FAULT_INJECTION,
            severity=ErrorSeverity.HIGH,
            message="Test error",
            experiment_id="exp-1",
            fault_id="f1"
        )

        assert context.category == ErrorCategory.FAULT_INJECTION
        assert context.severity == ErrorSeverity.HIGH
        assert context.message == "Test error"
        assert context.experiment_id == "exp-1"
        assert context.fault_id == "f1"


class TestRetryConfig:
    """Test RetryConfig dataclass"""

    def test_default_retry_config(self):
        """Test default retry configuration"""
        config = RetryConfig()

        assert config.max_attempts == 3
        assert config.initial_delay == 1.0
        assert config.exponential_base == 2.0
        assert config.jitter is True


class TestErrorHandler:
    """Test ErrorHandler class"""

    def test_initialization(self):
        """Test error handler initialization"""
        handler = ErrorHandler()

        assert len(handler.error_history) == 0
        assert len(handler.recovery_strategies) > 0

    def test_handle_error_fatal_severity(self):
        """Test handling fatal error"""
        handler = ErrorHandler()

        context = ErrorContext(
            category=ErrorCategory.FAULT_INJECTION,
            severity=ErrorSeverity.FATAL,
            message="Injector backend unreachable"
        )

        assert handler.handle_error(context) is False
        assert len(handler.error_history) == 1

    def test_fault_injection_continues(self):
        """Test a failed injection does not stop the experiment"""
        handler = ErrorHandler()
        context = ErrorContext(
            category=ErrorCategory.FAULT_INJECTION,
            severity=ErrorSeverity.HIGH,
            message="Injection failed",
            fault_id="f1"
        )
        assert handler.handle_error(context) is True

    def test_fault_removal_escalates(self):
        handler = ErrorHandler()
        context = ErrorContext(
            category=ErrorCategory.FAULT_REMOVAL,
            severity=ErrorSeverity.MEDIUM,
            message="Removal failed"
        )
        assert handler.handle_error(context) is False

    def test_observation_depends_on_severity(self):
        """Test observation errors only continue at low or medium severity"""
        handler = ErrorHandler()
        context = ErrorContext(
            category=ErrorCategory.OBSERVATION,
            severity=ErrorSeverity.MEDIUM,
            message="Monitor failed"
        )
        assert handler.handle_error(context) is True

        context.severity = ErrorSeverity.HIGH
        assert handler.handle_error(context) is False

    def test_region_failure_isolated(self):
        handler = ErrorHandler()
        context = ErrorContext(
            category=ErrorCategory.REGION,
            severity=ErrorSeverity.HIGH,
            message="Region down",
            region="eu-west"
        )
        assert handler.handle_error(context) is True

    def test_uncategorized_continues_only_when_low(self):
        handler = ErrorHandler()
        context = ErrorContext(category=ErrorCategory.PERSISTENCE, severity=ErrorSeverity.LOW, message="Slow store")
        assert handler.handle_error(context) is True

        context.severity = ErrorSeverity.MEDIUM
        assert handler.handle_error(context) is False

    def test_retry_with_backoff_success_first_attempt(self):
        """Test retry succeeds on first attempt"""
        handler = ErrorHandler()

        mock_operation = Mock(return_value="success")
        config = RetryConfig(max_attempts=3)

        success, result = handler.retry_with_backoff(
            operation=mock_operation,
            config=config,
            error_category=ErrorCategory.FAULT_REMOVAL,
            operation_name="test operation"
        )

        assert success is True
        assert result == "success"
        assert mock_operation.call_count == 1
        assert len(handler.error_history) == 0

    def test_retry_passes_keyword_arguments(self):
        handler = ErrorHandler()
        mock_operation = Mock(return_value=None)

        handler.retry_with_backoff(
            mock_operation,
            RetryConfig(max_attempts=1),
            ErrorCategory.FAULT_REMOVAL,
            fault="f1",
            target="api"
        )

        mock_operation.assert_called_once_with(fault="f1", target="api")

    def test_retry_with_backoff_success_after_retries(self):
        """Test retry succeeds after some failures"""
        handler = ErrorHandler()

        # Fail twice, then succeed
        mock_operation = Mock(side_effect=[
            Exception("Fail 1"),
            Exception("Fail 2"),
            "success"
        ])

        config = RetryConfig(max_attempts=3, initial_delay=0.01, jitter=False)

        success, result = handler.retry_with_backoff(
            operation=mock_operation,
            config=config,
            error_category=ErrorCategory.FAULT_REMOVAL,
            operation_name="test operation"
        )

        assert success is True
        assert result == "success"
        assert mock_operation.call_count == 3
        assert len(handler.error_history) == 2

    def test_retry_with_backoff_all_failures(self):
        """Test retry fails after all attempts and hands back the last error"""
        handler = ErrorHandler()

        mock_operation = Mock(side_effect=Exception("Always fails"))
        config = RetryConfig(max_attempts=3, initial_delay=0.01, jitter=False)

        success, result = handler.retry_with_backoff(
            operation=mock_operation,
            config=config,
            error_category=ErrorCategory.FAULT_REMOVAL,
            operation_name="test operation"
        )

        assert success is False
        assert isinstance(result, Exception)
        assert str(result) == "Always fails"
        assert mock_operation.call_count == 3
        assert len(handler.error_history) == 4  # 3 attempts + 1 final error

    def test_retry_exponential_backoff_timing(self):
        """Test exponential backoff timing"""
        handler = ErrorHandler()

        call_times = []

        def failing_operation():
            call_times.append(time.time())
            raise Exception("Fail")

        config = RetryConfig(
            max_attempts=3,
            initial_delay=0.1,
            exponential_base=2.0,
            jitter=False
        )

        start_time = time.time()
        handler.retry_with_backoff(
            operation=failing_operation,
            config=config,
            error_category=ErrorCategory.FAULT_REMOVAL,
            operation_name="test operation"
        )

        # First retry after ~0.1s, second after ~0.2s more
        assert len(call_times) == 3
        total_time = time.time() - start_time
        assert total_time >= 0.3

    def test_cleanup_after_failure(self):
        """Test cleanup removes every fault held by the injectors"""
        handler = ErrorHandler()
        injector = NetworkFaultInjector()
        registry = InjectorRegistry()
        registry.register(FaultCategory.NETWORK, injector)
        target = ExperimentTarget(type="service", name="api")
        injector.inject(FaultDefinition(id="f1", type=FaultType.LATENCY), target)

        assert handler.cleanup_after_failure(registry) is True
        assert injector.active_fault_ids() == []

    def test_cleanup_after_failure_with_errors(self):
        """Test cleanup continues despite errors"""
        handler = ErrorHandler()

        broken = Mock()
        broken.cleanup_all.side_effect = Exception("backend gone")
        leftover = Mock()
        leftover.cleanup_all.return_value = ["f2"]
        healthy = Mock()
        healthy.cleanup_all.return_value = []

        registry = Mock()
        registry.items.return_value = [("network", broken), ("service", leftover), ("resource", healthy)]

        assert handler.cleanup_after_failure(registry) is False
        healthy.cleanup_all.assert_called_once()
        assert handler.error_history[-1].category == ErrorCategory.FAULT_REMOVAL
        assert handler.error_history[-1].component == "network"

    def test_cleanup_without_registry(self):
        assert ErrorHandler().cleanup_after_failure() is True

    def test_get_error_summary(self):
        """Test getting error summary"""
        handler = ErrorHandler()

        handler.error_history.extend([
            ErrorContext(category=ErrorCategory.FAULT_INJECTION, severity=ErrorSeverity.HIGH, message="Error 1"),
            ErrorContext(category=ErrorCategory.FAULT_INJECTION, severity=ErrorSeverity.MEDIUM, message="Error 2"),
            ErrorContext(category=ErrorCategory.OBSERVATION, severity=ErrorSeverity.LOW, message="Error 3")
        ])

        summary = handler.get_error_summary()

        assert summary['total_errors'] == 3
        assert summary['by_category']['fault_injection'] == 2
        assert summary['by_category']['observation'] == 1
        assert summary['by_severity']['high'] == 1
        assert summary['by_severity']['medium'] == 1
        assert summary['by_severity']['low'] == 1
        assert len(summary['recent_errors']) == 3

    def test_clear_history(self):
        """Test clearing error history"""
        handler = ErrorHandler()
        handler.error_history.append(
            ErrorContext(category=ErrorCategory.RECOVERY, severity=ErrorSeverity.HIGH, message="Error")
        )

        handler.clear_history()

        assert len(handler.error_history) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
