"""
Tests for the experiment executor phase state machine
"""
import time
import threading
import pytest
from unittest.mock import Mock

from chaos_orchestrator.config import ChaosEngineeringConfig
from chaos_orchestrator.engine.executor import ExperimentExecutor
from chaos_orchestrator.engine.experiment_logger import ExperimentLogger
from chaos_orchestrator.engine.recovery_validator import RecoveryValidator
from chaos_orchestrator.engine.registry import ExperimentRegistry
from chaos_orchestrator.engine.scoring import GOOD_RESILIENCE
from chaos_orchestrator.exceptions import FaultBackendError, ValidationError
from chaos_orchestrator.injectors import NetworkFaultInjector, default_registry
from chaos_orchestrator.interfaces import IFaultBackend
from chaos_orchestrator.models import (
    PHASE_ORDER, ChaosPolicy, Experiment, ExperimentPhase, ExperimentStatus, ExperimentTarget,
    FaultDefinition, FaultStatus, FaultType, InjectionFailurePolicy, ObservationType,
    PolicyRule, PolicyRuleType, RecoveryConfig, Severity
)
from chaos_orchestrator.store import InMemoryExperimentStore


def make_config(**overrides) -> ChaosEngineeringConfig:
    values = dict(monitoring_interval=0.05, recovery_poll_interval=0.05, seed=1)
    values.update(overrides)
    return ChaosEngineeringConfig(**values)


def make_experiment(*faults, experiment_id="exp-1", duration=0.2) -> Experiment:
    return Experiment(
        id=experiment_id,
        name="Checkout resilience",
        target=ExperimentTarget(type="service", name="checkout"),
        faults=list(faults) or [FaultDefinition(id="lat", type=FaultType.LATENCY)],
        duration=duration,
        hypothesis="checkout keeps serving"
    )


def make_executor(config=None, injectors=None, **kwargs) -> ExperimentExecutor:
    config = config or make_config()
    return ExperimentExecutor(
        config,
        injectors or default_registry(),
        RecoveryValidator(config.recovery_thresholds, poll_interval=config.recovery_poll_interval),
        ExperimentRegistry(),
        **kwargs
    )


def run_in_thread(executor, experiment, **kwargs):
    outcome = {}

    def target():
        outcome['results'] = executor.execute(experiment, **kwargs)

    thread = threading.Thread(target=target)
    thread.start()
    return thread, outcome


class TestSuccessfulRun:
    """Test a run where everything goes to plan"""

    def test_all_phases_in_order(self):
        executor = make_executor()
        results = executor.execute(make_experiment())

        assert results.status == ExperimentStatus.COMPLETED
        assert results.phases == PHASE_ORDER
        assert results.resilience_score == 100.0
        assert results.hypothesis_valid
        assert results.recovery.attempted and results.recovery.successful
        assert results.recommendations == [GOOD_RESILIENCE]
        assert results.summary == (
            "Experiment 'Checkout resilience' completed. Hypothesis validated. "
            "System recovery completed successfully"
        )
        assert results.end_time >= results.start_time
        assert results.blast_radius.scope == "network"

    def test_registry_and_injectors_left_clean(self):
        executor = make_executor()
        results = executor.execute(make_experiment())

        experiment = executor.registry.get("exp-1")
        assert experiment.status == ExperimentStatus.COMPLETED
        assert experiment.results is results
        assert experiment.current_phase is None
        assert all(injector.active_fault_ids() == [] for _, injector in executor.injectors.items())
        assert not executor.is_running("exp-1")

    def test_fault_ids_scoped_to_experiment(self):
        """Test faults are injected under experiment-scoped ids"""
        executor = make_executor()
        network = executor.injectors.resolve(FaultDefinition(id="x", type=FaultType.LATENCY))
        seen = []
        executor.register_monitor("ids", lambda experiment: seen.append(network.active_fault_ids()) or {})

        executor.execute(make_experiment())

        assert ["exp-1/lat"] in seen

    def test_phase_listener_called(self):
        executor = make_executor()
        phases = []
        executor.execute(make_experiment(), phase_listener=lambda experiment, phase: phases.append(phase))
        assert phases == PHASE_ORDER

    def test_monitor_samples_feed_metrics(self):
        executor = make_executor()
        executor.register_monitor("traffic", lambda experiment: {'error_rate': 0.01, 'latency_ms': 120})

        results = executor.execute(make_experiment())

        metrics = [o for o in results.observations if o.type == ObservationType.METRIC]
        assert metrics
        assert results.metrics['avg_error_rate'] == pytest.approx(0.01)
        assert results.metrics['faults_injected'] == 1
        assert results.status == ExperimentStatus.COMPLETED

    def test_failing_monitor_recorded_as_log(self):
        executor = make_executor()
        executor.register_monitor("broken", Mock(side_effect=RuntimeError("scrape failed")))

        results = executor.execute(make_experiment())

        logs = [o for o in results.observations if o.type == ObservationType.LOG]
        assert logs and "scrape failed" in logs[0].message
        assert results.status == ExperimentStatus.COMPLETED

    def test_fault_removed_when_its_duration_elapses(self):
        fault = FaultDefinition(id="short", type=FaultType.ERROR, duration=0.05)
        results = make_executor().execute(make_experiment(fault, duration=0.3))

        messages = [o.message for o in results.observations]
        assert "Removed fault short (duration elapsed)" in messages

    def test_zero_probability_fault_never_injected(self):
        faults = [
            FaultDefinition(id="lat", type=FaultType.LATENCY),
            FaultDefinition(id="never", type=FaultType.ERROR, probability=0.0),
        ]
        results = make_executor().execute(make_experiment(*faults))

        assert results.metrics['faults_attempted'] == 1
        assert any("skipped by probability" in o.message for o in results.observations)

    def test_results_persisted(self):
        store = InMemoryExperimentStore()
        executor = make_executor(store=store)
        executor.execute(make_experiment())

        assert store.load_results("exp-1").status == ExperimentStatus.COMPLETED
        assert store.load_experiment("exp-1").status == ExperimentStatus.COMPLETED

    def test_experiment_log_written(self, tmp_path):
        experiment_logger = ExperimentLogger(str(tmp_path))
        make_executor(experiment_logger=experiment_logger).execute(make_experiment())

        log = experiment_logger.get_experiment_log("exp-1")
        assert log['status'] == "completed"
        assert [p['phase'] for p in log['phases']] == [p.value for p in PHASE_ORDER]
        assert (tmp_path / "exp-1.json").exists()


class TestValidation:
    """Test nothing runs when validation fails"""

    def test_zero_faults_rejected(self):
        executor = make_executor()
        experiment = make_experiment()
        experiment.faults = []
        release = Mock()

        with pytest.raises(ValidationError, match="at least one fault"):
            executor.execute(experiment, release_slot=release)

        release.assert_called_once()
        assert "exp-1" not in executor.registry
        assert experiment.status == ExperimentStatus.PENDING

    def test_forbidden_target_rejected(self):
        executor = make_executor(make_config(forbidden_targets=["checkout"]))
        with pytest.raises(ValidationError, match="forbidden"):
            executor.execute(make_experiment())

    def test_policy_violations_listed(self):
        policy = ChaosPolicy(id="prod", name="Production", rules=[
            PolicyRule(id="duration", type=PolicyRuleType.TIME_WINDOW, parameters={'max_duration': 0.1}),
            PolicyRule(id="approval", type=PolicyRuleType.APPROVAL),
        ])
        experiment = make_experiment(FaultDefinition(id="err", type=FaultType.ERROR, severity=Severity.CRITICAL))

        with pytest.raises(ValidationError) as exc_info:
            make_executor().execute(experiment, policy=policy)

        assert exc_info.value.violations == [
            "Experiment duration exceeds policy limits",
            "Critical severity experiments require approval",
        ]


class TestInjectionFailures:
    """Test injection failures are recorded without stopping the run"""

    def test_all_injections_fail(self):
        fault = FaultDefinition(id="db", type=FaultType.DATABASE_FAILURE)
        results = make_executor().execute(make_experiment(fault))

        assert results.status == ExperimentStatus.FAILED
        assert results.phases == [ExperimentPhase.PREPARATION, ExperimentPhase.INJECTION, ExperimentPhase.CLEANUP]
        assert len(results.failures) == 1
        assert results.failures[0].type == "injection"
        assert results.failures[0].fault_id == "db"
        assert results.recovery is None
        assert results.resilience_score == 90.0

    def test_partial_failure_continues(self):
        faults = [
            FaultDefinition(id="db", type=FaultType.DATABASE_FAILURE),
            FaultDefinition(id="lat", type=FaultType.LATENCY),
        ]
        results = make_executor().execute(make_experiment(*faults))

        assert results.status == ExperimentStatus.COMPLETED
        assert results.phases == PHASE_ORDER
        assert len(results.failures) == 1
        assert results.resilience_score == 90.0
        assert results.metrics['faults_injected'] == 1

    def test_failure_severity_follows_fault(self):
        fault = FaultDefinition(id="db", type=FaultType.DATABASE_FAILURE, severity=Severity.CRITICAL)
        results = make_executor().execute(make_experiment(fault))

        assert results.failures[0].severity == Severity.CRITICAL
        assert not results.hypothesis_valid

    def test_abort_policy_stops_injecting(self):
        faults = [
            FaultDefinition(id="lat", type=FaultType.LATENCY),
            FaultDefinition(id="db", type=FaultType.DATABASE_FAILURE),
            FaultDefinition(id="err", type=FaultType.ERROR),
        ]
        executor = make_executor(make_config(injection_failure_policy=InjectionFailurePolicy.ABORT))
        results = executor.execute(make_experiment(*faults))

        assert results.status == ExperimentStatus.FAILED
        assert results.metrics['faults_attempted'] == 2
        assert ExperimentPhase.OBSERVATION not in results.phases
        assert ExperimentPhase.RECOVERY in results.phases
        assert all(injector.active_fault_ids() == [] for _, injector in executor.injectors.items())


class TestCancellation:
    """Test aborting a running experiment"""

    def test_cancel_before_start(self):
        cancel_event = threading.Event()
        cancel_event.set()
        results = make_executor().execute(make_experiment(), cancel_event=cancel_event)

        assert results.status == ExperimentStatus.ABORTED
        assert results.phases == [ExperimentPhase.CLEANUP]

    def test_cancel_during_observation(self):
        """Test cancellation interrupts observation and rolls faults back"""
        executor = make_executor(make_config(monitoring_interval=1.0))
        observing = threading.Event()

        def listener(experiment, phase):
            if phase == ExperimentPhase.OBSERVATION:
                observing.set()

        start = time.time()
        thread, outcome = run_in_thread(executor, make_experiment(duration=10.0), phase_listener=listener)
        assert observing.wait(5.0)
        time.sleep(0.1)
        assert executor.active_faults("exp-1") == ["lat"]
        assert executor.cancel("exp-1")
        thread.join(5.0)

        results = outcome['results']
        assert time.time() - start < 5.0
        assert results.status == ExperimentStatus.ABORTED
        assert results.recovery.method == "abort_rollback"
        assert results.recovery.successful
        assert ExperimentPhase.VALIDATION not in results.phases
        assert results.phases[-1] == ExperimentPhase.CLEANUP
        assert all(injector.active_fault_ids() == [] for _, injector in executor.injectors.items())

    def test_cancel_unknown_experiment(self):
        assert not make_executor().cancel("missing")


class TestRecovery:
    """Test the recovery phase"""

    def test_recovery_timeout_lowers_score(self):
        executor = make_executor()
        executor.recovery_validator.register_health_check("checkout", Mock(side_effect=ConnectionError("down")))
        fault = FaultDefinition(id="lat", type=FaultType.LATENCY, recovery=RecoveryConfig(timeout=0.2, retry_delay=0.01))

        results = executor.execute(make_experiment(fault))

        assert results.status == ExperimentStatus.COMPLETED
        assert results.recovery.attempted
        assert not results.recovery.successful
        assert 0.2 <= results.recovery.duration < 1.0
        assert results.resilience_score == 85.0
        assert "did not complete" in results.summary

    def test_recovery_waits_for_health(self):
        executor = make_executor()
        calls = {'count': 0}

        def flaky():
            calls['count'] += 1
            if calls['count'] < 3:
                raise ConnectionError("warming up")

        executor.recovery_validator.register_health_check("checkout", flaky)
        results = executor.execute(make_experiment())

        assert results.recovery.successful
        assert results.recovery.duration >= 0.1

    def test_post_recovery_metrics_checked(self):
        executor = make_executor()
        executor.register_monitor("traffic", lambda experiment: {'error_rate': 0.5})

        results = executor.execute(make_experiment())

        assert not results.recovery.successful
        assert any("error rate too high" in e for e in results.recovery.errors)

    def test_cleanup_removal_failure_recorded(self):
        """Test a fault that cannot be removed is reported as a removal failure"""
        injector = Mock()
        injector.remove.side_effect = FaultBackendError("backend unreachable")
        injector.status.return_value = FaultStatus(fault_id="exp-1/lat", active=True)
        injectors = default_registry()
        injectors.register(FaultType.LATENCY, injector)
        fault = FaultDefinition(id="lat", type=FaultType.LATENCY, recovery=RecoveryConfig(automatic=False, retry_delay=0.01))

        results = make_executor(injectors=injectors).execute(make_experiment(fault))

        removal = [f for f in results.failures if f.type == "removal"]
        assert len(removal) == 1
        assert removal[0].severity == Severity.HIGH
        assert removal[0].fault_id == "lat"
        assert not results.recovery.successful
        assert results.resilience_score == 75.0


class TestFaultExpiry:
    """Test removal of faults whose duration has elapsed"""

    def test_failed_expiry_not_retried_during_observation(self):
        """Test a fault that cannot be removed at its deadline is left for recovery and cleanup"""
        backend = Mock(spec=IFaultBackend)
        backend.revert.side_effect = RuntimeError("tc qdisc busy")
        backend.probe.return_value = {}
        injectors = default_registry()
        injectors.register(FaultType.LATENCY, NetworkFaultInjector(backend=backend))
        fault = FaultDefinition(
            id="lat",
            type=FaultType.LATENCY,
            duration=0.05,
            recovery=RecoveryConfig(retry_attempts=1, retry_delay=0)
        )

        executor = make_executor(config=make_config(monitoring_interval=0.5), injectors=injectors)
        start = time.time()
        results = executor.execute(make_experiment(fault, duration=1.0))

        # Once at expiry, once in recovery, once in cleanup
        assert backend.revert.call_count == 3
        assert time.time() - start >= 0.9
        assert len(results.observations) < 30
        assert not results.recovery.successful

    def test_expired_fault_removed_once(self):
        backend = Mock(spec=IFaultBackend)
        backend.probe.return_value = {}
        injectors = default_registry()
        injectors.register(FaultType.LATENCY, NetworkFaultInjector(backend=backend))
        fault = FaultDefinition(id="lat", type=FaultType.LATENCY, duration=0.05)

        results = make_executor(injectors=injectors).execute(make_experiment(fault, duration=0.3))

        assert backend.revert.call_count == 1
        assert results.status == ExperimentStatus.COMPLETED
        assert any("duration elapsed" in o.message for o in results.observations)


class TestPostRecoverySamples:
    """Test monitor samples taken after recovery"""

    def test_recorded_as_health(self):
        executor = make_executor()
        executor.register_monitor("traffic", lambda experiment: {'error_rate': 0.01})

        results = executor.execute(make_experiment())

        health = [o for o in results.observations if o.type == ObservationType.HEALTH]
        metrics = [o for o in results.observations if o.type == ObservationType.METRIC]
        assert [o.message for o in health] == ["post-recovery"]
        assert all(o.message == "observation" for o in metrics)
