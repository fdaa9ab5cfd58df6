"""
Experiment Executor - Drives one experiment through its phases

Preparation -> Injection -> Observation -> Recovery -> Validation -> Cleanup.
Cancellation is honored at every phase boundary, between injections and while
waiting during observation. Whatever happens, cleanup force-removes every fault
the run injected and the caller gets a complete results record.
"""
import random
import time
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional
from ..config import ChaosEngineeringConfig
from ..exceptions import (
    AbortError, RecoveryTimeoutError, RecoveryValidationError, ValidationError
)
from ..injectors.registry import InjectorRegistry
from ..interfaces import IExperimentStore, IFaultInjector, Monitor
from ..models import (
    ChaosMetrics, ChaosPolicy, Experiment, ExperimentFailure, ExperimentPhase,
    ExperimentResults, ExperimentStatus, FaultDefinition, InjectionFailurePolicy,
    Observation, ObservationType, RecoveryConfig, RecoveryResult, Severity
)
from .error_handler import ErrorCategory, ErrorContext, ErrorHandler, ErrorSeverity, RetryConfig
from .experiment_logger import ExperimentLogger
from .policy_engine import SafetyPolicyEngine
from .recovery_validator import RecoveryValidator
from .registry import ExperimentRegistry
from .scoring import (
    calculate_impact, calculate_resilience_score, generate_blast_radius,
    generate_recommendations, generate_summary, validate_hypothesis
)

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)

PhaseListener = Callable[[Experiment, ExperimentPhase], None]

_DEFAULT_RECOVERY = RecoveryConfig()


@dataclass
class InjectedFault:
    """A fault this run injected, and when it must be removed"""
    original: FaultDefinition
    scoped: FaultDefinition  # Same fault with an experiment-scoped id
    injector: IFaultInjector
    injected_at: float
    deadline: float
    removed: bool = False
    expiry_attempted: bool = False  # Failed expiries wait for recovery or cleanup


@dataclass
class ExperimentRun:
    """Mutable state of one experiment execution"""
    experiment: Experiment
    results: ExperimentResults
    cancel_event: threading.Event
    timeout: float
    injected: Dict[str, InjectedFault] = field(default_factory=dict)
    attempted: int = 0
    injection_aborted: bool = False
    analyzed: bool = False

    def active(self) -> List[InjectedFault]:
        return [f for f in self.injected.values() if not f.removed]

    @property
    def all_injections_failed(self) -> bool:
        return self.attempted > 0 and not self.injected


class ExperimentExecutor:
    """Runs experiments through the phase state machine"""

    def __init__(
        self,
        config: ChaosEngineeringConfig,
        injectors: InjectorRegistry,
        recovery_validator: RecoveryValidator,
        registry: ExperimentRegistry,
        policy_engine: Optional[SafetyPolicyEngine] = None,
        error_handler: Optional[ErrorHandler] = None,
        experiment_logger: Optional[ExperimentLogger] = None,
        store: Optional[IExperimentStore] = None
    ):
        self.config = config
        self.injectors = injectors
        self.recovery_validator = recovery_validator
        self.registry = registry
        self.policy_engine = policy_engine or SafetyPolicyEngine(config.cluster_max_blast_percentage)
        self.error_handler = error_handler or ErrorHandler()
        self.experiment_logger = experiment_logger
        self.store = store

        self.monitors: Dict[str, Monitor] = {}
        self._monitors_lock = threading.Lock()
        self._runs: Dict[str, ExperimentRun] = {}
        self._runs_lock = threading.Lock()
        self._random = random.Random(config.seed)
        self._random_lock = threading.Lock()

    def register_monitor(self, name: str, monitor: Monitor) -> None:
        """Register a callable sampled for metrics during observation"""
        with self._monitors_lock:
            self.monitors[name] = monitor

    def unregister_monitor(self, name: str) -> bool:
        with self._monitors_lock:
            return self.monitors.pop(name, None) is not None

    def validate(self, experiment: Experiment, policy: Optional[ChaosPolicy] = None) -> None:
        """Structural checks first, then policy; raises ValidationError"""
        self.policy_engine.validate_structure(experiment, self.config.forbidden_targets)
        if policy is not None:
            decision = self.policy_engine.evaluate(experiment, policy, at=time.time())
            if not decision.allowed:
                raise ValidationError(
                    f"experiment {experiment.id} violates policy {policy.id}: {'; '.join(decision.violations)}",
                    decision.violations
                )

    def active_faults(self, experiment_id: str) -> List[str]:
        """Ids of faults currently injected by a running experiment"""
        with self._runs_lock:
            run = self._runs.get(experiment_id)
        if run is None:
            return []
        return [f.original.id for f in run.active()]

    def is_running(self, experiment_id: str) -> bool:
        with self._runs_lock:
            return experiment_id in self._runs

    def cancel(self, experiment_id: str) -> bool:
        """Signal a running experiment to abort"""
        with self._runs_lock:
            run = self._runs.get(experiment_id)
        if run is None:
            return False
        run.cancel_event.set()
        logger.warning(f"Cancellation requested for experiment {experiment_id}")
        return True

    def execute(
        self,
        experiment: Experiment,
        policy: Optional[ChaosPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
        release_slot: Optional[Callable[[], None]] = None,
        phase_listener: Optional[PhaseListener] = None
    ) -> ExperimentResults:
        """Run an experiment to a terminal status and return its results.

        ValidationError is raised before anything runs. Once running, injection
        failures, recovery timeouts and cancellation are recorded in the results.
        """
        try:
            self.validate(experiment, policy)
            if experiment.id not in self.registry:
                self.registry.add(experiment)
            self.registry.transition(experiment.id, ExperimentStatus.RUNNING)
        except Exception:
            if release_slot is not None:
                release_slot()
            raise

        run = ExperimentRun(
            experiment=experiment,
            results=ExperimentResults(
                experiment_id=experiment.id,
                status=ExperimentStatus.RUNNING,
                start_time=time.time()
            ),
            cancel_event=cancel_event or threading.Event(),
            timeout=experiment.effective_timeout(self.config.default_timeout)
        )
        with self._runs_lock:
            self._runs[experiment.id] = run

        if self.experiment_logger:
            self.experiment_logger.log_experiment_start(experiment)

        status = ExperimentStatus.COMPLETED
        try:
            self._enter_phase(run, ExperimentPhase.PREPARATION, phase_listener)
            self._prepare(run)

            self._enter_phase(run, ExperimentPhase.INJECTION, phase_listener)
            self._inject_faults(run)

            if run.all_injections_failed or run.injection_aborted:
                status = ExperimentStatus.FAILED
                if run.injected:
                    self._enter_phase(run, ExperimentPhase.RECOVERY, phase_listener)
                    self._recover(run)
            else:
                self._enter_phase(run, ExperimentPhase.OBSERVATION, phase_listener)
                self._observe(run)

                if run.injected:
                    self._enter_phase(run, ExperimentPhase.RECOVERY, phase_listener)
                    self._recover(run)

                self._enter_phase(run, ExperimentPhase.VALIDATION, phase_listener)
                self._analyze(run)

        except AbortError as e:
            status = ExperimentStatus.ABORTED
            logger.warning(f"Experiment {experiment.id} aborted: {e}")
            self._record_event(run, f"Experiment aborted: {e}", Severity.HIGH)
            if run.injected and run.results.recovery is None:
                self._rollback(run)

        except Exception as e:
            status = ExperimentStatus.FAILED
            self._record_failure(run, "execution", Severity.HIGH, f"Unexpected error: {e}", component="executor")
            self.error_handler.handle_error(ErrorContext(
                category=ErrorCategory.FAULT_INJECTION,
                severity=ErrorSeverity.HIGH,
                message=f"Experiment execution failed: {e}",
                exception=e,
                component="executor",
                experiment_id=experiment.id
            ))
            if run.injected and run.results.recovery is None:
                self._rollback(run)

        finally:
            try:
                self._enter_phase(run, ExperimentPhase.CLEANUP, phase_listener, check_cancel=False)
                self._cleanup(run)
            finally:
                if release_slot is not None:
                    release_slot()

        self._finalize(run, status)
        return run.results

    def _enter_phase(self, run: ExperimentRun, phase: ExperimentPhase,
                     listener: Optional[PhaseListener], check_cancel: bool = True) -> None:
        if check_cancel:
            self._checkpoint(run)
        if listener is not None:
            listener(run.experiment, phase)
            if check_cancel:
                self._checkpoint(run)

        run.results.phases.append(phase)
        self.registry.set_phase(run.experiment.id, phase)
        self._record_event(run, f"Entered {phase.value} phase")
        logger.info(f"[{run.experiment.id}] Phase: {phase.value}")
        if self.experiment_logger:
            self.experiment_logger.log_phase(run.experiment.id, phase)

    def _checkpoint(self, run: ExperimentRun) -> None:
        if run.cancel_event.is_set():
            raise AbortError(f"experiment {run.experiment.id} cancelled")

    def _prepare(self, run: ExperimentRun) -> None:
        experiment = run.experiment
        enabled = experiment.enabled_faults()
        skipped = len(experiment.faults) - len(enabled)

        self._record_event(
            run,
            f"Prepared {len(enabled)} fault(s) against {experiment.target.key}",
            data={
                'timeout': run.timeout,
                'observation_window': min(experiment.duration, run.timeout),
                'disabled_faults': skipped,
            }
        )
        if skipped:
            logger.info(f"[{experiment.id}] Skipping {skipped} disabled fault(s)")

    def _should_inject(self, fault: FaultDefinition) -> bool:
        if fault.probability >= 1.0:
            return True
        with self._random_lock:
            return self._random.random() < fault.probability

    def _inject_faults(self, run: ExperimentRun) -> None:
        experiment = run.experiment

        for fault in experiment.enabled_faults():
            self._checkpoint(run)

            if not self._should_inject(fault):
                self._record_event(run, f"Fault {fault.id} skipped by probability {fault.probability}")
                continue

            run.attempted += 1
            scoped = replace(fault, id=f"{experiment.id}/{fault.id}")

            try:
                injector = self.injectors.resolve(fault)
                injector.inject(scoped, experiment.target)
            except Exception as e:
                self._record_failure(run, "injection", fault.severity, str(e), fault_id=fault.id, component="injector")
                self.error_handler.handle_error(ErrorContext(
                    category=ErrorCategory.FAULT_INJECTION,
                    severity=ErrorSeverity.MEDIUM,
                    message=f"Failed to inject {fault.type.value} fault: {e}",
                    exception=e,
                    experiment_id=experiment.id,
                    fault_id=fault.id
                ))
                if self.experiment_logger:
                    self.experiment_logger.log_fault_event(experiment.id, fault, 'inject', False, str(e))

                if self.config.injection_failure_policy == InjectionFailurePolicy.ABORT:
                    run.injection_aborted = True
                    logger.error(f"[{experiment.id}] Injection of {fault.id} failed, stopping further injections")
                    break
                continue

            now = time.time()
            run.injected[fault.id] = InjectedFault(
                original=fault,
                scoped=scoped,
                injector=injector,
                injected_at=now,
                deadline=now + min(fault.duration, run.timeout)
            )
            self._record_event(run, f"Injected {fault.type.value} fault {fault.id}", data={'fault_id': fault.id})
            if self.experiment_logger:
                self.experiment_logger.log_fault_event(experiment.id, fault, 'inject', True)

        if run.all_injections_failed:
            logger.error(f"[{experiment.id}] All {run.attempted} injection(s) failed")
        else:
            logger.info(f"[{experiment.id}] Injected {len(run.injected)}/{run.attempted} fault(s)")

    def _observe(self, run: ExperimentRun) -> None:
        experiment = run.experiment
        window = min(experiment.duration, run.timeout)
        end = time.time() + window
        interval = self.config.monitoring_interval

        while True:
            self._collect_observations(run)
            self._expire_faults(run)

            now = time.time()
            if now >= end:
                break

            wait = min(interval, end - now)
            deadlines = [f.deadline for f in run.active() if not f.expiry_attempted]
            if deadlines:
                wait = min(wait, max(0.0, min(deadlines) - now))
            if run.cancel_event.wait(wait):
                raise AbortError(f"experiment {experiment.id} cancelled during observation")

        logger.info(f"[{experiment.id}] Observation window of {window:.2f}s complete")

    def _collect_observations(self, run: ExperimentRun, label: str = "observation",
                              observation_type: ObservationType = ObservationType.METRIC) -> List[Observation]:
        with self._monitors_lock:
            monitors = list(self.monitors.items())

        collected = []
        for name, monitor in monitors:
            try:
                data = dict(monitor(run.experiment))
            except Exception as e:
                run.results.observations.append(Observation(
                    timestamp=time.time(),
                    type=ObservationType.LOG,
                    severity=Severity.MEDIUM,
                    source=name,
                    message=f"Monitor {name} failed: {e}"
                ))
                self.error_handler.handle_error(ErrorContext(
                    category=ErrorCategory.OBSERVATION,
                    severity=ErrorSeverity.MEDIUM,
                    message=f"Monitor {name} failed: {e}",
                    exception=e,
                    experiment_id=run.experiment.id
                ))
                continue

            observation = Observation(
                timestamp=time.time(),
                type=observation_type,
                source=name,
                message=label,
                data=data
            )
            run.results.observations.append(observation)
            collected.append(observation)
        return collected

    def _expire_faults(self, run: ExperimentRun) -> None:
        now = time.time()
        for injected in run.active():
            if not injected.expiry_attempted and now >= injected.deadline:
                injected.expiry_attempted = True
                self._remove_fault(run, injected, "duration elapsed")

    def _remove_fault(self, run: ExperimentRun, injected: InjectedFault, reason: str) -> Optional[str]:
        """Remove one fault with retries; returns an error message on failure"""
        experiment = run.experiment
        recovery = injected.original.recovery or _DEFAULT_RECOVERY
        retry = RetryConfig(
            max_attempts=max(1, recovery.retry_attempts) if recovery.automatic else 1,
            initial_delay=recovery.retry_delay,
            max_delay=max(recovery.retry_delay, 1.0) * 8,
            jitter=False
        )

        ok, outcome = self.error_handler.retry_with_backoff(
            injected.injector.remove,
            retry,
            ErrorCategory.FAULT_REMOVAL,
            operation_name=f"remove fault {injected.original.id}",
            fault=injected.scoped,
            target=experiment.target
        )

        if ok:
            injected.removed = True
            self._record_event(
                run,
                f"Removed fault {injected.original.id} ({reason})",
                data={'fault_id': injected.original.id, 'active_for': time.time() - injected.injected_at}
            )
            if self.experiment_logger:
                self.experiment_logger.log_fault_event(experiment.id, injected.original, 'remove', True)
            return None

        message = f"Failed to remove fault {injected.original.id}: {outcome}"
        self._record_event(run, message, Severity.HIGH)
        if self.experiment_logger:
            self.experiment_logger.log_fault_event(experiment.id, injected.original, 'remove', False, str(outcome))
        return message

    def _recover(self, run: ExperimentRun) -> None:
        errors = []
        for injected in run.active():
            error = self._remove_fault(run, injected, "recovery")
            if error and (injected.original.recovery or _DEFAULT_RECOVERY).rollback:
                errors.append(error)

        configs = [f.original.recovery for f in run.injected.values() if f.original.recovery]
        names = sorted({name for c in configs for name in c.health_checks}) or None
        timeouts = [c.timeout for c in configs if c.timeout is not None]
        max_time = max(timeouts) if timeouts else None

        result = RecoveryResult(attempted=True, method="automatic")
        started = time.monotonic()
        try:
            result.duration = self.recovery_validator.validate_recovery(
                names=names,
                cancel_event=run.cancel_event,
                max_recovery_time=max_time
            )
            metrics = self._metrics_from(self._collect_observations(
                run, label="post-recovery", observation_type=ObservationType.HEALTH
            ))
            if metrics is not None:
                self.recovery_validator.validate_metrics(metrics)
            result.successful = not errors
        except RecoveryTimeoutError as e:
            result.duration = e.elapsed
            errors.append(str(e))
            self.error_handler.handle_error(ErrorContext(
                category=ErrorCategory.TIMEOUT,
                severity=ErrorSeverity.MEDIUM,
                message=str(e),
                component="recovery",
                experiment_id=run.experiment.id
            ))
        except RecoveryValidationError as e:
            result.duration = time.monotonic() - started
            errors.append(str(e))
            self.error_handler.handle_error(ErrorContext(
                category=ErrorCategory.RECOVERY,
                severity=ErrorSeverity.MEDIUM,
                message=str(e),
                component="recovery",
                experiment_id=run.experiment.id
            ))

        result.errors = errors
        run.results.recovery = result
        outcome = "succeeded" if result.successful else "failed"
        self._record_event(
            run,
            f"Recovery {outcome} after {result.duration:.2f}s",
            Severity.LOW if result.successful else Severity.HIGH,
            data={'successful': result.successful, 'duration': result.duration}
        )

    def _rollback(self, run: ExperimentRun) -> None:
        """Remove injected faults without waiting on health checks"""
        errors = []
        for injected in run.active():
            error = self._remove_fault(run, injected, "rollback")
            if error:
                errors.append(error)

        run.results.recovery = RecoveryResult(
            attempted=True,
            successful=not errors,
            method="abort_rollback",
            errors=errors
        )

    def _metrics_from(self, observations: List[Observation]) -> Optional[ChaosMetrics]:
        """Build recovery metrics from samples that report error or operation counts"""
        samples = [
            o.data for o in observations
            if 'error_rate' in o.data or 'total_operations' in o.data
        ]
        if not samples:
            return None

        metrics = ChaosMetrics()
        for data in samples:
            metrics.total_operations += int(data.get('total_operations', 0))
            metrics.successful_ops += int(data.get('successful_ops', 0))
            metrics.failed_ops += int(data.get('failed_ops', 0))
            metrics.error_rate = max(metrics.error_rate, float(data.get('error_rate', 0.0)))
        return metrics

    def _analyze(self, run: ExperimentRun) -> None:
        results = run.results
        results.hypothesis_valid = validate_hypothesis(results)
        results.metrics.update(calculate_impact(results))
        results.metrics['faults_attempted'] = run.attempted
        results.metrics['faults_injected'] = len(run.injected)
        run.analyzed = True

    def _cleanup(self, run: ExperimentRun) -> None:
        experiment = run.experiment

        for injected in run.injected.values():
            try:
                injected.injector.remove(injected.scoped, experiment.target)
                injected.removed = True
            except Exception as e:
                message = f"Cleanup could not remove fault {injected.original.id}: {e}"
                self._record_failure(run, "removal", Severity.HIGH, message, fault_id=injected.original.id, component="cleanup")
                self.error_handler.handle_error(ErrorContext(
                    category=ErrorCategory.FAULT_REMOVAL,
                    severity=ErrorSeverity.HIGH,
                    message=message,
                    exception=e,
                    experiment_id=experiment.id,
                    fault_id=injected.original.id
                ))
                if self.experiment_logger:
                    self.experiment_logger.log_error(experiment.id, message)

        with self._runs_lock:
            self._runs.pop(experiment.id, None)

    def _finalize(self, run: ExperimentRun, status: ExperimentStatus) -> None:
        experiment = run.experiment
        results = run.results

        results.status = status
        results.end_time = time.time()
        results.duration = results.end_time - results.start_time

        if not run.analyzed:
            self._analyze(run)
        results.blast_radius = generate_blast_radius(experiment)
        results.resilience_score = calculate_resilience_score(results)
        results.summary = generate_summary(experiment, results)
        results.recommendations = generate_recommendations(experiment, results)

        self.registry.set_results(experiment.id, results)
        self.registry.transition(experiment.id, status)

        if self.store is not None:
            try:
                self.store.save_experiment(experiment)
                self.store.save_results(results)
            except Exception as e:
                self.error_handler.handle_error(ErrorContext(
                    category=ErrorCategory.PERSISTENCE,
                    severity=ErrorSeverity.MEDIUM,
                    message=f"Failed to persist experiment {experiment.id}: {e}",
                    exception=e,
                    experiment_id=experiment.id
                ))

        if self.experiment_logger:
            self.experiment_logger.log_experiment_completion(results)

        logger.info(
            f"Experiment {experiment.id} {status.value}: score {results.resilience_score:.0f}, "
            f"{len(results.failures)} failure(s), hypothesis {'valid' if results.hypothesis_valid else 'invalid'}"
        )

    def _record_event(self, run: ExperimentRun, message: str, severity: Severity = Severity.LOW,
                      data: Optional[Dict] = None) -> None:
        run.results.observations.append(Observation(
            timestamp=time.time(),
            type=ObservationType.EVENT,
            severity=severity,
            source="executor",
            message=message,
            data=data or {}
        ))

    def _record_failure(self, run: ExperimentRun, failure_type: str, severity: Severity, message: str,
                        fault_id: Optional[str] = None, component: str = "") -> None:
        run.results.failures.append(ExperimentFailure(
            timestamp=time.time(),
            type=failure_type,
            severity=severity,
            message=message,
            fault_id=fault_id,
            component=component
        ))
