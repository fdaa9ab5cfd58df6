"""
Chaos Engineering Framework - Entry point wiring the engine components together

Creates experiments, runs them through the scheduler, reports progress, stops
them, validates policies and turns results into reports.
"""
import time
import logging
from concurrent.futures import Future
from typing import Dict, List, Optional, Union
from ..config import ChaosEngineeringConfig
from ..exceptions import ExperimentNotFoundError
from ..injectors.registry import InjectorKey, InjectorRegistry, default_registry
from ..interfaces import HealthCheck, IExperimentStore, IFaultInjector, IReportExporter, Monitor
from ..models import (
    PHASE_ORDER, ChaosPolicy, Experiment, ExperimentProgress, ExperimentReport,
    ExperimentResults, ExperimentStatus
)
from ..store import create_store
from .error_handler import ErrorCategory, ErrorContext, ErrorHandler, ErrorSeverity
from .executor import ExperimentExecutor, PhaseListener
from .experiment_logger import ExperimentLogger
from .policy_engine import SafetyPolicyEngine
from .recovery_validator import RecoveryValidator
from .registry import ExperimentRegistry
from .scheduler import ChaosScheduler
from .scoring import calculate_impact, calculate_resilience_score, generate_recommendations, generate_summary

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


class ChaosEngineeringFramework:
    """Chaos experiment orchestration"""

    def __init__(
        self,
        config: Optional[ChaosEngineeringConfig] = None,
        injectors: Optional[InjectorRegistry] = None,
        store: Optional[IExperimentStore] = None,
        default_policy: Optional[ChaosPolicy] = None
    ):
        self.config = config or ChaosEngineeringConfig()
        self.registry = ExperimentRegistry()
        self.error_handler = ErrorHandler()
        self.policy_engine = SafetyPolicyEngine(self.config.cluster_max_blast_percentage)
        self.injectors = injectors or default_registry()
        self.recovery_validator = RecoveryValidator(
            thresholds=self.config.recovery_thresholds,
            poll_interval=self.config.recovery_poll_interval
        )
        self.store = store if store is not None else create_store(self.config.store)
        self.experiment_logger = ExperimentLogger(self.config.log_dir) if self.config.log_dir else None
        self.executor = ExperimentExecutor(
            config=self.config,
            injectors=self.injectors,
            recovery_validator=self.recovery_validator,
            registry=self.registry,
            policy_engine=self.policy_engine,
            error_handler=self.error_handler,
            experiment_logger=self.experiment_logger,
            store=self.store
        )
        self.scheduler = ChaosScheduler(
            config=self.config,
            executor=self.executor,
            policy_engine=self.policy_engine,
            registry=self.registry,
            default_policy=default_policy
        )
        self.exporters: Dict[str, IReportExporter] = {}

        logger.info(
            f"Chaos engineering framework ready ({self.config.environment}, "
            f"max {self.config.max_concurrent_experiments} concurrent experiments)"
        )

    # Registration

    def register_health_check(self, name: str, check: HealthCheck) -> None:
        self.recovery_validator.register_health_check(name, check)

    def register_monitor(self, name: str, monitor: Monitor) -> None:
        self.executor.register_monitor(name, monitor)

    def register_injector(self, key: InjectorKey, injector: IFaultInjector) -> None:
        self.injectors.register(key, injector)

    def register_exporter(self, name: str, exporter: IReportExporter) -> None:
        self.exporters[name] = exporter

    # Experiments

    def create_experiment(self, experiment: Experiment) -> Experiment:
        """Validate an experiment's structure and register it as pending"""
        self.policy_engine.validate_structure(experiment, self.config.forbidden_targets)
        experiment.status = ExperimentStatus.PENDING
        self.registry.add(experiment)
        self._persist(experiment)
        logger.info(f"Created experiment {experiment.id} ({experiment.name}) with {len(experiment.faults)} fault(s)")
        return experiment

    def submit_experiment(
        self,
        experiment: Union[str, Experiment],
        policy: Optional[ChaosPolicy] = None,
        priority: int = 0,
        scheduled_at: Optional[float] = None,
        phase_listener: Optional[PhaseListener] = None
    ) -> Future:
        """Admit an experiment without waiting; the future resolves to its results"""
        if isinstance(experiment, Experiment) and experiment.id not in self.registry:
            self.create_experiment(experiment)
        experiment = self._resolve(experiment)
        return self.scheduler.admit(
            experiment,
            policy=policy,
            priority=priority,
            scheduled_at=scheduled_at,
            phase_listener=phase_listener
        )

    def run_experiment(
        self,
        experiment: Union[str, Experiment],
        policy: Optional[ChaosPolicy] = None,
        priority: int = 0,
        timeout: Optional[float] = None,
        phase_listener: Optional[PhaseListener] = None
    ) -> ExperimentResults:
        """Admit an experiment and block until its results are available"""
        future = self.submit_experiment(experiment, policy=policy, priority=priority, phase_listener=phase_listener)
        return future.result(timeout=timeout)

    def monitor_experiment(self, experiment_id: str) -> ExperimentProgress:
        """Current status, phase and progress of an experiment"""
        experiment = self.registry.get(experiment_id)
        status = experiment.status
        phase = experiment.current_phase

        if experiment.started_at is None:
            elapsed = 0.0
        else:
            elapsed = (experiment.ended_at or time.time()) - experiment.started_at

        if status.is_terminal:
            progress = 1.0
        elif phase is None:
            progress = 0.0
        else:
            progress = PHASE_ORDER.index(phase) / len(PHASE_ORDER)

        return ExperimentProgress(
            experiment_id=experiment_id,
            status=status,
            phase=phase,
            progress=progress,
            elapsed=elapsed,
            active_faults=self.executor.active_faults(experiment_id),
            failure_count=len(experiment.results.failures) if experiment.results else 0
        )

    def stop_experiment(self, experiment_id: str) -> bool:
        """Abort a queued, running or never-admitted experiment"""
        experiment = self.registry.get(experiment_id)
        if experiment.status.is_terminal:
            logger.info(f"Experiment {experiment_id} already {experiment.status.value}")
            return False

        if self.scheduler.cancel(experiment_id) or self.executor.cancel(experiment_id):
            return True

        if experiment.status == ExperimentStatus.PENDING:
            self.registry.transition(experiment_id, ExperimentStatus.ABORTED)
            self._persist(experiment)
            return True
        return False

    def validate_policy(self, experiment: Experiment, policy: ChaosPolicy) -> List[str]:
        return self.policy_engine.validate(experiment, policy)

    def get_experiment(self, experiment_id: str) -> Experiment:
        experiment = self.registry.find(experiment_id)
        if experiment is None and self.store is not None:
            experiment = self.store.load_experiment(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(f"experiment {experiment_id} not found")
        return experiment

    def list_experiments(self, status: Optional[ExperimentStatus] = None) -> List[Experiment]:
        return self.registry.list(status)

    def get_results(self, experiment_id: str) -> Optional[ExperimentResults]:
        experiment = self.registry.find(experiment_id)
        if experiment is not None and experiment.results is not None:
            return experiment.results
        if self.store is not None:
            return self.store.load_results(experiment_id)
        return None

    # Reporting

    def generate_report(self, results: ExperimentResults) -> ExperimentReport:
        """Analyze results into a report and hand it to every registered exporter"""
        experiment = self.registry.find(results.experiment_id)
        if experiment is None and self.store is not None:
            experiment = self.store.load_experiment(results.experiment_id)

        score = results.resilience_score
        if score is None:
            score = calculate_resilience_score(results)

        summary = results.summary
        recommendations = list(results.recommendations)
        if experiment is not None:
            summary = summary or generate_summary(experiment, results)
            recommendations = recommendations or generate_recommendations(experiment, results)

        report = ExperimentReport(
            experiment_id=results.experiment_id,
            experiment_name=experiment.name if experiment else results.experiment_id,
            status=results.status,
            generated_at=time.time(),
            resilience_score=score,
            hypothesis_valid=results.hypothesis_valid,
            summary=summary,
            impact=calculate_impact(results),
            recommendations=recommendations,
            blast_radius=results.blast_radius,
            recovery=results.recovery,
            failure_count=len(results.failures),
            results=results
        )

        for name, exporter in list(self.exporters.items()):
            try:
                exporter.export(report)
            except Exception as e:
                self.error_handler.handle_error(ErrorContext(
                    category=ErrorCategory.REPORTING,
                    severity=ErrorSeverity.MEDIUM,
                    message=f"Report exporter {name} failed: {e}",
                    exception=e,
                    component=name,
                    experiment_id=results.experiment_id
                ))

        logger.info(f"Generated report for {results.experiment_id}: score {score:.0f}")
        return report

    def shutdown(self, wait: bool = True, cancel_running: bool = False) -> None:
        """Stop the scheduler and remove any fault the injectors still hold"""
        self.scheduler.shutdown(wait=wait, cancel_running=cancel_running)
        self.error_handler.cleanup_after_failure(self.injectors)
        close = getattr(self.store, 'close', None)
        if close is not None:
            close()

    def _resolve(self, experiment: Union[str, Experiment]) -> Experiment:
        if isinstance(experiment, Experiment):
            return experiment
        return self.registry.get(experiment)

    def _persist(self, experiment: Experiment) -> None:
        if self.store is None:
            return
        try:
            self.store.save_experiment(experiment)
        except Exception as e:
            self.error_handler.handle_error(ErrorContext(
                category=ErrorCategory.PERSISTENCE,
                severity=ErrorSeverity.MEDIUM,
                message=f"Failed to persist experiment {experiment.id}: {e}",
                exception=e,
                experiment_id=experiment.id
            ))
