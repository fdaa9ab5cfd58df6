"""
Distributed Coordinator - Fans one experiment out across regions

Each region runs its own copy of the experiment through a region manager.
Sequential, parallel, pipelined and conditional coordination modes control
how the regional runs relate in time. A region's failure is recorded in its
own result and never raised into the other regions.
"""
import copy
import time
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional
from ..exceptions import ValidationError
from ..models import (
    PHASE_ORDER, ChaosPolicy, CoordinationMode, Experiment, ExperimentPhase,
    ExperimentResults, ExperimentStatus
)
from .executor import PhaseListener
from .parallel_executor import ParallelExecutor
from .region_log_buffer import RegionLogBuffer

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


class RegionStatus(Enum):
    """Outcome of one regional run"""
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"
    SKIPPED = "skipped"


_STATUS_BY_EXPERIMENT = {
    ExperimentStatus.COMPLETED: RegionStatus.COMPLETED,
    ExperimentStatus.FAILED: RegionStatus.FAILED,
    ExperimentStatus.ABORTED: RegionStatus.ABORTED,
}


@dataclass
class RegionResult:
    """Result of running the experiment in one region"""
    region: str
    status: RegionStatus
    experiment_id: Optional[str] = None
    results: Optional[ExperimentResults] = None
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == RegionStatus.COMPLETED


@dataclass
class DistributedExperimentSpec:
    """One experiment to fan out, and how"""
    experiment: Experiment
    regions: List[str]
    mode: CoordinationMode = CoordinationMode.SEQUENTIAL
    stop_on_failure: bool = True
    fail_fast: bool = False
    conditions: Dict[str, str] = field(default_factory=dict)  # region -> condition name
    default_condition: str = "previous_succeeded"
    policy: Optional[ChaosPolicy] = None


@dataclass
class DistributedResult:
    """Aggregate of every regional result"""
    experiment_id: str
    mode: CoordinationMode
    status: ExperimentStatus
    start_time: float
    end_time: float
    regions: Dict[str, RegionResult] = field(default_factory=dict)
    resilience_score: float = 0.0
    failed_regions: List[str] = field(default_factory=list)
    skipped_regions: List[str] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


# Conditions gate a region in conditional mode, given the results of earlier regions
RegionCondition = Callable[[List[RegionResult]], bool]


def _ran(previous: List[RegionResult]) -> List[RegionResult]:
    return [r for r in previous if r.status != RegionStatus.SKIPPED]


def _always(previous: List[RegionResult]) -> bool:
    return True


def _previous_succeeded(previous: List[RegionResult]) -> bool:
    ran = _ran(previous)
    return not ran or ran[-1].succeeded


def _no_critical_failures(previous: List[RegionResult]) -> bool:
    return not any(r.results is not None and r.results.has_critical_failure() for r in _ran(previous))


def _all_succeeded(previous: List[RegionResult]) -> bool:
    return all(r.succeeded for r in _ran(previous))


BUILTIN_CONDITIONS: Dict[str, RegionCondition] = {
    'always': _always,
    'previous_succeeded': _previous_succeeded,
    'no_critical_failures': _no_critical_failures,
    'all_succeeded': _all_succeeded,
}


class RegionManager:
    """Runs regional copies of an experiment on one framework instance"""

    def __init__(self, name: str, framework):
        self.name = name
        self.framework = framework

    def regional_experiment(self, experiment: Experiment) -> Experiment:
        """Fresh pending copy of an experiment, with a region-scoped id"""
        regional = copy.deepcopy(experiment)
        regional.id = f"{experiment.id}-{self.name}"
        regional.status = ExperimentStatus.PENDING
        regional.started_at = None
        regional.ended_at = None
        regional.current_phase = None
        regional.results = None
        regional.metadata['region'] = self.name
        return regional

    def run(self, experiment: Experiment, policy: Optional[ChaosPolicy] = None,
            phase_listener: Optional[PhaseListener] = None) -> ExperimentResults:
        return self.framework.run_experiment(experiment, policy=policy, phase_listener=phase_listener)

    def stop(self, experiment_id: str) -> bool:
        return self.framework.stop_experiment(experiment_id)


class PhaseGate:
    """Barrier keeping regions in step: nobody enters phase N+1 before every
    active region has finished phase N. Cleanup is never held back."""

    def __init__(self, regions: List[str]):
        self._cond = threading.Condition()
        self._reached: Dict[str, int] = {region: -1 for region in regions}
        self._active = set(regions)

    def arrive(self, region: str, phase: ExperimentPhase) -> None:
        index = PHASE_ORDER.index(phase)
        with self._cond:
            self._reached[region] = max(self._reached.get(region, -1), index)
            self._cond.notify_all()
            if phase == ExperimentPhase.CLEANUP:
                return
            while any(self._reached[r] < index for r in self._active if r != region):
                self._cond.wait()

    def deregister(self, region: str) -> None:
        """A finished or failed region no longer holds the others back"""
        with self._cond:
            self._active.discard(region)
            self._cond.notify_all()


class DistributedCoordinator:
    """Runs one experiment across named regions under a coordination mode"""

    def __init__(self, regions: Optional[Dict[str, RegionManager]] = None, max_workers: Optional[int] = None):
        self.regions: Dict[str, RegionManager] = dict(regions or {})
        self.parallel_executor = ParallelExecutor(max_workers)
        self._lock = threading.Lock()
        self._running: Dict[str, str] = {}  # region -> regional experiment id
        self._cancelled = threading.Event()
        self.conditions: Dict[str, RegionCondition] = dict(BUILTIN_CONDITIONS)

    def register_condition(self, name: str, condition: RegionCondition) -> None:
        self.conditions[name] = condition

    def add_region(self, manager: RegionManager) -> None:
        self.regions[manager.name] = manager

    def remove_region(self, name: str) -> Optional[RegionManager]:
        return self.regions.pop(name, None)

    def validate(self, spec: DistributedExperimentSpec) -> None:
        if not spec.experiment.name:
            raise ValidationError("experiment name is required")
        if not spec.regions:
            raise ValidationError("at least one region must be specified")
        for region in spec.regions:
            if region not in self.regions:
                raise ValidationError(f"region {region} not found")
        if spec.mode == CoordinationMode.CONDITIONAL:
            for name in set(spec.conditions.values()) | {spec.default_condition}:
                if name not in self.conditions:
                    raise ValidationError(f"condition {name} is not registered")

    def run(self, spec: DistributedExperimentSpec) -> DistributedResult:
        """Run the experiment in every region and aggregate the outcome"""
        self.validate(spec)
        self._cancelled.clear()
        start_time = time.time()
        logger.info(
            f"Starting distributed experiment {spec.experiment.id} across "
            f"{len(spec.regions)} region(s) in {spec.mode.value} mode"
        )

        if spec.mode == CoordinationMode.PARALLEL:
            results = self._run_parallel(spec)
        elif spec.mode == CoordinationMode.PIPELINED:
            results = self._run_pipelined(spec)
        elif spec.mode == CoordinationMode.CONDITIONAL:
            results = self._run_conditional(spec)
        else:
            results = self._run_sequential(spec)

        return self._aggregate(spec, results, start_time)

    def cancel(self) -> None:
        """Stop every regional run still in progress and skip the rest"""
        self._cancelled.set()
        with self._lock:
            running = dict(self._running)
        for region, experiment_id in running.items():
            try:
                self.regions[region].stop(experiment_id)
            except Exception as e:
                logger.error(f"Failed to stop experiment {experiment_id} in region {region}: {e}")

    def _run_region(self, spec: DistributedExperimentSpec, region: str,
                    phase_listener: Optional[PhaseListener] = None,
                    log: Optional[RegionLogBuffer] = None) -> RegionResult:
        if self._cancelled.is_set():
            return RegionResult(region=region, status=RegionStatus.SKIPPED, error="cancelled before start")

        manager = self.regions[region]
        regional = manager.regional_experiment(spec.experiment)
        started = time.time()
        with self._lock:
            self._running[region] = regional.id

        try:
            results = manager.run(regional, policy=spec.policy, phase_listener=phase_listener)
        except Exception as e:
            message = f"Region {region} failed: {e}"
            if log is not None:
                log.error(message)
            else:
                logger.error(message)
            return RegionResult(
                region=region,
                status=RegionStatus.FAILED,
                experiment_id=regional.id,
                error=str(e),
                duration=time.time() - started
            )
        finally:
            with self._lock:
                self._running.pop(region, None)

        status = _STATUS_BY_EXPERIMENT.get(results.status, RegionStatus.FAILED)
        message = f"Region {region} {status.value} with score {results.resilience_score or 0:.0f}"
        if log is not None:
            log.info(message)
        else:
            logger.info(message)

        return RegionResult(
            region=region,
            status=status,
            experiment_id=regional.id,
            results=results,
            duration=time.time() - started
        )

    def _run_sequential(self, spec: DistributedExperimentSpec) -> Dict[str, RegionResult]:
        results: Dict[str, RegionResult] = {}
        stopped = False
        for region in spec.regions:
            if stopped:
                results[region] = RegionResult(region=region, status=RegionStatus.SKIPPED, error="stopped after earlier failure")
                continue

            result = self._run_region(spec, region)
            results[region] = result
            if not result.succeeded and result.status != RegionStatus.SKIPPED and spec.stop_on_failure:
                logger.warning(f"Region {region} did not complete, skipping remaining regions")
                stopped = True
        return results

    def _run_parallel(self, spec: DistributedExperimentSpec) -> Dict[str, RegionResult]:
        tasks = {
            region: (lambda log, region=region: self._run_region(spec, region, log=log))
            for region in spec.regions
        }

        def on_first_failure(region: str):
            if spec.fail_fast:
                logger.warning(f"Region {region} failed, cancelling remaining regions")
                self.cancel()

        outcomes = self.parallel_executor.execute(
            tasks,
            is_failure=lambda result: result is not None and result.status == RegionStatus.FAILED,
            on_first_failure=on_first_failure
        )

        results = {}
        for region, (result, error) in outcomes.items():
            if error is not None:
                result = RegionResult(region=region, status=RegionStatus.FAILED, error=str(error))
            results[region] = result
        return results

    def _run_pipelined(self, spec: DistributedExperimentSpec) -> Dict[str, RegionResult]:
        gate = PhaseGate(spec.regions)

        def run_gated(log: RegionLogBuffer, region: str) -> RegionResult:
            def listener(experiment: Experiment, phase: ExperimentPhase):
                log.debug(f"Region {region} reached {phase.value}")
                gate.arrive(region, phase)

            try:
                return self._run_region(spec, region, phase_listener=listener, log=log)
            finally:
                gate.deregister(region)

        tasks = {region: (lambda log, region=region: run_gated(log, region)) for region in spec.regions}
        # Every region must hold a worker or the phase gate never opens
        outcomes = self.parallel_executor.execute(tasks, max_workers=len(spec.regions))

        results = {}
        for region, (result, error) in outcomes.items():
            if error is not None:
                result = RegionResult(region=region, status=RegionStatus.FAILED, error=str(error))
            results[region] = result
        return results

    def _run_conditional(self, spec: DistributedExperimentSpec) -> Dict[str, RegionResult]:
        results: Dict[str, RegionResult] = {}
        for region in spec.regions:
            name = spec.conditions.get(region, spec.default_condition)
            previous = list(results.values())
            if not self.conditions[name](previous):
                logger.info(f"Condition {name} not met, skipping region {region}")
                results[region] = RegionResult(region=region, status=RegionStatus.SKIPPED, error=f"condition {name} not met")
                continue
            results[region] = self._run_region(spec, region)
        return results

    def _aggregate(self, spec: DistributedExperimentSpec, results: Dict[str, RegionResult],
                   start_time: float) -> DistributedResult:
        failed = [r.region for r in results.values() if r.status == RegionStatus.FAILED]
        aborted = [r.region for r in results.values() if r.status == RegionStatus.ABORTED]
        skipped = [r.region for r in results.values() if r.status == RegionStatus.SKIPPED]
        scores = [
            r.results.resilience_score for r in results.values()
            if r.results is not None and r.results.resilience_score is not None
        ]

        if failed:
            status = ExperimentStatus.FAILED
        elif aborted:
            status = ExperimentStatus.ABORTED
        else:
            status = ExperimentStatus.COMPLETED

        result = DistributedResult(
            experiment_id=spec.experiment.id,
            mode=spec.mode,
            status=status,
            start_time=start_time,
            end_time=time.time(),
            regions=results,
            resilience_score=sum(scores) / len(scores) if scores else 0.0,
            failed_regions=failed,
            skipped_regions=skipped
        )

        logger.info(
            f"Distributed experiment {spec.experiment.id} {status.value}: "
            f"{len(results) - len(failed) - len(skipped)}/{len(results)} region(s) ran cleanly, "
            f"mean score {result.resilience_score:.1f}"
        )
        return result
