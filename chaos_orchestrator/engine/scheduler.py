"""
Scheduler - Admits experiments under the concurrency bound

Admission re-checks safety policy because infrastructure state may have changed
since submission. At capacity the configured admission policy rejects, blocks
for a bounded time, or queues by priority and scheduled time.
"""
import heapq
import time
import logging
import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple
from ..config import ChaosEngineeringConfig
from ..exceptions import SchedulerRejection, ValidationError
from ..models import AdmissionPolicy, ChaosPolicy, Experiment, ExperimentStatus
from .executor import ExperimentExecutor, PhaseListener
from .policy_engine import SafetyPolicyEngine
from .registry import ExperimentRegistry

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)

# Timers and wall-clock reads can disagree by a few milliseconds
_DUE_SLACK = 0.01


@dataclass(order=True)
class QueuedExperiment:
    """Queue entry ordered by priority (higher first), scheduled time, then arrival"""
    sort_key: Tuple[int, float, int]
    experiment: Experiment = field(compare=False)
    policy: Optional[ChaosPolicy] = field(compare=False, default=None)
    phase_listener: Optional[PhaseListener] = field(compare=False, default=None)
    future: Future = field(compare=False, default_factory=Future)

    @property
    def scheduled_at(self) -> float:
        return self.sort_key[1]


class ChaosScheduler:
    """Bounded worker pool running experiments through the executor"""

    def __init__(
        self,
        config: ChaosEngineeringConfig,
        executor: ExperimentExecutor,
        policy_engine: SafetyPolicyEngine,
        registry: ExperimentRegistry,
        default_policy: Optional[ChaosPolicy] = None
    ):
        self.config = config
        self.executor = executor
        self.policy_engine = policy_engine
        self.registry = registry
        self.default_policy = default_policy

        self.max_concurrent = config.max_concurrent_experiments
        self._pool = ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix="chaos-experiment")
        self._slots = threading.BoundedSemaphore(self.max_concurrent)
        self._lock = threading.Lock()
        self._queue: List[QueuedExperiment] = []
        self._sequence = itertools.count()
        self._active: Set[str] = set()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._timers: List[threading.Timer] = []
        self._shutdown = False
        self.rejections = 0

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def queued_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def is_queued(self, experiment_id: str) -> bool:
        with self._lock:
            return any(e.experiment.id == experiment_id for e in self._queue)

    def admit(
        self,
        experiment: Experiment,
        policy: Optional[ChaosPolicy] = None,
        priority: int = 0,
        scheduled_at: Optional[float] = None,
        phase_listener: Optional[PhaseListener] = None
    ) -> Future:
        """Admit an experiment and return a future resolving to its results.

        Raises SchedulerRejection when the experiment fails admission checks or
        no slot is available under the reject and block policies.
        """
        if self._shutdown:
            raise SchedulerRejection("scheduler is shut down", experiment.id)

        policy = policy or self.default_policy
        self._check_admission(experiment, policy)
        if experiment.id not in self.registry:
            self.registry.add(experiment)

        now = time.time()
        if scheduled_at is not None and scheduled_at > now:
            return self._enqueue(experiment, policy, priority, scheduled_at, phase_listener)

        if self._slots.acquire(blocking=False):
            return self._dispatch(experiment, policy, phase_listener)

        admission = self.config.admission_policy
        if admission == AdmissionPolicy.QUEUE:
            return self._enqueue(experiment, policy, priority, now, phase_listener)

        if admission == AdmissionPolicy.BLOCK:
            logger.info(f"At capacity, waiting up to {self.config.admission_timeout:.1f}s to admit {experiment.id}")
            if self._slots.acquire(timeout=self.config.admission_timeout):
                return self._dispatch(experiment, policy, phase_listener)
            self._reject(experiment, f"no slot became available within {self.config.admission_timeout:.1f}s")

        self._reject(experiment, f"maximum concurrent experiments reached ({self.max_concurrent})")

    def _check_admission(self, experiment: Experiment, policy: Optional[ChaosPolicy]) -> None:
        if experiment.status != ExperimentStatus.PENDING:
            self._reject(experiment, f"experiment {experiment.id} is {experiment.status.value}, not pending")

        try:
            self.policy_engine.validate_structure(experiment, self.config.forbidden_targets)
        except ValidationError as e:
            self._reject(experiment, str(e))

        if policy is not None:
            decision = self.policy_engine.evaluate(experiment, policy, at=time.time())
            if not decision.allowed:
                self._reject(experiment, f"policy {policy.id} denied admission: {'; '.join(decision.violations)}")

    def _reject(self, experiment: Experiment, reason: str) -> None:
        with self._lock:
            self.rejections += 1
        logger.warning(f"Rejected experiment {experiment.id}: {reason}")
        if self.config.drop_rejected and self.registry.remove(experiment.id):
            logger.info(f"Dropped rejected experiment {experiment.id} from registry")
        raise SchedulerRejection(reason, experiment.id)

    def _enqueue(self, experiment: Experiment, policy: Optional[ChaosPolicy], priority: int,
                 scheduled_at: float, phase_listener: Optional[PhaseListener]) -> Future:
        entry = QueuedExperiment(
            sort_key=(-priority, scheduled_at, next(self._sequence)),
            experiment=experiment,
            policy=policy,
            phase_listener=phase_listener
        )
        with self._lock:
            heapq.heappush(self._queue, entry)
            queued = len(self._queue)

        delay = scheduled_at - time.time()
        if delay > 0:
            timer = threading.Timer(delay, self._dispatch_next)
            timer.daemon = True
            with self._lock:
                self._timers = [t for t in self._timers if t.is_alive()]
                self._timers.append(timer)
            timer.start()
            logger.info(f"Queued experiment {experiment.id} (priority {priority}) to start in {delay:.1f}s")
        else:
            logger.info(f"Queued experiment {experiment.id} (priority {priority}), {queued} waiting")

        self._dispatch_next()
        return entry.future

    def _next_due(self, now: float) -> Optional[QueuedExperiment]:
        for entry in sorted(self._queue):
            if entry.scheduled_at <= now:
                return entry
        return None

    def _dispatch_next(self) -> None:
        """Start queued experiments that are due while slots are free"""
        while True:
            with self._lock:
                if self._shutdown:
                    return
                entry = self._next_due(time.time() + _DUE_SLACK)
                if entry is None:
                    return
                if not self._slots.acquire(blocking=False):
                    return
                self._queue.remove(entry)
                heapq.heapify(self._queue)

            if not entry.future.set_running_or_notify_cancel():
                logger.info(f"Queued experiment {entry.experiment.id} was cancelled before dispatch")
                self._slots.release()
                continue

            self._dispatch(entry.experiment, entry.policy, entry.phase_listener, entry.future)

    def _dispatch(self, experiment: Experiment, policy: Optional[ChaosPolicy],
                  phase_listener: Optional[PhaseListener], placeholder: Optional[Future] = None) -> Future:
        """Run an experiment on the pool; the caller already holds a slot"""
        cancel_event = threading.Event()
        with self._lock:
            self._active.add(experiment.id)
            self._cancel_events[experiment.id] = cancel_event

        release = self._make_release(experiment.id)
        try:
            future = self._pool.submit(self._run, experiment, policy, cancel_event, release, phase_listener)
        except RuntimeError as e:
            release()
            if placeholder is not None:
                placeholder.set_exception(SchedulerRejection(f"scheduler is shut down: {e}", experiment.id))
                return placeholder
            raise SchedulerRejection(f"scheduler is shut down: {e}", experiment.id) from e

        logger.info(f"Dispatched experiment {experiment.id}")
        if placeholder is None:
            return future

        def forward(done: Future):
            error = done.exception()
            if error is not None:
                placeholder.set_exception(error)
            else:
                placeholder.set_result(done.result())

        future.add_done_callback(forward)
        return placeholder

    def _run(self, experiment, policy, cancel_event, release, phase_listener):
        try:
            return self.executor.execute(
                experiment,
                policy=policy,
                cancel_event=cancel_event,
                release_slot=release,
                phase_listener=phase_listener
            )
        finally:
            release()

    def _make_release(self, experiment_id: str):
        """One-shot slot release for a dispatched experiment"""
        released = threading.Event()

        def release():
            with self._lock:
                if released.is_set():
                    return
                released.set()
                self._active.discard(experiment_id)
                self._cancel_events.pop(experiment_id, None)
            self._slots.release()
            logger.debug(f"Released slot held by {experiment_id}")
            self._dispatch_next()

        return release

    def cancel(self, experiment_id: str) -> bool:
        """Drop a queued experiment or signal a running one to abort"""
        with self._lock:
            entry = next((e for e in self._queue if e.experiment.id == experiment_id), None)
            if entry is not None:
                self._queue.remove(entry)
                heapq.heapify(self._queue)
            cancel_event = self._cancel_events.get(experiment_id)

        if entry is not None:
            entry.future.cancel()
            self.registry.transition(experiment_id, ExperimentStatus.ABORTED)
            logger.info(f"Removed experiment {experiment_id} from the queue")
            return True

        if cancel_event is not None:
            cancel_event.set()
            logger.warning(f"Cancellation requested for running experiment {experiment_id}")
            return True

        return False

    def shutdown(self, wait: bool = True, cancel_running: bool = False) -> None:
        """Stop admitting, abort queued experiments and wait for running ones"""
        with self._lock:
            self._shutdown = True
            queued = list(self._queue)
            self._queue.clear()
            timers = list(self._timers)
            self._timers.clear()
            events = list(self._cancel_events.values())

        for timer in timers:
            timer.cancel()

        for entry in queued:
            entry.future.cancel()
            self.registry.transition(entry.experiment.id, ExperimentStatus.ABORTED)

        if cancel_running:
            for event in events:
                event.set()

        self._pool.shutdown(wait=wait)
        logger.info(f"Scheduler shut down ({len(queued)} queued experiment(s) aborted)")
