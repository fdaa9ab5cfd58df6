"""
Experiment Registry - Owned store of experiments shared by the scheduler,
executor and reporting
"""
import time
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional
from ..exceptions import ExperimentNotFoundError, InvalidTransitionError, ValidationError
from ..models import Experiment, ExperimentPhase, ExperimentResults, ExperimentStatus

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many concurrent readers or a single writer; waiting writers block new readers"""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read_locked(self):
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self):
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ExperimentRegistry:
    """Experiments by id, with forward-only status transitions"""

    def __init__(self):
        self._experiments: Dict[str, Experiment] = {}
        self._lock = ReadWriteLock()

    def add(self, experiment: Experiment) -> None:
        with self._lock.write_locked():
            if experiment.id in self._experiments:
                raise ValidationError(f"experiment {experiment.id} already exists")
            self._experiments[experiment.id] = experiment
        logger.debug(f"Registered experiment {experiment.id}")

    def get(self, experiment_id: str) -> Experiment:
        with self._lock.read_locked():
            experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(f"experiment {experiment_id} not found")
        return experiment

    def find(self, experiment_id: str) -> Optional[Experiment]:
        with self._lock.read_locked():
            return self._experiments.get(experiment_id)

    def list(self, status: Optional[ExperimentStatus] = None) -> List[Experiment]:
        with self._lock.read_locked():
            experiments = list(self._experiments.values())
        if status is not None:
            experiments = [e for e in experiments if e.status == status]
        return experiments

    def status_of(self, experiment_id: str) -> ExperimentStatus:
        with self._lock.read_locked():
            experiment = self._experiments.get(experiment_id)
            if experiment is None:
                raise ExperimentNotFoundError(f"experiment {experiment_id} not found")
            return experiment.status

    def count(self, status: ExperimentStatus) -> int:
        with self._lock.read_locked():
            return sum(1 for e in self._experiments.values() if e.status == status)

    def transition(self, experiment_id: str, status: ExperimentStatus) -> Experiment:
        """Move an experiment forward; backwards moves raise InvalidTransitionError"""
        with self._lock.write_locked():
            experiment = self._experiments.get(experiment_id)
            if experiment is None:
                raise ExperimentNotFoundError(f"experiment {experiment_id} not found")
            if not experiment.status.can_transition_to(status):
                raise InvalidTransitionError(
                    f"experiment {experiment_id} cannot move from {experiment.status.value} to {status.value}"
                )

            now = time.time()
            experiment.status = status
            if status == ExperimentStatus.RUNNING:
                experiment.started_at = now
            elif status.is_terminal:
                experiment.ended_at = now
                experiment.current_phase = None

        logger.info(f"Experiment {experiment_id} -> {status.value}")
        return experiment

    def set_phase(self, experiment_id: str, phase: ExperimentPhase) -> None:
        with self._lock.write_locked():
            experiment = self._experiments.get(experiment_id)
            if experiment is None:
                raise ExperimentNotFoundError(f"experiment {experiment_id} not found")
            experiment.current_phase = phase

    def set_results(self, experiment_id: str, results: ExperimentResults) -> None:
        with self._lock.write_locked():
            experiment = self._experiments.get(experiment_id)
            if experiment is None:
                raise ExperimentNotFoundError(f"experiment {experiment_id} not found")
            experiment.results = results

    def remove(self, experiment_id: str) -> bool:
        with self._lock.write_locked():
            return self._experiments.pop(experiment_id, None) is not None

    def __contains__(self, experiment_id: str) -> bool:
        with self._lock.read_locked():
            return experiment_id in self._experiments

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._experiments)
