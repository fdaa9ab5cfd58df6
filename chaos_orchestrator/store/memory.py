"""In-process experiment store"""
import copy
import threading
from typing import Dict, List, Optional
from ..interfaces import IExperimentStore
from ..models import Experiment, ExperimentResults


class InMemoryExperimentStore(IExperimentStore):
    """Keeps copies of records in dictionaries"""

    def __init__(self):
        self._experiments: Dict[str, Experiment] = {}
        self._results: Dict[str, ExperimentResults] = {}
        self._lock = threading.Lock()

    def save_experiment(self, experiment: Experiment) -> None:
        with self._lock:
            self._experiments[experiment.id] = copy.deepcopy(experiment)

    def load_experiment(self, experiment_id: str) -> Optional[Experiment]:
        with self._lock:
            experiment = self._experiments.get(experiment_id)
            return copy.deepcopy(experiment) if experiment is not None else None

    def save_results(self, results: ExperimentResults) -> None:
        with self._lock:
            self._results[results.experiment_id] = copy.deepcopy(results)

    def load_results(self, experiment_id: str) -> Optional[ExperimentResults]:
        with self._lock:
            results = self._results.get(experiment_id)
            return copy.deepcopy(results) if results is not None else None

    def list_experiment_ids(self) -> List[str]:
        with self._lock:
            return list(self._experiments.keys())

    def delete(self, experiment_id: str) -> bool:
        with self._lock:
            removed = self._experiments.pop(experiment_id, None) is not None
            self._results.pop(experiment_id, None)
        return removed
