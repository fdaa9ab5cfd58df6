"""
Valkey-backed experiment store

Records are stored as JSON strings under "<prefix>:experiment:<id>" and
"<prefix>:results:<id>", with experiment ids tracked in "<prefix>:experiments".
"""
import json
import logging
from typing import List, Optional
import valkey
from ..interfaces import IExperimentStore
from ..models import Experiment, ExperimentResults
from ..serialization import experiment_from_dict, experiment_to_dict, results_from_dict, results_to_dict

logger = logging.getLogger(__name__)


class ValkeyExperimentStore(IExperimentStore):
    """Persists experiment and result records in Valkey"""

    def __init__(
        self,
        client: Optional[valkey.Valkey] = None,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        key_prefix: str = "chaos",
        ttl: Optional[float] = None,
        timeout: float = 5.0
    ):
        self.client = client or valkey.Valkey(
            host=host,
            port=port,
            db=db,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True
        )
        self.key_prefix = key_prefix
        self.ttl = int(ttl) if ttl else None

    def _experiment_key(self, experiment_id: str) -> str:
        return f"{self.key_prefix}:experiment:{experiment_id}"

    def _results_key(self, experiment_id: str) -> str:
        return f"{self.key_prefix}:results:{experiment_id}"

    @property
    def _index_key(self) -> str:
        return f"{self.key_prefix}:experiments"

    def save_experiment(self, experiment: Experiment) -> None:
        payload = json.dumps(experiment_to_dict(experiment))
        self.client.set(self._experiment_key(experiment.id), payload, ex=self.ttl)
        self.client.sadd(self._index_key, experiment.id)
        logger.debug(f"Stored experiment {experiment.id} in Valkey")

    def load_experiment(self, experiment_id: str) -> Optional[Experiment]:
        payload = self.client.get(self._experiment_key(experiment_id))
        if payload is None:
            return None
        return experiment_from_dict(json.loads(payload))

    def save_results(self, results: ExperimentResults) -> None:
        payload = json.dumps(results_to_dict(results))
        self.client.set(self._results_key(results.experiment_id), payload, ex=self.ttl)
        logger.debug(f"Stored results for experiment {results.experiment_id} in Valkey")

    def load_results(self, experiment_id: str) -> Optional[ExperimentResults]:
        payload = self.client.get(self._results_key(experiment_id))
        if payload is None:
            return None
        return results_from_dict(json.loads(payload))

    def list_experiment_ids(self) -> List[str]:
        return sorted(self.client.smembers(self._index_key))

    def delete(self, experiment_id: str) -> bool:
        removed = self.client.delete(self._experiment_key(experiment_id), self._results_key(experiment_id))
        self.client.srem(self._index_key, experiment_id)
        return bool(removed)

    def close(self) -> None:
        self.client.close()
