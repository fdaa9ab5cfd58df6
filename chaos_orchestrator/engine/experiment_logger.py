"""
Experiment Logger - Per-experiment JSON logs of everything an experiment did
"""
import json
import time
import logging
import threading
from pathlib import Path
from typing import List, Dict, Any, Optional
from datetime import datetime
from ..models import Experiment, ExperimentPhase, ExperimentResults, FaultDefinition
from ..serialization import experiment_to_dict, recovery_result_to_dict


logger = logging.getLogger(__name__)


class ExperimentLogger:
    """
    Thread-safe experiment logging. Each experiment gets its own JSON file in
    log_dir, rewritten as phases, injections and errors are recorded.
    """

    def __init__(self, log_dir: str = "/tmp/chaos-orchestrator/logs"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.experiment_logs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def log_experiment_start(self, experiment: Experiment) -> None:
        """Log the start of an experiment with its full definition."""
        with self._lock:
            self.experiment_logs[experiment.id] = {
                'experiment_id': experiment.id,
                'name': experiment.name,
                'start_time': time.time(),
                'start_timestamp': datetime.now().isoformat(),
                'definition': experiment_to_dict(experiment),
                'phases': [],
                'fault_events': [],
                'errors': [],
                'status': 'running'
            }

            logger.info(
                f"Experiment {experiment.id} '{experiment.name}' started: "
                f"{len(experiment.faults)} fault(s) against {experiment.target.key}"
            )
            self._write_log_to_disk(experiment.id)

    def log_phase(self, experiment_id: str, phase: ExperimentPhase) -> None:
        """Log entry into a phase."""
        with self._lock:
            log = self.experiment_logs.get(experiment_id)
            if log is None:
                logger.warning(f"No active log for experiment {experiment_id}")
                return

            log['phases'].append({
                'phase': phase.value,
                'timestamp': time.time(),
                'datetime': datetime.now().isoformat()
            })
            self._write_log_to_disk(experiment_id)

    def log_fault_event(self, experiment_id: str, fault: FaultDefinition, action: str,
                        success: bool, error: Optional[str] = None) -> None:
        """Log an injection or removal attempt."""
        with self._lock:
            log = self.experiment_logs.get(experiment_id)
            if log is None:
                logger.warning(f"No active log for experiment {experiment_id}")
                return

            log['fault_events'].append({
                'fault_id': fault.id,
                'fault_type': fault.type.value,
                'action': action,
                'success': success,
                'error': error,
                'timestamp': time.time(),
                'datetime': datetime.now().isoformat()
            })
            self._write_log_to_disk(experiment_id)

    def log_error(self, experiment_id: str, error_message: str, error_details: Optional[Dict[str, Any]] = None) -> None:
        """Log an error that occurred during the experiment."""
        with self._lock:
            log = self.experiment_logs.get(experiment_id)
            if log is None:
                logger.warning(f"No active log for experiment {experiment_id}")
                return

            log['errors'].append({
                'timestamp': time.time(),
                'datetime': datetime.now().isoformat(),
                'message': error_message,
                'details': error_details or {}
            })
            self._write_log_to_disk(experiment_id)

    def log_experiment_completion(self, results: ExperimentResults) -> None:
        """Log the final outcome of an experiment."""
        with self._lock:
            log = self.experiment_logs.get(results.experiment_id)
            if log is None:
                logger.warning(f"No log found for experiment {results.experiment_id}")
                return

            log.update({
                'end_time': results.end_time,
                'end_timestamp': datetime.fromtimestamp(results.end_time).isoformat() if results.end_time else None,
                'duration': results.duration,
                'status': results.status.value,
                'hypothesis_valid': results.hypothesis_valid,
                'resilience_score': results.resilience_score,
                'failure_count': len(results.failures),
                'observation_count': len(results.observations),
                'recovery': recovery_result_to_dict(results.recovery),
                'summary': results.summary
            })

            logger.info(
                f"Experiment {results.experiment_id} finished: {results.status.value} "
                f"(duration: {results.duration:.2f}s, score: {results.resilience_score})"
            )
            self._write_log_to_disk(results.experiment_id)

    def generate_report(self, results: List[ExperimentResults]) -> str:
        """Generate a text summary of several experiment runs."""
        if not results:
            return "No experiment results to report"

        total = len(results)
        completed = sum(1 for r in results if r.status.value == 'completed')
        scores = [r.resilience_score for r in results if r.resilience_score is not None]
        avg_score = sum(scores) / len(scores) if scores else 0.0

        report_lines = [
            "=" * 80,
            "CHAOS ORCHESTRATOR - EXPERIMENT REPORT",
            "=" * 80,
            "",
            f"Experiments:        {total}",
            f"Completed:          {completed} ({completed / total * 100:.1f}%)",
            f"Average Score:      {avg_score:.1f}",
            "",
            "=" * 80,
            "EXPERIMENT DETAILS",
            "=" * 80,
            ""
        ]

        for result in results:
            report_lines.append(f"{result.status.value.upper():<9} | {result.experiment_id}")
            report_lines.append(
                f"          Duration: {result.duration:.2f}s | Failures: {len(result.failures)} | "
                f"Score: {result.resilience_score}"
            )
            if result.summary:
                report_lines.append(f"          {result.summary}")
            report_lines.append("")

        report_lines.append("=" * 80)
        report = "\n".join(report_lines)

        report_file = self.log_dir / f"report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"
        report_file.write_text(report)
        logger.info(f"Generated report: {report_file}")

        return report

    def _write_log_to_disk(self, experiment_id: str) -> None:
        """Write experiment log to disk as JSON"""
        log_file = self.log_dir / f"{experiment_id}.json"

        try:
            with open(log_file, 'w') as f:
                json.dump(self.experiment_logs[experiment_id], f, indent=2, default=str)
        except OSError as e:
            logger.error(f"Failed to write log to disk: {e}")

    def get_experiment_log(self, experiment_id: str) -> Optional[Dict[str, Any]]:
        """Get the log for a specific experiment, or None if not found."""
        with self._lock:
            return self.experiment_logs.get(experiment_id)

    def get_all_experiment_logs(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return self.experiment_logs.copy()
