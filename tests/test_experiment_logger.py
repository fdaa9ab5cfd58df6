"""
Tests for per-experiment JSON logs
"""
import json
from chaos_orchestrator.engine.experiment_logger import ExperimentLogger
from chaos_orchestrator.models import (
    Experiment, ExperimentPhase, ExperimentResults, ExperimentStatus, ExperimentTarget,
    FaultDefinition, FaultType, RecoveryResult
)


def make_experiment() -> Experiment:
    return Experiment(
        id="exp-1",
        name="Payments partition",
        target=ExperimentTarget(type="service", name="payments"),
        faults=[FaultDefinition(id="split", type=FaultType.PARTITION)]
    )


def make_results(experiment_id="exp-1", status=ExperimentStatus.COMPLETED, score=100.0) -> ExperimentResults:
    return ExperimentResults(
        experiment_id=experiment_id,
        status=status,
        start_time=1700000000.0,
        end_time=1700000030.0,
        duration=30.0,
        summary=f"Experiment {experiment_id} {status.value}",
        recovery=RecoveryResult(attempted=True, successful=True, duration=1.5),
        resilience_score=score
    )


class TestExperimentLogger:
    """Test experiment log files"""

    def test_full_lifecycle_written(self, tmp_path):
        experiment_logger = ExperimentLogger(str(tmp_path))
        experiment = make_experiment()

        experiment_logger.log_experiment_start(experiment)
        experiment_logger.log_phase("exp-1", ExperimentPhase.PREPARATION)
        experiment_logger.log_fault_event("exp-1", experiment.faults[0], "inject", True)
        experiment_logger.log_fault_event("exp-1", experiment.faults[0], "remove", False, error="iptables busy")
        experiment_logger.log_error("exp-1", "removal failed", {'fault_id': "split"})
        experiment_logger.log_experiment_completion(make_results())

        log = json.loads((tmp_path / "exp-1.json").read_text())
        assert log['name'] == "Payments partition"
        assert log['definition']['faults'][0]['type'] == "partition"
        assert [p['phase'] for p in log['phases']] == ["preparation"]
        assert [(e['action'], e['success']) for e in log['fault_events']] == [("inject", True), ("remove", False)]
        assert log['fault_events'][1]['error'] == "iptables busy"
        assert log['errors'][0]['details'] == {'fault_id': "split"}
        assert log['status'] == "completed"
        assert log['resilience_score'] == 100.0
        assert log['recovery']['successful'] is True

    def test_events_for_unknown_experiment_ignored(self, tmp_path):
        experiment_logger = ExperimentLogger(str(tmp_path))
        experiment_logger.log_phase("ghost", ExperimentPhase.INJECTION)
        experiment_logger.log_experiment_completion(make_results("ghost"))

        assert experiment_logger.get_experiment_log("ghost") is None
        assert not (tmp_path / "ghost.json").exists()

    def test_get_all_logs_is_copy(self, tmp_path):
        experiment_logger = ExperimentLogger(str(tmp_path))
        experiment_logger.log_experiment_start(make_experiment())

        logs = experiment_logger.get_all_experiment_logs()
        logs.clear()
        assert experiment_logger.get_experiment_log("exp-1") is not None

    def test_generate_report(self, tmp_path):
        experiment_logger = ExperimentLogger(str(tmp_path))
        report = experiment_logger.generate_report([
            make_results("exp-1", score=90.0),
            make_results("exp-2", status=ExperimentStatus.FAILED, score=70.0),
        ])

        assert "Completed:          1 (50.0%)" in report
        assert "Average Score:      80.0" in report
        assert "FAILED    | exp-2" in report
        report_files = list(tmp_path.glob("report_*.txt"))
        assert len(report_files) == 1
        assert report_files[0].read_text() == report

    def test_empty_report(self, tmp_path):
        assert ExperimentLogger(str(tmp_path)).generate_report([]) == "No experiment results to report"
