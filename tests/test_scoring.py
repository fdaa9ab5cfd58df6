"""
Tests for resilience scoring and result analysis
"""
import pytest
from chaos_orchestrator.engine.scoring import (
    ADD_FAULT_TOLERANCE, GOOD_RESILIENCE, calculate_impact, calculate_resilience_score,
    generate_blast_radius, generate_recommendations, generate_summary, validate_hypothesis
)
from chaos_orchestrator.models import (
    Experiment, ExperimentFailure, ExperimentResults, ExperimentStatus, ExperimentTarget,
    FaultDefinition, FaultType, Observation, ObservationType, RecoveryResult, Severity
)


def make_results(failures=0, hypothesis_valid=True, recovery=None) -> ExperimentResults:
    results = ExperimentResults(
        experiment_id="exp-1",
        status=ExperimentStatus.COMPLETED,
        start_time=0.0,
        hypothesis_valid=hypothesis_valid,
        recovery=recovery
    )
    for i in range(failures):
        results.failures.append(ExperimentFailure(timestamp=0.0, type="injection", severity=Severity.MEDIUM, message=f"failure {i}"))
    return results


def make_experiment(*fault_types, **kwargs) -> Experiment:
    return Experiment(
        id="exp-1",
        name="Checkout",
        target=ExperimentTarget(type="service", name="checkout", namespace="shop"),
        faults=[FaultDefinition(id=f"f{i}", type=t, **kwargs) for i, t in enumerate(fault_types)],
        duration=120.0,
        hypothesis="checkout stays available"
    )


class TestResilienceScore:
    """Test score deductions"""

    def test_clean_run_scores_full(self):
        assert calculate_resilience_score(make_results()) == 100.0

    def test_one_failure(self):
        assert calculate_resilience_score(make_results(failures=1)) == 90.0

    def test_invalid_hypothesis(self):
        assert calculate_resilience_score(make_results(hypothesis_valid=False)) == 80.0

    def test_failed_recovery(self):
        recovery = RecoveryResult(attempted=True, successful=False)
        assert calculate_resilience_score(make_results(recovery=recovery)) == 85.0

    def test_unattempted_recovery_not_penalised(self):
        assert calculate_resilience_score(make_results(recovery=RecoveryResult())) == 100.0

    def test_score_clamped_at_zero(self):
        recovery = RecoveryResult(attempted=True, successful=False)
        assert calculate_resilience_score(make_results(failures=12, hypothesis_valid=False, recovery=recovery)) == 0.0


class TestBlastRadius:
    """Test fault category to blast radius mapping"""

    @pytest.mark.parametrize("fault_type,scope,severity", [
        (FaultType.LATENCY, "network", Severity.MEDIUM),
        (FaultType.ERROR, "service", Severity.HIGH),
        (FaultType.DATABASE_FAILURE, "data", Severity.HIGH),
        (FaultType.STORAGE_FAILURE, "data", Severity.HIGH),
        (FaultType.CPU_EXHAUSTION, "infrastructure", Severity.MEDIUM),
        (FaultType.CUSTOM, "service", Severity.LOW),
    ])
    def test_mapping(self, fault_type, scope, severity):
        radius = generate_blast_radius(make_experiment(fault_type))
        assert radius.scope == scope
        assert radius.severity == severity

    def test_most_severe_fault_wins(self):
        radius = generate_blast_radius(make_experiment(FaultType.LATENCY, FaultType.ERROR))
        assert radius.scope == "service"
        assert radius.impact['fault_type'] == "error"

    def test_first_fault_breaks_ties(self):
        radius = generate_blast_radius(make_experiment(FaultType.LATENCY, FaultType.CPU_EXHAUSTION))
        assert radius.scope == "network"

    def test_impact_details(self):
        radius = generate_blast_radius(make_experiment(FaultType.LATENCY))
        assert radius.impact == {
            'target_name': "checkout",
            'fault_type': "latency",
            'duration': 120.0,
            'namespace': "shop",
        }

    def test_no_faults(self):
        radius = generate_blast_radius(make_experiment())
        assert (radius.scope, radius.severity) == ("service", Severity.LOW)
        assert radius.impact['fault_type'] is None


def test_hypothesis_fails_on_critical_failure():
    results = make_results(failures=2)
    assert validate_hypothesis(results)
    results.failures.append(ExperimentFailure(timestamp=0.0, type="execution", severity=Severity.CRITICAL, message="down"))
    assert not validate_hypothesis(results)


def test_impact_averages_metric_observations():
    results = make_results(recovery=RecoveryResult(attempted=True, successful=True))
    results.observations = [
        Observation(timestamp=0.0, type=ObservationType.METRIC, data={'error_rate': 0.1, 'latency_ms': 100}),
        Observation(timestamp=1.0, type=ObservationType.METRIC, data={'error_rate': 0.3, 'healthy': True}),
        Observation(timestamp=2.0, type=ObservationType.LOG, data={'error_rate': 5.0}),
    ]
    impact = calculate_impact(results)
    assert impact['avg_error_rate'] == pytest.approx(0.2)
    assert impact['avg_latency_ms'] == pytest.approx(100.0)
    assert 'avg_healthy' not in impact
    assert impact['failure_count'] == 0
    assert impact['recovery_successful'] is True


class TestSummaryAndRecommendations:
    """Test human-readable analysis"""

    def test_successful_summary(self):
        results = make_results(recovery=RecoveryResult(attempted=True, successful=True))
        summary = generate_summary(make_experiment(FaultType.LATENCY), results)
        assert summary == "Experiment 'Checkout' completed. Hypothesis validated. System recovery completed successfully"

    def test_failed_summary(self):
        results = make_results(failures=2, hypothesis_valid=False, recovery=RecoveryResult(attempted=True))
        summary = generate_summary(make_experiment(FaultType.LATENCY), results)
        assert "Hypothesis invalidated" in summary
        assert "did not complete" in summary
        assert "2 failure(s)" in summary

    def test_good_resilience(self):
        results = make_results(recovery=RecoveryResult(attempted=True, successful=True))
        assert generate_recommendations(make_experiment(FaultType.LATENCY), results) == [GOOD_RESILIENCE]

    def test_failures_recommend_fault_tolerance(self):
        recommendations = generate_recommendations(make_experiment(FaultType.LATENCY), make_results(failures=1))
        assert ADD_FAULT_TOLERANCE in recommendations
        assert GOOD_RESILIENCE not in recommendations

    def test_high_error_rate(self):
        results = make_results(recovery=RecoveryResult(attempted=True, successful=True))
        results.metrics['avg_error_rate'] = 0.2
        recommendations = generate_recommendations(make_experiment(FaultType.LATENCY), results)
        assert any("circuit breakers" in r for r in recommendations)
