"""
Resilience scoring and result analysis

Pure functions over experiments and their results: resilience score, blast
radius, hypothesis check, impact metrics, summary and recommendations.
"""
from typing import Any, Dict, List, Optional, Tuple
from ..models import (
    BlastRadius, Experiment, ExperimentResults, FaultCategory, FaultDefinition,
    ObservationType, Severity
)

BASE_SCORE = 100.0
FAILURE_PENALTY = 10.0
INVALID_HYPOTHESIS_PENALTY = 20.0
FAILED_RECOVERY_PENALTY = 15.0

BLAST_RADIUS_TABLE: Dict[FaultCategory, Tuple[str, Severity]] = {
    FaultCategory.NETWORK: ("network", Severity.MEDIUM),
    FaultCategory.SERVICE: ("service", Severity.HIGH),
    FaultCategory.DATABASE: ("data", Severity.HIGH),
    FaultCategory.STORAGE: ("data", Severity.HIGH),
    FaultCategory.RESOURCE: ("infrastructure", Severity.MEDIUM),
}
DEFAULT_BLAST_RADIUS: Tuple[str, Severity] = ("service", Severity.LOW)

GOOD_RESILIENCE = "System shows good resilience characteristics"
ADD_FAULT_TOLERANCE = "Consider implementing additional fault tolerance measures"


def calculate_resilience_score(results: ExperimentResults) -> float:
    """Score results from 0 to 100"""
    score = BASE_SCORE
    score -= FAILURE_PENALTY * len(results.failures)
    if not results.hypothesis_valid:
        score -= INVALID_HYPOTHESIS_PENALTY
    if results.recovery is not None and results.recovery.attempted and not results.recovery.successful:
        score -= FAILED_RECOVERY_PENALTY
    return max(0.0, min(BASE_SCORE, score))


def blast_radius_for(category: Optional[FaultCategory]) -> Tuple[str, Severity]:
    return BLAST_RADIUS_TABLE.get(category, DEFAULT_BLAST_RADIUS)


def generate_blast_radius(experiment: Experiment) -> BlastRadius:
    """Classify the potential impact of an experiment.

    Each enabled fault maps to a (scope, severity) pair through a fixed table;
    the most severe pair wins, the earliest fault breaking ties.
    """
    faults = experiment.enabled_faults() or experiment.faults
    chosen: Optional[FaultDefinition] = None
    scope, severity = DEFAULT_BLAST_RADIUS

    for fault in faults:
        fault_scope, fault_severity = blast_radius_for(fault.category)
        if chosen is None or fault_severity.rank > severity.rank:
            chosen = fault
            scope, severity = fault_scope, fault_severity

    return BlastRadius(
        scope=scope,
        severity=severity,
        impact={
            'target_name': experiment.target.name,
            'fault_type': chosen.type.value if chosen else None,
            'duration': experiment.duration,
            'namespace': experiment.target.namespace,
        }
    )


def validate_hypothesis(results: ExperimentResults) -> bool:
    """The hypothesis holds unless a critical failure was recorded"""
    return not results.has_critical_failure()


def calculate_impact(results: ExperimentResults) -> Dict[str, Any]:
    """Average every numeric field across metric observations"""
    totals: Dict[str, float] = {}
    counts: Dict[str, int] = {}

    for observation in results.observations:
        if observation.type != ObservationType.METRIC:
            continue
        for key, value in observation.data.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            totals[key] = totals.get(key, 0.0) + float(value)
            counts[key] = counts.get(key, 0) + 1

    impact: Dict[str, Any] = {f"avg_{key}": totals[key] / counts[key] for key in totals}
    impact['failure_count'] = len(results.failures)
    impact['recovery_successful'] = results.recovery is not None and results.recovery.successful
    return impact


def generate_summary(experiment: Experiment, results: ExperimentResults) -> str:
    summary = f"Experiment '{experiment.name}' {results.status.value}"

    if results.hypothesis_valid:
        summary += ". Hypothesis validated"
    else:
        summary += ". Hypothesis invalidated"

    if results.recovery is not None and results.recovery.successful:
        summary += ". System recovery completed successfully"
    elif results.recovery is not None and results.recovery.attempted:
        summary += ". System recovery did not complete"

    if results.failures:
        summary += f". {len(results.failures)} failure(s) recorded"

    return summary


def generate_recommendations(experiment: Experiment, results: ExperimentResults) -> List[str]:
    recommendations = []

    if not results.failures and results.recovery is not None and results.recovery.successful:
        recommendations.append(GOOD_RESILIENCE)

    if results.failures:
        recommendations.append(ADD_FAULT_TOLERANCE)

    if results.recovery is not None and results.recovery.attempted and not results.recovery.successful:
        recommendations.append("Review health checks and recovery automation; the system did not recover in time")

    if not results.hypothesis_valid:
        recommendations.append(f"Revisit the hypothesis '{experiment.hypothesis}' against the critical failures observed")

    error_rate = results.metrics.get('avg_error_rate')
    if isinstance(error_rate, float) and error_rate > 0.05:
        recommendations.append("Error rate rose under fault; consider retries, circuit breakers or fallbacks")

    return recommendations
