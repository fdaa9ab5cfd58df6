"""
Conversion of experiment and result records to and from plain dictionaries

Every field survives a round trip, including timestamps, durations and the
tagged fault parameter variants, so records can be stored as JSON.
"""
from dataclasses import asdict
from typing import Any, Dict, Optional
from .models import (
    BlastRadius, ChaosPolicy, Experiment, ExperimentFailure, ExperimentPhase,
    ExperimentResults, ExperimentStatus, ExperimentTarget, FaultDefinition,
    FaultParameters, FaultType, Observation, ObservationType, PolicyAction,
    PolicyEnforcement, PolicyRule, PolicyRuleType, RecoveryConfig, RecoveryResult,
    Severity, TargetScope, parameters_from_dict
)


def parameters_to_dict(parameters: FaultParameters) -> Dict[str, Any]:
    data = asdict(parameters)
    data['kind'] = parameters.KIND
    return data


def recovery_config_to_dict(config: Optional[RecoveryConfig]) -> Optional[Dict[str, Any]]:
    if config is None:
        return None
    return {
        'automatic': config.automatic,
        'timeout': config.timeout,
        'retry_attempts': config.retry_attempts,
        'retry_delay': config.retry_delay,
        'rollback': config.rollback,
        'health_checks': list(config.health_checks),
    }


def recovery_config_from_dict(data: Optional[Dict[str, Any]]) -> Optional[RecoveryConfig]:
    if data is None:
        return None
    return RecoveryConfig(
        automatic=data.get('automatic', True),
        timeout=data.get('timeout'),
        retry_attempts=data.get('retry_attempts', 3),
        retry_delay=data.get('retry_delay', 1.0),
        rollback=data.get('rollback', True),
        health_checks=list(data.get('health_checks', [])),
    )


def fault_to_dict(fault: FaultDefinition) -> Dict[str, Any]:
    return {
        'id': fault.id,
        'name': fault.name,
        'type': fault.type.value,
        'severity': fault.severity.value,
        'parameters': parameters_to_dict(fault.parameters),
        'duration': fault.duration,
        'probability': fault.probability,
        'enabled': fault.enabled,
        'recovery': recovery_config_to_dict(fault.recovery),
    }


def fault_from_dict(data: Dict[str, Any]) -> FaultDefinition:
    fault_type = FaultType(data['type'])
    return FaultDefinition(
        id=data['id'],
        name=data.get('name', ''),
        type=fault_type,
        severity=Severity(data.get('severity', Severity.MEDIUM.value)),
        parameters=parameters_from_dict(fault_type, data.get('parameters')),
        duration=data.get('duration', 60.0),
        probability=data.get('probability', 1.0),
        enabled=data.get('enabled', True),
        recovery=recovery_config_from_dict(data.get('recovery')),
    )


def target_to_dict(target: ExperimentTarget) -> Dict[str, Any]:
    return {
        'type': target.type,
        'name': target.name,
        'identifier': target.identifier,
        'scope': target.scope.value,
        'selector': dict(target.selector),
        'labels': dict(target.labels),
        'namespace': target.namespace,
        'percentage': target.percentage,
    }


def target_from_dict(data: Dict[str, Any]) -> ExperimentTarget:
    return ExperimentTarget(
        type=data.get('type', ''),
        name=data['name'],
        identifier=data.get('identifier', ''),
        scope=TargetScope(data.get('scope', TargetScope.SINGLE_INSTANCE.value)),
        selector=dict(data.get('selector') or {}),
        labels=dict(data.get('labels') or {}),
        namespace=data.get('namespace', ''),
        percentage=data.get('percentage'),
    )


def observation_to_dict(observation: Observation) -> Dict[str, Any]:
    return {
        'timestamp': observation.timestamp,
        'type': observation.type.value,
        'severity': observation.severity.value,
        'source': observation.source,
        'message': observation.message,
        'data': dict(observation.data),
    }


def observation_from_dict(data: Dict[str, Any]) -> Observation:
    return Observation(
        timestamp=data['timestamp'],
        type=ObservationType(data['type']),
        severity=Severity(data.get('severity', Severity.LOW.value)),
        source=data.get('source', ''),
        message=data.get('message', ''),
        data=dict(data.get('data') or {}),
    )


def failure_to_dict(failure: ExperimentFailure) -> Dict[str, Any]:
    return {
        'timestamp': failure.timestamp,
        'type': failure.type,
        'severity': failure.severity.value,
        'message': failure.message,
        'fault_id': failure.fault_id,
        'component': failure.component,
    }


def failure_from_dict(data: Dict[str, Any]) -> ExperimentFailure:
    return ExperimentFailure(
        timestamp=data['timestamp'],
        type=data['type'],
        severity=Severity(data['severity']),
        message=data['message'],
        fault_id=data.get('fault_id'),
        component=data.get('component', ''),
    )


def recovery_result_to_dict(recovery: Optional[RecoveryResult]) -> Optional[Dict[str, Any]]:
    if recovery is None:
        return None
    return {
        'attempted': recovery.attempted,
        'successful': recovery.successful,
        'duration': recovery.duration,
        'method': recovery.method,
        'errors': list(recovery.errors),
    }


def recovery_result_from_dict(data: Optional[Dict[str, Any]]) -> Optional[RecoveryResult]:
    if data is None:
        return None
    return RecoveryResult(
        attempted=data.get('attempted', False),
        successful=data.get('successful', False),
        duration=data.get('duration', 0.0),
        method=data.get('method', 'automatic'),
        errors=list(data.get('errors', [])),
    )


def blast_radius_to_dict(blast_radius: Optional[BlastRadius]) -> Optional[Dict[str, Any]]:
    if blast_radius is None:
        return None
    return {
        'scope': blast_radius.scope,
        'severity': blast_radius.severity.value,
        'impact': dict(blast_radius.impact),
    }


def blast_radius_from_dict(data: Optional[Dict[str, Any]]) -> Optional[BlastRadius]:
    if data is None:
        return None
    return BlastRadius(
        scope=data['scope'],
        severity=Severity(data['severity']),
        impact=dict(data.get('impact') or {}),
    )


def results_to_dict(results: ExperimentResults) -> Dict[str, Any]:
    return {
        'experiment_id': results.experiment_id,
        'status': results.status.value,
        'start_time': results.start_time,
        'end_time': results.end_time,
        'duration': results.duration,
        'summary': results.summary,
        'hypothesis_valid': results.hypothesis_valid,
        'observations': [observation_to_dict(o) for o in results.observations],
        'failures': [failure_to_dict(f) for f in results.failures],
        'recovery': recovery_result_to_dict(results.recovery),
        'metrics': dict(results.metrics),
        'recommendations': list(results.recommendations),
        'phases': [p.value for p in results.phases],
        'resilience_score': results.resilience_score,
        'blast_radius': blast_radius_to_dict(results.blast_radius),
    }


def results_from_dict(data: Dict[str, Any]) -> ExperimentResults:
    return ExperimentResults(
        experiment_id=data['experiment_id'],
        status=ExperimentStatus(data['status']),
        start_time=data['start_time'],
        end_time=data.get('end_time'),
        duration=data.get('duration', 0.0),
        summary=data.get('summary', ''),
        hypothesis_valid=data.get('hypothesis_valid', True),
        observations=[observation_from_dict(o) for o in data.get('observations', [])],
        failures=[failure_from_dict(f) for f in data.get('failures', [])],
        recovery=recovery_result_from_dict(data.get('recovery')),
        metrics=dict(data.get('metrics') or {}),
        recommendations=list(data.get('recommendations', [])),
        phases=[ExperimentPhase(p) for p in data.get('phases', [])],
        resilience_score=data.get('resilience_score'),
        blast_radius=blast_radius_from_dict(data.get('blast_radius')),
    )


def experiment_to_dict(experiment: Experiment) -> Dict[str, Any]:
    return {
        'id': experiment.id,
        'name': experiment.name,
        'description': experiment.description,
        'target': target_to_dict(experiment.target),
        'faults': [fault_to_dict(f) for f in experiment.faults],
        'hypothesis': experiment.hypothesis,
        'duration': experiment.duration,
        'timeout': experiment.timeout,
        'approved_by': experiment.approved_by,
        'status': experiment.status.value,
        'created_at': experiment.created_at,
        'started_at': experiment.started_at,
        'ended_at': experiment.ended_at,
        'current_phase': experiment.current_phase.value if experiment.current_phase else None,
        'results': results_to_dict(experiment.results) if experiment.results else None,
        'tags': list(experiment.tags),
        'metadata': dict(experiment.metadata),
    }


def experiment_from_dict(data: Dict[str, Any]) -> Experiment:
    kwargs: Dict[str, Any] = {}
    if data.get('created_at') is not None:
        kwargs['created_at'] = data['created_at']

    return Experiment(
        id=data['id'],
        name=data['name'],
        description=data.get('description', ''),
        target=target_from_dict(data['target']),
        faults=[fault_from_dict(f) for f in data.get('faults', [])],
        hypothesis=data.get('hypothesis', ''),
        duration=data.get('duration', 300.0),
        timeout=data.get('timeout'),
        approved_by=data.get('approved_by'),
        status=ExperimentStatus(data.get('status', ExperimentStatus.PENDING.value)),
        started_at=data.get('started_at'),
        ended_at=data.get('ended_at'),
        current_phase=ExperimentPhase(data['current_phase']) if data.get('current_phase') else None,
        results=results_from_dict(data['results']) if data.get('results') else None,
        tags=list(data.get('tags', [])),
        metadata=dict(data.get('metadata') or {}),
        **kwargs
    )


def policy_to_dict(policy: ChaosPolicy) -> Dict[str, Any]:
    return {
        'id': policy.id,
        'name': policy.name,
        'description': policy.description,
        'enforcement': policy.enforcement.value,
        'rules': [
            {
                'id': rule.id,
                'name': rule.name,
                'type': rule.type.value,
                'condition': rule.condition,
                'action': rule.action.value,
                'severity': rule.severity.value,
                'enabled': rule.enabled,
                'parameters': dict(rule.parameters),
            }
            for rule in policy.rules
        ],
    }


def policy_from_dict(data: Dict[str, Any]) -> ChaosPolicy:
    return ChaosPolicy(
        id=data['id'],
        name=data.get('name', data['id']),
        description=data.get('description', ''),
        enforcement=PolicyEnforcement(data.get('enforcement', PolicyEnforcement.STRICT.value)),
        rules=[
            PolicyRule(
                id=rule['id'],
                name=rule.get('name', ''),
                type=PolicyRuleType(rule['type']),
                condition=rule.get('condition', ''),
                action=PolicyAction(rule.get('action', PolicyAction.DENY.value)),
                severity=Severity(rule.get('severity', Severity.HIGH.value)),
                enabled=rule.get('enabled', True),
                parameters=dict(rule.get('parameters') or {}),
            )
            for rule in data.get('rules', [])
        ],
    )
