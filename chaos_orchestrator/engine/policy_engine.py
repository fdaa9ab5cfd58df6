"""
Safety Policy Engine - Evaluates admission rules against an experiment

Validation is pure: rules are evaluated independently, every applicable rule
contributes its violations, and nothing is mutated. Callers decide whether to
admit, deny or ask for approval, or use evaluate() for a ready-made decision.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from ..exceptions import ValidationError
from ..models import (
    ChaosPolicy, Experiment, PolicyAction, PolicyDecision, PolicyEnforcement,
    PolicyRule, PolicyRuleType, Severity, TargetScope
)
from .scoring import generate_blast_radius

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_MAX_PERCENTAGE = 10.0

_BROAD_SCOPES = (TargetScope.CLUSTER, TargetScope.REGION)


class SafetyPolicyEngine:
    """Checks experiments against safety policies before they run"""

    def __init__(self, cluster_max_percentage: float = DEFAULT_CLUSTER_MAX_PERCENTAGE):
        self.cluster_max_percentage = cluster_max_percentage
        self._checks: Dict[PolicyRuleType, Callable[[Experiment, PolicyRule, Optional[float]], List[str]]] = {
            PolicyRuleType.FORBIDDEN_TARGET: self._check_forbidden_target,
            PolicyRuleType.BLAST_RADIUS: self._check_blast_radius,
            PolicyRuleType.TIME_WINDOW: self._check_time_window,
            PolicyRuleType.APPROVAL: self._check_approval,
        }

    def validate(self, experiment: Experiment, policy: Optional[ChaosPolicy], at: Optional[float] = None) -> List[str]:
        """Return every violation of the policy's enabled rules"""
        return [message for _, message in self._collect(experiment, policy, at)]

    def evaluate(self, experiment: Experiment, policy: Optional[ChaosPolicy], at: Optional[float] = None) -> PolicyDecision:
        """Turn rule violations into an admission decision"""
        blast_radius = generate_blast_radius(experiment)
        decision = PolicyDecision(allowed=True, blast_radius=blast_radius)

        for rule, message in self._collect(experiment, policy, at):
            decision.violations.append(message)

            if rule.action == PolicyAction.DENY:
                decision.allowed = False
                decision.denied_by.append(rule.id)
            elif rule.action == PolicyAction.REQUIRE_APPROVAL:
                decision.requires_approval = True
                if not experiment.approved_by:
                    decision.allowed = False
                    decision.denied_by.append(rule.id)
            elif rule.action == PolicyAction.ALERT:
                logger.warning(f"Policy alert for experiment {experiment.id} ({rule.id}): {message}")
            else:
                logger.info(f"Policy note for experiment {experiment.id} ({rule.id}): {message}")

        if policy is not None and policy.enforcement == PolicyEnforcement.ADVISORY and not decision.allowed:
            logger.warning(f"Advisory policy {policy.id} would deny experiment {experiment.id}: {decision.violations}")
            decision.allowed = True
            decision.denied_by = []

        verdict = "admitted" if decision.allowed else "denied"
        logger.info(
            f"Experiment {experiment.id} {verdict} "
            f"(blast radius {blast_radius.scope}/{blast_radius.severity.value}, "
            f"{len(decision.violations)} violation(s))"
        )
        return decision

    def validate_structure(self, experiment: Experiment, forbidden_targets: Iterable[str] = ()) -> None:
        """Fail fast on the first structural problem, then on a forbidden target"""
        if not experiment.id:
            raise ValidationError("experiment ID is required")
        if not experiment.name:
            raise ValidationError("experiment name is required")
        if not experiment.faults:
            raise ValidationError("experiment must have at least one fault")

        for forbidden in forbidden_targets:
            if forbidden in (experiment.target.identifier, experiment.target.name):
                raise ValidationError(f"target {forbidden} is forbidden")

    def _collect(self, experiment: Experiment, policy: Optional[ChaosPolicy], at: Optional[float]) -> List[Tuple[PolicyRule, str]]:
        if policy is None:
            return []

        found = []
        for rule in policy.rules:
            if not rule.enabled:
                continue
            if rule.action == PolicyAction.ALLOW:
                continue
            check = self._checks.get(rule.type)
            if check is None:
                logger.debug(f"Skipping rule {rule.id}: no check for {rule.type}")
                continue
            for message in check(experiment, rule, at):
                found.append((rule, message))
        return found

    def _check_forbidden_target(self, experiment: Experiment, rule: PolicyRule, at: Optional[float]) -> List[str]:
        targets = rule.parameters.get('targets')
        if not isinstance(targets, (list, tuple, set)):
            logger.debug(f"Skipping rule {rule.id}: 'targets' parameter missing")
            return []

        target = experiment.target
        return [
            f"Target {forbidden} is forbidden"
            for forbidden in targets
            if forbidden in (target.identifier, target.name)
        ]

    def _check_blast_radius(self, experiment: Experiment, rule: PolicyRule, at: Optional[float]) -> List[str]:
        max_percentage = rule.parameters.get('max_percentage')
        if not _is_number(max_percentage):
            logger.debug(f"Skipping rule {rule.id}: 'max_percentage' parameter missing")
            return []

        target = experiment.target
        percentage = target.percentage
        if percentage is None:
            if target.scope not in _BROAD_SCOPES:
                return []
            percentage = 100.0

        threshold = float(max_percentage)
        if target.scope in _BROAD_SCOPES:
            cluster_max = rule.parameters.get('cluster_max_percentage', self.cluster_max_percentage)
            if _is_number(cluster_max):
                threshold = min(threshold, float(cluster_max))

        if percentage > threshold:
            return ["Experiment exceeds maximum blast radius percentage"]
        return []

    def _check_time_window(self, experiment: Experiment, rule: PolicyRule, at: Optional[float]) -> List[str]:
        violations = []

        max_duration = rule.parameters.get('max_duration')
        if _is_number(max_duration):
            if experiment.duration > float(max_duration):
                violations.append("Experiment duration exceeds policy limits")
        else:
            logger.debug(f"Rule {rule.id}: no 'max_duration' parameter")

        allowed_hours = rule.parameters.get('allowed_hours')
        if at is not None and _is_hour_range(allowed_hours):
            start, end = int(allowed_hours[0]), int(allowed_hours[1])
            hour = datetime.fromtimestamp(at).hour
            inside = start <= hour < end if start <= end else (hour >= start or hour < end)
            if not inside:
                violations.append("Experiment scheduled outside allowed window")

        return violations

    def _check_approval(self, experiment: Experiment, rule: PolicyRule, at: Optional[float]) -> List[str]:
        if experiment.approved_by:
            return []
        if any(f.severity == Severity.CRITICAL for f in experiment.enabled_faults()):
            return ["Critical severity experiments require approval"]
        return []


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_hour_range(value) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and all(_is_number(v) and 0 <= v <= 24 for v in value)
    )
