"""
DSL Utilities - Loading experiment and policy definitions from YAML
"""
import uuid
import yaml
from pathlib import Path
from typing import Any, Dict, List, Union
from ..models import (
    ChaosPolicy, Experiment, FaultType, PolicyAction, PolicyRuleType, Severity, TargetScope
)
from ..serialization import experiment_from_dict, experiment_to_dict, policy_from_dict, policy_to_dict
from ..utils.durations import parse_duration

# Parameter fields holding durations; they accept strings such as "200ms"
_DURATION_PARAMETERS = ('delay', 'jitter', 'timeout')
_DURATION_RULE_PARAMETERS = ('max_duration',)
_RUNTIME_FIELDS = ('status', 'started_at', 'ended_at', 'current_phase', 'results', 'created_at')


class ExperimentLoader:
    """Utility class for loading and saving experiment definitions"""

    @staticmethod
    def load_from_file(file_path: Union[str, Path]) -> Experiment:
        """Load an experiment from a YAML file."""
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Experiment file not found: {file_path}")

        with open(file_path, 'r') as f:
            text = f.read()

        try:
            return ExperimentLoader.load_from_string(text)
        except ValueError as e:
            raise ValueError(f"Error loading experiment file {file_path}: {e}")

    @staticmethod
    def load_from_string(text: str) -> Experiment:
        """Load an experiment from a YAML string."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax: {e}")

        if not isinstance(data, dict):
            raise ValueError("Experiment definition must be a mapping")
        data = data.get('experiment', data)

        errors = ExperimentValidator.validate_structure(data)
        if errors:
            raise ValueError("Invalid experiment definition: " + "; ".join(errors))

        return experiment_from_dict(ExperimentLoader._normalize(data))

    @staticmethod
    def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
        """Fill defaults and convert human-readable durations to seconds"""
        data = dict(data)
        data.setdefault('id', f"exp-{uuid.uuid4().hex[:8]}")
        data['id'] = str(data['id'])
        for key in ('duration', 'timeout'):
            if data.get(key) is not None:
                data[key] = parse_duration(data[key])

        faults = []
        for index, fault in enumerate(data.get('faults') or []):
            fault = dict(fault)
            fault.setdefault('id', f"fault-{index + 1}")
            fault['id'] = str(fault['id'])
            if fault.get('duration') is not None:
                fault['duration'] = parse_duration(fault['duration'])

            parameters = dict(fault.get('parameters') or {})
            for key in _DURATION_PARAMETERS:
                if key in parameters and fault['type'] != FaultType.CUSTOM.value:
                    parameters[key] = parse_duration(parameters[key])
            fault['parameters'] = parameters

            recovery = fault.get('recovery')
            if recovery is not None:
                recovery = dict(recovery)
                for key in ('timeout', 'retry_delay'):
                    if recovery.get(key) is not None:
                        recovery[key] = parse_duration(recovery[key])
                fault['recovery'] = recovery
            faults.append(fault)
        data['faults'] = faults

        for key in _RUNTIME_FIELDS:
            data.pop(key, None)
        return data

    @staticmethod
    def load_policy_from_file(file_path: Union[str, Path]) -> ChaosPolicy:
        """Load a safety policy from a YAML file."""
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Policy file not found: {file_path}")

        with open(file_path, 'r') as f:
            text = f.read()

        try:
            return ExperimentLoader.load_policy_from_string(text)
        except ValueError as e:
            raise ValueError(f"Error loading policy file {file_path}: {e}")

    @staticmethod
    def load_policy_from_string(text: str) -> ChaosPolicy:
        """Load a safety policy from a YAML string."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax: {e}")

        if not isinstance(data, dict):
            raise ValueError("Policy definition must be a mapping")
        data = data.get('policy', data)

        errors = ExperimentValidator.validate_policy(data)
        if errors:
            raise ValueError("Invalid policy definition: " + "; ".join(errors))

        rules = []
        for rule in data.get('rules') or []:
            rule = dict(rule)
            parameters = dict(rule.get('parameters') or {})
            for key in _DURATION_RULE_PARAMETERS:
                if key in parameters:
                    parameters[key] = parse_duration(parameters[key])
            rule['parameters'] = parameters
            rules.append(rule)

        return policy_from_dict({**data, 'id': str(data['id']), 'rules': rules})

    @staticmethod
    def save_experiment_as_yaml(experiment: Experiment, file_path: Union[str, Path]) -> None:
        """Save an experiment definition as YAML for reproducibility."""
        file_path = Path(file_path)

        data = experiment_to_dict(experiment)
        for key in _RUNTIME_FIELDS:
            data.pop(key, None)

        with open(file_path, 'w') as f:
            yaml.dump({'experiment': data}, f, default_flow_style=False, sort_keys=False)

    @staticmethod
    def save_policy_as_yaml(policy: ChaosPolicy, file_path: Union[str, Path]) -> None:
        with open(Path(file_path), 'w') as f:
            yaml.dump({'policy': policy_to_dict(policy)}, f, default_flow_style=False, sort_keys=False)


class ExperimentValidator:
    """Validator for experiment definitions with detailed error reporting"""

    @staticmethod
    def validate_structure(config_dict: dict) -> List[str]:
        """
        Validate the structure of an experiment definition dictionary.
        """
        errors = []

        for required in ('name', 'target', 'faults'):
            if required not in config_dict:
                errors.append(f"Missing required field: {required}")

        if 'target' in config_dict:
            errors.extend(ExperimentValidator._validate_target(config_dict['target']))

        if 'faults' in config_dict:
            faults = config_dict['faults']
            if not isinstance(faults, list):
                errors.append("faults must be a list")
            else:
                for i, fault in enumerate(faults):
                    errors.extend(ExperimentValidator._validate_fault(fault, i))

        for key in ('duration', 'timeout'):
            if config_dict.get(key) is not None:
                errors.extend(ExperimentValidator._validate_duration(config_dict[key], key))

        return errors

    @staticmethod
    def _validate_target(target) -> List[str]:
        errors = []
        if not isinstance(target, dict):
            return ["target must be a mapping"]

        if not target.get('name'):
            errors.append("target.name is required")

        scopes = [s.value for s in TargetScope]
        if 'scope' in target and target['scope'] not in scopes:
            errors.append(f"target.scope must be one of: {scopes}")

        percentage = target.get('percentage')
        if percentage is not None and (not isinstance(percentage, (int, float)) or not 0 <= percentage <= 100):
            errors.append("target.percentage must be a number between 0 and 100")

        return errors

    @staticmethod
    def _validate_fault(fault, index: int) -> List[str]:
        errors = []
        prefix = f"faults[{index}]"
        if not isinstance(fault, dict):
            return [f"{prefix} must be a mapping"]

        fault_types = [t.value for t in FaultType]
        if 'type' not in fault:
            errors.append(f"{prefix}.type is required")
        elif fault['type'] not in fault_types:
            errors.append(f"{prefix}.type must be one of: {fault_types}")

        severities = [s.value for s in Severity]
        if 'severity' in fault and fault['severity'] not in severities:
            errors.append(f"{prefix}.severity must be one of: {severities}")

        if fault.get('duration') is not None:
            errors.extend(ExperimentValidator._validate_duration(fault['duration'], f"{prefix}.duration"))

        probability = fault.get('probability')
        if probability is not None and (not isinstance(probability, (int, float)) or not 0 <= probability <= 1):
            errors.append(f"{prefix}.probability must be between 0 and 1")

        parameters = fault.get('parameters')
        if parameters is not None and not isinstance(parameters, dict):
            errors.append(f"{prefix}.parameters must be a mapping")

        return errors

    @staticmethod
    def _validate_duration(value, name: str) -> List[str]:
        try:
            parse_duration(value)
        except ValueError as e:
            return [f"{name}: {e}"]
        return []

    @staticmethod
    def validate_policy(config_dict: dict) -> List[str]:
        errors = []
        if 'id' not in config_dict:
            errors.append("Missing required field: id")

        rules = config_dict.get('rules') or []
        if not isinstance(rules, list):
            return errors + ["rules must be a list"]

        rule_types = [t.value for t in PolicyRuleType]
        actions = [a.value for a in PolicyAction]
        for i, rule in enumerate(rules):
            if not isinstance(rule, dict):
                errors.append(f"rules[{i}] must be a mapping")
                continue
            if 'id' not in rule:
                errors.append(f"rules[{i}].id is required")
            if rule.get('type') not in rule_types:
                errors.append(f"rules[{i}].type must be one of: {rule_types}")
            if 'action' in rule and rule['action'] not in actions:
                errors.append(f"rules[{i}].action must be one of: {actions}")

        return errors
