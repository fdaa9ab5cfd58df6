"""
Main entry point for the Chaos Orchestrator
"""
from typing import List, Optional
from .config import ChaosEngineeringConfig
from .engine import ChaosEngineeringFramework, ExperimentLoader
from .exceptions import ValidationError
from .models import ChaosPolicy, ExperimentReport, ExperimentResults


class ChaosOrchestrator:
    """Runs experiment definition files through the chaos engineering framework"""

    def __init__(self, config: Optional[ChaosEngineeringConfig] = None):
        self.framework = ChaosEngineeringFramework(config)

    def load_policy(self, policy_path: Optional[str]) -> Optional[ChaosPolicy]:
        if policy_path is None:
            return None
        return ExperimentLoader.load_policy_from_file(policy_path)

    def run_file(self, experiment_path: str, policy_path: Optional[str] = None) -> ExperimentResults:
        """
        Load an experiment definition and run it to completion.
        """
        experiment = ExperimentLoader.load_from_file(experiment_path)
        policy = self.load_policy(policy_path)
        return self.framework.run_experiment(experiment, policy=policy)

    def validate_file(self, experiment_path: str, policy_path: Optional[str] = None) -> List[str]:
        """
        Load an experiment definition and return every structural and policy violation.
        """
        experiment = ExperimentLoader.load_from_file(experiment_path)
        policy = self.load_policy(policy_path)

        violations = []
        try:
            self.framework.policy_engine.validate_structure(experiment, self.framework.config.forbidden_targets)
        except ValidationError as e:
            violations.extend(e.violations)

        if policy is not None:
            violations.extend(self.framework.validate_policy(experiment, policy))
        return violations

    def report(self, results: ExperimentResults) -> ExperimentReport:
        return self.framework.generate_report(results)

    def shutdown(self):
        self.framework.shutdown()
