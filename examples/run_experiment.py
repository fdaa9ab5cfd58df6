#!/usr/bin/env python3
"""
Example script demonstrating how to use the Chaos Orchestrator
"""
import sys
import random
import argparse
from pathlib import Path

# Add the repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chaos_orchestrator import ChaosEngineeringConfig, ChaosOrchestrator, DistributedCoordinator
from chaos_orchestrator.engine import ChaosEngineeringFramework, DistributedExperimentSpec, ExperimentLoader, RegionManager
from chaos_orchestrator.models import CoordinationMode


def demo_config() -> ChaosEngineeringConfig:
    """Short intervals so the example finishes in seconds"""
    return ChaosEngineeringConfig(monitoring_interval=1.0, recovery_poll_interval=0.5, seed=7)


def run_experiment(experiment_file, policy_file=None):
    """Run a single experiment file"""
    print("=" * 80)
    print(f"Running Experiment: {experiment_file}")
    print("=" * 80)

    orchestrator = ChaosOrchestrator(demo_config())
    orchestrator.framework.register_monitor(
        "synthetic-traffic",
        lambda experiment: {'error_rate': random.uniform(0.0, 0.02), 'latency_ms': random.uniform(80, 120)}
    )
    orchestrator.framework.register_health_check("checkout", lambda: None)

    try:
        results = orchestrator.run_file(experiment_file, policy_file)
        report = orchestrator.report(results)
    finally:
        orchestrator.shutdown()

    print("\n" + "=" * 80)
    print("Experiment Results")
    print("=" * 80)
    print(f"Experiment ID: {report.experiment_id}")
    print(f"Status: {report.status.value}")
    print(f"Duration: {results.duration:.2f}s")
    print(f"Resilience Score: {report.resilience_score:.0f}")
    print(f"Hypothesis Valid: {report.hypothesis_valid}")
    print(f"Phases: {', '.join(p.value for p in results.phases)}")
    print(f"\n{report.summary}")
    for recommendation in report.recommendations:
        print(f"  - {recommendation}")

    return results


def run_distributed(experiment_file, regions):
    """Run an experiment file across regions, one framework per region"""
    print("=" * 80)
    print(f"Running Distributed Experiment: {experiment_file} in {', '.join(regions)}")
    print("=" * 80)

    experiment = ExperimentLoader.load_from_file(experiment_file)
    frameworks = {region: ChaosEngineeringFramework(demo_config()) for region in regions}
    coordinator = DistributedCoordinator({
        region: RegionManager(region, framework) for region, framework in frameworks.items()
    })

    try:
        result = coordinator.run(DistributedExperimentSpec(
            experiment=experiment,
            regions=list(regions),
            mode=CoordinationMode.PIPELINED
        ))
    finally:
        for framework in frameworks.values():
            framework.shutdown()

    print(f"\nOverall Status: {result.status.value}")
    print(f"Mean Resilience Score: {result.resilience_score:.1f}")
    for region, region_result in result.regions.items():
        print(f"  {region}: {region_result.status.value}")

    return result


def validate(experiment_file, policy_file=None):
    """Validate an experiment file against an optional policy"""
    orchestrator = ChaosOrchestrator(demo_config())
    try:
        violations = orchestrator.validate_file(experiment_file, policy_file)
    finally:
        orchestrator.shutdown()

    if violations:
        print("Violations:")
        for violation in violations:
            print(f"  - {violation}")
        return False

    print("Experiment definition is valid!")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Chaos Orchestrator - Run fault injection experiments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run an experiment
  python run_experiment.py run service_latency.yaml

  # Run under a policy
  python run_experiment.py run service_latency.yaml --policy safety_policy.yaml

  # Run across regions
  python run_experiment.py distributed service_latency.yaml --regions us-east eu-west

  # Validate an experiment file
  python run_experiment.py validate service_latency.yaml --policy safety_policy.yaml
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    run_parser = subparsers.add_parser('run', help='Run an experiment')
    run_parser.add_argument('file', help='Path to experiment YAML file')
    run_parser.add_argument('--policy', help='Path to policy YAML file')

    distributed_parser = subparsers.add_parser('distributed', help='Run an experiment across regions')
    distributed_parser.add_argument('file', help='Path to experiment YAML file')
    distributed_parser.add_argument('--regions', nargs='+', default=['us-east', 'eu-west'])

    validate_parser = subparsers.add_parser('validate', help='Validate an experiment file')
    validate_parser.add_argument('file', help='Path to experiment YAML file')
    validate_parser.add_argument('--policy', help='Path to policy YAML file')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'run':
        results = run_experiment(args.file, args.policy)
        return 0 if results.status.value == 'completed' else 1

    elif args.command == 'distributed':
        result = run_distributed(args.file, args.regions)
        return 0 if result.status.value == 'completed' else 1

    elif args.command == 'validate':
        return 0 if validate(args.file, args.policy) else 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
