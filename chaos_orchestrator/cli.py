#!/usr/bin/env python3
"""
Command-line interface for the Chaos Orchestrator
Provides commands for running experiment files, validating them against policies,
and scoring saved results.
"""
import sys
import argparse
import json
import yaml
import traceback
import logging
from pathlib import Path
from typing import Any, Dict, List
from datetime import datetime
from .config import load_config, load_config_file
from .engine.scoring import calculate_resilience_score
from .main import ChaosOrchestrator
from .models import ExperimentReport, ExperimentStatus
from .serialization import blast_radius_to_dict, recovery_result_to_dict, results_from_dict, results_to_dict


class ChaosCLI:
    """Command-line interface for the Chaos Orchestrator"""

    def __init__(self):
        self.orchestrator = None

    def _orchestrator(self, config_path=None) -> ChaosOrchestrator:
        if self.orchestrator is None:
            self.orchestrator = ChaosOrchestrator(load_config(config_path))
        return self.orchestrator

    def run_experiment(self, args) -> int:
        """Execute an experiment definition file"""
        self._print_header(f"Experiment: {args.file}")

        if not Path(args.file).exists():
            print(f"Error: Experiment file not found: {args.file}")
            print(f"\nMake sure the file path is correct.")
            print(f"Example: chaos-orchestrator run examples/service_latency.yaml")
            return 1

        if args.config:
            try:
                orchestrator = self._orchestrator(args.config)
                print(f"Loaded configuration from {args.config}")
            except Exception as e:
                print(f"Error: Failed to load config file: {e}")
                print(f"\nConfig file must be YAML (.yaml, .yml) or JSON (.json)")
                return 1
        else:
            orchestrator = self._orchestrator()

        try:
            results = orchestrator.run_file(args.file, args.policy)
            report = orchestrator.report(results)

            if args.verbose:
                self._print_detailed_report(report)
            else:
                self._print_summary_report(report)

            if args.output:
                self._save_results([report], args.output, args.format)

            return 0 if results.status == ExperimentStatus.COMPLETED and report.hypothesis_valid else 1

        except Exception as e:
            print(f"Error: Experiment failed: {e}")
            print(f"\nTry validating your experiment file first: chaos-orchestrator validate {args.file}")
            if args.verbose:
                traceback.print_exc()
            return 1
        finally:
            orchestrator.shutdown()

    def validate_experiment(self, args) -> int:
        """Validate an experiment definition file, optionally against a policy"""
        self._print_header(f"Validating Experiment: {args.file}")

        if not Path(args.file).exists():
            print(f"Error: Experiment file not found: {args.file}")
            print(f"\nMake sure the file path is correct.")
            print(f"Example: chaos-orchestrator validate examples/service_latency.yaml")
            return 1

        orchestrator = self._orchestrator()
        try:
            violations = orchestrator.validate_file(args.file, args.policy)
        except Exception as e:
            print(f"\nError: Validation failed: {e}")
            print(f"\nCheck your experiment file syntax. See examples in the examples/ directory.")
            if args.verbose:
                traceback.print_exc()
            return 1
        finally:
            orchestrator.shutdown()

        if violations:
            print("Violations:")
            for violation in violations:
                print(f"  - {violation}")
            print(f"\n{len(violations)} violation(s) found")
            return 1

        print("Experiment definition is valid!")
        return 0

    def score_results(self, args) -> int:
        """Recompute resilience scores from a saved results file"""
        self._print_header(f"Scoring Results: {args.file}")

        try:
            data = load_config_file(args.file)
            entries = data.get('results', [data]) if isinstance(data, dict) else data
            for entry in entries:
                results = results_from_dict(entry.get('results', entry))
                score = calculate_resilience_score(results)
                print(f"{results.experiment_id}: {score:.0f} "
                      f"({results.status.value}, {len(results.failures)} failure(s), "
                      f"hypothesis {'valid' if results.hypothesis_valid else 'invalid'})")
            return 0
        except Exception as e:
            print(f"Error: Failed to score results: {e}")
            if args.verbose:
                traceback.print_exc()
            return 1

    def _print_header(self, title: str):
        """Print formatted header"""
        print()
        print("=" * 80)
        print(title)
        print("=" * 80)
        print()

    def _print_summary_report(self, report: ExperimentReport):
        """Print summary of an experiment report"""
        results = report.results
        print(f"\nExperiment: {report.experiment_name} ({report.experiment_id})")
        print(f"Status: {report.status.value.upper()}")
        if results is not None:
            print(f"Duration: {results.duration:.2f}s")
        print(f"Resilience Score: {report.resilience_score:.0f}/100")
        print(f"Hypothesis: {'VALID' if report.hypothesis_valid else 'INVALID'}")
        print(f"Failures: {report.failure_count}")

        if report.blast_radius:
            print(f"Blast Radius: {report.blast_radius.scope} ({report.blast_radius.severity.value})")

        if report.recovery:
            recovery = "SUCCEEDED" if report.recovery.successful else "FAILED"
            print(f"Recovery: {recovery} in {report.recovery.duration:.2f}s")

        print(f"\n{report.summary}")

    def _print_detailed_report(self, report: ExperimentReport):
        """Print detailed report when --verbose flag is specified"""
        self._print_summary_report(report)

        results = report.results
        if results is not None and results.failures:
            print("\nFailures:")
            for failure in results.failures:
                fault = f" [{failure.fault_id}]" if failure.fault_id else ""
                print(f"  [{failure.severity.value.upper()}] {failure.type}{fault}: {failure.message}")

        if report.recovery and report.recovery.errors:
            print("\nRecovery Errors:")
            for error in report.recovery.errors:
                print(f"  • {error}")

        if report.impact:
            print("\nImpact:")
            for key, value in report.impact.items():
                print(f"  {key}: {value}")

        if report.recommendations:
            print("\nRecommendations:")
            for recommendation in report.recommendations:
                print(f"  • {recommendation}")

    def _save_results(self, reports: List[ExperimentReport], output_path: str, format: str):
        """Save experiment reports to file"""
        try:
            output = Path(output_path)
            output.parent.mkdir(parents=True, exist_ok=True)

            data = {
                'timestamp': datetime.now().isoformat(),
                'total_experiments': len(reports),
                'completed': sum(1 for r in reports if r.status == ExperimentStatus.COMPLETED),
                'results': [self._report_to_dict(r) for r in reports]
            }

            with open(output, 'w') as f:
                if format == 'json':
                    json.dump(data, f, indent=2)
                elif format == 'yaml':
                    yaml.dump(data, f, default_flow_style=False)

            print(f"\nResults saved to {output_path}")

        except Exception as e:
            print(f"\nFailed to save results: {e}")

    def _report_to_dict(self, report: ExperimentReport) -> Dict[str, Any]:
        """Convert ExperimentReport to dictionary"""
        return {
            'experiment_id': report.experiment_id,
            'experiment_name': report.experiment_name,
            'status': report.status.value,
            'generated_at': report.generated_at,
            'resilience_score': report.resilience_score,
            'hypothesis_valid': report.hypothesis_valid,
            'summary': report.summary,
            'impact': report.impact,
            'recommendations': report.recommendations,
            'blast_radius': blast_radius_to_dict(report.blast_radius),
            'recovery': recovery_result_to_dict(report.recovery),
            'failure_count': report.failure_count,
            'results': results_to_dict(report.results) if report.results else None,
        }


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog='chaos-orchestrator',
        description='Chaos Orchestrator - Run fault injection experiments under safety policy',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run an experiment
  chaos-orchestrator run examples/service_latency.yaml

  # Run under a safety policy and save the report
  chaos-orchestrator run examples/service_latency.yaml --policy policy.yaml --output report.json

  # Validate an experiment against a policy
  chaos-orchestrator validate examples/service_latency.yaml --policy policy.yaml

  # Recompute scores from a saved report
  chaos-orchestrator score report.json
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version='Chaos Orchestrator 0.1.0'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Run command
    run_parser = subparsers.add_parser(
        'run',
        help='Run an experiment definition file'
    )
    run_parser.add_argument(
        'file',
        help='Path to experiment YAML file'
    )
    run_parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration file (YAML or JSON)'
    )
    run_parser.add_argument(
        '--policy',
        type=str,
        help='Path to safety policy YAML file'
    )
    run_parser.add_argument(
        '--output',
        type=str,
        help='Path to save the experiment report'
    )
    run_parser.add_argument(
        '--format',
        choices=['json', 'yaml'],
        default='json',
        help='Output format for results (default: json)'
    )
    run_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    # Validate command
    validate_parser = subparsers.add_parser(
        'validate',
        help='Validate an experiment definition file'
    )
    validate_parser.add_argument(
        'file',
        help='Path to experiment YAML file'
    )
    validate_parser.add_argument(
        '--policy',
        type=str,
        help='Path to safety policy YAML file'
    )
    validate_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    # Score command
    score_parser = subparsers.add_parser(
        'score',
        help='Recompute resilience scores from a saved results file'
    )
    score_parser.add_argument(
        'file',
        help='Path to results file (JSON or YAML)'
    )
    score_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def main(argv=None):
    """Main entry point for CLI"""

    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s',
        handlers=[logging.StreamHandler()]
    )

    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        print("Error: No command specified\n")
        parser.print_help()
        print("\nCommon commands:")
        print("  chaos-orchestrator run <experiment.yaml>        # Run an experiment")
        print("  chaos-orchestrator validate <experiment.yaml>   # Validate an experiment")
        return 1

    cli = ChaosCLI()

    try:
        if args.command == 'run':
            return cli.run_experiment(args)
        elif args.command == 'validate':
            return cli.validate_experiment(args)
        elif args.command == 'score':
            return cli.score_results(args)
    except KeyboardInterrupt:
        print("\n\nChaos Orchestrator process was interrupted by user")
        return 130
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        if hasattr(args, 'verbose') and args.verbose:
            traceback.print_exc()
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
