"""
Chaos Engine - Admission, execution and analysis of chaos experiments
"""
from .policy_engine import SafetyPolicyEngine
from .recovery_validator import RecoveryValidator
from .registry import ExperimentRegistry
from .executor import ExperimentExecutor
from .scheduler import ChaosScheduler
from .distributed import (
    DistributedCoordinator, DistributedExperimentSpec, DistributedResult,
    PhaseGate, RegionManager, RegionResult, RegionStatus
)
from .experiment_logger import ExperimentLogger
from .error_handler import ErrorHandler
from .framework import ChaosEngineeringFramework
from .dsl_utils import ExperimentLoader, ExperimentValidator

__all__ = [
    'ChaosEngineeringFramework',
    'SafetyPolicyEngine',
    'RecoveryValidator',
    'ExperimentRegistry',
    'ExperimentExecutor',
    'ChaosScheduler',
    'DistributedCoordinator',
    'DistributedExperimentSpec',
    'DistributedResult',
    'PhaseGate',
    'RegionManager',
    'RegionResult',
    'RegionStatus',
    'ExperimentLogger',
    'ErrorHandler',
    'ExperimentLoader',
    'ExperimentValidator',
]
