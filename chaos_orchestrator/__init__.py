"""
Chaos Orchestrator - Safety-gated fault injection experiments

Experiments are admitted under safety policy, driven through a phased lifecycle
by the executor, validated for recovery and scored for resilience.
"""
from .config import ChaosEngineeringConfig, StoreConfig, load_config
from .engine import ChaosEngineeringFramework, DistributedCoordinator, ExperimentLoader
from .main import ChaosOrchestrator

__version__ = "0.1.0"

__all__ = [
    'ChaosEngineeringConfig',
    'StoreConfig',
    'load_config',
    'ChaosEngineeringFramework',
    'DistributedCoordinator',
    'ExperimentLoader',
    'ChaosOrchestrator',
]
