"""
Engine configuration and loading from YAML or JSON files
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import yaml
from .models import AdmissionPolicy, InjectionFailurePolicy, RecoveryThresholds
from .utils.durations import parse_duration


@dataclass
class StoreConfig:
    """Where experiment and result records are persisted"""
    backend: str = "memory"  # "memory" or "valkey"
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    key_prefix: str = "chaos"
    ttl: Optional[float] = None  # Seconds, None keeps records until deleted


@dataclass
class ChaosEngineeringConfig:
    """Configuration for the chaos engineering framework"""
    environment: str = "development"
    safety_mode: bool = True
    max_concurrent_experiments: int = 10
    default_timeout: float = 1800.0
    monitoring_interval: float = 30.0
    retention_period: float = 7 * 86400.0
    forbidden_targets: List[str] = field(default_factory=list)
    injection_failure_policy: InjectionFailurePolicy = InjectionFailurePolicy.CONTINUE
    admission_policy: AdmissionPolicy = AdmissionPolicy.REJECT
    admission_timeout: float = 30.0
    drop_rejected: bool = False
    recovery_thresholds: RecoveryThresholds = field(default_factory=RecoveryThresholds)
    recovery_poll_interval: float = 1.0
    cluster_max_blast_percentage: float = 10.0
    log_dir: Optional[str] = None
    store: StoreConfig = field(default_factory=StoreConfig)
    seed: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.max_concurrent_experiments < 1:
            raise ValueError("max_concurrent_experiments must be at least 1")
        if self.monitoring_interval <= 0:
            raise ValueError("monitoring_interval must be positive")
        if self.recovery_poll_interval <= 0:
            raise ValueError("recovery_poll_interval must be positive")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChaosEngineeringConfig":
        """Build a config from a plain mapping; durations accept "30m" style strings"""
        data = dict(data or {})
        kwargs: Dict[str, Any] = {}

        for key in ('environment', 'log_dir', 'metadata'):
            if key in data:
                kwargs[key] = data[key]
        for key in ('safety_mode', 'drop_rejected'):
            if key in data:
                kwargs[key] = bool(data[key])
        for key in ('max_concurrent_experiments', 'seed'):
            if data.get(key) is not None:
                kwargs[key] = int(data[key])
        for key in ('default_timeout', 'monitoring_interval', 'retention_period',
                    'admission_timeout', 'recovery_poll_interval'):
            if key in data:
                kwargs[key] = parse_duration(data[key])
        if 'cluster_max_blast_percentage' in data:
            kwargs['cluster_max_blast_percentage'] = float(data['cluster_max_blast_percentage'])
        if 'forbidden_targets' in data:
            kwargs['forbidden_targets'] = [str(t) for t in data['forbidden_targets'] or []]
        if 'injection_failure_policy' in data:
            kwargs['injection_failure_policy'] = InjectionFailurePolicy(data['injection_failure_policy'])
        if 'admission_policy' in data:
            kwargs['admission_policy'] = AdmissionPolicy(data['admission_policy'])

        thresholds = data.get('recovery_thresholds') or data.get('recovery')
        if thresholds:
            kwargs['recovery_thresholds'] = RecoveryThresholds(
                max_recovery_time=parse_duration(thresholds.get('max_recovery_time', 300.0)),
                min_success_rate=float(thresholds.get('min_success_rate', 0.95)),
                max_error_rate=float(thresholds.get('max_error_rate', 0.05)),
                max_latency_increase=float(thresholds.get('max_latency_increase', 2.0)),
            )

        store = data.get('store')
        if store:
            ttl = store.get('ttl')
            kwargs['store'] = StoreConfig(
                backend=store.get('backend', 'memory'),
                host=store.get('host', 'localhost'),
                port=int(store.get('port', 6379)),
                db=int(store.get('db', 0)),
                key_prefix=store.get('key_prefix', 'chaos'),
                ttl=parse_duration(ttl) if ttl is not None else None,
            )

        return cls(**kwargs)


def load_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load configuration from YAML or JSON file"""
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, 'r') as f:
        if path.suffix in ['.yaml', '.yml']:
            return yaml.safe_load(f) or {}
        elif path.suffix == '.json':
            return json.load(f)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")


def load_config(config_path: Optional[Union[str, Path]] = None) -> ChaosEngineeringConfig:
    """Load an engine config file, or defaults when no path is given"""
    if config_path is None:
        return ChaosEngineeringConfig()
    return ChaosEngineeringConfig.from_dict(load_config_file(config_path))
