"""
Core data models for the Chaos Orchestrator
"""
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union
from enum import Enum


class ExperimentStatus(Enum):
    """Lifecycle status of an experiment"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (ExperimentStatus.COMPLETED, ExperimentStatus.FAILED, ExperimentStatus.ABORTED)

    def can_transition_to(self, other: "ExperimentStatus") -> bool:
        """Status only moves forward: pending -> running -> terminal"""
        return other in _STATUS_TRANSITIONS.get(self, ())


_STATUS_TRANSITIONS = {
    ExperimentStatus.PENDING: (ExperimentStatus.RUNNING, ExperimentStatus.FAILED, ExperimentStatus.ABORTED),
    ExperimentStatus.RUNNING: (ExperimentStatus.COMPLETED, ExperimentStatus.FAILED, ExperimentStatus.ABORTED),
}


class ExperimentPhase(Enum):
    """Phases executed while an experiment is running, in order"""
    PREPARATION = "preparation"
    INJECTION = "injection"
    OBSERVATION = "observation"
    RECOVERY = "recovery"
    VALIDATION = "validation"
    CLEANUP = "cleanup"


PHASE_ORDER: List[ExperimentPhase] = list(ExperimentPhase)


class FaultCategory(Enum):
    """Broad family a fault type belongs to"""
    NETWORK = "network"
    SERVICE = "service"
    RESOURCE = "resource"
    DATABASE = "database"
    STORAGE = "storage"


class FaultType(Enum):
    """Types of faults that can be injected"""
    LATENCY = "latency"
    PARTITION = "partition"
    PACKET_LOSS = "packet_loss"
    ERROR = "error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    CPU_EXHAUSTION = "cpu_exhaustion"
    MEMORY_EXHAUSTION = "memory_exhaustion"
    DISK_EXHAUSTION = "disk_exhaustion"
    RESOURCE_EXHAUSTION = "resource_exhaustion"
    DATABASE_FAILURE = "database_failure"
    STORAGE_FAILURE = "storage_failure"
    CUSTOM = "custom"

    @property
    def category(self) -> Optional[FaultCategory]:
        return FAULT_CATEGORIES.get(self)


FAULT_CATEGORIES: Dict[FaultType, FaultCategory] = {
    FaultType.LATENCY: FaultCategory.NETWORK,
    FaultType.PARTITION: FaultCategory.NETWORK,
    FaultType.PACKET_LOSS: FaultCategory.NETWORK,
    FaultType.ERROR: FaultCategory.SERVICE,
    FaultType.SERVICE_UNAVAILABLE: FaultCategory.SERVICE,
    FaultType.TIMEOUT: FaultCategory.SERVICE,
    FaultType.CPU_EXHAUSTION: FaultCategory.RESOURCE,
    FaultType.MEMORY_EXHAUSTION: FaultCategory.RESOURCE,
    FaultType.DISK_EXHAUSTION: FaultCategory.RESOURCE,
    FaultType.RESOURCE_EXHAUSTION: FaultCategory.RESOURCE,
    FaultType.DATABASE_FAILURE: FaultCategory.DATABASE,
    FaultType.STORAGE_FAILURE: FaultCategory.STORAGE,
}


class Severity(Enum):
    """Severity of a fault, failure, observation or rule"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}


class TargetScope(Enum):
    """How broad the set of targeted entities is"""
    SINGLE_INSTANCE = "single_instance"
    MULTIPLE = "multiple"
    CLUSTER = "cluster"
    REGION = "region"


class PolicyRuleType(Enum):
    """Kinds of safety rules evaluated before an experiment is admitted"""
    BLAST_RADIUS = "blast_radius"
    TIME_WINDOW = "time_window"
    APPROVAL = "approval"
    FORBIDDEN_TARGET = "forbidden_target"


class PolicyAction(Enum):
    """What happens when a rule is violated"""
    ALLOW = "allow"
    DENY = "deny"
    REQUIRE_APPROVAL = "require_approval"
    LOG = "log"
    ALERT = "alert"


class PolicyEnforcement(Enum):
    """Whether violations block admission or are only reported"""
    STRICT = "strict"
    ADVISORY = "advisory"


class ObservationType(Enum):
    """Kinds of observations recorded during an experiment"""
    METRIC = "metric"
    LOG = "log"
    EVENT = "event"
    HEALTH = "health"


class InjectionFailurePolicy(Enum):
    """Behaviour when a single fault fails to inject"""
    CONTINUE = "continue"  # Best effort, keep injecting the remaining faults
    ABORT = "abort"  # Stop injecting and fail the experiment


class AdmissionPolicy(Enum):
    """Behaviour of the scheduler when every slot is taken"""
    REJECT = "reject"
    QUEUE = "queue"
    BLOCK = "block"


class CoordinationMode(Enum):
    """Temporal relationship among regional runs of one experiment"""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    PIPELINED = "pipelined"
    CONDITIONAL = "conditional"


# Fault parameter variants. Each variant is tied to the fault types it configures
# and validates its own values on construction.

@dataclass
class LatencyParameters:
    """Added network delay"""
    KIND: ClassVar[str] = "latency"
    delay: float = 0.1  # Seconds
    jitter: float = 0.0  # Seconds

    def __post_init__(self):
        if self.delay < 0:
            raise ValueError(f"Latency delay must be non-negative, got {self.delay}")
        if self.jitter < 0:
            raise ValueError(f"Latency jitter must be non-negative, got {self.jitter}")


@dataclass
class PartitionParameters:
    """Network partition between the target and a set of peers"""
    KIND: ClassVar[str] = "partition"
    peers: List[str] = field(default_factory=list)  # Empty isolates the target entirely
    direction: str = "both"  # "both", "inbound" or "outbound"

    def __post_init__(self):
        if self.direction not in ("both", "inbound", "outbound"):
            raise ValueError(f"Invalid partition direction: {self.direction}")


@dataclass
class PacketLossParameters:
    """Fraction of packets dropped"""
    KIND: ClassVar[str] = "packet_loss"
    loss_percentage: float = 10.0

    def __post_init__(self):
        _check_percentage("loss_percentage", self.loss_percentage)


@dataclass
class ErrorParameters:
    """Injected service errors"""
    KIND: ClassVar[str] = "error"
    error_rate: float = 0.5  # Fraction of requests failing, 0-1
    status_code: int = 500
    message: str = "injected error"

    def __post_init__(self):
        if not 0.0 <= self.error_rate <= 1.0:
            raise ValueError(f"Error rate must be between 0 and 1, got {self.error_rate}")
        if not 100 <= self.status_code <= 599:
            raise ValueError(f"Invalid status code: {self.status_code}")


@dataclass
class UnavailableParameters:
    """Service refusing requests"""
    KIND: ClassVar[str] = "service_unavailable"
    reject_percentage: float = 100.0

    def __post_init__(self):
        _check_percentage("reject_percentage", self.reject_percentage)


@dataclass
class TimeoutParameters:
    """Requests hanging until the caller gives up"""
    KIND: ClassVar[str] = "timeout"
    timeout: float = 30.0  # Seconds a request is held
    affected_percentage: float = 100.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        _check_percentage("affected_percentage", self.affected_percentage)


@dataclass
class ResourceParameters:
    """CPU, memory or disk pressure"""
    KIND: ClassVar[str] = "resource"
    resource: str = "cpu"  # "cpu", "memory" or "disk"
    utilization: float = 80.0  # Target percentage
    workers: int = 1

    def __post_init__(self):
        if self.resource not in ("cpu", "memory", "disk"):
            raise ValueError(f"Invalid resource: {self.resource}")
        _check_percentage("utilization", self.utilization)
        if self.workers < 1:
            raise ValueError(f"Workers must be at least 1, got {self.workers}")


@dataclass
class DataFaultParameters:
    """Database or storage operations failing"""
    KIND: ClassVar[str] = "data"
    failure_rate: float = 1.0
    operations: List[str] = field(default_factory=list)  # Empty affects every operation

    def __post_init__(self):
        if not 0.0 <= self.failure_rate <= 1.0:
            raise ValueError(f"Failure rate must be between 0 and 1, got {self.failure_rate}")


@dataclass
class CustomParameters:
    """Free-form parameters for fault types handled by external injectors"""
    KIND: ClassVar[str] = "custom"
    values: Dict[str, Any] = field(default_factory=dict)


FaultParameters = Union[
    LatencyParameters, PartitionParameters, PacketLossParameters, ErrorParameters,
    UnavailableParameters, TimeoutParameters, ResourceParameters, DataFaultParameters,
    CustomParameters,
]

PARAMETER_TYPES: Dict[FaultType, type] = {
    FaultType.LATENCY: LatencyParameters,
    FaultType.PARTITION: PartitionParameters,
    FaultType.PACKET_LOSS: PacketLossParameters,
    FaultType.ERROR: ErrorParameters,
    FaultType.SERVICE_UNAVAILABLE: UnavailableParameters,
    FaultType.TIMEOUT: TimeoutParameters,
    FaultType.CPU_EXHAUSTION: ResourceParameters,
    FaultType.MEMORY_EXHAUSTION: ResourceParameters,
    FaultType.DISK_EXHAUSTION: ResourceParameters,
    FaultType.RESOURCE_EXHAUSTION: ResourceParameters,
    FaultType.DATABASE_FAILURE: DataFaultParameters,
    FaultType.STORAGE_FAILURE: DataFaultParameters,
    FaultType.CUSTOM: CustomParameters,
}

_DEFAULT_RESOURCE = {
    FaultType.CPU_EXHAUSTION: "cpu",
    FaultType.MEMORY_EXHAUSTION: "memory",
    FaultType.DISK_EXHAUSTION: "disk",
}


def _check_percentage(name: str, value: float) -> None:
    if not 0.0 <= value <= 100.0:
        raise ValueError(f"{name} must be between 0 and 100, got {value}")


def default_parameters(fault_type: FaultType) -> FaultParameters:
    """Build the default parameter variant for a fault type"""
    if fault_type in _DEFAULT_RESOURCE:
        return ResourceParameters(resource=_DEFAULT_RESOURCE[fault_type])
    return PARAMETER_TYPES[fault_type]()


def parameters_from_dict(fault_type: FaultType, data: Optional[Dict[str, Any]]) -> FaultParameters:
    """Build the parameter variant matching a fault type from a plain mapping"""
    if not data:
        return default_parameters(fault_type)
    values = {k: v for k, v in data.items() if k != 'kind'}
    param_type = PARAMETER_TYPES[fault_type]
    if param_type is CustomParameters and 'values' not in values:
        return CustomParameters(values=values)
    if fault_type in _DEFAULT_RESOURCE:
        values.setdefault('resource', _DEFAULT_RESOURCE[fault_type])
    try:
        return param_type(**values)
    except TypeError as e:
        raise ValueError(f"Invalid parameters for {fault_type.value} fault: {e}")


@dataclass
class RecoveryConfig:
    """How a fault is removed and recovery verified"""
    automatic: bool = True
    timeout: Optional[float] = None  # Overrides the configured max recovery time
    retry_attempts: int = 3
    retry_delay: float = 1.0
    rollback: bool = True
    health_checks: List[str] = field(default_factory=list)


@dataclass
class FaultDefinition:
    """A single fault to inject as part of an experiment"""
    id: str
    type: FaultType
    severity: Severity = Severity.MEDIUM
    parameters: Optional[FaultParameters] = None
    duration: float = 60.0
    probability: float = 1.0
    enabled: bool = True
    recovery: Optional[RecoveryConfig] = None
    name: str = ""

    def __post_init__(self):
        if self.parameters is None:
            self.parameters = default_parameters(self.type)
        expected = PARAMETER_TYPES[self.type]
        if not isinstance(self.parameters, expected):
            raise ValueError(
                f"Fault {self.id}: {self.type.value} faults take {expected.__name__}, "
                f"got {type(self.parameters).__name__}"
            )
        if self.duration < 0:
            raise ValueError(f"Fault {self.id}: duration must be non-negative")
        if not 0.0 <= self.probability <= 1.0:
            raise ValueError(f"Fault {self.id}: probability must be between 0 and 1")

    @property
    def category(self) -> Optional[FaultCategory]:
        return self.type.category


@dataclass
class ExperimentTarget:
    """The entity faults are applied to"""
    type: str
    name: str
    identifier: str = ""
    scope: TargetScope = TargetScope.SINGLE_INSTANCE
    selector: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    namespace: str = ""
    percentage: Optional[float] = None  # Share of the fleet affected, 0-100

    def __post_init__(self):
        if self.percentage is not None:
            _check_percentage("percentage", self.percentage)

    @property
    def key(self) -> str:
        return self.identifier or self.name


@dataclass
class Observation:
    """Something recorded while an experiment runs"""
    timestamp: float
    type: ObservationType
    severity: Severity = Severity.LOW
    source: str = ""
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExperimentFailure:
    """A failure recorded during an experiment"""
    timestamp: float
    type: str  # "injection", "removal", "recovery", "execution"
    severity: Severity
    message: str
    fault_id: Optional[str] = None
    component: str = ""


@dataclass
class RecoveryResult:
    """Outcome of the recovery phase"""
    attempted: bool = False
    successful: bool = False
    duration: float = 0.0
    method: str = "automatic"
    errors: List[str] = field(default_factory=list)


@dataclass
class BlastRadius:
    """Estimated scope and severity of an experiment's impact"""
    scope: str
    severity: Severity
    impact: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExperimentResults:
    """Complete record of one experiment run"""
    experiment_id: str
    status: ExperimentStatus
    start_time: float
    end_time: Optional[float] = None
    duration: float = 0.0
    summary: str = ""
    hypothesis_valid: bool = True
    observations: List[Observation] = field(default_factory=list)
    failures: List[ExperimentFailure] = field(default_factory=list)
    recovery: Optional[RecoveryResult] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    phases: List[ExperimentPhase] = field(default_factory=list)
    resilience_score: Optional[float] = None
    blast_radius: Optional[BlastRadius] = None

    def has_critical_failure(self) -> bool:
        return any(f.severity == Severity.CRITICAL for f in self.failures)


@dataclass
class Experiment:
    """A planned, time-boxed fault injection exercise"""
    id: str
    name: str
    target: ExperimentTarget
    faults: List[FaultDefinition] = field(default_factory=list)
    hypothesis: str = ""
    description: str = ""
    duration: float = 300.0
    timeout: Optional[float] = None  # Falls back to the configured default timeout
    approved_by: Optional[str] = None
    status: ExperimentStatus = ExperimentStatus.PENDING
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    current_phase: Optional[ExperimentPhase] = None
    results: Optional[ExperimentResults] = None
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def enabled_faults(self) -> List[FaultDefinition]:
        return [f for f in self.faults if f.enabled]

    def effective_timeout(self, default_timeout: float) -> float:
        return self.timeout if self.timeout is not None else default_timeout


@dataclass
class PolicyRule:
    """A single safety rule"""
    id: str
    type: PolicyRuleType
    name: str = ""
    condition: str = ""
    action: PolicyAction = PolicyAction.DENY
    severity: Severity = Severity.HIGH
    enabled: bool = True
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChaosPolicy:
    """A named set of safety rules"""
    id: str
    name: str
    rules: List[PolicyRule] = field(default_factory=list)
    enforcement: PolicyEnforcement = PolicyEnforcement.STRICT
    description: str = ""


@dataclass
class PolicyDecision:
    """Admission decision for an experiment under a policy"""
    allowed: bool
    violations: List[str] = field(default_factory=list)
    requires_approval: bool = False
    blast_radius: Optional[BlastRadius] = None
    denied_by: List[str] = field(default_factory=list)  # Rule ids


@dataclass
class FaultStatus:
    """Current state of an injected fault"""
    fault_id: str
    active: bool = False
    start_time: Optional[float] = None
    duration: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RecoveryThresholds:
    """Limits a system must meet to count as recovered"""
    max_recovery_time: float = 300.0
    min_success_rate: float = 0.95
    max_error_rate: float = 0.05
    max_latency_increase: float = 2.0


@dataclass
class ChaosMetrics:
    """Operational metrics gathered around an experiment"""
    total_operations: int = 0
    successful_ops: int = 0
    failed_ops: int = 0
    average_latency: float = 0.0
    error_rate: float = 0.0
    throughput: float = 0.0
    recovery_time: float = 0.0
    resource_usage: Dict[str, float] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_operations == 0:
            return 1.0
        return self.successful_ops / self.total_operations


@dataclass
class ExperimentProgress:
    """Point-in-time view of a running experiment"""
    experiment_id: str
    status: ExperimentStatus
    phase: Optional[ExperimentPhase] = None
    progress: float = 0.0  # 0-1
    elapsed: float = 0.0
    active_faults: List[str] = field(default_factory=list)
    failure_count: int = 0


@dataclass
class ExperimentReport:
    """Analysis of a finished experiment, handed to report exporters"""
    experiment_id: str
    experiment_name: str
    status: ExperimentStatus
    generated_at: float
    resilience_score: float
    hypothesis_valid: bool
    summary: str
    impact: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    blast_radius: Optional[BlastRadius] = None
    recovery: Optional[RecoveryResult] = None
    failure_count: int = 0
    results: Optional[ExperimentResults] = None
