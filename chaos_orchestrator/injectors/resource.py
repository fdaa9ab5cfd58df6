"""Resource fault injection: CPU, memory and disk exhaustion"""
from typing import Any, Dict
from .base import BaseFaultInjector
from ..exceptions import InjectionError
from ..models import ExperimentTarget, FaultCategory, FaultDefinition, FaultType, ResourceParameters

_TYPE_RESOURCES = {
    FaultType.CPU_EXHAUSTION: "cpu",
    FaultType.MEMORY_EXHAUSTION: "memory",
    FaultType.DISK_EXHAUSTION: "disk",
}


class ResourceFaultInjector(BaseFaultInjector):
    """Exhausts a compute resource on the target"""

    name = "resource"
    category = FaultCategory.RESOURCE
    supported_types = frozenset({
        FaultType.CPU_EXHAUSTION,
        FaultType.MEMORY_EXHAUSTION,
        FaultType.DISK_EXHAUSTION,
        FaultType.RESOURCE_EXHAUSTION,
    })

    def _describe_effect(self, fault: FaultDefinition, target: ExperimentTarget) -> Dict[str, Any]:
        params = fault.parameters
        if not isinstance(params, ResourceParameters):
            raise InjectionError(f"Fault {fault.id} has no resource parameters", fault_id=fault.id)

        expected = _TYPE_RESOURCES.get(fault.type)
        if expected is not None and params.resource != expected:
            raise InjectionError(
                f"Fault {fault.id} is a {fault.type.value} fault but targets {params.resource}",
                fault_id=fault.id
            )

        return {
            'effect': f"{params.resource}_exhaustion",
            'resource': params.resource,
            'utilization': params.utilization,
            'workers': params.workers,
        }
