"""Service fault injection: errors, unavailability and timeouts"""
from typing import Any, Dict
from .base import BaseFaultInjector
from ..models import (
    ErrorParameters, ExperimentTarget, FaultCategory, FaultDefinition, FaultType,
    TimeoutParameters, UnavailableParameters
)


class ServiceFaultInjector(BaseFaultInjector):
    """Injects application-level faults into a service"""

    name = "service"
    category = FaultCategory.SERVICE
    supported_types = frozenset({FaultType.ERROR, FaultType.SERVICE_UNAVAILABLE, FaultType.TIMEOUT})

    def _describe_effect(self, fault: FaultDefinition, target: ExperimentTarget) -> Dict[str, Any]:
        params = fault.parameters
        effect: Dict[str, Any] = {'service': target.name}
        if isinstance(params, ErrorParameters):
            effect.update({
                'effect': 'error',
                'error_rate': params.error_rate,
                'status_code': params.status_code,
                'message': params.message,
            })
        elif isinstance(params, UnavailableParameters):
            effect.update({
                'effect': 'unavailable',
                'reject_percentage': params.reject_percentage,
            })
        elif isinstance(params, TimeoutParameters):
            effect.update({
                'effect': 'timeout',
                'hold_seconds': params.timeout,
                'affected_percentage': params.affected_percentage,
            })
        else:
            effect['effect'] = fault.type.value
        return effect
