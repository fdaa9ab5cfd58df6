"""Network fault injection: latency, partitions and packet loss"""
from typing import Any, Dict
from .base import BaseFaultInjector
from ..models import (
    ExperimentTarget, FaultCategory, FaultDefinition, FaultType,
    LatencyParameters, PacketLossParameters, PartitionParameters
)


class NetworkFaultInjector(BaseFaultInjector):
    """Injects network-level faults between a target and its peers"""

    name = "network"
    category = FaultCategory.NETWORK
    supported_types = frozenset({FaultType.LATENCY, FaultType.PARTITION, FaultType.PACKET_LOSS})

    def _describe_effect(self, fault: FaultDefinition, target: ExperimentTarget) -> Dict[str, Any]:
        params = fault.parameters
        if isinstance(params, LatencyParameters):
            return {
                'effect': 'latency',
                'delay_ms': params.delay * 1000.0,
                'jitter_ms': params.jitter * 1000.0,
            }
        if isinstance(params, PartitionParameters):
            return {
                'effect': 'partition',
                'peers': list(params.peers) or ['*'],
                'direction': params.direction,
            }
        if isinstance(params, PacketLossParameters):
            return {
                'effect': 'packet_loss',
                'loss_percentage': params.loss_percentage,
            }
        return {'effect': fault.type.value}
