"""
Fault Injectors - Apply and remove faults against targets

Components:
- BaseFaultInjector: Lock-protected active-fault table shared by all injectors
- NetworkFaultInjector: Latency, partitions and packet loss
- ServiceFaultInjector: Errors, unavailability and timeouts
- ResourceFaultInjector: CPU, memory and disk exhaustion
- InjectorRegistry: Resolves the injector for a fault
"""
from .base import ActiveFault, BaseFaultInjector
from .network import NetworkFaultInjector
from .service import ServiceFaultInjector
from .resource import ResourceFaultInjector
from .registry import InjectorRegistry, default_registry

__all__ = [
    'ActiveFault',
    'BaseFaultInjector',
    'NetworkFaultInjector',
    'ServiceFaultInjector',
    'ResourceFaultInjector',
    'InjectorRegistry',
    'default_registry',
]
