"""Registry of named fault injector implementations"""
import logging
import threading
from typing import Dict, Iterator, Optional, Tuple, Union
from ..interfaces import IFaultInjector
from ..exceptions import InjectionError
from ..models import FaultCategory, FaultDefinition, FaultType
from .network import NetworkFaultInjector
from .resource import ResourceFaultInjector
from .service import ServiceFaultInjector

logger = logging.getLogger(__name__)

InjectorKey = Union[FaultCategory, FaultType]


class InjectorRegistry:
    """Resolves the injector responsible for a fault.

    Injectors are registered either for a whole fault category or for a single
    fault type. A type-specific registration wins over the category one, which
    lets infrastructure adapters override one kind of fault only.
    """

    def __init__(self):
        self._injectors: Dict[InjectorKey, IFaultInjector] = {}
        self._lock = threading.Lock()

    def register(self, key: InjectorKey, injector: IFaultInjector) -> None:
        with self._lock:
            previous = self._injectors.get(key)
            self._injectors[key] = injector
        if previous is not None and previous is not injector:
            logger.info(f"Replaced injector registered for {key.value}")

    def unregister(self, key: InjectorKey) -> Optional[IFaultInjector]:
        with self._lock:
            return self._injectors.pop(key, None)

    def get(self, key: InjectorKey) -> Optional[IFaultInjector]:
        with self._lock:
            return self._injectors.get(key)

    def resolve(self, fault: FaultDefinition) -> IFaultInjector:
        """Find the injector for a fault or raise InjectionError"""
        with self._lock:
            injector = self._injectors.get(fault.type)
            if injector is None and fault.category is not None:
                injector = self._injectors.get(fault.category)
        if injector is None:
            raise InjectionError(f"No injector registered for {fault.type.value} faults", fault_id=fault.id)
        return injector

    def items(self) -> Iterator[Tuple[str, IFaultInjector]]:
        with self._lock:
            entries = list(self._injectors.items())
        seen = set()
        for key, injector in entries:
            if id(injector) in seen:
                continue
            seen.add(id(injector))
            yield key.value, injector

    def __contains__(self, key: InjectorKey) -> bool:
        with self._lock:
            return key in self._injectors


def default_registry(backend=None) -> InjectorRegistry:
    """Registry with the built-in network, service and resource injectors"""
    registry = InjectorRegistry()
    registry.register(FaultCategory.NETWORK, NetworkFaultInjector(backend))
    registry.register(FaultCategory.SERVICE, ServiceFaultInjector(backend))
    registry.register(FaultCategory.RESOURCE, ResourceFaultInjector(backend))
    return registry
