"""Base classes for Fault Injector components"""
import time
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional
from ..interfaces import IFaultInjector, IFaultBackend
from ..exceptions import FaultBackendError, InjectionError
from ..models import ExperimentTarget, FaultCategory, FaultDefinition, FaultStatus, FaultType

logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO, force=True)
logger = logging.getLogger(__name__)


@dataclass
class ActiveFault:
    """Entry in an injector's active-fault table"""
    fault: FaultDefinition
    target: ExperimentTarget
    start_time: float
    updated_at: float
    effect: Dict[str, Any] = field(default_factory=dict)
    injections: int = 1


class BaseFaultInjector(IFaultInjector, ABC):
    """Base implementation tracking active faults in a private, lock-protected table"""

    name: str = "base"
    category: Optional[FaultCategory] = None
    supported_types: FrozenSet[FaultType] = frozenset()

    def __init__(self, backend: Optional[IFaultBackend] = None):
        self.backend = backend
        self._active: Dict[str, ActiveFault] = {}
        self._lock = threading.RLock()

    def inject(self, fault: FaultDefinition, target: ExperimentTarget) -> None:
        """Inject a fault; re-injecting an active fault id refreshes its entry"""
        if fault.type not in self.supported_types:
            raise InjectionError(
                f"{self.name} injector does not support {fault.type.value} faults",
                fault_id=fault.id
            )

        effect = self._describe_effect(fault, target)

        with self._lock:
            if self.backend is not None:
                try:
                    self.backend.apply(fault, target)
                except Exception as e:
                    raise FaultBackendError(
                        f"Failed to apply {fault.type.value} fault {fault.id} on {target.key}: {e}",
                        fault_id=fault.id
                    ) from e

            now = time.time()
            existing = self._active.get(fault.id)
            if existing is not None:
                existing.fault = fault
                existing.target = target
                existing.effect = effect
                existing.updated_at = now
                existing.injections += 1
                logger.info(f"Updated active {fault.type.value} fault {fault.id} on {target.key}")
            else:
                self._active[fault.id] = ActiveFault(
                    fault=fault,
                    target=target,
                    start_time=now,
                    updated_at=now,
                    effect=effect
                )
                logger.info(f"Injected {fault.type.value} fault {fault.id} on {target.key}: {effect}")

    def remove(self, fault: FaultDefinition, target: ExperimentTarget) -> None:
        """Remove a fault; unknown or already removed fault ids are ignored"""
        with self._lock:
            entry = self._active.get(fault.id)
            if entry is None:
                logger.debug(f"Fault {fault.id} is not active on {self.name} injector, nothing to remove")
                return

            if self.backend is not None:
                try:
                    self.backend.revert(entry.fault, entry.target)
                except Exception as e:
                    raise FaultBackendError(
                        f"Failed to remove fault {fault.id} from {entry.target.key}: {e}",
                        fault_id=fault.id
                    ) from e

            del self._active[fault.id]
            now = time.time()
            logger.info(f"Removed fault {fault.id} from {entry.target.key} after {now - entry.start_time:.2f}s")

    def status(self, fault: FaultDefinition, target: ExperimentTarget) -> FaultStatus:
        """Report a fault's status; unknown fault ids are simply inactive"""
        with self._lock:
            entry = self._active.get(fault.id)
            if entry is None:
                return FaultStatus(fault_id=fault.id, active=False)
            start_time = entry.start_time
            details = dict(entry.effect)

        if self.backend is not None:
            try:
                details.update(self.backend.probe(fault, target))
            except Exception as e:
                raise FaultBackendError(
                    f"Failed to query status of fault {fault.id} on {target.key}: {e}",
                    fault_id=fault.id
                ) from e

        return FaultStatus(
            fault_id=fault.id,
            active=True,
            start_time=start_time,
            duration=time.time() - start_time,
            details=details
        )

    def discard(self, fault: FaultDefinition) -> bool:
        """Drop a fault from the table without touching the backend"""
        with self._lock:
            entry = self._active.pop(fault.id, None)
        if entry is not None:
            logger.warning(f"Discarded fault {fault.id} from {self.name} injector without backend revert")
        return entry is not None

    def active_fault_ids(self) -> List[str]:
        with self._lock:
            return list(self._active.keys())

    def is_active(self, fault_id: str) -> bool:
        with self._lock:
            return fault_id in self._active

    def cleanup_all(self) -> List[str]:
        """Remove every active fault, returning the ids that could not be removed"""
        with self._lock:
            entries = list(self._active.values())

        failed = []
        for entry in entries:
            try:
                self.remove(entry.fault, entry.target)
            except InjectionError as e:
                logger.error(f"Cleanup of fault {entry.fault.id} failed: {e}")
                failed.append(entry.fault.id)

        if entries:
            logger.info(f"{self.name} injector cleanup: {len(entries) - len(failed)}/{len(entries)} faults removed")
        return failed

    @abstractmethod
    def _describe_effect(self, fault: FaultDefinition, target: ExperimentTarget) -> Dict[str, Any]:
        """Describe the perturbation a fault applies, recorded in the active table"""
        pass
