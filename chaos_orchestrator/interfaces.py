"""
Base interfaces and abstract classes for all major components
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
from .models import (
    Experiment, ExperimentReport, ExperimentResults, ExperimentTarget,
    FaultDefinition, FaultStatus
)


# A health check returns None when healthy and raises when it is not
HealthCheck = Callable[[], None]

# A monitor returns the numeric metrics observed for a running experiment
Monitor = Callable[[Experiment], Dict[str, Any]]


class IFaultInjector(ABC):
    """Interface for applying and removing faults"""

    @abstractmethod
    def inject(self, fault: FaultDefinition, target: ExperimentTarget) -> None:
        """Inject a fault; re-injecting the same fault id updates it"""
        pass

    @abstractmethod
    def remove(self, fault: FaultDefinition, target: ExperimentTarget) -> None:
        """Remove a fault; unknown or inactive fault ids are a no-op"""
        pass

    @abstractmethod
    def status(self, fault: FaultDefinition, target: ExperimentTarget) -> FaultStatus:
        """Report fault status; unknown fault ids are reported inactive"""
        pass


class IFaultBackend(ABC):
    """Interface for infrastructure adapters that perform the actual perturbation"""

    @abstractmethod
    def apply(self, fault: FaultDefinition, target: ExperimentTarget) -> None:
        """Apply the fault to the infrastructure"""
        pass

    @abstractmethod
    def revert(self, fault: FaultDefinition, target: ExperimentTarget) -> None:
        """Undo the fault on the infrastructure"""
        pass

    @abstractmethod
    def probe(self, fault: FaultDefinition, target: ExperimentTarget) -> Dict[str, Any]:
        """Return backend-side details about an applied fault"""
        pass


class IExperimentStore(ABC):
    """Interface for persisting experiment and result records"""

    @abstractmethod
    def save_experiment(self, experiment: Experiment) -> None:
        """Persist an experiment record"""
        pass

    @abstractmethod
    def load_experiment(self, experiment_id: str) -> Optional[Experiment]:
        """Load an experiment record, or None if unknown"""
        pass

    @abstractmethod
    def save_results(self, results: ExperimentResults) -> None:
        """Persist the results of a run"""
        pass

    @abstractmethod
    def load_results(self, experiment_id: str) -> Optional[ExperimentResults]:
        """Load the results of a run, or None if unknown"""
        pass

    @abstractmethod
    def list_experiment_ids(self) -> List[str]:
        """List ids of every stored experiment"""
        pass

    @abstractmethod
    def delete(self, experiment_id: str) -> bool:
        """Delete an experiment and its results"""
        pass


class IReportExporter(ABC):
    """Interface for report renderers living outside the engine"""

    @abstractmethod
    def export(self, report: ExperimentReport) -> None:
        """Render or ship a finished report"""
        pass
