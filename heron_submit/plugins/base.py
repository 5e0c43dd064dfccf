"""
Capability interfaces for pluggable collaborators.

Each collaborator role has an abstract base class:
- StateManager: distributed store tracking which topologies are running
- Uploader: moves the topology package into shared storage
- Launcher: registers and starts the topology on the cluster
- Packing: decides how component instances are placed into containers

Concrete implementations are selected through configuration and resolved
by the PluginRegistry; the submitter never names a concrete class.
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from heron_submit.topology import TopologyDescriptor


@dataclass(frozen=True)
class InstancePlan:
    """One component instance placed in a container."""
    component: str
    task_id: int
    component_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "task_id": self.task_id,
            "component_index": self.component_index,
        }


@dataclass(frozen=True)
class ContainerPlan:
    """A container and the instances assigned to it."""
    id: int
    instances: tuple[InstancePlan, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "instances": [i.to_dict() for i in self.instances]}


@dataclass(frozen=True)
class PackingPlan:
    """
    Placement of every component instance of a topology.

    Produced by a Packing strategy and consumed by the launcher. Opaque to
    the submitter.
    """
    id: str
    containers: tuple[ContainerPlan, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "containers": [c.to_dict() for c in self.containers]}

    def instance_count(self) -> int:
        return sum(len(c.instances) for c in self.containers)


class StateManager(ABC):
    """
    Abstract base class for state managers.

    The running check is asynchronous: it returns a Future that resolves
    to True when the topology is registered as running. Node setters and
    getters are synchronous and are used by launchers through the
    SchedulerStateManagerAdaptor.
    """

    @abstractmethod
    def initialize(self, config: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def is_topology_running(self, topology_name: str) -> "Future[bool]":
        pass

    @abstractmethod
    def set_topology(self, topology: Mapping[str, Any], topology_name: str) -> None:
        pass

    @abstractmethod
    def delete_topology(self, topology_name: str) -> None:
        pass

    @abstractmethod
    def get_topology(self, topology_name: str) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    def set_execution_state(self, state: Mapping[str, Any], topology_name: str) -> None:
        pass

    @abstractmethod
    def delete_execution_state(self, topology_name: str) -> None:
        pass

    @abstractmethod
    def get_execution_state(self, topology_name: str) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    def set_packing_plan(self, plan: Mapping[str, Any], topology_name: str) -> None:
        pass

    @abstractmethod
    def delete_packing_plan(self, topology_name: str) -> None:
        pass

    @abstractmethod
    def get_packing_plan(self, topology_name: str) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class Uploader(ABC):
    """
    Abstract base class for package uploaders.

    upload_package() returns a locator (URI) for the uploaded package, or
    None on failure. undo() must be a no-op when nothing was uploaded.
    """

    @abstractmethod
    def initialize(self, config: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def upload_package(self) -> Optional[str]:
        pass

    @abstractmethod
    def undo(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class Launcher(ABC):
    """
    Abstract base class for launchers.

    initialize() receives the static config and the per-attempt runtime
    context, which carries the topology, the package URI, the state manager
    adaptor and the packing instance. undo() must be a no-op when nothing
    was launched.
    """

    @abstractmethod
    def initialize(self, config: Mapping[str, Any], runtime: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def launch(self) -> bool:
        pass

    @abstractmethod
    def undo(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class Packing(ABC):
    """Abstract base class for packing strategies."""

    @abstractmethod
    def initialize(self, config: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def pack(self, topology: TopologyDescriptor) -> PackingPlan:
        pass

    def close(self) -> None:
        """Override if the strategy holds resources."""
        pass
