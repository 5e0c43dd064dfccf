"""Round-robin packing: instances are dealt to containers in turn."""

import logging
from typing import Any, Mapping

from heron_submit.errors import ConfigurationError
from heron_submit.plugins.base import ContainerPlan, InstancePlan, Packing, PackingPlan
from heron_submit.topology import TopologyDescriptor

logger = logging.getLogger(__name__)


NUM_CONTAINERS_KEY = "topology.stmgrs"


class RoundRobinPacking(Packing):
    """
    Packs every component instance into `topology.stmgrs` containers.

    Container ids start at 1. Task ids are assigned in component order,
    spouts first. Asking for more containers than there are instances
    leaves the surplus containers out of the plan.
    """

    def initialize(self, config: Mapping[str, Any]) -> None:
        self.config = config

    def pack(self, topology: TopologyDescriptor) -> PackingPlan:
        raw = topology.topology_config().get(NUM_CONTAINERS_KEY, 1)
        try:
            num_containers = int(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{NUM_CONTAINERS_KEY} must be an integer, got {raw!r}")
        if num_containers < 1:
            raise ConfigurationError(f"{NUM_CONTAINERS_KEY} must be at least 1")

        assignments: dict[int, list[InstancePlan]] = {
            cid: [] for cid in range(1, num_containers + 1)
        }
        task_id = 1
        for component, parallelism in topology.components().items():
            for index in range(parallelism):
                container_id = (task_id - 1) % num_containers + 1
                assignments[container_id].append(
                    InstancePlan(component=component, task_id=task_id, component_index=index)
                )
                task_id += 1

        containers = tuple(
            ContainerPlan(id=cid, instances=tuple(instances))
            for cid, instances in assignments.items()
            if instances
        )
        logger.debug(
            f"Packed {task_id - 1} instances of {topology.name} into {len(containers)} containers"
        )
        return PackingPlan(id=f"{topology.id}-packing", containers=containers)
