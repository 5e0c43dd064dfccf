"""
Plugins module for submission collaborators.

Collaborators are selected by identifier from configuration:
- statemgr: tracks running topologies (localfs)
- uploader: moves the package into shared storage (localfs, scp)
- launcher: registers the topology with the cluster (local)
- packing: places component instances into containers (round_robin)

Usage:
    from heron_submit.plugins import PluginRegistry, load_plugins

    plugins = load_plugins(config, PluginRegistry.create_default())
"""

from heron_submit.plugins.base import (
    ContainerPlan,
    InstancePlan,
    Launcher,
    Packing,
    PackingPlan,
    StateManager,
    Uploader,
)
from heron_submit.plugins.registry import (
    LAUNCHER,
    PACKING,
    STATE_MANAGER,
    UPLOADER,
    PluginRegistry,
    Plugins,
    load_plugins,
)

__all__ = [
    "ContainerPlan",
    "InstancePlan",
    "Launcher",
    "Packing",
    "PackingPlan",
    "StateManager",
    "Uploader",
    "LAUNCHER",
    "PACKING",
    "STATE_MANAGER",
    "UPLOADER",
    "PluginRegistry",
    "Plugins",
    "load_plugins",
]
