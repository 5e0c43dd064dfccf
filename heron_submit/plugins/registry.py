"""
Plugin Registry for resolving collaborator identifiers to instances.

The registry maps (role, identifier) pairs to factories. Identifiers come
from configuration (heron.class.* keys), so the concrete collaborator is
chosen entirely by config:

    heron.class.state.manager:     localfs
    heron.class.launcher:          local
    heron.class.packing.algorithm: round_robin
    heron.class.uploader:          scp

Third-party collaborators are discovered through entry points in the
groups heron_submit.statemgr, heron_submit.launcher, heron_submit.packing
and heron_submit.uploader.
"""

import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any, Callable, Mapping, Optional

from heron_submit import config as ctx
from heron_submit.errors import PluginResolutionError
from heron_submit.plugins.base import Launcher, Packing, StateManager, Uploader

logger = logging.getLogger(__name__)


STATE_MANAGER = "statemgr"
LAUNCHER = "launcher"
PACKING = "packing"
UPLOADER = "uploader"

# Capability each role must satisfy
ROLE_INTERFACES: dict[str, type] = {
    STATE_MANAGER: StateManager,
    LAUNCHER: Launcher,
    PACKING: Packing,
    UPLOADER: Uploader,
}

ENTRY_POINT_GROUP_PREFIX = "heron_submit."

Factory = Callable[[], Any]


class PluginRegistry:
    """
    Registry for collaborator factories by role and identifier.

    Usage:
        registry = PluginRegistry()
        registry.register("uploader", "localfs", LocalFileSystemUploader)

        uploader = registry.resolve("uploader", "localfs")

        # Or use factory with built-ins and installed entry points
        registry = PluginRegistry.create_default()
    """

    def __init__(self) -> None:
        """Initialize an empty registry with one table per role."""
        self._factories: dict[str, dict[str, Factory]] = {
            role: {} for role in ROLE_INTERFACES
        }

    def _table(self, role: str) -> dict[str, Factory]:
        if role not in self._factories:
            raise PluginResolutionError(
                f"Unknown plugin role: {role}. Known roles: {list(ROLE_INTERFACES)}"
            )
        return self._factories[role]

    def register(self, role: str, identifier: str, factory: Factory) -> None:
        """
        Register a factory for a role.

        Args:
            role: One of statemgr, launcher, packing, uploader
            identifier: Name used in configuration
            factory: Zero-argument callable returning a new instance
        """
        self._table(role)[identifier] = factory

    def has(self, role: str, identifier: str) -> bool:
        return identifier in self._table(role)

    def list_identifiers(self, role: str) -> list[str]:
        return sorted(self._table(role))

    def resolve(self, role: str, identifier: str) -> Any:
        """
        Instantiate the collaborator registered under an identifier.

        Args:
            role: Plugin role
            identifier: Configured identifier

        Returns:
            A new instance satisfying the role's interface

        Raises:
            PluginResolutionError: If the identifier is unknown, the factory
                                   fails, or the instance has the wrong type
        """
        table = self._table(role)
        if identifier not in table:
            raise PluginResolutionError(
                f"No {role} plugin registered as '{identifier}'. "
                f"Registered: {self.list_identifiers(role)}"
            )

        try:
            instance = table[identifier]()
        except Exception as e:
            raise PluginResolutionError(
                f"Failed to create {role} plugin '{identifier}': {e}"
            ) from e

        interface = ROLE_INTERFACES[role]
        if not isinstance(instance, interface):
            raise PluginResolutionError(
                f"{role} plugin '{identifier}' is a {type(instance).__name__}, "
                f"which does not implement {interface.__name__}"
            )

        logger.debug(f"Resolved {role} plugin '{identifier}' -> {type(instance).__name__}")
        return instance

    def register_entry_points(self) -> int:
        """
        Register factories for installed entry points.

        Entry points are loaded lazily, on resolve(). Built-in identifiers
        are not overridden.

        Returns:
            Number of entry points registered
        """
        count = 0
        eps = entry_points()
        for role in ROLE_INTERFACES:
            for ep in eps.select(group=f"{ENTRY_POINT_GROUP_PREFIX}{role}"):
                if self.has(role, ep.name):
                    logger.warning(
                        f"Ignoring entry point {ep.value}: {role} '{ep.name}' is built in"
                    )
                    continue
                self.register(role, ep.name, _entry_point_factory(ep))
                count += 1
        return count

    @classmethod
    def create_default(cls, include_entry_points: bool = True) -> "PluginRegistry":
        """
        Create a registry with the built-in collaborators.

        Args:
            include_entry_points: Also register installed entry points

        Returns:
            Configured PluginRegistry
        """
        from heron_submit.plugins.localfs import (
            LocalFileSystemStateManager,
            LocalFileSystemUploader,
        )
        from heron_submit.plugins.local_launcher import LocalLauncher
        from heron_submit.plugins.round_robin import RoundRobinPacking
        from heron_submit.plugins.scp import ScpUploader

        registry = cls()
        registry.register(STATE_MANAGER, "localfs", LocalFileSystemStateManager)
        registry.register(LAUNCHER, "local", LocalLauncher)
        registry.register(PACKING, "round_robin", RoundRobinPacking)
        registry.register(UPLOADER, "localfs", LocalFileSystemUploader)
        registry.register(UPLOADER, "scp", ScpUploader)

        if include_entry_points:
            registry.register_entry_points()

        return registry


def _entry_point_factory(ep) -> Factory:
    def factory():
        return ep.load()()
    return factory


@dataclass
class Plugins:
    """The four collaborators of one submission attempt."""
    state_manager: StateManager
    launcher: Launcher
    packing: Packing
    uploader: Uploader


def load_plugins(
    config: Mapping[str, Any],
    registry: Optional[PluginRegistry] = None,
) -> Plugins:
    """
    Resolve every collaborator named in the config.

    All four are resolved before any is initialized, so a bad identifier
    aborts before the state manager is touched.

    Raises:
        PluginResolutionError: If any identifier cannot be resolved
    """
    if registry is None:
        registry = PluginRegistry.create_default()

    return Plugins(
        state_manager=registry.resolve(STATE_MANAGER, ctx.state_manager_class(config)),
        launcher=registry.resolve(LAUNCHER, ctx.launcher_class(config)),
        packing=registry.resolve(PACKING, ctx.packing_class(config)),
        uploader=registry.resolve(UPLOADER, ctx.uploader_class(config)),
    )
