"""
Local launcher.

Registers a topology with the state manager and writes a launch manifest
into a working directory. Process execution is left to the local
scheduler, which picks up manifests from the working directory.
"""

import getpass
import logging
import time
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import yaml

from heron_submit import keys
from heron_submit.errors import UndoFailed
from heron_submit.plugins.base import Launcher, Packing
from heron_submit.statemgr_adaptor import SchedulerStateManagerAdaptor
from heron_submit.topology import TopologyDescriptor

logger = logging.getLogger(__name__)


MANIFEST_FILE = "launch.yaml"


class LocalLauncher(Launcher):
    """
    Launcher for a single-host cluster.

    launch() packs the topology, then registers execution state, packing
    plan and topology through the state manager adaptor. undo() retracts
    exactly the registrations this instance made, newest first.
    """

    def __init__(self) -> None:
        self.config: Mapping[str, Any] = {}
        self.topology: Optional[TopologyDescriptor] = None
        self.adaptor: Optional[SchedulerStateManagerAdaptor] = None
        self.packing: Optional[Packing] = None
        self.package_uri: Optional[str] = None
        self.working_dir: Optional[Path] = None
        self._undo_actions: list[tuple[str, Callable[[], None]]] = []

    def initialize(self, config: Mapping[str, Any], runtime: Mapping[str, Any]) -> None:
        self.config = config
        self.topology = runtime[keys.RUNTIME_TOPOLOGY_DEFINITION]
        self.adaptor = runtime[keys.RUNTIME_STATE_MANAGER_ADAPTOR]
        self.packing = runtime[keys.RUNTIME_PACKING_INSTANCE]
        self.package_uri = runtime[keys.RUNTIME_TOPOLOGY_PACKAGE_URI]
        self.working_dir = Path(config[keys.LOCAL_LAUNCHER_WORKING_DIRECTORY]).expanduser()

    def _execution_state(self) -> dict[str, Any]:
        return {
            "topology_name": self.topology.name,
            "topology_id": self.topology.id,
            "submission_time": int(time.time()),
            "submission_user": getpass.getuser(),
            "cluster": self.config.get(keys.CLUSTER),
            "role": self.config.get(keys.ROLE),
            "environ": self.config.get(keys.ENVIRON),
            "package_uri": self.package_uri,
        }

    def launch(self) -> bool:
        if self.topology is None or self.adaptor is None or self.packing is None:
            raise RuntimeError("Launcher is not initialized")

        name = self.topology.name
        self.packing.initialize(self.config)
        plan = self.packing.pack(self.topology)
        if plan.instance_count() == 0:
            logger.error(f"Packing plan for {name} has no instances")
            return False

        execution_state = self._execution_state()

        self.adaptor.set_execution_state(execution_state, name)
        self._undo_actions.append(
            ("execution state", lambda: self.adaptor.delete_execution_state(name)))

        self.adaptor.set_packing_plan(plan.to_dict(), name)
        self._undo_actions.append(
            ("packing plan", lambda: self.adaptor.delete_packing_plan(name)))

        manifest = self.working_dir / MANIFEST_FILE
        self.working_dir.mkdir(parents=True, exist_ok=True)
        manifest.write_text(yaml.safe_dump({
            "execution_state": execution_state,
            "packing_plan": plan.to_dict(),
        }, sort_keys=False))
        self._undo_actions.append(
            ("launch manifest", lambda: manifest.unlink(missing_ok=True)))

        # the topology node marks the job as running, so it is written last
        self.adaptor.set_topology(self.topology.to_dict(), name)
        self._undo_actions.append(
            ("topology", lambda: self.adaptor.delete_topology(name)))

        logger.info(
            f"Launched {name} with {len(plan.containers)} containers, "
            f"manifest at {manifest}"
        )
        return True

    def undo(self) -> None:
        """
        Retract every registration, newest first.

        Raises:
            UndoFailed: Listing each retraction that failed, after all
                        of them were attempted
        """
        failures: list[str] = []
        while self._undo_actions:
            what, action = self._undo_actions.pop()
            logger.info(f"Retracting {what} of {self.topology.name}")
            try:
                action()
            except Exception as e:
                logger.error(f"Failed to retract {what} of {self.topology.name}: {e}")
                failures.append(f"{what}: {e}")

        if failures:
            raise UndoFailed(
                f"Could not retract launch of {self.topology.name}: {'; '.join(failures)}"
            )

    def close(self) -> None:
        pass
