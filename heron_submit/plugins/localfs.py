"""
Local filesystem collaborators.

LocalFileSystemStateManager keeps one JSON file per node under a root
directory:

    <root>/topologies/<name>
    <root>/executionstate/<name>
    <root>/packingplans/<name>

A topology is running when its topologies node exists.

LocalFileSystemUploader copies the topology package into a directory that
acts as shared storage and returns a file:// URI.
"""

import json
import logging
import shutil
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Mapping, Optional

from heron_submit import config as ctx
from heron_submit import keys
from heron_submit.plugins.base import StateManager, Uploader

logger = logging.getLogger(__name__)


TOPOLOGIES = "topologies"
EXECUTION_STATE = "executionstate"
PACKING_PLANS = "packingplans"

NODE_TYPES = (TOPOLOGIES, EXECUTION_STATE, PACKING_PLANS)


class LocalFileSystemStateManager(StateManager):
    """State manager backed by JSON files on the local filesystem."""

    def __init__(self) -> None:
        self.root: Optional[Path] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    def initialize(self, config: Mapping[str, Any]) -> None:
        self.root = Path(config[keys.STATEMGR_ROOT_PATH]).expanduser()
        if ctx.get_bool(config, keys.STATEMGR_INITIALIZE_TREE, True):
            for node_type in NODE_TYPES:
                (self.root / node_type).mkdir(parents=True, exist_ok=True)
        elif not self.root.is_dir():
            raise FileNotFoundError(f"State root does not exist: {self.root}")

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="statemgr")
        logger.debug(f"Local state manager rooted at {self.root}")

    def _node_path(self, node_type: str, topology_name: str) -> Path:
        if self.root is None:
            raise RuntimeError("State manager is not initialized")
        return self.root / node_type / topology_name

    def _set_node(self, node_type: str, topology_name: str, data: Mapping[str, Any]) -> None:
        path = self._node_path(node_type, topology_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(json.dumps(dict(data), sort_keys=True, default=str))
        tmp.replace(path)

    def _get_node(self, node_type: str, topology_name: str) -> Optional[dict[str, Any]]:
        path = self._node_path(node_type, topology_name)
        if not path.exists():
            return None
        with open(path) as f:
            return json.load(f)

    def _delete_node(self, node_type: str, topology_name: str) -> None:
        self._node_path(node_type, topology_name).unlink(missing_ok=True)

    def is_topology_running(self, topology_name: str) -> "Future[bool]":
        if self._executor is None:
            raise RuntimeError("State manager is not initialized")
        path = self._node_path(TOPOLOGIES, topology_name)
        return self._executor.submit(path.exists)

    def set_topology(self, topology: Mapping[str, Any], topology_name: str) -> None:
        self._set_node(TOPOLOGIES, topology_name, topology)

    def delete_topology(self, topology_name: str) -> None:
        self._delete_node(TOPOLOGIES, topology_name)

    def get_topology(self, topology_name: str) -> Optional[dict[str, Any]]:
        return self._get_node(TOPOLOGIES, topology_name)

    def set_execution_state(self, state: Mapping[str, Any], topology_name: str) -> None:
        self._set_node(EXECUTION_STATE, topology_name, state)

    def delete_execution_state(self, topology_name: str) -> None:
        self._delete_node(EXECUTION_STATE, topology_name)

    def get_execution_state(self, topology_name: str) -> Optional[dict[str, Any]]:
        return self._get_node(EXECUTION_STATE, topology_name)

    def set_packing_plan(self, plan: Mapping[str, Any], topology_name: str) -> None:
        self._set_node(PACKING_PLANS, topology_name, plan)

    def delete_packing_plan(self, topology_name: str) -> None:
        self._delete_node(PACKING_PLANS, topology_name)

    def get_packing_plan(self, topology_name: str) -> Optional[dict[str, Any]]:
        return self._get_node(PACKING_PLANS, topology_name)

    def close(self) -> None:
        if self._executor is not None:
            # a timed-out running check must not hold up the exit
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None


class LocalFileSystemUploader(Uploader):
    """Copies the topology package into a local storage directory."""

    def __init__(self) -> None:
        self.package: Optional[Path] = None
        self.destination: Optional[Path] = None
        self._uploaded = False

    def initialize(self, config: Mapping[str, Any]) -> None:
        self.package = Path(config[keys.TOPOLOGY_PACKAGE_FILE]).expanduser()
        directory = Path(config[keys.LOCALFS_UPLOADER_DIRECTORY]).expanduser()
        self.destination = directory / self.package.name

    def upload_package(self) -> Optional[str]:
        if self.package is None or self.destination is None:
            raise RuntimeError("Uploader is not initialized")

        if not self.package.is_file():
            logger.error(f"Topology package not found: {self.package}")
            return None

        if self.destination.exists():
            logger.info(f"Target package already exists at {self.destination}. Overwriting it")

        try:
            self.destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.package, self.destination)
        except OSError as e:
            logger.error(f"Failed to copy {self.package} to {self.destination}: {e}")
            return None

        self._uploaded = True
        logger.info(f"Uploaded package to {self.destination}")
        return self.destination.resolve().as_uri()

    def undo(self) -> None:
        if not self._uploaded or self.destination is None:
            return
        logger.info(f"Removing uploaded package {self.destination}")
        self.destination.unlink(missing_ok=True)
        self._uploaded = False

    def close(self) -> None:
        pass
