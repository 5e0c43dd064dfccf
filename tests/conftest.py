from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest

from heron_submit import keys
from heron_submit.config import Config
from heron_submit.plugins import Launcher, Packing, Plugins, StateManager, Uploader
from heron_submit.topology import TopologyDescriptor


def _done(value) -> Future:
    future = Future()
    future.set_result(value)
    return future


@pytest.fixture
def done_future():
    """Factory for an already-resolved Future."""
    return _done


@pytest.fixture
def topology():
    return TopologyDescriptor(
        id="word-count-7f3a",
        name="word-count",
        spec={
            "spouts": [{"name": "sentences", "parallelism": 2}],
            "bolts": [{"name": "counter", "parallelism": 3}],
            "config": {"topology.stmgrs": 2},
        },
    )


@pytest.fixture
def submit_config(tmp_path, topology):
    """Expanded config pointing every local collaborator at tmp_path."""
    package = tmp_path / "word-count.tar.gz"
    package.write_bytes(b"package-bytes")
    return (
        Config.builder()
        .put(keys.CLUSTER, "local")
        .put(keys.ROLE, "alice")
        .put(keys.ENVIRON, "default")
        .put(keys.HERON_HOME, str(tmp_path / "heron"))
        .put(keys.HERON_CONF, str(tmp_path / "heron" / "conf"))
        .put(keys.TOPOLOGY_ID, topology.id)
        .put(keys.TOPOLOGY_NAME, topology.name)
        .put(keys.TOPOLOGY_PACKAGE_FILE, str(package))
        .put(keys.STATE_MANAGER_CLASS, "localfs")
        .put(keys.LAUNCHER_CLASS, "local")
        .put(keys.PACKING_CLASS, "round_robin")
        .put(keys.UPLOADER_CLASS, "localfs")
        .put(keys.STATEMGR_ROOT_PATH, str(tmp_path / "state"))
        .put(keys.STATEMGR_INITIALIZE_TREE, True)
        .put(keys.LOCALFS_UPLOADER_DIRECTORY, str(tmp_path / "store"))
        .put(keys.LOCAL_LAUNCHER_WORKING_DIRECTORY, str(tmp_path / "work"))
        .build()
    )


@pytest.fixture
def plugins():
    """
    Mock collaborators for the happy path: not running, upload returns
    pkg://store/job1, launch returns True.
    """
    state_manager = MagicMock(spec=StateManager)
    state_manager.is_topology_running.return_value = _done(False)

    uploader = MagicMock(spec=Uploader)
    uploader.upload_package.return_value = "pkg://store/job1"

    launcher = MagicMock(spec=Launcher)
    launcher.launch.return_value = True

    packing = MagicMock(spec=Packing)

    return Plugins(
        state_manager=state_manager,
        launcher=launcher,
        packing=packing,
        uploader=uploader,
    )
