"""Tests for the Submitter orchestrator.

Tests cover:
- Scenarios A-E: commit, already running, timeout, upload failure, launch failure
- Cleanup: close() exactly once on every exit path
- Rollback: both undo actions, undo failures logged only
- Runtime context handed to the launcher
- State history
"""

import logging
from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest

from heron_submit import keys
from heron_submit.errors import LaunchFailed, UndoFailed, UploadFailed, ValidationRejected
from heron_submit.statemgr_adaptor import RunningState, SchedulerStateManagerAdaptor
from heron_submit.submitter import (
    RUNNING_CHECK_TIMEOUT_SECONDS,
    SubmissionState,
    Submitter,
)


S = SubmissionState


def _submitter(config, topology, plugins, **kwargs) -> Submitter:
    return Submitter(config, topology, plugins, **kwargs)


def _record_calls(plugins) -> list[str]:
    """Log undo and close calls, in order."""
    calls: list[str] = []
    for name in ("uploader", "launcher", "state_manager", "packing"):
        plugin = getattr(plugins, name)
        plugin.close.side_effect = lambda n=name: calls.append(f"{n}.close")
        if name in ("uploader", "launcher"):
            plugin.undo.side_effect = lambda n=name: calls.append(f"{n}.undo")
    return calls


# -----------------------------------------------------------------------------
# Scenarios
# -----------------------------------------------------------------------------


class TestScenarios:
    """End-to-end attempts against mock collaborators."""

    def test_scenario_a_commit(self, submit_config, topology, plugins):
        """Not running, upload returns a locator, launch succeeds."""
        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.success is True
        assert outcome.exit_code == 0
        assert outcome.state is S.COMMITTED
        assert outcome.package_uri == "pkg://store/job1"
        assert outcome.error is None
        plugins.uploader.undo.assert_not_called()
        plugins.launcher.undo.assert_not_called()
        plugins.launcher.launch.assert_called_once_with()

    def test_scenario_b_already_running(self, submit_config, topology, plugins, done_future):
        """A running topology is never uploaded or launched."""
        plugins.state_manager.is_topology_running.return_value = done_future(True)

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.success is False
        assert outcome.exit_code == 1
        assert outcome.failed_stage is S.VALIDATING
        assert isinstance(outcome.error, ValidationRejected)
        assert "already exists" in str(outcome.error)
        plugins.uploader.initialize.assert_not_called()
        plugins.uploader.upload_package.assert_not_called()
        plugins.launcher.initialize.assert_not_called()
        plugins.launcher.launch.assert_not_called()
        plugins.uploader.undo.assert_not_called()
        plugins.launcher.undo.assert_not_called()

    def test_scenario_c_running_check_times_out(self, submit_config, topology, plugins):
        """An unanswered running check is treated as a rejection."""
        plugins.state_manager.is_topology_running.return_value = Future()

        outcome = _submitter(
            submit_config, topology, plugins, running_check_timeout=0.01
        ).submit()

        assert outcome.exit_code == 1
        assert outcome.failed_stage is S.VALIDATING
        assert isinstance(outcome.error, ValidationRejected)
        plugins.uploader.upload_package.assert_not_called()
        plugins.launcher.launch.assert_not_called()

    def test_scenario_d_upload_returns_none(self, submit_config, topology, plugins):
        """No locator: launch is skipped and both undo actions run before cleanup."""
        plugins.uploader.upload_package.return_value = None
        calls = _record_calls(plugins)

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.exit_code == 1
        assert outcome.failed_stage is S.UPLOADING
        assert isinstance(outcome.error, UploadFailed)
        plugins.launcher.launch.assert_not_called()
        plugins.uploader.undo.assert_called_once_with()
        plugins.launcher.undo.assert_called_once_with()
        assert calls.index("uploader.undo") < calls.index("uploader.close")
        assert calls.index("launcher.undo") < calls.index("state_manager.close")

    def test_scenario_e_launch_returns_false(self, submit_config, topology, plugins):
        """Failed launch: both undo actions run and the attempt fails."""
        plugins.launcher.launch.return_value = False
        calls = _record_calls(plugins)

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.exit_code == 1
        assert outcome.state is S.ROLLING_BACK
        assert outcome.failed_stage is S.LAUNCHING
        assert isinstance(outcome.error, LaunchFailed)
        plugins.uploader.undo.assert_called_once_with()
        plugins.launcher.undo.assert_called_once_with()
        assert calls[:2] == ["uploader.undo", "launcher.undo"]


class TestValidation:
    """Tests for the running check."""

    def test_default_timeout_is_five_seconds(self, submit_config, topology, plugins):
        submitter = _submitter(submit_config, topology, plugins)
        assert RUNNING_CHECK_TIMEOUT_SECONDS == 5.0
        assert submitter.running_check_timeout == 5.0

    def test_running_check_uses_timeout(self, submit_config, topology, plugins):
        submitter = _submitter(submit_config, topology, plugins)
        submitter.adaptor = MagicMock(spec=SchedulerStateManagerAdaptor)
        submitter.adaptor.topology_is_running.return_value = RunningState.TIMED_OUT

        outcome = submitter.submit()

        submitter.adaptor.topology_is_running.assert_called_once_with("word-count", 5.0)
        assert outcome.failed_stage is S.VALIDATING
        plugins.uploader.upload_package.assert_not_called()

    def test_running_check_error_rejects(self, submit_config, topology, plugins):
        future = Future()
        future.set_exception(ConnectionError("store unreachable"))
        plugins.state_manager.is_topology_running.return_value = future

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert isinstance(outcome.error, ValidationRejected)
        plugins.uploader.upload_package.assert_not_called()

    def test_state_manager_initialize_failure(self, submit_config, topology, plugins):
        """Initialization failure closes without validating or rolling back."""
        plugins.state_manager.initialize.side_effect = OSError("no such directory")

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.exit_code == 1
        assert outcome.failed_stage is S.INIT
        assert outcome.history == [S.INIT, S.CLOSED]
        plugins.state_manager.is_topology_running.assert_not_called()
        plugins.uploader.undo.assert_not_called()
        plugins.state_manager.close.assert_called_once_with()
        plugins.uploader.close.assert_called_once_with()


# -----------------------------------------------------------------------------
# Rollback
# -----------------------------------------------------------------------------


class TestRollback:
    """Tests for the compensation path."""

    def test_upload_raising_rolls_back(self, submit_config, topology, plugins):
        plugins.uploader.upload_package.side_effect = OSError("disk full")

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert isinstance(outcome.error, UploadFailed)
        assert isinstance(outcome.error.__cause__, OSError)
        plugins.launcher.launch.assert_not_called()
        plugins.uploader.undo.assert_called_once_with()
        plugins.launcher.undo.assert_called_once_with()

    def test_uploader_initialize_raising_rolls_back(self, submit_config, topology, plugins):
        plugins.uploader.initialize.side_effect = KeyError("heron.uploader.scp.dir.path")

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.failed_stage is S.UPLOADING
        plugins.uploader.upload_package.assert_not_called()
        plugins.uploader.undo.assert_called_once_with()
        plugins.launcher.undo.assert_called_once_with()

    def test_launch_raising_rolls_back(self, submit_config, topology, plugins):
        plugins.launcher.launch.side_effect = RuntimeError("scheduler unreachable")

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert isinstance(outcome.error, LaunchFailed)
        assert outcome.error.stage == S.LAUNCHING.value
        assert outcome.error.topology == "word-count"
        plugins.launcher.launch.assert_called_once_with()
        plugins.uploader.undo.assert_called_once_with()
        plugins.launcher.undo.assert_called_once_with()

    def test_undo_failure_does_not_stop_other_undo(self, submit_config, topology, plugins):
        plugins.launcher.launch.return_value = False
        plugins.uploader.undo.side_effect = RuntimeError("store unreachable")

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.success is False
        assert isinstance(outcome.error, LaunchFailed)
        assert len(outcome.undo_errors) == 1
        assert isinstance(outcome.undo_errors[0], UndoFailed)
        plugins.launcher.undo.assert_called_once_with()
        plugins.uploader.close.assert_called_once_with()
        plugins.state_manager.close.assert_called_once_with()

    def test_undo_failed_from_plugin_is_kept(self, submit_config, topology, plugins):
        plugins.uploader.upload_package.return_value = None
        plugins.launcher.undo.side_effect = UndoFailed("could not delete state")

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert [str(e) for e in outcome.undo_errors] == ["could not delete state"]
        assert outcome.undo_errors[0].stage == S.ROLLING_BACK.value

    def test_interrupt_during_upload_still_rolls_back_and_closes(
        self, submit_config, topology, plugins
    ):
        plugins.uploader.upload_package.side_effect = KeyboardInterrupt()

        with pytest.raises(KeyboardInterrupt):
            _submitter(submit_config, topology, plugins).submit()

        plugins.uploader.undo.assert_called_once_with()
        plugins.launcher.undo.assert_called_once_with()
        plugins.uploader.close.assert_called_once_with()
        plugins.state_manager.close.assert_called_once_with()


# -----------------------------------------------------------------------------
# Cleanup
# -----------------------------------------------------------------------------


def _already_running(plugins, done_future):
    plugins.state_manager.is_topology_running.return_value = done_future(True)


def _timed_out(plugins, done_future):
    plugins.state_manager.is_topology_running.return_value = Future()


def _upload_fails(plugins, done_future):
    plugins.uploader.upload_package.return_value = None


def _launch_fails(plugins, done_future):
    plugins.launcher.launch.return_value = False


def _succeeds(plugins, done_future):
    pass


class TestCleanup:
    """close() runs exactly once per collaborator on every path."""

    @pytest.mark.parametrize(
        "arrange",
        [_succeeds, _already_running, _timed_out, _upload_fails, _launch_fails],
    )
    def test_close_called_exactly_once(
        self, submit_config, topology, plugins, done_future, arrange
    ):
        arrange(plugins, done_future)

        _submitter(submit_config, topology, plugins, running_check_timeout=0.01).submit()

        plugins.state_manager.close.assert_called_once_with()
        plugins.uploader.close.assert_called_once_with()

    def test_close_failure_does_not_change_success(self, submit_config, topology, plugins):
        plugins.uploader.close.side_effect = OSError("socket already closed")

        outcome = _submitter(submit_config, topology, plugins).submit()

        assert outcome.success is True
        assert outcome.exit_code == 0
        assert outcome.cleanup_errors == ["uploader: socket already closed"]
        plugins.state_manager.close.assert_called_once_with()

    def test_launcher_closed_only_when_initialized(
        self, submit_config, topology, plugins, done_future
    ):
        _already_running(plugins, done_future)
        _submitter(submit_config, topology, plugins).submit()
        plugins.launcher.close.assert_not_called()
        plugins.packing.close.assert_not_called()

    def test_launcher_and_packing_closed_after_launch(self, submit_config, topology, plugins):
        _submitter(submit_config, topology, plugins).submit()
        plugins.launcher.close.assert_called_once_with()
        plugins.packing.close.assert_called_once_with()


# -----------------------------------------------------------------------------
# Runtime context and history
# -----------------------------------------------------------------------------


class TestRuntimeContext:
    """Tests for the per-attempt runtime handed to the launcher."""

    def test_launcher_receives_runtime(self, submit_config, topology, plugins):
        submitter = _submitter(submit_config, topology, plugins)
        submitter.submit()

        config, runtime = plugins.launcher.initialize.call_args[0]
        assert config is submit_config
        assert runtime[keys.TOPOLOGY_ID] == "word-count-7f3a"
        assert runtime[keys.TOPOLOGY_NAME] == "word-count"
        assert runtime[keys.RUNTIME_TOPOLOGY_DEFINITION] is topology
        assert runtime[keys.RUNTIME_STATE_MANAGER_ADAPTOR] is submitter.adaptor
        assert runtime[keys.RUNTIME_TOPOLOGY_PACKAGE_URI] == "pkg://store/job1"
        assert runtime[keys.RUNTIME_LAUNCHER_INSTANCE] is plugins.launcher
        assert runtime[keys.RUNTIME_PACKING_INSTANCE] is plugins.packing

    def test_runtime_not_built_when_upload_fails(self, submit_config, topology, plugins):
        plugins.uploader.upload_package.return_value = ""
        _submitter(submit_config, topology, plugins).submit()
        plugins.launcher.initialize.assert_not_called()


class TestHistory:
    """Tests for the recorded state sequence."""

    def test_committed_history(self, submit_config, topology, plugins):
        outcome = _submitter(submit_config, topology, plugins).submit()
        assert outcome.history == [
            S.INIT, S.VALIDATING, S.UPLOADING, S.LAUNCHING, S.COMMITTED, S.CLOSED,
        ]

    def test_upload_failure_history(self, submit_config, topology, plugins):
        plugins.uploader.upload_package.return_value = None
        outcome = _submitter(submit_config, topology, plugins).submit()
        assert outcome.history == [
            S.INIT, S.VALIDATING, S.UPLOADING, S.ROLLING_BACK, S.CLOSED,
        ]

    def test_submitter_runs_once(self, submit_config, topology, plugins):
        submitter = _submitter(submit_config, topology, plugins)
        submitter.submit()
        with pytest.raises(RuntimeError, match="at most one attempt"):
            submitter.submit()


class TestReporting:
    """Failures are reported with the stage and topology name."""

    def test_failure_logged_with_stage_and_name(
        self, submit_config, topology, plugins, caplog
    ):
        plugins.launcher.launch.return_value = False
        logger = logging.getLogger("test.submitter")

        with caplog.at_level(logging.INFO, logger="test.submitter"):
            _submitter(submit_config, topology, plugins, logger=logger).submit()

        assert "Failed to submit topology word-count at stage launching" in caplog.text
        assert "Rolling back submission of topology word-count" in caplog.text

    def test_success_logged(self, submit_config, topology, plugins, caplog):
        logger = logging.getLogger("test.submitter")

        with caplog.at_level(logging.INFO, logger="test.submitter"):
            _submitter(submit_config, topology, plugins, logger=logger).submit()

        assert "Topology word-count submitted successfully" in caplog.text
