"""
Submitter - Topology submission orchestrator.

Drives one submission attempt through a fixed sequence of stages:

    INIT -> VALIDATING -> UPLOADING -> LAUNCHING -> COMMITTED
                                  \\           \\
                                   +-----------+-> ROLLING_BACK
    every path ends in CLOSED

1. INIT: initialize the state manager
2. VALIDATING: refuse to continue unless the state manager confirms, within
   the running-check timeout, that the topology is not running
3. UPLOADING: initialize the uploader and upload the package
4. LAUNCHING: build the runtime context and launch exactly once
5. ROLLING_BACK: on upload or launch failure, run uploader.undo() and
   launcher.undo(), both unconditionally; undo failures are logged only
6. CLOSED: close the uploader and the state manager (and the launcher and
   packing strategy if they were initialized), on every exit path

Fatal errors (FatalError) end the attempt without rollback, since no
external side effect exists yet. Compensable errors (CompensableError)
enter ROLLING_BACK. The outcome is decided before cleanup begins and
cleanup failures never change it.

Usage:
    plugins = load_plugins(config)
    outcome = Submitter(config, topology, plugins, logger=log).submit()
    sys.exit(outcome.exit_code)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from heron_submit import keys
from heron_submit.config import Config
from heron_submit.errors import (
    CompensableError,
    FatalError,
    LaunchFailed,
    SubmitterError,
    UndoFailed,
    UploadFailed,
    ValidationRejected,
)
from heron_submit.plugins.registry import Plugins
from heron_submit.statemgr_adaptor import RunningState, SchedulerStateManagerAdaptor
from heron_submit.topology import TopologyDescriptor


RUNNING_CHECK_TIMEOUT_SECONDS = 5.0


class SubmissionState(str, Enum):
    """Stage of a submission attempt."""
    INIT = "init"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    LAUNCHING = "launching"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    CLOSED = "closed"


@dataclass
class SubmissionOutcome:
    """
    Result of one submission attempt.

    Attributes:
        topology_name: Name of the submitted topology
        success: True only when the attempt reached COMMITTED
        state: Last state before CLOSED
        failed_stage: Stage in which the attempt failed, if it did
        error: The fatal or stage error that ended the attempt
        package_uri: Location of the uploaded package, if upload succeeded
        undo_errors: Compensating actions that failed
        cleanup_errors: close() calls that failed
        history: Every state the attempt passed through
    """
    topology_name: str
    success: bool = False
    state: SubmissionState = SubmissionState.INIT
    failed_stage: Optional[SubmissionState] = None
    error: Optional[SubmitterError] = None
    package_uri: Optional[str] = None
    undo_errors: list[UndoFailed] = field(default_factory=list)
    cleanup_errors: list[str] = field(default_factory=list)
    history: list[SubmissionState] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class Submitter:
    """
    Orchestrates validate -> upload -> launch -> commit-or-rollback.

    One Submitter performs at most one attempt. Plugin instances are owned
    by the attempt and released in cleanup.
    """

    def __init__(
        self,
        config: Config,
        topology: TopologyDescriptor,
        plugins: Plugins,
        logger: Optional[logging.Logger] = None,
        running_check_timeout: float = RUNNING_CHECK_TIMEOUT_SECONDS,
    ):
        """
        Args:
            config: Expanded submission config
            topology: Loaded topology definition
            plugins: Resolved, uninitialized collaborators
            logger: Logger to report through (defaults to this module's)
            running_check_timeout: Seconds to wait for the running check
        """
        self.config = config
        self.topology = topology
        self.plugins = plugins
        self.logger = logger or logging.getLogger(__name__)
        self.running_check_timeout = running_check_timeout
        self.adaptor = SchedulerStateManagerAdaptor(plugins.state_manager)
        self.state = SubmissionState.INIT
        self._launcher_initialized = False
        self._submitted = False

    @property
    def topology_name(self) -> str:
        return self.topology.name

    def _transition(self, outcome: SubmissionOutcome, state: SubmissionState) -> None:
        self.logger.debug(f"{self.topology_name}: {self.state.value} -> {state.value}")
        self.state = state
        outcome.history.append(state)
        if state is not SubmissionState.CLOSED:
            outcome.state = state

    def _record_failure(self, outcome: SubmissionOutcome, error: SubmitterError) -> None:
        error.stage = error.stage or self.state.value
        error.topology = error.topology or self.topology_name
        outcome.success = False
        outcome.failed_stage = self.state
        outcome.error = error

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def initialize_state_manager(self) -> None:
        """
        Raises:
            ValidationRejected: If the state manager cannot be initialized
        """
        try:
            self.plugins.state_manager.initialize(self.config)
        except Exception as e:
            raise ValidationRejected(
                f"Failed to initialize state manager: {e}",
                stage=SubmissionState.INIT.value,
                topology=self.topology_name,
            ) from e

    def validate_submit(self) -> None:
        """
        Refuse submission unless the topology is confirmed not running.

        Raises:
            ValidationRejected: If the topology is running, or the check
                                timed out or failed
        """
        state = self.adaptor.topology_is_running(
            self.topology_name, self.running_check_timeout)

        if state is RunningState.RUNNING:
            raise ValidationRejected(f"Topology {self.topology_name} already exists")
        if not state.confirmed_absent:
            raise ValidationRejected(
                f"Could not confirm within {self.running_check_timeout}s that topology "
                f"{self.topology_name} is not running"
            )

    def upload_package(self) -> str:
        """
        Initialize the uploader and upload the topology package.

        Returns:
            The package location

        Raises:
            UploadFailed: If no location was returned or the uploader raised
        """
        try:
            self.plugins.uploader.initialize(self.config)
            package_uri = self.plugins.uploader.upload_package()
        except Exception as e:
            raise UploadFailed(f"Failed to upload package: {e}") from e

        if not package_uri:
            raise UploadFailed("Failed to upload package.")
        return package_uri

    def build_runtime(self, package_uri: str) -> Config:
        """Per-attempt values handed to the launcher. Never persisted."""
        return (
            Config.builder()
            .put(keys.TOPOLOGY_ID, self.topology.id)
            .put(keys.TOPOLOGY_NAME, self.topology.name)
            .put(keys.RUNTIME_TOPOLOGY_DEFINITION, self.topology)
            .put(keys.RUNTIME_STATE_MANAGER_ADAPTOR, self.adaptor)
            .put(keys.RUNTIME_TOPOLOGY_PACKAGE_URI, package_uri)
            .put(keys.RUNTIME_LAUNCHER_INSTANCE, self.plugins.launcher)
            .put(keys.RUNTIME_PACKING_INSTANCE, self.plugins.packing)
            .build()
        )

    def submit_topology(self, package_uri: str) -> None:
        """
        Launch the topology exactly once.

        Raises:
            LaunchFailed: If launch returned False or raised
        """
        runtime = self.build_runtime(package_uri)
        try:
            self.plugins.launcher.initialize(self.config, runtime)
            self._launcher_initialized = True
            launched = self.plugins.launcher.launch()
        except Exception as e:
            raise LaunchFailed(f"Failed to launch topology: {e}") from e

        if not launched:
            raise LaunchFailed("Failed to launch topology.")

    def rollback(self, outcome: SubmissionOutcome) -> None:
        """Run every undo action; failures are recorded, not raised."""
        self.logger.warning(f"Rolling back submission of topology {self.topology_name}")
        for name, plugin in (("uploader", self.plugins.uploader),
                             ("launcher", self.plugins.launcher)):
            try:
                plugin.undo()
            except Exception as e:
                error = e if isinstance(e, UndoFailed) else UndoFailed(
                    f"{name} undo failed: {e}")
                error.stage = SubmissionState.ROLLING_BACK.value
                error.topology = self.topology_name
                outcome.undo_errors.append(error)
                self.logger.error(
                    f"Undo of {name} failed for topology {self.topology_name}: {e}")

    def _close(self, outcome: SubmissionOutcome, name: str, plugin: Any) -> None:
        try:
            plugin.close()
        except Exception as e:
            outcome.cleanup_errors.append(f"{name}: {e}")
            self.logger.error(f"Failed to close {name}: {e}")

    def cleanup(self, outcome: SubmissionOutcome) -> None:
        """Release every collaborator; runs once, on every exit path."""
        self._close(outcome, "uploader", self.plugins.uploader)
        if self._launcher_initialized:
            self._close(outcome, "launcher", self.plugins.launcher)
            self._close(outcome, "packing", self.plugins.packing)
        self._close(outcome, "state manager", self.plugins.state_manager)

    # -------------------------------------------------------------------------
    # Attempt
    # -------------------------------------------------------------------------

    def submit(self) -> SubmissionOutcome:
        """
        Run the submission attempt.

        Returns:
            SubmissionOutcome; stage failures are reported in it, not raised

        Raises:
            RuntimeError: If this Submitter already ran
        """
        if self._submitted:
            raise RuntimeError("A Submitter performs at most one attempt")
        self._submitted = True

        outcome = SubmissionOutcome(topology_name=self.topology_name)
        outcome.history.append(self.state)
        try:
            self.initialize_state_manager()
            self._transition(outcome, SubmissionState.VALIDATING)
            self.validate_submit()

            self.logger.info(f"Topology {self.topology_name} to be submitted")
            self._transition(outcome, SubmissionState.UPLOADING)
            try:
                outcome.package_uri = self.upload_package()
                self._transition(outcome, SubmissionState.LAUNCHING)
                self.submit_topology(outcome.package_uri)
            except CompensableError as e:
                self._record_failure(outcome, e)
                self.logger.error(str(e))
            else:
                outcome.success = True
                self._transition(outcome, SubmissionState.COMMITTED)
            finally:
                if not outcome.success:
                    if outcome.failed_stage is None:
                        outcome.failed_stage = self.state
                    self._transition(outcome, SubmissionState.ROLLING_BACK)
                    self.rollback(outcome)
        except FatalError as e:
            self._record_failure(outcome, e)
            self.logger.error(str(e))
        finally:
            self.cleanup(outcome)
            self._transition(outcome, SubmissionState.CLOSED)

        if outcome.success:
            self.logger.info(f"Topology {self.topology_name} submitted successfully")
        else:
            stage = outcome.failed_stage.value if outcome.failed_stage else "unknown"
            self.logger.error(
                f"Failed to submit topology {self.topology_name} at stage {stage}. Exiting")
        return outcome
