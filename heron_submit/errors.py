"""
Error classes for topology submission.

These error types classify failures at the orchestrator boundary:
- FatalError: Abort immediately, nothing to roll back
- CompensableError: A stage failed after side effects may exist; roll back

Stage errors record which stage failed and for which topology so that the
report at process exit can name both.
"""

from typing import Optional


class SubmitterError(Exception):
    """Base exception for heron_submit."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        topology: Optional[str] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.topology = topology


class FatalError(SubmitterError):
    """
    Fatal error - abort the attempt.

    Raised before any external side effect exists, so no compensation
    is needed beyond closing resources that were already opened.
    """
    pass


class CompensableError(SubmitterError):
    """
    Compensable error - enter rollback.

    The package store or the cluster may hold partial state. The
    orchestrator runs every undo action before cleanup.
    """
    pass


class ConfigurationError(FatalError):
    """Merged configuration is malformed or incomplete."""
    pass


class TopologyDefinitionError(ConfigurationError):
    """Topology definition file is missing, unreadable or invalid."""
    pass


class PluginResolutionError(FatalError):
    """A configured collaborator identifier cannot be resolved."""
    pass


class ValidationRejected(FatalError):
    """
    Topology is already running, or its running state is unknown.

    Examples:
    - State store reports the topology as running
    - Running check timed out
    - State manager could not be initialized
    """
    pass


class UploadFailed(CompensableError):
    """Uploader returned no package location, or raised."""
    pass


class LaunchFailed(CompensableError):
    """Launcher returned failure, or raised."""
    pass


class UndoFailed(SubmitterError):
    """A compensating action failed. Logged, never escalated."""
    pass
