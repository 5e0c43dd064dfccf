"""
Synchronous facade over an asynchronous state manager.

The running check on a distributed state store is asynchronous. The
submitter needs a bounded, blocking answer, so the adaptor waits at most
`timeout` seconds and reports one of three results:

- RUNNING: the topology is registered as running
- NOT_RUNNING: the store confirmed it is absent
- TIMED_OUT: no answer in time, or the check failed

Callers must treat TIMED_OUT as "not confirmed absent".
"""

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Any, Mapping, Optional

from heron_submit.plugins.base import StateManager

logger = logging.getLogger(__name__)


class RunningState(str, Enum):
    """Outcome of a bounded running check."""
    RUNNING = "running"
    NOT_RUNNING = "not_running"
    TIMED_OUT = "timed_out"

    @property
    def confirmed_absent(self) -> bool:
        return self is RunningState.NOT_RUNNING


class SchedulerStateManagerAdaptor:
    """
    Thin wrapper giving the submitter and launchers blocking access
    to a StateManager.
    """

    def __init__(self, state_manager: StateManager):
        self._state_manager = state_manager

    @property
    def state_manager(self) -> StateManager:
        return self._state_manager

    def topology_is_running(self, topology_name: str, timeout: float) -> RunningState:
        """
        Check whether a topology is running, waiting at most `timeout` seconds.

        Args:
            topology_name: Name of the topology
            timeout: Seconds to wait for the state store

        Returns:
            RunningState; TIMED_OUT if the check did not finish, raised,
            or finished without an answer
        """
        try:
            future = self._state_manager.is_topology_running(topology_name)
            result = future.result(timeout=timeout)
        except FutureTimeoutError:
            logger.warning(
                f"Running check for topology {topology_name} timed out after {timeout}s"
            )
            return RunningState.TIMED_OUT
        except Exception as e:
            logger.warning(f"Running check for topology {topology_name} failed: {e}")
            return RunningState.TIMED_OUT

        if result is None:
            logger.warning(f"Running check for topology {topology_name} returned no answer")
            return RunningState.TIMED_OUT
        return RunningState.RUNNING if result else RunningState.NOT_RUNNING

    def set_topology(self, topology: Mapping[str, Any], topology_name: str) -> None:
        self._state_manager.set_topology(topology, topology_name)

    def delete_topology(self, topology_name: str) -> None:
        self._state_manager.delete_topology(topology_name)

    def get_topology(self, topology_name: str) -> Optional[dict[str, Any]]:
        return self._state_manager.get_topology(topology_name)

    def set_execution_state(self, state: Mapping[str, Any], topology_name: str) -> None:
        self._state_manager.set_execution_state(state, topology_name)

    def delete_execution_state(self, topology_name: str) -> None:
        self._state_manager.delete_execution_state(topology_name)

    def get_execution_state(self, topology_name: str) -> Optional[dict[str, Any]]:
        return self._state_manager.get_execution_state(topology_name)

    def set_packing_plan(self, plan: Mapping[str, Any], topology_name: str) -> None:
        self._state_manager.set_packing_plan(plan, topology_name)

    def delete_packing_plan(self, topology_name: str) -> None:
        self._state_manager.delete_packing_plan(topology_name)

    def get_packing_plan(self, topology_name: str) -> Optional[dict[str, Any]]:
        return self._state_manager.get_packing_plan(topology_name)
