"""
Scp uploader.

Copies the topology package to a remote host with scp, after creating the
target directory over ssh. Passwordless ssh between the submitting machine
and the storage host is expected.

Config keys (see conf/local/uploader.yaml):
    heron.uploader.scp.command.options      e.g. "-i ~/.ssh/id_rsa"
    heron.uploader.scp.command.connection   e.g. "user@host"
    heron.uploader.ssh.command.options
    heron.uploader.ssh.command.connection
    heron.uploader.scp.dir.path             remote directory for the package
    heron.uploader.scp.command.timeout.sec  per-command limit (default 300)
"""

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Any, Mapping, Optional

from heron_submit import keys
from heron_submit.errors import ConfigurationError, UndoFailed
from heron_submit.plugins.base import Uploader

logger = logging.getLogger(__name__)


DEFAULT_COMMAND_TIMEOUT_SECONDS = 300

class ScpUploader(Uploader):
    """Uploads the package to a remote directory via scp."""

    def __init__(self) -> None:
        self.package: Optional[Path] = None
        self.scp_options: list[str] = []
        self.scp_connection: Optional[str] = None
        self.ssh_options: list[str] = []
        self.ssh_connection: Optional[str] = None
        self.remote_dir: Optional[str] = None
        self.timeout: float = DEFAULT_COMMAND_TIMEOUT_SECONDS
        self._uploaded = False

    def initialize(self, config: Mapping[str, Any]) -> None:
        self.scp_connection = config.get(keys.SCP_COMMAND_CONNECTION)
        self.ssh_connection = config.get(keys.SSH_COMMAND_CONNECTION)
        self.remote_dir = config.get(keys.SCP_DIR_PATH)

        missing = [
            key for key, value in (
                (keys.SCP_COMMAND_CONNECTION, self.scp_connection),
                (keys.SSH_COMMAND_CONNECTION, self.ssh_connection),
                (keys.SCP_DIR_PATH, self.remote_dir),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(f"Scp uploader is missing config: {', '.join(missing)}")

        self.scp_options = shlex.split(str(config.get(keys.SCP_COMMAND_OPTIONS) or ""))
        self.ssh_options = shlex.split(str(config.get(keys.SSH_COMMAND_OPTIONS) or ""))

        raw_timeout = config.get(keys.SCP_COMMAND_TIMEOUT, DEFAULT_COMMAND_TIMEOUT_SECONDS)
        try:
            self.timeout = float(raw_timeout)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"{keys.SCP_COMMAND_TIMEOUT} must be a number, got {raw_timeout!r}")
        if self.timeout <= 0:
            raise ConfigurationError(f"{keys.SCP_COMMAND_TIMEOUT} must be positive")
        self.package = Path(config[keys.TOPOLOGY_PACKAGE_FILE]).expanduser()

    @property
    def destination(self) -> str:
        return f"{self.remote_dir.rstrip('/')}/{self.package.name}"

    def _ssh(self, remote_command: str) -> list[str]:
        return ["ssh", *self.ssh_options, self.ssh_connection, remote_command]

    def _run(self, cmd: list[str]) -> bool:
        """Run a command, logging its stderr on failure."""
        logger.debug(f"Running: {shlex.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {self.timeout}s: {shlex.join(cmd)}")
            return False
        except OSError as e:
            logger.error(f"Failed to run {cmd[0]}: {e}")
            return False

        if result.returncode != 0:
            logger.error(
                f"Command failed with exit code {result.returncode}: {shlex.join(cmd)}\n"
                f"{result.stderr.strip()}"
            )
            return False
        return True

    def upload_package(self) -> Optional[str]:
        if self.package is None:
            raise RuntimeError("Uploader is not initialized")

        if not self.package.is_file():
            logger.error(f"Topology package not found: {self.package}")
            return None

        mkdir = self._ssh(f"mkdir -p {shlex.quote(self.remote_dir)}")
        if not self._run(mkdir):
            logger.error(f"Failed to create remote directory {self.remote_dir}")
            return None

        scp = ["scp", *self.scp_options, str(self.package),
               f"{self.scp_connection}:{self.destination}"]
        if not self._run(scp):
            logger.error(f"Failed to copy {self.package} to {self.scp_connection}")
            return None

        self._uploaded = True
        return f"scp://{self.scp_connection}{self.destination}"

    def undo(self) -> None:
        if not self._uploaded:
            return
        remove = self._ssh(f"rm -f {shlex.quote(self.destination)}")
        if not self._run(remove):
            raise UndoFailed(f"Failed to remove {self.destination} on {self.ssh_connection}")
        self._uploaded = False

    def close(self) -> None:
        pass
