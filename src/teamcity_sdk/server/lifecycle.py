"""
TeamCity server lifecycle control.

Usage:
    lifecycle = ServerLifecycle()
    lifecycle.start(installation, deployment, debug)
    ...
    lifecycle.stop(installation)

Each call is an independent pipeline; nothing is remembered between calls.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from .command import build_control_command
from .deployer import deploy_plugin
from .errors import StartFailedError
from .process import run_process
from .types import (
    CommandSpec,
    DebugOptions,
    DeploymentRequest,
    InstallationConfig,
    LifecycleState,
    ProcessResult,
    ServerAction,
)
from .validator import validate_installation
from .version import read_server_version

__all__ = [
    "ENV_DATA_PATH",
    "ENV_SERVER_OPTS",
    "ENV_AGENT_OPTS",
    "DEFAULT_SERVER_DEBUG_OPTS",
    "DEFAULT_AGENT_DEBUG_OPTS",
    "ProcessRunner",
    "ServerLifecycle",
]

logger = logging.getLogger(__name__)

ENV_DATA_PATH = "TEAMCITY_DATA_PATH"
ENV_SERVER_OPTS = "TEAMCITY_SERVER_OPTS"
ENV_AGENT_OPTS = "TEAMCITY_AGENT_OPTS"

DEFAULT_SERVER_DEBUG_OPTS = "-Xdebug -Xrunjdwp:transport=dt_socket,server=y,suspend=n,address=10111"
DEFAULT_AGENT_DEBUG_OPTS = "-Xdebug -Xrunjdwp:transport=dt_socket,server=y,suspend=n,address=10112"

ProcessRunner = Callable[..., ProcessResult]
StateListener = Callable[[LifecycleState], None]


class ServerLifecycle:
    """Starts and stops a local TeamCity server through its control script."""

    def __init__(
        self,
        *,
        runner: ProcessRunner = run_process,
        logger: logging.Logger = logger,
        os_name: str | None = None,
        state_listener: StateListener | None = None,
    ):
        """
        Args:
            runner: Process runner with the ``run_process`` signature
            logger: Sink for progress messages and child output
            os_name: OS name override for command construction (default: host)
            state_listener: Called with each state the invocation enters
        """
        self.runner = runner
        self.logger = logger
        self.os_name = os_name
        self.state_listener = state_listener

    def _enter(self, state: LifecycleState) -> None:
        self.logger.debug("Lifecycle state: %s", state.value)
        if self.state_listener is not None:
            self.state_listener(state)

    def _command(self, action: ServerAction, install_dir: Path) -> CommandSpec:
        return build_control_command(action, install_dir, os_name=self.os_name)

    def start(
        self,
        installation: InstallationConfig,
        deployment: DeploymentRequest,
        debug: DebugOptions | None = None,
        *,
        strict: bool = False,
        create_plugins_dir: bool = False,
        fail_on_exit_code: bool = False,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ProcessResult:
        """
        Validate the installation, deploy the plugin and run ``runAll start``.

        The start script's output is not read: it may keep its output open
        after the server has forked into the background. A version mismatch is
        a warning. A non-zero exit code is logged and returned, and raises
        only when ``fail_on_exit_code`` is set.

        Raises:
            MissingVersionConfigError: No expected version configured.
            NotAnInstallationError: ``strict`` and the directory is not an installation.
            CopyFailedError: The plugin package could not be deployed.
            ProcessError: The control script could not be run to completion.
            StartFailedError: ``fail_on_exit_code`` and the script failed.
        """
        if debug is None:
            debug = DebugOptions(DEFAULT_SERVER_DEBUG_OPTS, DEFAULT_AGENT_DEBUG_OPTS)
        install_dir = Path(installation.install_dir)

        self._enter(LifecycleState.IDLE)
        self._enter(LifecycleState.VALIDATING)
        validate_installation(installation, strict=strict, logger=self.logger)

        self._enter(LifecycleState.DEPLOYING)
        data_dir = deploy_plugin(deployment, install_dir, create_dirs=create_plugins_dir, logger=self.logger)

        self._enter(LifecycleState.LAUNCHING)
        spec = self._command(ServerAction.START, install_dir).with_env(
            **{
                ENV_DATA_PATH: str(data_dir),
                ENV_SERVER_OPTS: debug.server_opts,
                ENV_AGENT_OPTS: debug.agent_opts,
            }
        )
        self.logger.info("Starting TeamCity in [%s]", install_dir.absolute())
        self.logger.info("TeamCity data directory is [%s]", data_dir)
        result = self.runner(
            spec,
            stream_output=False,
            logger=self.logger,
            timeout=timeout,
            cancel_event=cancel_event,
        )

        self._enter(LifecycleState.EXITED)
        if not result.succeeded:
            self.logger.warning("TeamCity start command exited with code %s", result.exit_code)
            if fail_on_exit_code:
                raise StartFailedError(result.exit_code)
        return result

    def stop(
        self,
        installation: InstallationConfig,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ProcessResult:
        """Run ``runAll stop``, forwarding its output line by line, and return its exit code."""
        install_dir = Path(installation.install_dir)

        self._enter(LifecycleState.IDLE)
        self._enter(LifecycleState.LAUNCHING)
        self.logger.info("Stopping TeamCity in [%s]", install_dir.absolute())
        result = self.runner(
            self._command(ServerAction.STOP, install_dir),
            stream_output=True,
            logger=self.logger,
            timeout=timeout,
            cancel_event=cancel_event,
        )

        self._enter(LifecycleState.EXITED)
        if result.succeeded:
            self.logger.info("TeamCity stop command finished")
        else:
            self.logger.warning("TeamCity stop command exited with code %s", result.exit_code)
        return result

    def version(self, install_dir: Path) -> str:
        """
        Return the installed display version; read failures are fatal here.

        Raises:
            InstallationUnreadableError: The metadata archive is missing.
            MetadataMissingError: The version resource is missing or unusable.
        """
        return read_server_version(Path(install_dir))
