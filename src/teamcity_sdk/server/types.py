"""
Server control - core types and data classes

Value objects passed between the version reader, validator, deployer,
command builder and process runner. Every object lives for the duration
of a single start or stop call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping


class ServerAction(str, Enum):
    """Verbs accepted by the control script"""

    START = "start"
    STOP = "stop"


class ValidationStatus(Enum):
    """Installation validation result"""

    OK = "ok"
    NOT_AN_INSTALLATION = "not_an_installation"  # silently accepted unless strict
    VERSION_MISMATCH = "version_mismatch"  # warning only
    UNKNOWN_VERSION = "unknown_version"  # version could not be read, downgraded


class LifecycleState(Enum):
    """States of a single start/stop invocation"""

    IDLE = "idle"
    VALIDATING = "validating"
    DEPLOYING = "deploying"
    LAUNCHING = "launching"
    EXITED = "exited"


@dataclass(frozen=True)
class InstallationConfig:
    """
    Installation to operate on

    Attributes:
        install_dir: Root of the extracted TeamCity distribution
        expected_version: Display version the project builds against
    """

    install_dir: Path
    expected_version: str


@dataclass(frozen=True)
class DeploymentRequest:
    """
    Plugin package deployment

    Attributes:
        artifact_path: Built plugin package
        data_dir: Data directory, absolute or relative to the install directory
        plugin_file_name: File name inside <data_dir>/plugins
    """

    artifact_path: Path
    data_dir: str
    plugin_file_name: str


@dataclass(frozen=True)
class DebugOptions:
    """JVM options injected verbatim into the server and agent processes"""

    server_opts: str
    agent_opts: str


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of an installation check; mismatch is reported, never raised."""

    status: ValidationStatus
    install_dir: Path
    expected_version: str
    actual_version: str | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ValidationStatus.OK

    @property
    def is_mismatch(self) -> bool:
        return self.status is ValidationStatus.VERSION_MISMATCH


@dataclass(frozen=True)
class CommandSpec:
    """
    Control script invocation

    Attributes:
        argv: Full command line, executable first
        working_dir: Directory to run in (always the install directory)
        env: Variables applied on top of the current environment
    """

    argv: tuple[str, ...]
    working_dir: Path
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("argv must not be empty")
        object.__setattr__(self, "argv", tuple(self.argv))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def executable(self) -> str:
        return self.argv[0]

    def with_env(self, **overrides: str) -> CommandSpec:
        """Return a copy with additional environment overrides."""
        merged = {**self.env, **overrides}
        return CommandSpec(argv=self.argv, working_dir=self.working_dir, env=merged)


@dataclass(frozen=True)
class ProcessResult:
    """Exit status of a finished control script"""

    exit_code: int
    pid: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0
