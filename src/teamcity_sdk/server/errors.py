"""Exceptions raised while validating, deploying to and controlling a TeamCity server."""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "TeamCitySdkError",
    "ConfigurationError",
    "MissingVersionConfigError",
    "InstallationError",
    "InstallationUnreadableError",
    "MetadataMissingError",
    "NotAnInstallationError",
    "ProcessError",
    "ProcessLaunchError",
    "ProcessTimeoutError",
    "ProcessCancelledError",
    "CopyFailedError",
    "StartFailedError",
]


class TeamCitySdkError(Exception):
    """Base exception for all TeamCity SDK errors."""


class ConfigurationError(TeamCitySdkError):
    """Invalid or incomplete configuration."""


class MissingVersionConfigError(ConfigurationError):
    """The expected TeamCity version is not configured."""

    def __init__(self) -> None:
        super().__init__(
            "Could not determine TeamCity version. Please, set the teamcity_version "
            "setting (TEAMCITY_SDK_SERVER__TEAMCITY_VERSION) or pass --teamcity-version."
        )


class InstallationError(TeamCitySdkError):
    """The TeamCity installation directory cannot be used."""


class InstallationUnreadableError(InstallationError):
    """The metadata archive holding the server version is missing or not a file."""

    def __init__(self, archive_path: Path, install_dir: Path):
        self.archive_path = archive_path
        self.install_dir = install_dir
        super().__init__(
            f"Can not read TeamCity version. Can not access [{archive_path}]. "
            f"Check that [{install_dir}] points to valid TeamCity installation"
        )


class MetadataMissingError(InstallationError):
    """The version resource inside the metadata archive is absent or unusable."""

    def __init__(self, archive_path: Path, resource: str, reason: str = "resource not found"):
        self.archive_path = archive_path
        self.resource = resource
        self.reason = reason
        super().__init__(f"Can not read [{resource}] from [{archive_path}]: {reason}")


class NotAnInstallationError(InstallationError):
    """Strict mode only: the directory does not look like a TeamCity installation."""

    def __init__(self, install_dir: Path, probe: Path):
        self.install_dir = install_dir
        self.probe = probe
        super().__init__(
            f"[{install_dir}] does not look like a TeamCity installation: [{probe}] not found"
        )


class ProcessError(TeamCitySdkError):
    """Base exception for control script execution failures."""


class ProcessLaunchError(ProcessError):
    """The control script process could not be started."""


class ProcessTimeoutError(ProcessError):
    """The control script did not finish before its deadline."""


class ProcessCancelledError(ProcessError):
    """The wait for the control script was cancelled."""


class CopyFailedError(TeamCitySdkError):
    """The plugin package could not be copied into the data directory."""

    def __init__(self, source: Path, destination: Path, reason: str):
        self.source = source
        self.destination = destination
        super().__init__(f"Failed to copy [{source}] to [{destination}]: {reason}")


class StartFailedError(ProcessError):
    """The start command exited with a non-zero code and strict exit handling is on."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"TeamCity start command exited with code {exit_code}")
