"""
TeamCity installation validation.

Run before deploying or launching anything. A directory that does not look
like an installation is accepted silently unless strict checking is requested.
A version mismatch is only ever a warning.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .command import POSIX_CONTROL_SCRIPT
from .errors import InstallationError, MissingVersionConfigError, NotAnInstallationError
from .types import InstallationConfig, ValidationOutcome, ValidationStatus
from .version import read_server_version

__all__ = [
    "CONTROL_SCRIPT_PROBE",
    "check_version_configured",
    "looks_like_installation",
    "validate_installation",
]

logger = logging.getLogger(__name__)

CONTROL_SCRIPT_PROBE = Path("bin", POSIX_CONTROL_SCRIPT)


def check_version_configured(expected_version: str | None) -> str:
    """
    Ensure an expected version is configured.

    Raises:
        MissingVersionConfigError: If the version is empty or missing.
    """
    if not expected_version:
        raise MissingVersionConfigError()
    return expected_version


def looks_like_installation(install_dir: Path) -> bool:
    return (Path(install_dir) / CONTROL_SCRIPT_PROBE).exists()


def validate_installation(
    cfg: InstallationConfig,
    *,
    strict: bool = False,
    require_version: bool = False,
    logger: logging.Logger = logger,
) -> ValidationOutcome:
    """
    Check that ``cfg.install_dir`` holds the expected TeamCity version.

    Args:
        cfg: Installation to check
        strict: Raise instead of silently accepting a directory that does not
            look like an installation
        require_version: Propagate version read failures instead of
            downgrading them to an UNKNOWN_VERSION outcome
        logger: Sink for the mismatch warning

    Returns:
        The validation outcome. Mismatch is logged at WARNING and returned.

    Raises:
        MissingVersionConfigError: Expected version is empty (checked first).
        NotAnInstallationError: Strict mode and the shape check failed.
        InstallationError: ``require_version`` and the version is unreadable.
    """
    expected = check_version_configured(cfg.expected_version)
    install_dir = Path(cfg.install_dir)

    if not install_dir.exists() or not looks_like_installation(install_dir):
        if strict:
            raise NotAnInstallationError(install_dir.absolute(), install_dir / CONTROL_SCRIPT_PROBE)
        return ValidationOutcome(
            status=ValidationStatus.NOT_AN_INSTALLATION,
            install_dir=install_dir,
            expected_version=expected,
            detail=f"{CONTROL_SCRIPT_PROBE.as_posix()} not found",
        )

    try:
        actual = read_server_version(install_dir)
    except InstallationError as exc:
        if require_version:
            raise
        logger.debug("Skipping TeamCity version check: %s", exc)
        return ValidationOutcome(
            status=ValidationStatus.UNKNOWN_VERSION,
            install_dir=install_dir,
            expected_version=expected,
            detail=str(exc),
        )

    if actual != expected:
        logger.warning(
            "TeamCity version at [%s] is [%s], but project uses [%s]",
            install_dir.absolute(),
            actual,
            expected,
        )
        return ValidationOutcome(
            status=ValidationStatus.VERSION_MISMATCH,
            install_dir=install_dir,
            expected_version=expected,
            actual_version=actual,
        )

    return ValidationOutcome(
        status=ValidationStatus.OK,
        install_dir=install_dir,
        expected_version=expected,
        actual_version=actual,
    )
