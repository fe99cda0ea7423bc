"""
Plugin package deployment.

Copies the built plugin package into ``<data dir>/plugins`` where the server
picks it up on start.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .errors import CopyFailedError
from .types import DeploymentRequest

__all__ = ["PLUGINS_DIR", "resolve_data_dir", "deploy_plugin"]

logger = logging.getLogger(__name__)

PLUGINS_DIR = "plugins"


def resolve_data_dir(configured: str | Path, install_dir: Path) -> Path:
    """
    Return the absolute data directory.

    An absolute ``configured`` path is used unchanged; a relative one is
    resolved against ``install_dir``.
    """
    data_dir = Path(configured)
    if not data_dir.is_absolute():
        data_dir = Path(install_dir) / data_dir
    return data_dir.absolute()


def deploy_plugin(
    request: DeploymentRequest,
    install_dir: Path,
    *,
    create_dirs: bool = False,
    logger: logging.Logger = logger,
) -> Path:
    """
    Copy the plugin package into the server's plugin directory.

    Args:
        request: What to copy and where
        install_dir: Base for a relative data directory
        create_dirs: Create ``<data dir>/plugins`` when it is missing

    Returns:
        The effective (absolute) data directory.

    Raises:
        CopyFailedError: The package is missing or the copy failed. Nothing is
            launched after this error.
    """
    data_dir = resolve_data_dir(request.data_dir, install_dir)
    plugins_dir = data_dir / PLUGINS_DIR
    destination = plugins_dir / request.plugin_file_name
    source = Path(request.artifact_path)

    if not source.is_file():
        raise CopyFailedError(source, destination, "plugin package not found")

    if create_dirs:
        try:
            plugins_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CopyFailedError(source, destination, str(exc)) from exc
    elif not plugins_dir.is_dir():
        raise CopyFailedError(source, destination, f"directory [{plugins_dir}] does not exist")

    try:
        shutil.copyfile(source, destination)
    except OSError as exc:
        raise CopyFailedError(source, destination, str(exc)) from exc

    logger.info("Deployed plugin [%s] to [%s]", source.name, destination)
    return data_dir
