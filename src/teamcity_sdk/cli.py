#!/usr/bin/env python3
"""
TeamCity SDK CLI - Main entry point.

Starts and stops a local TeamCity server for plugin integration tests.

Usage:
    teamcity-sdk start [--install-dir DIR] [--teamcity-version V] [--artifact ZIP]
                       [--server-debug=OPTS] [--agent-debug=OPTS]
    teamcity-sdk stop
    teamcity-sdk version
    teamcity-sdk check [--strict]

Options left out on the command line come from teamcity-sdk.yml, the
environment (TEAMCITY_SDK_*) and .env, in that order of precedence below
the command line.

JVM options start with "-", so pass them in the --server-debug=OPTS form.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from . import __version__
from .config import SdkSettings, config_manager
from .server import (
    NotAnInstallationError,
    ServerLifecycle,
    TeamCitySdkError,
    ValidationStatus,
    check_version_configured,
    validate_installation,
)
from .system import setup_logging

logger = logging.getLogger("teamcity_sdk")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CHECK_FAILED = 2

# argparse dest -> (settings section, field)
OVERRIDES = {
    "install_dir": ("server", "install_dir"),
    "teamcity_version": ("server", "teamcity_version"),
    "data_dir": ("server", "data_directory"),
    "artifact": ("server", "artifact_path"),
    "plugin_name": ("server", "plugin_file_name"),
    "server_debug": ("server", "server_debug_opts"),
    "agent_debug": ("server", "agent_debug_opts"),
    "timeout": ("server", "process_timeout"),
    "build_dir": ("project", "build_directory"),
    "artifact_id": ("project", "artifact_id"),
}

FLAG_OVERRIDES = {
    "strict": ("server", "strict_installation_check"),
    "create_plugins_dir": ("server", "create_plugins_dir"),
    "fail_on_exit_code": ("server", "fail_on_start_exit_code"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teamcity-sdk",
        description="Start and stop a local TeamCity server for plugin integration testing",
    )
    parser.add_argument("--config", type=Path, help="Path to teamcity-sdk.yml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--install-dir", dest="install_dir", help="TeamCity installation directory")
    common.add_argument("--teamcity-version", dest="teamcity_version", help="Expected TeamCity version")
    common.add_argument("--build-dir", dest="build_dir", help="Project build output directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    start = subparsers.add_parser("start", parents=[common], help="Deploy the plugin and start TeamCity")
    start.add_argument("--data-dir", dest="data_dir", help="Data directory, absolute or relative to the install dir")
    start.add_argument("--artifact", help="Plugin package to deploy")
    start.add_argument("--artifact-id", dest="artifact_id", help="Project artifact id (names the package)")
    start.add_argument("--plugin-name", dest="plugin_name", help="File name inside <data dir>/plugins")
    start.add_argument("--server-debug", dest="server_debug",
                       help="TEAMCITY_SERVER_OPTS value; use the --server-debug=OPTS form")
    start.add_argument("--agent-debug", dest="agent_debug",
                       help="TEAMCITY_AGENT_OPTS value; use the --agent-debug=OPTS form")
    start.add_argument("--strict", action="store_true", help="Fail if the directory is not a TeamCity installation")
    start.add_argument("--create-plugins-dir", dest="create_plugins_dir", action="store_true",
                       help="Create <data dir>/plugins when missing")
    start.add_argument("--fail-on-exit-code", dest="fail_on_exit_code", action="store_true",
                       help="Fail when the start script exits with a non-zero code")
    start.add_argument("--timeout", type=float, help="Seconds to wait for the start script")

    stop = subparsers.add_parser("stop", parents=[common], help="Stop TeamCity")
    stop.add_argument("--timeout", type=float, help="Seconds to wait for the stop script")

    subparsers.add_parser("version", parents=[common], help="Print the installed TeamCity version")

    check = subparsers.add_parser("check", parents=[common], help="Check the installation and its version")
    check.add_argument("--strict", action="store_true", help="Fail if the directory is not a TeamCity installation")

    return parser


def collect_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Turn command line options into nested settings overrides."""
    overrides: dict[str, dict[str, Any]] = {}
    for dest, (section, field) in OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides.setdefault(section, {})[field] = value
    for dest, (section, field) in FLAG_OVERRIDES.items():
        if getattr(args, dest, False):
            overrides.setdefault(section, {})[field] = True
    return overrides


def run_command(args: argparse.Namespace, settings: SdkSettings, base_dir: Path) -> int:
    lifecycle = ServerLifecycle()
    server_cfg = settings.server

    if args.command == "start":
        check_version_configured(server_cfg.teamcity_version)
        result = lifecycle.start(
            settings.installation(base_dir),
            settings.deployment(base_dir),
            settings.debug_options(),
            strict=server_cfg.strict_installation_check,
            create_plugins_dir=server_cfg.create_plugins_dir,
            fail_on_exit_code=server_cfg.fail_on_start_exit_code,
            timeout=server_cfg.process_timeout,
        )
        logger.info("TeamCity start command exited with code %s", result.exit_code)
        return EXIT_OK

    if args.command == "stop":
        result = lifecycle.stop(settings.installation(base_dir), timeout=server_cfg.process_timeout)
        return result.exit_code

    if args.command == "version":
        install_dir = settings.resolve_install_dir(base_dir)
        print(lifecycle.version(install_dir))
        return EXIT_OK

    if args.command == "check":
        installation = settings.installation(base_dir)
        try:
            outcome = validate_installation(installation, strict=server_cfg.strict_installation_check)
        except NotAnInstallationError:
            print(f"{ValidationStatus.NOT_AN_INSTALLATION.value}: {installation.install_dir}")
            return EXIT_CHECK_FAILED
        print(f"{outcome.status.value}: {outcome.install_dir}")
        if outcome.status in (ValidationStatus.OK, ValidationStatus.UNKNOWN_VERSION):
            return EXIT_OK
        return EXIT_CHECK_FAILED

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the teamcity-sdk command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.config and not args.config.exists():
        print(f"Error: Configuration file not found: {args.config}", file=sys.stderr)
        return EXIT_ERROR

    try:
        config_manager.load_config(
            force_reload=True,
            config_path=args.config,
            overrides=collect_overrides(args),
            strict=True,
        )
    except ValidationError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    settings = config_manager.settings
    log_cfg = settings.logging
    setup_logging(
        level=logging.DEBUG if args.verbose else log_cfg.level,
        log_dir=Path(log_cfg.log_dir) if log_cfg.log_dir else None,
        log_to_file=log_cfg.log_to_file,
        max_bytes=log_cfg.max_bytes,
        backup_count=log_cfg.backup_count,
    )

    try:
        return run_command(args, settings, config_manager.project_root)
    except TeamCitySdkError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
