from __future__ import annotations

import platform
from pathlib import Path

from .types import CommandSpec, ServerAction

__all__ = ["CONTROL_SCRIPT", "POSIX_CONTROL_SCRIPT", "is_windows", "build_control_command"]

# cmd resolves runAll.bat on its own; bash needs the real file name
CONTROL_SCRIPT = "runAll"
POSIX_CONTROL_SCRIPT = "runAll.sh"


def is_windows(os_name: str | None = None) -> bool:
    """Return True when the OS name (default: the host's) identifies Windows."""
    if os_name is None:
        os_name = platform.system()
    return "windows" in os_name.lower()


def build_control_command(
    action: ServerAction | str,
    install_dir: Path,
    *,
    os_name: str | None = None,
) -> CommandSpec:
    """Build the control script command line for ``action`` on the given OS."""
    verb = ServerAction(action).value
    if is_windows(os_name):
        argv = ("cmd", "/C", f"bin\\{CONTROL_SCRIPT}", verb)
    else:
        argv = ("/bin/bash", f"bin/{POSIX_CONTROL_SCRIPT}", verb)
    return CommandSpec(argv=argv, working_dir=Path(install_dir))
