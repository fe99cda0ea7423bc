import os
import sys
import zipfile
from pathlib import Path

import pytest

# --- 1. Path Setup ---
# Add 'src' to sys.path so 'teamcity_sdk' can be imported without installing
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


PROPERTIES_XML = """<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<!DOCTYPE properties SYSTEM "http://java.sun.com/dtd/properties.dtd">
<properties>
<comment>TeamCity server version</comment>
<entry key="Display_Version">{version}</entry>
<entry key="Build_Number">{build}</entry>
</properties>
"""


@pytest.fixture(autouse=True)
def clean_sdk_env(monkeypatch, tmp_path):
    # Isolate every test from the developer's TEAMCITY_SDK_* settings and files
    for key in list(os.environ):
        if key.startswith("TEAMCITY_SDK_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TEAMCITY_SDK_ROOT", str(tmp_path))


def write_version_jar(jar_path: Path, version: str | None, build: str = "147512") -> Path:
    """Write a common-api.jar; version=None leaves out the properties resource."""
    jar_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(jar_path, "w") as jar:
        jar.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\n")
        if version is not None:
            jar.writestr("serverVersion.properties.xml", PROPERTIES_XML.format(version=version, build=build))
    return jar_path


@pytest.fixture
def make_installation(tmp_path):
    """
    Factory for fake TeamCity installations.

    Creates bin/runAll.sh (unless control_script=False) and
    webapps/ROOT/WEB-INF/lib/common-api.jar reporting ``version``
    (unless version=None).
    """

    def _make(
        name: str = "TeamCity",
        *,
        version: str | None = "2023.11",
        control_script: bool | str = True,
        with_jar: bool = True,
        plugins_dir: bool = True,
    ) -> Path:
        install_dir = tmp_path / name
        (install_dir / "bin").mkdir(parents=True, exist_ok=True)
        if control_script:
            script = install_dir / "bin" / "runAll.sh"
            body = control_script if isinstance(control_script, str) else "#!/bin/bash\necho \"runAll $1\"\n"
            script.write_text(body, encoding="utf-8")
            script.chmod(0o755)
        if with_jar:
            write_version_jar(install_dir / "webapps" / "ROOT" / "WEB-INF" / "lib" / "common-api.jar", version)
        if plugins_dir:
            (install_dir / ".datadir" / "plugins").mkdir(parents=True, exist_ok=True)
        return install_dir

    return _make


@pytest.fixture
def artifact(tmp_path):
    """A dummy plugin package in target/."""
    path = tmp_path / "target" / "my-plugin.zip"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    return path


@pytest.fixture
def jar_writer():
    return write_version_jar
