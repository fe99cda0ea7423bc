import sys
import time
from unittest.mock import MagicMock

import pytest

from teamcity_sdk.server.errors import (
    CopyFailedError,
    MissingVersionConfigError,
    NotAnInstallationError,
    StartFailedError,
)
from teamcity_sdk.server.lifecycle import (
    DEFAULT_AGENT_DEBUG_OPTS,
    DEFAULT_SERVER_DEBUG_OPTS,
    ServerLifecycle,
)
from teamcity_sdk.server.types import (
    DebugOptions,
    DeploymentRequest,
    InstallationConfig,
    LifecycleState,
    ProcessResult,
)


@pytest.fixture
def runner():
    return MagicMock(return_value=ProcessResult(exit_code=0, pid=4242))


@pytest.fixture
def lifecycle(runner):
    return ServerLifecycle(runner=runner, os_name="Linux")


@pytest.fixture
def deployment(artifact):
    return DeploymentRequest(artifact_path=artifact, data_dir=".datadir", plugin_file_name="my-plugin.zip")


class TestStart:
    def test_deploys_and_launches_with_environment(self, lifecycle, runner, make_installation, deployment):
        install_dir = make_installation(version="2023.11")

        result = lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment)

        assert result.exit_code == 0
        data_dir = install_dir / ".datadir"
        assert (data_dir / "plugins" / "my-plugin.zip").is_file()

        runner.assert_called_once()
        spec = runner.call_args.args[0]
        assert spec.argv == ("/bin/bash", "bin/runAll.sh", "start")
        assert spec.working_dir == install_dir
        assert dict(spec.env) == {
            "TEAMCITY_DATA_PATH": str(data_dir),
            "TEAMCITY_SERVER_OPTS": DEFAULT_SERVER_DEBUG_OPTS,
            "TEAMCITY_AGENT_OPTS": DEFAULT_AGENT_DEBUG_OPTS,
        }
        assert runner.call_args.kwargs["stream_output"] is False

    def test_default_debug_addresses(self):
        assert "address=10111" in DEFAULT_SERVER_DEBUG_OPTS
        assert "address=10112" in DEFAULT_AGENT_DEBUG_OPTS

    def test_custom_debug_options_are_passed_verbatim(self, lifecycle, runner, make_installation, deployment):
        install_dir = make_installation()
        debug = DebugOptions(server_opts="-Xmx2g", agent_opts="")

        lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment, debug)

        env = runner.call_args.args[0].env
        assert env["TEAMCITY_SERVER_OPTS"] == "-Xmx2g"
        assert env["TEAMCITY_AGENT_OPTS"] == ""

    def test_absolute_data_dir(self, tmp_path, lifecycle, runner, make_installation, artifact):
        install_dir = make_installation()
        data_dir = tmp_path / "data"
        (data_dir / "plugins").mkdir(parents=True)

        lifecycle.start(
            InstallationConfig(install_dir, "2023.11"),
            DeploymentRequest(artifact, str(data_dir), "my-plugin.zip"),
        )

        assert runner.call_args.args[0].env["TEAMCITY_DATA_PATH"] == str(data_dir)

    def test_logs_install_and_data_dirs(self, lifecycle, make_installation, deployment, caplog):
        install_dir = make_installation()

        with caplog.at_level("INFO"):
            lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment)

        assert f"Starting TeamCity in [{install_dir}]" in caplog.text
        assert f"TeamCity data directory is [{install_dir / '.datadir'}]" in caplog.text

    def test_version_mismatch_does_not_abort(self, lifecycle, runner, make_installation, deployment, caplog):
        install_dir = make_installation(version="2023.05")

        with caplog.at_level("WARNING"):
            lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment)

        assert "2023.05" in caplog.text and "2023.11" in caplog.text
        runner.assert_called_once()

    def test_not_an_installation_is_silently_accepted(self, tmp_path, lifecycle, runner, artifact):
        install_dir = tmp_path / "plain"
        (install_dir / ".datadir" / "plugins").mkdir(parents=True)

        lifecycle.start(
            InstallationConfig(install_dir, "2023.11"),
            DeploymentRequest(artifact, ".datadir", "my-plugin.zip"),
        )

        runner.assert_called_once()

    def test_strict_rejects_non_installation(self, tmp_path, lifecycle, runner, deployment):
        with pytest.raises(NotAnInstallationError):
            lifecycle.start(InstallationConfig(tmp_path / "plain", "2023.11"), deployment, strict=True)
        runner.assert_not_called()

    def test_missing_version_fails_before_deploying(self, lifecycle, runner, make_installation, deployment):
        install_dir = make_installation()

        with pytest.raises(MissingVersionConfigError):
            lifecycle.start(InstallationConfig(install_dir, ""), deployment)

        assert not (install_dir / ".datadir" / "plugins" / "my-plugin.zip").exists()
        runner.assert_not_called()

    def test_copy_failure_prevents_launch(self, lifecycle, runner, make_installation, deployment):
        install_dir = make_installation(plugins_dir=False)

        with pytest.raises(CopyFailedError):
            lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment)

        runner.assert_not_called()

    def test_create_plugins_dir(self, lifecycle, runner, make_installation, deployment):
        install_dir = make_installation(plugins_dir=False)

        lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment, create_plugins_dir=True)

        assert (install_dir / ".datadir" / "plugins" / "my-plugin.zip").is_file()

    def test_non_zero_exit_is_logged_and_returned(self, lifecycle, runner, make_installation, deployment, caplog):
        runner.return_value = ProcessResult(exit_code=1)
        install_dir = make_installation()

        with caplog.at_level("WARNING"):
            result = lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment)

        assert result.exit_code == 1
        assert "exited with code 1" in caplog.text

    def test_non_zero_exit_fails_when_requested(self, lifecycle, runner, make_installation, deployment):
        runner.return_value = ProcessResult(exit_code=1)
        install_dir = make_installation()

        with pytest.raises(StartFailedError) as exc_info:
            lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment, fail_on_exit_code=True)

        assert exc_info.value.exit_code == 1

    def test_timeout_and_cancel_are_forwarded(self, lifecycle, runner, make_installation, deployment):
        install_dir = make_installation()
        cancel = MagicMock()

        lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment, timeout=30.0, cancel_event=cancel)

        assert runner.call_args.kwargs["timeout"] == 30.0
        assert runner.call_args.kwargs["cancel_event"] is cancel

    def test_state_transitions(self, runner, make_installation, deployment):
        states = []
        lifecycle = ServerLifecycle(runner=runner, os_name="Linux", state_listener=states.append)

        lifecycle.start(InstallationConfig(make_installation(), "2023.11"), deployment)

        assert states == [
            LifecycleState.IDLE,
            LifecycleState.VALIDATING,
            LifecycleState.DEPLOYING,
            LifecycleState.LAUNCHING,
            LifecycleState.EXITED,
        ]

    def test_windows_command(self, runner, make_installation, deployment):
        lifecycle = ServerLifecycle(runner=runner, os_name="Windows")

        lifecycle.start(InstallationConfig(make_installation(), "2023.11"), deployment)

        assert runner.call_args.args[0].argv == ("cmd", "/C", "bin\\runAll", "start")


class TestStop:
    def test_streams_stop_output(self, lifecycle, runner, make_installation):
        install_dir = make_installation()

        result = lifecycle.stop(InstallationConfig(install_dir, "2023.11"))

        assert result.exit_code == 0
        spec = runner.call_args.args[0]
        assert spec.argv == ("/bin/bash", "bin/runAll.sh", "stop")
        assert spec.working_dir == install_dir
        assert dict(spec.env) == {}
        assert runner.call_args.kwargs["stream_output"] is True

    def test_returns_non_zero_exit_code(self, lifecycle, runner, make_installation, caplog):
        runner.return_value = ProcessResult(exit_code=2)

        with caplog.at_level("WARNING"):
            result = lifecycle.stop(InstallationConfig(make_installation(), "2023.11"))

        assert result.exit_code == 2
        assert "exited with code 2" in caplog.text

    def test_logs_install_dir(self, lifecycle, make_installation, caplog):
        install_dir = make_installation()

        with caplog.at_level("INFO"):
            lifecycle.stop(InstallationConfig(install_dir, "2023.11"))

        assert f"Stopping TeamCity in [{install_dir}]" in caplog.text

    def test_state_transitions(self, runner, make_installation):
        states = []
        lifecycle = ServerLifecycle(runner=runner, os_name="Linux", state_listener=states.append)

        lifecycle.stop(InstallationConfig(make_installation(), "2023.11"))

        assert states == [LifecycleState.IDLE, LifecycleState.LAUNCHING, LifecycleState.EXITED]


def test_version_query(lifecycle, make_installation):
    assert lifecycle.version(make_installation(version="2024.03")) == "2024.03"


# A control script whose start leaves a background child holding stdout open,
# the way runAll.sh start leaves the server and agent running.
FAKE_RUN_ALL = """#!/bin/bash
echo "$1 $TEAMCITY_DATA_PATH|$TEAMCITY_SERVER_OPTS|$TEAMCITY_AGENT_OPTS" >> calls.log
if [ "$1" = "start" ]; then
    sleep 20 &
    echo "TeamCity server is starting"
else
    echo "Stopping server"
    echo "Stopping agent"
fi
exit 0
"""


@pytest.mark.posix
@pytest.mark.skipif(sys.platform == "win32", reason="requires /bin/bash")
class TestEndToEnd:
    def test_start_then_stop(self, make_installation, deployment, caplog):
        install_dir = make_installation(version="2023.11", control_script=FAKE_RUN_ALL)
        lifecycle = ServerLifecycle()

        started = time.monotonic()
        result = lifecycle.start(InstallationConfig(install_dir, "2023.11"), deployment)
        assert result.exit_code == 0
        assert time.monotonic() - started < 15

        data_dir = install_dir / ".datadir"
        assert (data_dir / "plugins" / "my-plugin.zip").is_file()

        with caplog.at_level("INFO"):
            stop_result = lifecycle.stop(InstallationConfig(install_dir, "2023.11"))

        assert stop_result.exit_code == 0
        messages = [r.getMessage() for r in caplog.records]
        assert messages.index("Stopping server") < messages.index("Stopping agent")

        calls = (install_dir / "calls.log").read_text().splitlines()
        assert calls[0] == f"start {data_dir}|{DEFAULT_SERVER_DEBUG_OPTS}|{DEFAULT_AGENT_DEBUG_OPTS}"
        assert calls[1].startswith("stop ")
