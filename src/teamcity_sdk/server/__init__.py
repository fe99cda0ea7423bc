# Server Module - TeamCity installation and process control

"""
サーバーモジュール

TeamCity サーバー制御を提供:
- version: インストール済みバージョンの読み取り
- validator: インストールディレクトリの検証
- command: 制御スクリプトのコマンド構築
- process: 子プロセスの起動と待機
- deployer: プラグインパッケージの配置
- lifecycle: start / stop のオーケストレーション
"""

from .command import build_control_command, is_windows
from .deployer import deploy_plugin, resolve_data_dir
from .errors import (
    ConfigurationError,
    CopyFailedError,
    InstallationError,
    InstallationUnreadableError,
    MetadataMissingError,
    MissingVersionConfigError,
    NotAnInstallationError,
    ProcessCancelledError,
    ProcessError,
    ProcessLaunchError,
    ProcessTimeoutError,
    StartFailedError,
    TeamCitySdkError,
)
from .lifecycle import ServerLifecycle
from .process import run_process, terminate_process_tree
from .types import (
    CommandSpec,
    DebugOptions,
    DeploymentRequest,
    InstallationConfig,
    LifecycleState,
    ProcessResult,
    ServerAction,
    ValidationOutcome,
    ValidationStatus,
)
from .validator import check_version_configured, looks_like_installation, validate_installation
from .version import read_server_version

__all__ = [
    "build_control_command",
    "is_windows",
    "deploy_plugin",
    "resolve_data_dir",
    "ServerLifecycle",
    "run_process",
    "terminate_process_tree",
    "check_version_configured",
    "looks_like_installation",
    "validate_installation",
    "read_server_version",
    # Types
    "CommandSpec",
    "DebugOptions",
    "DeploymentRequest",
    "InstallationConfig",
    "LifecycleState",
    "ProcessResult",
    "ServerAction",
    "ValidationOutcome",
    "ValidationStatus",
    # Errors
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
