from .loader import (
    CONFIG_FILENAME,
    ConfigManager,
    build_settings,
    config_manager,
    find_project_root,
    resolve_config_path,
)
from .schema import (
    LoggingConfig,
    ProjectConfig,
    SdkSettings,
    ServerConfig,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigManager",
    "build_settings",
    "config_manager",
    "find_project_root",
    "resolve_config_path",
    "LoggingConfig",
    "ProjectConfig",
    "SdkSettings",
    "ServerConfig",
]
