from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..server.errors import ConfigurationError
from ..server.lifecycle import DEFAULT_AGENT_DEBUG_OPTS, DEFAULT_SERVER_DEBUG_OPTS
from ..server.types import DebugOptions, DeploymentRequest, InstallationConfig
from ..server.validator import check_version_configured

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ProjectConfig(BaseModel):
    # Build metadata of the plugin project (output directory and artifact id)
    build_directory: str = "target"
    artifact_id: str = ""

    model_config = {"extra": "ignore"}


class ServerConfig(BaseModel):
    teamcity_version: str = ""
    # Defaults to <build_directory>/servers/<teamcity_version>
    install_dir: Optional[str] = None
    # Absolute, or relative to install_dir
    data_directory: str = ".datadir"

    server_debug_opts: str = DEFAULT_SERVER_DEBUG_OPTS
    agent_debug_opts: str = DEFAULT_AGENT_DEBUG_OPTS

    # Defaults to <artifact_id>.zip
    plugin_file_name: Optional[str] = None
    # Defaults to <build_directory>/<plugin_file_name>
    artifact_path: Optional[str] = None

    strict_installation_check: bool = False
    create_plugins_dir: bool = False
    fail_on_start_exit_code: bool = False
    process_timeout: Optional[float] = None

    model_config = {"extra": "ignore"}

    @field_validator("teamcity_version", mode="before")
    @classmethod
    def version_is_text(cls, v: object) -> object:
        # Unquoted YAML reads 2023.10 as the float 2023.1
        if not isinstance(v, str):
            raise ValueError(
                f"teamcity_version must be a string, got {v!r}; "
                f'quote it in YAML, e.g. teamcity_version: "2023.10"'
            )
        return v

    @field_validator("process_timeout")
    @classmethod
    def timeout_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("process_timeout must be positive")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_to_file: bool = False
    log_dir: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    model_config = {"extra": "ignore"}

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}")
        return level


class SdkSettings(BaseSettings):
    """
    Root configuration object using pydantic-settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="TEAMCITY_SDK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    project: ProjectConfig = Field(default_factory=ProjectConfig)

    server: ServerConfig = Field(default_factory=ServerConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # --- Derived values handed to the server core ---

    def resolve_install_dir(self, base_dir: Path) -> Path:
        """
        Return the installation directory.

        Falls back to <build_directory>/servers/<teamcity_version>, which
        requires the version to be configured.
        """
        if self.server.install_dir:
            install_dir = Path(self.server.install_dir)
        else:
            version = check_version_configured(self.server.teamcity_version)
            install_dir = Path(self.project.build_directory) / "servers" / version
        if not install_dir.is_absolute():
            install_dir = base_dir / install_dir
        return install_dir

    def resolve_plugin_file_name(self) -> str:
        if self.server.plugin_file_name:
            return self.server.plugin_file_name
        if not self.project.artifact_id:
            raise ConfigurationError(
                "Plugin package name is unknown. Set project.artifact_id or server.plugin_file_name."
            )
        return f"{self.project.artifact_id}.zip"

    def installation(self, base_dir: Path) -> InstallationConfig:
        return InstallationConfig(
            install_dir=self.resolve_install_dir(base_dir),
            expected_version=self.server.teamcity_version,
        )

    def deployment(self, base_dir: Path) -> DeploymentRequest:
        plugin_file_name = self.resolve_plugin_file_name()
        if self.server.artifact_path:
            artifact_path = Path(self.server.artifact_path)
        else:
            artifact_path = Path(self.project.build_directory) / plugin_file_name
        if not artifact_path.is_absolute():
            artifact_path = base_dir / artifact_path
        return DeploymentRequest(
            artifact_path=artifact_path,
            data_dir=self.server.data_directory,
            plugin_file_name=plugin_file_name,
        )

    def debug_options(self) -> DebugOptions:
        return DebugOptions(
            server_opts=self.server.server_debug_opts,
            agent_opts=self.server.agent_debug_opts,
        )
