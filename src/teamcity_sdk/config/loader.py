# teamcity_sdk/config/loader.py
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from .schema import SdkSettings

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "teamcity-sdk.yml"
PROJECT_MARKERS = ("pyproject.toml", "pom.xml", CONFIG_FILENAME)


def find_project_root(start: Optional[Path] = None) -> Path:
    """
    Deterministically find the project root.
    Priority:
    1. TEAMCITY_SDK_ROOT environment variable.
    2. Search for a project marker from the working directory upwards.
    3. The working directory (fallback).
    """
    # 1. Environment Variable Override
    env_root = os.getenv("TEAMCITY_SDK_ROOT")
    if env_root:
        return Path(env_root).resolve()

    # 2. Search upwards for pyproject.toml / pom.xml / teamcity-sdk.yml
    start = (start or Path.cwd()).resolve()
    current = start
    for _ in range(10):  # Max 10 levels up to prevent infinite loop
        if any((current / marker).exists() for marker in PROJECT_MARKERS):
            return current
        if current.parent == current:
            break
        current = current.parent

    # 3. Fallback
    return start


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """
    A settings source that loads values from a YAML file.
    """
    def __init__(self, settings_cls: Type[BaseSettings], yaml_path: Path):
        super().__init__(settings_cls)
        self.yaml_path = yaml_path

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        # Not used when returning the whole dict from __call__
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        if not self.yaml_path.exists():
            return {}
        try:
            with open(self.yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load YAML config from {self.yaml_path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"YAML config {self.yaml_path} must contain a mapping, got {type(data).__name__}")
            return {}
        return data


def resolve_config_path(project_root: Path) -> Path:
    # Priority:
    # 1. TEAMCITY_SDK_CONFIG_PATH env var
    # 2. PROJECT_ROOT / teamcity-sdk.yml
    env_config = os.getenv("TEAMCITY_SDK_CONFIG_PATH")
    if env_config:
        return Path(env_config)
    return project_root / CONFIG_FILENAME


def build_settings(config_path: Path, **overrides: Any) -> SdkSettings:
    """
    Build settings with priority: init kwargs > Env > .env > YAML > Defaults.

    Raises:
        pydantic.ValidationError: If the merged values are invalid.
    """

    # Subclass SdkSettings to inject the YAML source dynamically
    class LoadedSdkSettings(SdkSettings):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: Type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,
            file_secret_settings: PydanticBaseSettingsSource,
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (
                init_settings,
                env_settings,
                dotenv_settings,
                YamlConfigSettingsSource(settings_cls, config_path),
                file_secret_settings,
            )

    return LoadedSdkSettings(**overrides)


class ConfigManager:
    _instance = None
    _settings: Optional[SdkSettings] = None
    _initialized = False
    project_root: Optional[Path] = None
    config_path: Optional[Path] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    def load_config(
        self,
        force_reload: bool = False,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
        strict: bool = False,
    ) -> None:
        """
        Load configuration using Pydantic Settings.

        Args:
            force_reload: Re-read even if already loaded
            config_path: YAML file to use instead of the default lookup
            overrides: Values taking priority over every other source
            strict: Re-raise validation errors instead of falling back to defaults
        """
        if self._initialized and not force_reload:
            return

        self.project_root = find_project_root()
        # Load environment variables from .env file
        load_dotenv(dotenv_path=self.project_root / ".env")
        self.config_path = config_path or resolve_config_path(self.project_root)

        try:
            self._settings = build_settings(self.config_path, **(overrides or {}))
            logger.info(f"Settings initialized. Priority: Env > .env > YAML ({self.config_path}) > Defaults")
        except Exception as e:
            if strict:
                raise
            logger.error(f"Failed to validate settings: {e}", exc_info=True)
            # Plain defaults; SdkSettings() would read the broken sources again
            self._settings = SdkSettings.model_construct()

        self._initialized = True

    @property
    def settings(self) -> SdkSettings:
        if not self._initialized or self._settings is None:
            self.load_config()
        return self._settings


# Singleton Instance
config_manager = ConfigManager()

