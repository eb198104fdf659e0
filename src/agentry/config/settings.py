"""
Settings configuration using pydantic-settings.

Loads configuration from:
1. Constructor arguments (highest precedence)
2. Environment variables with AGENTRY_ prefix
3. .env file (if AGENTRY_ENV_FILE points at one)
4. YAML config files:
   - Project config: <project>/.agentry/config.yaml (higher)
   - User config: ~/.config/agentry/config.yaml
"""

import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings
import yaml as _yaml

import agentry.constants as constants
import agentry.errors as errors

ENV_CONFIG_DIR = "AGENTRY_CONFIG_DIR"
"""Environment variable overriding the user config directory."""


def _get_env_file() -> str | None:
    """Determine which .env file to load.

    Only an explicit AGENTRY_ENV_FILE is honoured; without it settings come
    from the environment and config files.
    """
    if env_file := _os.environ.get("AGENTRY_ENV_FILE"):
        if _pathlib.Path(env_file).exists():
            return env_file
    return None


def get_builtin_catalog_path() -> _pathlib.Path:
    """Get the path to the catalog bundled with the package."""
    return _pathlib.Path(__file__).parent.parent / "catalog"


def get_user_config_dir() -> _pathlib.Path:
    """
    Get the user config directory.

    Respects AGENTRY_CONFIG_DIR if set, otherwise uses the XDG standard path.
    """
    config_dir_env = _os.environ.get(ENV_CONFIG_DIR)
    if config_dir_env:
        return _pathlib.Path(config_dir_env)
    return _pathlib.Path.home() / ".config" / "agentry"


def get_user_config_path() -> _pathlib.Path:
    """Get the path to the user config file."""
    return get_user_config_dir() / "config.yaml"


def get_project_config_path(project_root: _pathlib.Path) -> _pathlib.Path:
    """Get the path to the project config file."""
    return project_root / constants.DEFAULT_DIR_NAME / "config.yaml"


def save_user_setting(key: str, value: _typing.Any) -> _pathlib.Path:
    """
    Write one setting into the user config file, keeping the others.

    Returns:
        Path of the config file.

    Raises:
        ConfigError: If the file cannot be read, parsed or written.
    """
    path = get_user_config_path()
    try:
        data = _yaml.safe_load(path.read_text(encoding="utf-8")) if path.exists() else {}
    except (OSError, _yaml.YAMLError) as e:
        raise errors.ConfigError(f"Cannot read config {path}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise errors.ConfigError(f"Config {path} is not a mapping")

    data[key] = value
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_yaml.dump(data, default_flow_style=False), encoding="utf-8")
    except OSError as e:
        raise errors.ConfigError(f"Cannot write config {path}: {e}") from e
    return path


class Settings(_pydantic_settings.BaseSettings):
    """
    Agentry configuration settings.

    All settings can be overridden via environment variables with the
    AGENTRY_ prefix, e.g. AGENTRY_PROJECT_DIR=/path/to/project.
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix="AGENTRY_",
        env_file=_get_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[_pydantic_settings.BaseSettings],
        init_settings: _pydantic_settings.PydanticBaseSettingsSource,
        env_settings: _pydantic_settings.PydanticBaseSettingsSource,
        dotenv_settings: _pydantic_settings.PydanticBaseSettingsSource,
        file_secret_settings: _pydantic_settings.PydanticBaseSettingsSource,
    ) -> tuple[_pydantic_settings.PydanticBaseSettingsSource, ...]:
        """
        Configure settings sources with precedence:
        1. init_settings (constructor args) - highest
        2. env_settings (AGENTRY_* env vars)
        3. dotenv_settings (.env file)
        4. YAML config files (project overrides user)
        """
        project_root = _pathlib.Path(
            _os.environ.get("AGENTRY_PROJECT_DIR") or _pathlib.Path.cwd()
        )
        yaml_files = [
            get_user_config_path(),
            get_project_config_path(project_root),
        ]

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _pydantic_settings.YamlConfigSettingsSource(
                settings_cls, yaml_file=yaml_files
            ),
            file_secret_settings,
        )

    @classmethod
    def construct_without_dotenv(cls, **kwargs: _typing.Any) -> "Settings":
        """Create Settings without loading a .env file.

        Useful for test isolation.
        """
        return cls(_env_file=None, **kwargs)  # type: ignore[call-arg]

    home_dir: _pathlib.Path = _pydantic.Field(
        default_factory=_pathlib.Path.home,
        description="Base directory for the user scope",
    )

    project_dir: _pathlib.Path = _pydantic.Field(
        default_factory=_pathlib.Path.cwd,
        description="Base directory for the project scope",
    )

    catalog_dir: _pathlib.Path = _pydantic.Field(
        default_factory=get_builtin_catalog_path,
        description="Source catalog that install and update read from",
    )

    dir_name: str = _pydantic.Field(
        default=constants.DEFAULT_DIR_NAME,
        min_length=1,
        description="Dot-directory name created under each scope base",
    )

    verbose: bool = _pydantic.Field(
        default=False,
        description="Enable debug logging",
    )

    auto_enable_on_install: bool = _pydantic.Field(
        default=True,
        description="Mark newly installed agents as enabled",
    )

    auto_sync: bool = _pydantic.Field(
        default=False,
        description="Register hand-copied agents before other commands run",
    )

    auto_sync_interval: int = _pydantic.Field(
        default=60,
        ge=0,
        description="Seconds after the last sync before auto-sync checks again",
    )

    @_pydantic.field_validator("home_dir", "project_dir", "catalog_dir", mode="after")
    @classmethod
    def _expand_path(cls, value: _pathlib.Path) -> _pathlib.Path:
        return value.expanduser()

    @property
    def catalog_definitions_dir(self) -> _pathlib.Path:
        """Catalog directory holding definition templates."""
        return self.catalog_dir / constants.DEFINITIONS_DIR_NAME

    @property
    def catalog_sub_commands_dir(self) -> _pathlib.Path:
        """Catalog directory holding companion command templates."""
        return self.catalog_dir / constants.SUB_COMMANDS_DIR_NAME
