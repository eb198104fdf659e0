"""
Configuration module for Agentry.

Uses pydantic-settings for environment variable loading and resolves the
user/project storage layout.
"""

from agentry.config.paths import PathKind, Scope, StorageLocator
from agentry.config.settings import (
    Settings,
    get_builtin_catalog_path,
    get_project_config_path,
    get_user_config_path,
    save_user_setting,
)

__all__ = [
    "PathKind",
    "Scope",
    "Settings",
    "StorageLocator",
    "get_builtin_catalog_path",
    "get_project_config_path",
    "get_user_config_path",
    "save_user_setting",
]
