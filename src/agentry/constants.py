"""
Shared constants for Agentry.

This module provides a single source of truth for default values
that are used across multiple modules.
"""

# Storage layout
DEFAULT_DIR_NAME = ".agentry"
"""Dot-directory created under the home directory and the project root."""

DEFINITIONS_DIR_NAME = "definitions"
"""Subdirectory holding one definition file per identifier."""

SUB_COMMANDS_DIR_NAME = "sub-commands"
"""Subdirectory holding companion command files."""

MANIFEST_SUFFIX = "-agents.json"
"""Manifest file name suffix; the file sits next to the scope root directory."""

DEFINITION_SUFFIX = ".md"
"""File extension for definition and sub-command files."""

BACKUP_SUFFIX = ".backup"
"""Suffix appended to a customized definition before it is overwritten."""

# Definition defaults
DEFAULT_DEFINITION_VERSION = "1.0.0"
"""Version assigned to definitions that do not declare one."""

MANIFEST_SCHEMA_VERSION = "1.0.0"
"""Version written to the top of every manifest file."""

IDENTIFIER_MAX_LENGTH = 64
"""Maximum length of a definition identifier."""
