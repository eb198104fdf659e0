"""
Error types raised by the registry.

Input errors (not found, malformed, already installed, not installed,
already in state) are recoverable and reported to the user. The "already"
cases are benign: commands print them as warnings and exit cleanly.

I/O errors (materialization, manifest read/write) carry the underlying
system message.
"""

from __future__ import annotations


class AgentryError(Exception):
    """Base class for all registry errors."""

    benign: bool = False
    """Benign errors are reported as warnings and do not fail the command."""


class DefinitionNotFoundError(AgentryError):
    """Raised when no definition with the requested identifier is discoverable."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Agent '{identifier}' not found.")
        self.identifier = identifier


class MalformedDefinitionError(AgentryError, ValueError):
    """Raised when a definition file has no usable metadata block."""

    def __init__(self, message: str, path: object | None = None) -> None:
        if path is not None:
            message = f"{message} ({path})"
        super().__init__(message)
        self.path = path


class InvalidIdentifierError(AgentryError, ValueError):
    """Raised when an identifier is not a safe lowercase-hyphen name."""

    pass


class AlreadyInstalledError(AgentryError):
    """Raised when installing an identifier that already has an entry."""

    benign = True

    def __init__(self, identifier: str, scope: str) -> None:
        super().__init__(
            f"Agent '{identifier}' is already installed in {scope} scope. "
            "Use --force to reinstall."
        )
        self.identifier = identifier
        self.scope = scope


class NotInstalledError(AgentryError):
    """Raised when an operation needs a manifest entry that does not exist."""

    def __init__(self, identifier: str, scope: str | None = None) -> None:
        where = f" in {scope} scope" if scope else ""
        super().__init__(f"Agent '{identifier}' is not installed{where}.")
        self.identifier = identifier
        self.scope = scope


class AlreadyInStateError(AgentryError):
    """Raised when enabling an enabled agent or disabling a disabled one."""

    benign = True

    def __init__(self, identifier: str, state: str) -> None:
        super().__init__(f"Agent '{identifier}' is already {state}.")
        self.identifier = identifier
        self.state = state


class MaterializationError(AgentryError):
    """Raised when writing definition content to disk fails."""

    def __init__(self, identifier: str, reason: str) -> None:
        super().__init__(f"Failed to write '{identifier}': {reason}")
        self.identifier = identifier
        self.reason = reason


class ManifestError(AgentryError):
    """Raised when a manifest file exists but cannot be read or written."""

    pass


class ConfigError(AgentryError):
    """Raised when the user config file cannot be read or written."""

    pass
