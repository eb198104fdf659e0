"""
Agent definition model and parsing.

A definition is a markdown file with a ``---`` metadata block followed by
free-form prompt text. The metadata carries the identifier, description,
required capabilities (``tools``), version, author, tags and an optional
companion command.

Parsing is a two-stage pipeline expressed as a tagged ParseResult:
strict YAML first, then a tolerant line scanner. Degraded parses are
logged as warnings and still produce a Definition.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import logging as _logging
import pathlib as _pathlib
import re as _re
import typing as _typing

import pydantic as _pydantic
import yaml as _yaml

import agentry.constants as constants
import agentry.definitions.frontmatter as frontmatter
import agentry.errors as errors

_logger = _logging.getLogger(__name__)

IDENTIFIER_PATTERN = r"^[a-z0-9][a-z0-9-]*[a-z0-9]$|^[a-z0-9]$"
"""Identifiers are lowercase alphanumerics and hyphens."""

_IDENTIFIER_RE = _re.compile(IDENTIFIER_PATTERN)


def is_valid_identifier(name: str) -> bool:
    """Check whether a string is a usable identifier."""
    return (
        bool(name)
        and len(name) <= constants.IDENTIFIER_MAX_LENGTH
        and _IDENTIFIER_RE.match(name) is not None
    )


def validate_identifier(name: str) -> str:
    """
    Validate an identifier before it is used to build a file path.

    Args:
        name: Candidate identifier.

    Returns:
        The identifier unchanged.

    Raises:
        InvalidIdentifierError: If the name is empty, too long, contains
            path separators or characters outside ``[a-z0-9-]``.
    """
    if not is_valid_identifier(name):
        raise errors.InvalidIdentifierError(
            f"Invalid agent name: '{name}'. Names must be lowercase letters, "
            f"digits and hyphens (max {constants.IDENTIFIER_MAX_LENGTH} chars)."
        )
    return name


def _as_list(value: _typing.Any) -> list[str]:
    """Normalize a comma-separated string or a sequence to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value if v is not None]
    else:
        items = [str(value)]
    return [item.strip() for item in items if item.strip()]


class DefinitionFrontmatter(_pydantic.BaseModel):
    """
    Metadata parsed from a definition's ``---`` block.

    Values are coerced leniently: ``tools``/``tags``/``commands`` accept
    comma-separated strings or lists; numeric versions become strings.
    Unknown keys (e.g. ``color``) are preserved.
    """

    model_config = _pydantic.ConfigDict(extra="allow")

    name: str | None = _pydantic.Field(
        default=None,
        description="Agent identifier (lowercase, hyphens allowed)",
    )

    description: str = _pydantic.Field(
        default="",
        description="What the agent does and when to use it",
    )

    tools: list[str] = _pydantic.Field(
        default_factory=list,
        description="Capabilities the agent requires",
    )

    version: str = _pydantic.Field(
        default=constants.DEFAULT_DEFINITION_VERSION,
        description="Semantic version of the template",
    )

    author: str = _pydantic.Field(default="", description="Template author")

    tags: list[str] = _pydantic.Field(default_factory=list)

    command: str | None = _pydantic.Field(
        default=None,
        description="Companion command materialized alongside the agent",
    )

    commands: list[str] = _pydantic.Field(default_factory=list)

    @_pydantic.field_validator("tools", "tags", "commands", mode="before")
    @classmethod
    def _coerce_list(cls, value: _typing.Any) -> list[str]:
        return _as_list(value)

    @_pydantic.field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: _typing.Any) -> str:
        if value is None or str(value).strip() == "":
            return constants.DEFAULT_DEFINITION_VERSION
        return str(value).strip()

    @_pydantic.field_validator("description", "author", mode="before")
    @classmethod
    def _coerce_text(cls, value: _typing.Any) -> str:
        return "" if value is None else str(value).strip()

    @_pydantic.field_validator("name", "command", mode="before")
    @classmethod
    def _coerce_optional_text(cls, value: _typing.Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def sub_commands(self) -> list[str]:
        """Declared companion commands, ``command`` first."""
        names = [self.command] if self.command else []
        return list(dict.fromkeys([*names, *self.commands]))

    @property
    def sub_command(self) -> str | None:
        """First declared companion command, if any."""
        names = self.sub_commands
        return names[0] if names else None


@_dataclasses.dataclass(frozen=True)
class Definition:
    """
    One agent template discovered on disk.

    Rebuilt on every discovery pass and never mutated.
    """

    identifier: str
    """Unique name within a scope."""

    description: str
    """Free text used in listings."""

    required_capabilities: list[str]
    """Ordered capability names (the ``tools`` key)."""

    version: str
    """Template version."""

    raw_content: str
    """Full file text, exactly as read."""

    body: str
    """Prompt text after the metadata block(s)."""

    author: str = ""
    tags: list[str] = _dataclasses.field(default_factory=list)

    sub_commands: list[str] = _dataclasses.field(default_factory=list)
    """Companion command names declared by the template."""

    path: _pathlib.Path | None = None
    """File the definition was read from."""

    scope: str | None = None
    """Scope the file was found in (None for the catalog)."""

    warnings: tuple[str, ...] = ()
    """Degraded-parse messages."""

    @property
    def associated_sub_command(self) -> str | None:
        """First declared companion command, if any."""
        return self.sub_commands[0] if self.sub_commands else None

    @property
    def is_degraded(self) -> bool:
        """Whether the metadata needed fallback extraction or merging."""
        return bool(self.warnings)

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.identifier,
            "description": self.description,
            "tools": list(self.required_capabilities),
            "version": self.version,
            "author": self.author,
            "tags": list(self.tags),
            "command": self.associated_sub_command,
            "commands": list(self.sub_commands),
            "path": str(self.path) if self.path else None,
            "scope": self.scope,
            "warnings": list(self.warnings),
        }


class ParseStatus(str, _enum.Enum):
    """Outcome tag of a parse."""

    OK = "ok"
    DEGRADED = "degraded"
    ERROR = "error"


@_dataclasses.dataclass(frozen=True)
class ParseResult:
    """Tagged parse result: Ok(definition), Degraded(definition, warnings) or Err(reason)."""

    status: ParseStatus
    definition: Definition | None = None
    warnings: tuple[str, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether a definition was produced (possibly degraded)."""
        return self.definition is not None

    def unwrap(self) -> Definition:
        """
        Return the definition or raise.

        Raises:
            MalformedDefinitionError: If the parse failed.
        """
        if self.definition is None:
            raise errors.MalformedDefinitionError(self.error or "Malformed definition")
        return self.definition


def _read_block(block: str, index: int) -> tuple[dict[str, _typing.Any], list[str]]:
    """Strict YAML pass with scanner fallback for one block."""
    data = frontmatter.load_yaml_block(block)
    if data is not None:
        return data, []
    recovered = frontmatter.scan_block(block)
    return recovered, [f"metadata block {index} is not valid YAML; recovered with line scanner"]


def parse_definition(
    content: str,
    *,
    fallback_name: str | None = None,
    path: _pathlib.Path | None = None,
    scope: str | None = None,
) -> ParseResult:
    """
    Parse definition file content.

    Args:
        content: Raw file content.
        fallback_name: Identifier to use when the metadata has no usable
            ``name`` (normally the file stem).
        path: Source path, recorded on the definition.
        scope: Scope the file belongs to, recorded on the definition.

    Returns:
        ParseResult tagged ok, degraded or error.
    """
    blocks, rest = frontmatter.split_blocks(content)
    if not blocks:
        return ParseResult(
            status=ParseStatus.ERROR,
            error="No metadata block (---) found",
        )

    warnings: list[str] = []
    mappings: list[dict[str, _typing.Any]] = []
    for index, block in enumerate(blocks, start=1):
        data, block_warnings = _read_block(block, index)
        mappings.append(data)
        warnings.extend(block_warnings)

    if len(blocks) > 1:
        warnings.append(f"merged {len(blocks)} metadata blocks")

    merged = frontmatter.merge_metadata(mappings)

    try:
        meta = DefinitionFrontmatter.model_validate(merged)
    except _pydantic.ValidationError as e:
        return ParseResult(
            status=ParseStatus.ERROR,
            error=f"Invalid definition metadata: {e}",
        )

    identifier = meta.name
    if identifier is None or not is_valid_identifier(identifier):
        if fallback_name is not None and is_valid_identifier(fallback_name):
            if identifier is not None:
                warnings.append(
                    f"name '{identifier}' is not a valid identifier; using '{fallback_name}'"
                )
            identifier = fallback_name
        else:
            return ParseResult(
                status=ParseStatus.ERROR,
                error=f"Metadata has no usable name (got {identifier!r})",
            )

    sub_commands: list[str] = []
    for name in meta.sub_commands:
        if is_valid_identifier(name):
            sub_commands.append(name)
        else:
            warnings.append(f"command '{name}' is not a valid name; ignored")

    definition = Definition(
        identifier=identifier,
        description=meta.description,
        required_capabilities=list(meta.tools),
        version=meta.version,
        raw_content=content,
        body=rest.strip(),
        author=meta.author,
        tags=list(meta.tags),
        sub_commands=sub_commands,
        path=path,
        scope=scope,
        warnings=tuple(warnings),
    )

    status = ParseStatus.DEGRADED if warnings else ParseStatus.OK
    return ParseResult(status=status, definition=definition, warnings=tuple(warnings))


def load_definition(
    path: _pathlib.Path,
    scope: str | None = None,
) -> Definition:
    """
    Load a definition from a file.

    The identifier is always the file stem; a differing ``name`` is
    reported as a warning.

    Args:
        path: Path to the ``.md`` file.
        scope: Scope the file belongs to.

    Returns:
        Parsed Definition.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        MalformedDefinitionError: If the file is unreadable or has no
            usable metadata.
    """
    if not path.exists():
        raise FileNotFoundError(f"Definition file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise errors.MalformedDefinitionError(f"Cannot read definition: {e}", path) from e

    result = parse_definition(
        content,
        fallback_name=path.stem,
        path=path,
        scope=scope,
    )
    definition = result.definition
    if definition is None:
        raise errors.MalformedDefinitionError(result.error or "Malformed definition", path)

    # The file name is the identifier on disk
    if definition.identifier != path.stem:
        if not is_valid_identifier(path.stem):
            raise errors.MalformedDefinitionError(
                f"File name '{path.stem}' is not a valid agent name", path
            )
        definition = _dataclasses.replace(
            definition,
            identifier=path.stem,
            warnings=(
                *definition.warnings,
                f"name '{definition.identifier}' does not match file name; using '{path.stem}'",
            ),
        )

    for warning in definition.warnings:
        _logger.warning("%s: %s", path, warning)

    return definition


def render_canonical(definition: Definition) -> str:
    """
    Rebuild a definition file from its structured fields and body.

    Produces a single metadata block; used by the regenerate path.
    """
    data: dict[str, _typing.Any] = {
        "name": definition.identifier,
        "description": definition.description,
        "tools": ", ".join(definition.required_capabilities),
        "version": definition.version,
    }
    if definition.author:
        data["author"] = definition.author
    if definition.tags:
        data["tags"] = list(definition.tags)
    if len(definition.sub_commands) == 1:
        data["command"] = definition.sub_commands[0]
    elif definition.sub_commands:
        data["commands"] = list(definition.sub_commands)

    header = _yaml.safe_dump(
        data,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=1000,
    ).strip()
    body = definition.body
    return f"---\n{header}\n---\n\n{body}\n" if body else f"---\n{header}\n---\n"
