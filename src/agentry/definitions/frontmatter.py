"""
Metadata block extraction for definition files.

A definition file starts with one or more ``---`` delimited metadata
blocks. Each block is read with a strict YAML pass first; when that fails
a tolerant line scanner recovers ``key: value`` pairs instead. Several
blocks are merged field by field, first non-empty value wins.
"""

from __future__ import annotations

import re as _re
import typing as _typing

import yaml as _yaml

# One metadata block anchored at the start of the remaining text
_BLOCK_RE = _re.compile(
    r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)",
    _re.DOTALL,
)

# A top-level key line inside a block
_KEY_RE = _re.compile(r"^([A-Za-z_][\w-]*):(?:\s+(.*)|\s*)$")

# A line that looks like metadata (used to accept follow-up blocks)
_METADATA_LINE_RE = _re.compile(r"^[A-Za-z_][\w-]*:", _re.MULTILINE)

KNOWN_KEYS = frozenset(
    {"name", "description", "tools", "version", "author", "tags", "command", "commands", "color"}
)
"""Keys recognized in definition metadata."""

_LONG_VALUE_LENGTH = 100


def split_blocks(content: str) -> tuple[list[str], str]:
    """
    Split leading metadata blocks from the body.

    The first block must open on the first line. Further blocks may follow
    after blank lines, as long as they contain at least one ``key:`` line.

    Args:
        content: Raw file content.

    Returns:
        Tuple of (block texts, remaining body).
    """
    blocks: list[str] = []
    rest = content.lstrip("\ufeff")

    match = _BLOCK_RE.match(rest)
    while match:
        blocks.append(match.group(1) or "")
        rest = rest[match.end():]

        candidate = rest.lstrip("\r\n")
        match = _BLOCK_RE.match(candidate)
        if match and _METADATA_LINE_RE.search(match.group(1) or ""):
            rest = candidate
        else:
            match = None

    return blocks, rest


def load_yaml_block(block: str) -> dict[str, _typing.Any] | None:
    """
    Parse a block as YAML.

    Returns:
        The mapping, or None when the block is not valid YAML or is not
        a mapping.
    """
    try:
        data = _yaml.safe_load(block)
    except _yaml.YAMLError:
        return None
    if data is None:
        return {}
    if not isinstance(data, dict):
        return None
    return {str(key): value for key, value in data.items()}


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _coerce_scalar(value: str) -> _typing.Any:
    """Interpret a raw scanned value."""
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1].strip()
        if not inner:
            return []
        return [_strip_quotes(item.strip()) for item in inner.split(",") if item.strip()]
    value = _strip_quotes(value)
    if value in ("true", "false"):
        return value == "true"
    return value


def scan_block(block: str) -> dict[str, _typing.Any]:
    """
    Recover ``key: value`` pairs from a block that is not valid YAML.

    Handles unquoted values with colons, long descriptions carrying
    literal ``\\n`` sequences, indented continuation lines and
    ``- item`` lists.

    Args:
        block: Block text (without delimiters).

    Returns:
        Mapping of keys to recovered values (possibly empty).
    """
    result: dict[str, _typing.Any] = {}
    key: str | None = None
    first = ""
    continuation: list[str] = []

    def flush() -> None:
        if key is None or key in result:
            return
        items = [line for line in continuation if line]
        if not first and items and all(line.startswith("-") for line in items):
            result[key] = [_strip_quotes(line[1:].strip()) for line in items]
            return
        joined = " ".join(part for part in [first, *items] if part)
        result[key] = _coerce_scalar(joined)

    for line in block.splitlines():
        if not line.strip():
            continue
        match = _KEY_RE.match(line)
        # Inside a long unquoted description only known keys end the value
        in_long_description = key == "description" and (
            "\\n" in first or len(first) > _LONG_VALUE_LENGTH
        )
        if match and in_long_description and match.group(1) not in KNOWN_KEYS:
            match = None
        if match and not line[0].isspace():
            flush()
            key = match.group(1)
            first = (match.group(2) or "").strip()
            continuation = []
        elif key is not None:
            continuation.append(line.strip())

    flush()
    return result


def _is_empty(value: _typing.Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def merge_metadata(
    mappings: _typing.Iterable[dict[str, _typing.Any]],
) -> dict[str, _typing.Any]:
    """
    Merge several metadata mappings.

    For every key the first non-empty value across the mappings is kept;
    key order follows first appearance.
    """
    merged: dict[str, _typing.Any] = {}
    for mapping in mappings:
        for key, value in mapping.items():
            if key not in merged or _is_empty(merged[key]):
                merged[key] = value
    return merged
