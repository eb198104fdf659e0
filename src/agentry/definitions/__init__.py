"""
Agent definitions: parsing, discovery and companion matching.

A definition is a markdown file with a ``---`` metadata block (name,
description, tools, version, author, tags, command) followed by the
agent's prompt text.
"""

from agentry.definitions.definition import (
    Definition,
    DefinitionFrontmatter,
    ParseResult,
    ParseStatus,
    is_valid_identifier,
    load_definition,
    parse_definition,
    render_canonical,
    validate_identifier,
)
from agentry.definitions.discovery import (
    DefinitionDiscovery,
    SearchPath,
    iter_definition_files,
)
from agentry.definitions.matching import (
    DEFAULT_GENERATORS,
    CompanionMatcher,
)

__all__ = [
    # Core
    "Definition",
    "DefinitionFrontmatter",
    # Parsing
    "ParseResult",
    "ParseStatus",
    "load_definition",
    "parse_definition",
    "render_canonical",
    "is_valid_identifier",
    "validate_identifier",
    # Discovery
    "DefinitionDiscovery",
    "SearchPath",
    "iter_definition_files",
    # Matching
    "CompanionMatcher",
    "DEFAULT_GENERATORS",
]
