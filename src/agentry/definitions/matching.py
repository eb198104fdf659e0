"""
Companion sub-command matching.

A definition may ship a companion command file whose name is not exactly
the definition identifier (``debugger`` pairs with ``debug.md``). The
matcher tries an ordered list of candidate-name generators; the first
candidate with an existing ``<name>.md`` in a search directory wins.

Generators are plain callables ``(definition) -> list[str]`` so the
heuristic list can be replaced or extended.
"""

from __future__ import annotations

import logging as _logging
import pathlib as _pathlib
import typing as _typing

import agentry.constants as constants
import agentry.definitions.definition as definition_module

_logger = _logging.getLogger(__name__)

CandidateGenerator = _typing.Callable[[definition_module.Definition], list[str]]

_SINGLE_WORD_SUFFIXES = ("er", "or", "ist")
_PREFIX_LENGTHS = (4, 5)


def declared_name(definition: definition_module.Definition) -> list[str]:
    """The command named in the definition metadata."""
    if definition.associated_sub_command:
        return [definition.associated_sub_command]
    return []


def identifier_name(definition: definition_module.Definition) -> list[str]:
    """The identifier itself."""
    return [definition.identifier]


def hyphen_variants(definition: definition_module.Definition) -> list[str]:
    """Identifier without hyphens, its first part and its last part."""
    parts = definition.identifier.split("-")
    return [definition.identifier.replace("-", ""), parts[0], parts[-1]]


def single_word_variants(definition: definition_module.Definition) -> list[str]:
    """Suffix strips and short prefixes for identifiers without hyphens."""
    name = definition.identifier
    if "-" in name:
        return []
    variants = [
        name[: -len(suffix)]
        for suffix in _SINGLE_WORD_SUFFIXES
        if name.endswith(suffix) and len(name) > len(suffix)
    ]
    variants.extend(name[:length] for length in _PREFIX_LENGTHS)
    return variants


DEFAULT_GENERATORS: tuple[CandidateGenerator, ...] = (
    declared_name,
    identifier_name,
    hyphen_variants,
    single_word_variants,
)
"""Generators used when none are given, tried in order."""


class CompanionMatcher:
    """Finds the companion command file for a definition."""

    def __init__(
        self,
        generators: _typing.Sequence[CandidateGenerator] | None = None,
    ) -> None:
        self._generators = list(
            DEFAULT_GENERATORS if generators is None else generators
        )

    @property
    def generators(self) -> list[CandidateGenerator]:
        return list(self._generators)

    def with_generator(self, generator: CandidateGenerator) -> CompanionMatcher:
        """Return a matcher that also tries ``generator`` after the current ones."""
        return CompanionMatcher([*self._generators, generator])

    def candidates(self, definition: definition_module.Definition) -> list[str]:
        """
        Candidate command names for a definition.

        Returns:
            Unique, valid names in generator order.
        """
        seen: dict[str, None] = {}
        for generator in self._generators:
            for name in generator(definition):
                if name not in seen and definition_module.is_valid_identifier(name):
                    seen[name] = None
        return list(seen)

    def find(
        self,
        definition: definition_module.Definition,
        search_dirs: _typing.Iterable[_pathlib.Path],
    ) -> _pathlib.Path | None:
        """
        Find the first existing companion file.

        Candidates are tried in order; for each candidate the search
        directories are tried in order.

        Returns:
            Path to the companion file, or None if there is none.
        """
        dirs = list(search_dirs)
        candidates = self.candidates(definition)
        _logger.debug(
            "Checking companion candidates for %s: %s",
            definition.identifier,
            ", ".join(candidates),
        )
        for name in candidates:
            for directory in dirs:
                path = directory / (name + constants.DEFINITION_SUFFIX)
                if path.is_file():
                    return path
        return None

    def matches(self, definition: definition_module.Definition, command_name: str) -> bool:
        """Whether a command file name is one of the definition's candidates."""
        return command_name in self.candidates(definition)
