"""
Shared pytest fixtures for Agentry tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

import os as _os
import pathlib as _pathlib
import typing as _typing
import unittest.mock as _mock

import pytest as _pytest

import agentry.config as config
import agentry.registry as registry

DefinitionWriter = _typing.Callable[..., _pathlib.Path]


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in _os.environ.items() if not k.startswith("AGENTRY_")}


def definition_text(
    name: str,
    description: str = "Test agent",
    *,
    tools: str = "Read, Grep",
    version: str | None = "1.0.0",
    body: str = "You are a test agent.",
    extra: str = "",
) -> str:
    """Build definition file content."""
    lines = ["---", f"name: {name}", f"description: {description}", f"tools: {tools}"]
    if version is not None:
        lines.append(f"version: {version}")
    if extra:
        lines.append(extra.rstrip("\n"))
    lines.append("---")
    return "\n".join(lines) + f"\n\n{body}\n"


@_pytest.fixture
def clean_env() -> dict[str, str]:
    """
    Return environment dict with AGENTRY_* keys removed.

    Use with mock.patch.dict to isolate tests from the actual environment.
    """
    return _clean_env()


@_pytest.fixture
def isolated_env(clean_env: dict[str, str]):
    """
    Context manager that isolates tests from environment variables.

    Usage:
        def test_something(isolated_env):
            with isolated_env:
                settings = config.Settings.construct_without_dotenv()
    """
    return _mock.patch.dict(_os.environ, clean_env, clear=True)


@_pytest.fixture
def home_dir(tmp_path: _pathlib.Path) -> _pathlib.Path:
    """Temporary user-scope base directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@_pytest.fixture
def project_dir(tmp_path: _pathlib.Path) -> _pathlib.Path:
    """Temporary project-scope base directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@_pytest.fixture
def catalog_dir(tmp_path: _pathlib.Path) -> _pathlib.Path:
    """Temporary catalog with empty definitions/ and sub-commands/."""
    path = tmp_path / "catalog"
    (path / "definitions").mkdir(parents=True)
    (path / "sub-commands").mkdir()
    return path


@_pytest.fixture
def agentry_env(
    tmp_path: _pathlib.Path,
    home_dir: _pathlib.Path,
    project_dir: _pathlib.Path,
    catalog_dir: _pathlib.Path,
) -> dict[str, str]:
    """AGENTRY_* variables pointing every location into tmp_path."""
    return {
        "AGENTRY_CONFIG_DIR": str(tmp_path / "config"),
        "AGENTRY_HOME_DIR": str(home_dir),
        "AGENTRY_PROJECT_DIR": str(project_dir),
        "AGENTRY_CATALOG_DIR": str(catalog_dir),
    }


@_pytest.fixture
def settings(agentry_env: dict[str, str], clean_env: dict[str, str]) -> config.Settings:
    """Settings isolated from the environment, config files and .env."""
    with _mock.patch.dict(_os.environ, {**clean_env, **agentry_env}, clear=True):
        return config.Settings.construct_without_dotenv()


@_pytest.fixture
def locator(settings: config.Settings) -> config.StorageLocator:
    """StorageLocator over the temporary scope bases."""
    return config.StorageLocator.from_settings(settings)


@_pytest.fixture
def agent_registry(settings: config.Settings) -> registry.AgentRegistry:
    """AgentRegistry over temporary directories."""
    return registry.AgentRegistry(settings)


@_pytest.fixture
def write_definition() -> DefinitionWriter:
    """
    Write a definition file.

    Usage:
        path = write_definition(directory, "alpha", description="First")
    """

    def _write(directory: _pathlib.Path, name: str, **kwargs: _typing.Any) -> _pathlib.Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{name}.md"
        path.write_text(definition_text(name, **kwargs), encoding="utf-8")
        return path

    return _write


@_pytest.fixture
def populated_catalog(
    catalog_dir: _pathlib.Path,
    write_definition: DefinitionWriter,
) -> _pathlib.Path:
    """Catalog with alpha, beta, gamma, debugger and a 'debug' companion command."""
    definitions = catalog_dir / "definitions"
    write_definition(definitions, "alpha", description="First agent")
    write_definition(definitions, "beta", description="Second agent", version="2.0.0")
    write_definition(definitions, "gamma", description="Third agent")
    write_definition(definitions, "debugger", description="Finds bugs")
    (catalog_dir / "sub-commands" / "debug.md").write_text(
        "---\ndescription: Debug\n---\n\nDebug $ARGUMENTS\n",
        encoding="utf-8",
    )
    return catalog_dir


@_pytest.fixture
def definition_content() -> _typing.Callable[..., str]:
    """Build definition file content without writing it."""
    return definition_text
