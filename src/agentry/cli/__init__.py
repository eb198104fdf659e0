"""
CLI module for Agentry.

Provides the command-line interface using Click.
"""

from agentry.cli.main import cli, main

__all__ = ["main", "cli"]
