"""Command-line interface for acrbuild.

Usage:
    acrbuild build [--env ENV] [--buildfile PATH] [--context DIR]
    acrbuild package [CONTEXT] [--output PATH] [--ignore PATTERN ...] [--list]
    acrbuild runs logs <build-id> [--env ENV] [--buildfile PATH]
    acrbuild runs status <build-id> [--env ENV] [--buildfile PATH]
    acrbuild runs cancel <build-id> [--env ENV] [--buildfile PATH]
"""

from .app import app, main

__all__ = ["app", "main"]
