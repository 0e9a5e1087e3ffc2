"""artipub CLI — Typer-based command-line interface.

Provides the ``artipub`` command with subcommands for publishing build
artifacts, validating manifests and re-running retention propagation.

All output uses Rich for formatted terminal display.
"""
