"""Main Typer application — imports and registers all CLI commands.

Entry point: ``artipub`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from artipub import __version__
from artipub.cli.commands.publish import publish_cmd
from artipub.cli.commands.retain import retain_cmd
from artipub.cli.commands.validate import validate_cmd

app = typer.Typer(
    name="artipub",
    help="artipub: publish build artifacts with manifests and keep-until retention.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"artipub {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """artipub: publish build artifacts with manifests and keep-until retention."""


# Register subcommands
app.command(name="publish", help="Upload files and the build manifest.")(publish_cmd)
app.command(name="validate", help="Validate manifest or dependency files.")(validate_cmd)
app.command(name="retain", help="Re-run retention propagation for a published build.")(retain_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
