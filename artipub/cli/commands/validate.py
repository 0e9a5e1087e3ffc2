"""``artipub validate FILES...`` — check manifests or dependency arrays against the schema."""

from __future__ import annotations

from pathlib import Path
from typing import List

import typer
from rich.table import Table

from artipub.cli._output import console
from artipub.core import schema
from artipub.core.errors import SchemaError


def validate_cmd(
    files: List[Path] = typer.Argument(..., help="JSON documents to validate."),
    deps: bool = typer.Option(
        False, "--deps", help="Treat the files as dependency arrays (--dep-file format)."
    ),
) -> None:
    """Validate manifest (or dependency array) files and list every violation."""
    failed = 0
    for path in files:
        try:
            doc = schema.decode(path.read_bytes(), source=str(path))
        except OSError as exc:
            console.print(f"[bold red]{path}:[/bold red] cannot read: {exc}")
            failed += 1
            continue
        except SchemaError as exc:
            violations = exc.violations
        else:
            violations = schema.dependency_violations(doc) if deps else schema.manifest_violations(doc)

        if not violations:
            console.print(f"[green]OK[/green]   {path}")
            continue

        failed += 1
        table = Table(title=f"{path}: {len(violations)} violation(s)", title_justify="left")
        table.add_column("Path", style="cyan")
        table.add_column("Problem")
        for where, message in violations:
            table.add_row(where, message)
        console.print(table)

    if failed:
        raise typer.Exit(code=1)
