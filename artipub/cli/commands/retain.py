"""``artipub retain URL`` — re-run retention propagation for a published build.

Extends the keep-until stamps of everything the manifest at URL depends on,
without touching the manifest's own stamp.  Safe to repeat.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import typer

from artipub.cli._output import configure_logging, console, report_error
from artipub.config import PublishSettings
from artipub.core.errors import ConfigError, PublishError
from artipub.core.remote_store import HttpArtifactStore
from artipub.core.resolver import DependencyResolver
from artipub.core.retention import RetentionPropagator
from artipub.models.manifest import MANIFEST_FILENAME
from artipub.models.retention import RetentionWatermark, format_stamp


def manifest_location(url: str) -> str:
    """Accept a build folder or a direct ``manifest.json`` location."""
    url = url.rstrip("/")
    if url == MANIFEST_FILENAME or url.endswith(f"/{MANIFEST_FILENAME}"):
        return url
    return f"{url}/{MANIFEST_FILENAME}"


def retain_cmd(
    url: str = typer.Argument(..., help="Build folder (or manifest.json) in the store."),
    days: Optional[int] = typer.Option(None, "-d", "--days", help="Keep dependencies this many days."),
    user: Optional[str] = typer.Option(None, "--user", help="Artifact store user."),
    token: Optional[str] = typer.Option(None, "--token", help="Artifact store token."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="More output (repeatable)."),
) -> None:
    """Extend retention of every dependency of an already-published manifest."""
    settings = PublishSettings()
    configure_logging(verbose, settings.log_level)
    try:
        if not settings.has_store:
            raise ConfigError("No artifact store configured (set ARTIPUB_BASE_URL)")
        watermark = RetentionWatermark.from_start(
            datetime.now(timezone.utc),
            settings.days if days is None else days,
            timedelta(days=settings.buffer_days),
        )
        with HttpArtifactStore(
            settings.base_url,
            user=user or settings.user or None,
            token=token or settings.token or None,
            timeout=settings.http_timeout,
        ) as store:
            deps = DependencyResolver(store).fetch_dependencies(manifest_location(url))
            report = RetentionPropagator(
                store,
                watermark,
                docker_port_repos=settings.docker_port_repos,
                max_workers=settings.max_workers,
            ).propagate(deps)
    except PublishError as exc:
        report_error(exc)
        raise typer.Exit(code=1)

    console.print(
        f"[bold green]Retention propagated[/bold green] to {format_stamp(watermark.keep_until)}: "
        f"{len(report.updated)} extended, {len(report.checked)} checked."
    )
