"""``artipub publish PATHS...`` — upload files and the build manifest.

Modes:

- default: upload files, upload ``manifest.json``, propagate retention;
- ``-i FILE``: accumulate into a local manifest only (several CI jobs);
- ``-f FILE``: upload the accumulated manifest, propagate, delete FILE;
- ``--no-manifest``: upload files only.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import typer
from rich.panel import Panel

from artipub.cli._output import configure_logging, console, report_error
from artipub.config import PublishSettings
from artipub.core.build_info import discover_build_info, target_base
from artipub.core.errors import ConfigError, PublishError
from artipub.core.remote_store import HttpArtifactStore
from artipub.core.session import PublishResult, PublishSession
from artipub.models.session import PublishMode, SessionConfig


def resolve_mode(
    incremental: Path | None, final: Path | None, no_manifest: bool, dep_files: list[Path]
) -> tuple[PublishMode, Path | None]:
    """Check the mode flag combination and return the mode and local manifest path."""
    if incremental and final:
        raise ConfigError("--incremental and --final cannot be combined")
    if no_manifest and (incremental or final):
        raise ConfigError("--no-manifest cannot be combined with --incremental or --final")
    if no_manifest and dep_files:
        raise ConfigError("--dep-file needs a manifest; drop --no-manifest")
    if incremental:
        return PublishMode.INCREMENTAL, incremental
    if final:
        return PublishMode.FINAL, final
    if no_manifest:
        return PublishMode.NO_MANIFEST, None
    return PublishMode.DIRECT, None


def _print_summary(result: PublishResult, mode: PublishMode) -> None:
    lines = [
        f"[bold]Target:[/bold]       {result.target_base}",
        f"[bold]Mode:[/bold]         {mode.value}",
        f"[bold]Uploaded:[/bold]     {len(result.uploaded)}",
        f"[bold]Skipped:[/bold]      {len(result.skipped)}",
        f"[bold]Files:[/bold]        {result.files_recorded}",
        f"[bold]Dependencies:[/bold] {result.dependencies}",
    ]
    if result.propagation is not None:
        lines.append(
            f"[bold]Retention:[/bold]    {len(result.propagation.updated)} extended, "
            f"{len(result.propagation.checked)} checked"
        )
    if result.warnings or result.errors:
        lines.append(f"[yellow]{result.warnings} warning(s), {result.errors} error(s)[/yellow]")
    console.print(Panel("\n".join(lines), title="[bold]Publish[/bold]", border_style="green"))


def publish_cmd(
    paths: Optional[List[Path]] = typer.Argument(None, help="Files and folders to upload."),
    git_repo: Optional[str] = typer.Option(None, "--git-repo", help="Override the git remote URL."),
    git_branch: Optional[str] = typer.Option(None, "--git-branch", help="Override the branch."),
    git_sha: Optional[str] = typer.Option(None, "--git-sha", help="Override the commit sha."),
    build_no: Optional[str] = typer.Option(None, "--build-no", help="Override the build number."),
    incremental: Optional[Path] = typer.Option(
        None, "-i", "--incremental", help="Accumulate into this local manifest; upload files only."
    ),
    final: Optional[Path] = typer.Option(
        None, "-f", "--final", help="Finalize this local manifest: upload it and propagate retention."
    ),
    no_manifest: bool = typer.Option(False, "--no-manifest", help="Upload files without a manifest."),
    dep_files: Optional[List[Path]] = typer.Option(
        None, "--dep-file", help="JSON dependency array to merge (repeatable)."
    ),
    root: Optional[str] = typer.Option(None, "-r", "--root", help="Top-level folder in the store."),
    days: Optional[int] = typer.Option(None, "-d", "--days", help="Initial retention in days."),
    dep_generic_file_dst: Optional[str] = typer.Option(
        None,
        "--dep-generic-file-dst",
        help="Upload PATHS as generic-file dependencies under this store folder.",
    ),
    skip_present: bool = typer.Option(
        False, "--skip-files-already-present", help="Skip files that already exist in the store."
    ),
    pop_count: int = typer.Option(
        0, "-p", "--path-pop-cnt", min=0, help="Leading path components to drop."
    ),
    user: Optional[str] = typer.Option(None, "--user", help="Artifact store user."),
    token: Optional[str] = typer.Option(None, "--token", help="Artifact store token."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="More output (repeatable)."),
) -> None:
    """Upload build artifacts, their manifest, and extend dependency retention."""
    settings = PublishSettings()
    configure_logging(verbose, settings.log_level)
    dep_files = dep_files or []

    store: HttpArtifactStore | None = None
    try:
        mode, local_manifest = resolve_mode(incremental, final, no_manifest, dep_files)
        started = datetime.now(timezone.utc)
        build_info = discover_build_info(
            timestamp=started,
            repo=git_repo,
            branch=git_branch,
            git_sha=git_sha,
            build_no=build_no,
        )
        config = SessionConfig(
            mode=mode,
            local_manifest=local_manifest,
            target_base=target_base(root or settings.root, build_info),
            paths=paths or [],
            dep_files=dep_files,
            days=settings.days if days is None else days,
            buffer=timedelta(days=settings.buffer_days),
            pop_count=pop_count,
            dep_generic_file_dst=dep_generic_file_dst,
            skip_files_already_present=skip_present,
            max_workers=settings.max_workers,
            lock_timeout=settings.lock_timeout,
            docker_port_repos=settings.docker_port_repos,
            started_at=started,
        )
        if settings.has_store:
            store = HttpArtifactStore(
                settings.base_url,
                user=user or settings.user or None,
                token=token or settings.token or None,
                timeout=settings.http_timeout,
            )
        result = PublishSession(config, build_info, store).run()
    except PublishError as exc:
        report_error(exc)
        raise typer.Exit(code=1)
    finally:
        if store is not None:
            store.close()

    _print_summary(result, mode)
    if result.errors:
        raise typer.Exit(code=1)
