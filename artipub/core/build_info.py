"""Build identity discovery from git and the CI environment."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

from artipub.core.errors import ConfigError
from artipub.models.manifest import BuildInfo

logger = logging.getLogger(__name__)

# git@host:org/repo.git, ssh://git@host[:port]/org/repo.git, https://host/org/repo
_REPO_URL_PATTERNS = [
    re.compile(r"^[\w.-]+@[\w.-]+:(?P<org>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"),
    re.compile(
        r"^(?:ssh|git|https?)://(?:[^@/]+@)?[\w.-]+(?::\d+)?/"
        r"(?:[\w.-]+/)*?(?P<org>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
    ),
]

_BUILD_NUMBER_VARS = ("BUILD_NUMBER", "GITHUB_RUN_NUMBER", "CI_PIPELINE_IID")
_BRANCH_VARS = ("BRANCH_NAME", "GITHUB_REF_NAME", "CI_COMMIT_REF_NAME")


def parse_repo_url(url: str) -> tuple[str, str]:
    """Return ``(org, repo)`` from a git remote URL."""
    for pattern in _REPO_URL_PATTERNS:
        match = pattern.match(url.strip())
        if match:
            return match.group("org"), match.group("repo")
    raise ConfigError(f"Cannot parse organisation and repository from git URL {url!r}")


def run_git(args: list[str], cwd: Path | None = None) -> str | None:
    """Run a git query; ``None`` when git is missing or the query fails."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.SubprocessError, OSError) as exc:
        logger.debug("git %s failed: %s", " ".join(args), exc)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def _first_env(env: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        if env.get(name):
            return env[name]
    return None


def discover_build_info(
    *,
    timestamp: datetime,
    repo: str | None = None,
    branch: str | None = None,
    git_sha: str | None = None,
    build_no: str | None = None,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> BuildInfo:
    """Assemble ``BuildInfo``; explicit arguments win over discovery.

    Raises ``ConfigError`` when any identity field cannot be determined.
    """
    env = os.environ if env is None else env

    repo = repo or run_git(["config", "--get", "remote.origin.url"], cwd)
    if not branch:
        branch = run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)
        if not branch or branch == "HEAD":
            branch = _first_env(env, _BRANCH_VARS)
    git_sha = git_sha or run_git(["rev-parse", "HEAD"], cwd)
    build_no = build_no or _first_env(env, _BUILD_NUMBER_VARS)

    missing = [
        name
        for name, value in (
            ("repo (--git-repo)", repo),
            ("branch (--git-branch)", branch),
            ("git sha (--git-sha)", git_sha),
            ("build number (--build-no)", build_no),
        )
        if not value
    ]
    if missing:
        raise ConfigError(f"Cannot determine build identity: missing {', '.join(missing)}")

    return BuildInfo(
        repo=repo,
        branch=branch,
        build_no=str(build_no),
        git_sha=git_sha,
        timestamp=timestamp.isoformat(timespec="seconds"),
    )


def target_base(root: str, build_info: BuildInfo) -> str:
    """Store-relative folder for a build: ``{root}/{ORG}/{repo}/{branch}/{build-no}``."""
    org, repo = parse_repo_url(build_info.repo)
    parts = [root.strip("/"), org.upper(), repo, build_info.branch.strip("/"), build_info.build_no]
    return "/".join(p for p in parts if p)
