"""
Git source handling: BitBake git URLs and project repository discovery.
"""

import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .dependency import Dependency, GitReferenceKind
from .error_handling import ErrorCategory, GraphError, get_error_handler
from .structured_logging import log_git_failure

# git@github.com:owner/repo.git
SSH_STYLE_REMOTE = re.compile(r".*@.*:.*")

AUTOREV = "${AUTOREV}"
FULL_SHA_LENGTH = 40


class GitPrefix(Enum):
    GIT = "git"
    GIT_SUBMODULE = "gitsm"


class GitCommandError(Exception):
    """A git invocation failed or git is unavailable."""


def git_to_yocto_git_url(
    url: str, name: Optional[str] = None, prefix: GitPrefix = GitPrefix.GIT
) -> str:
    """
    Convert a git remote URL to a BitBake fetcher URL.

    ``https://host/path`` becomes ``git://host/path;protocol=https``; scp-style
    remotes are treated as ssh. ``nobranch=1`` is always set so bitbake accepts
    revisions outside the default branch.
    """
    if "://" not in url and SSH_STYLE_REMOTE.match(url):
        url = "ssh://" + url.replace(":", "/", 1)

    proto, sep, rest = url.partition(":")
    if sep and proto in ("ssh", "http", "https"):
        url = f"{prefix.value}:{rest};protocol={proto}"

    url = f"{url};nobranch=1"

    if name:
        url = f"{url};name={name};destsuffix={name}"
    return url


def git_revision(dependency: Dependency, reproducible: bool = False) -> str:
    """
    Pick the SRCREV for a git-sourced dependency.

    Reproducible mode always uses the commit locked in Cargo.lock. Otherwise
    the manifest's reference is used when bitbake can fetch it directly.

    Raises:
        GraphError: If a short revision was requested and nothing is locked
    """
    if reproducible and dependency.precise:
        return dependency.precise

    reference = dependency.git_reference
    if reference is None or reference.kind is GitReferenceKind.DEFAULT_BRANCH:
        return AUTOREV
    if reference.kind is GitReferenceKind.TAG:
        return reference.value
    if reference.kind is GitReferenceKind.BRANCH:
        return AUTOREV if reference.value == "master" else reference.value

    # GitReferenceKind.REV: bitbake needs the full hash
    if reference.value and len(reference.value) == FULL_SHA_LENGTH:
        return reference.value
    if dependency.precise:
        return dependency.precise
    raise GraphError(f"Cannot find a full revision for git dependency {dependency}")


def git_source_extras(dependency: Dependency, revision: str) -> List[str]:
    """SRCREV and cargo path lines that accompany a git SRC_URI entry."""
    return [
        f'SRCREV_FORMAT .= "_{dependency.name}"',
        f'SRCREV_{dependency.name} = "{revision}"',
        f'EXTRA_OECARGO_PATHS += "${{WORKDIR}}/{dependency.name}"',
    ]


def _run_git(args: List[str], cwd: Path, timeout: float = 10.0) -> str:
    """Run a git command and return stripped stdout."""
    command = ["git", *[str(arg) for arg in args]]
    try:
        completed = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise GitCommandError("git executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise GitCommandError(f"git {args[0]} timed out after {timeout}s") from e

    if completed.returncode != 0:
        raise GitCommandError(
            f"git {' '.join(args)} failed: {completed.stderr.strip() or completed.returncode}"
        )
    return completed.stdout.strip()


@dataclass(frozen=True)
class ProjectRepo:
    """Upstream repository the project itself can be fetched from."""

    uri: str = ""
    branch: str = ""
    rev: str = ""
    tag: bool = False

    @classmethod
    def discover(cls, cwd: Path) -> "ProjectRepo":
        """
        Inspect the git checkout containing ``cwd``.

        Raises:
            GitCommandError: If cwd is not in a repository or has no origin
        """
        remote = _run_git(["remote", "get-url", "origin"], cwd)
        if not remote:
            raise GitCommandError("No URL for remote 'origin'")

        submodules = _run_git(["submodule", "status"], cwd)
        prefix = GitPrefix.GIT_SUBMODULE if submodules else GitPrefix.GIT
        uri = git_to_yocto_git_url(remote, None, prefix)

        branch = _run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)
        if branch not in ("master", "HEAD"):
            uri = f"{uri};branch={branch}"

        rev = _run_git(["rev-parse", "HEAD"], cwd)
        tags = _run_git(["tag", "--points-at", "HEAD"], cwd)

        return cls(uri=uri, branch=branch, rev=rev, tag=bool(tags))

    @classmethod
    def discover_or_default(cls, cwd: Path) -> "ProjectRepo":
        """Like ``discover`` but logs and returns an empty repo on failure."""
        try:
            return cls.discover(cwd)
        except GitCommandError as e:
            get_error_handler().warning(
                ErrorCategory.GIT,
                f"Unable to determine git repo for this project: {e}",
                "git_sources",
                "discover_or_default",
                details={"cwd": str(cwd)},
            )
            log_git_failure(str(e))
            return cls()

    def pv_append(self, legacy_overrides: bool = False) -> str:
        """
        Version suffix for untagged checkouts so sstate stays valid.

        Empty for tagged revisions and when no revision is known.
        """
        if self.tag or len(self.rev) <= 10:
            return ""
        key = "PV_append" if legacy_overrides else "PV:append"
        return f'{key} = ".AUTOINC+{self.rev[:10]}"'
