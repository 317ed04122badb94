"""
Git operations for shepherd.

Provides the git transport used by the sync engine, a thin wrapper
around GitPython for cloning and fetching working copies.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from git import FetchInfo, Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .constants import APP_NAME, DEFAULT_REMOTE
from .errors import TransportError

logger = logging.getLogger(APP_NAME)


@dataclass
class FetchSummary:
    """Refs changed by a fetch."""

    updated_refs: list[str] = field(default_factory=list)

    @property
    def has_new_data(self) -> bool:
        """Whether the fetch retrieved anything."""
        return bool(self.updated_refs)


class GitTransport(Protocol):
    """The clone/fetch contract the sync engine depends on."""

    def clone(self, url: str, destination: Path) -> None:
        """Create ``destination`` as a full working copy of ``url``.

        Must raise TransportError on failure and leave nothing at
        ``destination``.
        """
        ...

    def fetch(self, path: Path) -> FetchSummary:
        """Fetch the working copy at ``path`` from its remote.

        Must raise TransportError on failure.
        """
        ...


def _git_error_detail(error: GitCommandError) -> str:
    """Get the most useful single line out of a failed git command."""
    stderr = (error.stderr or "").strip()
    # GitPython wraps stderr as "  stderr: '...'"
    if stderr.startswith("stderr:"):
        stderr = stderr[len("stderr:") :].strip().strip("'")
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    for line in reversed(lines):
        if line.lower().startswith(("fatal:", "error:")):
            return line
    if lines:
        return lines[-1]
    return f"git exited with status {error.status}"


class GitPythonTransport:
    """Clone and fetch through GitPython.

    Clones are made in a hidden staging directory beside the destination and
    renamed into place once complete.
    """

    def __init__(
        self,
        remote_name: str = DEFAULT_REMOTE,
        fetch_timeout: float | None = None,
    ):
        self.remote_name = remote_name
        self.fetch_timeout = fetch_timeout

    def clone(self, url: str, destination: Path) -> None:
        """Clone ``url`` into ``destination``, atomically."""
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(
                tempfile.mkdtemp(
                    prefix=f".{destination.name}.", suffix=".clone",
                    dir=destination.parent,
                )
            )
        except OSError as e:
            raise TransportError(f"Cannot prepare {destination.parent}: {e}") from e

        try:
            logger.debug(f"Cloning {url} into {staging}")
            repo = Repo.clone_from(url, staging)
            repo.close()
            staging.rename(destination)
        except GitCommandError as e:
            raise TransportError(f"Clone failed: {_git_error_detail(e)}") from e
        except OSError as e:
            raise TransportError(f"Cannot move clone into {destination}: {e}") from e
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

    def fetch(self, path: Path) -> FetchSummary:
        """Fetch the configured remote of the working copy at ``path``."""
        try:
            repo = Repo(path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise TransportError(f"Not a valid git repository: {path}") from e

        with repo:
            try:
                remote = repo.remote(self.remote_name)
            except ValueError as e:
                raise TransportError(f"No remote named '{self.remote_name}'") from e

            try:
                infos = remote.fetch(kill_after_timeout=self.fetch_timeout)
            except GitCommandError as e:
                raise TransportError(f"Fetch failed: {_git_error_detail(e)}") from e

        updated = [
            info.name for info in infos if not info.flags & FetchInfo.HEAD_UPTODATE
        ]
        logger.debug(f"Fetched {path}: {len(updated)} updated refs")
        return FetchSummary(updated_refs=updated)
