"""
Working copy inspection.

Classifies the location of an entry before any git transport is used, so
the sync engine can decide between clone, fetch, and refusing to touch
the path.
"""

from enum import Enum
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .constants import DEFAULT_REMOTE


class RepoState(str, Enum):
    """What currently lives at a working copy location."""

    ABSENT = "absent"
    VALID_REPO = "valid_repo"
    OCCUPIED = "occupied"


def normalize_url(url: str) -> str:
    """Strip the parts of a remote URL that do not change what it points at."""
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]
    return url


def tracks_remote(repo: Repo, url: str, remote_name: str = DEFAULT_REMOTE) -> bool:
    """Check whether the remote that gets fetched points at ``url``."""
    wanted = normalize_url(url)
    try:
        remote = repo.remote(remote_name)
    except ValueError:
        return False
    try:
        return any(normalize_url(u) == wanted for u in remote.urls)
    except GitCommandError:
        # Remote section without a url
        return False


def inspect(
    path: Path, url: str | None = None, remote_name: str = DEFAULT_REMOTE
) -> RepoState:
    """
    Classify a working copy location.

    Args:
        path: The resolved working copy path
        url: If given, a repository only counts as valid when its
            ``remote_name`` remote points at this URL
        remote_name: The remote the transport fetches

    Returns:
        ABSENT if nothing exists at the path, VALID_REPO if it is the root of
        a matching working copy, OCCUPIED otherwise
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return RepoState.ABSENT
    if not path.is_dir():
        return RepoState.OCCUPIED

    try:
        repo = Repo(path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return RepoState.OCCUPIED

    with repo:
        if repo.bare or repo.working_tree_dir is None:
            return RepoState.OCCUPIED
        if Path(repo.working_tree_dir).resolve() != path.resolve():
            return RepoState.OCCUPIED
        if url is not None and not tracks_remote(repo, url, remote_name):
            return RepoState.OCCUPIED

    return RepoState.VALID_REPO
