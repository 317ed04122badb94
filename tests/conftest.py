"""Pytest configuration and fixtures for shepherd tests."""

import logging
import tempfile
from pathlib import Path

import pytest
from git import Repo

from shepherd.constants import APP_NAME


def commit_file(repo_path: Path, name: str, content: str, message: str) -> str:
    """Write a file into a repository and commit it. Returns the new commit hash."""
    repo = Repo(repo_path)
    (repo_path / name).write_text(content)
    repo.index.add([name])
    commit = repo.index.commit(message)
    repo.close()
    return commit.hexsha


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by CLI invocations once a test is done."""
    yield
    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def add_commit():
    """Helper that commits a file into a repository."""
    return commit_file


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def origin_repo(temp_dir: Path):
    """Create a temporary git repository to act as a remote."""
    repo_path = temp_dir / "origin"
    repo_path.mkdir()

    # Initialize git repo
    repo = Repo.init(repo_path)

    # Configure git user
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()
    repo.close()

    # Create initial commit
    commit_file(repo_path, "README.md", "# Origin Repo\n", "Initial commit")

    yield repo_path


@pytest.fixture
def source_dir(temp_dir: Path):
    """Create the root of the working-copy tree."""
    path = temp_dir / "sources"
    path.mkdir()
    yield path


@pytest.fixture
def config_path(temp_dir: Path):
    """Location of a registry file that does not exist yet."""
    yield temp_dir / "config" / "config.yaml"
