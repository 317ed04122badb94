"""
Configuration handling for shepherd.

Defines the registry schema and provides methods for loading/saving
it from YAML files.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import DEFAULT_SOURCE_DIR
from .paths import expand_source_dir, validate_segment


def repo_name_from_url(url: str) -> str:
    """Extract a repository name from a git URL."""
    # Handle various URL formats:
    # git@github.com:org/repo.git
    # https://github.com/org/repo.git
    # https://github.com/org/repo
    name = url.rstrip("/")
    if name.endswith(".git"):
        name = name[:-4]
    # Get the last part after / or :
    if "/" in name:
        name = name.rsplit("/", 1)[-1]
    elif ":" in name:
        name = name.rsplit(":", 1)[-1]
    if not name:
        raise ValueError(f"Cannot derive a repository name from URL: {url}")
    return name


class RepositoryEntry(BaseModel):
    """A single tracked repository."""

    name: str = Field(..., description="Unique name, also the working copy directory")
    url: str = Field(..., description="Remote URL passed to git")
    # Sub-directory of source_dir to place the working copy in
    category: str | None = Field(
        default=None,
        description="Optional folder under source_dir grouping related repositories",
    )

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return validate_segment(value, "name")

    @field_validator("category")
    @classmethod
    def _check_category(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return validate_segment(value, "category")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("url must not be empty")
        return value

    @classmethod
    def from_url(cls, url: str, category: str | None = None) -> "RepositoryEntry":
        """Create an entry whose name is derived from the URL."""
        return cls(name=repo_name_from_url(url), url=url, category=category)


class ShepherdConfig(BaseModel):
    """The registry document: global settings plus the repository list."""

    source_dir: str = Field(
        default=DEFAULT_SOURCE_DIR,
        description="Root directory under which all working copies live",
    )
    jobs: int = Field(
        default=1, ge=1, description="Number of repositories synced in parallel"
    )
    fetch_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds before a single fetch is killed (unset = no limit)",
    )
    repositories: list[RepositoryEntry] = Field(
        default_factory=list, description="Tracked repositories, in order"
    )

    @model_validator(mode="after")
    def _check_unique_names(self) -> "ShepherdConfig":
        seen: set[str] = set()
        for entry in self.repositories:
            if entry.name in seen:
                raise ValueError(f"duplicate repository name: {entry.name}")
            seen.add(entry.name)
        return self

    @property
    def source_path(self) -> Path:
        """The source dir with ``~`` and environment variables expanded."""
        return expand_source_dir(self.source_dir)

    def find(self, name: str) -> RepositoryEntry | None:
        """Get the entry with the given name, if any."""
        for entry in self.repositories:
            if entry.name == name:
                return entry
        return None

    @classmethod
    def from_yaml_text(cls, text: str) -> "ShepherdConfig":
        """Parse a YAML document. An empty document yields the defaults."""
        data = yaml.safe_load(text)
        if data is None:
            return cls()
        return cls.model_validate(data)

    @classmethod
    def from_yaml(cls, path: Path) -> "ShepherdConfig":
        """Load configuration from a YAML file."""
        with open(path, encoding="utf-8") as f:
            return cls.from_yaml_text(f.read())

    def to_yaml_text(self) -> str:
        """Render the configuration as a YAML document."""
        return yaml.safe_dump(
            self.model_dump(mode="json"),
            default_flow_style=False,
            sort_keys=False,
        )

