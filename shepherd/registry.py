"""
Registry store for shepherd.

Loads the registry file, answers lookups and persists changes. Writes go
to a temporary file in the same directory which is then swapped into
place, so an interrupted write never leaves a truncated registry behind.
"""

import contextlib
import logging
import os
import tempfile
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import RepositoryEntry, ShepherdConfig
from .constants import APP_NAME
from .errors import ConfigError, DuplicateNameError, UnknownRepositoryError

logger = logging.getLogger(APP_NAME)


class RegistryStore:
    """The durable, ordered list of tracked repositories plus global settings.

    Attributes:
        path (Path): Location of the YAML registry file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._config: ShepherdConfig | None = None

    @property
    def config(self) -> ShepherdConfig:
        """The loaded registry, reading the file on first access."""
        if self._config is None:
            return self.load()
        return self._config

    def load(self) -> ShepherdConfig:
        """Read the registry file.

        A missing or empty file yields an empty registry with default
        settings. Nothing is written to disk.

        Raises:
            ConfigError: If the file cannot be read, is not valid YAML, or
                does not match the registry schema.
        """
        if not self.path.exists():
            logger.debug(f"No registry at {self.path}, using defaults")
            self._config = ShepherdConfig()
            return self._config

        try:
            self._config = ShepherdConfig.from_yaml(self.path)
        except yaml.YAMLError as e:
            raise ConfigError(self.path, f"YAML syntax error: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigError(self.path, f"not valid UTF-8: {e}") from e
        except ValidationError as e:
            raise ConfigError(self.path, _format_validation_error(e)) from e
        except OSError as e:
            raise ConfigError(self.path, e.strerror or str(e)) from e

        logger.debug(
            f"Loaded {len(self._config.repositories)} repositories from {self.path}"
        )
        return self._config

    def list(self) -> list[RepositoryEntry]:
        """Get all entries in the order they were added."""
        return list(self.config.repositories)

    def get(self, name: str) -> RepositoryEntry:
        """Look up an entry by its exact (case-sensitive) name.

        Raises:
            UnknownRepositoryError: If no entry has that name.
        """
        entry = self.config.find(name)
        if entry is None:
            raise UnknownRepositoryError(name)
        return entry

    def add(self, entry: RepositoryEntry) -> RepositoryEntry:
        """Append an entry and persist the registry.

        The file is re-read first so that entries added by another process
        since the last load are not lost.

        Raises:
            ConfigError: If the registry file is malformed.
            DuplicateNameError: If an entry with the same name exists. The
                registry is left untouched.
        """
        config = self.load()
        if config.find(entry.name) is not None:
            raise DuplicateNameError(entry.name)

        updated = config.model_copy(
            update={"repositories": [*config.repositories, entry]}
        )
        self._write(updated)
        logger.info(f"ADDED {entry.name}: {entry.url}")
        return entry

    def remove(self, name: str) -> RepositoryEntry:
        """Remove an entry and persist the registry.

        The working copy on disk is not touched.

        Raises:
            UnknownRepositoryError: If no entry has that name.
        """
        config = self.load()
        entry = config.find(name)
        if entry is None:
            raise UnknownRepositoryError(name)

        updated = config.model_copy(
            update={
                "repositories": [e for e in config.repositories if e.name != name]
            }
        )
        self._write(updated)
        logger.info(f"REMOVED {name}")
        return entry

    def resolve_source_dir(self) -> Path:
        """Get the root of the working-copy tree, with ``~`` expanded."""
        return self.config.source_path

    def dump(self) -> str:
        """Render the current registry as YAML."""
        return self.config.to_yaml_text()

    def _write(self, config: ShepherdConfig) -> None:
        """Persist atomically: write a temp file, fsync, then rename over."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        tmp_file = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(config.to_yaml_text())
                f.flush()
                os.fsync(f.fileno())  # Force write to disk.

            # Keep the permissions of an existing registry.
            if self.path.exists():
                os.chmod(tmp_file, self.path.stat().st_mode & 0o777)

            # Atomic swap.
            os.replace(tmp_file, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                tmp_file.unlink()
            raise

        self._config = config


def _format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into one readable line per problem."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)
