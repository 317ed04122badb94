"""Exception hierarchy for shepherd."""

from pathlib import Path


class ShepherdError(Exception):
    """Base class for all shepherd errors."""


class ConfigError(ShepherdError):
    """The registry file could not be read or does not match the schema."""

    def __init__(self, path: Path, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid config file {path}: {detail}")


class DuplicateNameError(ShepherdError):
    """A repository with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Repository already exists: {name}")


class UnknownRepositoryError(ShepherdError):
    """No repository with the given name is registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Repository not found: {name}")


class TransportError(ShepherdError):
    """A clone or fetch failed. The message is the reason reported to the user."""


class PathConflictError(ShepherdError):
    """The target path holds something that is not the expected working copy."""

    reason = "path occupied by non-repository content"

    def __init__(self, path: Path):
        self.path = path
        super().__init__(self.reason)
