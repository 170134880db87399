"""Error taxonomy for stable module boundaries."""


class RepoPullError(Exception):
    """Base exception for repopull."""


class ConfigError(RepoPullError):
    """Raised when configuration is invalid or missing."""


class CatalogError(RepoPullError):
    """Raised for repository catalog persistence and lookup failures."""


class RepositoryNotFoundError(CatalogError):
    """Raised when an explicitly named repository does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No repository exists with name '{name}'.")
        self.name = name


class SyncError(RepoPullError):
    """Describes why a single repository pull failed."""


class SchedulerError(RepoPullError):
    """Raised for pull loop parameter and coordination failures."""


class DiagnosticsError(RepoPullError):
    """Raised for doctor/debug event failures."""
