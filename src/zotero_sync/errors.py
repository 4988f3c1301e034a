"""Exception taxonomy for zotero_sync.

Only ``ConfigurationError`` and failures of the initial candidate fetch abort
a sync cycle.  Everything raised while processing a single record is caught
at the per-record boundary by the orchestrator.
"""


class ZoteroSyncError(Exception):
    """Base class for all zotero_sync errors."""


class ConfigurationError(ZoteroSyncError, ValueError):
    """Required identity or settings are missing or invalid."""


class ZoteroApiError(ZoteroSyncError):
    """The Zotero Web API answered with an error status.

    Attributes:
        status_code: HTTP status returned by the server.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Zotero API error {status_code}: {message}")
        self.status_code = status_code


class RecordProcessingError(ZoteroSyncError):
    """A remote record has an unexpected shape and cannot be rendered."""
