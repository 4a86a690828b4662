"""
Errors raised by the Google Sheets connector and sync engine.
Messages are stored on the connection as its last error, so they must stay
short and must never contain tokens.
"""


class SyncError(Exception):
    """Base class for sync failures"""


class CredentialError(SyncError):
    """Token exchange or refresh failed; the user likely needs to re-authorize"""


class TokenExpiredError(CredentialError):
    """The provider rejected the access token (401)"""


class SourceUnavailableError(SyncError):
    """Spreadsheet could not be fetched: network, permission, not found or timeout"""


class MappingResolutionMiss(SyncError):
    """No value found for one mapping entry; skipped, never fails the sync"""

    def __init__(self, source_column: str, kpi_code: str):
        self.source_column = source_column
        self.kpi_code = kpi_code
        super().__init__(f"No value found for '{source_column}' ({kpi_code})")


class PersistenceError(SyncError):
    """Writing one KPI data point failed"""


class ConnectionBusyError(SyncError):
    """A sync is already running for this connection"""


class ConnectionNotFoundError(SyncError):
    """No connection with the given id"""
