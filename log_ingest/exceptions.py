class LogIngestError(Exception):
    """Base exception for the ingestion pipeline."""


class ConfigError(LogIngestError):
    """Raised when configuration is missing or invalid."""


class ValidationError(LogIngestError):
    """Raised when an upload is rejected before any file is processed."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class BatchCancelled(LogIngestError):
    """Raised inside a file worker when the batch was cancelled."""


class StoreError(LogIngestError):
    """Raised when the document store fails as a whole.

    ``partial`` holds what earlier slices of the same load already wrote,
    when the failure happened mid-load.
    """

    code = "STORE_ERROR"
    partial = None


class BulkWriteTimeout(StoreError):
    """Raised when a bulk write does not finish within its time budget."""

    code = "STORE_TIMEOUT"
