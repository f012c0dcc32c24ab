"""Error taxonomy for the ingestion pipeline.

Every error raised while driving an upload attempt derives from
:class:`IngestError`. The ``code`` attribute is a stable machine-readable
identifier used in HTTP error bodies; ``str(exc)`` is the human-readable
message recorded in the upload log.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all pipeline errors."""

    code = "INGEST_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        # Set by the pipeline once a log row exists for the failing attempt.
        self.attempt_id: int | None = None
        super().__init__(message)


class ValidationError(IngestError):
    """A filename or URL was rejected before any I/O took place."""

    code = "VALIDATION_ERROR"


class SourceDisabledError(IngestError):
    """The requested source provider is switched off in configuration."""

    code = "SOURCE_DISABLED"


class AcquisitionError(IngestError):
    """Receiving or downloading the source audio failed."""

    code = "ACQUISITION_FAILED"


class ProcessingError(IngestError):
    """The external processor exited non-zero or could not be started."""

    code = "PROCESSING_FAILED"


class MergeError(IngestError):
    """One or more files could not be moved into the library."""

    code = "MERGE_FAILED"


class CommandTimeoutError(IngestError):
    """An external command exceeded its deadline and was killed."""

    code = "TIMED_OUT"

    def __init__(self, program: str, timeout: float) -> None:
        self.program = program
        self.timeout = timeout
        super().__init__(f"{program} timed out after {timeout:g}s")


class UploadLogError(IngestError):
    """The upload log store could not be written or read."""

    code = "LOG_STORE_UNAVAILABLE"


class InvalidTransitionError(UploadLogError):
    """A status change that the attempt state machine does not allow."""

    code = "INVALID_TRANSITION"
