"""Domain errors raised by the ingestion core."""

from uuid import UUID


class DocpipeError(Exception):
    """Base class for all ingestion errors."""


class DuplicateContentError(DocpipeError):
    """A document with the same content hash already exists."""

    def __init__(self, existing_id: UUID, existing_title: str | None = None):
        self.existing_id = existing_id
        self.existing_title = existing_title
        label = f'"{existing_title}"' if existing_title else str(existing_id)
        super().__init__(f"Duplicate file: this document has already been uploaded as {label}")


class StageFailure(DocpipeError):
    """
    A pipeline stage failed.

    ``str(exc)`` is the stage's message verbatim so it can be stored on the
    Document and ProcessingJob unchanged.
    """

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(message)


class QueueSaturated(DocpipeError):
    """The work queue admission depth is at its bound; retry later."""


class DocumentNotFoundError(DocpipeError):
    def __init__(self, document_id):
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class TerminalJobError(DocpipeError):
    """Attempted to mutate a ProcessingJob that is already completed or failed."""


class UnknownHandleError(DocpipeError, KeyError):
    """No work item was ever issued for this handle."""
