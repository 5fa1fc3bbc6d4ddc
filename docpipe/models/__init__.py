from .base import TimestampedModel, UUIDModel
from .chunks import Chunk
from .document import Document
from .processing_job import ProcessingJob
from .reprocessing_request import ReprocessingRequest
from .setting import Setting

__all__ = [
    "TimestampedModel",
    "UUIDModel",
    "Document",
    "ProcessingJob",
    "ReprocessingRequest",
    "Chunk",
    "Setting",
]
