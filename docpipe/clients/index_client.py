"""
Search index backend: Pinecone Assistant.

Files are uploaded as enriched plain text and processed asynchronously by
Pinecone; callers poll ``describe`` until the file is Available.
"""

import asyncio
import logging
import os
import tempfile

from pinecone import Pinecone

from docpipe.core.config import Settings
from docpipe.core.text import to_text_filename
from docpipe.models.document import IndexStatus

from .base import IndexFile, IndexFileInfo

logger = logging.getLogger(__name__)

# Pinecone reports its own status vocabulary; map it onto ours.
_STATUS_MAP = {
    "Available": IndexStatus.AVAILABLE,
    "Processing": IndexStatus.PROCESSING,
    "ProcessingFailed": IndexStatus.FAILED,
    "Failed": IndexStatus.FAILED,
}


def to_index_status(raw_status: str | None) -> str:
    return _STATUS_MAP.get(raw_status or "", IndexStatus.PROCESSING)


class PineconeAssistantIndex:
    def __init__(self, api_key: str | None = None, assistant_name: str | None = None):
        settings = Settings()
        api_key = api_key or settings.PINECONE_API_KEY
        if not api_key:
            raise ValueError("PINECONE_API_KEY is not set")
        self.assistant_name = assistant_name or settings.PINECONE_ASSISTANT
        self._pc = Pinecone(api_key=api_key)
        self._assistant = None

    @property
    def assistant(self):
        if self._assistant is None:
            self._assistant = self._pc.assistant.Assistant(assistant_name=self.assistant_name)
        return self._assistant

    async def upload(self, content: str, metadata: dict) -> IndexFile:
        return await asyncio.to_thread(self._upload, content, metadata)

    def _upload(self, content: str, metadata: dict) -> IndexFile:
        filename = to_text_filename(metadata.get("filename"))
        with tempfile.TemporaryDirectory(prefix="docpipe-index-") as tmp_dir:
            path = os.path.join(tmp_dir, filename)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
            # timeout=-1 returns immediately; availability is polled separately
            response = self.assistant.upload_file(file_path=path, metadata=metadata, timeout=-1)

        logger.info(f"Uploaded {filename} to assistant {self.assistant_name} as {response.id}")
        return IndexFile(id=response.id, status=to_index_status(response.status))

    async def describe(self, file_id: str) -> IndexFileInfo:
        response = await asyncio.to_thread(self.assistant.describe_file, file_id=file_id)
        return IndexFileInfo(
            status=to_index_status(response.status),
            error_message=getattr(response, "error_message", None),
        )

    async def delete(self, file_id: str) -> None:
        await asyncio.to_thread(self.assistant.delete_file, file_id=file_id)
        logger.info(f"Deleted index file {file_id}")
