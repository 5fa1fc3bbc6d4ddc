"""Tests for the concrete backends, with their transports mocked out."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import fitz
import httpx
import pytest

from docpipe.clients.base import BlobStore, ExtractionClient, IndexClient
from docpipe.clients.blob_store import BlobStoreError, HttpBlobStore
from docpipe.clients.extractor import ExtractionError, PyMuPDFExtractor
from docpipe.clients.index_client import PineconeAssistantIndex, to_index_status
from docpipe.models.document import IndexStatus


def _blob_store(handler) -> HttpBlobStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpBlobStore(base_url="https://blobs.test/", client=client)


class TestHttpBlobStore:
    async def test_get_url(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/files/abc/url"
            return httpx.Response(200, json={"url": "https://cdn.test/abc"})

        store = _blob_store(handler)
        assert await store.get_url("abc") == "https://cdn.test/abc"
        assert isinstance(store, BlobStore)

    async def test_get_url_missing_file(self):
        store = _blob_store(lambda request: httpx.Response(404))
        assert await store.get_url("gone") is None

    async def test_download_error_message(self):
        store = _blob_store(lambda request: httpx.Response(403))
        with pytest.raises(BlobStoreError, match="Failed to fetch file: 403"):
            await store.download("https://cdn.test/abc")

    async def test_upload_returns_storage_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/upload-url":
                return httpx.Response(200, json={"url": "https://blobs.test/put/1"})
            seen["body"] = request.content
            seen["content_type"] = request.headers["content-type"]
            return httpx.Response(200, json={"storageId": "storage-42"})

        store = _blob_store(handler)
        upload_url = await store.generate_upload_url()
        storage_id = await store.upload(upload_url, b"%PDF", "application/pdf")

        assert storage_id == "storage-42"
        assert seen == {"body": b"%PDF", "content_type": "application/pdf"}
        await store.aclose()

    async def test_delete_ignores_missing_file(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.method, request.url.path))
            return httpx.Response(404)

        await _blob_store(handler).delete("gone")
        assert requests == [("DELETE", "/files/gone")]


class TestPyMuPDFExtractor:
    async def test_extracts_text_per_page(self):
        pdf = fitz.open()
        for text in ("First page text", "Second page text"):
            page = pdf.new_page()
            page.insert_text((72, 72), text)
        data = pdf.tobytes()
        pdf.close()

        extractor = PyMuPDFExtractor()
        result = await extractor.extract_text(data)

        assert isinstance(extractor, ExtractionClient)
        assert result.page_count == 2
        assert result.text.split("\f") == ["First page text", "Second page text"]

    async def test_corrupt_file(self):
        with pytest.raises(ExtractionError):
            await PyMuPDFExtractor().extract_text(b"definitely not a pdf")


class TestPineconeAssistantIndex:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Available", IndexStatus.AVAILABLE),
            ("Processing", IndexStatus.PROCESSING),
            ("ProcessingFailed", IndexStatus.FAILED),
            (None, IndexStatus.PROCESSING),
        ],
    )
    def test_status_mapping(self, raw, expected):
        assert to_index_status(raw) == expected

    def test_requires_api_key(self):
        with patch("docpipe.clients.index_client.Settings") as mock_settings:
            mock_settings.return_value = MagicMock(PINECONE_API_KEY=None)
            with pytest.raises(ValueError):
                PineconeAssistantIndex()

    @patch("docpipe.clients.index_client.Pinecone")
    async def test_upload_writes_text_file(self, mock_pinecone):
        assistant = mock_pinecone.return_value.assistant.Assistant.return_value
        uploaded = {}

        def upload_file(file_path, metadata, timeout):
            with open(file_path, encoding="utf-8") as f:
                uploaded["content"] = f.read()
            uploaded["file_path"] = file_path
            uploaded["metadata"] = metadata
            uploaded["timeout"] = timeout
            return SimpleNamespace(id="file-1", status="Processing")

        assistant.upload_file.side_effect = upload_file
        index = PineconeAssistantIndex(api_key="test-key", assistant_name="docs")

        result = await index.upload("SUMMARY:\nHi", {"filename": "deck.pdf", "year": "2024"})

        assert result.id == "file-1"
        assert result.status == IndexStatus.PROCESSING
        assert uploaded["content"] == "SUMMARY:\nHi"
        assert uploaded["file_path"].endswith("deck.txt")
        assert uploaded["metadata"] == {"filename": "deck.pdf", "year": "2024"}
        assert uploaded["timeout"] == -1
        mock_pinecone.return_value.assistant.Assistant.assert_called_once_with(assistant_name="docs")
        assert isinstance(index, IndexClient)

    @patch("docpipe.clients.index_client.Pinecone")
    async def test_describe_and_delete(self, mock_pinecone):
        assistant = mock_pinecone.return_value.assistant.Assistant.return_value
        assistant.describe_file.return_value = SimpleNamespace(status="ProcessingFailed", error_message="bad pdf")
        index = PineconeAssistantIndex(api_key="test-key")

        info = await index.describe("file-1")
        await index.delete("file-1")

        assert info.status == IndexStatus.FAILED
        assert info.error_message == "bad pdf"
        assistant.describe_file.assert_called_once_with(file_id="file-1")
        assistant.delete_file.assert_called_once_with(file_id="file-1")
