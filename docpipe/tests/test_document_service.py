import uuid

import pytest

from docpipe.core.errors import DocumentNotFoundError
from docpipe.models import Chunk, Document, ProcessingJob, ReprocessingRequest
from docpipe.models.document import DocumentStatus
from docpipe.services.document_service import DocumentService, ReprocessFilter
from docpipe.tests.fakes import FakeIndexClient


async def _document(n: int = 0, **overrides) -> Document:
    fields = {"title": f"Report {n}", "filename": f"report_{n}.pdf"}
    fields.update(overrides)
    return await Document.create(**fields)


class TestDocumentService:
    async def test_get_unknown_document(self):
        with pytest.raises(DocumentNotFoundError):
            await DocumentService(extraction_version="v2.0").get(uuid.uuid4())

    async def test_patch_only_touches_given_columns(self):
        service = DocumentService(extraction_version="v2.0")
        document = await _document(summary="Keep me")

        await service.patch(document.id, company="Acme")

        document = await Document.get(id=document.id)
        assert document.company == "Acme"
        assert document.summary == "Keep me"

    async def test_patch_unknown_document(self):
        with pytest.raises(DocumentNotFoundError):
            await DocumentService(extraction_version="v2.0").patch(uuid.uuid4(), company="Acme")

    async def test_set_status_validates(self):
        service = DocumentService(extraction_version="v2.0")
        document = await _document()

        await service.set_status(document.id, DocumentStatus.FAILED, error="Corrupt file")
        assert (await Document.get(id=document.id)).processing_error == "Corrupt file"

        with pytest.raises(ValueError):
            await service.set_status(document.id, "archived")

    async def test_approve_and_reject(self):
        service = DocumentService(extraction_version="v2.0")
        document = await _document()

        await service.approve(document.id, "admin@example.com")
        document = await Document.get(id=document.id)
        assert document.approved is True
        assert document.approved_by == "admin@example.com"
        assert document.approved_at is not None

        await service.reject(document.id)
        document = await Document.get(id=document.id)
        assert document.approved is False
        assert document.approved_by is None

    async def test_delete_cascades_and_removes_index_file(self):
        index_client = FakeIndexClient()
        service = DocumentService(index_client=index_client, extraction_version="v2.0")
        document = await _document(index_file_id="file-9")
        other = await _document(1)
        await ProcessingJob.create(document=document)
        await Chunk.create(document=document, position=0, text="chunk", chunk_sha256="c" * 64)
        await ReprocessingRequest.create(document=document, document_title=document.title, handle="h-1")
        await ProcessingJob.create(document=other)

        await service.delete(document.id)

        assert index_client.deleted == ["file-9"]
        assert await Document.get_or_none(id=document.id) is None
        assert await ProcessingJob.filter(document_id=document.id).count() == 0
        assert await Chunk.filter(document_id=document.id).count() == 0
        assert await ReprocessingRequest.filter(document_id=document.id).count() == 0
        assert await ProcessingJob.filter(document_id=other.id).count() == 1

    async def test_delete_survives_index_errors(self):
        class BrokenIndex(FakeIndexClient):
            async def delete(self, file_id):
                raise ConnectionError("index down")

        service = DocumentService(index_client=BrokenIndex(), extraction_version="v2.0")
        document = await _document(index_file_id="file-9")

        await service.delete(document.id)

        assert await Document.get_or_none(id=document.id) is None

    async def test_extraction_context_is_deduplicated_and_sorted(self):
        await _document(1, keywords=["saas", "ai"], technology_areas=["ml"])
        await _document(2, keywords=["ai", "robotics"])
        await _document(3)

        keywords, areas = await DocumentService(extraction_version="v2.0").get_extraction_context()

        assert keywords == ["ai", "robotics", "saas"]
        assert areas == ["ml"]

    async def test_select_for_reprocessing(self):
        service = DocumentService(extraction_version="v2.0")
        complete = await _document(1, summary="S", document_type="case_study", extraction_version="v2.0")
        old = await _document(2, summary="S", document_type="case_study", extraction_version="v1.0")
        missing = await _document(3, status=DocumentStatus.FAILED)

        def ids(documents):
            return {d.id for d in documents}

        assert ids(await service.select_for_reprocessing(ReprocessFilter.ALL)) == {complete.id, old.id, missing.id}
        assert ids(await service.select_for_reprocessing(ReprocessFilter.MISSING_METADATA)) == {missing.id}
        assert ids(await service.select_for_reprocessing(ReprocessFilter.OLD_EXTRACTION)) == {old.id, missing.id}
        assert ids(await service.select_for_reprocessing(ReprocessFilter.FAILED)) == {missing.id}

        with pytest.raises(ValueError):
            await service.select_for_reprocessing("everything")

    async def test_reprocessing_stats(self):
        service = DocumentService(extraction_version="v2.0")
        await _document(1, summary="S", document_type="case_study", extraction_version="v2.0")
        await _document(2, status=DocumentStatus.FAILED)

        stats = await service.reprocessing_stats()

        assert stats == {
            "total": 2,
            "with_metadata": 1,
            "with_new_fields": 1,
            "failed": 1,
            "missing_metadata": 1,
            "old_extraction": 1,
        }
