"""In-memory stand-ins for the external services, shared by the tests."""

from docpipe.clients.base import ExtractedText, IndexFile, IndexFileInfo
from docpipe.models.document import IndexStatus
from docpipe.schemas.metadata import ExtractedMetadata

SAMPLE_TEXT = (
    "Acme Robotics closed a record quarter. Revenue grew by forty percent. "
    "Margins improved across every segment.\n\n"
    "The company expects growth to continue. New factories open next year."
)


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeBlobStore:
    def __init__(self, data: bytes = b"%PDF-1.7 fake document"):
        self.data = data
        self.downloads: list[str] = []
        self.uploads: list[bytes] = []
        self.deleted: list[str] = []

    async def get_url(self, storage_id: str) -> str | None:
        return f"https://blobs.test/{storage_id}"

    async def generate_upload_url(self) -> str:
        return "https://blobs.test/upload"

    async def download(self, url: str) -> bytes:
        self.downloads.append(url)
        return self.data

    async def upload(self, upload_url: str, data: bytes, content_type: str = "application/pdf") -> str:
        self.uploads.append(data)
        return f"storage-{len(self.uploads)}"

    async def delete(self, storage_id: str) -> None:
        self.deleted.append(storage_id)


class FakeExtractor:
    def __init__(self, text: str = SAMPLE_TEXT, error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls = 0

    async def extract_text(self, data: bytes) -> ExtractedText:
        self.calls += 1
        if self.error:
            raise self.error
        return ExtractedText(text=self.text, page_count=2)


class FakeMetadataClient:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0
        self.last_hints = None

    async def extract_metadata(self, text, hints) -> ExtractedMetadata:
        self.calls += 1
        self.last_hints = hints
        if self.error:
            raise self.error
        return ExtractedMetadata(
            title="Acme Robotics Q3 Update",
            company="Acme Robotics",
            year="2024",
            summary="Acme had a record quarter.",
            document_type="investor update",
            key_findings=["Revenue grew 40%"],
            keywords=["robotics", "manufacturing"],
            technology_areas=["automation"],
        )


class FakeEmbedder:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        if self.error:
            raise self.error
        return [[float(i), 0.5, 0.25] for i in range(len(texts))]


class FakeIndexClient:
    """
    Index backend whose ``describe`` answers come from a script.

    Each entry of ``statuses`` is returned by one describe call; an exception
    entry is raised instead. The last entry repeats once the script runs out.
    """

    def __init__(self, statuses=None, upload_status: str = IndexStatus.PROCESSING, upload_error=None):
        self.statuses = list(statuses or [IndexStatus.AVAILABLE])
        self.upload_status = upload_status
        self.upload_error = upload_error
        self.uploads: list[tuple[str, dict]] = []
        self.deleted: list[str] = []
        self.describe_calls = 0

    async def upload(self, content: str, metadata: dict) -> IndexFile:
        if self.upload_error:
            raise self.upload_error
        self.uploads.append((content, metadata))
        return IndexFile(id=f"file-{len(self.uploads)}", status=self.upload_status)

    async def describe(self, file_id: str) -> IndexFileInfo:
        self.describe_calls += 1
        entry = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, IndexFileInfo):
            return entry
        return IndexFileInfo(status=entry)

    async def delete(self, file_id: str) -> None:
        self.deleted.append(file_id)
