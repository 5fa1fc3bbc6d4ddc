import os

os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")

import pytest  # noqa: E402
from tortoise import Tortoise  # noqa: E402

from docpipe.core.config import TORTOISE_ORM, Settings  # noqa: E402
from docpipe.pipeline.index_poller import IndexStatusPoller  # noqa: E402
from docpipe.pipeline.orchestrator import PipelineOrchestrator  # noqa: E402
from docpipe.services.settings_service import PipelineConfig  # noqa: E402
from docpipe.tests.fakes import (  # noqa: E402
    FakeBlobStore,
    FakeClock,
    FakeEmbedder,
    FakeExtractor,
    FakeIndexClient,
    FakeMetadataClient,
)


@pytest.fixture(autouse=True)
async def db_session():
    await Tortoise.init(config=TORTOISE_ORM)
    await Tortoise.generate_schemas()

    yield
    for app in Tortoise.apps.values():
        for model in app.values():
            await model.all().delete()
    await Tortoise.close_connections()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def metadata_client():
    return FakeMetadataClient()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def index_client():
    return FakeIndexClient()


@pytest.fixture
def config():
    return PipelineConfig()


@pytest.fixture
def make_orchestrator(blob_store, extractor, metadata_client, embedder, index_client, clock):
    """Build an orchestrator over the fakes; any client can be swapped per test."""

    def _make(**overrides) -> PipelineOrchestrator:
        index = overrides.get("index_client", index_client)
        poller = IndexStatusPoller(index, interval=2.0, max_wait=60.0, clock=clock, sleep=clock.sleep)
        return PipelineOrchestrator.from_clients(
            blob_store=overrides.get("blob_store", blob_store),
            extraction_client=overrides.get("extractor", extractor),
            metadata_client=overrides.get("metadata_client", metadata_client),
            embedding_client=overrides.get("embedder", embedder),
            index_client=index,
            settings=Settings(),
            poller=poller,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()
