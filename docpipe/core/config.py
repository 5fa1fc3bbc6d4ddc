from pydantic_settings import BaseSettings


class TaskBackend:
    """Where pipeline runs execute."""

    LOCAL = "local"  # In-process WorkQueue
    DRAMATIQ = "dramatiq"  # Dramatiq workers fed through Redis


class Settings(BaseSettings):
    # Server
    APP_ENV: str = "dev"
    PORT: int = 8080

    # Database
    DATABASE_URL: str

    # Task queue
    TASK_BACKEND: str = TaskBackend.LOCAL
    REDIS_URL: str = "redis://localhost:6379/0"
    MAX_PARALLELISM: int = 3  # Concurrent pipeline runs, protects rate-limited APIs
    MAX_QUEUE_DEPTH: int = 500
    WORK_RESULTS_RETAINED: int = 1000  # Finished work items kept queryable by handle
    WORKER_LOCK_TTL_MS: int = 15 * 60 * 1000

    # Blob store
    BLOB_STORE_URL: str = "http://localhost:9000"
    HTTP_TIMEOUT_SECONDS: float = 60.0

    # Extraction
    MIN_EXTRACTED_CHARS: int = 1

    # Metadata
    METADATA_LLM_MODEL: str = "openai/gpt-4o-mini"
    METADATA_MAX_INPUT_CHARS: int = 24_000
    EXTRACTION_VERSION: str = "v2.0"

    # Embeddings
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBEDDING_BATCH_SIZE: int = 32
    CHUNK_MAX_SENTENCES: int = 6
    CHUNK_OVERLAP_SENTENCES: int = 1

    # Indexing
    PINECONE_API_KEY: str | None = None
    PINECONE_ASSISTANT: str = "documents"
    INDEX_POLL_INTERVAL_SECONDS: float = 2.0
    INDEX_POLL_MAX_WAIT_SECONDS: float = 60.0
    INDEX_STALE_AFTER_SECONDS: float | None = None  # None disables promotion of stuck index states
    INDEX_RECONCILE_DELAY_SECONDS: float = 300.0  # Dramatiq workers re-check unsettled index files after this


TORTOISE_ORM = {
    "connections": {"default": Settings().DATABASE_URL},
    "apps": {
        "models": {
            "models": ["docpipe.models", "aerich.models"],
            "default_connection": "default",
        },
    },
}
