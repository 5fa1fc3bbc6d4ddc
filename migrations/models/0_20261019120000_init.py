from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        CREATE TABLE IF NOT EXISTS "documents" (
            "id" UUID NOT NULL PRIMARY KEY,
            "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
            "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
            "title" VARCHAR(512) NOT NULL,
            "filename" VARCHAR(512) NOT NULL,
            "content_hash" VARCHAR(64) UNIQUE,
            "storage_id" VARCHAR(255),
            "source_url" TEXT,
            "source" VARCHAR(20) NOT NULL DEFAULT 'upload',
            "status" VARCHAR(20) NOT NULL DEFAULT 'pending',
            "processing_error" TEXT,
            "extracted_text" TEXT,
            "page_count" INT,
            "author" VARCHAR(512),
            "description" TEXT,
            "company" VARCHAR(255),
            "year" INT,
            "topic" VARCHAR(255),
            "summary" TEXT,
            "document_type" VARCHAR(50),
            "authors" JSONB,
            "key_findings" JSONB,
            "keywords" JSONB,
            "technology_areas" JSONB,
            "extracted_at" TIMESTAMPTZ,
            "extraction_version" VARCHAR(20),
            "index_file_id" VARCHAR(255),
            "index_status" VARCHAR(20),
            "approved" BOOL NOT NULL DEFAULT False,
            "approved_by" VARCHAR(255),
            "approved_at" TIMESTAMPTZ
        );
        CREATE INDEX IF NOT EXISTS "idx_documents_status_6c7d1e" ON "documents" ("status");
        CREATE INDEX IF NOT EXISTS "idx_documents_approve_0f51a3" ON "documents" ("approved", "status");
        CREATE INDEX IF NOT EXISTS "idx_documents_index_s_9b2e44" ON "documents" ("index_status");
        COMMENT ON COLUMN "documents"."content_hash" IS 'SHA-256 of the uploaded bytes';
        COMMENT ON COLUMN "documents"."storage_id" IS 'Blob store id of the raw file';
        COMMENT ON COLUMN "documents"."status" IS 'Processing status: pending, processing, completed, or failed';
        COMMENT ON COLUMN "documents"."processing_error" IS 'Error message from the last failed run';
        COMMENT ON COLUMN "documents"."extracted_text" IS 'Cached extraction output';
        COMMENT ON TABLE "documents" IS 'Documents Table';
        CREATE TABLE IF NOT EXISTS "chunks" (
            "id" UUID NOT NULL PRIMARY KEY,
            "position" INT NOT NULL,
            "text" TEXT NOT NULL,
            "chunk_sha256" VARCHAR(64) NOT NULL,
            "embedding" JSONB,
            "document_id" UUID NOT NULL REFERENCES "documents" ("id") ON DELETE CASCADE,
            CONSTRAINT "uid_chunks_documen_5a1c0b" UNIQUE ("document_id", "position")
        );
        CREATE INDEX IF NOT EXISTS "idx_chunks_chunk_s_3f0a9d" ON "chunks" ("chunk_sha256");
        COMMENT ON COLUMN "chunks"."embedding" IS 'Embedding vector, null until embedded';
        CREATE TABLE IF NOT EXISTS "processing_jobs" (
            "id" UUID NOT NULL PRIMARY KEY,
            "stage" VARCHAR(20) NOT NULL DEFAULT 'extracting',
            "started_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
            "completed_at" TIMESTAMPTZ,
            "error" TEXT,
            "metadata" JSONB,
            "document_id" UUID NOT NULL REFERENCES "documents" ("id") ON DELETE CASCADE
        );
        CREATE INDEX IF NOT EXISTS "idx_processing_stage_8e2b17" ON "processing_jobs" ("stage");
        COMMENT ON COLUMN "processing_jobs"."metadata" IS 'Stage diagnostics, see schemas.jobs.JobMetadata';
        CREATE TABLE IF NOT EXISTS "reprocessing_requests" (
            "id" UUID NOT NULL PRIMARY KEY,
            "document_title" VARCHAR(512) NOT NULL,
            "handle" VARCHAR(64) NOT NULL UNIQUE,
            "kind" VARCHAR(20) NOT NULL DEFAULT 'full',
            "force" BOOL NOT NULL DEFAULT False,
            "status" VARCHAR(20) NOT NULL DEFAULT 'pending',
            "enqueued_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
            "completed_at" TIMESTAMPTZ,
            "error" TEXT,
            "document_id" UUID NOT NULL REFERENCES "documents" ("id") ON DELETE CASCADE
        );
        CREATE INDEX IF NOT EXISTS "idx_reprocessin_status_41d8c2" ON "reprocessing_requests" ("status");
        COMMENT ON COLUMN "reprocessing_requests"."handle" IS 'Work queue handle';
        CREATE TABLE IF NOT EXISTS "settings" (
            "key" VARCHAR(100) NOT NULL PRIMARY KEY,
            "value" VARCHAR(255) NOT NULL,
            "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE TABLE IF NOT EXISTS "aerich" (
            "id" SERIAL NOT NULL PRIMARY KEY,
            "version" VARCHAR(255) NOT NULL,
            "app" VARCHAR(100) NOT NULL,
            "content" JSONB NOT NULL
        );
    """


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        """
