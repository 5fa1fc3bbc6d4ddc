import logging
from dataclasses import dataclass

from tortoise.exceptions import IntegrityError

from docpipe.core import hashing
from docpipe.core.errors import DuplicateContentError
from docpipe.models import Document
from docpipe.models.document import DocumentStatus

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCheck:
    """Result of a duplicate lookup."""

    is_duplicate: bool
    existing: Document | None = None


class FingerprintService:
    """
    Content fingerprinting and the unique-hash guard on document creation.
    """

    @staticmethod
    def fingerprint(data: bytes) -> str:
        return hashing.fingerprint(data)

    async def check_duplicate(self, content_hash: str) -> DuplicateCheck:
        """
        Look up a document by content hash. Has no side effects.

        Args:
            content_hash: SHA-256 hex digest of the file bytes

        Returns:
            DuplicateCheck with the existing document when one is found
        """
        existing = await Document.filter(content_hash=content_hash).first()
        return DuplicateCheck(is_duplicate=existing is not None, existing=existing)

    async def create(self, fields: dict, content_hash: str | None) -> Document:
        """
        Create a pending Document unless its content hash is already taken.

        The lookup catches the common case; the unique index on
        ``content_hash`` catches two uploads racing between lookup and insert.

        Args:
            fields: Document column values (title, filename, source, ...)
            content_hash: SHA-256 of the bytes, or None for documents without local bytes

        Returns:
            The newly created Document

        Raises:
            DuplicateContentError: If a document with this hash already exists
        """
        if content_hash:
            check = await self.check_duplicate(content_hash)
            if check.is_duplicate:
                logger.info(f"Document with hash {content_hash} already exists as {check.existing.id}")
                raise DuplicateContentError(check.existing.id, check.existing.title)

        values = {**fields, "content_hash": content_hash, "status": DocumentStatus.PENDING}
        try:
            document = await Document.create(**values)
        except IntegrityError:
            if not content_hash:
                raise
            existing = await Document.filter(content_hash=content_hash).first()
            if existing is None:
                raise
            logger.info(f"Lost creation race for hash {content_hash} to document {existing.id}")
            raise DuplicateContentError(existing.id, existing.title) from None

        logger.info(f"Created document with ID: {document.id}")
        return document
