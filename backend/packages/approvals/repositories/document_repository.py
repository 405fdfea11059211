from typing import List, Optional

from common.core.exceptions import StorageError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.kv_store.factory import get_kv_store
from common.providers.kv_store.interface import KeyValueStoreInterface, VersionedValue
from packages.approvals.models.domain.document import Document
from packages.approvals.models.domain.enums import DocumentType
from packages.approvals.store_keys import document_key, document_index_key

logger = get_logger(__name__)


class DocumentRepository:
    """Documents stored as JSON records; the record revision is the document version."""

    def __init__(self, store: Optional[KeyValueStoreInterface] = None):
        self.store = store or get_kv_store()

    def _to_record(self, document: Document) -> dict:
        return document.model_dump(mode="json", exclude={"version"})

    def _to_domain(self, record: VersionedValue) -> Document:
        return Document.model_validate({**record.value, "version": record.version})

    @trace_span
    async def get(self, document_id: str) -> Optional[Document]:
        record = await self.store.get(document_key(document_id))
        return self._to_domain(record) if record else None

    @trace_span
    async def create(self, document: Document) -> Document:
        created = await self.store.create(
            document_key(document.id), self._to_record(document)
        )
        if not created:
            raise StorageError(f"Document {document.id} already exists")
        await self.store.add_to_set(
            document_index_key(document.document_type), document.id
        )
        return document.model_copy(update={"version": 1})

    @trace_span
    async def save(self, document: Document, expected_version: int) -> Optional[Document]:
        """
        Replace a document if nobody saved it since expected_version was read.

        Returns:
            The saved document with its new version, or None on a version conflict
        """
        saved = await self.store.compare_and_set(
            document_key(document.id), self._to_record(document), expected_version
        )
        if not saved:
            logger.warning(
                f"Version conflict saving document {document.id} (expected {expected_version})"
            )
            return None
        return document.model_copy(update={"version": expected_version + 1})

    @trace_span
    async def list(self, document_type: Optional[DocumentType] = None) -> List[Document]:
        """List documents, newest first."""
        document_types = [document_type] if document_type else list(DocumentType)
        documents = []
        for doc_type in document_types:
            for document_id in await self.store.get_set_members(
                document_index_key(doc_type)
            ):
                document = await self.get(document_id)
                if document:
                    documents.append(document)
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents

    @trace_span
    async def delete(self, document: Document) -> bool:
        """Remove a document and its index entry; False if it was already gone."""
        deleted = await self.store.delete(document_key(document.id))
        await self.store.remove_from_set(
            document_index_key(document.document_type), document.id
        )
        return deleted
