from typing import Optional

from common.core.otel_axiom_exporter import trace_span
from common.providers.kv_store.factory import get_kv_store
from common.providers.kv_store.interface import KeyValueStoreInterface
from packages.approvals.models.domain.enums import DocumentType
from packages.approvals.store_keys import sequence_key


class SequenceRepository:
    def __init__(self, store: Optional[KeyValueStoreInterface] = None):
        self.store = store or get_kv_store()

    @trace_span
    async def next_sequence_number(self, document_type: DocumentType, company: str) -> int:
        """Atomically take the next number (starting at 1) for a type within a company."""
        return await self.store.increment(sequence_key(document_type, company))
