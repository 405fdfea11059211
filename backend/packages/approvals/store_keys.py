"""Key generators for approvals records in the key-value store."""

from packages.approvals.models.domain.enums import DocumentType


def document_key(document_id: str) -> str:
    return f"document:{document_id}"


def document_index_key(document_type: DocumentType) -> str:
    """Set of document ids of one type."""
    return f"documents:{document_type.value}"


def sequence_key(document_type: DocumentType, company: str) -> str:
    """Counter behind sequence numbers, one per document type and company."""
    return f"sequence:{document_type.value}:{company}"
