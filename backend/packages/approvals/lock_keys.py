"""Lock key generators for approvals package."""

from common.core.config import settings

# Safety net if the process dies mid-transition (seconds)
DOCUMENT_LOCK_TTL = settings.document_lock_ttl_seconds

# Max time to wait for a concurrent transition to finish before failing (seconds)
DOCUMENT_LOCK_ACQUIRE_TIMEOUT = settings.document_lock_acquire_timeout_seconds


def document_lock_key(document_id: str) -> str:
    """Generate lock key serialising transitions of one document."""
    return f"document:{document_id}"
