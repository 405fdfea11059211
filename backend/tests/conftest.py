# Shared pytest configuration and fixtures for all test types
from typing import List

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from api.main import app
from common.providers.kv_store.memory_store import MemoryKeyValueStore
from common.providers.locking.memory_lock import MemoryLock
from packages.approvals.models.domain.document import (
    Destination,
    DocumentSubmission,
    LineItemCreateModel,
)
from packages.approvals.models.domain.enums import DocumentType, Role
from packages.approvals.models.domain.workflow_event import WorkflowEvent
from packages.approvals.repositories.document_repository import DocumentRepository
from packages.approvals.repositories.sequence_repository import SequenceRepository
from packages.approvals.services.workflow_service import (
    ApprovalWorkflowService,
    get_workflow_service,
)
from packages.auth.dependencies import get_current_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.notifications.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.notifications.services.event_publisher import EventPublisherInterface
from packages.notifications.services.subscription_service import (
    SubscriptionRegistry,
    get_subscription_registry,
)


class RecordingEventPublisher(EventPublisherInterface):
    """Keeps published events in memory instead of dispatching them."""

    def __init__(self):
        self.events: List[WorkflowEvent] = []

    async def publish(self, event: WorkflowEvent) -> None:
        self.events.append(event)


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def lock_provider():
    return MemoryLock()


@pytest.fixture
def event_publisher():
    return RecordingEventPublisher()


@pytest.fixture
def workflow_service(kv_store, lock_provider, event_publisher):
    """Workflow service wired to in-memory store and lock."""
    return ApprovalWorkflowService(
        document_repo=DocumentRepository(kv_store),
        sequence_repo=SequenceRepository(kv_store),
        lock_provider=lock_provider,
        event_publisher=event_publisher,
    )


@pytest.fixture
def subscription_registry(kv_store):
    return SubscriptionRegistry(SubscriptionRepository(kv_store))


@pytest.fixture
def exit_permit_submission():
    """Two lines of goods leaving the factory."""
    return DocumentSubmission(
        document_type=DocumentType.EXIT_PERMIT,
        company="acme",
        requester="Sara Ahmadi",
        recipient="Pars Trading",
        line_items=[
            LineItemCreateModel(
                name="Steel rods", requested_quantity=10, requested_weight=100
            ),
            LineItemCreateModel(
                name="Copper wire", requested_quantity=5, requested_weight=20
            ),
        ],
        destinations=[Destination(recipient_name="Pars Trading", address="Tehran")],
        details={"driver": "Ali", "plate": "12A345"},
    )


@pytest.fixture
def payment_order_submission():
    return DocumentSubmission(
        document_type=DocumentType.PAYMENT_ORDER,
        company="acme",
        requester="Sara Ahmadi",
        recipient="Pars Trading",
        line_items=[
            LineItemCreateModel(name="Invoice 1402-17", requested_quantity=1)
        ],
        details={"amount": 125000000, "method": "transfer"},
    )


@pytest.fixture
def test_user():
    """Caller holding every approval role."""
    return AuthenticatedUser(
        user_id="user-1",
        full_name="Reza Karimi",
        roles=frozenset(
            {
                Role.CEO,
                Role.FACTORY_MANAGER,
                Role.WAREHOUSE_KEEPER,
                Role.SECURITY_HEAD,
                Role.FINANCIAL,
                Role.MANAGER,
            }
        ),
    )


@pytest_asyncio.fixture(scope="function")
async def client(test_user, workflow_service, subscription_registry):
    """Create a test client."""

    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_workflow_service] = lambda: workflow_service
    app.dependency_overrides[get_subscription_registry] = lambda: subscription_registry

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
