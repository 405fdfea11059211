from enum import Enum


class DocumentType(str, Enum):
    """Kinds of documents routed through an approval chain."""

    EXIT_PERMIT = "exit_permit"
    PAYMENT_ORDER = "payment_order"


class Role(str, Enum):
    """Organisation roles that approve or get notified."""

    ADMIN = "admin"
    CEO = "ceo"
    FINANCIAL = "financial"
    MANAGER = "manager"
    FACTORY_MANAGER = "factory_manager"
    WAREHOUSE_KEEPER = "warehouse_keeper"
    SECURITY_HEAD = "security_head"
    SECURITY_GUARD = "security_guard"


class ApprovalStage(str, Enum):
    # Exit permit chain
    PENDING_CEO = "pending_ceo"
    PENDING_FACTORY = "pending_factory"
    PENDING_WAREHOUSE = "pending_warehouse"
    PENDING_SECURITY = "pending_security"
    EXITED = "exited"

    # Payment order chain (shares PENDING_CEO)
    PENDING_FINANCE = "pending_finance"
    PENDING_MANAGER = "pending_manager"
    APPROVED = "approved"

    REJECTED = "rejected"


class TransitionKind(str, Enum):
    SUBMITTED = "submitted"
    ADVANCED = "advanced"
    REJECTED = "rejected"
    EDITED = "edited"
    FINALIZED = "finalized"
    DELETED = "deleted"
