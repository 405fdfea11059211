"""Approval chains per document type.

A chain is configuration, not logic: the ordered pending stages, who may act
at each, and who is told when a document arrives there.
"""

from typing import Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from packages.approvals.models.domain.enums import ApprovalStage, DocumentType, Role

# Roles allowed to delete a document, whatever its stage
DELETE_ROLES: FrozenSet[Role] = frozenset({Role.CEO, Role.ADMIN})


class StageDefinition(BaseModel):
    stage: ApprovalStage
    allowed_roles: FrozenSet[Role]
    notify_roles: FrozenSet[Role]

    model_config = ConfigDict(frozen=True)


class StageChain(BaseModel):
    document_type: DocumentType
    stages: Tuple[StageDefinition, ...]
    terminal_stage: ApprovalStage
    # Stage at which delivered figures are recorded before the document moves on
    reconciliation_stage: Optional[ApprovalStage] = None

    model_config = ConfigDict(frozen=True)

    @property
    def first_stage(self) -> ApprovalStage:
        return self.stages[0].stage

    @property
    def stage_order(self) -> Tuple[ApprovalStage, ...]:
        return tuple(definition.stage for definition in self.stages) + (
            self.terminal_stage,
        )

    def is_terminal(self, stage: ApprovalStage) -> bool:
        return stage == self.terminal_stage

    def definition_for(self, stage: ApprovalStage) -> Optional[StageDefinition]:
        """Definition of a pending stage; None for the terminal and rejected states."""
        for definition in self.stages:
            if definition.stage == stage:
                return definition
        return None

    def next_stage(self, stage: ApprovalStage) -> ApprovalStage:
        order = self.stage_order
        index = order.index(stage)
        if index == len(order) - 1:
            raise ValueError(f"{stage.value} is the terminal stage")
        return order[index + 1]

    def notify_roles_for(self, stage: ApprovalStage) -> FrozenSet[Role]:
        definition = self.definition_for(stage)
        return definition.notify_roles if definition else frozenset()


EXIT_PERMIT_CHAIN = StageChain(
    document_type=DocumentType.EXIT_PERMIT,
    stages=(
        StageDefinition(
            stage=ApprovalStage.PENDING_CEO,
            allowed_roles=frozenset({Role.CEO}),
            notify_roles=frozenset({Role.CEO}),
        ),
        StageDefinition(
            stage=ApprovalStage.PENDING_FACTORY,
            allowed_roles=frozenset({Role.FACTORY_MANAGER}),
            notify_roles=frozenset({Role.FACTORY_MANAGER}),
        ),
        StageDefinition(
            stage=ApprovalStage.PENDING_WAREHOUSE,
            allowed_roles=frozenset({Role.WAREHOUSE_KEEPER}),
            notify_roles=frozenset({Role.WAREHOUSE_KEEPER}),
        ),
        StageDefinition(
            stage=ApprovalStage.PENDING_SECURITY,
            allowed_roles=frozenset({Role.SECURITY_HEAD, Role.SECURITY_GUARD}),
            notify_roles=frozenset({Role.SECURITY_HEAD, Role.SECURITY_GUARD}),
        ),
    ),
    terminal_stage=ApprovalStage.EXITED,
    reconciliation_stage=ApprovalStage.PENDING_WAREHOUSE,
)

PAYMENT_ORDER_CHAIN = StageChain(
    document_type=DocumentType.PAYMENT_ORDER,
    stages=(
        StageDefinition(
            stage=ApprovalStage.PENDING_FINANCE,
            allowed_roles=frozenset({Role.FINANCIAL}),
            notify_roles=frozenset({Role.FINANCIAL}),
        ),
        StageDefinition(
            stage=ApprovalStage.PENDING_MANAGER,
            allowed_roles=frozenset({Role.MANAGER}),
            notify_roles=frozenset({Role.MANAGER}),
        ),
        StageDefinition(
            stage=ApprovalStage.PENDING_CEO,
            allowed_roles=frozenset({Role.CEO}),
            notify_roles=frozenset({Role.CEO}),
        ),
    ),
    terminal_stage=ApprovalStage.APPROVED,
)

STAGE_CHAINS: Dict[DocumentType, StageChain] = {
    DocumentType.EXIT_PERMIT: EXIT_PERMIT_CHAIN,
    DocumentType.PAYMENT_ORDER: PAYMENT_ORDER_CHAIN,
}


def get_stage_chain(document_type: DocumentType) -> StageChain:
    return STAGE_CHAINS[document_type]
