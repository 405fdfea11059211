from typing import FrozenSet

from pydantic import BaseModel, ConfigDict

from packages.approvals.models.domain.enums import Role


class AuthenticatedUser(BaseModel):
    """User context passed through authentication dependencies"""

    user_id: str
    full_name: str
    roles: FrozenSet[Role] = frozenset()

    model_config = ConfigDict(from_attributes=True)

    def has_role(self, role: Role) -> bool:
        return role in self.roles
