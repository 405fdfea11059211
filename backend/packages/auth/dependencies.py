from typing import Annotated, Optional
from fastapi import Depends, HTTPException, status, Header

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.approvals.models.domain.enums import Role
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.providers.factory import get_identity_provider
from packages.auth.providers.interface import IdentityProviderInterface

logger = get_logger(__name__)


@trace_span
async def get_current_user(
    authorization: Annotated[Optional[str], Header()] = None,
    identity_provider: IdentityProviderInterface = Depends(get_identity_provider),
) -> AuthenticatedUser:
    """Get current authenticated user from a bearer ID token."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing or invalid",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization.split(" ", 1)[1]
    return await identity_provider.authenticate(token)


def require_role(user: AuthenticatedUser, role: Role) -> None:
    """Reject a request acting in a role the caller does not hold."""
    if not user.has_role(role):
        logger.warning(f"User {user.user_id} tried to act as {role.value}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You do not hold the {role.value} role",
        )
