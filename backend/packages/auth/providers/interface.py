from abc import ABC, abstractmethod

from packages.auth.models.domain.authenticated_user import AuthenticatedUser


class IdentityProviderInterface(ABC):
    """Interface for identity providers"""

    @abstractmethod
    async def authenticate(self, token: str) -> AuthenticatedUser:
        """Validate a bearer token and resolve the caller's name and role set.

        Raises:
            HTTPException: 401 when the token is invalid or expired
        """
        pass
