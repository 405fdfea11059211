"""Firebase Auth provider implementation."""

import asyncio
from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth
from fastapi import HTTPException, status

from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.firebase.app import get_firebase_app
from packages.approvals.models.domain.enums import Role
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.providers.interface import IdentityProviderInterface

logger = get_logger(__name__)


class FirebaseAuthProvider(IdentityProviderInterface):
    """Resolves callers from Firebase ID tokens.

    Roles come from the `roles` custom claim; unknown role names are ignored.
    """

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app or get_firebase_app()

    @trace_span
    async def authenticate(self, token: str) -> AuthenticatedUser:
        try:
            # verify_id_token may fetch signing certificates over the network
            claims = await asyncio.to_thread(
                firebase_auth.verify_id_token, token, app=self.app
            )
        except firebase_auth.ExpiredIdTokenError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Firebase token has expired",
            )
        except (firebase_auth.InvalidIdTokenError, ValueError) as e:
            logger.warning(f"Firebase token validation failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid Firebase token",
            )

        raw_roles = claims.get("roles") or []
        if isinstance(raw_roles, str):
            raw_roles = [raw_roles]
        roles = set()
        for name in raw_roles:
            try:
                roles.add(Role(name))
            except ValueError:
                logger.warning(f"Ignoring unknown role claim {name!r} for {claims['uid']}")

        return AuthenticatedUser(
            user_id=claims["uid"],
            full_name=claims.get("name") or claims.get("email") or claims["uid"],
            roles=frozenset(roles),
        )
