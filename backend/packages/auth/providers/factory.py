"""Factory for the singleton identity provider."""

from typing import Optional

from packages.auth.providers.interface import IdentityProviderInterface

_provider: Optional[IdentityProviderInterface] = None


def get_identity_provider() -> IdentityProviderInterface:
    """Get or create the identity provider instance."""
    global _provider
    if _provider is None:
        from packages.auth.providers.firebase_provider import FirebaseAuthProvider

        _provider = FirebaseAuthProvider()
    return _provider
