"""
Identity Provider Package

Usage:
    from tableside.services.identity import HeaderIdentityProvider

    provider = HeaderIdentityProvider(store, request.headers.get("X-User-Id"))
    user = await provider.current_user()
"""

from tableside.services.identity.base import BaseIdentityProvider
from tableside.services.identity.header import HeaderIdentityProvider
from tableside.services.identity.mock import StaticIdentityProvider

__all__ = [
    "BaseIdentityProvider",
    "HeaderIdentityProvider",
    "StaticIdentityProvider",
]
