"""
Identity Provider Abstract Base Class

Defines the contract the ordering engine consumes from the external
authentication collaborator. Credential exchange happens elsewhere; the
engine only asks who is signed in and, on the anonymous table path,
tells the provider to drop its session.

Design Pattern: Strategy Pattern
    - HeaderIdentityProvider resolves the caller from a request header
    - StaticIdentityProvider is a fixed in-memory session for tests and scripts

Author: Tableside Team
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from typing import Optional

from tableside.schemas import UserSummary


class BaseIdentityProvider(ABC):
    """
    Abstract base class for identity providers.

    A provider represents one session. After sign_out() it must report
    no current user.
    """

    @abstractmethod
    async def current_user(self) -> Optional[UserSummary]:
        """
        Return the signed-in user, or None when there is no session.

        Raises:
            ValidationError: The session carries a malformed identity
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """Drop the session held by this provider."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass
