"""
Static Identity Provider

Holds a fixed user in memory. Used by tests, the simulation script and
as the anonymous session handle of a request.
"""

import logging
from typing import Optional

from tableside.schemas import UserSummary
from tableside.services.identity.base import BaseIdentityProvider

logger = logging.getLogger(__name__)


class StaticIdentityProvider(BaseIdentityProvider):
    """
    In-memory identity provider.

    Attributes:
        user: The signed-in user (None for no session)
        sign_out_calls: How many times sign_out() ran

    Example:
        >>> provider = StaticIdentityProvider(user)
        >>> await provider.sign_out()
        >>> await provider.current_user() is None
        True
    """

    def __init__(self, user: Optional[UserSummary] = None):
        self.user = user
        self.sign_out_calls = 0

    async def current_user(self) -> Optional[UserSummary]:
        return self.user

    async def sign_out(self) -> None:
        if self.user is not None:
            logger.debug(f"Signing out user #{self.user.id}")
        self.user = None
        self.sign_out_calls += 1

    @property
    def provider_name(self) -> str:
        return "static"
