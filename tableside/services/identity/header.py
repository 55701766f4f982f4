"""
Header Identity Provider

Resolves the caller from the ``X-User-Id`` request header against the
users table. An upstream gateway is expected to have authenticated the
header; this provider only looks the user up.
"""

import logging
from typing import Optional

from tableside.errors import ValidationError
from tableside.schemas import UserSummary
from tableside.services.identity.base import BaseIdentityProvider
from tableside.store.base import BaseStore

logger = logging.getLogger(__name__)


class HeaderIdentityProvider(BaseIdentityProvider):
    """
    Identity provider backed by a raw header value.

    Attributes:
        store: Store used to look the user up
        raw_user_id: Header value as received (None when absent)
    """

    def __init__(self, store: BaseStore, raw_user_id: Optional[str]):
        self.store = store
        self.raw_user_id = raw_user_id
        self._user: Optional[UserSummary] = None
        self._loaded = False

    async def current_user(self) -> Optional[UserSummary]:
        if self._loaded:
            return self._user

        if self.raw_user_id is None or not self.raw_user_id.strip():
            self._loaded = True
            return None

        try:
            user_id = int(self.raw_user_id)
        except ValueError:
            raise ValidationError(
                "Malformed identity",
                detail=f"X-User-Id must be an integer, got {self.raw_user_id!r}",
            )

        self._user = await self.store.get_user(user_id)
        self._loaded = True
        if self._user is None:
            logger.warning(f"X-User-Id {user_id} does not match an active user")
        return self._user

    async def sign_out(self) -> None:
        self.raw_user_id = None
        self._user = None
        self._loaded = True

    @property
    def provider_name(self) -> str:
        return "header"
