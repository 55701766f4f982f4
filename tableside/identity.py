"""
Identity Resolution

Determines the acting principal of an operation: an authenticated user,
or an anonymous table session identified by the table access token.

Author: Tableside Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Optional

from tableside.errors import AuthenticationRequired, TableNotFound, ValidationError
from tableside.models import Role
from tableside.schemas import TableResponse
from tableside.services.identity.base import BaseIdentityProvider
from tableside.store.base import BaseStore
from tableside.transitions import ORDERABLE_TABLE_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """
    Resolved principal.

    Attributes:
        user_id: Signed-in user (None on the anonymous table path)
        role: Role of the signed-in user
        table_id: Table the session is bound to through its access token
    """
    user_id: Optional[int] = None
    role: Optional[Role] = None
    table_id: Optional[int] = None

    @property
    def is_anonymous(self) -> bool:
        """Table session without a signed-in user."""
        return self.user_id is None and self.table_id is not None

    @property
    def is_manager(self) -> bool:
        return self.role is not None and self.role.is_manager

    @property
    def is_resolved(self) -> bool:
        return self.user_id is not None or self.table_id is not None


ANONYMOUS = Identity()


class IdentityResolver:
    """
    Resolves identities through the identity provider and the store.

    Example:
        >>> resolver = IdentityResolver(store, provider)
        >>> identity = await resolver.resolve_authenticated()
    """

    def __init__(self, store: BaseStore, provider: BaseIdentityProvider):
        self.store = store
        self.provider = provider

    async def resolve_optional(self) -> Identity:
        """Return the signed-in identity, or an unresolved one."""
        user = await self.provider.current_user()
        if user is None:
            return ANONYMOUS
        return Identity(user_id=user.id, role=user.role)

    async def resolve_authenticated(self) -> Identity:
        """
        Resolve the signed-in user.

        Raises:
            AuthenticationRequired: No session
        """
        identity = await self.resolve_optional()
        if identity.user_id is None:
            raise AuthenticationRequired("Sign in to continue")
        return identity

    async def resolve_table(
        self,
        access_token: str,
        attach_user: bool = True,
        require_orderable: bool = True,
    ) -> tuple[Identity, TableResponse]:
        """
        Resolve the anonymous table path.

        A simultaneous session's user id is attached to the identity when
        ``attach_user`` is set, so that user also sees their own orders; its
        absence is not an error. Orders placed on this path still belong
        to the table alone. Reads pass ``require_orderable=False`` so a
        reserved or inactive table can still show its history.

        Raises:
            ValidationError: Empty token, or the table is not taking orders
            TableNotFound: Unknown or regenerated token
        """
        if not access_token or not access_token.strip():
            raise ValidationError("Table access token is required")

        table = await self.store.get_table_by_token(access_token.strip())
        if table is None:
            raise TableNotFound("Invalid table access token")
        if require_orderable and table.status not in ORDERABLE_TABLE_STATUSES:
            raise ValidationError(
                f"Table #{table.number} is {table.status.value} and not taking orders"
            )

        user = await self.provider.current_user() if attach_user else None
        if user is None:
            return Identity(table_id=table.id), table

        logger.debug(f"Attaching user #{user.id} to table #{table.number} session")
        return Identity(user_id=user.id, role=user.role, table_id=table.id), table
