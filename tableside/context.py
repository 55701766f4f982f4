"""Per-session context threaded through every lifecycle call."""

from dataclasses import dataclass
from typing import Optional

from tableside.cart import CartStore
from tableside.identity import Identity
from tableside.services.identity.base import BaseIdentityProvider


@dataclass
class SessionContext:
    """
    Everything an operation needs to know about its caller.

    Attributes:
        identity: Resolved principal
        cart: Cart of this session (personal or per-table)
        anon_auth: Session handle of the anonymous table path; signed out
            before an anonymous order is submitted
    """
    identity: Identity
    cart: Optional[CartStore] = None
    anon_auth: Optional[BaseIdentityProvider] = None
