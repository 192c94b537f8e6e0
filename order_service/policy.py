# order_service/policy.py

"""
Access policy for the Order Service.

Row-level rules are expressed here as capability predicates and checked
before store operations, instead of being scattered through handlers.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from .exceptions import Forbidden

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """A resolved, trusted identity."""

    id: UUID
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class AccessPolicy:
    def can_read_product(self, caller: Optional[Caller]) -> bool:
        # Catalog is public, anonymous callers included.
        return True

    def can_manage_catalog(self, caller: Optional[Caller]) -> bool:
        return caller is not None and caller.is_admin

    def can_create_order(self, caller: Optional[Caller], user_id: UUID) -> bool:
        return caller is not None and caller.id == user_id

    def can_reserve_stock(self, caller: Optional[Caller]) -> bool:
        return caller is not None

    def can_read_order(self, caller: Optional[Caller], user_id: UUID) -> bool:
        return caller is not None and (caller.id == user_id or caller.is_admin)

    def can_update_order(self, caller: Optional[Caller]) -> bool:
        return caller is not None and caller.is_admin

    def can_read_profile(self, caller: Optional[Caller], profile_id: UUID) -> bool:
        return caller is not None and caller.id == profile_id

    def can_update_profile(self, caller: Optional[Caller], profile_id: UUID) -> bool:
        # Admins included: nobody edits another person's profile here.
        return caller is not None and caller.id == profile_id

    def require(self, allowed: bool, action: str, caller: Optional[Caller] = None):
        if not allowed:
            who = caller.id if caller is not None else "anonymous"
            logger.warning(f"Access denied: {who} may not {action}.")
            raise Forbidden(f"Not allowed to {action}")


access_policy = AccessPolicy()
