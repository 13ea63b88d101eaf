"""The authenticated caller, passed explicitly into every ledger operation."""
from dataclasses import dataclass
from typing import Optional

from app.models.user import UserRole


@dataclass(frozen=True)
class ActorContext:
    """
    Identity and request origin of the user performing an operation.

    Services take this as an argument and never look identity up from
    request state, so every operation can be called and tested directly.
    """
    user_id: int
    role: UserRole
    username: str = ""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER

    @property
    def display_name(self) -> str:
        return self.username or f"user #{self.user_id}"
