from typing import Optional

from app.core.actor import ActorContext
from app.core.exceptions import PermissionDeniedError
from app.models.user import UserRole


ROLE_LABELS = {
    UserRole.OWNER: "owner",
    UserRole.PRODUCTION_MANAGER: "production manager",
    UserRole.DISTRIBUTOR: "distributor",
}


class PermissionChecker:
    """
    Role checks for ledger operations.

    Owners are not implicitly allowed everything: each operation names the
    roles it accepts, matching the ownership rules of the business.
    """

    def __init__(self, actor: ActorContext):
        self.actor = actor

    def has_role(self, *roles: UserRole) -> bool:
        return self.actor.role in roles

    def require_role(self, *roles: UserRole, action: Optional[str] = None) -> None:
        """
        Raise PermissionDeniedError unless the actor holds one of `roles`.

        Args:
            roles: Accepted roles
            action: Human readable operation name for the error message
        """
        if self.has_role(*roles):
            return
        allowed = " or ".join(ROLE_LABELS[role] for role in roles)
        what = action or "perform this action"
        raise PermissionDeniedError(f"Unauthorized: only {allowed} may {what}.")

    def require_owner_or_creator(self, created_by: Optional[int], action: Optional[str] = None) -> None:
        """Owners act on any record; everybody else only on records they created."""
        if self.actor.is_owner or created_by == self.actor.user_id:
            return
        what = action or "modify this record"
        raise PermissionDeniedError(f"Unauthorized: you can only {what} that you created.")
