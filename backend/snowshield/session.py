"""
Per-request view of the signed-in user.

A SessionContext is created at sign-in, rebuilt from the bearer token
on each request and discarded at sign-out. Handlers receive it as an
argument; nothing about the current user is kept in module state.
"""
from dataclasses import dataclass
from typing import Optional

from snowshield.errors import PermissionDeniedError
from snowshield.schemas import ADMIN, RESCUE_TEAM, USER


@dataclass
class SessionContext:
    token: str
    user_id: str
    email: str
    profile: Optional[object] = None

    @property
    def user_type(self) -> str:
        return getattr(self.profile, "user_type", None) or USER

    @property
    def pincode(self) -> Optional[str]:
        return getattr(self.profile, "pincode", None) or None

    @property
    def display_name(self) -> str:
        return getattr(self.profile, "name", "") or self.email

    @property
    def is_admin(self) -> bool:
        return self.user_type == ADMIN

    @property
    def can_resolve_sos(self) -> bool:
        return self.user_type in (ADMIN, RESCUE_TEAM)

    def require_admin(self, action: str) -> None:
        if not self.is_admin:
            raise PermissionDeniedError(
                f"Only administrators can {action}.",
                context={"user_id": self.user_id, "action": action},
            )

