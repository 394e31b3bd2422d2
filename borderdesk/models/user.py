from dataclasses import dataclass
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


@dataclass(frozen=True)
class Actor:
    """Authenticated identity supplied by the external identity provider.

    Role is authoritative as received; it is never re-derived here.
    """

    user_id: str
    user_name: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
