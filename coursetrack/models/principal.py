from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

ROLES = frozenset({"student", "instructor", "admin"})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Issued by the external identity provider and carried through the
    request via FastAPI's dependency system.

        user_id: subject from the JWT (a UUID string)
        roles:   subset of student|instructor|admin
    """

    user_id: str
    roles: frozenset[str]

    @property
    def id(self) -> UUID:
        return UUID(self.user_id)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return "admin" in self.roles

    def is_instructor(self) -> bool:
        return "instructor" in self.roles
