"""Actor identity and the project capability predicate"""

from dataclasses import dataclass, field
from typing import Iterable

from .errors import ForbiddenError


class Role:
    CUSTOMER = "customer"
    APPOINTMENT_AGENT = "appointment_agent"
    SALES_STAFF = "sales_staff"
    ENGINEER = "engineer"
    CASHIER = "cashier"
    FABRICATION_STAFF = "fabrication_staff"
    ADMIN = "admin"

    ALL = (
        CUSTOMER,
        APPOINTMENT_AGENT,
        SALES_STAFF,
        ENGINEER,
        CASHIER,
        FABRICATION_STAFF,
        ADMIN,
    )


@dataclass(frozen=True)
class Actor:
    """Authenticated caller: user id plus the roles granted to it."""

    id: int
    roles: frozenset = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_id: int, roles: Iterable[str]) -> "Actor":
        return cls(id=user_id, roles=frozenset(roles))

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles


def require_role(actor: Actor, *roles: str) -> None:
    if not actor.is_admin and not actor.has_role(*roles):
        raise ForbiddenError("You do not have permission to perform this action")


def can_access_project(actor: Actor, project, *, extra_roles: Iterable[str] = ()) -> bool:
    """Single place that decides whether ``actor`` may see/act on ``project``.

    Admins always pass. Otherwise the actor must hold a role that relates them
    to the project: its customer, its sales staff, one of its engineers, or
    its fabrication lead/assistants. ``extra_roles`` grants blanket access to
    whole roles (e.g. cashiers for payment records).
    """
    if actor.is_admin or actor.has_role(*extra_roles):
        return True
    if actor.has_role(Role.CUSTOMER) and project.customer_id == actor.id:
        return True
    if actor.has_role(Role.SALES_STAFF) and project.sales_staff_id == actor.id:
        return True
    if actor.has_role(Role.ENGINEER) and actor.id in (project.engineer_ids or []):
        return True
    if actor.has_role(Role.FABRICATION_STAFF) and is_fabrication_member(actor, project):
        return True
    return False


def is_fabrication_member(actor: Actor, project) -> bool:
    return project.fabrication_lead_id == actor.id or actor.id in (
        project.fabrication_assistant_ids or []
    )


def assert_project_access(actor: Actor, project, *, extra_roles: Iterable[str] = ()) -> None:
    if not can_access_project(actor, project, extra_roles=extra_roles):
        raise ForbiddenError("Access denied")
