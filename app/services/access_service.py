from enum import Enum

from app.errors import ForbiddenError


class Role(str, Enum):
    REGULAR = "regular"
    CASHIER = "cashier"
    MANAGER = "manager"
    SUPERUSER = "superuser"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]


_ROLE_RANKS = {
    Role.REGULAR: 0,
    Role.CASHIER: 1,
    Role.MANAGER: 2,
    Role.SUPERUSER: 3,
}

CASHIER_ROLES = frozenset({Role.CASHIER, Role.MANAGER, Role.SUPERUSER})
MANAGER_ROLES = frozenset({Role.MANAGER, Role.SUPERUSER})


def compare_roles(a, b) -> int:
    """-1, 0 or 1 as role `a` ranks below, equal to or above role `b`."""
    ra, rb = Role(a).rank, Role(b).rank
    return (ra > rb) - (ra < rb)


def has_clearance(role, minimum) -> bool:
    return compare_roles(role, minimum) >= 0


def is_allowed(role, allowed_roles) -> bool:
    return Role(role) in {Role(r) for r in allowed_roles}


def require_role(actor, allowed_roles, action: str):
    if not is_allowed(actor.role, allowed_roles):
        raise ForbiddenError(
            f"Unauthorized to {action}",
            "INSUFFICIENT_CLEARANCE",
            utorid=actor.utorid,
            role=actor.role,
            allowedRoles=sorted(Role(r).value for r in allowed_roles),
        )


# ============================================================
# Relationship checks
# ============================================================

def is_self(actor, user) -> bool:
    return actor.utorid == user.utorid


def is_organizer(event, user) -> bool:
    return any(o.id == user.id for o in event.organizers)


def is_guest(event, user) -> bool:
    return any(g.id == user.id for g in event.guests)


def require_manager_or_organizer(actor, event, action: str):
    if is_allowed(actor.role, MANAGER_ROLES) or is_organizer(event, actor):
        return
    raise ForbiddenError(
        f"Unauthorized to {action}",
        "INSUFFICIENT_CLEARANCE",
        utorid=actor.utorid,
        role=actor.role,
        eventId=event.id,
    )


def assignable_roles(actor_role) -> frozenset:
    """Roles `actor_role` may hand out: managers up to cashier, superusers anything."""
    role = Role(actor_role)
    if role == Role.SUPERUSER:
        return frozenset(Role)
    if role == Role.MANAGER:
        return frozenset({Role.REGULAR, Role.CASHIER})
    return frozenset()
