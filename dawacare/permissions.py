"""
Caller identity and role checks.

Every workflow receives an explicit Actor; nothing reads ambient session state.
"""
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from dawacare.exceptions import Forbidden

ADMIN = "ADMIN"
PHARMACIST = "PHARMACIST"
CASHIER = "CASHIER"
STORE_KEEPER = "STORE_KEEPER"

ROLES = frozenset({ADMIN, PHARMACIST, CASHIER, STORE_KEEPER})

# Roles allowed to perform each action
REGISTER_ROLES = frozenset({ADMIN, PHARMACIST})  # record / verify controlled entries
RECEIVING_ROLES = frozenset({ADMIN, PHARMACIST, STORE_KEEPER})
TRANSFER_ROLES = frozenset({ADMIN})
ADJUST_ROLES = frozenset({ADMIN, PHARMACIST, STORE_KEEPER})
SALES_ROLES = ROLES
DISPENSING_ROLES = frozenset({ADMIN, PHARMACIST})


@dataclass(frozen=True)
class Actor:
    id: UUID
    name: str
    role: str
    branch_id: Optional[UUID] = None


def require_role(actor: Actor, allowed: Iterable[str], action: str) -> None:
    """Raise Forbidden unless actor.role is one of allowed."""
    if actor.role not in allowed:
        raise Forbidden(f"Role {actor.role} is not permitted to {action}")
