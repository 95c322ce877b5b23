"""Authorization guard — checks that the acting party controls the resource it mutates."""

import uuid
from dataclasses import dataclass
from typing import Any

from rentledger.core.errors import NotFound, Unauthorized

EITHER = "either"

# Acting party for every guarded action.  Agreement and invoice actions are
# checked against the owner_id / tenant_id they inherit from their booking.
ACTION_PARTIES: dict[str, str] = {
    "view_booking": EITHER,
    "accept_booking": "owner",
    "reject_booking": "owner",
    "propose_duration": "tenant",
    "approve_duration": "owner",
    "create_agreement": "owner",
    "pay_deposit": "tenant",
    "view_agreement": EITHER,
    "respond_to_agreement": "tenant",
    "terminate_agreement": "owner",
    "record_reading": "owner",
    "view_invoice": EITHER,
    "settle_payment": EITHER,
}


@dataclass(frozen=True)
class Actor:
    """The identity behind one request, passed explicitly into every service call."""
    id: uuid.UUID
    role: str  # owner | tenant


def authorize(actor: Actor, action: str, resource: Any, label: str = "resource") -> None:
    """Raise NotFound / Unauthorized unless ``actor`` may perform ``action`` on ``resource``.

    ``resource`` is any row carrying ``owner_id`` and ``tenant_id``.  Actors who
    are not a party to it get NotFound, so callers cannot probe for existence.
    """
    if resource is None:
        raise NotFound(f"{label.capitalize()} not found")

    party = ACTION_PARTIES[action]
    is_owner = actor.id == resource.owner_id
    is_tenant = actor.id == resource.tenant_id

    if not (is_owner or is_tenant):
        raise NotFound(f"{label.capitalize()} not found")

    if party == EITHER:
        return
    if party == "owner" and not is_owner:
        raise Unauthorized(f"Only the property owner can {action.replace('_', ' ')}")
    if party == "tenant" and not is_tenant:
        raise Unauthorized(f"Only the tenant can {action.replace('_', ' ')}")


def party_of(actor: Actor, resource: Any) -> str:
    """Which side of ``resource`` the actor is on — feeds the state machine's role check."""
    return "owner" if actor.id == resource.owner_id else "tenant"
