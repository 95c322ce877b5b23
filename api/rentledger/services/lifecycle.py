"""
Booking / agreement state machine.

Pure functions only — no DB, no I/O.  Every transition is looked up in a table
keyed by (current state, event); the entry names the single party allowed to
fire it and the state it leads to.  Anything not in the table is an
IllegalTransition, so a call either moves the entity forward or fails — it never
silently stays put.

    pending            --accept (owner)-------------> accepted
    pending            --reject (owner)-------------> rejected
    accepted           --propose_duration (tenant)--> duration_pending
    duration_pending   --approve_duration (owner)---> duration_approved
    duration_pending   --reject_duration (owner)----> rejected
    duration_approved  --create_agreement (owner)---> agreement_pending
    agreement_pending  --approve_agreement (tenant)-> payment_pending
    agreement_pending  --decline_agreement (tenant)-> rejected
    payment_pending    --pay_deposit (tenant)-------> active
    active             --terminate (owner)----------> terminated

rejected and terminated are terminal.
"""

from rentledger.core.errors import IllegalTransition

# ─── Booking states ───────────────────────────────────────────────────────────

PENDING = "pending"
ACCEPTED = "accepted"
DURATION_PENDING = "duration_pending"
DURATION_APPROVED = "duration_approved"
AGREEMENT_PENDING = "agreement_pending"
PAYMENT_PENDING = "payment_pending"
ACTIVE = "active"
REJECTED = "rejected"
TERMINATED = "terminated"

BOOKING_STATUSES = (
    PENDING,
    ACCEPTED,
    DURATION_PENDING,
    DURATION_APPROVED,
    AGREEMENT_PENDING,
    PAYMENT_PENDING,
    ACTIVE,
    REJECTED,
    TERMINATED,
)

TERMINAL_STATUSES = (REJECTED, TERMINATED)

# ─── Agreement states ─────────────────────────────────────────────────────────

AGREEMENT_DRAFT = "draft"
AGREEMENT_PENDING_TENANT = "pending_tenant"
AGREEMENT_ACTIVE = "active"
AGREEMENT_TERMINATED = "terminated"

AGREEMENT_STATUSES = (
    AGREEMENT_DRAFT,
    AGREEMENT_PENDING_TENANT,
    AGREEMENT_ACTIVE,
    AGREEMENT_TERMINATED,
)

# ─── Parties ──────────────────────────────────────────────────────────────────

OWNER = "owner"
TENANT = "tenant"

# ─── Transition tables ────────────────────────────────────────────────────────

BOOKING_TRANSITIONS: dict[tuple[str, str], tuple[str, str]] = {
    (PENDING, "accept"): (OWNER, ACCEPTED),
    (PENDING, "reject"): (OWNER, REJECTED),
    (ACCEPTED, "propose_duration"): (TENANT, DURATION_PENDING),
    (DURATION_PENDING, "approve_duration"): (OWNER, DURATION_APPROVED),
    (DURATION_PENDING, "reject_duration"): (OWNER, REJECTED),
    (DURATION_APPROVED, "create_agreement"): (OWNER, AGREEMENT_PENDING),
    (AGREEMENT_PENDING, "approve_agreement"): (TENANT, PAYMENT_PENDING),
    (AGREEMENT_PENDING, "decline_agreement"): (TENANT, REJECTED),
    (PAYMENT_PENDING, "pay_deposit"): (TENANT, ACTIVE),
    (ACTIVE, "terminate"): (OWNER, TERMINATED),
}

AGREEMENT_TRANSITIONS: dict[tuple[str, str], tuple[str, str]] = {
    (AGREEMENT_DRAFT, "send"): (OWNER, AGREEMENT_PENDING_TENANT),
    (AGREEMENT_PENDING_TENANT, "approve"): (TENANT, AGREEMENT_ACTIVE),
    (AGREEMENT_PENDING_TENANT, "decline"): (TENANT, AGREEMENT_TERMINATED),
    (AGREEMENT_ACTIVE, "terminate"): (OWNER, AGREEMENT_TERMINATED),
}

# Which stage each booking event expects, phrased for the person who is blocked
_BOOKING_BLOCKERS: dict[str, str] = {
    "accept": "booking is no longer awaiting a decision",
    "reject": "booking is no longer awaiting a decision",
    "propose_duration": "owner has not accepted the request yet",
    "approve_duration": "no duration is pending approval",
    "reject_duration": "no duration is pending approval",
    "create_agreement": "duration not yet approved",
    "approve_agreement": "no agreement is awaiting your response",
    "decline_agreement": "no agreement is awaiting your response",
    "pay_deposit": "agreement has not been approved",
    "terminate": "rental is not active",
}

_EVENT_LABELS: dict[str, str] = {
    "accept": "accept booking",
    "reject": "reject booking",
    "propose_duration": "propose duration",
    "approve_duration": "approve duration",
    "reject_duration": "reject duration",
    "create_agreement": "create agreement",
    "approve_agreement": "approve agreement",
    "decline_agreement": "decline agreement",
    "pay_deposit": "pay deposit",
    "terminate": "terminate rental",
}


def _lookup(
    table: dict[tuple[str, str], tuple[str, str]],
    current: str,
    event: str,
    actor_role: str,
    blocker: str,
    label: str,
) -> str:
    entry = table.get((current, event))
    if entry is None:
        if current in (REJECTED, TERMINATED):
            blocker = f"it was already {current}"
        raise IllegalTransition(f"cannot {label}: {blocker} (status is {current})")
    party, target = entry
    if party != actor_role:
        raise IllegalTransition(f"cannot {label}: only the {party} may do this at stage {current}")
    return target


def transition_booking(current: str, event: str, actor_role: str) -> str:
    """Return the booking state reached by ``event``, or raise IllegalTransition."""
    return _lookup(
        BOOKING_TRANSITIONS,
        current,
        event,
        actor_role,
        _BOOKING_BLOCKERS.get(event, "event not allowed here"),
        _EVENT_LABELS.get(event, event.replace("_", " ")),
    )


def transition_agreement(current: str, event: str, actor_role: str) -> str:
    """Return the agreement state reached by ``event``, or raise IllegalTransition."""
    return _lookup(
        AGREEMENT_TRANSITIONS,
        current,
        event,
        actor_role,
        "agreement is not at the required stage",
        f"{event} agreement",
    )


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
