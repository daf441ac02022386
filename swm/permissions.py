"""Role guard for the ledger API.

Roles decide which API actions an actor may call. The ledger services
never look at roles; they only record the actor id.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Platform roles used for permission checks."""

    ADMIN = "admin"
    ULB_OFFICER = "ulb_officer"
    GREEN_CHAMPION = "green_champion"
    COLLECTION_WORKER = "collection_worker"
    CITIZEN = "citizen"


# actions any authenticated actor may call
PUBLIC_ACTIONS = {"account_points", "penalty_history", "redeem_points", "pay_penalty"}

STAFF_ACTIONS = {
    Role.ULB_OFFICER: {
        "register_account",
        "award_points",
        "award_bonus",
        "issue_penalty",
        "cancel_penalty",
        "suspend_account",
        "report_violation",
        "submit_assessment",
        "statistics",
        "compliance_overview",
    },
    Role.GREEN_CHAMPION: {
        "award_bonus",
        "report_violation",
        "submit_assessment",
        "compliance_overview",
    },
    Role.COLLECTION_WORKER: {
        "award_points",
        "pickup_quality",
        "reject_pickup",
        "report_violation",
    },
}


def can(role: Role, action: str) -> bool:
    """Return ``True`` if a user with ``role`` can perform ``action``.

    ``admin`` bypasses all checks.
    """

    if role == Role.ADMIN:
        return True
    if action in PUBLIC_ACTIONS:
        return True
    return action in STAFF_ACTIONS.get(role, set())
