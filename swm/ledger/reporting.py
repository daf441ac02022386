"""Read-only aggregates for dashboards.

All functions are pure: they take records already fetched from the store
(ORM rows or anything with the same attributes) and return plain dicts and
numbers. Totals are always recomputed from the events, never read from a
running counter.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import AccountKind, PenaltyStatus, now_utc

COMPLIANT_FROM = 70
BUCKETS = (
    ("excellent", 90),
    ("good", 70),
    ("average", 50),
    ("poor", 0),
)


def _value(v: Any) -> Any:
    return getattr(v, "value", v)


def total_points_awarded(rewards: Iterable[Any]) -> int:
    return sum(int(r.points_awarded or 0) for r in rewards)


def total_points_redeemed(redemptions: Iterable[Any]) -> int:
    return sum(int(r.points_redeemed or 0) for r in redemptions)


def points_in_circulation(rewards: Iterable[Any], redemptions: Iterable[Any]) -> int:
    return total_points_awarded(rewards) - total_points_redeemed(redemptions)


def points_totals(rewards: Sequence[Any], redemptions: Sequence[Any]) -> Dict[str, int]:
    awarded = total_points_awarded(rewards)
    redeemed = total_points_redeemed(redemptions)
    return {"awarded": awarded, "redeemed": redeemed, "inCirculation": awarded - redeemed}


def compliance_bucket(score: int) -> str:
    for name, floor in BUCKETS:
        if score >= floor:
            return name
    return "poor"


def compliance_distribution(accounts: Iterable[Any]) -> Dict[str, int]:
    """Count accounts per bucket: excellent >=90, good 70-89, average 50-69, poor <50."""
    dist = {name: 0 for name, _ in BUCKETS}
    for a in accounts:
        dist[compliance_bucket(a.compliance_score or 0)] += 1
    return dist


def penalty_collection_rate(penalties: Sequence[Any]) -> float:
    """Fraction of issued penalties that have been paid (0.0 when none)."""
    if not penalties:
        return 0.0
    paid = sum(1 for p in penalties if _value(p.status) == PenaltyStatus.PAID.value)
    return paid / len(penalties)


def _is_overdue(p: Any, now: datetime) -> bool:
    status = _value(p.status)
    if status == PenaltyStatus.OVERDUE.value:
        return True
    return status == PenaltyStatus.ISSUED.value and p.due_date is not None and p.due_date < now


def penalty_summary(penalties: Sequence[Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or now_utc()
    open_statuses = {PenaltyStatus.ISSUED.value, PenaltyStatus.OVERDUE.value}
    return {
        "totalPenalties": len(penalties),
        "totalAmount": sum((Decimal(p.amount) for p in penalties), Decimal("0")),
        "paidPenalties": sum(1 for p in penalties if _value(p.status) == PenaltyStatus.PAID.value),
        "unpaidPenalties": sum(1 for p in penalties if _value(p.status) in open_statuses),
        "overduePenalties": sum(1 for p in penalties if _is_overdue(p, now)),
    }


def account_points_summary(account: Any, rewards: Sequence[Any], redemptions: Sequence[Any],
                           recent: int = 10) -> Dict[str, Any]:
    rewards = sorted(rewards, key=lambda r: r.awarded_at, reverse=True)
    redemptions = sorted(redemptions, key=lambda r: r.redeemed_at, reverse=True)
    return {
        "accountId": account.id,
        "displayName": account.display_name,
        "currentPoints": account.point_balance,
        "totalEarned": total_points_awarded(rewards),
        "totalRedeemed": total_points_redeemed(redemptions),
        "recentRewards": rewards[:recent],
        "recentRedemptions": redemptions[:recent],
    }


def incentive_statistics(rewards: Sequence[Any], redemptions: Sequence[Any],
                         penalties: Sequence[Any]) -> Dict[str, Any]:
    awarded = total_points_awarded(rewards)
    redeemed = total_points_redeemed(redemptions)
    paid = [p for p in penalties if _value(p.status) == PenaltyStatus.PAID.value]
    recipients = {r.account_id for r in rewards}
    return {
        "rewards": {
            "totalPointsAwarded": awarded,
            "totalRewards": len(rewards),
            "byKind": dict(Counter(_value(r.kind) for r in rewards)),
            "averageRewardPerRecipient": awarded / len(recipients) if recipients else 0,
        },
        "redemptions": {
            "totalRedemptions": len(redemptions),
            "totalPointsRedeemed": redeemed,
            "totalValueRedeemed": sum((Decimal(r.reward_value) for r in redemptions), Decimal("0")),
            "byType": dict(Counter(_value(r.reward_type) for r in redemptions)),
        },
        "penalties": {
            "totalPenalties": len(penalties),
            "totalAmount": sum((Decimal(p.amount) for p in penalties), Decimal("0")),
            "totalRevenue": sum((Decimal(p.paid_amount or p.amount) for p in paid), Decimal("0")),
            "collectionRate": penalty_collection_rate(penalties) * 100,
            "byViolationType": dict(Counter(_value(p.violation_type) for p in penalties)),
            "byStatus": dict(Counter(_value(p.status) for p in penalties)),
        },
        "overview": {
            "activeIncentiveUsers": len(recipients),
            "totalTransactions": len(rewards) + len(redemptions) + len(penalties),
            "netPointsInCirculation": awarded - redeemed,
        },
    }


def _kind_overview(accounts: List[Any]) -> Dict[str, Any]:
    total = len(accounts)
    compliant = sum(1 for a in accounts if (a.compliance_score or 0) >= COMPLIANT_FROM)
    return {
        "total": total,
        "compliant": compliant,
        "averageScore": sum(a.compliance_score or 0 for a in accounts) / total if total else 0,
        "complianceRate": compliant / total * 100 if total else 0,
        "distribution": compliance_distribution(accounts),
    }


def compliance_overview(accounts: Iterable[Any]) -> Dict[str, Any]:
    accounts = list(accounts)
    by_kind = {
        kind.value: _kind_overview([a for a in accounts if _value(a.kind) == kind.value])
        for kind in AccountKind
    }
    return {"overall": _kind_overview(accounts), **by_kind}


def area_assessment_average(assessments: Iterable[Any], area_id: str,
                            window: int = 10) -> Optional[float]:
    """Mean of the latest ``window`` assessments in ``area_id``."""
    in_area = sorted(
        (a for a in assessments if a.area_id == area_id),
        key=lambda a: a.assessed_at,
        reverse=True,
    )[:window]
    if not in_area:
        return None
    return sum(a.overall_score for a in in_area) / len(in_area)
