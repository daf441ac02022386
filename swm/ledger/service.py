"""Points ledger and penalty lifecycle.

``LedgerService`` applies one state transition per call to one account or
penalty. Balance changes go through the store's atomic delta, penalty
status changes through conditional updates on the current status, so a
retried or concurrent request can neither overspend points nor record a
payment twice.

Reward formula (segregation rewards)::

    base_points  = floor(quantity_kg * 0.1)
    total_points = floor(base_points * grade_multiplier * segregation_score / 100)

with multipliers A=2.0, B=1.5, C=1.0, D=0.5.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, Iterable, List, Optional, Tuple

from swm import config

from . import escalation_service
from .errors import (
    AccountNotFound, AlreadyPaid, InsufficientPayment, InsufficientPoints,
    InvalidGrade, InvalidTransition, PenaltyNotFound, ValidationError,
)
from .models import (
    Account, AccountKind, AccountStatus, PenaltyRecord, PenaltyStatus,
    RedemptionEvent, RewardEvent, RewardKind, RewardType, ViolationType, now_utc,
)
from .store import AccountStore
from .validators import enum_value, money, number, positive_int, required_text

log = logging.getLogger(__name__)

POINTS_PER_KG = Decimal("0.1")
QUALITY_MULTIPLIERS: Dict[str, Decimal] = {
    "A": Decimal("2.0"),
    "B": Decimal("1.5"),
    "C": Decimal("1.0"),
    "D": Decimal("0.5"),
}
PAYABLE = (PenaltyStatus.ISSUED, PenaltyStatus.OVERDUE)
_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def current_period() -> str:
    """Reward period label (``YYYY-MM``) in the configured local timezone."""
    return datetime.now(config.LOCAL_TZ).strftime("%Y-%m")


def calculate_reward_points(
    quantity: Any, quality_grade: Any, segregation_score: Any
) -> Tuple[int, Dict[str, Any]]:
    """Return ``(total_points, formula_inputs)`` for a segregation reward."""
    qty = number(quantity, "quantity")
    if qty < 0:
        raise ValidationError("quantity must not be negative", field="quantity")
    if not isinstance(quality_grade, str) or quality_grade not in QUALITY_MULTIPLIERS:
        raise InvalidGrade(quality_grade, QUALITY_MULTIPLIERS)
    score = number(segregation_score, "segregationScore")
    if score < 0 or score > 100:
        raise ValidationError("segregationScore must be between 0 and 100",
                              field="segregationScore")

    multiplier = QUALITY_MULTIPLIERS[quality_grade]
    base_points = int((qty * POINTS_PER_KG).to_integral_value(rounding=ROUND_FLOOR))
    total = (base_points * multiplier * score / 100).to_integral_value(rounding=ROUND_FLOOR)
    inputs = {
        "quantity": str(qty),
        "qualityGrade": quality_grade,
        "segregationScore": str(score),
        "basePoints": base_points,
        "qualityMultiplier": str(multiplier),
        "scoreMultiplier": str(score / 100),
        "formula": "basePoints * qualityMultiplier * scoreMultiplier",
    }
    return int(total), inputs


class LedgerService:
    """Point awards, redemptions, penalties and account status."""

    def __init__(self, store: AccountStore):
        self.store = store

    # --- accounts ---
    def register_account(
        self,
        kind: Any,
        display_name: Optional[str] = None,
        area_id: Optional[str] = None,
    ) -> Account:
        kind = enum_value(AccountKind, kind, "kind")
        account = self.store.create(kind, display_name=display_name, area_id=area_id)
        log.info("account registered id=%s kind=%s", account.id, kind.value)
        return account

    def get_account(self, account_id: str) -> Account:
        return self.store.get(account_id)

    def suspend_account(
        self,
        account_id: str,
        days: Any,
        reason: str,
        issued_by: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Account:
        days = positive_int(days, "suspensionDays")
        reason = required_text(reason, "reason")
        until = now_utc() + timedelta(days=days)

        def _suspend(session, account: Account) -> Account:
            account.status = AccountStatus.SUSPENDED
            account.suspended_until = until
            account.suspension_reason = reason
            return account

        account = self.store.mutate(account_id, _suspend, "suspend account", timeout)
        log.info("account suspended id=%s until=%s by=%s", account_id, until, issued_by)
        escalation_service.notify_suspension(account_id, until, reason, issued_by)
        return account

    @staticmethod
    def _clear_suspension(account: Account) -> None:
        account.status = AccountStatus.ACTIVE
        account.suspended_until = None
        account.suspension_reason = None

    def reinstate_account(self, account_id: str, timeout: Optional[float] = None) -> Account:
        def _reinstate(session, account: Account) -> Account:
            self._clear_suspension(account)
            return account

        account = self.store.mutate(account_id, _reinstate, "reinstate account", timeout)
        log.info("account reinstated id=%s", account_id)
        return account

    def lift_expired_suspensions(self, now: Optional[datetime] = None) -> List[str]:
        """Reinstate accounts whose suspension has run out; returns their ids."""
        now = now or now_utc()
        with self.store.transaction("find expired suspensions") as session:
            ids = [
                row.id for row in session.query(Account.id).filter(
                    Account.status == AccountStatus.SUSPENDED,
                    Account.suspended_until.isnot(None),
                    Account.suspended_until <= now,
                )
            ]

        def _lift(session, account: Account) -> bool:
            # may have been suspended again since the query
            if (account.status != AccountStatus.SUSPENDED
                    or account.suspended_until is None
                    or account.suspended_until > now):
                return False
            self._clear_suspension(account)
            return True

        lifted = [account_id for account_id in ids
                  if self.store.mutate(account_id, _lift, "lift suspension")]
        for account_id in lifted:
            log.info("suspension expired, account reinstated id=%s", account_id)
        return lifted

    # --- points ---
    def award_points(
        self,
        account_id: str,
        quantity: Any,
        quality_grade: Any,
        segregation_score: Any,
        reason: Optional[str] = None,
        awarded_by: Optional[str] = None,
        period: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> RewardEvent:
        """Credit segregation reward points computed from the formula."""
        total, inputs = calculate_reward_points(quantity, quality_grade, segregation_score)
        if period is None:
            period = current_period()
        elif not _PERIOD_RE.match(str(period)):
            raise ValidationError("period must look like YYYY-MM", field="period")

        event = RewardEvent(
            kind=RewardKind.SEGREGATION,
            points_awarded=total,
            reason=reason,
            formula_inputs=inputs,
            period=period,
            awarded_by=awarded_by,
        )
        self._credit(account_id, event, "award points", timeout)
        log.info("points awarded account=%s points=%s balance=%s grade=%s",
                 account_id, total, event.balance_after, quality_grade)
        return event

    def award_bonus(
        self,
        account_id: str,
        points: Any,
        reason: str,
        awarded_by: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> RewardEvent:
        """Credit a fixed number of points (training, campaigns, goodwill)."""
        points = positive_int(points, "points")
        reason = required_text(reason, "reason")
        event = RewardEvent(
            kind=RewardKind.BONUS,
            points_awarded=points,
            reason=reason,
            formula_inputs={},
            awarded_by=awarded_by,
        )
        self._credit(account_id, event, "award bonus", timeout)
        log.info("bonus awarded account=%s points=%s balance=%s",
                 account_id, points, event.balance_after)
        return event

    def _credit(self, account_id: str, event: RewardEvent, operation: str,
                timeout: Optional[float]) -> None:
        with self.store.transaction(operation, timeout) as session:
            balance = self.store.apply_point_delta(session, account_id, event.points_awarded)
            if balance is None:
                raise AccountNotFound(account_id)
            event.balance_after = balance
            self.store.append_event(account_id, event, session=session)

    def redeem_points(
        self,
        account_id: str,
        points: Any,
        reward_type: Any,
        reward_value: Any,
        description: Optional[str] = None,
        redeemed_by: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> RedemptionEvent:
        """Spend points. Fails with ``InsufficientPoints`` and leaves the
        balance untouched when the account cannot cover ``points``."""
        points = positive_int(points, "points")
        reward_type = enum_value(RewardType, reward_type, "rewardType")
        value = money(reward_value, "rewardValue", positive=False)

        with self.store.transaction("redeem points", timeout) as session:
            balance = self.store.apply_point_delta(session, account_id, -points)
            if balance is None:
                available = self.store.current_balance(session, account_id)
                if available is None:
                    raise AccountNotFound(account_id)
                raise InsufficientPoints(available=available, requested=points)
            event = RedemptionEvent(
                points_redeemed=points,
                balance_before=balance + points,
                balance_after=balance,
                reward_type=reward_type,
                reward_value=value,
                description=description,
                redeemed_by=redeemed_by,
            )
            self.store.append_event(account_id, event, session=session)
        log.info("points redeemed account=%s points=%s balance=%s type=%s",
                 account_id, points, balance, reward_type.value)
        return event

    # --- penalties ---
    def issue_penalty(
        self,
        violator_account_id: str,
        violation_type: Any,
        amount: Any,
        description: Optional[str] = None,
        due_date: Optional[datetime] = None,
        issued_by: Optional[str] = None,
        evidence: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
    ) -> PenaltyRecord:
        violation_type = enum_value(ViolationType, violation_type, "violationType")
        amount = money(amount, "amount")
        issued_at = now_utc()
        if due_date is None:
            due_date = issued_at + timedelta(days=config.PENALTY_DUE_DAYS)
        elif not isinstance(due_date, datetime):
            raise ValidationError("dueDate must be a datetime", field="dueDate")
        elif due_date.tzinfo is not None:
            due_date = due_date.astimezone(timezone.utc).replace(tzinfo=None)

        penalty = PenaltyRecord(
            violation_type=violation_type,
            amount=amount,
            description=description,
            evidence=list(evidence or []),
            status=PenaltyStatus.ISSUED,
            issued_at=issued_at,
            issued_by=issued_by,
            due_date=due_date,
        )
        with self.store.transaction("issue penalty", timeout) as session:
            self.store.get(violator_account_id, session=session)
            self.store.append_event(violator_account_id, penalty, session=session)
        log.info("penalty issued id=%s account=%s type=%s amount=%s",
                 penalty.id, violator_account_id, violation_type.value, amount)
        escalation_service.notify_penalty_issued(violator_account_id, penalty.id, amount, due_date)
        return penalty

    def get_penalty(self, penalty_id: str) -> PenaltyRecord:
        with self.store.transaction("get penalty") as session:
            return self._load_penalty(session, penalty_id)

    def _load_penalty(self, session, penalty_id: str) -> PenaltyRecord:
        penalty = session.get(PenaltyRecord, penalty_id)
        if penalty is None:
            raise PenaltyNotFound(penalty_id)
        return penalty

    @staticmethod
    def _check_open(penalty: PenaltyRecord, target: PenaltyStatus) -> None:
        if penalty.status == PenaltyStatus.PAID:
            raise AlreadyPaid(penalty.id)
        if penalty.status not in PAYABLE:
            raise InvalidTransition(penalty.id, penalty.status.value, target.value)

    def _transition(self, session, penalty: PenaltyRecord, target: PenaltyStatus,
                    values: Dict[Any, Any]) -> PenaltyRecord:
        updated = (
            session.query(PenaltyRecord)
            .filter(PenaltyRecord.id == penalty.id, PenaltyRecord.status.in_(PAYABLE))
            .update({PenaltyRecord.status: target, **values}, synchronize_session=False)
        )
        session.refresh(penalty)
        if not updated:
            # lost the race to a concurrent payment or cancellation
            self._check_open(penalty, target)
            raise AlreadyPaid(penalty.id)
        return penalty

    def pay_penalty(
        self,
        penalty_id: str,
        paid_amount: Any,
        payment_method: str,
        transaction_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> PenaltyRecord:
        paid = money(paid_amount, "paidAmount")
        payment_method = required_text(payment_method, "paymentMethod")

        with self.store.transaction("pay penalty", timeout) as session:
            penalty = self._load_penalty(session, penalty_id)
            self._check_open(penalty, PenaltyStatus.PAID)
            if paid < penalty.amount:
                raise InsufficientPayment(required=penalty.amount, paid=paid)
            self._transition(session, penalty, PenaltyStatus.PAID, {
                PenaltyRecord.paid_at: now_utc(),
                PenaltyRecord.paid_amount: paid,
                PenaltyRecord.payment_method: payment_method,
                PenaltyRecord.transaction_id: transaction_id,
            })
        log.info("penalty paid id=%s amount=%s method=%s", penalty_id, paid, payment_method)
        return penalty

    def cancel_penalty(
        self,
        penalty_id: str,
        reason: str,
        cancelled_by: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> PenaltyRecord:
        reason = required_text(reason, "reason")
        with self.store.transaction("cancel penalty", timeout) as session:
            penalty = self._load_penalty(session, penalty_id)
            self._check_open(penalty, PenaltyStatus.CANCELLED)
            self._transition(session, penalty, PenaltyStatus.CANCELLED, {
                PenaltyRecord.cancelled_at: now_utc(),
                PenaltyRecord.cancel_reason: reason,
            })
        log.info("penalty cancelled id=%s by=%s: %s", penalty_id, cancelled_by, reason)
        return penalty

    def mark_overdue_penalties(self, now: Optional[datetime] = None) -> List[PenaltyRecord]:
        """Move issued penalties past their due date to ``overdue``."""
        now = now or now_utc()
        with self.store.transaction("mark overdue penalties") as session:
            ids = [
                row.id for row in session.query(PenaltyRecord.id).filter(
                    PenaltyRecord.status == PenaltyStatus.ISSUED,
                    PenaltyRecord.due_date < now,
                )
            ]
            if not ids:
                return []
            (
                session.query(PenaltyRecord)
                .filter(PenaltyRecord.id.in_(ids), PenaltyRecord.status == PenaltyStatus.ISSUED)
                .update({PenaltyRecord.status: PenaltyStatus.OVERDUE}, synchronize_session=False)
            )
            overdue = (
                session.query(PenaltyRecord)
                .filter(PenaltyRecord.id.in_(ids), PenaltyRecord.status == PenaltyStatus.OVERDUE)
                .all()
            )
        for penalty in overdue:
            escalation_service.notify_overdue(penalty.violator_account_id, penalty.id, penalty.due_date)
        log.info("marked %s penalties overdue", len(overdue))
        return overdue
