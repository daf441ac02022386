"""Request/response boundary of the ledger.

``LedgerAPI.handle(action, body, authorization)`` authenticates the bearer
credential, checks the actor's role, validates ``body`` with a pydantic
request model and calls the ledger. It always answers ``(status, body)``:

* success: ``(200 | 201, {"success": True, "data": {...}})``
* failure: ``(status, {"success": False, "error": message, "code": code, ...})``

Field names on the wire are camelCase. Only ``LedgerError`` is turned
into a failure response; anything else propagates to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from swm.auth import Actor, authenticate
from swm.ledger import reporting
from swm.ledger.compliance import ComplianceScorer
from swm.ledger.errors import InfrastructureError, LedgerError, ValidationError
from swm.ledger.models import (
    Account, ComplianceAssessment, PenaltyRecord, RedemptionEvent, RewardEvent,
)
from swm.ledger.service import LedgerService
from swm.permissions import Role, can

log = logging.getLogger(__name__)


class Forbidden(LedgerError):
    code = "forbidden"
    status = 403


# --- request models ---
class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AccountRequest(_Request):
    account_id: str = Field(alias="accountId", min_length=1)


class AwardPointsRequest(AccountRequest):
    quantity: Decimal = Field(ge=0)
    quality_grade: str = Field(alias="qualityGrade")
    segregation_score: Decimal = Field(alias="segregationScore", ge=0, le=100)
    reason: Optional[str] = None
    period: Optional[str] = None


class AwardBonusRequest(AccountRequest):
    points: int = Field(gt=0)
    reason: str = Field(min_length=1)


class RedeemPointsRequest(AccountRequest):
    points: int = Field(gt=0)
    reward_type: str = Field(alias="rewardType")
    reward_value: Decimal = Field(alias="rewardValue", ge=0)
    description: Optional[str] = None


class RegisterAccountRequest(_Request):
    kind: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    area_id: Optional[str] = Field(default=None, alias="areaId")


class SuspendAccountRequest(AccountRequest):
    suspension_days: int = Field(alias="suspensionDays", gt=0)
    reason: str = Field(min_length=1)


class IssuePenaltyRequest(_Request):
    violator_id: str = Field(alias="violatorId", min_length=1)
    violation_type: str = Field(alias="violationType")
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    evidence: List[str] = Field(default_factory=list)


class PayPenaltyRequest(_Request):
    penalty_id: str = Field(alias="penaltyId", min_length=1)
    paid_amount: Decimal = Field(alias="paidAmount", gt=0)
    payment_method: str = Field(alias="paymentMethod", min_length=1)
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")


class CancelPenaltyRequest(_Request):
    penalty_id: str = Field(alias="penaltyId", min_length=1)
    reason: str = Field(min_length=1)


class PickupQualityRequest(AccountRequest):
    segregation_quality: str = Field(alias="segregationQuality")


class RejectPickupRequest(AccountRequest):
    reason: str = Field(min_length=1)


class ReportViolationRequest(AccountRequest):
    violation_type: str = Field(alias="violationType")
    severity: str = "medium"
    description: str = Field(min_length=1)


class SubmitAssessmentRequest(AccountRequest):
    overall_score: Decimal = Field(alias="overallScore", ge=0, le=100)


class StatisticsRequest(_Request):
    pass


class ComplianceOverviewRequest(_Request):
    area_id: Optional[str] = Field(default=None, alias="areaId")


def _parse(schema: Type[_Request], body: Any) -> _Request:
    try:
        return schema.model_validate(body if body is not None else {})
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or None
        message = f"{field}: {first['msg']}" if field else first["msg"]
        raise ValidationError(message, field=field) from e


# --- response shaping ---
def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def account_dict(a: Account) -> Dict[str, Any]:
    return {
        "id": a.id,
        "kind": a.kind,
        "displayName": a.display_name,
        "areaId": a.area_id,
        "pointBalance": a.point_balance,
        "complianceScore": a.compliance_score,
        "status": a.status,
        "suspendedUntil": a.suspended_until,
        "suspensionReason": a.suspension_reason,
        "lastAssessedAt": a.last_assessed_at,
        "createdAt": a.created_at,
    }


def reward_dict(r: RewardEvent) -> Dict[str, Any]:
    return {
        "id": r.id,
        "accountId": r.account_id,
        "kind": r.kind,
        "pointsAwarded": r.points_awarded,
        "balanceAfter": r.balance_after,
        "reason": r.reason,
        "formulaInputs": r.formula_inputs,
        "period": r.period,
        "awardedAt": r.awarded_at,
        "awardedBy": r.awarded_by,
    }


def redemption_dict(r: RedemptionEvent) -> Dict[str, Any]:
    return {
        "id": r.id,
        "accountId": r.account_id,
        "pointsRedeemed": r.points_redeemed,
        "balanceBefore": r.balance_before,
        "balanceAfter": r.balance_after,
        "rewardType": r.reward_type,
        "rewardValue": r.reward_value,
        "description": r.description,
        "redeemedAt": r.redeemed_at,
        "redeemedBy": r.redeemed_by,
    }


def penalty_dict(p: PenaltyRecord) -> Dict[str, Any]:
    return {
        "id": p.id,
        "violatorId": p.violator_account_id,
        "violationType": p.violation_type,
        "amount": p.amount,
        "description": p.description,
        "evidence": p.evidence or [],
        "status": p.status,
        "issuedAt": p.issued_at,
        "issuedBy": p.issued_by,
        "dueDate": p.due_date,
        "paidAt": p.paid_at,
        "paidAmount": p.paid_amount,
        "paymentMethod": p.payment_method,
        "transactionId": p.transaction_id,
        "cancelledAt": p.cancelled_at,
        "cancelReason": p.cancel_reason,
    }


class LedgerAPI:
    """Framework-free dispatcher over ``LedgerService`` and ``ComplianceScorer``."""

    def __init__(self, ledger: LedgerService, scorer: ComplianceScorer):
        self.ledger = ledger
        self.scorer = scorer
        self.store = ledger.store
        self.routes: Dict[str, Tuple[Type[_Request], Callable[[Any, Actor], Any], int]] = {
            "register_account": (RegisterAccountRequest, self.register_account, 201),
            "award_points": (AwardPointsRequest, self.award_points, 200),
            "award_bonus": (AwardBonusRequest, self.award_bonus, 200),
            "redeem_points": (RedeemPointsRequest, self.redeem_points, 200),
            "suspend_account": (SuspendAccountRequest, self.suspend_account, 200),
            "issue_penalty": (IssuePenaltyRequest, self.issue_penalty, 201),
            "pay_penalty": (PayPenaltyRequest, self.pay_penalty, 200),
            "cancel_penalty": (CancelPenaltyRequest, self.cancel_penalty, 200),
            "pickup_quality": (PickupQualityRequest, self.pickup_quality, 200),
            "reject_pickup": (RejectPickupRequest, self.reject_pickup, 200),
            "report_violation": (ReportViolationRequest, self.report_violation, 201),
            "submit_assessment": (SubmitAssessmentRequest, self.submit_assessment, 201),
            "account_points": (AccountRequest, self.account_points, 200),
            "penalty_history": (AccountRequest, self.penalty_history, 200),
            "statistics": (StatisticsRequest, self.statistics, 200),
            "compliance_overview": (ComplianceOverviewRequest, self.compliance_overview, 200),
        }

    def handle(self, action: str, body: Any = None,
               authorization: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
        auth = authenticate(authorization)
        if not auth.ok:
            log.info("%s: unauthorized (%s)", action, auth.error)
            return 401, {"success": False, "error": "Not authorized", "code": "unauthorized",
                         "reason": auth.error}
        if action not in self.routes:
            return 404, {"success": False, "error": f"Unknown action: {action}",
                         "code": "unknown_action"}
        actor = auth.actor
        if not can(actor.role, action):
            log.info("%s: denied for %s (%s)", action, actor.id, actor.role.value)
            return 403, {"success": False, "error": f"Role {actor.role.value} cannot {action}",
                         "code": "forbidden"}

        schema, handler, ok_status = self.routes[action]
        try:
            request = _parse(schema, body)
            data = handler(request, actor)
        except InfrastructureError as e:
            log.error("%s failed: %s", action, e)
            return e.status, {"success": False, **_jsonable(e.to_dict())}
        except LedgerError as e:
            log.info("%s rejected: %s", action, e)
            return e.status, {"success": False, **_jsonable(e.to_dict())}
        return ok_status, {"success": True, "data": _jsonable(data)}

    @staticmethod
    def _own_account(actor: Actor, account_id: str) -> None:
        if actor.role == Role.CITIZEN and actor.id != account_id:
            raise Forbidden("Citizens can only act on their own account")

    # --- accounts ---
    def register_account(self, req: RegisterAccountRequest, actor: Actor):
        account = self.ledger.register_account(req.kind, req.display_name, req.area_id)
        return account_dict(account)

    def suspend_account(self, req: SuspendAccountRequest, actor: Actor):
        account = self.ledger.suspend_account(
            req.account_id, req.suspension_days, req.reason, issued_by=actor.id,
        )
        return account_dict(account)

    # --- points ---
    def award_points(self, req: AwardPointsRequest, actor: Actor):
        event = self.ledger.award_points(
            req.account_id, req.quantity, req.quality_grade, req.segregation_score,
            reason=req.reason, awarded_by=actor.id, period=req.period,
        )
        return {
            "rewardId": event.id,
            "pointsAwarded": event.points_awarded,
            "newBalance": event.balance_after,
            "formulaInputs": event.formula_inputs,
            "period": event.period,
        }

    def award_bonus(self, req: AwardBonusRequest, actor: Actor):
        event = self.ledger.award_bonus(req.account_id, req.points, req.reason, awarded_by=actor.id)
        return {
            "rewardId": event.id,
            "pointsAwarded": event.points_awarded,
            "newBalance": event.balance_after,
        }

    def redeem_points(self, req: RedeemPointsRequest, actor: Actor):
        self._own_account(actor, req.account_id)
        event = self.ledger.redeem_points(
            req.account_id, req.points, req.reward_type, req.reward_value,
            description=req.description, redeemed_by=actor.id,
        )
        return {
            "redemptionId": event.id,
            "previousBalance": event.balance_before,
            "newBalance": event.balance_after,
            "pointsRedeemed": event.points_redeemed,
            "rewardType": event.reward_type,
            "rewardValue": event.reward_value,
        }

    # --- penalties ---
    def issue_penalty(self, req: IssuePenaltyRequest, actor: Actor):
        penalty = self.ledger.issue_penalty(
            req.violator_id, req.violation_type, req.amount,
            description=req.description, due_date=req.due_date,
            issued_by=actor.id, evidence=req.evidence,
        )
        return penalty_dict(penalty)

    def pay_penalty(self, req: PayPenaltyRequest, actor: Actor):
        if actor.role == Role.CITIZEN:
            self._own_account(actor, self.ledger.get_penalty(req.penalty_id).violator_account_id)
        penalty = self.ledger.pay_penalty(
            req.penalty_id, req.paid_amount, req.payment_method, req.transaction_id,
        )
        return penalty_dict(penalty)

    def cancel_penalty(self, req: CancelPenaltyRequest, actor: Actor):
        penalty = self.ledger.cancel_penalty(req.penalty_id, req.reason, cancelled_by=actor.id)
        return penalty_dict(penalty)

    # --- compliance ---
    def pickup_quality(self, req: PickupQualityRequest, actor: Actor):
        score = self.scorer.apply_pickup_quality(req.account_id, req.segregation_quality)
        return {"accountId": req.account_id, "complianceScore": score}

    def reject_pickup(self, req: RejectPickupRequest, actor: Actor):
        score = self.scorer.apply_rejection(req.account_id, req.reason, rejected_by=actor.id)
        return {"accountId": req.account_id, "complianceScore": score}

    def report_violation(self, req: ReportViolationRequest, actor: Actor):
        record = self.scorer.record_violation(
            req.account_id, req.violation_type, req.severity, req.description,
            reported_by=actor.id,
        )
        return {
            "id": record.id,
            "accountId": record.account_id,
            "violationType": record.violation_type,
            "severity": record.severity,
            "qualityDelta": record.quality_delta,
            "recordedAt": record.recorded_at,
        }

    def submit_assessment(self, req: SubmitAssessmentRequest, actor: Actor):
        score = self.scorer.apply_assessment_score(req.account_id, req.overall_score,
                                                   assessed_by=actor.id)
        return {
            "accountId": req.account_id,
            "complianceScore": score,
            "followUpRequired": score < 70,
        }

    # --- reads ---
    def account_points(self, req: AccountRequest, actor: Actor):
        self._own_account(actor, req.account_id)
        account = self.ledger.get_account(req.account_id)
        rewards = self.store.query_by_field(RewardEvent, "account_id", req.account_id)
        redemptions = self.store.query_by_field(RedemptionEvent, "account_id", req.account_id)
        summary = reporting.account_points_summary(account, rewards, redemptions)
        summary["recentRewards"] = [reward_dict(r) for r in summary["recentRewards"]]
        summary["recentRedemptions"] = [redemption_dict(r) for r in summary["recentRedemptions"]]
        return summary

    def penalty_history(self, req: AccountRequest, actor: Actor):
        self._own_account(actor, req.account_id)
        self.ledger.get_account(req.account_id)
        penalties = self.store.query_by_field(PenaltyRecord, "violator_account_id", req.account_id)
        penalties.sort(key=lambda p: p.issued_at, reverse=True)
        return {
            "penalties": [penalty_dict(p) for p in penalties],
            "summary": reporting.penalty_summary(penalties),
        }

    def statistics(self, req: StatisticsRequest, actor: Actor):
        return reporting.incentive_statistics(
            self.store.all(RewardEvent),
            self.store.all(RedemptionEvent),
            self.store.all(PenaltyRecord),
        )

    def compliance_overview(self, req: ComplianceOverviewRequest, actor: Actor):
        overview = reporting.compliance_overview(self.store.all(Account))
        if req.area_id:
            overview["areaAssessmentAverage"] = reporting.area_assessment_average(
                self.store.all(ComplianceAssessment), req.area_id,
            )
        return overview
