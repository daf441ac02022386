"""Compliance scoring.

A participant's compliance score is an integer in [0, 100]. It moves in
two different ways:

* pickup feedback, rejections and violation reports add a delta to the
  current score (incremental, clamped);
* a formal assessment replaces the score with the assessed value
  (authoritative).

Every change goes through ``AccountStore.mutate`` so concurrent feedback
for the same household is never lost.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, Optional, Tuple

from swm import config

from . import escalation_service
from .errors import InvalidGrade
from .models import (
    Account, ComplianceAssessment, Severity, ViolationRecord, ViolationType, now_utc,
)
from .store import AccountStore
from .validators import enum_value, required_text, score

log = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100
PICKUP_QUALITY_DELTAS: Dict[str, int] = {
    "excellent": 10,
    "good": 8,
    "poor": 4,
    "rejected": 0,
}
REJECTION_DELTA = -15
SEVERITY_DELTAS: Dict[Severity, int] = {
    Severity.LOW: -5,
    Severity.MEDIUM: -10,
    Severity.HIGH: -15,
    Severity.CRITICAL: -20,
}
FOLLOW_UP_BELOW = 70
REJECTION_WINDOW_DAYS = 30


def clamp_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, int(value)))


class ComplianceScorer:
    """Turns quality and violation events into compliance-score changes."""

    def __init__(self, store: AccountStore):
        self.store = store

    def _apply_delta(self, account_id: str, delta: int, operation: str,
                     violation: Optional[dict] = None,
                     timeout: Optional[float] = None) -> Tuple[int, Optional[ViolationRecord]]:
        def _update(session, account: Account):
            account.compliance_score = clamp_score(account.compliance_score + delta)
            account.last_assessed_at = now_utc()
            record = None
            if violation is not None:
                # fresh row per attempt
                record = ViolationRecord(quality_delta=delta, **violation)
                self.store.append_event(account.id, record, session=session)
            return account.compliance_score, record

        return self.store.mutate(account_id, _update, operation, timeout)

    def apply_pickup_quality(self, account_id: str, quality_grade: str,
                             timeout: Optional[float] = None) -> int:
        """Credit segregation quality observed at a completed pickup."""
        if not isinstance(quality_grade, str) or quality_grade not in PICKUP_QUALITY_DELTAS:
            raise InvalidGrade(quality_grade, PICKUP_QUALITY_DELTAS)
        delta = PICKUP_QUALITY_DELTAS[quality_grade]
        new_score, _ = self._apply_delta(account_id, delta, "pickup quality", timeout=timeout)
        log.info("pickup quality account=%s grade=%s score=%s", account_id, quality_grade, new_score)
        return new_score

    def apply_rejection(self, account_id: str, reason: str, rejected_by: Optional[str] = None,
                        timeout: Optional[float] = None) -> int:
        """Deduct for a rejected (unsegregated) pickup and log the violation."""
        reason = required_text(reason, "reason")
        violation = {
            "violation_type": ViolationType.PICKUP_REJECTION,
            "severity": Severity.MEDIUM,
            "reason": reason,
            "recorded_by": rejected_by,
        }
        new_score, _ = self._apply_delta(account_id, REJECTION_DELTA, "pickup rejection",
                                         violation, timeout)
        log.info("pickup rejected account=%s score=%s: %s", account_id, new_score, reason)
        self._check_repeated_rejections(account_id)
        return new_score

    def record_violation(self, account_id: str, violation_type, severity, description: str,
                         reported_by: Optional[str] = None,
                         timeout: Optional[float] = None) -> ViolationRecord:
        """Log a reported segregation violation and apply its severity delta."""
        violation_type = enum_value(ViolationType, violation_type, "violationType")
        severity = enum_value(Severity, severity, "severity")
        description = required_text(description, "description")
        violation = {
            "violation_type": violation_type,
            "severity": severity,
            "reason": description,
            "recorded_by": reported_by,
        }
        new_score, record = self._apply_delta(account_id, SEVERITY_DELTAS[severity],
                                              "record violation", violation, timeout)
        log.info("violation recorded account=%s type=%s severity=%s score=%s",
                 account_id, violation_type.value, severity.value, new_score)
        return record

    def apply_assessment_score(self, account_id: str, overall_score,
                               assessed_by: Optional[str] = None,
                               timeout: Optional[float] = None) -> int:
        """Set the score to an assessed value and keep the assessment."""
        value = score(overall_score, "overallScore")

        def _assess(session, account: Account) -> int:
            account.compliance_score = clamp_score(value)
            account.last_assessed_at = now_utc()
            session.add(ComplianceAssessment(
                account_id=account.id,
                area_id=account.area_id,
                overall_score=value,
                follow_up_required=value < FOLLOW_UP_BELOW,
                assessed_by=assessed_by,
            ))
            return account.compliance_score

        new_score = self.store.mutate(account_id, _assess, "assessment", timeout)
        log.info("assessment account=%s score=%s", account_id, new_score)
        return new_score

    def _check_repeated_rejections(self, account_id: str) -> None:
        since = now_utc() - timedelta(days=REJECTION_WINDOW_DAYS)
        with self.store.transaction("count rejections") as session:
            count = (
                session.query(ViolationRecord)
                .filter(
                    ViolationRecord.account_id == account_id,
                    ViolationRecord.violation_type == ViolationType.PICKUP_REJECTION,
                    ViolationRecord.recorded_at >= since,
                )
                .count()
            )
        if count >= config.REJECTIONS_BEFORE_SUSPENSION:
            escalation_service.suggest_suspension(account_id, count, REJECTION_WINDOW_DAYS)
