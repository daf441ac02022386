"""SQLAlchemy models for the points & compliance ledger."""
import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, Text, ForeignKey,
    Boolean, Enum, JSON, Index, CheckConstraint
)
from sqlalchemy.orm import relationship

from swm.db import Base


def now_utc() -> datetime:
    return datetime.utcnow()


def new_id() -> str:
    return str(uuid.uuid4())


class AccountKind(str, PyEnum):
    CITIZEN = "citizen"
    BULK_GENERATOR = "bulk_generator"


class AccountStatus(str, PyEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class RewardKind(str, PyEnum):
    SEGREGATION = "segregation"
    BONUS = "bonus"


class RewardType(str, PyEnum):
    CASH = "cash"
    VOUCHER = "voucher"
    PRODUCT = "product"
    SERVICE = "service"


class ViolationType(str, PyEnum):
    IMPROPER_SEGREGATION = "improper_segregation"
    ILLEGAL_DUMPING = "illegal_dumping"
    NON_COMPLIANCE = "non_compliance"
    LATE_PAYMENT = "late_payment"
    PICKUP_REJECTION = "pickup_rejection"


class PenaltyStatus(str, PyEnum):
    ISSUED = "issued"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Severity(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def _enum(cls, name):
    return Enum(cls, name=name, values_callable=lambda e: [m.value for m in e],
                validate_strings=True)


AccountKindEnum = _enum(AccountKind, "account_kind")
AccountStatusEnum = _enum(AccountStatus, "account_status")
RewardKindEnum = _enum(RewardKind, "reward_kind")
RewardTypeEnum = _enum(RewardType, "reward_type")
ViolationTypeEnum = _enum(ViolationType, "violation_type")
PenaltyStatusEnum = _enum(PenaltyStatus, "penalty_status")
SeverityEnum = _enum(Severity, "violation_severity")


class Account(Base):
    __tablename__ = 'ledger_accounts'
    id = Column(String(36), primary_key=True, default=new_id)
    kind = Column(AccountKindEnum, nullable=False)
    display_name = Column(String(200), nullable=True)
    area_id = Column(String(64), nullable=True, index=True)
    point_balance = Column(Integer, nullable=False, default=0)
    compliance_score = Column(Integer, nullable=False, default=0)
    status = Column(AccountStatusEnum, nullable=False, default=AccountStatus.ACTIVE)
    suspended_until = Column(DateTime, nullable=True)
    suspension_reason = Column(Text, nullable=True)
    last_assessed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=now_utc)
    version_id = Column(Integer, nullable=False)

    violation_history = relationship(
        'ViolationRecord', order_by='ViolationRecord.recorded_at',
        lazy='selectin', viewonly=True,
    )
    penalty_history = relationship(
        'PenaltyRecord', order_by='PenaltyRecord.issued_at',
        lazy='selectin', viewonly=True,
    )

    __mapper_args__ = {'version_id_col': version_id}
    __table_args__ = (
        CheckConstraint('point_balance >= 0', name='ck_account_balance_non_negative'),
        CheckConstraint('compliance_score >= 0 AND compliance_score <= 100',
                        name='ck_account_score_range'),
    )


class RewardEvent(Base):
    __tablename__ = 'reward_events'
    id = Column(String(36), primary_key=True, default=new_id)
    account_id = Column(String(36), ForeignKey('ledger_accounts.id'), nullable=False)
    kind = Column(RewardKindEnum, nullable=False, default=RewardKind.SEGREGATION)
    points_awarded = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    formula_inputs = Column(JSON, default=dict)
    period = Column(String(7), nullable=True)
    awarded_at = Column(DateTime, default=now_utc, index=True)
    awarded_by = Column(String(64), nullable=True)
    __table_args__ = (
        Index('idx_reward_events_account_time', 'account_id', 'awarded_at'),
    )


class RedemptionEvent(Base):
    __tablename__ = 'redemption_events'
    id = Column(String(36), primary_key=True, default=new_id)
    account_id = Column(String(36), ForeignKey('ledger_accounts.id'), nullable=False)
    points_redeemed = Column(Integer, nullable=False)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reward_type = Column(RewardTypeEnum, nullable=False)
    reward_value = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    redeemed_at = Column(DateTime, default=now_utc, index=True)
    redeemed_by = Column(String(64), nullable=True)
    __table_args__ = (
        Index('idx_redemption_events_account_time', 'account_id', 'redeemed_at'),
    )


class PenaltyRecord(Base):
    __tablename__ = 'penalty_records'
    id = Column(String(36), primary_key=True, default=new_id)
    violator_account_id = Column(String(36), ForeignKey('ledger_accounts.id'), nullable=False)
    violation_type = Column(ViolationTypeEnum, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    evidence = Column(JSON, default=list)
    status = Column(PenaltyStatusEnum, nullable=False, default=PenaltyStatus.ISSUED)
    issued_at = Column(DateTime, default=now_utc, index=True)
    issued_by = Column(String(64), nullable=True)
    due_date = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    paid_amount = Column(Numeric(10, 2), nullable=True)
    payment_method = Column(String(40), nullable=True)
    transaction_id = Column(String(120), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_penalty_amount_positive'),
        Index('idx_penalty_records_violator_issued', 'violator_account_id', 'issued_at'),
        Index('idx_penalty_records_status_due', 'status', 'due_date'),
    )


class ViolationRecord(Base):
    __tablename__ = 'violation_records'
    id = Column(String(36), primary_key=True, default=new_id)
    account_id = Column(String(36), ForeignKey('ledger_accounts.id'), nullable=False)
    violation_type = Column(ViolationTypeEnum, nullable=False)
    severity = Column(SeverityEnum, nullable=False, default=Severity.MEDIUM)
    quality_delta = Column(Integer, nullable=False, default=0)
    reason = Column(Text, nullable=True)
    recorded_at = Column(DateTime, default=now_utc, index=True)
    recorded_by = Column(String(64), nullable=True)
    __table_args__ = (
        Index('idx_violation_records_account_time', 'account_id', 'recorded_at'),
    )


class ComplianceAssessment(Base):
    __tablename__ = 'compliance_assessments'
    id = Column(String(36), primary_key=True, default=new_id)
    account_id = Column(String(36), ForeignKey('ledger_accounts.id'), nullable=False)
    area_id = Column(String(64), nullable=True, index=True)
    overall_score = Column(Integer, nullable=False)
    follow_up_required = Column(Boolean, nullable=False, default=False)
    assessed_at = Column(DateTime, default=now_utc, index=True)
    assessed_by = Column(String(64), nullable=True)
