"""Escalation hooks.

Notices to violators and ULB staff. They only log for now, which keeps
the ledger free of any messaging dependency while letting tests patch
them to observe what would have been sent."""

import logging
from datetime import datetime
from typing import Optional

log = logging.getLogger(__name__)


def notify_penalty_issued(account_id: str, penalty_id: str, amount, due_date: datetime) -> None:
    log.info("penalty notice account=%s penalty=%s amount=%s due=%s",
             account_id, penalty_id, amount, due_date.date())


def notify_overdue(account_id: str, penalty_id: str, due_date: datetime) -> None:
    log.info("overdue notice account=%s penalty=%s due=%s", account_id, penalty_id, due_date.date())


def notify_suspension(account_id: str, until: datetime, reason: str,
                      issued_by: Optional[str] = None) -> None:
    log.info("collection suspended account=%s until=%s by=%s: %s",
             account_id, until.date(), issued_by or "-", reason)


def suggest_suspension(account_id: str, rejections: int, window_days: int) -> None:
    log.info("suspension suggested account=%s: %s rejected pickups in %s days",
             account_id, rejections, window_days)
