import os
import sys, pathlib
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
from datetime import timedelta

import schedule

from swm import jobs
from swm.db import init_db, make_engine, make_session_factory
from swm.ledger.models import AccountStatus, PenaltyStatus, now_utc
from swm.ledger.service import LedgerService
from swm.ledger.store import AccountStore


def setup_ledger():
    engine = make_engine('sqlite:///:memory:')
    init_db(engine)
    return LedgerService(AccountStore(make_session_factory(engine)))


def test_job_sweep():
    ledger = setup_ledger()
    acc = ledger.register_account("bulk_generator")
    penalty = ledger.issue_penalty(acc.id, "illegal_dumping", 100,
                                   due_date=now_utc() - timedelta(hours=1))

    def _expired(session, account):
        account.status = AccountStatus.SUSPENDED
        account.suspended_until = now_utc() - timedelta(minutes=5)

    ledger.store.mutate(acc.id, _expired)

    assert jobs.job_sweep(ledger) == {"overdue": 1, "lifted": 1}
    assert jobs.LAST_TICK is not None
    assert ledger.get_penalty(penalty.id).status == PenaltyStatus.OVERDUE
    assert ledger.get_account(acc.id).status == AccountStatus.ACTIVE
    assert jobs.job_sweep(ledger) == {"overdue": 0, "lifted": 0}


def test_schedule_jobs():
    ledger = setup_ledger()
    try:
        jobs.schedule_jobs(ledger, minutes=5)
        scheduled = schedule.get_jobs()
        assert len(scheduled) == 1
        assert scheduled[0].interval == 5
        assert scheduled[0].unit == "minutes"
    finally:
        schedule.clear()
