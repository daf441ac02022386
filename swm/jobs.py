"""Periodic ledger housekeeping.

Every ``OVERDUE_SWEEP_MINUTES`` issued penalties past their due date are
marked overdue and collection suspensions that have run out are lifted.
Run with ``python -m swm.jobs``.
"""

import logging
import time
from datetime import datetime
from typing import Optional

import schedule

from swm import config
from swm.db import init_db, make_engine, make_session_factory
from swm.ledger.service import LedgerService
from swm.ledger.store import AccountStore

log = logging.getLogger(__name__)

LAST_TICK: Optional[datetime] = None


def now_local() -> datetime:
    return datetime.now(config.LOCAL_TZ)


def job_sweep(ledger: LedgerService) -> dict:
    global LAST_TICK
    LAST_TICK = now_local()
    overdue = ledger.mark_overdue_penalties()
    lifted = ledger.lift_expired_suspensions()
    log.info("sweep at %s: %s penalties overdue, %s suspensions lifted",
             LAST_TICK.strftime("%Y-%m-%d %H:%M"), len(overdue), len(lifted))
    return {"overdue": len(overdue), "lifted": len(lifted)}


def schedule_jobs(ledger: LedgerService, minutes: Optional[int] = None) -> None:
    schedule.clear()
    schedule.every(minutes or config.OVERDUE_SWEEP_MINUTES).minutes.do(job_sweep, ledger)


def scheduler_loop(ledger: LedgerService) -> None:
    schedule_jobs(ledger)
    while True:
        schedule.run_pending()
        time.sleep(1)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    engine = make_engine()
    init_db(engine)
    ledger = LedgerService(AccountStore(make_session_factory(engine)))
    log.info("Starting ledger sweeps every %s min (TZ %s)", config.OVERDUE_SWEEP_MINUTES, config.TZ_NAME)
    job_sweep(ledger)
    scheduler_loop(ledger)


if __name__ == "__main__":
    main()
