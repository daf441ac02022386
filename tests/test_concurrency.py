import os
import sys, pathlib
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
from concurrent.futures import ThreadPoolExecutor

from swm.db import init_db, make_engine, make_session_factory
from swm.ledger.compliance import ComplianceScorer
from swm.ledger.errors import InsufficientPoints
from swm.ledger.models import RedemptionEvent
from swm.ledger.service import LedgerService
from swm.ledger.store import AccountStore


def setup_ledger(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    return LedgerService(AccountStore(make_session_factory(engine), max_retries=50))


def test_concurrent_redemptions(tmp_path):
    ledger = setup_ledger(tmp_path)
    acc = ledger.register_account("citizen")
    ledger.award_bonus(acc.id, 50, "starting balance")

    def redeem(_):
        try:
            ledger.redeem_points(acc.id, 1, "voucher", 1)
            return "ok"
        except InsufficientPoints:
            return "short"

    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(redeem, range(100)))

    assert results.count("ok") == 50
    assert results.count("short") == 50
    assert ledger.get_account(acc.id).point_balance == 0
    assert len(ledger.store.all(RedemptionEvent)) == 50


def test_concurrent_pickup_feedback(tmp_path):
    ledger = setup_ledger(tmp_path)
    scorer = ComplianceScorer(ledger.store)
    acc = ledger.register_account("citizen")

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda _: scorer.apply_pickup_quality(acc.id, "poor"), range(8)))

    # no feedback lost: 8 x +4
    assert ledger.get_account(acc.id).compliance_score == 32
