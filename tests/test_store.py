import os
import sys, pathlib
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
import time

import pytest

from swm.db import init_db, make_engine, make_session_factory
from swm.ledger.errors import (
    AccountNotFound, ConcurrentUpdateError, LedgerTimeout, StoreUnavailable, ValidationError,
)
from swm.ledger.models import Account, AccountKind, AccountStatus, RewardEvent
from swm.ledger.store import AccountStore


def setup_store(url='sqlite:///:memory:', **kwargs):
    engine = make_engine(url)
    init_db(engine)
    return AccountStore(make_session_factory(engine), **kwargs)


def bump_score(store, account_id, by):
    sess = store.session_factory()
    try:
        account = sess.get(Account, account_id)
        account.compliance_score += by
        sess.commit()
    finally:
        sess.close()


def test_create_and_get():
    store = setup_store()
    acc = store.create(AccountKind.CITIZEN, display_name="Ravi", area_id="ward-1")
    loaded = store.get(acc.id)
    assert loaded.display_name == "Ravi"
    assert loaded.point_balance == 0
    assert loaded.compliance_score == 0
    assert loaded.status == AccountStatus.ACTIVE
    with pytest.raises(AccountNotFound):
        store.get("missing")


def test_mutate_passes_result_through():
    store = setup_store()
    acc = store.create(AccountKind.CITIZEN)

    def _update(session, account):
        account.compliance_score = 40
        return "done"

    assert store.mutate(acc.id, _update) == "done"
    assert store.get(acc.id).compliance_score == 40


def test_mutate_rolls_back_on_error():
    store = setup_store()
    acc = store.create(AccountKind.CITIZEN)

    def _update(session, account):
        account.compliance_score = 99
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.mutate(acc.id, _update)
    assert store.get(acc.id).compliance_score == 0


def test_mutate_retries_after_conflict(tmp_path):
    store = setup_store(f"sqlite:///{tmp_path / 'ledger.db'}")
    acc = store.create(AccountKind.CITIZEN)
    attempts = []

    def _update(session, account):
        attempts.append(account.compliance_score)
        if len(attempts) == 1:
            bump_score(store, acc.id, 5)
        account.compliance_score += 10

    store.mutate(acc.id, _update)
    assert attempts == [0, 5]
    assert store.get(acc.id).compliance_score == 15


def test_mutate_gives_up(tmp_path):
    store = setup_store(f"sqlite:///{tmp_path / 'ledger.db'}", max_retries=2)
    acc = store.create(AccountKind.CITIZEN)

    def _update(session, account):
        bump_score(store, acc.id, 1)
        account.compliance_score = 90

    with pytest.raises(ConcurrentUpdateError) as exc:
        store.mutate(acc.id, _update)
    assert exc.value.attempts == 2
    assert exc.value.status == 503
    # only the competing writes landed
    assert store.get(acc.id).compliance_score == 2


def test_mutate_timeout_leaves_account_unchanged():
    store = setup_store()
    acc = store.create(AccountKind.CITIZEN)

    def _slow(session, account):
        account.compliance_score = 70
        time.sleep(0.05)

    with pytest.raises(LedgerTimeout) as exc:
        store.mutate(acc.id, _slow, "slow update", timeout=0.01)
    assert exc.value.details()["operation"] == "slow update"
    assert store.get(acc.id).compliance_score == 0


def test_apply_point_delta():
    store = setup_store()
    acc = store.create(AccountKind.CITIZEN)
    with store.transaction() as session:
        assert store.apply_point_delta(session, acc.id, 10) == 10
        assert store.apply_point_delta(session, acc.id, -4) == 6
        assert store.apply_point_delta(session, acc.id, -7) is None
        assert store.apply_point_delta(session, "missing", 1) is None
        assert store.current_balance(session, acc.id) == 6
        assert store.current_balance(session, "missing") is None


def test_append_event_and_query_by_field():
    store = setup_store()
    acc = store.create(AccountKind.CITIZEN)
    other = store.create(AccountKind.CITIZEN)
    store.append_event(acc.id, RewardEvent(points_awarded=3, balance_after=3))
    store.append_event(other.id, RewardEvent(points_awarded=4, balance_after=4))

    rows = store.query_by_field(RewardEvent, "account_id", acc.id)
    assert [r.points_awarded for r in rows] == [3]
    assert len(store.all(RewardEvent)) == 2
    with pytest.raises(ValidationError):
        store.query_by_field(RewardEvent, "no_such_field", 1)


def test_unreachable_store(tmp_path):
    store = AccountStore(make_session_factory(make_engine(f"sqlite:///{tmp_path / 'nope' / 'x.db'}")))
    with pytest.raises(StoreUnavailable):
        store.get("anything")


def test_explicit_retry_budget_is_kept(tmp_path):
    store = setup_store(f"sqlite:///{tmp_path / 'ledger.db'}", max_retries=0)
    assert store.max_retries == 0
    acc = store.create(AccountKind.CITIZEN)

    def _update(session, account):
        bump_score(store, acc.id, 1)
        account.compliance_score = 90

    with pytest.raises(ConcurrentUpdateError) as exc:
        store.mutate(acc.id, _update)
    assert exc.value.attempts == 1
    assert setup_store().max_retries == 3
