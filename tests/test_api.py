import os
import sys, pathlib
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
import pytest

from swm.api import LedgerAPI
from swm.auth import mk_token
from swm.db import init_db, make_engine, make_session_factory
from swm.ledger.compliance import ComplianceScorer
from swm.ledger.service import LedgerService
from swm.ledger.store import AccountStore
from swm.permissions import Role


@pytest.fixture
def api():
    engine = make_engine('sqlite:///:memory:')
    init_db(engine)
    store = AccountStore(make_session_factory(engine))
    return LedgerAPI(LedgerService(store), ComplianceScorer(store))


def bearer(actor_id, role):
    return f"Bearer {mk_token(actor_id, role)}"


OFFICER = bearer("officer-1", Role.ULB_OFFICER)


def register(api, kind="citizen", **body):
    status, res = api.handle("register_account", {"kind": kind, **body}, OFFICER)
    assert status == 201
    return res["data"]["id"]


def test_award_and_redeem(api):
    acc = register(api, displayName="Asha", areaId="ward-3")
    status, res = api.handle("award_points", {
        "accountId": acc, "quantity": 100, "qualityGrade": "A",
        "segregationScore": 100, "reason": "weekly pickup",
    }, OFFICER)
    assert status == 200
    assert res["success"] is True
    assert res["data"]["pointsAwarded"] == 20
    assert res["data"]["newBalance"] == 20

    status, res = api.handle("redeem_points", {
        "accountId": acc, "points": 5, "rewardType": "voucher", "rewardValue": 25,
    }, bearer(acc, Role.CITIZEN))
    assert status == 200
    assert res["data"] == {
        "redemptionId": res["data"]["redemptionId"],
        "previousBalance": 20,
        "newBalance": 15,
        "pointsRedeemed": 5,
        "rewardType": "voucher",
        "rewardValue": 25.0,
    }


def test_redeem_insufficient_points_shape(api):
    acc = register(api)
    api.handle("award_bonus", {"accountId": acc, "points": 20, "reason": "campaign"}, OFFICER)
    status, res = api.handle("redeem_points", {
        "accountId": acc, "points": 25, "rewardType": "cash", "rewardValue": 100,
    }, OFFICER)
    assert status == 400
    assert res["success"] is False
    assert res["code"] == "insufficient_points"
    assert res["available"] == 20
    assert res["required"] == 25


def test_validation_errors(api):
    acc = register(api)
    status, res = api.handle("award_points", {"accountId": acc, "quantity": 10,
                                              "segregationScore": 50}, OFFICER)
    assert status == 400
    assert res["code"] == "validation_error"
    assert res["field"] == "qualityGrade"

    status, res = api.handle("award_points", {"accountId": acc, "quantity": 10,
                                              "qualityGrade": "E", "segregationScore": 50}, OFFICER)
    assert status == 400
    assert res["code"] == "invalid_grade"

    status, res = api.handle("award_points", {"accountId": acc, "quantity": -1,
                                              "qualityGrade": "A", "segregationScore": 50}, OFFICER)
    assert status == 400
    assert res["field"] == "quantity"


def test_unknown_account(api):
    status, res = api.handle("award_points", {"accountId": "ghost", "quantity": 10,
                                              "qualityGrade": "A", "segregationScore": 50}, OFFICER)
    assert status == 404
    assert res["code"] == "account_not_found"
    assert res["accountId"] == "ghost"


def test_auth_gate(api):
    status, res = api.handle("statistics", {}, None)
    assert status == 401
    status, res = api.handle("issue_penalty", {"violatorId": "x", "violationType": "illegal_dumping",
                                               "amount": 10}, bearer("c-1", Role.CITIZEN))
    assert status == 403
    status, res = api.handle("nope", {}, OFFICER)
    assert status == 404


def test_citizen_limited_to_own_account(api):
    acc = register(api)
    other = register(api)
    status, res = api.handle("account_points", {"accountId": other}, bearer(acc, Role.CITIZEN))
    assert status == 403
    assert res["code"] == "forbidden"
    status, res = api.handle("account_points", {"accountId": acc}, bearer(acc, Role.CITIZEN))
    assert status == 200
    assert res["data"]["currentPoints"] == 0


def test_penalty_flow(api):
    acc = register(api, kind="bulk_generator")
    status, res = api.handle("issue_penalty", {
        "violatorId": acc, "violationType": "improper_segregation", "amount": 500,
        "description": "mixed waste", "dueDate": "2030-01-01T00:00:00",
        "evidence": ["https://img/1.jpg"],
    }, OFFICER)
    assert status == 201
    penalty = res["data"]
    assert penalty["status"] == "issued"
    assert penalty["issuedBy"] == "officer-1"
    assert penalty["dueDate"] == "2030-01-01T00:00:00"

    pay = {"penaltyId": penalty["id"], "paidAmount": 300, "paymentMethod": "upi"}
    status, res = api.handle("pay_penalty", pay, bearer(acc, Role.CITIZEN))
    assert status == 400 and res["code"] == "insufficient_payment"

    pay["paidAmount"] = 500
    status, res = api.handle("pay_penalty", pay, bearer(acc, Role.CITIZEN))
    assert status == 200
    assert res["data"]["status"] == "paid"
    assert res["data"]["paidAmount"] == 500.0

    status, res = api.handle("pay_penalty", pay, bearer(acc, Role.CITIZEN))
    assert status == 400 and res["code"] == "already_paid"

    status, res = api.handle("penalty_history", {"accountId": acc}, OFFICER)
    assert status == 200
    assert res["data"]["summary"]["paidPenalties"] == 1
    assert res["data"]["summary"]["totalAmount"] == 500.0


def test_cancel_and_missing_penalty(api):
    acc = register(api)
    status, res = api.handle("issue_penalty", {"violatorId": acc, "violationType": "illegal_dumping",
                                               "amount": 100}, OFFICER)
    pid = res["data"]["id"]
    status, res = api.handle("cancel_penalty", {"penaltyId": pid, "reason": "duplicate"}, OFFICER)
    assert status == 200 and res["data"]["status"] == "cancelled"
    status, res = api.handle("pay_penalty", {"penaltyId": "missing", "paidAmount": 1,
                                             "paymentMethod": "cash"}, OFFICER)
    assert status == 404 and res["code"] == "penalty_not_found"


def test_compliance_endpoints(api):
    acc = register(api, areaId="ward-5")
    worker = bearer("worker-1", Role.COLLECTION_WORKER)
    status, res = api.handle("pickup_quality", {"accountId": acc, "segregationQuality": "excellent"},
                             worker)
    assert res["data"]["complianceScore"] == 10
    status, res = api.handle("reject_pickup", {"accountId": acc, "reason": "mixed"}, worker)
    assert res["data"]["complianceScore"] == 0

    champion = bearer("champ-1", Role.GREEN_CHAMPION)
    status, res = api.handle("submit_assessment", {"accountId": acc, "overallScore": 92}, champion)
    assert status == 201
    assert res["data"] == {"accountId": acc, "complianceScore": 92, "followUpRequired": False}

    status, res = api.handle("report_violation", {"accountId": acc, "violationType": "illegal_dumping",
                                                  "severity": "low", "description": "bag on road"},
                             champion)
    assert status == 201
    assert res["data"]["qualityDelta"] == -5

    status, res = api.handle("compliance_overview", {"areaId": "ward-5"}, OFFICER)
    assert status == 200
    assert res["data"]["overall"]["total"] == 1
    assert res["data"]["citizen"]["distribution"]["good"] == 1
    assert res["data"]["areaAssessmentAverage"] == 92


def test_statistics_and_suspension(api):
    acc = register(api)
    api.handle("award_bonus", {"accountId": acc, "points": 40, "reason": "drive"}, OFFICER)
    api.handle("redeem_points", {"accountId": acc, "points": 10, "rewardType": "product",
                                 "rewardValue": 50}, OFFICER)
    status, res = api.handle("suspend_account", {"accountId": acc, "suspensionDays": 3,
                                                 "reason": "repeat offender"}, OFFICER)
    assert status == 200 and res["data"]["status"] == "suspended"

    status, res = api.handle("statistics", {}, OFFICER)
    assert status == 200
    assert res["data"]["overview"]["netPointsInCirculation"] == 30
    assert res["data"]["redemptions"]["byType"] == {"product": 1}


def test_oversized_amount_is_a_validation_error(api):
    acc = register(api)
    status, res = api.handle("issue_penalty", {"violatorId": acc, "violationType": "illegal_dumping",
                                               "amount": "1e30"}, OFFICER)
    assert status == 400
    assert res["code"] == "validation_error"
    assert res["field"] == "amount"
