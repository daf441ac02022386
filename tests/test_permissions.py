import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from swm.permissions import Role, can


def test_admin_can_everything():
    assert can(Role.ADMIN, "anything")


def test_basic_permissions():
    assert can(Role.CITIZEN, "redeem_points")
    assert can(Role.CITIZEN, "account_points")
    assert not can(Role.CITIZEN, "award_points")
    assert not can(Role.CITIZEN, "issue_penalty")
    assert can(Role.COLLECTION_WORKER, "reject_pickup")
    assert not can(Role.COLLECTION_WORKER, "issue_penalty")
    assert can(Role.ULB_OFFICER, "issue_penalty")
    assert can(Role.GREEN_CHAMPION, "submit_assessment")
    assert not can(Role.GREEN_CHAMPION, "cancel_penalty")
