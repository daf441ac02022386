import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from swm import auth
from swm.permissions import Role


def test_mk_and_parse_roundtrip():
    token = auth.mk_token("officer-1", Role.ULB_OFFICER)
    payload = auth.parse_token(token)
    assert payload is not None
    assert payload["sub"] == "officer-1"
    assert payload["role"] == "ulb_officer"


def test_parse_token_bad_signature():
    token = auth.mk_token("officer-1", "admin")
    sig, raw = token.split(".", 1)
    assert auth.parse_token("0" * len(sig) + "." + raw) is None
    assert auth.parse_token("not-a-token") is None
    assert auth.parse_token(None) is None


def test_parse_token_expired():
    token = auth.mk_token("citizen-1", Role.CITIZEN, ttl_days=0)
    assert auth.parse_token(token) is None


def test_authenticate():
    token = auth.mk_token("worker-9", Role.COLLECTION_WORKER)
    res = auth.authenticate(f"Bearer {token}")
    assert res.ok
    assert res.actor == auth.Actor("worker-9", Role.COLLECTION_WORKER)


def test_authenticate_failures():
    assert auth.authenticate(None).error == "no-token"
    assert auth.authenticate("Basic abc").error == "no-token"
    assert auth.authenticate("Bearer garbage").error == "bad-token"
