import time

import jwt
import pytest
from fastapi import HTTPException

from candidate_intake.auth import verify
from candidate_intake.auth.verify import verify_service_role

SECRET = "test-jwt-secret-with-enough-length-for-hs256"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(verify.settings, "SUPABASE_JWT_SECRET", SECRET)


def _token(role="service_role", secret=SECRET, **claims) -> str:
    payload = {"role": role, "iss": "supabase", "exp": int(time.time()) + 300}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def test_service_role_token_accepted():
    claims = verify_service_role(_token())

    assert claims["role"] == "service_role"


def test_other_role_rejected():
    with pytest.raises(HTTPException) as exc:
        verify_service_role(_token(role="authenticated"))

    assert exc.value.status_code == 401
    assert exc.value.detail == "Service role required"


def test_wrong_signature_rejected():
    with pytest.raises(HTTPException) as exc:
        verify_service_role(_token(secret="another-secret-that-is-also-long-enough"))

    assert exc.value.status_code == 401


def test_expired_token_rejected():
    with pytest.raises(HTTPException) as exc:
        verify_service_role(_token(exp=int(time.time()) - 60))

    assert exc.value.status_code == 401
    assert "expired" in exc.value.detail.lower()


def test_missing_secret_rejected(monkeypatch):
    monkeypatch.setattr(verify.settings, "SUPABASE_JWT_SECRET", None)

    with pytest.raises(HTTPException) as exc:
        verify_service_role(_token())

    assert exc.value.status_code == 401
