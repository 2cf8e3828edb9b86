"""Tests for token creation and the typed verification failures."""

import uuid
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from arena_pm_service.auth.jwt import (
    REFRESH,
    TokenError,
    TokenExpired,
    TokenMalformed,
    TokenWrongType,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from arena_pm_service.settings import settings


def test_access_token_round_trip():
    user_id = uuid.uuid4()
    token = create_access_token(user_id=user_id, email="a@example.com", role="member")
    payload = decode_token(token)
    assert payload["sub"] == user_id
    assert payload["email"] == "a@example.com"
    assert payload["role"] == "member"
    assert payload["type"] == "access"


def test_refresh_token_carries_no_profile_claims():
    user_id = uuid.uuid4()
    payload = decode_token(create_refresh_token(user_id), expected_type=REFRESH)
    assert payload["sub"] == user_id
    assert "email" not in payload


def test_refresh_token_rejected_as_access_token():
    with pytest.raises(TokenWrongType):
        decode_token(create_refresh_token(uuid.uuid4()))


def test_access_token_rejected_as_refresh_token():
    token = create_access_token(user_id=uuid.uuid4(), email="a@example.com", role="member")
    with pytest.raises(TokenWrongType):
        decode_token(token, expected_type=REFRESH)


def test_expired_token():
    token = create_access_token(
        user_id=uuid.uuid4(),
        email="a@example.com",
        role="member",
        expires_delta=timedelta(seconds=-5),
    )
    with pytest.raises(TokenExpired):
        decode_token(token)


def test_garbage_token():
    with pytest.raises(TokenMalformed):
        decode_token("not.a.jwt")


def test_token_signed_with_another_secret():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "type": "access"}, "some-other-secret", algorithm="HS256"
    )
    with pytest.raises(TokenMalformed):
        decode_token(token)


@pytest.mark.parametrize("sub", [None, "not-a-uuid"])
def test_token_without_usable_subject(sub):
    claims = {"type": "access", "exp": datetime.now(UTC) + timedelta(minutes=5)}
    if sub is not None:
        claims["sub"] = sub
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    with pytest.raises(TokenMalformed):
        decode_token(token)


def test_failures_share_a_base_class():
    assert issubclass(TokenExpired, TokenError)
    assert issubclass(TokenMalformed, TokenError)
    assert issubclass(TokenWrongType, TokenError)
