from jose import jwt

from src.core.security import (
    create_session_token,
    get_password_hash,
    get_session_user_id,
    verify_password,
)

from factories import make_settings


def test_password_hashing_round_trip():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


def test_session_token_carries_only_the_user_id():
    settings = make_settings(SESSION_SECRET_KEY="k1")
    token = create_session_token(42, settings)
    claims = jwt.get_unverified_claims(token)
    assert claims["sub"] == "42"
    assert "tenant_id" not in claims
    assert get_session_user_id(token, settings) == 42


def test_invalid_tokens_resolve_to_no_user():
    settings = make_settings(SESSION_SECRET_KEY="k1")
    assert get_session_user_id("garbage", settings) is None
    other = create_session_token(42, make_settings(SESSION_SECRET_KEY="k2"))
    assert get_session_user_id(other, settings) is None
    expired = create_session_token(42, settings, expires_minutes=-5)
    assert get_session_user_id(expired, settings) is None


def test_non_session_tokens_are_rejected():
    settings = make_settings(SESSION_SECRET_KEY="k1")
    token = jwt.encode({"sub": "42", "type": "refresh"}, "k1", algorithm="HS256")
    assert get_session_user_id(token, settings) is None
