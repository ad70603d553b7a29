"""
Tests for identity tokens.
"""
from datetime import timedelta

from jose import jwt

from ecomarket.services.auth import create_access_token, decode_access_token


def test_round_trip(settings):
    token = create_access_token("seller-uid", settings)

    payload = decode_access_token(token, settings)

    assert payload is not None
    assert payload.sub == "seller-uid"
    assert payload.type == "access"


def test_expired_token(settings):
    token = create_access_token("seller-uid", settings, expires_delta=timedelta(seconds=-1))

    assert decode_access_token(token, settings) is None


def test_wrong_secret(settings):
    token = create_access_token("seller-uid", settings)
    other = settings.model_copy(update={"secret_key": "another-secret"})

    assert decode_access_token(token, other) is None


def test_non_access_token(settings):
    token = jwt.encode(
        {"sub": "seller-uid", "type": "refresh"},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )

    assert decode_access_token(token, settings) is None
