# test/test_call_tokens.py - join-credential minting
import pytest
from jose import jwt

from core.exceptions import ConfigurationError
from services.call_tokens import (
    TokenMinter, SERVER_PERMISSIONS, PARTICIPANT_PERMISSIONS, DEFAULT_EXPIRY_SECONDS
)

API_KEY = "vsdk-key"
SECRET = "vsdk-secret"


def _claims(token):
    return jwt.decode(token, SECRET, algorithms=["HS256"], options={"verify_exp": False})


def test_payload_fields():
    token = TokenMinter(API_KEY, SECRET).mint(PARTICIPANT_PERMISSIONS, issued_at=1_700_000_000)
    claims = _claims(token)
    assert claims == {
        "apikey": API_KEY,
        "permissions": ["allow_join"],
        "version": 2,
        "iat": 1_700_000_000,
        "exp": 1_700_000_000 + DEFAULT_EXPIRY_SECONDS,
    }


def test_header_is_hs256_jwt():
    token = TokenMinter(API_KEY, SECRET).mint(SERVER_PERMISSIONS)
    header = jwt.get_unverified_header(token)
    assert header["alg"] == "HS256"
    assert header["typ"] == "JWT"


def test_exp_is_iat_plus_expiry():
    claims = _claims(TokenMinter(API_KEY, SECRET).mint(SERVER_PERMISSIONS, expiry_seconds=120, issued_at=10))
    assert claims["exp"] - claims["iat"] == 120
    assert claims["permissions"] == ["allow_join", "allow_mod"]


def test_deterministic_for_same_inputs():
    minter = TokenMinter(API_KEY, SECRET)
    assert minter.mint(PARTICIPANT_PERMISSIONS, issued_at=42) == minter.mint(PARTICIPANT_PERMISSIONS, issued_at=42)


def test_differs_for_different_issue_times():
    minter = TokenMinter(API_KEY, SECRET)
    first = minter.mint(PARTICIPANT_PERMISSIONS, issued_at=1)
    second = minter.mint(PARTICIPANT_PERMISSIONS, issued_at=2)
    assert first != second
    assert _claims(second)["exp"] - _claims(first)["exp"] == 1


def test_signature_uses_secret():
    token = TokenMinter(API_KEY, SECRET).mint(PARTICIPANT_PERMISSIONS)
    with pytest.raises(jwt.JWTError):
        jwt.decode(token, "wrong-secret", algorithms=["HS256"])


@pytest.mark.parametrize("api_key,secret", [(None, SECRET), (API_KEY, None), ("", "")])
def test_missing_credentials(api_key, secret):
    with pytest.raises(ConfigurationError):
        TokenMinter(api_key, secret)
