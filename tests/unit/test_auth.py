"""Tests for bearer token verification."""

import time

import jwt
import pytest

from arthagent.auth import TokenVerifier, issue_token
from arthagent.config import AuthConfig
from arthagent.errors import AuthenticationError

SECRET = "unit-test-secret-with-32-bytes-min!"


def test_issued_token_round_trips_subject():
    config = AuthConfig(secret=SECRET)
    token = issue_token("user-42", config)
    assert TokenVerifier(config).verify_token(token) == "user-42"


def test_no_secret_rejects_everything():
    token = issue_token("user-42", AuthConfig(secret=SECRET))
    with pytest.raises(AuthenticationError):
        TokenVerifier(AuthConfig()).verify_token(token)
    with pytest.raises(AuthenticationError):
        issue_token("user-42", AuthConfig())


def test_expired_token_is_rejected():
    config = AuthConfig(secret=SECRET)
    token = issue_token("user-42", config, expires_in=-60)
    with pytest.raises(AuthenticationError):
        TokenVerifier(config).verify_token(token)


def test_wrong_signature_is_rejected():
    token = issue_token("user-42", AuthConfig(secret="another-secret-that-is-long-enough!!"))
    with pytest.raises(AuthenticationError):
        TokenVerifier(AuthConfig(secret=SECRET)).verify_token(token)


def test_audience_and_issuer_are_checked():
    config = AuthConfig(secret=SECRET, audience="arthagent", issuer="https://auth.example.com")
    verifier = TokenVerifier(config)
    assert verifier.verify_token(issue_token("u1", config)) == "u1"

    other = config.model_copy(update={"audience": "someone-else"})
    with pytest.raises(AuthenticationError):
        verifier.verify_token(issue_token("u1", other))


def test_token_without_expiry_is_rejected():
    token = jwt.encode({"sub": "u1", "iat": int(time.time())}, SECRET, algorithm="HS256")
    with pytest.raises(AuthenticationError):
        TokenVerifier(AuthConfig(secret=SECRET)).verify_token(token)
