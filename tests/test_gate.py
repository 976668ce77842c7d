"""Unit tests for auth/dependencies.py -- the authentication gate.

Covers:
- Basic: malformed headers rejected without touching the store
- Basic: good credentials -> identity with record id and email
- Basic: wrong password / unknown email -> "Invalid email or password"
- Basic: store failures -> "Invalid authorization header", never a 500
- Bearer: missing token, bad token, token_version enforcement on and off
- build_authenticator() factory
"""

import base64
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from auth.dependencies import (
    BASIC_REALM,
    BasicAuthenticator,
    BearerAuthenticator,
    build_authenticator,
    parse_basic_credentials,
)
from auth.models import User
from auth.tokens import create_access_token


def _basic(raw: str) -> str:
    return "Basic " + base64.b64encode(raw.encode()).decode()


MALFORMED_BASIC = [
    None,
    "",
    "Basic",
    "Basic ",
    "Bearer abc.def.ghi",
    "basic " + base64.b64encode(b"a@b.c:pw").decode(),
    "Basic !!!not-base64!!!",
    "Basic " + base64.b64encode(b"\xff\xfe:\xfd").decode(),
    _basic("no-colon-here"),
    _basic(":password-only"),
    _basic("   :password"),
    _basic("email@example.com:"),
]


class TestParseBasicCredentials:
    def test_valid(self):
        assert parse_basic_credentials(_basic("a@example.com:pw")) == ("a@example.com", "pw")

    def test_email_trimmed_password_verbatim(self):
        assert parse_basic_credentials(_basic("  a@example.com :  pw ")) == ("a@example.com", "  pw ")

    def test_password_may_contain_colons(self):
        assert parse_basic_credentials(_basic("a@example.com:p:w")) == ("a@example.com", "p:w")

    @pytest.mark.parametrize("header", MALFORMED_BASIC)
    def test_malformed(self, header):
        assert parse_basic_credentials(header) is None


class TestBasicAuthenticator:
    @pytest.mark.parametrize("header", MALFORMED_BASIC)
    def test_malformed_rejected_without_store_access(self, header):
        store = MagicMock()
        gate = BasicAuthenticator(store)
        with pytest.raises(HTTPException) as exc_info:
            gate.authenticate(header)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["message"] == "Authentication required"
        assert exc_info.value.headers["WWW-Authenticate"] == BASIC_REALM
        store.get_by_email.assert_not_called()

    def test_valid_credentials(self, store):
        uid = store.create_user(User(name="Ada", age=36, email="ada@example.com"), password="s3cret")
        identity = BasicAuthenticator(store).authenticate(_basic("ada@example.com:s3cret"))
        assert identity.id == uid
        assert identity.email == "ada@example.com"

    def test_no_store_side_effects(self, store):
        uid = store.create_user(User(name="Ada", age=36, email="ada@example.com"), password="s3cret")
        before = store.get_by_id(uid)
        BasicAuthenticator(store).authenticate(_basic("ada@example.com:s3cret"))
        assert store.get_by_id(uid) == before

    @pytest.mark.parametrize("raw", ["ada@example.com:wrong", "ghost@example.com:s3cret"])
    def test_bad_credentials(self, store, raw):
        store.create_user(User(name="Ada", age=36, email="ada@example.com"), password="s3cret")
        with pytest.raises(HTTPException) as exc_info:
            BasicAuthenticator(store).authenticate(_basic(raw))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["message"] == "Invalid email or password"

    def test_store_failure_becomes_401(self):
        store = MagicMock()
        store.get_by_email.side_effect = RuntimeError("connection reset")
        with pytest.raises(HTTPException) as exc_info:
            BasicAuthenticator(store).authenticate(_basic("ada@example.com:s3cret"))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["message"] == "Invalid authorization header"
        assert "connection reset" not in str(exc_info.value.detail)


class TestBearerAuthenticator:
    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc", "Token abc"])
    def test_no_token(self, header):
        store = MagicMock()
        with pytest.raises(HTTPException) as exc_info:
            BearerAuthenticator(store).authenticate(header)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["message"] == "No token"
        assert exc_info.value.headers["WWW-Authenticate"] == "Bearer"
        store.get_token_version.assert_not_called()

    @pytest.mark.parametrize(
        "token",
        ["garbage", create_access_token("66b7d3a5f0c1d21f6a4d3a9e", 0, expires_in=timedelta(seconds=-5))],
    )
    def test_invalid_or_expired(self, token):
        with pytest.raises(HTTPException) as exc_info:
            BearerAuthenticator(MagicMock()).authenticate(f"Bearer {token}")
        assert exc_info.value.detail["message"] == "Invalid or expired token"

    def test_scheme_is_case_insensitive(self, store):
        uid = store.create_user(User(name="Ada", age=36, email="ada@example.com"))
        identity = BearerAuthenticator(store).authenticate(f"bearer {create_access_token(uid, 0)}")
        assert identity.id == uid

    def test_valid_token_carries_snapshot(self, store):
        uid = store.create_user(User(name="Ada", age=36, email="ada@example.com"))
        identity = BearerAuthenticator(store).authenticate(f"Bearer {create_access_token(uid, 0)}")
        assert identity.id == uid
        assert identity.token_version == 0

    def test_stale_token_rejected_when_enforced(self, store):
        uid = store.create_user(User(name="Ada", age=36, email="ada@example.com"))
        token = create_access_token(uid, 0)
        store.increment_token_version(uid)
        with pytest.raises(HTTPException) as exc_info:
            BearerAuthenticator(store, enforce_token_version=True).authenticate(f"Bearer {token}")
        assert exc_info.value.detail["message"] == "Token has been revoked"

    def test_deleted_user_rejected_when_enforced(self, store):
        uid = store.create_user(User(name="Ada", age=36, email="ada@example.com"))
        token = create_access_token(uid, 0)
        store.delete_user(uid)
        with pytest.raises(HTTPException):
            BearerAuthenticator(store).authenticate(f"Bearer {token}")

    def test_stale_token_accepted_when_not_enforced(self):
        store = MagicMock()
        token = create_access_token("66b7d3a5f0c1d21f6a4d3a9e", 0)
        identity = BearerAuthenticator(store, enforce_token_version=False).authenticate(f"Bearer {token}")
        assert identity.token_version == 0
        store.get_token_version.assert_not_called()


class TestBuildAuthenticator:
    def test_modes(self):
        store = MagicMock()
        assert isinstance(build_authenticator("basic", store), BasicAuthenticator)
        bearer = build_authenticator("bearer", store, enforce_token_version=False)
        assert isinstance(bearer, BearerAuthenticator)
        assert bearer.enforce_token_version is False
        assert build_authenticator("none", store) is None

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            build_authenticator("digest", MagicMock())
