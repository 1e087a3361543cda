# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import time

import pytest
from pydantic import ValidationError

from coreason_oauth_callback.exceptions import CoreasonCallbackError
from coreason_oauth_callback.models import (
    Account,
    CallbackRequest,
    CallbackResult,
    NormalizedProfile,
    Profile,
    ProfileUnavailable,
    TokenSet,
    VerificationChecks,
)


def test_callback_request_method_normalized() -> None:
    assert CallbackRequest(method=" post ").method == "POST"


def test_callback_request_get_param_prefers_body() -> None:
    request = CallbackRequest(query={"error": "q", "state": "s"}, body={"error": "b"}, method="POST")
    assert request.get_param("error") == "b"
    assert request.get_param("state") == "s"
    assert request.get_param("missing") is None


def test_callback_request_get_param_string_body_uses_query() -> None:
    request = CallbackRequest(query={"error": "access_denied"}, body="code=abc", method="POST")
    assert request.get_param("error") == "access_denied"


def test_callback_request_get_param_reads_urlencoded_body() -> None:
    request = CallbackRequest(body="error=access_denied&error_description=nope", method="POST")
    assert request.get_param("error") == "access_denied"
    assert request.get_param("error_description") == "nope"
    assert request.form() == {"error": "access_denied", "error_description": "nope"}


def test_callback_request_invalid_urlencoded_body() -> None:
    request = CallbackRequest(body="error=<script>", method="POST")
    with pytest.raises(CoreasonCallbackError, match="Invalid form body"):
        request.get_param("error")


def test_verification_checks_is_empty() -> None:
    assert VerificationChecks().is_empty
    assert not VerificationChecks(state="s").is_empty


def test_token_set_joins_scope_list() -> None:
    tokens = TokenSet.model_validate({"access_token": "at", "scope": ["openid", "email"]})
    assert tokens.scope == "openid email"


def test_token_set_derives_expires_at() -> None:
    before = int(time.time())
    tokens = TokenSet.model_validate({"access_token": "at", "expires_in": 3600})
    assert tokens.expires_at is not None
    assert before + 3600 <= tokens.expires_at <= int(time.time()) + 3600


def test_token_set_keeps_provider_extras() -> None:
    tokens = TokenSet.model_validate({"access_token": "at", "user_id": "99"})
    assert tokens.as_fields()["user_id"] == "99"
    assert "refresh_token" not in tokens.as_fields()


def test_token_set_requires_access_token() -> None:
    with pytest.raises(ValidationError):
        TokenSet.model_validate({"token_type": "bearer"})


def test_token_set_claims() -> None:
    tokens = TokenSet(access_token="at")
    with pytest.raises(CoreasonCallbackError, match="no validated ID token claims"):
        tokens.claims()

    tokens.with_claims({"sub": "1"})
    claims = tokens.claims()
    claims["sub"] = "tampered"
    assert tokens.claims() == {"sub": "1"}
    assert "_claims" not in tokens.as_fields()


def test_account_alias_and_extras() -> None:
    account = Account.model_validate(
        {"provider": "acme", "type": "oidc", "providerAccountId": "42", "access_token": "at"}
    )
    assert account.provider_account_id == "42"
    assert account.model_dump(by_alias=True)["providerAccountId"] == "42"
    assert account.model_dump()["access_token"] == "at"


def test_account_rejects_empty_id() -> None:
    with pytest.raises(ValidationError):
        Account.model_validate({"provider": "acme", "type": "oidc", "providerAccountId": ""})


def test_callback_result_from_normalized() -> None:
    profile = Profile(id="1", email="a@x.io")
    account = Account(provider="acme", type="oidc", providerAccountId="1")
    result = CallbackResult.from_outcome(
        NormalizedProfile(profile=profile, account=account, raw_profile={"sub": "1"}), cookies=[]
    )
    assert result.has_identity
    assert result.profile_error is None


def test_callback_result_from_unavailable() -> None:
    result = CallbackResult.from_outcome(
        ProfileUnavailable(raw_profile={"x": 1}, reason="no id", error_type="MalformedProfileError"), cookies=[]
    )
    assert not result.has_identity
    assert result.profile is None
    assert result.account is None
    assert result.raw_profile == {"x": 1}
    assert result.profile_error == "no id"
