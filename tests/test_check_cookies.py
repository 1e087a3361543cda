# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Tests for the signed check cookies.
"""

import time
from unittest.mock import patch

import pytest
from pydantic import SecretStr

from coreason_oauth_callback.check_cookies import CheckKind, SignedCheckCookies
from coreason_oauth_callback.config import CoreasonCallbackConfig
from coreason_oauth_callback.exceptions import CheckVerificationError, CookieVerificationError


def test_seal_and_verify(sealer: SignedCheckCookies) -> None:
    cookie = sealer.seal(CheckKind.STATE, "state-123")
    assert cookie.name == "__Secure-coreason.state"
    assert cookie.options.max_age == 900
    assert cookie.options.http_only is True
    assert cookie.options.secure is True

    checked = sealer.verify(CheckKind.STATE, cookie.value)
    assert checked is not None
    assert checked.value == "state-123"
    assert checked.cookie.name == cookie.name
    assert checked.cookie.value == ""
    assert checked.cookie.options.max_age == 0


@pytest.mark.parametrize("raw", [None, ""])
def test_verify_absent_cookie(sealer: SignedCheckCookies, raw: str | None) -> None:
    assert sealer.verify(CheckKind.NONCE, raw) is None


def test_verify_rejects_garbage(sealer: SignedCheckCookies) -> None:
    with pytest.raises(CookieVerificationError, match="Invalid state cookie"):
        sealer.verify(CheckKind.STATE, "not-a-jwt")


def test_verify_rejects_other_kind(sealer: SignedCheckCookies) -> None:
    # A nonce cookie replayed as the PKCE cookie must not verify
    cookie = sealer.seal(CheckKind.NONCE, "nonce-1")
    with pytest.raises(CookieVerificationError):
        sealer.verify(CheckKind.PKCE_CODE_VERIFIER, cookie.value)


def test_verify_rejects_foreign_secret(sealer: SignedCheckCookies) -> None:
    other = SignedCheckCookies(CoreasonCallbackConfig(secret=SecretStr("another-secret-that-is-32-chars-long!")))
    cookie = other.seal(CheckKind.STATE, "state-123")
    with pytest.raises(CookieVerificationError):
        sealer.verify(CheckKind.STATE, cookie.value)


def test_verify_rejects_expired(sealer: SignedCheckCookies) -> None:
    issued = time.time() - 10_000
    with patch("coreason_oauth_callback.check_cookies.time.time", return_value=issued):
        cookie = sealer.seal(CheckKind.STATE, "state-123")
    with pytest.raises(CookieVerificationError):
        sealer.verify(CheckKind.STATE, cookie.value)


def test_cookie_verification_error_is_check_error(sealer: SignedCheckCookies) -> None:
    with pytest.raises(CheckVerificationError):
        sealer.verify(CheckKind.STATE, "a.b.c")


def test_clearing_cookie_respects_insecure_config() -> None:
    config = CoreasonCallbackConfig(secret=SecretStr("x" * 32), use_secure_cookies=False)
    cookie = SignedCheckCookies(config).clearing_cookie(CheckKind.PKCE_CODE_VERIFIER)
    assert cookie.name == "coreason.pkce.code_verifier"
    assert cookie.value == ""
    assert cookie.options.secure is False
    assert cookie.options.max_age == 0
