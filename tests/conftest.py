# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import socket
import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from authlib.jose import JsonWebKey, jwt
from pydantic import SecretStr

from coreason_oauth_callback.check_cookies import SignedCheckCookies
from coreason_oauth_callback.config import CoreasonCallbackConfig, EndpointConfig, ProviderConfig

ISSUER = "https://idp.example.com"
CLIENT_ID = "client-abc"


@pytest.fixture(autouse=True)
def mock_dns_resolution() -> Generator[MagicMock, None, None]:
    """
    Globally patches socket.getaddrinfo to return a safe public IP by default,
    so the safe transport never touches real DNS.

    Tests that exercise SSRF logic patch socket.getaddrinfo again.
    """
    safe_response = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("8.8.8.8", 443))]

    with patch("socket.getaddrinfo", return_value=safe_response) as mock:
        yield mock


@pytest.fixture
def config() -> CoreasonCallbackConfig:
    return CoreasonCallbackConfig(
        secret=SecretStr("a-very-long-test-secret-for-cookie-signing"),
        http_timeout=5.0,
        pii_salt=SecretStr("test-salt"),
    )


@pytest.fixture
def sealer(config: CoreasonCallbackConfig) -> SignedCheckCookies:
    return SignedCheckCookies(config)


@pytest.fixture
def oidc_provider() -> ProviderConfig:
    return ProviderConfig(
        id="acme",
        name="Acme",
        type="oidc",
        client_id=CLIENT_ID,
        client_secret=SecretStr("client-secret"),
        id_token=True,
        issuer=ISSUER,
        jwks_endpoint=f"{ISSUER}/jwks",
        token=EndpointConfig(url=f"{ISSUER}/token"),
        userinfo=EndpointConfig(url=f"{ISSUER}/userinfo"),
        callback_url="https://app.example.com/api/auth/callback/acme",
        profile=lambda profile, tokens: {"id": profile["sub"], "email": profile.get("email")},
    )


@pytest.fixture
def oauth2_provider() -> ProviderConfig:
    return ProviderConfig(
        id="octo",
        name="Octo",
        type="oauth",
        client_id=CLIENT_ID,
        client_secret=SecretStr("client-secret"),
        token=EndpointConfig(url="https://octo.example.com/login/oauth/access_token"),
        userinfo=EndpointConfig(url="https://api.octo.example.com/user?fields=id,email"),
        callback_url="https://app.example.com/api/auth/callback/octo",
        profile=lambda profile, tokens: {"id": profile["id"], "name": profile.get("login"), "email": profile.get("email")},
    )


@pytest.fixture
def oauth1_provider() -> ProviderConfig:
    return ProviderConfig(
        id="chirp",
        name="Chirp",
        version="1.0A",
        client_id="consumer-key",
        client_secret=SecretStr("consumer-secret"),
        access_token_url="https://api.chirp.example.com/oauth/access_token",
        profile_url="https://api.chirp.example.com/1.1/account/verify_credentials.json",
        callback_url="https://app.example.com/api/auth/callback/chirp",
        profile=lambda profile, tokens: {"id": profile["id_str"], "name": profile.get("name"), "email": profile.get("email")},
    )


@pytest.fixture(scope="session")
def rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture
def jwks(rsa_key: Any) -> dict[str, Any]:
    return {"keys": [rsa_key.as_dict(private=False)]}


@pytest.fixture
def make_id_token(rsa_key: Any) -> Callable[..., str]:
    def _make(**overrides: Any) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "sub": "42",
            "iat": now,
            "exp": now + 600,
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        header = {"alg": "RS256", "kid": rsa_key.as_dict()["kid"]}
        return jwt.encode(header, claims, rsa_key).decode("utf-8")

    return _make
