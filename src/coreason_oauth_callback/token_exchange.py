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
Token exchange strategies: turn an authorization grant into a TokenSet.
"""

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from coreason_oauth_callback.config import ProviderConfig
from coreason_oauth_callback.exceptions import TokenExchangeError
from coreason_oauth_callback.legacy_client import OAuth1LegacyClient
from coreason_oauth_callback.models import TokenSet, VerificationChecks
from coreason_oauth_callback.oauth_client import OAuth2CallbackClient


class TokenStrategy(StrEnum):
    CUSTOM = "custom"
    ID_TOKEN = "id_token"
    OPAQUE = "opaque"


def select_token_strategy(provider: ProviderConfig) -> TokenStrategy:
    """Picks the exchange for an OAuth 2 / OIDC provider, override first."""
    if provider.token.request is not None:
        return TokenStrategy.CUSTOM
    if provider.id_token:
        return TokenStrategy.ID_TOKEN
    return TokenStrategy.OPAQUE


def normalize_scope(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Joins a list-valued `scope` into one space-separated string."""
    tokens = dict(payload)
    scope = tokens.get("scope")
    if isinstance(scope, (list, tuple)):
        tokens["scope"] = " ".join(str(item) for item in scope)
    return tokens


async def exchange_tokens(
    provider: ProviderConfig,
    client: OAuth2CallbackClient,
    params: Mapping[str, str],
    checks: VerificationChecks,
) -> TokenSet:
    """
    Exchanges the authorization code according to the provider's strategy.

    A custom token request receives `provider`, `params`, `checks` and `client`
    as keyword arguments and its payload is used as-is, except for `scope`
    which is always normalized to a string. For an OIDC provider an `id_token`
    in that payload is validated like one from the default exchange.

    Raises:
        TokenExchangeError: If a custom request returns something that is not a token payload.
        IDTokenValidationError: If a custom request returns an ID token that fails validation.
        CallbackExchangeError: Any failure of the default exchanges.
    """
    strategy = select_token_strategy(provider)

    if strategy is TokenStrategy.CUSTOM:
        assert provider.token.request is not None
        payload = await provider.token.request(provider=provider, params=dict(params), checks=checks, client=client)
        if not isinstance(payload, Mapping):
            raise TokenExchangeError(f"Custom token request for '{provider.id}' returned {type(payload).__name__}")
        try:
            tokens = TokenSet.model_validate(normalize_scope(payload))
        except ValidationError as e:
            raise TokenExchangeError(f"Custom token request for '{provider.id}' returned invalid tokens: {e}") from e
        if provider.id_token and tokens.id_token:
            claims = await client.id_token_validator.validate(tokens.id_token, nonce=checks.nonce)
            tokens = tokens.with_claims(claims)
        return tokens

    if strategy is TokenStrategy.ID_TOKEN:
        return await client.callback(params, checks)

    return await client.oauth_callback(params, checks)


async def exchange_legacy_tokens(client: OAuth1LegacyClient, query: Mapping[str, str]) -> TokenSet:
    """OAuth 1.0a: trade `oauth_token` + `oauth_verifier` for an access token."""
    return await client.get_access_token(query.get("oauth_token"), query.get("oauth_verifier"))
