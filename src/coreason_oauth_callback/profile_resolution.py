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
Profile resolution strategies: obtain the raw provider profile for a TokenSet.
"""

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from coreason_oauth_callback.config import ProviderConfig
from coreason_oauth_callback.exceptions import ProfileFetchError
from coreason_oauth_callback.legacy_client import OAuth1LegacyClient
from coreason_oauth_callback.models import TokenSet
from coreason_oauth_callback.oauth_client import OAuth2CallbackClient


class ProfileStrategy(StrEnum):
    CUSTOM = "custom"
    ID_TOKEN_CLAIMS = "id_token_claims"
    USERINFO = "userinfo"


def select_profile_strategy(provider: ProviderConfig) -> ProfileStrategy:
    if provider.userinfo.request is not None:
        return ProfileStrategy.CUSTOM
    if provider.id_token:
        return ProfileStrategy.ID_TOKEN_CLAIMS
    return ProfileStrategy.USERINFO


async def resolve_profile(provider: ProviderConfig, client: OAuth2CallbackClient, tokens: TokenSet) -> dict[str, Any]:
    """
    Returns the raw profile for an OAuth 2 / OIDC provider.

    Raises:
        ProfileFetchError: If the profile cannot be obtained or is not an object.
    """
    strategy = select_profile_strategy(provider)

    if strategy is ProfileStrategy.CUSTOM:
        assert provider.userinfo.request is not None
        profile = await provider.userinfo.request(provider=provider, tokens=tokens, client=client)
    elif strategy is ProfileStrategy.ID_TOKEN_CLAIMS:
        profile = tokens.claims()
    else:
        profile = await client.userinfo(tokens, params=provider.userinfo.static_params)

    if not isinstance(profile, Mapping):
        raise ProfileFetchError(f"Profile for '{provider.id}' is {type(profile).__name__}, not an object")
    return dict(profile)


async def resolve_legacy_profile(provider: ProviderConfig, client: OAuth1LegacyClient, tokens: TokenSet) -> dict[str, Any]:
    """
    OAuth 1.0a: signed GET of the profile URL. Bodies arrive as text and are
    parsed as JSON.

    Raises:
        ProfileFetchError: If the request fails or the body is not a JSON object.
    """
    assert provider.profile_url is not None
    token_secret = getattr(tokens, "oauth_token_secret", None)
    if not token_secret:
        raise ProfileFetchError("Legacy token set has no oauth_token_secret.")

    profile: Any = await client.get(provider.profile_url, tokens.access_token, token_secret)
    if isinstance(profile, str):
        try:
            profile = json.loads(profile)
        except json.JSONDecodeError as e:
            raise ProfileFetchError(f"Profile from {provider.profile_url} is not valid JSON: {e}") from e

    if not isinstance(profile, Mapping):
        raise ProfileFetchError(f"Profile from {provider.profile_url} is not an object")
    return dict(profile)
