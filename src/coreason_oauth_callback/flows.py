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
Protocol flows. One is selected per provider at handler construction:
OAuth 1.0a (`LegacyCallbackFlow`) or OAuth 2 / OIDC (`ModernCallbackFlow`).
"""

from typing import Protocol

import httpx

from coreason_oauth_callback.anti_forgery import AntiForgeryVerifier
from coreason_oauth_callback.config import CoreasonCallbackConfig, ProviderConfig
from coreason_oauth_callback.exceptions import CallbackExchangeError, CoreasonCallbackError, TokenExchangeError
from coreason_oauth_callback.id_token import IDTokenValidator
from coreason_oauth_callback.legacy_client import OAuth1LegacyClient
from coreason_oauth_callback.models import CallbackRequest, CallbackResult
from coreason_oauth_callback.oauth_client import OAuth2CallbackClient
from coreason_oauth_callback.oidc_provider import IssuerMetadataCache
from coreason_oauth_callback.profile_normalizer import ProfileNormalizer
from coreason_oauth_callback.profile_resolution import resolve_legacy_profile, resolve_profile
from coreason_oauth_callback.token_exchange import exchange_legacy_tokens, exchange_tokens
from coreason_oauth_callback.utils.logger import logger


class CallbackFlow(Protocol):
    async def run(self, request: CallbackRequest) -> CallbackResult: ...


class LegacyCallbackFlow:
    """
    OAuth 1.0a callback: no check cookies are read and none are returned.
    The request signature scheme is the protection against forgery.
    """

    def __init__(self, provider: ProviderConfig, client: OAuth1LegacyClient, normalizer: ProfileNormalizer) -> None:
        self.provider = provider
        self.client = client
        self.normalizer = normalizer

    async def run(self, request: CallbackRequest) -> CallbackResult:
        """
        Raises:
            TokenExchangeError: If the access token cannot be obtained.
            CallbackExchangeError: If the profile cannot be fetched.
        """
        try:
            tokens = await exchange_legacy_tokens(self.client, request.query)
            raw_profile = await resolve_legacy_profile(self.provider, self.client, tokens)
        except CoreasonCallbackError as e:
            logger.bind(event="OAUTH_V1_GET_ACCESS_TOKEN_ERROR", provider_id=self.provider.id).error(str(e))
            raise
        except Exception as e:
            logger.bind(event="OAUTH_V1_GET_ACCESS_TOKEN_ERROR", provider_id=self.provider.id).error(str(e))
            raise TokenExchangeError(f"OAuth 1.0a callback failed: {e}") from e

        outcome = await self.normalizer.normalize(raw_profile, tokens, self.provider)
        return CallbackResult.from_outcome(outcome, cookies=[])


class ModernCallbackFlow:
    """
    OAuth 2 / OIDC callback: verify check cookies, exchange the code, resolve
    the profile. Every failure before normalization becomes CallbackExchangeError.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        client: OAuth2CallbackClient,
        verifier: AntiForgeryVerifier,
        normalizer: ProfileNormalizer,
    ) -> None:
        self.provider = provider
        self.client = client
        self.verifier = verifier
        self.normalizer = normalizer

    async def run(self, request: CallbackRequest) -> CallbackResult:
        """
        Raises:
            CallbackExchangeError: If a check, the exchange or the profile retrieval fails.
        """
        try:
            verification = self.verifier.verify(request.cookies, self.provider)
            params = {
                **self.client.callback_params(request.query, request.body, request.method),
                **self.provider.token.static_params,
            }
            tokens = await exchange_tokens(self.provider, self.client, params, verification.checks)
            raw_profile = await resolve_profile(self.provider, self.client, tokens)
        except CallbackExchangeError as e:
            logger.bind(event="OAUTH_CALLBACK_ERROR", provider_id=self.provider.id).error(str(e))
            raise
        except Exception as e:
            logger.bind(event="OAUTH_CALLBACK_ERROR", provider_id=self.provider.id).error(str(e))
            raise CallbackExchangeError(f"OAuth callback failed: {e}") from e

        outcome = await self.normalizer.normalize(raw_profile, tokens, self.provider)
        return CallbackResult.from_outcome(outcome, cookies=verification.cookies)


def select_flow(
    config: CoreasonCallbackConfig,
    provider: ProviderConfig,
    client: httpx.AsyncClient,
    metadata: IssuerMetadataCache,
    verifier: AntiForgeryVerifier,
    normalizer: ProfileNormalizer,
) -> CallbackFlow:
    """Builds the flow for the provider's protocol version."""
    if provider.is_legacy:
        return LegacyCallbackFlow(provider, OAuth1LegacyClient(provider, client), normalizer)

    id_token_validator = IDTokenValidator(
        metadata,
        client_id=provider.client_id,
        allowed_algorithms=config.allowed_id_token_algorithms,
        leeway=config.clock_skew_leeway,
    )
    oauth_client = OAuth2CallbackClient(provider, client, metadata, id_token_validator)
    return ModernCallbackFlow(provider, oauth_client, verifier, normalizer)
