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
OAuth2CallbackClient component: authorization code exchange and userinfo
retrieval for OAuth 2.0 and OpenID Connect providers.
"""

from collections.abc import Mapping
from typing import Any

import httpx
from authlib.common.urls import url_decode
from pydantic import ValidationError

from coreason_oauth_callback.config import ProviderConfig
from coreason_oauth_callback.exceptions import (
    CheckVerificationError,
    CoreasonCallbackError,
    ProfileFetchError,
    TokenExchangeError,
)
from coreason_oauth_callback.id_token import IDTokenValidator
from coreason_oauth_callback.models import TokenSet, VerificationChecks
from coreason_oauth_callback.oidc_provider import IssuerMetadataCache
from coreason_oauth_callback.transport import safe_json_fetch
from coreason_oauth_callback.utils.logger import logger


class OAuth2CallbackClient:
    """
    Talks to the token and userinfo endpoints of one OAuth 2.0 / OIDC provider.

    Uses manual HTTP through the shared `httpx.AsyncClient` so every call goes
    through the hardened transport and the bounded readers.

    Attributes:
        provider (ProviderConfig): The provider configuration.
        client (httpx.AsyncClient): The HTTP client.
        metadata (IssuerMetadataCache): Endpoint and JWKS source.
        id_token_validator (IDTokenValidator): Validator for ID tokens.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        client: httpx.AsyncClient,
        metadata: IssuerMetadataCache,
        id_token_validator: IDTokenValidator,
    ) -> None:
        self.provider = provider
        self.client = client
        self.metadata = metadata
        self.id_token_validator = id_token_validator

    def callback_params(self, query: Mapping[str, str], body: Mapping[str, Any] | str | None, method: str) -> dict[str, str]:
        """
        Extracts the authorization response parameters.

        GET callbacks carry them in the query string, POST callbacks
        (response_mode=form_post) in the form body.

        Raises:
            CoreasonCallbackError: If the method is unsupported or the body is not form-encoded.
        """
        if method == "GET":
            return {k: str(v) for k, v in query.items()}
        if method == "POST":
            if body is None:
                return {}
            if isinstance(body, str):
                try:
                    return dict(url_decode(body))
                except ValueError as e:
                    raise CoreasonCallbackError(f"Invalid form body in callback: {e}") from e
            return {k: str(v) for k, v in body.items() if v is not None}
        raise CoreasonCallbackError(f"Unsupported callback method: {method}")

    def _check_state(self, params: Mapping[str, str], checks: VerificationChecks) -> None:
        received = params.get("state")
        if checks.state is not None:
            if not received:
                raise CheckVerificationError("State missing from the authorization response.")
            if received != checks.state:
                raise CheckVerificationError("State mismatch between cookie and authorization response.")
        elif received:
            raise CheckVerificationError("State received in the authorization response but no state check is available.")

    async def _exchange_code(self, params: Mapping[str, str], checks: VerificationChecks) -> TokenSet:
        code = params.get("code")
        if not code:
            raise TokenExchangeError("Authorization code missing from the authorization response.")

        metadata = await self.metadata.get_metadata()
        if not metadata.token_endpoint:
            raise TokenExchangeError(f"No token endpoint known for provider '{self.provider.id}'")

        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.provider.callback_url,
        }
        if checks.code_verifier is not None:
            data["code_verifier"] = checks.code_verifier

        auth: httpx.Auth | None = None
        secret = self.provider.client_secret_value
        method = self.provider.token_endpoint_auth_method
        if method == "client_secret_basic" and secret is not None:
            auth = httpx.BasicAuth(self.provider.client_id, secret)
        else:
            data["client_id"] = self.provider.client_id
            if method == "client_secret_post" and secret is not None:
                data["client_secret"] = secret

        try:
            payload = await safe_json_fetch(
                self.client,
                metadata.token_endpoint,
                method="POST",
                raise_for_status=False,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except (httpx.HTTPError, CoreasonCallbackError) as e:
            raise TokenExchangeError(f"Token request to {metadata.token_endpoint} failed: {e}") from e

        if not isinstance(payload, dict):
            raise TokenExchangeError("Token endpoint returned a non-object response.")
        if payload.get("error"):
            description = payload.get("error_description")
            message = f"Token endpoint rejected the grant: {payload['error']}"
            raise TokenExchangeError(f"{message} ({description})" if description else message)

        try:
            return TokenSet.model_validate(payload)
        except ValidationError as e:
            raise TokenExchangeError(f"Invalid token response: {e}") from e

    async def callback(self, params: Mapping[str, str], checks: VerificationChecks) -> TokenSet:
        """
        OpenID Connect code exchange: checks state, exchanges the code (with the
        PKCE verifier when enforced) and validates the returned ID token.

        Raises:
            CheckVerificationError: If the state check fails.
            TokenExchangeError: If the exchange fails or no ID token is returned.
            IDTokenValidationError: If the ID token is invalid.
        """
        self._check_state(params, checks)
        tokens = await self._exchange_code(params, checks)
        if not tokens.id_token:
            raise TokenExchangeError("id_token not present in the token response.")
        claims = await self.id_token_validator.validate(tokens.id_token, nonce=checks.nonce)
        return tokens.with_claims(claims)

    async def oauth_callback(self, params: Mapping[str, str], checks: VerificationChecks) -> TokenSet:
        """
        Plain OAuth 2.0 code exchange: checks state and exchanges the code with
        the PKCE verifier when enforced. No ID token handling.
        """
        self._check_state(params, checks)
        return await self._exchange_code(params, checks)

    async def userinfo(self, tokens: TokenSet, params: Mapping[str, str] | None = None) -> dict[str, Any]:
        """
        Fetches the userinfo endpoint with the access token.

        Args:
            tokens: The token set from the exchange.
            params: Static query parameters to forward.

        Raises:
            ProfileFetchError: If the request fails or the response is not a JSON object.
        """
        metadata = await self.metadata.get_metadata()
        if not metadata.userinfo_endpoint:
            raise ProfileFetchError(f"No userinfo endpoint known for provider '{self.provider.id}'")

        try:
            profile = await safe_json_fetch(
                self.client,
                metadata.userinfo_endpoint,
                params=dict(params or {}),
                headers={"Authorization": f"Bearer {tokens.access_token}", "Accept": "application/json"},
            )
        except (httpx.HTTPError, CoreasonCallbackError) as e:
            raise ProfileFetchError(f"Userinfo request to {metadata.userinfo_endpoint} failed: {e}") from e

        if not isinstance(profile, dict):
            raise ProfileFetchError("Userinfo endpoint returned a non-object response.")
        logger.debug(f"Fetched userinfo for provider {self.provider.id}")
        return profile
