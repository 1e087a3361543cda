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
OAuth1LegacyClient component for OAuth 1.0a providers.
"""

import httpx
from authlib.common.urls import url_decode
from authlib.oauth1 import ClientAuth

from coreason_oauth_callback.config import ProviderConfig
from coreason_oauth_callback.exceptions import CoreasonCallbackError, ProfileFetchError, TokenExchangeError
from coreason_oauth_callback.models import TokenSet
from coreason_oauth_callback.transport import safe_fetch, safe_text_fetch


class OAuth1LegacyClient:
    """
    Signs requests with HMAC-SHA1 (RFC 5849) and sends them through the shared
    `httpx.AsyncClient`.
    """

    def __init__(self, provider: ProviderConfig, client: httpx.AsyncClient) -> None:
        self.provider = provider
        self.client = client

    def _signed_headers(
        self,
        method: str,
        url: str,
        token: str | None,
        token_secret: str | None,
        verifier: str | None = None,
    ) -> tuple[str, dict[str, str]]:
        auth = ClientAuth(
            self.provider.client_id,
            client_secret=self.provider.client_secret_value,
            token=token,
            token_secret=token_secret,
            verifier=verifier,
        )
        signed_url, headers, _ = auth.prepare(method, url, {}, b"")
        return signed_url, dict(headers)

    async def get_access_token(self, oauth_token: str | None, oauth_verifier: str | None) -> TokenSet:
        """
        Exchanges the request token and verifier for an access token.

        Returns:
            TokenSet: `access_token` is the OAuth1 access token; `oauth_token` and
            `oauth_token_secret` are kept as provider fields.

        Raises:
            TokenExchangeError: If the callback lacks the token/verifier or the provider rejects them.
        """
        if not oauth_token or not oauth_verifier:
            raise TokenExchangeError("Callback is missing oauth_token or oauth_verifier.")

        url = self.provider.access_token_url
        if not url:
            raise TokenExchangeError(f"No access token URL configured for provider '{self.provider.id}'")

        signed_url, headers = self._signed_headers("POST", url, oauth_token, None, verifier=oauth_verifier)
        try:
            status, content = await safe_fetch(
                self.client, signed_url, method="POST", raise_for_status=False, headers=headers
            )
        except (httpx.HTTPError, CoreasonCallbackError) as e:
            raise TokenExchangeError(f"Access token request to {url} failed: {e}") from e

        text = content.decode("utf-8", errors="replace")
        if status >= 400:
            raise TokenExchangeError(f"Access token request rejected with status {status}: {text[:200]}")

        try:
            fields = dict(url_decode(text))
        except ValueError as e:
            raise TokenExchangeError(f"Invalid access token response: {e}") from e

        if not fields.get("oauth_token") or not fields.get("oauth_token_secret"):
            raise TokenExchangeError("Access token response lacks oauth_token or oauth_token_secret.")

        return TokenSet.model_validate({**fields, "access_token": fields["oauth_token"]})

    async def get(self, url: str, token: str, token_secret: str) -> str:
        """
        Signed GET of a protected resource.

        Returns:
            The response body as text.

        Raises:
            ProfileFetchError: If the request fails.
        """
        signed_url, headers = self._signed_headers("GET", url, token, token_secret)
        try:
            return await safe_text_fetch(self.client, signed_url, headers=headers)
        except (httpx.HTTPError, CoreasonCallbackError) as e:
            raise ProfileFetchError(f"Profile request to {url} failed: {e}") from e

