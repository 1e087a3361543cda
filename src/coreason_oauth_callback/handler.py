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
OAuthCallbackHandler component: entry point for provider callbacks.
"""

from typing import Any

import httpx
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.trace import Status, StatusCode

from coreason_oauth_callback.anti_forgery import AntiForgeryVerifier
from coreason_oauth_callback.check_cookies import CheckCookieVerifier, SignedCheckCookies
from coreason_oauth_callback.config import CoreasonCallbackConfig, ProviderConfig
from coreason_oauth_callback.exceptions import CoreasonCallbackError, ProviderDeniedError
from coreason_oauth_callback.flows import CallbackFlow, select_flow
from coreason_oauth_callback.models import CallbackRequest, CallbackResult
from coreason_oauth_callback.oidc_provider import IssuerMetadataCache
from coreason_oauth_callback.profile_normalizer import ProfileNormalizer
from coreason_oauth_callback.transport import SafeAsyncTransport
from coreason_oauth_callback.utils.logger import logger

tracer = trace.get_tracer(__name__)


class OAuthCallbackHandler:
    """
    Handles the redirect back from one provider.
    Owns its HTTP client unless one is injected; use it as an async context manager.
    """

    def __init__(
        self,
        config: CoreasonCallbackConfig,
        provider: ProviderConfig,
        client: httpx.AsyncClient | None = None,
        cookie_verifier: CheckCookieVerifier | None = None,
    ) -> None:
        """
        Initialize the OAuthCallbackHandler.

        Args:
            config: The configuration object.
            provider: The provider this handler serves.
            client: External async client (optional). If not provided, a `SafeAsyncTransport` client is created.
            cookie_verifier: Check cookie codec (optional). Defaults to `SignedCheckCookies`.
        """
        self.config = config
        self.provider = provider
        self._internal_client = client is None

        if client:
            self._client = client
        else:
            # Local development may target localhost providers.
            transport = httpx.AsyncHTTPTransport() if config.unsafe_local_dev else SafeAsyncTransport()
            self._client = httpx.AsyncClient(transport=transport, timeout=config.http_timeout)
            HTTPXClientInstrumentor().instrument_client(self._client)

        self.metadata = IssuerMetadataCache(provider, self._client)
        self.cookie_verifier = cookie_verifier or SignedCheckCookies(config)
        self.normalizer = ProfileNormalizer(config.pii_salt)
        self.flow: CallbackFlow = select_flow(
            config,
            provider,
            self._client,
            self.metadata,
            AntiForgeryVerifier(self.cookie_verifier),
            self.normalizer,
        )

    async def __aenter__(self) -> "OAuthCallbackHandler":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    def _reject_provider_error(self, request: CallbackRequest) -> None:
        error = request.get_param("error")
        if not error:
            return
        description = request.get_param("error_description")
        logger.bind(
            event="OAUTH_CALLBACK_HANDLER_ERROR",
            provider_id=self.provider.id,
            error=str(error),
            error_description=description,
        ).error("Provider returned an error to the callback")
        raise ProviderDeniedError(str(error), str(description) if description else None)

    async def handle(self, request: CallbackRequest) -> CallbackResult:
        """
        Completes a callback.

        Emits an OpenTelemetry span `oauth_callback`.

        Args:
            request: The inbound callback request.

        Returns:
            CallbackResult: Profile, account, raw profile and cookies to apply. Profile and
            account are None when the provider response held no usable identity.

        Raises:
            ProviderDeniedError: If the provider echoed an error. No cookie is read.
            TokenExchangeError: If the OAuth 1.0a exchange fails.
            CallbackExchangeError: If a check, the exchange or the profile retrieval fails.
        """
        with tracer.start_as_current_span("oauth_callback") as span:
            span.set_attribute("oauth.provider", self.provider.id)
            span.set_attribute("oauth.version", self.provider.version)
            try:
                self._reject_provider_error(request)
                result = await self.flow.run(request)
            except CoreasonCallbackError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_attribute("oauth.has_identity", result.has_identity)
            span.set_status(Status(StatusCode.OK))
            return result
