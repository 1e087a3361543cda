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
Issuer metadata component: resolves provider endpoints and caches the JWKS.
"""

import time
from typing import Any

import anyio
import httpx
from pydantic import ValidationError

from coreason_oauth_callback.config import ProviderConfig
from coreason_oauth_callback.exceptions import CoreasonCallbackError, OversizedResponseError
from coreason_oauth_callback.models_internal import IssuerMetadata
from coreason_oauth_callback.transport import safe_json_fetch
from coreason_oauth_callback.utils.logger import logger


class IssuerMetadataCache:
    """
    Resolves the endpoints of one provider and caches its signing keys.

    Statically configured endpoints always win over discovered ones; discovery
    only runs when `well_known` is set. The cache lives as long as the handler
    that owns it and is shared by concurrent callbacks behind a lock.

    Attributes:
        provider (ProviderConfig): The provider whose endpoints are resolved.
        cache_ttl (int): The cache time-to-live in seconds.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        client: httpx.AsyncClient,
        cache_ttl: int = 3600,
        refresh_cooldown: float = 30.0,
    ) -> None:
        """
        Initialize the IssuerMetadataCache.

        Args:
            provider: The provider configuration.
            client: The async HTTP client to use for requests.
            cache_ttl: Time-to-live for the metadata and JWKS cache in seconds. Defaults to 3600.
            refresh_cooldown: Minimum time in seconds between forced JWKS refreshes. Defaults to 30.0.
        """
        self.provider = provider
        self.client = client
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self._metadata_cache: IssuerMetadata | None = None
        self._metadata_update: float = 0.0
        self._jwks_cache: dict[str, Any] | None = None
        self._jwks_update: float = 0.0
        self._lock: anyio.Lock | None = None

    def _get_lock(self) -> anyio.Lock:
        if self._lock is None:
            self._lock = anyio.Lock()
        return self._lock

    def _static_metadata(self) -> IssuerMetadata:
        return IssuerMetadata(
            issuer=self.provider.issuer,
            jwks_uri=self.provider.jwks_endpoint,
            token_endpoint=self.provider.token.base_url,
            userinfo_endpoint=self.provider.userinfo.base_url,
        )

    async def _fetch_with_retry(self, url: str, what: str) -> Any:
        """
        Fetches a JSON document, retrying `httpx.HTTPError` up to 3 times with
        exponential backoff (initial=0.1s, max=1.0s).
        """
        attempts = 3
        wait_initial = 0.1
        wait_max = 1.0

        for attempt in range(attempts):
            try:
                return await safe_json_fetch(self.client, url)
            except OversizedResponseError:
                raise
            except (CoreasonCallbackError, httpx.HTTPError) as e:
                if attempt == attempts - 1:
                    raise CoreasonCallbackError(f"Failed to fetch {what} from {url}: {e}") from e
                sleep_time = min(wait_initial * (2**attempt), wait_max)
                logger.debug(f"Fetching {what} failed (attempt {attempt + 1}), retrying in {sleep_time}s")
                await anyio.sleep(sleep_time)

        raise CoreasonCallbackError(f"Failed to fetch {what} from {url}")  # pragma: no cover

    async def _discover(self) -> IssuerMetadata:
        static = self._static_metadata()
        if not self.provider.well_known:
            return static

        data = await self._fetch_with_retry(self.provider.well_known, "OIDC configuration")
        try:
            discovered = IssuerMetadata.model_validate(data)
        except ValidationError as e:
            raise CoreasonCallbackError(f"Invalid OIDC configuration from {self.provider.well_known}: {e}") from e

        # Static values override discovered ones field by field.
        overrides = static.model_dump(exclude_none=True)
        return discovered.model_copy(update=overrides)

    async def get_metadata(self) -> IssuerMetadata:
        """
        Returns the provider endpoints, discovering them if configured to.

        Raises:
            CoreasonCallbackError: If discovery fails.
        """
        if self._metadata_cache is not None and (time.time() - self._metadata_update) < self.cache_ttl:
            return self._metadata_cache

        async with self._get_lock():
            current_time = time.time()
            if self._metadata_cache is not None and (current_time - self._metadata_update) < self.cache_ttl:
                return self._metadata_cache
            metadata = await self._discover()
            self._metadata_cache = metadata
            self._metadata_update = current_time
            return metadata

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        """
        Returns the JWKS, using the cache if valid.

        A forced refresh inside the cooldown window returns the cached keys, so
        a stream of tokens with unknown `kid` values cannot hammer the provider.

        Args:
            force_refresh: If True, bypasses the cache and fetches fresh keys.

        Returns:
            dict[str, Any]: The JWKS dictionary.

        Raises:
            CoreasonCallbackError: If no JWKS endpoint is known or fetching fails.
        """
        if not force_refresh and self._jwks_cache is not None and (time.time() - self._jwks_update) < self.cache_ttl:
            return self._jwks_cache

        metadata = await self.get_metadata()
        if not metadata.jwks_uri:
            raise CoreasonCallbackError(f"No JWKS endpoint known for provider '{self.provider.id}'")

        async with self._get_lock():
            current_time = time.time()
            age = current_time - self._jwks_update
            if self._jwks_cache is not None:
                if not force_refresh and age < self.cache_ttl:
                    return self._jwks_cache
                if force_refresh and age < self.refresh_cooldown:
                    logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
                    return self._jwks_cache

            jwks = await self._fetch_with_retry(metadata.jwks_uri, "JWKS")
            if not isinstance(jwks, dict):
                raise CoreasonCallbackError(f"Invalid JWKS from {metadata.jwks_uri}")
            self._jwks_cache = jwks
            self._jwks_update = current_time
            return jwks
