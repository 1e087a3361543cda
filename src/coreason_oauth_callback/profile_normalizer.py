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
ProfileNormalizer component for mapping raw provider profiles to Profile/Account.
"""

import inspect
from collections.abc import Mapping
from typing import Any

from pydantic import SecretStr, ValidationError

from coreason_oauth_callback.config import ProviderConfig
from coreason_oauth_callback.exceptions import (
    MalformedProfileError,
    ProfileMappingError,
    ProfileNormalizationError,
)
from coreason_oauth_callback.models import (
    Account,
    NormalizedProfile,
    Profile,
    ProfileOutcome,
    ProfileUnavailable,
    TokenSet,
)
from coreason_oauth_callback.utils.logger import anonymize, logger


class ProfileNormalizer:
    """
    Runs the provider's profile hook and builds the canonical account.

    A hook that raises, returns garbage, or returns no `id` does not fail the
    callback: the outcome is `ProfileUnavailable`, and the error is logged. A
    malformed provider response and a cancelled consent look the same from
    here, so the caller gets to route the user to a recovery page instead.
    """

    def __init__(self, pii_salt: SecretStr) -> None:
        self.pii_salt = pii_salt

    async def _map(self, raw_profile: dict[str, Any], tokens: TokenSet, provider: ProviderConfig) -> Profile:
        try:
            mapped = provider.profile(raw_profile, tokens)
            if inspect.isawaitable(mapped):
                mapped = await mapped
        except Exception as e:
            raise ProfileMappingError(f"Profile mapping for '{provider.name}' failed: {e}") from e

        if isinstance(mapped, Profile):
            # The hook may hand back a shared instance.
            return mapped.model_copy()
        if not isinstance(mapped, Mapping):
            raise ProfileMappingError(f"Profile mapping for '{provider.name}' returned {type(mapped).__name__}")
        try:
            return Profile.model_validate(dict(mapped))
        except ValidationError as e:
            raise ProfileMappingError(f"Profile mapping for '{provider.name}' returned an invalid profile: {e}") from e

    async def normalize(self, raw_profile: dict[str, Any], tokens: TokenSet, provider: ProviderConfig) -> ProfileOutcome:
        """
        Maps the raw profile and builds the account.

        Args:
            raw_profile: The provider profile as received.
            tokens: The token set of this callback.
            provider: The provider configuration.

        Returns:
            NormalizedProfile on success, ProfileUnavailable when no usable identity came out.
        """
        logger.bind(event="PROFILE_DATA", provider_id=provider.id).debug(
            f"Raw profile received with keys {list(raw_profile)}"
        )
        try:
            profile = await self._map(raw_profile, tokens, provider)
            if profile.email is not None:
                profile.email = profile.email.lower()
            if profile.id is None or str(profile.id) == "":
                raise MalformedProfileError(f"Profile id is missing in {provider.name} OAuth profile response")

            # Token fields never override the identity keys.
            account = Account.model_validate(
                {
                    **tokens.as_fields(),
                    "provider": provider.id,
                    "type": provider.type,
                    "providerAccountId": str(profile.id),
                }
            )
        except ProfileNormalizationError as e:
            logger.bind(event="OAUTH_PARSE_PROFILE_ERROR", provider_id=provider.id).error(str(e))
            return ProfileUnavailable(raw_profile=raw_profile, reason=str(e), error_type=type(e).__name__)

        logger.info(
            f"Profile normalized for provider {provider.id}, "
            f"account {anonymize(account.provider_account_id, self.pii_salt.get_secret_value())}"
        )
        return NormalizedProfile(profile=profile, account=account, raw_profile=raw_profile)
