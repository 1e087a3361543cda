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
AntiForgeryVerifier component: turns the incoming check cookies into the
checks enforced during the code exchange.
"""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from coreason_oauth_callback.check_cookies import CheckCookieVerifier, CheckKind
from coreason_oauth_callback.config import ProviderConfig
from coreason_oauth_callback.exceptions import CookieVerificationError
from coreason_oauth_callback.models import Cookie, VerificationChecks
from coreason_oauth_callback.utils.logger import logger


class VerificationOutcome(BaseModel):
    """Checks to enforce and the cookies that clear them."""

    model_config = ConfigDict(frozen=True)

    checks: VerificationChecks = Field(default_factory=VerificationChecks)
    cookies: list[Cookie] = Field(default_factory=list)


class AntiForgeryVerifier:
    """
    Reads the state, nonce and PKCE cookies.

    - state and PKCE are enforced whenever their cookie verifies.
    - nonce is enforced only for providers that issue ID tokens. For other
      providers a valid nonce cookie is still decoded so it can be cleared.
    - Every verified cookie is cleared, enforced or not.
    - An invalid state or PKCE cookie aborts the callback. An invalid nonce
      cookie for a provider without ID tokens is logged and left alone.
    """

    def __init__(self, verifier: CheckCookieVerifier) -> None:
        self.verifier = verifier

    def verify(self, cookies: Mapping[str, str], provider: ProviderConfig) -> VerificationOutcome:
        """
        Verifies the check cookies sent with a callback.

        Args:
            cookies: The incoming cookie map.
            provider: The provider the callback belongs to.

        Returns:
            VerificationOutcome: The enforced checks and the clearing cookies.

        Raises:
            CookieVerificationError: If an enforced check cookie is present but invalid.
        """
        values: dict[str, str] = {}
        clearing: list[Cookie] = []

        state = self.verifier.verify(CheckKind.STATE, cookies.get(self.verifier.cookie_name(CheckKind.STATE)))
        if state:
            values["state"] = state.value
            clearing.append(state.cookie)

        nonce_raw = cookies.get(self.verifier.cookie_name(CheckKind.NONCE))
        try:
            nonce = self.verifier.verify(CheckKind.NONCE, nonce_raw)
        except CookieVerificationError:
            if provider.id_token:
                raise
            logger.bind(event="CHECK_COOKIE_INVALID", provider_id=provider.id, kind=CheckKind.NONCE.value).warning(
                "Ignoring invalid nonce cookie for a provider without ID tokens"
            )
            nonce = None
        if nonce:
            if provider.id_token:
                values["nonce"] = nonce.value
            clearing.append(nonce.cookie)

        pkce = self.verifier.verify(
            CheckKind.PKCE_CODE_VERIFIER,
            cookies.get(self.verifier.cookie_name(CheckKind.PKCE_CODE_VERIFIER)),
        )
        if pkce:
            values["code_verifier"] = pkce.value
            clearing.append(pkce.cookie)

        return VerificationOutcome(checks=VerificationChecks(**values), cookies=clearing)
