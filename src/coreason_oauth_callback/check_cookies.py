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
Signed cookies carrying the state, nonce and PKCE code verifier between the
redirect to the provider and the callback.
"""

import hashlib
import hmac
import time
from enum import StrEnum
from typing import Any, Protocol, cast

from authlib.jose import JsonWebToken
from authlib.jose.errors import JoseError
from pydantic import BaseModel, ConfigDict

from coreason_oauth_callback.config import CheckCookieNames, CoreasonCallbackConfig
from coreason_oauth_callback.exceptions import CookieVerificationError
from coreason_oauth_callback.models import Cookie, CookieOptions


class CheckKind(StrEnum):
    STATE = "state"
    NONCE = "nonce"
    PKCE_CODE_VERIFIER = "pkce_code_verifier"


class VerifiedCheck(BaseModel):
    """A decoded check value and the cookie instruction that clears it."""

    model_config = ConfigDict(frozen=True)

    kind: CheckKind
    value: str
    cookie: Cookie


class CheckCookieVerifier(Protocol):
    """Protocol for decoding check cookies."""

    def cookie_name(self, kind: CheckKind) -> str:
        """Name of the cookie carrying `kind`."""
        ...

    def verify(self, kind: CheckKind, raw: str | None) -> VerifiedCheck | None:
        """
        Returns None when the cookie is absent, the decoded value when it verifies,
        and raises CookieVerificationError when it is present but invalid.
        """
        ...


class SignedCheckCookies:
    """
    HS256-signed check cookies. The signing key is derived from the configured
    secret so the raw secret is never used directly as a JWT key.
    """

    ALGORITHM = "HS256"

    def __init__(self, config: CoreasonCallbackConfig) -> None:
        self.config = config
        self.names: CheckCookieNames = config.cookie_names
        self._key = hmac.new(
            config.secret.get_secret_value().encode("utf-8"),
            b"coreason-oauth-callback check cookie",
            hashlib.sha256,
        ).digest()
        self._jwt = JsonWebToken([self.ALGORITHM])

    def cookie_name(self, kind: CheckKind) -> str:
        return cast(str, getattr(self.names, kind.value))

    def _options(self, max_age: int) -> CookieOptions:
        return CookieOptions(
            http_only=True,
            same_site="lax",
            path="/",
            secure=self.config.use_secure_cookies,
            max_age=max_age,
        )

    def seal(self, kind: CheckKind, value: str) -> Cookie:
        """
        Produces the cookie that carries `value` for `kind`. Used by the half of
        the flow that redirects to the provider.
        """
        now = int(time.time())
        payload = {"kind": kind.value, "value": value, "iat": now, "exp": now + self.config.check_max_age}
        token = self._jwt.encode({"alg": self.ALGORITHM}, payload, self._key, check=False)
        return Cookie(
            name=self.cookie_name(kind),
            value=token.decode("ascii"),
            options=self._options(self.config.check_max_age),
        )

    def clearing_cookie(self, kind: CheckKind) -> Cookie:
        return Cookie(name=self.cookie_name(kind), value="", options=self._options(0))

    def verify(self, kind: CheckKind, raw: str | None) -> VerifiedCheck | None:
        """
        Decodes a check cookie.

        Args:
            kind: Which check the cookie is expected to carry.
            raw: The raw cookie value, or None when the cookie was not sent.

        Returns:
            None when the cookie is absent, otherwise the value and its clearing cookie.

        Raises:
            CookieVerificationError: If the signature, kind or expiry is invalid.
        """
        if not raw:
            return None

        try:
            jwt_any = cast("Any", self._jwt)
            claims = jwt_any.decode(
                raw,
                self._key,
                claims_options={
                    "exp": {"essential": True},
                    "kind": {"essential": True, "value": kind.value},
                    "value": {"essential": True},
                },
            )
            claims.validate()
        except (JoseError, ValueError) as e:
            raise CookieVerificationError(f"Invalid {kind.value} cookie: {e}") from e

        value = claims.get("value")
        if not isinstance(value, str):
            raise CookieVerificationError(f"Invalid {kind.value} cookie: value is not a string")

        return VerifiedCheck(kind=kind, value=value, cookie=self.clearing_cookie(kind))
