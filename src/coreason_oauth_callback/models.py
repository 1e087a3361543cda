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
Data models for the coreason-oauth-callback package.

All of them are request-scoped: built and discarded within one callback.
"""

from typing import Any, Literal

from authlib.common.urls import url_decode
from authlib.oauth2.rfc6749 import OAuth2Token
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from coreason_oauth_callback.exceptions import CoreasonCallbackError


class CallbackRequest(BaseModel):
    """
    The inbound redirect from the provider. Every value in it is untrusted.

    Attributes:
        query (dict[str, str]): Query string parameters.
        body (dict[str, Any] | str | None): Parsed form body, or the raw urlencoded body.
        method (str): The HTTP method, upper-cased.
        cookies (dict[str, str]): Incoming cookie map.
    """

    model_config = ConfigDict(frozen=True)

    query: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] | str | None = None
    method: str = "GET"
    cookies: dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.strip().upper()

    def form(self) -> dict[str, Any]:
        """
        The body as a parameter map, decoding a raw urlencoded body.

        Raises:
            CoreasonCallbackError: If a raw body is not valid urlencoded form data.
        """
        if isinstance(self.body, dict):
            return self.body
        if not self.body:
            return {}
        try:
            return dict(url_decode(self.body))
        except ValueError as e:
            raise CoreasonCallbackError(f"Invalid form body in callback: {e}") from e

    def get_param(self, name: str) -> Any:
        """Looks up a parameter in the body first, then in the query."""
        form = self.form()
        if form.get(name):
            return form[name]
        return self.query.get(name)


class VerificationChecks(BaseModel):
    """
    Values recovered from verified check cookies. A field is set only when its
    cookie existed, verified, and is enforced for the provider.
    """

    model_config = ConfigDict(frozen=True)

    state: str | None = None
    nonce: str | None = None
    code_verifier: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.state is None and self.nonce is None and self.code_verifier is None


class CookieOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"
    path: str = "/"
    secure: bool = True
    max_age: int | None = None


class Cookie(BaseModel):
    """
    A cookie instruction for the caller to apply. This package never writes
    cookies itself.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    options: CookieOptions = Field(default_factory=CookieOptions)


class TokenSet(BaseModel):
    """
    Tokens returned by an exchange, plus any provider-specific fields.

    `scope` is always a single space-joined string. `expires_at` is derived
    from `expires_in` when the provider only sends the latter.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: int | None = None
    scope: str | None = None

    _claims: dict[str, Any] | None = PrivateAttr(default=None)

    @model_validator(mode="before")
    @classmethod
    def derive_expiry(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return dict(OAuth2Token.from_dict(dict(data)))
        return data

    @field_validator("scope", mode="before")
    @classmethod
    def join_scope(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return " ".join(str(item) for item in v)
        return v

    def with_claims(self, claims: dict[str, Any]) -> "TokenSet":
        """Attaches validated ID token claims."""
        self._claims = dict(claims)
        return self

    def claims(self) -> dict[str, Any]:
        """
        Returns the validated ID token claims.

        Raises:
            CoreasonCallbackError: If no ID token was validated for this token set.
        """
        if self._claims is None:
            raise CoreasonCallbackError("Token set carries no validated ID token claims.")
        return dict(self._claims)

    def as_fields(self) -> dict[str, Any]:
        """All token fields, provider extras included, without empty values."""
        return self.model_dump(exclude_none=True)


class Profile(BaseModel):
    """
    The profile returned by a provider's mapping hook. Provider-specific keys are kept.
    """

    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    name: str | None = None
    email: str | None = None
    image: str | None = None


class Account(BaseModel):
    """
    The canonical account record: provider identity plus every token field.
    """

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    provider: str
    type: str
    provider_account_id: str = Field(..., alias="providerAccountId", min_length=1)


class NormalizedProfile(BaseModel):
    """Successful normalization."""

    model_config = ConfigDict(frozen=True)

    profile: Profile
    account: Account
    raw_profile: dict[str, Any]


class ProfileUnavailable(BaseModel):
    """
    Recoverable normalization failure: the protocol exchange succeeded but no
    usable identity came out of it.
    """

    model_config = ConfigDict(frozen=True)

    raw_profile: dict[str, Any]
    reason: str
    error_type: str


ProfileOutcome = NormalizedProfile | ProfileUnavailable


class CallbackResult(BaseModel):
    """
    Result of a completed callback.

    `profile` and `account` are both None when the provider response could not
    be mapped to an identity; `profile_error` then says why.
    """

    model_config = ConfigDict(frozen=True)

    profile: Profile | None = None
    account: Account | None = None
    raw_profile: dict[str, Any] = Field(default_factory=dict)
    cookies: list[Cookie] = Field(default_factory=list)
    profile_error: str | None = None

    @property
    def has_identity(self) -> bool:
        return self.profile is not None and self.account is not None

    @classmethod
    def from_outcome(cls, outcome: ProfileOutcome, cookies: list[Cookie]) -> "CallbackResult":
        if isinstance(outcome, NormalizedProfile):
            return cls(
                profile=outcome.profile,
                account=outcome.account,
                raw_profile=outcome.raw_profile,
                cookies=cookies,
            )
        return cls(raw_profile=outcome.raw_profile, cookies=cookies, profile_error=outcome.reason)
