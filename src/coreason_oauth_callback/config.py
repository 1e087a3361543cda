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
Configuration for the coreason-oauth-callback package.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Literal
from urllib.parse import parse_qsl, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Override hooks are awaited with keyword arguments (provider=..., client=..., ...).
RequestHook = Callable[..., Awaitable[dict[str, Any]]]
ProfileHook = Callable[[dict[str, Any], Any], Any]


def default_profile(profile: dict[str, Any], tokens: Any) -> dict[str, Any]:
    """Standard OIDC claim mapping, used when a provider does not supply its own."""
    return {
        "id": profile.get("sub"),
        "name": profile.get("name"),
        "email": profile.get("email"),
        "image": profile.get("picture"),
    }


class CheckCookieNames(BaseModel):
    """Names of the anti-forgery cookies set by the redirect-out half of the flow."""

    model_config = ConfigDict(frozen=True)

    state: str
    nonce: str
    pkce_code_verifier: str


class CoreasonCallbackConfig(BaseSettings):
    """
    Configuration settings for coreason-oauth-callback.

    Attributes:
        secret (SecretStr): Key material used to sign and verify check cookies.
        http_timeout (float): Timeout in seconds for every provider network call.
        use_secure_cookies (bool): Prefix cookie names with `__Secure-` and mark them secure.
        cookie_prefix (str): Base name of the check cookies.
        check_max_age (int): Lifetime in seconds of a check cookie.
        clock_skew_leeway (int): Leeway in seconds for ID token time claims.
        pii_salt (SecretStr): Salt for anonymizing account ids in logs.
        allowed_id_token_algorithms (list[str]): Accepted ID token signing algorithms.
        unsafe_local_dev (bool): Allow plain HTTP and private addresses for local testing.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_CALLBACK_",
        case_sensitive=False,
    )

    secret: SecretStr
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for all provider calls.")
    use_secure_cookies: bool = True
    cookie_prefix: str = "coreason"
    check_max_age: int = Field(default=900, gt=0)
    clock_skew_leeway: int = Field(default=15, ge=0)
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")
    allowed_id_token_algorithms: list[str] = Field(default_factory=lambda: ["RS256"])
    unsafe_local_dev: bool = False

    @field_validator("secret")
    @classmethod
    def validate_secret_length(cls, v: SecretStr) -> SecretStr:
        """
        Rejects short signing secrets.
        """
        if len(v.get_secret_value()) < 32:
            raise ValueError("Cookie secret must be at least 32 characters long.")
        return v

    @field_validator("allowed_id_token_algorithms")
    @classmethod
    def reject_none_algorithm(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one ID token algorithm must be allowed.")
        if any(alg.lower() == "none" for alg in v):
            raise ValueError("The 'none' algorithm cannot be allowed for ID tokens.")
        return v

    @property
    def cookie_names(self) -> CheckCookieNames:
        prefix = "__Secure-" if self.use_secure_cookies else ""
        base = f"{prefix}{self.cookie_prefix}"
        return CheckCookieNames(
            state=f"{base}.state",
            nonce=f"{base}.nonce",
            pkce_code_verifier=f"{base}.pkce.code_verifier",
        )


class EndpointConfig(BaseModel):
    """
    A provider endpoint with optional static query parameters and an optional
    request override hook.

    Attributes:
        url (str): The endpoint URL. Query parameters embedded here are static parameters.
        params (dict[str, str]): Additional static parameters.
        request (Callable | None): Replaces the default request to this endpoint.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    url: str | None = None
    params: dict[str, str] = Field(default_factory=dict)
    request: RequestHook | None = None

    @property
    def base_url(self) -> str | None:
        """The URL without its query string."""
        if not self.url:
            return None
        parts = urlsplit(self.url)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))

    @property
    def static_params(self) -> dict[str, str]:
        """Query parameters from the URL merged with `params` (explicit params win)."""
        merged: dict[str, str] = {}
        if self.url:
            merged.update(parse_qsl(urlsplit(self.url).query, keep_blank_values=True))
        merged.update(self.params)
        return merged


class ProviderConfig(BaseModel):
    """
    Read-only description of one identity provider.

    `version` starting with "1." selects the OAuth 1.0a legacy callback path;
    anything else uses the OAuth 2 / OIDC path.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    name: str
    type: Literal["oauth", "oidc"] = "oauth"
    version: str = "2.0"
    client_id: str
    client_secret: SecretStr | None = None
    token_endpoint_auth_method: Literal["client_secret_basic", "client_secret_post", "none"] = (
        "client_secret_basic"
    )
    id_token: bool = False
    issuer: str | None = None
    well_known: str | None = None
    jwks_endpoint: str | None = None
    token: EndpointConfig = Field(default_factory=EndpointConfig)
    userinfo: EndpointConfig = Field(default_factory=EndpointConfig)
    callback_url: str
    access_token_url: str | None = None
    profile_url: str | None = None
    profile: ProfileHook = default_profile

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        v = v.strip()
        if not v or not v[0].isdigit():
            raise ValueError(f"Invalid protocol version '{v}'")
        return v

    @model_validator(mode="after")
    def validate_legacy_endpoints(self) -> "ProviderConfig":
        """
        OAuth 1.0a providers need their access token and profile URLs up front;
        there is no discovery for them.
        """
        if self.is_legacy and (not self.access_token_url or not self.profile_url):
            raise ValueError(f"OAuth 1.x provider '{self.id}' requires access_token_url and profile_url")
        return self

    @property
    def is_legacy(self) -> bool:
        return self.version.startswith("1.")

    @property
    def client_secret_value(self) -> str | None:
        return self.client_secret.get_secret_value() if self.client_secret else None
