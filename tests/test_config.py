# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import pytest
from pydantic import SecretStr, ValidationError

from coreason_oauth_callback.config import (
    CoreasonCallbackConfig,
    EndpointConfig,
    ProviderConfig,
    default_profile,
)

SECRET = "x" * 32


def test_config_defaults() -> None:
    config = CoreasonCallbackConfig(secret=SecretStr(SECRET))
    assert config.http_timeout == 10.0
    assert config.use_secure_cookies is True
    assert config.check_max_age == 900
    assert config.allowed_id_token_algorithms == ["RS256"]
    assert config.unsafe_local_dev is False


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COREASON_CALLBACK_SECRET", SECRET)
    monkeypatch.setenv("COREASON_CALLBACK_HTTP_TIMEOUT", "2.5")
    monkeypatch.setenv("COREASON_CALLBACK_USE_SECURE_COOKIES", "false")

    config = CoreasonCallbackConfig()  # type: ignore[call-arg]
    assert config.secret.get_secret_value() == SECRET
    assert config.http_timeout == 2.5
    assert config.use_secure_cookies is False


def test_config_rejects_short_secret() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        CoreasonCallbackConfig(secret=SecretStr("short"))


def test_config_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValidationError):
        CoreasonCallbackConfig(secret=SecretStr(SECRET), http_timeout=0)


@pytest.mark.parametrize("algs", [[], ["RS256", "none"], ["NONE"]])
def test_config_rejects_unsafe_algorithms(algs: list[str]) -> None:
    with pytest.raises(ValidationError):
        CoreasonCallbackConfig(secret=SecretStr(SECRET), allowed_id_token_algorithms=algs)


def test_cookie_names_secure_prefix() -> None:
    names = CoreasonCallbackConfig(secret=SecretStr(SECRET)).cookie_names
    assert names.state == "__Secure-coreason.state"
    assert names.nonce == "__Secure-coreason.nonce"
    assert names.pkce_code_verifier == "__Secure-coreason.pkce.code_verifier"


def test_cookie_names_insecure() -> None:
    names = CoreasonCallbackConfig(secret=SecretStr(SECRET), use_secure_cookies=False, cookie_prefix="app").cookie_names
    assert names.state == "app.state"


def test_endpoint_static_params_merge_url_query() -> None:
    endpoint = EndpointConfig(url="https://api.example.com/me?fields=id,email&v=1", params={"v": "2"})
    assert endpoint.base_url == "https://api.example.com/me"
    assert endpoint.static_params == {"fields": "id,email", "v": "2"}


def test_endpoint_without_url() -> None:
    endpoint = EndpointConfig()
    assert endpoint.base_url is None
    assert endpoint.static_params == {}


def test_provider_version_selects_legacy(oauth1_provider: ProviderConfig, oidc_provider: ProviderConfig) -> None:
    assert oauth1_provider.is_legacy is True
    assert oidc_provider.is_legacy is False


def test_provider_legacy_requires_urls() -> None:
    with pytest.raises(ValidationError, match="requires access_token_url and profile_url"):
        ProviderConfig(id="chirp", name="Chirp", version="1.0", client_id="k", callback_url="https://app/cb")


def test_provider_rejects_bad_version() -> None:
    with pytest.raises(ValidationError, match="Invalid protocol version"):
        ProviderConfig(id="x", name="X", version="v2", client_id="k", callback_url="https://app/cb")


def test_provider_is_frozen(oidc_provider: ProviderConfig) -> None:
    with pytest.raises(ValidationError):
        oidc_provider.client_id = "other"  # type: ignore[misc]


def test_client_secret_value(oidc_provider: ProviderConfig) -> None:
    assert oidc_provider.client_secret_value == "client-secret"
    public = ProviderConfig(id="p", name="P", client_id="k", callback_url="https://app/cb")
    assert public.client_secret_value is None


def test_default_profile_maps_oidc_claims() -> None:
    mapped = default_profile({"sub": "1", "name": "Ada", "email": "a@x.io", "picture": "https://img"}, None)
    assert mapped == {"id": "1", "name": "Ada", "email": "a@x.io", "image": "https://img"}
