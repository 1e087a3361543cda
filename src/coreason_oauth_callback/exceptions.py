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
Custom exceptions for the coreason-oauth-callback package.

Everything raised out of `OAuthCallbackHandler.handle` is a `CoreasonCallbackError`.
`ProfileNormalizationError` and its subclasses never leave the handler: they are
recorded on the result as a missing profile instead.
"""


class CoreasonCallbackError(Exception):
    """Base exception for all coreason-oauth-callback errors."""


class ProviderDeniedError(CoreasonCallbackError):
    """
    Raised when the provider redirects back with an `error` parameter
    (e.g. `access_denied` after the user declined consent).

    Attributes:
        error (str): The error code echoed by the provider.
        description (str | None): The optional `error_description`.
    """

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        message = f"Provider returned error: {error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message)


class CallbackExchangeError(CoreasonCallbackError):
    """
    Raised when the callback cannot be completed: anti-forgery check failure,
    token endpoint failure or profile retrieval failure. The underlying error
    is available as `__cause__`.
    """


class TokenExchangeError(CallbackExchangeError):
    """Raised when the token endpoint rejects the grant or cannot be reached."""


class ProfileFetchError(CallbackExchangeError):
    """Raised when the raw profile cannot be retrieved or parsed."""


class CheckVerificationError(CallbackExchangeError):
    """Raised when a state, nonce or PKCE check does not hold."""


class CookieVerificationError(CheckVerificationError):
    """Raised when a check cookie is present but its signature, kind or expiry is invalid."""


class IDTokenValidationError(CallbackExchangeError):
    """Raised when the ID token signature or claims are invalid."""


class ProfileNormalizationError(CoreasonCallbackError):
    """Base class for recoverable profile shape failures."""


class MalformedProfileError(ProfileNormalizationError):
    """Raised when the mapped profile carries no usable `id`."""


class ProfileMappingError(ProfileNormalizationError):
    """Raised when the provider's profile mapping hook itself fails."""


class OversizedResponseError(CoreasonCallbackError):
    """Raised when an HTTP response is too large."""
