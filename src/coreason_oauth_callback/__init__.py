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
OAuth 1.0a / OAuth 2.0 / OpenID Connect callback handling: anti-forgery checks,
token exchange, profile retrieval and account normalization.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .check_cookies import CheckKind, SignedCheckCookies
from .config import CoreasonCallbackConfig, EndpointConfig, ProviderConfig
from .exceptions import (
    CallbackExchangeError,
    CoreasonCallbackError,
    ProviderDeniedError,
    TokenExchangeError,
)
from .handler import OAuthCallbackHandler
from .models import Account, CallbackRequest, CallbackResult, Cookie, Profile, TokenSet

__all__ = [
    "Account",
    "CallbackExchangeError",
    "CallbackRequest",
    "CallbackResult",
    "CheckKind",
    "Cookie",
    "CoreasonCallbackConfig",
    "CoreasonCallbackError",
    "EndpointConfig",
    "OAuthCallbackHandler",
    "Profile",
    "ProviderConfig",
    "ProviderDeniedError",
    "SignedCheckCookies",
    "TokenExchangeError",
    "TokenSet",
]
