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
IDTokenValidator component for validating ID tokens returned by a code exchange.
"""

from typing import Any, cast

from authlib.jose import JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
)
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_oauth_callback.exceptions import CoreasonCallbackError, IDTokenValidationError
from coreason_oauth_callback.oidc_provider import IssuerMetadataCache
from coreason_oauth_callback.utils.logger import logger

tracer = trace.get_tracer(__name__)


class IDTokenValidator:
    """
    Validates ID token signatures against the provider JWKS and checks the
    `iss`, `aud`, `exp`, `iat` and (when enforced) `nonce` claims.

    Attributes:
        metadata (IssuerMetadataCache): Source of the issuer and JWKS.
        client_id (str): Expected audience.
        leeway (int): Acceptable clock skew in seconds.
    """

    def __init__(
        self,
        metadata: IssuerMetadataCache,
        client_id: str,
        allowed_algorithms: list[str],
        leeway: int = 0,
    ) -> None:
        self.metadata = metadata
        self.client_id = client_id
        self.leeway = leeway
        self.jwt = JsonWebToken(allowed_algorithms)

    def _claims_options(self, issuer: str | None, nonce: str | None) -> dict[str, Any]:
        options: dict[str, Any] = {
            "exp": {"essential": True},
            "iat": {"essential": True},
            "sub": {"essential": True},
            "aud": {"essential": True, "value": self.client_id},
        }
        if issuer:
            options["iss"] = {"essential": True, "value": issuer}
        if nonce is not None:
            options["nonce"] = {"essential": True, "value": nonce}
        return options

    async def validate(self, id_token: str, nonce: str | None = None) -> dict[str, Any]:
        """
        Validates the ID token.

        Emits an OpenTelemetry span `validate_id_token`.

        Args:
            id_token: The compact-serialized ID token.
            nonce: The nonce recovered from the nonce cookie, if enforced.

        Returns:
            dict[str, Any]: The validated claims.

        Raises:
            IDTokenValidationError: If the signature or any claim is invalid.
        """
        with tracer.start_as_current_span("validate_id_token") as span:
            try:
                metadata = await self.metadata.get_metadata()
                claims_options = self._claims_options(metadata.issuer, nonce)
                jwks = await self.metadata.get_jwks()

                def _decode(jwks_data: dict[str, Any]) -> Any:
                    jwt_any = cast("Any", self.jwt)
                    claims = jwt_any.decode(id_token.strip(), jwks_data, claims_options=claims_options)
                    claims.validate(leeway=self.leeway)
                    return claims

                try:
                    claims = _decode(jwks)
                except (ValueError, BadSignatureError):
                    # Unknown kid or bad signature may mean the provider rotated keys.
                    logger.info("ID token validation failed with cached keys, refreshing JWKS and retrying...")
                    span.add_event("refreshing_jwks")
                    jwks = await self.metadata.get_jwks(force_refresh=True)
                    claims = _decode(jwks)

                span.set_status(Status(StatusCode.OK))
                return dict(claims)

            except ExpiredTokenError as e:
                logger.warning("ID token rejected: expired")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise IDTokenValidationError(f"ID token has expired: {e}") from e
            except (InvalidClaimError, MissingClaimError) as e:
                logger.warning(f"ID token rejected: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise IDTokenValidationError(f"ID token claim check failed: {e}") from e
            except BadSignatureError as e:
                logger.error("ID token rejected: bad signature")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise IDTokenValidationError(f"Invalid ID token signature: {e}") from e
            except JoseError as e:
                logger.error(f"ID token rejected: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise IDTokenValidationError(f"ID token validation failed: {e}") from e
            except ValueError as e:
                # Authlib raises ValueError for an unknown kid or an unusable key set.
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise IDTokenValidationError(f"Invalid ID token signature or key not found: {e}") from e
            except CoreasonCallbackError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise IDTokenValidationError(f"Unable to validate ID token: {e}") from e
