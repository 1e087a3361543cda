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
Secure HTTP transport and bounded response readers for provider calls.

Provider URLs come from configuration, but discovery documents and redirects
can point anywhere, so every outbound request is pinned to a vetted public IP.
"""

import ipaddress
import json
import socket
from typing import Any

import anyio
import httpx

from coreason_oauth_callback.exceptions import CoreasonCallbackError, OversizedResponseError
from coreason_oauth_callback.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000


class SecurityError(CoreasonCallbackError):
    """Raised when a request targets a prohibited address."""


class SafeAsyncTransport(httpx.AsyncHTTPTransport):
    """
    HTTP transport that enforces DNS pinning to prevent SSRF / DNS rebinding.

    The hostname is resolved once, the resulting IP is checked against blocked
    ranges, and the connection is forced to that IP while the original Host
    header and SNI name are preserved for TLS verification.
    """

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        hostname = request.url.host

        try:
            literal_ip = ipaddress.ip_address(hostname)
        except ValueError:
            literal_ip = None

        if literal_ip is not None:
            self._validate_ip(literal_ip, hostname)
            return await super().handle_async_request(request)

        try:
            addr_infos = await anyio.to_thread.run_sync(
                socket.getaddrinfo, hostname, None, 0, socket.SOCK_STREAM
            )
        except socket.gaierror as e:
            logger.error(f"DNS resolution failed for {hostname}: {e}")
            raise SecurityError(f"DNS resolution failed for {hostname}") from e

        if not addr_infos:
            raise SecurityError(f"No IP address resolved for {hostname}")

        # Any blocked address in the answer rejects the whole host.
        target_ip: str | None = None
        for _, _, _, _, sockaddr in addr_infos:
            ip_str = sockaddr[0]
            try:
                ip_obj = ipaddress.ip_address(ip_str)
            except ValueError as e:
                raise SecurityError(f"Invalid IP address resolved for {hostname}: {ip_str}") from e
            self._validate_ip(ip_obj, hostname)
            if target_ip is None:
                target_ip = ip_str

        request.extensions["sni_hostname"] = hostname
        if "Host" not in request.headers:
            request.headers["Host"] = request.url.netloc.decode("ascii")
        request.url = request.url.copy_with(host=target_ip)

        logger.debug(f"DNS pinned: {hostname} -> {target_ip}")
        return await super().handle_async_request(request)

    def _validate_ip(self, ip_obj: Any, hostname: str) -> None:
        if (
            ip_obj.is_private
            or ip_obj.is_loopback
            or ip_obj.is_link_local
            or ip_obj.is_reserved
            or ip_obj.is_multicast
            or ip_obj.is_unspecified
        ):
            logger.warning(f"SSRF Protection: Blocked access to {hostname} ({ip_obj})")
            raise SecurityError(f"SSRF Protection: Blocked access to {hostname} ({ip_obj})")


async def _read_limited(response: httpx.Response) -> bytes:
    content_length = response.headers.get("Content-Length")
    if content_length:
        try:
            if int(content_length) > MAX_RESPONSE_BYTES:
                raise OversizedResponseError("Response too large")
        except ValueError:
            pass

    content = bytearray()
    async for chunk in response.aiter_bytes():
        content.extend(chunk)
        if len(content) > MAX_RESPONSE_BYTES:
            raise OversizedResponseError("Response too large")
    return bytes(content)


async def safe_fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    raise_for_status: bool = True,
    **kwargs: Any,
) -> tuple[int, bytes]:
    """
    Performs a request and reads at most MAX_RESPONSE_BYTES of the body.

    Returns:
        The status code and the raw body.

    Raises:
        httpx.HTTPError: On transport failures, or error statuses when `raise_for_status` is set.
        OversizedResponseError: If the body exceeds the limit.
        CoreasonCallbackError: For any other failure.
    """
    try:
        async with client.stream(method, url, **kwargs) as response:
            if raise_for_status:
                response.raise_for_status()
            return response.status_code, await _read_limited(response)
    except (httpx.HTTPError, CoreasonCallbackError):
        raise
    except Exception as e:
        raise CoreasonCallbackError(f"Failed to fetch {url}: {e}") from e


async def safe_text_fetch(client: httpx.AsyncClient, url: str, method: str = "GET", **kwargs: Any) -> str:
    """Like `safe_fetch`, decoding the body as UTF-8 text."""
    _, content = await safe_fetch(client, url, method=method, **kwargs)
    return content.decode("utf-8", errors="replace")


async def safe_json_fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    raise_for_status: bool = True,
    **kwargs: Any,
) -> Any:
    """
    Like `safe_fetch`, decoding the body as JSON.

    Raises:
        CoreasonCallbackError: If the body is not valid JSON.
    """
    _, content = await safe_fetch(client, url, method=method, raise_for_status=raise_for_status, **kwargs)
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CoreasonCallbackError(f"Invalid JSON response from {url}: {e}") from e
