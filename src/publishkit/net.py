# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""HTTP utilities for publishkit.

Provides a managed :class:`httpx.AsyncClient` and a bounded retry helper.
Every registry request is limited by the configured ``timeout`` and
``retry`` budget; exhausting either surfaces as a
:class:`~publishkit.errors.NetworkError` instead of hanging.

Usage::

    from publishkit.net import http_client, request_with_retry

    async with http_client(timeout=config.timeout) as client:
        response = await request_with_retry(client, 'GET', url, max_retries=config.retry)
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Final

import httpx

from publishkit.errors import E, NetworkError
from publishkit.logging import get_logger

log = get_logger('publishkit.net')

DEFAULT_POOL_SIZE: Final[int] = 4
DEFAULT_TIMEOUT: Final[float] = 30.0

RETRY_BACKOFF_BASE: Final[float] = 1.0

# HTTP status codes that trigger a retry.
RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

# Transport failures that trigger a retry.
RETRYABLE_EXCEPTIONS: Final[tuple[type[Exception], ...]] = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)


@asynccontextmanager
async def http_client(
    *,
    pool_size: int = DEFAULT_POOL_SIZE,
    timeout: float = DEFAULT_TIMEOUT,
    headers: dict[str, str] | None = None,
    verify: ssl.SSLContext | bool = True,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncGenerator[httpx.AsyncClient]:
    """Create a managed async HTTP client.

    Args:
        pool_size: Maximum number of connections in the pool.
        timeout: Request timeout in seconds.
        headers: Optional default headers.
        verify: TLS verification setting, or an SSL context carrying a
            client certificate.
        transport: Optional transport, used by tests to stub the network.

    Yields:
        An :class:`httpx.AsyncClient` instance.
    """
    limits = httpx.Limits(
        max_connections=pool_size,
        max_keepalive_connections=pool_size,
    )
    async with httpx.AsyncClient(
        limits=limits,
        timeout=httpx.Timeout(timeout),
        headers=headers or {},
        verify=verify,
        transport=transport,
        follow_redirects=True,
    ) as client:
        yield client


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 0,
    backoff_base: float = RETRY_BACKOFF_BASE,
    **kwargs: object,
) -> httpx.Response:
    """Make an HTTP request, retrying transient failures.

    Retries on 429, 5xx and transport errors with exponential backoff.
    Any other response, success or not, is returned to the caller.

    Args:
        client: The httpx async client to use.
        method: HTTP method.
        url: Request URL.
        max_retries: Retries after the first attempt.
        backoff_base: Base delay in seconds for exponential backoff.
        **kwargs: Passed to ``client.request()``.

    Returns:
        The last :class:`httpx.Response`. A retryable status on the
        final attempt is returned as-is so the caller can surface the
        registry's message.

    Raises:
        NetworkError: If the final attempt failed at the transport level.
    """
    response: httpx.Response | None = None

    for attempt in range(max_retries + 1):
        last = attempt == max_retries
        delay = backoff_base * (2**attempt)
        try:
            response = await client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except RETRYABLE_EXCEPTIONS as exc:
            if last:
                raise NetworkError(
                    code=E.NETWORK_FAILED,
                    message=f'{method} {url} failed after {attempt + 1} attempt(s): {exc!r}',
                    hint='Check connectivity to the registry, or raise the timeout/retry settings.',
                ) from exc
            log.warning(
                'http_retry_error',
                url=url,
                error=repr(exc),
                attempt=attempt + 1,
                delay=delay,
            )
            await asyncio.sleep(delay)
            continue

        if response.status_code not in RETRYABLE_STATUS_CODES or last:
            return response

        log.warning(
            'http_retry',
            url=url,
            status=response.status_code,
            attempt=attempt + 1,
            delay=delay,
        )
        await asyncio.sleep(delay)

    # max_retries >= 0 guarantees at least one attempt.
    msg = 'request_with_retry: no attempts were made'
    raise RuntimeError(msg)


__all__ = [
    'DEFAULT_POOL_SIZE',
    'DEFAULT_TIMEOUT',
    'RETRYABLE_EXCEPTIONS',
    'RETRYABLE_STATUS_CODES',
    'http_client',
    'request_with_retry',
]
