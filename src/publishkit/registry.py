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

"""npm registry endpoints used while publishing.

The :class:`NpmRegistry` talks to an npm-compatible registry API
(https://registry.npmjs.org by default).

API endpoints used:

- ``GET /-/package/{package}/visibility``: whether an existing package
  is public. Returns ``{"public": true|false}``; 404 for packages that
  do not exist yet (or that the caller cannot see).

- ``PUT /{package}``: publish a new version. The body is the full
  publish document (``dist-tags``, ``versions``, ``_attachments``).
  See: https://github.com/npm/registry/blob/main/docs/REGISTRY-API.md

Scoped packages (e.g. ``@acme/widget``) must be URL-encoded
as ``@acme%2Fwidget`` in the URL path.
"""

from __future__ import annotations

import ssl
from typing import Any

import httpx

from publishkit.auth import Credential
from publishkit.config import DEFAULT_REGISTRY, PublishConfig
from publishkit.errors import RegistryError
from publishkit.logging import get_logger
from publishkit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT, http_client, request_with_retry
from publishkit.package_spec import PackageSpec

log = get_logger('publishkit.registry')


def pick_registry(name: str, config: PublishConfig) -> str:
    """Choose the registry a package is published to.

    Order: the package scope's ``@scope:registry``, then the configured
    default ``scope``'s registry, then ``registry``, then the public
    npm registry.
    """
    registry = None
    if name.startswith('@') and '/' in name:
        registry = config.scope_registry(name.split('/', 1)[0])
    if not registry and config.scope:
        registry = config.scope_registry(config.scope)
    return registry or config.registry or DEFAULT_REGISTRY


def build_headers(credential: Credential, config: PublishConfig) -> dict[str, str]:
    """Headers sent with every registry request.

    Unset values are dropped. ``headers`` from the configuration are
    merged last and win over the computed ones.
    """
    headers: dict[str, str | None] = {
        'user-agent': config.user_agent,
        'npm-auth-type': config.auth_type,
        'npm-scope': config.scope,
        'npm-session': config.session,
        'npm-command': config.command,
        'npm-otp': config.otp,
        'authorization': credential.authorization_header(),
    }
    headers.update(config.headers)
    return {k: str(v) for k, v in headers.items() if v is not None}


def client_ssl_context(credential: Credential) -> ssl.SSLContext | bool:
    """Return an SSL context presenting the credential's client certificate.

    Returns ``True`` (default verification, no client certificate) when
    the credential carries none.
    """
    if not (credential.certfile and credential.keyfile):
        return True
    ctx = ssl.create_default_context()
    ctx.load_cert_chain(certfile=credential.certfile, keyfile=credential.keyfile)
    return ctx


def _registry_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get('error'):
        return str(body['error'])
    return None


class NpmRegistry:
    """Client for the npm registry endpoints a publish needs.

    Args:
        base_url: Registry URL, with or without a trailing slash.
        headers: Headers sent with every request (see :func:`build_headers`).
        timeout: HTTP request timeout in seconds.
        retry: Retries for transient failures (429, 5xx, transport errors).
        verify: TLS verification setting or client-certificate SSL context.
        transport: Optional transport, used by tests to stub the network.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_REGISTRY,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry: int = 0,
        verify: ssl.SSLContext | bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with the registry base URL and request settings."""
        self._base_url = base_url.rstrip('/')
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._retry = retry
        self._verify = verify
        self._transport = transport

    @property
    def base_url(self) -> str:
        """Registry URL without a trailing slash."""
        return self._base_url

    def package_url(self, spec: PackageSpec) -> str:
        """``PUT`` target for ``spec``."""
        return f'{self._base_url}/{spec.escaped_name}'

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:  # noqa: ANN401
        async with http_client(
            pool_size=DEFAULT_POOL_SIZE,
            timeout=self._timeout,
            headers=self._headers,
            verify=self._verify,
            transport=self._transport,
        ) as client:
            return await request_with_retry(client, method, url, max_retries=self._retry, **kwargs)

    async def visibility(self, spec: PackageSpec) -> dict[str, Any]:
        """Fetch the visibility record of ``spec``'s package.

        A 404 means the package is new (or hidden) and is reported as
        ``{'public': False}``.

        Raises:
            RegistryError: For any other non-success response.
        """
        url = f'{self._base_url}/-/package/{spec.escaped_name}/visibility'
        response = await self._request('GET', url)
        if response.status_code == 404:
            log.debug('visibility_not_found', package=spec.name)
            return {'public': False}
        if not response.is_success:
            raise RegistryError(
                _registry_message(response) or f'Failed to fetch visibility of `{spec.name}`',
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            body = {}
        visibility = body if isinstance(body, dict) else {}
        log.debug('visibility_fetched', package=spec.name, public=bool(visibility.get('public')))
        return visibility

    async def put_package(self, spec: PackageSpec, document: dict[str, Any]) -> httpx.Response:
        """Send the publish document for ``spec``.

        Raises:
            RegistryError: If the registry rejects the publish. The
                message is the registry's ``error`` field verbatim.
        """
        url = self.package_url(spec)
        log.info('registry_put', package=spec.name, version=spec.version, registry=self._base_url)
        response = await self._request('PUT', url, json=document)
        if not response.is_success:
            message = _registry_message(response) or f'Failed to publish: `{spec.raw}`'
            log.error(
                'registry_rejected',
                package=spec.name,
                version=spec.version,
                status=response.status_code,
            )
            raise RegistryError(message, status_code=response.status_code)
        return response


__all__ = [
    'NpmRegistry',
    'build_headers',
    'client_ssl_context',
    'pick_registry',
]
