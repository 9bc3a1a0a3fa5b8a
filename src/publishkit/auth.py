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

r"""Registry credential resolution.

Determines which credential from a flat, npmrc-shaped configuration
mapping authorizes a request to a registry URL.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ Plain-English                                  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Registry key        │ "//host/path/" with the scheme dropped. Used  │
    │                     │ as the prefix of per-registry config keys.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Candidate keys      │ The registry key and every shorter prefix of  │
    │                     │ it, longest first, down to "//host".          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Auth field          │ _authToken > _auth > username+_password >     │
    │                     │ certfile+keyfile, tested in that order.       │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Forced override     │ A caller-supplied mapping searched instead of │
    │                     │ the config, used raw if nothing matches.      │
    └─────────────────────┴────────────────────────────────────────────────┘

Lookup order for ``https://npm.example.com/org/team/``::

    //npm.example.com/org/team/    ← tested first
    //npm.example.com/org/team
    //npm.example.com/org/
    //npm.example.com/org
    //npm.example.com/
    //npm.example.com              ← tested last

When nothing matches and the default registry (``registry`` or the
package scope's ``@scope:registry``) lives on the same host, resolution
is retried against it. Otherwise the result is an anonymous credential:
public reads need no auth, and the registry rejects unauthenticated
writes with its own diagnostic.
"""

from __future__ import annotations

import base64
import re
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from publishkit.config import PublishConfig
from publishkit.errors import E, AuthResolutionError
from publishkit.logging import get_logger
from publishkit.package_spec import PackageSpec

logger = get_logger(__name__)

_NON_BASE64 = re.compile(r'[^A-Za-z0-9+/]')
_DEFAULT_PORTS = {'http': 80, 'https': 443}

#: Auth fields in priority order. Each entry is ``(auth_key, required_fields)``.
AUTH_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ('_authToken', ('_authToken',)),
    ('_auth', ('_auth',)),
    ('username', ('username', '_password')),
    ('certfile', ('certfile', 'keyfile')),
)


@dataclass(frozen=True)
class Credential:
    """Credential resolved for a registry request.

    At most one of ``token``, ``auth`` or ``cert``/``key`` is used to
    authorize a request; :meth:`authorization_header` picks in that
    order.

    Attributes:
        token: Bearer token.
        auth: Base64 ``user:password`` pair for the ``Basic`` scheme.
        is_basic_auth: ``True`` when ``auth`` was derived from a
            ``username``/``_password`` pair.
        cert: Client certificate contents (PEM).
        key: Client key contents (PEM).
        certfile: Path the client certificate was read from.
        keyfile: Path the client key was read from.
        registry_key: Registry key whose config satisfied the lookup.
        auth_key: Auth field that matched (``_authToken``, ``_auth``,
            ``username`` or ``certfile``).
        scope_auth_key: Registry key of a scope registry on another
            host, recorded when the lookup fell through to it.
    """

    token: str | None = None
    auth: str | None = None
    is_basic_auth: bool = False
    cert: str | None = None
    key: str | None = None
    certfile: str | None = None
    keyfile: str | None = None
    registry_key: str | None = None
    auth_key: str | None = None
    scope_auth_key: str | None = None

    @property
    def is_anonymous(self) -> bool:
        """``True`` when the credential carries nothing to authenticate with."""
        return not (self.token or self.auth or (self.cert and self.key))

    def authorization_header(self) -> str | None:
        """Return the ``authorization`` header value, if any."""
        if self.token:
            return f'Bearer {self.token}'
        if self.auth:
            return f'Basic {self.auth}'
        return None


def read_optional_file(path: str | Path) -> str | None:
    """Read a text file, returning ``None`` if it does not exist.

    Raises:
        OSError: For any failure other than a missing file.
    """
    try:
        return Path(path).read_text(encoding='utf-8')
    except FileNotFoundError:
        return None


def decode_password(password: str) -> str:
    """Decode a base64 ``_password`` leniently.

    Characters outside the base64 alphabet are skipped, URL-safe
    characters are accepted, missing padding is tolerated and invalid
    UTF-8 is replaced. Decoding never fails.
    """
    cleaned = _NON_BASE64.sub('', password.replace('-', '+').replace('_', '/'))
    if len(cleaned) % 4 == 1:
        cleaned = cleaned[:-1]
    cleaned += '=' * (-len(cleaned) % 4)
    return base64.b64decode(cleaned).decode('utf-8', errors='replace')


def _host(parsed: urllib.parse.SplitResult) -> str:
    host = parsed.hostname or ''
    if ':' in host:
        host = f'[{host}]'
    port = parsed.port
    if port is None or _DEFAULT_PORTS.get(parsed.scheme) == port:
        return host
    return f'{host}:{port}'


def build_credential(
    *,
    token: str | None = None,
    auth: str | None = None,
    username: str | None = None,
    password: str | None = None,
    certfile: str | None = None,
    keyfile: str | None = None,
    registry_key: str | None = None,
    auth_key: str | None = None,
    scope_auth_key: str | None = None,
) -> Credential:
    """Assemble a :class:`Credential` from raw configuration fields.

    ``password`` is stored base64-encoded in configuration. When only a
    username/password pair is present it is decoded and re-encoded as a
    ``Basic`` auth pair. Certificate and key files are read from disk;
    missing files leave both unset.

    Raises:
        OSError: If a certificate or key file exists but cannot be read.
    """
    is_basic_auth = False
    if not token and not auth and username and password:
        decoded = decode_password(password)
        auth = base64.b64encode(f'{username}:{decoded}'.encode()).decode('ascii')
        is_basic_auth = True

    cert = key = None
    cert_paths: tuple[str | None, str | None] = (None, None)
    if certfile and keyfile:
        cert_text = read_optional_file(certfile)
        key_text = read_optional_file(keyfile)
        if cert_text and key_text:
            cert, key = cert_text, key_text
            cert_paths = (certfile, keyfile)
        else:
            logger.warning('client_cert_missing', certfile=certfile, keyfile=keyfile)

    return Credential(
        token=token or None,
        auth=auth or None,
        is_basic_auth=is_basic_auth,
        cert=cert,
        key=key,
        certfile=cert_paths[0],
        keyfile=cert_paths[1],
        registry_key=registry_key,
        auth_key=auth_key,
        scope_auth_key=scope_auth_key,
    )


def registry_key_candidates(uri: str) -> list[str]:
    """Return the registry keys to test for ``uri``, longest first.

    Each step drops the last path segment, or the trailing slash when
    the key ends with one. The list ends with the bare ``//host``.

    The host is lowercased and any ``user:pass@`` userinfo is dropped.

    Raises:
        AuthResolutionError: If ``uri`` has no host or an invalid port.
    """
    parsed = urllib.parse.urlsplit(uri)
    try:
        host = _host(parsed)
    except ValueError as exc:
        raise AuthResolutionError(
            code=E.AUTH_INVALID_URI,
            message=f'Cannot resolve credentials for {uri!r}: {exc}',
        ) from exc
    if not host:
        raise AuthResolutionError(
            code=E.AUTH_INVALID_URI,
            message=f'Cannot resolve credentials for {uri!r}: not an absolute URL',
        )
    key = f'//{host}{parsed.path or "/"}'
    host_root = f'//{host}'
    candidates: list[str] = []
    while len(key) >= len(host_root):
        candidates.append(key)
        if key.endswith('/'):
            key = key[:-1]
        else:
            key = key[: key.rfind('/') + 1]
    return candidates


def find_auth_key(registry_key: str, values: Mapping[str, Any]) -> str | None:
    """Return the first auth field configured under ``registry_key``."""
    for auth_key, required in AUTH_FIELDS:
        if all(values.get(f'{registry_key}:{name}') for name in required):
            return auth_key
    return None


def match_registry_key(uri: str, values: Mapping[str, Any]) -> tuple[str, str] | None:
    """Find the longest registry key for ``uri`` that carries auth.

    Returns:
        ``(registry_key, auth_key)`` or ``None``.
    """
    for candidate in registry_key_candidates(uri):
        auth_key = find_auth_key(candidate, values)
        if auth_key:
            return candidate, auth_key
    return None


def _same_host(a: str, b: str) -> bool:
    try:
        return _host(urllib.parse.urlsplit(a)) == _host(urllib.parse.urlsplit(b))
    except ValueError:
        return False


def _default_registry(config: PublishConfig, spec: PackageSpec | None) -> str | None:
    scope_registry = config.scope_registry(spec.scope) if spec else None
    return scope_registry or config.registry


def _from_force_auth(force_auth: Mapping[str, Any]) -> Credential:
    token = force_auth.get('_authToken') or force_auth.get('token')
    username = force_auth.get('username')
    password = force_auth.get('_password') or force_auth.get('password')
    auth = force_auth.get('_auth') or force_auth.get('auth')
    certfile = force_auth.get('certfile')
    keyfile = force_auth.get('keyfile')
    if not (token or auth or (username and password) or (certfile and keyfile)):
        raise AuthResolutionError(
            code=E.AUTH_UNSATISFIABLE,
            message='Forced authentication was requested but no token, username/password or certfile/keyfile was given.',
            hint='Provide a token, username and password, or certfile and keyfile.',
        )
    return build_credential(
        token=token,
        auth=auth,
        username=username,
        password=password,
        certfile=certfile,
        keyfile=keyfile,
    )


def resolve_credential(
    uri: str,
    config: PublishConfig,
    *,
    force_auth: Mapping[str, Any] | None = None,
    spec: PackageSpec | None = None,
    _visited: frozenset[str] = frozenset(),
) -> Credential:
    """Resolve the credential that authorizes requests to ``uri``.

    Args:
        uri: Registry URL the request is sent to.
        config: Flat publish configuration.
        force_auth: Optional override mapping. When given it is searched
            instead of ``config``; if no registry key matches, its raw
            fields are used directly.
        spec: Package being published, used to pick a scope registry.

    Returns:
        The resolved :class:`Credential`. An anonymous credential is
        returned when nothing is configured for ``uri``.

    Raises:
        AuthResolutionError: If ``uri`` is not an absolute URL, or the
            forced override carries no usable credential.
    """
    if not uri:
        raise AuthResolutionError(code=E.AUTH_INVALID_URI, message='URI is required')

    values: Mapping[str, Any] = force_auth if force_auth is not None else config.values
    match = match_registry_key(uri, values)

    if force_auth is not None and match is None:
        credential = _from_force_auth(force_auth)
        logger.debug('credential_resolved', uri=uri, source='force_auth')
        return credential

    if match is None:
        registry = _default_registry(config, spec)
        if registry and registry != uri and registry not in _visited and _same_host(uri, registry):
            return resolve_credential(
                registry,
                config,
                spec=spec,
                _visited=_visited | {uri},
            )
        if registry and registry != config.registry:
            scope_match = match_registry_key(registry, config.values)
            logger.debug(
                'credential_resolved',
                uri=uri,
                source='scope_registry',
                scope_auth_key=scope_match[0] if scope_match else None,
            )
            return Credential(
                registry_key=scope_match[0] if scope_match else None,
                auth_key=scope_match[1] if scope_match else None,
                scope_auth_key=scope_match[0] if scope_match else None,
            )
        logger.debug('credential_resolved', uri=uri, source='anonymous')
        return Credential()

    registry_key, auth_key = match
    credential = build_credential(
        token=values.get(f'{registry_key}:_authToken'),
        auth=values.get(f'{registry_key}:_auth'),
        username=values.get(f'{registry_key}:username'),
        password=values.get(f'{registry_key}:_password'),
        certfile=values.get(f'{registry_key}:certfile'),
        keyfile=values.get(f'{registry_key}:keyfile'),
        registry_key=registry_key,
        auth_key=auth_key,
    )
    logger.debug('credential_resolved', uri=uri, registry_key=registry_key, auth_key=auth_key)
    return credential


__all__ = [
    'AUTH_FIELDS',
    'Credential',
    'build_credential',
    'decode_password',
    'find_auth_key',
    'match_registry_key',
    'read_optional_file',
    'registry_key_candidates',
    'resolve_credential',
]
