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

"""Immutable publish configuration.

Wraps the flat, npmrc-shaped configuration mapping that the caller has
already loaded (from ``.npmrc`` files, environment, CLI flags, ...) and
exposes typed, validated accessors for the keys publishkit reads.

Key Concepts (ELI5)::

    ┌─────────────────────────┬────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                           │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Flat mapping            │ One big dict. Per-registry settings use   │
    │                         │ "//host/path/:field" keys, global ones    │
    │                         │ use plain names like "registry".          │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ PublishConfig           │ A read-only view of that dict with typed  │
    │                         │ getters. Passed explicitly everywhere.    │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Validation              │ Bad values (timeout="soon") raise a       │
    │                         │ PK-CONFIG-INVALID-VALUE error on access.  │
    └─────────────────────────┴────────────────────────────────────────────┘

Supported top-level keys::

    registry         = "https://registry.npmjs.org/"
    @scope:registry  = "https://npm.example.com/"
    scope            = "@scope"
    tag              = "latest"
    access           = "public"            # or "restricted"
    provenance       = true
    provenance-file  = "bundle.sigstore"   # also provenanceFile
    timeout          = 30                  # seconds
    retry            = 0
    otp, user-agent, auth-type, npm-session, npm-command, headers

Per-registry keys (``{registryKey}:{field}``)::

    //registry.example.com/:_authToken = "..."
    //registry.example.com/:_auth      = "base64(user:pass)"
    //registry.example.com/:username   = "user"
    //registry.example.com/:_password  = "base64(pass)"
    //registry.example.com/:certfile   = "/path/cert.pem"
    //registry.example.com/:keyfile    = "/path/key.pem"
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from publishkit.errors import E, UsageError

#: Public npm registry, used when nothing else is configured.
DEFAULT_REGISTRY = 'https://registry.npmjs.org/'

#: Default dist-tag applied to a published version.
DEFAULT_TAG = 'latest'

#: Default request timeout in seconds.
DEFAULT_TIMEOUT = 30.0

#: Default retry budget for registry requests.
DEFAULT_RETRY = 0

#: Default access level for a published package.
DEFAULT_ACCESS = 'public'

ALLOWED_ACCESS: frozenset[str] = frozenset({'public', 'restricted'})

_TRUE_STRINGS = frozenset({'true', '1', 'yes'})
_FALSE_STRINGS = frozenset({'false', '0', 'no', ''})


def _invalid(key: str, value: object, expected: str) -> UsageError:
    return UsageError(
        code=E.CONFIG_INVALID_VALUE,
        message=f"'{key}' must be {expected}, got {value!r}",
        hint=f'Check the value of {key} in your npm configuration.',
    )


@dataclass(frozen=True)
class PublishConfig:
    """Read-only view of a flat publish configuration mapping.

    Attributes:
        values: The underlying mapping. Wrapped in a
            :class:`types.MappingProxyType` so stages cannot mutate it.
    """

    values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze the wrapped mapping."""
        object.__setattr__(self, 'values', MappingProxyType(dict(self.values)))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None = None, **overrides: Any) -> PublishConfig:  # noqa: ANN401
        """Build a config from a mapping plus keyword overrides."""
        merged = dict(values or {})
        merged.update(overrides)
        return cls(values=merged)

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __getitem__(self, key: str) -> Any:  # noqa: ANN401
        return self.values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def get(self, key: str, default: Any = None) -> Any:  # noqa: ANN401
        """Return the raw value for ``key``."""
        return self.values.get(key, default)

    def _first(self, *keys: str) -> Any:  # noqa: ANN401
        for key in keys:
            value = self.values.get(key)
            if value is not None:
                return value
        return None

    @property
    def registry(self) -> str | None:
        """The default registry URL, if configured."""
        return self.values.get('registry') or None

    @property
    def scope(self) -> str | None:
        """The configured default scope, normalized to ``@scope``."""
        scope = self.values.get('scope')
        if not scope:
            return None
        return '@' + str(scope).lstrip('@')

    def scope_registry(self, scope: str | None) -> str | None:
        """Return the ``@scope:registry`` value for ``scope``, if any."""
        if not scope:
            return None
        return self.values.get('@' + scope.lstrip('@') + ':registry') or None

    @property
    def tag(self) -> str:
        """Dist-tag applied to the published version."""
        return str(self.values.get('tag') or DEFAULT_TAG)

    @property
    def access(self) -> str:
        """Package access level, ``public`` (default) or ``restricted``."""
        value = self.values.get('access')
        if value is None:
            return DEFAULT_ACCESS
        if value not in ALLOWED_ACCESS:
            raise _invalid('access', value, "'public' or 'restricted'")
        return str(value)

    @property
    def provenance(self) -> bool:
        """Whether to generate a signed provenance statement."""
        value = self.values.get('provenance', False)
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise _invalid('provenance', value, 'a boolean')

    @property
    def provenance_file(self) -> str | None:
        """Path to a pre-built provenance bundle to verify and attach."""
        return self._first('provenance-file', 'provenanceFile') or None

    @property
    def timeout(self) -> float:
        """Request timeout in seconds."""
        value = self.values.get('timeout')
        if value is None:
            return DEFAULT_TIMEOUT
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise _invalid('timeout', value, 'a number of seconds') from None
        if timeout <= 0:
            raise _invalid('timeout', value, 'a positive number of seconds')
        return timeout

    @property
    def retry(self) -> int:
        """Number of retries for transient network failures."""
        value = self.values.get('retry')
        if value is None:
            return DEFAULT_RETRY
        if isinstance(value, bool):
            raise _invalid('retry', value, 'a non-negative integer')
        try:
            retry = int(value)
        except (TypeError, ValueError):
            raise _invalid('retry', value, 'a non-negative integer') from None
        if retry < 0:
            raise _invalid('retry', value, 'a non-negative integer')
        return retry

    @property
    def otp(self) -> str | None:
        """One-time password for two-factor publishing."""
        return self._first('otp')

    @property
    def user_agent(self) -> str | None:
        """User agent sent with registry requests."""
        return self._first('user-agent', 'userAgent')

    @property
    def auth_type(self) -> str | None:
        """Value for the ``npm-auth-type`` header."""
        return self._first('auth-type', 'authType')

    @property
    def session(self) -> str | None:
        """Value for the ``npm-session`` header."""
        return self._first('npm-session', 'npmSession')

    @property
    def command(self) -> str | None:
        """Value for the ``npm-command`` header."""
        return self._first('npm-command', 'npmCommand')

    @property
    def headers(self) -> dict[str, str]:
        """Extra headers merged into every registry request."""
        value = self.values.get('headers') or {}
        if not isinstance(value, Mapping):
            raise _invalid('headers', value, 'a mapping of header names to values')
        return {str(k): str(v) for k, v in value.items()}


__all__ = [
    'ALLOWED_ACCESS',
    'DEFAULT_ACCESS',
    'DEFAULT_REGISTRY',
    'DEFAULT_RETRY',
    'DEFAULT_TAG',
    'DEFAULT_TIMEOUT',
    'PublishConfig',
]
