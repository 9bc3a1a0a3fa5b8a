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

"""Structured error system for publishkit.

Every error has a unique ``PK-NAMED-KEY`` code, a human-readable message,
and an optional hint with a suggested fix.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorCode           │ A unique named ID like "PK-AUTH-UNSATISFIABLE"│
    │                     │ for each error. Readable at a glance.         │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorInfo           │ A bundle of code + message + hint. Like an    │
    │                     │ error card with a fix suggestion stapled on.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ PublishKitError     │ An exception you can raise. Carries the       │
    │                     │ error card so renderers can display it.       │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Subclasses          │ One per publish stage (usage, auth,           │
    │                     │ integrity, provenance, registry, network).    │
    └─────────────────────┴────────────────────────────────────────────────┘

Code categories::

    PK-CONFIG-*       Configuration value errors
    PK-USAGE-*        Caller misuse (private package, bad version, ...)
    PK-AUTH-*         Credential resolution errors
    PK-INTEGRITY-*    Unreadable or malformed tarballs
    PK-PROVENANCE-*   Attestation generation and verification errors
    PK-REGISTRY-*     Non-success registry responses
    PK-NETWORK-*      Timeouts and exhausted retries

Usage::

    from publishkit.errors import E, UsageError

    raise UsageError(
        code=E.USAGE_RESTRICTED_WITHOUT_SCOPE,
        message='You cannot publish a restricted package without a scope.',
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """Enumeration of all publishkit diagnostic codes."""

    # Configuration
    CONFIG_INVALID_VALUE = 'PK-CONFIG-INVALID-VALUE'

    # Usage
    USAGE_PRIVATE_PACKAGE = 'PK-USAGE-PRIVATE-PACKAGE'
    USAGE_MISSING_IDENTITY = 'PK-USAGE-MISSING-IDENTITY'
    USAGE_INVALID_VERSION = 'PK-USAGE-INVALID-VERSION'
    USAGE_INVALID_NAME = 'PK-USAGE-INVALID-NAME'
    USAGE_INVALID_TAG = 'PK-USAGE-INVALID-TAG'
    USAGE_RESTRICTED_WITHOUT_SCOPE = 'PK-USAGE-RESTRICTED-WITHOUT-SCOPE'

    # Credentials
    AUTH_INVALID_URI = 'PK-AUTH-INVALID-URI'
    AUTH_UNSATISFIABLE = 'PK-AUTH-UNSATISFIABLE'

    # Tarball integrity
    INTEGRITY_MALFORMED_TARBALL = 'PK-INTEGRITY-MALFORMED-TARBALL'

    # Provenance
    PROVENANCE_UNSUPPORTED_PROVIDER = 'PK-PROVENANCE-UNSUPPORTED-PROVIDER'
    PROVENANCE_MISSING_ID_TOKEN = 'PK-PROVENANCE-MISSING-ID-TOKEN'
    PROVENANCE_NOT_PUBLIC = 'PK-PROVENANCE-NOT-PUBLIC'
    PROVENANCE_SIGNING_FAILED = 'PK-PROVENANCE-SIGNING-FAILED'
    PROVENANCE_INVALID_BUNDLE = 'PK-PROVENANCE-INVALID-BUNDLE'
    PROVENANCE_SUBJECT_COUNT = 'PK-PROVENANCE-SUBJECT-COUNT'
    PROVENANCE_SUBJECT_MISMATCH = 'PK-PROVENANCE-SUBJECT-MISMATCH'
    PROVENANCE_DIGEST_MISMATCH = 'PK-PROVENANCE-DIGEST-MISMATCH'
    PROVENANCE_VERIFICATION_FAILED = 'PK-PROVENANCE-VERIFICATION-FAILED'

    # Registry / network
    REGISTRY_REJECTED = 'PK-REGISTRY-REJECTED'
    NETWORK_FAILED = 'PK-NETWORK-FAILED'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The ``PK-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    code: ErrorCode
    message: str
    hint: str = ''


class PublishKitError(Exception):
    """Base exception for all publishkit errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    #: Whether renderers should show the cause chain for this error.
    show_cause: bool = True

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def message(self) -> str:
        """The message without the code prefix."""
        return self.info.message

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


class UsageError(PublishKitError):
    """The caller asked for something that cannot be published."""

    show_cause = False


class AuthResolutionError(PublishKitError):
    """Credentials for a registry request could not be resolved."""


class IntegrityError(PublishKitError):
    """The packed artifact could not be read."""


class ProvenanceError(PublishKitError):
    """Provenance could not be generated or did not verify."""


class RegistryError(PublishKitError):
    """The registry answered with a non-success status.

    The message is the registry's own diagnostic, kept verbatim.

    Args:
        message: Error text reported by the registry.
        status_code: HTTP status of the failed response.
        hint: Optional suggestion for how to fix the error.
    """

    show_cause = False

    def __init__(self, message: str, *, status_code: int = 0, hint: str = '') -> None:
        """Initialize with the registry message and HTTP status."""
        super().__init__(E.REGISTRY_REJECTED, message, hint)
        self.status_code = status_code


class NetworkError(PublishKitError):
    """A request timed out or exhausted its retry budget."""


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.USAGE_RESTRICTED_WITHOUT_SCOPE: ErrorInfo(
        code=E.USAGE_RESTRICTED_WITHOUT_SCOPE,
        message='You cannot publish a restricted package without a scope.',
        hint="Rename the package to '@scope/name' or publish with access 'public'.",
    ),
    E.AUTH_UNSATISFIABLE: ErrorInfo(
        code=E.AUTH_UNSATISFIABLE,
        message='A forced credential override carries no usable credential.',
        hint='Provide a token, username and password, or certfile and keyfile.',
    ),
    E.PROVENANCE_MISSING_ID_TOKEN: ErrorInfo(
        code=E.PROVENANCE_MISSING_ID_TOKEN,
        message='The CI environment does not expose an OIDC identity token.',
        hint='GitHub Actions needs "permissions: id-token: write"; GitLab CI needs SIGSTORE_ID_TOKEN in id_tokens.',
    ),
    E.PROVENANCE_NOT_PUBLIC: ErrorInfo(
        code=E.PROVENANCE_NOT_PUBLIC,
        message="Can't generate provenance for new or private package.",
        hint="Set access to 'public'.",
    ),
    E.PROVENANCE_DIGEST_MISMATCH: ErrorInfo(
        code=E.PROVENANCE_DIGEST_MISMATCH,
        message='Provenance subject digest does not match the package.',
        hint='Regenerate the provenance bundle for the exact tarball being published.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"PK-AUTH-UNSATISFIABLE"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def render_error(exc: PublishKitError, *, file: TextIO | None = None) -> None:
    """Render an error in compiler style.

    Output format::

        error[PK-REGISTRY-REJECTED]: cannot publish over existing version
          |
          = hint: Bump the version before publishing.

    The cause chain is appended for errors whose class sets
    ``show_cause``; usage-class errors omit it.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr
    cause = exc.__cause__ if exc.show_cause else None

    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.info.message)
        console.print(
            f'[bold red]error[/bold red][bold red]\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]',
        )
        if exc.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}')
        if cause is not None:
            console.print(f'  [dim]=[/dim] [magenta]caused by[/magenta]: {rich_escape(str(cause))}')
        console.print()
    else:
        print(f'error[{exc.code.value}]: {exc.info.message}', file=out)  # noqa: T201 - CLI output
        if exc.hint:
            print('  |', file=out)  # noqa: T201 - CLI output
            print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - CLI output
        if cause is not None:
            print(f'  = caused by: {cause}', file=out)  # noqa: T201 - CLI output
        print(file=out)  # noqa: T201 - CLI output


__all__ = [
    'E',
    'ERRORS',
    'AuthResolutionError',
    'ErrorCode',
    'ErrorInfo',
    'IntegrityError',
    'NetworkError',
    'ProvenanceError',
    'PublishKitError',
    'RegistryError',
    'UsageError',
    'explain',
    'render_error',
]
