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

r"""Sigstore signing and verification of provenance statements.

Provides keyless DSSE signing of in-toto statements using
`sigstore-python`_, plus the matching bundle verifier.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ DSSE envelope       │ The statement bytes plus a signature over     │
    │                     │ them and their payload type.                  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Bundle              │ JSON holding the envelope, the short-lived    │
    │                     │ signing certificate and the Rekor log entry.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Identity token      │ The CI job's OIDC token. Fulcio swaps it for  │
    │                     │ a certificate bound to the workflow identity. │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Signer / Verifier   │ Protocols, so tests can swap in fakes and     │
    │                     │ never reach the public Sigstore instance.     │
    └─────────────────────┴────────────────────────────────────────────────┘

Signing flow::

    SigstoreSigner.sign(payload)
         │
         ├── IdentityToken(explicit or detect_credential())
         ├── SigningContext.from_trust_config(production)
         └── signer.sign_dsse(Statement(payload)) → bundle JSON

    SigstoreVerifier.verify(bundle)
         │
         └── Verifier.production().verify_dsse(bundle, UnsafeNoOp())

.. _sigstore-python: https://github.com/sigstore/sigstore-python
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from sigstore.dsse import Statement
from sigstore.models import Bundle, ClientTrustConfig
from sigstore.oidc import IdentityToken, detect_credential
from sigstore.sign import SigningContext
from sigstore.verify import Verifier
from sigstore.verify.policy import UnsafeNoOp

from publishkit.errors import E, ProvenanceError
from publishkit.logging import get_logger

logger = get_logger(__name__)

#: Media type of a serialized Sigstore bundle (v0.3).
BUNDLE_MEDIA_TYPE = 'application/vnd.dev.sigstore.bundle.v0.3+json'


@runtime_checkable
class AttestationSigner(Protocol):
    """Signs a statement payload and returns a Sigstore bundle."""

    def sign(self, payload: bytes, payload_type: str) -> dict[str, Any]:
        """Sign ``payload`` and return the bundle as a JSON-compatible dict."""
        ...


@runtime_checkable
class BundleVerifier(Protocol):
    """Cryptographically verifies a Sigstore bundle."""

    def verify(self, bundle: dict[str, Any]) -> None:
        """Raise if ``bundle`` fails signature or transparency-log checks."""
        ...


@dataclass(frozen=True)
class SigstoreSigner:
    """Keyless signer backed by the public Sigstore instance.

    Attributes:
        identity_token: Explicit OIDC identity token. If empty, the
            ambient CI credential is detected.
    """

    identity_token: str = ''

    def _token(self) -> IdentityToken:
        raw = self.identity_token or detect_credential()
        if not raw:
            raise ProvenanceError(
                code=E.PROVENANCE_MISSING_ID_TOKEN,
                message='No ambient OIDC credential detected for provenance signing.',
                hint='Run in a supported CI provider with id-token permission.',
            )
        return IdentityToken(raw)

    def sign(self, payload: bytes, payload_type: str) -> dict[str, Any]:
        """Sign an in-toto statement as a DSSE envelope.

        ``payload_type`` is fixed to the in-toto media type by
        sigstore-python and is only recorded in the log.

        Raises:
            ProvenanceError: If no identity token is available or
                signing fails.
        """
        token = self._token()
        try:
            ctx = SigningContext.from_trust_config(ClientTrustConfig.production())
            with ctx.signer(token) as signer:
                bundle = signer.sign_dsse(Statement(payload))
        except Exception as exc:  # noqa: BLE001
            raise ProvenanceError(
                code=E.PROVENANCE_SIGNING_FAILED,
                message=f'Failed to sign provenance statement: {exc}',
            ) from exc
        logger.info('provenance_signed', payload_type=payload_type, identity=token.identity)
        return json.loads(bundle.to_json())


@dataclass(frozen=True)
class SigstoreVerifier:
    """Verifies DSSE bundles against the public Sigstore instance.

    No identity policy is enforced; the subject is checked separately
    by :func:`publishkit.verification.verify_provenance`.
    """

    def verify(self, bundle: dict[str, Any]) -> None:
        """Verify the bundle's signature and transparency-log inclusion.

        Raises:
            ProvenanceError: If verification fails.
        """
        try:
            parsed = Bundle.from_json(json.dumps(bundle))
            Verifier.production().verify_dsse(parsed, UnsafeNoOp())
        except Exception as exc:  # noqa: BLE001
            raise ProvenanceError(
                code=E.PROVENANCE_VERIFICATION_FAILED,
                message=f'Provenance bundle failed verification: {exc}',
            ) from exc
        logger.info('provenance_bundle_verified')


__all__ = [
    'BUNDLE_MEDIA_TYPE',
    'AttestationSigner',
    'BundleVerifier',
    'SigstoreSigner',
    'SigstoreVerifier',
]
