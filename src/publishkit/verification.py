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

"""Verification of pre-built provenance bundles.

A bundle supplied with ``provenance-file`` must describe exactly the
tarball being published. The checks run cheapest first and the
cryptographic verification last::

    bundle bytes
         │
         ├── JSON parse                  → "Invalid provenance provided"
         ├── dsseEnvelope.payload        → base64 → JSON statement
         ├── exactly one subject
         ├── subject name == purl
         ├── subject sha512 == tarball sha512
         └── BundleVerifier.verify()     → signature + transparency log

Every failure raises :class:`~publishkit.errors.ProvenanceError` and
aborts the publish.
"""

from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path
from typing import Any

from publishkit.errors import E, ProvenanceError
from publishkit.logging import get_logger
from publishkit.provenance import Subject
from publishkit.signing import BundleVerifier
from publishkit.tarball import STRONG_ALGORITHM

logger = get_logger(__name__)


def load_provenance_file(path: str | Path) -> bytes:
    """Read a provenance bundle from disk.

    Raises:
        ProvenanceError: If the file cannot be read.
    """
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise ProvenanceError(
            code=E.PROVENANCE_INVALID_BUNDLE,
            message=f'Invalid provenance provided: {exc}',
            hint='Check the provenance-file setting.',
        ) from exc


def extract_statement(bundle: dict[str, Any]) -> dict[str, Any]:
    """Decode the in-toto statement wrapped in a bundle's DSSE envelope.

    Raises:
        ProvenanceError: If the envelope or payload is missing or unreadable.
    """
    envelope = bundle.get('dsseEnvelope')
    payload = envelope.get('payload') if isinstance(envelope, dict) else None
    if not payload:
        raise ProvenanceError(
            code=E.PROVENANCE_INVALID_BUNDLE,
            message='No dsseEnvelope with payload found in sigstore bundle',
        )
    try:
        statement = json.loads(base64.b64decode(payload, validate=True).decode('utf-8'))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ProvenanceError(
            code=E.PROVENANCE_INVALID_BUNDLE,
            message=f'Failed to parse payload from dsseEnvelope: {exc}',
        ) from exc
    if not isinstance(statement, dict):
        raise ProvenanceError(
            code=E.PROVENANCE_INVALID_BUNDLE,
            message='Failed to parse payload from dsseEnvelope: statement is not an object',
        )
    return statement


def verify_provenance(
    subject: Subject,
    bundle_bytes: bytes | str,
    *,
    verifier: BundleVerifier,
) -> dict[str, Any]:
    """Check that a bundle attests exactly ``subject`` and is validly signed.

    Args:
        subject: Expected subject (package purl and tarball digest).
        bundle_bytes: Serialized Sigstore bundle.
        verifier: Cryptographic verifier for the bundle.

    Returns:
        The parsed bundle, ready to attach to the publish document.

    Raises:
        ProvenanceError: On any structural, subject, digest or
            signature failure.
    """
    try:
        bundle = json.loads(bundle_bytes)
    except ValueError as exc:
        raise ProvenanceError(
            code=E.PROVENANCE_INVALID_BUNDLE,
            message=f'Invalid provenance provided: {exc}',
        ) from exc
    if not isinstance(bundle, dict):
        raise ProvenanceError(
            code=E.PROVENANCE_INVALID_BUNDLE,
            message='Invalid provenance provided: bundle is not a JSON object',
        )

    statement = extract_statement(bundle)
    subjects = statement.get('subject') or []
    if not isinstance(subjects, list):
        raise ProvenanceError(
            code=E.PROVENANCE_INVALID_BUNDLE,
            message='Invalid provenance provided: statement subject is not a list',
        )
    if not subjects:
        raise ProvenanceError(
            code=E.PROVENANCE_SUBJECT_COUNT,
            message='No subject found in sigstore bundle payload',
        )
    if len(subjects) > 1:
        raise ProvenanceError(
            code=E.PROVENANCE_SUBJECT_COUNT,
            message='Found more than one subject in the sigstore bundle payload',
        )

    bundle_subject = subjects[0] if isinstance(subjects[0], dict) else {}
    bundle_name = bundle_subject.get('name')
    if bundle_name != subject.name:
        raise ProvenanceError(
            code=E.PROVENANCE_SUBJECT_MISMATCH,
            message=f'Provenance subject {bundle_name} does not match the package: {subject.name}',
        )
    digests = bundle_subject.get('digest')
    bundle_digest = digests.get(STRONG_ALGORITHM) if isinstance(digests, dict) else None
    if bundle_digest != subject.digest.get(STRONG_ALGORITHM):
        raise ProvenanceError(
            code=E.PROVENANCE_DIGEST_MISMATCH,
            message='Provenance subject digest does not match the package',
            hint='Regenerate the provenance bundle for the exact tarball being published.',
        )

    verifier.verify(bundle)
    logger.info('provenance_verified', subject=subject.name)
    return bundle


__all__ = [
    'extract_statement',
    'load_provenance_file',
    'verify_provenance',
]
