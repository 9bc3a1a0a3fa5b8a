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

r"""Async publish orchestrator for a single package version.

Each publish goes through:

    validate → pick registry → inspect → attest|verify → credential → PUT

Every stage before the PUT is local or read-only, so any failure aborts
with nothing to roll back. The PUT is the only durable effect.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Publish document    │ One JSON body holding the version manifest,   │
    │                     │ the dist-tag and the base64 tarball.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Attachment          │ A file embedded in the document: the tarball  │
    │                     │ and, optionally, the provenance bundle.       │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Attest vs. verify   │ provenance=true signs a new statement;        │
    │                     │ provenance-file checks a pre-built one.       │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Registry error      │ A rejected PUT surfaces the registry's own    │
    │                     │ message, e.g. "cannot publish over ...".      │
    └─────────────────────┴────────────────────────────────────────────────┘

Pipeline::

    ┌──────────┐   ┌──────────┐   ┌──────────────┐   ┌────────────┐   ┌──────┐
    │ validate │──▶│ inspect  │──▶│ attest or    │──▶│ resolve    │──▶│ PUT  │
    │ manifest │   │ tarball  │   │ verify       │   │ credential │   │      │
    └──────────┘   └──────────┘   └──────────────┘   └────────────┘   └──────┘

Usage::

    from publishkit.config import PublishConfig
    from publishkit.publisher import publish

    result = await publish(
        manifest=json.loads(Path('package.json').read_text()),
        tarball=Path('pkg-1.0.0.tgz').read_bytes(),
        config=PublishConfig.from_mapping(npmrc),
    )
"""

from __future__ import annotations

import base64
import copy
import json
import os
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from publishkit.auth import Credential, resolve_credential
from publishkit.config import PublishConfig
from publishkit.errors import E, UsageError
from publishkit.logging import get_logger
from publishkit.package_spec import PackageSpec, validate_tag
from publishkit.provenance import (
    Subject,
    ensure_provenance_generation,
    generate_provenance,
    transparency_log_url,
)
from publishkit.registry import NpmRegistry, build_headers, client_ssl_context, pick_registry
from publishkit.signing import BUNDLE_MEDIA_TYPE, AttestationSigner, BundleVerifier, SigstoreSigner, SigstoreVerifier
from publishkit.tarball import TarballContents, get_contents
from publishkit.verification import load_provenance_file, verify_provenance

logger = get_logger(__name__)

TARBALL_CONTENT_TYPE = 'application/octet-stream'


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a successful publish.

    Attributes:
        name: Package name.
        version: Published version.
        registry: Registry the version was published to.
        tag: Dist-tag pointed at the version.
        integrity: SRI integrity of the tarball.
        shasum: SHA-1 hex digest of the tarball.
        transparency_log_url: Search URL of the provenance log entry,
            when provenance was generated and logged.
        status_code: HTTP status of the PUT.
    """

    name: str
    version: str
    registry: str
    tag: str
    integrity: str
    shasum: str
    transparency_log_url: str | None = None
    status_code: int = 200


def validate_manifest(manifest: Mapping[str, Any], config: PublishConfig) -> tuple[PackageSpec, str]:
    """Check that ``manifest`` can be published with ``config``.

    Returns:
        ``(spec, tag)``: the validated identity and the dist-tag to set.

    Raises:
        UsageError: If the package is private, lacks a name or version,
            has an invalid name, version or tag, or is restricted
            without a scope.
    """
    if manifest.get('private'):
        raise UsageError(
            code=E.USAGE_PRIVATE_PACKAGE,
            message='You cannot publish a package marked as private.',
            hint='Remove "private": true from package.json to publish it.',
        )
    name = manifest.get('name')
    version = manifest.get('version')
    if not name or not version:
        raise UsageError(
            code=E.USAGE_MISSING_IDENTITY,
            message="Can't publish a package without a name or version in the package.json file.",
        )

    spec = PackageSpec.parse(str(name), str(version))
    tag = str(manifest.get('tag') or config.tag)
    validate_tag(spec.name, tag)

    if config.access == 'restricted' and not spec.scope:
        raise UsageError(
            code=E.USAGE_RESTRICTED_WITHOUT_SCOPE,
            message='You cannot publish a restricted package without a scope.',
            hint="Rename the package to '@scope/name' or publish with access 'public'.",
        )
    return spec, tag


def tarball_url(registry: str, name: str, version: str) -> str:
    """``dist.tarball`` URL for a version, always with the ``http`` scheme."""
    url = urllib.parse.urljoin(registry, f'{name}/-/{name}-{version}.tgz')
    if url.startswith('https://'):
        url = 'http://' + url[len('https://') :]
    return url


def build_metadata(
    spec: PackageSpec,
    manifest: Mapping[str, Any],
    tarball: bytes,
    contents: TarballContents,
    registry: str,
    *,
    access: str,
    tag: str,
    provenance_bundle: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Assemble the publish document sent in the registry PUT.

    Every key, filename and URL uses the validated ``spec`` identity, so
    a manifest version such as ``v1.0.0`` is published as ``1.0.0``.
    ``manifest`` is copied, never modified.
    """
    name = spec.name
    version = spec.version

    version_manifest = copy.deepcopy(dict(manifest))
    version_manifest['name'] = name
    version_manifest['version'] = version
    version_manifest['_id'] = f'{name}@{version}'
    dist = dict(version_manifest.get('dist') or {})
    dist['integrity'] = contents.integrity
    dist['shasum'] = contents.shasum
    dist['tarball'] = tarball_url(registry, name, version)
    version_manifest['dist'] = dist

    attachments: dict[str, dict[str, Any]] = {
        f'{name}-{version}.tgz': {
            'content_type': TARBALL_CONTENT_TYPE,
            'data': base64.b64encode(tarball).decode('ascii'),
            'length': len(tarball),
        },
    }
    if provenance_bundle is not None:
        serialized = json.dumps(provenance_bundle)
        attachments[f'{name}-{version}.sigstore'] = {
            'content_type': provenance_bundle.get('mediaType') or BUNDLE_MEDIA_TYPE,
            'data': serialized,
            'length': len(serialized),
        }

    return {
        '_id': name,
        'name': name,
        'description': manifest.get('description'),
        'dist-tags': {tag: version},
        'versions': {version: version_manifest},
        'access': access,
        '_attachments': attachments,
    }


async def publish(
    manifest: Mapping[str, Any],
    tarball: bytes,
    config: PublishConfig,
    *,
    env: Mapping[str, str] | None = None,
    signer: AttestationSigner | None = None,
    verifier: BundleVerifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    force_auth: Mapping[str, Any] | None = None,
) -> PublishResult:
    """Publish one package version.

    Args:
        manifest: The package descriptor (``package.json`` contents).
        tarball: Packed ``.tgz`` bytes.
        config: Publish configuration.
        env: CI environment for provenance. Defaults to ``os.environ``.
        signer: Provenance signer. Defaults to :class:`SigstoreSigner`.
        verifier: Bundle verifier for ``provenance-file``. Defaults to
            :class:`SigstoreVerifier`.
        transport: Optional HTTP transport, used by tests.
        force_auth: Credential override (see
            :func:`~publishkit.auth.resolve_credential`).

    Returns:
        A :class:`PublishResult`.

    Raises:
        UsageError: If the manifest or configuration is unusable.
        IntegrityError: If the tarball cannot be read.
        ProvenanceError: If provenance cannot be generated or verified.
        AuthResolutionError: If a forced override is unsatisfiable.
        RegistryError: If the registry rejects a request.
        NetworkError: If a request exhausts its timeout or retries.
    """
    ci_env: Mapping[str, str] = os.environ if env is None else env
    spec, tag = validate_manifest(manifest, config)
    access = config.access
    registry = pick_registry(spec.name, config)
    logger.info('publish_started', package=spec.name, version=spec.version, registry=registry, tag=tag)

    normalized = {**manifest, 'name': spec.name, 'version': spec.version}
    contents = get_contents(normalized, tarball)
    subject = Subject.for_package(spec, contents.digest)

    bundle: dict[str, Any] | None = None
    log_url: str | None = None
    if config.provenance:
        visibility_client = NpmRegistry(
            base_url=registry,
            headers=build_headers(Credential(), config),
            timeout=config.timeout,
            retry=config.retry,
            transport=transport,
        )
        await ensure_provenance_generation(registry, spec, config, ci_env, client=visibility_client)
        signer = signer or SigstoreSigner(identity_token=ci_env.get('SIGSTORE_ID_TOKEN', ''))
        bundle = generate_provenance([subject], ci_env, signer=signer)
        log_url = transparency_log_url(bundle)
        if log_url:
            logger.info('provenance_logged', url=log_url)
    elif config.provenance_file:
        bundle = verify_provenance(
            subject,
            load_provenance_file(config.provenance_file),
            verifier=verifier or SigstoreVerifier(),
        )

    credential = resolve_credential(registry, config, force_auth=force_auth, spec=spec)
    document = build_metadata(
        spec,
        manifest,
        tarball,
        contents,
        registry,
        access=access,
        tag=tag,
        provenance_bundle=bundle,
    )

    client = NpmRegistry(
        base_url=registry,
        headers=build_headers(credential, config),
        timeout=config.timeout,
        retry=config.retry,
        verify=client_ssl_context(credential),
        transport=transport,
    )
    response = await client.put_package(spec, document)

    logger.info(
        'publish_succeeded',
        package=spec.name,
        version=spec.version,
        tag=tag,
        status=response.status_code,
    )
    return PublishResult(
        name=spec.name,
        version=spec.version,
        registry=registry,
        tag=tag,
        integrity=contents.integrity,
        shasum=contents.shasum,
        transparency_log_url=log_url,
        status_code=response.status_code,
    )


__all__ = [
    'TARBALL_CONTENT_TYPE',
    'PublishResult',
    'build_headers',
    'build_metadata',
    'pick_registry',
    'publish',
    'tarball_url',
    'validate_manifest',
]
