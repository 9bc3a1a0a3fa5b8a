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

r"""SLSA provenance statements for published packages.

Builds `in-toto attestation`_ statements describing **how** a package
tarball was built, then hands them to a signer that returns a Sigstore
bundle the registry stores next to the version.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ Plain-English                                  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Subject             │ The package the statement is about: its purl  │
    │                     │ plus the SHA-512 of the tarball.              │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ CI provider         │ Where the build ran. Each supported provider  │
    │                     │ is one variant that owns its predicate shape. │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Required variable   │ The env var that proves the job can mint an   │
    │                     │ OIDC token for keyless signing.               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Visibility check    │ Provenance is public. It is refused for a     │
    │                     │ package that is new or private unless access  │
    │                     │ is explicitly "public".                       │
    └─────────────────────┴────────────────────────────────────────────────┘

Provider variants::

    ┌─────────────────────────┬──────────────────────────────┬───────────────┐
    │ Variant                 │ Required env var             │ Predicate     │
    ├─────────────────────────┼──────────────────────────────┼───────────────┤
    │ GitHubActionsProvider   │ ACTIONS_ID_TOKEN_REQUEST_URL │ SLSA v1       │
    │ GitLabProvider          │ SIGSTORE_ID_TOKEN            │ SLSA v0.2     │
    │ UnsupportedProvider     │ (none, always refused)       │ n/a           │
    └─────────────────────────┴──────────────────────────────┴───────────────┘

All functions take the CI environment as an explicit mapping; nothing
here reads ``os.environ``.

.. _in-toto attestation: https://github.com/in-toto/attestation
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from publishkit.config import PublishConfig
from publishkit.errors import E, ProvenanceError
from publishkit.logging import get_logger
from publishkit.package_spec import PackageSpec
from publishkit.registry import NpmRegistry
from publishkit.signing import AttestationSigner
from publishkit.tarball import STRONG_ALGORITHM, IntegrityDigest

logger = get_logger(__name__)

# --- Constants ---

INTOTO_PAYLOAD_TYPE = 'application/vnd.in-toto+json'

IN_TOTO_STATEMENT_TYPE = 'https://in-toto.io/Statement/v1'

SLSA_PREDICATE_V02_TYPE = 'https://slsa.dev/provenance/v0.2'
SLSA_PREDICATE_V1_TYPE = 'https://slsa.dev/provenance/v1'

GITHUB_BUILDER_ID_PREFIX = 'https://github.com/actions/runner'
GITHUB_BUILD_TYPE = 'https://slsa-framework.github.io/github-actions-buildtypes/workflow/v1'

GITLAB_BUILD_TYPE = 'https://github.com/npm/cli/gitlab/v0alpha1'

TLOG_BASE_URL = 'https://search.sigstore.dev/'

# CI markers used only to name an unsupported provider in diagnostics.
_OTHER_CI_MARKERS: tuple[tuple[str, str], ...] = (
    ('CIRCLECI', 'CircleCI'),
    ('TRAVIS', 'Travis CI'),
    ('BUILDKITE', 'Buildkite'),
    ('JENKINS_URL', 'Jenkins'),
    ('TF_BUILD', 'Azure Pipelines'),
    ('BITBUCKET_BUILD_NUMBER', 'Bitbucket Pipelines'),
)

# Substrings marking CI variables that must not be copied into a
# public statement.
_SECRET_MARKERS: tuple[str, ...] = ('TOKEN', 'PASSWORD', 'SECRET', 'KEY')


# --- Data classes ---


@dataclass(frozen=True)
class Subject:
    """The artifact a provenance statement is about.

    Attributes:
        name: Package URL, e.g. ``pkg:npm/%40scope/name@1.0.0``.
        digest: Hex digests keyed by algorithm.
    """

    name: str
    digest: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_package(cls, spec: PackageSpec, digest: IntegrityDigest) -> Subject:
        """Subject for a package tarball, keyed by its SHA-512 digest."""
        return cls(name=spec.to_purl(), digest={STRONG_ALGORITHM: digest.hexdigest(STRONG_ALGORITHM)})

    def to_dict(self) -> dict[str, Any]:
        """Serialize to in-toto subject format."""
        return {'name': self.name, 'digest': dict(self.digest)}


def _statement(subjects: Sequence[Subject], predicate_type: str, predicate: dict[str, Any]) -> dict[str, Any]:
    return {
        '_type': IN_TOTO_STATEMENT_TYPE,
        'subject': [s.to_dict() for s in subjects],
        'predicateType': predicate_type,
        'predicate': predicate,
    }


@dataclass(frozen=True)
class GitHubActionsProvider:
    """GitHub Actions: in-toto Statement v1 with an SLSA v1 predicate."""

    name: str = 'GitHub Actions'
    required_env_var: str = 'ACTIONS_ID_TOKEN_REQUEST_URL'
    missing_token_message: str = (
        'Provenance generation in GitHub Actions requires "write" access to the "id-token" permission'
    )

    def build_statement(self, subjects: Sequence[Subject], env: Mapping[str, str]) -> dict[str, Any]:
        """Build the unsigned statement from GitHub Actions variables."""
        server = env.get('GITHUB_SERVER_URL', '')
        repo = env.get('GITHUB_REPOSITORY', '')

        # GITHUB_WORKFLOW_REF is "owner/repo/.github/workflows/x.yml@refs/heads/main".
        relative_ref = env.get('GITHUB_WORKFLOW_REF', '').replace(f'{repo}/', '', 1)
        workflow_path, _, workflow_ref = relative_ref.partition('@')

        predicate = {
            'buildDefinition': {
                'buildType': GITHUB_BUILD_TYPE,
                'externalParameters': {
                    'workflow': {
                        'ref': workflow_ref,
                        'repository': f'{server}/{repo}',
                        'path': workflow_path,
                    },
                },
                'internalParameters': {
                    'github': {
                        'event_name': env.get('GITHUB_EVENT_NAME'),
                        'repository_id': env.get('GITHUB_REPOSITORY_ID'),
                        'repository_owner_id': env.get('GITHUB_REPOSITORY_OWNER_ID'),
                    },
                },
                'resolvedDependencies': [
                    {
                        'uri': f'git+{server}/{repo}@{env.get("GITHUB_REF", "")}',
                        'digest': {'gitCommit': env.get('GITHUB_SHA')},
                    },
                ],
            },
            'runDetails': {
                'builder': {'id': f'{GITHUB_BUILDER_ID_PREFIX}/{env.get("RUNNER_ENVIRONMENT", "")}'},
                'metadata': {
                    'invocationId': (
                        f'{server}/{repo}/actions/runs/{env.get("GITHUB_RUN_ID", "")}'
                        f'/attempts/{env.get("GITHUB_RUN_ATTEMPT", "")}'
                    ),
                },
            },
        }
        return _statement(subjects, SLSA_PREDICATE_V1_TYPE, predicate)


@dataclass(frozen=True)
class GitLabProvider:
    """GitLab CI: in-toto Statement v1 with an SLSA v0.2 predicate."""

    name: str = 'GitLab CI'
    required_env_var: str = 'SIGSTORE_ID_TOKEN'
    missing_token_message: str = (
        'Provenance generation in GitLab CI requires "SIGSTORE_ID_TOKEN" with "sigstore" audience '
        'to be present in "id_tokens". For more info see:\n'
        'https://docs.gitlab.com/ee/ci/secrets/id_token_authentication.html'
    )

    def build_statement(self, subjects: Sequence[Subject], env: Mapping[str, str]) -> dict[str, Any]:
        """Build the unsigned statement from GitLab CI variables."""
        project_url = env.get('CI_PROJECT_URL', '')
        source = {
            'uri': f'git+{project_url}',
            'digest': {'sha1': env.get('CI_COMMIT_SHA')},
        }
        predicate = {
            'buildType': GITLAB_BUILD_TYPE,
            'builder': {'id': f'{project_url}/-/runners/{env.get("CI_RUNNER_ID", "")}'},
            'invocation': {
                'configSource': {**source, 'entryPoint': env.get('CI_JOB_NAME')},
                'parameters': ci_parameters(env),
                'environment': {
                    'name': env.get('CI_RUNNER_DESCRIPTION'),
                    'architecture': env.get('CI_RUNNER_EXECUTABLE_ARCH'),
                    'server': env.get('CI_SERVER_URL'),
                    'project': env.get('CI_PROJECT_PATH'),
                    'job': {'id': env.get('CI_JOB_ID')},
                    'pipeline': {
                        'id': env.get('CI_PIPELINE_ID'),
                        'ref': env.get('CI_CONFIG_PATH'),
                    },
                },
            },
            'metadata': {
                'buildInvocationId': env.get('CI_JOB_URL', ''),
                'completeness': {
                    'parameters': True,
                    'environment': True,
                    'materials': False,
                },
                'reproducible': False,
            },
            'materials': [source],
        }
        return _statement(subjects, SLSA_PREDICATE_V02_TYPE, predicate)


@dataclass(frozen=True)
class UnsupportedProvider:
    """Any other environment. Provenance generation is always refused."""

    name: str = 'unknown'
    required_env_var: str | None = None

    @property
    def missing_token_message(self) -> str:
        return f'Automatic provenance generation not supported for provider: {self.name}'

    def build_statement(self, subjects: Sequence[Subject], env: Mapping[str, str]) -> dict[str, Any]:
        """Raise :class:`ProvenanceError`; there is no predicate for this provider."""
        raise ProvenanceError(code=E.PROVENANCE_UNSUPPORTED_PROVIDER, message=self.missing_token_message)


CIProvider = GitHubActionsProvider | GitLabProvider | UnsupportedProvider


def detect_ci_provider(env: Mapping[str, str]) -> CIProvider:
    """Select the provider variant for the CI environment in ``env``."""
    if env.get('GITHUB_ACTIONS') == 'true':
        return GitHubActionsProvider()
    if env.get('GITLAB_CI'):
        return GitLabProvider()
    for marker, name in _OTHER_CI_MARKERS:
        if env.get(marker):
            return UnsupportedProvider(name=name)
    return UnsupportedProvider()


def ci_parameters(env: Mapping[str, str]) -> dict[str, str]:
    """GitLab CI variables recorded as build parameters.

    Only ``CI_*`` and ``GITLAB_*`` variables are kept, minus anything
    that looks like a credential.
    """
    return {
        k: v
        for k, v in sorted(env.items())
        if k.startswith(('CI_', 'GITLAB_')) and not any(m in k for m in _SECRET_MARKERS)
    }


# --- Operations ---


async def ensure_provenance_generation(
    registry: str,
    spec: PackageSpec,
    config: PublishConfig,
    env: Mapping[str, str],
    *,
    client: NpmRegistry | None = None,
) -> CIProvider:
    """Check that provenance can be generated before attempting it.

    Args:
        registry: Registry the package is published to.
        spec: Package being published.
        config: Publish configuration (``access``, ``timeout``, ``retry``).
        env: CI environment variables.
        client: Registry client for the visibility query. Built from
            ``registry`` and ``config`` when omitted.

    Returns:
        The detected provider.

    Raises:
        ProvenanceError: If the provider is unsupported, its identity
            token variable is missing, or the package is not public and
            ``access`` is not ``public``.
        RegistryError: If the visibility query fails with anything but 404.
    """
    provider = detect_ci_provider(env)
    if provider.required_env_var is None:
        raise ProvenanceError(code=E.PROVENANCE_UNSUPPORTED_PROVIDER, message=provider.missing_token_message)
    if not env.get(provider.required_env_var):
        raise ProvenanceError(code=E.PROVENANCE_MISSING_ID_TOKEN, message=provider.missing_token_message)

    access = config.access
    if access != 'public':
        client = client or NpmRegistry(base_url=registry, timeout=config.timeout, retry=config.retry)
        visibility = await client.visibility(spec)
        if not visibility.get('public'):
            raise ProvenanceError(
                code=E.PROVENANCE_NOT_PUBLIC,
                message="Can't generate provenance for new or private package, you must set `access` to public.",
                hint="Publish with access 'public'.",
            )

    logger.debug('provenance_preconditions_met', provider=provider.name, package=spec.name)
    return provider


def generate_provenance(
    subjects: Sequence[Subject],
    env: Mapping[str, str],
    *,
    signer: AttestationSigner,
) -> dict[str, Any]:
    """Build the statement for the current CI provider and sign it.

    Returns:
        The Sigstore bundle as a JSON-compatible dict.

    Raises:
        ProvenanceError: If the provider is unsupported or signing fails.
    """
    provider = detect_ci_provider(env)
    statement = provider.build_statement(subjects, env)
    payload = json.dumps(statement).encode('utf-8')
    bundle = signer.sign(payload, INTOTO_PAYLOAD_TYPE)
    logger.info(
        'provenance_generated',
        provider=provider.name,
        predicate_type=statement['predicateType'],
        subjects=[s.name for s in subjects],
    )
    return bundle


def transparency_log_url(bundle: Mapping[str, Any]) -> str | None:
    """Search URL for the bundle's first transparency-log entry, if any."""
    material = bundle.get('verificationMaterial') or {}
    entries = material.get('tlogEntries') or []
    if not entries:
        return None
    log_index = entries[0].get('logIndex')
    if log_index is None:
        return None
    return f'{TLOG_BASE_URL}?logIndex={log_index}'


__all__ = [
    'GITHUB_BUILDER_ID_PREFIX',
    'GITHUB_BUILD_TYPE',
    'GITLAB_BUILD_TYPE',
    'INTOTO_PAYLOAD_TYPE',
    'IN_TOTO_STATEMENT_TYPE',
    'SLSA_PREDICATE_V02_TYPE',
    'SLSA_PREDICATE_V1_TYPE',
    'TLOG_BASE_URL',
    'CIProvider',
    'GitHubActionsProvider',
    'GitLabProvider',
    'Subject',
    'UnsupportedProvider',
    'ci_parameters',
    'detect_ci_provider',
    'ensure_provenance_generation',
    'generate_provenance',
    'transparency_log_url',
]
