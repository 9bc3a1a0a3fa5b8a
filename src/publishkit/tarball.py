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

r"""Packed tarball inspection and integrity digests.

Reads an npm-style ``.tgz`` (every entry lives under ``package/``) as a
stream and produces the file manifest plus the digests the registry
expects in ``dist.integrity`` (SHA-512, subresource-integrity format)
and ``dist.shasum`` (SHA-1 hex, kept for older clients).

Inspection flow::

    inspect_tarball(data)
         │
         ├── tarfile stream mode: one pass, no seeking
         │     ├── count entries, sum sizes
         │     ├── package/node_modules/<dep>/... → bundled {dep}
         │     └── strip "package/" from each path
         ├── hashlib over the raw bytes (sha1, sha512)
         └── sort entries by path
"""

from __future__ import annotations

import base64
import hashlib
import io
import tarfile
import zlib
from dataclasses import dataclass, field
from typing import IO, Any

from publishkit.errors import E, IntegrityError
from publishkit.logging import get_logger

logger = get_logger(__name__)

#: Every entry of a packed npm tarball lives under this directory.
PACKAGE_ROOT = 'package/'

#: Bundled dependencies live under this prefix.
BUNDLED_PREFIX = f'{PACKAGE_ROOT}node_modules/'

#: Collision-resistant algorithm the canonical integrity value uses.
STRONG_ALGORITHM = 'sha512'

#: Legacy algorithm kept for the ``shasum`` field.
LEGACY_ALGORITHM = 'sha1'

DIGEST_ALGORITHMS: tuple[str, ...] = (LEGACY_ALGORITHM, STRONG_ALGORITHM)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FileEntry:
    """One entry of the packed tarball.

    Attributes:
        path: Path with the leading ``package/`` removed.
        size: Entry size in bytes.
        mode: Unix permission bits.
    """

    path: str
    size: int
    mode: int


@dataclass(frozen=True)
class ArtifactManifest:
    """Files contained in a packed tarball.

    Attributes:
        entries: File entries, sorted by path.
        unpacked_size: Sum of entry sizes.
        entry_count: Number of entries.
        bundled: Distinct dependency names found under
            ``package/node_modules/``, sorted.
    """

    entries: tuple[FileEntry, ...] = ()
    unpacked_size: int = 0
    entry_count: int = 0
    bundled: tuple[str, ...] = ()

    @property
    def paths(self) -> list[str]:
        """Entry paths in manifest order."""
        return [e.path for e in self.entries]


@dataclass(frozen=True)
class IntegrityDigest:
    """Digests of the raw tarball bytes.

    Attributes:
        digests: Raw digest bytes keyed by algorithm name.
    """

    digests: dict[str, bytes] = field(default_factory=dict)

    @classmethod
    def from_bytes(cls, data: bytes, algorithms: tuple[str, ...] = DIGEST_ALGORITHMS) -> IntegrityDigest:
        """Hash ``data`` with each of ``algorithms``."""
        return cls(digests={alg: hashlib.new(alg, data).digest() for alg in algorithms})

    def hexdigest(self, algorithm: str = STRONG_ALGORITHM) -> str:
        """Hex digest for ``algorithm``."""
        return self.digests[algorithm].hex()

    def sri(self, algorithm: str = STRONG_ALGORITHM) -> str:
        """Subresource-integrity string, e.g. ``sha512-<base64>``."""
        return f'{algorithm}-{base64.b64encode(self.digests[algorithm]).decode("ascii")}'

    @property
    def integrity(self) -> str:
        """Canonical integrity value (strong algorithm, SRI format)."""
        return self.sri(STRONG_ALGORITHM)

    @property
    def shasum(self) -> str:
        """Legacy SHA-1 hex digest."""
        return self.hexdigest(LEGACY_ALGORITHM)

    def to_dict(self) -> dict[str, str]:
        """Hex digests keyed by algorithm."""
        return {alg: raw.hex() for alg, raw in sorted(self.digests.items())}


@dataclass(frozen=True)
class TarballContents:
    """Summary of a tarball about to be published.

    Attributes:
        id: ``name@version``.
        name: Package name.
        version: Package version.
        size: Packed size in bytes.
        filename: Conventional ``scope-name-version.tgz`` filename.
        manifest: File manifest.
        digest: Integrity digests.
    """

    id: str
    name: str
    version: str
    size: int
    filename: str
    manifest: ArtifactManifest
    digest: IntegrityDigest

    @property
    def unpacked_size(self) -> int:
        return self.manifest.unpacked_size

    @property
    def entry_count(self) -> int:
        return self.manifest.entry_count

    @property
    def integrity(self) -> str:
        return self.digest.integrity

    @property
    def shasum(self) -> str:
        return self.digest.shasum


def _drain(fileobj: IO[bytes] | None) -> None:
    # Short reads raise tarfile.ReadError.
    if fileobj is None:
        return
    while fileobj.read(_CHUNK_SIZE):
        pass


def inspect_tarball(data: bytes) -> tuple[ArtifactManifest, IntegrityDigest]:
    """Read a packed tarball and compute its manifest and digests.

    Args:
        data: Raw ``.tgz`` (or uncompressed ``.tar``) bytes.

    Returns:
        ``(manifest, digest)``.

    Raises:
        IntegrityError: If the bytes are not a readable tar stream.
    """
    entries: list[FileEntry] = []
    bundled: set[str] = set()
    unpacked_size = 0
    entry_count = 0

    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode='r|*') as archive:
            for member in archive:
                entry_count += 1
                unpacked_size += member.size
                path = member.name
                if path.startswith(BUNDLED_PREFIX) and path != BUNDLED_PREFIX:
                    bundled.add(path.split('/')[2])
                entries.append(
                    FileEntry(
                        path=path.removeprefix(PACKAGE_ROOT),
                        size=member.size,
                        mode=member.mode,
                    )
                )
                if member.isfile():
                    _drain(archive.extractfile(member))
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        raise IntegrityError(
            code=E.INTEGRITY_MALFORMED_TARBALL,
            message=f'Could not read packed tarball: {exc}',
            hint='Re-pack the package; the tarball is truncated or not a tar archive.',
        ) from exc

    digest = IntegrityDigest.from_bytes(data)
    entries.sort(key=lambda e: e.path)
    manifest = ArtifactManifest(
        entries=tuple(entries),
        unpacked_size=unpacked_size,
        entry_count=entry_count,
        bundled=tuple(sorted(bundled)),
    )
    logger.debug(
        'tarball_inspected',
        entries=entry_count,
        unpacked_size=unpacked_size,
        bundled=len(bundled),
        shasum=digest.shasum,
    )
    return manifest, digest


def tarball_filename(name: str, version: str) -> str:
    """Conventional local filename, e.g. ``scope-pkg-1.0.0.tgz``."""
    return f'{name.replace("@", "", 1).replace("/", "-", 1)}-{version}.tgz'


def get_contents(package: dict[str, Any], data: bytes) -> TarballContents:
    """Inspect ``data`` and attach the identity from ``package``.

    Args:
        package: The package descriptor (``package.json`` contents).
        data: Raw tarball bytes.
    """
    manifest, digest = inspect_tarball(data)
    name = str(package.get('name', ''))
    version = str(package.get('version', ''))
    contents = TarballContents(
        id=str(package.get('_id') or f'{name}@{version}'),
        name=name,
        version=version,
        size=len(data),
        filename=tarball_filename(name, version),
        manifest=manifest,
        digest=digest,
    )
    logger.info(
        'tarball_details',
        name=name,
        version=version,
        shasum=contents.shasum,
        integrity=f'{contents.integrity[:20]}[...]{contents.integrity[80:]}',
        total_files=len(manifest.entries),
        package_size=contents.size,
        unpacked_size=manifest.unpacked_size,
        bundled=list(manifest.bundled),
    )
    return contents


__all__ = [
    'BUNDLED_PREFIX',
    'DIGEST_ALGORITHMS',
    'LEGACY_ALGORITHM',
    'PACKAGE_ROOT',
    'STRONG_ALGORITHM',
    'ArtifactManifest',
    'FileEntry',
    'IntegrityDigest',
    'TarballContents',
    'get_contents',
    'inspect_tarball',
    'tarball_filename',
]
