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


"""Tests for publishkit.package_spec module."""

from __future__ import annotations

import pytest
from publishkit.errors import E, UsageError
from publishkit.package_spec import (
    PackageSpec,
    clean_version,
    encode_package_name,
    validate_package_name,
    validate_tag,
)


class TestCleanVersion:
    """Tests for clean_version()."""

    @pytest.mark.parametrize(
        ('raw', 'expected'),
        [
            ('1.2.3', '1.2.3'),
            (' v1.2.3 ', '1.2.3'),
            ('=1.0.0-beta.1', '1.0.0-beta.1'),
            ('1.0.0+build.5', '1.0.0+build.5'),
        ],
    )
    def test_valid(self, raw: str, expected: str) -> None:
        """Valid versions should be normalized."""
        assert clean_version(raw) == expected

    @pytest.mark.parametrize('raw', ['1.2', 'latest', '01.2.3', ''])
    def test_invalid(self, raw: str) -> None:
        """Non-semver strings should return None."""
        assert clean_version(raw) is None


class TestEncodePackageName:
    """Tests for encode_package_name()."""

    def test_scoped(self) -> None:
        """The scope slash should be percent-encoded."""
        assert encode_package_name('@acme/widget') == '@acme%2Fwidget'

    def test_unscoped(self) -> None:
        """Unscoped names are returned as-is."""
        assert encode_package_name('left-pad') == 'left-pad'


class TestPackageSpec:
    """Tests for PackageSpec."""

    def test_parse_scoped(self) -> None:
        """Scoped specs expose scope, escaped name and raw form."""
        spec = PackageSpec.parse('@acme/widget', 'v2.0.0')
        assert spec.version == '2.0.0'
        assert spec.scope == '@acme'
        assert spec.escaped_name == '@acme%2Fwidget'
        assert spec.raw == '@acme/widget@2.0.0'

    def test_unscoped_has_no_scope(self) -> None:
        """Unscoped names have no scope."""
        assert PackageSpec.parse('widget', '1.0.0').scope is None

    def test_purl(self) -> None:
        """The purl should percent-encode the scope '@'."""
        assert PackageSpec.parse('@acme/widget', '1.0.0').to_purl() == 'pkg:npm/%40acme/widget@1.0.0'
        assert PackageSpec.parse('widget', '1.0.0').to_purl() == 'pkg:npm/widget@1.0.0'

    def test_invalid_version(self) -> None:
        """Bad versions raise with the original text quoted."""
        with pytest.raises(UsageError) as exc_info:
            PackageSpec.parse('widget', 'one')
        assert exc_info.value.code is E.USAGE_INVALID_VERSION
        assert exc_info.value.message == 'Invalid version number: `one`'


class TestValidatePackageName:
    """Tests for validate_package_name()."""

    @pytest.mark.parametrize('name', ['widget', '@acme/widget', 'a.b-c_d', 'x~y'])
    def test_valid(self, name: str) -> None:
        """Valid names should not raise."""
        validate_package_name(name)

    @pytest.mark.parametrize('name', ['', '.hidden', '_under', 'Caps', '@acme', '@/x', 'a b', 'x' * 215])
    def test_invalid(self, name: str) -> None:
        """Invalid names raise an invalid-name usage error."""
        with pytest.raises(UsageError) as exc_info:
            validate_package_name(name)
        assert exc_info.value.code is E.USAGE_INVALID_NAME


class TestValidateTag:
    """Tests for validate_tag()."""

    def test_valid(self) -> None:
        """Plain dist-tags are accepted."""
        validate_tag('widget', 'next')

    @pytest.mark.parametrize('tag', ['', 'a/b', 'has space', '1.0.0', 'v2.1.3'])
    def test_invalid(self, tag: str) -> None:
        """Tags that need encoding or look like versions are rejected."""
        with pytest.raises(UsageError) as exc_info:
            validate_tag('widget', tag)
        assert exc_info.value.code is E.USAGE_INVALID_TAG
