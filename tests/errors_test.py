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


"""Tests for publishkit.errors module."""

from __future__ import annotations

import dataclasses
import io

import pytest
from publishkit.errors import (
    ERRORS,
    E,
    ErrorCode,
    ErrorInfo,
    NetworkError,
    ProvenanceError,
    PublishKitError,
    RegistryError,
    UsageError,
    explain,
    render_error,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_all_codes_have_pk_prefix(self) -> None:
        """Every error code must start with 'PK-'."""
        for code in ErrorCode:
            assert code.value.startswith('PK-'), f'{code.name} does not start with PK-'

    def test_no_duplicate_values(self) -> None:
        """Error code values must be unique."""
        values = [c.value for c in ErrorCode]
        assert len(values) == len(set(values))

    def test_e_alias(self) -> None:
        """E should be an alias for ErrorCode."""
        assert E is ErrorCode
        assert E.AUTH_UNSATISFIABLE is ErrorCode.AUTH_UNSATISFIABLE


class TestErrorInfo:
    """Tests for ErrorInfo dataclass."""

    def test_frozen(self) -> None:
        """ErrorInfo instances should be immutable."""
        info = ErrorInfo(code=E.NETWORK_FAILED, message='test')
        with pytest.raises(dataclasses.FrozenInstanceError):
            info.message = 'changed'  # type: ignore[misc]

    def test_default_hint(self) -> None:
        """Hint should default to empty string."""
        assert ErrorInfo(code=E.NETWORK_FAILED, message='test').hint == ''


class TestPublishKitError:
    """Tests for PublishKitError and subclasses."""

    def test_message_includes_code(self) -> None:
        """str() should include the code and the message."""
        err = PublishKitError(code=E.NETWORK_FAILED, message='timed out')
        assert str(err) == '[PK-NETWORK-FAILED] timed out'

    def test_properties(self) -> None:
        """code, message and hint should come from the info card."""
        err = ProvenanceError(code=E.PROVENANCE_NOT_PUBLIC, message='nope', hint='set access')
        assert err.code is E.PROVENANCE_NOT_PUBLIC
        assert err.message == 'nope'
        assert err.hint == 'set access'

    def test_registry_error_keeps_message_and_status(self) -> None:
        """RegistryError should carry the registry text verbatim."""
        err = RegistryError('cannot publish over the previously published versions: 1.0.0.', status_code=403)
        assert err.code is E.REGISTRY_REJECTED
        assert err.message == 'cannot publish over the previously published versions: 1.0.0.'
        assert err.status_code == 403

    def test_usage_errors_hide_cause(self) -> None:
        """Usage and registry errors should not show the cause chain."""
        assert UsageError.show_cause is False
        assert RegistryError.show_cause is False
        assert NetworkError.show_cause is True


class TestExplain:
    """Tests for explain()."""

    def test_known_code(self) -> None:
        """Catalogued codes should render message and hint."""
        text = explain('PK-PROVENANCE-DIGEST-MISMATCH')
        assert text is not None
        assert 'digest does not match' in text
        assert 'Hint:' in text

    def test_uncatalogued_code(self) -> None:
        """Valid codes without a catalog entry get a placeholder."""
        assert explain('PK-NETWORK-FAILED') == 'PK-NETWORK-FAILED: No detailed explanation available.'

    def test_unknown_code(self) -> None:
        """Unknown codes should return None."""
        assert explain('PK-NOPE') is None

    def test_catalog_keys_match_codes(self) -> None:
        """Each catalog entry should be keyed by its own code."""
        for code, info in ERRORS.items():
            assert info.code is code


class TestRenderError:
    """Tests for render_error() plain-text output."""

    def test_plain_output_with_hint(self) -> None:
        """Non-TTY output should be compiler style."""
        out = io.StringIO()
        render_error(UsageError(code=E.USAGE_PRIVATE_PACKAGE, message='private', hint='remove it'), file=out)
        lines = out.getvalue().splitlines()
        assert lines[0] == 'error[PK-USAGE-PRIVATE-PACKAGE]: private'
        assert '  = hint: remove it' in lines

    def test_cause_shown_for_network_errors(self) -> None:
        """Errors that show causes should print the chained exception."""
        out = io.StringIO()
        try:
            try:
                raise ConnectionError('refused')
            except ConnectionError as exc:
                raise NetworkError(code=E.NETWORK_FAILED, message='PUT failed') from exc
        except NetworkError as err:
            render_error(err, file=out)
        assert '  = caused by: refused' in out.getvalue()

    def test_cause_hidden_for_usage_errors(self) -> None:
        """Usage errors should never print the cause chain."""
        out = io.StringIO()
        try:
            try:
                raise ValueError('internal detail')
            except ValueError as exc:
                raise UsageError(code=E.USAGE_INVALID_VERSION, message='bad') from exc
        except UsageError as err:
            render_error(err, file=out)
        assert 'internal detail' not in out.getvalue()
