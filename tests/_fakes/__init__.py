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

"""Shared test fakes for publishkit.

Provides in-memory tarballs, Sigstore-shaped bundles and fake
signer/verifier implementations so tests never reach the network.

Usage::

    from tests._fakes import FakeSigner, make_tarball

    data = make_tarball({'package/index.js': b'module.exports = 1'})
    signer = FakeSigner()
"""

from tests._fakes._signing import (
    FakeSigner as FakeSigner,
    FakeVerifier as FakeVerifier,
    make_bundle as make_bundle,
    make_statement as make_statement,
)
from tests._fakes._tarball import make_tarball as make_tarball

__all__ = [
    'FakeSigner',
    'FakeVerifier',
    'make_bundle',
    'make_statement',
    'make_tarball',
]
