# Copyright 2025 The Sigstore Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Test fixtures to share between tests. Not part of the public API."""

import shutil
import uuid

import pytest

from artifact_trust._store import db
from artifact_trust._verifying import certificates
from tests import test_support


@pytest.fixture
def session_factory():
    """A fresh in-memory database."""
    return db.create_session_factory("sqlite://")


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid.uuid4()


@pytest.fixture
def repository_id():
    return uuid.uuid4()


@pytest.fixture
def artifact_id():
    return uuid.uuid4()


@pytest.fixture
def sample_artifact_file(tmp_path_factory):
    """An artifact stored as a single file."""
    file = tmp_path_factory.mktemp("artifact") / "file"
    file.write_bytes(test_support.KNOWN_ARTIFACT_TEXT)
    return file


@pytest.fixture
def certificate_authority():
    """A root CA key and certificate."""
    return test_support.make_ca()


@pytest.fixture
def chain_verifier(certificate_authority):
    _, ca_certificate = certificate_authority
    return certificates.ChainVerifier([ca_certificate])


@pytest.fixture
def fake_log():
    return test_support.FakeLog()


@pytest.fixture(scope="session")
def pgp_signer(tmp_path_factory):
    """A GnuPG signing key. Tests using it are skipped without GnuPG."""
    if shutil.which("gpg") is None:
        pytest.skip("GnuPG is not installed")
    return test_support.PGPSigner(tmp_path_factory.mktemp("gnupg"))
