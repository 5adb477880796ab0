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

import datetime
import logging

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509 import oid
import pytest

from artifact_trust._verifying import certificates
from tests import test_support


def _leaf_without_signing_usage(ca_key, ca_certificate):
    key = test_support.ec_key()
    return (
        x509.CertificateBuilder()
        .subject_name(
            x509.Name([x509.NameAttribute(oid.NameOID.COMMON_NAME, "server")])
        )
        .issuer_name(ca_certificate.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(test_support.NOW - datetime.timedelta(hours=1))
        .not_valid_after(test_support.NOW + datetime.timedelta(hours=1))
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None), critical=True
        )
        .sign(private_key=ca_key, algorithm=hashes.SHA256())
    )


class TestDescribe:
    def test_signing_certificate(self, certificate_authority):
        ca_key, ca_certificate = certificate_authority
        _, leaf = test_support.make_leaf(
            ca_key, ca_certificate, email="dev@example.com"
        )

        info = certificates.describe(leaf)

        assert info.email == "dev@example.com"
        assert info.identity == "dev@example.com"
        assert "Test Root CA" in info.issuer
        assert info.not_after == leaf.not_valid_after_utc
        assert not info.is_expired(test_support.NOW)
        assert info.is_expired(
            test_support.NOW + datetime.timedelta(minutes=10)
        )
        assert info.was_valid_at(test_support.INTEGRATED_AT)

    def test_identity_falls_back_to_common_name(self, certificate_authority):
        ca_key, ca_certificate = certificate_authority

        info = certificates.describe(
            _leaf_without_signing_usage(ca_key, ca_certificate)
        )

        assert info.email == ""
        assert info.uri == ""
        assert info.identity == "server"

    def test_load_certificate_round_trip(self, certificate_authority):
        _, ca_certificate = certificate_authority
        pem = test_support.certificate_pem(ca_certificate)

        assert certificates.load_certificate(pem) == ca_certificate
        assert certificates.load_certificate(pem.encode()) == ca_certificate

    @pytest.mark.parametrize(
        "material",
        [
            "",
            "garbage",
            "-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n",
        ],
    )
    def test_load_certificate_rejects_garbage(self, material):
        with pytest.raises(ValueError, match="Failed to parse certificate"):
            certificates.load_certificate(material)


class TestChainVerifier:
    def test_trusted_chain(self, certificate_authority, chain_verifier):
        ca_key, ca_certificate = certificate_authority
        _, leaf = test_support.make_leaf(ca_key, ca_certificate)

        chain_verifier.verify(leaf)

    def test_expired_leaf_still_chains(
        self, certificate_authority, chain_verifier
    ):
        ca_key, ca_certificate = certificate_authority
        _, leaf = test_support.make_leaf(
            ca_key,
            ca_certificate,
            not_before=test_support.NOW - datetime.timedelta(days=2),
            not_after=test_support.NOW - datetime.timedelta(days=1),
        )

        chain_verifier.verify(leaf)

    def test_other_root(self, certificate_authority):
        ca_key, ca_certificate = certificate_authority
        _, leaf = test_support.make_leaf(ca_key, ca_certificate)
        _, other_ca = test_support.make_ca("Other CA")

        with pytest.raises(ValueError, match="not trusted"):
            certificates.ChainVerifier([other_ca]).verify(leaf)

    def test_leaf_cannot_sign(self, certificate_authority, chain_verifier):
        ca_key, ca_certificate = certificate_authority
        leaf = _leaf_without_signing_usage(ca_key, ca_certificate)

        with pytest.raises(ValueError, match="cannot be used for signing"):
            chain_verifier.verify(leaf)

    def test_tls_server_leaf_cannot_sign(
        self, certificate_authority, chain_verifier
    ):
        ca_key, ca_certificate = certificate_authority
        _, leaf = test_support.make_leaf(
            ca_key,
            ca_certificate,
            extended_key_usage=oid.ExtendedKeyUsageOID.SERVER_AUTH,
        )

        with pytest.raises(ValueError, match="cannot be used for signing"):
            chain_verifier.verify(leaf)

    def test_requires_certificates(self):
        with pytest.raises(ValueError, match="At least one"):
            certificates.ChainVerifier([])

    def test_from_paths(self, certificate_authority, tmp_path):
        ca_key, ca_certificate = certificate_authority
        path = tmp_path / "root.pem"
        path.write_text(test_support.certificate_pem(ca_certificate))
        _, leaf = test_support.make_leaf(ca_key, ca_certificate)

        certificates.ChainVerifier.from_paths([path]).verify(leaf)

    def test_default_roots_do_not_trust_test_ca(self, certificate_authority):
        ca_key, ca_certificate = certificate_authority
        _, leaf = test_support.make_leaf(ca_key, ca_certificate)

        with pytest.raises(ValueError, match="not trusted"):
            certificates.ChainVerifier.from_paths().verify(leaf)

    def test_log_fingerprints(self, certificate_authority, caplog):
        ca_key, ca_certificate = certificate_authority
        _, leaf = test_support.make_leaf(ca_key, ca_certificate)

        with caplog.at_level(logging.INFO):
            certificates.ChainVerifier(
                [ca_certificate], log_fingerprints=True
            ).verify(leaf)

        fingerprint = ca_certificate.fingerprint(hashes.SHA256())
        expected = ":".join(f"{b:02X}" for b in fingerprint)
        assert f"[  init  ] sha256 Fingerprint: {expected}" in caplog.text
        assert "[ verify ]" in caplog.text
