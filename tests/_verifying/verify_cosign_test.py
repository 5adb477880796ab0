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

import base64
import datetime
from unittest import mock
import uuid

from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.x509 import oid
import pytest

from artifact_trust import errors
from artifact_trust import keys
from artifact_trust import signature as signature_lib
from artifact_trust._verifying import certificates
from artifact_trust._verifying import rekor
from artifact_trust._verifying import verify_cosign
from artifact_trust._verifying import verifying
from tests import test_support


Status = signature_lib.VerificationStatus
ErrorCode = signature_lib.ErrorCode

_ARTIFACT = verifying.Artifact.from_bytes(test_support.KNOWN_ARTIFACT_TEXT)
_TAMPERED = verifying.Artifact.from_bytes(test_support.ANOTHER_ARTIFACT_TEXT)
_UUID = "24296fb24b8ad77a" + "cd" * 32


def _cosign_signature(
    signature_data: bytes,
    *,
    certificate: str | None = None,
    rekor_uuid: str | None = None,
    public_key: str = "",
) -> signature_lib.ArtifactSignature:
    return signature_lib.ArtifactSignature(
        tenant_id=uuid.uuid4(),
        artifact_id=uuid.uuid4(),
        repository_id=uuid.uuid4(),
        signature_format=signature_lib.SignatureFormat.BINARY,
        signature_data=signature_data,
        payload=signature_lib.CosignPayload(
            certificate=certificate, rekor_uuid=rekor_uuid
        ),
        public_key=public_key,
    )


def _log_client(response=None, error=None):
    client = mock.Mock(spec=rekor.Client)
    if error is not None:
        client.get_entry.side_effect = error
    else:
        client.get_entry.return_value = rekor.LogEntry.from_response(response)
    return client


class _Keyless:
    """A keyless signature over the known artifact and its log entry."""

    def __init__(self, certificate_authority, fake_log, **leaf_options):
        ca_key, ca_certificate = certificate_authority
        self.key, certificate = test_support.make_leaf(
            ca_key, ca_certificate, **leaf_options
        )
        self.certificate = test_support.certificate_pem(certificate)
        self.signature = test_support.sign_blob(
            self.key, test_support.KNOWN_ARTIFACT_TEXT
        )
        self.fake_log = fake_log

    def response(self, **options):
        return self.fake_log.entry_response(
            self.signature,
            _ARTIFACT.sha256,
            self.certificate,
            uuid=_UUID,
            **options,
        )

    def record(self, signature_data=None, **options):
        options.setdefault("rekor_uuid", _UUID)
        return _cosign_signature(
            signature_data or self.signature,
            certificate=self.certificate,
            **options,
        )


@pytest.fixture
def keyless(certificate_authority, fake_log):
    return _Keyless(certificate_authority, fake_log)


@pytest.fixture
def verifier_for(fake_log, chain_verifier):
    def build(client, **options):
        options.setdefault("log_verifier", fake_log.verifier())
        options.setdefault("chain_verifier", chain_verifier)
        return verify_cosign.Verifier(
            log_client=client, clock=test_support.fixed_clock(), **options
        )

    return build


class TestKeylessVerification:
    def test_valid_certificate_and_proven_entry(self, keyless, verifier_for):
        client = _log_client(keyless.response())

        result = verifier_for(client).verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.VALID
        assert result.verified
        assert result.trusted_signer
        assert result.error_code is None
        assert result.verification_method == verify_cosign.METHOD_KEYLESS
        assert result.signer_identity == "signer@example.com"
        assert result.signer_fingerprint
        assert result.rekor_uuid == _UUID
        assert result.rekor_log_index == 1
        assert result.log_entry == keyless.response()
        assert result.certificate_expiry > test_support.NOW
        client.get_entry.assert_called_once_with(_UUID)

    def test_base64_encoded_signature(self, keyless, verifier_for):
        client = _log_client(keyless.response())
        encoded = base64.b64encode(keyless.signature)

        result = verifier_for(client).verify(
            keyless.record(encoded), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.VALID

    def test_expired_certificate_even_with_log_entry(
        self, certificate_authority, fake_log, verifier_for
    ):
        expired = _Keyless(
            certificate_authority,
            fake_log,
            not_before=test_support.NOW - datetime.timedelta(days=2),
            not_after=test_support.NOW - datetime.timedelta(days=1),
        )
        client = _log_client(expired.response())

        result = verifier_for(client).verify(
            expired.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.EXPIRED
        assert not result.verified
        assert not result.trusted_signer
        assert result.error_code == ErrorCode.CERTIFICATE_EXPIRED
        assert result.error_message == "certificate expired"
        assert result.signer_identity == "signer@example.com"
        client.get_entry.assert_not_called()

    def test_entry_signed_by_untrusted_log(self, keyless, verifier_for):
        client = _log_client(keyless.response())
        verifier = verifier_for(
            client, log_verifier=test_support.FakeLog().verifier()
        )

        result = verifier.verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.LOG_ENTRY_UNPROVEN
        assert result.error_message.startswith(
            "transparency log entry not proven"
        )

    def test_no_log_keys_configured(self, keyless, verifier_for):
        client = _log_client(keyless.response())

        result = verifier_for(client, log_verifier=None).verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.LOG_ENTRY_UNPROVEN

    def test_missing_log_entry(self, keyless, verifier_for):
        client = _log_client(error=rekor.UnprovenEntry("Rekor returned 404"))

        result = verifier_for(client).verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.LOG_ENTRY_UNPROVEN
        assert not result.retryable

    def test_log_unavailable_is_retryable(self, keyless, verifier_for):
        client = _log_client(
            error=errors.TransparencyLogUnavailable("connection refused")
        )

        result = verifier_for(client).verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert not result.verified
        assert result.status == Status.UNTRUSTED
        assert result.error_code == ErrorCode.LOG_UNAVAILABLE
        assert result.retryable
        assert not result.completed

    def test_untrusted_certificate_authority(self, keyless, verifier_for):
        client = _log_client(keyless.response())
        _, other_ca = test_support.make_ca("Other CA")
        verifier = verifier_for(
            client, chain_verifier=certificates.ChainVerifier([other_ca])
        )

        result = verifier.verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.UNTRUSTED
        assert result.error_code == ErrorCode.UNTRUSTED_CERTIFICATE
        client.get_entry.assert_not_called()

    def test_tls_server_certificate(
        self, certificate_authority, fake_log, verifier_for
    ):
        server = _Keyless(
            certificate_authority,
            fake_log,
            extended_key_usage=oid.ExtendedKeyUsageOID.SERVER_AUTH,
        )
        client = _log_client(server.response())

        result = verifier_for(client).verify(
            server.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.UNTRUSTED
        assert not result.trusted_signer
        assert result.error_code == ErrorCode.UNTRUSTED_CERTIFICATE

    def test_no_certificate_roots(self, keyless, verifier_for):
        client = _log_client(keyless.response())

        result = verifier_for(client, chain_verifier=None).verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.UNTRUSTED
        assert result.error_message == "no certificate roots configured"

    def test_tampered_artifact(self, keyless, verifier_for):
        client = _log_client(keyless.response())

        result = verifier_for(client).verify(
            keyless.record(), _TAMPERED, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.INVALID_SIGNATURE
        assert result.error_message == "signature verification failed"

    def test_entry_about_another_artifact(
        self, keyless, fake_log, verifier_for
    ):
        other_sha256 = "00" * 32
        response = fake_log.entry_response(
            keyless.signature, other_sha256, keyless.certificate, uuid=_UUID
        )

        result = verifier_for(_log_client(response)).verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.LOG_ENTRY_UNPROVEN
        assert "different artifact" in result.error_message

    def test_entry_logged_before_certificate_was_issued(
        self, keyless, verifier_for
    ):
        response = keyless.response(
            integrated_time=test_support.NOW - datetime.timedelta(hours=2)
        )

        result = verifier_for(_log_client(response)).verify(
            keyless.record(), _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_message == (
            "certificate was not valid when the entry was logged"
        )

    def test_malformed_certificate(self, verifier_for):
        record = _cosign_signature(
            b"signature", certificate="not a certificate", rekor_uuid=_UUID
        )

        result = verifier_for(None).verify(
            record, _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.MALFORMED_CERTIFICATE
        assert result.error_message.startswith("certificate parsing failed")

    def test_certificate_without_log_entry(self, keyless, verifier_for):
        result = verifier_for(None).verify(
            keyless.record(rekor_uuid=None),
            _ARTIFACT,
            keys.TrustContext.empty(),
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.INSUFFICIENT_DATA


class TestKeyVerification:
    @pytest.fixture
    def signing_key(self):
        return test_support.ec_key()

    def _trust(self, public_key: str, **options):
        key = verify_cosign.extract_key_info(
            public_key, uuid.uuid4(), trusted=True, **options
        )
        return keys.TrustContext.build([key], test_support.NOW)

    def test_trusted_key(self, signing_key):
        public_key = test_support.public_pem(signing_key)
        record = _cosign_signature(
            test_support.sign_blob(
                signing_key, test_support.KNOWN_ARTIFACT_TEXT
            ),
            public_key=public_key,
        )
        trust = self._trust(public_key, owner_email="keys@example.com")

        result = verify_cosign.Verifier().verify(record, _ARTIFACT, trust)

        assert result.status == Status.VALID
        assert result.trusted_signer
        assert result.verification_method == verify_cosign.METHOD_KEY
        assert result.signer_identity == "keys@example.com"
        assert result.signature_algorithm == "ECDSA-secp256r1"
        assert result.signer_fingerprint == trust.keys[0].fingerprint

    def test_identity_falls_back_to_fingerprint(self, signing_key):
        public_key = test_support.public_pem(signing_key)
        record = _cosign_signature(
            test_support.sign_blob(
                signing_key, test_support.KNOWN_ARTIFACT_TEXT
            ),
            public_key=public_key,
        )
        trust = self._trust(public_key)

        result = verify_cosign.Verifier().verify(record, _ARTIFACT, trust)

        assert result.status == Status.VALID
        assert result.signer_identity == trust.keys[0].fingerprint

    def test_key_not_in_trust_store(self, signing_key):
        public_key = test_support.public_pem(signing_key)
        record = _cosign_signature(
            test_support.sign_blob(
                signing_key, test_support.KNOWN_ARTIFACT_TEXT
            ),
            public_key=public_key,
        )

        result = verify_cosign.Verifier().verify(
            record, _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.UNTRUSTED
        assert result.error_code == ErrorCode.UNTRUSTED_KEY
        assert not result.trusted_signer

    def test_revoked_key_is_not_trusted(self, signing_key):
        public_key = test_support.public_pem(signing_key)
        record = _cosign_signature(
            test_support.sign_blob(
                signing_key, test_support.KNOWN_ARTIFACT_TEXT
            ),
            public_key=public_key,
        )

        result = verify_cosign.Verifier().verify(
            record, _ARTIFACT, self._trust(public_key, revoked=True)
        )

        assert result.status == Status.UNTRUSTED

    def test_wrong_signature(self, signing_key):
        public_key = test_support.public_pem(signing_key)
        record = _cosign_signature(
            test_support.sign_blob(
                signing_key, test_support.ANOTHER_ARTIFACT_TEXT
            ),
            public_key=public_key,
        )

        result = verify_cosign.Verifier().verify(
            record, _ARTIFACT, self._trust(public_key)
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.INVALID_SIGNATURE

    def test_malformed_key(self):
        record = _cosign_signature(b"signature", public_key="garbage")

        result = verify_cosign.Verifier().verify(
            record, _ARTIFACT, keys.TrustContext.empty()
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.MALFORMED_KEY

    def test_ed25519_key(self):
        signing_key = ed25519.Ed25519PrivateKey.generate()
        public_key = test_support.public_pem(signing_key)
        record = _cosign_signature(
            signing_key.sign(test_support.KNOWN_ARTIFACT_TEXT),
            public_key=public_key,
        )

        result = verify_cosign.Verifier().verify(
            record, _ARTIFACT, self._trust(public_key)
        )

        assert result.status == Status.VALID
        assert result.signature_algorithm == "Ed25519"

    def test_ed25519_needs_content(self):
        signing_key = ed25519.Ed25519PrivateKey.generate()
        public_key = test_support.public_pem(signing_key)
        record = _cosign_signature(
            signing_key.sign(test_support.KNOWN_ARTIFACT_TEXT),
            public_key=public_key,
        )

        result = verify_cosign.Verifier().verify(
            record,
            verifying.Artifact(_ARTIFACT.sha256),
            self._trust(public_key),
        )

        assert result.status == Status.INVALID


class TestContract:
    def test_no_verification_material(self):
        result = verify_cosign.Verifier().verify(
            _cosign_signature(b"signature"),
            _ARTIFACT,
            keys.TrustContext.empty(),
        )

        assert result.status == Status.INVALID
        assert result.error_code == ErrorCode.INSUFFICIENT_DATA
        assert result.error_message == (
            "insufficient data for Cosign verification"
        )

    def test_empty_signature(self):
        with pytest.raises(errors.ContractViolation, match="empty"):
            verify_cosign.Verifier().verify(
                _cosign_signature(b""), _ARTIFACT, keys.TrustContext.empty()
            )

    def test_other_scheme(self):
        record = signature_lib.ArtifactSignature(
            tenant_id=uuid.uuid4(),
            artifact_id=uuid.uuid4(),
            repository_id=uuid.uuid4(),
            signature_format=signature_lib.SignatureFormat.BINARY,
            signature_data=b"signature",
            payload=signature_lib.PGPPayload(),
        )

        with pytest.raises(errors.ContractViolation, match="cannot verify"):
            verify_cosign.Verifier().verify(
                record, _ARTIFACT, keys.TrustContext.empty()
            )


class TestExtractKeyInfo:
    def test_ec_key(self):
        signing_key = test_support.ec_key()
        tenant_id = uuid.uuid4()

        key = verify_cosign.extract_key_info(
            test_support.public_pem(signing_key), tenant_id, key_name="ci"
        )

        assert key.tenant_id == tenant_id
        assert key.key_type == keys.KeyType.COSIGN
        assert key.key_format == keys.KeyFormat.PEM
        assert key.key_name == "ci"
        assert key.algorithm == "ECDSA-secp256r1"
        assert key.key_size == 256
        assert key.key_id_short == key.fingerprint[-16:]
        assert key.fingerprint == verify_cosign.key_fingerprint(
            signing_key.public_key()
        )
        assert not key.trusted

    def test_garbage(self):
        with pytest.raises(errors.KeyParseError):
            verify_cosign.extract_key_info("garbage", uuid.uuid4())
