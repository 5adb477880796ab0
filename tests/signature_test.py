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
import uuid

import pytest

from artifact_trust import errors
from artifact_trust import signature as signature_lib


Status = signature_lib.VerificationStatus
Outcome = signature_lib.VerificationOutcome


def _signature(payload):
    return signature_lib.ArtifactSignature(
        tenant_id=uuid.uuid4(),
        artifact_id=uuid.uuid4(),
        repository_id=uuid.uuid4(),
        signature_format=signature_lib.SignatureFormat.BINARY,
        signature_data=b"sig",
        payload=payload,
        signature_id=uuid.uuid4(),
    )


def _result(**kwargs):
    return signature_lib.VerificationResult(
        verified=False,
        status=Status.PENDING,
        verification_method="test",
        **kwargs,
    )


class TestVerificationStatus:
    def test_only_pending_is_not_terminal(self):
        assert not Status.PENDING.is_terminal
        assert all(s.is_terminal for s in Status if s != Status.PENDING)

    @pytest.mark.parametrize("status", [s for s in Status if s.is_terminal])
    def test_pending_to_terminal_and_back(self, status):
        assert Status.can_transition(Status.PENDING, status)
        assert Status.can_transition(status, Status.PENDING)

    def test_no_terminal_to_terminal(self):
        assert not Status.can_transition(Status.VALID, Status.REVOKED)
        assert not Status.can_transition(Status.INVALID, Status.VALID)

    def test_no_pending_to_pending(self):
        assert not Status.can_transition(Status.PENDING, Status.PENDING)


class TestArtifactSignature:
    @pytest.mark.parametrize(
        "payload, signature_type",
        [
            (signature_lib.CosignPayload(), signature_lib.SignatureType.COSIGN),
            (signature_lib.PGPPayload(), signature_lib.SignatureType.PGP),
            (
                signature_lib.SigstorePayload(),
                signature_lib.SignatureType.SIGSTORE,
            ),
        ],
    )
    def test_type_follows_payload(self, payload, signature_type):
        assert _signature(payload).signature_type == signature_type

    def test_payload_accessor(self):
        payload = signature_lib.PGPPayload(key_id="0123456789ABCDEF")

        assert _signature(payload).pgp is payload

    def test_payload_accessor_of_another_scheme(self):
        signature = _signature(signature_lib.PGPPayload())

        with pytest.raises(errors.ContractViolation, match="not cosign"):
            signature.cosign

    def test_starts_pending(self):
        signature = _signature(signature_lib.CosignPayload())

        assert signature.status == Status.PENDING
        assert not signature.verification.verified


class TestVerificationResult:
    def test_fail_keeps_enrichment(self):
        result = _result(signer_identity="release@example.com")
        result.trusted_signer = True

        result.fail(
            Status.UNTRUSTED,
            signature_lib.ErrorCode.UNTRUSTED_KEY,
            "key is not trusted",
        )

        assert not result.verified
        assert not result.trusted_signer
        assert result.status == Status.UNTRUSTED
        assert result.error_message == "key is not trusted"
        assert result.signer_identity == "release@example.com"
        assert result.completed

    def test_retryable_failure_is_not_completed(self):
        result = _result().fail(
            Status.UNTRUSTED,
            signature_lib.ErrorCode.LOG_UNAVAILABLE,
            "log unavailable",
            retryable=True,
        )

        assert not result.completed

    def test_succeed_clears_error(self):
        result = _result().fail(
            Status.INVALID, signature_lib.ErrorCode.INVALID_SIGNATURE, "bad"
        )

        result.succeed()

        assert result.verified
        assert result.status == Status.VALID
        assert result.error_code is None
        assert result.error_message == ""

    def test_verified_at_is_aware(self):
        assert _result().verified_at.tzinfo is not None


class TestVerificationOutcome:
    def test_success(self):
        assert Outcome.of(_result().succeed()) == Outcome.SUCCESS

    def test_failure(self):
        result = _result().fail(
            Status.INVALID, signature_lib.ErrorCode.INVALID_SIGNATURE, "bad"
        )

        assert Outcome.of(result) == Outcome.FAILURE

    def test_error(self):
        result = _result().fail(
            Status.UNTRUSTED,
            signature_lib.ErrorCode.LOG_UNAVAILABLE,
            "log unavailable",
            retryable=True,
        )

        assert Outcome.of(result) == Outcome.ERROR


class TestVerificationLog:
    def test_from_result(self):
        signature = _signature(signature_lib.PGPPayload())
        actor = uuid.uuid4()
        result = _result(
            verified_at=datetime.datetime(
                2025, 1, 1, tzinfo=datetime.timezone.utc
            )
        ).fail(
            Status.UNTRUSTED,
            signature_lib.ErrorCode.SIGNER_NOT_FOUND,
            "signer unknown",
        )

        log = signature_lib.VerificationLog.from_result(
            signature,
            result,
            verification_type=signature_lib.VerificationType.DOWNLOAD,
            actor_id=actor,
            client_ip="192.0.2.1",
        )

        assert log.tenant_id == signature.tenant_id
        assert log.artifact_id == signature.artifact_id
        assert log.signature_id == signature.signature_id
        assert log.verification_type == signature_lib.VerificationType.DOWNLOAD
        assert log.verification_result == Outcome.FAILURE
        assert log.verification_status == Status.UNTRUSTED
        assert log.error_code == "signer_not_found"
        assert log.error_message == "signer unknown"
        assert log.actor_id == actor
        assert log.client_ip == "192.0.2.1"
        assert log.user_agent == ""
        assert log.verified_at == result.verified_at
        assert log.log_id is None
