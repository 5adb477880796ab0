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

"""Signature records and the results of verifying them.

An `ArtifactSignature` is a tagged union: a common envelope (ids, format, raw
signature bytes, verification state, timestamps) plus exactly one scheme
payload. The scheme is derived from the payload, so a Cosign record cannot
carry PGP fields and vice versa:

```python
signature = ArtifactSignature(
    tenant_id=tenant,
    artifact_id=artifact,
    repository_id=repository,
    signature_format=SignatureFormat.ASCII_ARMOR,
    signature_data=armored_signature,
    payload=PGPPayload(),
)
assert signature.signature_type == SignatureType.PGP
```

Records are immutable. The signature service stores a new
`VerificationState` after each verification; the signature bytes never
change.
"""

import dataclasses
import datetime
import enum
from typing import Any, ClassVar
import uuid

from artifact_trust import errors


class SignatureType(enum.Enum):
    COSIGN = "cosign"
    PGP = "pgp"
    SIGSTORE = "sigstore"


class SignatureFormat(enum.Enum):
    BINARY = "binary"
    ASCII_ARMOR = "ascii-armor"


class VerificationStatus(enum.Enum):
    """Verification status of a signature.

    `PENDING` is the only non-terminal state. A terminal state can only be
    left by an explicit re-verification, which goes through `PENDING` again.
    """

    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"
    UNTRUSTED = "untrusted"
    REVOKED = "revoked"

    @property
    def is_terminal(self) -> bool:
        return self is not VerificationStatus.PENDING

    @staticmethod
    def can_transition(
        current: "VerificationStatus", target: "VerificationStatus"
    ) -> bool:
        """Returns whether the state machine allows `current -> target`."""
        return current.is_terminal != target.is_terminal


class ErrorCode(enum.Enum):
    """Stable identifiers of verification failures, for audit queries."""

    MALFORMED_SIGNATURE = "malformed_signature"
    MALFORMED_CERTIFICATE = "malformed_certificate"
    MALFORMED_KEY = "malformed_key"
    INVALID_SIGNATURE = "invalid_signature"
    CERTIFICATE_EXPIRED = "certificate_expired"
    UNTRUSTED_CERTIFICATE = "untrusted_certificate"
    UNTRUSTED_KEY = "untrusted_key"
    SIGNER_NOT_FOUND = "signer_not_found"
    INSUFFICIENT_DATA = "insufficient_data"
    LOG_ENTRY_UNPROVEN = "log_entry_unproven"
    LOG_UNAVAILABLE = "log_unavailable"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    DIGEST_MISMATCH = "digest_mismatch"
    SIGNATURE_REVOKED = "signature_revoked"


@dataclasses.dataclass(frozen=True)
class CosignPayload:
    """Cosign material: a bundle, a signing certificate and a log reference."""

    signature_type: ClassVar[SignatureType] = SignatureType.COSIGN

    bundle: dict[str, Any] | None = None
    certificate: str | None = None
    signature_digest: str | None = None
    rekor_log_index: int | None = None
    rekor_uuid: str | None = None


@dataclasses.dataclass(frozen=True)
class PGPPayload:
    """PGP material as declared by the uploader."""

    signature_type: ClassVar[SignatureType] = SignatureType.PGP

    key_id: str | None = None
    key_fingerprint: str | None = None
    signature_version: int | None = None


@dataclasses.dataclass(frozen=True)
class SigstorePayload:
    """A Sigstore bundle, possibly wrapping an in-toto attestation."""

    signature_type: ClassVar[SignatureType] = SignatureType.SIGSTORE

    bundle: dict[str, Any] | None = None
    predicate_type: str | None = None
    attestation_payload: dict[str, Any] | None = None


SchemePayload = CosignPayload | PGPPayload | SigstorePayload


@dataclasses.dataclass(frozen=True)
class VerificationState:
    """The mutable part of a signature record."""

    verified: bool = False
    status: VerificationStatus = VerificationStatus.PENDING
    method: str = ""
    error: str = ""
    verified_at: datetime.datetime | None = None
    verified_by: uuid.UUID | None = None


@dataclasses.dataclass(frozen=True)
class ArtifactSignature:
    """One signature attached to one artifact."""

    tenant_id: uuid.UUID
    artifact_id: uuid.UUID
    repository_id: uuid.UUID
    signature_format: SignatureFormat
    signature_data: bytes
    payload: SchemePayload
    signature_id: uuid.UUID | None = None
    signature_algorithm: str = ""
    signer_identity: str = ""
    signer_fingerprint: str = ""
    public_key: str = ""
    public_key_url: str = ""
    verification: VerificationState = VerificationState()
    signed_at: datetime.datetime | None = None
    uploaded_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    @property
    def signature_type(self) -> SignatureType:
        return self.payload.signature_type

    @property
    def cosign(self) -> CosignPayload:
        return self._payload_as(CosignPayload)

    @property
    def pgp(self) -> PGPPayload:
        return self._payload_as(PGPPayload)

    @property
    def sigstore(self) -> SigstorePayload:
        return self._payload_as(SigstorePayload)

    @property
    def status(self) -> VerificationStatus:
        return self.verification.status

    def _payload_as(self, payload_type):
        if not isinstance(self.payload, payload_type):
            raise errors.ContractViolation(
                f"Signature {self.signature_id} is a "
                f"{self.signature_type.value} "
                f"signature, not {payload_type.signature_type.value}"
            )
        return self.payload


@dataclasses.dataclass
class VerificationResult:
    """The outcome of one verification attempt.

    A result with `retryable` set means the verification could not be
    completed (for example, the transparency log was unreachable); it is not a
    verdict on the signature.
    """

    verified: bool
    status: VerificationStatus
    verification_method: str
    error_message: str = ""
    error_code: ErrorCode | None = None
    retryable: bool = False
    signer_identity: str = ""
    signer_fingerprint: str = ""
    signature_algorithm: str = ""
    trusted_signer: bool = False
    certificate_subject: str = ""
    certificate_issuer: str = ""
    certificate_expiry: datetime.datetime | None = None
    rekor_uuid: str = ""
    rekor_log_index: int | None = None
    log_entry: dict[str, Any] | None = None
    verified_at: datetime.datetime = dataclasses.field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @property
    def completed(self) -> bool:
        return not self.retryable

    def fail(
        self,
        status: VerificationStatus,
        error_code: ErrorCode,
        error_message: str,
        *,
        retryable: bool = False,
    ) -> "VerificationResult":
        """Marks the result as failed, keeping the enrichment gathered."""
        self.verified = False
        self.trusted_signer = False
        self.status = status
        self.error_code = error_code
        self.error_message = error_message
        self.retryable = retryable
        return self

    def succeed(self) -> "VerificationResult":
        self.verified = True
        self.trusted_signer = True
        self.status = VerificationStatus.VALID
        self.error_code = None
        self.error_message = ""
        return self


class VerificationType(enum.Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    PERIODIC = "periodic"
    MANUAL = "manual"


class VerificationOutcome(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"

    @classmethod
    def of(cls, result: VerificationResult) -> "VerificationOutcome":
        if result.retryable:
            return cls.ERROR
        return cls.SUCCESS if result.verified else cls.FAILURE


@dataclasses.dataclass(frozen=True)
class VerificationLog:
    """An append-only audit record of one verification attempt."""

    tenant_id: uuid.UUID
    artifact_id: uuid.UUID
    signature_id: uuid.UUID | None
    verification_type: VerificationType
    verification_result: VerificationOutcome
    verification_status: VerificationStatus
    verification_method: str
    error_code: str = ""
    error_message: str = ""
    actor_id: uuid.UUID | None = None
    client_ip: str = ""
    user_agent: str = ""
    verified_at: datetime.datetime | None = None
    log_id: uuid.UUID | None = None

    @classmethod
    def from_result(
        cls,
        signature: ArtifactSignature,
        result: VerificationResult,
        *,
        verification_type: VerificationType = VerificationType.MANUAL,
        actor_id: uuid.UUID | None = None,
        client_ip: str = "",
        user_agent: str = "",
    ) -> "VerificationLog":
        return cls(
            tenant_id=signature.tenant_id,
            artifact_id=signature.artifact_id,
            signature_id=signature.signature_id,
            verification_type=verification_type,
            verification_result=VerificationOutcome.of(result),
            verification_status=result.status,
            verification_method=result.verification_method,
            error_code=result.error_code.value if result.error_code else "",
            error_message=result.error_message,
            actor_id=actor_id,
            client_ip=client_ip,
            user_agent=user_agent,
            verified_at=result.verified_at,
        )
