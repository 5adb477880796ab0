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

"""Relational schema of the artifact trust tables.

Every table carries `tenant_id`. Rows are only read through
`service.SignatureService`, which always filters on it.
"""

import datetime
from typing import Any
import uuid

from sqlalchemy import JSON
from sqlalchemy import Boolean
from sqlalchemy import DateTime
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import LargeBinary
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import TypeDecorator
from sqlalchemy import UniqueConstraint
from sqlalchemy import Uuid
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column


class UTCDateTime(TypeDecorator):
    """Timezone aware datetimes, stored as UTC on every backend.

    SQLite drops the timezone of stored values, so the UTC normalization is
    done here instead of relying on the database.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value} cannot be stored")
        return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class ArtifactSignatureRow(Base):
    """Signature model.

    Scheme specific columns are prefixed with the scheme name; only those
    matching `signature_type` are set.
    """

    __tablename__ = "artifact_signatures"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    signature_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    artifact_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    repository_id: Mapped[uuid.UUID] = mapped_column(Uuid)

    signature_type: Mapped[str] = mapped_column(String(50))
    signature_format: Mapped[str] = mapped_column(String(50))
    signature_data: Mapped[bytes] = mapped_column(LargeBinary)
    signature_algorithm: Mapped[str] = mapped_column(String(100), default="")
    signer_identity: Mapped[str] = mapped_column(String(512), default="")
    signer_fingerprint: Mapped[str] = mapped_column(String(255), default="")
    public_key: Mapped[str] = mapped_column(Text, default="")
    public_key_url: Mapped[str] = mapped_column(Text, default="")

    cosign_bundle: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    cosign_certificate: Mapped[str | None] = mapped_column(Text)
    cosign_signature_digest: Mapped[str | None] = mapped_column(String(255))
    cosign_rekor_log_index: Mapped[int | None] = mapped_column(Integer)
    cosign_rekor_uuid: Mapped[str | None] = mapped_column(String(255))

    pgp_key_id: Mapped[str | None] = mapped_column(String(255))
    pgp_key_fingerprint: Mapped[str | None] = mapped_column(String(255))
    pgp_signature_version: Mapped[int | None] = mapped_column(Integer)

    sigstore_bundle: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    sigstore_predicate_type: Mapped[str | None] = mapped_column(String(255))
    sigstore_attestation_payload: Mapped[dict[str, Any] | None] = (
        mapped_column(JSON)
    )

    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_status: Mapped[str] = mapped_column(String(50))
    verification_method: Mapped[str] = mapped_column(String(100), default="")
    verification_error: Mapped[str] = mapped_column(Text, default="")
    verified_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    verified_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    signed_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    uploaded_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("ix_artifact_signatures_artifact", "tenant_id", "artifact_id"),
        Index(
            "ix_artifact_signatures_status", "tenant_id", "verification_status"
        ),
    )


class PublicKeyRow(Base):
    """Trusted key model."""

    __tablename__ = "public_keys"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    repository_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    key_name: Mapped[str] = mapped_column(String(255), default="")
    key_type: Mapped[str] = mapped_column(String(50))
    key_format: Mapped[str] = mapped_column(String(50))
    public_key: Mapped[str] = mapped_column(Text)
    key_fingerprint: Mapped[str] = mapped_column(String(255))
    key_id_short: Mapped[str] = mapped_column(String(50), default="")
    key_algorithm: Mapped[str] = mapped_column(String(100), default="")
    key_size: Mapped[int | None] = mapped_column(Integer)

    owner_name: Mapped[str] = mapped_column(String(255), default="")
    owner_email: Mapped[str] = mapped_column(String(255), default="")
    organization: Mapped[str] = mapped_column(String(255), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    key_source: Mapped[str] = mapped_column(String(50))
    key_source_url: Mapped[str] = mapped_column(Text, default="")

    trusted: Mapped[bool] = mapped_column(Boolean, default=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False)
    revoked_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    revocation_reason: Mapped[str] = mapped_column(Text, default="")
    valid_from: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    valid_until: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "key_fingerprint", name="uq_public_keys_fingerprint"
        ),
        Index("ix_public_keys_repository", "tenant_id", "repository_id"),
    )


class ArtifactIntegrityRow(Base):
    """Integrity model: the digests of an artifact's content."""

    __tablename__ = "artifact_integrity"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    artifact_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    repository_id: Mapped[uuid.UUID] = mapped_column(Uuid)

    sha256_hash: Mapped[str] = mapped_column(String(64))
    sha512_hash: Mapped[str] = mapped_column(String(128))
    hash_algorithm: Mapped[str] = mapped_column(String(20))
    signature_required: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "artifact_id", name="uq_artifact_integrity_artifact"
        ),
        Index("ix_artifact_integrity_sha256", "tenant_id", "sha256_hash"),
    )


class VerificationLogRow(Base):
    """Audit model. Rows are inserted, never updated or deleted."""

    __tablename__ = "signature_verification_logs"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    log_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    artifact_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    signature_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    verification_type: Mapped[str] = mapped_column(String(50))
    verification_result: Mapped[str] = mapped_column(String(50))
    verification_status: Mapped[str] = mapped_column(String(50))
    verification_method: Mapped[str] = mapped_column(String(100), default="")
    error_code: Mapped[str] = mapped_column(String(100), default="")
    error_message: Mapped[str] = mapped_column(Text, default="")

    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    client_ip: Mapped[str] = mapped_column(String(64), default="")
    user_agent: Mapped[str] = mapped_column(Text, default="")
    verified_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("ix_verification_logs_artifact", "tenant_id", "artifact_id"),
    )


class RepositoryPolicyRow(Base):
    """Repository signature policy model."""

    __tablename__ = "repository_signature_policies"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    repository_id: Mapped[uuid.UUID] = mapped_column(Uuid)

    signature_policy: Mapped[str] = mapped_column(String(50))
    signature_verification_enabled: Mapped[bool] = mapped_column(Boolean)
    cosign_enabled: Mapped[bool] = mapped_column(Boolean)
    pgp_enabled: Mapped[bool] = mapped_column(Boolean)
    sigstore_enabled: Mapped[bool] = mapped_column(Boolean)
    allowed_signers: Mapped[list[str]] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "repository_id", name="uq_repository_policy"
        ),
    )
