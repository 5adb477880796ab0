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

"""Orchestration of signature storage, verification and trusted keys.

The service persists signature records, runs the verifier matching each
signature scheme, moves records through the verification state machine and
keeps an audit log of every attempt:

```python
session_factory = artifact_trust._store.db.create_session_factory(url)
service = SignatureService(session_factory, verifying_config)

stored = service.store_signature(signature)
report = service.verify_signature(
    tenant_id, stored.signature_id, artifact_bytes,
    VerificationContext(actor_id=user_id, client_ip="10.0.0.1"),
)
```

Storing, verifying and auditing are separate transactions. A crash between
them leaves the signature `pending`, which is always safe to verify again.
The verification state is written first and the audit entry second; a failed
audit write is logged and reported in the `VerificationReport`, but it does
not undo the verification state.

Every method takes the tenant id and every query is built from
`_tenant_select`, so records of another tenant can never be read or updated.
"""

from collections.abc import Callable, Iterator, Mapping
import contextlib
import dataclasses
import datetime
import logging
import uuid

import sqlalchemy
from sqlalchemy import exc
from sqlalchemy import orm

from artifact_trust import errors
from artifact_trust import integrity as integrity_lib
from artifact_trust import keys as keys_lib
from artifact_trust import policy as policy_lib
from artifact_trust import signature as signature_lib
from artifact_trust import verifying as verifying_lib
from artifact_trust._store import tables
from artifact_trust._verifying import verify_cosign
from artifact_trust._verifying import verify_pgp
from artifact_trust._verifying import verifying


logger = logging.getLogger(__name__)

Status = signature_lib.VerificationStatus


@dataclasses.dataclass(frozen=True)
class VerificationContext:
    """Who asked for a verification, for the audit log.

    The actor comes from the authenticated session, never from client input.
    """

    actor_id: uuid.UUID | None = None
    client_ip: str = ""
    user_agent: str = ""
    verification_type: signature_lib.VerificationType = (
        signature_lib.VerificationType.MANUAL
    )


@dataclasses.dataclass(frozen=True)
class VerificationReport:
    """The outcome of `SignatureService.verify_signature`.

    `audit_logged` is false when the audit entry could not be written; the
    verification state in `signature` is persisted regardless.

    `superseded` is true when the signature left `pending` while this
    verification ran. The result is then audited but not recorded, and
    `signature` holds the state recorded by the other party.
    """

    signature: signature_lib.ArtifactSignature
    result: signature_lib.VerificationResult
    audit_logged: bool
    superseded: bool = False

    @property
    def completed(self) -> bool:
        return self.result.completed


def _tenant_select(model, tenant_id: uuid.UUID):
    return sqlalchemy.select(model).where(model.tenant_id == tenant_id)


class SignatureService:
    """Signature records, trusted keys and repository policies of tenants."""

    def __init__(
        self,
        session_factory: orm.sessionmaker,
        verifying_config: verifying_lib.Config | None = None,
        *,
        verifiers: Mapping[
            signature_lib.SignatureType, verifying.Verifier
        ] | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ):
        """Initializes the service.

        Args:
            session_factory: Session factory from `_store.db`.
            verifying_config: Trust anchors of the verifiers. The default
              configuration cannot prove keyless Cosign signatures.
            verifiers: Verifiers to use instead of building them from
              `verifying_config`, by signature type.
            clock: Callable returning the current time, for tests.
        """
        self._session_factory = session_factory
        self._config = verifying_config or verifying_lib.Config()
        self._verifiers: dict[
            signature_lib.SignatureType, verifying.Verifier
        ] = dict(verifiers or {})
        self._clock = clock or (
            lambda: datetime.datetime.now(datetime.timezone.utc)
        )

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[orm.Session]:
        try:
            with self._session_factory.begin() as session:
                yield session
        except exc.SQLAlchemyError as e:
            raise errors.PersistenceError(
                f"Database operation failed: {e}"
            ) from e

    # Signatures

    def store_signature(
        self, signature: signature_lib.ArtifactSignature
    ) -> signature_lib.ArtifactSignature:
        """Persists a new signature in the `pending` state.

        The signature id is assigned here when missing, and the upload and
        bookkeeping timestamps are always assigned here. Signer identity
        and fingerprint are only ever set by verification, so whatever the
        uploader claimed is dropped.

        Raises:
            DuplicateSignatureError: A signature with this id exists.
        """
        now = self._clock()
        stored = dataclasses.replace(
            signature,
            signature_id=signature.signature_id or uuid.uuid4(),
            verification=signature_lib.VerificationState(),
            signer_identity="",
            signer_fingerprint="",
            uploaded_at=now,
            created_at=now,
            updated_at=now,
        )

        with self._transaction() as session:
            session.add(_signature_to_row(stored))
            try:
                session.flush()
            except exc.IntegrityError as e:
                raise errors.DuplicateSignatureError(
                    f"Signature {stored.signature_id} already exists"
                ) from e

        logger.info(
            f"Stored {stored.signature_type.value} signature "
            f"{stored.signature_id} for artifact {stored.artifact_id}"
        )
        return stored

    def get_signature(
        self, tenant_id: uuid.UUID, signature_id: uuid.UUID
    ) -> signature_lib.ArtifactSignature:
        """Reads one signature of the tenant.

        Raises:
            NotFoundError: The tenant has no such signature.
        """
        with self._transaction() as session:
            return _row_to_signature(
                self._signature_row(session, tenant_id, signature_id)
            )

    def get_artifact_signatures(
        self, tenant_id: uuid.UUID, artifact_id: uuid.UUID
    ) -> list[signature_lib.ArtifactSignature]:
        """All signatures of an artifact, newest first."""
        row = tables.ArtifactSignatureRow
        query = (
            _tenant_select(row, tenant_id)
            .where(row.artifact_id == artifact_id)
            .order_by(row.created_at.desc(), row.row_id.desc())
        )
        with self._transaction() as session:
            return [_row_to_signature(r) for r in session.scalars(query)]

    def update_verification_state(
        self,
        tenant_id: uuid.UUID,
        signature_id: uuid.UUID,
        result: signature_lib.VerificationResult,
        verified_by: uuid.UUID | None = None,
    ) -> signature_lib.ArtifactSignature:
        """Records the outcome of a verification on a `pending` signature.

        A retryable result keeps the signature `pending` and only records the
        error. Signer identity and fingerprint are only overwritten by
        non-empty values.

        The write is conditional on the stored status still being
        `pending`, so of two overlapping verifications only the first to
        finish is recorded.

        Raises:
            ContractViolation: The result is not a verification outcome.
            VerificationSuperseded: The signature is no longer `pending`.
            NotFoundError: The tenant has no such signature.
        """
        target = Status.PENDING if result.retryable else result.status
        if not result.retryable and not Status.can_transition(
            Status.PENDING, target
        ):
            raise errors.ContractViolation(
                f"Status {target.value} is not a verification outcome"
            )

        with self._transaction() as session:
            row = self._signature_row(session, tenant_id, signature_id)
            values = {
                "verification_status": target.value,
                "verified": result.verified and not result.retryable,
                "verification_method": result.verification_method,
                "verification_error": result.error_message,
                "verified_at": result.verified_at,
                "verified_by": verified_by,
                "updated_at": self._clock(),
            }
            if result.signer_identity:
                values["signer_identity"] = result.signer_identity
            if result.signer_fingerprint:
                values["signer_fingerprint"] = result.signer_fingerprint
            if result.signature_algorithm and not row.signature_algorithm:
                values["signature_algorithm"] = result.signature_algorithm

            model = tables.ArtifactSignatureRow
            updated = session.execute(
                sqlalchemy.update(model)
                .where(
                    model.row_id == row.row_id,
                    model.verification_status == Status.PENDING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.refresh(row)
            if updated.rowcount != 1:
                raise errors.VerificationSuperseded(
                    f"Signature {signature_id} is "
                    f"{row.verification_status}, not pending"
                )
            return _row_to_signature(row)

    def request_reverification(
        self, tenant_id: uuid.UUID, signature_id: uuid.UUID
    ) -> signature_lib.ArtifactSignature:
        """Moves a signature back to `pending` so it can be verified again.

        Signatures already `pending` are left unchanged.

        Raises:
            ContractViolation: The signature was revoked; revocation is
              final.
            NotFoundError: The tenant has no such signature.
        """
        with self._transaction() as session:
            row = self._signature_row(session, tenant_id, signature_id)
            current = Status(row.verification_status)
            if current == Status.REVOKED:
                raise errors.ContractViolation(
                    f"Signature {signature_id} was revoked"
                )
            if current.is_terminal:
                row.verification_status = Status.PENDING.value
                row.verified = False
                row.verification_error = ""
                row.updated_at = self._clock()
            return _row_to_signature(row)

    def revoke_signature(
        self,
        tenant_id: uuid.UUID,
        signature_id: uuid.UUID,
        reason: str,
        actor_id: uuid.UUID | None = None,
    ) -> signature_lib.ArtifactSignature:
        """Marks a signature `revoked`, whatever its current state.

        Revocation goes through `pending` like any verification outcome and
        is audited as a manual verification. A revoked signature is never
        served and cannot be verified again.

        Raises:
            ContractViolation: The signature is already revoked.
            NotFoundError: The tenant has no such signature.
        """
        signature = self.request_reverification(tenant_id, signature_id)
        result = signature_lib.VerificationResult(
            verified=False,
            status=Status.REVOKED,
            verification_method="manual",
            verified_at=self._clock(),
        ).fail(
            Status.REVOKED,
            signature_lib.ErrorCode.SIGNATURE_REVOKED,
            reason,
        )
        revoked = self.update_verification_state(
            tenant_id, signature.signature_id, result, actor_id
        )
        self.log_verification_attempt(
            signature_lib.VerificationLog.from_result(
                revoked, result, actor_id=actor_id
            )
        )
        logger.info(f"Revoked signature {signature_id}: {reason}")
        return revoked

    def verify_signature(
        self,
        tenant_id: uuid.UUID,
        signature_id: uuid.UUID,
        artifact: bytes | verifying.Artifact,
        context: VerificationContext | None = None,
    ) -> VerificationReport:
        """Verifies a stored signature and records the outcome.

        Terminal signatures are moved back to `pending` first, so this is
        also the re-verification entry point. The trusted keys are read at
        call time, so revocations apply immediately.

        Args:
            tenant_id: The tenant of the signature.
            signature_id: The signature to verify.
            artifact: The artifact bytes, or its digest for schemes which
              do not need the content.
            context: The actor and client, for the audit log.

        Raises:
            ContractViolation: The artifact cannot be used with this scheme,
              or the signature was revoked.
            NotFoundError: The tenant has no such signature.
            PersistenceError: The verification state could not be saved.
        """
        if context is None:
            context = VerificationContext()
        if isinstance(artifact, (bytes, bytearray)):
            artifact = verifying.Artifact.from_bytes(bytes(artifact))

        signature = self.request_reverification(tenant_id, signature_id)
        trust = self.trust_context(tenant_id, signature.repository_id)
        verifier = self._verifier_for(signature.signature_type)

        try:
            result = verifier.verify(signature, artifact, trust)
        except errors.InfrastructureError as e:
            logger.error(f"Verification of {signature_id} not completed: {e}")
            result = signature_lib.VerificationResult(
                verified=False,
                status=Status.UNTRUSTED,
                verification_method=signature.signature_type.value,
                verified_at=self._clock(),
            ).fail(
                Status.UNTRUSTED,
                signature_lib.ErrorCode.BACKEND_UNAVAILABLE,
                f"verification could not be completed: {e}",
                retryable=True,
            )

        superseded = False
        try:
            updated = self.update_verification_state(
                tenant_id, signature_id, result, context.actor_id
            )
        except errors.VerificationSuperseded as e:
            logger.warning(f"Verification outcome not recorded: {e}")
            superseded = True
            updated = self.get_signature(tenant_id, signature_id)

        audit_logged = self.log_verification_attempt(
            signature_lib.VerificationLog.from_result(
                updated,
                result,
                verification_type=context.verification_type,
                actor_id=context.actor_id,
                client_ip=context.client_ip,
                user_agent=context.user_agent,
            )
        )
        logger.info(
            f"Signature {signature_id} verification: {result.status.value}"
            + (f" ({result.error_message})" if result.error_message else "")
        )
        return VerificationReport(updated, result, audit_logged, superseded)

    def log_verification_attempt(
        self, log: signature_lib.VerificationLog
    ) -> bool:
        """Appends an audit entry; returns whether it was written.

        A failed write is logged at error level and does not raise, so that it
        never hides the verification outcome it describes.
        """
        row = _log_to_row(log, self._clock())
        try:
            with self._transaction() as session:
                session.add(row)
        except errors.PersistenceError as e:
            logger.error(
                f"Failed to write verification log for signature "
                f"{log.signature_id}: {e}"
            )
            return False
        return True

    def get_verification_logs(
        self, tenant_id: uuid.UUID, artifact_id: uuid.UUID
    ) -> list[signature_lib.VerificationLog]:
        """The audit entries of an artifact, oldest first."""
        row = tables.VerificationLogRow
        query = (
            _tenant_select(row, tenant_id)
            .where(row.artifact_id == artifact_id)
            .order_by(row.row_id)
        )
        with self._transaction() as session:
            return [_row_to_log(r) for r in session.scalars(query)]

    def _signature_row(
        self,
        session: orm.Session,
        tenant_id: uuid.UUID,
        signature_id: uuid.UUID,
    ) -> tables.ArtifactSignatureRow:
        row = tables.ArtifactSignatureRow
        found = session.scalars(
            _tenant_select(row, tenant_id).where(
                row.signature_id == signature_id
            )
        ).one_or_none()
        if found is None:
            raise errors.NotFoundError(f"Signature {signature_id} not found")
        return found

    def _verifier_for(
        self, signature_type: signature_lib.SignatureType
    ) -> verifying.Verifier:
        if signature_type not in self._verifiers:
            self._verifiers[signature_type] = self._config.build_verifier(
                signature_type
            )
        return self._verifiers[signature_type]

    # Artifact integrity

    def record_integrity(
        self,
        tenant_id: uuid.UUID,
        repository_id: uuid.UUID,
        artifact_id: uuid.UUID,
        hashes: integrity_lib.IntegrityHash,
        *,
        signature_required: bool = False,
    ) -> integrity_lib.ArtifactIntegrity:
        """Stores the digests of an artifact, replacing earlier ones.

        Args:
            tenant_id: The tenant owning the artifact.
            repository_id: The repository holding the artifact.
            artifact_id: The artifact the digests were computed for.
            hashes: The digests of the artifact content.
            signature_required: Whether the repository policy required a
              signature when the artifact was accepted.
        """
        row = tables.ArtifactIntegrityRow
        now = self._clock()
        with self._transaction() as session:
            found = session.scalars(
                _tenant_select(row, tenant_id).where(
                    row.artifact_id == artifact_id
                )
            ).one_or_none()
            if found is None:
                found = tables.ArtifactIntegrityRow(
                    tenant_id=tenant_id,
                    artifact_id=artifact_id,
                    created_at=now,
                )
                session.add(found)
            found.repository_id = repository_id
            found.sha256_hash = hashes.sha256
            found.sha512_hash = hashes.sha512
            found.hash_algorithm = hashes.algorithm
            found.signature_required = signature_required
            found.updated_at = now

        logger.info(f"Recorded integrity of artifact {artifact_id}")
        return self.get_artifact_integrity(tenant_id, artifact_id)

    def get_artifact_integrity(
        self, tenant_id: uuid.UUID, artifact_id: uuid.UUID
    ) -> integrity_lib.ArtifactIntegrity:
        """The stored digests of an artifact and a summary of its signatures.

        Raises:
            NotFoundError: No digests were recorded for the artifact.
        """
        row = tables.ArtifactIntegrityRow
        signature = tables.ArtifactSignatureRow
        with self._transaction() as session:
            found = session.scalars(
                _tenant_select(row, tenant_id).where(
                    row.artifact_id == artifact_id
                )
            ).one_or_none()
            if found is None:
                raise errors.NotFoundError(
                    f"No integrity record for artifact {artifact_id}"
                )
            statuses = session.scalars(
                sqlalchemy.select(signature.verification_status).where(
                    signature.tenant_id == tenant_id,
                    signature.artifact_id == artifact_id,
                )
            ).all()
            return _row_to_integrity(found, statuses)

    def verify_integrity(
        self, tenant_id: uuid.UUID, artifact_id: uuid.UUID, content: bytes
    ) -> bool:
        """Checks content against the recorded canonical digest.

        Raises:
            NotFoundError: No digests were recorded for the artifact.
        """
        record = self.get_artifact_integrity(tenant_id, artifact_id)
        matches = integrity_lib.verify(content, record.hashes.sha256)
        if not matches:
            logger.warning(
                f"Content of artifact {artifact_id} does not match "
                f"{record.hashes.digest}"
            )
        return matches

    # Repository policies

    def get_repository_policy(
        self, tenant_id: uuid.UUID, repository_id: uuid.UUID
    ) -> policy_lib.RepositorySignaturePolicy:
        """The policy of a repository, or the defaults if none was set."""
        row = tables.RepositoryPolicyRow
        with self._transaction() as session:
            found = session.scalars(
                _tenant_select(row, tenant_id).where(
                    row.repository_id == repository_id
                )
            ).one_or_none()
            if found is None:
                return policy_lib.RepositorySignaturePolicy(
                    tenant_id=tenant_id, repository_id=repository_id
                )
            return _row_to_policy(found)

    def update_repository_policy(
        self, policy: policy_lib.RepositorySignaturePolicy
    ) -> policy_lib.RepositorySignaturePolicy:
        row = tables.RepositoryPolicyRow
        with self._transaction() as session:
            found = session.scalars(
                _tenant_select(row, policy.tenant_id).where(
                    row.repository_id == policy.repository_id
                )
            ).one_or_none()
            if found is None:
                found = tables.RepositoryPolicyRow(
                    tenant_id=policy.tenant_id,
                    repository_id=policy.repository_id,
                )
                session.add(found)
            found.signature_policy = policy.signature_policy.value
            found.signature_verification_enabled = (
                policy.signature_verification_enabled
            )
            found.cosign_enabled = policy.cosign_enabled
            found.pgp_enabled = policy.pgp_enabled
            found.sigstore_enabled = policy.sigstore_enabled
            found.allowed_signers = list(policy.allowed_signers)
            found.updated_at = self._clock()
        logger.info(
            f"Repository {policy.repository_id} signature policy set to "
            f"{policy.signature_policy.value}"
        )
        return policy

    # Trusted keys

    def store_public_key(self, key: keys_lib.PublicKey) -> keys_lib.PublicKey:
        """Adds a key, or updates the key with the same fingerprint.

        Updating only changes the name and the trusted and enabled flags; the
        key id and creation time of the first insertion are kept.

        Raises:
            ContractViolation: The key has no fingerprint.
        """
        fingerprint = keys_lib.normalize_fingerprint(key.fingerprint)
        if not fingerprint:
            raise errors.ContractViolation("Public key has no fingerprint")

        now = self._clock()
        row = tables.PublicKeyRow
        with self._transaction() as session:
            found = session.scalars(
                _tenant_select(row, key.tenant_id).where(
                    row.key_fingerprint == fingerprint
                )
            ).one_or_none()
            if found is None:
                found = _key_to_row(
                    dataclasses.replace(
                        key,
                        key_id=key.key_id or uuid.uuid4(),
                        fingerprint=fingerprint,
                        created_at=now,
                        updated_at=now,
                    )
                )
                session.add(found)
            else:
                found.key_name = key.key_name
                found.trusted = key.trusted
                found.enabled = key.enabled
                found.updated_at = now
            session.flush()
            return _row_to_key(found)

    def import_public_key(
        self,
        tenant_id: uuid.UUID,
        material: str,
        key_type: keys_lib.KeyType,
        **kwargs,
    ) -> keys_lib.PublicKey:
        """Parses key material and stores it.

        Keyword arguments are `PublicKey` fields such as `key_name`,
        `trusted` or `repository_id`.

        Raises:
            KeyParseError: The material is not a key of that type.
        """
        match key_type:
            case keys_lib.KeyType.PGP:
                key = verify_pgp.extract_key_info(material, tenant_id, **kwargs)
            case keys_lib.KeyType.COSIGN:
                key = verify_cosign.extract_key_info(
                    material, tenant_id, **kwargs
                )
        return self.store_public_key(key)

    def get_public_key(
        self, tenant_id: uuid.UUID, key_id: uuid.UUID
    ) -> keys_lib.PublicKey:
        with self._transaction() as session:
            return _row_to_key(self._key_row(session, tenant_id, key_id))

    def list_public_keys(
        self, tenant_id: uuid.UUID
    ) -> list[keys_lib.PublicKey]:
        """Every key of the tenant, usable or not, newest first."""
        row = tables.PublicKeyRow
        query = _tenant_select(row, tenant_id).order_by(
            row.created_at.desc(), row.row_id.desc()
        )
        with self._transaction() as session:
            return [_row_to_key(r) for r in session.scalars(query)]

    def set_public_key_trust(
        self,
        tenant_id: uuid.UUID,
        key_id: uuid.UUID,
        *,
        trusted: bool | None = None,
        enabled: bool | None = None,
    ) -> keys_lib.PublicKey:
        with self._transaction() as session:
            found = self._key_row(session, tenant_id, key_id)
            if trusted is not None:
                found.trusted = trusted
            if enabled is not None:
                found.enabled = enabled
            found.updated_at = self._clock()
            return _row_to_key(found)

    def revoke_public_key(
        self, tenant_id: uuid.UUID, key_id: uuid.UUID, reason: str = ""
    ) -> keys_lib.PublicKey:
        """Revokes a key. Revocation is permanent."""
        now = self._clock()
        with self._transaction() as session:
            found = self._key_row(session, tenant_id, key_id)
            found.revoked = True
            found.revoked_at = now
            found.revocation_reason = reason
            found.updated_at = now
            logger.info(f"Revoked key {found.key_fingerprint}: {reason}")
            return _row_to_key(found)

    def expire_public_key(
        self,
        tenant_id: uuid.UUID,
        key_id: uuid.UUID,
        at: datetime.datetime | None = None,
    ) -> keys_lib.PublicKey:
        """Ends the validity window of a key, now by default."""
        with self._transaction() as session:
            found = self._key_row(session, tenant_id, key_id)
            found.valid_until = at or self._clock()
            found.updated_at = self._clock()
            return _row_to_key(found)

    def get_trusted_keys(
        self,
        tenant_id: uuid.UUID,
        repository_id: uuid.UUID | None = None,
    ) -> list[keys_lib.PublicKey]:
        """The keys usable right now, newest first.

        Keys scoped to the whole tenant are always included; repository keys
        only for their repository.
        """
        now = self._clock()
        row = tables.PublicKeyRow
        scope = row.repository_id.is_(None)
        if repository_id is not None:
            scope = sqlalchemy.or_(scope, row.repository_id == repository_id)
        query = (
            _tenant_select(row, tenant_id)
            .where(
                row.trusted.is_(True),
                row.enabled.is_(True),
                row.revoked.is_(False),
                scope,
            )
            .order_by(row.created_at.desc(), row.row_id.desc())
        )
        with self._transaction() as session:
            found = [_row_to_key(r) for r in session.scalars(query)]
        return [key for key in found if key.is_usable(now)]

    def trust_context(
        self,
        tenant_id: uuid.UUID,
        repository_id: uuid.UUID | None = None,
    ) -> keys_lib.TrustContext:
        now = self._clock()
        return keys_lib.TrustContext.build(
            self.get_trusted_keys(tenant_id, repository_id), now
        )

    def _key_row(
        self, session: orm.Session, tenant_id: uuid.UUID, key_id: uuid.UUID
    ) -> tables.PublicKeyRow:
        row = tables.PublicKeyRow
        found = session.scalars(
            _tenant_select(row, tenant_id).where(row.key_id == key_id)
        ).one_or_none()
        if found is None:
            raise errors.NotFoundError(f"Public key {key_id} not found")
        return found


def _signature_to_row(
    signature: signature_lib.ArtifactSignature,
) -> tables.ArtifactSignatureRow:
    row = tables.ArtifactSignatureRow(
        signature_id=signature.signature_id,
        tenant_id=signature.tenant_id,
        artifact_id=signature.artifact_id,
        repository_id=signature.repository_id,
        signature_type=signature.signature_type.value,
        signature_format=signature.signature_format.value,
        signature_data=signature.signature_data,
        signature_algorithm=signature.signature_algorithm,
        signer_identity=signature.signer_identity,
        signer_fingerprint=signature.signer_fingerprint,
        public_key=signature.public_key,
        public_key_url=signature.public_key_url,
        verified=signature.verification.verified,
        verification_status=signature.verification.status.value,
        verification_method=signature.verification.method,
        verification_error=signature.verification.error,
        verified_at=signature.verification.verified_at,
        verified_by=signature.verification.verified_by,
        signed_at=signature.signed_at,
        uploaded_at=signature.uploaded_at,
        expires_at=signature.expires_at,
        created_at=signature.created_at,
        updated_at=signature.updated_at,
    )

    payload = signature.payload
    match payload:
        case signature_lib.CosignPayload():
            row.cosign_bundle = payload.bundle
            row.cosign_certificate = payload.certificate
            row.cosign_signature_digest = payload.signature_digest
            row.cosign_rekor_log_index = payload.rekor_log_index
            row.cosign_rekor_uuid = payload.rekor_uuid
        case signature_lib.PGPPayload():
            row.pgp_key_id = payload.key_id
            row.pgp_key_fingerprint = payload.key_fingerprint
            row.pgp_signature_version = payload.signature_version
        case signature_lib.SigstorePayload():
            row.sigstore_bundle = payload.bundle
            row.sigstore_predicate_type = payload.predicate_type
            row.sigstore_attestation_payload = payload.attestation_payload
    return row


def _row_to_signature(
    row: tables.ArtifactSignatureRow,
) -> signature_lib.ArtifactSignature:
    match signature_lib.SignatureType(row.signature_type):
        case signature_lib.SignatureType.COSIGN:
            payload = signature_lib.CosignPayload(
                bundle=row.cosign_bundle,
                certificate=row.cosign_certificate,
                signature_digest=row.cosign_signature_digest,
                rekor_log_index=row.cosign_rekor_log_index,
                rekor_uuid=row.cosign_rekor_uuid,
            )
        case signature_lib.SignatureType.PGP:
            payload = signature_lib.PGPPayload(
                key_id=row.pgp_key_id,
                key_fingerprint=row.pgp_key_fingerprint,
                signature_version=row.pgp_signature_version,
            )
        case signature_lib.SignatureType.SIGSTORE:
            payload = signature_lib.SigstorePayload(
                bundle=row.sigstore_bundle,
                predicate_type=row.sigstore_predicate_type,
                attestation_payload=row.sigstore_attestation_payload,
            )

    return signature_lib.ArtifactSignature(
        signature_id=row.signature_id,
        tenant_id=row.tenant_id,
        artifact_id=row.artifact_id,
        repository_id=row.repository_id,
        signature_format=signature_lib.SignatureFormat(row.signature_format),
        signature_data=row.signature_data,
        payload=payload,
        signature_algorithm=row.signature_algorithm,
        signer_identity=row.signer_identity,
        signer_fingerprint=row.signer_fingerprint,
        public_key=row.public_key,
        public_key_url=row.public_key_url,
        verification=signature_lib.VerificationState(
            verified=row.verified,
            status=Status(row.verification_status),
            method=row.verification_method,
            error=row.verification_error,
            verified_at=row.verified_at,
            verified_by=row.verified_by,
        ),
        signed_at=row.signed_at,
        uploaded_at=row.uploaded_at,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _key_to_row(key: keys_lib.PublicKey) -> tables.PublicKeyRow:
    return tables.PublicKeyRow(
        key_id=key.key_id,
        tenant_id=key.tenant_id,
        repository_id=key.repository_id,
        key_name=key.key_name,
        key_type=key.key_type.value,
        key_format=key.key_format.value,
        public_key=key.public_key,
        key_fingerprint=key.fingerprint,
        key_id_short=key.key_id_short,
        key_algorithm=key.algorithm,
        key_size=key.key_size,
        owner_name=key.owner_name,
        owner_email=key.owner_email,
        organization=key.organization,
        description=key.description,
        key_source=key.key_source.value,
        key_source_url=key.key_source_url,
        trusted=key.trusted,
        enabled=key.enabled,
        revoked=key.revoked,
        revoked_at=key.revoked_at,
        revocation_reason=key.revocation_reason,
        valid_from=key.valid_from,
        valid_until=key.valid_until,
        created_at=key.created_at,
        updated_at=key.updated_at,
        created_by=key.created_by,
    )


def _row_to_key(row: tables.PublicKeyRow) -> keys_lib.PublicKey:
    return keys_lib.PublicKey(
        key_id=row.key_id,
        tenant_id=row.tenant_id,
        repository_id=row.repository_id,
        key_name=row.key_name,
        key_type=keys_lib.KeyType(row.key_type),
        key_format=keys_lib.KeyFormat(row.key_format),
        public_key=row.public_key,
        fingerprint=row.key_fingerprint,
        key_id_short=row.key_id_short,
        algorithm=row.key_algorithm,
        key_size=row.key_size,
        owner_name=row.owner_name,
        owner_email=row.owner_email,
        organization=row.organization,
        description=row.description,
        key_source=keys_lib.KeySource(row.key_source),
        key_source_url=row.key_source_url,
        trusted=row.trusted,
        enabled=row.enabled,
        revoked=row.revoked,
        revoked_at=row.revoked_at,
        revocation_reason=row.revocation_reason,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        created_at=row.created_at,
        updated_at=row.updated_at,
        created_by=row.created_by,
    )


def _log_to_row(
    log: signature_lib.VerificationLog, now: datetime.datetime
) -> tables.VerificationLogRow:
    return tables.VerificationLogRow(
        log_id=log.log_id or uuid.uuid4(),
        tenant_id=log.tenant_id,
        artifact_id=log.artifact_id,
        signature_id=log.signature_id,
        verification_type=log.verification_type.value,
        verification_result=log.verification_result.value,
        verification_status=log.verification_status.value,
        verification_method=log.verification_method,
        error_code=log.error_code,
        error_message=log.error_message,
        actor_id=log.actor_id,
        client_ip=log.client_ip,
        user_agent=log.user_agent,
        verified_at=log.verified_at or now,
    )


def _row_to_log(
    row: tables.VerificationLogRow,
) -> signature_lib.VerificationLog:
    return signature_lib.VerificationLog(
        log_id=row.log_id,
        tenant_id=row.tenant_id,
        artifact_id=row.artifact_id,
        signature_id=row.signature_id,
        verification_type=signature_lib.VerificationType(
            row.verification_type
        ),
        verification_result=signature_lib.VerificationOutcome(
            row.verification_result
        ),
        verification_status=Status(row.verification_status),
        verification_method=row.verification_method,
        error_code=row.error_code,
        error_message=row.error_message,
        actor_id=row.actor_id,
        client_ip=row.client_ip,
        user_agent=row.user_agent,
        verified_at=row.verified_at,
    )


def _row_to_policy(
    row: tables.RepositoryPolicyRow,
) -> policy_lib.RepositorySignaturePolicy:
    return policy_lib.RepositorySignaturePolicy(
        tenant_id=row.tenant_id,
        repository_id=row.repository_id,
        signature_policy=policy_lib.SignaturePolicy(row.signature_policy),
        signature_verification_enabled=row.signature_verification_enabled,
        cosign_enabled=row.cosign_enabled,
        pgp_enabled=row.pgp_enabled,
        sigstore_enabled=row.sigstore_enabled,
        allowed_signers=tuple(row.allowed_signers or ()),
    )


def _row_to_integrity(
    row: tables.ArtifactIntegrityRow, statuses: list[str]
) -> integrity_lib.ArtifactIntegrity:
    return integrity_lib.ArtifactIntegrity(
        tenant_id=row.tenant_id,
        repository_id=row.repository_id,
        artifact_id=row.artifact_id,
        hashes=integrity_lib.IntegrityHash(
            sha256=row.sha256_hash,
            sha512=row.sha512_hash,
            algorithm=row.hash_algorithm,
        ),
        signature_required=row.signature_required,
        signature_count=len(statuses),
        signature_verified=Status.VALID.value in statuses,
        recorded_at=row.updated_at,
    )
