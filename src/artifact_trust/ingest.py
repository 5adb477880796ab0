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

"""Signature policy at the edges of an artifact repository.

`ArtifactIngest` is what the upload and the download paths call. It decides,
from the repository policy, whether an upload is acceptable and whether stored
bytes may be served, and drives the `SignatureService` accordingly:

```python
ingest = ArtifactIngest(service)
receipt = ingest.upload(
    tenant_id, repository_id, artifact_id, content, signature
)
...
ingest.authorize_download(tenant_id, repository_id, artifact_id)
```

Refusals raise `errors.PolicyViolation` subclasses.
"""

import dataclasses
import logging
import uuid

from artifact_trust import errors
from artifact_trust import integrity
from artifact_trust import policy as policy_lib
from artifact_trust import service as service_lib
from artifact_trust import signature as signature_lib
from artifact_trust._verifying import verifying


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class UploadReceipt:
    """What an accepted upload stored.

    `verification` is `None` when the signature was only stored, to be
    verified later.
    """

    artifact_id: uuid.UUID
    integrity: integrity.IntegrityHash
    signature: signature_lib.ArtifactSignature | None = None
    verification: service_lib.VerificationReport | None = None


class ArtifactIngest:
    """Applies repository signature policies to uploads and downloads."""

    def __init__(self, service: service_lib.SignatureService):
        self._service = service

    def upload(
        self,
        tenant_id: uuid.UUID,
        repository_id: uuid.UUID,
        artifact_id: uuid.UUID,
        content: bytes,
        signature: signature_lib.ArtifactSignature | None = None,
        *,
        verify_now: bool = True,
        context: service_lib.VerificationContext | None = None,
    ) -> UploadReceipt:
        """Accepts an artifact and its optional signature.

        Args:
            tenant_id: The tenant of the authenticated session.
            repository_id: The repository receiving the artifact.
            artifact_id: The id of the artifact being uploaded.
            content: The artifact bytes.
            signature: The signature attached to the upload, if any. Its
              tenant, repository and artifact ids must match the upload.
            verify_now: Verify the signature before returning, when the
              repository enforces verification.
            context: The actor and client, for the audit log.

        Returns:
            The integrity hash, which is also recorded, and what was stored.

        Raises:
            SignatureRequiredError: The repository requires a signature and
              none is attached.
            SchemeNotEnabledError: The signature scheme is not enabled for
              the repository.
            UntrustedSignatureError: The repository is strict and the
              signature did not verify as valid.
            ContractViolation: The signature belongs to another upload.
        """
        policy = self._service.get_repository_policy(tenant_id, repository_id)

        if signature is None:
            if policy_lib.signature_required(policy):
                raise errors.SignatureRequiredError(
                    f"Repository {repository_id} requires signed artifacts"
                )
            return self._accept(
                policy, artifact_id, integrity.compute(content)
            )

        if (
            signature.tenant_id != tenant_id
            or signature.repository_id != repository_id
            or signature.artifact_id != artifact_id
        ):
            raise errors.ContractViolation(
                "Signature does not belong to the uploaded artifact"
            )
        if not policy_lib.scheme_enabled(policy, signature.signature_type):
            raise errors.SchemeNotEnabledError(
                f"{signature.signature_type.value} signatures are not enabled "
                f"for repository {repository_id}"
            )

        digests = integrity.compute(content)
        stored = self._service.store_signature(signature)

        if not (verify_now and policy_lib.verification_enforced(policy)):
            return self._accept(policy, artifact_id, digests, stored)

        if context is None:
            context = service_lib.VerificationContext()
        report = self._service.verify_signature(
            tenant_id,
            stored.signature_id,
            verifying.Artifact(digests.sha256, content),
            dataclasses.replace(
                context,
                verification_type=signature_lib.VerificationType.UPLOAD,
            ),
        )

        if (
            policy.signature_policy == policy_lib.SignaturePolicy.STRICT
            and report.completed
            and not report.result.verified
        ):
            raise errors.UntrustedSignatureError(
                f"Signature {stored.signature_id} is "
                f"{report.result.status.value}: {report.result.error_message}"
            )
        return self._accept(
            policy, artifact_id, digests, report.signature, report
        )

    def _accept(
        self,
        policy: policy_lib.RepositorySignaturePolicy,
        artifact_id: uuid.UUID,
        digests: integrity.IntegrityHash,
        signature: signature_lib.ArtifactSignature | None = None,
        report: service_lib.VerificationReport | None = None,
    ) -> UploadReceipt:
        self._service.record_integrity(
            policy.tenant_id,
            policy.repository_id,
            artifact_id,
            digests,
            signature_required=policy_lib.signature_required(policy),
        )
        return UploadReceipt(artifact_id, digests, signature, report)

    def authorize_download(
        self,
        tenant_id: uuid.UUID,
        repository_id: uuid.UUID,
        artifact_id: uuid.UUID,
    ) -> None:
        """Checks that an artifact may be served.

        Raises:
            AccessDeniedError: The repository enforces verification and the
              artifact has no valid signature from an allowed signer.
        """
        policy = self._service.get_repository_policy(tenant_id, repository_id)
        if not policy_lib.verification_enforced(policy):
            return

        signatures = self._service.get_artifact_signatures(
            tenant_id, artifact_id
        )
        if not policy_lib.may_serve(policy, signatures):
            logger.info(
                f"Refusing to serve artifact {artifact_id}: no valid "
                "signature from an allowed signer"
            )
            raise errors.AccessDeniedError(
                f"Artifact {artifact_id} has no valid signature"
            )
