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

"""Per repository signature policy and the decisions derived from it.

All functions here are pure: they only look at the policy and at records
passed in, so callers can evaluate them at upload and download time without
touching the database.
"""

from collections.abc import Iterable
import dataclasses
import datetime
import enum
import uuid

from artifact_trust import keys
from artifact_trust import signature as signature_lib


class SignaturePolicy(enum.Enum):
    DISABLED = "disabled"
    OPTIONAL = "optional"
    REQUIRED = "required"
    STRICT = "strict"


@dataclasses.dataclass(frozen=True)
class RepositorySignaturePolicy:
    """Signature settings of one repository.

    An empty `allowed_signers` accepts any trusted signer. Entries are matched
    against the signer identity (usually an email) and the signer fingerprint.
    """

    tenant_id: uuid.UUID
    repository_id: uuid.UUID
    signature_policy: SignaturePolicy = SignaturePolicy.OPTIONAL
    signature_verification_enabled: bool = False
    cosign_enabled: bool = False
    pgp_enabled: bool = False
    sigstore_enabled: bool = False
    allowed_signers: tuple[str, ...] = ()


def signature_required(policy: RepositorySignaturePolicy) -> bool:
    """Whether uploads without a signature must be rejected."""
    return policy.signature_policy in (
        SignaturePolicy.REQUIRED,
        SignaturePolicy.STRICT,
    )


def verification_enforced(policy: RepositorySignaturePolicy) -> bool:
    """Whether an artifact needs a valid signature before being served."""
    return (
        policy.signature_verification_enabled
        and policy.signature_policy != SignaturePolicy.DISABLED
    )


def scheme_enabled(
    policy: RepositorySignaturePolicy,
    signature_type: signature_lib.SignatureType,
) -> bool:
    match signature_type:
        case signature_lib.SignatureType.COSIGN:
            return policy.cosign_enabled
        case signature_lib.SignatureType.PGP:
            return policy.pgp_enabled
        case signature_lib.SignatureType.SIGSTORE:
            return policy.sigstore_enabled
    return False


def signer_allowed(
    policy: RepositorySignaturePolicy, identity: str, fingerprint: str
) -> bool:
    if not policy.allowed_signers:
        return True

    candidates = set()
    if identity:
        candidates.add(identity.casefold())
    if fingerprint:
        candidates.add(keys.normalize_fingerprint(fingerprint).casefold())

    for entry in policy.allowed_signers:
        if entry.casefold() in candidates:
            return True
        if keys.normalize_fingerprint(entry).casefold() in candidates:
            return True
    return False


def may_serve(
    policy: RepositorySignaturePolicy,
    signatures: Iterable[signature_lib.ArtifactSignature],
    at: datetime.datetime | None = None,
) -> bool:
    """Whether an artifact with these signatures may be served.

    When enforcement is off everything may be served. Otherwise at least one
    signature must be valid, not expired, and from an allowed signer.
    """
    if not verification_enforced(policy):
        return True
    if at is None:
        at = datetime.datetime.now(datetime.timezone.utc)

    for signature in signatures:
        if signature.status != signature_lib.VerificationStatus.VALID:
            continue
        if signature.expires_at is not None and signature.expires_at <= at:
            continue
        if signer_allowed(
            policy, signature.signer_identity, signature.signer_fingerprint
        ):
            return True
    return False
