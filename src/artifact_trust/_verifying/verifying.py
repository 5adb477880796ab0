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

"""The contract shared by every signature verifier.

Each signature scheme has one `Verifier` subclass. The base class enforces the
caller contract (right scheme, non-empty signature) and subclasses implement
`_verify`, which must never raise for untrusted input: every parse or trust
failure is reported through the returned `VerificationResult`.
"""

import abc
import dataclasses

from artifact_trust import errors
from artifact_trust import integrity
from artifact_trust import keys
from artifact_trust import signature as signature_lib


@dataclasses.dataclass(frozen=True)
class Artifact:
    """What a verifier gets to see of an artifact.

    `content` is only available when the caller has the bytes at hand; some
    schemes (PGP) need them, others only need the canonical digest.
    """

    sha256: str
    content: bytes | None = None

    @classmethod
    def from_bytes(cls, content: bytes) -> "Artifact":
        return cls(integrity.compute(content).sha256, content)

    @classmethod
    def from_digest(cls, digest: str) -> "Artifact":
        """Wraps a bare or `sha256:` prefixed digest.

        Raises:
            ContractViolation: The digest is not a SHA-256 hex digest.
        """
        try:
            sha256 = integrity.canonical_hex(digest)
            bytes.fromhex(sha256)
        except ValueError as e:
            raise errors.ContractViolation(
                f"Invalid artifact digest: {e}"
            ) from e
        if len(sha256) != 64:
            raise errors.ContractViolation(
                f"Invalid artifact digest length: {len(sha256)}"
            )
        return cls(sha256)

    @property
    def digest_value(self) -> bytes:
        return bytes.fromhex(self.sha256)


class Verifier(metaclass=abc.ABCMeta):
    """Generic signature verifier."""

    signature_type: signature_lib.SignatureType

    def verify(
        self,
        signature: signature_lib.ArtifactSignature,
        artifact: Artifact,
        trust: keys.TrustContext,
    ) -> signature_lib.VerificationResult:
        """Verifies a stored signature against an artifact.

        Args:
            signature: The signature record.
            artifact: The signed artifact.
            trust: The keys usable for this verification.

        Returns:
            The verification result. Parse and trust failures are reported
            here, never raised.

        Raises:
            ContractViolation: The signature is of another scheme or empty.
            InfrastructureError: The verification could not be attempted.
        """
        if signature.signature_type != self.signature_type:
            raise errors.ContractViolation(
                f"{type(self).__name__} cannot verify "
                f"{signature.signature_type.value} signatures"
            )
        if not signature.signature_data:
            raise errors.ContractViolation("Signature data is empty")

        return self._verify(signature, artifact, trust)

    @abc.abstractmethod
    def _verify(
        self,
        signature: signature_lib.ArtifactSignature,
        artifact: Artifact,
        trust: keys.TrustContext,
    ) -> signature_lib.VerificationResult:
        """Verifies a signature already known to be of the right scheme.

        Subclasses only need to implement this method.
        """
        pass
