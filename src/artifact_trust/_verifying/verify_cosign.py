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

"""Verification of Cosign signatures, keyless and key based.

Keyless signatures carry a short lived signing certificate and reference an
entry in a transparency log. They are trusted only when the certificate chains
to a configured root, is not expired, and the log entry is proven against the
log's public key and records this exact signature over this exact digest.

Key based signatures carry a public key. The signature must verify with that
key and the key must belong to the trusted key store, otherwise the signer is
reported as untrusted.

Cosign signs blobs by signing their SHA-256 digest, so the verifier only needs
the artifact digest.
"""

import base64
import binascii
import datetime
import hashlib
import logging
from typing import Any

from cryptography import exceptions
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric import utils
from typing_extensions import override

from artifact_trust import errors
from artifact_trust import keys
from artifact_trust import signature as signature_lib
from artifact_trust._verifying import certificates
from artifact_trust._verifying import rekor
from artifact_trust._verifying import verifying


logger = logging.getLogger(__name__)

METHOD_KEYLESS = "cosign-keyless"
METHOD_KEY = "cosign-key"
METHOD_UNKNOWN = "cosign"

Status = signature_lib.VerificationStatus
ErrorCode = signature_lib.ErrorCode


def load_public_key(material: str | bytes) -> Any:
    """Loads a PEM public key.

    Raises:
        ValueError: The material is not a supported PEM public key.
    """
    if isinstance(material, str):
        material = material.encode()
    try:
        public_key = serialization.load_pem_public_key(material)
    except (ValueError, TypeError, exceptions.UnsupportedAlgorithm) as e:
        raise ValueError(f"Failed to parse public key: {e}") from e
    if not isinstance(
        public_key,
        (ec.EllipticCurvePublicKey, rsa.RSAPublicKey, ed25519.Ed25519PublicKey),
    ):
        raise ValueError(
            f"Unsupported public key type {type(public_key).__name__}"
        )
    return public_key


def key_fingerprint(public_key: Any) -> str:
    """Uppercase SHA-256 hex over the DER SubjectPublicKeyInfo."""
    der = public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest().upper()


def _key_algorithm(public_key: Any) -> str:
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return f"ECDSA-{public_key.curve.name}"
    if isinstance(public_key, rsa.RSAPublicKey):
        return "RSA"
    return "Ed25519"


def extract_key_info(
    material: str, tenant_id: Any, **kwargs: Any
) -> keys.PublicKey:
    """Parses a PEM Cosign public key into a trusted key store entry.

    The entry is neither trusted nor revoked; trusting it is an explicit
    administrative decision.

    Raises:
        KeyParseError: The material is not a supported PEM public key.
    """
    try:
        public_key = load_public_key(material)
    except ValueError as e:
        raise errors.KeyParseError(str(e)) from e

    fingerprint = key_fingerprint(public_key)
    key_size = None
    if not isinstance(public_key, ed25519.Ed25519PublicKey):
        key_size = public_key.key_size

    return keys.PublicKey(
        tenant_id=tenant_id,
        key_type=keys.KeyType.COSIGN,
        key_format=keys.KeyFormat.PEM,
        public_key=material,
        fingerprint=fingerprint,
        key_id_short=fingerprint[-16:],
        algorithm=_key_algorithm(public_key),
        key_size=key_size,
        **kwargs,
    )


def _verify_digest_signature(
    public_key: Any, signature: bytes, artifact: verifying.Artifact
) -> None:
    """Raises `exceptions.InvalidSignature` if the signature does not match."""
    prehashed = utils.Prehashed(hashes.SHA256())
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        public_key.verify(signature, artifact.digest_value, ec.ECDSA(prehashed))
    elif isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(
            signature, artifact.digest_value, padding.PKCS1v15(), prehashed
        )
    elif artifact.content is not None:
        # Ed25519 has no prehashed mode, it needs the artifact itself.
        public_key.verify(signature, artifact.content)
    else:
        raise exceptions.InvalidSignature(
            "Ed25519 signatures need the artifact content"
        )


def _verify_signature(
    public_key: Any, signature: bytes, artifact: verifying.Artifact
) -> bytes:
    """Verifies the signature and returns the raw signature bytes used.

    Raises:
        exceptions.InvalidSignature: The signature does not match.
    """
    try:
        _verify_digest_signature(public_key, signature, artifact)
        return signature
    except exceptions.InvalidSignature:
        # `cosign sign-blob` writes base64 encoded signatures to disk, and
        # those are often uploaded as they are.
        try:
            decoded = base64.b64decode(signature, validate=True)
        except binascii.Error:
            raise exceptions.InvalidSignature() from None
        _verify_digest_signature(public_key, decoded, artifact)
        return decoded


class Verifier(verifying.Verifier):
    """Verifier for Cosign signatures."""

    signature_type = signature_lib.SignatureType.COSIGN

    def __init__(
        self,
        *,
        log_client: rekor.Client | None = None,
        log_verifier: rekor.LogVerifier | None = None,
        chain_verifier: certificates.ChainVerifier | None = None,
        clock=None,
    ):
        """Initializes the verifier with its trust anchors.

        Args:
            log_client: Client for the transparency log. Keyless signatures
              fail as unproven without one.
            log_verifier: The public keys of the transparency log. Keyless
              signatures fail as unproven without one.
            chain_verifier: The roots for signing certificates. Keyless
              signatures fail as untrusted without one.
            clock: Callable returning the current time, for tests.
        """
        self._log_client = log_client
        self._log_verifier = log_verifier
        self._chain_verifier = chain_verifier
        self._clock = clock or (
            lambda: datetime.datetime.now(datetime.timezone.utc)
        )

    @override
    def _verify(
        self,
        signature: signature_lib.ArtifactSignature,
        artifact: verifying.Artifact,
        trust: keys.TrustContext,
    ) -> signature_lib.VerificationResult:
        payload = signature.cosign
        result = signature_lib.VerificationResult(
            verified=False,
            status=Status.PENDING,
            verification_method=METHOD_UNKNOWN,
            signature_algorithm=signature.signature_algorithm,
            verified_at=self._clock(),
        )

        # Keyless when a log entry is referenced or no key can be checked.
        if payload.certificate and (
            payload.rekor_uuid or not signature.public_key
        ):
            return self._verify_keyless(signature, artifact, result)
        if signature.public_key:
            return self._verify_key(signature, artifact, trust, result)

        return result.fail(
            Status.INVALID,
            ErrorCode.INSUFFICIENT_DATA,
            "insufficient data for Cosign verification",
        )

    def _verify_keyless(
        self,
        signature: signature_lib.ArtifactSignature,
        artifact: verifying.Artifact,
        result: signature_lib.VerificationResult,
    ) -> signature_lib.VerificationResult:
        payload = signature.cosign
        result.verification_method = METHOD_KEYLESS

        try:
            certificate = certificates.load_certificate(payload.certificate)
        except ValueError as e:
            return result.fail(
                Status.INVALID,
                ErrorCode.MALFORMED_CERTIFICATE,
                f"certificate parsing failed: {e}",
            )

        info = certificates.describe(certificate)
        result.certificate_subject = info.subject
        result.certificate_issuer = info.issuer
        result.certificate_expiry = info.not_after
        result.signer_identity = info.identity
        result.signer_fingerprint = certificate.fingerprint(
            hashes.SHA256()
        ).hex().upper()

        if info.is_expired(result.verified_at):
            return result.fail(
                Status.EXPIRED,
                ErrorCode.CERTIFICATE_EXPIRED,
                "certificate expired",
            )

        if not payload.rekor_uuid:
            return result.fail(
                Status.INVALID,
                ErrorCode.INSUFFICIENT_DATA,
                "insufficient data for Cosign verification: "
                "no transparency log entry",
            )

        if self._chain_verifier is None:
            return result.fail(
                Status.UNTRUSTED,
                ErrorCode.UNTRUSTED_CERTIFICATE,
                "no certificate roots configured",
            )
        try:
            self._chain_verifier.verify(certificate)
        except ValueError as e:
            return result.fail(
                Status.UNTRUSTED,
                ErrorCode.UNTRUSTED_CERTIFICATE,
                f"certificate chain is not trusted: {e}",
            )

        try:
            used_signature = _verify_signature(
                certificate.public_key(), signature.signature_data, artifact
            )
        except exceptions.InvalidSignature:
            return result.fail(
                Status.INVALID,
                ErrorCode.INVALID_SIGNATURE,
                "signature verification failed",
            )

        try:
            entry = self._prove_log_entry(payload.rekor_uuid)
        except errors.TransparencyLogUnavailable as e:
            logger.warning(f"Transparency log unavailable: {e}")
            return result.fail(
                Status.UNTRUSTED,
                ErrorCode.LOG_UNAVAILABLE,
                f"transparency log unavailable: {e}",
                retryable=True,
            )
        except rekor.UnprovenEntry as e:
            return result.fail(
                Status.INVALID,
                ErrorCode.LOG_ENTRY_UNPROVEN,
                f"transparency log entry not proven: {e}",
            )

        result.rekor_uuid = entry.uuid
        result.rekor_log_index = entry.log_index
        result.log_entry = entry.raw

        try:
            entry.check_binding(used_signature, artifact.sha256)
        except rekor.UnprovenEntry as e:
            return result.fail(
                Status.INVALID,
                ErrorCode.LOG_ENTRY_UNPROVEN,
                f"transparency log entry not proven: {e}",
            )

        integrated_at = datetime.datetime.fromtimestamp(
            entry.integrated_time, datetime.timezone.utc
        )
        if not info.was_valid_at(integrated_at):
            return result.fail(
                Status.INVALID,
                ErrorCode.LOG_ENTRY_UNPROVEN,
                "certificate was not valid when the entry was logged",
            )

        logger.info(
            f"Keyless signature by {result.signer_identity} proven by log "
            f"entry {entry.uuid}"
        )
        return result.succeed()

    def _verify_key(
        self,
        signature: signature_lib.ArtifactSignature,
        artifact: verifying.Artifact,
        trust: keys.TrustContext,
        result: signature_lib.VerificationResult,
    ) -> signature_lib.VerificationResult:
        result.verification_method = METHOD_KEY

        try:
            public_key = load_public_key(signature.public_key)
        except ValueError as e:
            return result.fail(Status.INVALID, ErrorCode.MALFORMED_KEY, str(e))

        fingerprint = key_fingerprint(public_key)
        result.signer_fingerprint = fingerprint
        result.signature_algorithm = (
            result.signature_algorithm or _key_algorithm(public_key)
        )

        try:
            _verify_signature(public_key, signature.signature_data, artifact)
        except exceptions.InvalidSignature:
            return result.fail(
                Status.INVALID,
                ErrorCode.INVALID_SIGNATURE,
                "signature verification failed",
            )

        trusted_key = trust.find(keys.KeyType.COSIGN, fingerprint)
        if trusted_key is None:
            return result.fail(
                Status.UNTRUSTED,
                ErrorCode.UNTRUSTED_KEY,
                "public key is not in the trusted key store",
            )

        result.signer_identity = (
            trusted_key.owner_email
            or trusted_key.owner_name
            or trusted_key.key_name
            or trusted_key.fingerprint
        )
        return result.succeed()

    def _prove_log_entry(self, uuid: str) -> rekor.LogEntry:
        if self._log_client is None or self._log_verifier is None:
            raise rekor.UnprovenEntry("no transparency log configured")
        entry = self._log_client.get_entry(uuid)
        self._log_verifier.verify(entry)
        return entry

