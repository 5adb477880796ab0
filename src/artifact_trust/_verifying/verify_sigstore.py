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

"""Verification of Sigstore bundles.

Bundles are verified with `sigstore-python`, which checks the signing
certificate against the Sigstore trust root, the transparency log inclusion
and the signature itself. Bundles wrapping a DSSE envelope are in-toto
attestations: the statement must name the artifact digest as a subject.
Other bundles are plain message signatures over the artifact bytes.

When no identity is configured any Sigstore identity is accepted here and
repository policy (`allowed_signers`) decides which identities may serve.
"""

import datetime
import json
import logging
from typing import Any

from sigstore import errors as sigstore_errors
from sigstore import models as sigstore_models
from sigstore import verify as sigstore_verifier
from typing_extensions import override

from artifact_trust import errors
from artifact_trust import keys
from artifact_trust import signature as signature_lib
from artifact_trust._verifying import certificates
from artifact_trust._verifying import verifying


logger = logging.getLogger(__name__)

METHOD = "sigstore"

_IN_TOTO_JSON_PAYLOAD_TYPE = "application/vnd.in-toto+json"

Status = signature_lib.VerificationStatus
ErrorCode = signature_lib.ErrorCode


class Verifier(verifying.Verifier):
    """Signature verification using Sigstore."""

    signature_type = signature_lib.SignatureType.SIGSTORE

    def __init__(
        self,
        *,
        identity: str | None = None,
        oidc_issuer: str | None = None,
        use_staging: bool = False,
        clock=None,
    ):
        """Initializes Sigstore verifiers.

        Args:
            identity: The expected identity of the signer. When missing, any
              identity is accepted.
            oidc_issuer: The expected OpenID Connect issuer that provided the
              certificate used for the signature. Required with `identity`.
            use_staging: Use staging configurations, instead of production. This
              is supposed to be set to True only when testing. Default is False.
            clock: Callable returning the current time, for tests.
        """
        if identity is not None:
            if oidc_issuer is None:
                raise ValueError("An identity needs an OIDC issuer")
            self._policy = sigstore_verifier.policy.Identity(
                identity=identity, issuer=oidc_issuer
            )
        else:
            self._policy = sigstore_verifier.policy.UnsafeNoOp()

        self._use_staging = use_staging
        self._verifier = None
        self._clock = clock or (
            lambda: datetime.datetime.now(datetime.timezone.utc)
        )

    def _sigstore_verifier(self) -> sigstore_verifier.Verifier:
        # Creating a verifier fetches the trust root, so do it lazily.
        if self._verifier is None:
            try:
                if self._use_staging:
                    self._verifier = sigstore_verifier.Verifier.staging()
                else:
                    self._verifier = sigstore_verifier.Verifier.production()
            except sigstore_errors.Error as e:
                raise errors.VerifierUnavailable(
                    f"Cannot load the Sigstore trust root: {e}"
                ) from e
        return self._verifier

    @override
    def _verify(
        self,
        signature: signature_lib.ArtifactSignature,
        artifact: verifying.Artifact,
        trust: keys.TrustContext,
    ) -> signature_lib.VerificationResult:
        payload = signature.sigstore
        result = signature_lib.VerificationResult(
            verified=False,
            status=Status.PENDING,
            verification_method=METHOD,
            signature_algorithm=signature.signature_algorithm,
            verified_at=self._clock(),
        )

        try:
            bundle_json = payload.bundle or json.loads(signature.signature_data)
            bundle = sigstore_models.Bundle.from_json(json.dumps(bundle_json))
        except (sigstore_errors.Error, TypeError, ValueError) as e:
            return result.fail(
                Status.INVALID,
                ErrorCode.MALFORMED_SIGNATURE,
                f"not a valid Sigstore bundle: {e}",
            )

        info = certificates.describe(bundle.signing_certificate)
        result.certificate_subject = info.subject
        result.certificate_issuer = info.issuer
        result.certificate_expiry = info.not_after
        result.signer_identity = info.identity

        verifier = self._sigstore_verifier()
        try:
            if "dsseEnvelope" in bundle_json:
                payload_type, statement = verifier.verify_dsse(
                    bundle=bundle, policy=self._policy
                )
                mismatch = self._check_statement(
                    payload_type, statement, artifact, payload.predicate_type
                )
                if mismatch:
                    return result.fail(
                        Status.INVALID, ErrorCode.DIGEST_MISMATCH, mismatch
                    )
            else:
                if artifact.content is None:
                    raise errors.ContractViolation(
                        "Sigstore message signatures need the artifact content"
                    )
                verifier.verify_artifact(
                    input_=artifact.content, bundle=bundle, policy=self._policy
                )
        except sigstore_errors.VerificationError as e:
            return result.fail(
                Status.INVALID,
                ErrorCode.INVALID_SIGNATURE,
                f"signature verification failed: {e}",
            )

        logger.info(f"Sigstore signature by {result.signer_identity} verified")
        return result.succeed()

    @staticmethod
    def _check_statement(
        payload_type: str,
        statement: bytes,
        artifact: verifying.Artifact,
        predicate_type: str | None,
    ) -> str:
        """Returns why the attestation does not cover the artifact, if so."""
        if payload_type != _IN_TOTO_JSON_PAYLOAD_TYPE:
            return f"unexpected DSSE payload type {payload_type}"
        try:
            parsed: dict[str, Any] = json.loads(statement)
            subjects = parsed.get("subject", [])
            digests = {
                str(s.get("digest", {}).get("sha256", "")).lower()
                for s in subjects
            }
        except (AttributeError, TypeError, ValueError) as e:
            return f"malformed in-toto statement: {e}"

        if predicate_type and parsed.get("predicateType") != predicate_type:
            return f"attestation predicate is not {predicate_type}"
        if artifact.sha256 not in digests:
            return "attestation does not name the artifact as a subject"
        return ""
