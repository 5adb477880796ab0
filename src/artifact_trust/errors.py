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

"""Errors raised by the artifact trust subsystem.

There are four kinds of failures:

- contract violations (`ContractViolation`): the caller passed something it
  should never pass, such as a PGP record to the Cosign verifier. These are
  bugs and are raised immediately.
- untrusted input that fails to parse: these never raise. Verifiers turn them
  into a `VerificationResult` with `status = invalid`.
- trust failures (unknown signer, expired certificate, missing proof): also
  reported as a `VerificationResult`, never raised.
- infrastructure failures (`InfrastructureError`): the verification could not
  be completed. These are retryable, unlike trust failures.

Policy decisions taken by the ingestion layer raise `PolicyViolation`
subclasses so that an upload or a download can be refused.
"""


class ContractViolation(ValueError):
    """A caller passed arguments that violate the API contract."""


class VerificationSuperseded(ContractViolation):
    """The signature left `pending` before the outcome could be recorded.

    This happens when another verification of the same signature finished
    first, or when an administrator revoked it meanwhile.
    """


class KeyParseError(ValueError):
    """Public key material could not be parsed."""


class NotFoundError(LookupError):
    """A record does not exist for the requesting tenant."""


class DuplicateSignatureError(ValueError):
    """A signature with the same id has already been stored."""


class InfrastructureError(Exception):
    """A dependency failed; the operation can be retried later."""


class TransparencyLogUnavailable(InfrastructureError):
    """The transparency log could not be reached or answered with an error."""


class PersistenceError(InfrastructureError):
    """The database rejected or failed an operation."""


class VerifierUnavailable(InfrastructureError):
    """A verification backend (such as the GnuPG binary) is missing."""


class PolicyViolation(Exception):
    """Repository signature policy refuses the requested operation."""


class SignatureRequiredError(PolicyViolation):
    """The repository requires a signature and none was attached."""


class SchemeNotEnabledError(PolicyViolation):
    """The signature scheme is not enabled for the repository."""


class UntrustedSignatureError(PolicyViolation):
    """The repository is strict and the signature did not verify as valid."""


class AccessDeniedError(PolicyViolation):
    """The artifact may not be served under the repository policy."""
