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

"""Parsing and validation of X.509 signing certificates.

Certificates attached to signatures are untrusted input. `load_certificate`
turns any parse failure into a `ValueError`, and `ChainVerifier` checks that a
leaf chains up to one of the configured roots.
"""

from collections.abc import Iterable
import dataclasses
import datetime
import logging
import pathlib

import certifi
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509 import oid
from OpenSSL import crypto


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CertificateInfo:
    """Fields of a signing certificate that end up in verification results."""

    subject: str
    issuer: str
    not_before: datetime.datetime
    not_after: datetime.datetime
    email: str = ""
    uri: str = ""
    common_name: str = ""

    @property
    def identity(self) -> str:
        """The signer identity: email, then URI, then common name."""
        return self.email or self.uri or self.common_name or self.subject

    def is_expired(self, at: datetime.datetime) -> bool:
        return at > self.not_after

    def was_valid_at(self, at: datetime.datetime) -> bool:
        return self.not_before <= at <= self.not_after


def load_certificate(material: str | bytes) -> x509.Certificate:
    """Loads one PEM certificate.

    Raises:
        ValueError: The material is not a PEM encoded X.509 certificate.
    """
    if isinstance(material, str):
        material = material.encode()
    try:
        return x509.load_pem_x509_certificate(material)
    except ValueError as e:
        raise ValueError(f"Failed to parse certificate: {e}") from e


def describe(certificate: x509.Certificate) -> CertificateInfo:
    """Extracts subject, issuer, validity and identity of a certificate."""
    email = ""
    uri = ""
    try:
        san = certificate.extensions.get_extension_for_class(
            x509.SubjectAlternativeName
        ).value
        emails = san.get_values_for_type(x509.RFC822Name)
        uris = san.get_values_for_type(x509.UniformResourceIdentifier)
        email = emails[0] if emails else ""
        uri = uris[0] if uris else ""
    except x509.ExtensionNotFound:
        pass

    common_names = certificate.subject.get_attributes_for_oid(
        oid.NameOID.COMMON_NAME
    )
    common_name = str(common_names[0].value) if common_names else ""

    return CertificateInfo(
        subject=certificate.subject.rfc4514_string(),
        issuer=certificate.issuer.rfc4514_string(),
        not_before=certificate.not_valid_before_utc,
        not_after=certificate.not_valid_after_utc,
        email=email,
        uri=uri,
        common_name=common_name,
    )


def _log_certificate_fingerprint(
    where: str, certificate: x509.Certificate, hash_algorithm: hashes.Hash
) -> None:
    """Log the fingerprint of a certificate, for debugging.

    Args:
        where: Location of where this gets called from, useful for debugging.
        certificate: Certificate to compute fingerprint of and log.
        hash_algorithm: The algorithm used to compute the fingerprint.
    """
    fp = certificate.fingerprint(hash_algorithm)
    logger.info(
        f"[{where:^8}] {hash_algorithm.name} "
        f"Fingerprint: {':'.join(f'{b:02X}' for b in fp)}"
    )


class ChainVerifier:
    """Validates signing certificates against a fixed set of trust anchors."""

    def __init__(
        self,
        certificates: Iterable[x509.Certificate],
        *,
        log_fingerprints: bool = False,
    ):
        """Initializes the verifier with the certificates to trust.

        Args:
            certificates: Root and intermediate certificates. Every leaf must
              chain up to a self-signed root in this set.
            log_fingerprints: Log the fingerprints of certificates.
        """
        self._log_fingerprints = log_fingerprints
        self._certificates = list(certificates)
        if not self._certificates:
            raise ValueError("At least one trusted certificate is required")

        for certificate in self._certificates:
            if log_fingerprints:
                _log_certificate_fingerprint(
                    "init", certificate, hashes.SHA256()
                )

    @classmethod
    def from_paths(
        cls,
        certificate_chain_paths: Iterable[pathlib.Path] = frozenset(),
        *,
        log_fingerprints: bool = False,
    ) -> "ChainVerifier":
        """Loads the trust anchors from PEM files.

        When no path is given we use the root certificates from the operating
        system, as per `certifi.where()`.
        """
        if not certificate_chain_paths:
            certificate_chain_paths = [pathlib.Path(certifi.where())]

        certificates = x509.load_pem_x509_certificates(
            b"".join([path.read_bytes() for path in certificate_chain_paths])
        )
        return cls(certificates, log_fingerprints=log_fingerprints)

    def verify(
        self,
        signing_certificate: x509.Certificate,
        intermediates: Iterable[x509.Certificate] = (),
    ) -> None:
        """Verifies that the certificate chains to a trusted root.

        The chain is validated at the time the signing certificate was issued,
        since short lived signing certificates are expected to be expired by
        the time an artifact is verified. Expiry is checked by the caller.

        Raises:
            ValueError: The chain is not trusted or the certificate cannot be
              used for code signing.
        """
        if self._log_fingerprints:
            _log_certificate_fingerprint(
                "verify", signing_certificate, hashes.SHA256()
            )

        # OpenSSL stores are mutated by `set_time`, so build one per call.
        store = crypto.X509Store()
        for certificate in self._certificates:
            store.add_cert(crypto.X509.from_cryptography(certificate))
        store.set_time(signing_certificate.not_valid_before_utc)

        store_context = crypto.X509StoreContext(
            store,
            crypto.X509.from_cryptography(signing_certificate),
            [crypto.X509.from_cryptography(c) for c in intermediates],
        )
        try:
            store_context.verify_certificate()
        except crypto.X509StoreContextError as e:
            raise ValueError(f"Certificate chain is not trusted: {e}") from e

        if not _can_sign_code(signing_certificate):
            raise ValueError("Signing certificate cannot be used for signing")


def _can_sign_code(certificate: x509.Certificate) -> bool:
    """Both digitalSignature and the codeSigning extended usage are needed."""
    extensions = certificate.extensions
    try:
        usage = extensions.get_extension_for_class(x509.KeyUsage)
    except x509.ExtensionNotFound:
        logger.warning("Certificate does not specify 'KeyUsage'.")
        return False
    if not usage.value.digital_signature:
        return False

    try:
        extended = extensions.get_extension_for_class(x509.ExtendedKeyUsage)
    except x509.ExtensionNotFound:
        logger.warning("Certificate does not specify 'ExtendedKeyUsage'.")
        return False
    return oid.ExtendedKeyUsageOID.CODE_SIGNING in extended.value
