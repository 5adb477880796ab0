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

"""High level API for configuring signature verification.

Verifiers need trust anchors that depend on the deployment: the transparency
log to consult and its public keys, the roots of signing certificates, and the
Sigstore instance. They are collected in one configuration object:

```python
verifying_config = (
    artifact_trust.verifying.Config()
    .use_transparency_log(
        url="https://rekor.sigstore.dev", public_keys=["rekor.pub"]
    )
    .set_certificate_roots(["fulcio_root.pem", "fulcio_intermediate.pem"])
    .use_sigstore(use_staging=False)
)
service = artifact_trust.service.SignatureService(
    session_factory, verifying_config
)
```

Keyless Cosign signatures are never trusted without log public keys, since
the transparency log entry would otherwise be unproven.

The API defined here is stable and backwards compatible.
"""

from collections.abc import Iterable
import os
import pathlib
import sys
from typing import TypeAlias

from artifact_trust import signature as signature_lib
from artifact_trust._verifying import certificates
from artifact_trust._verifying import rekor
from artifact_trust._verifying import verify_cosign
from artifact_trust._verifying import verify_pgp
from artifact_trust._verifying import verify_sigstore
from artifact_trust._verifying import verifying


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


# Type alias to support `os.PathLike`, `str` and `bytes` objects in the API
PathLike: TypeAlias = str | bytes | os.PathLike


class Config:
    """Configuration of the verifiers used for each signature scheme."""

    def __init__(self):
        """Initializes the default configuration for verification."""
        self._log_url = rekor.DEFAULT_URL
        self._log_timeout = rekor.DEFAULT_TIMEOUT
        self._log_public_keys: list[pathlib.Path] = []
        self._certificate_roots: list[pathlib.Path] = []
        self._log_fingerprints = False
        self._sigstore_identity: str | None = None
        self._sigstore_issuer: str | None = None
        self._sigstore_staging = False
        self._gpg_binary = "gpg"

    def use_transparency_log(
        self,
        *,
        url: str = rekor.DEFAULT_URL,
        public_keys: Iterable[PathLike] = (),
        timeout: float = rekor.DEFAULT_TIMEOUT,
    ) -> Self:
        """Configures the transparency log backing keyless signatures.

        Args:
            url: Base URL of the Rekor server.
            public_keys: Paths to the PEM public keys of the log. Entries are
              only trusted when signed by one of them.
            timeout: Timeout, in seconds, of every request to the log.

        Return:
            The new verification configuration.
        """
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout}")
        self._log_url = url
        self._log_timeout = timeout
        self._log_public_keys = [pathlib.Path(p) for p in public_keys]
        return self

    def set_certificate_roots(
        self,
        certificate_chain_paths: Iterable[PathLike],
        *,
        log_fingerprints: bool = False,
    ) -> Self:
        """Sets the certificates that signing certificates must chain to.

        Without this, the root certificates from the operating system are
        used, as per `certifi.where()`.

        Args:
            certificate_chain_paths: Paths to PEM root and intermediate
              certificates.
            log_fingerprints: Log the fingerprints of certificates.

        Return:
            The new verification configuration.
        """
        self._certificate_roots = [
            pathlib.Path(p) for p in certificate_chain_paths
        ]
        self._log_fingerprints = log_fingerprints
        return self

    def use_sigstore(
        self,
        *,
        identity: str | None = None,
        oidc_issuer: str | None = None,
        use_staging: bool = False,
    ) -> Self:
        """Configures the verification of Sigstore bundles.

        Args:
            identity: The expected identity of every signer, if any.
            oidc_issuer: The expected OpenID Connect issuer, with `identity`.
            use_staging: Use staging configurations, instead of production. This
              is supposed to be set to True only when testing. Default is False.

        Return:
            The new verification configuration.
        """
        self._sigstore_identity = identity
        self._sigstore_issuer = oidc_issuer
        self._sigstore_staging = use_staging
        return self

    def set_gpg_binary(self, gpg_binary: str) -> Self:
        """Sets the GnuPG executable used for PGP verification."""
        self._gpg_binary = gpg_binary
        return self

    def build_verifier(
        self, signature_type: signature_lib.SignatureType
    ) -> verifying.Verifier:
        """Builds the verifier for one signature scheme."""
        match signature_type:
            case signature_lib.SignatureType.COSIGN:
                return self._build_cosign_verifier()
            case signature_lib.SignatureType.PGP:
                return verify_pgp.Verifier(gpg_binary=self._gpg_binary)
            case signature_lib.SignatureType.SIGSTORE:
                return verify_sigstore.Verifier(
                    identity=self._sigstore_identity,
                    oidc_issuer=self._sigstore_issuer,
                    use_staging=self._sigstore_staging,
                )
        raise ValueError(f"Unsupported signature type {signature_type}")

    def _build_cosign_verifier(self) -> verify_cosign.Verifier:
        log_verifier = None
        if self._log_public_keys:
            log_verifier = rekor.LogVerifier.from_pem(
                path.read_bytes() for path in self._log_public_keys
            )
        return verify_cosign.Verifier(
            log_client=rekor.Client(self._log_url, self._log_timeout),
            log_verifier=log_verifier,
            chain_verifier=certificates.ChainVerifier.from_paths(
                self._certificate_roots,
                log_fingerprints=self._log_fingerprints,
            ),
        )
