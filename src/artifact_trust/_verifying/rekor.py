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

"""Client and proof checks for a Rekor transparency log.

A log entry returned by the server is only trusted after checking it against
the log's own public key:

- the signed entry timestamp (SET) covers the entry body, integration time,
  log id and index;
- the inclusion proof recomputes the tree root from the entry (RFC 6962
  hashing);
- the signed checkpoint commits to the same tree size and root.

Without these checks the keyless path would trust whatever the server
returned.

`sigstore.verify.Verifier` cannot do this for Cosign records. It only takes a
complete bundle, checked against a Sigstore trusted root, and it requires an
SCT from one of that root's CT logs. A Cosign record only holds a certificate
and a log UUID, and is checked against the certificate roots and log keys the
operator configured. Sigstore bundles are verified by `verify_sigstore`.

Example usage:
```python
client = Client("https://rekor.sigstore.dev")
entry = client.get_entry(uuid)
LogVerifier([rekor_public_key]).verify(entry)
entry.check_binding(signature_bytes, artifact_sha256)
```
"""

from collections.abc import Iterable, Sequence
import base64
import binascii
import dataclasses
import hashlib
import json
import logging
from typing import Any

from cryptography import exceptions
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
import requests
import rfc8785

from artifact_trust import errors


logger = logging.getLogger(__name__)

DEFAULT_URL = "https://rekor.sigstore.dev"
DEFAULT_TIMEOUT = 30.0

_LEAF_PREFIX = b"\x00"
_NODE_PREFIX = b"\x01"
_CHECKPOINT_SIGNATURE_PREFIX = "— "


class UnprovenEntry(ValueError):
    """The log entry is missing, malformed, or fails a proof check."""


@dataclasses.dataclass(frozen=True)
class InclusionProof:
    log_index: int
    root_hash: str
    tree_size: int
    hashes: tuple[str, ...]
    checkpoint: str


@dataclasses.dataclass(frozen=True)
class LogEntry:
    """One entry of the log, with the raw response kept for auditing."""

    uuid: str
    body: str
    integrated_time: int
    log_id: str
    log_index: int
    signed_entry_timestamp: str
    inclusion_proof: InclusionProof | None
    raw: dict[str, Any]

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "LogEntry":
        """Parses the `{uuid: entry}` map returned by the entries endpoint.

        Raises:
            UnprovenEntry: The response does not hold exactly one well formed
              entry.
        """
        if not isinstance(response, dict) or len(response) != 1:
            raise UnprovenEntry("Expected exactly one log entry in response")
        [(uuid, entry)] = response.items()

        try:
            verification = entry.get("verification") or {}
            proof = verification.get("inclusionProof")
            inclusion_proof = None
            if proof is not None:
                inclusion_proof = InclusionProof(
                    log_index=int(proof["logIndex"]),
                    root_hash=str(proof["rootHash"]),
                    tree_size=int(proof["treeSize"]),
                    hashes=tuple(str(h) for h in proof.get("hashes", [])),
                    checkpoint=str(proof.get("checkpoint", "")),
                )
            return cls(
                uuid=uuid,
                body=str(entry["body"]),
                integrated_time=int(entry["integratedTime"]),
                log_id=str(entry["logID"]),
                log_index=int(entry["logIndex"]),
                signed_entry_timestamp=str(
                    verification.get("signedEntryTimestamp", "")
                ),
                inclusion_proof=inclusion_proof,
                raw=response,
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise UnprovenEntry(f"Malformed log entry: {e!r}") from e

    def decoded_body(self) -> bytes:
        try:
            return base64.b64decode(self.body, validate=True)
        except binascii.Error as e:
            raise UnprovenEntry(f"Log entry body is not base64: {e}") from e

    def check_binding(self, signature: bytes, sha256_hex: str) -> None:
        """Checks that the entry records this signature over this digest.

        Only `hashedrekord` entries are understood.

        Raises:
            UnprovenEntry: The entry is about another artifact or signature.
        """
        decoded = self.decoded_body()
        try:
            body = json.loads(decoded)
            kind = body["kind"]
            spec = body["spec"]
        except (KeyError, TypeError, ValueError) as e:
            raise UnprovenEntry(f"Malformed log entry body: {e!r}") from e
        if kind != "hashedrekord":
            raise UnprovenEntry(f"Unsupported log entry kind {kind!r}")

        try:
            logged_algorithm = spec["data"]["hash"]["algorithm"]
            logged_digest = str(spec["data"]["hash"]["value"])
            logged_signature = base64.b64decode(spec["signature"]["content"])
        except (KeyError, TypeError, ValueError) as e:
            raise UnprovenEntry(f"Malformed log entry body: {e!r}") from e

        if logged_algorithm != "sha256":
            raise UnprovenEntry("Log entry does not record a sha256 digest")
        if logged_digest.lower() != sha256_hex.lower():
            raise UnprovenEntry("Log entry records a different artifact")
        if logged_signature != signature:
            raise UnprovenEntry("Log entry records a different signature")


class Client:
    """Reads entries from a Rekor server over HTTP."""

    def __init__(
        self, url: str = DEFAULT_URL, timeout: float = DEFAULT_TIMEOUT
    ):
        self._url = url.rstrip("/")
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._url

    def get_entry(self, uuid: str) -> LogEntry:
        """Fetches one entry by uuid.

        Raises:
            TransparencyLogUnavailable: The server could not be reached, timed
              out or failed with a server error. Retrying may succeed.
            UnprovenEntry: The server does not know the entry or returned
              something that is not an entry.
        """
        url = f"{self._url}/api/v1/log/entries/{uuid}"
        logger.debug(f"Fetching transparency log entry {url}")
        try:
            response = requests.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            raise errors.TransparencyLogUnavailable(
                f"Transparency log request failed: {e}"
            ) from e

        if response.status_code >= 500:
            raise errors.TransparencyLogUnavailable(
                f"Rekor returned {response.status_code}: {response.text}"
            )
        if response.status_code != 200:
            raise UnprovenEntry(
                f"Rekor returned {response.status_code}: {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UnprovenEntry(f"Rekor returned invalid JSON: {e}") from e
        return LogEntry.from_response(payload)


def hash_leaf(data: bytes) -> bytes:
    return hashlib.sha256(_LEAF_PREFIX + data).digest()


def hash_children(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(_NODE_PREFIX + left + right).digest()


def verify_inclusion(
    leaf_index: int,
    tree_size: int,
    leaf_hash: bytes,
    proof: Sequence[bytes],
    root_hash: bytes,
) -> None:
    """Verifies a Merkle audit path, as in RFC 9162, section 2.1.3.2.

    Raises:
        UnprovenEntry: The path does not lead from the leaf to the root.
    """
    if leaf_index < 0 or leaf_index >= tree_size:
        raise UnprovenEntry(
            f"Leaf index {leaf_index} outside of tree of size {tree_size}"
        )

    fn = leaf_index
    sn = tree_size - 1
    result = leaf_hash
    for sibling in proof:
        if sn == 0:
            raise UnprovenEntry("Inclusion proof is longer than the tree")
        if fn & 1 or fn == sn:
            result = hash_children(sibling, result)
            if not fn & 1:
                while fn != 0 and not fn & 1:
                    fn >>= 1
                    sn >>= 1
        else:
            result = hash_children(result, sibling)
        fn >>= 1
        sn >>= 1

    if sn != 0:
        raise UnprovenEntry("Inclusion proof is shorter than the tree")
    if result != root_hash:
        raise UnprovenEntry("Inclusion proof does not match the root hash")


def key_id(public_key: Any) -> str:
    """The log id of a key: SHA-256 over its DER SubjectPublicKeyInfo."""
    der = public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest()


def _verify_with_key(public_key: Any, signature: bytes, data: bytes) -> None:
    """Raises `exceptions.InvalidSignature` if the signature does not match."""
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
    elif isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(
            signature, data, padding.PKCS1v15(), hashes.SHA256()
        )
    elif isinstance(public_key, ed25519.Ed25519PublicKey):
        public_key.verify(signature, data)
    else:
        raise exceptions.InvalidSignature(
            f"Unsupported log key type {type(public_key).__name__}"
        )


class LogVerifier:
    """Checks log entries against the public keys of trusted logs."""

    def __init__(self, public_keys: Iterable[Any]):
        self._keys = {key_id(key): key for key in public_keys}

    @classmethod
    def from_pem(cls, pem_keys: Iterable[bytes]) -> "LogVerifier":
        return cls(serialization.load_pem_public_key(k) for k in pem_keys)

    def verify(self, entry: LogEntry) -> None:
        """Verifies the SET, the inclusion proof and the checkpoint.

        Raises:
            UnprovenEntry: Any of the checks fails.
        """
        public_key = self._keys.get(entry.log_id)
        if public_key is None:
            raise UnprovenEntry(f"No trusted log key with id {entry.log_id}")

        self._verify_set(public_key, entry)

        proof = entry.inclusion_proof
        if proof is None:
            raise UnprovenEntry("Log entry has no inclusion proof")
        try:
            path = [bytes.fromhex(h) for h in proof.hashes]
            root_hash = bytes.fromhex(proof.root_hash)
        except ValueError as e:
            raise UnprovenEntry(f"Malformed inclusion proof: {e}") from e

        verify_inclusion(
            proof.log_index,
            proof.tree_size,
            hash_leaf(entry.decoded_body()),
            path,
            root_hash,
        )
        self._verify_checkpoint(public_key, entry.log_id, proof, root_hash)
        logger.debug(f"Log entry {entry.uuid} proven at {entry.log_index}")

    def _verify_set(self, public_key: Any, entry: LogEntry) -> None:
        if not entry.signed_entry_timestamp:
            raise UnprovenEntry("Log entry has no signed entry timestamp")
        payload = rfc8785.dumps(
            {
                "body": entry.body,
                "integratedTime": entry.integrated_time,
                "logID": entry.log_id,
                "logIndex": entry.log_index,
            }
        )
        try:
            set_signature = base64.b64decode(entry.signed_entry_timestamp)
            _verify_with_key(public_key, set_signature, payload)
        except (binascii.Error, exceptions.InvalidSignature) as e:
            raise UnprovenEntry("Invalid signed entry timestamp") from e

    def _verify_checkpoint(
        self,
        public_key: Any,
        log_id: str,
        proof: InclusionProof,
        root_hash: bytes,
    ) -> None:
        note, separator, signatures = proof.checkpoint.partition("\n\n")
        if not separator:
            raise UnprovenEntry("Inclusion proof has no signed checkpoint")

        lines = note.split("\n")
        if len(lines) < 3:
            raise UnprovenEntry("Checkpoint is truncated")
        try:
            tree_size = int(lines[1])
            checkpoint_root = base64.b64decode(lines[2], validate=True)
        except (ValueError, binascii.Error) as e:
            raise UnprovenEntry(f"Malformed checkpoint: {e}") from e
        if tree_size != proof.tree_size or checkpoint_root != root_hash:
            raise UnprovenEntry("Checkpoint does not match inclusion proof")

        key_hint = bytes.fromhex(log_id)[:4]
        signed = (note + "\n").encode()
        for line in signatures.splitlines():
            if not line.startswith(_CHECKPOINT_SIGNATURE_PREFIX):
                continue
            _, _, encoded = line.rpartition(" ")
            try:
                raw = base64.b64decode(encoded, validate=True)
            except binascii.Error:
                continue
            if raw[:4] != key_hint:
                continue
            try:
                _verify_with_key(public_key, raw[4:], signed)
                return
            except exceptions.InvalidSignature:
                continue

        raise UnprovenEntry("Checkpoint is not signed by the log")
