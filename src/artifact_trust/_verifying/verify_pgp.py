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

"""Verification of detached PGP signatures.

Signatures are checked against a `Keyring` holding only keys from the trusted
key store. Each keyring owns a private GnuPG home directory, so keys imported
for one tenant are never visible to another.

```python
with Keyring() as keyring:
    keyring.add_trusted_keys(trust_context.keys)
    result = Verifier(keyring).verify(signature, artifact, trust_context)
```

When the verifier is built without a keyring it creates one per verification
from the trust context it receives, which is how the signature service uses it.

A signature whose issuer is not in the keyring is reported as `untrusted`,
never as `invalid`: an unknown signer and a forged signature are different
failures.
"""

from collections.abc import Iterable
import dataclasses
import datetime
import logging
import pathlib
import re
import shutil
import tempfile
import threading
import uuid

import gnupg
from typing_extensions import override

from artifact_trust import errors
from artifact_trust import keys
from artifact_trust import signature as signature_lib
from artifact_trust._verifying import openpgp
from artifact_trust._verifying import verifying


logger = logging.getLogger(__name__)

METHOD = "pgp"

SIGNER_NOT_FOUND = "signer's public key not found in keyring"

Status = signature_lib.VerificationStatus
ErrorCode = signature_lib.ErrorCode

_USER_ID = re.compile(
    r"^\s*(?P<name>[^<(]*?)\s*(?:\((?P<comment>[^)]*)\))?\s*"
    r"(?:<(?P<email>[^>]*)>)?\s*$"
)


def _timestamp(value: str) -> datetime.datetime | None:
    if not value:
        return None
    return datetime.datetime.fromtimestamp(int(value), datetime.timezone.utc)


@dataclasses.dataclass(frozen=True)
class KeyEntity:
    """A primary key with its user ids and subkeys, as listed by GnuPG."""

    fingerprint: str
    key_id: str
    algorithm: int
    length: int
    created_at: datetime.datetime | None
    expires_at: datetime.datetime | None
    user_ids: tuple[str, ...]
    subkey_ids: tuple[str, ...] = ()

    @classmethod
    def from_listing(cls, listing: dict) -> "KeyEntity":
        return cls(
            fingerprint=listing["fingerprint"].upper(),
            key_id=listing["keyid"].upper(),
            algorithm=int(listing.get("algo") or 0),
            length=int(listing.get("length") or 0),
            created_at=_timestamp(listing.get("date", "")),
            expires_at=_timestamp(listing.get("expires", "")),
            user_ids=tuple(listing.get("uids", [])),
            subkey_ids=tuple(s[0].upper() for s in listing.get("subkeys", [])),
        )

    @property
    def owner(self) -> tuple[str, str]:
        """Name and email of the first user id."""
        if not self.user_ids:
            return "", ""
        match = _USER_ID.match(self.user_ids[0])
        if match is None:
            return self.user_ids[0], ""
        return match.group("name") or "", match.group("email") or ""

    @property
    def identity(self) -> str:
        name, email = self.owner
        return email or name or f"Key ID: {self.key_id}"


class Keyring:
    """An isolated GnuPG keyring.

    Importing and verifying are serialized, so a verification never runs
    against a partially imported keyring. GnuPG is started on the first
    import; an empty keyring never needs it.
    """

    def __init__(self, *, gpg_binary: str = "gpg"):
        self._gpg_binary = gpg_binary
        self._lock = threading.Lock()
        self._home: tempfile.TemporaryDirectory | None = None
        self._gpg: gnupg.GPG | None = None
        self._entities: dict[str, KeyEntity] = {}

    def __enter__(self) -> "Keyring":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._entities.clear()
            self._gpg = None
            if self._home is not None:
                self._home.cleanup()
                self._home = None

    def __len__(self) -> int:
        return len({e.fingerprint for e in self._entities.values()})

    def _ensure_gpg(self) -> gnupg.GPG:
        if self._gpg is None:
            if shutil.which(self._gpg_binary) is None:
                raise errors.VerifierUnavailable("GnuPG executable not found")
            self._home = tempfile.TemporaryDirectory(prefix="artifact-trust-")
            try:
                self._gpg = gnupg.GPG(
                    gpgbinary=self._gpg_binary, gnupghome=self._home.name
                )
            except (OSError, ValueError) as e:
                raise errors.VerifierUnavailable(
                    f"Cannot start GnuPG: {e}"
                ) from e
        return self._gpg

    def add_public_key(self, material: str | bytes) -> list[KeyEntity]:
        """Imports ASCII armored or binary public key material.

        Raises:
            KeyParseError: The material does not hold a public key.
            VerifierUnavailable: GnuPG cannot be started.
        """
        with self._lock:
            return self._import(material)

    def add_trusted_keys(
        self,
        trusted_keys: Iterable[keys.PublicKey],
        at: datetime.datetime | None = None,
    ) -> int:
        """Imports the usable PGP keys and returns how many were imported.

        Keys that are not PGP keys, or that fail the usability predicate at
        time `at`, are skipped. So are keys whose material cannot be
        parsed: a corrupt entry in the trust store must not stop the other
        keys from verifying.
        """
        if at is None:
            at = datetime.datetime.now(datetime.timezone.utc)

        count = 0
        with self._lock:
            for key in trusted_keys:
                if key.key_type != keys.KeyType.PGP or not key.is_usable(at):
                    logger.debug(f"Skipping unusable key {key.fingerprint}")
                    continue
                try:
                    self._import(key.public_key, key.fingerprint)
                except errors.KeyParseError as e:
                    logger.warning(
                        f"Skipping trusted key "
                        f"{key.key_name or key.fingerprint}: {e}"
                    )
                    continue
                count += 1
        return count

    def lookup(self, key_id: str) -> KeyEntity | None:
        """Finds the entity whose primary key or a subkey has this id."""
        with self._lock:
            return self._entities.get(key_id.upper())

    def verify_detached(self, signature: bytes, data: bytes) -> gnupg.Verify:
        with self._lock:
            gpg = self._ensure_gpg()
            signature_path = pathlib.Path(self._home.name) / (
                f"{uuid.uuid4().hex}.sig"
            )
            signature_path.write_bytes(signature)
            try:
                return gpg.verify_data(str(signature_path), data)
            finally:
                signature_path.unlink()

    def export(self, fingerprint: str) -> str:
        with self._lock:
            return self._ensure_gpg().export_keys(fingerprint)

    def _import(
        self, material: str | bytes, expected_fingerprint: str = ""
    ) -> list[KeyEntity]:
        if isinstance(material, str):
            material = material.encode()

        try:
            data = (
                openpgp.dearmor(material)
                if openpgp.is_armored(material)
                else material
            )
            openpgp.parse_public_key(data)
        except openpgp.PacketError as e:
            raise errors.KeyParseError(f"Not a PGP public key: {e}") from e

        gpg = self._ensure_gpg()
        imported = gpg.import_keys(data)
        fingerprints = [f.upper() for f in imported.fingerprints if f]
        if not fingerprints:
            raise errors.KeyParseError("No public key could be imported")

        expected = keys.normalize_fingerprint(expected_fingerprint)
        entities = []
        for listing in gpg.list_keys(keys=fingerprints):
            entity = KeyEntity.from_listing(listing)
            # Only the key the trust record is about becomes usable.
            if expected and entity.fingerprint != expected:
                continue
            entities.append(entity)
            for key_id in (entity.key_id, *entity.subkey_ids):
                self._entities[key_id] = entity

        if not entities:
            raise errors.KeyParseError(
                f"Key material does not contain key {expected}"
            )
        return entities


def extract_key_info(
    material: str | bytes, tenant_id: uuid.UUID, **kwargs
) -> keys.PublicKey:
    """Parses a PGP public key into a trusted key store entry.

    The entry is neither trusted nor revoked; trusting it is an explicit
    administrative decision. The stored material is the ASCII armored export
    of the first key found.

    Raises:
        KeyParseError: The material does not hold a PGP public key.
        VerifierUnavailable: GnuPG cannot be started.
    """
    with Keyring() as keyring:
        entity = keyring.add_public_key(material)[0]
        armored = keyring.export(entity.fingerprint)

    name, email = entity.owner
    return keys.PublicKey(
        tenant_id=tenant_id,
        key_type=keys.KeyType.PGP,
        key_format=keys.KeyFormat.ASCII_ARMOR,
        public_key=armored,
        fingerprint=entity.fingerprint,
        key_id_short=entity.key_id,
        algorithm=openpgp.algorithm_name(entity.algorithm),
        key_size=(
            entity.length
            if entity.algorithm in openpgp.RSA_ALGORITHMS
            else None
        ),
        owner_name=name,
        owner_email=email,
        valid_from=entity.created_at,
        valid_until=entity.expires_at,
        **kwargs,
    )


class Verifier(verifying.Verifier):
    """Verifier for detached PGP signatures."""

    signature_type = signature_lib.SignatureType.PGP

    def __init__(
        self,
        keyring: Keyring | None = None,
        *,
        gpg_binary: str = "gpg",
        clock=None,
    ):
        """Initializes the verifier.

        Args:
            keyring: A keyring managed by the caller. When missing, each
              verification imports the PGP keys of its trust context into a
              fresh keyring.
            gpg_binary: The GnuPG executable for fresh keyrings.
            clock: Callable returning the current time, for tests.
        """
        self._keyring = keyring
        self._gpg_binary = gpg_binary
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
        if artifact.content is None:
            raise errors.ContractViolation(
                "PGP verification needs the artifact content"
            )

        if self._keyring is not None:
            return self._verify_with(self._keyring, signature, artifact)

        with Keyring(gpg_binary=self._gpg_binary) as keyring:
            keyring.add_trusted_keys(trust.keys, trust.evaluated_at)
            return self._verify_with(keyring, signature, artifact)

    def _verify_with(
        self,
        keyring: Keyring,
        signature: signature_lib.ArtifactSignature,
        artifact: verifying.Artifact,
    ) -> signature_lib.VerificationResult:
        result = signature_lib.VerificationResult(
            verified=False,
            status=Status.PENDING,
            verification_method=METHOD,
            verified_at=self._clock(),
        )

        raw = signature.signature_data
        armored = signature_lib.SignatureFormat.ASCII_ARMOR
        if signature.signature_format == armored or openpgp.is_armored(raw):
            try:
                raw = openpgp.dearmor(raw)
            except openpgp.PacketError as e:
                return result.fail(
                    Status.INVALID,
                    ErrorCode.MALFORMED_SIGNATURE,
                    f"not a PGP signature: {e}",
                )

        try:
            packet = openpgp.parse_signature(raw)
        except openpgp.PacketError as e:
            return result.fail(
                Status.INVALID,
                ErrorCode.MALFORMED_SIGNATURE,
                f"not a valid PGP signature packet: {e}",
            )
        result.signature_algorithm = f"PGP-{packet.public_key_algorithm}"

        embedded = self._describe_embedded_key(signature)
        if embedded is not None and embedded.key_id == packet.issuer_key_id:
            result.signer_fingerprint = embedded.fingerprint

        entity = None
        if packet.issuer_key_id is not None:
            entity = keyring.lookup(packet.issuer_key_id)
        if entity is None:
            logger.info(
                f"Signature issuer {packet.issuer_key_id} is not trusted"
            )
            return result.fail(
                Status.UNTRUSTED, ErrorCode.SIGNER_NOT_FOUND, SIGNER_NOT_FOUND
            )

        result.signer_fingerprint = entity.fingerprint
        verified = keyring.verify_detached(raw, artifact.content)
        if not verified.valid:
            return result.fail(
                Status.INVALID,
                ErrorCode.INVALID_SIGNATURE,
                f"signature verification failed: {verified.status}",
            )

        signer = verified.pubkey_fingerprint or verified.fingerprint or ""
        signer = signer.upper()
        if signer != entity.fingerprint:
            return result.fail(
                Status.INVALID,
                ErrorCode.INVALID_SIGNATURE,
                "signature verification failed: signed by another key",
            )

        result.signer_identity = entity.identity
        return result.succeed()

    def _describe_embedded_key(
        self, signature: signature_lib.ArtifactSignature
    ) -> openpgp.PublicKeyPacket | None:
        """Reads the key shipped with the signature, without trusting it."""
        if not signature.public_key:
            return None
        material = signature.public_key.encode()
        try:
            if openpgp.is_armored(material):
                material = openpgp.dearmor(material)
            return openpgp.parse_public_key(material)
        except openpgp.PacketError as e:
            logger.info(f"Ignoring unreadable embedded public key: {e}")
            return None
