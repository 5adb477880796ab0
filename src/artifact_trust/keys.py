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

"""Trusted public keys and the trust context used during verification.

A key can be used to verify signatures only while it is trusted, enabled, not
revoked and inside its validity window. The predicate is evaluated every time
a `TrustContext` is built, so revoking a key affects every verification that
starts afterwards.
"""

from collections.abc import Iterable
import dataclasses
import datetime
import enum
import uuid


class KeyType(enum.Enum):
    PGP = "pgp"
    COSIGN = "cosign"


class KeyFormat(enum.Enum):
    ASCII_ARMOR = "ascii-armor"
    BINARY = "binary"
    PEM = "pem"


class KeySource(enum.Enum):
    MANUAL = "manual"
    DISCOVERED = "discovered"
    IMPORTED = "imported"


def normalize_fingerprint(fingerprint: str) -> str:
    """Uppercase hex without separators, the form stored and compared."""
    return "".join(c for c in fingerprint if c not in " :").upper()


@dataclasses.dataclass(frozen=True)
class PublicKey:
    """One entry of the trusted key store.

    `repository_id` is `None` for keys trusted across the whole tenant.
    """

    tenant_id: uuid.UUID
    key_type: KeyType
    key_format: KeyFormat
    public_key: str
    fingerprint: str
    key_name: str = ""
    key_id: uuid.UUID | None = None
    repository_id: uuid.UUID | None = None
    key_id_short: str = ""
    algorithm: str = ""
    key_size: int | None = None
    owner_name: str = ""
    owner_email: str = ""
    organization: str = ""
    description: str = ""
    key_source: KeySource = KeySource.MANUAL
    key_source_url: str = ""
    trusted: bool = False
    enabled: bool = True
    revoked: bool = False
    revoked_at: datetime.datetime | None = None
    revocation_reason: str = ""
    valid_from: datetime.datetime | None = None
    valid_until: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    created_by: uuid.UUID | None = None

    def is_usable(self, at: datetime.datetime) -> bool:
        """Whether the key may be used to verify signatures at time `at`."""
        if not self.trusted or not self.enabled or self.revoked:
            return False
        if self.valid_from is not None and at < self.valid_from:
            return False
        if self.valid_until is not None and at >= self.valid_until:
            return False
        return True


@dataclasses.dataclass(frozen=True)
class TrustContext:
    """The keys usable for one verification, evaluated at `evaluated_at`.

    Keys that fail the usability predicate at construction time are dropped,
    so holders of a context never see revoked or expired keys.
    """

    keys: tuple[PublicKey, ...]
    evaluated_at: datetime.datetime

    @classmethod
    def build(
        cls,
        keys: Iterable[PublicKey],
        at: datetime.datetime | None = None,
    ) -> "TrustContext":
        if at is None:
            at = datetime.datetime.now(datetime.timezone.utc)
        return cls(tuple(k for k in keys if k.is_usable(at)), at)

    @classmethod
    def empty(cls) -> "TrustContext":
        return cls.build(())

    def keys_of_type(self, key_type: KeyType) -> list[PublicKey]:
        return [k for k in self.keys if k.key_type == key_type]

    def find(self, key_type: KeyType, fingerprint: str) -> PublicKey | None:
        """Returns the usable key of that type with the given fingerprint."""
        fingerprint = normalize_fingerprint(fingerprint)
        for key in self.keys_of_type(key_type):
            if normalize_fingerprint(key.fingerprint) == fingerprint:
                return key
        return None
