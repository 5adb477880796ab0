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

"""Integrity hashes of artifact content.

Every uploaded artifact is hashed once with the canonical digest (SHA-256) and
an extended digest (SHA-512). The canonical digest is the one used for
cross-system comparison and as the input to signature verification:

```python
integrity = artifact_trust.integrity.compute(artifact_bytes)
artifact_trust.integrity.verify(artifact_bytes, integrity.sha256)
```

Streams are hashed in a single pass without buffering the whole artifact:

```python
with open("artifact.tar.gz", "rb") as f:
    integrity = artifact_trust.integrity.compute(f)
```

Digests travel on the wire as `"algorithm:hexdigest"`, following the OCI
content addressing conventions:

```python
algorithm, hex_digest = artifact_trust.integrity.parse_digest("sha256:abcd")
```

A digest mismatch is not an error: `verify` and `verify_reader` return `False`
and callers decide whether that is fatal.
"""

import dataclasses
import datetime
import hmac
import io
from typing import BinaryIO
import uuid

from artifact_trust._hashing import memory
from artifact_trust._hashing import stream as stream_hashing


CANONICAL_ALGORITHM = "sha256"


@dataclasses.dataclass(frozen=True)
class IntegrityHash:
    """The canonical and extended digests of one artifact, as hex strings."""

    sha256: str
    sha512: str
    algorithm: str = CANONICAL_ALGORITHM

    @property
    def digest(self) -> str:
        """The canonical digest in `"algorithm:hexdigest"` form."""
        return format_digest(self.algorithm, self.sha256)


@dataclasses.dataclass(frozen=True)
class ArtifactIntegrity:
    """The stored integrity record of an artifact.

    `signature_count` and `signature_verified` summarize the signatures
    attached to the artifact when the record was read.
    """

    tenant_id: uuid.UUID
    repository_id: uuid.UUID
    artifact_id: uuid.UUID
    hashes: IntegrityHash
    signature_required: bool = False
    signature_count: int = 0
    signature_verified: bool = False
    recorded_at: datetime.datetime | None = None


def compute(
    content: bytes | BinaryIO, *, chunk_size: int = 8192
) -> IntegrityHash:
    """Computes the integrity hash of a buffer or of a binary stream.

    Args:
        content: The artifact bytes, or a stream positioned at the start of
          the artifact. Streams are read to their end.
        chunk_size: The amount of the stream to read at once.

    Returns:
        The SHA-256 and SHA-512 digests of the content.
    """
    if isinstance(content, (bytes, bytearray, memoryview)):
        content = io.BytesIO(content)

    hasher = stream_hashing.StreamHasher(
        [memory.SHA256(), memory.SHA512()], chunk_size=chunk_size
    )
    digests = hasher.compute(content)
    return IntegrityHash(
        sha256=digests["sha256"].digest_hex,
        sha512=digests["sha512"].digest_hex,
    )


def verify(content: bytes, expected_sha256: str) -> bool:
    """Checks that the SHA-256 of `content` matches the expected value.

    The expected value can be bare hex or `"sha256:<hex>"`.
    """
    return _matches(compute(content).sha256, expected_sha256)


def verify_reader(stream: BinaryIO, expected_sha256: str) -> bool:
    """Streaming version of `verify`."""
    return _matches(compute(stream).sha256, expected_sha256)


def format_digest(algorithm: str, hex_digest: str) -> str:
    """Formats a digest as `"algorithm:hexdigest"`."""
    return f"{algorithm}:{hex_digest}"


def parse_digest(value: str) -> tuple[str, str]:
    """Splits an `"algorithm:hexdigest"` string.

    Raises:
        ValueError: The string does not contain exactly one `:` separator, or
          one of the two parts is empty.
    """
    parts = value.split(":")
    if len(parts) != 2:
        raise ValueError(
            f"Digest must have the form 'algorithm:hexdigest', got {value!r}"
        )
    algorithm, hex_digest = parts
    if not algorithm or not hex_digest:
        raise ValueError(f"Digest has an empty component: {value!r}")
    return algorithm, hex_digest


def canonical_hex(digest: str) -> str:
    """Returns the lowercase SHA-256 hex of a bare or prefixed digest.

    Raises:
        ValueError: The digest names another algorithm.
    """
    if ":" in digest:
        algorithm, digest = parse_digest(digest)
        if algorithm.lower() != CANONICAL_ALGORITHM:
            raise ValueError(
                f"Expected a {CANONICAL_ALGORITHM} digest, got {algorithm}"
            )
    return digest.lower()


def _matches(actual_hex: str, expected: str) -> bool:
    try:
        expected_hex = canonical_hex(expected)
    except ValueError:
        return False
    if not expected_hex.isascii():
        return False
    return hmac.compare_digest(actual_hex, expected_hex)
