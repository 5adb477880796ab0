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

"""Digest values and the engines producing them.

Artifacts are hashed once, as they are received, so every engine consumes
data incrementally. A digest always carries its algorithm name, which is the
OCI registered identifier (`sha256`, `sha512`) and the prefix of the
`algorithm:hex` string stored next to an artifact.
"""

import abc
import dataclasses


@dataclasses.dataclass(frozen=True)
class Digest:
    """The output of a `StreamingHashEngine`."""

    algorithm: str
    digest_value: bytes

    @property
    def digest_hex(self) -> str:
        return self.digest_value.hex()

    @property
    def digest_size(self) -> int:
        return len(self.digest_value)

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.digest_hex}"


class StreamingHashEngine(metaclass=abc.ABCMeta):
    """Hashes data appended with `update` until `compute` is called."""

    @abc.abstractmethod
    def update(self, data: bytes) -> None:
        pass

    @abc.abstractmethod
    def reset(self, data: bytes = b"") -> None:
        """Discards everything hashed so far and starts again from `data`."""

    @abc.abstractmethod
    def compute(self) -> Digest:
        """Returns the digest of the data seen since the last reset.

        Computing does not consume the state: more data can be appended.
        """

    @property
    @abc.abstractmethod
    def digest_name(self) -> str:
        pass

    @property
    @abc.abstractmethod
    def digest_size(self) -> int:
        """The size, in bytes, of the digests produced by the engine."""
