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

"""Digests computed over in-memory byte buffers.

Example usage:
```python
>>> hasher = SHA256(b"abcd")
>>> digest = hasher.compute()
>>> digest.digest_hex
'88d4266fd4e6338d13b845fcf289579d209c897823b9217da3e161936f031589'
```

Or, passing the data incrementally:
```python
>>> hasher = SHA512()
>>> hasher.update(b"ab")
>>> hasher.update(b"cd")
>>> digest = hasher.compute()
```
"""

import hashlib

from typing_extensions import override

from artifact_trust._hashing import hashing


class _HashlibEngine(hashing.StreamingHashEngine):
    """A streaming engine backed by a `hashlib` constructor."""

    _name: str

    def __init__(self, initial_data: bytes = b""):
        """Initializes an instance of the engine.

        Args:
            initial_data: Optional initial content to hash.
        """
        self._hasher = hashlib.new(self._name, initial_data)

    @override
    def update(self, data: bytes) -> None:
        self._hasher.update(data)

    @override
    def reset(self, data: bytes = b"") -> None:
        self._hasher = hashlib.new(self._name, data)

    @override
    def compute(self) -> hashing.Digest:
        return hashing.Digest(self.digest_name, self._hasher.digest())

    @property
    @override
    def digest_name(self) -> str:
        return self._name

    @property
    @override
    def digest_size(self) -> int:
        return self._hasher.digest_size


class SHA256(_HashlibEngine):
    """A wrapper around `hashlib.sha256`, the canonical artifact digest."""

    _name = "sha256"


class SHA512(_HashlibEngine):
    """A wrapper around `hashlib.sha512`, the extended artifact digest."""

    _name = "sha512"
