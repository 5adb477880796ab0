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

"""Single pass hashing of a byte stream with several engines.

Artifacts can be much larger than the available memory, so the stream is read
exactly once, in chunks, and every chunk is passed to the `update` method of
each inner `hashing.StreamingHashEngine`. The digests do not depend on the
chunk size.

Example usage:
```python
>>> with open("/tmp/file", "rb") as f:
...     hasher = StreamHasher([memory.SHA256(), memory.SHA512()])
...     digests = hasher.compute(f)
>>> digests["sha256"].digest_hex
'88d4266fd4e6338d13b845fcf289579d209c897823b9217da3e161936f031589'
```
"""

from collections.abc import Sequence
from typing import BinaryIO

from artifact_trust._hashing import hashing


class StreamHasher:
    """Fans out a stream to multiple streaming hash engines."""

    def __init__(
        self,
        engines: Sequence[hashing.StreamingHashEngine],
        *,
        chunk_size: int = 8192,
    ):
        """Initializes an instance to hash a stream with the given engines.

        Args:
            engines: The engines receiving every chunk. Their digest names must
              be distinct.
            chunk_size: The amount of data to read at once. Default is 8KB. A
              special value of 0 signals to attempt to read everything in a
              single call.
        """
        if chunk_size < 0:
            raise ValueError(
                f"Chunk size must be non-negative, got {chunk_size}."
            )
        names = [engine.digest_name for engine in engines]
        if not names or len(set(names)) != len(names):
            raise ValueError(f"Engines must be distinct, got {names}.")

        self._engines = engines
        self._chunk_size = chunk_size

    def compute(self, stream: BinaryIO) -> dict[str, hashing.Digest]:
        """Reads the stream to its end and returns the digests by name.

        Read errors raised by the stream propagate unchanged.
        """
        for engine in self._engines:
            engine.reset()

        if self._chunk_size == 0:
            self._update(stream.read())
        else:
            while True:
                data = stream.read(self._chunk_size)
                if not data:
                    break
                self._update(data)

        return {e.digest_name: e.compute() for e in self._engines}

    def _update(self, data: bytes) -> None:
        for engine in self._engines:
            engine.update(data)
