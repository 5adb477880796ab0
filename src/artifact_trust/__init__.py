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

"""Artifact trust: integrity hashes and signature verification.

The package gives an artifact repository what it needs to decide whether an
artifact can be trusted:

- `artifact_trust.integrity`: SHA-256 and SHA-512 digests of artifact bytes,
  computed in a single pass, and the `"algorithm:hexdigest"` wire format.
- `artifact_trust.signature`, `artifact_trust.keys` and
  `artifact_trust.policy`: the records kept about signatures, trusted keys and
  repository policies.
- `artifact_trust.verifying`: configuration of the verifiers for Cosign
  (keyless and keyed), PGP and Sigstore signatures.
- `artifact_trust.service`: storage and verification of signatures, with an
  audit log, and the trusted key store of each tenant.
- `artifact_trust.ingest`: the repository policy applied to uploads and
  downloads.

Verifying a stored signature:

```python
session_factory = artifact_trust._store.db.create_session_factory(db_url)
service = artifact_trust.service.SignatureService(
    session_factory,
    artifact_trust.verifying.Config().use_transparency_log(
        public_keys=["rekor.pub"]
    ),
)
report = service.verify_signature(tenant_id, signature_id, artifact_bytes)
```

Failures of untrusted input never raise: they are reported in the
`VerificationResult`. Errors raised by this package are listed in
`artifact_trust.errors`.
"""

from artifact_trust import errors
from artifact_trust import ingest
from artifact_trust import integrity
from artifact_trust import keys
from artifact_trust import policy
from artifact_trust import service
from artifact_trust import signature
from artifact_trust import verifying


__version__ = "1.0.0"


__all__ = [
    "errors",
    "ingest",
    "integrity",
    "keys",
    "policy",
    "service",
    "signature",
    "verifying",
]
