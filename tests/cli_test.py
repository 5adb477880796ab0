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

import json

from click import testing
import pytest

import artifact_trust
from artifact_trust import _cli
from artifact_trust import integrity
from artifact_trust._verifying import verify_cosign
from tests import test_support


@pytest.fixture
def runner():
    return testing.CliRunner()


class TestHash:
    def test_digests(self, runner, sample_artifact_file):
        expected = integrity.compute(test_support.KNOWN_ARTIFACT_TEXT)

        result = runner.invoke(_cli.main, ["hash", str(sample_artifact_file)])

        assert result.exit_code == 0
        assert result.output.splitlines() == [
            f"sha256:{expected.sha256}",
            f"sha512:{expected.sha512}",
        ]

    def test_expected_digest(self, runner, sample_artifact_file):
        expected = integrity.compute(test_support.KNOWN_ARTIFACT_TEXT)

        result = runner.invoke(
            _cli.main,
            [
                "hash",
                str(sample_artifact_file),
                "--expect",
                f"SHA256:{expected.sha256.upper()}",
            ],
        )

        assert result.exit_code == 0
        assert "Digest matches" in result.output

    def test_digest_mismatch(self, runner, sample_artifact_file):
        other = integrity.compute(test_support.ANOTHER_ARTIFACT_TEXT)

        result = runner.invoke(
            _cli.main,
            ["hash", str(sample_artifact_file), "--expect", other.sha256],
        )

        assert result.exit_code == 1
        assert "Digest mismatch" in result.output

    def test_expected_digest_of_other_algorithm(
        self, runner, sample_artifact_file
    ):
        result = runner.invoke(
            _cli.main,
            ["hash", str(sample_artifact_file), "--expect", "md5:abcd"],
        )

        assert result.exit_code == 1
        assert "Invalid expected digest" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(_cli.main, ["hash", str(tmp_path / "missing")])

        assert result.exit_code == 1
        assert "Hashing failed" in result.output


class TestKeyInfo:
    def test_cosign_key(self, runner, tmp_path):
        key = test_support.ec_key()
        key_path = tmp_path / "cosign.pub"
        key_path.write_text(test_support.public_pem(key))

        result = runner.invoke(_cli.main, ["key-info", "cosign", str(key_path)])

        assert result.exit_code == 0
        info = json.loads(result.output)
        assert info["key_type"] == "cosign"
        assert info["key_format"] == "pem"
        assert info["algorithm"] == "ECDSA-secp256r1"
        assert info["key_size"] == 256
        assert info["fingerprint"] == verify_cosign.key_fingerprint(
            key.public_key()
        )
        assert not info["trusted"]
        assert "tenant_id" not in info
        assert "public_key" not in info

    def test_not_a_key(self, runner, tmp_path):
        key_path = tmp_path / "cosign.pub"
        key_path.write_text("not a key")

        result = runner.invoke(_cli.main, ["key-info", "cosign", str(key_path)])

        assert result.exit_code == 1
        assert "Key parsing failed" in result.output

    def test_unknown_key_type(self, runner, tmp_path):
        result = runner.invoke(
            _cli.main, ["key-info", "x509", str(tmp_path / "key")]
        )

        assert result.exit_code == 2


class TestVerifyCosign:
    @pytest.fixture
    def signed_artifact(self, tmp_path, sample_artifact_file):
        key = test_support.ec_key()
        key_path = tmp_path / "cosign.pub"
        key_path.write_text(test_support.public_pem(key))
        signature_path = tmp_path / "artifact.sig"
        signature_path.write_bytes(
            test_support.sign_blob(key, test_support.KNOWN_ARTIFACT_TEXT)
        )
        return sample_artifact_file, signature_path, key_path

    def test_keyed_signature(self, runner, signed_artifact):
        artifact_path, signature_path, key_path = signed_artifact

        result = runner.invoke(
            _cli.main,
            [
                "verify",
                "cosign",
                str(artifact_path),
                "--signature",
                str(signature_path),
                "--public_key",
                str(key_path),
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Verification succeeded" in result.output

    def test_modified_artifact(self, runner, signed_artifact, tmp_path):
        _, signature_path, key_path = signed_artifact
        modified = tmp_path / "modified"
        modified.write_bytes(test_support.ANOTHER_ARTIFACT_TEXT)

        result = runner.invoke(
            _cli.main,
            [
                "verify",
                "cosign",
                str(modified),
                "--signature",
                str(signature_path),
                "--public_key",
                str(key_path),
            ],
        )

        assert result.exit_code == 1
        assert "Verification failed (invalid)" in result.output

    def test_nothing_to_verify_with(self, runner, signed_artifact):
        artifact_path, signature_path, _ = signed_artifact

        result = runner.invoke(
            _cli.main,
            [
                "verify",
                "cosign",
                str(artifact_path),
                "--signature",
                str(signature_path),
            ],
        )

        assert result.exit_code == 1
        assert "insufficient data" in result.output

    def test_missing_signature_file(self, runner, signed_artifact, tmp_path):
        artifact_path, _, key_path = signed_artifact

        result = runner.invoke(
            _cli.main,
            [
                "verify",
                "cosign",
                str(artifact_path),
                "--signature",
                str(tmp_path / "missing.sig"),
                "--public_key",
                str(key_path),
            ],
        )

        assert result.exit_code == 1
        assert "Verification failed with error" in result.output


class TestVerifyPGP:
    def test_signature(self, runner, pgp_signer, tmp_path):
        artifact_path = tmp_path / "artifact"
        artifact_path.write_bytes(test_support.KNOWN_ARTIFACT_TEXT)
        signature_path = tmp_path / "artifact.asc"
        signature_path.write_bytes(
            pgp_signer.sign(test_support.KNOWN_ARTIFACT_TEXT, armor=True)
        )
        key_path = tmp_path / "signer.asc"
        key_path.write_text(pgp_signer.public_key)

        result = runner.invoke(
            _cli.main,
            [
                "verify",
                "pgp",
                str(artifact_path),
                "--signature",
                str(signature_path),
                "--public_key",
                str(key_path),
            ],
        )

        assert result.exit_code == 0, result.output
        assert "signed by pgp-signer@example.com" in result.output


class TestMain:
    def test_version(self, runner):
        result = runner.invoke(_cli.main, ["--version"])

        assert result.exit_code == 0
        assert artifact_trust.__version__ in result.output

    def test_subcommands(self, runner):
        result = runner.invoke(_cli.main, ["verify", "--help"])

        assert result.exit_code == 0
        for scheme in ("cosign", "pgp", "sigstore"):
            assert scheme in result.output
