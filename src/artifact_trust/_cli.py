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

"""The main entry-point for the artifact_trust package."""

import dataclasses
import enum
import json
import logging
import pathlib
import sys
import uuid

import click

import artifact_trust
from artifact_trust import integrity
from artifact_trust import keys
from artifact_trust import signature as signature_lib
from artifact_trust import verifying
from artifact_trust._verifying import openpgp
from artifact_trust._verifying import verify_cosign
from artifact_trust._verifying import verify_pgp
from artifact_trust._verifying import verifying as verifying_lib


# Records built by the command line belong to no tenant.
_LOCAL_ID = uuid.UUID(int=0)


# Decorator for the commonly used argument for the artifact path.
_artifact_path_argument = click.argument(
    "artifact_path", type=pathlib.Path, metavar="ARTIFACT_PATH"
)


# Decorator for the commonly used option for the signature to verify.
_read_signature_option = click.option(
    "--signature",
    type=pathlib.Path,
    metavar="SIGNATURE_PATH",
    required=True,
    help="Location of the signature file to verify.",
)


def _json_default(value):
    if isinstance(value, enum.Enum):
        return value.value
    return str(value)


def _print_result(result: signature_lib.VerificationResult) -> None:
    if result.verified:
        signer = result.signer_identity or result.signer_fingerprint
        click.echo(f"Verification succeeded: signed by {signer}")
        return
    click.echo(
        f"Verification failed ({result.status.value}): "
        f"{result.error_message}",
        err=True,
    )
    sys.exit(1)


def _local_signature(
    signature_format: signature_lib.SignatureFormat,
    data: bytes,
    payload: signature_lib.SchemePayload,
    **kwargs,
) -> signature_lib.ArtifactSignature:
    return signature_lib.ArtifactSignature(
        tenant_id=_LOCAL_ID,
        artifact_id=_LOCAL_ID,
        repository_id=_LOCAL_ID,
        signature_format=signature_format,
        signature_data=data,
        payload=payload,
        **kwargs,
    )


def _trusted(key: keys.PublicKey) -> keys.PublicKey:
    return dataclasses.replace(key, trusted=True)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(artifact_trust.__version__, "--version")
@click.option(
    "--log-level",
    type=click.Choice(
        ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False
    ),
    default="INFO",
    show_default=True,
    metavar="LEVEL",
    envvar="ARTIFACT_TRUST_LOG_LEVEL",
    help="Set the logging level. This can also be set via the "
    "ARTIFACT_TRUST_LOG_LEVEL env var.",
)
def main(log_level: str) -> None:
    """Artifact integrity hashing and signature verification.

    Use each subcommand's `--help` option for details on each mode.
    """
    logging.basicConfig(
        format="%(message)s", level=getattr(logging, log_level.upper())
    )


@main.command(name="hash")
@_artifact_path_argument
@click.option(
    "--expect",
    type=str,
    metavar="DIGEST",
    help="Expected SHA-256 digest, bare or as `sha256:<hex>`.",
)
def _hash(artifact_path: pathlib.Path, expect: str | None = None) -> None:
    """Compute the integrity hash of an artifact.

    Prints the SHA-256 and SHA-512 digests of ARTIFACT_PATH. With `--expect`,
    also checks the SHA-256 digest and fails on a mismatch.
    """
    try:
        with open(artifact_path, "rb") as f:
            digests = integrity.compute(f)
    except OSError as err:
        click.echo(f"Hashing failed with error: {err}", err=True)
        sys.exit(1)

    click.echo(digests.digest)
    click.echo(integrity.format_digest("sha512", digests.sha512))

    if expect is None:
        return
    try:
        matched = integrity.canonical_hex(expect) == digests.sha256
    except ValueError as err:
        click.echo(f"Invalid expected digest: {err}", err=True)
        sys.exit(1)
    if not matched:
        click.echo("Digest mismatch", err=True)
        sys.exit(1)
    click.echo("Digest matches")


@main.command(name="key-info")
@click.argument(
    "key_type",
    type=click.Choice([t.value for t in keys.KeyType]),
    metavar="KEY_TYPE",
)
@click.argument("key_path", type=pathlib.Path, metavar="KEY_PATH")
def _key_info(key_type: str, key_path: pathlib.Path) -> None:
    """Describe a public key.

    Parses the KEY_TYPE (`pgp` or `cosign`) public key at KEY_PATH and prints,
    as JSON, the entry it would make in a trusted key store.
    """
    try:
        material = key_path.read_text()
        match keys.KeyType(key_type):
            case keys.KeyType.PGP:
                key = verify_pgp.extract_key_info(material, _LOCAL_ID)
            case keys.KeyType.COSIGN:
                key = verify_cosign.extract_key_info(material, _LOCAL_ID)
    except Exception as err:
        click.echo(f"Key parsing failed with error: {err}", err=True)
        sys.exit(1)

    info = dataclasses.asdict(key)
    for field in ("tenant_id", "public_key"):
        del info[field]
    click.echo(json.dumps(info, indent=2, default=_json_default))


@main.group(name="verify", subcommand_metavar="SCHEME")
def _verify() -> None:
    """Verify artifact signatures.

    Each signature scheme is a subcommand. Use each subcommand's `--help`
    option for details on each mode.
    """


@_verify.command(name="pgp")
@_artifact_path_argument
@_read_signature_option
@click.option(
    "--public_key",
    type=pathlib.Path,
    metavar="PUBLIC_KEY",
    multiple=True,
    required=True,
    help="Path to a trusted public key, in OpenPGP format.",
)
@click.option(
    "--gpg",
    type=str,
    metavar="GPG_BINARY",
    default="gpg",
    show_default=True,
    help="The GnuPG executable to use.",
)
def _verify_pgp(
    artifact_path: pathlib.Path,
    signature: pathlib.Path,
    public_key: tuple[pathlib.Path, ...],
    gpg: str,
) -> None:
    """Verify a detached PGP signature.

    Checks that the signature at SIGNATURE_PATH over ARTIFACT_PATH was made by
    one of the `--public_key` keys.
    """
    try:
        trusted = [
            _trusted(verify_pgp.extract_key_info(p.read_text(), _LOCAL_ID))
            for p in public_key
        ]
        data = signature.read_bytes()
        signature_format = signature_lib.SignatureFormat.BINARY
        if openpgp.is_armored(data):
            signature_format = signature_lib.SignatureFormat.ASCII_ARMOR
        record = _local_signature(
            signature_format, data, signature_lib.PGPPayload()
        )
        result = (
            verifying.Config()
            .set_gpg_binary(gpg)
            .build_verifier(signature_lib.SignatureType.PGP)
            .verify(
                record,
                verifying_lib.Artifact.from_bytes(artifact_path.read_bytes()),
                keys.TrustContext.build(trusted),
            )
        )
    except Exception as err:
        click.echo(f"Verification failed with error: {err}", err=True)
        sys.exit(1)

    _print_result(result)


@_verify.command(name="cosign")
@_artifact_path_argument
@_read_signature_option
@click.option(
    "--certificate",
    type=pathlib.Path,
    metavar="CERTIFICATE_PATH",
    help="Path to the signing certificate, for keyless signatures.",
)
@click.option(
    "--rekor_uuid",
    type=str,
    metavar="UUID",
    help="UUID of the transparency log entry, for keyless signatures.",
)
@click.option(
    "--public_key",
    type=pathlib.Path,
    metavar="PUBLIC_KEY",
    help="Path to the trusted public key, for keyed signatures.",
)
@click.option(
    "--certificate_chain",
    type=pathlib.Path,
    metavar="CERTIFICATE_PATH",
    multiple=True,
    help="Path to certificate chain of trust.",
)
@click.option(
    "--rekor_url",
    type=str,
    metavar="URL",
    default="https://rekor.sigstore.dev",
    show_default=True,
    help="Base URL of the transparency log.",
)
@click.option(
    "--rekor_public_key",
    type=pathlib.Path,
    metavar="PUBLIC_KEY",
    multiple=True,
    help="Path to a public key of the transparency log.",
)
def _verify_cosign(
    artifact_path: pathlib.Path,
    signature: pathlib.Path,
    certificate: pathlib.Path | None,
    rekor_uuid: str | None,
    public_key: pathlib.Path | None,
    certificate_chain: tuple[pathlib.Path, ...],
    rekor_url: str,
    rekor_public_key: tuple[pathlib.Path, ...],
) -> None:
    """Verify a Cosign blob signature.

    Keyless signatures need `--certificate` and `--rekor_uuid`; the log entry
    is only trusted when signed by one of the `--rekor_public_key` keys.
    Keyed signatures need `--public_key`, which is trusted as given.
    """
    try:
        trusted = []
        key_material = ""
        if public_key is not None:
            key_material = public_key.read_text()
            trusted.append(
                _trusted(
                    verify_cosign.extract_key_info(key_material, _LOCAL_ID)
                )
            )
        record = _local_signature(
            signature_lib.SignatureFormat.BINARY,
            signature.read_bytes(),
            signature_lib.CosignPayload(
                certificate=certificate.read_text() if certificate else None,
                rekor_uuid=rekor_uuid,
            ),
            public_key=key_material,
        )
        config = verifying.Config().use_transparency_log(
            url=rekor_url, public_keys=rekor_public_key
        )
        if certificate_chain:
            config.set_certificate_roots(certificate_chain)
        result = config.build_verifier(
            signature_lib.SignatureType.COSIGN
        ).verify(
            record,
            verifying_lib.Artifact.from_bytes(artifact_path.read_bytes()),
            keys.TrustContext.build(trusted),
        )
    except Exception as err:
        click.echo(f"Verification failed with error: {err}", err=True)
        sys.exit(1)

    _print_result(result)


@_verify.command(name="sigstore")
@_artifact_path_argument
@_read_signature_option
@click.option(
    "--identity",
    type=str,
    metavar="IDENTITY",
    help="The expected identity of the signer (e.g., name@example.com).",
)
@click.option(
    "--identity_provider",
    type=str,
    metavar="IDENTITY_PROVIDER",
    help="The expected identity provider (e.g., https://accounts.example.com).",
)
@click.option(
    "--use_staging",
    type=bool,
    is_flag=True,
    help="Use Sigstore's staging instance.",
)
def _verify_sigstore(
    artifact_path: pathlib.Path,
    signature: pathlib.Path,
    identity: str | None,
    identity_provider: str | None,
    use_staging: bool,
) -> None:
    """Verify a Sigstore bundle.

    Checks the bundle at SIGNATURE_PATH against ARTIFACT_PATH. Without
    `--identity`, any signer accepted by the Sigstore trust root is accepted.
    """
    try:
        record = _local_signature(
            signature_lib.SignatureFormat.BINARY,
            signature.read_bytes(),
            signature_lib.SigstorePayload(),
        )
        result = (
            verifying.Config()
            .use_sigstore(
                identity=identity,
                oidc_issuer=identity_provider,
                use_staging=use_staging,
            )
            .build_verifier(signature_lib.SignatureType.SIGSTORE)
            .verify(
                record,
                verifying_lib.Artifact.from_bytes(artifact_path.read_bytes()),
                keys.TrustContext.empty(),
            )
        )
    except Exception as err:
        click.echo(f"Verification failed with error: {err}", err=True)
        sys.exit(1)

    _print_result(result)
