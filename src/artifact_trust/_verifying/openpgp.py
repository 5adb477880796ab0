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

"""Reading OpenPGP armor and signature packets from untrusted input.

Only the small part of RFC 4880 needed to route a detached signature is
implemented here: removing ASCII armor and reading the header of the leading
signature packet, to learn which key issued it. Cryptographic verification is
left to GnuPG.

Every function raises `PacketError` on malformed input and never reads past
the end of the buffer.
"""

import base64
import binascii
import dataclasses
import datetime
import hashlib


SIGNATURE_PACKET_TAG = 2

_CRC24_INIT = 0xB704CE
_CRC24_POLY = 0x1864CFB

_SUBPACKET_CREATION_TIME = 2
_SUBPACKET_ISSUER = 16
_SUBPACKET_ISSUER_FINGERPRINT = 33


class PacketError(ValueError):
    """The input is not well formed OpenPGP data."""


def is_armored(data: bytes) -> bool:
    return data.lstrip().startswith(b"-----BEGIN PGP ")


def crc24(data: bytes) -> int:
    crc = _CRC24_INIT
    for byte in data:
        crc ^= byte << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= _CRC24_POLY
    return crc & 0xFFFFFF


def dearmor(data: bytes) -> bytes:
    """Removes ASCII armor and checks the CRC-24 checksum when present."""
    try:
        lines = data.decode("ascii").strip().splitlines()
    except UnicodeDecodeError as e:
        raise PacketError("Armored data is not ASCII") from e

    if not lines or not lines[0].startswith("-----BEGIN PGP "):
        raise PacketError("Missing armor header line")

    # Armor headers end at the first blank line.
    index = 1
    while index < len(lines) and lines[index].strip():
        if ":" not in lines[index]:
            break
        index += 1

    body = []
    checksum = None
    for line in lines[index:]:
        line = line.strip()
        if not line:
            continue
        if line.startswith("-----END PGP "):
            break
        if line.startswith("=") and len(line) == 5:
            checksum = line[1:]
            continue
        body.append(line)
    else:
        raise PacketError("Missing armor tail line")

    try:
        decoded = base64.b64decode("".join(body), validate=True)
    except binascii.Error as e:
        raise PacketError(f"Invalid armor body: {e}") from e
    if not decoded:
        raise PacketError("Armored data is empty")

    if checksum is not None:
        try:
            expected = int.from_bytes(base64.b64decode(checksum), "big")
        except binascii.Error as e:
            raise PacketError(f"Invalid armor checksum: {e}") from e
        if crc24(decoded) != expected:
            raise PacketError("Armor checksum mismatch")

    return decoded


@dataclasses.dataclass(frozen=True)
class Packet:
    tag: int
    body: bytes


def read_packet(data: bytes) -> Packet:
    """Reads the first packet of `data`."""
    if not data:
        raise PacketError("No packet data")

    header = data[0]
    if not header & 0x80:
        raise PacketError("Invalid packet header")

    if header & 0x40:
        tag = header & 0x3F
        length, offset = _new_format_length(data)
    else:
        tag = (header >> 2) & 0x0F
        length_type = header & 0x03
        if length_type == 3:
            length, offset = len(data) - 1, 1
        else:
            size = 1 << length_type
            length = int.from_bytes(_slice(data, 1, size), "big")
            offset = 1 + size

    return Packet(tag, _slice(data, offset, length))


def _new_format_length(data: bytes) -> tuple[int, int]:
    first = _slice(data, 1, 1)[0]
    if first < 192:
        return first, 2
    if first < 224:
        second = _slice(data, 2, 1)[0]
        return ((first - 192) << 8) + second + 192, 3
    if first == 255:
        return int.from_bytes(_slice(data, 2, 4), "big"), 6
    raise PacketError("Partial body lengths are not allowed here")


def _slice(data: bytes, start: int, length: int) -> bytes:
    if start + length > len(data):
        raise PacketError("Packet is truncated")
    return data[start : start + length]


@dataclasses.dataclass(frozen=True)
class SignaturePacket:
    """The parts of a signature packet needed before verification."""

    version: int
    signature_type: int
    public_key_algorithm: int
    hash_algorithm: int
    issuer_key_id: str | None
    issuer_fingerprint: str | None
    created_at: datetime.datetime | None


def parse_signature(data: bytes) -> SignaturePacket:
    """Parses the leading packet, which must be a signature packet.

    Raises:
        PacketError: The data is malformed or starts with another packet.
    """
    packet = read_packet(data)
    if packet.tag != SIGNATURE_PACKET_TAG:
        raise PacketError(f"Expected a signature packet, got tag {packet.tag}")

    body = packet.body
    version = _slice(body, 0, 1)[0]
    if version == 3:
        return _parse_v3_signature(body)
    if version in (4, 5):
        return _parse_v4_signature(body, version)
    raise PacketError(f"Unsupported signature version {version}")


def _parse_v3_signature(body: bytes) -> SignaturePacket:
    if _slice(body, 1, 1)[0] != 5:
        raise PacketError("Invalid v3 hashed material length")
    created = int.from_bytes(_slice(body, 3, 4), "big")
    return SignaturePacket(
        version=3,
        signature_type=_slice(body, 2, 1)[0],
        public_key_algorithm=_slice(body, 15, 1)[0],
        hash_algorithm=_slice(body, 16, 1)[0],
        issuer_key_id=_slice(body, 7, 8).hex().upper(),
        issuer_fingerprint=None,
        created_at=datetime.datetime.fromtimestamp(
            created, datetime.timezone.utc
        ),
    )


def _parse_v4_signature(body: bytes, version: int) -> SignaturePacket:
    signature_type, public_key_algorithm, hash_algorithm = _slice(body, 1, 3)
    hashed_length = int.from_bytes(_slice(body, 4, 2), "big")
    hashed = _slice(body, 6, hashed_length)
    offset = 6 + hashed_length
    unhashed_length = int.from_bytes(_slice(body, offset, 2), "big")
    unhashed = _slice(body, offset + 2, unhashed_length)

    issuer_key_id = None
    issuer_fingerprint = None
    created_at = None
    for subpacket_type, value in [
        *_subpackets(hashed),
        *_subpackets(unhashed),
    ]:
        if subpacket_type == _SUBPACKET_ISSUER and len(value) == 8:
            issuer_key_id = issuer_key_id or value.hex().upper()
        elif subpacket_type == _SUBPACKET_ISSUER_FINGERPRINT and value:
            issuer_fingerprint = issuer_fingerprint or value[1:].hex().upper()
        elif subpacket_type == _SUBPACKET_CREATION_TIME and len(value) == 4:
            created_at = created_at or datetime.datetime.fromtimestamp(
                int.from_bytes(value, "big"), datetime.timezone.utc
            )

    if issuer_key_id is None and issuer_fingerprint is not None:
        # v4 key ids are the low 64 bits of the fingerprint, v5 the high ones.
        if version == 4:
            issuer_key_id = issuer_fingerprint[-16:]
        else:
            issuer_key_id = issuer_fingerprint[:16]

    return SignaturePacket(
        version=version,
        signature_type=signature_type,
        public_key_algorithm=public_key_algorithm,
        hash_algorithm=hash_algorithm,
        issuer_key_id=issuer_key_id,
        issuer_fingerprint=issuer_fingerprint,
        created_at=created_at,
    )


def _subpackets(data: bytes) -> list[tuple[int, bytes]]:
    subpackets = []
    offset = 0
    while offset < len(data):
        first = data[offset]
        if first < 192:
            length, offset = first, offset + 1
        elif first < 255:
            second = _slice(data, offset + 1, 1)[0]
            length, offset = ((first - 192) << 8) + second + 192, offset + 2
        else:
            length = int.from_bytes(_slice(data, offset + 1, 4), "big")
            offset += 5
        if length == 0:
            raise PacketError("Empty signature subpacket")
        content = _slice(data, offset, length)
        subpackets.append((content[0] & 0x7F, content[1:]))
        offset += length
    return subpackets


PUBLIC_KEY_PACKET_TAG = 6

_ALGORITHM_NAMES = {
    1: "RSA",
    2: "RSA",
    3: "RSA",
    16: "ElGamal",
    17: "DSA",
    18: "ECDH",
    19: "ECDSA",
    22: "EdDSA",
}

RSA_ALGORITHMS = frozenset([1, 2, 3])


def algorithm_name(algorithm: int) -> str:
    return _ALGORITHM_NAMES.get(algorithm, f"PGP-{algorithm}")


@dataclasses.dataclass(frozen=True)
class PublicKeyPacket:
    version: int
    fingerprint: str
    key_id: str


def parse_public_key(data: bytes) -> PublicKeyPacket:
    """Computes fingerprint and key id of the leading public key packet.

    Raises:
        PacketError: The data does not start with a v4 or v5 public key.
    """
    packet = read_packet(data)
    if packet.tag != PUBLIC_KEY_PACKET_TAG:
        raise PacketError(f"Expected a public key packet, got tag {packet.tag}")

    version = _slice(packet.body, 0, 1)[0]
    length = len(packet.body)
    if version == 4:
        digest = hashlib.sha1(
            b"\x99" + length.to_bytes(2, "big") + packet.body
        ).digest()
        key_id = digest[-8:]
    elif version == 5:
        digest = hashlib.sha256(
            b"\x9a" + length.to_bytes(4, "big") + packet.body
        ).digest()
        key_id = digest[:8]
    else:
        raise PacketError(f"Unsupported public key version {version}")

    return PublicKeyPacket(version, digest.hex().upper(), key_id.hex().upper())
