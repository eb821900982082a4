"""
OpenPGP packet vocabulary.

The decoder dispatches over the closed ``Packet`` union below. Packets that
carry a payload expose it as a readable stream so nothing is buffered beyond
the chunk being processed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import BinaryIO, TypeAlias

from pgp_stream.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    PublicKeyAlgorithm,
    SignatureType,
)

WILDCARD_KEY_ID = bytes(8)


class PacketTag(IntEnum):
    """RFC 4880 packet tags."""

    RESERVED = 0
    PUBLIC_KEY_ENCRYPTED_SESSION_KEY = 1
    SIGNATURE = 2
    SYMMETRIC_KEY_ENCRYPTED_SESSION_KEY = 3
    ONE_PASS_SIGNATURE = 4
    SECRET_KEY = 5
    PUBLIC_KEY = 6
    SECRET_SUBKEY = 7
    COMPRESSED_DATA = 8
    SYMMETRICALLY_ENCRYPTED_DATA = 9
    MARKER = 10
    LITERAL_DATA = 11
    TRUST = 12
    USER_ID = 13
    PUBLIC_SUBKEY = 14
    USER_ATTRIBUTE = 17
    SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA = 18
    MODIFICATION_DETECTION_CODE = 19


def describe_tag(tag: int) -> str:
    """Readable name for a tag, including ones outside PacketTag."""
    try:
        return PacketTag(tag).name
    except ValueError:
        return f"TAG_{tag}"


@dataclass(frozen=True, kw_only=True)
class PKESKPacket:
    """
    Public-Key Encrypted Session Key packet data.

    Attributes:
        version: Packet version (3).
        key_id: 8-byte id of the recipient (sub)key, zeros for a wildcard.
        algorithm: Public key algorithm used to encrypt the session key.
        encrypted_session_key: Algorithm-specific MPIs, still encoded.
    """

    version: int
    key_id: bytes  # 8 bytes
    algorithm: PublicKeyAlgorithm
    encrypted_session_key: bytes

    @property
    def key_id_hex(self) -> str:
        return self.key_id.hex().upper()

    @property
    def is_wildcard(self) -> bool:
        return self.key_id == WILDCARD_KEY_ID


@dataclass(frozen=True, kw_only=True)
class EncryptedDataPacket:
    """
    Symmetrically encrypted payload (tag 18 with MDC, or legacy tag 9).

    Attributes:
        integrity_protected: True for tag 18 packets carrying an MDC trailer.
        body: Ciphertext stream, positioned after the version octet.
    """

    integrity_protected: bool
    body: BinaryIO = field(repr=False)


@dataclass(frozen=True, kw_only=True)
class CompressedDataPacket:
    algorithm: CompressionAlgorithm
    body: BinaryIO = field(repr=False)


@dataclass(frozen=True, kw_only=True)
class OnePassSignaturePacket:
    """
    Forward-declaring signature header.

    Attributes:
        signature_type: Type of the trailing signature.
        hash_algorithm: Hash the trailing signature is computed with.
        public_key_algorithm: Algorithm of the signing key.
        key_id: 8-byte id of the signing key.
        nested: False when another one-pass signature follows immediately.
    """

    version: int
    signature_type: SignatureType
    hash_algorithm: HashAlgorithm
    public_key_algorithm: PublicKeyAlgorithm
    key_id: bytes
    nested: bool

    @property
    def key_id_hex(self) -> str:
        return self.key_id.hex().upper()


@dataclass(frozen=True, kw_only=True)
class SignaturePacket:
    """
    Version 4 signature packet.

    Attributes:
        hashed_header: Version through hashed subpacket area, exactly as it
            appears on the wire; this is what gets hashed after the data.
        key_id: Issuer key id taken from the issuer or issuer fingerprint
            subpackets.
        created: Signature creation time, if present.
        hash_prefix: Left 16 bits of the signed hash value.
        signature: Algorithm-specific signature MPIs, still encoded.
    """

    version: int
    signature_type: SignatureType
    public_key_algorithm: PublicKeyAlgorithm
    hash_algorithm: HashAlgorithm
    hashed_header: bytes
    key_id: bytes
    created: datetime | None
    hash_prefix: bytes
    signature: bytes

    @property
    def key_id_hex(self) -> str:
        return self.key_id.hex().upper()

    @property
    def hash_trailer(self) -> bytes:
        """Bytes appended to the hashed data before the digest is taken."""
        return self.hashed_header + b"\x04\xff" + len(self.hashed_header).to_bytes(4, "big")


@dataclass(frozen=True, kw_only=True)
class LiteralDataPacket:
    """
    Innermost packet carrying the plaintext.

    Attributes:
        format: Data format octet (``b``, ``t``, ``u``).
        filename: Declared file name.
        modified: Declared modification time.
        body: Plaintext stream.
    """

    format: str
    filename: str
    modified: datetime
    body: BinaryIO = field(repr=False)


@dataclass(frozen=True, kw_only=True)
class MarkerPacket:
    pass


@dataclass(frozen=True, kw_only=True)
class OpaquePacket:
    """Any packet outside the message vocabulary; only its tag is kept."""

    tag: int


Packet: TypeAlias = (
    PKESKPacket
    | EncryptedDataPacket
    | CompressedDataPacket
    | OnePassSignaturePacket
    | SignaturePacket
    | LiteralDataPacket
    | MarkerPacket
    | OpaquePacket
)
