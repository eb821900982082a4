"""
Cryptographic domain models.
"""

from dataclasses import dataclass
from enum import IntEnum

from pgp_stream.core.secure_bytes import SecureBytes

# (key size, block size) in octets, by RFC 4880 symmetric algorithm id
_CIPHER_SIZES: dict[int, tuple[int, int]] = {
    1: (16, 8),  # IDEA
    2: (24, 8),  # TripleDES
    3: (16, 8),  # CAST5
    4: (16, 8),  # Blowfish
    7: (16, 16),
    8: (24, 16),
    9: (32, 16),
    10: (32, 16),  # Twofish
    11: (16, 16),
    12: (24, 16),
    13: (32, 16),
}


class SymmetricAlgorithm(IntEnum):
    """
    OpenPGP symmetric algorithm identifiers.

    Only the AES and Camellia families can encrypt a payload here; the
    others are named so session keys that use them fail with a clear error.
    """

    PLAINTEXT = 0
    IDEA = 1
    TRIPLE_DES = 2
    CAST5 = 3
    BLOWFISH = 4
    AES_128 = 7
    AES_192 = 8
    AES_256 = 9
    TWOFISH = 10
    CAMELLIA_128 = 11
    CAMELLIA_192 = 12
    CAMELLIA_256 = 13

    @property
    def key_size(self) -> int:
        """Key size in octets, 0 when unknown."""
        return _CIPHER_SIZES.get(self.value, (0, 0))[0]

    @property
    def block_size(self) -> int:
        """Block size in octets, 0 when unknown."""
        return _CIPHER_SIZES.get(self.value, (0, 0))[1]


class PublicKeyAlgorithm(IntEnum):
    """OpenPGP public key algorithm identifiers."""

    RSA_ENCRYPT_OR_SIGN = 1
    RSA_ENCRYPT_ONLY = 2
    RSA_SIGN_ONLY = 3
    ELGAMAL_ENCRYPT_ONLY = 16
    DSA = 17
    ECDH = 18
    ECDSA = 19
    ELGAMAL_ENCRYPT_OR_SIGN = 20
    EDDSA = 22
    X25519 = 25
    ED25519 = 27

    @property
    def is_rsa(self) -> bool:
        return self in (self.RSA_ENCRYPT_OR_SIGN, self.RSA_ENCRYPT_ONLY, self.RSA_SIGN_ONLY)


class HashAlgorithm(IntEnum):
    """OpenPGP hash algorithm identifiers."""

    MD5 = 1
    SHA1 = 2
    RIPEMD160 = 3
    SHA256 = 8
    SHA384 = 9
    SHA512 = 10
    SHA224 = 11

    @property
    def hashlib_name(self) -> str:
        """Name understood by hashlib.new()."""
        match self:
            case self.RIPEMD160:
                return "ripemd160"
            case _:
                return self.name.lower()


class CompressionAlgorithm(IntEnum):
    """OpenPGP compression algorithm identifiers."""

    UNCOMPRESSED = 0
    ZIP = 1
    ZLIB = 2
    BZIP2 = 3


class SignatureType(IntEnum):
    """Signature types that can cover literal data."""

    BINARY_DOCUMENT = 0x00
    CANONICAL_TEXT = 0x01


@dataclass(frozen=True, kw_only=True)
class SessionKey:
    """
    Symmetric session key used for the bulk payload.

    Attributes:
        algorithm: The symmetric algorithm used.
        key: The raw key bytes, zeroed by clear().
    """

    algorithm: SymmetricAlgorithm
    key: SecureBytes

    def __post_init__(self) -> None:
        """Validate key size matches algorithm."""
        expected = self.algorithm.key_size
        if not expected or (len(self.key) == expected):
            return
        msg = f"Key size mismatch: {self.algorithm.name} expects {expected} bytes, got {len(self.key)}"
        raise ValueError(msg)

    @property
    def block_size(self) -> int:
        """Get the block size for this key's algorithm."""
        return self.algorithm.block_size

    @property
    def checksum(self) -> int:
        """Sum of the key octets modulo 65536."""
        return sum(self.key) % 65536

    def clear(self) -> None:
        self.key.clear()


@dataclass(frozen=True, kw_only=True)
class KeyInfo:
    """
    Public identity of a single (sub)key.

    Attributes:
        key_id: 8-byte key id.
        fingerprint: 20-byte v4 fingerprint.
        algorithm: Public key algorithm.
    """

    key_id: bytes
    fingerprint: bytes
    algorithm: PublicKeyAlgorithm

    @property
    def key_id_hex(self) -> str:
        return self.key_id.hex().upper()
