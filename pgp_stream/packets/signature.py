"""
One-pass signature (tag 4) and signature (tag 2) packets.

Only version 4 signatures over literal data are produced and accepted. The
signed hash covers the literal content, then the signature's hashed header
and a six-octet trailer:

    hash(data || version..hashed subpackets || 0x04 0xFF || len(header))
"""

import re
from datetime import datetime, timezone

import structlog

from pgp_stream.crypto.protocol import CryptoProvider, PrivateKeyHandle, PublicKeyHandle
from pgp_stream.exceptions import MalformedMessageError, UnsupportedAlgorithmError
from pgp_stream.models.crypto import HashAlgorithm, KeyInfo, PublicKeyAlgorithm, SignatureType
from pgp_stream.models.packets import (
    WILDCARD_KEY_ID,
    OnePassSignaturePacket,
    PacketTag,
    SignaturePacket,
)
from pgp_stream.packets.header import encode_packet, encode_timestamp

logger = structlog.get_logger(__name__)

_ONE_PASS_VERSION = 3
_SIGNATURE_VERSION = 4
_ONE_PASS_BODY_LENGTH = 13

_SUBPACKET_CREATION_TIME = 2
_SUBPACKET_ISSUER = 16
_SUBPACKET_ISSUER_FINGERPRINT = 33
_CRITICAL_BIT = 0x80
_LINE_ENDING = re.compile(rb"\r?\n")


def encode_one_pass_signature(
    signature_type: SignatureType,
    hash_algorithm: HashAlgorithm,
    key: KeyInfo,
    *,
    nested: bool = True,
) -> bytes:
    """Serialize a version 3 one-pass signature packet, header included."""
    body = (
        bytes([_ONE_PASS_VERSION, signature_type, hash_algorithm, key.algorithm])
        + key.key_id
        + bytes([1 if nested else 0])
    )
    return encode_packet(PacketTag.ONE_PASS_SIGNATURE, body)


def parse_one_pass_signature(body: bytes) -> OnePassSignaturePacket:
    """
    Parse a one-pass signature packet body.

    Raises:
        MalformedMessageError: If the body has the wrong size, version or type.
        UnsupportedAlgorithmError: If the hash algorithm is unknown.
    """
    if len(body) != _ONE_PASS_BODY_LENGTH:
        msg = f"One-pass signature body must be {_ONE_PASS_BODY_LENGTH} bytes, got {len(body)}"
        raise MalformedMessageError(msg)
    if body[0] != _ONE_PASS_VERSION:
        msg = f"Unsupported one-pass signature version: {body[0]}"
        raise MalformedMessageError(msg)
    return OnePassSignaturePacket(
        version=body[0],
        signature_type=_signature_type(body[1]),
        hash_algorithm=_hash_algorithm(body[2]),
        public_key_algorithm=_public_key_algorithm(body[3]),
        key_id=body[4:12],
        nested=body[12] != 0,
    )


def parse_signature(body: bytes) -> SignaturePacket:
    """
    Parse a version 4 signature packet body.

    The issuer key id comes from the issuer fingerprint or issuer subpacket,
    hashed area first. A signature naming no issuer gets the wildcard id.

    Raises:
        MalformedMessageError: If the packet is truncated or not version 4.
        UnsupportedAlgorithmError: If the hash algorithm is unknown.
    """
    if not body:
        msg = "Empty signature packet"
        raise MalformedMessageError(msg)
    if body[0] != _SIGNATURE_VERSION:
        msg = f"Unsupported signature version: {body[0]}"
        raise MalformedMessageError(msg)
    if len(body) < 6:
        msg = "Signature packet truncated"
        raise MalformedMessageError(msg)

    hashed_length = int.from_bytes(body[4:6], "big")
    hashed_end = 6 + hashed_length
    if len(body) < hashed_end + 2:
        msg = "Signature packet truncated in hashed subpackets"
        raise MalformedMessageError(msg)
    unhashed_length = int.from_bytes(body[hashed_end : hashed_end + 2], "big")
    unhashed_end = hashed_end + 2 + unhashed_length
    if len(body) < unhashed_end + 2:
        msg = "Signature packet truncated in unhashed subpackets"
        raise MalformedMessageError(msg)

    hashed = _parse_subpackets(body[6:hashed_end])
    unhashed = _parse_subpackets(body[hashed_end + 2 : unhashed_end])

    created = None
    if creation := hashed.get(_SUBPACKET_CREATION_TIME):
        created = datetime.fromtimestamp(int.from_bytes(creation[:4], "big"), timezone.utc)

    return SignaturePacket(
        version=body[0],
        signature_type=_signature_type(body[1]),
        public_key_algorithm=_public_key_algorithm(body[2]),
        hash_algorithm=_hash_algorithm(body[3]),
        hashed_header=body[:hashed_end],
        key_id=_issuer(hashed) or _issuer(unhashed) or WILDCARD_KEY_ID,
        created=created,
        hash_prefix=body[unhashed_end : unhashed_end + 2],
        signature=body[unhashed_end + 2 :],
    )


def _parse_subpackets(data: bytes) -> dict[int, bytes]:
    subpackets: dict[int, bytes] = {}
    offset = 0
    while offset < len(data):
        first = data[offset]
        if first < 192:
            length, offset = first, offset + 1
        elif first < 255:
            second = _slice(data, offset + 1, 1)[0]
            length, offset = ((first - 192) << 8) + second + 192, offset + 2
        else:
            length, offset = int.from_bytes(_slice(data, offset + 1, 4), "big"), offset + 5
        content = _slice(data, offset, length)
        if not content:
            msg = "Empty signature subpacket"
            raise MalformedMessageError(msg)
        subpackets.setdefault(content[0] & ~_CRITICAL_BIT, content[1:])
        offset += length
    return subpackets


def _slice(data: bytes, offset: int, size: int) -> bytes:
    if offset + size > len(data):
        msg = "Signature subpacket truncated"
        raise MalformedMessageError(msg)
    return data[offset : offset + size]


def _issuer(subpackets: dict[int, bytes]) -> bytes | None:
    if fingerprint := subpackets.get(_SUBPACKET_ISSUER_FINGERPRINT):
        # version octet, then the v4 fingerprint; the key id is its low 64 bits
        return fingerprint[-8:]
    if (issuer := subpackets.get(_SUBPACKET_ISSUER)) and len(issuer) == 8:
        return issuer
    return None


def _encode_subpacket(kind: int, data: bytes) -> bytes:
    length = len(data) + 1
    if length < 192:
        header = bytes([length])
    elif length < 8384:
        adjusted = length - 192
        header = bytes([(adjusted >> 8) + 192, adjusted & 0xFF])
    else:
        header = b"\xff" + length.to_bytes(4, "big")
    return header + bytes([kind]) + data


def _signature_type(value: int) -> SignatureType:
    try:
        return SignatureType(value)
    except ValueError:
        msg = f"Unsupported signature type over literal data: 0x{value:02x}"
        raise MalformedMessageError(msg) from None


def _hash_algorithm(value: int) -> HashAlgorithm:
    try:
        return HashAlgorithm(value)
    except ValueError:
        msg = f"Unknown hash algorithm: {value}"
        raise UnsupportedAlgorithmError(msg) from None


def _public_key_algorithm(value: int) -> PublicKeyAlgorithm:
    try:
        return PublicKeyAlgorithm(value)
    except ValueError:
        msg = f"Unknown public key algorithm: {value}"
        raise UnsupportedAlgorithmError(msg) from None


class _TextCanonicalizer:
    """Rewrites LF line endings to CR LF, carrying a trailing CR across chunks."""

    def __init__(self) -> None:
        self._pending_cr = False

    def __call__(self, data: bytes) -> bytes:
        if not data:
            return data
        if self._pending_cr:
            data = b"\r" + data
        self._pending_cr = data.endswith(b"\r")
        if self._pending_cr:
            data = data[:-1]
        return _LINE_ENDING.sub(b"\r\n", data)

    def flush(self) -> bytes:
        if self._pending_cr:
            self._pending_cr = False
            return b"\r"
        return b""


class SignatureGenerator:
    """
    Incremental v4 signer over literal data.

    Example:
        generator = SignatureGenerator(provider, signer, HashAlgorithm.SHA256)
        out.write(generator.one_pass_packet())
        generator.update(chunk)
        out.write(generator.generate())
    """

    def __init__(
        self,
        provider: CryptoProvider,
        signer: PrivateKeyHandle,
        hash_algorithm: HashAlgorithm,
        *,
        signature_type: SignatureType = SignatureType.BINARY_DOCUMENT,
        created: datetime | None = None,
    ) -> None:
        self._provider = provider
        self._signer = signer
        self._key = signer.signing_key
        self._hash_algorithm = hash_algorithm
        self._signature_type = signature_type
        self._created = created
        self._hasher = provider.hasher(hash_algorithm)
        self._canonicalize = (
            _TextCanonicalizer() if signature_type == SignatureType.CANONICAL_TEXT else None
        )

    @property
    def key(self) -> KeyInfo:
        return self._key

    def one_pass_packet(self, *, nested: bool = True) -> bytes:
        return encode_one_pass_signature(
            self._signature_type, self._hash_algorithm, self._key, nested=nested
        )

    def update(self, data: bytes) -> None:
        if self._canonicalize is not None:
            data = self._canonicalize(data)
        self._hasher.update(data)

    def generate(self) -> bytes:
        """Finish the hash and return the complete signature packet."""
        if self._canonicalize is not None:
            self._hasher.update(self._canonicalize.flush())
        created = self._created or datetime.now(timezone.utc)
        hashed = _encode_subpacket(_SUBPACKET_CREATION_TIME, encode_timestamp(created)) + _encode_subpacket(
            _SUBPACKET_ISSUER_FINGERPRINT, b"\x04" + self._key.fingerprint
        )
        unhashed = _encode_subpacket(_SUBPACKET_ISSUER, self._key.key_id)
        header = (
            bytes([_SIGNATURE_VERSION, self._signature_type, self._key.algorithm, self._hash_algorithm])
            + len(hashed).to_bytes(2, "big")
            + hashed
        )
        self._hasher.update(header + b"\x04\xff" + len(header).to_bytes(4, "big"))
        digest = self._hasher.digest()
        signature = self._provider.sign_digest(self._signer, self._key, self._hash_algorithm, digest)
        body = header + len(unhashed).to_bytes(2, "big") + unhashed + digest[:2] + signature
        logger.debug("Generated signature", key_id=self._key.key_id_hex, hash=self._hash_algorithm.name)
        return encode_packet(PacketTag.SIGNATURE, body)


class SignatureVerifier:
    """
    Incremental verifier fed with the literal data a signature covers.

    The hash algorithm and signature type are fixed up front, from the
    one-pass header or from a leading signature packet.
    """

    def __init__(
        self,
        provider: CryptoProvider,
        public_key: PublicKeyHandle,
        key: KeyInfo,
        hash_algorithm: HashAlgorithm,
        signature_type: SignatureType = SignatureType.BINARY_DOCUMENT,
    ) -> None:
        self._provider = provider
        self._public_key = public_key
        self._key = key
        self._hash_algorithm = hash_algorithm
        self._hasher = provider.hasher(hash_algorithm)
        self._canonicalize = (
            _TextCanonicalizer() if signature_type == SignatureType.CANONICAL_TEXT else None
        )

    @property
    def key(self) -> KeyInfo:
        return self._key

    def update(self, data: bytes) -> None:
        if self._canonicalize is not None:
            data = self._canonicalize(data)
        self._hasher.update(data)

    def verify(self, signature: SignaturePacket) -> bool:
        """Finish the hash with the signature's trailer and check it."""
        if signature.hash_algorithm != self._hash_algorithm:
            logger.debug(
                "Signature hash algorithm differs from its one-pass header",
                expected=self._hash_algorithm.name,
                actual=signature.hash_algorithm.name,
            )
            return False
        if self._canonicalize is not None:
            self._hasher.update(self._canonicalize.flush())
        self._hasher.update(signature.hash_trailer)
        digest = self._hasher.digest()
        if digest[:2] != signature.hash_prefix:
            logger.debug("Signature hash prefix mismatch", key_id=self._key.key_id_hex)
            return False
        return self._provider.verify_digest(
            self._public_key, self._key, self._hash_algorithm, digest, signature.signature
        )
