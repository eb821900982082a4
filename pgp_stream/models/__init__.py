"""
Domain models for pgp_stream.

These are immutable (frozen) dataclasses representing the core domain concepts.
"""

from pgp_stream.models.crypto import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyInfo,
    PublicKeyAlgorithm,
    SessionKey,
    SignatureType,
    SymmetricAlgorithm,
)
from pgp_stream.models.message import (
    DecodeResult,
    EncodeSummary,
    ProcessingMode,
    VerifiedSignature,
)
from pgp_stream.models.packets import (
    CompressedDataPacket,
    EncryptedDataPacket,
    LiteralDataPacket,
    MarkerPacket,
    OnePassSignaturePacket,
    OpaquePacket,
    Packet,
    PacketTag,
    PKESKPacket,
    SignaturePacket,
)

__all__ = [
    # Crypto
    "SymmetricAlgorithm",
    "PublicKeyAlgorithm",
    "HashAlgorithm",
    "CompressionAlgorithm",
    "SignatureType",
    "SessionKey",
    "KeyInfo",
    # Message
    "ProcessingMode",
    "EncodeSummary",
    "DecodeResult",
    "VerifiedSignature",
    # Packets
    "PacketTag",
    "Packet",
    "PKESKPacket",
    "EncryptedDataPacket",
    "CompressedDataPacket",
    "OnePassSignaturePacket",
    "SignaturePacket",
    "LiteralDataPacket",
    "MarkerPacket",
    "OpaquePacket",
]
