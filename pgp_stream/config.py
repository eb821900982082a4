"""
Encoder and decoder configuration.
"""

from dataclasses import dataclass, field

from pgp_stream.models.crypto import CompressionAlgorithm, HashAlgorithm, SymmetricAlgorithm

_SUPPORTED_SYMMETRIC = frozenset(
    {
        SymmetricAlgorithm.AES_128,
        SymmetricAlgorithm.AES_192,
        SymmetricAlgorithm.AES_256,
        SymmetricAlgorithm.CAMELLIA_128,
        SymmetricAlgorithm.CAMELLIA_192,
        SymmetricAlgorithm.CAMELLIA_256,
    }
)
_SIGNING_HASHES = frozenset(
    {
        HashAlgorithm.SHA1,
        HashAlgorithm.SHA224,
        HashAlgorithm.SHA256,
        HashAlgorithm.SHA384,
        HashAlgorithm.SHA512,
    }
)
_MIN_PARTIAL_BODY_SIZE = 512
_MAX_PARTIAL_BODY_SIZE = 1 << 30


def _default_armor_headers() -> dict[str, str]:
    return {"Version": "pgp_stream"}


@dataclass(frozen=True, kw_only=True)
class EncodeOptions:
    """
    Attributes:
        armored: Wrap the output in ASCII armor.
        hash_algorithm: Digest used for signatures.
        compression_algorithm: Algorithm of the compressed data layer.
        compression_level: zlib/bzip2 level, 0 stores without compressing.
        symmetric_algorithm: Session key algorithm.
        with_integrity_check: Use an integrity protected packet with an MDC
            trailer instead of the legacy encrypted data packet.
        chunk_size: Bytes read from the source per step.
        partial_body_size: Partial body chunk size of streamed packets.
        armor_headers: ``Key: value`` lines written after the armor header line.
    """

    armored: bool = True
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256
    compression_algorithm: CompressionAlgorithm = CompressionAlgorithm.ZIP
    compression_level: int = 6
    symmetric_algorithm: SymmetricAlgorithm = SymmetricAlgorithm.AES_128
    with_integrity_check: bool = True
    chunk_size: int = 1 << 16
    partial_body_size: int = 1 << 16
    armor_headers: dict[str, str] = field(default_factory=_default_armor_headers)

    def __post_init__(self) -> None:
        if self.symmetric_algorithm not in _SUPPORTED_SYMMETRIC:
            msg = f"symmetric_algorithm {self.symmetric_algorithm.name} is not supported"
            raise ValueError(msg)
        if self.hash_algorithm not in _SIGNING_HASHES:
            msg = f"hash_algorithm {self.hash_algorithm.name} is not supported for signing"
            raise ValueError(msg)
        if not 0 <= self.compression_level <= 9:
            msg = "compression_level must be between 0 and 9"
            raise ValueError(msg)
        if self.chunk_size <= 0:
            msg = "chunk_size must be positive"
            raise ValueError(msg)
        size = self.partial_body_size
        if size < _MIN_PARTIAL_BODY_SIZE or size > _MAX_PARTIAL_BODY_SIZE or size & (size - 1):
            msg = "partial_body_size must be a power of two between 512 and 2**30"
            raise ValueError(msg)
        for key, value in self.armor_headers.items():
            if not key or ":" in key or any(c in key + value for c in "\r\n"):
                msg = f"Invalid armor header: {key!r}"
                raise ValueError(msg)


@dataclass(frozen=True, kw_only=True)
class DecodeOptions:
    """
    Attributes:
        chunk_size: Bytes pulled through the pipeline per step.
        max_depth: Maximum nesting of encrypted and compressed layers.
        require_signature: Fail when the message carries no signature.
    """

    chunk_size: int = 1 << 16
    max_depth: int = 8
    require_signature: bool = False

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            msg = "chunk_size must be positive"
            raise ValueError(msg)
        if self.max_depth <= 0:
            msg = "max_depth must be positive"
            raise ValueError(msg)
