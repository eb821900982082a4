"""
Message-level models: processing mode and operation results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pgp_stream.models.crypto import HashAlgorithm, SignatureType, SymmetricAlgorithm


class ProcessingMode(Enum):
    """Which optional layers the encoder inserts."""

    ENCRYPT = "encrypt"
    SIGN = "sign"
    SIGN_AND_ENCRYPT = "sign_and_encrypt"

    @property
    def requires_recipient(self) -> bool:
        return self in (ProcessingMode.ENCRYPT, ProcessingMode.SIGN_AND_ENCRYPT)

    @property
    def requires_signer(self) -> bool:
        return self in (ProcessingMode.SIGN, ProcessingMode.SIGN_AND_ENCRYPT)


@dataclass(frozen=True, kw_only=True)
class EncodeSummary:
    """
    Attributes:
        mode: Processing mode used.
        bytes_read: Plaintext bytes consumed from the source.
        bytes_written: Message bytes written to the sink.
        symmetric_algorithm: Session key algorithm, None when not encrypted.
        recipient_key_id: Key id the session key was encrypted to.
        signer_key_id: Key id of the signing key.
    """

    mode: ProcessingMode
    bytes_read: int
    bytes_written: int
    symmetric_algorithm: SymmetricAlgorithm | None = None
    recipient_key_id: str | None = None
    signer_key_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class VerifiedSignature:
    key_id: str
    hash_algorithm: HashAlgorithm
    signature_type: SignatureType
    created: datetime | None


@dataclass(kw_only=True)
class DecodeResult:
    """
    Outcome of a successful decode.

    Output written to the sink before a failure is never described by a
    DecodeResult; a result only exists once every layer checked out.

    Attributes:
        signatures: Signatures verified over the literal data.
        encrypted: Whether an encryption layer was present.
        integrity_protected: Whether that layer carried a verified MDC.
        filename: File name declared in the literal data packet.
        modified: Modification time declared in the literal data packet.
        format: Literal data format octet.
        length: Plaintext bytes written to the sink.
    """

    signatures: list[VerifiedSignature] = field(default_factory=list)
    encrypted: bool = False
    integrity_protected: bool = False
    filename: str | None = None
    modified: datetime | None = None
    format: str | None = None
    length: int = 0

    @property
    def is_verified(self) -> bool:
        """True when at least one signature was present and every one verified."""
        return len(self.signatures) > 0

    @property
    def signer_key_ids(self) -> list[str]:
        return [signature.key_id for signature in self.signatures]
