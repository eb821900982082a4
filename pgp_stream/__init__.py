"""
Streaming OpenPGP message encoder and decoder.

Signs and/or encrypts a byte stream into a single OpenPGP message, and turns
such a message back into its plaintext while decrypting and verifying it.

Example:
    ```python
    from pgp_stream import PgpyProvider, ProcessingMode, decode, encode

    recipient = PgpyProvider.load_private_key(armored_key)

    message = encode(
        b"hello",
        ProcessingMode.SIGN_AND_ENCRYPT,
        recipient_key=recipient.public_key,
        signer_key=recipient,
        passphrase="secret",
    )
    plaintext, result = decode(
        message,
        recipient_key=recipient,
        passphrase="secret",
        signer_key=recipient.public_key,
    )
    assert plaintext == b"hello" and result.is_verified
    ```
"""

from pgp_stream.config import DecodeOptions, EncodeOptions
from pgp_stream.crypto.pgpy_backend import PgpyPrivateKey, PgpyProvider, PgpyPublicKey
from pgp_stream.decoder import MessageDecoder, decode
from pgp_stream.encoder import MessageEncoder, encode
from pgp_stream.exceptions import (
    ArmorError,
    ConfigurationError,
    CryptoError,
    IntegrityError,
    IOFailureError,
    KeyMismatchError,
    KeyUnlockError,
    MalformedMessageError,
    OperationCanceledError,
    PgpStreamError,
    SessionKeyError,
    SignatureKeyNotFoundError,
    SignatureVerificationError,
    UnsupportedAlgorithmError,
    UnsupportedPacketTypeError,
)
from pgp_stream.files import (
    DecodedFile,
    EncodedFile,
    SourceFile,
    to_decrypted,
    to_encrypted,
    to_signed,
    to_signed_and_encrypted,
    to_verified,
    to_verified_and_decrypted,
)
from pgp_stream.models.message import DecodeResult, EncodeSummary, ProcessingMode

__version__ = "0.1.0"

__all__ = [
    # Encoding and decoding
    "MessageEncoder",
    "MessageDecoder",
    "EncodeOptions",
    "DecodeOptions",
    "encode",
    "decode",
    # Models
    "ProcessingMode",
    "EncodeSummary",
    "DecodeResult",
    # Keys
    "PgpyProvider",
    "PgpyPrivateKey",
    "PgpyPublicKey",
    # Files
    "SourceFile",
    "EncodedFile",
    "DecodedFile",
    "to_encrypted",
    "to_signed",
    "to_signed_and_encrypted",
    "to_decrypted",
    "to_verified",
    "to_verified_and_decrypted",
    # Exceptions
    "PgpStreamError",
    "ConfigurationError",
    "CryptoError",
    "KeyUnlockError",
    "KeyMismatchError",
    "SessionKeyError",
    "IntegrityError",
    "SignatureKeyNotFoundError",
    "SignatureVerificationError",
    "UnsupportedAlgorithmError",
    "MalformedMessageError",
    "UnsupportedPacketTypeError",
    "ArmorError",
    "OperationCanceledError",
    "IOFailureError",
]
