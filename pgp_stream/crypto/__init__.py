"""
Cryptographic operations for pgp_stream.

This module provides:
- The CryptoProvider boundary and its pgpy-backed implementation
- OpenPGP CFB encryption with and without the MDC trailer
- Session key framing and PKESK packet bodies
"""

from pgp_stream.crypto.cipher import CFBDecryptor, CFBEncryptor
from pgp_stream.crypto.pgpy_backend import PgpyPrivateKey, PgpyProvider, PgpyPublicKey
from pgp_stream.crypto.protocol import (
    CryptoProvider,
    Hasher,
    PrivateKeyHandle,
    PublicKeyHandle,
)
from pgp_stream.crypto.session_key import (
    encode_pkesk_body,
    generate_session_key,
    parse_pkesk_body,
)

__all__ = [
    "CFBDecryptor",
    "CFBEncryptor",
    "CryptoProvider",
    "Hasher",
    "PgpyPrivateKey",
    "PgpyProvider",
    "PgpyPublicKey",
    "PrivateKeyHandle",
    "PublicKeyHandle",
    "encode_pkesk_body",
    "generate_session_key",
    "parse_pkesk_body",
]
