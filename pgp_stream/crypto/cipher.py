"""
OpenPGP CFB encryption for encrypted data packets.

Two framings are supported:

* Sym. Encrypted Integrity Protected Data (tag 18): plain CFB with a zero IV
  over ``prefix + data + MDC``, where the MDC packet is ``0xD3 0x14`` and the
  SHA-1 of everything before its hash value.
* Symmetrically Encrypted Data (tag 9): CFB with a zero IV over the prefix,
  then resynchronised on the prefix ciphertext for the data.

In both the prefix is one random block followed by a repeat of its last two
octets, which lets a reader quickly check the session key.
"""

import hashlib
import hmac
import os

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, CipherContext, algorithms, modes

from pgp_stream.exceptions import IntegrityError, UnsupportedAlgorithmError
from pgp_stream.models.crypto import SessionKey, SymmetricAlgorithm

_MDC_PACKET_SIZE = 22  # 2-byte header + 20-byte SHA-1
_MDC_HEADER = b"\xd3\x14"


def _cipher_algorithm(session_key: SessionKey) -> algorithms.AES | algorithms.Camellia:
    key = bytes(session_key.key)
    match session_key.algorithm:
        case SymmetricAlgorithm.AES_128 | SymmetricAlgorithm.AES_192 | SymmetricAlgorithm.AES_256:
            return algorithms.AES(key)
        case (
            SymmetricAlgorithm.CAMELLIA_128
            | SymmetricAlgorithm.CAMELLIA_192
            | SymmetricAlgorithm.CAMELLIA_256
        ):
            return algorithms.Camellia(key)
    msg = f"Unsupported symmetric algorithm: {session_key.algorithm.name}"
    raise UnsupportedAlgorithmError(msg)


def _cfb(session_key: SessionKey, iv: bytes, *, encrypt: bool) -> CipherContext:
    cipher = Cipher(_cipher_algorithm(session_key), modes.CFB(iv), backend=default_backend())
    return cipher.encryptor() if encrypt else cipher.decryptor()


class CFBEncryptor:
    """
    Streaming encryptor for an encrypted data packet body.

    Example:
        encryptor = CFBEncryptor(session_key, integrity_protected=True)
        out.write(encryptor.start())
        out.write(encryptor.update(data))
        out.write(encryptor.finalize())
    """

    def __init__(self, session_key: SessionKey, *, integrity_protected: bool = True) -> None:
        self._session_key = session_key
        self._block_size = session_key.block_size
        self._integrity_protected = integrity_protected
        self._mdc = hashlib.sha1() if integrity_protected else None
        self._context = _cfb(session_key, bytes(self._block_size), encrypt=True)

    @property
    def integrity_protected(self) -> bool:
        return self._integrity_protected

    def start(self) -> bytes:
        """Encrypt the random prefix; must be called once before update()."""
        prefix = os.urandom(self._block_size)
        prefix += prefix[-2:]
        encrypted = self._context.update(prefix)
        if self._mdc is not None:
            self._mdc.update(prefix)
        else:
            self._context.finalize()
            self._context = _cfb(self._session_key, encrypted[2:], encrypt=True)
        return encrypted

    def update(self, data: bytes) -> bytes:
        if self._mdc is not None:
            self._mdc.update(data)
        return self._context.update(data)

    def finalize(self) -> bytes:
        """Encrypt the MDC trailer, if any, and close the cipher."""
        trailer = b""
        if self._mdc is not None:
            self._mdc.update(_MDC_HEADER)
            trailer = _MDC_HEADER + self._mdc.digest()
        return self._context.update(trailer) + self._context.finalize()


class CFBDecryptor:
    """
    Streaming decryptor for an encrypted data packet body.

    update() returns plaintext with the prefix stripped. When the packet is
    integrity protected the last 22 octets are held back until finalize(),
    which checks them against the running SHA-1.
    """

    def __init__(self, session_key: SessionKey, *, integrity_protected: bool = True) -> None:
        self._session_key = session_key
        self._block_size = session_key.block_size
        self._integrity_protected = integrity_protected
        self._mdc = hashlib.sha1() if integrity_protected else None
        self._context = _cfb(session_key, bytes(self._block_size), encrypt=False)
        self._prefix = bytearray()
        self._tail = bytearray()
        self._prefix_done = False

    @property
    def integrity_protected(self) -> bool:
        return self._integrity_protected

    def update(self, data: bytes) -> bytes:
        if not self._prefix_done:
            data = self._consume_prefix(data)
            if not data:
                return b""
        plaintext = self._context.update(data)
        if self._mdc is None:
            return plaintext
        self._tail += plaintext
        if len(self._tail) <= _MDC_PACKET_SIZE:
            return b""
        released = bytes(self._tail[:-_MDC_PACKET_SIZE])
        del self._tail[:-_MDC_PACKET_SIZE]
        self._mdc.update(released)
        return released

    def finalize(self) -> None:
        """
        Close the cipher and check the MDC trailer.

        Raises:
            IntegrityError: If the message is truncated or the MDC does not match.
        """
        self._context.finalize()
        if not self._prefix_done:
            msg = "Encrypted data too short for its prefix"
            raise IntegrityError(msg)
        if self._mdc is None:
            return
        if len(self._tail) < _MDC_PACKET_SIZE:
            msg = "Data too short for MDC"
            raise IntegrityError(msg)
        if self._tail[:2] != _MDC_HEADER:
            msg = f"Invalid MDC header: {bytes(self._tail[:2]).hex()}"
            raise IntegrityError(msg)
        self._mdc.update(_MDC_HEADER)
        if not hmac.compare_digest(self._mdc.digest(), bytes(self._tail[2:])):
            msg = "MDC verification failed, data may be corrupted or tampered"
            raise IntegrityError(msg)

    def _consume_prefix(self, data: bytes) -> bytes:
        prefix_size = self._block_size + 2
        needed = prefix_size - len(self._prefix)
        self._prefix += data[:needed]
        rest = data[needed:]
        if len(self._prefix) < prefix_size:
            return b""

        ciphertext = bytes(self._prefix)
        plaintext = self._context.update(ciphertext)
        if plaintext[self._block_size - 2 : self._block_size] != plaintext[self._block_size :]:
            msg = "CFB prefix verification failed, session key or ciphertext is corrupt"
            raise IntegrityError(msg)

        if self._mdc is not None:
            self._mdc.update(plaintext)
        else:
            self._context.finalize()
            self._context = _cfb(self._session_key, ciphertext[2:], encrypt=False)
        self._prefix_done = True
        return rest
