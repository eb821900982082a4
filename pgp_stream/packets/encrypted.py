"""
Encrypted data packets: Sym. Encrypted Integrity Protected Data (tag 18) and
legacy Symmetrically Encrypted Data (tag 9).

The cipher framing itself lives in ``pgp_stream.crypto.cipher``; this module
only places it inside a packet and exposes the plaintext as a stream.
"""

from typing import BinaryIO

from pgp_stream.crypto.cipher import CFBDecryptor, CFBEncryptor
from pgp_stream.exceptions import IntegrityError
from pgp_stream.models.packets import PacketTag
from pgp_stream.packets.header import PartialBodyWriter

SEIPD_VERSION = 1


class EncryptionWriter:
    """Writable filter producing one encrypted data packet."""

    def __init__(
        self,
        sink: BinaryIO,
        encryptor: CFBEncryptor,
        *,
        chunk_size: int = 1 << 16,
    ) -> None:
        tag = (
            PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA
            if encryptor.integrity_protected
            else PacketTag.SYMMETRICALLY_ENCRYPTED_DATA
        )
        self._encryptor = encryptor
        self._body = PartialBodyWriter(sink, tag, chunk_size=chunk_size)
        if encryptor.integrity_protected:
            self._body.write(bytes([SEIPD_VERSION]))
        self._body.write(encryptor.start())

    def write(self, data: bytes) -> int:
        self._body.write(self._encryptor.update(data))
        return len(data)

    def close(self) -> None:
        self._body.write(self._encryptor.finalize())
        self._body.close()

    def discard(self) -> None:
        self._body.discard()


class DecryptionReader:
    """
    Readable plaintext view of an encrypted data packet body.

    The integrity check runs when the ciphertext is exhausted. Its outcome is
    kept, so verify() can be called after a failed read and reports the same
    error.
    """

    def __init__(
        self,
        body: BinaryIO,
        decryptor: CFBDecryptor,
        *,
        chunk_size: int = 1 << 16,
    ) -> None:
        self._body = body
        self._decryptor = decryptor
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._eof = False
        self._failure: IntegrityError | None = None

    @property
    def integrity_protected(self) -> bool:
        return self._decryptor.integrity_protected

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while not self._eof:
                self._fill()
            size = len(self._buffer)
        while len(self._buffer) < size and not self._eof:
            self._fill()
        out = bytes(self._buffer[:size])
        del self._buffer[:size]
        return out

    def verify(self) -> None:
        """
        Drain the remaining ciphertext and check the integrity trailer.

        Raises:
            IntegrityError: If the prefix check or the MDC failed.
        """
        while not self._eof:
            self._fill()
            self._buffer.clear()

    def _fill(self) -> None:
        if self._failure is not None:
            raise self._failure
        try:
            data = self._body.read(self._chunk_size)
            if data:
                self._buffer += self._decryptor.update(data)
                return
            self._decryptor.finalize()
            self._eof = True
        except IntegrityError as e:
            self._failure = e
            raise
