"""
Compressed data packet (tag 8).

ZIP is raw deflate (no zlib header), ZLIB carries the zlib header and
Adler-32 trailer, BZIP2 is a plain bzip2 stream.
"""

import bz2
import zlib
from typing import BinaryIO, Protocol

from pgp_stream.exceptions import MalformedMessageError, UnsupportedAlgorithmError
from pgp_stream.models.crypto import CompressionAlgorithm
from pgp_stream.models.packets import PacketTag
from pgp_stream.packets.header import PartialBodyWriter

_RAW_DEFLATE_WBITS = -15
_ZLIB_WBITS = 15


class _Compressor(Protocol):
    def compress(self, data: bytes) -> bytes: ...

    def flush(self) -> bytes: ...


class _Passthrough:
    def compress(self, data: bytes) -> bytes:
        return data

    def flush(self) -> bytes:
        return b""


def _new_compressor(algorithm: CompressionAlgorithm, level: int) -> _Compressor:
    match algorithm:
        case CompressionAlgorithm.UNCOMPRESSED:
            return _Passthrough()
        case CompressionAlgorithm.ZIP:
            return zlib.compressobj(level, zlib.DEFLATED, _RAW_DEFLATE_WBITS)
        case CompressionAlgorithm.ZLIB:
            return zlib.compressobj(level, zlib.DEFLATED, _ZLIB_WBITS)
        case CompressionAlgorithm.BZIP2:
            return bz2.BZ2Compressor(max(level, 1))
    msg = f"Unsupported compression algorithm: {algorithm}"
    raise UnsupportedAlgorithmError(msg)


class CompressionWriter:
    """Writable filter producing one compressed data packet."""

    def __init__(
        self,
        sink: BinaryIO,
        algorithm: CompressionAlgorithm = CompressionAlgorithm.ZIP,
        *,
        level: int = 6,
        chunk_size: int = 1 << 16,
    ) -> None:
        self._compressor = _new_compressor(algorithm, level)
        self._body = PartialBodyWriter(sink, PacketTag.COMPRESSED_DATA, chunk_size=chunk_size)
        self._body.write(bytes([algorithm]))

    def write(self, data: bytes) -> int:
        self._body.write(self._compressor.compress(data))
        return len(data)

    def close(self) -> None:
        self._body.write(self._compressor.flush())
        self._body.close()

    def discard(self) -> None:
        self._body.discard()


class DecompressionReader:
    """Readable view of a compressed data packet's decompressed content."""

    def __init__(
        self,
        body: BinaryIO,
        algorithm: CompressionAlgorithm,
        *,
        chunk_size: int = 1 << 16,
    ) -> None:
        self._body = body
        self._algorithm = algorithm
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._tail = b""
        self._eof = False
        match algorithm:
            case CompressionAlgorithm.ZIP:
                self._inflater = zlib.decompressobj(_RAW_DEFLATE_WBITS)
            case CompressionAlgorithm.ZLIB:
                self._inflater = zlib.decompressobj(_ZLIB_WBITS)
            case CompressionAlgorithm.BZIP2:
                self._inflater = bz2.BZ2Decompressor()
            case _:
                self._inflater = None

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

    def _fill(self) -> None:
        try:
            if self._inflater is None:
                self._fill_stored()
            elif isinstance(self._inflater, bz2.BZ2Decompressor):
                self._fill_bzip2()
            else:
                self._fill_zlib()
        except (zlib.error, OSError, EOFError) as e:
            msg = f"Failed to decompress {self._algorithm.name} data: {e}"
            raise MalformedMessageError(msg) from e

    def _fill_stored(self) -> None:
        data = self._body.read(self._chunk_size)
        if not data:
            self._eof = True
        self._buffer += data

    def _fill_zlib(self) -> None:
        data = self._tail or self._body.read(self._chunk_size)
        if not data and not self._inflater.eof:
            self._buffer += self._inflater.flush()
            if not self._inflater.eof:
                msg = "Compressed data ends before the end of its stream"
                raise MalformedMessageError(msg)
        self._buffer += self._inflater.decompress(data, self._chunk_size)
        self._tail = self._inflater.unconsumed_tail
        if self._inflater.eof:
            self._tail = b""
            self._eof = True

    def _fill_bzip2(self) -> None:
        data = b""
        if self._inflater.needs_input:
            data = self._body.read(self._chunk_size)
            if not data:
                msg = "Compressed data ends before the end of its stream"
                raise MalformedMessageError(msg)
        self._buffer += self._inflater.decompress(data, self._chunk_size)
        if self._inflater.eof:
            self._eof = True
