"""
Packet header and body-length codec.

Writing always uses new-format headers. Streaming packets go through
PartialBodyWriter, which emits power-of-two partial body chunks and a final
definite length on close. Reading accepts both old- and new-format headers,
partial body lengths and old-format indeterminate lengths.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO

from pgp_stream.exceptions import MalformedMessageError

_NEW_FORMAT = 0xC0
_OLD_FORMAT = 0x80
_MIN_FIRST_PARTIAL = 512
_MAX_PARTIAL_EXPONENT = 30
_MAX_TIMESTAMP = 2**32 - 1


def encode_length(length: int) -> bytes:
    """Encode a definite new-format body length."""
    if length < 0:
        msg = f"Negative packet length: {length}"
        raise ValueError(msg)
    if length < 192:
        return bytes([length])
    if length < 8384:
        adjusted = length - 192
        return bytes([(adjusted >> 8) + 192, adjusted & 0xFF])
    return b"\xff" + length.to_bytes(4, "big")


def encode_packet(tag: int, body: bytes) -> bytes:
    """Encode a complete packet with a definite length."""
    return bytes([_NEW_FORMAT | tag]) + encode_length(len(body)) + body


def partial_length_octet(size: int) -> int:
    """Partial body length octet for a power-of-two chunk size."""
    exponent = size.bit_length() - 1
    if size <= 0 or (1 << exponent) != size or exponent > _MAX_PARTIAL_EXPONENT:
        msg = f"Partial body size must be a power of two up to 2**30: {size}"
        raise ValueError(msg)
    return 224 + exponent


class PartialBodyWriter:
    """
    Streams a packet body using partial body lengths.

    Data is buffered until more than one chunk is available, so a body that
    never exceeds one chunk is written with a single definite length.
    """

    def __init__(self, sink: BinaryIO, tag: int, *, chunk_size: int = 1 << 16) -> None:
        """
        Args:
            sink: Downstream writable.
            tag: Packet tag.
            chunk_size: Partial chunk size, a power of two of at least 512.
        """
        if chunk_size < _MIN_FIRST_PARTIAL:
            msg = f"Partial body size must be at least {_MIN_FIRST_PARTIAL}: {chunk_size}"
            raise ValueError(msg)
        self._length_octet = partial_length_octet(chunk_size)
        self._sink = sink
        self._tag = tag
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._started = False
        self._closed = False

    def write(self, data: bytes) -> int:
        if self._closed:
            msg = "write to closed packet"
            raise ValueError(msg)
        self._buffer += data
        while len(self._buffer) > self._chunk_size:
            self._emit_partial()
        return len(data)

    def close(self) -> None:
        """Write the final definite-length segment. Idempotent."""
        if self._closed:
            return
        self._write_tag()
        self._sink.write(encode_length(len(self._buffer)))
        self._sink.write(bytes(self._buffer))
        self.discard()

    def discard(self) -> None:
        """Drop buffered data without writing a trailer."""
        self._buffer.clear()
        self._closed = True

    def _emit_partial(self) -> None:
        self._write_tag()
        self._sink.write(bytes([self._length_octet]))
        self._sink.write(bytes(self._buffer[: self._chunk_size]))
        del self._buffer[: self._chunk_size]

    def _write_tag(self) -> None:
        if self._started:
            return
        self._sink.write(bytes([_NEW_FORMAT | self._tag]))
        self._started = True


@dataclass(frozen=True)
class PacketHeader:
    """
    Attributes:
        tag: Packet tag.
        length: Length of the first body segment, None when indeterminate.
        partial: Whether more segments follow the first one.
    """

    tag: int
    length: int | None
    partial: bool = False


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes or fail with MalformedMessageError."""
    data = bytearray()
    while len(data) < size:
        chunk = stream.read(size - len(data))
        if not chunk:
            msg = f"Unexpected end of message: needed {size} bytes, got {len(data)}"
            raise MalformedMessageError(msg)
        data += chunk
    return bytes(data)


def read_packet_header(stream: BinaryIO) -> PacketHeader | None:
    """
    Read the next packet header.

    Returns:
        The header, or None at a clean end of stream.

    Raises:
        MalformedMessageError: If the header is invalid or truncated.
    """
    first = stream.read(1)
    if not first:
        return None
    octet = first[0]

    if (octet & _NEW_FORMAT) == _NEW_FORMAT:
        length, partial = _read_new_format_length(stream)
        return PacketHeader(octet & 0x3F, length, partial)

    if (octet & _OLD_FORMAT) == _OLD_FORMAT:
        tag = (octet & 0x3C) >> 2
        return PacketHeader(tag, _read_old_format_length(stream, octet & 0x03))

    msg = f"Invalid packet header: 0x{octet:02x}"
    raise MalformedMessageError(msg)


def _read_new_format_length(stream: BinaryIO) -> tuple[int, bool]:
    first = read_exact(stream, 1)[0]
    if first < 192:
        return first, False
    if first < 224:
        second = read_exact(stream, 1)[0]
        return ((first - 192) << 8) + second + 192, False
    if first == 255:
        return int.from_bytes(read_exact(stream, 4), "big"), False
    return 1 << (first & 0x1F), True


def _read_old_format_length(stream: BinaryIO, length_type: int) -> int | None:
    if length_type == 0:
        return read_exact(stream, 1)[0]
    if length_type == 1:
        return int.from_bytes(read_exact(stream, 2), "big")
    if length_type == 2:
        return int.from_bytes(read_exact(stream, 4), "big")
    return None


class PacketBodyReader:
    """
    Readable view over one packet body.

    Follows partial body length segments transparently. A body with an
    indeterminate length runs to the end of the enclosing stream.
    """

    def __init__(self, stream: BinaryIO, header: PacketHeader) -> None:
        self._stream = stream
        self._remaining = header.length
        self._partial = header.partial

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self._read_all()
        out = bytearray()
        while len(out) < size:
            if self._remaining == 0:
                if not self._partial:
                    break
                self._remaining, self._partial = _read_new_format_length(self._stream)
                continue
            wanted = size - len(out)
            if self._remaining is not None:
                wanted = min(wanted, self._remaining)
            data = self._stream.read(wanted)
            if not data:
                if self._remaining is None:
                    self._remaining = 0
                    break
                msg = "Unexpected end of packet body"
                raise MalformedMessageError(msg)
            out += data
            if self._remaining is not None:
                self._remaining -= len(data)
        return bytes(out)

    def drain(self, chunk_size: int = 1 << 16) -> None:
        """Skip whatever is left of the body."""
        while self.read(chunk_size):
            pass

    def _read_all(self) -> bytes:
        out = bytearray()
        while chunk := self.read(1 << 16):
            out += chunk
        return bytes(out)


def encode_timestamp(value: datetime) -> bytes:
    """Four-octet big-endian seconds since the epoch."""
    try:
        seconds = int(value.timestamp())
    except (OverflowError, OSError) as exc:
        msg = f"Timestamp out of range: {value.isoformat()}"
        raise ValueError(msg) from exc
    if not 0 <= seconds <= _MAX_TIMESTAMP:
        msg = f"Timestamp out of range: {value.isoformat()}"
        raise ValueError(msg)
    return seconds.to_bytes(4, "big")


def encode_mpi(value: int) -> bytes:
    """Encode an integer as an OpenPGP MPI: [bit_count(2)] + [big-endian bytes]."""
    bit_count = value.bit_length()
    return bit_count.to_bytes(2, "big") + value.to_bytes((bit_count + 7) // 8, "big")


def parse_mpi(data: bytes) -> tuple[bytes, int]:
    """
    Parse an MPI (Multi-Precision Integer) from OpenPGP format.

    MPI format: [bit_count(2 bytes)] + [data]

    Returns:
        Tuple of (mpi_bytes, total_bytes_consumed).
    """
    if len(data) < 2:
        msg = "MPI too short"
        raise MalformedMessageError(msg)

    bit_count = int.from_bytes(data[:2], "big")
    byte_count = (bit_count + 7) // 8

    if len(data) < 2 + byte_count:
        msg = f"MPI data incomplete: need {byte_count}, have {len(data) - 2}"
        raise MalformedMessageError(msg)

    mpi_bytes = data[2 : 2 + byte_count]
    return mpi_bytes, 2 + byte_count
