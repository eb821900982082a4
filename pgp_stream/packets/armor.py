"""
ASCII armor framing (RFC 4880 section 6).

ArmorWriter streams binary data out as base64 lines followed by a CRC-24
checksum line. ArmorReader does the reverse and verifies the checksum once
the footer is reached. open_message_stream() picks the right reader by
looking at the first non-whitespace octet.
"""

import base64
import binascii
from collections.abc import Mapping
from typing import BinaryIO

import structlog

from pgp_stream.exceptions import ArmorError

logger = structlog.get_logger(__name__)

_BEGIN = b"-----BEGIN PGP MESSAGE-----"
_END = b"-----END PGP MESSAGE-----"
_LINE_BYTES = 48  # 64 base64 characters per line
_MAX_LINE = 1 << 16
_KNOWN_HEADERS = frozenset({"Version", "Comment", "MessageID", "Hash", "Charset"})

_CRC24_INIT = 0xB704CE
_CRC24_POLY = 0x1864CFB


def _build_crc24_table() -> list[int]:
    table = []
    for index in range(256):
        crc = index << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= _CRC24_POLY
        table.append(crc & 0xFFFFFF)
    return table


_CRC24_TABLE = _build_crc24_table()


def crc24(data: bytes, crc: int = _CRC24_INIT) -> int:
    """Update a CRC-24 checksum with ``data``."""
    for octet in data:
        crc = ((crc << 8) & 0xFFFFFF) ^ _CRC24_TABLE[((crc >> 16) ^ octet) & 0xFF]
    return crc


class ArmorWriter:
    """Writable filter turning binary packets into an armored message."""

    def __init__(self, sink: BinaryIO, headers: Mapping[str, str] | None = None) -> None:
        self._sink = sink
        self._buffer = bytearray()
        self._crc = _CRC24_INIT
        self._closed = False
        lines = [_BEGIN]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}".encode("utf-8"))
        lines.append(b"")
        self._sink.write(b"\n".join(lines) + b"\n")

    def write(self, data: bytes) -> int:
        self._crc = crc24(data, self._crc)
        self._buffer += data
        while len(self._buffer) >= _LINE_BYTES:
            self._write_line(self._buffer[:_LINE_BYTES])
            del self._buffer[:_LINE_BYTES]
        return len(data)

    def close(self) -> None:
        """Flush the last line, then the checksum and footer. Idempotent."""
        if self._closed:
            return
        if self._buffer:
            self._write_line(self._buffer)
        checksum = base64.b64encode(self._crc.to_bytes(3, "big"))
        self._sink.write(b"=" + checksum + b"\n" + _END + b"\n")
        self.discard()

    def discard(self) -> None:
        self._buffer.clear()
        self._closed = True

    def _write_line(self, chunk: bytes | bytearray) -> None:
        self._sink.write(base64.b64encode(bytes(chunk)) + b"\n")


class ArmorReader:
    """
    Readable filter over an armored message.

    Leading text before the BEGIN line is skipped. Armor headers are parsed
    and exposed through ``headers``.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._buffer = bytearray()
        self._pending_text = b""
        self._crc = _CRC24_INIT
        self._expected_crc: int | None = None
        self._done = False
        self.headers: dict[str, str] = {}
        self._first_body_line = self._read_preamble()

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while not self._done:
                self._read_line()
            size = len(self._buffer)
        while len(self._buffer) < size and not self._done:
            self._read_line()
        out = bytes(self._buffer[:size])
        del self._buffer[:size]
        return out

    def _read_preamble(self) -> bytes | None:
        while True:
            line = self._stream.readline(_MAX_LINE)
            if not line:
                msg = "Armor header line not found"
                raise ArmorError(msg)
            if line.strip() == _BEGIN:
                break
        while True:
            line = self._stream.readline(_MAX_LINE)
            stripped = line.strip()
            if not stripped:
                if not line:
                    msg = "Armored message ends inside its headers"
                    raise ArmorError(msg)
                return None
            if b": " not in stripped:
                # no blank separator line, this is already body data
                return stripped
            name, _, value = stripped.decode("utf-8", "replace").partition(": ")
            if name not in _KNOWN_HEADERS:
                logger.warning("Unknown armor header", header=name)
            self.headers[name] = value

    def _read_line(self) -> None:
        if self._first_body_line is not None:
            line, self._first_body_line = self._first_body_line, None
        else:
            raw = self._stream.readline(_MAX_LINE)
            if not raw:
                msg = "Armored message has no footer"
                raise ArmorError(msg)
            line = raw.strip()
        if not line:
            return
        if line.startswith(b"-----"):
            self._finish(line)
        elif line.startswith(b"=") and len(line) == 5:
            self._expected_crc = int.from_bytes(self._decode(line[1:]), "big")
        else:
            self._append_text(line)

    def _append_text(self, line: bytes) -> None:
        text = self._pending_text + line
        usable = len(text) - len(text) % 4
        self._pending_text = text[usable:]
        data = self._decode(text[:usable])
        self._crc = crc24(data, self._crc)
        self._buffer += data

    def _finish(self, line: bytes) -> None:
        if line != _END:
            msg = "Unexpected armor footer"
            raise ArmorError(msg)
        if self._pending_text:
            msg = "Truncated base64 data in armor"
            raise ArmorError(msg)
        self._done = True
        if self._expected_crc is None:
            logger.warning("Armored message has no checksum")
            return
        if self._expected_crc != self._crc:
            msg = "Armor checksum mismatch"
            raise ArmorError(msg, expected=f"{self._expected_crc:06x}", computed=f"{self._crc:06x}")

    @staticmethod
    def _decode(text: bytes) -> bytes:
        try:
            return base64.b64decode(text, validate=True)
        except binascii.Error as e:
            msg = f"Invalid base64 in armor: {e}"
            raise ArmorError(msg) from e


class _Rewound:
    """Stream with a few already-consumed octets pushed back in front."""

    def __init__(self, prefix: bytes, stream: BinaryIO) -> None:
        self._prefix = prefix
        self._stream = stream

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if not self._prefix:
            return self._stream.read(size)
        if size is None or size < 0:
            out, self._prefix = self._prefix + self._stream.read(), b""
            return out
        out, self._prefix = self._prefix[:size], self._prefix[size:]
        if len(out) < size:
            out += self._stream.read(size - len(out))
        return out

    def readline(self, limit: int = -1) -> bytes:
        if not self._prefix:
            return self._stream.readline(limit)
        prefix, self._prefix = self._prefix, b""
        if prefix.endswith(b"\n"):
            return prefix
        return prefix + self._stream.readline(limit)


def open_message_stream(stream: BinaryIO) -> tuple[BinaryIO, bool]:
    """
    Return a binary packet stream for ``stream`` and whether it was armored.

    Binary packets always start with an octet that has its high bit set, so
    anything else is treated as armor.
    """
    leading = bytearray()
    while True:
        octet = stream.read(1)
        if not octet:
            return _Rewound(bytes(leading), stream), False
        if octet not in b" \t\r\n":
            break
        leading += octet
    if octet[0] & 0x80:
        return _Rewound(octet, stream), False
    logger.debug("Message is ASCII armored")
    return ArmorReader(_Rewound(bytes(leading) + octet, stream)), True
