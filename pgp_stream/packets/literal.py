"""Literal data packet (tag 11)."""

from datetime import datetime, timezone
from typing import BinaryIO

from pgp_stream.models.packets import LiteralDataPacket, PacketTag
from pgp_stream.packets.header import PartialBodyWriter, encode_timestamp, read_exact

_MAX_FILENAME_BYTES = 255
_FORMATS = frozenset("btul1m")


def _encode_filename(filename: str) -> bytes:
    encoded = filename.encode("utf-8")
    if len(encoded) <= _MAX_FILENAME_BYTES:
        return encoded
    # cut on a character boundary
    return encoded[:_MAX_FILENAME_BYTES].decode("utf-8", "ignore").encode("utf-8")


class LiteralDataWriter:
    """Innermost writable: wraps every byte written in a literal data packet."""

    def __init__(
        self,
        sink: BinaryIO,
        *,
        filename: str = "",
        modified: datetime | None = None,
        data_format: str = "b",
        chunk_size: int = 1 << 16,
    ) -> None:
        if data_format not in _FORMATS or len(data_format) != 1:
            msg = f"Invalid literal data format: {data_format!r}"
            raise ValueError(msg)
        modified = modified or datetime.now(timezone.utc)
        name = _encode_filename(filename)
        self._body = PartialBodyWriter(sink, PacketTag.LITERAL_DATA, chunk_size=chunk_size)
        self._body.write(
            data_format.encode("ascii")
            + bytes([len(name)])
            + name
            + encode_timestamp(modified)
        )

    def write(self, data: bytes) -> int:
        return self._body.write(data)

    def close(self) -> None:
        self._body.close()

    def discard(self) -> None:
        self._body.discard()


def parse_literal_data(body: BinaryIO) -> LiteralDataPacket:
    """
    Read the literal data header; the returned packet's body is the content.

    Args:
        body: Packet body stream.
    """
    data_format = chr(read_exact(body, 1)[0])
    name_length = read_exact(body, 1)[0]
    filename = read_exact(body, name_length).decode("utf-8", "replace")
    timestamp = int.from_bytes(read_exact(body, 4), "big")
    return LiteralDataPacket(
        format=data_format,
        filename=filename,
        modified=datetime.fromtimestamp(timestamp, timezone.utc),
        body=body,
    )
