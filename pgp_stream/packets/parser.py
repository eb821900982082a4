"""
Packet sequence reader.

PacketStream turns a byte stream into the closed ``Packet`` union. Small
packets (session keys, signatures) are read whole; packets that carry a
payload hand their body out as a stream, which is skipped automatically
when the caller moves on to the next packet without consuming it.
"""

from collections.abc import Iterator
from typing import BinaryIO

import structlog

from pgp_stream.crypto.session_key import parse_pkesk_body
from pgp_stream.exceptions import MalformedMessageError, UnsupportedAlgorithmError
from pgp_stream.models.crypto import CompressionAlgorithm
from pgp_stream.models.packets import (
    CompressedDataPacket,
    EncryptedDataPacket,
    MarkerPacket,
    OpaquePacket,
    Packet,
    PacketTag,
)
from pgp_stream.packets.encrypted import SEIPD_VERSION
from pgp_stream.packets.header import PacketBodyReader, read_exact, read_packet_header
from pgp_stream.packets.literal import parse_literal_data
from pgp_stream.packets.signature import parse_one_pass_signature, parse_signature

logger = structlog.get_logger(__name__)

_MAX_SMALL_PACKET = 1 << 16
_MARKER_BODY = b"PGP"


def _read_small(body: PacketBodyReader, tag: PacketTag) -> bytes:
    data = body.read(_MAX_SMALL_PACKET + 1)
    if len(data) > _MAX_SMALL_PACKET:
        msg = f"{tag.name} packet exceeds {_MAX_SMALL_PACKET} bytes"
        raise MalformedMessageError(msg)
    return data


class PacketStream:
    """
    Iterates over the packets of one sequence.

    Example:
        for packet in PacketStream(stream):
            match packet:
                case LiteralDataPacket(body=body):
                    ...
    """

    def __init__(self, stream: BinaryIO, *, chunk_size: int = 1 << 16) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._current: PacketBodyReader | None = None

    def __iter__(self) -> Iterator[Packet]:
        while (packet := self.next_packet()) is not None:
            yield packet

    def next_packet(self) -> Packet | None:
        """Read the next packet, or None at the end of the sequence."""
        if self._current is not None:
            self._current.drain(self._chunk_size)
            self._current = None

        header = read_packet_header(self._stream)
        if header is None:
            return None
        body = PacketBodyReader(self._stream, header)
        self._current = body
        logger.debug("Read packet header", tag=header.tag, length=header.length, partial=header.partial)
        return self._parse(header.tag, body)

    def _parse(self, tag: int, body: PacketBodyReader) -> Packet:
        match tag:
            case PacketTag.PUBLIC_KEY_ENCRYPTED_SESSION_KEY:
                return parse_pkesk_body(_read_small(body, PacketTag(tag)))
            case PacketTag.SIGNATURE:
                return parse_signature(_read_small(body, PacketTag(tag)))
            case PacketTag.ONE_PASS_SIGNATURE:
                return parse_one_pass_signature(_read_small(body, PacketTag(tag)))
            case PacketTag.COMPRESSED_DATA:
                return CompressedDataPacket(algorithm=_compression(read_exact(body, 1)[0]), body=body)
            case PacketTag.SYMMETRICALLY_ENCRYPTED_DATA:
                return EncryptedDataPacket(integrity_protected=False, body=body)
            case PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA:
                version = read_exact(body, 1)[0]
                if version != SEIPD_VERSION:
                    msg = f"Unsupported encrypted data packet version: {version}"
                    raise MalformedMessageError(msg)
                return EncryptedDataPacket(integrity_protected=True, body=body)
            case PacketTag.MARKER:
                if _read_small(body, PacketTag(tag)) != _MARKER_BODY:
                    logger.warning("Marker packet with unexpected content")
                return MarkerPacket()
            case PacketTag.LITERAL_DATA:
                return parse_literal_data(body)
        return OpaquePacket(tag=tag)


def _compression(value: int) -> CompressionAlgorithm:
    try:
        return CompressionAlgorithm(value)
    except ValueError:
        msg = f"Unknown compression algorithm: {value}"
        raise UnsupportedAlgorithmError(msg) from None
