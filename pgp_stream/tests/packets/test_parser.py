import io

import pytest

from pgp_stream.exceptions import MalformedMessageError, UnsupportedAlgorithmError
from pgp_stream.models.crypto import CompressionAlgorithm, HashAlgorithm, SignatureType
from pgp_stream.models.packets import (
    CompressedDataPacket,
    EncryptedDataPacket,
    LiteralDataPacket,
    MarkerPacket,
    OnePassSignaturePacket,
    OpaquePacket,
)
from pgp_stream.packets.header import encode_packet
from pgp_stream.packets.literal import LiteralDataWriter
from pgp_stream.packets.parser import PacketStream
from pgp_stream.packets.signature import encode_one_pass_signature


def _literal(data: bytes) -> bytes:
    sink = io.BytesIO()
    writer = LiteralDataWriter(sink, filename="a.txt")
    writer.write(data)
    writer.close()
    return sink.getvalue()


def test_parses_packet_sequence(carol) -> None:
    data = (
        encode_packet(10, b"PGP")
        + encode_one_pass_signature(SignatureType.BINARY_DOCUMENT, HashAlgorithm.SHA256, carol.signing_key)
        + _literal(b"content")
    )
    packets = list(PacketStream(io.BytesIO(data)))

    assert isinstance(packets[0], MarkerPacket)
    assert isinstance(packets[1], OnePassSignaturePacket)
    assert isinstance(packets[2], LiteralDataPacket)
    assert len(packets) == 3


def test_unread_bodies_are_skipped() -> None:
    stream = PacketStream(io.BytesIO(_literal(b"first") + _literal(b"second")))

    first = stream.next_packet()
    second = stream.next_packet()

    assert first.filename == "a.txt"
    assert second.body.read() == b"second"
    assert stream.next_packet() is None


def test_unknown_tag_is_opaque() -> None:
    packets = list(PacketStream(io.BytesIO(encode_packet(60, b"whatever") + _literal(b"x"))))

    assert packets[0] == OpaquePacket(tag=60)
    assert isinstance(packets[1], LiteralDataPacket)


def test_marker_with_unexpected_content_is_accepted() -> None:
    packets = list(PacketStream(io.BytesIO(encode_packet(10, b"XYZ"))))

    assert packets == [MarkerPacket()]


def test_compressed_packet_exposes_algorithm() -> None:
    packets = list(PacketStream(io.BytesIO(encode_packet(8, b"\x02rest"))))

    assert isinstance(packets[0], CompressedDataPacket)
    assert packets[0].algorithm == CompressionAlgorithm.ZLIB


def test_unknown_compression_algorithm() -> None:
    with pytest.raises(UnsupportedAlgorithmError, match="compression"):
        list(PacketStream(io.BytesIO(encode_packet(8, b"\x63rest"))))


def test_encrypted_packet_versions() -> None:
    seipd = list(PacketStream(io.BytesIO(encode_packet(18, b"\x01cipher"))))[0]
    legacy = list(PacketStream(io.BytesIO(encode_packet(9, b"cipher"))))[0]

    assert isinstance(seipd, EncryptedDataPacket) and seipd.integrity_protected
    assert isinstance(legacy, EncryptedDataPacket) and not legacy.integrity_protected


def test_unsupported_encrypted_packet_version() -> None:
    with pytest.raises(MalformedMessageError, match="version: 2"):
        list(PacketStream(io.BytesIO(encode_packet(18, b"\x02cipher"))))


def test_oversized_signature_packet_is_rejected() -> None:
    with pytest.raises(MalformedMessageError, match="exceeds"):
        list(PacketStream(io.BytesIO(encode_packet(2, bytes((1 << 16) + 1)))))
