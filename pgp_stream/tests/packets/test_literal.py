import io
from datetime import datetime, timezone

import pytest

from pgp_stream.exceptions import MalformedMessageError
from pgp_stream.packets.header import PacketBodyReader, read_packet_header
from pgp_stream.packets.literal import LiteralDataWriter, parse_literal_data

MODIFIED = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def _write_literal(data: bytes, **kwargs) -> io.BytesIO:
    sink = io.BytesIO()
    writer = LiteralDataWriter(sink, chunk_size=512, **kwargs)
    writer.write(data)
    writer.close()
    sink.seek(0)
    return sink


def _read_literal(stream: io.BytesIO):
    header = read_packet_header(stream)
    assert header.tag == 11
    return parse_literal_data(PacketBodyReader(stream, header))


def test_literal_round_trip() -> None:
    packet = _read_literal(_write_literal(b"hello", filename="notes.txt", modified=MODIFIED))

    assert packet.format == "b"
    assert packet.filename == "notes.txt"
    assert packet.modified == MODIFIED
    assert packet.body.read() == b"hello"


def test_literal_streams_large_content() -> None:
    content = bytes(range(256)) * 40
    packet = _read_literal(_write_literal(content, modified=MODIFIED))

    assert packet.filename == ""
    assert packet.body.read() == content


def test_literal_truncates_long_filename_on_character_boundary() -> None:
    name = "é" * 200  # 400 bytes in UTF-8
    packet = _read_literal(_write_literal(b"", filename=name, modified=MODIFIED))

    assert packet.filename == "é" * 127


def test_literal_text_format() -> None:
    packet = _read_literal(_write_literal(b"text\r\n", data_format="t", modified=MODIFIED))

    assert packet.format == "t"


def test_literal_rejects_unknown_format() -> None:
    with pytest.raises(ValueError, match="Invalid literal data format"):
        LiteralDataWriter(io.BytesIO(), data_format="x")


def test_parse_literal_rejects_truncated_header() -> None:
    with pytest.raises(MalformedMessageError):
        parse_literal_data(io.BytesIO(b"b\x05ab"))
