import io
import threading
from unittest.mock import Mock

import pgpy
import pytest

from pgp_stream.config import DecodeOptions, EncodeOptions
from pgp_stream.crypto.pgpy_backend import PgpyPrivateKey, PgpyProvider
from pgp_stream.decoder import MessageDecoder, decode
from pgp_stream.encoder import encode
from pgp_stream.exceptions import (
    ArmorError,
    ConfigurationError,
    IntegrityError,
    IOFailureError,
    KeyMismatchError,
    KeyUnlockError,
    MalformedMessageError,
    OperationCanceledError,
    SignatureKeyNotFoundError,
    SignatureVerificationError,
    UnsupportedPacketTypeError,
)
from pgp_stream.models.crypto import CompressionAlgorithm, HashAlgorithm, SignatureType
from pgp_stream.models.message import ProcessingMode
from pgp_stream.packets.header import encode_packet
from pgp_stream.packets.literal import LiteralDataWriter
from pgp_stream.packets.signature import SignatureGenerator

BINARY = EncodeOptions(armored=False)
BINARY_UNCOMPRESSED = EncodeOptions(
    armored=False, compression_algorithm=CompressionAlgorithm.UNCOMPRESSED
)


def _literal(data: bytes, data_format: str = "b") -> bytes:
    sink = io.BytesIO()
    writer = LiteralDataWriter(sink, data_format=data_format)
    writer.write(data)
    writer.close()
    return sink.getvalue()


def _flip(message: bytes, index: int) -> bytes:
    tampered = bytearray(message)
    tampered[index] ^= 0x01
    return bytes(tampered)


@pytest.fixture
def signed_message(carol: PgpyPrivateKey) -> bytes:
    return encode(b"signed content", ProcessingMode.SIGN, options=BINARY_UNCOMPRESSED, signer_key=carol)


@pytest.fixture
def encrypted_for_alice(alice: PgpyPrivateKey, passphrase: str) -> bytes:
    return encode(
        b"secret content",
        ProcessingMode.SIGN_AND_ENCRYPT,
        options=BINARY,
        recipient_key=alice.public_key,
        signer_key=alice,
        passphrase=passphrase,
    )


def test_decode_into_sink(encrypted_for_alice: bytes, alice: PgpyPrivateKey, passphrase: str) -> None:
    sink = io.BytesIO()
    result = MessageDecoder().decode(
        io.BytesIO(encrypted_for_alice),
        sink,
        recipient_key=alice,
        passphrase=passphrase,
        signer_key=alice.public_key,
    )

    assert sink.getvalue() == b"secret content"
    assert result.length == len(b"secret content")
    assert result.encrypted and result.integrity_protected
    assert result.signatures[0].signature_type == SignatureType.BINARY_DOCUMENT


def test_small_chunks(encrypted_for_alice: bytes, alice: PgpyPrivateKey, passphrase: str) -> None:
    plaintext, result = decode(
        encrypted_for_alice,
        options=DecodeOptions(chunk_size=7),
        recipient_key=alice,
        passphrase=passphrase,
        signer_key=alice.public_key,
    )

    assert plaintext == b"secret content"
    assert result.is_verified


def test_encrypt_only_message_has_no_signatures(
    alice: PgpyPrivateKey, passphrase: str
) -> None:
    message = encode(b"plain", ProcessingMode.ENCRYPT, recipient_key=alice.public_key)
    plaintext, result = decode(message, recipient_key=alice, passphrase=passphrase)

    assert plaintext == b"plain"
    assert not result.is_verified
    assert result.signatures == []


def test_tampered_ciphertext_trailer(
    encrypted_for_alice: bytes, alice: PgpyPrivateKey, passphrase: str
) -> None:
    with pytest.raises(IntegrityError):
        decode(
            _flip(encrypted_for_alice, -1),
            recipient_key=alice,
            passphrase=passphrase,
            signer_key=alice.public_key,
        )


def test_tampered_ciphertext_body(
    encrypted_for_alice: bytes, alice: PgpyPrivateKey, passphrase: str
) -> None:
    with pytest.raises(IntegrityError):
        decode(
            _flip(encrypted_for_alice, -30),
            recipient_key=alice,
            passphrase=passphrase,
            signer_key=alice.public_key,
        )


def test_tampered_signature(signed_message: bytes, carol: PgpyPrivateKey) -> None:
    with pytest.raises(SignatureVerificationError, match="verification failed"):
        decode(_flip(signed_message, -1), signer_key=carol.public_key)


def test_tampered_signed_data(signed_message: bytes, carol: PgpyPrivateKey) -> None:
    index = signed_message.index(b"signed content")

    with pytest.raises(SignatureVerificationError) as excinfo:
        decode(_flip(signed_message, index), signer_key=carol.public_key)
    assert excinfo.value.key_id == carol.signing_key.key_id_hex


def test_wrong_recipient_key(
    encrypted_for_alice: bytes, alice: PgpyPrivateKey, bob: PgpyPrivateKey, passphrase: str
) -> None:
    with pytest.raises(KeyMismatchError) as excinfo:
        decode(encrypted_for_alice, recipient_key=bob, passphrase=passphrase)
    assert excinfo.value.key_ids == (alice.encryption_key.key_id_hex,)


def test_encrypted_message_without_recipient_key(encrypted_for_alice: bytes) -> None:
    with pytest.raises(ConfigurationError, match="no recipient key"):
        decode(encrypted_for_alice)


def test_protected_recipient_without_passphrase(
    encrypted_for_alice: bytes, alice: PgpyPrivateKey
) -> None:
    with pytest.raises(ConfigurationError, match="no passphrase"):
        decode(encrypted_for_alice, recipient_key=alice)


def test_wrong_recipient_passphrase(encrypted_for_alice: bytes, alice: PgpyPrivateKey) -> None:
    with pytest.raises(KeyUnlockError):
        decode(encrypted_for_alice, recipient_key=alice, passphrase="not it")


def test_signed_message_without_signer_key(signed_message: bytes) -> None:
    with pytest.raises(SignatureKeyNotFoundError, match="no signer key"):
        decode(signed_message)


def test_signed_message_with_other_signer_key(
    signed_message: bytes, carol: PgpyPrivateKey, bob: PgpyPrivateKey
) -> None:
    with pytest.raises(SignatureKeyNotFoundError) as excinfo:
        decode(signed_message, signer_key=bob.public_key)
    assert excinfo.value.key_id == carol.signing_key.key_id_hex


def test_require_signature(carol: PgpyPrivateKey) -> None:
    message = encode(b"unsigned", ProcessingMode.ENCRYPT, recipient_key=carol.public_key)

    with pytest.raises(SignatureVerificationError, match="not signed"):
        decode(message, options=DecodeOptions(require_signature=True), recipient_key=carol)


def test_max_depth(carol: PgpyPrivateKey) -> None:
    message = encode(b"nested", ProcessingMode.ENCRYPT, recipient_key=carol.public_key)

    with pytest.raises(MalformedMessageError, match="nesting"):
        decode(message, options=DecodeOptions(max_depth=1), recipient_key=carol)


def test_cancel(signed_message: bytes, carol: PgpyPrivateKey) -> None:
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCanceledError):
        decode(signed_message, signer_key=carol.public_key, cancel=cancel)


def test_sink_failure(signed_message: bytes, carol: PgpyPrivateKey) -> None:
    with pytest.raises(IOFailureError, match="Failed to write output"):
        MessageDecoder().decode(
            io.BytesIO(signed_message),
            Mock(write=Mock(side_effect=OSError("broken pipe"))),
            signer_key=carol.public_key,
        )


def test_empty_message() -> None:
    with pytest.raises(MalformedMessageError, match="no literal data"):
        decode(b"")


def test_text_without_armor() -> None:
    with pytest.raises(ArmorError):
        decode(b"this is not a message\n")


def test_bare_literal_packet() -> None:
    plaintext, result = decode(encode_packet(10, b"PGP") + _literal(b"just data"))

    assert plaintext == b"just data"
    assert not result.encrypted
    assert not result.is_verified


def test_second_literal_packet() -> None:
    with pytest.raises(MalformedMessageError, match="more than one literal"):
        decode(_literal(b"one") + _literal(b"two"))


@pytest.mark.parametrize("tag", [6, 60])
def test_foreign_packet(tag: int) -> None:
    with pytest.raises(UnsupportedPacketTypeError) as excinfo:
        decode(encode_packet(tag, b"x") + _literal(b"data"))
    assert excinfo.value.tag == tag


def test_unknown_packet_kind_fails_closed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("pgp_stream.decoder.PacketStream", Mock(return_value=iter([object()])))

    with pytest.raises(AssertionError):
        decode(_literal(b"data"))


def test_leading_signature(provider: PgpyProvider, carol: PgpyPrivateKey) -> None:
    generator = SignatureGenerator(provider, carol, HashAlgorithm.SHA256)
    generator.update(b"signed up front")
    message = generator.generate() + _literal(b"signed up front")

    plaintext, result = decode(message, signer_key=carol.public_key)

    assert plaintext == b"signed up front"
    assert result.signer_key_ids == [carol.signing_key.key_id_hex]


def test_leading_signature_over_other_data(provider: PgpyProvider, carol: PgpyPrivateKey) -> None:
    generator = SignatureGenerator(provider, carol, HashAlgorithm.SHA256)
    generator.update(b"original")
    message = generator.generate() + _literal(b"replaced")

    with pytest.raises(SignatureVerificationError):
        decode(message, signer_key=carol.public_key)


def test_one_pass_without_trailing_signature(provider: PgpyProvider, carol: PgpyPrivateKey) -> None:
    generator = SignatureGenerator(provider, carol, HashAlgorithm.SHA256)
    message = generator.one_pass_packet() + _literal(b"data")

    with pytest.raises(SignatureVerificationError, match="no trailing signature"):
        decode(message, signer_key=carol.public_key)


def test_canonical_text_signature(provider: PgpyProvider, carol: PgpyPrivateKey) -> None:
    generator = SignatureGenerator(
        provider, carol, HashAlgorithm.SHA256, signature_type=SignatureType.CANONICAL_TEXT
    )
    generator.update(b"first line\r\nsecond line\r\n")
    message = (
        generator.one_pass_packet()
        + _literal(b"first line\nsecond line\n", data_format="t")
        + generator.generate()
    )

    plaintext, result = decode(message, signer_key=carol.public_key)

    assert plaintext == b"first line\nsecond line\n"
    assert result.format == "t"
    assert result.signatures[0].signature_type == SignatureType.CANONICAL_TEXT


def test_decodes_pgpy_encrypted_message(
    alice_pgpy: pgpy.PGPKey, alice: PgpyPrivateKey, passphrase: str
) -> None:
    encrypted = alice_pgpy.pubkey.encrypt(pgpy.PGPMessage.new(b"from pgpy"))

    plaintext, result = decode(bytes(encrypted), recipient_key=alice, passphrase=passphrase)

    assert plaintext == b"from pgpy"
    assert result.encrypted and result.integrity_protected


def test_decodes_pgpy_signed_message(
    alice_pgpy: pgpy.PGPKey, alice: PgpyPrivateKey, passphrase: str
) -> None:
    message = pgpy.PGPMessage.new(b"signed by pgpy")
    with alice_pgpy.unlock(passphrase):
        message |= alice_pgpy.sign(message)

    plaintext, result = decode(str(message).encode("ascii"), signer_key=alice.public_key)

    assert plaintext == b"signed by pgpy"
    assert result.signer_key_ids == [alice.signing_key.key_id_hex]


def test_decodes_pgpy_signed_and_encrypted_message(
    alice_pgpy: pgpy.PGPKey, alice: PgpyPrivateKey, passphrase: str
) -> None:
    message = pgpy.PGPMessage.new(b"both from pgpy")
    with alice_pgpy.unlock(passphrase):
        message |= alice_pgpy.sign(message)
    encrypted = alice_pgpy.pubkey.encrypt(message)

    plaintext, result = decode(
        str(encrypted).encode("ascii"),
        recipient_key=alice,
        passphrase=passphrase,
        signer_key=alice.public_key,
    )

    assert plaintext == b"both from pgpy"
    assert result.is_verified
    assert result.encrypted
