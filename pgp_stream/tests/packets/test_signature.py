import io
from datetime import datetime, timezone

import pytest

from pgp_stream.core.secure_bytes import SecureBytes
from pgp_stream.crypto.pgpy_backend import PgpyPrivateKey, PgpyProvider
from pgp_stream.exceptions import MalformedMessageError, UnsupportedAlgorithmError
from pgp_stream.models.crypto import HashAlgorithm, PublicKeyAlgorithm, SignatureType
from pgp_stream.models.packets import WILDCARD_KEY_ID, SignaturePacket
from pgp_stream.packets.header import PacketBodyReader, read_packet_header
from pgp_stream.packets.signature import (
    SignatureGenerator,
    SignatureVerifier,
    encode_one_pass_signature,
    parse_one_pass_signature,
    parse_signature,
)

CREATED = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _sign(
    provider: PgpyProvider,
    signer: PgpyPrivateKey,
    chunks: list[bytes],
    *,
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256,
    signature_type: SignatureType = SignatureType.BINARY_DOCUMENT,
) -> SignaturePacket:
    generator = SignatureGenerator(
        provider, signer, hash_algorithm, signature_type=signature_type, created=CREATED
    )
    for chunk in chunks:
        generator.update(chunk)
    stream = io.BytesIO(generator.generate())
    header = read_packet_header(stream)
    assert header.tag == 2
    return parse_signature(PacketBodyReader(stream, header).read())


def _verify(
    provider: PgpyProvider,
    signer: PgpyPrivateKey,
    signature: SignaturePacket,
    chunks: list[bytes],
    *,
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256,
) -> bool:
    verifier = SignatureVerifier(
        provider,
        signer.public_key,
        signer.signing_key,
        hash_algorithm,
        signature.signature_type,
    )
    for chunk in chunks:
        verifier.update(chunk)
    return verifier.verify(signature)


def test_one_pass_signature_round_trip(carol: PgpyPrivateKey) -> None:
    packet = encode_one_pass_signature(
        SignatureType.BINARY_DOCUMENT, HashAlgorithm.SHA512, carol.signing_key, nested=False
    )
    parsed = parse_one_pass_signature(packet[2:])

    assert packet[:2] == b"\xc4\x0d"
    assert parsed.version == 3
    assert parsed.hash_algorithm == HashAlgorithm.SHA512
    assert parsed.public_key_algorithm == PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN
    assert parsed.key_id == carol.signing_key.key_id
    assert parsed.nested is False


def test_parse_one_pass_signature_rejects_bad_length() -> None:
    with pytest.raises(MalformedMessageError, match="must be 13 bytes"):
        parse_one_pass_signature(b"\x03\x00\x08\x01")


def test_parse_one_pass_signature_rejects_bad_version() -> None:
    with pytest.raises(MalformedMessageError, match="version"):
        parse_one_pass_signature(b"\x02\x00\x08\x01" + bytes(8) + b"\x01")


def test_generated_signature_fields(provider: PgpyProvider, carol: PgpyPrivateKey) -> None:
    signature = _sign(provider, carol, [b"hello"])

    assert signature.version == 4
    assert signature.signature_type == SignatureType.BINARY_DOCUMENT
    assert signature.hash_algorithm == HashAlgorithm.SHA256
    assert signature.key_id == carol.signing_key.key_id
    assert signature.created == CREATED


def test_signature_verifies_regardless_of_chunking(
    provider: PgpyProvider, carol: PgpyPrivateKey
) -> None:
    signature = _sign(provider, carol, [b"hel", b"lo ", b"world"])

    assert _verify(provider, carol, signature, [b"hello world"])
    assert _verify(provider, carol, signature, [b"h", b"ello", b" wor", b"ld"])


@pytest.mark.parametrize(
    "hash_algorithm",
    [HashAlgorithm.SHA1, HashAlgorithm.SHA224, HashAlgorithm.SHA384, HashAlgorithm.SHA512],
)
def test_signature_with_other_hashes(
    provider: PgpyProvider, carol: PgpyPrivateKey, hash_algorithm: HashAlgorithm
) -> None:
    signature = _sign(provider, carol, [b"data"], hash_algorithm=hash_algorithm)

    assert _verify(provider, carol, signature, [b"data"], hash_algorithm=hash_algorithm)


def test_signature_fails_for_modified_data(provider: PgpyProvider, carol: PgpyPrivateKey) -> None:
    signature = _sign(provider, carol, [b"original"])

    assert not _verify(provider, carol, signature, [b"modified"])


def test_signature_fails_for_other_hash_than_announced(
    provider: PgpyProvider, carol: PgpyPrivateKey
) -> None:
    signature = _sign(provider, carol, [b"data"])

    assert not _verify(provider, carol, signature, [b"data"], hash_algorithm=HashAlgorithm.SHA512)


def test_signature_fails_for_other_key(
    provider: PgpyProvider, carol: PgpyPrivateKey, alice: PgpyPrivateKey, passphrase: str
) -> None:
    with provider.unlock(alice, SecureBytes.from_string(passphrase)) as unlocked:
        signature = _sign(provider, unlocked, [b"data"])

    assert signature.key_id == alice.signing_key.key_id
    verifier = SignatureVerifier(
        provider, carol.public_key, carol.signing_key, HashAlgorithm.SHA256
    )
    verifier.update(b"data")
    assert not verifier.verify(signature)


def test_canonical_text_signature_normalizes_line_endings(
    provider: PgpyProvider, carol: PgpyPrivateKey
) -> None:
    signature = _sign(
        provider,
        carol,
        [b"line one\r", b"\nline two\n", b"last\r"],
        signature_type=SignatureType.CANONICAL_TEXT,
    )

    assert signature.signature_type == SignatureType.CANONICAL_TEXT
    assert _verify(provider, carol, signature, [b"line one\nline two\r\nlast\r"])
    assert not _verify(provider, carol, signature, [b"line one\nline two\nlast"])


def _signature_body(signature_type: int = 0x00, hash_algorithm: int = 8, version: int = 4) -> bytes:
    return (
        bytes([version, signature_type, 1, hash_algorithm])
        + b"\x00\x00"  # no hashed subpackets
        + b"\x00\x00"  # no unhashed subpackets
        + b"\xab\xcd"
        + b"\x00\x08\xff"
    )


def test_parse_signature_without_issuer_uses_wildcard() -> None:
    signature = parse_signature(_signature_body())

    assert signature.key_id == WILDCARD_KEY_ID
    assert signature.created is None
    assert signature.hash_prefix == b"\xab\xcd"
    assert signature.signature == b"\x00\x08\xff"
    assert signature.hash_trailer == _signature_body()[:6] + b"\x04\xff\x00\x00\x00\x06"


def test_parse_signature_rejects_unknown_version() -> None:
    with pytest.raises(MalformedMessageError, match="Unsupported signature version"):
        parse_signature(_signature_body(version=3))


def test_parse_signature_rejects_non_document_signature() -> None:
    with pytest.raises(MalformedMessageError, match="0x10"):
        parse_signature(_signature_body(signature_type=0x10))


def test_parse_signature_rejects_unknown_hash() -> None:
    with pytest.raises(UnsupportedAlgorithmError, match="Unknown hash algorithm"):
        parse_signature(_signature_body(hash_algorithm=99))


def test_parse_signature_rejects_truncated_subpackets() -> None:
    body = b"\x04\x00\x01\x08\x00\x05\x09\x02"

    with pytest.raises(MalformedMessageError, match="truncated"):
        parse_signature(body)
