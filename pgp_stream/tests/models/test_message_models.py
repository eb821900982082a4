from datetime import datetime, timezone

from pgp_stream.models.crypto import HashAlgorithm, PublicKeyAlgorithm, SignatureType
from pgp_stream.models.message import DecodeResult, ProcessingMode, VerifiedSignature
from pgp_stream.models.packets import PacketTag, PKESKPacket, SignaturePacket, describe_tag


def test_processing_mode_key_requirements() -> None:
    assert ProcessingMode.ENCRYPT.requires_recipient
    assert not ProcessingMode.ENCRYPT.requires_signer
    assert ProcessingMode.SIGN.requires_signer
    assert not ProcessingMode.SIGN.requires_recipient
    assert ProcessingMode.SIGN_AND_ENCRYPT.requires_recipient
    assert ProcessingMode.SIGN_AND_ENCRYPT.requires_signer


def test_decode_result_is_verified_only_with_signatures() -> None:
    result = DecodeResult()
    assert not result.is_verified

    result.signatures.append(
        VerifiedSignature(
            key_id="0102030405060708",
            hash_algorithm=HashAlgorithm.SHA256,
            signature_type=SignatureType.BINARY_DOCUMENT,
            created=datetime.now(timezone.utc),
        )
    )

    assert result.is_verified
    assert result.signer_key_ids == ["0102030405060708"]


def test_describe_tag_names_known_and_unknown_tags() -> None:
    assert describe_tag(6) == "PUBLIC_KEY"
    assert describe_tag(60) == "TAG_60"
    assert PacketTag.SYM_ENCRYPTED_INTEGRITY_PROTECTED_DATA == 18


def test_pkesk_packet_wildcard() -> None:
    packet = PKESKPacket(
        version=3,
        key_id=bytes(8),
        algorithm=PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN,
        encrypted_session_key=b"",
    )

    assert packet.is_wildcard
    assert packet.key_id_hex == "0000000000000000"


def test_signature_packet_hash_trailer() -> None:
    header = bytes([4, 0, 1, 8, 0, 0])
    packet = SignaturePacket(
        version=4,
        signature_type=SignatureType.BINARY_DOCUMENT,
        public_key_algorithm=PublicKeyAlgorithm.RSA_ENCRYPT_OR_SIGN,
        hash_algorithm=HashAlgorithm.SHA256,
        hashed_header=header,
        key_id=bytes(8),
        created=None,
        hash_prefix=b"\x00\x00",
        signature=b"",
    )

    assert packet.hash_trailer == header + b"\x04\xff\x00\x00\x00\x06"
