from pgp_stream.exceptions import (
    ArmorError,
    CryptoError,
    IntegrityError,
    KeyMismatchError,
    MalformedMessageError,
    OperationCanceledError,
    PgpStreamError,
    SignatureKeyNotFoundError,
    SignatureVerificationError,
    UnsupportedPacketTypeError,
)


def test_pgp_stream_error_str_without_context() -> None:
    error = PgpStreamError("Something failed")

    assert str(error) == "Something failed"


def test_pgp_stream_error_str_with_context() -> None:
    error = PgpStreamError("Failed", key_id="ABCD", attempt=3)

    assert "Failed" in str(error)
    assert "key_id='ABCD'" in str(error)
    assert "attempt=3" in str(error)


def test_key_mismatch_error_keeps_key_ids() -> None:
    error = KeyMismatchError("No match", key_ids=("0102030405060708",))

    assert error.key_ids == ("0102030405060708",)
    assert isinstance(error, CryptoError)


def test_signature_errors_keep_key_id() -> None:
    assert SignatureKeyNotFoundError("missing", key_id="AA").key_id == "AA"
    assert SignatureVerificationError("bad").key_id is None


def test_unsupported_packet_type_error_is_malformed_message() -> None:
    error = UnsupportedPacketTypeError("Unsupported", tag=6)

    assert error.tag == 6
    assert isinstance(error, MalformedMessageError)
    assert issubclass(ArmorError, MalformedMessageError)


def test_integrity_error_is_crypto_error() -> None:
    assert issubclass(IntegrityError, CryptoError)


def test_operation_canceled_error_has_default_message() -> None:
    assert str(OperationCanceledError()) == "Operation canceled"
