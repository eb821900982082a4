"""
Session key handling.

A Public-Key Encrypted Session Key (PKESK) packet carries the symmetric key
used for the encrypted data packet that follows it, encrypted to one
recipient key. Before public-key encryption the key is framed as
``[algorithm(1)] + [key(N)] + [checksum(2)]``.
"""

import os

from pgp_stream.core.secure_bytes import SecureBytes, wipe
from pgp_stream.exceptions import SessionKeyError, UnsupportedAlgorithmError
from pgp_stream.models.crypto import PublicKeyAlgorithm, SessionKey, SymmetricAlgorithm
from pgp_stream.models.packets import PKESKPacket

_PKESK_VERSION = 3
_MIN_PKESK_BODY_LENGTH = 10
_VALID_KEY_SIZES = (16, 24, 32)


def generate_session_key(algorithm: SymmetricAlgorithm) -> SessionKey:
    """Create a random session key for ``algorithm``."""
    if algorithm.key_size == 0:
        msg = f"Cannot generate a session key for {algorithm.name}"
        raise UnsupportedAlgorithmError(msg)
    return SessionKey(algorithm=algorithm, key=SecureBytes(os.urandom(algorithm.key_size)))


def encode_session_key_payload(session_key: SessionKey) -> SecureBytes:
    """Frame a session key as algorithm octet, key octets and checksum."""
    payload = bytearray([session_key.algorithm])
    try:
        payload += bytes(session_key.key)
        payload += session_key.checksum.to_bytes(2, "big")
        return SecureBytes(payload)
    finally:
        wipe(payload)


def parse_session_key_payload(payload: bytes) -> SessionKey:
    """Parse decrypted session key payload: [algo(1)] + [key(N)] + [checksum(2)]."""
    _validate_payload_length(payload)
    algorithm = _parse_algorithm(payload[0])
    key_size = _determine_key_size(algorithm, len(payload))
    key_data = payload[1 : 1 + key_size]
    checksum = payload[1 + key_size : 1 + key_size + 2]
    _verify_checksum(key_data, checksum)
    return SessionKey(algorithm=algorithm, key=SecureBytes(key_data))


def _validate_payload_length(payload: bytes) -> None:
    if len(payload) >= 3:
        return
    msg = f"Session key payload too short: {len(payload)} bytes"
    raise SessionKeyError(msg)


def _parse_algorithm(algorithm_id: int) -> SymmetricAlgorithm:
    try:
        return SymmetricAlgorithm(algorithm_id)
    except ValueError:
        msg = f"Unknown symmetric algorithm: {algorithm_id}"
        raise SessionKeyError(msg) from None


def _determine_key_size(algorithm: SymmetricAlgorithm, payload_length: int) -> int:
    key_size = algorithm.key_size
    if key_size > 0:
        return key_size
    inferred_size = payload_length - 3
    if inferred_size not in _VALID_KEY_SIZES:
        msg = f"Cannot determine key size for algorithm {algorithm.value}"
        raise SessionKeyError(msg)
    return inferred_size


def _verify_checksum(key_data: bytes, checksum: bytes) -> None:
    computed = sum(key_data) % 65536
    expected = int.from_bytes(checksum, "big")
    if computed == expected:
        return
    msg = "Session key checksum mismatch"
    raise SessionKeyError(msg)


def encode_pkesk_body(pkesk: PKESKPacket) -> bytes:
    """Serialize the body of a version 3 PKESK packet."""
    return (
        bytes([pkesk.version])
        + pkesk.key_id
        + bytes([pkesk.algorithm])
        + pkesk.encrypted_session_key
    )


def parse_pkesk_body(body: bytes) -> PKESKPacket:
    """
    Parse the body of a PKESK packet.

    Raises:
        SessionKeyError: If the body is truncated or uses an unknown version
            or algorithm.
    """
    if len(body) < _MIN_PKESK_BODY_LENGTH:
        msg = f"PKESK body too short: {len(body)} bytes"
        raise SessionKeyError(msg)

    version = body[0]
    if version != _PKESK_VERSION:
        msg = f"Unsupported PKESK version: {version}"
        raise SessionKeyError(msg)

    try:
        algorithm = PublicKeyAlgorithm(body[9])
    except ValueError:
        msg = f"Unknown public key algorithm: {body[9]}"
        raise SessionKeyError(msg) from None

    return PKESKPacket(
        version=version,
        key_id=body[1:9],
        algorithm=algorithm,
        encrypted_session_key=body[10:],
    )
