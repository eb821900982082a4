"""
pgp_stream exception hierarchy.

All exceptions inherit from PgpStreamError for easy catching.
"""

from typing import Any


class PgpStreamError(Exception):
    """Base exception for all pgp_stream errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(PgpStreamError):
    """The processing mode requires a key or passphrase that was not supplied."""


class CryptoError(PgpStreamError):
    """Cryptographic operation failed."""


class KeyUnlockError(CryptoError):
    """Failed to unlock a private key with the provided passphrase."""


class KeyMismatchError(CryptoError):
    """No session key entry is addressed to the supplied private key."""

    def __init__(self, message: str, *, key_ids: tuple[str, ...] = ()) -> None:
        super().__init__(message, key_ids=key_ids)
        self.key_ids = key_ids


class SessionKeyError(CryptoError):
    """Failed to decrypt or decode a session key."""


class IntegrityError(CryptoError):
    """Encryption-layer integrity check failed (quick check or MDC mismatch)."""


class SignatureKeyNotFoundError(CryptoError):
    """No public key matches the key id of a signature."""

    def __init__(self, message: str, *, key_id: str) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class SignatureVerificationError(CryptoError):
    """Computed signature does not match the embedded signature value."""

    def __init__(self, message: str, *, key_id: str | None = None) -> None:
        super().__init__(message, key_id=key_id)
        self.key_id = key_id


class UnsupportedAlgorithmError(CryptoError):
    """Algorithm identifier is valid OpenPGP but not implemented here."""


class MalformedMessageError(PgpStreamError):
    """The message stream cannot be parsed."""


class UnsupportedPacketTypeError(MalformedMessageError):
    """The message contains a packet kind outside the supported vocabulary."""

    def __init__(self, message: str, *, tag: int) -> None:
        super().__init__(message, tag=tag)
        self.tag = tag


class ArmorError(MalformedMessageError):
    """ASCII armor framing is invalid or its checksum does not match."""


class OperationCanceledError(PgpStreamError):
    """Cooperative cancellation was honored mid-stream."""

    def __init__(self, message: str = "Operation canceled") -> None:
        super().__init__(message)


class IOFailureError(PgpStreamError):
    """Reading the source or writing the sink failed."""
