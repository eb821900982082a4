"""
Crypto provider protocol definition.

This is the boundary between the message pipeline and the library that
actually holds key material and runs public-key operations. The encoder and
decoder only ever talk to these interfaces, so a different backend can be
dropped in without touching the packet code.
"""

from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

from pgp_stream.core.secure_bytes import SecureBytes
from pgp_stream.crypto.cipher import CFBDecryptor, CFBEncryptor
from pgp_stream.models.crypto import HashAlgorithm, KeyInfo, SessionKey, SymmetricAlgorithm
from pgp_stream.models.packets import PKESKPacket


@runtime_checkable
class PublicKeyHandle(Protocol):
    """A public key (primary plus subkeys)."""

    @property
    def key_id(self) -> str:
        """Primary key id as upper-case hex."""
        ...

    @property
    def fingerprint(self) -> str:
        """Primary key fingerprint."""
        ...

    @property
    def keys(self) -> tuple[KeyInfo, ...]:
        """The primary key followed by every subkey."""
        ...

    @property
    def encryption_key(self) -> KeyInfo:
        """The (sub)key session keys are encrypted to."""
        ...

    def find(self, key_id: bytes) -> KeyInfo | None:
        """Return the (sub)key with this 8-byte id, if any."""
        ...


@runtime_checkable
class PrivateKeyHandle(PublicKeyHandle, Protocol):
    """A secret key, possibly passphrase protected."""

    @property
    def is_protected(self) -> bool: ...

    @property
    def signing_key(self) -> KeyInfo:
        """The (sub)key used for data signatures."""
        ...

    @property
    def public_key(self) -> PublicKeyHandle:
        """The corresponding public key, for self-verification."""
        ...


class Hasher(Protocol):
    """Incremental hash, hashlib style."""

    def update(self, data: bytes, /) -> None: ...

    def digest(self) -> bytes: ...


@runtime_checkable
class CryptoProvider(Protocol):
    """
    Abstract interface for the cryptographic primitives the pipeline consumes.

    Every method is addressed by OpenPGP algorithm identifiers and key handles.
    """

    def hasher(self, algorithm: HashAlgorithm) -> Hasher:
        """
        Create an incremental hasher.

        Raises:
            UnsupportedAlgorithmError: If the hash is not available.
        """
        ...

    def generate_session_key(self, algorithm: SymmetricAlgorithm) -> SessionKey:
        """Create a random session key."""
        ...

    def encryptor(self, session_key: SessionKey, *, integrity_protected: bool) -> CFBEncryptor:
        """Symmetric stream filter for the encrypted data packet body."""
        ...

    def decryptor(self, session_key: SessionKey, *, integrity_protected: bool) -> CFBDecryptor:
        """Inverse of encryptor()."""
        ...

    def unlock(
        self, private_key: PrivateKeyHandle, passphrase: SecureBytes
    ) -> AbstractContextManager[Any]:
        """
        Unlock a private key for the duration of the context.

        Raises:
            KeyUnlockError: If the passphrase is incorrect.
        """
        ...

    def encrypt_session_key(self, recipient: PublicKeyHandle, session_key: SessionKey) -> PKESKPacket:
        """
        Encrypt a session key to the recipient's encryption key.

        Raises:
            UnsupportedAlgorithmError: If the key algorithm is not supported.
        """
        ...

    def decrypt_session_key(self, private_key: PrivateKeyHandle, pkesk: PKESKPacket) -> SessionKey:
        """
        Recover the session key from a PKESK addressed to ``private_key``.

        Raises:
            SessionKeyError: If decryption or the checksum fails.
        """
        ...

    def sign_digest(
        self,
        private_key: PrivateKeyHandle,
        key: KeyInfo,
        algorithm: HashAlgorithm,
        digest: bytes,
    ) -> bytes:
        """Sign a finished digest; returns the encoded signature MPIs."""
        ...

    def verify_digest(
        self,
        public_key: PublicKeyHandle,
        key: KeyInfo,
        algorithm: HashAlgorithm,
        digest: bytes,
        signature: bytes,
    ) -> bool:
        """Check encoded signature MPIs against a finished digest."""
        ...
