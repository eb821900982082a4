"""
Crypto provider implementation using pgpy.

pgpy is used for what it is good at: parsing transferable keys, key ids and
passphrase unlocking. The RSA operations themselves run through the
``cryptography`` key objects pgpy keeps inside its key material, so digests
can be signed after a streaming hash instead of over an in-memory message.
"""

import hashlib
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass

import pgpy
import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, utils

from pgp_stream.core.secure_bytes import SecureBytes
from pgp_stream.crypto.cipher import CFBDecryptor, CFBEncryptor
from pgp_stream.crypto.session_key import (
    encode_session_key_payload,
    generate_session_key,
    parse_session_key_payload,
)
from pgp_stream.exceptions import (
    CryptoError,
    KeyUnlockError,
    MalformedMessageError,
    SessionKeyError,
    UnsupportedAlgorithmError,
)
from pgp_stream.models.crypto import (
    HashAlgorithm,
    KeyInfo,
    PublicKeyAlgorithm,
    SessionKey,
    SymmetricAlgorithm,
)
from pgp_stream.models.packets import PKESKPacket
from pgp_stream.packets.header import encode_mpi, parse_mpi

logger = structlog.get_logger(__name__)

_PKESK_VERSION = 3
_HASHES: dict[HashAlgorithm, type[hashes.HashAlgorithm]] = {
    HashAlgorithm.MD5: hashes.MD5,
    HashAlgorithm.SHA1: hashes.SHA1,
    HashAlgorithm.SHA224: hashes.SHA224,
    HashAlgorithm.SHA256: hashes.SHA256,
    HashAlgorithm.SHA384: hashes.SHA384,
    HashAlgorithm.SHA512: hashes.SHA512,
}


def _key_info(key: pgpy.PGPKey) -> KeyInfo:
    fingerprint = bytes.fromhex(str(key.fingerprint).replace(" ", ""))
    try:
        algorithm = PublicKeyAlgorithm(int(key.key_algorithm))
    except ValueError:
        msg = f"Unsupported public key algorithm: {key.key_algorithm!r}"
        raise UnsupportedAlgorithmError(msg) from None
    return KeyInfo(key_id=fingerprint[-8:], fingerprint=fingerprint, algorithm=algorithm)


@dataclass
class PgpyPublicKey:
    """Wrapper around pgpy.PGPKey to implement the PublicKeyHandle protocol."""

    _key: pgpy.PGPKey

    @property
    def key_id(self) -> str:
        return str(self._key.fingerprint.keyid)

    @property
    def fingerprint(self) -> str:
        return str(self._key.fingerprint)

    @property
    def pgpy_key(self) -> pgpy.PGPKey:
        return self._key

    @property
    def keys(self) -> tuple[KeyInfo, ...]:
        return tuple(_key_info(key) for key in self._all_keys())

    @property
    def encryption_key(self) -> KeyInfo:
        return _key_info(self._find_encryption_key(self._key))

    def find(self, key_id: bytes) -> KeyInfo | None:
        return next((info for info in self.keys if info.key_id == key_id), None)

    def material(self, key_id: bytes) -> pgpy.PGPKey:
        """The pgpy (sub)key with this id."""
        for key in self._all_keys():
            if _key_info(key).key_id == key_id:
                return key
        msg = f"Key {key_id.hex().upper()} is not part of {self.key_id}"
        raise CryptoError(msg)

    def _all_keys(self) -> list[pgpy.PGPKey]:
        return [self._key, *self._key.subkeys.values()]

    @staticmethod
    def _find_encryption_key(key: pgpy.PGPKey) -> pgpy.PGPKey:
        for subkey in key.subkeys.values():
            if PublicKeyAlgorithm(int(subkey.key_algorithm)) != PublicKeyAlgorithm.RSA_SIGN_ONLY:
                return subkey
        return key


@dataclass
class PgpyPrivateKey(PgpyPublicKey):
    """Wrapper around a secret pgpy.PGPKey to implement the PrivateKeyHandle protocol."""

    @property
    def is_protected(self) -> bool:
        return bool(self._key.is_protected)

    @property
    def signing_key(self) -> KeyInfo:
        return _key_info(self._key)

    @property
    def public_key(self) -> PgpyPublicKey:
        return PgpyPublicKey(_key=self._key.pubkey)


class PgpyProvider:
    """
    Crypto provider backed by pgpy keys and the cryptography package.

    Only RSA keys are supported for public-key operations.

    Example:
        provider = PgpyProvider()
        key = provider.load_private_key(armored_key)
        with provider.unlock(key, passphrase):
            ...
    """

    @staticmethod
    def load_private_key(blob: str | bytes) -> PgpyPrivateKey:
        """
        Load a secret key from ASCII-armored or binary format.

        Raises:
            CryptoError: If the key cannot be parsed or is public only.
        """
        try:
            key, _ = pgpy.PGPKey.from_blob(blob)
        except Exception as e:
            msg = f"Failed to load private key: {e}"
            raise CryptoError(msg) from e
        if key.is_public:
            msg = "Expected a private key, got a public key"
            raise CryptoError(msg)
        return PgpyPrivateKey(_key=key)

    @staticmethod
    def load_public_key(blob: str | bytes) -> PgpyPublicKey:
        """
        Load a public key; a secret key is reduced to its public half.

        Raises:
            CryptoError: If the key cannot be parsed.
        """
        try:
            key, _ = pgpy.PGPKey.from_blob(blob)
        except Exception as e:
            msg = f"Failed to load public key: {e}"
            raise CryptoError(msg) from e
        return PgpyPublicKey(_key=key if key.is_public else key.pubkey)

    @staticmethod
    def hasher(algorithm: HashAlgorithm) -> "hashlib._Hash":
        try:
            return hashlib.new(algorithm.hashlib_name)
        except ValueError:
            msg = f"Unsupported hash algorithm: {algorithm.name}"
            raise UnsupportedAlgorithmError(msg) from None

    @staticmethod
    def generate_session_key(algorithm: SymmetricAlgorithm) -> SessionKey:
        return generate_session_key(algorithm)

    @staticmethod
    def encryptor(session_key: SessionKey, *, integrity_protected: bool) -> CFBEncryptor:
        return CFBEncryptor(session_key, integrity_protected=integrity_protected)

    @staticmethod
    def decryptor(session_key: SessionKey, *, integrity_protected: bool) -> CFBDecryptor:
        return CFBDecryptor(session_key, integrity_protected=integrity_protected)

    @contextmanager
    def unlock(self, private_key: PgpyPrivateKey, passphrase: SecureBytes) -> Iterator[PgpyPrivateKey]:
        """
        Unlock a key with its passphrase for the duration of the context.

        Raises:
            KeyUnlockError: If the passphrase is incorrect.
        """
        if not private_key.is_protected:
            yield private_key
            return
        with ExitStack() as stack:
            try:
                stack.enter_context(private_key.pgpy_key.unlock(passphrase.decode()))
            except Exception as e:
                msg = f"Failed to unlock key: {e}"
                raise KeyUnlockError(msg) from e
            logger.debug("Unlocked private key", key_id=private_key.key_id)
            yield private_key

    def encrypt_session_key(self, recipient: PgpyPublicKey, session_key: SessionKey) -> PKESKPacket:
        key = recipient.encryption_key
        self._require_rsa(key)
        public = recipient.material(key.key_id)._key.keymaterial.__pubkey__()
        with encode_session_key_payload(session_key) as payload:
            ciphertext = public.encrypt(bytes(payload), padding.PKCS1v15())
        return PKESKPacket(
            version=_PKESK_VERSION,
            key_id=key.key_id,
            algorithm=key.algorithm,
            encrypted_session_key=encode_mpi(int.from_bytes(ciphertext, "big")),
        )

    def decrypt_session_key(self, private_key: PgpyPrivateKey, pkesk: PKESKPacket) -> SessionKey:
        key = private_key.encryption_key if pkesk.is_wildcard else private_key.find(pkesk.key_id)
        if key is None:
            msg = f"Session key is not addressed to {private_key.key_id}"
            raise SessionKeyError(msg)
        self._require_rsa(key)
        try:
            encrypted, _ = parse_mpi(pkesk.encrypted_session_key)
            private = self._private_material(private_key, key)
            ciphertext = encrypted.rjust((private.key_size + 7) // 8, b"\x00")
            payload = private.decrypt(ciphertext, padding.PKCS1v15())
        except KeyUnlockError:
            raise
        except Exception as e:
            msg = f"Failed to decrypt session key: {e}"
            raise SessionKeyError(msg) from e
        return parse_session_key_payload(payload)

    def sign_digest(
        self,
        private_key: PgpyPrivateKey,
        key: KeyInfo,
        algorithm: HashAlgorithm,
        digest: bytes,
    ) -> bytes:
        self._require_rsa(key)
        private = self._private_material(private_key, key)
        signature = private.sign(digest, padding.PKCS1v15(), utils.Prehashed(self._hash(algorithm)))
        return encode_mpi(int.from_bytes(signature, "big"))

    def verify_digest(
        self,
        public_key: PgpyPublicKey,
        key: KeyInfo,
        algorithm: HashAlgorithm,
        digest: bytes,
        signature: bytes,
    ) -> bool:
        self._require_rsa(key)
        public = public_key.material(key.key_id)._key.keymaterial.__pubkey__()
        try:
            value, _ = parse_mpi(signature)
        except MalformedMessageError:
            return False
        try:
            public.verify(
                value.rjust((public.key_size + 7) // 8, b"\x00"),
                digest,
                padding.PKCS1v15(),
                utils.Prehashed(self._hash(algorithm)),
            )
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def _private_material(private_key: PgpyPrivateKey, key: KeyInfo):
        material = private_key.material(key.key_id)
        if not material.is_unlocked:
            msg = f"Key {key.key_id_hex} is locked"
            raise KeyUnlockError(msg)
        return material._key.keymaterial.__privkey__()

    @staticmethod
    def _require_rsa(key: KeyInfo) -> None:
        if key.algorithm.is_rsa:
            return
        msg = f"Unsupported public key algorithm: {key.algorithm.name}"
        raise UnsupportedAlgorithmError(msg)

    @staticmethod
    def _hash(algorithm: HashAlgorithm) -> hashes.HashAlgorithm:
        try:
            return _HASHES[algorithm]()
        except KeyError:
            msg = f"Unsupported hash algorithm for signatures: {algorithm.name}"
            raise UnsupportedAlgorithmError(msg) from None
