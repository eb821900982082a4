import pgpy
import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from pgp_stream.crypto.pgpy_backend import PgpyPrivateKey, PgpyProvider

PASSPHRASE = "correct horse battery staple"


def _create_test_key(
    name: str,
    passphrase: str | None = PASSPHRASE,
    *,
    with_encryption_subkey: bool = False,
) -> pgpy.PGPKey:
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new(name, comment="test", email=f"{name.lower()}@test.com")
    usage = {KeyFlags.Sign}
    if not with_encryption_subkey:
        usage |= {KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage}
    key.add_uid(
        uid,
        usage=usage,
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
        compression=[CompressionAlgorithm.ZIP, CompressionAlgorithm.Uncompressed],
    )
    if with_encryption_subkey:
        subkey = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
        key.add_subkey(subkey, usage={KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})
    if passphrase is not None:
        key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return key


@pytest.fixture(scope="session")
def passphrase() -> str:
    return PASSPHRASE


@pytest.fixture(scope="session")
def provider() -> PgpyProvider:
    return PgpyProvider()


@pytest.fixture(scope="session")
def alice_pgpy() -> pgpy.PGPKey:
    return _create_test_key("Alice")


@pytest.fixture(scope="session")
def bob_pgpy() -> pgpy.PGPKey:
    return _create_test_key("Bob")


@pytest.fixture(scope="session")
def carol_pgpy() -> pgpy.PGPKey:
    """Unprotected key whose encryption key is a subkey."""
    return _create_test_key("Carol", passphrase=None, with_encryption_subkey=True)


@pytest.fixture(scope="session")
def alice(alice_pgpy: pgpy.PGPKey) -> PgpyPrivateKey:
    return PgpyProvider.load_private_key(str(alice_pgpy))


@pytest.fixture(scope="session")
def bob(bob_pgpy: pgpy.PGPKey) -> PgpyPrivateKey:
    return PgpyProvider.load_private_key(str(bob_pgpy))


@pytest.fixture(scope="session")
def carol(carol_pgpy: pgpy.PGPKey) -> PgpyPrivateKey:
    return PgpyProvider.load_private_key(str(carol_pgpy))
