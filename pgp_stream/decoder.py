"""
Message decoder.

Walks the packet sequence of a message in stream order and undoes each layer
as it is met: encrypted data is decrypted and compressed data decompressed,
and each of those payloads is walked as a nested sequence. Literal data goes
to the sink and, in lockstep, to every signature verifier in flight.
"""

import io
from contextlib import ExitStack
from dataclasses import dataclass, field
from threading import Event
from typing import BinaryIO, assert_never

import structlog

from pgp_stream.config import DecodeOptions
from pgp_stream.core.secure_bytes import SecureBytes, as_passphrase
from pgp_stream.core.streams import CountingWriter, GuardedReader, check_canceled
from pgp_stream.crypto.pgpy_backend import PgpyProvider
from pgp_stream.crypto.protocol import CryptoProvider, PrivateKeyHandle, PublicKeyHandle
from pgp_stream.exceptions import (
    ConfigurationError,
    IntegrityError,
    IOFailureError,
    KeyMismatchError,
    MalformedMessageError,
    OperationCanceledError,
    PgpStreamError,
    SessionKeyError,
    SignatureKeyNotFoundError,
    SignatureVerificationError,
    UnsupportedPacketTypeError,
)
from pgp_stream.models.crypto import HashAlgorithm, KeyInfo, SessionKey, SignatureType
from pgp_stream.models.message import DecodeResult, VerifiedSignature
from pgp_stream.models.packets import (
    WILDCARD_KEY_ID,
    CompressedDataPacket,
    EncryptedDataPacket,
    LiteralDataPacket,
    MarkerPacket,
    OnePassSignaturePacket,
    OpaquePacket,
    PKESKPacket,
    SignaturePacket,
    describe_tag,
)
from pgp_stream.packets.armor import open_message_stream
from pgp_stream.packets.compression import DecompressionReader
from pgp_stream.packets.encrypted import DecryptionReader
from pgp_stream.packets.parser import PacketStream
from pgp_stream.packets.signature import SignatureVerifier

logger = structlog.get_logger(__name__)


@dataclass
class PendingSignature:
    """
    A signature verification in flight.

    Attributes:
        key: The signing (sub)key.
        signature_type: Type announced by the one-pass header or signature.
        verifier: Hash accumulator fed with the literal data.
        leading: The signature packet itself when it came before the data;
            None while waiting for the trailing signature of a one-pass header.
    """

    key: KeyInfo
    signature_type: SignatureType
    verifier: SignatureVerifier
    leading: SignaturePacket | None = None


@dataclass
class DecodeContext:
    """State passed down the walk of nested packet sequences."""

    sink: CountingWriter
    recipient_key: PrivateKeyHandle | None
    signer_key: PublicKeyHandle | None
    cancel: Event | None
    pending: list[PendingSignature] = field(default_factory=list)
    result: DecodeResult = field(default_factory=DecodeResult)
    literal_seen: bool = False


class MessageDecoder:
    """
    Decrypts and verifies an OpenPGP message, writing its plaintext to a sink.

    Output is written as it is produced. When decode() raises, whatever was
    already written is unauthenticated and must be discarded by the caller.

    Example:
        ```python
        decoder = MessageDecoder()
        with open("report.asc", "rb") as src, open("report.pdf", "wb") as dst:
            result = decoder.decode(
                src, dst, recipient_key=key, passphrase="secret", signer_key=sender
            )
        assert result.is_verified
        ```
    """

    def __init__(
        self,
        provider: CryptoProvider | None = None,
        options: DecodeOptions | None = None,
    ) -> None:
        """
        Args:
            provider: Crypto provider, a PgpyProvider by default.
            options: Decoding options.
        """
        self._provider = provider or PgpyProvider()
        self._options = options or DecodeOptions()

    @property
    def options(self) -> DecodeOptions:
        return self._options

    def decode(
        self,
        message: BinaryIO,
        sink: BinaryIO,
        *,
        recipient_key: PrivateKeyHandle | None = None,
        passphrase: str | bytes | SecureBytes | None = None,
        signer_key: PublicKeyHandle | None = None,
        cancel: Event | None = None,
    ) -> DecodeResult:
        """
        Decode ``message`` into ``sink``.

        Args:
            message: Readable message stream, armored or binary.
            sink: Writable destination of the plaintext.
            recipient_key: Private key for encrypted messages.
            passphrase: Passphrase of the recipient key.
            signer_key: Public key to verify signatures with.
            cancel: Cooperative cancellation signal, checked between chunks.

        Returns:
            What was found and verified.

        Raises:
            ConfigurationError: If the message needs a key that was not given.
            KeyMismatchError: If no session key is addressed to ``recipient_key``.
            IntegrityError: If the encrypted data fails its integrity check.
            SignatureKeyNotFoundError: If a signature was made by another key.
            SignatureVerificationError: If a signature does not verify.
            UnsupportedPacketTypeError: If a packet is outside the message vocabulary.
            MalformedMessageError: If the message is otherwise not well formed.
            OperationCanceledError: If ``cancel`` was set.
            IOFailureError: If reading the message or writing the sink failed.
        """
        if recipient_key is not None and recipient_key.is_protected and passphrase is None:
            msg = "Recipient key is passphrase protected but no passphrase was given"
            raise ConfigurationError(msg, key_id=recipient_key.key_id)

        secret, owned = as_passphrase(passphrase)
        try:
            with ExitStack() as stack:
                if recipient_key is not None:
                    stack.enter_context(self._provider.unlock(recipient_key, secret))
                context = DecodeContext(
                    sink=CountingWriter(sink),
                    recipient_key=recipient_key,
                    signer_key=signer_key,
                    cancel=cancel,
                )
                source = GuardedReader(message)
                stream, armored = open_message_stream(source)
                self._walk(stream, context, depth=0)
        finally:
            if owned:
                secret.clear()

        result = context.result
        if not context.literal_seen:
            msg = "Message contains no literal data"
            raise MalformedMessageError(msg)
        if self._options.require_signature and not result.signatures:
            msg = "Message is not signed"
            raise SignatureVerificationError(msg)
        logger.info(
            "Decoded message",
            bytes_read=source.count,
            bytes_written=result.length,
            armored=armored,
            encrypted=result.encrypted,
            signers=result.signer_key_ids,
        )
        return result

    def _walk(self, stream: BinaryIO, context: DecodeContext, depth: int) -> None:
        if depth > self._options.max_depth:
            msg = f"Message nesting exceeds {self._options.max_depth} layers"
            raise MalformedMessageError(msg)

        session_keys: list[PKESKPacket] = []
        first_pending = len(context.pending)
        for packet in PacketStream(stream, chunk_size=self._options.chunk_size):
            check_canceled(context.cancel)
            match packet:
                case PKESKPacket():
                    session_keys.append(packet)
                case EncryptedDataPacket():
                    self._decrypt(packet, session_keys, context, depth)
                    session_keys = []
                case CompressedDataPacket():
                    logger.debug("Decompressing", algorithm=packet.algorithm.name)
                    reader = DecompressionReader(
                        packet.body, packet.algorithm, chunk_size=self._options.chunk_size
                    )
                    self._walk(reader, context, depth + 1)
                case OnePassSignaturePacket():
                    context.pending.append(self._one_pass(packet, context))
                case SignaturePacket():
                    self._signature(packet, context, first_pending)
                case LiteralDataPacket():
                    self._literal(packet, context)
                case MarkerPacket():
                    logger.warning("Skipping marker packet")
                case OpaquePacket(tag=tag):
                    msg = f"Unsupported packet type: {describe_tag(tag)}"
                    raise UnsupportedPacketTypeError(msg, tag=tag)
                case _:
                    assert_never(packet)

        self._finish_sequence(context, first_pending)

    def _decrypt(
        self,
        packet: EncryptedDataPacket,
        session_keys: list[PKESKPacket],
        context: DecodeContext,
        depth: int,
    ) -> None:
        if context.recipient_key is None:
            msg = "Message is encrypted but no recipient key was given"
            raise ConfigurationError(msg)
        session_key = self._session_key(session_keys, context.recipient_key)
        try:
            if not packet.integrity_protected:
                logger.warning("Encrypted data has no integrity protection")
            decryptor = self._provider.decryptor(
                session_key, integrity_protected=packet.integrity_protected
            )
            reader = DecryptionReader(packet.body, decryptor, chunk_size=self._options.chunk_size)
            try:
                self._walk(reader, context, depth + 1)
            except (OperationCanceledError, IOFailureError):
                raise
            except PgpStreamError as e:
                if packet.integrity_protected:
                    self._raise_integrity_failure(reader, e)
                raise
            reader.verify()
        finally:
            session_key.clear()
        context.result.encrypted = True
        context.result.integrity_protected = packet.integrity_protected

    @staticmethod
    def _raise_integrity_failure(reader: DecryptionReader, error: PgpStreamError) -> None:
        # a failed MDC means the inner error is a symptom of tampering
        try:
            reader.verify()
        except IntegrityError as integrity:
            if integrity is not error:
                raise integrity from error

    def _session_key(self, session_keys: list[PKESKPacket], recipient: PrivateKeyHandle) -> SessionKey:
        for pkesk in session_keys:
            if not pkesk.is_wildcard and recipient.find(pkesk.key_id) is not None:
                logger.debug("Found session key", key_id=pkesk.key_id_hex)
                return self._provider.decrypt_session_key(recipient, pkesk)
        for pkesk in session_keys:
            if not pkesk.is_wildcard:
                continue
            try:
                return self._provider.decrypt_session_key(recipient, pkesk)
            except SessionKeyError:
                logger.debug("Wildcard session key did not decrypt")
        msg = "No session key is addressed to the given recipient key"
        raise KeyMismatchError(msg, key_ids=tuple(pkesk.key_id_hex for pkesk in session_keys))

    def _one_pass(self, packet: OnePassSignaturePacket, context: DecodeContext) -> PendingSignature:
        key = self._signing_key(packet.key_id, context)
        logger.debug("One-pass signature", key_id=key.key_id_hex, hash=packet.hash_algorithm.name)
        return PendingSignature(
            key=key,
            signature_type=packet.signature_type,
            verifier=self._verifier(context, key, packet.hash_algorithm, packet.signature_type),
        )

    def _signature(self, packet: SignaturePacket, context: DecodeContext, first_pending: int) -> None:
        waiting = [entry for entry in context.pending if entry.leading is None]
        if not waiting and not context.literal_seen:
            # signature ahead of the data it covers
            key = self._signing_key(packet.key_id, context)
            context.pending.append(
                PendingSignature(
                    key=key,
                    signature_type=packet.signature_type,
                    verifier=self._verifier(context, key, packet.hash_algorithm, packet.signature_type),
                    leading=packet,
                )
            )
            return

        for index in range(len(context.pending) - 1, first_pending - 1, -1):
            entry = context.pending[index]
            if entry.leading is None and self._matches(entry.key, packet.key_id):
                del context.pending[index]
                self._verify(entry, packet, context)
                return
        msg = "Signature does not match any one-pass signature"
        raise SignatureVerificationError(msg, key_id=packet.key_id_hex)

    def _literal(self, packet: LiteralDataPacket, context: DecodeContext) -> None:
        if context.literal_seen:
            msg = "Message contains more than one literal data packet"
            raise MalformedMessageError(msg)
        context.literal_seen = True
        result = context.result
        result.filename = packet.filename
        result.modified = packet.modified
        result.format = packet.format
        logger.debug("Literal data", format=packet.format, verifiers=len(context.pending))

        while True:
            check_canceled(context.cancel)
            chunk = packet.body.read(self._options.chunk_size)
            if not chunk:
                return
            for entry in context.pending:
                entry.verifier.update(chunk)
            context.sink.write(chunk)
            result.length += len(chunk)

    def _finish_sequence(self, context: DecodeContext, first_pending: int) -> None:
        remaining = context.pending[first_pending:]
        del context.pending[first_pending:]
        for entry in remaining:
            if entry.leading is None:
                msg = "One-pass signature has no trailing signature"
                raise SignatureVerificationError(msg, key_id=entry.key.key_id_hex)
            self._verify(entry, entry.leading, context)

    def _verify(self, entry: PendingSignature, packet: SignaturePacket, context: DecodeContext) -> None:
        if packet.signature_type != entry.signature_type or not entry.verifier.verify(packet):
            msg = "Signature verification failed"
            raise SignatureVerificationError(msg, key_id=entry.key.key_id_hex)
        logger.debug("Signature verified", key_id=entry.key.key_id_hex)
        context.result.signatures.append(
            VerifiedSignature(
                key_id=entry.key.key_id_hex,
                hash_algorithm=packet.hash_algorithm,
                signature_type=packet.signature_type,
                created=packet.created,
            )
        )

    def _verifier(
        self,
        context: DecodeContext,
        key: KeyInfo,
        hash_algorithm: HashAlgorithm,
        signature_type: SignatureType,
    ) -> SignatureVerifier:
        return SignatureVerifier(self._provider, context.signer_key, key, hash_algorithm, signature_type)

    @staticmethod
    def _signing_key(key_id: bytes, context: DecodeContext) -> KeyInfo:
        signer = context.signer_key
        if signer is None:
            msg = "Message is signed but no signer key was given"
            raise SignatureKeyNotFoundError(msg, key_id=key_id.hex().upper())
        key = signer.keys[0] if key_id == WILDCARD_KEY_ID else signer.find(key_id)
        if key is None:
            msg = f"Message is signed by {key_id.hex().upper()}, not by the given signer key"
            raise SignatureKeyNotFoundError(msg, key_id=key_id.hex().upper())
        return key

    @staticmethod
    def _matches(key: KeyInfo, key_id: bytes) -> bool:
        return key_id == WILDCARD_KEY_ID or key.key_id == key_id


def decode(
    message: bytes | BinaryIO,
    *,
    options: DecodeOptions | None = None,
    provider: CryptoProvider | None = None,
    **kwargs: object,
) -> tuple[bytes, DecodeResult]:
    """
    Decode ``message`` in memory.

    Keyword arguments are passed to MessageDecoder.decode().

    Returns:
        Tuple of (plaintext, result).
    """
    source = io.BytesIO(message) if isinstance(message, bytes | bytearray) else message
    sink = io.BytesIO()
    result = MessageDecoder(provider, options).decode(source, sink, **kwargs)
    return sink.getvalue(), result
