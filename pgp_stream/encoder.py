"""
Message encoder.

Streams a source through a stack of writable layers, outermost first:

    armor -> encrypted data -> compressed data -> [one-pass signature]
          -> literal data -> [signature]

Every byte read from the source goes into the literal data packet and, when
signing, into the signature hash. Layers are closed innermost first so each
trailer lands inside its enclosing framing.
"""

import io
from contextlib import ExitStack
from datetime import datetime
from threading import Event
from typing import BinaryIO, Protocol

import structlog

from pgp_stream.config import EncodeOptions
from pgp_stream.core.secure_bytes import SecureBytes, as_passphrase
from pgp_stream.core.streams import CountingWriter, GuardedReader, check_canceled
from pgp_stream.crypto.pgpy_backend import PgpyProvider
from pgp_stream.crypto.protocol import CryptoProvider, PrivateKeyHandle, PublicKeyHandle
from pgp_stream.crypto.session_key import encode_pkesk_body
from pgp_stream.exceptions import ConfigurationError
from pgp_stream.models.crypto import SessionKey
from pgp_stream.models.message import EncodeSummary, ProcessingMode
from pgp_stream.models.packets import PacketTag
from pgp_stream.packets.armor import ArmorWriter
from pgp_stream.packets.compression import CompressionWriter
from pgp_stream.packets.encrypted import EncryptionWriter
from pgp_stream.packets.header import encode_packet, encode_timestamp
from pgp_stream.packets.literal import LiteralDataWriter
from pgp_stream.packets.signature import SignatureGenerator

logger = structlog.get_logger(__name__)


class _Layer(Protocol):
    def write(self, data: bytes) -> int: ...

    def close(self) -> None: ...

    def discard(self) -> None: ...


class _OutputPipeline:
    """
    Ordered stack of writable layers.

    finish() closes layers innermost first; abort() drops every open layer
    without writing trailers.
    """

    def __init__(self, sink: CountingWriter) -> None:
        self._sink = sink
        self._layers: list[_Layer] = []

    @property
    def top(self) -> _Layer | CountingWriter:
        return self._layers[-1] if self._layers else self._sink

    def push(self, layer: _Layer) -> _Layer:
        self._layers.append(layer)
        return layer

    def close_top(self) -> None:
        self._layers.pop().close()

    def finish(self) -> None:
        while self._layers:
            self.close_top()

    def abort(self) -> None:
        while self._layers:
            self._layers.pop().discard()


class MessageEncoder:
    """
    Turns a byte stream into a signed and/or encrypted OpenPGP message.

    Example:
        ```python
        encoder = MessageEncoder()
        with open("report.pdf", "rb") as src, open("report.asc", "wb") as dst:
            encoder.encode(
                src,
                dst,
                ProcessingMode.SIGN_AND_ENCRYPT,
                recipient_key=recipient,
                signer_key=signer,
                passphrase="secret",
                filename="report.pdf",
            )
        ```
    """

    def __init__(
        self,
        provider: CryptoProvider | None = None,
        options: EncodeOptions | None = None,
    ) -> None:
        """
        Args:
            provider: Crypto provider, a PgpyProvider by default.
            options: Encoding options.
        """
        self._provider = provider or PgpyProvider()
        self._options = options or EncodeOptions()

    @property
    def options(self) -> EncodeOptions:
        return self._options

    def encode(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        mode: ProcessingMode,
        *,
        recipient_key: PublicKeyHandle | None = None,
        signer_key: PrivateKeyHandle | None = None,
        passphrase: str | bytes | SecureBytes | None = None,
        filename: str = "",
        modified: datetime | None = None,
        cancel: Event | None = None,
    ) -> EncodeSummary:
        """
        Encode ``source`` into ``sink``.

        Args:
            source: Readable plaintext stream, read once.
            sink: Writable destination of the message.
            mode: Which layers to add.
            recipient_key: Public key to encrypt to.
            signer_key: Private key to sign with.
            passphrase: Passphrase of the signer key.
            filename: Name stored in the literal data packet.
            modified: Modification time stored in the literal data packet.
            cancel: Cooperative cancellation signal, checked between chunks.

        Returns:
            Summary of the operation.

        Raises:
            ConfigurationError: If a key or passphrase the mode needs is missing,
                or ``modified`` does not fit an OpenPGP timestamp.
            KeyUnlockError: If the passphrase does not unlock the signer key.
            OperationCanceledError: If ``cancel`` was set.
            IOFailureError: If reading the source or writing the sink failed.
        """
        self._check_keys(mode, recipient_key, signer_key, passphrase)
        self._check_modified(modified)
        secret, owned = as_passphrase(passphrase)
        try:
            with ExitStack() as stack:
                if mode.requires_signer:
                    stack.enter_context(self._provider.unlock(signer_key, secret))
                return self._encode(
                    GuardedReader(source),
                    CountingWriter(sink),
                    mode,
                    recipient_key=recipient_key if mode.requires_recipient else None,
                    signer_key=signer_key if mode.requires_signer else None,
                    filename=filename,
                    modified=modified,
                    cancel=cancel,
                )
        finally:
            if owned:
                secret.clear()

    def _encode(
        self,
        source: GuardedReader,
        sink: CountingWriter,
        mode: ProcessingMode,
        *,
        recipient_key: PublicKeyHandle | None,
        signer_key: PrivateKeyHandle | None,
        filename: str,
        modified: datetime | None,
        cancel: Event | None,
    ) -> EncodeSummary:
        options = self._options
        session_key: SessionKey | None = None
        pkesk_packet = b""
        generator = None

        # everything that can fail on keys or algorithms happens before output
        if recipient_key is not None:
            session_key = self._provider.generate_session_key(options.symmetric_algorithm)
            pkesk = self._provider.encrypt_session_key(recipient_key, session_key)
            pkesk_packet = encode_packet(PacketTag.PUBLIC_KEY_ENCRYPTED_SESSION_KEY, encode_pkesk_body(pkesk))
            logger.debug("Encrypted session key", key_id=pkesk.key_id_hex, algorithm=session_key.algorithm.name)
        if signer_key is not None:
            generator = SignatureGenerator(self._provider, signer_key, options.hash_algorithm)

        pipeline = _OutputPipeline(sink)
        try:
            if options.armored:
                pipeline.push(ArmorWriter(sink, options.armor_headers))
            if session_key is not None:
                pipeline.top.write(pkesk_packet)
                encryptor = self._provider.encryptor(
                    session_key, integrity_protected=options.with_integrity_check
                )
                pipeline.push(EncryptionWriter(pipeline.top, encryptor, chunk_size=options.partial_body_size))
            compression = pipeline.push(
                CompressionWriter(
                    pipeline.top,
                    options.compression_algorithm,
                    level=options.compression_level,
                    chunk_size=options.partial_body_size,
                )
            )
            if generator is not None:
                compression.write(generator.one_pass_packet())
            literal = pipeline.push(
                LiteralDataWriter(
                    compression,
                    filename=filename,
                    modified=modified,
                    chunk_size=options.partial_body_size,
                )
            )

            self._copy(source, literal, generator, cancel)

            pipeline.close_top()
            if generator is not None:
                compression.write(generator.generate())
            pipeline.finish()
        except BaseException:
            pipeline.abort()
            raise
        finally:
            if session_key is not None:
                session_key.clear()

        summary = EncodeSummary(
            mode=mode,
            bytes_read=source.count,
            bytes_written=sink.count,
            symmetric_algorithm=options.symmetric_algorithm if recipient_key is not None else None,
            recipient_key_id=recipient_key.encryption_key.key_id_hex if recipient_key is not None else None,
            signer_key_id=generator.key.key_id_hex if generator is not None else None,
        )
        logger.info(
            "Encoded message",
            mode=mode.value,
            bytes_read=summary.bytes_read,
            bytes_written=summary.bytes_written,
            armored=options.armored,
        )
        return summary

    def _copy(
        self,
        source: GuardedReader,
        literal: _Layer,
        generator: SignatureGenerator | None,
        cancel: Event | None,
    ) -> None:
        while True:
            check_canceled(cancel)
            chunk = source.read(self._options.chunk_size)
            if not chunk:
                return
            if generator is not None:
                generator.update(chunk)
            literal.write(chunk)

    @staticmethod
    def _check_keys(
        mode: ProcessingMode,
        recipient_key: PublicKeyHandle | None,
        signer_key: PrivateKeyHandle | None,
        passphrase: object,
    ) -> None:
        if mode.requires_recipient and recipient_key is None:
            msg = f"{mode.name} requires a recipient key"
            raise ConfigurationError(msg, mode=mode.value)
        if not mode.requires_signer:
            return
        if signer_key is None:
            msg = f"{mode.name} requires a signer key"
            raise ConfigurationError(msg, mode=mode.value)
        if signer_key.is_protected and passphrase is None:
            msg = "Signer key is passphrase protected but no passphrase was given"
            raise ConfigurationError(msg, mode=mode.value, key_id=signer_key.key_id)

    @staticmethod
    def _check_modified(modified: datetime | None) -> None:
        if modified is None:
            return
        try:
            encode_timestamp(modified)
        except ValueError as exc:
            raise ConfigurationError(str(exc), modified=modified.isoformat()) from exc


def encode(
    data: bytes | BinaryIO,
    mode: ProcessingMode,
    *,
    options: EncodeOptions | None = None,
    provider: CryptoProvider | None = None,
    **kwargs: object,
) -> bytes:
    """
    Encode ``data`` in memory and return the message.

    Keyword arguments are passed to MessageEncoder.encode().
    """
    source = io.BytesIO(data) if isinstance(data, bytes | bytearray) else data
    sink = io.BytesIO()
    MessageEncoder(provider, options).encode(source, sink, mode, **kwargs)
    return sink.getvalue()
