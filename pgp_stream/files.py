"""
File boundary.

A file is a name, a declared content type and a way to open its bytes.
Encoding renames the file to reflect its new representation and declares a
PGP content type; decoding keeps both as they are.

Example:
    ```python
    source = SourceFile.from_path("report.pdf")
    encrypted = to_encrypted(source, recipient)
    assert encrypted.name == "report.asc"
    with open(encrypted.name, "wb") as out:
        encrypted.copy_to(out)
    ```
"""

import io
import mimetypes
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from threading import Event
from typing import BinaryIO

from pgp_stream.config import DecodeOptions, EncodeOptions
from pgp_stream.core.secure_bytes import SecureBytes
from pgp_stream.crypto.protocol import CryptoProvider, PrivateKeyHandle, PublicKeyHandle
from pgp_stream.decoder import MessageDecoder
from pgp_stream.encoder import MessageEncoder
from pgp_stream.models.message import DecodeResult, EncodeSummary, ProcessingMode

CONTENT_TYPE_ENCRYPTED = "application/pgp-encrypted"
CONTENT_TYPE_SIGNED = "application/pgp-signature"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _change_extension(name: str, extension: str) -> str:
    # a leading dot starts the extension too, so ".bashrc" becomes ".asc"
    stem, dot, _ = name.rpartition(".")
    return f"{stem if dot else name}.{extension}"


@dataclass(frozen=True, kw_only=True)
class SourceFile:
    """
    Attributes:
        name: File name.
        content_type: Declared MIME type.
        opener: Returns a fresh readable stream over the content.
    """

    name: str
    content_type: str = DEFAULT_CONTENT_TYPE
    opener: Callable[[], BinaryIO]

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> "SourceFile":
        """File on disk; the content type is guessed from the name when not given."""
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content_type=content_type or guessed or DEFAULT_CONTENT_TYPE,
            opener=lambda: path.open("rb"),
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> "SourceFile":
        return cls(name=name, content_type=content_type, opener=lambda: io.BytesIO(data))

    def open(self) -> BinaryIO:
        return self.opener()

    def read(self) -> bytes:
        with self.open() as stream:
            return stream.read()


class EncodedFile:
    """The signed and/or encrypted representation of a source file."""

    def __init__(
        self,
        source: SourceFile,
        mode: ProcessingMode,
        *,
        recipient_key: PublicKeyHandle | None = None,
        signer_key: PrivateKeyHandle | None = None,
        passphrase: str | bytes | SecureBytes | None = None,
        options: EncodeOptions | None = None,
        provider: CryptoProvider | None = None,
    ) -> None:
        self._source = source
        self._mode = mode
        self._recipient_key = recipient_key
        self._signer_key = signer_key
        self._passphrase = passphrase
        self._encoder = MessageEncoder(provider, options)

    @property
    def source(self) -> SourceFile:
        return self._source

    @property
    def mode(self) -> ProcessingMode:
        return self._mode

    @property
    def name(self) -> str:
        """Source name with its extension replaced by ``asc`` or ``gpg``."""
        return _change_extension(self._source.name, "asc" if self._encoder.options.armored else "gpg")

    @property
    def content_type(self) -> str:
        if self._mode.requires_recipient:
            return CONTENT_TYPE_ENCRYPTED
        return CONTENT_TYPE_SIGNED

    def copy_to(self, sink: BinaryIO, *, cancel: Event | None = None) -> EncodeSummary:
        with self._source.open() as stream:
            return self._encoder.encode(
                stream,
                sink,
                self._mode,
                recipient_key=self._recipient_key,
                signer_key=self._signer_key,
                passphrase=self._passphrase,
                filename=self._source.name,
                cancel=cancel,
            )

    def open(self) -> BinaryIO:
        """Encode into memory and return a stream positioned at the start."""
        sink = io.BytesIO()
        self.copy_to(sink)
        sink.seek(0)
        return sink

    def read(self) -> bytes:
        sink = io.BytesIO()
        self.copy_to(sink)
        return sink.getvalue()


class DecodedFile:
    """
    The plaintext of an encoded file.

    Name and content type are passed through unchanged; renaming a decoded
    file is the caller's business.
    """

    def __init__(
        self,
        source: SourceFile,
        *,
        recipient_key: PrivateKeyHandle | None = None,
        passphrase: str | bytes | SecureBytes | None = None,
        signer_key: PublicKeyHandle | None = None,
        options: DecodeOptions | None = None,
        provider: CryptoProvider | None = None,
    ) -> None:
        self._source = source
        self._recipient_key = recipient_key
        self._passphrase = passphrase
        self._signer_key = signer_key
        self._decoder = MessageDecoder(provider, options)

    @property
    def name(self) -> str:
        return self._source.name

    @property
    def content_type(self) -> str:
        return self._source.content_type

    @property
    def can_decrypt(self) -> bool:
        return self._recipient_key is not None

    @property
    def can_verify(self) -> bool:
        return self._signer_key is not None

    def copy_to(self, sink: BinaryIO, *, cancel: Event | None = None) -> DecodeResult:
        """
        Decode into ``sink``.

        On failure the bytes already written to ``sink`` are unauthenticated
        and must be discarded.
        """
        with self._source.open() as stream:
            return self._decoder.decode(
                stream,
                sink,
                recipient_key=self._recipient_key,
                passphrase=self._passphrase,
                signer_key=self._signer_key,
                cancel=cancel,
            )

    def read(self) -> tuple[bytes, DecodeResult]:
        sink = io.BytesIO()
        result = self.copy_to(sink)
        return sink.getvalue(), result


def as_source(file: EncodedFile) -> SourceFile:
    """Treat an encoded file as the source of a decode."""
    return SourceFile(name=file.name, content_type=file.content_type, opener=file.open)


def to_encrypted(source: SourceFile, recipient_key: PublicKeyHandle, **kwargs) -> EncodedFile:
    return EncodedFile(source, ProcessingMode.ENCRYPT, recipient_key=recipient_key, **kwargs)


def to_signed(
    source: SourceFile,
    signer_key: PrivateKeyHandle,
    passphrase: str | bytes | SecureBytes | None = None,
    **kwargs,
) -> EncodedFile:
    return EncodedFile(
        source, ProcessingMode.SIGN, signer_key=signer_key, passphrase=passphrase, **kwargs
    )


def to_signed_and_encrypted(
    source: SourceFile,
    recipient_key: PublicKeyHandle,
    signer_key: PrivateKeyHandle,
    passphrase: str | bytes | SecureBytes | None = None,
    **kwargs,
) -> EncodedFile:
    return EncodedFile(
        source,
        ProcessingMode.SIGN_AND_ENCRYPT,
        recipient_key=recipient_key,
        signer_key=signer_key,
        passphrase=passphrase,
        **kwargs,
    )


def to_decrypted(
    source: SourceFile,
    recipient_key: PrivateKeyHandle,
    passphrase: str | bytes | SecureBytes | None = None,
    **kwargs,
) -> DecodedFile:
    return DecodedFile(source, recipient_key=recipient_key, passphrase=passphrase, **kwargs)


def to_verified(source: SourceFile, signer_key: PublicKeyHandle, **kwargs) -> DecodedFile:
    return DecodedFile(source, signer_key=signer_key, **kwargs)


def to_verified_and_decrypted(
    source: SourceFile,
    signer_key: PublicKeyHandle,
    recipient_key: PrivateKeyHandle,
    passphrase: str | bytes | SecureBytes | None = None,
    **kwargs,
) -> DecodedFile:
    return DecodedFile(
        source,
        recipient_key=recipient_key,
        passphrase=passphrase,
        signer_key=signer_key,
        **kwargs,
    )
