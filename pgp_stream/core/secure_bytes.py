"""
Wipeable secrets.

Passphrases and session keys are held in a SecureBytes for exactly one
encode or decode call and wiped on every exit path. Python makes no promise
about copies made elsewhere (``bytes(secret)``, ``secret.decode()``), so
those conversions are only done at the boundary of a library that needs them.
"""

import ctypes
import hmac
import warnings
from collections.abc import Iterator
from typing import Self


def wipe(buffer: bytearray) -> None:
    """Overwrite ``buffer`` with zeros in place."""
    size = len(buffer)
    if not size:
        return
    try:
        view = (ctypes.c_char * size).from_buffer(buffer)
        ctypes.memset(ctypes.addressof(view), 0, size)
        del view
    except (TypeError, ValueError, BufferError) as exc:
        warnings.warn(f"memset unavailable, wiping byte by byte: {exc}", RuntimeWarning)
        buffer[:] = bytes(size)


class SecureBytes:
    """
    Owned copy of secret bytes, wiped by clear(), on context exit and on
    garbage collection.

    Example:
        with SecureBytes.from_string(passphrase) as secret:
            provider.unlock(key, secret)
    """

    __slots__ = ("_buffer", "_wiped")

    def __init__(self, data: bytes | bytearray) -> None:
        self._buffer = bytearray(data)
        self._wiped = False

    @classmethod
    def from_string(cls, text: str, encoding: str = "utf-8") -> Self:
        """Encode ``text``; the intermediate encoding is wiped as well."""
        encoded = bytearray(text, encoding)
        try:
            return cls(encoded)
        finally:
            wipe(encoded)

    @property
    def is_cleared(self) -> bool:
        return self._wiped

    def clear(self) -> None:
        if not self._wiped:
            wipe(self._buffer)
            self._wiped = True

    def decode(self, encoding: str = "utf-8") -> str:
        """Text form for libraries that only take ``str`` passphrases."""
        return self._live().decode(encoding)

    def _live(self) -> bytearray:
        if self._wiped:
            msg = "SecureBytes has been cleared"
            raise RuntimeError(msg)
        return self._buffer

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    def __del__(self) -> None:
        self.clear()

    def __bytes__(self) -> bytes:
        return bytes(self._live())

    def __iter__(self) -> Iterator[int]:
        return iter(self._live())

    def __len__(self) -> int:
        return len(self._buffer)

    def __bool__(self) -> bool:
        return bool(self._buffer) and not self._wiped

    def __eq__(self, other: object) -> bool:
        # constant time, and a wiped secret equals nothing
        if isinstance(other, SecureBytes):
            other_data = None if other._wiped else other._buffer
        elif isinstance(other, bytes | bytearray):
            other_data = other
        else:
            return NotImplemented
        if self._wiped or other_data is None:
            return False
        return hmac.compare_digest(self._buffer, other_data)

    __hash__ = None

    def __repr__(self) -> str:
        state = "cleared" if self._wiped else f"{len(self._buffer)} bytes"
        return f"SecureBytes(<{state}>)"


def as_passphrase(value: str | bytes | SecureBytes | None) -> tuple[SecureBytes, bool]:
    """
    Coerce a caller-supplied passphrase into SecureBytes.

    Returns:
        Tuple of (passphrase, owned). ``owned`` is True when the container was
        created here, in which case the caller clears it when the call ends.
        A caller's own SecureBytes is never cleared on its behalf.
    """
    match value:
        case SecureBytes():
            return value, False
        case None:
            return SecureBytes(b""), True
        case str():
            return SecureBytes.from_string(value), True
    return SecureBytes(value), True
