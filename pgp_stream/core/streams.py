"""Caller-facing stream wrappers and the cancellation check."""

from threading import Event
from typing import BinaryIO

from pgp_stream.exceptions import IOFailureError, OperationCanceledError


def check_canceled(cancel: Event | None) -> None:
    """
    Raises:
        OperationCanceledError: If the cancellation signal is set.
    """
    if cancel is not None and cancel.is_set():
        raise OperationCanceledError()


class GuardedReader:
    """
    Source stream whose OSErrors surface as IOFailureError.

    Also counts the bytes read through it.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self.count = 0

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        try:
            data = self._stream.read(size)
        except OSError as e:
            msg = f"Failed to read input: {e}"
            raise IOFailureError(msg) from e
        data = data or b""
        self.count += len(data)
        return data

    def readline(self, limit: int = -1) -> bytes:
        try:
            line = self._stream.readline(limit)
        except OSError as e:
            msg = f"Failed to read input: {e}"
            raise IOFailureError(msg) from e
        self.count += len(line)
        return line


class CountingWriter:
    """Sink wrapper that counts bytes written and maps OSError to IOFailureError."""

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink
        self.count = 0

    def write(self, data: bytes) -> int:
        if not data:
            return 0
        try:
            self._sink.write(data)
        except OSError as e:
            msg = f"Failed to write output: {e}"
            raise IOFailureError(msg, written=self.count) from e
        self.count += len(data)
        return len(data)
