"""Stream helpers for duplicating loader output without holding it in memory."""

import io
import logging
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union
from urllib.parse import quote, unquote

from fcache.exceptions import ScratchFileError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ScratchStream(io.RawIOBase):
    """Disk-backed scratch buffer that deletes its file when closed.

    Written once, rewound, then handed to the caller as a readable stream.

    Examples:
        >>> scratch = ScratchStream()
        >>> scratch.write(b'hello')
        5
        >>> scratch.rewind()
        >>> scratch.read()
        b'hello'
        >>> scratch.close()  # file is gone
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        try:
            self._file = tempfile.NamedTemporaryFile(
                mode="w+b", prefix="fcache-", suffix=".tmp", dir=directory, delete=False
            )
        except OSError as e:
            raise ScratchFileError(f"Cannot create scratch file: {e}") from e
        self.path = Path(self._file.name)

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        return self._file.readinto(b)

    def write(self, b) -> int:
        return self._file.write(b)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()

    def rewind(self) -> None:
        """Flush pending writes and move the read cursor to the start."""
        self._file.flush()
        self._file.seek(0)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._file.close()
        finally:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            super().close()


class CancellableReader(io.RawIOBase):
    """Readable stream over src that runs `check` before every read.

    `check` raises to abort the transfer. Closing the reader closes src.
    """

    def __init__(self, src: BinaryIO, check: Optional[Callable[[], None]] = None):
        self._src = src
        self._check = check

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._check is not None:
            self._check()
        data = self._src.read(len(b))
        n = len(data)
        b[:n] = data
        return n

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._src.close()
        finally:
            super().close()


class TeeReader(io.RawIOBase):
    """Readable stream that copies everything read from src into sink.

    Closing the tee does not close src; the owner of src closes it. A failed
    write to the sink is recorded in `error` and re-raised to the reader.
    `check`, if given, runs before every read and raises to abort.
    """

    def __init__(
        self, src: BinaryIO, sink: BinaryIO, check: Optional[Callable[[], None]] = None
    ):
        self._src = src
        self._sink = sink
        self._check = check
        self.error: Optional[Exception] = None

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._check is not None:
            self._check()
        data = self._src.read(len(b))
        if not data:
            return 0
        try:
            self._sink.write(data)
        except OSError as e:
            self.error = e
            raise ScratchFileError(f"Cannot write scratch file: {e}") from e
        n = len(data)
        b[:n] = data
        return n

    def drain(self) -> int:
        """Copy whatever the reader left unread into the sink.

        Returns:
            Number of bytes copied
        """
        total = 0
        buf = bytearray(CHUNK_SIZE)
        while True:
            n = self.readinto(buf)
            if not n:
                return total
            total += n


def encode_key(key: str) -> str:
    """Make a key safe to use as a single path or header component.

    Examples:
        >>> encode_key('reports/2024 q1.pdf')
        'reports%2F2024%20q1.pdf'
    """
    encoded = quote(key, safe="")
    if encoded in (".", ".."):
        # Would name the directory itself or its parent
        encoded = encoded.replace(".", "%2E")
    return encoded


def decode_key(encoded: str) -> str:
    """Inverse of encode_key."""
    return unquote(encoded)
