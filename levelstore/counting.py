"""Storage wrapper that counts bytes read and written."""

from __future__ import annotations

import io
import threading

from .storage import FileDesc, FileType, Storage, StorageLock


class _Counter:
    def __init__(self) -> None:
        self._mu = threading.Lock()
        self.value = 0

    def add(self, n: int) -> None:
        with self._mu:
            self.value += n


class CountingReader:
    """Reader that adds every byte it returns to its storage's read count."""

    def __init__(self, reader, counter: _Counter) -> None:
        self._reader = reader
        self._counter = counter

    def read(self, size: int = -1) -> bytes:
        data = self._reader.read(size)
        self._counter.add(len(data))
        return data

    def read_at(self, size: int, offset: int) -> bytes:
        data = self._reader.read_at(size, offset)
        self._counter.add(len(data))
        return data

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._reader.seek(offset, whence)

    def close(self) -> None:
        self._reader.close()

    def __enter__(self) -> "CountingReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not getattr(self._reader, "closed", False):
            self.close()


class CountingWriter:
    """Writer that adds every byte it writes to its storage's write count."""

    def __init__(self, writer, counter: _Counter) -> None:
        self._writer = writer
        self._counter = counter

    def write(self, data: bytes) -> int:
        n = self._writer.write(data)
        self._counter.add(n)
        return n

    def sync(self) -> None:
        self._writer.sync()

    def close(self) -> None:
        self._writer.close()

    def __enter__(self) -> "CountingWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not getattr(self._writer, "closed", False):
            self.close()


class CountingStorage(Storage):
    """Wraps a storage and counts the bytes moved through its files."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self._read = _Counter()
        self._write = _Counter()

    def lock(self) -> StorageLock:
        return self.storage.lock()

    def log(self, message: str) -> None:
        self.storage.log(message)

    def set_meta(self, fd: FileDesc) -> None:
        self.storage.set_meta(fd)

    def get_meta(self) -> FileDesc:
        return self.storage.get_meta()

    def list(self, file_type: FileType) -> list[FileDesc]:
        return self.storage.list(file_type)

    def open(self, fd: FileDesc) -> CountingReader:
        return CountingReader(self.storage.open(fd), self._read)

    def create(self, fd: FileDesc) -> CountingWriter:
        return CountingWriter(self.storage.create(fd), self._write)

    def remove(self, fd: FileDesc) -> None:
        self.storage.remove(fd)

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        self.storage.rename(old_fd, new_fd)

    def close(self) -> None:
        self.storage.close()

    def reads(self) -> int:
        """Total number of bytes read so far."""
        return self._read.value

    def writes(self) -> int:
        """Total number of bytes written so far."""
        return self._write.value