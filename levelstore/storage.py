"""Storage abstraction: file descriptors, errors and an in-memory backend."""

from __future__ import annotations

import abc
import enum
import io
import threading
from dataclasses import dataclass
from typing import Callable, Optional


class FileType(enum.IntFlag):
    """Kind of file kept in a storage; values may be OR'ed together."""

    MANIFEST = 1
    JOURNAL = 2
    TABLE = 4
    TEMP = 8
    ALL = MANIFEST | JOURNAL | TABLE | TEMP

    def __str__(self) -> str:
        names = {
            FileType.MANIFEST: "manifest",
            FileType.JOURNAL: "journal",
            FileType.TABLE: "table",
            FileType.TEMP: "temp",
        }
        name = names.get(self)
        if name is None:
            return f"<unknown:{int(self)}>"
        return name


@dataclass(frozen=True)
class FileDesc:
    """A file descriptor: the file's type and number."""

    type: FileType = FileType(0)
    num: int = 0

    def zero(self) -> bool:
        """Return True if this is the empty descriptor."""
        return int(self.type) == 0 and self.num == 0

    def __str__(self) -> str:
        if self.type == FileType.MANIFEST:
            return f"MANIFEST-{self.num:06d}"
        if self.type == FileType.JOURNAL:
            return f"{self.num:06d}.log"
        if self.type == FileType.TABLE:
            return f"{self.num:06d}.ldb"
        if self.type == FileType.TEMP:
            return f"{self.num:06d}.tmp"
        return f"{int(self.type):#x}-{self.num}"


_SINGLE_TYPES = (FileType.MANIFEST, FileType.JOURNAL, FileType.TABLE, FileType.TEMP)


def file_desc_ok(fd: FileDesc) -> bool:
    """Return True if fd names exactly one known file type and a non-negative number."""
    return fd.type in _SINGLE_TYPES and fd.num >= 0


class StorageError(Exception):
    """Base class of storage errors."""


class InvalidFileError(StorageError):
    """A file descriptor argument is not valid."""

    def __init__(self, message: str = "storage: invalid file for argument") -> None:
        super().__init__(message)


class LockedError(StorageError):
    """The storage is already locked."""

    def __init__(self, message: str = "storage: already locked") -> None:
        super().__init__(message)


class ClosedError(StorageError):
    """The storage or file is closed."""

    def __init__(self, message: str = "storage: closed") -> None:
        super().__init__(message)


class FileOpenError(StorageError):
    """The file is still open."""

    def __init__(self, message: str = "storage: file still open") -> None:
        super().__init__(message)


class ReadOnlyError(StorageError):
    """The storage is read-only."""

    def __init__(self, message: str = "storage: storage is read-only") -> None:
        super().__init__(message)


class CorruptedError(StorageError):
    """A file's content is corrupted."""

    def __init__(self, err: object, fd: Optional[FileDesc] = None) -> None:
        self.err = err
        self.fd = fd if fd is not None else FileDesc()
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.fd.zero():
            return f"{self.err} [file={self.fd}]"
        return str(self.err)


class StorageLock:
    """A lock held on a storage; release with unlock() or by leaving a with block."""

    def __init__(self, on_unlock: Optional[Callable[["StorageLock"], None]] = None) -> None:
        self._on_unlock = on_unlock

    def unlock(self) -> None:
        """Release the lock. Calling it more than once is harmless."""
        if self._on_unlock is not None:
            self._on_unlock(self)

    def __enter__(self) -> "StorageLock":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unlock()


class Storage(abc.ABC):
    """Interface of a storage; implementations must be safe for concurrent use."""

    @abc.abstractmethod
    def lock(self) -> StorageLock:
        """Lock the storage; further attempts fail until the lock is released."""

    @abc.abstractmethod
    def log(self, message: str) -> None:
        """Record a log message."""

    @abc.abstractmethod
    def set_meta(self, fd: FileDesc) -> None:
        """Atomically store fd as the storage's entry point."""

    @abc.abstractmethod
    def get_meta(self) -> FileDesc:
        """Return the stored entry point; raise FileNotFoundError if there is none."""

    @abc.abstractmethod
    def list(self, file_type: FileType) -> list[FileDesc]:
        """Return descriptors of files matching any of the given types."""

    @abc.abstractmethod
    def open(self, fd: FileDesc):
        """Open a file read-only; raise FileNotFoundError if it does not exist."""

    @abc.abstractmethod
    def create(self, fd: FileDesc):
        """Create or truncate a file and open it for writing."""

    @abc.abstractmethod
    def remove(self, fd: FileDesc) -> None:
        """Remove a file."""

    @abc.abstractmethod
    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        """Rename a file."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the storage."""

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class _MemFile:
    __slots__ = ("data", "open")

    def __init__(self) -> None:
        self.data = bytearray()
        self.open = False


class MemReader:
    """Read-only handle on a snapshot of an in-memory file."""

    def __init__(self, storage: "MemStorage", mem_file: _MemFile) -> None:
        self._storage = storage
        self._file = mem_file
        self._buf = io.BytesIO(bytes(mem_file.data))
        self._data = self._buf.getbuffer()
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes (all remaining if negative)."""
        return self._buf.read(size)

    def read_at(self, size: int, offset: int) -> bytes:
        """Read up to size bytes starting at offset, without moving the position."""
        if offset < 0:
            raise ValueError("negative offset")
        return bytes(self._data[offset:offset + size])

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Move the read position and return it."""
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._buf.tell() + offset
        elif whence == io.SEEK_END:
            target = len(self._data) + offset
        else:
            raise ValueError(f"invalid whence: {whence}")
        if target < 0:
            raise ValueError("negative position")
        return self._buf.seek(target)

    def close(self) -> None:
        """Close the handle; raise ClosedError if already closed."""
        with self._storage._mu:
            if self.closed:
                raise ClosedError()
            self.closed = True
            self._file.open = False

    def __enter__(self) -> "MemReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self.closed:
            self.close()


class MemWriter:
    """Write handle on an in-memory file."""

    def __init__(self, storage: "MemStorage", mem_file: _MemFile) -> None:
        self._storage = storage
        self._file = mem_file
        self.closed = False

    def write(self, data: bytes) -> int:
        """Append data and return the number of bytes written."""
        if self.closed:
            raise ClosedError()
        self._file.data.extend(data)
        return len(data)

    def sync(self) -> None:
        """Nothing to flush for memory-backed files."""

    def close(self) -> None:
        """Close the handle; raise ClosedError if already closed."""
        with self._storage._mu:
            if self.closed:
                raise ClosedError()
            self.closed = True
            self._file.open = False

    def __enter__(self) -> "MemWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self.closed:
            self.close()


class MemStorage(Storage):
    """A memory-backed storage."""

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._slock: Optional[StorageLock] = None
        self._files: dict[FileDesc, _MemFile] = {}
        self._meta = FileDesc()

    def _unlock(self, lock: StorageLock) -> None:
        with self._mu:
            if self._slock is lock:
                self._slock = None

    def lock(self) -> StorageLock:
        with self._mu:
            if self._slock is not None:
                raise LockedError()
            self._slock = StorageLock(self._unlock)
            return self._slock

    def log(self, message: str) -> None:
        pass

    def set_meta(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            self._meta = fd

    def get_meta(self) -> FileDesc:
        with self._mu:
            if self._meta.zero():
                raise FileNotFoundError("no meta stored")
            return self._meta

    def list(self, file_type: FileType) -> list[FileDesc]:
        with self._mu:
            return [fd for fd in self._files if fd.type & file_type]

    def open(self, fd: FileDesc) -> MemReader:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            mem_file = self._files.get(fd)
            if mem_file is None:
                raise FileNotFoundError(str(fd))
            if mem_file.open:
                raise FileOpenError()
            mem_file.open = True
            return MemReader(self, mem_file)

    def create(self, fd: FileDesc) -> MemWriter:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            mem_file = self._files.get(fd)
            if mem_file is not None:
                if mem_file.open:
                    raise FileOpenError()
                mem_file.data.clear()
            else:
                mem_file = _MemFile()
                self._files[fd] = mem_file
            mem_file.open = True
            return MemWriter(self, mem_file)

    def remove(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            if self._files.pop(fd, None) is None:
                raise FileNotFoundError(str(fd))

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        if not file_desc_ok(old_fd) or not file_desc_ok(new_fd):
            raise InvalidFileError()
        if old_fd == new_fd:
            return
        with self._mu:
            old_file = self._files.get(old_fd)
            if old_file is None:
                raise FileNotFoundError(str(old_fd))
            new_file = self._files.get(new_fd)
            if (new_file is not None and new_file.open) or old_file.open:
                raise FileOpenError()
            del self._files[old_fd]
            self._files[new_fd] = old_file

    def close(self) -> None:
        pass