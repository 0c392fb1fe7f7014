"""File-system backed storage."""

from __future__ import annotations

import errno
import io
import os
import re
import threading
from datetime import datetime
from typing import Optional

import portalocker

from .storage import (
    ClosedError,
    CorruptedError,
    FileDesc,
    FileType,
    InvalidFileError,
    LockedError,
    ReadOnlyError,
    Storage,
    StorageLock,
    file_desc_ok,
)

LOG_SIZE_THRESHOLD = 1024 * 1024

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_NUMBERED_RE = re.compile(r"([+-]?\d+)\.(\S+)")
_MANIFEST_RE = re.compile(r"MANIFEST-([+-]?\d+)")
_PENDING_RE = re.compile(r"[+-]?\d+")

_TAIL_TYPES = {
    "log": FileType.JOURNAL,
    "ldb": FileType.TABLE,
    "sst": FileType.TABLE,
    "tmp": FileType.TEMP,
}


def gen_name(fd: FileDesc) -> str:
    """Return the file name used on disk for fd."""
    if fd.type == FileType.MANIFEST:
        return f"MANIFEST-{fd.num:06d}"
    if fd.type == FileType.JOURNAL:
        return f"{fd.num:06d}.log"
    if fd.type == FileType.TABLE:
        return f"{fd.num:06d}.ldb"
    if fd.type == FileType.TEMP:
        return f"{fd.num:06d}.tmp"
    raise ValueError("invalid file type")


def has_old_name(fd: FileDesc) -> bool:
    """Return True if files of this type may also exist under a legacy name."""
    return fd.type == FileType.TABLE


def gen_old_name(fd: FileDesc) -> str:
    """Return the legacy file name for fd."""
    if fd.type == FileType.TABLE:
        return f"{fd.num:06d}.sst"
    return gen_name(fd)


def _int64(text: str) -> Optional[int]:
    value = int(text)
    if _INT64_MIN <= value <= _INT64_MAX:
        return value
    return None


def parse_name(name: str) -> Optional[FileDesc]:
    """Parse a database file name; return None if it is not one."""
    match = _NUMBERED_RE.fullmatch(name)
    if match:
        num = _int64(match.group(1))
        if num is not None:
            file_type = _TAIL_TYPES.get(match.group(2))
            if file_type is None:
                return None
            return FileDesc(file_type, num)
    match = _MANIFEST_RE.fullmatch(name)
    if match:
        num = _int64(match.group(1))
        if num is not None:
            return FileDesc(FileType.MANIFEST, num)
    return None


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _write_file_synced(path: str, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    with os.fdopen(fd, "wb", buffering=0) as f:
        f.write(data)
        os.fsync(f.fileno())


def _sync_dir(path: str) -> None:
    if os.name == "nt":
        return
    dfd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(dfd)
    except OSError as exc:
        if exc.errno != errno.EINVAL:
            raise
    finally:
        os.close(dfd)


class _FileLock:
    """Advisory lock on the database LOCK file."""

    def __init__(self, path: str, read_only: bool) -> None:
        flag = os.O_RDONLY if read_only else os.O_RDWR
        try:
            raw = os.open(path, flag)
        except FileNotFoundError:
            raw = os.open(path, flag | os.O_CREAT, 0o644)
        self._file = os.fdopen(raw, "rb" if read_only else "r+b", buffering=0)
        mode = portalocker.LockFlags.SHARED if read_only else portalocker.LockFlags.EXCLUSIVE
        try:
            portalocker.lock(self._file, mode | portalocker.LockFlags.NON_BLOCKING)
        except portalocker.exceptions.LockException as exc:
            self._file.close()
            raise LockedError(f"storage: lock {path}: {exc}") from exc

    def release(self) -> None:
        try:
            portalocker.unlock(self._file)
        finally:
            self._file.close()


class FileHandle:
    """An open file of a FileStorage, for reading or for writing."""

    def __init__(self, storage: "FileStorage", fd: FileDesc, file) -> None:
        self._storage = storage
        self._fd = fd
        self._file = file
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes (all remaining if negative)."""
        return self._file.read(size)

    def read_at(self, size: int, offset: int) -> bytes:
        """Read up to size bytes at offset without moving the position."""
        if offset < 0:
            raise ValueError("negative offset")
        if hasattr(os, "pread"):
            return os.pread(self._file.fileno(), size, offset)
        pos = self._file.tell()
        try:
            self._file.seek(offset)
            return self._file.read(size)
        finally:
            self._file.seek(pos)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Move the file position and return it."""
        return self._file.seek(offset, whence)

    def write(self, data: bytes) -> int:
        """Write data and return the number of bytes written."""
        return self._file.write(data)

    def sync(self) -> None:
        """Flush the file to stable storage; manifests also sync their directory."""
        self._file.flush()
        os.fsync(self._file.fileno())
        if self._fd.type == FileType.MANIFEST:
            try:
                _sync_dir(self._storage.path)
            except OSError as exc:
                self._storage._log_unlocked(f"syncDir: {exc}")
                raise

    def close(self) -> None:
        """Close the file; raise ClosedError if already closed."""
        with self._storage._mu:
            if self.closed:
                raise ClosedError()
            self.closed = True
            self._storage._open_count -= 1
            try:
                self._file.close()
            except OSError as exc:
                self._storage._log_unlocked(f"close {self._fd}: {exc}")
                raise

    def __enter__(self) -> "FileHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self.closed:
            self.close()


class FileStorage(Storage):
    """A storage kept as files in one directory."""

    def __init__(self, path: str, read_only: bool, flock: _FileLock, logw, log_size: int) -> None:
        self.path = path
        self.read_only = read_only
        self._mu = threading.Lock()
        self._flock = flock
        self._slock: Optional[StorageLock] = None
        self._logw = logw
        self._log_size = log_size
        self._open_count = 0
        self._day = 0

    def _join(self, name: str) -> str:
        return os.path.join(self.path, name)

    def _unlock(self, lock: StorageLock) -> None:
        with self._mu:
            if self._slock is lock:
                self._slock = None

    def lock(self) -> StorageLock:
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            if self.read_only:
                return StorageLock()
            if self._slock is not None:
                raise LockedError()
            self._slock = StorageLock(self._unlock)
            return self._slock

    def _print_day(self, now: datetime) -> None:
        if self._day == now.day:
            return
        self._day = now.day
        stamp = f"{now.strftime('%b')} {now.day}, {now.year} ({now.tzname()})"
        self._logw.write(f"=============== {stamp} ===============\n".encode())

    def _do_log(self, now: datetime, message: str) -> None:
        if self._log_size > LOG_SIZE_THRESHOLD:
            self._logw.close()
            self._logw = None
            self._log_size = 0
            try:
                os.replace(self._join("LOG"), self._join("LOG.old"))
            except OSError:
                pass
        if self._logw is None:
            try:
                self._logw = open(self._join("LOG"), "ab", buffering=0)
            except OSError:
                return
            self._day = 0
        self._print_day(now)
        line = f"{now:%H:%M:%S}.{now.microsecond:06d} {message}\n".encode()
        self._log_size += self._logw.write(line) or 0

    def _log_unlocked(self, message: str) -> None:
        if not self.read_only:
            self._do_log(datetime.now().astimezone(), message)

    def log(self, message: str) -> None:
        if self.read_only:
            return
        now = datetime.now().astimezone()
        with self._mu:
            if self._open_count < 0:
                return
            self._do_log(now, message)

    def _set_meta(self, fd: FileDesc) -> None:
        content = (gen_name(fd) + "\n").encode()
        current_path = self._join("CURRENT")
        if os.path.exists(current_path):
            try:
                old = _read_file(current_path)
            except OSError as exc:
                self._log_unlocked(f"backup CURRENT: {exc}")
                raise
            if old == content:
                return
            try:
                _write_file_synced(current_path + ".bak", old)
            except OSError as exc:
                self._log_unlocked(f"backup CURRENT: {exc}")
                raise
        pending_path = f"{current_path}.{fd.num}"
        try:
            _write_file_synced(pending_path, content)
        except OSError as exc:
            self._log_unlocked(f"create CURRENT.{fd.num}: {exc}")
            raise
        try:
            os.replace(pending_path, current_path)
        except OSError as exc:
            self._log_unlocked(f"rename CURRENT.{fd.num}: {exc}")
            raise
        try:
            _sync_dir(self.path)
        except OSError as exc:
            self._log_unlocked(f"syncDir: {exc}")
            raise

    def set_meta(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            self._set_meta(fd)

    def _try_current(self, name: str) -> FileDesc:
        content = _read_file(self._join(name))
        fd = None
        if content.endswith(b"\n"):
            try:
                fd = parse_name(content[:-1].decode())
            except UnicodeDecodeError:
                fd = None
        if fd is None:
            self._log_unlocked(f"{name}: corrupted content: {content!r}")
            raise CorruptedError("storage: corrupted or incomplete CURRENT file")
        if not os.path.exists(self._join(gen_name(fd))):
            self._log_unlocked(f"{name}: missing target file: {fd}")
            raise FileNotFoundError(self._join(gen_name(fd)))
        return fd

    def _try_currents(self, names: list[str]) -> tuple[str, FileDesc]:
        last_corrupted: Optional[CorruptedError] = None
        for name in names:
            try:
                return name, self._try_current(name)
            except FileNotFoundError:
                continue
            except CorruptedError as exc:
                last_corrupted = exc
        if last_corrupted is not None:
            raise last_corrupted
        raise FileNotFoundError("no CURRENT file found")

    def get_meta(self) -> FileDesc:
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            names = os.listdir(self.path)

            nums = [
                int(name[8:])
                for name in names
                if name.startswith("CURRENT.")
                and name != "CURRENT.bak"
                and _PENDING_RE.fullmatch(name[8:])
                and _INT64_MIN <= int(name[8:]) <= _INT64_MAX
            ]
            pend_cur: Optional[tuple[str, FileDesc]] = None
            pend_err: Exception = FileNotFoundError("no pending CURRENT file")
            pend_names: list[str] = []
            if nums:
                pend_names = [f"CURRENT.{num}" for num in sorted(nums, reverse=True)]
                try:
                    pend_cur = self._try_currents(pend_names)
                except (FileNotFoundError, CorruptedError) as exc:
                    pend_err = exc

            cur_cur: Optional[tuple[str, FileDesc]] = None
            cur_err: Exception = FileNotFoundError("no CURRENT file found")
            try:
                cur_cur = self._try_currents(["CURRENT", "CURRENT.bak"])
            except (FileNotFoundError, CorruptedError) as exc:
                cur_err = exc

            if pend_cur is not None and (cur_cur is None or pend_cur[1].num > cur_cur[1].num):
                cur_cur = pend_cur

            if cur_cur is not None:
                name, fd = cur_cur
                if not self.read_only and (name != "CURRENT" or pend_names):
                    try:
                        self._set_meta(fd)
                    except OSError:
                        pass
                    else:
                        for pend_name in pend_names:
                            try:
                                os.remove(self._join(pend_name))
                            except OSError as exc:
                                self._log_unlocked(f"remove {pend_name}: {exc}")
                return fd

            if isinstance(pend_err, CorruptedError):
                raise pend_err
            raise cur_err

    def list(self, file_type: FileType) -> list[FileDesc]:
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            found = []
            for name in os.listdir(self.path):
                fd = parse_name(name)
                if fd is not None and fd.type & file_type:
                    found.append(fd)
            return found

    def open(self, fd: FileDesc) -> FileHandle:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            try:
                f = open(self._join(gen_name(fd)), "rb", buffering=0)
            except FileNotFoundError:
                if not has_old_name(fd):
                    raise
                f = open(self._join(gen_old_name(fd)), "rb", buffering=0)
            self._open_count += 1
            return FileHandle(self, fd, f)

    def create(self, fd: FileDesc) -> FileHandle:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            f = open(self._join(gen_name(fd)), "wb", buffering=0)
            self._open_count += 1
            return FileHandle(self, fd, f)

    def remove(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            try:
                os.remove(self._join(gen_name(fd)))
            except FileNotFoundError as exc:
                if not has_old_name(fd):
                    self._log_unlocked(f"remove {fd}: {exc}")
                    raise
                try:
                    os.remove(self._join(gen_old_name(fd)))
                except FileNotFoundError:
                    raise exc from None
                except OSError as old_exc:
                    self._log_unlocked(f"remove {fd}: {exc} (old name)")
                    raise old_exc
            except OSError as exc:
                self._log_unlocked(f"remove {fd}: {exc}")
                raise

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        if not file_desc_ok(old_fd) or not file_desc_ok(new_fd):
            raise InvalidFileError()
        if old_fd == new_fd:
            return
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            os.replace(self._join(gen_name(old_fd)), self._join(gen_name(new_fd)))

    def close(self) -> None:
        with self._mu:
            if self._open_count < 0:
                raise ClosedError()
            if self._open_count > 0:
                self._log_unlocked(f"close: warning, {self._open_count} files still open")
            self._open_count = -1
            if self._logw is not None:
                self._logw.close()
                self._logw = None
            self._flock.release()


def open_file(path: str, read_only: bool = False) -> FileStorage:
    """Open a directory-backed storage at path, taking its file lock."""
    try:
        st_is_dir = os.path.isdir(path)
        os.stat(path)
    except FileNotFoundError:
        if read_only:
            raise
        os.makedirs(path, 0o755, exist_ok=True)
    else:
        if not st_is_dir:
            raise NotADirectoryError(f"storage: open {path}: not a directory")

    flock = _FileLock(os.path.join(path, "LOCK"), read_only)
    logw = None
    log_size = 0
    try:
        if not read_only:
            logw = open(os.path.join(path, "LOG"), "ab", buffering=0)
            log_size = logw.seek(0, io.SEEK_END)
    except BaseException:
        if logw is not None:
            logw.close()
        flock.release()
        raise
    return FileStorage(path, read_only, flock, logw, log_size)