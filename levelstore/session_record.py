"""Session records: the entries kept in the manifest journal."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from .storage import CorruptedError, FileDesc

_MAX_VARINT_LEN = 10
_UINT64_MAX = (1 << 64) - 1
_INT64_MAX = (1 << 63) - 1
_OVERFLOW = "binary: varint overflows a 64-bit integer"


class RecordType(enum.IntEnum):
    """Field tags of a session record; these numbers are written to disk."""

    COMPARER = 1
    JOURNAL_NUM = 2
    NEXT_FILE_NUM = 3
    SEQ_NUM = 4
    COMP_PTR = 5
    DEL_TABLE = 6
    ADD_TABLE = 7
    # 8 was used for large value refs
    PREV_JOURNAL_NUM = 9


class ManifestCorruptedError(CorruptedError):
    """A field of a manifest record could not be decoded."""

    def __init__(self, field_name: str, reason: str, fd: Optional[FileDesc] = None) -> None:
        self.field = field_name
        self.reason = reason
        super().__init__(f"manifest corrupted (field '{field_name}'): {reason}", fd)


@dataclass(frozen=True)
class CompPtrRecord:
    level: int
    ikey: bytes


@dataclass(frozen=True)
class AddedTableRecord:
    level: int
    num: int
    size: int
    imin: bytes
    imax: bytes


@dataclass(frozen=True)
class DeletedTableRecord:
    level: int
    num: int


def _put_uvarint(buf: bytearray, x: int) -> None:
    if x < 0 or x > _UINT64_MAX:
        raise ValueError(f"value out of range: {x}")
    while x >= 0x80:
        buf.append((x & 0x7F) | 0x80)
        x >>= 7
    buf.append(x)


def _put_varint(buf: bytearray, x: int) -> None:
    if x < 0:
        raise ValueError("invalid negative value")
    if x > _INT64_MAX:
        raise ValueError(f"value out of range: {x}")
    _put_uvarint(buf, x)


def _put_bytes(buf: bytearray, data: bytes) -> None:
    _put_uvarint(buf, len(data))
    buf.extend(data)


def _read_uvarint(reader, field_name: str, may_eof: bool = False) -> Optional[int]:
    x = 0
    shift = 0
    for i in range(_MAX_VARINT_LEN):
        b = reader.read(1)
        if not b:
            if i == 0 and may_eof:
                return None
            raise ManifestCorruptedError(field_name, "short read")
        c = b[0]
        if c < 0x80:
            if i == _MAX_VARINT_LEN - 1 and c > 1:
                raise ManifestCorruptedError(field_name, _OVERFLOW)
            return x | (c << shift)
        x |= (c & 0x7F) << shift
        shift += 7
    raise ManifestCorruptedError(field_name, _OVERFLOW)


def _read_varint(reader, field_name: str) -> int:
    x = _read_uvarint(reader, field_name)
    if x > _INT64_MAX:
        raise ManifestCorruptedError(field_name, "invalid negative value")
    return x


def _read_bytes(reader, field_name: str) -> bytes:
    n = _read_uvarint(reader, field_name)
    chunks = bytearray()
    while len(chunks) < n:
        chunk = reader.read(n - len(chunks))
        if not chunk:
            raise ManifestCorruptedError(field_name, "short read")
        chunks.extend(chunk)
    return bytes(chunks)


@dataclass
class SessionRecord:
    """One change to the database state, as stored in the manifest."""

    comparer: str = ""
    journal_num: int = 0
    prev_journal_num: int = 0
    next_file_num: int = 0
    seq_num: int = 0
    comp_ptrs: list[CompPtrRecord] = field(default_factory=list)
    added_tables: list[AddedTableRecord] = field(default_factory=list)
    deleted_tables: list[DeletedTableRecord] = field(default_factory=list)
    _present: set = field(default_factory=set, init=False, repr=False)

    def has(self, rec: RecordType) -> bool:
        """Whether a field of the given type has been set."""
        return rec in self._present

    def set_comparer(self, name: str) -> None:
        self._present.add(RecordType.COMPARER)
        self.comparer = name

    def set_journal_num(self, num: int) -> None:
        self._present.add(RecordType.JOURNAL_NUM)
        self.journal_num = num

    def set_prev_journal_num(self, num: int) -> None:
        self._present.add(RecordType.PREV_JOURNAL_NUM)
        self.prev_journal_num = num

    def set_next_file_num(self, num: int) -> None:
        self._present.add(RecordType.NEXT_FILE_NUM)
        self.next_file_num = num

    def set_seq_num(self, num: int) -> None:
        self._present.add(RecordType.SEQ_NUM)
        self.seq_num = num

    def add_comp_ptr(self, level: int, ikey: bytes) -> None:
        self._present.add(RecordType.COMP_PTR)
        self.comp_ptrs.append(CompPtrRecord(level, bytes(ikey)))

    def reset_comp_ptrs(self) -> None:
        self._present.discard(RecordType.COMP_PTR)
        self.comp_ptrs.clear()

    def add_table(self, level: int, num: int, size: int, imin: bytes, imax: bytes) -> None:
        self._present.add(RecordType.ADD_TABLE)
        self.added_tables.append(AddedTableRecord(level, num, size, bytes(imin), bytes(imax)))

    def reset_added_tables(self) -> None:
        self._present.discard(RecordType.ADD_TABLE)
        self.added_tables.clear()

    def del_table(self, level: int, num: int) -> None:
        self._present.add(RecordType.DEL_TABLE)
        self.deleted_tables.append(DeletedTableRecord(level, num))

    def reset_deleted_tables(self) -> None:
        self._present.discard(RecordType.DEL_TABLE)
        self.deleted_tables.clear()

    def encode(self, writer) -> None:
        """Write the record's fields to writer; the previous journal number is not written."""
        buf = bytearray()
        if self.has(RecordType.COMPARER):
            _put_uvarint(buf, RecordType.COMPARER)
            _put_bytes(buf, self.comparer.encode("utf-8", "surrogateescape"))
        if self.has(RecordType.JOURNAL_NUM):
            _put_uvarint(buf, RecordType.JOURNAL_NUM)
            _put_varint(buf, self.journal_num)
        if self.has(RecordType.NEXT_FILE_NUM):
            _put_uvarint(buf, RecordType.NEXT_FILE_NUM)
            _put_varint(buf, self.next_file_num)
        if self.has(RecordType.SEQ_NUM):
            _put_uvarint(buf, RecordType.SEQ_NUM)
            _put_uvarint(buf, self.seq_num)
        for ptr in self.comp_ptrs:
            _put_uvarint(buf, RecordType.COMP_PTR)
            _put_uvarint(buf, ptr.level)
            _put_bytes(buf, ptr.ikey)
        for deleted in self.deleted_tables:
            _put_uvarint(buf, RecordType.DEL_TABLE)
            _put_uvarint(buf, deleted.level)
            _put_varint(buf, deleted.num)
        for added in self.added_tables:
            _put_uvarint(buf, RecordType.ADD_TABLE)
            _put_uvarint(buf, added.level)
            _put_varint(buf, added.num)
            _put_varint(buf, added.size)
            _put_bytes(buf, added.imin)
            _put_bytes(buf, added.imax)
        writer.write(bytes(buf))

    def decode(self, reader) -> None:
        """Read fields from reader until it is exhausted, adding them to this record.

        Raises ManifestCorruptedError on malformed input. Unknown field tags are skipped.
        """
        while True:
            rec = _read_uvarint(reader, "field-header", may_eof=True)
            if rec is None:
                return
            if rec == RecordType.COMPARER:
                name = _read_bytes(reader, "comparer")
                self.set_comparer(name.decode("utf-8", "surrogateescape"))
            elif rec == RecordType.JOURNAL_NUM:
                self.set_journal_num(_read_varint(reader, "journal-num"))
            elif rec == RecordType.PREV_JOURNAL_NUM:
                self.set_prev_journal_num(_read_varint(reader, "prev-journal-num"))
            elif rec == RecordType.NEXT_FILE_NUM:
                self.set_next_file_num(_read_varint(reader, "next-file-num"))
            elif rec == RecordType.SEQ_NUM:
                self.set_seq_num(_read_uvarint(reader, "seq-num"))
            elif rec == RecordType.COMP_PTR:
                level = _read_uvarint(reader, "comp-ptr.level")
                ikey = _read_bytes(reader, "comp-ptr.ikey")
                self.add_comp_ptr(level, ikey)
            elif rec == RecordType.ADD_TABLE:
                level = _read_uvarint(reader, "add-table.level")
                num = _read_varint(reader, "add-table.num")
                size = _read_varint(reader, "add-table.size")
                imin = _read_bytes(reader, "add-table.imin")
                imax = _read_bytes(reader, "add-table.imax")
                self.add_table(level, num, size, imin, imax)
            elif rec == RecordType.DEL_TABLE:
                level = _read_uvarint(reader, "del-table.level")
                num = _read_varint(reader, "del-table.num")
                self.del_table(level, num)