# levelstore

Building blocks for a LevelDB-style key/value store:

- **Storage** (`levelstore.storage`, `levelstore.file_storage`): a small
  file abstraction. A file is named by a `FileDesc`, which is a `FileType`
  plus a number. `MemStorage` keeps files in memory. `FileStorage` keeps them
  in a directory, holds a `LOCK` file so that only one writer uses the
  directory at a time, and writes its log messages to a `LOG` file. Both can
  record which manifest is current.
- **Byte counting** (`levelstore.counting`): `CountingStorage` wraps any
  storage and adds up the bytes read and written through the files it opens
  and creates.
- **Options** (`levelstore.options`, `levelstore.cached_options`): database,
  read and write options with the usual defaults, and the per-level
  compaction limits worked out from them.
- **Manifest records** (`levelstore.session_record`): `SessionRecord` holds
  one manifest edit and encodes it to, or decodes it from, the on-disk varint
  format.

## Installation

```
pip install levelstore
```

## Storage

```python
from levelstore.storage import FileDesc, FileType, MemStorage

stor = MemStorage()
with stor.lock():
    fd = FileDesc(FileType.TABLE, 1)
    writer = stor.create(fd)
    writer.write(b"abc")
    writer.close()

    reader = stor.open(fd)
    assert reader.read(-1) == b"abc"
    assert reader.read_at(2, 1) == b"bc"
    reader.close()

    assert stor.list(FileType.ALL) == [fd]
```

A file can be open only once at a time in `MemStorage`; opening or creating
it again while a handle is open raises `FileOpenError`. `lock()` raises
`LockedError` while another lock is held.

On disk:

```python
from levelstore.file_storage import open_file, gen_name, parse_name
from levelstore.storage import FileDesc, FileType

stor = open_file("/tmp/mydb", read_only=False)
manifest = FileDesc(FileType.MANIFEST, 2)
w = stor.create(manifest)
w.write(b"...")
w.sync()
w.close()
stor.set_meta(manifest)          # CURRENT now names MANIFEST-000002
assert stor.get_meta() == manifest
stor.close()

assert gen_name(FileDesc(FileType.JOURNAL, 100)) == "000100.log"
assert parse_name("MANIFEST-000007") == FileDesc(FileType.MANIFEST, 7)
assert parse_name("100.lop") is None
```

`open_file` creates the directory if it is missing (unless read-only) and
takes an exclusive lock on `LOCK`, or a shared one in read-only mode; a
conflicting open raises `LockedError`. `get_meta` looks at pending
`CURRENT.<n>` files, then `CURRENT`, then `CURRENT.bak`, and repairs
`CURRENT` when it was not the one used. It raises `FileNotFoundError` when
no usable entry point exists and `CorruptedError` when the only candidates
are corrupted. Table files are also found under their older `.sst` name.

Errors are raised as subclasses of `StorageError`: `InvalidFileError`,
`LockedError`, `ClosedError`, `FileOpenError`, `ReadOnlyError` and
`CorruptedError`. A missing file raises Python's `FileNotFoundError`.

## Counting bytes

```python
from levelstore.counting import CountingStorage
from levelstore.storage import FileDesc, FileType, MemStorage

stor = CountingStorage(MemStorage())
w = stor.create(FileDesc(FileType.JOURNAL, 1))
w.write(b"hello")
w.close()
assert stor.writes() == 5
```

## Options

```python
from levelstore.options import Options, ReadOptions, Strict, get_strict
from levelstore.cached_options import CachedOptions, dup_options

opts = Options(compaction_table_size=4 * 1024 * 1024)
opts.get_compaction_table_size(1)
opts.get_strict(Strict.COMPACTION)          # the defaults apply while strict is 0

get_strict(opts, ReadOptions(strict=Strict.OVERRIDE | Strict.READER), Strict.READER)

cached = CachedOptions(dup_options(opts))
cached.get_compaction_total_size(3)          # levels 0-6 come from a cache
```

`CacherFunc` and `passthrough_cacher` describe how a cache would be built
from a capacity; this package does not supply a cache of its own.

## Manifest records

```python
import io
from levelstore.session_record import SessionRecord, RecordType

rec = SessionRecord()
rec.set_comparer("leveldb.BytewiseComparator")
rec.set_next_file_num(10)
rec.add_table(0, 5, 1024, b"a-min-key", b"z-max-key")

buf = io.BytesIO()
rec.encode(buf)

decoded = SessionRecord()
decoded.decode(io.BytesIO(buf.getvalue()))
assert decoded.has(RecordType.COMPARER)
assert decoded.added_tables == rec.added_tables
```

`encode` does not write the previous journal number, though `decode` reads
it. Malformed input raises `ManifestCorruptedError`, naming the field that
failed.

## What this package does not do

This is not a working key/value database. There is no get, put or delete, no
write-ahead journal, no sorted-table format, no block cache, no compaction
and no session that ties manifest records to storage. The options describe
such an engine, and the records hold its edits, but nothing here acts on
them.

## Running the tests

```
pip install -e .[test]
pytest
```