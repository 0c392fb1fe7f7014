import io
import os

import pytest

from levelstore.file_storage import (
    FileStorage,
    gen_name,
    gen_old_name,
    has_old_name,
    open_file,
    parse_name,
)
from levelstore.storage import (
    ClosedError,
    CorruptedError,
    FileDesc,
    FileType,
    InvalidFileError,
    LockedError,
    ReadOnlyError,
)

CASES = [
    ([], "000100.log", FileType.JOURNAL, 100),
    ([], "000000.log", FileType.JOURNAL, 0),
    (["000000.sst"], "000000.ldb", FileType.TABLE, 0),
    ([], "MANIFEST-000002", FileType.MANIFEST, 2),
    ([], "MANIFEST-000007", FileType.MANIFEST, 7),
    ([], "9223372036854775807.log", FileType.JOURNAL, 9223372036854775807),
    ([], "000100.tmp", FileType.TEMP, 100),
]

INVALID_CASES = [
    "",
    "foo",
    "foo-dx-100.log",
    ".log",
    "manifest",
    "CURREN",
    "CURRENTX",
    "MANIFES",
    "MANIFEST",
    "MANIFEST-",
    "XMANIFEST-3",
    "MANIFEST-3x",
    "LOC",
    "LOCKx",
    "LO",
    "LOGx",
    "18446744073709551616.log",
    "184467440737095516150.log",
    "100",
    "100.",
    "100.lop",
]


@pytest.fixture
def storage(tmp_path):
    fs = open_file(str(tmp_path), False)
    yield fs
    try:
        fs.close()
    except ClosedError:
        pass


@pytest.mark.parametrize("old_names,name,ftype,num", CASES)
def test_create_file_name(old_names, name, ftype, num):
    assert gen_name(FileDesc(ftype, num)) == name


@pytest.mark.parametrize("old_names,name,ftype,num", CASES)
def test_parse_file_name(old_names, name, ftype, num):
    for candidate in [name, *old_names]:
        assert parse_name(candidate) == FileDesc(ftype, num)


@pytest.mark.parametrize("name", INVALID_CASES)
def test_invalid_file_name(name):
    assert parse_name(name) is None


def test_old_name_only_for_tables():
    table = FileDesc(FileType.TABLE, 5)
    journal = FileDesc(FileType.JOURNAL, 5)
    assert has_old_name(table) is True
    assert has_old_name(journal) is False
    assert gen_old_name(table) == "000005.sst"
    assert gen_old_name(journal) == "000005.log"


def test_gen_name_invalid_type():
    with pytest.raises(ValueError):
        gen_name(FileDesc(FileType(0), 1))


@pytest.mark.parametrize("num", [1, 42, 987654321, 2**62 + 17, 9223372036854775807])
def test_meta_set_get(storage, num):
    fd = FileDesc(FileType.MANIFEST, num)
    with storage.create(fd) as w:
        assert w.write(b"TEST") == 4
    storage.set_meta(fd)
    assert storage.get_meta() == fd


def test_meta_set_get_sequence(storage, tmp_path):
    for num in (3, 9, 4):
        fd = FileDesc(FileType.MANIFEST, num)
        with storage.create(fd) as w:
            w.write(b"TEST")
        storage.set_meta(fd)
        assert storage.get_meta() == fd
    assert (tmp_path / "CURRENT").read_bytes() == b"MANIFEST-000004\n"
    assert (tmp_path / "CURRENT.bak").read_bytes() == b"MANIFEST-000009\n"


def _cur(num, backup=False, current=False, manifest=False, corrupt=False):
    return dict(num=num, backup=backup, current=current, manifest=manifest, corrupt=corrupt)


META_CASES = [
    ([_cur(2, backup=True, manifest=True), _cur(1, current=True)], "ok", 2),
    ([_cur(2, backup=True, manifest=True), _cur(1, current=True, manifest=True)], "ok", 1),
    ([_cur(2, manifest=True), _cur(3, manifest=True), _cur(4, current=True, manifest=True)], "ok", 4),
    (
        [_cur(2, manifest=True), _cur(3, manifest=True), _cur(4, current=True, manifest=True, corrupt=True)],
        "ok",
        3,
    ),
    (
        [
            _cur(2, manifest=True),
            _cur(3, manifest=True),
            _cur(5, current=True, manifest=True, corrupt=True),
            _cur(4, backup=True, manifest=True),
        ],
        "ok",
        4,
    ),
    ([_cur(4, manifest=True), _cur(3, manifest=True), _cur(2, current=True, manifest=True)], "ok", 4),
    (
        [_cur(4, manifest=True, corrupt=True), _cur(3, manifest=True), _cur(2, current=True, manifest=True)],
        "ok",
        3,
    ),
    (
        [
            _cur(4, manifest=True, corrupt=True),
            _cur(3, manifest=True, corrupt=True),
            _cur(2, current=True, manifest=True),
        ],
        "ok",
        2,
    ),
    ([_cur(4), _cur(3, manifest=True), _cur(2, current=True, manifest=True)], "ok", 3),
    ([_cur(4), _cur(3, manifest=True), _cur(6, current=True), _cur(5, backup=True, manifest=True)], "ok", 5),
    ([_cur(4), _cur(3), _cur(6, current=True), _cur(5, backup=True)], "not_exist", None),
    ([_cur(4, corrupt=True), _cur(3), _cur(6, current=True), _cur(5, backup=True)], "corrupt", None),
]


@pytest.mark.parametrize("cut", [1, 2, 3])
@pytest.mark.parametrize("currents,outcome,expect", META_CASES)
def test_meta(tmp_path, currents, outcome, expect, cut):
    fs = open_file(str(tmp_path), False)
    try:
        for cur in currents:
            if cur["current"]:
                cur_name = "CURRENT"
            elif cur["backup"]:
                cur_name = "CURRENT.bak"
            else:
                cur_name = f"CURRENT.{cur['num']}"
            fd = FileDesc(FileType.MANIFEST, cur["num"])
            content = gen_name(fd) + "\n"
            if cur["corrupt"]:
                content = content[: len(content) - cut]
            (tmp_path / cur_name).write_text(content)
            if cur["manifest"]:
                with fs.create(fd) as w:
                    w.write(b"TEST")

        if outcome == "not_exist":
            with pytest.raises(FileNotFoundError):
                fs.get_meta()
        elif outcome == "corrupt":
            with pytest.raises(CorruptedError):
                fs.get_meta()
        else:
            ret = fs.get_meta()
            assert ret.type == FileType.MANIFEST
            assert ret.num == expect
            rogue = [
                name
                for name in os.listdir(tmp_path)
                if name.startswith("CURRENT") and name not in ("CURRENT", "CURRENT.bak")
            ]
            assert rogue == []
    finally:
        fs.close()


def test_get_meta_empty(storage):
    with pytest.raises(FileNotFoundError):
        storage.get_meta()


def test_locking(tmp_path):
    p1 = open_file(str(tmp_path), False)
    with pytest.raises(LockedError):
        open_file(str(tmp_path), False)
    p1.close()

    p3 = open_file(str(tmp_path), False)
    try:
        lock = p3.lock()
        with pytest.raises(LockedError):
            p3.lock()
        lock.unlock()
        second = p3.lock()
        with pytest.raises(LockedError):
            p3.lock()
        second.unlock()
    finally:
        p3.close()


def test_read_only_locking(tmp_path):
    p1 = open_file(str(tmp_path), False)
    with pytest.raises(LockedError):
        open_file(str(tmp_path), True)
    p1.close()

    p3 = open_file(str(tmp_path), True)
    p4 = open_file(str(tmp_path), True)
    try:
        with pytest.raises(LockedError):
            open_file(str(tmp_path), False)
    finally:
        p3.close()
        p4.close()

    p5 = open_file(str(tmp_path), False)
    assert isinstance(p5, FileStorage)
    assert p5.read_only is False
    p5.close()


def test_read_only_storage_rejects_writes(tmp_path):
    open_file(str(tmp_path), False).close()
    fs = open_file(str(tmp_path), True)
    try:
        fd = FileDesc(FileType.TABLE, 1)
        with pytest.raises(ReadOnlyError):
            fs.create(fd)
        with pytest.raises(ReadOnlyError):
            fs.remove(fd)
        with pytest.raises(ReadOnlyError):
            fs.set_meta(fd)
        with pytest.raises(ReadOnlyError):
            fs.rename(fd, FileDesc(FileType.TABLE, 2))
        lock1 = fs.lock()
        lock2 = fs.lock()
        lock1.unlock()
        lock2.unlock()
        assert fs.list(FileType.ALL) == []
    finally:
        fs.close()


def test_read_only_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        open_file(str(tmp_path / "missing"), True)


def test_open_creates_dir(tmp_path):
    path = tmp_path / "a" / "b"
    fs = open_file(str(path), False)
    fs.close()
    assert path.is_dir()
    assert (path / "LOCK").exists()
    assert (path / "LOG").exists()


def test_not_a_directory(tmp_path):
    target = tmp_path / "plain"
    target.write_bytes(b"x")
    with pytest.raises(NotADirectoryError):
        open_file(str(target), False)


def test_create_read_and_list(storage, tmp_path):
    fd = FileDesc(FileType.TABLE, 7)
    with storage.create(fd) as w:
        assert w.write(b"hello world") == 11
        w.sync()
    (tmp_path / "notes.txt").write_text("ignored")
    storage.create(FileDesc(FileType.JOURNAL, 3)).close()

    assert sorted(storage.list(FileType.ALL), key=lambda d: d.num) == [
        FileDesc(FileType.JOURNAL, 3),
        fd,
    ]
    assert storage.list(FileType.TABLE) == [fd]
    assert storage.list(FileType.MANIFEST) == []

    with storage.open(fd) as r:
        assert r.read(5) == b"hello"
        assert r.read_at(5, 6) == b"world"
        assert r.read() == b" world"
        assert r.seek(0, io.SEEK_END) == 11
        assert r.seek(1) == 1
        assert r.read(4) == b"ello"


def test_open_old_table_name_and_remove(storage, tmp_path):
    (tmp_path / "000005.sst").write_bytes(b"old")
    fd = FileDesc(FileType.TABLE, 5)
    with storage.open(fd) as r:
        assert r.read() == b"old"
    storage.remove(fd)
    assert not (tmp_path / "000005.sst").exists()
    with pytest.raises(FileNotFoundError):
        storage.remove(fd)


def test_open_missing(storage):
    with pytest.raises(FileNotFoundError):
        storage.open(FileDesc(FileType.JOURNAL, 99))


def test_invalid_descriptor(storage):
    bad = FileDesc(FileType.ALL, 1)
    negative = FileDesc(FileType.TABLE, -1)
    with pytest.raises(InvalidFileError):
        storage.open(bad)
    with pytest.raises(InvalidFileError):
        storage.create(negative)
    with pytest.raises(InvalidFileError):
        storage.set_meta(bad)
    with pytest.raises(InvalidFileError):
        storage.rename(bad, FileDesc(FileType.TABLE, 1))


def test_rename(storage, tmp_path):
    fd1 = FileDesc(FileType.TABLE, 1)
    fd2 = FileDesc(FileType.TABLE, 2)
    with storage.create(fd1) as w:
        w.write(b"abc")
    storage.rename(fd1, fd1)
    assert (tmp_path / "000001.ldb").exists()
    storage.rename(fd1, fd2)
    assert storage.list(FileType.ALL) == [fd2]
    with storage.open(fd2) as r:
        assert r.read() == b"abc"


def test_handle_double_close(storage):
    w = storage.create(FileDesc(FileType.TEMP, 1))
    w.close()
    with pytest.raises(ClosedError):
        w.close()


def test_closed_storage(tmp_path):
    fs = open_file(str(tmp_path), False)
    fs.close()
    with pytest.raises(ClosedError):
        fs.close()
    with pytest.raises(ClosedError):
        fs.lock()
    with pytest.raises(ClosedError):
        fs.list(FileType.ALL)
    with pytest.raises(ClosedError):
        fs.get_meta()
    with pytest.raises(ClosedError):
        fs.open(FileDesc(FileType.TABLE, 1))
    with pytest.raises(ClosedError):
        fs.create(FileDesc(FileType.TABLE, 1))


def test_log_written(tmp_path):
    fs = open_file(str(tmp_path), False)
    fs.log("first message")
    fs.log("second message")
    fs.close()
    lines = (tmp_path / "LOG").read_text().splitlines()
    assert lines[0].startswith("=============== ")
    assert lines[0].endswith(" ===============")
    assert lines[1].endswith(" first message")
    assert lines[2].endswith(" second message")
    assert len(lines[1].split(" ")[0]) == len("00:00:00.000000")


def test_set_meta_same_content_keeps_backup_absent(storage, tmp_path):
    fd = FileDesc(FileType.MANIFEST, 1)
    storage.create(fd).close()
    storage.set_meta(fd)
    storage.set_meta(fd)
    assert (tmp_path / "CURRENT").read_bytes() == b"MANIFEST-000001\n"
    assert not (tmp_path / "CURRENT.bak").exists()
    assert storage.get_meta() == fd