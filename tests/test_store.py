import os

import pytest

from sursis.store import PostponementStore, StorageError


def test_fresh_store_reports_zero_and_persists(tmp_path):
    path = tmp_path / "counter"
    store = PostponementStore(str(path))
    assert store.load() == 0
    assert path.read_text(encoding="utf-8").strip() == "0"


def test_increment_is_visible_to_load(tmp_path):
    store = PostponementStore(str(tmp_path / "counter"))
    assert store.increment() == 1
    assert store.increment() == 2
    assert store.load() == 2


def test_increment_survives_new_store_instance(tmp_path):
    path = str(tmp_path / "counter")
    PostponementStore(path).increment()
    assert PostponementStore(path).load() == 1


def test_increment_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "counter"
    assert PostponementStore(str(path)).increment() == 1
    assert path.exists()


def test_increment_leaves_no_temp_files(tmp_path):
    store = PostponementStore(str(tmp_path / "counter"))
    store.increment()
    assert sorted(os.listdir(tmp_path)) == ["counter"]


@pytest.mark.parametrize("content,expected", [
    ("2\n", 2),
    ("  5  ", 5),
    ("garbage", 0),
    ("-3", 0),
])
def test_load_parses_existing_record(tmp_path, content, expected):
    path = tmp_path / "counter"
    path.write_text(content, encoding="utf-8")
    assert PostponementStore(str(path)).load() == expected


def test_unwritable_location_raises_storage_error(tmp_path, monkeypatch):
    store = PostponementStore(str(tmp_path / "counter"))

    def fail(*args, **kwargs):
        raise PermissionError("read-only file system")

    monkeypatch.setattr("sursis.store.NamedTemporaryFile", fail)
    with pytest.raises(StorageError):
        store.load()
    with pytest.raises(StorageError):
        store.increment()


def test_failed_replace_keeps_previous_value(tmp_path, monkeypatch):
    path = tmp_path / "counter"
    path.write_text("1\n", encoding="utf-8")
    store = PostponementStore(str(path))

    def fail_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("sursis.store.os.replace", fail_replace)
    with pytest.raises(StorageError):
        store.increment()
    assert path.read_text(encoding="utf-8").strip() == "1"
    assert sorted(os.listdir(tmp_path)) == ["counter"]
