import io

import pytest

from fileshare.core.errors import NotFound, PayloadTooLarge
from fileshare.services.object_store import LocalObjectStore, is_partial


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(tmp_path / "objects", chunk_size=16)


def _files(store):
    return sorted(p.name for p in store.root.iterdir())


def test_write_then_open(store):
    payload = b"hello world" * 10
    size = store.write("abcdef012345__a.txt", io.BytesIO(payload), max_bytes=1000)
    assert size == len(payload)

    opened = store.open("abcdef012345__a.txt")
    assert opened.size == len(payload)
    assert b"".join(opened.iter_chunks(7)) == payload
    assert opened.handle.closed


def test_write_exactly_max_succeeds(store):
    size = store.write("abcdef012345__a.bin", io.BytesIO(b"x" * 100), max_bytes=100)
    assert size == 100


def test_write_over_max_leaves_nothing_behind(store):
    with pytest.raises(PayloadTooLarge):
        store.write("abcdef012345__a.bin", io.BytesIO(b"x" * 101), max_bytes=100)
    assert _files(store) == []


def test_failing_source_leaves_nothing_behind(store):
    class Broken(io.RawIOBase):
        calls = 0

        def read(self, n=-1):
            self.calls += 1
            if self.calls > 2:
                raise ConnectionResetError("client went away")
            return b"x" * min(n, 16)

    with pytest.raises(ConnectionResetError):
        store.write("abcdef012345__a.bin", Broken(), max_bytes=1000)
    assert _files(store) == []


def test_open_missing_raises_not_found(store):
    with pytest.raises(NotFound):
        store.open("abcdef012345__missing.bin")


def test_locations_must_be_bare_names(store):
    with pytest.raises(ValueError):
        store.write("../escape.bin", io.BytesIO(b"x"), max_bytes=10)
    with pytest.raises(NotFound):
        store.open("../../etc/passwd")
    assert store.delete("../x") is False


def test_open_handle_survives_delete(store):
    store.write("abcdef012345__a.txt", io.BytesIO(b"still here"), max_bytes=100)
    opened = store.open("abcdef012345__a.txt")
    assert store.delete("abcdef012345__a.txt") is True
    assert b"".join(opened.iter_chunks(4)) == b"still here"


def test_delete_is_best_effort(store):
    assert store.delete("abcdef012345__nothing.bin") is False


def test_list_stale_and_partials(store):
    store.write("abcdef012345__a.txt", io.BytesIO(b"x"), max_bytes=10)
    (store.root / ".abcdef012345__b.txt.deadbeef.part").write_bytes(b"partial")

    stale = store.list_stale(older_than_seconds=-1)
    assert sorted(stale) == [".abcdef012345__b.txt.deadbeef.part", "abcdef012345__a.txt"]
    assert store.list_stale(older_than_seconds=3600) == []

    partials = [n for n in stale if is_partial(n)]
    assert store.delete_partial(partials[0]) is True
    assert store.delete_partial("abcdef012345__a.txt") is False
    assert _files(store) == ["abcdef012345__a.txt"]
