import pytest

from assessment.errors import UpstreamStorageError
from assessment.storage import BaseStorage, FallbackStorage, LocalStorage, local_store_of


class FlakyStorage(BaseStorage):
    backend = "flaky"

    def __init__(self, fail=True):
        self.fail = fail
        self.calls = 0

    def put(self, key, data, content_type):
        self.calls += 1
        if self.fail:
            raise ConnectionError("upload rejected")
        return f"https://cdn.example.com/{key}"


def test_local_put_and_open(storage):
    url = storage.put("snapshots/s1_1.jpg", b"abc", "image/jpeg")

    assert url == "/uploads/snapshots/s1_1.jpg"
    assert storage.open_bytes("snapshots/s1_1.jpg") == b"abc"


@pytest.mark.parametrize("key", ["snapshots/../escape.jpg", "videos/x.webm", "snapshots/"])
def test_local_rejects_bad_keys(storage, key):
    with pytest.raises(ValueError):
        storage.put(key, b"abc", "image/jpeg")


def test_fallback_prefers_primary(storage):
    primary = FlakyStorage(fail=False)
    url = FallbackStorage(primary, storage).put("snapshots/a.jpg", b"x", "image/jpeg")

    assert url == "https://cdn.example.com/snapshots/a.jpg"
    assert not (storage.snapshot_dir / "a.jpg").exists()


def test_fallback_tries_secondary_exactly_once(storage):
    primary = FlakyStorage()
    url = FallbackStorage(primary, storage).put("snapshots/a.jpg", b"x", "image/jpeg")

    assert primary.calls == 1
    assert url == "/uploads/snapshots/a.jpg"


def test_fallback_gives_up_after_secondary():
    primary, secondary = FlakyStorage(), FlakyStorage()
    with pytest.raises(UpstreamStorageError):
        FallbackStorage(primary, secondary).put("snapshots/a.jpg", b"x", "image/jpeg")
    assert (primary.calls, secondary.calls) == (1, 1)


def test_local_store_of(storage):
    assert local_store_of(storage) is storage
    assert local_store_of(FallbackStorage(FlakyStorage(), storage)) is storage
    assert local_store_of(FlakyStorage()) is None
