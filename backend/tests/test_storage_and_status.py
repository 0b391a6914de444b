import os
import time

import pytest

from conftest import PNG_BYTES
from foodscan.core.errors import InputError, NotFoundError
from foodscan.core.status import Stage, StageStatus, StageTracker
from foodscan.core.storage import UploadStore


class TestUploadStore:
    def test_save_and_resolve(self, store):
        info = store.save(PNG_BYTES, "image/png", "apple.png", "2026-01-01T00:00:00Z")
        assert info["status"] == "uploaded"
        assert info["originalname"] == "apple.png"
        assert info["size"] == len(PNG_BYTES)
        assert info["timestamp"] == "2026-01-01T00:00:00Z"
        assert info["filename"].startswith("food-scan-")
        assert info["filename"].endswith(".png")

        path = store.resolve(info["filename"])
        assert path.read_bytes() == PNG_BYTES

    def test_same_original_name_gets_distinct_files(self, store):
        a = store.save(PNG_BYTES, "image/png", "photo.png")
        b = store.save(PNG_BYTES, "image/png", "photo.png")
        assert a["filename"] != b["filename"]

    def test_extension_from_content_type(self, store):
        info = store.save(PNG_BYTES, "image/jpeg", None)
        assert info["filename"].endswith(".jpg")

    @pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/pdf"])
    def test_rejects_non_images(self, store, content_type):
        with pytest.raises(InputError):
            store.save(PNG_BYTES, content_type, "x.png")

    def test_rejects_oversize_and_empty(self, store):
        with pytest.raises(InputError):
            store.save(b"\x00" * (store.max_bytes + 1), "image/png", "big.png")
        with pytest.raises(InputError):
            store.save(b"", "image/png", "empty.png")

    @pytest.mark.parametrize("name", ["", "   ", "../secret.png", "a/b.png", ".."])
    def test_resolve_rejects_bad_names(self, store, name):
        with pytest.raises(InputError):
            store.resolve(name)

    def test_resolve_missing(self, store):
        with pytest.raises(NotFoundError):
            store.resolve("nope.png")

    def test_list_images_newest_first(self, store):
        assert store.list_images() == []

        first = store.save(PNG_BYTES, "image/png", "a.png")
        second = store.save(PNG_BYTES, "image/png", "b.png")
        old = time.time() - 60
        os.utime(store.root / first["filename"], (old, old))
        (store.root / "notes.txt").write_text("not an image")

        images = store.list_images()
        assert [i["filename"] for i in images] == [second["filename"], first["filename"]]
        assert all("modified" in i and "size" in i for i in images)


class TestStageTracker:
    def test_starts_idle(self):
        t = StageTracker()
        assert t.snapshot() == {"upload": "idle", "analyze": "idle", "search": "idle"}

    def test_happy_path(self):
        t = StageTracker()
        t.start(Stage.ANALYZE)
        assert t.status(Stage.ANALYZE) == StageStatus.IN_PROGRESS
        t.succeed(Stage.ANALYZE)
        assert t.status(Stage.ANALYZE) == StageStatus.SUCCESS

    def test_error_then_retry(self):
        t = StageTracker()
        t.start(Stage.SEARCH)
        t.fail(Stage.SEARCH, "network down")
        assert t.status(Stage.SEARCH) == StageStatus.ERROR
        assert t.error(Stage.SEARCH) == "network down"

        t.start(Stage.SEARCH)
        assert t.status(Stage.SEARCH) == StageStatus.IN_PROGRESS
        assert t.error(Stage.SEARCH) is None

    def test_success_can_restart(self):
        t = StageTracker()
        t.start(Stage.UPLOAD)
        t.succeed(Stage.UPLOAD)
        t.start(Stage.UPLOAD)
        assert t.status(Stage.UPLOAD) == StageStatus.IN_PROGRESS

    def test_illegal_transitions(self):
        t = StageTracker()
        with pytest.raises(ValueError):
            t.succeed(Stage.UPLOAD)
        with pytest.raises(ValueError):
            t.fail(Stage.UPLOAD, "x")
        t.start(Stage.UPLOAD)
        with pytest.raises(ValueError):
            t.start(Stage.UPLOAD)
