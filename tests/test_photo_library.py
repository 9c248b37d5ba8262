import os
import shutil
from datetime import datetime, timedelta, timezone

import pytest

from deletemyex.errors import LibraryError
from deletemyex.library.photo_library import LocalPhotoLibrary


def _write_image(root, relative, mtime):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\xff\xd8fake-jpeg")
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def library(tmp_path):
    _write_image(tmp_path, "old.jpg", 1_600_000_000)
    _write_image(tmp_path, "trip/middle.png", 1_650_000_000)
    _write_image(tmp_path, "new.jpeg", 1_700_000_000)
    (tmp_path / "notes.txt").write_text("not a photo", encoding="utf-8")
    return LocalPhotoLibrary(tmp_path)


def test_list_assets_newest_first_with_relative_ids(library):
    assets = library.list_assets()
    assert [asset.id for asset in assets] == ["new.jpeg", "trip/middle.png", "old.jpg"]
    assert all(asset.uri.startswith("file://") for asset in assets)
    assert not any(asset.hidden for asset in assets)


def test_hide_is_idempotent_and_skips_stale_ids(library):
    first = library.hide(["old.jpg", "missing.jpg"])
    assert first.requested == 2
    assert first.affected_count == 1
    second = library.hide(["old.jpg"])
    assert second.affected_count == 1

    visible = [asset.id for asset in library.list_assets(include_hidden=False)]
    assert visible == ["new.jpeg", "trip/middle.png"]
    everything = {asset.id: asset.hidden for asset in library.list_assets(include_hidden=True)}
    assert everything["old.jpg"] is True
    assert (library.root / "old.jpg").exists()


def test_delete_moves_assets_to_trash(library):
    result = library.delete(["trip/middle.png", "gone.png"])
    assert result.affected_count == 1
    assert not (library.root / "trip" / "middle.png").exists()
    assert [asset.id for asset in library.list_assets()] == ["new.jpeg", "old.jpg"]

    entries = library.trash_entries()
    assert [entry.asset_id for entry in entries] == ["trip/middle.png"]
    assert (library.trash_dir / entries[0].trash_path).exists()


def test_delete_then_restore_round_trip(library):
    library.delete(["old.jpg"])
    assert library.restore("old.jpg") is True
    assert (library.root / "old.jpg").exists()
    assert library.trash_entries() == []
    assert library.restore("old.jpg") is False


def test_deleting_hidden_asset_clears_hidden_flag(library):
    library.hide(["new.jpeg"])
    library.delete(["new.jpeg"])
    library.restore("new.jpeg")
    restored = {asset.id: asset.hidden for asset in library.list_assets()}
    assert restored["new.jpeg"] is False


def test_purge_expired_respects_retention(library):
    library.delete(["old.jpg", "new.jpeg"])
    entries = library.trash_entries()
    deleted_at = datetime.fromisoformat(entries[0].deleted_at)

    assert library.purge_expired(retention_days=30, now=deleted_at + timedelta(days=29)) == 0
    assert len(library.trash_entries()) == 2

    purged = library.purge_expired(retention_days=30, now=deleted_at + timedelta(days=31))
    assert purged == 2
    assert library.trash_entries() == []
    assert not any(library.trash_dir.iterdir())


def test_resolve_rejects_paths_outside_root(library):
    assert library.resolve("../outside.jpg") is None
    assert library.resolve("") is None
    assert library.resolve("old.jpg") == (library.root / "old.jpg").resolve()


def test_denied_library_raises(tmp_path):
    denied = LocalPhotoLibrary(tmp_path, granted=False)
    assert denied.request_permission() is False
    with pytest.raises(LibraryError):
        denied.list_assets()
    with pytest.raises(LibraryError):
        denied.delete(["anything.jpg"])


def test_missing_root_is_not_granted(tmp_path):
    assert LocalPhotoLibrary(tmp_path / "nope").request_permission() is False


def test_purge_uses_current_time_by_default(library):
    library.delete(["old.jpg"])
    assert library.purge_expired(retention_days=30) == 0
    assert library.purge_expired(retention_days=0, now=datetime.now(timezone.utc) + timedelta(seconds=1)) == 1


def test_delete_bookkeeping_failure_is_a_library_error(library, monkeypatch):
    def broken_save(hidden):
        raise OSError("disk full")

    monkeypatch.setattr(library, "_save_hidden", broken_save)
    with pytest.raises(LibraryError, match="disk full"):
        library.delete(["old.jpg"])
    assert [entry.asset_id for entry in library.trash_entries()] == ["old.jpg"]


def test_failed_move_still_logs_earlier_moves(library, monkeypatch):
    real_move = shutil.move
    moves = []

    def flaky_move(src, dst):
        if moves:
            raise PermissionError("read-only file")
        moves.append(src)
        return real_move(src, dst)

    monkeypatch.setattr(shutil, "move", flaky_move)
    with pytest.raises(LibraryError, match="read-only"):
        library.delete(["old.jpg", "new.jpeg"])
    assert [entry.asset_id for entry in library.trash_entries()] == ["old.jpg"]
    assert (library.root / "new.jpeg").exists()
