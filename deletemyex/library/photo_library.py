"""Photo library contract and a directory-backed implementation.

`LocalPhotoLibrary` mirrors the platform semantics the workflow relies on:
hide marks an asset hidden without removing it, delete moves it into a
recoverable trash that is purged after a retention window, and stale
identifiers are skipped instead of failing the call.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Set

from deletemyex.errors import LibraryError
from deletemyex.io_utils import IMAGE_SUFFIXES, ensure_dir

LOGGER = logging.getLogger("deletemyex.library")

STATE_DIRNAME = ".deletemyex"
DEFAULT_RETENTION_DAYS = 30


@dataclass(frozen=True)
class LibraryAsset:
    id: str
    uri: str
    created_at: datetime
    modified_at: datetime
    hidden: bool = False


@dataclass(frozen=True)
class MutationResult:
    requested: int
    affected_count: int


@dataclass(frozen=True)
class TrashEntry:
    asset_id: str
    trash_path: str
    deleted_at: str

    def to_dict(self) -> dict:
        return {"asset_id": self.asset_id, "trash_path": self.trash_path, "deleted_at": self.deleted_at}


class PhotoLibrary(ABC):
    """Platform photo library operations consumed by the action workflow."""

    @abstractmethod
    def request_permission(self) -> bool:
        """Return True when read/write access is granted."""

    @abstractmethod
    def list_assets(self, include_hidden: bool = True) -> List[LibraryAsset]:
        ...

    @abstractmethod
    def hide(self, ids: Iterable[str]) -> MutationResult:
        ...

    @abstractmethod
    def delete(self, ids: Iterable[str]) -> MutationResult:
        ...


class LocalPhotoLibrary(PhotoLibrary):
    """Photo library rooted at a directory of images.

    Asset ids are POSIX paths relative to the root. Bookkeeping lives under
    `<root>/.deletemyex/`.
    """

    def __init__(self, root: Path, granted: Optional[bool] = None) -> None:
        self.root = Path(root)
        self.granted = granted
        self.state_dir = self.root / STATE_DIRNAME
        self.hidden_index = self.state_dir / "hidden.json"
        self.trash_dir = self.state_dir / "trash"
        self.trash_log = self.state_dir / "trash.jsonl"

    def request_permission(self) -> bool:
        if self.granted is not None:
            return self.granted
        return self.root.is_dir() and os.access(self.root, os.W_OK)

    def _require_permission(self) -> None:
        if not self.request_permission():
            raise LibraryError("Photo library access denied")

    def _iter_image_paths(self) -> Iterable[Path]:
        for path in self.root.rglob("*"):
            if STATE_DIRNAME in path.relative_to(self.root).parts:
                continue
            if path.is_file() and path.suffix.lower() in IMAGE_SUFFIXES:
                yield path

    def _asset_id(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def resolve(self, asset_id: str) -> Optional[Path]:
        """Path for an id, or None when the id no longer resolves."""
        if not asset_id:
            return None
        candidate = (self.root / asset_id).resolve()
        root = self.root.resolve()
        if root not in candidate.parents or not candidate.is_file():
            return None
        if STATE_DIRNAME in candidate.relative_to(root).parts:
            return None
        return candidate

    def _load_hidden(self) -> Set[str]:
        if not self.hidden_index.exists():
            return set()
        with self.hidden_index.open("r", encoding="utf-8") as fh:
            return set(json.load(fh))

    def _save_hidden(self, hidden: Set[str]) -> None:
        ensure_dir(self.state_dir)
        with self.hidden_index.open("w", encoding="utf-8") as fh:
            json.dump(sorted(hidden), fh, indent=2)

    def list_assets(self, include_hidden: bool = True) -> List[LibraryAsset]:
        self._require_permission()
        hidden = self._load_hidden()
        assets: List[LibraryAsset] = []
        for path in self._iter_image_paths():
            asset_id = self._asset_id(path)
            is_hidden = asset_id in hidden
            if is_hidden and not include_hidden:
                continue
            stat = path.stat()
            created = getattr(stat, "st_birthtime", stat.st_mtime)
            assets.append(
                LibraryAsset(
                    id=asset_id,
                    uri=path.resolve().as_uri(),
                    created_at=datetime.fromtimestamp(created, tz=timezone.utc),
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    hidden=is_hidden,
                )
            )
        assets.sort(key=lambda asset: (asset.created_at, asset.id), reverse=True)
        return assets

    def hide(self, ids: Iterable[str]) -> MutationResult:
        self._require_permission()
        requested = list(ids)
        hidden = self._load_hidden()
        affected = 0
        for asset_id in requested:
            if self.resolve(asset_id) is None:
                LOGGER.debug("Hide skipped stale id %s", asset_id)
                continue
            hidden.add(asset_id)
            affected += 1
        try:
            self._save_hidden(hidden)
        except OSError as exc:
            raise LibraryError(f"Failed to hide photos: {exc}") from exc
        LOGGER.info("Hid %d/%d assets", affected, len(requested))
        return MutationResult(requested=len(requested), affected_count=affected)

    def _trash_name(self, asset_id: str, stamp: str) -> str:
        digest = hashlib.sha1(asset_id.encode("utf-8")).hexdigest()[:8]
        return f"{stamp}_{digest}_{Path(asset_id).name}"

    def delete(self, ids: Iterable[str]) -> MutationResult:
        """Move assets into the recoverable trash."""
        self._require_permission()
        requested = list(ids)
        hidden = self._load_hidden()
        entries: List[TrashEntry] = []
        now = datetime.now(timezone.utc)
        stamp = now.strftime("%Y%m%dT%H%M%S%f")
        failure: Optional[OSError] = None
        try:
            ensure_dir(self.trash_dir)
            for asset_id in requested:
                source = self.resolve(asset_id)
                if source is None:
                    LOGGER.debug("Delete skipped stale id %s", asset_id)
                    continue
                dest = self.trash_dir / self._trash_name(asset_id, stamp)
                shutil.move(str(source), str(dest))
                hidden.discard(asset_id)
                entries.append(TrashEntry(asset_id=asset_id, trash_path=dest.name, deleted_at=now.isoformat()))
        except OSError as exc:
            failure = exc
        if entries:
            # record whatever was moved, even when a later move failed
            try:
                self._append_trash(entries)
                self._save_hidden(hidden)
            except OSError as exc:
                failure = failure or exc
        if failure is not None:
            raise LibraryError(f"Failed to delete photos: {failure}") from failure
        LOGGER.info("Moved %d/%d assets to trash", len(entries), len(requested))
        return MutationResult(requested=len(requested), affected_count=len(entries))

    def _append_trash(self, entries: Iterable[TrashEntry]) -> None:
        ensure_dir(self.state_dir)
        with self.trash_log.open("a", encoding="utf-8") as fh:
            for entry in entries:
                fh.write(json.dumps(entry.to_dict(), ensure_ascii=False) + os.linesep)

    def trash_entries(self) -> List[TrashEntry]:
        if not self.trash_log.exists():
            return []
        entries: List[TrashEntry] = []
        with self.trash_log.open("r", encoding="utf-8") as fh:
            for raw_line in fh:
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    LOGGER.warning("Skipping unreadable trash log line in %s", self.trash_log)
                    continue
                entries.append(TrashEntry(**payload))
        return entries

    def _rewrite_trash(self, entries: List[TrashEntry]) -> None:
        with self.trash_log.open("w", encoding="utf-8") as fh:
            for entry in entries:
                fh.write(json.dumps(entry.to_dict(), ensure_ascii=False) + os.linesep)

    def restore(self, asset_id: str) -> bool:
        """Move the most recent trashed copy of an asset back into place."""
        self._require_permission()
        entries = self.trash_entries()
        for position in range(len(entries) - 1, -1, -1):
            entry = entries[position]
            if entry.asset_id != asset_id:
                continue
            source = self.trash_dir / entry.trash_path
            dest = self.root / asset_id
            if not source.exists() or dest.exists():
                return False
            ensure_dir(dest.parent)
            shutil.move(str(source), str(dest))
            del entries[position]
            self._rewrite_trash(entries)
            LOGGER.info("Restored %s from trash", asset_id)
            return True
        return False

    def purge_expired(self, retention_days: int = DEFAULT_RETENTION_DAYS, now: Optional[datetime] = None) -> int:
        """Permanently remove trash older than the retention window."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=retention_days)
        kept: List[TrashEntry] = []
        purged = 0
        for entry in self.trash_entries():
            if datetime.fromisoformat(entry.deleted_at) > cutoff:
                kept.append(entry)
                continue
            (self.trash_dir / entry.trash_path).unlink(missing_ok=True)
            purged += 1
        if purged:
            self._rewrite_trash(kept)
            LOGGER.info("Purged %d trashed assets older than %d days", purged, retention_days)
        return purged
