"""Hide/delete workflow: permission, resolve, mutate, reconcile.

Local photo state changes only after the library confirms the mutation, so a
denied or failed request leaves the working set exactly as it was.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from deletemyex.errors import WorkflowBusyError
from deletemyex.library.photo_library import MutationResult, PhotoLibrary
from deletemyex.types import Photo

LOGGER = logging.getLogger("deletemyex.library.workflow")


class ActionKind(str, enum.Enum):
    # delete moves assets to the recoverable trash; hide keeps them in the library
    HIDE = "hide"
    DELETE = "delete"


class WorkflowState(str, enum.Enum):
    IDLE = "idle"
    PERMISSION_REQUESTED = "permission_requested"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_DENIED = "permission_denied"
    RESOLVING_ASSETS = "resolving_assets"
    MUTATING = "mutating"
    RECONCILING = "reconciling"
    FAILED = "failed"


class OutcomeStatus(str, enum.Enum):
    COMPLETED = "completed"
    NOTHING_ELIGIBLE = "nothing_eligible"
    PERMISSION_DENIED = "permission_denied"
    FAILED = "failed"


_TRANSITIONS = {
    WorkflowState.IDLE: {WorkflowState.PERMISSION_REQUESTED},
    WorkflowState.PERMISSION_REQUESTED: {WorkflowState.PERMISSION_GRANTED, WorkflowState.PERMISSION_DENIED},
    WorkflowState.PERMISSION_DENIED: {WorkflowState.IDLE},
    WorkflowState.PERMISSION_GRANTED: {WorkflowState.RESOLVING_ASSETS},
    WorkflowState.RESOLVING_ASSETS: {WorkflowState.MUTATING, WorkflowState.IDLE},
    WorkflowState.MUTATING: {WorkflowState.RECONCILING, WorkflowState.FAILED},
    WorkflowState.RECONCILING: {WorkflowState.IDLE},
    WorkflowState.FAILED: {WorkflowState.IDLE},
}


@dataclass
class ActionOutcome:
    kind: ActionKind
    status: OutcomeStatus
    requested_ids: List[str] = field(default_factory=list)
    affected_count: int = 0
    removed: List[Photo] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED


def resolve_eligible(photos: Sequence[Photo]) -> List[Photo]:
    """Flagged photos carrying a native id, first occurrence of each id only."""
    seen = set()
    eligible: List[Photo] = []
    for photo in photos:
        if not photo.flagged or not photo.native_asset_id:
            continue
        if photo.native_asset_id in seen:
            continue
        seen.add(photo.native_asset_id)
        eligible.append(photo)
    return eligible


class AssetActionWorkflow:
    """Drives one hide/delete request at a time against a photo library."""

    def __init__(self, library: PhotoLibrary) -> None:
        self.library = library
        self.state = WorkflowState.IDLE
        self.history: List[WorkflowState] = [WorkflowState.IDLE]
        self._lock = threading.Lock()

    def _transition(self, target: WorkflowState) -> None:
        allowed = _TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise RuntimeError(f"Illegal workflow transition {self.state.value} -> {target.value}")
        LOGGER.debug("Workflow %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def _mutate(self, kind: ActionKind, ids: List[str]) -> MutationResult:
        if kind is ActionKind.HIDE:
            return self.library.hide(ids)
        return self.library.delete(ids)

    def request(self, kind: ActionKind, photos: List[Photo]) -> ActionOutcome:
        """Apply `kind` to the flagged, library-backed photos in `photos`.

        `photos` is the working set; on success the affected photos are
        removed from it in place.
        """
        kind = ActionKind(kind)
        if not self._lock.acquire(blocking=False):
            raise WorkflowBusyError(f"A library action is already in progress (state={self.state.value})")
        try:
            if self.state is not WorkflowState.IDLE:
                # a previous request ended in a terminal state; start over
                self._transition(WorkflowState.IDLE)
            return self._run(kind, photos)
        except Exception:
            self._abort()
            raise
        finally:
            self._lock.release()

    def _abort(self) -> None:
        """Park an interrupted run in FAILED so the next request can start over."""
        if self.state not in (WorkflowState.IDLE, WorkflowState.FAILED, WorkflowState.PERMISSION_DENIED):
            LOGGER.error("Workflow aborted in state %s", self.state.value)
            self.state = WorkflowState.FAILED
            self.history.append(WorkflowState.FAILED)

    def _run(self, kind: ActionKind, photos: List[Photo]) -> ActionOutcome:
        self._transition(WorkflowState.PERMISSION_REQUESTED)
        try:
            granted = bool(self.library.request_permission())
        except Exception as exc:
            LOGGER.warning("Permission request failed: %s", exc)
            granted = False
        if not granted:
            self._transition(WorkflowState.PERMISSION_DENIED)
            LOGGER.warning("Photo library permission denied for %s", kind.value)
            return ActionOutcome(kind=kind, status=OutcomeStatus.PERMISSION_DENIED, message="Photo library access denied")
        self._transition(WorkflowState.PERMISSION_GRANTED)

        self._transition(WorkflowState.RESOLVING_ASSETS)
        targets = resolve_eligible(photos)
        ids = [photo.native_asset_id for photo in targets]
        if not ids:
            self._transition(WorkflowState.IDLE)
            LOGGER.info("No flagged photos carry a library id; nothing to %s", kind.value)
            return ActionOutcome(kind=kind, status=OutcomeStatus.NOTHING_ELIGIBLE)

        self._transition(WorkflowState.MUTATING)
        try:
            result = self._mutate(kind, ids)
        except Exception as exc:
            self._transition(WorkflowState.FAILED)
            LOGGER.error("Library %s failed for %d assets: %s", kind.value, len(ids), exc)
            LOGGER.debug("Library mutation stack trace", exc_info=True)
            return ActionOutcome(kind=kind, status=OutcomeStatus.FAILED, requested_ids=ids, message=str(exc))
        if result.affected_count < len(ids):
            LOGGER.info(
                "Library %s affected %d of %d assets; the rest no longer resolve",
                kind.value,
                result.affected_count,
                len(ids),
            )

        self._transition(WorkflowState.RECONCILING)
        mutated = set(ids)
        removed = [photo for photo in photos if photo.flagged and photo.native_asset_id in mutated]
        removed_ids = {photo.id for photo in removed}
        photos[:] = [photo for photo in photos if photo.id not in removed_ids]
        self._transition(WorkflowState.IDLE)
        LOGGER.info("%s complete: affected=%d removed=%d", kind.value, result.affected_count, len(removed))
        return ActionOutcome(
            kind=kind,
            status=OutcomeStatus.COMPLETED,
            requested_ids=ids,
            affected_count=result.affected_count,
            removed=removed,
        )
