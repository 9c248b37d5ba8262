#!/usr/bin/env python3
"""CLI for hiding or deleting flagged photos in a local photo library."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from deletemyex.io_utils import dump_json, setup_logging
from deletemyex.library.photo_library import DEFAULT_RETENTION_DAYS, LocalPhotoLibrary
from deletemyex.library.workflow import ActionKind, AssetActionWorkflow, OutcomeStatus
from deletemyex.run_state import PHOTOS_FILE, load_run


LOGGER = logging.getLogger("scripts.apply_action")

EXIT_CODES = {
    OutcomeStatus.COMPLETED: 0,
    OutcomeStatus.NOTHING_ELIGIBLE: 0,
    OutcomeStatus.FAILED: 1,
    OutcomeStatus.PERMISSION_DENIED: 2,
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hide or delete flagged photos in a local library")
    parser.add_argument("run_dir", type=Path, help="Run directory with flags from flag_photos")
    parser.add_argument("--library-root", type=Path, required=True, help="Local photo library root")
    parser.add_argument("--action", choices=[kind.value for kind in ActionKind], required=True)
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the action (required for delete; trash is purged after the retention window)",
    )
    parser.add_argument("--purge-expired", action="store_true", help="Purge trash older than the retention window")
    parser.add_argument("--retention-days", type=int, default=DEFAULT_RETENTION_DAYS)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()
    kind = ActionKind(args.action)
    if kind is ActionKind.DELETE and not args.yes:
        LOGGER.error("Delete moves photos to the trash, purged after %d days; rerun with --yes", args.retention_days)
        return 2

    library = LocalPhotoLibrary(args.library_root)
    state = load_run(args.run_dir)
    photos = state.photos
    flagged = [photo for photo in photos if photo.flagged]
    LOGGER.info("%s requested for %d flagged photos", kind.value, len(flagged))

    outcome = AssetActionWorkflow(library).request(kind, photos)
    if outcome.status is OutcomeStatus.COMPLETED:
        dump_json(args.run_dir / PHOTOS_FILE, [photo.to_dict() for photo in photos])
        LOGGER.info(
            "%s complete: %d assets affected, %d photos removed from the run",
            kind.value,
            outcome.affected_count,
            len(outcome.removed),
        )
    elif outcome.status is OutcomeStatus.NOTHING_ELIGIBLE:
        LOGGER.warning("None of the flagged photos came from the library; nothing to %s", kind.value)
    else:
        LOGGER.error("%s %s: %s", kind.value, outcome.status.value, outcome.message)

    if args.purge_expired:
        purged = library.purge_expired(retention_days=args.retention_days)
        LOGGER.info("Purged %d expired trash entries", purged)
    return EXIT_CODES[outcome.status]


if __name__ == "__main__":
    raise SystemExit(main())
