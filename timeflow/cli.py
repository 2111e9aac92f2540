"""Maintenance commands run outside the web process."""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime, time, timezone
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError

from .core.config import settings
from .core.logging import configure_logging
from .db.session import SessionLocal
from .services.screenshots import purge_preview, purge_screenshots

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete screenshots captured before a date, with their activity rows.")
    parser.add_argument(
        "--before",
        required=True,
        type=date.fromisoformat,
        help="Cutoff date in YYYY-MM-DD; captures taken before midnight UTC of this day are removed.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Actually delete. Without this flag only the preview is printed.",
    )
    return parser.parse_args(argv)


def cutoff_for(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def print_preview(preview: dict) -> None:
    print(f"Captures taken before {preview['cutoff'].isoformat()}:")
    for row in preview["by_type"]:
        oldest = row["oldest"].isoformat() if row["oldest"] else "-"
        newest = row["newest"].isoformat() if row["newest"] else "-"
        print(f"  {row['type']:<12} {row['count']:>8}  oldest {oldest}  newest {newest}")
    print(f"  screenshots:         {preview['screenshots']}")
    print(f"  screenshot_activity: {preview['screenshot_activity']}")
    print(f"  activity_logs:       {preview['activity_logs']}")


def purge_screenshots_command(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(settings.LOG_LEVEL)
    cutoff = cutoff_for(args.before)

    with SessionLocal() as db:
        preview = purge_preview(db, cutoff)
        print_preview(preview)
        if not args.yes:
            print("Dry run; pass --yes to delete.")
            return 0
        if not preview["screenshots"]:
            print("Nothing to delete.")
            return 0
        try:
            counts = purge_screenshots(db, cutoff)
        except SQLAlchemyError:
            logger.exception("screenshots.purge_failed", extra={"extra_data": {"cutoff": cutoff.isoformat()}})
            print("Deletion failed; the transaction was rolled back.")
            return 1

    print(
        f"Deleted {counts['screenshots']} screenshots, {counts['screenshot_activity']} activity rows "
        f"and {counts['activity_logs']} activity logs. Storage objects were not removed."
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(purge_screenshots_command())
