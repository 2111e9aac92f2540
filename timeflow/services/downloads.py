"""Locating the desktop tracker installers in object storage."""

from __future__ import annotations

import logging

from ..core.errors import BackendError
from .storage import StorageClient

logger = logging.getLogger(__name__)

WINDOWS_FALLBACKS = (
    "windows/TimeFlow-Setup.exe",
    "windows/TimeFlow.exe",
    "TimeFlow-Setup.exe",
    "TimeFlow.exe",
    "windows/timeflow-setup.exe",
)
MACOS_FALLBACKS = (
    "macos/TimeFlow.dmg",
    "macos/TimeFlow.app.dmg",
    "TimeFlow.dmg",
    "macos/timeflow.dmg",
)


def _pick(files: list[str], extension: str, markers: tuple[str, ...]) -> str | None:
    for path in files:
        lowered = path.lower()
        if lowered.endswith(extension) and (any(marker in lowered for marker in markers) or "/" not in path):
            return path
    return None


def find_installer_links(client: StorageClient, buckets: list[str]) -> dict[str, str]:
    """Public URLs for the Windows and macOS installers; empty strings when absent.

    Buckets are tried in order; the first one that can be listed and yields a
    link wins.
    """
    for bucket in buckets:
        try:
            client.list_objects(bucket, "")
            files = client.list_files_recursive(bucket)
        except BackendError as exc:
            logger.info("downloads.bucket_unavailable", extra={"extra_data": {"bucket": bucket, "error": exc.message}})
            continue

        windows = _pick(files, ".exe", ("windows", "win")) or WINDOWS_FALLBACKS[0]
        macos = _pick(files, ".dmg", ("macos", "mac")) or MACOS_FALLBACKS[0]
        links = {
            "windows": client.public_url(bucket, windows),
            "macos": client.public_url(bucket, macos),
            "bucket": bucket,
        }
        if links["windows"] or links["macos"]:
            return links
    return {"windows": "", "macos": "", "bucket": ""}


__all__ = ["MACOS_FALLBACKS", "WINDOWS_FALLBACKS", "find_installer_links"]
