import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import make_entry, make_profile, make_project
from timeflow.crud.profiles import update_own_profile
from timeflow.services.dashboard import dashboard_summary
from timeflow.services.downloads import find_installer_links
from timeflow.services.profile import avatar_path, personal_stats, upload_avatar
from timeflow.services.team import team_overview

STORAGE = "https://hosted.test/storage/v1/object/public"


def listing_handler(listings, failing=()):
    def handler(request):
        bucket = request.url.path.rsplit("/", 1)[-1]
        if bucket in failing:
            return httpx.Response(400, json={"message": "Bucket not found"})
        prefix = json.loads(request.content)["prefix"]
        return httpx.Response(200, json=listings.get(bucket, {}).get(prefix, []))

    return handler


def test_installer_links_walk_folders(storage_client, storage_handler):
    storage_handler.handler = listing_handler(
        {
            "downloads": {
                "": [{"name": "windows", "id": None}, {"name": "TimeFlow.dmg", "id": "1"}],
                "windows": [{"name": "notes.txt", "id": "2"}, {"name": "TimeFlow-Setup-2.0.exe", "id": "3"}],
            }
        }
    )

    links = find_installer_links(storage_client, ["downloads"])

    assert links == {
        "windows": f"{STORAGE}/downloads/windows/TimeFlow-Setup-2.0.exe",
        "macos": f"{STORAGE}/downloads/TimeFlow.dmg",
        "bucket": "downloads",
    }


def test_installer_links_skip_unavailable_buckets_and_fall_back(storage_client, storage_handler):
    storage_handler.handler = listing_handler({"releases": {"": []}}, failing=("downloads",))

    links = find_installer_links(storage_client, ["downloads", "releases"])

    assert links["bucket"] == "releases"
    assert links["windows"] == f"{STORAGE}/releases/windows/TimeFlow-Setup.exe"
    assert links["macos"] == f"{STORAGE}/releases/macos/TimeFlow.dmg"


def test_installer_links_empty_when_nothing_is_reachable(storage_client, storage_handler):
    storage_handler.handler = listing_handler({}, failing=("downloads",))
    assert find_installer_links(storage_client, ["downloads"]) == {"windows": "", "macos": "", "bucket": ""}


def test_avatar_upload(db_session, storage_client, storage_transport):
    alice = make_profile(db_session)

    with pytest.raises(ValueError):
        upload_avatar(
            db_session, storage_client, alice, filename="a.pdf", content_type="application/pdf",
            content=b"x", bucket="avatars", max_bytes=10,
        )
    with pytest.raises(ValueError):
        upload_avatar(
            db_session, storage_client, alice, filename="a.png", content_type="image/png",
            content=b"x" * 11, bucket="avatars", max_bytes=10,
        )
    assert storage_transport.requests == []

    upload_avatar(
        db_session, storage_client, alice, filename="Me.JPG", content_type="image/jpeg",
        content=b"jpeg", bucket="avatars", max_bytes=10,
    )

    request = storage_transport.requests[-1]
    assert request.url.path.startswith(f"/storage/v1/object/avatars/{alice.id}/{alice.id}-")
    assert request.url.path.endswith(".jpg")
    assert request.headers["x-upsert"] == "true"
    assert alice.avatar_url.startswith(f"{STORAGE}/avatars/{alice.id}/")
    assert avatar_path("u1", "Me.JPG", now_ms=5) == "u1/u1-5.jpg"
    assert avatar_path("u1", "noext", now_ms=5) == "u1/u1-5.png"


def test_update_own_profile_blanks_become_null(db_session):
    alice = make_profile(db_session, team="Design")

    update_own_profile(db_session, alice, {"team": "  ", "phone": " 555 "})
    assert alice.team is None
    assert alice.phone == "555"
    with pytest.raises(ValueError):
        update_own_profile(db_session, alice, {"full_name": ""})


def _start_of_today():
    return datetime.now(timezone.utc).replace(hour=0, minute=1, second=0, microsecond=0)


def test_personal_stats(db_session):
    alice = make_profile(db_session)
    admin = make_profile(db_session, role="admin")
    make_entry(db_session, alice, _start_of_today(), hours=2)
    make_entry(db_session, alice, datetime(2020, 1, 6, 9, 0, tzinfo=timezone.utc), hours=3)
    make_project(db_session, admin, name="Live", status="active", members=[alice])
    make_project(db_session, admin, name="Done", status="completed", members=[alice])

    stats = personal_stats(db_session, alice, "UTC")

    assert stats["today_hours"] == 2.0
    assert stats["week_hours"] == 2.0
    assert stats["month_hours"] == 2.0
    assert stats["total_hours"] == 5.0
    assert (stats["projects_assigned"], stats["active_projects"], stats["completed_projects"]) == (2, 1, 1)


def test_team_overview_filters(db_session):
    admin = make_profile(db_session, role="admin", full_name="Ada", team="Ops")
    make_profile(db_session, role="manager", full_name="Mona", team="Ops")
    alice = make_profile(db_session, full_name="Alice", team="Design")
    make_entry(db_session, alice, _start_of_today(), hours=1.5)

    everyone = team_overview(db_session, admin, "UTC")
    assert [row["profile"].full_name for row in everyone["members"]] == ["Ada", "Alice", "Mona"]
    assert everyone["departments"] == ["Design", "Ops"]
    assert everyone["members"][1]["hours_today"] == 1.5

    assert [r["profile"].full_name for r in team_overview(db_session, admin, "UTC", search="manag")["members"]] == ["Mona"]
    ops = team_overview(db_session, admin, "UTC", department="Ops", role="admin")
    assert [r["profile"].full_name for r in ops["members"]] == ["Ada"]
    assert team_overview(db_session, alice, "UTC")["total"] == 1


def test_dashboard_summary_paginates_recent_entries(db_session):
    alice = make_profile(db_session)
    admin = make_profile(db_session, role="admin")
    project = make_project(db_session, admin, status="active", members=[alice])
    start = _start_of_today() - timedelta(days=30)
    for offset in range(12):
        make_entry(db_session, alice, start + timedelta(hours=offset), hours=0.5, project=project)

    first = dashboard_summary(db_session, alice, "UTC")
    second = dashboard_summary(db_session, alice, "UTC", page=2)

    assert first["entry_count"] == 12
    assert first["pages"] == 2
    assert len(first["entries"]) == 10
    assert len(second["entries"]) == 2
    assert first["entries"][0]["projects"] == ["Website"]
    assert first["entries"][0]["billable"] is True
    assert first["total_hours"] == 6.0
    assert first["today_hours"] == 0
    assert first["active_projects"] == 1
    assert (first["team_total"], first["team_online"]) == (1, 0)
