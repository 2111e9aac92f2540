import pytest
from sqlalchemy import func, select

from conftest import make_entry, make_profile, make_project, utc
from timeflow.crud.groups import create_group
from timeflow.crud.projects import (
    create_project,
    create_task,
    delete_project,
    delete_task,
    get_project,
    is_default_project_name,
    list_projects,
    list_tasks,
    project_hours,
    project_summary,
    rename_task,
    update_project,
)
from timeflow.models import ProjectMember, ProjectTimeEntry, Task, TimeEntry
from timeflow.services.changefeed import feed


def test_employees_cannot_create_projects(db_session):
    employee = make_profile(db_session)
    with pytest.raises(PermissionError):
        create_project(db_session, employee, {"name": "Side quest"})


def test_create_project_defaults_and_group_expansion(db_session):
    manager = make_profile(db_session, role="manager")
    alice = make_profile(db_session)
    bob = make_profile(db_session)
    group = create_group(db_session, manager, {"name": "Designers", "member_ids": [bob.id, alice.id]})
    version = feed.version

    project = create_project(
        db_session,
        manager,
        {"name": "  Website  ", "member_ids": [alice.id], "group_ids": [group.id]},
    )

    assert project.name == "Website"
    assert project.status == "pending"
    assert project.manager_ids == [manager.id]
    assert sorted(project.member_ids) == sorted([alice.id, bob.id])
    assert [(e.table, e.action) for e in feed.events_since(version, table="projects")] == [("projects", "insert")]


@pytest.mark.parametrize("payload", [{"name": "  "}, {"name": "Ok", "status": "archived"}])
def test_create_project_validation(db_session, payload):
    admin = make_profile(db_session, role="admin")
    with pytest.raises(ValueError):
        create_project(db_session, admin, payload)


def test_project_visibility_by_role(db_session):
    admin = make_profile(db_session, role="admin")
    manager = make_profile(db_session, role="manager")
    employee = make_profile(db_session)
    owned = make_project(db_session, manager, name="Owned")
    managed = make_project(db_session, admin, name="Managed", managers=[manager])
    staffed = make_project(db_session, admin, name="Staffed", members=[employee])
    make_project(db_session, admin, name="Elsewhere")

    assert {p.name for p in list_projects(db_session, admin)} == {"Owned", "Managed", "Staffed", "Elsewhere"}
    assert {p.id for p in list_projects(db_session, manager)} == {owned.id, managed.id}
    assert [p.id for p in list_projects(db_session, employee)] == [staffed.id]


def test_only_creator_managers_or_admin_can_update(db_session):
    creator = make_profile(db_session, role="manager")
    outsider = make_profile(db_session, role="manager")
    alice = make_profile(db_session)
    bob = make_profile(db_session)
    project = make_project(db_session, creator, members=[alice])

    with pytest.raises(PermissionError):
        update_project(db_session, outsider, project, {"name": "Hijacked"})

    updated = update_project(
        db_session, creator, project, {"status": "in_progress", "member_ids": [bob.id], "project_managers": [outsider.id]}
    )
    assert updated.status == "in_progress"
    assert updated.member_ids == [bob.id]
    # The new manager may now edit it.
    update_project(db_session, outsider, updated, {"description": "Now mine too"})
    assert get_project(db_session, project.id).description == "Now mine too"


def test_update_without_member_ids_keeps_members_and_adds_groups(db_session):
    admin = make_profile(db_session, role="admin")
    alice = make_profile(db_session)
    bob = make_profile(db_session)
    project = make_project(db_session, admin, members=[alice])
    group = create_group(db_session, admin, {"name": "Bobs", "member_ids": [bob.id]})

    updated = update_project(db_session, admin, project, {"group_ids": [group.id]})

    assert sorted(updated.member_ids) == sorted([alice.id, bob.id])


@pytest.mark.filterwarnings("error::sqlalchemy.exc.SAWarning")
def test_delete_project_requires_permission(db_session):
    creator = make_profile(db_session, role="manager")
    employee = make_profile(db_session)
    project = make_project(db_session, creator, members=[employee])

    with pytest.raises(PermissionError):
        delete_project(db_session, employee, project)

    delete_project(db_session, creator, project)
    assert get_project(db_session, project.id) is None
    assert db_session.scalar(select(func.count()).select_from(ProjectMember)) == 0


def test_project_hours_per_member(db_session):
    admin = make_profile(db_session, role="admin")
    alice = make_profile(db_session, full_name="Alice")
    bob = make_profile(db_session, full_name="Bob")
    project = make_project(db_session, admin, members=[alice, bob])
    make_entry(db_session, alice, utc(2025, 3, 10, 9, 0), hours=1.5, project=project)
    make_entry(db_session, alice, utc(2025, 3, 11, 9, 0), hours=1, project=project)
    make_entry(db_session, bob, utc(2025, 3, 10, 9, 0), hours=0.25, project=project)
    make_entry(db_session, bob, utc(2025, 3, 10, 12, 0), hours=4)

    hours = project_hours(db_session, project, with_entries=True)

    assert hours["hours_spent"] == 2.8
    by_user = {row["user_name"]: row for row in hours["member_hours"]}
    assert by_user["Alice"]["hours"] == 2.5
    assert by_user["Bob"]["hours"] == 0.3
    assert [e.start_time.day for e in by_user["Alice"]["entries"]] == [11, 10]


def test_default_project_also_counts_unlinked_project_rows(db_session):
    admin = make_profile(db_session, role="admin")
    project = make_project(db_session, admin, name="Default Project")
    entry = TimeEntry(user_id=admin.id, start_time=utc(2025, 3, 10, 9, 0), duration=3600)
    entry.project_links = [ProjectTimeEntry(project_id=None)]
    db_session.add(entry)
    db_session.commit()

    assert is_default_project_name("Default Project")
    assert is_default_project_name("Misc")
    assert not is_default_project_name("Website")
    assert project_hours(db_session, project)["hours_spent"] == 1.0


def test_project_summary_reports_manage_rights(db_session):
    creator = make_profile(db_session, role="manager", full_name="Mona")
    employee = make_profile(db_session)
    project = make_project(db_session, creator, managers=[creator], members=[employee])

    assert project_summary(db_session, creator, project)["can_manage"] is True
    summary = project_summary(db_session, employee, project)
    assert summary["can_manage"] is False
    assert [m.full_name for m in summary["managers"]] == ["Mona"]


def test_task_catalogue(db_session):
    admin = make_profile(db_session, role="admin")
    db_session.add(Task(name="Meetings", category="default"))
    db_session.commit()

    with pytest.raises(ValueError):
        create_task(db_session, admin, "   ")
    task = create_task(db_session, admin, " Design ")
    assert task.category == "custom"
    assert [t.name for t in list_tasks(db_session)] == ["Meetings", "Design"]

    rename_task(db_session, admin, task, "Research")
    project = create_project(db_session, admin, {"name": "Lab", "task_id": task.id})
    assert project.task_id == task.id

    delete_task(db_session, admin, task)
    db_session.expire_all()
    assert get_project(db_session, project.id).task_id is None
    assert [t.name for t in list_tasks(db_session)] == ["Meetings"]


def test_only_admins_and_managers_change_tasks(db_session):
    manager = make_profile(db_session, role="manager")
    task = create_task(db_session, manager, "Planning")

    for role in ("employee", "hr", "accountant"):
        outsider = make_profile(db_session, role=role)
        with pytest.raises(PermissionError):
            create_task(db_session, outsider, "Sneaky")
        with pytest.raises(PermissionError):
            rename_task(db_session, outsider, task, "Renamed")
        with pytest.raises(PermissionError):
            delete_task(db_session, outsider, task)

    db_session.expire_all()
    assert [t.name for t in list_tasks(db_session)] == ["Planning"]
