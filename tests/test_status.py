"""Tests for status reporting."""

import pytest

from conftest import CLASSES, FakeLocalStore, FakeRemoteStore, write_file
from source_tracking.models import RemoteChangeElement, StatusOutputRow
from source_tracking.status import StatusFormatter


def rows_by_path(rows):
    return {(row.origin, row.file_path or row.full_name): row for row in rows}


@pytest.mark.asyncio
async def test_local_rows(make_tracking, project_dir):
    """Test local rows carry type, name, state and the ignored flag."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    write_file(project_dir, f"{CLASSES}/Skip.cls")
    local = FakeLocalStore(
        adds=[f"{CLASSES}/Foo.cls", f"{CLASSES}/Skip.cls"],
        deletes=[f"{CLASSES}/Gone.cls"],
    )
    tracking = make_tracking(
        local=local, config_overrides={"ignore": {"patterns": [f"{CLASSES}/Skip.cls"]}}
    )

    rows = await tracking.get_status(local=True, remote=False)

    assert rows == [
        StatusOutputRow("ApexClass", "local", "add", "Foo", f"{CLASSES}/Foo.cls", ignored=False),
        StatusOutputRow("ApexClass", "local", "add", "Skip", f"{CLASSES}/Skip.cls", ignored=True),
        StatusOutputRow("ApexClass", "local", "delete", "Gone", f"{CLASSES}/Gone.cls", ignored=False),
    ]


@pytest.mark.asyncio
async def test_unresolvable_local_files_are_left_out(make_tracking, project_dir):
    """Test files that map to no component produce no row."""
    write_file(project_dir, "force-app/readme.md")
    tracking = make_tracking(local=FakeLocalStore(adds=["force-app/readme.md"]))

    assert await tracking.get_status(local=True, remote=False) == []


@pytest.mark.asyncio
async def test_remote_rows(make_tracking, project_dir):
    """Test remote rows, with and without local files."""
    write_file(project_dir, f"{CLASSES}/Changed.cls")
    remote = FakeRemoteStore(
        [
            RemoteChangeElement("ApexClass", "Brand"),
            RemoteChangeElement("ApexClass", "Changed", modified=True),
            RemoteChangeElement("ApexClass", "Removed", deleted=True),
        ]
    )
    tracking = make_tracking(remote=remote)

    rows = await tracking.get_status(local=False, remote=True)

    by_path = rows_by_path(rows)
    assert by_path[("remote", "Removed")].state == "delete"
    assert by_path[("remote", "Brand")].state == "add"
    assert by_path[("remote", "Brand")].file_path is None
    assert by_path[("remote", f"{CLASSES}/Changed.cls")].state == "modify"
    assert by_path[("remote", f"{CLASSES}/Changed.cls")].ignored is False
    assert all(row.conflict is None for row in rows)
    assert tracking.factory_counts["local"] == 0


@pytest.mark.asyncio
async def test_both_sides_flag_conflicts(make_tracking, project_dir):
    """Test rows of conflicting files are flagged when both sides are reported."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    write_file(project_dir, f"{CLASSES}/Bar.cls")
    local = FakeLocalStore(modifies=[f"{CLASSES}/Foo.cls", f"{CLASSES}/Bar.cls"])
    remote = FakeRemoteStore(
        [
            RemoteChangeElement("ApexClass", "Foo", modified=True),
            RemoteChangeElement("ApexClass", "Brand"),
        ]
    )
    tracking = make_tracking(local=local, remote=remote)

    rows = await tracking.get_status(local=True, remote=True)

    by_path = rows_by_path(rows)
    assert by_path[("local", f"{CLASSES}/Foo.cls")].conflict is True
    assert by_path[("remote", f"{CLASSES}/Foo.cls")].conflict is True
    assert by_path[("local", f"{CLASSES}/Bar.cls")].conflict is False
    assert by_path[("remote", "Brand")].conflict is False


class TestStatusFormatter:
    """Text rendering of status rows."""

    def test_no_changes(self):
        assert StatusFormatter().format_status([]) == "No local or remote changes found."

    def test_table(self):
        rows = [
            StatusOutputRow("ApexClass", "remote", "add", "Brand"),
            StatusOutputRow("ApexClass", "local", "modify", "Foo", f"{CLASSES}/Foo.cls", False, True),
            StatusOutputRow("ApexClass", "local", "add", "Skip", f"{CLASSES}/Skip.cls", True, False),
        ]

        lines = StatusFormatter().format_status(rows).splitlines()

        assert lines[0].split() == ["STATE", "FULL", "NAME", "TYPE", "PROJECT", "PATH"]
        assert set(lines[1]) == {"-", " "}
        assert lines[2].startswith("Local Add (Ignored)")
        assert lines[3].startswith("Local Changed (Conflict)")
        assert lines[4].startswith("Remote Add")
        assert lines[4].rstrip().endswith("ApexClass")


@pytest.mark.asyncio
async def test_every_file_of_a_conflicted_component_is_flagged(make_tracking, project_dir):
    """Test unchanged local files of a conflicted component are flagged too."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    write_file(project_dir, f"{CLASSES}/Foo.cls-meta.xml")
    local = FakeLocalStore(modifies=[f"{CLASSES}/Foo.cls"])
    remote = FakeRemoteStore([RemoteChangeElement("ApexClass", "Foo", modified=True)])
    tracking = make_tracking(local=local, remote=remote)

    rows = await tracking.get_status(local=True, remote=True)

    by_path = rows_by_path(rows)
    assert by_path[("local", f"{CLASSES}/Foo.cls")].conflict is True
    assert by_path[("remote", f"{CLASSES}/Foo.cls")].conflict is True
    assert by_path[("remote", f"{CLASSES}/Foo.cls-meta.xml")].conflict is True
