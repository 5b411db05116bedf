"""Tests for component set assembly."""

import pytest

from conftest import CLASSES, LWC, FakeLocalStore, FakeRemoteStore, write_file
from source_tracking.models import RemoteChangeElement


@pytest.mark.asyncio
async def test_deletes_and_non_deletes_in_one_set(make_tracking, project_dir):
    """Test that a single set carries both deploys and destructive changes."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    local = FakeLocalStore(adds=[f"{CLASSES}/Foo.cls"], deletes=[f"{CLASSES}/Gone.cls"])
    tracking = make_tracking(local=local)

    [component_set] = await tracking.local_changes_as_component_sets()

    assert component_set.source_api_version == "58.0"
    assert [c.full_name for c in component_set.source_components()] == ["Foo"]
    assert [c.full_name for c in component_set.destructive_components()] == ["Gone"]


@pytest.mark.asyncio
async def test_every_component_lands_in_exactly_one_set(make_tracking, project_dir):
    """Test the per-package split partitions the changed components."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    write_file(project_dir, "unpackaged/classes/Bar.cls")
    local = FakeLocalStore(
        adds=[f"{CLASSES}/Foo.cls", "unpackaged/classes/Bar.cls"],
        deletes=["unpackaged/classes/Old.cls"],
    )
    tracking = make_tracking(
        local=local,
        config_overrides={
            "package_directories": [{"path": "force-app", "default": True}, "unpackaged"],
            "push_package_directories_sequentially": True,
        },
    )

    sets = await tracking.local_changes_as_component_sets()

    assert [sorted(c.full_name for c in s) for s in sets] == [["Foo"], ["Bar", "Old"]]
    assert sets[1].is_destructive("ApexClass", "Old")


@pytest.mark.asyncio
async def test_explicit_argument_overrides_project_setting(make_tracking, project_dir):
    """Test that by_package_dir=False builds one set despite the project setting."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    write_file(project_dir, "unpackaged/classes/Bar.cls")
    local = FakeLocalStore(adds=[f"{CLASSES}/Foo.cls", "unpackaged/classes/Bar.cls"])
    tracking = make_tracking(
        local=local,
        config_overrides={
            "package_directories": ["force-app", "unpackaged"],
            "push_package_directories_sequentially": True,
        },
    )

    sets = await tracking.local_changes_as_component_sets(by_package_dir=False)

    assert len(sets) == 1
    assert sorted(c.full_name for c in sets[0]) == ["Bar", "Foo"]


@pytest.mark.asyncio
async def test_package_without_changes_is_omitted(make_tracking, project_dir):
    """Test that empty groupings produce no set."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    (project_dir / "unpackaged").mkdir()
    tracking = make_tracking(
        local=FakeLocalStore(adds=[f"{CLASSES}/Foo.cls"]),
        config_overrides={"package_directories": ["force-app", "unpackaged"]},
    )

    sets = await tracking.local_changes_as_component_sets(by_package_dir=True)

    assert len(sets) == 1


@pytest.mark.asyncio
async def test_no_changes(make_tracking):
    """Test that no local changes produce no sets."""
    tracking = make_tracking()

    assert await tracking.local_changes_as_component_sets() == []


@pytest.mark.asyncio
async def test_only_unresolvable_changes(make_tracking, project_dir):
    """Test that a set with nothing resolvable is dropped."""
    write_file(project_dir, "force-app/readme.md")
    tracking = make_tracking(local=FakeLocalStore(adds=["force-app/readme.md"]))

    assert await tracking.local_changes_as_component_sets() == []


@pytest.mark.asyncio
async def test_ignored_changes_are_not_deployed(make_tracking, project_dir):
    """Test that ignored files never reach a component set."""
    write_file(project_dir, f"{CLASSES}/Foo.cls")
    write_file(project_dir, f"{CLASSES}/Foo.tmp")
    tracking = make_tracking(local=FakeLocalStore(adds=[f"{CLASSES}/Foo.cls", f"{CLASSES}/Foo.tmp"]))

    [component_set] = await tracking.local_changes_as_component_sets()

    assert component_set.keys() == [("ApexClass", "Foo")]


@pytest.mark.asyncio
async def test_partial_bundle_delete_redeploys_bundle(make_tracking, project_dir):
    """Test that deleting one file of a bundle deploys what remains."""
    write_file(project_dir, f"{LWC}/foo/foo.js")
    write_file(project_dir, f"{LWC}/foo/foo.js-meta.xml")
    tracking = make_tracking(local=FakeLocalStore(deletes=[f"{LWC}/foo/foo.css"]))

    [component_set] = await tracking.local_changes_as_component_sets()

    assert component_set.has("LightningComponentBundle", "foo")
    assert not component_set.is_destructive("LightningComponentBundle", "foo")
    assert component_set.destructive_components() == []


@pytest.mark.asyncio
async def test_full_bundle_delete_is_destructive(make_tracking):
    """Test that a bundle with no files left on disk is deleted."""
    local = FakeLocalStore(deletes=[f"{LWC}/foo/foo.js", f"{LWC}/foo/foo.js-meta.xml"])
    tracking = make_tracking(local=local)

    [component_set] = await tracking.local_changes_as_component_sets()

    assert component_set.is_destructive("LightningComponentBundle", "foo")


@pytest.mark.asyncio
async def test_remote_non_deletes(make_tracking, project_dir):
    """Test remote adds without local files are included by identity."""
    write_file(project_dir, f"{CLASSES}/Changed.cls")
    remote = FakeRemoteStore(
        [
            RemoteChangeElement("ApexClass", "Brand", revision=1),
            RemoteChangeElement("ApexClass", "Changed", modified=True, revision=2),
            RemoteChangeElement("ApexClass", "Removed", deleted=True, revision=3),
        ]
    )
    tracking = make_tracking(remote=remote)

    component_set = await tracking.remote_non_deletes_as_component_set()

    assert sorted(component_set.keys()) == [("ApexClass", "Brand"), ("ApexClass", "Changed")]
    by_name = {c.full_name: c for c in component_set}
    assert by_name["Brand"].content is None
    assert by_name["Changed"].content == f"{CLASSES}/Changed.cls"
    assert component_set.source_api_version == "58.0"


@pytest.mark.asyncio
async def test_remote_non_deletes_empty(make_tracking):
    """Test that no remote changes give an empty set."""
    tracking = make_tracking()

    component_set = await tracking.remote_non_deletes_as_component_set()

    assert len(component_set) == 0
