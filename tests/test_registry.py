"""Tests for the metadata registry."""

import pytest

from conftest import CLASSES, LWC, write_file
from source_tracking.component_set import ComponentSet, SourceComponent
from source_tracking.config_loader import ConfigError
from source_tracking.registry import (
    FilesystemTree,
    MetadataRegistry,
    ResolutionError,
    VirtualTree,
)


@pytest.fixture
def registry():
    return MetadataRegistry()


class TestResolve:
    """Resolution of paths to components."""

    def test_resolve_class_content_file(self, registry, project_dir):
        write_file(project_dir, f"{CLASSES}/Foo.cls")
        write_file(project_dir, f"{CLASSES}/Foo.cls-meta.xml")

        components = registry.resolve(f"{CLASSES}/Foo.cls", FilesystemTree(str(project_dir)))

        assert components == [
            SourceComponent(
                "ApexClass",
                "Foo",
                xml=f"{CLASSES}/Foo.cls-meta.xml",
                content=f"{CLASSES}/Foo.cls",
            )
        ]

    def test_resolve_class_meta_file(self, registry, project_dir):
        write_file(project_dir, f"{CLASSES}/Foo.cls-meta.xml")

        [component] = registry.resolve(f"{CLASSES}/Foo.cls-meta.xml", FilesystemTree(str(project_dir)))

        assert component.key == ("ApexClass", "Foo")
        assert component.content is None

    def test_resolve_bundle_member(self, registry, project_dir):
        write_file(project_dir, f"{LWC}/foo/foo.js")
        write_file(project_dir, f"{LWC}/foo/foo.js-meta.xml")

        [component] = registry.resolve(f"{LWC}/foo/foo.js", FilesystemTree(str(project_dir)))

        assert component.key == ("LightningComponentBundle", "foo")
        assert component.content == f"{LWC}/foo"
        assert component.xml == f"{LWC}/foo/foo.js-meta.xml"
        assert registry.is_bundle(component)

    def test_resolve_bundle_directory(self, registry, project_dir):
        write_file(project_dir, f"{LWC}/foo/foo.js")
        write_file(project_dir, f"{LWC}/foo/foo.html")

        components = registry.resolve(f"{LWC}/foo", FilesystemTree(str(project_dir)))

        assert [c.key for c in components] == [("LightningComponentBundle", "foo")]

    def test_resolve_deleted_file_on_virtual_tree(self, registry):
        tree = VirtualTree.from_file_paths([f"{CLASSES}/Gone.cls"])

        [component] = registry.resolve(f"{CLASSES}/Gone.cls", tree)

        assert component.key == ("ApexClass", "Gone")
        assert component.xml is None

    def test_resolve_missing_path(self, registry, project_dir):
        with pytest.raises(ResolutionError, match="does not exist"):
            registry.resolve(f"{CLASSES}/Missing.cls", FilesystemTree(str(project_dir)))

    def test_resolve_unknown_type(self, registry):
        tree = VirtualTree.from_file_paths(["force-app/main/default/readme.md"])

        with pytest.raises(ResolutionError, match="Could not infer"):
            registry.resolve("force-app/main/default/readme.md", tree)

    def test_layout_is_xml_only(self, registry):
        path = "force-app/main/default/layouts/Account-Account Layout.layout-meta.xml"
        tree = VirtualTree.from_file_paths([path])

        [component] = registry.resolve(path, tree)

        assert component.key == ("Layout", "Account-Account Layout")
        assert component.content is None

    def test_bundle_named_like_type_directory(self, registry):
        path = f"{LWC}/classes/classes.js"
        tree = VirtualTree.from_file_paths([path])

        [component] = registry.resolve(path, tree)

        assert component.key == ("LightningComponentBundle", "classes")


class TestContent:
    """Content walking and component lookup."""

    def test_walk_bundle_content(self, registry, project_dir):
        write_file(project_dir, f"{LWC}/foo/foo.js")
        write_file(project_dir, f"{LWC}/foo/foo.html")
        write_file(project_dir, f"{LWC}/foo/foo.js-meta.xml")
        tree = FilesystemTree(str(project_dir))
        [component] = registry.resolve(f"{LWC}/foo/foo.js", tree)

        assert registry.walk_content(component, tree) == [f"{LWC}/foo/foo.html", f"{LWC}/foo/foo.js"]
        assert registry.component_files(component, tree)[0] == f"{LWC}/foo/foo.js-meta.xml"

    def test_component_files_for_class(self, registry, project_dir):
        write_file(project_dir, f"{CLASSES}/Foo.cls")
        write_file(project_dir, f"{CLASSES}/Foo.cls-meta.xml")
        tree = FilesystemTree(str(project_dir))
        [component] = registry.resolve(f"{CLASSES}/Foo.cls", tree)

        assert registry.component_files(component, tree) == [
            f"{CLASSES}/Foo.cls-meta.xml",
            f"{CLASSES}/Foo.cls",
        ]

    def test_components_in(self, registry, project_dir):
        write_file(project_dir, f"{CLASSES}/Foo.cls")
        write_file(project_dir, f"{CLASSES}/Bar.cls")
        write_file(project_dir, f"{LWC}/foo/foo.js")

        found = registry.components_in(
            ["force-app"],
            FilesystemTree(str(project_dir)),
            [("ApexClass", "Foo"), ("LightningComponentBundle", "foo"), ("ApexClass", "Nope")],
        )

        assert sorted(c.key for c in found) == [
            ("ApexClass", "Foo"),
            ("LightningComponentBundle", "foo"),
        ]

    def test_supports_type_and_has(self, registry):
        component_set = ComponentSet([SourceComponent("ApexClass", "Foo")])

        assert registry.supports_type("ApexClass")
        assert not registry.supports_type("WaveDashboard")
        assert registry.has(component_set, "ApexClass", "Foo")
        assert not registry.has(component_set, "ApexClass", "Bar")


class TestDefinitions:
    """Configured metadata types."""

    def test_from_definitions_adds_types(self):
        registry = MetadataRegistry.from_definitions(
            [{"name": "StaticResource", "directory": "staticresources", "strategy": "matching_content", "suffix": "resource"}]
        )

        assert registry.supports_type("StaticResource")
        assert registry.supports_type("ApexClass")

    def test_invalid_strategy(self):
        with pytest.raises(ConfigError, match="strategy"):
            MetadataRegistry.from_definitions([{"name": "X", "directory": "x", "strategy": "weird"}])

    def test_missing_suffix(self):
        with pytest.raises(ConfigError, match="suffix"):
            MetadataRegistry.from_definitions([{"name": "X", "directory": "x", "strategy": "xml_only"}])
