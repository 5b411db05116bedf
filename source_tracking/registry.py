"""Metadata registry: maps project files to typed components.

Resolution works against a tree. `FilesystemTree` reads the project on disk;
`VirtualTree` holds a list of paths only, which is how files that are already
deleted get resolved. All paths are project-relative posix strings.
"""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Set

from source_tracking.component_set import ComponentKey, ComponentSet, SourceComponent
from source_tracking.config_loader import ConfigError
from source_tracking.logging_setup import get_logger
from source_tracking.paths import to_posix

logger = get_logger("registry")

STRATEGY_MATCHING_CONTENT = "matching_content"
STRATEGY_BUNDLE = "bundle"
STRATEGY_XML_ONLY = "xml_only"
META_XML = "-meta.xml"


class ResolutionError(Exception):
    """Raised when a path cannot be resolved to a component."""

    pass


@dataclass(frozen=True)
class MetadataType:
    """How one metadata type is laid out on disk."""

    name: str
    directory: str
    strategy: str
    suffix: Optional[str] = None
    meta_suffix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetadataType":
        """Build a type definition from a config mapping."""
        for key in ("name", "directory", "strategy"):
            if not isinstance(data.get(key), str):
                raise ConfigError(f"Metadata type definition missing '{key}': {data!r}")
        strategy = data["strategy"]
        if strategy not in (STRATEGY_MATCHING_CONTENT, STRATEGY_BUNDLE, STRATEGY_XML_ONLY):
            raise ConfigError(f"Unknown metadata type strategy: {strategy}")
        if strategy != STRATEGY_BUNDLE and not data.get("suffix"):
            raise ConfigError(f"Metadata type {data['name']} requires a suffix")
        return cls(
            name=data["name"],
            directory=data["directory"],
            strategy=strategy,
            suffix=data.get("suffix"),
            meta_suffix=data.get("meta_suffix"),
        )


DEFAULT_TYPES = [
    MetadataType("ApexClass", "classes", STRATEGY_MATCHING_CONTENT, suffix="cls"),
    MetadataType("ApexTrigger", "triggers", STRATEGY_MATCHING_CONTENT, suffix="trigger"),
    MetadataType("ApexPage", "pages", STRATEGY_MATCHING_CONTENT, suffix="page"),
    MetadataType("Layout", "layouts", STRATEGY_XML_ONLY, suffix="layout"),
    MetadataType("LightningComponentBundle", "lwc", STRATEGY_BUNDLE, meta_suffix=".js-meta.xml"),
    MetadataType("AuraDefinitionBundle", "aura", STRATEGY_BUNDLE, meta_suffix=".cmp-meta.xml"),
]


def _strip_dot(path: str) -> str:
    return path[2:] if path.startswith("./") else path


class FilesystemTree:
    """Tree backed by the project directory on disk."""

    def __init__(self, root: str):
        self.root = Path(root)

    def exists(self, path: str) -> bool:
        return (self.root / path).exists()

    def is_dir(self, path: str) -> bool:
        return (self.root / path).is_dir()

    def list_files(self, directory: str) -> List[str]:
        """List files below a directory, recursively and sorted."""
        base = self.root / directory
        if not base.is_dir():
            return []
        return sorted(
            to_posix(str(p.relative_to(self.root))) for p in base.rglob("*") if p.is_file()
        )


class VirtualTree:
    """Tree holding only a set of file paths."""

    def __init__(self, files: Iterable[str]):
        self.files: Set[str] = {_strip_dot(to_posix(f)) for f in files}

    @classmethod
    def from_file_paths(cls, paths: Iterable[str]) -> "VirtualTree":
        return cls(paths)

    def exists(self, path: str) -> bool:
        return path in self.files or self.is_dir(path)

    def is_dir(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        return any(f.startswith(prefix) for f in self.files)

    def list_files(self, directory: str) -> List[str]:
        prefix = directory.rstrip("/") + "/"
        return sorted(f for f in self.files if f.startswith(prefix))


class MetadataRegistry:
    """Resolves project files to typed components."""

    def __init__(self, types: Optional[List[MetadataType]] = None):
        self._types: Dict[str, MetadataType] = {}
        self._types_by_directory: Dict[str, MetadataType] = {}
        for type_def in types if types is not None else DEFAULT_TYPES:
            self.register(type_def)

    @classmethod
    def from_definitions(cls, definitions: List[Dict[str, Any]]) -> "MetadataRegistry":
        """Build the default registry extended with configured types."""
        registry = cls()
        for definition in definitions:
            registry.register(MetadataType.from_dict(definition))
        return registry

    def register(self, type_def: MetadataType) -> None:
        self._types[type_def.name] = type_def
        self._types_by_directory[type_def.directory] = type_def

    def supports_type(self, type_name: str) -> bool:
        return type_name in self._types

    def is_bundle(self, component: SourceComponent) -> bool:
        type_def = self._types.get(component.type)
        return type_def is not None and type_def.strategy == STRATEGY_BUNDLE

    def component_content_path(self, component: SourceComponent) -> Optional[str]:
        return component.content

    def has(self, component_set: ComponentSet, type_name: str, full_name: str) -> bool:
        return component_set.has(type_name, full_name)

    def resolve(self, path: str, tree) -> List[SourceComponent]:
        """Resolve a file or directory to the components it belongs to.

        Raises:
            ResolutionError: If the path is missing from the tree or matches no type
        """
        path = to_posix(path).rstrip("/")
        if not tree.exists(path):
            raise ResolutionError(f"{path} does not exist")

        if tree.is_dir(path):
            return self._resolve_directory(path, tree)

        parts = PurePosixPath(path).parts
        # innermost type directory wins
        for index in range(len(parts) - 2, -1, -1):
            type_def = self._types_by_directory.get(parts[index])
            if type_def is None:
                continue
            component = self._resolve_with(type_def, parts, index, tree)
            if component is not None:
                return [component]

        raise ResolutionError(f"Could not infer a metadata type for {path}")

    def _resolve_directory(self, directory: str, tree) -> List[SourceComponent]:
        found: Dict[ComponentKey, SourceComponent] = {}
        for filename in tree.list_files(directory):
            try:
                for component in self.resolve(filename, tree):
                    found.setdefault(component.key, component)
            except ResolutionError as e:
                logger.debug(f"Skipping {filename}: {e}")
        if not found:
            raise ResolutionError(f"No components found in {directory}")
        return list(found.values())

    def _resolve_with(
        self, type_def: MetadataType, parts: tuple, index: int, tree
    ) -> Optional[SourceComponent]:
        base = "/".join(parts[: index + 1])

        if type_def.strategy == STRATEGY_BUNDLE:
            if len(parts) < index + 3:
                return None
            name = parts[index + 1]
            content = f"{base}/{name}"
            xml = f"{content}/{name}{type_def.meta_suffix}" if type_def.meta_suffix else None
            if xml is not None and not tree.exists(xml):
                xml = None
            return SourceComponent(type_def.name, name, xml=xml, content=content)

        if len(parts) != index + 2:
            return None
        filename = parts[-1]
        extension = f".{type_def.suffix}"

        if filename.endswith(extension + META_XML):
            name = filename[: -len(extension + META_XML)]
        elif type_def.strategy == STRATEGY_MATCHING_CONTENT and filename.endswith(extension):
            name = filename[: -len(extension)]
        else:
            return None
        if not name:
            return None

        xml = f"{base}/{name}{extension}{META_XML}"
        xml_path = xml if tree.exists(xml) else None
        if type_def.strategy == STRATEGY_XML_ONLY:
            return SourceComponent(type_def.name, name, xml=xml_path)

        content = f"{base}/{name}{extension}"
        content_path = content if tree.exists(content) else None
        return SourceComponent(type_def.name, name, xml=xml_path, content=content_path)

    def walk_content(self, component: SourceComponent, tree) -> List[str]:
        """List the content files of a component, excluding its definition file."""
        if not component.content:
            return []
        if self.is_bundle(component):
            return [f for f in tree.list_files(component.content) if f != component.xml]
        return [component.content] if tree.exists(component.content) else []

    def component_files(self, component: SourceComponent, tree) -> List[str]:
        """List every file of a component: definition file first, then content."""
        files = [component.xml] if component.xml else []
        files.extend(f for f in self.walk_content(component, tree) if f not in files)
        return files

    def components_in(
        self, directories: Iterable[str], tree, include: Iterable[ComponentKey]
    ) -> List[SourceComponent]:
        """Find source-backed components below directories matching identities."""
        wanted = set(include)
        found: Dict[ComponentKey, SourceComponent] = {}
        if not wanted:
            return []
        for directory in directories:
            for filename in tree.list_files(directory):
                try:
                    components = self.resolve(filename, tree)
                except ResolutionError:
                    continue
                for component in components:
                    if component.key in wanted:
                        found.setdefault(component.key, component)
        return list(found.values())
