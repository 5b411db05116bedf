"""Data types shared across source tracking."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from source_tracking.config_loader import Config
from source_tracking.paths import to_posix


class Origin(Enum):
    """Which side of the sync a change was observed on."""

    LOCAL = "local"
    REMOTE = "remote"


class ChangeState(Enum):
    """Change states a caller can ask for."""

    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"
    NONDELETE = "nondelete"


class ChangeFormat(Enum):
    """Output shapes for a change query."""

    FILENAMES = "string"
    CHANGE_RESULT = "ChangeResult"
    CHANGE_RESULT_WITH_PATHS = "ChangeResultWithPaths"
    COMPONENTS = "SourceComponent"


class ComponentStatus(Enum):
    """Per-file outcome of a deploy or retrieve."""

    CREATED = "Created"
    CHANGED = "Changed"
    UNCHANGED = "Unchanged"
    DELETED = "Deleted"
    FAILED = "Failed"


@dataclass
class ChangeResult:
    """One normalized change, from either side."""

    origin: Origin
    type: Optional[str] = None
    name: Optional[str] = None
    filenames: List[str] = field(default_factory=list)
    ignored: bool = False
    deleted: bool = False
    modified: bool = False

    @property
    def state(self) -> str:
        """Get add/modify/delete from the deleted and modified flags."""
        if self.deleted:
            return "delete"
        if self.modified:
            return "modify"
        return "add"


@dataclass(frozen=True)
class RemoteChangeElement:
    """A typed element the remote platform reports as changed.

    `deleted` and `modified` are never both set; neither set means an add.
    """

    type: str
    name: str
    deleted: bool = False
    modified: bool = False
    revision: int = 0

    def to_change_result(self) -> ChangeResult:
        """Convert to a remote ChangeResult without file paths."""
        return ChangeResult(
            origin=Origin.REMOTE,
            type=self.type,
            name=self.name,
            deleted=self.deleted,
            modified=self.modified,
        )


@dataclass(frozen=True)
class RemoteSyncInput:
    """An element whose remote revision should be marked as synced."""

    type: str
    full_name: str
    state: ComponentStatus
    file_path: Optional[str] = None


@dataclass
class FileResponse:
    """Outcome for one file of a deploy or retrieve."""

    full_name: str
    type: str
    state: ComponentStatus
    file_path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DeployResult:
    """Deploy outcome as reported by the deploy orchestrator."""

    file_responses: List[FileResponse] = field(default_factory=list)

    def get_file_responses(self) -> List[FileResponse]:
        """Get per-file outcomes."""
        return list(self.file_responses)


@dataclass
class RetrieveResult:
    """Retrieve outcome as reported by the retrieve orchestrator."""

    file_responses: List[FileResponse] = field(default_factory=list)


@dataclass
class Conflict:
    """A component changed independently on both sides."""

    type: str
    name: str
    filenames: set = field(default_factory=set)


@dataclass
class StatusOutputRow:
    """One row of a status report, flattened per file."""

    type: str
    origin: str
    state: str
    full_name: str
    file_path: Optional[str] = None
    ignored: Optional[bool] = None
    conflict: Optional[bool] = None


@dataclass(frozen=True)
class Org:
    """The remote org a project is tracked against."""

    org_id: str
    tracks_source: bool = True


@dataclass(frozen=True)
class PackageDirectory:
    """A package directory of the project."""

    name: str
    full_path: str
    default: bool = False


@dataclass(frozen=True)
class Project:
    """A local project with its package directories."""

    path: str
    package_directories: tuple

    @classmethod
    def from_config(cls, config: Config) -> "Project":
        """Build a project from its configuration."""
        root = Path(config.project_path)
        dirs = tuple(
            PackageDirectory(
                name=to_posix(entry["path"]).rstrip("/"),
                full_path=str(root / entry["path"]),
                default=entry["default"],
            )
            for entry in config.package_directories
        )
        return cls(path=str(root), package_directories=dirs)

    def default_package(self) -> PackageDirectory:
        """Get the default package directory, falling back to the first."""
        for package_dir in self.package_directories:
            if package_dir.default:
                return package_dir
        return self.package_directories[0]

    def package_names(self) -> List[str]:
        """Get package directory names relative to the project root."""
        return [package_dir.name for package_dir in self.package_directories]
