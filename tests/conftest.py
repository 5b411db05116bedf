"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from source_tracking.config_loader import Config
from source_tracking.models import Org
from source_tracking.session import create_source_tracking

CLASSES = "force-app/main/default/classes"
LWC = "force-app/main/default/lwc"


class FakeLocalStore:
    """In-memory local store with pending adds, modifies and deletes."""

    def __init__(self, adds=None, modifies=None, deletes=None):
        self.adds = list(adds or [])
        self.modifies = list(modifies or [])
        self.deletes = list(deletes or [])
        self.commits = []
        self.status_calls = 0

    async def get_status(self):
        self.status_calls += 1
        return (
            [(f, "added") for f in self.adds]
            + [(f, "modified") for f in self.modifies]
            + [(f, "deleted") for f in self.deletes]
        )

    async def get_non_delete_filenames(self):
        return sorted(self.adds + self.modifies)

    async def get_delete_filenames(self):
        return sorted(self.deletes)

    async def get_add_filenames(self):
        return sorted(self.adds)

    async def get_modify_filenames(self):
        return sorted(self.modifies)

    async def commit_changes(self, deployed_files=(), deleted_files=(), message=None):
        self.commits.append(
            {"deployed": list(deployed_files), "deleted": list(deleted_files), "message": message}
        )
        self.adds = [f for f in self.adds if f not in deployed_files]
        self.modifies = [f for f in self.modifies if f not in deployed_files]
        self.deletes = [f for f in self.deletes if f not in deleted_files and f not in deployed_files]

    async def delete(self):
        return "fake/local.db"


class FakeRemoteStore:
    """In-memory remote store; can refuse queries to prove they never happen."""

    def __init__(self, elements=None, refuse_queries=False):
        self.elements = list(elements or [])
        self.refuse_queries = refuse_queries
        self.query_count = 0
        self.polled = []
        self.synced = []

    async def retrieve_updates(self):
        if self.refuse_queries:
            raise AssertionError("remote store must not be queried")
        self.query_count += 1
        return list(self.elements)

    async def poll_for_source_tracking(self, elements):
        self.polled.append(list(elements))

    async def sync_specified_elements(self, elements):
        self.synced.append(list(elements))
        keys = {(e.type, e.full_name) for e in elements}
        self.elements = [e for e in self.elements if (e.type, e.name) not in keys]

    async def reset(self, revision=None):
        reset = list(self.elements)
        self.elements = []
        return reset


def write_file(root: Path, relative: str, content: str = "content") -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def project_dir(tmp_path):
    """Create an empty project with a force-app package directory."""
    (tmp_path / "force-app").mkdir()
    return tmp_path


@pytest.fixture
def project_config(project_dir):
    """Create a config dict for the project."""
    return {
        "project_path": str(project_dir),
        "package_directories": [{"path": "force-app", "default": True}],
        "source_api_version": "58.0",
        "ignore": {"extensions": [".tmp"], "filenames_prefix": ["."]},
    }


@pytest.fixture
def make_tracking(project_config):
    """Build a session over fake stores, counting store constructions."""

    def _make(local=None, remote=None, config_overrides=None, **kwargs):
        local = local if local is not None else FakeLocalStore()
        remote = remote if remote is not None else FakeRemoteStore()
        counts = {"local": 0, "remote": 0}

        async def local_factory():
            counts["local"] += 1
            return local

        async def remote_factory():
            counts["remote"] += 1
            return remote

        async def remote_deleter():
            return "fake/remote.db"

        config = Config({**project_config, **(config_overrides or {})})
        tracking = create_source_tracking(
            config,
            Org(org_id="00D000000000001"),
            local_store_factory=local_factory,
            remote_store_factory=remote_factory,
            remote_store_deleter=remote_deleter,
            **kwargs,
        )
        tracking.factory_counts = counts
        return tracking

    return _make


@pytest.fixture
def sample_config(tmp_path):
    """Create a sample config file for testing."""
    config_path = tmp_path / "tracking.yaml"
    config_content = f"""
project_path: {tmp_path.as_posix()}
package_directories:
  - path: force-app
    default: true
  - unpackaged

source_api_version: "58.0"
push_package_directories_sequentially: true

ignore:
  extensions:
    - .tmp
  filenames_prefix:
    - .
  directories:
    - __tests__
  patterns:
    - "**/jsconfig.json"

tracking:
  state_dir: .sf/tracking
  subscribe_events: true
  ignore_conflicts: false
  poll_timeout_seconds: 30
  poll_interval_seconds: 0.5

logging:
  level: DEBUG
"""
    config_path.write_text(config_content)
    return config_path
