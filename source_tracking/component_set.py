"""Components and component sets."""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

ComponentKey = Tuple[str, str]


@dataclass(frozen=True)
class SourceComponent:
    """A typed component, optionally backed by local files.

    Components built from remote identities alone have neither `xml` nor
    `content`.
    """

    type: str
    full_name: str
    xml: Optional[str] = None
    content: Optional[str] = None

    @property
    def key(self) -> ComponentKey:
        """Get the (type, full_name) identity."""
        return (self.type, self.full_name)


class ComponentSet:
    """Components keyed by identity, each flagged destructive or not."""

    def __init__(
        self,
        components: Optional[Iterable[SourceComponent]] = None,
        source_api_version: Optional[str] = None,
    ):
        self._components: Dict[ComponentKey, SourceComponent] = {}
        self._destructive: Dict[ComponentKey, bool] = {}
        self.source_api_version = source_api_version
        for component in components or []:
            self.add(component)

    def add(self, component: SourceComponent, destructive: bool = False) -> None:
        """Add a component.

        A normal add clears an earlier destructive flag for the same identity;
        a destructive add never demotes an existing normal entry.
        """
        key = component.key
        if key in self._components:
            if not destructive:
                self._destructive[key] = False
                if component.xml or component.content:
                    self._components[key] = component
            return
        self._components[key] = component
        self._destructive[key] = destructive

    def has(self, type_name: str, full_name: str) -> bool:
        """Check whether an identity is present."""
        return (type_name, full_name) in self._components

    def is_destructive(self, type_name: str, full_name: str) -> bool:
        """Check whether an identity is marked for deletion."""
        return self._destructive.get((type_name, full_name), False)

    def source_components(self) -> List[SourceComponent]:
        """Get components to deploy or retrieve."""
        return [c for key, c in self._components.items() if not self._destructive[key]]

    def destructive_components(self) -> List[SourceComponent]:
        """Get components marked for deletion."""
        return [c for key, c in self._components.items() if self._destructive[key]]

    def keys(self) -> List[ComponentKey]:
        """Get all identities."""
        return list(self._components)

    def __contains__(self, key: object) -> bool:
        return key in self._components

    def __iter__(self) -> Iterator[SourceComponent]:
        return iter(self._components.values())

    def __len__(self) -> int:
        return len(self._components)

    @property
    def size(self) -> int:
        """Get number of components."""
        return len(self._components)

    def __repr__(self) -> str:
        return (
            f"ComponentSet(size={len(self)}, "
            f"destructive={len(self.destructive_components())})"
        )
