"""
Role and resource inheritance for the ACL evaluator.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from shared.errors import CyclicHierarchyError
from shared.logging import get_logger


class HierarchyKind(str, Enum):
    """Which tree an identifier belongs to."""
    ROLE = "role"
    RESOURCE = "resource"


class HierarchyRegistry:
    """Single-parent role and resource trees.

    Parents are never validated: a parent may be registered later or not
    at all. Unregistered identifiers behave as roots. With
    ``detect_cycles`` off, resolving an identifier that sits on a cycle
    never returns.
    """

    def __init__(self, detect_cycles: bool = True):
        self.logger = get_logger("acl.hierarchy")
        self.detect_cycles = detect_cycles
        self._parents: Dict[HierarchyKind, Dict[Any, Any]] = {
            HierarchyKind.ROLE: {},
            HierarchyKind.RESOURCE: {},
        }

    @property
    def roles(self) -> Mapping[Any, Any]:
        return MappingProxyType(self._parents[HierarchyKind.ROLE])

    @property
    def resources(self) -> Mapping[Any, Any]:
        return MappingProxyType(self._parents[HierarchyKind.RESOURCE])

    def register(self, kind: HierarchyKind, identifier: Any, parent: Any = None) -> None:
        """Record ``identifier`` under ``kind``, replacing any earlier parent."""
        kind = HierarchyKind(kind)
        self._parents[kind][identifier] = parent
        self.logger.debug("Hierarchy entry registered", kind=kind.value, identifier=identifier, parent=parent)

    def is_registered(self, kind: HierarchyKind, identifier: Any) -> bool:
        return _hashable(identifier) and identifier in self._parents[HierarchyKind(kind)]

    def parent_of(self, kind: HierarchyKind, identifier: Any) -> Optional[Any]:
        if not _hashable(identifier):
            return None
        return self._parents[HierarchyKind(kind)].get(identifier)

    def ancestor_chain(self, kind: HierarchyKind, identifier: Any) -> List[Any]:
        """Return ``[identifier, parent, grandparent, ...]``, closest first."""
        kind = HierarchyKind(kind)
        chain = [identifier]
        seen = {identifier} if self.detect_cycles and _hashable(identifier) else None

        parent = self.parent_of(kind, identifier)
        while parent is not None:
            if seen is not None and _hashable(parent):
                if parent in seen:
                    self.logger.error("Cyclic hierarchy detected", kind=kind.value, identifier=identifier, parent=parent)
                    raise CyclicHierarchyError(kind.value, parent, {"chain": list(chain)})
                seen.add(parent)
            chain.append(parent)
            parent = self.parent_of(kind, parent)

        return chain

    def ancestor_chain_for_multiple(self, kind: HierarchyKind, identifiers: Iterable[Any]) -> List[Any]:
        """Concatenate the chains of several identifiers, dropping repeats."""
        chain: List[Any] = []
        for identifier in identifiers:
            for ancestor in self.ancestor_chain(kind, identifier):
                if ancestor not in chain:
                    chain.append(ancestor)
        return chain


def _hashable(identifier: Any) -> bool:
    # Tuples holding lists pass the Hashable ABC check but fail hash().
    try:
        hash(identifier)
    except TypeError:
        return False
    return True
