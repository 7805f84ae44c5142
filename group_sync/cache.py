"""
Per-run group cache.

Holds one entry per provider group id. Presence in the cache is what marks a
group visited, so the walker never processes an id twice.
"""

from typing import Dict, Iterator, List, Sequence, Tuple

from group_sync.models import NativeGroup, NativeUser


class GroupCache:
    """Owned table of ``group id -> (group, members)`` for a single sync run."""

    def __init__(self):
        self._groups: Dict[str, NativeGroup] = {}
        self._members: Dict[str, List[NativeUser]] = {}

    def __contains__(self, group_id: str) -> bool:
        return group_id in self._groups

    def __len__(self) -> int:
        return len(self._groups)

    def clear(self):
        self._groups.clear()
        self._members.clear()

    def add(self, group: NativeGroup, members: Sequence[NativeUser]):
        """
        Store a group with its direct members.

        Raises:
            KeyError: If the group id is already cached
        """
        if group.id in self._groups:
            raise KeyError(f"Group '{group.id}' is already cached")
        self._groups[group.id] = group
        self._members[group.id] = list(members)

    def bubble(self, child_id: str, parent_id: str):
        """Append the child's current member list to the parent's members."""
        self._members[parent_id].extend(self._members[child_id])

    def members(self, group_id: str) -> List[NativeUser]:
        return list(self._members[group_id])

    def ids(self) -> List[str]:
        return list(self._groups)

    def entries(self) -> Iterator[Tuple[NativeGroup, List[NativeUser]]]:
        """Yield ``(group, members)`` copies in insertion order."""
        for group_id, group in self._groups.items():
            yield group, list(self._members[group_id])
