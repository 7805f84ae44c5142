"""
Hierarchy walker.

Traverses provider groups and their sub-groups, fetching members for every
group exactly once and bubbling each finished sub-group's members up into its
parent. The traversal uses an explicit stack so deep hierarchies are not
limited by the interpreter's recursion depth.

Bubbling does not deduplicate: a user who is a member of two sibling
sub-groups appears twice in the parent's member list. A sub-group shared by two
parents is fetched once but bubbled into both.
"""

import logging
from typing import Iterable, Iterator, List, Set, Tuple

from group_sync.cache import GroupCache
from group_sync.models import NativeGroup, SyncScope
from group_sync.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class HierarchyWalker:
    """Walks groups through a provider adapter and fills a GroupCache."""

    def __init__(self, adapter: ProviderAdapter, cache: GroupCache, scope: SyncScope, log=None):
        self.adapter = adapter
        self.cache = cache
        self.scope = scope
        self.log = log or logger

    def walk(self, groups: Iterable[NativeGroup]):
        """
        Walk every unvisited group in ``groups`` and its reachable sub-groups.

        Raises:
            ProviderError: Propagated unchanged from the first failed member fetch
        """
        for group in groups:
            if group.id in self.cache:
                self.log.debug(f"Group {group.id} already processed, skipping")
                continue
            self._walk_from(group)

    def _walk_from(self, root: NativeGroup):
        self._visit(root)
        stack: List[Tuple[NativeGroup, Iterator[NativeGroup]]] = [(root, self._children(root))]
        # Ids of groups whose sub-groups are still being walked
        in_progress: Set[str] = {root.id}

        while stack:
            group, children = stack[-1]
            child = next(children, None)

            if child is None:
                stack.pop()
                in_progress.discard(group.id)
                if stack:
                    parent = stack[-1][0]
                    self.cache.bubble(group.id, parent.id)
                continue

            if child.id in in_progress:
                self.log.debug(f"Group {child.id} is an ancestor of {group.id}, skipping cycle")
                continue

            if child.id in self.cache:
                # Finished elsewhere: its member list is final
                self.cache.bubble(child.id, group.id)
                continue

            self._visit(child)
            in_progress.add(child.id)
            stack.append((child, self._children(child)))

    def _visit(self, group: NativeGroup):
        members = self.adapter.list_group_members(group.id)
        self.cache.add(group, members)
        self.log.debug(f"Cached group {group.id} ({group.name}) with {len(members)} members")

    def _children(self, group: NativeGroup) -> Iterator[NativeGroup]:
        if self.scope is SyncScope.SUB:
            return iter(group.sub_groups)
        return iter(())
