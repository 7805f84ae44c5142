#!/usr/bin/env python3
"""
Unit tests for the hierarchy walker.

Covers member bubbling, sync scope handling, cycle safety and failure
propagation using an in-memory provider.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from group_sync.cache import GroupCache
from group_sync.exceptions import TransportError
from group_sync.models import NativeGroup, NativeUser, ProviderConfig, SyncScope
from group_sync.providers.base import ProviderAdapter
from group_sync.walker import HierarchyWalker


class FakeProvider(ProviderAdapter):
    """In-memory provider returning canned groups and members."""

    kind = 'fake'

    def __init__(self, groups=(), members=None, failing=()):
        super().__init__(ProviderConfig(name='fake', kind='fake', url='https://idp.example.com'))
        self.groups = list(groups)
        self.members = members or {}
        self.failing = set(failing)
        self.member_calls = []

    def authenticate(self, credential):
        pass

    def list_top_level_groups(self, scope):
        return list(self.groups)

    def list_group_members(self, group_id):
        self.member_calls.append(group_id)
        if group_id in self.failing:
            raise TransportError(f"HTTP 500 listing members of {group_id}", status_code=500)
        return [NativeUser(id=name, username=name) for name in self.members.get(group_id, [])]


def usernames(cache, group_id):
    return [member.username for member in cache.members(group_id)]


class TestHierarchyWalker(unittest.TestCase):
    """Test cases for HierarchyWalker."""

    def setUp(self):
        self.cache = GroupCache()

    def walk(self, provider, scope=SyncScope.SUB):
        HierarchyWalker(provider, self.cache, scope).walk(provider.list_top_level_groups(scope))

    def test_subgroup_members_bubble_into_parent(self):
        """Members of B are added to A when B is a sub-group of A."""
        b = NativeGroup('B', 'b')
        a = NativeGroup('A', 'a', sub_groups=(b,))
        provider = FakeProvider([a], {'A': ['alice'], 'B': ['bob']})

        self.walk(provider)

        self.assertEqual(usernames(self.cache, 'A'), ['alice', 'bob'])
        self.assertEqual(usernames(self.cache, 'B'), ['bob'])

    def test_group_only_scope_does_not_descend(self):
        """Sub-groups are neither fetched nor bubbled with the 'one' scope."""
        b = NativeGroup('B', 'b')
        a = NativeGroup('A', 'a', sub_groups=(b,))
        provider = FakeProvider([a], {'A': ['alice'], 'B': ['bob']})

        self.walk(provider, SyncScope.ONE)

        self.assertEqual(usernames(self.cache, 'A'), ['alice'])
        self.assertNotIn('B', self.cache)
        self.assertEqual(provider.member_calls, ['A'])

    def test_final_member_list_bubbles_through_levels(self):
        """A grandchild's members reach the grandparent through the child."""
        c = NativeGroup('C', 'c')
        b = NativeGroup('B', 'b', sub_groups=(c,))
        a = NativeGroup('A', 'a', sub_groups=(b,))
        provider = FakeProvider([a], {'A': ['alice'], 'B': ['bob'], 'C': ['carol']})

        self.walk(provider)

        self.assertEqual(usernames(self.cache, 'A'), ['alice', 'bob', 'carol'])
        self.assertEqual(usernames(self.cache, 'B'), ['bob', 'carol'])
        self.assertEqual(usernames(self.cache, 'C'), ['carol'])

    def test_member_of_sibling_subgroups_is_counted_twice(self):
        """Bubbling does not deduplicate users reachable through two sub-groups."""
        b = NativeGroup('B', 'b')
        c = NativeGroup('C', 'c')
        a = NativeGroup('A', 'a', sub_groups=(b, c))
        provider = FakeProvider([a], {'B': ['dave'], 'C': ['dave', 'erin']})

        self.walk(provider)

        self.assertEqual(usernames(self.cache, 'A'), ['dave', 'dave', 'erin'])

    def test_cycle_terminates_and_caches_each_group_once(self):
        """A -> B -> A stops at the revisit of A."""
        a_stub = NativeGroup('A', 'a')
        b = NativeGroup('B', 'b', sub_groups=(a_stub,))
        a = NativeGroup('A', 'a', sub_groups=(b,))
        provider = FakeProvider([a], {'A': ['alice'], 'B': ['bob']})

        self.walk(provider)

        self.assertEqual(self.cache.ids(), ['A', 'B'])
        self.assertEqual(provider.member_calls, ['A', 'B'])
        self.assertEqual(usernames(self.cache, 'A'), ['alice', 'bob'])
        self.assertEqual(usernames(self.cache, 'B'), ['bob'])

    def test_shared_descendant_bubbles_into_every_parent(self):
        """In a diamond, the shared descendant is fetched once and reaches the root twice."""
        d = NativeGroup('D', 'd')
        b = NativeGroup('B', 'b', sub_groups=(d,))
        c = NativeGroup('C', 'c', sub_groups=(d,))
        a = NativeGroup('A', 'a', sub_groups=(b, c))
        provider = FakeProvider([a], {'D': ['dan']})

        self.walk(provider)

        self.assertEqual(provider.member_calls.count('D'), 1)
        self.assertEqual(self.cache.ids(), ['A', 'B', 'D', 'C'])
        self.assertEqual(usernames(self.cache, 'B'), ['dan'])
        self.assertEqual(usernames(self.cache, 'C'), ['dan'])
        self.assertEqual(usernames(self.cache, 'A'), ['dan', 'dan'])

    def test_subgroup_walked_first_still_bubbles_into_parent(self):
        """A sub-group listed before its parent contributes its members once the parent is walked."""
        c = NativeGroup('C', 'c')
        b = NativeGroup('B', 'b', sub_groups=(c,))
        a = NativeGroup('A', 'a', sub_groups=(b,))
        provider = FakeProvider([b, a], {'A': ['alice'], 'B': ['bob'], 'C': ['carol']})

        self.walk(provider)

        self.assertEqual(provider.member_calls, ['B', 'C', 'A'])
        self.assertEqual(usernames(self.cache, 'B'), ['bob', 'carol'])
        self.assertEqual(usernames(self.cache, 'A'), ['alice', 'bob', 'carol'])

    def test_self_reference_is_skipped(self):
        """A group listing itself as a sub-group does not duplicate its own members."""
        a_stub = NativeGroup('A', 'a')
        a = NativeGroup('A', 'a', sub_groups=(a_stub,))
        provider = FakeProvider([a], {'A': ['alice']})

        self.walk(provider)

        self.assertEqual(usernames(self.cache, 'A'), ['alice'])

    def test_top_level_group_already_walked_as_subgroup_is_skipped(self):
        """Top-level groups found earlier as sub-groups are not fetched again."""
        b = NativeGroup('B', 'b')
        a = NativeGroup('A', 'a', sub_groups=(b,))
        provider = FakeProvider([a, b], {'B': ['bob']})

        self.walk(provider)

        self.assertEqual(provider.member_calls, ['A', 'B'])
        self.assertEqual(len(self.cache), 2)

    def test_deep_hierarchy_does_not_hit_recursion_limit(self):
        """Long chains are walked iteratively."""
        depth = sys.getrecursionlimit() + 500
        group = NativeGroup(f'g{depth - 1}', f'group-{depth - 1}')
        for i in reversed(range(depth - 1)):
            group = NativeGroup(f'g{i}', f'group-{i}', sub_groups=(group,))
        members = {f'g{i}': [f'user{i}'] for i in range(depth)}
        provider = FakeProvider([group], members)

        self.walk(provider)

        self.assertEqual(len(self.cache), depth)
        self.assertEqual(len(self.cache.members('g0')), depth)

    def test_member_fetch_failure_propagates_unchanged(self):
        """The first failing fetch aborts the walk with the original exception."""
        c = NativeGroup('C', 'c')
        b = NativeGroup('B', 'b')
        a = NativeGroup('A', 'a', sub_groups=(b, c))
        provider = FakeProvider([a], {'A': ['alice']}, failing={'B'})

        with self.assertRaises(TransportError) as ctx:
            self.walk(provider)

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertNotIn('C', provider.member_calls)


if __name__ == '__main__':
    unittest.main()
