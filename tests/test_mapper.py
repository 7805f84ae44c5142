#!/usr/bin/env python3
"""
Unit tests for canonical group mapping and allow-list filtering.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from group_sync.cache import GroupCache
from group_sync.filters import filter_groups, is_group_allowed
from group_sync.mapper import map_groups, source_host, to_canonical
from group_sync.models import (
    CanonicalGroup,
    NativeGroup,
    NativeUser,
    SYNC_SOURCE_HOST,
    SYNC_SOURCE_UID,
)


class TestCanonicalMapper(unittest.TestCase):
    """Test cases for the canonical mapper."""

    def test_annotations_come_from_url_host_and_group_id(self):
        group = to_canonical(NativeGroup('1234', 'eng'), ['alice', 'bob'],
                             'https://keycloak.example.com:8443/auth')

        self.assertEqual(group.name, 'eng')
        self.assertEqual(group.annotations, {
            SYNC_SOURCE_HOST: 'keycloak.example.com:8443',
            SYNC_SOURCE_UID: '1234',
        })
        self.assertEqual(group.users, ['alice', 'bob'])

    def test_source_host_strips_userinfo(self):
        self.assertEqual(source_host('https://admin@login.example.com/'), 'login.example.com')

    def test_group_without_name_is_dropped_with_warning(self):
        """Empty and missing names are skipped, not raised."""
        for name in (None, ''):
            with self.assertLogs('group_sync.mapper', level='WARNING') as logs:
                result = to_canonical(NativeGroup('99', name), ['alice'], 'https://idp.example.com')

            self.assertIsNone(result)
            self.assertIn('empty display name', logs.output[0])

    def test_mapping_is_deterministic(self):
        args = (NativeGroup('1', 'eng'), ['alice'], 'https://idp.example.com')
        self.assertEqual(to_canonical(*args), to_canonical(*args))

    def test_map_groups_skips_unnamed_groups(self):
        cache = GroupCache()
        cache.add(NativeGroup('1', 'eng'), [NativeUser('u1', 'alice')])
        cache.add(NativeGroup('2', None), [NativeUser('u2', 'bob')])
        cache.add(NativeGroup('3', 'ops'), [])

        with self.assertLogs('group_sync.mapper', level='WARNING'):
            groups = map_groups(cache, 'https://idp.example.com')

        self.assertEqual([group.name for group in groups], ['eng', 'ops'])
        self.assertEqual(groups[0].users, ['alice'])

    def test_to_dict_renders_group_resource(self):
        group = CanonicalGroup(name='eng', annotations={SYNC_SOURCE_UID: '1'}, users=['alice'])

        self.assertEqual(group.to_dict(), {
            'kind': 'Group',
            'apiVersion': 'user.openshift.io/v1',
            'metadata': {
                'name': 'eng',
                'annotations': {SYNC_SOURCE_UID: '1'},
                'labels': {},
            },
            'users': ['alice'],
        })
        self.assertEqual(group.source_uid, '1')
        self.assertIsNone(group.source_host)


class TestAllowListFilter(unittest.TestCase):
    """Test cases for the allow-list filter."""

    def test_empty_allow_list_allows_everything(self):
        self.assertTrue(is_group_allowed('anything', []))
        self.assertTrue(is_group_allowed('anything', None))
        self.assertTrue(is_group_allowed(None, ()))

    def test_only_exact_names_are_allowed(self):
        self.assertTrue(is_group_allowed('eng', ['eng']))
        self.assertFalse(is_group_allowed('engineering', ['eng']))
        self.assertFalse(is_group_allowed('ENG', ['eng']))
        self.assertFalse(is_group_allowed(None, ['eng']))

    def test_filter_groups(self):
        groups = [NativeGroup('1', 'eng'), NativeGroup('2', 'ops'), NativeGroup('3', 'eng-leads')]

        self.assertEqual(filter_groups(groups, ['eng']), [groups[0]])
        self.assertEqual(filter_groups(groups, []), groups)


if __name__ == '__main__':
    unittest.main()
