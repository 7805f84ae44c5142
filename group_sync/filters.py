"""
Group allow-list filtering.
"""

from typing import Iterable, List, Optional, Sequence

from group_sync.models import NativeGroup


def is_group_allowed(group_name: Optional[str], allow_list: Optional[Sequence[str]]) -> bool:
    """Return True if the group name is in the allow-list, or the list is empty."""
    if not allow_list:
        return True
    return group_name in allow_list


def filter_groups(groups: Iterable[NativeGroup], allow_list: Optional[Sequence[str]]) -> List[NativeGroup]:
    return [group for group in groups if is_group_allowed(group.name, allow_list)]
