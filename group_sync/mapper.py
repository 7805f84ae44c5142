"""
Conversion of cached native groups into canonical groups.
"""

import logging
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from group_sync.cache import GroupCache
from group_sync.models import (
    CanonicalGroup,
    NativeGroup,
    SYNC_SOURCE_HOST,
    SYNC_SOURCE_UID,
)

logger = logging.getLogger(__name__)


def source_host(provider_url: str) -> str:
    """Return the host (and port, if any) of a provider URL."""
    return urlparse(provider_url).netloc.rpartition('@')[2]


def to_canonical(group: NativeGroup, usernames: Sequence[str], provider_url: str,
                 log=None) -> Optional[CanonicalGroup]:
    """
    Build the canonical record for a native group.

    Groups without a display name are skipped with a warning and ``None``
    is returned.
    """
    if not group.name:
        (log or logger).warning(f"Skipping group record with empty display name (id={group.id})")
        return None

    return CanonicalGroup(
        name=group.name,
        annotations={
            SYNC_SOURCE_HOST: source_host(provider_url),
            SYNC_SOURCE_UID: group.id,
        },
        users=list(usernames),
    )


def map_groups(cache: GroupCache, provider_url: str, log=None) -> List[CanonicalGroup]:
    """Map every cached group, in cache order, dropping unnamed groups."""
    canonical_groups = []
    for group, members in cache.entries():
        canonical = to_canonical(group, [member.username for member in members], provider_url, log)
        if canonical is not None:
            canonical_groups.append(canonical)
    return canonical_groups
