"""
Azure AD provider integration module.

Implements the ProviderAdapter interface against Microsoft Graph. Groups can be
scoped to a set of base groups, and membership is read transitively so nested
groups need no walking.
"""

import logging
from collections import deque
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional

from group_sync.exceptions import AuthenticationError, TransportError
from group_sync.models import Credential, NativeGroup, NativeUser, SyncScope
from .base import ProviderAdapter, validate_url

logger = logging.getLogger(__name__)

TENANT_ID = 'AZURE_TENANT_ID'
CLIENT_ID = 'AZURE_CLIENT_ID'
CLIENT_SECRET = 'AZURE_CLIENT_SECRET'

AZURE_PUBLIC_CLOUD = 'https://login.microsoftonline.com/'
GRAPH_URL = 'https://graph.microsoft.com/v1.0'
GRAPH_SCOPE = 'https://graph.microsoft.com/.default'

GRAPH_GROUP_TYPE = '#microsoft.graph.group'
GRAPH_USER_TYPE = '#microsoft.graph.user'
GRAPH_ODATA_TYPE = '@odata.type'
GRAPH_NEXT_LINK = '@odata.nextLink'
GRAPH_USERNAME_ATTRIBUTE = 'userPrincipalName'

# Levels of group-typed members pulled in below each base group
BASE_GROUP_EXPANSION_DEPTH = 1


class AzureProvider(ProviderAdapter):
    """
    Microsoft Graph client for Azure AD groups.

    Authenticates with the client credentials of an app registration.
    """

    kind = 'azure'
    required_secret_keys = (TENANT_ID, CLIENT_ID, CLIENT_SECRET)
    applies_allow_list = True

    def init(self) -> bool:
        if self.config.authority_host:
            return False
        self.config = replace(self.config, authority_host=AZURE_PUBLIC_CLOUD)
        return True

    def validate_config(self) -> List[str]:
        errors = []
        if self.config.authority_host:
            errors.extend(validate_url(self.config.authority_host, 'authorityHost'))
        if self.config.url:
            errors.extend(validate_url(self.config.url))
        return errors

    @property
    def source_url(self) -> str:
        return self.config.authority_host or AZURE_PUBLIC_CLOUD

    @property
    def _graph_url(self) -> str:
        return (self.config.url or GRAPH_URL).rstrip('/')

    def authenticate(self, credential: Credential):
        self.transport = self.create_transport(credential)
        token_url = f"{self.source_url.rstrip('/')}/{credential.text(TENANT_ID)}/oauth2/v2.0/token"

        try:
            response = self.transport.request('POST', token_url, form={
                'grant_type': 'client_credentials',
                'client_id': credential.text(CLIENT_ID),
                'client_secret': credential.text(CLIENT_SECRET),
                'scope': GRAPH_SCOPE,
            })
        except TransportError as e:
            raise AuthenticationError(f"Azure login failed for {self.name}: {e}")

        access_token = (response or {}).get('access_token')
        if not access_token:
            raise AuthenticationError(f"Azure token response missing access_token for {self.name}")

        self.transport.set_bearer_token(access_token)
        logger.info(f"Successfully authenticated with Azure provider {self.name}")

    def list_top_level_groups(self, scope: SyncScope) -> List[NativeGroup]:
        if not self.config.base_groups:
            params = {'$filter': self.config.filter} if self.config.filter else None
            groups = [self._to_native_group(group)
                      for group in self._get_all(f"{self._graph_url}/groups", params)]
            logger.info(f"Retrieved {len(groups)} groups from {self.name}")
            return groups

        groups = []
        for base_group in self.config.base_groups:
            groups.extend(self._expand_base_group(base_group))
        logger.info(f"Retrieved {len(groups)} groups from {len(self.config.base_groups)} "
                    f"base groups in {self.name}")
        return groups

    def _expand_base_group(self, base_group: str) -> List[NativeGroup]:
        escaped = base_group.replace("'", "''")
        found = list(self._get_all(f"{self._graph_url}/groups",
                                   {'$filter': f"displayName eq '{escaped}'"}))

        if len(found) != 1:
            logger.info(f"Failed to find a single base group '{base_group}' to search from "
                        f"in {self.name} (found {len(found)})")
            return []

        root = self._to_native_group(found[0])
        groups = [root]
        seen = {root.id}
        queue = deque([(root, 0)])
        member_params = {'$filter': self.config.filter} if self.config.filter else None

        while queue:
            group, depth = queue.popleft()
            if depth >= BASE_GROUP_EXPANSION_DEPTH:
                continue
            for member in self._get_all(f"{self._graph_url}/groups/{group.id}/members", member_params):
                if member.get(GRAPH_ODATA_TYPE) != GRAPH_GROUP_TYPE or member['id'] in seen:
                    continue
                seen.add(member['id'])
                child = self._to_native_group(member)
                groups.append(child)
                queue.append((child, depth + 1))

        return groups

    def list_group_members(self, group_id: str) -> List[NativeUser]:
        members = []
        for member in self._get_all(f"{self._graph_url}/groups/{group_id}/transitiveMembers"):
            if member.get(GRAPH_ODATA_TYPE) != GRAPH_USER_TYPE:
                continue
            username = self._get_username(member)
            if username is None:
                logger.warning(f"Username for user cannot be found in group ID '{group_id}'")
                continue
            members.append(NativeUser(id=member['id'], username=username))
        return members

    def _get_username(self, user: Dict[str, Any]) -> Optional[str]:
        for attribute in self.config.username_attributes or (GRAPH_USERNAME_ATTRIBUTE,):
            value = user.get(attribute)
            if value:
                return str(value)
        return None

    def _get_all(self, url: str, params: Optional[Dict[str, str]] = None) -> Iterator[Dict[str, Any]]:
        """Yield every object of a Graph collection, following nextLink pages."""
        while url:
            response = self.transport.request('GET', url, params=params) or {}
            yield from response.get('value', [])
            url = response.get(GRAPH_NEXT_LINK)
            params = None

    @staticmethod
    def _to_native_group(group: Dict[str, Any]) -> NativeGroup:
        return NativeGroup(id=group['id'], name=group.get('displayName'))
