"""
Keycloak provider integration module.

Implements the ProviderAdapter interface against the Keycloak admin REST API.
Groups are realm scoped and may carry nested sub-groups.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List

from group_sync.exceptions import AuthenticationError, TransportError
from group_sync.models import Credential, NativeGroup, NativeUser, SyncScope
from .base import ProviderAdapter, validate_url

logger = logging.getLogger(__name__)

MASTER_REALM = 'master'
ADMIN_CLIENT_ID = 'admin-cli'
DEFAULT_BASE_PATH = '/auth'
MEMBERS_PAGE_SIZE = 100

SECRET_USERNAME_KEY = 'username'
SECRET_PASSWORD_KEY = 'password'


class KeycloakProvider(ProviderAdapter):
    """
    Keycloak admin API client.

    Logs in as an admin user in the login realm and reads groups and members
    from the configured realm.
    """

    kind = 'keycloak'
    required_secret_keys = (SECRET_USERNAME_KEY, SECRET_PASSWORD_KEY)
    applies_allow_list = False

    def init(self) -> bool:
        changes = {}
        if not self.config.login_realm:
            changes['login_realm'] = MASTER_REALM
        if self.config.base_path is None:
            changes['base_path'] = DEFAULT_BASE_PATH
        if self.config.scope is None:
            changes['scope'] = SyncScope.SUB

        if changes:
            self.config = replace(self.config, **changes)
            logger.debug(f"Applied defaults for {self.name}: {', '.join(changes)}")
        return bool(changes)

    def validate_config(self) -> List[str]:
        errors = validate_url(self.config.url)
        if not self.config.realm:
            errors.append(f"Missing required field 'realm' for provider {self.name}")
        return errors

    @property
    def _base_url(self) -> str:
        base_path = self.config.base_path
        if base_path is None:
            base_path = DEFAULT_BASE_PATH
        base_path = base_path.strip('/')
        url = self.config.url.rstrip('/')
        return f"{url}/{base_path}" if base_path else url

    @property
    def _admin_url(self) -> str:
        return f"{self._base_url}/admin/realms/{self.config.realm}"

    def authenticate(self, credential: Credential):
        self.transport = self.create_transport(credential)
        token_url = f"{self._base_url}/realms/{self.config.login_realm}/protocol/openid-connect/token"

        try:
            response = self.transport.request('POST', token_url, form={
                'grant_type': 'password',
                'client_id': ADMIN_CLIENT_ID,
                'username': credential.text(SECRET_USERNAME_KEY),
                'password': credential.text(SECRET_PASSWORD_KEY),
            })
        except TransportError as e:
            raise AuthenticationError(f"Keycloak login failed for {self.name}: {e}")

        access_token = (response or {}).get('access_token')
        if not access_token:
            raise AuthenticationError(f"Keycloak login response missing access_token for {self.name}")

        self.transport.set_bearer_token(access_token)
        logger.info(f"Successfully authenticated with Keycloak provider {self.name}")

    def list_top_level_groups(self, scope: SyncScope) -> List[NativeGroup]:
        response = self.transport.request('GET', f"{self._admin_url}/groups", params={'full': 'true'})
        groups = [self._to_native_group(group) for group in response or []]
        logger.info(f"Retrieved {len(groups)} top-level groups from {self.name}")
        return groups

    def list_group_members(self, group_id: str) -> List[NativeUser]:
        members = []
        first = 0
        while True:
            page = self.transport.request('GET', f"{self._admin_url}/groups/{group_id}/members",
                                          params={'first': first, 'max': MEMBERS_PAGE_SIZE}) or []
            members.extend(NativeUser(id=user['id'], username=user.get('username', ''))
                           for user in page)
            if len(page) < MEMBERS_PAGE_SIZE:
                break
            first += MEMBERS_PAGE_SIZE

        logger.debug(f"Retrieved {len(members)} members of group {group_id} from {self.name}")
        return members

    def _to_native_group(self, group: Dict[str, Any]) -> NativeGroup:
        return NativeGroup(
            id=group['id'],
            name=group.get('name'),
            sub_groups=tuple(self._to_native_group(sub) for sub in group.get('subGroups') or []),
        )
