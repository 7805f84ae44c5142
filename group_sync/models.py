"""
Data model shared by the sync engine and the provider adapters.

Native records describe groups and users as a provider returns them; canonical
groups are the provider-independent records handed to the group writer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

SYNC_SOURCE_HOST = 'group.redhat-cop.io/sync.source.host'
SYNC_SOURCE_UID = 'group.redhat-cop.io/sync.source.uid'

GROUP_KIND = 'Group'
GROUP_API_VERSION = 'user.openshift.io/v1'


class SyncScope(Enum):
    """Whether a sync descends into sub-groups."""

    ONE = 'one'
    SUB = 'sub'

    @classmethod
    def parse(cls, value) -> Optional['SyncScope']:
        """Parse a scope from config; ``None`` and empty strings stay unset."""
        if value is None or value == '':
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown sync scope '{value}', expected one of: one, sub")


@dataclass(frozen=True)
class SecretReference:
    name: str
    namespace: Optional[str] = None

    def __str__(self):
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True)
class ProviderConfig:
    """
    Settings for a single provider instance.

    Instances are immutable; applying defaults produces a new instance.
    """

    name: str
    kind: str
    url: Optional[str] = None
    realm: Optional[str] = None
    login_realm: Optional[str] = None
    scope: Optional[SyncScope] = None
    insecure: bool = False
    base_groups: Tuple[str, ...] = ()
    filter: Optional[str] = None
    username_attributes: Tuple[str, ...] = ()
    groups: Tuple[str, ...] = ()
    prune: bool = False
    credentials_secret: Optional[SecretReference] = None
    authority_host: Optional[str] = None
    base_path: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, kind: str, data: Mapping) -> 'ProviderConfig':
        """
        Build a provider config from a provider block of the config file.

        Keys are accepted in the camelCase form used by the operator resources
        as well as snake_case.
        """
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        secret = pick('credentialsSecret', 'credentials_secret', 'secretName', 'secret_name')
        if isinstance(secret, str):
            secret = SecretReference(name=secret)
        elif isinstance(secret, Mapping):
            secret = SecretReference(name=secret.get('name'), namespace=secret.get('namespace'))

        return cls(
            name=name,
            kind=kind,
            url=pick('url'),
            realm=pick('realm'),
            login_realm=pick('loginRealm', 'login_realm'),
            scope=SyncScope.parse(pick('scope')),
            insecure=bool(pick('insecure', default=False)),
            base_groups=tuple(pick('baseGroups', 'base_groups', default=())),
            filter=pick('filter'),
            username_attributes=tuple(pick('userNameAttributes', 'username_attributes', default=())),
            groups=tuple(pick('groups', default=())),
            prune=bool(pick('prune', default=False)),
            credentials_secret=secret,
            authority_host=pick('authorityHost', 'authority_host'),
            base_path=pick('basePath', 'base_path'),
        )


class Credential(Mapping):
    """Read-only byte map obtained from a secret store."""

    def __init__(self, data: Mapping[str, bytes], source: str = ''):
        self._data = {key: value if isinstance(value, bytes) else str(value).encode('utf-8')
                      for key, value in data.items()}
        self.source = source

    def __getitem__(self, key: str) -> bytes:
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def text(self, key: str) -> str:
        return self._data[key].decode('utf-8')

    def missing(self, keys: Iterable[str]) -> List[str]:
        """Return the required keys that are absent."""
        return [key for key in keys if key not in self._data]

    def __repr__(self):
        # Values are secret; only show which keys are present.
        return f"Credential(source={self.source!r}, keys={sorted(self._data)})"


@dataclass(frozen=True)
class NativeGroup:
    id: str
    name: Optional[str] = None
    sub_groups: Tuple['NativeGroup', ...] = ()


@dataclass(frozen=True)
class NativeUser:
    id: str
    username: str


@dataclass
class CanonicalGroup:
    """Provider-independent group record consumed by the group writer."""

    name: str
    annotations: Dict[str, str] = field(default_factory=dict)
    users: List[str] = field(default_factory=list)

    @property
    def source_host(self) -> Optional[str]:
        return self.annotations.get(SYNC_SOURCE_HOST)

    @property
    def source_uid(self) -> Optional[str]:
        return self.annotations.get(SYNC_SOURCE_UID)

    def to_dict(self) -> Dict:
        return {
            'kind': GROUP_KIND,
            'apiVersion': GROUP_API_VERSION,
            'metadata': {
                'name': self.name,
                'annotations': dict(self.annotations),
                'labels': {},
            },
            'users': list(self.users),
        }
