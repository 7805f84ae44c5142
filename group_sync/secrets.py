"""
Credential lookup.

Secrets are read from a YAML file keyed by ``namespace/name`` (or just
``name``), with environment variables able to override individual keys:

    keycloak-admin:
      username: admin
      password: changeme

    GROUPSYNC_KEYCLOAK_ADMIN_PASSWORD=other   # overrides password above
"""

import os
import re
import logging
from typing import Dict, Iterable, Mapping, Optional

import yaml

from group_sync.exceptions import SecretNotFoundError
from group_sync.models import Credential, SecretReference

logger = logging.getLogger(__name__)

ENV_PREFIX = 'GROUPSYNC_'


def env_var_name(secret_name: str, key: str) -> str:
    """Environment variable that overrides ``key`` of ``secret_name``."""
    return ENV_PREFIX + re.sub(r'[^A-Za-z0-9]', '_', f"{secret_name}_{key}").upper()


class SecretStore:
    """Resolves secret references to Credentials."""

    def __init__(self, secrets: Optional[Mapping[str, Mapping[str, str]]] = None,
                 environ: Optional[Mapping[str, str]] = None):
        self.secrets = dict(secrets or {})
        self.environ = os.environ if environ is None else environ

    @classmethod
    def from_file(cls, path: Optional[str]) -> 'SecretStore':
        """
        Load a secret store from a YAML file.

        A missing path gives a store backed by environment variables only.
        """
        if not path:
            return cls()
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise SecretNotFoundError(f"Secrets file not found: {path}")
        except yaml.YAMLError as e:
            raise SecretNotFoundError(f"Invalid YAML in secrets file: {e}")
        logger.info(f"Loaded {len(data)} secrets from {path}")
        return cls(data)

    def get(self, ref: SecretReference, keys: Iterable[str] = ()) -> Credential:
        """
        Look up a secret.

        Args:
            ref: Secret reference
            keys: Keys that may be supplied through the environment even when
                the file has no entry for them

        Raises:
            SecretNotFoundError: If neither the file nor the environment
                provides any key for the secret
        """
        data: Dict[str, str] = {}
        for name in (str(ref), ref.name):
            if name in self.secrets:
                data = dict(self.secrets[name] or {})
                break

        for key in set(data) | set(keys):
            value = self.environ.get(env_var_name(ref.name, key))
            if value:
                data[key] = value

        if not data:
            raise SecretNotFoundError(f"Secret '{ref}' not found")
        return Credential(data, source=str(ref))
