"""
Per-provider sync pipeline.

A GroupSyncer drives one provider adapter through init, validate, bind and
sync, and turns the provider's groups into canonical groups. Each instance owns
its cache and authenticated transport; separate instances can run in parallel,
a single instance cannot.
"""

import logging
from typing import List, Optional

from group_sync.cache import GroupCache
from group_sync.exceptions import ConfigValidationError, SecretNotFoundError
from group_sync.filters import filter_groups
from group_sync.mapper import map_groups
from group_sync.models import CanonicalGroup, Credential, SyncScope
from group_sync.providers.base import ProviderAdapter, SECRET_CA_KEY
from group_sync.secrets import SecretStore
from group_sync.walker import HierarchyWalker


class GroupSyncer:
    """Sequences init, validate, bind and sync for one provider instance."""

    def __init__(self, adapter: ProviderAdapter, secret_store: SecretStore,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize syncer.

        Args:
            adapter: Provider adapter to sync from
            secret_store: Store used to resolve the provider's credentials
            logger: Logger to report through; defaults to a module logger
                tagged with the provider name
        """
        self.adapter = adapter
        self.secret_store = secret_store
        self.log = logger or logging.LoggerAdapter(logging.getLogger(__name__),
                                                   {'provider': adapter.name})
        self.cache = GroupCache()
        self.credential: Optional[Credential] = None

    @property
    def name(self) -> str:
        return self.adapter.name

    @property
    def prune(self) -> bool:
        return self.adapter.config.prune

    def init(self) -> bool:
        """Fill in unset defaults. Returns True if any default was applied."""
        changed = self.adapter.init()
        if changed:
            self.log.info(f"Applied default settings for provider {self.name}")
        return changed

    def validate(self):
        """
        Look up credentials and check the provider configuration.

        Raises:
            ConfigValidationError: Listing every problem found
        """
        errors = []
        ref = self.adapter.config.credentials_secret

        if ref is None or not ref.name:
            errors.append(f"No credentials secret configured for provider {self.name}")
            errors.extend(self.adapter.validate_config())
        else:
            try:
                self.credential = self.secret_store.get(
                    ref, keys=self.adapter.required_secret_keys + (SECRET_CA_KEY,))
            except SecretNotFoundError as e:
                errors.append(str(e))
                errors.extend(self.adapter.validate_config())
            else:
                errors.extend(self.adapter.validate(self.credential))

        if errors:
            for error in errors:
                self.log.error(f"Validation error for provider {self.name}: {error}")
            raise ConfigValidationError(errors)

    def bind(self):
        """
        Authenticate with the provider. One attempt; failures are final.

        Raises:
            AuthenticationError: If authentication fails
        """
        if self.credential is None:
            raise ConfigValidationError([f"Provider {self.name} must be validated before binding"])
        self.adapter.authenticate(self.credential)

    def sync(self) -> List[CanonicalGroup]:
        """
        Walk the provider's groups and return canonical groups.

        Raises:
            ProviderError: The first listing failure; no partial result is returned
        """
        self.cache.clear()
        scope = self.adapter.config.scope or SyncScope.SUB

        try:
            groups = self.adapter.list_top_level_groups(scope)
        except Exception as e:
            self.log.error(f"Failed to get groups from provider {self.name}: {e}")
            raise

        if self.adapter.applies_allow_list:
            groups = filter_groups(groups, self.adapter.config.groups)

        walker = HierarchyWalker(self.adapter, self.cache, scope, log=self.log)
        try:
            walker.walk(groups)
        except Exception as e:
            self.log.error(f"Failed to get group members from provider {self.name}: {e}")
            self.cache.clear()
            raise

        canonical_groups = map_groups(self.cache, self.adapter.source_url, log=self.log)
        self.log.info(f"Synced {len(canonical_groups)} groups from provider {self.name}")
        return canonical_groups

    def run(self) -> List[CanonicalGroup]:
        """Run the full pipeline for this provider."""
        self.init()
        self.validate()
        try:
            self.bind()
            return self.sync()
        finally:
            self.adapter.close_connection()
