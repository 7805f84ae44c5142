"""
Main orchestrator for Group Sync application.

Runs the sync pipeline for every configured provider, isolating failures so one
provider's error never suppresses the others' results, and writes the canonical
groups for the group writer to apply.
"""

import sys
import json
import logging
import importlib
from datetime import datetime
from typing import Dict, Any, List, Optional

import yaml

from group_sync.config import load_config, provider_configs
from group_sync.exceptions import ConfigurationError, ConfigValidationError, SecretNotFoundError
from group_sync.logging_setup import setup_logging, provider_logger
from group_sync.models import CanonicalGroup, ProviderConfig
from group_sync.providers.base import ProviderAdapter
from group_sync.secrets import SecretStore
from group_sync.syncer import GroupSyncer

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Main orchestrator for directory group synchronization.

    Coordinates the sync process across multiple providers and handles errors gracefully.
    """

    def __init__(self, config_path: Optional[str] = None, output_path: Optional[str] = None):
        """
        Initialize sync orchestrator.

        Args:
            config_path: Path to configuration file
            output_path: File to write canonical groups to; overrides output.path
        """
        self.config = None
        self.config_path = config_path
        self.output_path = output_path
        self.secret_store = None

        # Canonical groups per provider that synced successfully
        self.results: Dict[str, Dict[str, Any]] = {}

        self.sync_stats = {
            'providers_processed': 0,
            'providers_failed': 0,
            'total_groups': 0,
            'start_time': None,
            'end_time': None,
            'runtime_seconds': 0,
            'provider_details': {}
        }

        # Error message per failed provider
        self.provider_errors: Dict[str, str] = {}

    def run(self) -> int:
        """
        Run the complete synchronization process.

        Returns:
            Exit code (0 for success, 1 if any provider failed, 2 for configuration errors)
        """
        try:
            self.sync_stats['start_time'] = datetime.now()

            self._load_configuration()
            setup_logging(self.config.get('logging', {}))
            logger.info("Starting Group Sync")

            self._load_secret_store()
            self._process_providers()

            self.sync_stats['end_time'] = datetime.now()
            self.sync_stats['runtime_seconds'] = (
                self.sync_stats['end_time'] - self.sync_stats['start_time']
            ).total_seconds()

            self._log_sync_summary()
            self._write_output()

            if self.sync_stats['providers_failed'] > 0:
                logger.warning(f"Sync completed with {self.sync_stats['providers_failed']} provider failures")
                return 1

            logger.info("Sync completed successfully")
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 2
        except SecretNotFoundError as e:
            logger.error(f"Secret store error: {e}")
            return 2

    def _load_configuration(self):
        try:
            self.config = load_config(self.config_path)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def _load_secret_store(self):
        self.secret_store = SecretStore.from_file(self.config.get('secrets_file'))

    def _process_providers(self):
        """Process synchronization for each configured provider."""
        for provider_config in provider_configs(self.config):
            try:
                groups = self._process_provider(provider_config)
                self.results[provider_config.name] = {
                    'prune': provider_config.prune,
                    'groups': groups,
                }
                self.sync_stats['providers_processed'] += 1
                self.sync_stats['total_groups'] += len(groups)

            except Exception as e:
                logger.error(f"Failed to process provider {provider_config.name}: {e}")
                self.sync_stats['providers_failed'] += 1
                self.provider_errors[provider_config.name] = str(e)

    def _process_provider(self, provider_config: ProviderConfig) -> List[CanonicalGroup]:
        """Run the sync pipeline for a single provider."""
        start_time = datetime.now()
        details = {'groups': 0, 'status': 'failed'}
        logger.info(f"Processing provider: {provider_config.name}")

        try:
            syncer = self._create_syncer(provider_config)
            groups = syncer.run()
            details.update(groups=len(groups), status='success')
            return groups
        finally:
            details['runtime_seconds'] = (datetime.now() - start_time).total_seconds()
            self.sync_stats['provider_details'][provider_config.name] = details
            logger.info(f"Completed provider: {provider_config.name} in {details['runtime_seconds']:.2f} seconds")

    def _create_syncer(self, provider_config: ProviderConfig) -> GroupSyncer:
        adapter = self._load_provider_module(provider_config)
        return GroupSyncer(adapter, self.secret_store,
                           logger=provider_logger('group_sync.syncer', provider_config.name))

    def _load_provider_module(self, provider_config: ProviderConfig) -> ProviderAdapter:
        """Dynamically load the provider module and create the adapter instance."""
        module_name = f"group_sync.providers.{provider_config.kind}"

        try:
            provider_module = importlib.import_module(module_name)
        except ImportError as e:
            raise ConfigurationError(f"Failed to import provider module {module_name}: {e}")

        for attr_name in dir(provider_module):
            attr = getattr(provider_module, attr_name)
            if (isinstance(attr, type) and
                    issubclass(attr, ProviderAdapter) and
                    attr is not ProviderAdapter and
                    attr.kind == provider_config.kind):
                return attr(provider_config)

        raise ConfigurationError(f"No ProviderAdapter subclass found in module {module_name}")

    def render_output(self) -> str:
        """Render synced groups as a YAML or JSON document."""
        document = {
            'providers': [
                {
                    'name': name,
                    'prune': result['prune'],
                    'groups': [group.to_dict() for group in result['groups']],
                }
                for name, result in self.results.items()
            ],
            'errors': dict(self.provider_errors),
        }

        if self.config.get('output', {}).get('format') == 'json':
            return json.dumps(document, indent=2)
        return yaml.safe_dump(document, sort_keys=False)

    def _write_output(self):
        path = self.output_path or self.config.get('output', {}).get('path')
        rendered = self.render_output()
        if path:
            with open(path, 'w') as f:
                f.write(rendered)
            logger.info(f"Wrote canonical groups to {path}")
        else:
            sys.stdout.write(rendered)

    def _log_sync_summary(self):
        stats = self.sync_stats

        logger.info("=== Sync Summary ===")
        logger.info(f"Total runtime: {stats['runtime_seconds']:.2f} seconds")
        logger.info(f"Providers processed: {stats['providers_processed']}")
        logger.info(f"Providers failed: {stats['providers_failed']}")
        logger.info(f"Total groups: {stats['total_groups']}")

        for name, details in stats['provider_details'].items():
            logger.info(f"  {name}: {details['status']}, {details['groups']} groups, "
                        f"{details['runtime_seconds']:.2f}s")

    def health_check(self) -> Dict[str, Any]:
        """
        Validate configuration and provider settings without contacting providers.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            self._load_secret_store()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except Exception as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        provider_checks = {}
        for provider_config in provider_configs(self.config):
            try:
                syncer = self._create_syncer(provider_config)
                syncer.init()
                syncer.validate()
                provider_checks[provider_config.name] = {
                    'status': 'pass',
                    'message': 'Provider configuration valid'
                }
            except ConfigValidationError as e:
                provider_checks[provider_config.name] = {
                    'status': 'fail',
                    'message': 'Provider configuration invalid',
                    'errors': e.errors
                }
                health_status['status'] = 'unhealthy'
            except Exception as e:
                provider_checks[provider_config.name] = {
                    'status': 'fail',
                    'message': f'Provider loading failed: {e}'
                }
                health_status['status'] = 'unhealthy'

        health_status['checks']['providers'] = provider_checks
        return health_status


def main():
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description='Directory Group Sync')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--output', '-o', help='Write canonical groups to this file instead of stdout')
    parser.add_argument('--health-check', action='store_true',
                        help='Validate configuration and providers instead of syncing')

    args = parser.parse_args()

    orchestrator = SyncOrchestrator(config_path=args.config, output_path=args.output)

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    sys.exit(orchestrator.run())


if __name__ == "__main__":
    main()
