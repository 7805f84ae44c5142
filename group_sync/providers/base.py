"""
Base provider adapter interface and common HTTP functionality.

This module defines the abstract base class that every directory provider must
implement, along with the HTTP transport and TLS handling the adapters share.
"""

import json
import ssl
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, urlencode, urlparse
from http.client import HTTPConnection, HTTPException, HTTPSConnection

from cryptography import x509

from group_sync.exceptions import TransportError
from group_sync.models import Credential, NativeGroup, NativeUser, ProviderConfig, SyncScope

logger = logging.getLogger(__name__)

SECRET_CA_KEY = 'ca.crt'


class HTTPTransport:
    """
    Minimal JSON-over-HTTP client.

    Keeps one connection per host so a provider can talk to both its token
    endpoint and its API endpoint.
    """

    def __init__(self, name: str, insecure: bool = False, ca_data: Optional[bytes] = None,
                 timeout: int = 30):
        """
        Initialize transport.

        Args:
            name: Provider name used in log and error messages
            insecure: Disable TLS certificate verification
            ca_data: PEM encoded CA certificates to trust
            timeout: Socket timeout in seconds
        """
        self.name = name
        self.timeout = timeout
        self.headers: Dict[str, str] = {'Accept': 'application/json'}
        self.connections: Dict[Tuple[str, str], Union[HTTPSConnection, HTTPConnection]] = {}
        self.ssl_context = self._create_ssl_context(insecure, ca_data)

    def _create_ssl_context(self, insecure: bool, ca_data: Optional[bytes]) -> ssl.SSLContext:
        # A configured CA takes precedence over insecure mode
        if insecure and ca_data:
            logger.warning(f"Both insecure mode and a CA certificate are set for {self.name}; "
                           f"verifying against the CA certificate")
        elif insecure:
            logger.warning(f"SSL verification disabled for {self.name}")
            return ssl._create_unverified_context()

        context = ssl.create_default_context()
        if ca_data:
            context.load_verify_locations(cadata=ca_data.decode('ascii'))
            logger.info(f"Loaded trusted CA certificates for {self.name}")
        return context

    def set_bearer_token(self, token: str):
        self.headers['Authorization'] = f"Bearer {token}"

    def _get_connection(self, scheme: str, host: str) -> Union[HTTPSConnection, HTTPConnection]:
        key = (scheme, host)
        if key not in self.connections:
            if scheme == 'https':
                self.connections[key] = HTTPSConnection(host, context=self.ssl_context, timeout=self.timeout)
            else:
                self.connections[key] = HTTPConnection(host, timeout=self.timeout)
        return self.connections[key]

    def _drop_connection(self, scheme: str, host: str):
        conn = self.connections.pop((scheme, host), None)
        if conn:
            conn.close()

    def request(self, method: str, url: str, params: Optional[Mapping[str, Any]] = None,
                form: Optional[Mapping[str, str]] = None,
                headers: Optional[Mapping[str, str]] = None) -> Any:
        """
        Make an HTTP request and return the decoded JSON body.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query string parameters
            form: Form fields sent as an urlencoded body
            headers: Additional headers

        Returns:
            Parsed JSON response, or None for an empty body

        Raises:
            TransportError: On connection failures, HTTP errors or invalid JSON
        """
        parsed = urlparse(url)
        path = parsed.path or '/'
        query = parsed.query
        if params:
            extra = urlencode(params, quote_via=quote)
            query = f"{query}&{extra}" if query else extra
        if query:
            path = f"{path}?{query}"

        request_headers = dict(self.headers)
        if headers:
            request_headers.update(headers)

        body = None
        if form is not None:
            body = urlencode(form)
            request_headers['Content-Type'] = 'application/x-www-form-urlencoded'

        try:
            conn = self._get_connection(parsed.scheme, parsed.netloc)
            logger.debug(f"Making {method} request to {parsed.netloc}{parsed.path}")
            conn.request(method, path, body, request_headers)
            response = conn.getresponse()
            response_data = response.read().decode('utf-8')
        except (OSError, HTTPException, UnicodeDecodeError) as e:
            self._drop_connection(parsed.scheme, parsed.netloc)
            raise TransportError(f"Connection error to {self.name}: {e}")

        logger.debug(f"Response status: {response.status} {response.reason}")

        if response.status >= 400:
            raise TransportError(f"HTTP {response.status} from {self.name}: {response.reason}",
                                 status_code=response.status)

        try:
            return json.loads(response_data) if response_data else None
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON response from {self.name}: {e}")

    def close(self):
        """Close all open connections."""
        for key in list(self.connections):
            try:
                self.connections[key].close()
            except Exception as e:
                logger.warning(f"Error closing connection for {self.name}: {e}")
        self.connections.clear()


def validate_url(url: Optional[str], field: str = 'url') -> List[str]:
    """Return an error if ``url`` is not an absolute http(s) URL."""
    if not url:
        return [f"Missing required field '{field}'"]
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return [f"Invalid {field} '{url}': expected an absolute http(s) URL"]
    return []


class ProviderAdapter(ABC):
    """
    Abstract base class for directory provider integrations.

    All provider modules must inherit from this class and implement the
    required methods. The sync engine depends only on this interface.
    """

    kind: str = ''

    # Credential keys checked by validate()
    required_secret_keys: Tuple[str, ...] = ()

    # Whether the group allow-list applies to this provider's top-level groups
    applies_allow_list: bool = False

    def __init__(self, config: ProviderConfig):
        """
        Initialize provider adapter.

        Args:
            config: Provider configuration
        """
        self.config = config
        self.name = config.name
        self.transport: Optional[HTTPTransport] = None

    def init(self) -> bool:
        """
        Apply defaults for unset configuration fields.

        Returns:
            True if any default was applied
        """
        return False

    def validate(self, credential: Credential) -> List[str]:
        """
        Collect every configuration and secret problem for this provider.

        Args:
            credential: Credential looked up for this provider

        Returns:
            List of error messages, empty if the provider is valid
        """
        errors = []
        for key in credential.missing(self.required_secret_keys):
            errors.append(f"Could not find '{key}' key in secret '{credential.source}'")

        ca_data = credential.get(SECRET_CA_KEY)
        if ca_data:
            try:
                x509.load_pem_x509_certificates(ca_data)
            except ValueError as e:
                errors.append(f"Invalid '{SECRET_CA_KEY}' in secret '{credential.source}': {e}")

        errors.extend(self.validate_config())
        return errors

    def validate_config(self) -> List[str]:
        """Provider-specific configuration checks."""
        return []

    @property
    def source_url(self) -> str:
        """URL whose host identifies where synced groups came from."""
        return self.config.url

    def create_transport(self, credential: Credential) -> HTTPTransport:
        return HTTPTransport(self.name, insecure=self.config.insecure,
                             ca_data=credential.get(SECRET_CA_KEY))

    @abstractmethod
    def authenticate(self, credential: Credential):
        """
        Authenticate against the provider. Single attempt, no retry.

        Raises:
            AuthenticationError: If authentication fails
        """
        pass

    @abstractmethod
    def list_top_level_groups(self, scope: SyncScope) -> List[NativeGroup]:
        """
        List the groups a sync starts from.

        Raises:
            TransportError: If the listing call fails
        """
        pass

    @abstractmethod
    def list_group_members(self, group_id: str) -> List[NativeUser]:
        """
        List every member of a group, in provider order.

        Raises:
            TransportError: If the listing call fails
        """
        pass

    def close_connection(self):
        if self.transport:
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_connection()
