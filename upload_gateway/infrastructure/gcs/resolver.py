"""
Google Cloud credential resolution.

Produces an authenticated google.cloud.storage.Client using one of three
paths, chosen by the runtime environment:

1. production  -> Application Default Credentials (workload identity),
                  falling back to GOOGLE_CLIENT_EMAIL / GOOGLE_PRIVATE_KEY
2. secret set  -> service account JSON fetched from Secret Manager
3. otherwise   -> service account JSON read from GCS_KEYFILE_PATH

Whatever path succeeds, the client is checked with a bucket listing
before it is handed out. A misconfigured deployment fails at startup
instead of on the first upload.
"""

import json
import logging
from functools import partial
from pathlib import Path

import google.auth
import requests
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.auth.transport.requests import Request as AuthRequest
from google.cloud import secretmanager, storage
from google.oauth2 import service_account

from ...core.credentials import (
    CLOUD_PLATFORM_SCOPE,
    AmbientIdentity,
    CredentialConfig,
    CredentialStrategy,
    KeyFile,
    SecretManagerReference,
    ServiceAccountKey,
)
from ...core.errors import (
    AuthenticationError,
    ConfigurationError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

PRODUCTION = "production"
SCOPES = [CLOUD_PLATFORM_SCOPE]


def select_strategy(environment: str, config: CredentialConfig) -> CredentialStrategy:
    """
    Decide how to authenticate. First matching rule wins.

    Pure function: validates config but performs no I/O beyond
    resolving the key file path against the working directory.
    """
    if environment == PRODUCTION:
        return AmbientIdentity(project_id=config.project_id)

    if config.secret_name:
        if not config.project_id:
            raise ConfigurationError(
                "GOOGLE_CLOUD_PROJECT is required to read GCS_KEY_SECRET"
            )
        return SecretManagerReference(
            project_id=config.project_id,
            secret_name=config.secret_name,
        )

    if not config.keyfile_path:
        raise ConfigurationError("GCS_KEYFILE_PATH is required for development")

    return KeyFile(path=(Path.cwd() / config.keyfile_path).resolve())


class CredentialResolver:
    """
    Turns a CredentialConfig into a validated storage client.

    Each strategy has its own method so its failure modes can be
    tested in isolation. resolve() is the only public entry point.
    """

    def __init__(self, config: CredentialConfig) -> None:
        self._config = config

    def resolve(self, environment: str) -> storage.Client:
        """
        Build a storage client and check it can reach the service.

        Raises ConfigurationError, AuthenticationError or UpstreamError.
        """
        strategy = select_strategy(environment, self._config)

        logger.info(
            "Initializing Google Cloud Storage",
            extra={
                "environment": environment,
                "strategy": type(strategy).__name__,
            }
        )

        if isinstance(strategy, AmbientIdentity):
            client = self._from_ambient(strategy)
        elif isinstance(strategy, SecretManagerReference):
            client = self._from_service_account(self._load_secret(strategy))
        elif isinstance(strategy, KeyFile):
            client = self._from_service_account(self._load_key_file(strategy))
        else:
            client = self._from_service_account(strategy)

        self._check_connectivity(client)
        logger.info("Google Cloud Storage initialized successfully")
        return client

    # -----------------------------------------------------------------------
    # Strategies
    # -----------------------------------------------------------------------

    def _from_ambient(self, strategy: AmbientIdentity) -> storage.Client:
        """
        Try workload identity, fall back to explicit service account.

        Only a missing ADC triggers the fallback. The fallback key is
        exchanged for an access token up front so bad keys fail here.
        """
        try:
            credentials, detected_project = google.auth.default(scopes=SCOPES)
        except auth_exceptions.DefaultCredentialsError as e:
            logger.warning(
                "ADC failed, trying service account key",
                extra={"error": str(e)}
            )
            key = self._config.service_account_fallback()
            credentials = self._build_service_account_credentials(key)
            self._fetch_access_token(credentials, key.client_email)
            logger.info(
                "Using service account from env",
                extra={"client_email": key.client_email}
            )
            return storage.Client(project=key.project_id, credentials=credentials)

        project = strategy.project_id or detected_project
        logger.info(
            "Using Application Default Credentials",
            extra={"project": project}
        )
        return storage.Client(project=project, credentials=credentials)

    def _from_service_account(self, key: ServiceAccountKey) -> storage.Client:
        credentials = self._build_service_account_credentials(key)
        logger.info(
            "Using service account",
            extra={"client_email": key.client_email}
        )
        return storage.Client(project=key.project_id, credentials=credentials)

    # -----------------------------------------------------------------------
    # Key material loading
    # -----------------------------------------------------------------------

    def _load_secret(self, reference: SecretManagerReference) -> ServiceAccountKey:
        """Fetch and decode a service account key stored in Secret Manager."""
        try:
            client = secretmanager.SecretManagerServiceClient()
            response = client.access_secret_version(
                request={"name": reference.resource_name},
                timeout=self._config.timeout_seconds,
            )
        except auth_exceptions.GoogleAuthError as e:
            raise AuthenticationError(f"Cannot authenticate to Secret Manager: {e}")
        except (api_exceptions.GoogleAPIError, requests.exceptions.RequestException) as e:
            logger.error(
                "Secret Manager request failed",
                extra={"secret": reference.resource_name, "error": str(e)}
            )
            raise UpstreamError(f"Secret Manager request failed: {e}")

        data = response.payload.data if response.payload else None
        if not data:
            raise AuthenticationError(
                f"Secret {reference.resource_name} has an empty payload"
            )

        try:
            info = json.loads(data.decode("utf-8"))
            return ServiceAccountKey.from_info(
                info, default_project=reference.project_id
            )
        except (UnicodeDecodeError, json.JSONDecodeError, ConfigurationError) as e:
            raise AuthenticationError(
                f"Secret {reference.resource_name} is not a valid service account key: {e}"
            )

    def _load_key_file(self, key_file: KeyFile) -> ServiceAccountKey:
        """Read a service account key from disk."""
        if not key_file.path.is_file():
            raise ConfigurationError(
                f"Service account key file not found at: {key_file.path}"
            )

        try:
            info = json.loads(key_file.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(
                "Failed to parse service account key file",
                extra={"path": str(key_file.path), "error": str(e)}
            )
            raise ConfigurationError(f"Invalid service account key file: {e}")

        return ServiceAccountKey.from_info(
            info, default_project=self._config.project_id
        )

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _build_service_account_credentials(
        self,
        key: ServiceAccountKey,
    ) -> service_account.Credentials:
        try:
            return service_account.Credentials.from_service_account_info(
                key.to_info(), scopes=SCOPES
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid service account credentials: {e}")

    def _fetch_access_token(
        self,
        credentials: service_account.Credentials,
        client_email: str,
    ) -> None:
        try:
            credentials.refresh(
                partial(AuthRequest(), timeout=self._config.timeout_seconds)
            )
        except auth_exceptions.GoogleAuthError as e:
            logger.error(
                "Service account authentication failed",
                extra={"client_email": client_email, "error": str(e)}
            )
            raise AuthenticationError(f"Service account authentication failed: {e}")

    def _check_connectivity(self, client: storage.Client) -> int:
        """List buckets to prove the credentials work. Returns bucket count."""
        try:
            count = sum(
                1 for _ in client.list_buckets(timeout=self._config.timeout_seconds)
            )
        except Exception as e:
            logger.error("Storage connection test failed", extra={"error": str(e)})
            raise AuthenticationError(f"Cannot connect to Google Cloud Storage: {e}")

        logger.info(
            "Connected to Google Cloud Storage",
            extra={"bucket_count": count}
        )
        return count


def resolve_storage_client(
    environment: str,
    config: CredentialConfig,
) -> storage.Client:
    """Convenience wrapper: resolve(environment, config) -> client."""
    return CredentialResolver(config).resolve(environment)
