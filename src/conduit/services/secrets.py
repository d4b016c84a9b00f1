"""
Secret resolution for connection credentials.

Callers may pass ``${NAME}`` placeholders instead of literal credentials; they
are resolved from Google Secret Manager, falling back to environment variables.
"""

import logging
import os
import re
from typing import Dict, Iterable, Optional

from google.cloud import secretmanager

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_\-]+)\}")
DEFAULT_SECRET_PREFIX = "CONDUIT_SECRET_"


class SecretManagerService:
    """Service for retrieving secrets from Google Secret Manager."""

    def __init__(self, project_id: Optional[str] = None, client=None):
        """Initialize Secret Manager service."""
        self.project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        if not self.project_id:
            raise ValueError("GOOGLE_CLOUD_PROJECT environment variable must be set")

        self.client = client or secretmanager.SecretManagerServiceClient()
        self._cache: Dict[str, str] = {}

    def get_secret(self, secret_name: str, version: str = "latest") -> str:
        """Retrieve a secret value from Secret Manager."""
        cache_key = f"{secret_name}:{version}"

        if cache_key in self._cache:
            return self._cache[cache_key]

        try:
            secret_path = f"projects/{self.project_id}/secrets/{secret_name}/versions/{version}"
            response = self.client.access_secret_version(request={"name": secret_path})
            secret_value = response.payload.data.decode("UTF-8")

            self._cache[cache_key] = secret_value
            logger.info(f"Retrieved secret: {secret_name}")
            return secret_value

        except Exception as e:
            logger.error(f"Failed to retrieve secret {secret_name}: {type(e).__name__}")
            raise


class SecretResolver:
    """Replaces ``${NAME}`` placeholders in auth config values.

    Only names starting with ``allowed_prefix`` or listed in ``allowed_names``
    resolve; anything else in the process environment stays out of reach of
    callers.
    """

    def __init__(self, secret_service: Optional[SecretManagerService] = None,
                 allowed_prefix: str = DEFAULT_SECRET_PREFIX,
                 allowed_names: Optional[Iterable[str]] = None):
        self.secret_service = secret_service
        self.allowed_prefix = allowed_prefix
        self.allowed_names = frozenset(allowed_names or ())

    def is_allowed(self, name: str) -> bool:
        if name in self.allowed_names:
            return True
        return bool(self.allowed_prefix) and name.startswith(self.allowed_prefix)

    def lookup(self, name: str) -> str:
        """
        Resolve one placeholder name.

        Raises:
            ConfigurationError: If the name is not allowed, or neither Secret Manager
                nor the environment has it
        """
        if not self.is_allowed(name):
            logger.warning(f"Refused secret placeholder {name}: name is not allowed")
            raise ConfigurationError(f"Secret '{name}' is not allowed")

        if self.secret_service is not None:
            try:
                return self.secret_service.get_secret(name)
            except Exception:
                logger.warning(f"Secret {name} unavailable in Secret Manager, trying environment")

        value = os.getenv(name)
        if value is None:
            raise ConfigurationError(f"Secret '{name}' could not be resolved")
        return value

    def resolve(self, auth_config: Dict[str, str]) -> Dict[str, str]:
        resolved = {}
        for key, value in auth_config.items():
            if isinstance(value, str) and PLACEHOLDER.search(value):
                resolved[key] = PLACEHOLDER.sub(lambda match: self.lookup(match.group(1)), value)
                logger.debug(f"Resolved secret placeholder(s) for auth setting '{key}'")
            else:
                resolved[key] = value
        return resolved
