"""Configuration management for the connector framework."""

import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from ..exceptions import ConfigurationError


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_environment(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Path to .env file. If None, looks for .env in current directory.
    """
    env_path = Path(env_file) if env_file else Path('.env')

    if env_path.exists():
        load_dotenv(env_path)
        logging.info(f"Loaded environment from {env_path}")
    else:
        logging.debug(f"No .env file found at {env_path}")


def get_optional_env(key: str, default: str = "") -> str:
    """Get an optional environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    return os.getenv(key, default)


def _env_flag(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConnectorSettings(BaseModel):
    """Tunables for request execution, token refresh and catalog loading."""

    http_timeout: float = Field(10.0, gt=0, description="Per-call timeout in seconds")
    max_attempts: int = Field(3, ge=1, le=10, description="Attempts per invocation for transport failures")
    backoff_base: float = Field(0.2, ge=0, description="First retry delay in seconds, doubled per attempt")
    backoff_max: float = Field(5.0, ge=0, description="Upper bound for a single retry delay")
    refresh_skew: float = Field(30.0, ge=0, description="Refresh tokens this many seconds before expiry")
    pool_size: int = Field(20, ge=1, description="HTTP connection pool size")
    user_agent: str = Field("conduit-connectors/1.0", description="User-Agent sent upstream")
    max_error_body: int = Field(4096, ge=0, description="Upstream error body characters kept in UpstreamError")

    services_file: Optional[str] = Field(None, description="JSON file of extra service descriptors")
    load_builtins: bool = Field(True, description="Register the built-in service descriptors")
    firestore_enabled: bool = Field(False, description="Load/persist descriptors in Firestore")
    firestore_collection: str = Field("connector_services", description="Firestore collection for descriptors")
    project_id: Optional[str] = Field(None, description="Google Cloud project")
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"], description="CORS origins for the API")
    secret_prefix: str = Field("CONDUIT_SECRET_", description="Secret placeholder names must start with this prefix")
    secret_names: List[str] = Field(default_factory=list, description="Extra secret names allowed in placeholders")

    @classmethod
    def from_env(cls) -> "ConnectorSettings":
        """Build settings from CONDUIT_* environment variables.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        values = {
            "http_timeout": os.getenv("CONDUIT_HTTP_TIMEOUT"),
            "max_attempts": os.getenv("CONDUIT_MAX_ATTEMPTS"),
            "backoff_base": os.getenv("CONDUIT_BACKOFF_BASE"),
            "backoff_max": os.getenv("CONDUIT_BACKOFF_MAX"),
            "refresh_skew": os.getenv("CONDUIT_REFRESH_SKEW"),
            "pool_size": os.getenv("CONDUIT_POOL_SIZE"),
            "max_error_body": os.getenv("CONDUIT_MAX_ERROR_BODY"),
            "user_agent": os.getenv("CONDUIT_USER_AGENT"),
            "services_file": os.getenv("CONDUIT_SERVICES_FILE"),
            "firestore_collection": os.getenv("CONDUIT_FIRESTORE_COLLECTION"),
            "project_id": os.getenv("GOOGLE_CLOUD_PROJECT"),
        }
        values = {key: value for key, value in values.items() if value}
        # An empty prefix is meaningful: only the listed names resolve
        if os.getenv("CONDUIT_ALLOWED_SECRET_PREFIX") is not None:
            values["secret_prefix"] = os.getenv("CONDUIT_ALLOWED_SECRET_PREFIX")
        secret_names = get_optional_env("CONDUIT_ALLOWED_SECRETS")
        values["secret_names"] = [name.strip() for name in secret_names.split(",") if name.strip()]
        values["load_builtins"] = _env_flag("CONDUIT_LOAD_BUILTINS", True)
        values["firestore_enabled"] = _env_flag("CONDUIT_FIRESTORE_ENABLED", False)

        origins = get_optional_env("ALLOWED_ORIGINS")
        allowed_origins = [origin.strip() for origin in origins.split(",") if origin.strip()]
        if allowed_origins:
            values["allowed_origins"] = allowed_origins

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid connector settings: {e}") from e
