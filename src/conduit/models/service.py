"""
Service descriptor models.

A Service is pure data: where an API lives, how to authenticate against it,
how to normalize its responses, and which endpoints it exposes.
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


class AuthProvider(str, Enum):
    """Supported authentication strategies."""
    NONE = "none"
    API_KEY = "api-key"
    BEARER_TOKEN = "bearer-token"
    BASIC = "basic"
    OAUTH2 = "oauth2"
    CUSTOM = "custom"


class DataTransformerKind(str, Enum):
    """Supported response normalizations."""
    PASSTHROUGH = "passthrough"
    JSON = "json"
    XML = "xml"
    FORM = "form"


class EndpointDescriptor(BaseModel):
    """Templated HTTP method + path + defaults for one operation on a Service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    method: str = Field("GET", description="HTTP method")
    path: str = Field(..., description="Path template relative to the base URL, e.g. /repos/{owner}/{repo}")
    content_type: Optional[str] = Field(None, description="Content type of the request body")
    default_params: Dict[str, str] = Field(default_factory=dict, description="Default query parameters")
    headers: Dict[str, str] = Field(default_factory=dict, description="Static extra request headers")
    description: Optional[str] = Field(None, description="What the endpoint does")

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        method = str(v).upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported HTTP method '{v}'")
        return method

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Endpoint path must start with '/'")
        return v

    @field_validator("default_params", mode="before")
    @classmethod
    def stringify_defaults(cls, v):
        # Descriptors commonly declare numeric defaults such as {"per_page": 10}
        if isinstance(v, dict):
            return {str(key): str(value) for key, value in v.items()}
        return v

    def placeholders(self) -> List[str]:
        """Names of the ``{name}`` placeholders in the path, in order of appearance."""
        return PLACEHOLDER_PATTERN.findall(self.path)


class Service(BaseModel):
    """Immutable descriptor of a third-party API."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str = Field(..., min_length=1, description="Unique service identifier")
    name: str = Field(..., description="Human-readable name")
    description: str = Field("", description="Optional description")
    base_url: str = Field(..., description="Base URL every endpoint path is appended to")
    auth_provider: AuthProvider = Field(..., description="Authentication strategy tag")
    data_transformer: DataTransformerKind = Field(DataTransformerKind.JSON, description="Response normalization tag")
    endpoints: Dict[str, EndpointDescriptor] = Field(default_factory=dict, description="Endpoints by id")
    auth_defaults: Dict[str, str] = Field(
        default_factory=dict,
        description="Non-secret auth settings merged under the caller's auth config",
    )
    auth_handler: Optional[str] = Field(None, description="Registered custom auth handler id")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("auth_defaults", mode="before")
    @classmethod
    def stringify_auth_defaults(cls, v):
        if isinstance(v, dict):
            return {
                str(key): " ".join(value) if isinstance(value, list) else str(value)
                for key, value in v.items()
            }
        return v

    @model_validator(mode="after")
    def check_custom_handler(self) -> "Service":
        if self.auth_provider == AuthProvider.CUSTOM and not self.auth_handler:
            raise ValueError("Services using the 'custom' auth provider must name an authHandler")
        return self

    def get_endpoint(self, endpoint_id: str) -> Optional[EndpointDescriptor]:
        """Look up an endpoint descriptor by id."""
        return self.endpoints.get(endpoint_id)

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)
