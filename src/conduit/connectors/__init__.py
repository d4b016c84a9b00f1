"""
Connector framework for Conduit.

Services are described by data (see ``builtin``); this package holds the
catalog of descriptors, the authentication strategies and the store of live
connections.
"""

from .auth import (
    ApiKeyAuth,
    AuthStrategy,
    AuthStrategyResolver,
    BasicAuth,
    BearerTokenAuth,
    CustomAuthHandler,
    NoAuth,
    OAuth2ClientAuth,
)
from .builtin import BUILTIN_SERVICES
from .catalog import ServiceCatalog
from .store import ConnectionStore

__all__ = [
    "ApiKeyAuth",
    "AuthStrategy",
    "AuthStrategyResolver",
    "BasicAuth",
    "BearerTokenAuth",
    "CustomAuthHandler",
    "NoAuth",
    "OAuth2ClientAuth",
    "BUILTIN_SERVICES",
    "ServiceCatalog",
    "ConnectionStore",
]
