"""
Models for the Conduit connector framework.
"""

from .service import AuthProvider, DataTransformerKind, EndpointDescriptor, Service
from .connection import AuthState, Connection, ConnectionInfo, ConnectionState
from .result import NormalizedResult
from .request import OutboundRequest

__all__ = [
    # Descriptors
    "AuthProvider",
    "DataTransformerKind",
    "EndpointDescriptor",
    "Service",

    # Connections
    "AuthState",
    "Connection",
    "ConnectionInfo",
    "ConnectionState",

    # Results
    "NormalizedResult",
    "OutboundRequest",
]
