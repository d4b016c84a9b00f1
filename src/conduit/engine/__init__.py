"""
Invocation engine for descriptor-driven endpoint calls.
"""

from .connector_engine import ConnectorEngine, create_engine_from_env
from .invoker import EndpointInvoker
from .transforms import DataTransformerRegistry

__all__ = [
    "ConnectorEngine",
    "create_engine_from_env",
    "EndpointInvoker",
    "DataTransformerRegistry",
]
