"""
External services used by the connector framework.
"""

from .firestore import ServiceRepository
from .secrets import SecretManagerService, SecretResolver

__all__ = [
    "ServiceRepository",
    "SecretManagerService",
    "SecretResolver",
]
