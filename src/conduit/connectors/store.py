"""
Connection store: lifecycle of authenticated bindings to services.
"""

import logging
import threading
import uuid
from typing import Dict, List

from ..exceptions import AuthFailure, ConnectionNotFound
from ..models.connection import Connection, ConnectionInfo
from .auth import AuthStrategyResolver
from .catalog import ServiceCatalog

logger = logging.getLogger(__name__)


class ConnectionStore:
    """
    Holds live Connections by id.

    The index lock only covers dictionary insert/remove/lookup and is never held
    across I/O; credential state is guarded by each Connection's own lock.
    """

    def __init__(self, catalog: ServiceCatalog, resolver: AuthStrategyResolver):
        self.catalog = catalog
        self.resolver = resolver
        self._connections: Dict[str, Connection] = {}
        self._index_lock = threading.Lock()

    def connect(self, service_id: str, auth_config: Dict[str, str]) -> Connection:
        """
        Authenticate against a service and publish a new connection.

        Args:
            service_id: Registered service id
            auth_config: Caller credentials, merged over the service's auth defaults

        Returns:
            A Connection in the connected state

        Raises:
            ServiceNotFound: If the service is unknown
            AuthFailure: If the strategy rejects the credentials
        """
        service = self.catalog.get(service_id)
        merged_config = {**service.auth_defaults, **(auth_config or {})}
        connection = Connection(str(uuid.uuid4()), service.id, service.auth_provider, merged_config)

        try:
            auth_state = self.resolver.authenticate(service, merged_config)
        except AuthFailure as e:
            connection.mark_failed()
            logger.error(f"Connection to '{service_id}' failed: {e.reason}")
            raise

        connection.mark_connected(auth_state)
        with self._index_lock:
            self._connections[connection.id] = connection
        logger.info(f"Connected to '{service_id}' as connection {connection.id}")
        return connection

    def get(self, connection_id: str) -> Connection:
        with self._index_lock:
            connection = self._connections.get(connection_id)
        if connection is None:
            raise ConnectionNotFound(connection_id)
        return connection

    def disconnect(self, connection_id: str) -> None:
        """Remove a connection. Unknown or already removed ids are ignored."""
        with self._index_lock:
            connection = self._connections.pop(connection_id, None)
        if connection is None:
            logger.debug(f"Disconnect of unknown connection {connection_id} ignored")
            return
        connection.mark_disconnected()
        logger.info(f"Disconnected connection {connection_id} ('{connection.service_id}')")

    def info(self, connection_id: str) -> ConnectionInfo:
        return self.get(connection_id).info()

    def list(self) -> List[ConnectionInfo]:
        with self._index_lock:
            connections = list(self._connections.values())
        return [connection.info() for connection in connections]

    def __len__(self) -> int:
        return len(self._connections)
