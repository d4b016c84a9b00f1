"""
Connector engine: the facade consumed by the API, the CLI and orchestration
layers. Wires the catalog, auth resolver, connection store, invoker and
transformer registry together.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from ..connectors.auth import AuthStrategyResolver, CustomAuthHandler
from ..connectors.builtin import BUILTIN_SERVICES
from ..connectors.catalog import ServiceCatalog, parse_service
from ..connectors.store import ConnectionStore
from ..core.config import ConnectorSettings
from ..exceptions import DuplicateService, PersistenceError
from ..models.connection import ConnectionInfo
from ..models.result import NormalizedResult
from ..models.service import Service
from ..services.firestore import ServiceRepository
from ..services.secrets import SecretManagerService, SecretResolver
from .invoker import EndpointInvoker, create_session
from .transforms import DataTransformerRegistry

logger = logging.getLogger(__name__)


class ConnectorEngine:
    """Executes descriptor-driven requests against configured services."""

    def __init__(self, settings: Optional[ConnectorSettings] = None,
                 session: Optional[requests.Session] = None,
                 secret_resolver: Optional[SecretResolver] = None,
                 repository: Optional[ServiceRepository] = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings or ConnectorSettings()
        self.session = session or create_session(self.settings)
        self.secret_resolver = secret_resolver
        self.repository = repository

        self.catalog = ServiceCatalog()
        self.resolver = AuthStrategyResolver(
            session=self.session,
            timeout=self.settings.http_timeout,
            refresh_skew=self.settings.refresh_skew,
            clock=clock,
        )
        self.store = ConnectionStore(self.catalog, self.resolver)
        self.transformers = DataTransformerRegistry()
        self.invoker = EndpointInvoker(
            self.catalog,
            self.store,
            self.resolver,
            self.transformers,
            self.session,
            settings=self.settings,
            sleep=sleep,
        )
        self._ready = False
        self._register_lock = threading.Lock()

    def initialize(self) -> None:
        """Load built-in, file-based and persisted descriptors into the catalog."""
        if self.settings.load_builtins:
            self.catalog.register_many(BUILTIN_SERVICES)
        if self.settings.services_file:
            self.catalog.load_file(self.settings.services_file)
        if self.repository is not None:
            for service in self.repository.list_services():
                if service.id in self.catalog:
                    logger.warning(f"Skipping persisted service '{service.id}': id already registered")
                    continue
                self.catalog.register(service)
        self._ready = True
        logger.info(f"Connector engine initialized with {len(self.catalog)} services")

    def is_ready(self) -> bool:
        return self._ready

    def status(self) -> Dict[str, Any]:
        return {
            "status": "ready" if self.is_ready() else "initializing",
            "services": len(self.catalog),
            "connections": len(self.store),
        }

    # Catalog

    def list_services(self) -> List[Service]:
        return self.catalog.list()

    def get_service(self, service_id: str) -> Service:
        return self.catalog.get(service_id)

    def register_service(self, descriptor: Union[Service, Dict[str, Any]], persist: bool = True) -> Service:
        """
        Register a service descriptor, saving it to the repository when one is configured.

        The descriptor is persisted before it becomes visible in the catalog, so
        a failed write leaves nothing registered and the call can be retried.

        Raises:
            ConfigurationError: If the descriptor is malformed
            DuplicateService: If a service with the same id exists
            PersistenceError: If the repository write fails
        """
        service = parse_service(descriptor)
        with self._register_lock:
            if service.id in self.catalog:
                raise DuplicateService(service.id)
            if persist and self.repository is not None:
                try:
                    self.repository.save_service(service)
                except Exception as e:
                    raise PersistenceError(f"Could not persist service '{service.id}' ({type(e).__name__})") from e
            return self.catalog.register(service)

    def register_auth_handler(self, handler_id: str, handler: CustomAuthHandler) -> None:
        self.resolver.register_custom_handler(handler_id, handler)

    # Connections

    def connect(self, service_id: str, auth_config: Optional[Dict[str, str]] = None) -> ConnectionInfo:
        """
        Connect to a service.

        ``${NAME}`` placeholders in auth config values are resolved through the
        secret resolver before the credentials reach the auth strategy.
        """
        self.catalog.get(service_id)
        auth_config = dict(auth_config or {})
        if self.secret_resolver is not None:
            auth_config = self.secret_resolver.resolve(auth_config)
        return self.store.connect(service_id, auth_config).info()

    def disconnect(self, connection_id: str) -> None:
        self.store.disconnect(connection_id)

    def list_connections(self) -> List[ConnectionInfo]:
        return self.store.list()

    def get_connection(self, connection_id: str) -> ConnectionInfo:
        return self.store.info(connection_id)

    # Invocation

    def invoke(self, connection_id: str, endpoint_id: str,
               path_params: Optional[Dict[str, Any]] = None,
               query_params: Optional[Dict[str, Any]] = None,
               body: Any = None,
               cancel_event: Optional[threading.Event] = None) -> NormalizedResult:
        return self.invoker.invoke(connection_id, endpoint_id, path_params, query_params, body, cancel_event)


def create_engine_from_env(settings: Optional[ConnectorSettings] = None) -> ConnectorEngine:
    """Create and initialize an engine using environment configuration.

    Secret Manager is used when GOOGLE_CLOUD_PROJECT is set; Firestore
    persistence when CONDUIT_FIRESTORE_ENABLED is true.

    Returns:
        Initialized ConnectorEngine
    """
    settings = settings or ConnectorSettings.from_env()

    secret_service = None
    if settings.project_id:
        try:
            secret_service = SecretManagerService(project_id=settings.project_id)
            logger.info("Secret Manager service initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Secret Manager service: {e}")

    repository = None
    if settings.firestore_enabled:
        repository = ServiceRepository(project_id=settings.project_id, collection=settings.firestore_collection)

    engine = ConnectorEngine(
        settings=settings,
        secret_resolver=SecretResolver(
            secret_service,
            allowed_prefix=settings.secret_prefix,
            allowed_names=settings.secret_names,
        ),
        repository=repository,
    )
    engine.initialize()
    return engine
