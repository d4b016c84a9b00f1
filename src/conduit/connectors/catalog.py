"""
Service catalog: the registry of declaratively described services.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from pydantic import ValidationError

from ..exceptions import ConfigurationError, DuplicateService, ServiceNotFound
from ..models.service import Service

logger = logging.getLogger(__name__)


def parse_service(descriptor: Union[Service, Dict[str, Any]]) -> Service:
    """Validate a raw descriptor into a Service.

    Raises:
        ConfigurationError: If the descriptor is malformed
    """
    if isinstance(descriptor, Service):
        return descriptor
    try:
        return Service.model_validate(descriptor)
    except ValidationError as e:
        service_id = descriptor.get("id") if isinstance(descriptor, dict) else None
        raise ConfigurationError(f"Invalid service descriptor '{service_id}': {e}") from e


class ServiceCatalog:
    """Append-only, registration-ordered collection of Service descriptors."""

    def __init__(self):
        self._services: Dict[str, Service] = {}
        self._lock = threading.Lock()

    def register(self, descriptor: Union[Service, Dict[str, Any]]) -> Service:
        """
        Register a service descriptor.

        Args:
            descriptor: A Service or its camelCase/snake_case dictionary form

        Returns:
            The registered Service

        Raises:
            ConfigurationError: If the descriptor is malformed
            DuplicateService: If a service with the same id exists
        """
        service = parse_service(descriptor)
        with self._lock:
            if service.id in self._services:
                raise DuplicateService(service.id)
            self._services[service.id] = service
        logger.info(f"Registered service '{service.id}' with {len(service.endpoints)} endpoints")
        return service

    def register_many(self, descriptors: Iterable[Union[Service, Dict[str, Any]]]) -> List[Service]:
        return [self.register(descriptor) for descriptor in descriptors]

    def load_file(self, path: Union[str, Path]) -> List[Service]:
        """Register every descriptor in a JSON file.

        The file holds either a list of descriptors or ``{"services": [...]}``.
        """
        file_path = Path(path)
        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not read service descriptors from {file_path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("services", [])
        if not isinstance(data, list):
            raise ConfigurationError(f"{file_path} must contain a list of service descriptors")

        services = self.register_many(data)
        logger.info(f"Loaded {len(services)} service descriptors from {file_path}")
        return services

    def list(self) -> List[Service]:
        """All services in registration order."""
        with self._lock:
            return list(self._services.values())

    def get(self, service_id: str) -> Service:
        service = self._services.get(service_id)
        if service is None:
            raise ServiceNotFound(service_id)
        return service

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._services

    def __len__(self) -> int:
        return len(self._services)
