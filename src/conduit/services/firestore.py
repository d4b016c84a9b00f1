"""
Firestore persistence for dynamically registered service descriptors.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from google.cloud import firestore

from ..connectors.catalog import parse_service
from ..exceptions import ConfigurationError
from ..models.service import Service

logger = logging.getLogger(__name__)


class ServiceRepository:
    """
    Stores Service descriptors in a Firestore collection, one document per service id.
    """

    def __init__(self, project_id: Optional[str] = None, collection: str = "connector_services", db=None):
        """
        Initialize the repository.

        Args:
            project_id: Google Cloud project ID. If None, uses the environment default.
            collection: Collection holding the descriptors
            db: Pre-built Firestore client
        """
        try:
            self.db = db or firestore.Client(project=project_id)
            self.collection = collection
            logger.info(f"Service repository initialized on collection '{collection}'")
        except Exception as e:
            logger.error(f"Failed to initialize Firestore: {e}")
            raise

    def list_services(self) -> List[Service]:
        """
        Load every stored descriptor, oldest registration first.

        Malformed documents are skipped with an error log so one bad record
        does not prevent startup.
        """
        services = []
        query = self.db.collection(self.collection).order_by("registered_at")
        for doc in query.stream():
            data = doc.to_dict() or {}
            data.pop("registered_at", None)
            data.setdefault("id", doc.id)
            try:
                services.append(parse_service(data))
            except ConfigurationError as e:
                logger.error(f"Skipping stored service document {doc.id}: {e}")
        logger.info(f"Loaded {len(services)} service descriptors from Firestore")
        return services

    def save_service(self, service: Service) -> Service:
        """
        Persist a descriptor.

        Args:
            service: Service to store

        Returns:
            The stored service
        """
        try:
            data = service.to_public_dict()
            data["registered_at"] = datetime.now(timezone.utc).isoformat()
            self.db.collection(self.collection).document(service.id).set(data)
            logger.info(f"Saved service descriptor: {service.id}")
            return service
        except Exception as e:
            logger.error(f"Failed to save service {service.id}: {e}")
            raise

