"""
Main FastAPI application for the Conduit connector framework.
"""

import asyncio
import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from .. import __version__
from ..core.config import ConnectorSettings, setup_logging
from ..engine.connector_engine import ConnectorEngine, create_engine_from_env
from ..exceptions import ConduitException

logger = logging.getLogger(__name__)

# Global engine (initialized in lifespan)
connector_engine: Optional[ConnectorEngine] = None

ERROR_STATUS = {
    "ServiceNotFound": 404,
    "ConnectionNotFound": 404,
    "EndpointNotFound": 404,
    "DuplicateService": 409,
    "AuthFailure": 401,
    "MissingPathParameter": 400,
    "ConfigurationError": 400,
    "UpstreamTimeout": 504,
    "UpstreamError": 502,
    "TransformError": 502,
    "InvocationCancelled": 499,
    "PersistenceError": 503,
}

# Seconds between client disconnect checks while an invocation runs
DISCONNECT_POLL_INTERVAL = 0.25


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global connector_engine

    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    try:
        connector_engine = create_engine_from_env()
        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Failed to initialize connector engine: {e}")
        # Let the app start; endpoints report the engine as unavailable
        connector_engine = None

    yield

    logger.info("Application shutdown")


app = FastAPI(
    title="Conduit Connector API",
    description="Descriptor-driven connections to third-party REST APIs",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ConnectorSettings.from_env().allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class ConnectRequest(_CamelModel):
    service_id: str = Field(..., description="Service to connect to")
    auth_config: Dict[str, str] = Field(default_factory=dict, description="Credentials; ${NAME} placeholders allowed")


class InvokeRequest(_CamelModel):
    endpoint_id: str = Field(..., description="Endpoint declared on the service")
    path_params: Dict[str, str] = Field(default_factory=dict)
    query_params: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = Field(None, description="Request payload, ignored for GET")


@app.exception_handler(ConduitException)
async def conduit_exception_handler(request: Request, exc: ConduitException) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Dependency injection
def get_engine() -> ConnectorEngine:
    if connector_engine is None:
        raise HTTPException(status_code=503, detail="Connector engine not initialized")
    if not connector_engine.is_ready():
        raise HTTPException(status_code=503, detail="Connector engine still loading services")
    return connector_engine


@app.get("/health")
async def health_check():
    """Check the health of the application."""
    return {
        "status": "healthy",
        "version": __version__,
        "services": {"connector_engine": connector_engine is not None},
    }


@app.get("/api/v1/status")
async def engine_status(engine: ConnectorEngine = Depends(get_engine)):
    """Report whether the engine is ready and how much it holds."""
    return engine.status()


# =============================================================================
# SERVICE CATALOG
# =============================================================================

@app.get("/api/v1/services")
async def list_services(engine: ConnectorEngine = Depends(get_engine)) -> List[Dict[str, Any]]:
    """List registered services in registration order."""
    return [service.to_public_dict() for service in engine.list_services()]


@app.get("/api/v1/services/{service_id}")
async def get_service(service_id: str, engine: ConnectorEngine = Depends(get_engine)):
    """Get a service descriptor."""
    return engine.get_service(service_id).to_public_dict()


@app.post("/api/v1/services", status_code=201)
async def register_service(descriptor: Dict[str, Any], engine: ConnectorEngine = Depends(get_engine)):
    """Register a new service descriptor."""
    service = await run_in_threadpool(engine.register_service, descriptor)
    return service.to_public_dict()


# =============================================================================
# CONNECTIONS
# =============================================================================

@app.post("/api/v1/connections", status_code=201)
async def connect(payload: ConnectRequest, engine: ConnectorEngine = Depends(get_engine)):
    """Authenticate against a service and open a connection."""
    info = await run_in_threadpool(engine.connect, payload.service_id, payload.auth_config)
    return info.model_dump(mode="json", by_alias=True)


@app.get("/api/v1/connections")
async def list_connections(engine: ConnectorEngine = Depends(get_engine)):
    """List live connections. Credentials are never returned."""
    return [info.model_dump(mode="json", by_alias=True) for info in engine.list_connections()]


@app.get("/api/v1/connections/{connection_id}")
async def get_connection(connection_id: str, engine: ConnectorEngine = Depends(get_engine)):
    """Get a connection's public details."""
    return engine.get_connection(connection_id).model_dump(mode="json", by_alias=True)


@app.delete("/api/v1/connections/{connection_id}")
async def disconnect(connection_id: str, engine: ConnectorEngine = Depends(get_engine)):
    """Disconnect. Unknown or already disconnected ids succeed as well."""
    engine.disconnect(connection_id)
    return {"success": True}


@app.post("/api/v1/connections/{connection_id}/invoke")
async def invoke_endpoint(connection_id: str, payload: InvokeRequest, request: Request,
                          engine: ConnectorEngine = Depends(get_engine)):
    """
    Call an endpoint through a connection and return the normalized result.

    The outbound call runs in the threadpool. While it runs the client connection
    is polled, and a disconnect sets the cancel event so the invoker stops at its
    next checkpoint.
    """
    cancel_event = threading.Event()
    invocation = asyncio.ensure_future(run_in_threadpool(
        engine.invoke,
        connection_id,
        payload.endpoint_id,
        payload.path_params,
        payload.query_params,
        payload.body,
        cancel_event,
    ))
    try:
        while not invocation.done():
            await asyncio.wait({invocation}, timeout=DISCONNECT_POLL_INTERVAL)
            if invocation.done() or cancel_event.is_set():
                continue
            if await request.is_disconnected():
                cancel_event.set()
                logger.info(f"Client disconnected; cancelling '{payload.endpoint_id}' on {connection_id}")
        result = await invocation
    except asyncio.CancelledError:
        # The request task itself was cancelled; stop the outbound call too
        cancel_event.set()
        invocation.cancel()
        logger.info(f"Invocation of '{payload.endpoint_id}' on {connection_id} cancelled by caller")
        raise
    return result.model_dump(mode="json", by_alias=True)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
