"""
Endpoint invoker: turns an endpoint descriptor plus caller parameters into an
HTTP call, executes it with bounded retries, and normalizes the response.
"""

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from ..connectors.auth import AuthStrategyResolver
from ..connectors.catalog import ServiceCatalog
from ..connectors.store import ConnectionStore
from ..core.config import ConnectorSettings
from ..exceptions import (
    ConfigurationError,
    EndpointNotFound,
    InvocationCancelled,
    MissingPathParameter,
    UpstreamError,
    UpstreamTimeout,
)
from ..models.request import OutboundRequest
from ..models.result import NormalizedResult
from ..models.service import PLACEHOLDER_PATTERN, EndpointDescriptor
from .transforms import DataTransformerRegistry, encode_body

logger = logging.getLogger(__name__)

BODYLESS_METHODS = ("GET", "HEAD")
CHUNK_SIZE = 64 * 1024


def create_session(settings: ConnectorSettings) -> requests.Session:
    """Shared session with a connection pool sized for concurrent invocations.

    Retries are driven by the invoker, so the adapter never retries on its own.
    """
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=settings.pool_size, pool_maxsize=settings.pool_size, max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({'User-Agent': settings.user_agent})
    return session


def expand_path(template: str, path_params: Optional[Dict[str, Any]]) -> str:
    """
    Substitute ``{name}`` placeholders with percent-encoded values.

    Raises:
        MissingPathParameter: Naming the first placeholder without a value
    """
    path_params = path_params or {}
    for name in PLACEHOLDER_PATTERN.findall(template):
        if name not in path_params or path_params[name] is None:
            raise MissingPathParameter(name)
    return PLACEHOLDER_PATTERN.sub(lambda match: quote(str(path_params[match.group(1)]), safe=""), template)


def merge_query(defaults: Dict[str, str], query_params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Descriptor defaults overlaid by caller values; caller wins."""
    merged = dict(defaults)
    for key, value in (query_params or {}).items():
        if value is not None:
            merged[str(key)] = str(value)
    return merged


class _TransientFailure(Exception):
    """Transport-level failure eligible for retry."""


class EndpointInvoker:
    """Builds, authenticates, executes and normalizes endpoint calls."""

    def __init__(self, catalog: ServiceCatalog, store: ConnectionStore, resolver: AuthStrategyResolver,
                 transformers: DataTransformerRegistry, session: requests.Session,
                 settings: Optional[ConnectorSettings] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.catalog = catalog
        self.store = store
        self.resolver = resolver
        self.transformers = transformers
        self.session = session
        self.settings = settings or ConnectorSettings()
        self._sleep = sleep

    def invoke(self, connection_id: str, endpoint_id: str,
               path_params: Optional[Dict[str, Any]] = None,
               query_params: Optional[Dict[str, Any]] = None,
               body: Any = None,
               cancel_event: Optional[threading.Event] = None) -> NormalizedResult:
        """
        Call an endpoint of the connection's service.

        Args:
            connection_id: Id returned by connect
            endpoint_id: Endpoint declared on the service
            path_params: Values for the path placeholders; extras are ignored
            query_params: Query values overriding the endpoint defaults
            body: Request payload; dropped for GET and HEAD
            cancel_event: Set by the caller to abandon the call

        Returns:
            NormalizedResult with the transformer output

        Raises:
            ConnectionNotFound, EndpointNotFound, MissingPathParameter, AuthFailure,
            UpstreamTimeout, UpstreamError, TransformError, InvocationCancelled
        """
        connection = self.store.get(connection_id)
        service = self.catalog.get(connection.service_id)
        endpoint = service.get_endpoint(endpoint_id)
        if endpoint is None:
            raise EndpointNotFound(service.id, endpoint_id)

        request = self._build_request(service.base_url, endpoint_id, endpoint, path_params, query_params, body)

        auth_state = self.resolver.ensure_fresh(service, connection)
        self.resolver.inject(service, connection, auth_state, request)

        status_code, content_type, raw = self._execute(endpoint_id, request, cancel_event)

        if not 200 <= status_code < 300:
            text = raw.decode("utf-8", errors="replace")
            limit = self.settings.max_error_body
            logger.error(f"{service.id}.{endpoint_id} returned HTTP {status_code}")
            raise UpstreamError(status_code, text[:limit], truncated=len(text) > limit)

        data = self.transformers.transform(service.data_transformer, raw, endpoint_id)
        return NormalizedResult(
            service_id=service.id,
            endpoint_id=endpoint_id,
            status_code=status_code,
            content_type=content_type,
            data=data,
        )

    def _build_request(self, base_url: str, endpoint_id: str, endpoint: EndpointDescriptor,
                       path_params: Optional[Dict[str, Any]], query_params: Optional[Dict[str, Any]],
                       body: Any) -> OutboundRequest:
        path = expand_path(endpoint.path, path_params)
        request = OutboundRequest(
            method=endpoint.method,
            url=f"{base_url}{path}",
            headers=dict(endpoint.headers),
            params=merge_query(endpoint.default_params, query_params),
        )

        if endpoint.method in BODYLESS_METHODS:
            if body is not None:
                logger.debug(f"Dropping body supplied for {endpoint.method} endpoint '{endpoint_id}'")
        elif body is not None:
            request.data, content_type = encode_body(body, endpoint.content_type)
            request.set_header("Content-Type", content_type)

        logger.debug(f"Built {request.method} {request.url} with query keys {sorted(request.params)}")
        return request

    def _execute(self, endpoint_id: str, request: OutboundRequest,
                 cancel_event: Optional[threading.Event]):
        """Run the request with bounded retries on transport failures."""
        try:
            prepared = self.session.prepare_request(requests.Request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                params=request.params,
                data=request.data,
            ))
        except (requests.exceptions.RequestException, ValueError) as e:
            raise ConfigurationError(f"Cannot build request for endpoint '{endpoint_id}': {type(e).__name__}") from None

        attempts = self.settings.max_attempts
        last_error = None
        for attempt in range(1, attempts + 1):
            self._check_cancelled(endpoint_id, cancel_event)
            try:
                return self._send_once(endpoint_id, prepared, cancel_event)
            except _TransientFailure as e:
                last_error = str(e)
                if attempt == attempts:
                    break
                delay = self._backoff(attempt)
                logger.warning(f"Attempt {attempt}/{attempts} for endpoint '{endpoint_id}' failed "
                               f"({last_error}); retrying in {delay:.2f}s")
                self._wait(delay, endpoint_id, cancel_event)

        logger.error(f"Endpoint '{endpoint_id}' failed after {attempts} attempt(s): {last_error}")
        raise UpstreamTimeout(attempts, last_error)

    def _send_once(self, endpoint_id: str, prepared: requests.PreparedRequest,
                   cancel_event: Optional[threading.Event]):
        timeout = self.settings.http_timeout
        deadline = time.monotonic() + timeout
        try:
            response = self.session.send(prepared, timeout=timeout, stream=True)
        except requests.exceptions.RequestException as e:
            # Exception text can include the URL with credential query params
            raise _TransientFailure(type(e).__name__) from None

        try:
            chunks = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if cancel_event is not None and cancel_event.is_set():
                    raise InvocationCancelled(endpoint_id)
                if time.monotonic() > deadline:
                    raise _TransientFailure("ReadTimeout")
                chunks.append(chunk)
        except requests.exceptions.RequestException as e:
            raise _TransientFailure(type(e).__name__) from None
        finally:
            response.close()

        return response.status_code, response.headers.get("Content-Type"), b"".join(chunks)

    def _backoff(self, attempt: int) -> float:
        base = self.settings.backoff_base
        delay = min(self.settings.backoff_max, base * (2 ** (attempt - 1)))
        return delay + random.uniform(0, base)

    def _wait(self, delay: float, endpoint_id: str, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is None:
            self._sleep(delay)
        elif cancel_event.wait(delay):
            raise InvocationCancelled(endpoint_id)

    @staticmethod
    def _check_cancelled(endpoint_id: str, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise InvocationCancelled(endpoint_id)
