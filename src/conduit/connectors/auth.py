"""
Authentication strategies.

Each Service names one of a closed set of providers. A strategy validates (and
for token-based providers, exchanges) credentials once at connect time, and
injects them into every outbound request. Token refreshes run at most once at a
time per connection; concurrent callers wait for the refresh in progress and
reuse its result.
"""

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import requests

from ..exceptions import AuthFailure
from ..models.connection import AuthState, Connection
from ..models.request import OutboundRequest
from ..models.service import AuthProvider, Service

logger = logging.getLogger(__name__)

DEFAULT_API_KEY_HEADER = "X-API-Key"


class TokenEndpointClient:
    """Performs OAuth2 token-endpoint grants (no browser flows)."""

    def __init__(self, session: requests.Session, timeout: float = 10.0,
                 clock: Callable[[], float] = time.time):
        self.session = session
        self.timeout = timeout
        self.clock = clock

    def request_token(self, provider: str, token_url: str, form: Dict[str, str]) -> AuthState:
        """
        POST a grant to the token endpoint.

        Args:
            provider: Provider tag used in error messages
            token_url: Token endpoint URL
            form: Grant parameters, sent form-encoded

        Returns:
            AuthState holding the new access token and its expiry

        Raises:
            AuthFailure: If the endpoint is unreachable, rejects the grant, or answers without a token
        """
        request = requests.Request("POST", token_url, data=form, headers={"Accept": "application/json"})
        logger.debug(f"Requesting {form.get('grant_type')} token from {token_url}")
        try:
            prepared = self.session.prepare_request(request)
            response = self.session.send(prepared, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            # Suppress the chained exception; it can reference the request body
            raise AuthFailure(provider, f"token endpoint unreachable ({type(e).__name__})") from None

        if not response.ok:
            raise AuthFailure(provider, f"token endpoint returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            raise AuthFailure(provider, "token endpoint returned a non-JSON body") from None

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthFailure(provider, "token response did not include an access_token")

        issued_at = self.clock()
        expires_at = None
        if payload.get("expires_in") is not None:
            try:
                expires_at = issued_at + float(payload["expires_in"])
            except (TypeError, ValueError):
                raise AuthFailure(provider, "token response carried an invalid expires_in") from None

        return AuthState(
            access_token=str(payload["access_token"]),
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
            issued_at=issued_at,
            extra={"token_type": payload.get("token_type", "Bearer")},
        )


class AuthStrategy(ABC):
    """Connect-time validation plus per-request credential injection."""

    provider: AuthProvider
    required_keys: Tuple[str, ...] = ()

    def validate(self, auth_config: Dict[str, str]) -> None:
        missing = [key for key in self.required_keys if not auth_config.get(key)]
        if missing:
            raise AuthFailure(self.provider.value, f"missing required setting(s): {', '.join(missing)}")

    @abstractmethod
    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        """Validate or exchange credentials; called once per connect."""

    @abstractmethod
    def inject(self, request: OutboundRequest, auth_config: Dict[str, str], state: AuthState) -> None:
        """Attach credentials to an outbound request."""

    def can_refresh(self, auth_config: Dict[str, str], state: AuthState) -> bool:
        return False

    def refresh(self, auth_config: Dict[str, str], state: AuthState) -> AuthState:
        raise AuthFailure(self.provider.value, "credentials cannot be refreshed")


class NoAuth(AuthStrategy):
    """Public APIs."""

    provider = AuthProvider.NONE

    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        return AuthState()

    def inject(self, request: OutboundRequest, auth_config: Dict[str, str], state: AuthState) -> None:
        return None


class ApiKeyAuth(AuthStrategy):
    """
    Static API key sent as a header or query parameter.

    Settings: ``api_key`` (required), ``header_name`` (default X-API-Key) or
    ``query_param`` to send the key in the query string instead.
    """

    provider = AuthProvider.API_KEY
    required_keys = ("api_key",)

    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        self.validate(auth_config)
        if auth_config.get("header_name") == "" and not auth_config.get("query_param"):
            raise AuthFailure(self.provider.value, "header_name must not be empty")
        return AuthState()

    def inject(self, request: OutboundRequest, auth_config: Dict[str, str], state: AuthState) -> None:
        query_param = auth_config.get("query_param")
        if query_param:
            request.set_query_param(query_param, auth_config["api_key"])
        else:
            request.set_header(auth_config.get("header_name") or DEFAULT_API_KEY_HEADER, auth_config["api_key"])


class BasicAuth(AuthStrategy):
    """HTTP Basic authentication with username and password."""

    provider = AuthProvider.BASIC
    required_keys = ("username", "password")

    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        self.validate(auth_config)
        if ":" in auth_config["username"]:
            raise AuthFailure(self.provider.value, "username must not contain ':'")
        raw = f"{auth_config['username']}:{auth_config['password']}".encode("utf-8")
        return AuthState(access_token=base64.b64encode(raw).decode("ascii"))

    def inject(self, request: OutboundRequest, auth_config: Dict[str, str], state: AuthState) -> None:
        request.set_header("Authorization", f"Basic {state.access_token}")


class _TokenAuth(AuthStrategy):
    """Shared behavior of strategies that send a bearer access token."""

    def __init__(self, token_client: TokenEndpointClient):
        self.token_client = token_client

    def inject(self, request: OutboundRequest, auth_config: Dict[str, str], state: AuthState) -> None:
        request.set_header("Authorization", f"Bearer {state.access_token}")

    def _refresh_grant(self, auth_config: Dict[str, str], state: AuthState) -> AuthState:
        form = {"grant_type": "refresh_token", "refresh_token": state.refresh_token or ""}
        for key in ("client_id", "client_secret", "scope"):
            if auth_config.get(key):
                form[key] = auth_config[key]
        fresh = self.token_client.request_token(self.provider.value, auth_config["token_url"], form)
        return state.with_token(fresh.access_token, fresh.expires_at, fresh.refresh_token, fresh.issued_at)


class BearerTokenAuth(_TokenAuth):
    """
    Caller-supplied bearer token.

    Settings: ``token`` (required). Optional ``expires_at`` (epoch seconds); a
    token with an expiry is refreshable when ``token_url`` and
    ``refresh_token`` are also supplied.
    """

    provider = AuthProvider.BEARER_TOKEN
    required_keys = ("token",)

    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        self.validate(auth_config)
        expires_at = None
        if auth_config.get("expires_at"):
            try:
                expires_at = float(auth_config["expires_at"])
            except ValueError:
                raise AuthFailure(self.provider.value, "expires_at must be epoch seconds") from None

        state = AuthState(
            access_token=auth_config["token"],
            refresh_token=auth_config.get("refresh_token"),
            expires_at=expires_at,
        )
        if state.expired(self.token_client.clock()):
            if not self.can_refresh(auth_config, state):
                raise AuthFailure(self.provider.value, "token has expired and no refresh is configured")
            return self.refresh(auth_config, state)
        return state

    def can_refresh(self, auth_config: Dict[str, str], state: AuthState) -> bool:
        return bool(auth_config.get("token_url") and state.refresh_token)

    def refresh(self, auth_config: Dict[str, str], state: AuthState) -> AuthState:
        if not self.can_refresh(auth_config, state):
            raise AuthFailure(self.provider.value, "token has expired and no refresh is configured")
        return self._refresh_grant(auth_config, state)


class OAuth2ClientAuth(_TokenAuth):
    """
    OAuth2 token-endpoint grants.

    Settings: ``client_id``, ``client_secret`` and ``token_url`` (required),
    optional ``scope``. Connect uses the refresh-token grant when a
    ``refresh_token`` is supplied, the client-credentials grant otherwise.
    """

    provider = AuthProvider.OAUTH2
    required_keys = ("client_id", "client_secret", "token_url")

    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        self.validate(auth_config)
        if auth_config.get("refresh_token"):
            return self._refresh_grant(auth_config, AuthState(refresh_token=auth_config["refresh_token"]))
        return self._client_credentials(auth_config, AuthState())

    def can_refresh(self, auth_config: Dict[str, str], state: AuthState) -> bool:
        return True

    def refresh(self, auth_config: Dict[str, str], state: AuthState) -> AuthState:
        if state.refresh_token:
            return self._refresh_grant(auth_config, state)
        return self._client_credentials(auth_config, state)

    def _client_credentials(self, auth_config: Dict[str, str], state: AuthState) -> AuthState:
        form = {
            "grant_type": "client_credentials",
            "client_id": auth_config["client_id"],
            "client_secret": auth_config["client_secret"],
        }
        if auth_config.get("scope"):
            form["scope"] = auth_config["scope"]
        fresh = self.token_client.request_token(self.provider.value, auth_config["token_url"], form)
        return state.with_token(fresh.access_token, fresh.expires_at, fresh.refresh_token, fresh.issued_at)


class CustomAuthHandler(ABC):
    """Authentication behavior supplied by the embedding application."""

    @abstractmethod
    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        """Validate credentials; raise AuthFailure to reject them."""

    @abstractmethod
    def inject(self, request: OutboundRequest, auth_config: Dict[str, str], state: AuthState) -> None:
        """Attach credentials (header, query parameter or signature) to the request."""

    def refresh(self, auth_config: Dict[str, str], state: AuthState) -> Optional[AuthState]:
        """Return a refreshed state, or None when the handler cannot refresh."""
        return None


class CustomAuth(AuthStrategy):
    """Adapter running a registered CustomAuthHandler."""

    provider = AuthProvider.CUSTOM

    def __init__(self, handler_id: str, handler: CustomAuthHandler):
        self.handler_id = handler_id
        self.handler = handler

    def authenticate(self, auth_config: Dict[str, str]) -> AuthState:
        return self._call("authenticate", lambda: self.handler.authenticate(auth_config))

    def inject(self, request: OutboundRequest, auth_config: Dict[str, str], state: AuthState) -> None:
        self.handler.inject(request, auth_config, state)

    def can_refresh(self, auth_config: Dict[str, str], state: AuthState) -> bool:
        return type(self.handler).refresh is not CustomAuthHandler.refresh

    def refresh(self, auth_config: Dict[str, str], state: AuthState) -> AuthState:
        refreshed = self._call("refresh", lambda: self.handler.refresh(auth_config, state))
        if refreshed is None:
            raise AuthFailure(self.provider.value, f"handler '{self.handler_id}' cannot refresh credentials")
        return refreshed

    def _call(self, step: str, fn: Callable[[], Optional[AuthState]]) -> Optional[AuthState]:
        try:
            return fn()
        except AuthFailure:
            raise
        except Exception as e:
            # Handler messages may echo credentials; only the exception type is reported
            raise AuthFailure(
                self.provider.value,
                f"handler '{self.handler_id}' failed during {step} ({type(e).__name__})",
            ) from None


class AuthStrategyResolver:
    """Maps a Service's auth provider tag to a concrete strategy."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10.0,
                 refresh_skew: float = 30.0, clock: Callable[[], float] = time.time):
        self.token_client = TokenEndpointClient(session or requests.Session(), timeout, clock)
        self.refresh_skew = refresh_skew
        self.clock = clock
        self._strategies: Dict[AuthProvider, AuthStrategy] = {
            AuthProvider.NONE: NoAuth(),
            AuthProvider.API_KEY: ApiKeyAuth(),
            AuthProvider.BASIC: BasicAuth(),
            AuthProvider.BEARER_TOKEN: BearerTokenAuth(self.token_client),
            AuthProvider.OAUTH2: OAuth2ClientAuth(self.token_client),
        }
        self._custom_handlers: Dict[str, CustomAuthHandler] = {}

    def register_custom_handler(self, handler_id: str, handler: CustomAuthHandler) -> None:
        """Make a handler available to services with ``authHandler: handler_id``."""
        if not isinstance(handler, CustomAuthHandler):
            raise TypeError("Custom auth handlers must subclass CustomAuthHandler")
        self._custom_handlers[handler_id] = handler
        logger.info(f"Registered custom auth handler '{handler_id}'")

    def resolve(self, service: Service) -> AuthStrategy:
        if service.auth_provider == AuthProvider.CUSTOM:
            handler = self._custom_handlers.get(service.auth_handler or "")
            if handler is None:
                raise AuthFailure(
                    AuthProvider.CUSTOM.value,
                    f"no custom auth handler registered under '{service.auth_handler}'",
                )
            return CustomAuth(service.auth_handler, handler)
        return self._strategies[service.auth_provider]

    def authenticate(self, service: Service, auth_config: Dict[str, str]) -> AuthState:
        """Connect-time validation/exchange step."""
        strategy = self.resolve(service)
        state = strategy.authenticate(auth_config)
        logger.info(f"Authenticated against '{service.id}' using '{strategy.provider.value}'")
        return state

    def ensure_fresh(self, service: Service, connection: Connection) -> AuthState:
        """
        Return usable credentials for a connection, refreshing them if they expired.

        The first caller to see an expired token refreshes it while holding the
        connection's refresh lock; callers arriving meanwhile block on the lock
        and then find the fresh token already published.

        Raises:
            AuthFailure: If the token expired and cannot be refreshed, or the refresh fails
        """
        strategy = self.resolve(service)
        auth_config = connection.auth_config()
        state = connection.auth_state
        if not self._needs_refresh(strategy, auth_config, state):
            return state

        with connection.refresh_lock:
            if connection.auth_state is not state:
                # Another caller refreshed while this one waited on the lock
                return connection.auth_state
            logger.info(f"Refreshing credentials for connection {connection.id} ('{service.id}')")
            refreshed = strategy.refresh(auth_config, state)
            connection.auth_state = refreshed
            return refreshed

    def inject(self, service: Service, connection: Connection, state: AuthState,
               request: OutboundRequest) -> None:
        """Per-request injection step."""
        self.resolve(service).inject(request, connection.auth_config(), state)

    def _needs_refresh(self, strategy: AuthStrategy, auth_config: Dict[str, str], state: AuthState) -> bool:
        now = self.clock()
        if not state.expired(now, self.refresh_skew):
            return False
        if strategy.can_refresh(auth_config, state):
            return True
        if state.expired(now):
            raise AuthFailure(strategy.provider.value, "token has expired and no refresh is configured")
        return False
