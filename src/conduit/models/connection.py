"""
Connection models.

A Connection owns its credentials and any tokens derived from them. Callers only
ever see a ConnectionInfo view, which never carries credential values.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel

from .service import AuthProvider


class ConnectionState(str, Enum):
    """Lifecycle state of a connection."""
    PENDING = "pending"
    CONNECTED = "connected"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class AuthState:
    """Credential material derived at connect time or by a refresh.

    Instances are immutable; a refresh publishes a new AuthState on the
    connection so in-flight requests keep the snapshot they started with.
    """

    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[float] = None
    issued_at: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def expired(self, now: float, skew: float = 0.0) -> bool:
        """Whether the token is past (or within ``skew`` seconds of) its expiry.

        The skew never exceeds half the lifetime of a token with a known issue
        time, so short-lived tokens are not stale the moment they are issued.
        """
        if self.expires_at is None:
            return False
        if self.issued_at is not None:
            skew = min(skew, (self.expires_at - self.issued_at) / 2)
        return now >= self.expires_at - skew

    def with_token(self, access_token: str, expires_at: Optional[float],
                   refresh_token: Optional[str] = None, issued_at: Optional[float] = None) -> "AuthState":
        return replace(
            self,
            access_token=access_token,
            expires_at=expires_at,
            issued_at=issued_at,
            refresh_token=refresh_token or self.refresh_token,
        )


class ConnectionInfo(BaseModel):
    """Public, credential-free view of a connection."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: str
    service_id: str
    auth_provider: AuthProvider
    state: ConnectionState
    connected_at: Optional[datetime] = None
    credential_keys: List[str] = Field(default_factory=list, description="Names of the supplied auth settings")
    token_expires_at: Optional[datetime] = None


class Connection:
    """Authenticated binding between a caller and one Service."""

    def __init__(self, connection_id: str, service_id: str, auth_provider: AuthProvider,
                 auth_config: Dict[str, str]):
        self._id = connection_id
        self._service_id = service_id
        self.auth_provider = auth_provider
        self._auth_config: Dict[str, SecretStr] = {
            key: SecretStr(str(value)) for key, value in auth_config.items()
        }
        self.state = ConnectionState.PENDING
        self.connected_at: Optional[datetime] = None
        self.auth_state = AuthState()
        # Serializes token refreshes for this connection only
        self.refresh_lock = threading.Lock()

    @property
    def id(self) -> str:
        return self._id

    @property
    def service_id(self) -> str:
        return self._service_id

    def auth_config(self) -> Dict[str, str]:
        """Plaintext credentials, for auth strategies only."""
        return {key: value.get_secret_value() for key, value in self._auth_config.items()}

    def mark_connected(self, auth_state: AuthState) -> None:
        self.auth_state = auth_state
        self.state = ConnectionState.CONNECTED
        self.connected_at = datetime.now(timezone.utc)

    def mark_failed(self) -> None:
        self.state = ConnectionState.FAILED

    def mark_disconnected(self) -> None:
        self.state = ConnectionState.DISCONNECTED

    def info(self) -> ConnectionInfo:
        expires_at = self.auth_state.expires_at
        return ConnectionInfo(
            id=self._id,
            service_id=self._service_id,
            auth_provider=self.auth_provider,
            state=self.state,
            connected_at=self.connected_at,
            credential_keys=sorted(self._auth_config),
            token_expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc) if expires_at else None,
        )

    def __repr__(self) -> str:
        return f"Connection(id={self._id!r}, service_id={self._service_id!r}, state={self.state.value!r})"
