"""Mutable outbound request built by the invoker and decorated by auth strategies."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Union


@dataclass
class OutboundRequest:
    """An HTTP request before it is handed to the transport."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    data: Optional[Union[bytes, str]] = field(default=None, repr=False)

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def set_query_param(self, name: str, value: str) -> None:
        self.params[name] = value
