"""Canonical result of an endpoint invocation."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NormalizedResult(BaseModel):
    """Transformer output plus the context it came from."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    service_id: str
    endpoint_id: str
    status_code: int
    content_type: Optional[str] = None
    data: Any = Field(None, description="Normalized response payload")
