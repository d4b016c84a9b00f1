"""
Data transformers: request body encoding and response normalization.
"""

import json
import logging
import xml.etree.ElementTree as ElementTree
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode

from ..exceptions import ConfigurationError, TransformError
from ..models.service import DataTransformerKind

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"

ResponseTransformer = Callable[[bytes], Any]


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8")


def passthrough(raw: bytes) -> str:
    """Return the body as text."""
    return raw.decode("utf-8", errors="replace")


def parse_json(raw: bytes) -> Any:
    if not raw.strip():
        return None
    return json.loads(_decode(raw))


def _element_to_dict(element: ElementTree.Element) -> Any:
    children = list(element)
    if not children and not element.attrib:
        return (element.text or "").strip()

    result: Dict[str, Any] = {f"@{key}": value for key, value in element.attrib.items()}
    for child in children:
        value = _element_to_dict(child)
        if child.tag in result:
            # Repeated tags collapse into a list
            if not isinstance(result[child.tag], list):
                result[child.tag] = [result[child.tag]]
            result[child.tag].append(value)
        else:
            result[child.tag] = value
    text = (element.text or "").strip()
    if text:
        result["#text"] = text
    return result


def parse_xml(raw: bytes) -> Any:
    if not raw.strip():
        return None
    root = ElementTree.fromstring(raw)
    return {root.tag: _element_to_dict(root)}


def parse_form(raw: bytes) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in parse_qsl(_decode(raw), keep_blank_values=True):
        if key in result:
            if not isinstance(result[key], list):
                result[key] = [result[key]]
            result[key].append(value)
        else:
            result[key] = value
    return result


class DataTransformerRegistry:
    """Maps a transformer tag to a pure normalization function."""

    def __init__(self):
        self._transformers: Dict[DataTransformerKind, ResponseTransformer] = {
            DataTransformerKind.PASSTHROUGH: passthrough,
            DataTransformerKind.JSON: parse_json,
            DataTransformerKind.XML: parse_xml,
            DataTransformerKind.FORM: parse_form,
        }

    def get(self, kind: DataTransformerKind) -> ResponseTransformer:
        return self._transformers[DataTransformerKind(kind)]

    def transform(self, kind: DataTransformerKind, raw: bytes, endpoint_id: str) -> Any:
        """
        Normalize a raw response body.

        Args:
            kind: Transformer tag of the service
            raw: Response body bytes
            endpoint_id: Endpoint that produced the body, for error context

        Returns:
            The normalized payload

        Raises:
            TransformError: If the payload is malformed for the transformer
        """
        transformer = self.get(kind)
        try:
            return transformer(raw)
        except (ValueError, UnicodeDecodeError, ElementTree.ParseError) as e:
            logger.error(f"Transformer '{DataTransformerKind(kind).value}' failed for endpoint "
                         f"'{endpoint_id}' ({len(raw)} bytes): {type(e).__name__}")
            raise TransformError(endpoint_id, len(raw), f"{type(e).__name__}: {e}") from e


def _to_xml(tag: str, value: Any) -> ElementTree.Element:
    element = ElementTree.Element(tag)
    if isinstance(value, dict):
        for key, child in value.items():
            element.append(_to_xml(str(key), child))
    elif isinstance(value, list):
        for item in value:
            element.append(_to_xml("item", item))
    elif value is not None:
        element.text = str(value)
    return element


def encode_body(body: Any, content_type: Optional[str]) -> Tuple[Optional[bytes], str]:
    """
    Encode an outbound request body for the endpoint's content type.

    Args:
        body: Caller payload (JSON-compatible value, str, or bytes)
        content_type: Declared content type; JSON when not set

    Returns:
        Tuple of encoded bytes and the effective content type

    Raises:
        ConfigurationError: If the payload cannot be encoded as the content type
    """
    effective = content_type or DEFAULT_CONTENT_TYPE
    if body is None:
        return None, effective
    if isinstance(body, bytes):
        return body, effective

    media_type = effective.split(";", 1)[0].strip().lower()
    try:
        if media_type == "application/json" or media_type.endswith("+json"):
            return json.dumps(body).encode("utf-8"), effective
        if media_type == "application/x-www-form-urlencoded":
            if isinstance(body, str):
                return body.encode("utf-8"), effective
            if not isinstance(body, dict):
                raise TypeError("form bodies must be objects")
            return urlencode(body, doseq=True).encode("utf-8"), effective
        if media_type in ("application/xml", "text/xml") or media_type.endswith("+xml"):
            if isinstance(body, str):
                return body.encode("utf-8"), effective
            return ElementTree.tostring(_to_xml("root", body), encoding="utf-8"), effective
        if isinstance(body, str):
            return body.encode("utf-8"), effective
        if media_type.startswith("text/"):
            return str(body).encode("utf-8"), effective
        return json.dumps(body).encode("utf-8"), effective
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Request body cannot be encoded as {effective}: {e}") from e
