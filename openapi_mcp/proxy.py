"""Forward one tool invocation to the backend API as one HTTP request."""

import json
import re
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, urlencode

import httpx

from .errors import UpstreamError, ValidationError
from .log import get_logger
from .openapi import Operation
from .schema import BODY_FIELD, HEADERS_FIELD, FieldValidator

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "content-type": "application/json",
    "accept":       "application/json",
}
BODYLESS_METHODS = ("get", "delete")
DEFAULT_TIMEOUT  = 30.0

_PLACEHOLDER = re.compile(r"{([^}]+)}")


# ------------------------------------------------------------------------------
#  PARAMETER RESOLUTION
# ------------------------------------------------------------------------------
def stringify(value: Any) -> str:
    """Render a parameter value the way it travels in a URL or header."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _absent(arguments: Mapping[str, Any], name: str) -> bool:
    return arguments.get(name) is None


def build_path(operation: Operation, arguments: Mapping[str, Any]) -> str:
    declared = {p.name for p in operation.parameters_in("path")}

    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in declared:
            raise ValidationError(f"Invalid path parameter: {name}")
        if _absent(arguments, name):
            raise ValidationError(f"Missing path parameter: {name}")
        # RFC 2396 marks stay literal
        return quote(stringify(arguments[name]), safe="!*'()")

    return _PLACEHOLDER.sub(substitute, operation.path)


def build_query(operation: Operation, arguments: Mapping[str, Any]) -> Dict[str, str]:
    query = {}
    for param in operation.parameters_in("query"):
        if _absent(arguments, param.name):
            raise ValidationError(f"Missing query parameter: {param.name}")
        query[param.name] = stringify(arguments[param.name])
    return query


def build_headers(operation: Operation, arguments: Mapping[str, Any]) -> Dict[str, str]:
    headers = {}
    for param in operation.parameters_in("header"):
        if _absent(arguments, param.name):
            # Reported with the query wording
            raise ValidationError(f"Missing query parameter: {param.name}")
        headers[param.name] = stringify(arguments[param.name])

    supplied = arguments.get(HEADERS_FIELD) or {}
    if not isinstance(supplied, Mapping):
        raise ValidationError(f"Invalid {HEADERS_FIELD} parameter: expected an object")
    for name in operation.request_headers:
        value = supplied.get(name)
        if value:
            headers[name] = stringify(value)
    return headers


def build_body(
    operation: Operation,
    arguments: Mapping[str, Any],
    body_field: Optional[FieldValidator] = None,
) -> Optional[Any]:
    """Return the payload to send, or None when the request has no body.

    The declared body schema only gates the call: the value sent is the
    caller's own, never a normalized copy.
    """
    if operation.method.lower() in BODYLESS_METHODS or operation.request_body is None:
        return None
    body = arguments.get(BODY_FIELD)
    if body is None:
        return None
    if body_field is not None:
        body_field.validate(body)
    return body


# ------------------------------------------------------------------------------
#  PROXY
# ------------------------------------------------------------------------------
class OperationProxy:
    """Callable that turns tool arguments into a backend call for one operation."""

    def __init__(
        self,
        base_url:   str,
        operation:  Operation,
        body_field: Optional[FieldValidator] = None,
        timeout:    float = DEFAULT_TIMEOUT,
        client:     Optional[httpx.AsyncClient] = None,
    ):
        self.base_url   = base_url.rstrip("/")
        self.operation  = operation
        self.body_field = body_field
        self.timeout    = timeout
        self._client    = client

    def build_request(self, arguments: Optional[Mapping[str, Any]]) -> httpx.Request:
        """Resolve every parameter; raises ValidationError before any I/O."""
        arguments = arguments or {}
        path    = build_path(self.operation, arguments)
        query   = build_query(self.operation, arguments)
        extra   = build_headers(self.operation, arguments)
        body    = build_body(self.operation, arguments, self.body_field)

        query_string = urlencode(query)
        url = f"{self.base_url}{path}{'?' + query_string if query_string else ''}"

        headers = httpx.Headers(DEFAULT_HEADERS)
        for name, value in extra.items():
            headers[name] = value

        req: Dict[str, Any] = {
            "headers":    headers,
            "extensions": {"timeout": httpx.Timeout(self.timeout).as_dict()},
        }
        if isinstance(body, (str, bytes)):
            req["content"] = body
        elif body is not None:
            req["json"] = body
        return httpx.Request(self.operation.method.upper(), url, **req)

    async def __call__(self, arguments: Optional[Mapping[str, Any]]) -> Any:
        request = self.build_request(arguments)
        if self._client is not None:
            response = await self._client.send(request)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.send(request)
        return self._parse(request, response)

    def _parse(self, request: httpx.Request, response: httpx.Response) -> Any:
        if not response.is_success:
            logger.error(
                "Failed to fetch from API server",
                status=response.status_code,
                status_text=response.reason_phrase,
                response=response.text,
                headers=dict(request.headers),
                url=str(request.url),
                method=request.method,
                operation=self.operation.operation_id,
            )
            raise UpstreamError(
                f"Failed to fetch from API server: {response.reason_phrase}",
                status_code=response.status_code,
                reason=response.reason_phrase,
                body=response.text,
            )
        if response.status_code == 204:
            return None
        return response.json()
