"""Load an OpenAPI document and turn its paths into Operation descriptors."""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml

from .errors import SpecificationError
from .log import get_logger

logger = get_logger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
PARAMETER_LOCATIONS = ("path", "query", "header")


# ------------------------------------------------------------------------------
#  MODEL
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class Parameter:
    name:     str
    location: str
    schema:   Dict[str, Any] = field(default_factory=dict)
    required: bool = False


@dataclass(frozen=True)
class Operation:
    operation_id:     str
    method:           str
    path:             str
    description:      str = ""
    summary:          str = ""
    parameters:       Tuple[Parameter, ...] = ()
    request_body:     Optional[Dict[str, Any]] = None
    content_type:     Optional[str] = None
    request_headers:  Tuple[str, ...] = ()
    response_headers: Tuple[str, ...] = ()

    def parameters_in(self, location: str) -> List[Parameter]:
        return [p for p in self.parameters if p.location == location]


# ------------------------------------------------------------------------------
#  LOADING
# ------------------------------------------------------------------------------
def load_spec(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a JSON or YAML OpenAPI document from disk."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".json", ".yaml", ".yml"):
        raise SpecificationError("Unsupported file format. Use YAML or JSON.")

    try:
        with open(path, encoding="utf-8") as f:
            if suffix == ".json":
                document = json.load(f)
            else:
                document = yaml.safe_load(f)
    except OSError as e:
        raise SpecificationError(f"Cannot read specification {path}: {e}") from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SpecificationError(f"Cannot parse specification {path}: {e}") from e

    if not isinstance(document, dict):
        raise SpecificationError(f"Specification {path} is not an object")
    return document


def resolve_ref(ref: str, spec: Dict[str, Any]) -> Any:
    """Resolve a local $ref ("#/components/...") against the document."""
    if not ref.startswith("#/"):
        raise SpecificationError(f"Only local references are supported: {ref}")
    obj: Any = spec
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        try:
            obj = obj[int(part)] if isinstance(obj, list) else obj[part]
        except (KeyError, IndexError, ValueError, TypeError) as e:
            raise SpecificationError(f"Unresolvable reference: {ref}") from e
    return obj


def dereference(document: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of the document with every local $ref inlined.

    A reference that points back into one of its own ancestors is kept as a
    plain $ref so recursive schemas stay finite.
    """

    def walk(node: Any, active: Tuple[str, ...]) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str):
                if ref in active:
                    return dict(node)
                target = walk(resolve_ref(ref, document), active + (ref,))
                siblings = {k: walk(v, active) for k, v in node.items() if k != "$ref"}
                if isinstance(target, dict):
                    return {**target, **siblings}
                return target
            return {k: walk(v, active) for k, v in node.items()}
        if isinstance(node, list):
            return [walk(item, active) for item in node]
        return node

    return walk(document, ())


# ------------------------------------------------------------------------------
#  OPERATIONS
# ------------------------------------------------------------------------------
def _operation_id(method: str, path: str, operation: Dict[str, Any]) -> str:
    op_id = operation.get("operationId")
    if op_id:
        return str(op_id)
    return re.sub(r"\W+", "_", f"{method}{path}").strip("_")


def _merge_parameters(
    path_level: Iterable[Dict[str, Any]],
    operation_level: Iterable[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    merged: Dict[Tuple[Any, Any], Dict[str, Any]] = {}
    for param in list(path_level) + list(operation_level):
        if not isinstance(param, dict):
            continue
        merged[(param.get("name"), param.get("in"))] = param
    return list(merged.values())


def _parameter(raw: Dict[str, Any]) -> Parameter:
    # Envelope keys that are also JSON schema keywords ride along with the schema
    envelope = {k: raw[k] for k in ("description", "deprecated") if k in raw}
    schema = raw.get("schema")
    if schema is None:
        schema = {}
    merged = {**envelope, **schema} if isinstance(schema, dict) else schema
    return Parameter(
        name=raw.get("name"),
        location=raw.get("in"),
        schema=merged,
        required=bool(raw.get("required", raw.get("in") == "path")),
    )


def _request_body(operation: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    content = (operation.get("requestBody") or {}).get("content") or {}
    if not content:
        return None, None
    media = "application/json" if "application/json" in content else next(iter(content))
    schema = (content[media] or {}).get("schema")
    if schema is None:
        return None, media
    return schema, media


def _response_headers(operation: Dict[str, Any]) -> Tuple[Tuple[str, ...], bool]:
    names: List[str] = []
    has_content = False
    for response in (operation.get("responses") or {}).values():
        if not isinstance(response, dict):
            continue
        has_content = has_content or bool(response.get("content"))
        for name in response.get("headers") or {}:
            if name not in names:
                names.append(name)
    return tuple(names), has_content


def build_operation(
    path: str,
    method: str,
    operation: Dict[str, Any],
    path_parameters: Iterable[Dict[str, Any]] = (),
) -> Operation:
    params = []
    for raw in _merge_parameters(path_parameters, operation.get("parameters") or []):
        if raw.get("in") == "cookie":
            logger.debug("Skipping cookie parameter", parameter=raw.get("name"), path=path)
            continue
        params.append(_parameter(raw))

    body, content_type = _request_body(operation)
    response_headers, has_content = _response_headers(operation)

    request_headers = []
    if content_type:
        request_headers.append("Content-Type")
    if has_content:
        request_headers.append("Accept")

    return Operation(
        operation_id=_operation_id(method, path, operation),
        method=method,
        path=path,
        description=operation.get("description") or operation.get("summary") or "",
        summary=operation.get("summary") or "",
        parameters=tuple(params),
        request_body=body,
        content_type=content_type,
        request_headers=tuple(request_headers),
        response_headers=response_headers,
    )


def extract_operations(
    document: Dict[str, Any],
    methods: Optional[Iterable[str]] = None,
) -> List[Operation]:
    """List the operations of a (dereferenced) document in declaration order."""
    wanted = {m.lower() for m in methods} if methods else set(HTTP_METHODS)
    operations = []
    for path, path_item in (document.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        path_parameters = path_item.get("parameters") or []
        for method, operation in path_item.items():
            method = method.lower()
            if method not in HTTP_METHODS or method not in wanted:
                continue
            if not isinstance(operation, dict):
                continue
            operations.append(build_operation(path, method, operation, path_parameters))
    return operations


def load_operations(
    path: Union[str, Path],
    methods: Optional[Iterable[str]] = None,
) -> List[Operation]:
    document = dereference(load_spec(path))
    operations = extract_operations(document, methods)
    logger.info("Loaded OpenAPI specification", spec=str(path), operations=len(operations))
    return operations
