"""Translate an operation's parameters and body into tool input fields."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import jsonschema
from jsonschema import Draft202012Validator

from .errors import TranslationError, ValidationError
from .openapi import PARAMETER_LOCATIONS, Operation

BODY_FIELD    = "body"
HEADERS_FIELD = "headers"


@dataclass(frozen=True)
class FieldValidator:
    name:        str
    schema:      Dict[str, Any]
    required:    bool
    validator:   Draft202012Validator
    decode_json: bool = False

    def validate(self, value: Any) -> None:
        # Bodies often arrive as JSON text; check the document they encode
        if self.decode_json and isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                pass
        error = jsonschema.exceptions.best_match(self.validator.iter_errors(value))
        if error is not None:
            raise ValidationError(f"Invalid {self.name} parameter: {error.message}")


def _field(
    operation: Operation,
    name: str,
    schema: Any,
    required: bool,
    decode_json: bool = False,
) -> FieldValidator:
    if not isinstance(schema, dict):
        raise TranslationError(
            f"{operation.operation_id}: schema of {name!r} must be an object, got {type(schema).__name__}"
        )
    try:
        Draft202012Validator.check_schema(schema)
    except jsonschema.SchemaError as e:
        raise TranslationError(
            f"{operation.operation_id}: malformed schema for {name!r}: {e.message}"
        ) from e
    return FieldValidator(name, schema, required, Draft202012Validator(schema), decode_json)


def translate(operation: Operation) -> Dict[str, FieldValidator]:
    """Map every declared input of the operation to a field validator.

    Parameters become required fields keyed by name. A declared request body
    adds an optional ``body`` field; declared custom request headers are
    collected as optional strings under ``headers``.
    """
    fields: Dict[str, FieldValidator] = {}

    for param in operation.parameters:
        if not param.name:
            raise TranslationError(f"{operation.operation_id}: parameter without a name")
        if param.location not in PARAMETER_LOCATIONS:
            raise TranslationError(
                f"{operation.operation_id}: unsupported location {param.location!r} for {param.name!r}"
            )
        fields[param.name] = _field(operation, param.name, param.schema, required=True)

    if operation.request_body is not None:
        fields[BODY_FIELD] = _field(
            operation, BODY_FIELD, operation.request_body, required=False, decode_json=True
        )

    if operation.request_headers:
        headers_schema = {
            "type": "object",
            "properties": {name: {"type": "string"} for name in operation.request_headers},
            "additionalProperties": False,
        }
        fields[HEADERS_FIELD] = _field(operation, HEADERS_FIELD, headers_schema, required=False)

    return fields


def input_schema(fields: Mapping[str, FieldValidator]) -> Dict[str, Any]:
    """Render the fields as one JSON object schema (the MCP ``inputSchema``)."""
    schema: Dict[str, Any] = {
        "type": "object",
        "properties": {name: f.schema for name, f in fields.items()},
    }
    required = [name for name, f in fields.items() if f.required]
    if required:
        schema["required"] = required
    return schema


def validate_input(
    fields: Mapping[str, FieldValidator],
    arguments: Optional[Mapping[str, Any]],
) -> None:
    """Check every supplied value against its field.

    Absent fields are left to the proxy, which reports them per location. The
    body is gated by the proxy too: only methods that send one check it.
    """
    arguments = arguments or {}
    for name, f in fields.items():
        if name == BODY_FIELD or name not in arguments:
            continue
        if arguments[name] is None and not f.required:
            continue
        f.validate(arguments[name])
