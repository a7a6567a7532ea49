"""Shared fixtures: a small pet store API described both as a document and as Operations."""

import pytest
from sse_starlette.sse import AppStatus

from openapi_mcp.openapi import Operation, Parameter


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a module level exit event bound to the first event loop."""
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None


@pytest.fixture
def get_pet() -> Operation:
    return Operation(
        operation_id="getPet",
        method="get",
        path="/pets/{petId}",
        description="Find a pet by id",
        parameters=(
            Parameter("petId", "path", {"type": "string"}, required=True),
            Parameter("status", "query", {"type": "string"}),
        ),
    )


@pytest.fixture
def update_pet() -> Operation:
    return Operation(
        operation_id="updatePet",
        method="post",
        path="/pets/{petId}",
        description="Update a pet",
        parameters=(Parameter("petId", "path", {"type": "string"}, required=True),),
        request_body={
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        },
        content_type="application/json",
        request_headers=("Content-Type", "Accept", "X-Trace-Id"),
    )


@pytest.fixture
def petstore_document() -> dict:
    return {
        "openapi": "3.0.3",
        "info": {"title": "Pet store", "version": "1.0.0"},
        "components": {
            "schemas": {
                "Pet": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer"},
                        "name": {"type": "string"},
                    },
                    "required": ["name"],
                },
            },
            "parameters": {
                "PetId": {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
            },
        },
        "paths": {
            "/pets/{petId}": {
                "parameters": [{"$ref": "#/components/parameters/PetId"}],
                "get": {
                    "operationId": "getPet",
                    "summary": "Find pet by ID",
                    "description": "Returns a single pet",
                    "parameters": [
                        {"name": "status", "in": "query", "required": True, "schema": {"type": "string"}},
                        {"name": "session", "in": "cookie", "schema": {"type": "string"}},
                    ],
                    "responses": {
                        "200": {
                            "description": "ok",
                            "headers": {"X-Rate-Limit": {"schema": {"type": "integer"}}},
                            "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                        },
                    },
                },
                "post": {
                    "operationId": "updatePet",
                    "requestBody": {
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                    },
                    "responses": {"200": {"description": "ok"}},
                },
                "delete": {
                    "parameters": [
                        {"name": "api_key", "in": "header", "required": True, "schema": {"type": "string"}},
                    ],
                    "responses": {"204": {"description": "deleted"}},
                },
            },
        },
    }
