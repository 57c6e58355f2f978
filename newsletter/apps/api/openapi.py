from __future__ import annotations

from typing import Any

from newsletter.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str) -> dict[str, Any]:
    return {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {
        "model": ErrorEnvelope,
        "description": "Bad request",
        "content": {
            "application/json": {
                "example": _error_example(
                    code="IDEMPOTENCY_KEY_INVALID",
                    message="The idempotency key cannot be empty",
                ),
            }
        },
    },
    401: {
        "model": ErrorEnvelope,
        "description": "Unauthorized",
        "content": {
            "application/json": {
                "example": _error_example(code="AUTH_UNAUTHORIZED", message="Invalid username or password"),
            }
        },
    },
    500: {
        "model": ErrorEnvelope,
        "description": "Internal error",
        "content": {
            "application/json": {
                "example": _error_example(code="INTERNAL_ERROR", message="Internal server error"),
            }
        },
    },
}
