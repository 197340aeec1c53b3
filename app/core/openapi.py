"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- A shared ``TooManyRequests`` response (with X-RateLimit-* headers)
  referenced by every rate-limited operation

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.rate_limit import EXEMPT_PATHS

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Requests allowed per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "When the window resets (ISO-8601, UTC).",
        "schema": {"type": "string", "format": "date-time"},
    },
    "Retry-After": {
        "description": "Seconds to wait before retrying.",
        "schema": {"type": "integer"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and 429 docs.

    - Registers ``components.responses.TooManyRequests``
    - References it from every operation not exempt from rate limiting
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        responses = components.setdefault("responses", {})
        responses.setdefault(
            "TooManyRequests",
            {
                "description": "Rate limit exceeded for this client and route class.",
                "headers": _RATE_LIMIT_HEADERS,
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Errors",
                "description": "Browser error report ingestion.",
            },
            {
                "name": "Analytics",
                "description": "Browser performance metric ingestion.",
            },
            {
                "name": "Health",
                "description": "Liveness and readiness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path in EXEMPT_PATHS:
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {})["429"] = {
                        "$ref": "#/components/responses/TooManyRequests"
                    }

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
