"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- Bearer session security scheme with per-path overrides

Webhook and health endpoints are public: the provider authenticates with an
HMAC signature instead of a session.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

PUBLIC_PATH_SUFFIXES = ("/health", "/webhooks/mercadopago")


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security.

    - Injects components.securitySchemes for bearer session tokens
    - Marks all operations as requiring a session by default, then exempts
      public endpoints by setting ``security: []``
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "SessionAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "description": "Storefront session token in the Authorization header.",
            },
        )

        schema.setdefault("security", [{"SessionAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {"name": "Payments", "description": "Checkout preference creation."},
            {"name": "Webhooks", "description": "Signed MercadoPago payment notifications."},
            {"name": "Orders", "description": "Order status lookups for the signed-in owner."},
            {"name": "Health", "description": "Liveness checks."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path, methods in paths.items():
            if path.endswith(PUBLIC_PATH_SUFFIXES):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
