"""Idempotency key handling utilities."""

import hashlib

IDEMPOTENCY_HEADER = "Idempotency-Key"

# Provider callbacks are deduplicated on the provider message id instead
EXEMPT_PATH_FRAGMENTS = ("/webhooks/",)


def is_exempt_path(path: str) -> bool:
    return any(fragment in path for fragment in EXEMPT_PATH_FRAGMENTS)


def build_cache_key(method: str, path: str, client_key: str, tenant_scope: str | None = None) -> str:
    """Build the Redis key for a client supplied idempotency key.

    Args:
        method: HTTP method
        path: Request path
        client_key: Value of the Idempotency-Key header
        tenant_scope: Optional Authorization/tenant discriminator so two
            tenants reusing the same key never share a cached response

    Returns:
        Redis key string
    """
    key_parts = [method, path, client_key]
    if tenant_scope:
        key_parts.append(tenant_scope)
    digest = hashlib.sha256("|".join(key_parts).encode()).hexdigest()
    return f"idempotency:{digest}"
