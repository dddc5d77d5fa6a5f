# src/api/auth.py
"""
API key check for client-facing endpoints.

The header name and expected key come from settings (API_KEY_HEADER, API_KEY).
"""
import logging
import secrets

from fastapi import Request

from engine.errors import AuthenticationError, AuthorizationError, ScanPlatformError


def require_api_key(request: Request) -> str:
    settings = request.app.state.settings
    header_name = settings.api_key_header
    api_key = request.headers.get(header_name)

    if not api_key:
        logging.warning(f"API key missing from request path={request.url.path}")
        raise AuthenticationError(f"API key required in '{header_name}' header")

    if not settings.api_key:
        logging.error("API_KEY is not configured")
        raise ScanPlatformError("CONFIGURATION_ERROR", "Server configuration error", status_code=500)

    if not secrets.compare_digest(api_key.encode(), settings.api_key.encode()):
        logging.warning(f"Invalid API key provided path={request.url.path}")
        raise AuthorizationError()

    return api_key
