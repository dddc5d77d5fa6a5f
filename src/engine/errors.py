# src/engine/errors.py
"""
Exception types shared by the store, the runner adapters and the API layer.
"""


class ScanPlatformError(Exception):
    """Base exception carrying an error code and the HTTP status it maps to."""

    def __init__(self, code: str, message: str, status_code: int = 500):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(ScanPlatformError):
    """Malformed or out-of-range client input."""

    def __init__(self, message: str):
        super().__init__("VALIDATION_ERROR", message, status_code=400)


class NotFoundError(ScanPlatformError):
    def __init__(self, resource: str, resource_id: str):
        super().__init__("NOT_FOUND", f"{resource} '{resource_id}' not found", status_code=404)


class ConflictError(ScanPlatformError):
    def __init__(self, message: str):
        super().__init__("CONFLICT", message, status_code=409)


class RunnerUnavailableError(ScanPlatformError):
    """The build runner could not be reached or answered with an error."""

    def __init__(self, message: str):
        super().__init__("RUNNER_UNAVAILABLE", message, status_code=502)


class AuthenticationError(ScanPlatformError):
    def __init__(self, message: str = "API key required"):
        super().__init__("AUTHENTICATION_ERROR", message, status_code=401)


class AuthorizationError(ScanPlatformError):
    def __init__(self, message: str = "Invalid API key"):
        super().__init__("AUTHORIZATION_ERROR", message, status_code=403)
