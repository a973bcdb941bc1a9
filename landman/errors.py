"""
Error taxonomy shared by stores, services and the API layer.

Validation, not-found, unauthorized and conflict errors are raised
synchronously to the caller. External-dependency failures are raised by
adapters and always captured by the coordinators into stored state.
"""


class LandmanError(Exception):
    """Base class for all domain errors."""

    error_code = "ERR_LANDMAN"

    def __init__(self, message: str, error_code: str = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        super().__init__(message)


class ValidationError(LandmanError):
    """Bad input shape or range. Raised before any state change."""

    error_code = "ERR_VALIDATION"


class NotFoundError(LandmanError):
    """Referenced entity does not exist."""

    error_code = "ERR_NOT_FOUND"


class UnauthorizedError(LandmanError):
    """Entity exists but the caller does not own it."""

    error_code = "ERR_UNAUTHORIZED"


class ConflictError(LandmanError):
    """Mutation not allowed in the entity's current state."""

    error_code = "ERR_CONFLICT"


class ExternalDependencyError(LandmanError):
    """Portal, AI or download call failed or timed out."""

    error_code = "ERR_EXTERNAL"

    def __init__(self, dependency: str, message: str):
        self.dependency = dependency
        super().__init__(f"[{dependency}] {message}")


class CredentialNotFoundError(NotFoundError):
    """No active portal credential stored for the user."""

    error_code = "ERR_CREDENTIAL_NOT_FOUND"
