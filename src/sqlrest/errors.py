class ConfigError(ValueError):
    """Configuration is missing or invalid."""


class ApiError(RuntimeError):
    """Failure that maps onto the uniform error envelope.

    ``message`` is user facing. ``detail`` is a short developer-facing hint and
    must never carry raw driver text.
    """

    status_code = 500

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(ApiError):
    """Malformed body, missing required field or unsupported operator."""

    status_code = 400


class AuthError(ApiError):
    """Missing, expired or invalid bearer credential."""

    status_code = 401


class NotFoundError(ApiError):
    """Unknown or hidden table, missing row, or zero-row update/delete."""

    status_code = 404


class DiscoveryError(ApiError):
    """The metadata query used for discovery failed."""

    status_code = 500


class ExecutionError(ApiError):
    """The backing store is unreachable or rejected a statement."""

    status_code = 500


class BackendAuthError(ExecutionError):
    """Token exchange with the backing store failed."""
