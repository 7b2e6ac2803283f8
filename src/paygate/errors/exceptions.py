"""Custom exception classes for the payment gateway."""


class PaygateError(Exception):
    """Base exception for the gateway."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(PaygateError):
    """Request validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class AuthenticationError(PaygateError):
    """Missing or wrong shared secret."""

    def __init__(self, message: str = "Invalid secret key"):
        super().__init__("AUTHENTICATION_ERROR", message, status_code=401)


class AuthorizationError(PaygateError):
    """Client address not on the allow-list."""

    def __init__(self, message: str = "Client IP not allowed"):
        super().__init__("AUTHORIZATION_ERROR", message, status_code=403)


class ConflictError(PaygateError):
    """Resource state conflict."""

    def __init__(self, message: str):
        super().__init__("CONFLICT", message, status_code=409)


class SettlementError(PaygateError):
    """A settlement backend rejected the call or could not be reached."""

    def __init__(self, backend: str, message: str, details=None):
        self.backend = backend
        super().__init__(
            "SETTLEMENT_ERROR",
            f"{backend}: {message}",
            details,
            status_code=502,
        )


class PersistenceError(PaygateError):
    """A payment record could not be durably written or removed."""

    def __init__(self, message: str, details=None):
        super().__init__("PERSISTENCE_ERROR", message, details, status_code=500)
