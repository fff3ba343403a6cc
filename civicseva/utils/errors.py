class CivicSevaError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CivicSevaError):
    status_code = 404


class ValidationError(CivicSevaError):
    status_code = 422


class InvalidTransitionError(ValidationError):
    status_code = 409


class ConflictError(CivicSevaError):
    status_code = 409


class StoreError(CivicSevaError):
    status_code = 503


class ExternalServiceError(CivicSevaError):
    status_code = 502
