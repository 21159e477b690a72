"""Business errors raised by the lifecycle services.

Routers never translate these by hand; ``campus_lms.main`` maps every
subclass to its HTTP status in a single exception handler.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFound(DomainError):
    status_code = 404


class Forbidden(DomainError):
    status_code = 403


class ValidationError(DomainError):
    status_code = 400


class Conflict(DomainError):
    status_code = 409


class ServiceError(DomainError):
    """An external collaborator (file storage) failed."""

    status_code = 502
