"""
Domain errors raised by the order, subscription, webhook and cart services.

Routes translate them into HTTP responses using ``status_code``.
"""


class DomainError(Exception):
    """Base class for expected business-rule failures"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    """Referenced entity is missing or soft-deleted"""

    status_code = 404


class ConflictError(DomainError):
    """Operation collides with existing state"""

    status_code = 409


class BadRequestError(DomainError):
    """Payload or domain-rule violation"""

    status_code = 400


class StaleTransactionError(ConflictError):
    """A transaction changed status between read and write"""
