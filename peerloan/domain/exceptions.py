"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class AuthenticationError(DomainException):
    """No caller identity was supplied"""

    pass


class AuthorizationError(DomainException):
    """Caller lacks the required relationship to the record"""

    pass


class NotFoundError(DomainException):
    """Record id does not resolve"""

    pass


class ValidationError(DomainException):
    """Terms are malformed or out of range"""

    pass


class ConflictError(DomainException):
    """Operation violates a uniqueness, single-active-record or transition invariant"""

    pass
