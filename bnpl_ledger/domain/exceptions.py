"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Bad input: missing fields, out-of-range amounts, tenor beyond policy"""

    pass


class NotFoundError(DomainException):
    """Entity does not exist within the caller's shop or business"""

    pass


class ConflictError(DomainException):
    """Request conflicts with current state; caller must re-fetch and decide"""

    pass


class IntegrityFault(DomainException):
    """Ledger drift or stock underflow detected under lock"""

    pass


class AuthorizationError(DomainException):
    """Actor is not allowed to act on this shop or operation"""

    pass
