# bidroom/common/exceptions/exceptions.py
# =============================================================================
# Custom exceptions for the Bidroom platform
# =============================================================================


class BidroomException(Exception):
    """Base exception for Bidroom"""
    pass


class AuthenticationError(BidroomException):
    """Raised when there is no authenticated user for an operation that needs one"""
    pass


class NotFoundError(BidroomException):
    """Raised when a resource is not found"""
    pass


# Alias for compatibility
ResourceNotFoundError = NotFoundError


class ConflictError(BidroomException):
    """Raised when there's a conflict (e.g., duplicate)"""
    pass


class DomainError(BidroomException):
    """Raised for domain-specific errors"""
    pass


class InfrastructureError(BidroomException):
    """Raised for infrastructure errors (database, storage, realtime feed)"""
    pass
