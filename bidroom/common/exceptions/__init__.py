from bidroom.common.exceptions.exceptions import (
    AuthenticationError,
    BidroomException,
    ConflictError,
    DomainError,
    InfrastructureError,
    NotFoundError,
    ResourceNotFoundError,
)

__all__ = [
    "AuthenticationError",
    "BidroomException",
    "ConflictError",
    "DomainError",
    "InfrastructureError",
    "NotFoundError",
    "ResourceNotFoundError",
]
