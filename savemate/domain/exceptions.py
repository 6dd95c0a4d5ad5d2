"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidInputError(DomainException):
    """Non-positive amount or malformed configuration supplied by the caller"""

    pass


class NotFoundError(DomainException):
    """Referenced user, transaction or goal does not exist"""

    pass


class InsufficientFundsError(DomainException):
    """Withdrawal exceeds the user's accumulated savings"""

    def __init__(self, requested, available):
        super().__init__(f"Insufficient funds: requested {requested}, available {available}")
        self.requested = requested
        self.available = available


class ConcurrencyConflictError(DomainException):
    """A concurrent writer changed the row between read and conditional update"""

    pass
