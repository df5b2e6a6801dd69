"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class LedgerValidationError(DomainException):
    """Edit rejected because it violates a ledger constraint; state unchanged"""

    pass


class ChargeNotFoundError(LedgerValidationError):
    """Edit refers to a charge id that is not in the working schedule"""

    pass


class TenancyNotFoundError(DomainException):
    """Persistence collaborator has no tenancy with the requested id"""

    pass


class PersistenceError(DomainException):
    """Commit write failed; nothing was persisted"""

    pass


class InvariantViolationError(DomainException):
    """Engine produced an inconsistent ledger (a bug, never a user error)"""

    pass
