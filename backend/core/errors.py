"""
Error taxonomy for the distribution reconciliation engine.

Every error carries a machine-readable ``code``, a human ``message`` and,
where one applies, the ``field`` that was violated. Routers translate these
into HTTP responses; services never leak store-level exceptions.

    DistributionError
    +-- InvalidInput          bad or missing input, rejected before any write
    +-- InvalidRange          final count outside [0, initial]
    +-- InvalidState          session is not active
    |   +-- ActiveSessionExists
    +-- NotFound              session / recipe / inventory item id unknown
    +-- TransactionConflict   optimistic-concurrency failure (retried)
    +-- ReconciliationFailed  retries exhausted, nothing committed
"""

from __future__ import annotations

from typing import Any, Optional


class DistributionError(Exception):
    code: str = "DISTRIBUTION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "field": self.field}


class InvalidInput(DistributionError):
    code = "INVALID_INPUT"


class InvalidRange(DistributionError):
    code = "INVALID_RANGE"


class InvalidState(DistributionError):
    code = "INVALID_STATE"


class ActiveSessionExists(InvalidState):
    code = "ACTIVE_SESSION_EXISTS"


class NotFound(DistributionError):
    code = "NOT_FOUND"


class TransactionConflict(DistributionError):
    code = "TRANSACTION_CONFLICT"

    def __init__(self, message: str, *, attempts: int = 1, field: Optional[str] = None):
        self.attempts = attempts
        super().__init__(message, field=field)


class ReconciliationFailed(DistributionError):
    code = "RECONCILIATION_FAILED"

    def __init__(self, message: str, *, attempts: int, field: Optional[str] = None):
        self.attempts = attempts
        super().__init__(message, field=field)
