# earnloop/errors.py
from __future__ import annotations


class EconomyError(Exception):
    """
    Base for every business failure. `code` is stable and machine-readable,
    `status` is the HTTP class the routing layer should answer with.
    """
    status: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(EconomyError):
    status = 400
    default_code = "VALIDATION_ERROR"


class InsufficientBalance(EconomyError):
    status = 400
    default_code = "INSUFFICIENT_CREDITS"


class InsufficientTokens(EconomyError):
    status = 400
    default_code = "INSUFFICIENT_TOKENS"


class AlreadyRecorded(EconomyError):
    status = 409
    default_code = "ALREADY_RECORDED"


class FraudBlocked(EconomyError):
    status = 403
    default_code = "FRAUD_BLOCKED"

    def __init__(self, message: str, *, code: str | None = None, risk_score: int = 0) -> None:
        super().__init__(message, code=code)
        self.risk_score = risk_score


class BannedAccount(EconomyError):
    status = 403
    default_code = "ACCOUNT_BANNED"


class NotFound(EconomyError):
    status = 404
    default_code = "NOT_FOUND"


class PersistenceError(EconomyError):
    status = 503
    default_code = "PERSISTENCE_ERROR"
