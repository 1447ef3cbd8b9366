#!/usr/bin/env python3
"""
🪙 COINBOT — Error taxonomy and the Result value returned by balance mutations
"""

from enum import Enum


class ErrorKind(Enum):
    VALIDATION = 'validation'
    NOT_FOUND = 'not_found'
    INSUFFICIENT_FUNDS = 'insufficient_funds'
    ALREADY_CLAIMED = 'already_claimed'
    LIMIT_REACHED = 'limit_reached'
    UPSTREAM_UNAVAILABLE = 'upstream_unavailable'
    PERSISTENCE_FAILURE = 'persistence_failure'


class CoinbotError(Exception):
    kind = None

    def __init__(self, message='', **info):
        super().__init__(message or self.__class__.__name__)
        self.info = info


class ValidationError(CoinbotError):
    kind = ErrorKind.VALIDATION


class LoginRejected(CoinbotError):
    """Signature mismatch or outdated auth data (HTTP 403)"""
    kind = ErrorKind.VALIDATION


class UpstreamUnavailable(CoinbotError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class LedgerError(CoinbotError):
    """Raised inside a locked-row callback; the transaction is rolled back"""


class NotFound(LedgerError):
    kind = ErrorKind.NOT_FOUND


class InsufficientFunds(LedgerError):
    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(self, current_balance):
        super().__init__('Insufficient funds', current_balance=current_balance)
        self.current_balance = current_balance


class AlreadyClaimed(LedgerError):
    kind = ErrorKind.ALREADY_CLAIMED


class LimitReached(LedgerError):
    kind = ErrorKind.LIMIT_REACHED


class PersistenceFailure(LedgerError):
    kind = ErrorKind.PERSISTENCE_FAILURE


class Result:
    """Outcome of a balance mutation.

    On success ``value`` holds the new balance. On failure ``error`` is an
    ``ErrorKind`` and ``current_balance`` is filled when the rejection knows it.
    ``info`` carries operation-specific extras (winnings, time left, ...).
    """

    __slots__ = ('ok', 'value', 'error', 'message', 'current_balance', 'info')

    def __init__(self, ok, value=None, error=None, message='', current_balance=None, info=None):
        self.ok = ok
        self.value = value
        self.error = error
        self.message = message
        self.current_balance = current_balance
        self.info = info or {}

    @classmethod
    def success(cls, value, **info):
        return cls(True, value=value, info=info)

    @classmethod
    def failure(cls, error, message='', current_balance=None, **info):
        return cls(False, error=error, message=message, current_balance=current_balance, info=info)

    @classmethod
    def from_exception(cls, exc):
        info = dict(getattr(exc, 'info', {}) or {})
        current = info.pop('current_balance', None)
        return cls.failure(exc.kind or ErrorKind.PERSISTENCE_FAILURE, str(exc), current, **info)

    def __bool__(self):
        return self.ok

    def __repr__(self):
        if self.ok:
            return f"Result(ok, value={self.value!r}, info={self.info!r})"
        return f"Result(error={self.error}, message={self.message!r}, current_balance={self.current_balance!r})"
