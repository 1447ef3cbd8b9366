#!/usr/bin/env python3
"""
🪙 COINBOT — Balance mutator

Every coin change goes through here. Each call is one transaction that locks
the user's row (``SELECT ... FOR UPDATE``), validates, writes and commits, so
concurrent requests for one user are linearized and no update is lost.
Guards for time-gated rewards run inside the same lock as their credit.
A failed call leaves no trace besides the returned ``Result``.
"""

import logging
import numbers

from .config import config
from .errors import (
    AlreadyClaimed, ErrorKind, InsufficientFunds, LedgerError, LimitReached, Result,
)
from .ledger import store
from .rewards import (
    daily_time_left, format_time_left, is_new_chance_day, reward_for, utc_date, utcnow,
)

logger = logging.getLogger(__name__)

CREDIT = 'credit'
DEBIT = 'debit'


def _is_int(value):
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


class BalanceMutator:

    def __init__(self, store):
        self.store = store

    def _run(self, key, fn, by, operation):
        try:
            row = self.store.with_locked_row(key, fn, by=by, operation=operation)
        except LedgerError as e:
            if e.kind == ErrorKind.PERSISTENCE_FAILURE:
                logger.error(f"{operation} for {by}={key} rolled back: {e}")
            else:
                logger.info(f"{operation} for {by}={key} rejected: {e.kind.value}")
            return None, Result.from_exception(e)
        return row, None

    def mutate(self, key, delta, kind, by='id', operation=None):
        """Apply a signed ``delta``; credits are positive, debits negative."""
        if kind not in (CREDIT, DEBIT):
            return Result.failure(ErrorKind.VALIDATION, f"Unknown operation kind: {kind}")
        if not _is_int(delta) or delta == 0:
            return Result.failure(ErrorKind.VALIDATION, "Delta must be a non-zero integer")
        if (kind == CREDIT) != (delta > 0):
            return Result.failure(ErrorKind.VALIDATION, f"Delta sign does not match {kind}")

        def apply(row):
            if row['coins'] + delta < 0:
                raise InsufficientFunds(row['coins'])
            return {'coins': row['coins'] + delta}

        row, failure = self._run(key, apply, by, operation or kind)
        if failure is not None:
            return failure
        return Result.success(row['coins'])

    def credit(self, key, amount, by='id', operation=None):
        if not _is_int(amount) or amount <= 0:
            return Result.failure(ErrorKind.VALIDATION, 'Amount must be a positive integer')
        return self.mutate(key, amount, CREDIT, by=by, operation=operation)

    def debit(self, key, amount, by='id', operation=None):
        if not _is_int(amount) or amount <= 0:
            return Result.failure(ErrorKind.VALIDATION, 'Amount must be a positive integer')
        return self.mutate(key, -amount, DEBIT, by=by, operation=operation)

    def withdraw(self, user_id, amount):
        return self.debit(user_id, amount, by='id', operation='withdraw')

    def reward(self, telegram_id, kind, amount=None):
        """Credit an ungated reward (quiz answer, chat turn)"""
        amount = amount if amount is not None else reward_for(kind)
        return self.credit(telegram_id, amount, by='telegram_id', operation=kind)

    def claim_daily(self, telegram_id, now=None):
        now = now or utcnow()
        amount = reward_for('daily')

        def apply(row):
            left = daily_time_left(row['last_daily_claim'], now)
            if left is not None:
                raise AlreadyClaimed('Daily reward already claimed', time_left=format_time_left(left))
            return {'coins': row['coins'] + amount, 'last_daily_claim': now}

        row, failure = self._run(telegram_id, apply, 'telegram_id', 'daily')
        if failure is not None:
            return failure
        return Result.success(row['coins'], reward=amount)

    def play_chance(self, telegram_id, now=None, rng=None):
        now = now or utcnow()
        outcome = {}

        def apply(row):
            played = 0 if is_new_chance_day(row['last_chance_date'], now) else row['chance_today']
            if played >= config.CHANCE_DAILY_LIMIT:
                raise LimitReached('No chances left today', remaining=0)
            winnings = reward_for('chance', rng)
            outcome['winnings'] = winnings
            outcome['remaining'] = config.CHANCE_DAILY_LIMIT - played - 1
            return {
                'coins': row['coins'] + winnings,
                'chance_today': played + 1,
                'last_chance_date': utc_date(now),
            }

        row, failure = self._run(telegram_id, apply, 'telegram_id', 'chance')
        if failure is not None:
            return failure
        return Result.success(row['coins'], **outcome)


mutator = BalanceMutator(store)
