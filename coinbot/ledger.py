#!/usr/bin/env python3
"""
🪙 COINBOT — Ledger store: user records and locked read-modify-write access

Only the balance mutator calls ``with_locked_row``; everything else reads.
"""

import logging

import psycopg2
from psycopg2 import sql
from .config import config
from .database import get_db, release_db
from .errors import LedgerError, NotFound, PersistenceFailure

logger = logging.getLogger(__name__)

LOOKUP_COLUMNS = ('id', 'telegram_id')
MUTABLE_COLUMNS = ('coins', 'last_daily_claim', 'chance_today', 'last_chance_date')
PUBLIC_FIELDS = ('id', 'telegram_id', 'username', 'photo_url', 'coins')


def _lookup(by):
    if by not in LOOKUP_COLUMNS:
        raise ValueError(f"Unsupported lookup column: {by}")
    return sql.Identifier(by)


class LedgerStore:

    def __init__(self, max_retries=None):
        self.max_retries = max_retries if max_retries is not None else config.LEDGER_MAX_RETRIES

    def get_balance(self, key, by='id'):
        conn = None
        try:
            conn = get_db()
            cur = conn.cursor()
            cur.execute(sql.SQL("SELECT coins FROM users WHERE {} = %s").format(_lookup(by)), (key,))
            row = cur.fetchone()
            conn.commit()
        except psycopg2.Error as e:
            logger.error(f"Balance read failed for {by}={key}: {e}")
            raise PersistenceFailure(str(e))
        finally:
            release_db(conn)
        if not row:
            raise NotFound(f"User {key} not found")
        return row['coins']

    def get_user(self, key, by='id'):
        conn = None
        try:
            conn = get_db()
            cur = conn.cursor()
            cur.execute(sql.SQL("SELECT * FROM users WHERE {} = %s").format(_lookup(by)), (key,))
            row = cur.fetchone()
            conn.commit()
            return dict(row) if row else None
        except psycopg2.Error as e:
            logger.error(f"User read failed for {by}={key}: {e}")
            raise PersistenceFailure(str(e))
        finally:
            release_db(conn)

    def with_locked_row(self, key, fn, by='id', operation=None):
        """Run ``fn(row)`` while holding ``SELECT ... FOR UPDATE`` on one user.

        ``fn`` returns a dict of column changes (possibly empty) or raises a
        ``LedgerError`` to abort. Changes, plus a balance_history row when
        ``coins`` moved, are committed in the same transaction. Rollback
        errors (deadlock, serialization failure) are retried.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._locked_once(key, fn, by, operation)
            except psycopg2.extensions.TransactionRollbackError as e:
                if attempt >= self.max_retries:
                    logger.error(f"Ledger transaction for {by}={key} failed after {attempt} attempts: {e}")
                    raise PersistenceFailure(str(e))
                logger.warning(f"Ledger transaction conflict for {by}={key}, retrying ({attempt}/{self.max_retries})")
            except psycopg2.Error as e:
                logger.error(f"Ledger transaction for {by}={key} failed: {e}")
                raise PersistenceFailure(str(e))

    def _locked_once(self, key, fn, by, operation):
        conn = None
        try:
            conn = get_db()
            cur = conn.cursor()
            cur.execute(sql.SQL("SELECT * FROM users WHERE {} = %s FOR UPDATE").format(_lookup(by)), (key,))
            row = cur.fetchone()
            if not row:
                raise NotFound(f"User {key} not found")
            row = dict(row)

            changes = fn(dict(row)) or {}
            unknown = set(changes) - set(MUTABLE_COLUMNS)
            if unknown:
                raise ValueError(f"Refusing to write columns: {sorted(unknown)}")

            if changes:
                assignments = sql.SQL(', ').join(
                    sql.SQL("{} = %s").format(sql.Identifier(col)) for col in changes
                )
                cur.execute(
                    sql.SQL("UPDATE users SET {}, updated_at = NOW() WHERE id = %s RETURNING *").format(assignments),
                    list(changes.values()) + [row['id']],
                )
                updated = dict(cur.fetchone())
                delta = updated['coins'] - row['coins']
                if delta:
                    cur.execute(
                        """INSERT INTO balance_history (user_id, amount, operation, balance_after)
                           VALUES (%s, %s, %s, %s)""",
                        (row['id'], delta, operation or ('credit' if delta > 0 else 'debit'), updated['coins']),
                    )
                row = updated

            conn.commit()
            return row
        except (LedgerError, ValueError):
            if conn is not None:
                conn.rollback()
            raise
        except psycopg2.Error:
            if conn is not None and not conn.closed:
                conn.rollback()
            raise
        finally:
            release_db(conn)

    def upsert_identity(self, telegram_id, attributes):
        """Insert or refresh a user on login. Never touches ``coins``."""
        conn = None
        try:
            conn = get_db()
            cur = conn.cursor()
            cur.execute("""
                INSERT INTO users (telegram_id, username, first_name, photo_url, auth_date)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (telegram_id)
                DO UPDATE SET
                    username = EXCLUDED.username,
                    first_name = EXCLUDED.first_name,
                    photo_url = EXCLUDED.photo_url,
                    auth_date = EXCLUDED.auth_date,
                    updated_at = NOW()
                RETURNING id, telegram_id, username, photo_url, coins
            """, (
                telegram_id, attributes.get('username'), attributes.get('first_name'),
                attributes.get('photo_url'), attributes.get('auth_date'),
            ))
            row = dict(cur.fetchone())
            conn.commit()
            return row
        except psycopg2.Error as e:
            if conn is not None and not conn.closed:
                conn.rollback()
            logger.error(f"Upsert failed for telegram_id={telegram_id}: {e}")
            raise PersistenceFailure(str(e))
        finally:
            release_db(conn)

    def count_users(self):
        conn = None
        try:
            conn = get_db()
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) AS cnt FROM users")
            count = cur.fetchone()['cnt']
            conn.commit()
            return count
        except psycopg2.Error as e:
            raise PersistenceFailure(str(e))
        finally:
            release_db(conn)


store = LedgerStore()
