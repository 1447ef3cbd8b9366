#!/usr/bin/env python3
"""
🪙 COINBOT — Database (PostgreSQL)
"""

import logging
import threading

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor
from .config import config

logger = logging.getLogger(__name__)

_db_pool = None
_pool_lock = threading.Lock()


def _get_pool():
    global _db_pool
    if _db_pool is None:
        with _pool_lock:
            if _db_pool is None:
                _db_pool = pool.ThreadedConnectionPool(
                    minconn=config.DB_POOL_MIN,
                    maxconn=config.DB_POOL_MAX,
                    dsn=config.DATABASE_URL,
                    cursor_factory=RealDictCursor,
                )
                logger.info(f"PostgreSQL pool initialized ({config.DB_POOL_MAX} connections)")
    return _db_pool


def get_db():
    """Get a pooled PostgreSQL connection (autocommit off).

    The pool does not wait: with DB_POOL_MAX connections checked out it raises
    ``PoolError`` (a ``psycopg2.Error``), which callers report as a
    persistence failure.
    """
    try:
        conn = _get_pool().getconn()
    except pool.PoolError as e:
        logger.error(f"No free database connection (max {config.DB_POOL_MAX}): {e}")
        raise
    if conn.closed:
        logger.debug("Got closed connection from pool, retrying")
        _db_pool.putconn(conn, close=True)
        conn = _db_pool.getconn()
    conn.autocommit = False
    return conn


def release_db(conn):
    """Return connection to pool, discarding it if it is broken"""
    if conn is None:
        return
    try:
        if not conn.closed and conn.get_transaction_status() != psycopg2.extensions.TRANSACTION_STATUS_IDLE:
            conn.rollback()
        if _db_pool:
            _db_pool.putconn(conn, close=bool(conn.closed))
        else:
            conn.close()
    except Exception:
        logger.exception("release_db error")


def close_pool():
    global _db_pool
    with _pool_lock:
        if _db_pool is not None:
            _db_pool.closeall()
            _db_pool = None


def init_database():
    """Initialize PostgreSQL schema if needed"""
    conn = None
    try:
        conn = get_db()
        cur = conn.cursor()

        cur.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            telegram_id BIGINT UNIQUE NOT NULL,
            username TEXT,
            first_name TEXT,
            photo_url TEXT,
            auth_date BIGINT,
            coins INTEGER NOT NULL DEFAULT 0 CHECK (coins >= 0),
            last_daily_claim TIMESTAMPTZ,
            chance_today INTEGER NOT NULL DEFAULT 0,
            last_chance_date DATE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS balance_history (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            amount INTEGER NOT NULL,
            operation TEXT NOT NULL,
            balance_after INTEGER NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS chat_history (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS pending_quizzes (
            chat_id BIGINT NOT NULL,
            message_id BIGINT NOT NULL,
            correct_index INTEGER NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            PRIMARY KEY (chat_id, message_id)
        );
        """)

        # Older deployments created users without the reward-gating columns
        cur.execute("ALTER TABLE users ADD COLUMN IF NOT EXISTS last_daily_claim TIMESTAMPTZ")
        cur.execute("ALTER TABLE users ADD COLUMN IF NOT EXISTS chance_today INTEGER NOT NULL DEFAULT 0")
        cur.execute("ALTER TABLE users ADD COLUMN IF NOT EXISTS last_chance_date DATE")
        cur.execute("ALTER TABLE users ADD COLUMN IF NOT EXISTS first_name TEXT")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_chat_history_user ON chat_history (user_id, id)")

        conn.commit()
        logger.info("✅ Database initialized")
    except Exception as e:
        if conn is not None:
            conn.rollback()
        logger.error(f"DB init failed: {e}")
    finally:
        release_db(conn)
