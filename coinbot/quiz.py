#!/usr/bin/env python3
"""
🪙 COINBOT — Pending quiz answers

A short-lived cache keyed by (chat_id, message_id). It lives in PostgreSQL so
every instance sees it and restarts keep it, but it is not authoritative:
an expired or missing entry simply means the quiz can no longer be answered.
"""

import logging
from datetime import timedelta

import psycopg2
from .config import config
from .database import get_db, release_db
from .rewards import utcnow

logger = logging.getLogger(__name__)


def remember_quiz(chat_id, message_id, correct_index, ttl_seconds=None):
    ttl_seconds = ttl_seconds or config.QUIZ_TTL_SECONDS
    expires_at = utcnow() + timedelta(seconds=ttl_seconds)
    conn = None
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO pending_quizzes (chat_id, message_id, correct_index, expires_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (chat_id, message_id)
            DO UPDATE SET correct_index = EXCLUDED.correct_index, expires_at = EXCLUDED.expires_at
        """, (chat_id, message_id, correct_index, expires_at))
        conn.commit()
        return True
    except psycopg2.Error as e:
        if conn is not None and not conn.closed:
            conn.rollback()
        logger.error(f"Failed to store quiz {chat_id}/{message_id}: {e}")
        return False
    finally:
        release_db(conn)


def pop_quiz_answer(chat_id, message_id):
    """Consume a pending quiz. Returns the correct index, or None if expired or already answered."""
    conn = None
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("""
            DELETE FROM pending_quizzes WHERE chat_id = %s AND message_id = %s
            RETURNING correct_index, expires_at
        """, (chat_id, message_id))
        row = cur.fetchone()
        conn.commit()
    except psycopg2.Error as e:
        if conn is not None and not conn.closed:
            conn.rollback()
        logger.error(f"Failed to read quiz {chat_id}/{message_id}: {e}")
        return None
    finally:
        release_db(conn)

    if not row or row['expires_at'] <= utcnow():
        return None
    return row['correct_index']


def purge_expired():
    conn = None
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute("DELETE FROM pending_quizzes WHERE expires_at <= NOW()")
        purged = cur.rowcount
        conn.commit()
        return purged
    except psycopg2.Error as e:
        if conn is not None and not conn.closed:
            conn.rollback()
        logger.error(f"Quiz purge failed: {e}")
        return 0
    finally:
        release_db(conn)
