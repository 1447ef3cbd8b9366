#!/usr/bin/env python3
"""
🪙 COINBOT — AI responder (OpenRouter chat completions) and chat history
"""

import json
import logging

import psycopg2
import requests as http_requests
from .config import config
from .database import get_db, release_db
from .errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

QUIZ_PROMPT = (
    'Generate one short general-knowledge quiz question for a chat user. '
    'Reply with JSON only: {"question": "...", "options": ["A) ...", "B) ...", "C) ...", "D) ..."], "answer": "A"}'
)


def call_openrouter(messages, json_mode=False):
    """Send a chat completion request; returns the reply text or raises UpstreamUnavailable"""
    if not config.OPENROUTER_KEY:
        logger.error("OPENROUTER_KEY is not set")
        raise UpstreamUnavailable('AI is not configured')

    headers = {"Authorization": f"Bearer {config.OPENROUTER_KEY}", "Content-Type": "application/json"}
    data = {"model": config.AI_MODEL, "messages": messages}
    if json_mode:
        data["response_format"] = {"type": "json_object"}

    try:
        resp = http_requests.post(config.OPENROUTER_URL, headers=headers, json=data, timeout=config.AI_TIMEOUT_SECONDS)
    except http_requests.RequestException as e:
        logger.error(f"OpenRouter request failed: {e}")
        raise UpstreamUnavailable('AI request failed')

    if resp.status_code != 200:
        logger.error(f"OpenRouter API error: {resp.status_code} - {resp.text[:200]}")
        raise UpstreamUnavailable(f'AI returned {resp.status_code}')

    try:
        content = resp.json()['choices'][0]['message']['content']
    except (ValueError, KeyError, IndexError, TypeError) as e:
        logger.error(f"Malformed OpenRouter response: {e}")
        raise UpstreamUnavailable('Malformed AI response')
    if not content:
        raise UpstreamUnavailable('Empty AI response')
    return content


# ===============================
# CHAT HISTORY
# ===============================

def recent_chat_turns(user_id, limit=None):
    """Oldest-first list of {role, content} for the user's bounded history window"""
    limit = limit or config.CHAT_HISTORY_LIMIT
    conn = None
    try:
        conn = get_db()
        cur = conn.cursor()
        cur.execute(
            "SELECT role, content FROM chat_history WHERE user_id = %s ORDER BY id DESC LIMIT %s",
            (user_id, limit)
        )
        rows = cur.fetchall()
        conn.commit()
        return [{"role": r['role'], "content": r['content']} for r in reversed(rows)]
    except psycopg2.Error as e:
        logger.error(f"Chat history read failed for user {user_id}: {e}")
        return []
    finally:
        release_db(conn)


def append_chat_turns(user_id, turns, limit=None):
    """Append turns and trim the user's history to the newest ``limit`` rows"""
    limit = limit or config.CHAT_HISTORY_LIMIT
    conn = None
    try:
        conn = get_db()
        cur = conn.cursor()
        for turn in turns:
            cur.execute(
                "INSERT INTO chat_history (user_id, role, content) VALUES (%s, %s, %s)",
                (user_id, turn['role'], turn['content'][:2000])
            )
        cur.execute("""
            DELETE FROM chat_history WHERE user_id = %s AND id NOT IN (
                SELECT id FROM chat_history WHERE user_id = %s ORDER BY id DESC LIMIT %s
            )
        """, (user_id, user_id, limit))
        conn.commit()
    except psycopg2.Error as e:
        if conn is not None and not conn.closed:
            conn.rollback()
        logger.error(f"Chat history write failed for user {user_id}: {e}")
    finally:
        release_db(conn)


def chat_reply(user_id, text):
    """AI reply to a free-form message. History is only kept for known users."""
    history = recent_chat_turns(user_id) if user_id else []
    messages = history + [{"role": "user", "content": f'User asked: "{text[:1000]}"'}]
    reply = call_openrouter(messages)
    if user_id:
        append_chat_turns(user_id, [
            {"role": "user", "content": text},
            {"role": "assistant", "content": reply},
        ])
    return reply


# ===============================
# QUIZ GENERATION
# ===============================

def parse_quiz(raw):
    """Validate a quiz JSON reply into {question, options, correct_index}"""
    try:
        quiz = json.loads(raw)
        question = str(quiz['question']).strip()
        options = [str(o) for o in quiz['options']]
        answer = str(quiz['answer']).strip()
    except (ValueError, KeyError, TypeError) as e:
        raise UpstreamUnavailable(f'Invalid quiz JSON: {e}')

    if not question or len(options) < 2 or not answer:
        raise UpstreamUnavailable('Incomplete quiz')
    correct_index = next((i for i, opt in enumerate(options) if opt.startswith(answer)), -1)
    if correct_index == -1:
        raise UpstreamUnavailable('Invalid answer in quiz response')
    return {"question": question, "options": options, "correct_index": correct_index}


def generate_quiz():
    raw = call_openrouter([{"role": "user", "content": QUIZ_PROMPT}], json_mode=True)
    return parse_quiz(raw)
