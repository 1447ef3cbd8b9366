#!/usr/bin/env python3
"""
🪙 COINBOT — Telegram Bot webhook routes

Telegram always gets ``200 OK``: stale updates are dropped, handler failures
are logged and surfaced to the user as a chat message, never as an HTTP error.
"""

import logging
import time

from flask import Blueprint, request, jsonify
from .ai import chat_reply, generate_quiz
from .auth import check_rate_limit, require_admin_secret
from .balance import mutator
from .config import config
from .errors import ErrorKind, PersistenceFailure, UpstreamUnavailable
from .ledger import store
from .quiz import pop_quiz_answer, purge_expired, remember_quiz
from .utils import (
    answer_callback_query, edit_message_text, send_telegram_message, sent_message_id, telegram_api,
)

logger = logging.getLogger(__name__)
bot_bp = Blueprint('bot', __name__)

LOGIN_FIRST = "You need to /login first to earn coins!"
SOMETHING_WRONG = "❌ Something went wrong, please try again later."
HELP_TEXT = "🤖 Available commands:\n/daily - daily bonus\n/chance - try your luck\n/quiz - answer a quiz"
COMMANDS = {'/start': 'start', '/daily': 'daily', '/chance': 'chance', '/quiz': 'quiz'}


# ===============================
# UPDATE CLASSIFICATION
# ===============================

def update_message(update):
    """The message an update refers to (plain message or the one under a callback)"""
    message = update.get('message')
    if not message:
        callback = update.get('callback_query')
        message = callback.get('message') if isinstance(callback, dict) else None
    return message if isinstance(message, dict) else None


def is_stale_update(update, now=None):
    message = update_message(update)
    if not message or 'date' not in message:
        return False
    now = now if now is not None else time.time()
    return now - message['date'] > config.STALE_UPDATE_SECONDS


def classify_update(update):
    """Map an update to (kind, context). kind is None for updates we ignore."""
    callback = update.get('callback_query')
    if callback:
        data = callback.get('data') or ''
        message = callback.get('message') or {}
        if not data.startswith('quiz_') or not message:
            return None, {}
        return 'quiz-answer', {
            'callback_id': callback.get('id'),
            'chat_id': message['chat']['id'],
            'message_id': message['message_id'],
            'telegram_id': callback['from']['id'],
            'data': data,
        }

    message = update.get('message')
    if not message or 'from' not in message:
        return None, {}
    text = message.get('text') or ''
    context = {
        'chat_id': message['chat']['id'],
        'telegram_id': message['from']['id'],
        'first_name': message['from'].get('first_name') or '',
        'text': text,
    }
    if not text:
        return None, context
    if text.startswith('/'):
        command = text.split()[0].split('@')[0].lower()
        return COMMANDS.get(command, 'help'), context
    return 'chat', context


# ===============================
# COMMAND HANDLERS
# ===============================

def handle_start(chat_id, first_name='', **_):
    send_telegram_message(
        chat_id,
        f"👋 Welcome to the coin bot, {first_name or 'friend'}!\n\n"
        f"Earn coins every day and withdraw them on the website.\n\n/daily, /chance, /quiz"
    )


def handle_help(chat_id, **_):
    send_telegram_message(chat_id, HELP_TEXT)


def handle_daily(chat_id, telegram_id, **_):
    result = mutator.claim_daily(telegram_id)
    if result.ok:
        send_telegram_message(chat_id, f"🎉 +{result.info['reward']} coins! New balance: {result.value}.")
    elif result.error == ErrorKind.NOT_FOUND:
        send_telegram_message(chat_id, LOGIN_FIRST)
    elif result.error == ErrorKind.ALREADY_CLAIMED:
        send_telegram_message(chat_id, f"⏳ Already claimed. Try again in {result.info['time_left']}.")
    else:
        send_telegram_message(chat_id, "❌ Error claiming daily bonus.")


def handle_chance(chat_id, telegram_id, **_):
    result = mutator.play_chance(telegram_id)
    if result.ok:
        send_telegram_message(
            chat_id,
            f"✨ +{result.info['winnings']} coins! New balance: {result.value}. "
            f"You have {result.info['remaining']} chances left."
        )
    elif result.error == ErrorKind.NOT_FOUND:
        send_telegram_message(chat_id, LOGIN_FIRST)
    elif result.error == ErrorKind.LIMIT_REACHED:
        send_telegram_message(chat_id, "🚫 No chances left today.")
    else:
        send_telegram_message(chat_id, "❌ Error with the chance game.")


def handle_quiz(chat_id, **_):
    send_telegram_message(chat_id, "🧠 Generating a quiz...")
    try:
        quiz = generate_quiz()
    except UpstreamUnavailable as e:
        logger.error(f"Quiz generation failed: {e}")
        send_telegram_message(chat_id, "❌ Could not create a quiz.")
        return

    keyboard = {
        'inline_keyboard': [[
            {'text': option, 'callback_data': f'quiz_{index}'}
            for index, option in enumerate(quiz['options'])
        ]]
    }
    sent = send_telegram_message(chat_id, f"❓ {quiz['question']}", keyboard)
    message_id = sent_message_id(sent)
    if message_id is None:
        logger.error(f"Quiz message to chat {chat_id} was not delivered")
        return
    purge_expired()
    if not remember_quiz(chat_id, message_id, quiz['correct_index']):
        edit_message_text(chat_id, message_id, "❌ Failed to create quiz, try /quiz again.")


def handle_quiz_answer(callback_id, chat_id, message_id, telegram_id, data, **_):
    answer_callback_query(callback_id)
    try:
        selected = int(data.split('_', 1)[1])
    except (IndexError, ValueError):
        logger.warning(f"Malformed quiz callback data: {data!r}")
        return

    correct = pop_quiz_answer(chat_id, message_id)
    if correct is None:
        edit_message_text(chat_id, message_id, "⌛ Quiz expired or already answered.")
        return
    if selected != correct:
        edit_message_text(chat_id, message_id, "❌ Wrong answer!")
        return

    result = mutator.reward(telegram_id, 'quiz')
    if result.ok:
        edit_message_text(chat_id, message_id, f"✅ Correct! +{config.QUIZ_REWARD} coins. New balance: {result.value}.")
    elif result.error == ErrorKind.NOT_FOUND:
        edit_message_text(chat_id, message_id, f"✅ Correct! {LOGIN_FIRST}")
    else:
        edit_message_text(chat_id, message_id, "✅ Correct! But an error occurred while updating your coin balance.")


def handle_chat(chat_id, telegram_id, text, **_):
    if not check_rate_limit(f'ai:{telegram_id}', 10, 60):
        send_telegram_message(chat_id, "⏳ Too many messages. Please wait a minute.")
        return
    try:
        user = store.get_user(telegram_id, by='telegram_id')
    except PersistenceFailure as e:
        logger.error(f"Chat user lookup failed for {telegram_id}: {e}")
        user = None

    try:
        reply = chat_reply(user['id'] if user else None, text)
    except UpstreamUnavailable as e:
        logger.error(f"AI reply failed for {telegram_id}: {e}")
        send_telegram_message(chat_id, "🤖 AI is not available right now.")
        return

    send_telegram_message(chat_id, reply)
    # Credit only after the AI reply was produced
    result = mutator.reward(telegram_id, 'chat')
    if result.error == ErrorKind.NOT_FOUND:
        send_telegram_message(chat_id, LOGIN_FIRST)
    elif not result.ok:
        send_telegram_message(chat_id, "❌ An error occurred while updating your coin balance.")


HANDLERS = {
    'start': handle_start,
    'help': handle_help,
    'daily': handle_daily,
    'chance': handle_chance,
    'quiz': handle_quiz,
    'quiz-answer': handle_quiz_answer,
    'chat': handle_chat,
}


def dispatch_update(update):
    kind, context = classify_update(update)
    if kind is None:
        return None
    HANDLERS[kind](**context)
    return kind


# ===============================
# ROUTES
# ===============================

@bot_bp.route('/api/bot', methods=['POST'])
def bot_webhook():
    update = request.get_json(silent=True)
    if not isinstance(update, dict):
        logger.warning("Ignoring malformed update body")
        return 'OK', 200

    try:
        if is_stale_update(update):
            logger.info(f"Ignoring stale update (timestamp: {update_message(update).get('date')}).")
            return 'OK', 200
        dispatch_update(update)
    except Exception:
        logger.exception(f"Error processing Telegram update {update.get('update_id')}")
        message = update_message(update)
        if isinstance(message, dict) and isinstance(message.get('chat'), dict):
            send_telegram_message(message['chat']['id'], SOMETHING_WRONG)
    return 'OK', 200


@bot_bp.route('/api/set-webhook', methods=['GET'])
@require_admin_secret
def set_webhook():
    base_url = (config.APP_URL or request.host_url).rstrip('/')
    webhook_url = f"{base_url}/api/bot"
    result = telegram_api('setWebhook', {"url": webhook_url, "allowed_updates": ["message", "callback_query"]})
    if not result or not result.get('ok'):
        return jsonify({"success": False, "error": "Failed to set webhook.", "details": result}), 500
    logger.info(f"Webhook set to: {webhook_url}")
    return jsonify({"success": True, "message": f"Webhook successfully set to {webhook_url}"})


@bot_bp.route('/api/webhook-info', methods=['GET'])
@require_admin_secret
def webhook_info():
    return jsonify(telegram_api('getWebhookInfo', {}) or {"ok": False})
