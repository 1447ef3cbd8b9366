#!/usr/bin/env python3
"""
🪙 COINBOT — Utilities: Telegram Bot API messaging
"""

import logging
import requests as http_requests
from .config import config

logger = logging.getLogger(__name__)


def telegram_api(method, payload, timeout=10):
    """Call a Telegram Bot API method. Returns the decoded body or None."""
    if not config.TELEGRAM_BOT_TOKEN:
        logger.error(f"Telegram {method} skipped: TELEGRAM_BOT_TOKEN is not set")
        return None
    try:
        response = http_requests.post(
            f'https://api.telegram.org/bot{config.TELEGRAM_BOT_TOKEN}/{method}',
            json=payload,
            timeout=timeout
        )
        result = response.json()
        if not result.get('ok'):
            logger.error(f"Telegram {method} error: {result.get('description', response.status_code)}")
        return result
    except (http_requests.RequestException, ValueError) as e:
        logger.error(f"Telegram {method} failed: {e}")
        return None


def send_telegram_message(chat_id, text, reply_markup=None, parse_mode=None):
    payload = {'chat_id': chat_id, 'text': text}
    if parse_mode:
        payload['parse_mode'] = parse_mode
    if reply_markup:
        payload['reply_markup'] = reply_markup
    return telegram_api('sendMessage', payload)


def edit_message_text(chat_id, message_id, text):
    """Replace message text and drop its inline keyboard"""
    return telegram_api('editMessageText', {
        'chat_id': chat_id,
        'message_id': message_id,
        'text': text,
        'reply_markup': {'inline_keyboard': []},
    })


def answer_callback_query(callback_query_id, text=None):
    payload = {'callback_query_id': callback_query_id}
    if text:
        payload['text'] = text
    return telegram_api('answerCallbackQuery', payload)


def sent_message_id(result):
    """message_id from a sendMessage response, or None"""
    if result and result.get('ok'):
        return (result.get('result') or {}).get('message_id')
    return None
