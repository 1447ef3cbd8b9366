#!/usr/bin/env python3
"""
🪙 COINBOT — Telegram Login Widget callback
"""

import base64
import json
import logging
import urllib.parse

from flask import Blueprint, request, redirect
from .auth import verify_login_payload
from .config import config
from .errors import LoginRejected, PersistenceFailure, ValidationError
from .ledger import PUBLIC_FIELDS, store

logger = logging.getLogger(__name__)
login_bp = Blueprint('login', __name__)


def encode_user_payload(user):
    payload = {field: user.get(field) for field in PUBLIC_FIELDS}
    return base64.b64encode(json.dumps(payload).encode()).decode()


@login_bp.route('/api/login', methods=['GET'])
def api_login():
    params = request.args.to_dict()
    if not params.get('hash'):
        return 'Bad Request: No hash provided.', 400
    if not config.TELEGRAM_BOT_TOKEN:
        logger.error("TELEGRAM_BOT_TOKEN is not set.")
        return 'Internal Server Error: Bot token not configured.', 500

    try:
        identity = verify_login_payload(params, config.TELEGRAM_BOT_TOKEN)
    except LoginRejected as e:
        logger.warning(f"Login rejected for id={params.get('id')}: {e}")
        return f'Forbidden: {e}.', 403
    except ValidationError as e:
        return f'Bad Request: {e}.', 400

    try:
        telegram_id = int(identity.get('id', ''))
    except ValueError:
        return 'Bad Request: Invalid user id.', 400

    try:
        user = store.upsert_identity(telegram_id, identity)
    except PersistenceFailure as e:
        logger.error(f"Error during login: {e}")
        return 'Internal Server Error', 500

    encoded = urllib.parse.quote(encode_user_payload(user), safe='')
    return redirect(f"{config.FRONTEND_URL}?user={encoded}", code=302)
