#!/usr/bin/env python3
"""
🪙 COINBOT — Frontend API: read balance, withdraw coins
"""

import logging
import math

from flask import Blueprint, request, jsonify
from .balance import mutator
from .errors import ErrorKind, NotFound, PersistenceFailure
from .ledger import store

logger = logging.getLogger(__name__)
user_bp = Blueprint('user', __name__)

# users.id and users.coins are PostgreSQL INTEGER columns
MAX_INT4 = 2 ** 31 - 1


def parse_user_id(raw):
    raw = (raw or '').strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    uid = int(raw)
    return uid if uid <= MAX_INT4 else None


def parse_amount(value):
    """Positive whole number of coins, or None"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value) or value != int(value):
            return None
        value = int(value)
    if value <= 0 or value > MAX_INT4:
        return None
    return value


@user_bp.route('/api/user/<user_id>/coins', methods=['GET'])
def api_user_coins(user_id):
    uid = parse_user_id(user_id)
    if uid is None:
        return jsonify({"error": "A valid user ID must be provided."}), 400
    try:
        coins = store.get_balance(uid)
        return jsonify({"coins": coins})
    except NotFound:
        return jsonify({"error": "User not found."}), 404
    except PersistenceFailure as e:
        logger.error(f"Error fetching coins for user {uid}: {e}")
        return jsonify({"error": "Internal Server Error"}), 500


@user_bp.route('/api/user/<user_id>/coins/withdraw', methods=['POST'])
def api_user_withdraw(user_id):
    uid = parse_user_id(user_id)
    if uid is None:
        return jsonify({"error": "A valid user ID must be provided."}), 400
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    amount = parse_amount(data.get('amount'))
    if amount is None:
        return jsonify({"error": "A valid, positive withdrawal amount must be provided."}), 400

    result = mutator.withdraw(uid, amount)
    if result.ok:
        logger.info(f"Withdrawal of {amount} for user {uid}, new balance {result.value}")
        return jsonify({"success": True, "message": "Withdrawal successful.", "newBalance": result.value})
    if result.error == ErrorKind.NOT_FOUND:
        return jsonify({"error": "User not found."}), 404
    if result.error == ErrorKind.INSUFFICIENT_FUNDS:
        return jsonify({"error": "Insufficient funds", "currentCoins": result.current_balance}), 400
    if result.error == ErrorKind.VALIDATION:
        return jsonify({"error": result.message}), 400
    logger.error(f"Withdrawal transaction error for user {uid}: {result.message}")
    return jsonify({"error": "Internal Server Error during transaction."}), 500
