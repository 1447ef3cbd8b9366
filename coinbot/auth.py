#!/usr/bin/env python3
"""
🪙 COINBOT — Authentication: Telegram Login Widget check, admin secret, rate limits
"""

import hashlib
import hmac
import logging
import threading
import time
from functools import wraps

from flask import request, jsonify
from .config import config
from .errors import LoginRejected, ValidationError

logger = logging.getLogger(__name__)

# ===============================
# RATE LIMITING
# ===============================
# NOTE: In-memory, per process. Each serverless instance keeps its own counters.
_rate_limits = {}
_rate_limits_lock = threading.Lock()
# Above this many tracked keys, keys with no hit inside the window are dropped
RATE_LIMIT_SWEEP_AT = 10000


def _sweep_rate_limits(now, window_seconds):
    for key in [k for k, hits in _rate_limits.items() if not hits or now - hits[-1] >= window_seconds]:
        del _rate_limits[key]


def check_rate_limit(key, max_requests=60, window_seconds=60):
    """Sliding-window rate limit. Default: 60 req/min"""
    now = time.time()
    with _rate_limits_lock:
        if len(_rate_limits) > RATE_LIMIT_SWEEP_AT:
            _sweep_rate_limits(now, window_seconds)
        hits = [t for t in _rate_limits.get(key, ()) if now - t < window_seconds]
        if len(hits) >= max_requests:
            _rate_limits[key] = hits
            return False
        hits.append(now)
        _rate_limits[key] = hits
        return True


# ===============================
# TELEGRAM LOGIN WIDGET VALIDATION
# ===============================

def login_data_check_string(params):
    return '\n'.join(f'{k}={v}' for k, v in sorted(params.items()) if k != 'hash')


def login_signature(params, bot_token):
    """HMAC-SHA256 of the data-check-string keyed with SHA256(bot_token)"""
    secret_key = hashlib.sha256(bot_token.encode()).digest()
    return hmac.new(secret_key, login_data_check_string(params).encode(), hashlib.sha256).hexdigest()


def verify_login_payload(params, bot_token, now=None):
    """Validate Login Widget query params; returns them without ``hash``.

    Raises ValidationError for a missing hash or unparsable auth_date and
    LoginRejected for a signature mismatch or auth data older than 24h.
    """
    params = dict(params)
    received_hash = params.get('hash', '')
    if not received_hash:
        raise ValidationError('No hash provided')
    if not hmac.compare_digest(login_signature(params, bot_token), str(received_hash)):
        raise LoginRejected('Invalid hash')
    try:
        auth_date = int(params.get('auth_date', ''))
    except (TypeError, ValueError):
        raise ValidationError('Invalid auth_date')
    now = now if now is not None else time.time()
    if now - auth_date > config.LOGIN_MAX_AGE_SECONDS:
        raise LoginRejected('Authentication data is outdated')
    params.pop('hash')
    params['auth_date'] = auth_date
    return params


# ===============================
# AUTH DECORATORS
# ===============================

def require_admin_secret(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = request.headers.get('X-Admin-Secret', '')
        admin_secret = config.ADMIN_SECRET
        if not admin_secret:
            return jsonify({"error": "Admin secret not configured"}), 500
        if not hmac.compare_digest(secret.encode(), admin_secret.encode()):
            return jsonify({"error": "Unauthorized"}), 403
        return f(*args, **kwargs)
    return decorated
