#!/usr/bin/env python3
"""
🪙 COINBOT — Security: response headers, global rate limit
"""

from flask import request, jsonify
from .auth import check_rate_limit


def add_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    return response


def global_rate_limit_check():
    """Global rate limit: 120 req/min per IP. The Telegram webhook is exempt."""
    if request.path == '/api/bot':
        return None
    ip = request.remote_addr
    if not check_rate_limit(f'global:{ip}', 120, 60):
        return jsonify({"error": "Rate limit exceeded"}), 429
    return None
