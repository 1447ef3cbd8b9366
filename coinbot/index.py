#!/usr/bin/env python3
"""
🪙 COINBOT MAIN APPLICATION — Vercel + PostgreSQL
Blueprints: frontend API (balance, withdraw), login callback, Telegram webhook
"""

import logging

from flask import Flask, jsonify
from flask_cors import CORS

from .config import config
from .database import init_database
from .errors import PersistenceFailure
from .ledger import store
from .routes_bot import bot_bp
from .routes_login import login_bp
from .routes_user import user_bp
from .security import add_security_headers, global_rate_limit_check

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def api_health():
    """Health check endpoint"""
    try:
        count = store.count_users()
        return jsonify({"status": "ok", "users": count, "database": "connected"})
    except PersistenceFailure as e:
        logger.error(f"Health check failed: {e}")
        return jsonify({"status": "error", "database": "unreachable"}), 500


def create_app():
    app = Flask(__name__)
    if config.FRONTEND_URL:
        CORS(app, resources={r"/api/user/*": {"origins": [config.FRONTEND_URL.rstrip('/')]}},
             methods=['GET', 'POST', 'OPTIONS'], allow_headers=['Content-Type'])

    app.before_request(global_rate_limit_check)
    app.after_request(add_security_headers)

    app.register_blueprint(user_bp)
    app.register_blueprint(login_bp)
    app.register_blueprint(bot_bp)
    app.add_url_rule('/api/health', 'api_health', api_health, methods=['GET'])
    return app


app = create_app()

# Initialize on cold start
if config.DATABASE_URL:
    init_database()

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5020, debug=False)
