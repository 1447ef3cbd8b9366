#!/usr/bin/env python3
"""
🪙 COINBOT — Configuration
"""

import os


def env_int(name, default):
    """Integer setting from the environment; empty or unset means ``default``"""
    value = os.environ.get(name, '').strip()
    return int(value) if value else default


class Config:
    DATABASE_URL = os.environ.get('DATABASE_URL') or os.environ.get('POSTGRES_URL', '')
    DB_POOL_MIN = env_int('DB_POOL_MIN', 1)
    DB_POOL_MAX = env_int('DB_POOL_MAX', 10)
    TELEGRAM_BOT_TOKEN = os.environ.get('TELEGRAM_BOT_TOKEN', '')
    APP_URL = os.environ.get('APP_URL', '')
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'https://ewc.on.websim.com/')
    OPENROUTER_KEY = os.environ.get('OPENROUTER_KEY', '')
    OPENROUTER_URL = 'https://openrouter.ai/api/v1/chat/completions'
    AI_MODEL = os.environ.get('AI_MODEL', 'openai/gpt-3.5-turbo')
    AI_TIMEOUT_SECONDS = env_int('AI_TIMEOUT_SECONDS', 30)
    # Admin secret: only from env var, no default
    ADMIN_SECRET = os.environ.get('ADMIN_SECRET', '')

    DAILY_REWARD = env_int('DAILY_REWARD', 20)
    DAILY_WINDOW_HOURS = env_int('DAILY_WINDOW_HOURS', 24)
    CHANCE_MIN_REWARD = env_int('CHANCE_MIN_REWARD', 1)
    CHANCE_MAX_REWARD = env_int('CHANCE_MAX_REWARD', 20)
    CHANCE_DAILY_LIMIT = env_int('CHANCE_DAILY_LIMIT', 3)
    QUIZ_REWARD = env_int('QUIZ_REWARD', 15)
    QUIZ_TTL_SECONDS = env_int('QUIZ_TTL_SECONDS', 300)
    CHAT_REWARD = env_int('CHAT_REWARD', 10)
    CHAT_HISTORY_LIMIT = env_int('CHAT_HISTORY_LIMIT', 10)

    STALE_UPDATE_SECONDS = env_int('STALE_UPDATE_SECONDS', 300)
    LOGIN_MAX_AGE_SECONDS = env_int('LOGIN_MAX_AGE_SECONDS', 86400)
    LEDGER_MAX_RETRIES = env_int('LEDGER_MAX_RETRIES', 3)


config = Config()
