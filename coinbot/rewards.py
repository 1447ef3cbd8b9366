#!/usr/bin/env python3
"""
🪙 COINBOT — Reward policy: how many coins an action is worth
"""

import random
from datetime import datetime, timedelta, timezone

from .config import config


def reward_for(kind, rng=None):
    """Coin amount granted for an action kind"""
    if kind == 'daily':
        return config.DAILY_REWARD
    if kind == 'chance':
        rng = rng or random
        return rng.randint(config.CHANCE_MIN_REWARD, config.CHANCE_MAX_REWARD)
    if kind == 'quiz':
        return config.QUIZ_REWARD
    if kind == 'chat':
        return config.CHAT_REWARD
    raise ValueError(f"Unknown reward kind: {kind}")


def utcnow():
    return datetime.now(timezone.utc)


def daily_time_left(last_claim, now=None):
    """Time until the next daily claim, or None if it can be claimed now"""
    if last_claim is None:
        return None
    now = now or utcnow()
    if last_claim.tzinfo is None:
        last_claim = last_claim.replace(tzinfo=timezone.utc)
    left = last_claim + timedelta(hours=config.DAILY_WINDOW_HOURS) - now
    return left if left > timedelta(0) else None


def format_time_left(left):
    total_minutes = int(left.total_seconds() // 60)
    return f"{total_minutes // 60}h {total_minutes % 60}m"


def is_new_chance_day(last_chance_date, now=None):
    """Chance counter resets on the first play of each UTC calendar day"""
    if last_chance_date is None:
        return True
    now = now or utcnow()
    if isinstance(last_chance_date, datetime):
        last_chance_date = last_chance_date.astimezone(timezone.utc).date()
    return last_chance_date != utc_date(now)


def utc_date(now=None):
    now = now or utcnow()
    return now.astimezone(timezone.utc).date()
