import os
import threading
import time
from collections import defaultdict

import pytest

# Keep the app from touching a real database on import
os.environ.pop('DATABASE_URL', None)
os.environ.pop('POSTGRES_URL', None)

from coinbot import auth, index, routes_bot, routes_login, routes_user  # noqa: E402
from coinbot.balance import BalanceMutator  # noqa: E402
from coinbot.config import config  # noqa: E402
from coinbot.errors import NotFound, PersistenceFailure  # noqa: E402
from coinbot.ledger import MUTABLE_COLUMNS, PUBLIC_FIELDS  # noqa: E402


class FakeLedgerStore:
    """In-memory ledger with per-row locks, honouring the LedgerStore contract."""

    def __init__(self):
        self.rows = {}
        self.history = []
        self.fail_with = None
        self.write_delay = 0
        self._row_locks = defaultdict(threading.Lock)
        self._meta = threading.Lock()
        self._next_id = 1

    def add_user(self, telegram_id, coins=0, **fields):
        with self._meta:
            row = {
                'id': self._next_id, 'telegram_id': telegram_id, 'username': None,
                'first_name': None, 'photo_url': None, 'auth_date': None, 'coins': coins,
                'last_daily_claim': None, 'chance_today': 0, 'last_chance_date': None,
            }
            row.update(fields)
            self.rows[row['id']] = row
            self._next_id += 1
            return dict(row)

    def _find(self, key, by):
        with self._meta:
            for row in self.rows.values():
                if row[by] == key:
                    return row
        return None

    def get_balance(self, key, by='id'):
        if self.fail_with:
            raise self.fail_with
        row = self._find(key, by)
        if row is None:
            raise NotFound(f"User {key} not found")
        return row['coins']

    def get_user(self, key, by='id'):
        row = self._find(key, by)
        return dict(row) if row else None

    def with_locked_row(self, key, fn, by='id', operation=None):
        if self.fail_with:
            raise self.fail_with
        row = self._find(key, by)
        if row is None:
            raise NotFound(f"User {key} not found")
        with self._row_locks[row['id']]:
            changes = fn(dict(row)) or {}
            assert set(changes) <= set(MUTABLE_COLUMNS)
            if self.write_delay:
                time.sleep(self.write_delay)
            new_coins = changes.get('coins', row['coins'])
            if new_coins < 0:
                raise PersistenceFailure('coins_check constraint violated')
            delta = new_coins - row['coins']
            row.update(changes)
            if delta:
                self.history.append({'user_id': row['id'], 'amount': delta, 'operation': operation,
                                     'balance_after': new_coins})
            return dict(row)

    def upsert_identity(self, telegram_id, attributes):
        row = self._find(telegram_id, 'telegram_id')
        fields = {k: attributes.get(k) for k in ('username', 'first_name', 'photo_url', 'auth_date')}
        if row is None:
            row = self.add_user(telegram_id, **fields)
        else:
            with self._row_locks[row['id']]:
                row.update(fields)
        return {k: row[k] for k in PUBLIC_FIELDS}

    def count_users(self):
        if self.fail_with:
            raise self.fail_with
        return len(self.rows)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    auth._rate_limits.clear()
    yield
    auth._rate_limits.clear()


@pytest.fixture
def fake_store(monkeypatch):
    store = FakeLedgerStore()
    mutator = BalanceMutator(store)
    for module in (routes_user, routes_login, routes_bot, index):
        if hasattr(module, 'store'):
            monkeypatch.setattr(module, 'store', store)
        if hasattr(module, 'mutator'):
            monkeypatch.setattr(module, 'mutator', mutator)
    store.mutator = mutator
    return store


@pytest.fixture
def app(fake_store, monkeypatch):
    monkeypatch.setattr(config, 'TELEGRAM_BOT_TOKEN', '123456:TEST-TOKEN')
    monkeypatch.setattr(config, 'FRONTEND_URL', 'https://frontend.example/')
    application = index.create_app()
    application.config['TESTING'] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()
