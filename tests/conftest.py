"""
Shared fixtures: an in-memory stand-in for the Supabase query builder and a
clean environment for each test.
"""

import copy
import itertools
from types import SimpleNamespace

import pytest

from tritrack.config_loader import Config
from tritrack.db import Database


class FakeQuery:
    """Records a chained Supabase query and runs it against in-memory rows."""

    def __init__(self, client, table_name):
        self.client = client
        self.table_name = table_name
        self.operation = 'select'
        self.payload = None
        self.filters = []
        self.order_by = None
        self.limit_count = None

    @property
    def rows(self):
        return self.client.tables.setdefault(self.table_name, [])

    def select(self, *columns):
        self.operation = 'select'
        return self

    def insert(self, payload):
        self.operation = 'insert'
        self.payload = payload
        return self

    def update(self, payload):
        self.operation = 'update'
        self.payload = payload
        return self

    def delete(self):
        self.operation = 'delete'
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] <= value)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.client.calls.append((self.table_name, self.operation))
        failure = self.client.failures.get((self.table_name, self.operation))
        if failure is not None:
            raise failure

        if self.operation == 'insert':
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for row in payload:
                row = copy.deepcopy(row)
                row.setdefault('id', f"{self.table_name}-{next(self.client.ids)}")
                self.rows.append(row)
                created.append(copy.deepcopy(row))
            return SimpleNamespace(data=created)

        matched = [row for row in self.rows if self._matches(row)]

        if self.operation == 'update':
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(matched))

        if self.operation == 'delete':
            self.client.tables[self.table_name] = [r for r in self.rows if not self._matches(r)]
            return SimpleNamespace(data=copy.deepcopy(matched))

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: str(r.get(column) or ''), reverse=desc)
        if self.limit_count is not None:
            matched = matched[:self.limit_count]
        return SimpleNamespace(data=copy.deepcopy(matched))


class FakeSupabase:
    """Minimal supabase.Client replacement backed by dict rows."""

    def __init__(self, tables=None):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.calls = []
        self.failures = {}
        self.ids = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep provider keys and user config files out of the tests."""
    for var in ('GROQ_API_KEY', 'CALORIE_NINJAS_API_KEY', 'SUPABASE_URL', 'SUPABASE_KEY',
                'TRITRACK_LOG_FORMAT', 'GROQ_VISION_MODEL', 'GROQ_CHAT_MODEL', 'TRITRACK_CONFIG'):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv('HOME', str(tmp_path))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config():
    """Defaults only."""
    return Config()


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def db(supabase):
    return Database(supabase)
