import pytest

from transferapi import database


class FakeTransaction:
    def __init__(self, connection):
        self.connection = connection
        self.started = 0
        self.committed = 0
        self.rolled_back = 0

    async def start(self):
        self.started += 1

    async def commit(self):
        self.committed += 1
        if self.connection.commit_error:
            raise self.connection.commit_error

    async def rollback(self):
        self.rolled_back += 1

    # nested use, i.e. a savepoint
    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()
        return False


class FakeConnection:
    """Just enough of asyncpg.Connection for the store."""

    def __init__(self):
        self.queries = []
        self.transactions = []
        self.rows = []
        self.fetch_error = None
        self.execute_error = None
        self.executemany_error = None
        self.commit_error = None

    def transaction(self):
        tr = FakeTransaction(self)
        self.transactions.append(tr)
        return tr

    async def execute(self, query, *args):
        self.queries.append((query, args))
        if self.execute_error:
            raise self.execute_error
        return "OK"

    async def executemany(self, query, rows):
        self.queries.append((query, rows))
        if self.executemany_error:
            raise self.executemany_error

    async def fetch(self, query, *args):
        self.queries.append((query, args))
        if self.fetch_error:
            raise self.fetch_error
        return self.rows


class FakePool:
    def __init__(self, connection):
        self.connection = connection
        self.acquire_errors = []
        self.acquired = 0
        self.released = 0

    async def acquire(self, timeout=None):
        if self.acquire_errors:
            raise self.acquire_errors.pop(0)
        self.acquired += 1
        return self.connection

    async def release(self, connection):
        self.released += 1


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def fake_pool(conn, monkeypatch):
    pool = FakePool(conn)
    monkeypatch.setattr(database, "pool", pool)
    return pool
