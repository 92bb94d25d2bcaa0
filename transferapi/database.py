import asyncio
import logging

import asyncpg

from transferapi.config import (
    PG_HOST, PG_PORT, PG_DATABASE, PG_USER, PG_PASSWORD,
    PG_MIN_CONNECTIONS, PG_MAX_CONNECTIONS, PG_STATEMENT_TIMEOUT,
    PG_ACQUIRE_RETRIES, PG_RETRY_DELAY,
)

logger = logging.getLogger(__name__)

pool = None

# Errors worth another attempt when acquiring a connection
TRANSIENT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
)


async def init_pool():
    global pool
    pool = await asyncpg.create_pool(
        host=PG_HOST,
        port=PG_PORT,
        database=PG_DATABASE,
        user=PG_USER,
        password=PG_PASSWORD,
        min_size=PG_MIN_CONNECTIONS,
        max_size=PG_MAX_CONNECTIONS,
        command_timeout=PG_STATEMENT_TIMEOUT
    )
    return pool

async def close_pool():
    global pool
    if pool:
        await pool.close()
        pool = None

async def get_pool():
    global pool
    if pool is None:
        await init_pool()
    return pool


class Transaction:
    """A pooled connection with an open transaction on it.

    The connection goes back to the pool on commit() or rollback().
    """

    def __init__(self, pool, connection, transaction):
        self.pool = pool
        self.connection = connection
        self.transaction = transaction
        self.released = False

    async def execute(self, query, *args):
        return await self.connection.execute(query, *args)

    async def fetch(self, query, *args):
        return await self.connection.fetch(query, *args)

    def savepoint(self):
        # asyncpg turns a nested transaction into a SAVEPOINT
        return self.connection.transaction()

    async def release(self):
        if not self.released:
            self.released = True
            await self.pool.release(self.connection)


async def acquire(pool, retries=PG_ACQUIRE_RETRIES, delay=PG_RETRY_DELAY):
    attempt = 0
    while True:
        attempt += 1
        try:
            return await pool.acquire(timeout=PG_STATEMENT_TIMEOUT)
        except TRANSIENT_ERRORS as e:
            if attempt > retries:
                raise
            logger.warning(f"acquire attempt {attempt} failed: {e}; retrying")
            await asyncio.sleep(delay * attempt)


async def get_transaction() -> Transaction:
    db_pool = await get_pool()
    conn = await acquire(db_pool)
    tr = conn.transaction()
    try:
        await tr.start()
    except Exception:
        await db_pool.release(conn)
        raise
    return Transaction(db_pool, conn, tr)

async def commit(tx: Transaction):
    try:
        await tx.transaction.commit()
    finally:
        await tx.release()

async def rollback(tx: Transaction):
    # a failed COMMIT has already ended the transaction and released the connection
    if tx.released:
        return
    try:
        await tx.transaction.rollback()
    finally:
        await tx.release()

async def exec_multiple_rows(tx: Transaction, query, rows):
    await tx.connection.executemany(query, rows)
