import logging
from datetime import datetime, timezone
from typing import Optional

from transferapi.database import commit, exec_multiple_rows, get_transaction, rollback
from transferapi.errors import BootstrapError, StoreError, ValidationError
from transferapi.validator import is_valid_timestamp

logger = logging.getLogger(__name__)

SUCCESS = "success"

DEFAULT_FROM = "2000-01-01 00:00:00"

SORT_FIELDS = ("receiver", "sender", "amount", "timestamp")

CREATE_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS transfers ("
    "id SERIAL PRIMARY KEY, "
    "sender VARCHAR(255), "
    "receiver VARCHAR(255), "
    "amount VARCHAR(255), "
    "timestamp TIMESTAMP WITH TIME ZONE);"
)

INSERT_SQL = "INSERT INTO transfers (sender, receiver, amount, timestamp) VALUES ($1, $2, $3, $4);"

TOTAL_VOLUME_SQL = "SELECT SUM(CAST(amount AS numeric)) AS total_amount FROM transfers;"

# Bound as text so PostgreSQL does the parsing; the validator only checks shape
TIME_RANGE_SQL = "timestamp >= $1::text::timestamptz AND timestamp <= $2::text::timestamptz"


def _decimal_str(value):
    if value is None:
        return None
    return format(value, "f")

# Helper to format a transfer row
def format_transfer(row):
    timestamp = row["timestamp"]
    return {
        "id": row["id"],
        "sender": row["sender"],
        "receiver": row["receiver"],
        "amount": row["amount"],
        "timestamp": timestamp.isoformat() if isinstance(timestamp, datetime) else timestamp,
    }

# Helper to format a top-accounts row
def format_account(row):
    return {
        "address": row["address"],
        "total_volume": _decimal_str(row["total_volume"]),
    }

def format_total(row):
    return {"total_amount": _decimal_str(row["total_amount"])}


def resolve_time_range(from_: Optional[str], to: Optional[str]):
    """Validate the optional bounds and fill in the defaults.

    Raises ValidationError naming the offending field. Empty strings count
    as not provided.
    """
    if from_ and not is_valid_timestamp(from_):
        raise ValidationError("from")
    if to and not is_valid_timestamp(to):
        raise ValidationError("to")
    return from_ or DEFAULT_FROM, to or datetime.now(timezone.utc).isoformat()


def _page_clause(limit: Optional[int], offset: Optional[int], params: list) -> str:
    clause = ""
    # zero means not provided
    if limit is not None and limit > 0:
        params.append(limit)
        clause += f" LIMIT ${len(params)}"
    if offset is not None and offset > 0:
        params.append(offset)
        clause += f" OFFSET ${len(params)}"
    return clause


def build_top_accounts_query(from_=None, to=None, limit=None, offset=None):
    start, end = resolve_time_range(from_, to)
    params = [start, end]
    query = f"""
        SELECT address, SUM(CAST(amount AS numeric)) AS total_volume
        FROM (
            SELECT sender AS address, amount
            FROM transfers
            WHERE {TIME_RANGE_SQL}
            UNION ALL
            SELECT receiver AS address, amount
            FROM transfers
            WHERE {TIME_RANGE_SQL}
        ) AS combined_addresses
        GROUP BY address
        ORDER BY total_volume DESC"""
    query += _page_clause(limit, offset, params)
    return query, params


def build_transfers_query(from_=None, to=None, sort=None, direction=None, limit=None, offset=None):
    start, end = resolve_time_range(from_, to)
    params = [start, end]
    query = f"SELECT * FROM transfers WHERE {TIME_RANGE_SQL}"

    # Column names cannot be bound, so only allow-listed ones are interpolated
    if sort in SORT_FIELDS:
        order = "DESC" if direction and direction.upper() == "DESC" else "ASC"
        query += f" ORDER BY {sort} {order}"

    query += _page_clause(limit, offset, params)
    return query, params


async def _begin(operation):
    try:
        return await get_transaction()
    except Exception as e:
        logger.error(f"{operation} error: {e}")
        raise StoreError(e) from e


async def _fetch(operation, query, params=()):
    tx = await _begin(operation)
    try:
        rows = await tx.fetch(query, *params)
        await commit(tx)
        return rows
    except Exception as e:
        await rollback(tx)
        logger.error(f"{operation} error: {e}")
        raise StoreError(e) from e


async def ensure_table(tx):
    """Create the transfers table if it is missing.

    Runs inside a savepoint so a failure (a concurrent create, say) leaves
    the surrounding transaction usable.
    """
    try:
        async with tx.savepoint():
            await tx.execute(CREATE_TABLE_SQL)
    except Exception as e:
        raise BootstrapError(e) from e
    logger.debug("transfers table ready")


async def create_transfer(sender: str, receiver: str, amount: int) -> str:
    rows = [(sender, receiver, str(amount), datetime.now(timezone.utc))]

    tx = await _begin("create_transfer")
    try:
        try:
            await ensure_table(tx)
        except BootstrapError as e:
            logger.warning(f"create_transfer table bootstrap error: {e}")
        await exec_multiple_rows(tx, INSERT_SQL, rows)
        await commit(tx)
        return SUCCESS
    except Exception as e:
        await rollback(tx)
        logger.error(f"create_transfer error: {e}")
        raise StoreError(e) from e


async def read_total_volume():
    """Sum of every stored amount. total_amount is None when the table is empty."""
    rows = await _fetch("read_total_volume", TOTAL_VOLUME_SQL)
    return [format_total(row) for row in rows]


async def read_top_accounts(from_: Optional[str] = None, to: Optional[str] = None,
                            limit: Optional[int] = None, offset: Optional[int] = None):
    """Addresses ranked by sent plus received volume within [from_, to].

    Each transfer counts once for its sender and once for its receiver.
    """
    query, params = build_top_accounts_query(from_, to, limit, offset)
    rows = await _fetch("read_top_accounts", query, params)
    return [format_account(row) for row in rows]


async def read_transfers(from_: Optional[str] = None, to: Optional[str] = None,
                         sort: Optional[str] = None, direction: Optional[str] = None,
                         limit: Optional[int] = None, offset: Optional[int] = None):
    query, params = build_transfers_query(from_, to, sort, direction, limit, offset)
    rows = await _fetch("read_transfers", query, params)
    return [format_transfer(row) for row in rows]
