import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from transferapi import transfers
from transferapi.config import LISTENER_ENABLED, LOG_LEVEL, PORT
from transferapi.database import close_pool, init_pool
from transferapi.errors import ValidationError
from transferapi.listener import TransferListener

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_pool()
    listener = None
    try:
        if LISTENER_ENABLED:
            listener = TransferListener(create=transfers.create_transfer)
            await listener.start()
        app.state.listener = listener
        logger.info(f"server listening on port: {PORT}")
        yield
    finally:
        if listener:
            await listener.stop()
        await close_pool()

app = FastAPI(
    title="Transfer Indexer API",
    default_response_class=ORJSONResponse,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_INT_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")

def parse_int(value: Optional[str]) -> Optional[int]:
    """Leading-integer parse; anything unparseable is treated as not provided."""
    if value is None:
        return None
    match = _INT_PREFIX.match(value)
    return int(match.group(1)) if match else None

def ok(data):
    return ORJSONResponse(status_code=200, content={"status": "ok", "data": data, "statusCode": 200})

def error(handler: str, e: Exception):
    status_code = 400 if isinstance(e, ValidationError) else 500
    logger.error(f"{handler} error: {e}")
    return ORJSONResponse(
        status_code=status_code,
        content={"status": "error", "message": str(e), "statusCode": status_code}
    )

# ===== TRANSFER ENDPOINTS =====

@app.get("/total-volume")
async def get_total_volume():
    try:
        return ok(await transfers.read_total_volume())
    except Exception as e:
        return error("get_total_volume", e)

@app.get("/top-accounts")
async def get_top_accounts(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None
):
    try:
        result = await transfers.read_top_accounts(from_, to, parse_int(limit), parse_int(offset))
        return ok(result)
    except Exception as e:
        return error("get_top_accounts", e)

@app.get("/transfers")
async def get_transfers(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    sort: Optional[str] = None,
    direction: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None
):
    try:
        result = await transfers.read_transfers(
            from_, to, sort, direction, parse_int(limit), parse_int(offset)
        )
        return ok(result)
    except Exception as e:
        return error("get_transfers", e)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
