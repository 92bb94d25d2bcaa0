import os
from dotenv import load_dotenv

load_dotenv()

PG_HOST = os.getenv("PG_HOST", "localhost")
PG_PORT = int(os.getenv("PG_PORT", "5432"))
PG_DATABASE = os.getenv("PG_DATABASE", "postgres")
PG_USER = os.getenv("PG_USER", "postgres")
PG_PASSWORD = os.getenv("PG_PASSWORD", "")
PG_MIN_CONNECTIONS = int(os.getenv("PG_MIN_CONNECTIONS", "1"))
PG_MAX_CONNECTIONS = int(os.getenv("PG_MAX_CONNECTIONS", "10"))
PG_STATEMENT_TIMEOUT = float(os.getenv("PG_STATEMENT_TIMEOUT", "30"))
PG_ACQUIRE_RETRIES = int(os.getenv("PG_ACQUIRE_RETRIES", "3"))
PG_RETRY_DELAY = float(os.getenv("PG_RETRY_DELAY", "0.5"))

# Avalanche C-Chain, USDC
RPC_URL = os.getenv("RPC_URL", "https://api.avax.network/ext/bc/C/rpc")
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E")
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "4"))
# most providers cap eth_getLogs ranges around 2048 blocks
LOG_BATCH_SIZE = int(os.getenv("LOG_BATCH_SIZE", "2000"))
LISTENER_ENABLED = os.getenv("LISTENER_ENABLED", "true").lower() in ("1", "true", "yes")

PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
