import asyncio
import logging

from eth_abi import decode
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from transferapi.config import CONTRACT_ADDRESS, LOG_BATCH_SIZE, POLL_INTERVAL, RPC_URL
from transferapi.transfers import create_transfer

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC0 = (
    "0xddf252ad1be2c89b69c2b068fc378daa"
    "952ba7f163c4a11628f55a4df523b3ef"
)


def _to_bytes(value) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return bytes(value)


def decode_transfer_log(log):
    """Return (sender, receiver, value) for an ERC-20 Transfer log."""
    topics = log["topics"]
    sender = decode(["address"], _to_bytes(topics[1]))[0]
    receiver = decode(["address"], _to_bytes(topics[2]))[0]
    value = decode(["uint256"], _to_bytes(log["data"]))[0]
    return Web3.to_checksum_address(sender), Web3.to_checksum_address(receiver), value


_RANGE_ERRORS = ("query returned more than", "too many", "range", "limit exceeded")

def _range_too_large(exc) -> bool:
    msg = str(exc).lower()
    return any(hint in msg for hint in _RANGE_ERRORS)


class TransferListener:
    """Polls one contract for Transfer events and hands each to `create`.

    Events are delivered in the order they were observed, at least once.
    A failed write is logged and skipped; nothing before the start block is read.
    """

    def __init__(self, create=create_transfer, w3=None,
                 contract_address=CONTRACT_ADDRESS, poll_interval=POLL_INTERVAL,
                 batch_size=LOG_BATCH_SIZE):
        self.create = create
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(RPC_URL))
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.last_block = None
        self._task = None

    @property
    def running(self):
        return self._task is not None and not self._task.done()

    async def start(self):
        if self.running:
            return
        try:
            self.last_block = await self.w3.eth.block_number
            logger.info(f"listening for Transfer events on {self.contract_address} from block {self.last_block}")
        except Exception as e:
            # resolved by the first successful poll
            logger.warning(f"head lookup failed, listener will retry: {e}")
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("transfer listener stopped")

    async def _run(self):
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"transfer poll error: {e}")
            await asyncio.sleep(self.poll_interval)

    async def poll_once(self):
        """Fetch and handle logs for blocks after last_block up to the head.

        The range is walked in batches of at most batch_size blocks, halved
        whenever the provider rejects a range as too large. last_block moves
        forward after each batch whose logs were all handed off.
        """
        head = await self.w3.eth.block_number
        if self.last_block is None:
            self.last_block = head
            logger.info(f"listening for Transfer events on {self.contract_address} from block {head}")
            return 0

        handled = 0
        current = self.last_block + 1
        batch_size = self.batch_size
        while current <= head:
            batch_to = min(current + batch_size - 1, head)
            try:
                logs = await self.w3.eth.get_logs({
                    "address": self.contract_address,
                    "topics": [TRANSFER_TOPIC0],
                    "fromBlock": current,
                    "toBlock": batch_to,
                })
            except (ValueError, Web3Exception) as e:
                if batch_size <= 1 or not _range_too_large(e):
                    raise
                batch_size = max(batch_size // 2, 1)
                logger.warning(f"get_logs too large ({current}-{batch_to}), reducing batch size to {batch_size}")
                continue
            for log in logs:
                await self.handle_log(log)
            handled += len(logs)
            self.last_block = batch_to
            current = batch_to + 1
        return handled

    async def handle_log(self, log):
        try:
            sender, receiver, value = decode_transfer_log(log)
        except Exception as e:
            logger.error(f"undecodable Transfer log: {e}")
            return
        logger.info(f"Transfer detected: {sender} {receiver} {value}")
        try:
            await self.create(sender, receiver, value)
        except Exception as e:
            logger.error(f"create_transfer failed for {sender} -> {receiver}: {e}")
