"""
Ledger RPC access for Mainchain and WRKChain nodes.

Both chains speak the Ethereum JSON-RPC API, so one client type serves
both sides: the WRKChain side only ever reads headers, the Mainchain side
also talks to the WRKChain Root contract.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Optional, TypeVar

import aiohttp
import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from .errors import RPCError, SubmissionError
from .fees import WRKCHAIN_ROOT_CONTRACT_ADDRESS
from .models import RawHeader, RegistrationEvent

logger = structlog.get_logger()

T = TypeVar("T")

# Minimal WRKChain Root ABI: only what the oracle calls or filters on
WRKCHAIN_ROOT_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "chainId", "type": "uint256"},
            {"indexed": False, "name": "genesisHash", "type": "bytes32"},
        ],
        "name": "RegisterWrkChain",
        "type": "event",
    },
    {
        "inputs": [
            {"name": "_chainId", "type": "uint256"},
            {"name": "_authAddresses", "type": "address[]"},
            {"name": "_genesisHash", "type": "bytes32"},
        ],
        "name": "registerWrkChain",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "_chainId", "type": "uint256"},
            {"name": "_height", "type": "uint256"},
            {"name": "_hash", "type": "bytes32"},
            {"name": "_parentHash", "type": "bytes32"},
            {"name": "_receiptRoot", "type": "bytes32"},
            {"name": "_txRoot", "type": "bytes32"},
            {"name": "_stateRoot", "type": "bytes32"},
            {"name": "_sealer", "type": "address"},
        ],
        "name": "recordHeader",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, OSError)


class LedgerClient:
    """
    Async JSON-RPC client for an Ethereum-compatible ledger.

    Failures are converted to RPCError, flagged transient for network-level
    problems (connection refused, timeouts) so callers can retry them.
    """

    def __init__(self, w3: AsyncWeb3, url: str = ""):
        self.w3 = w3
        self.url = url
        self.root = w3.eth.contract(
            address=Web3.to_checksum_address(WRKCHAIN_ROOT_CONTRACT_ADDRESS),
            abi=WRKCHAIN_ROOT_ABI,
        )

    @classmethod
    async def connect(cls, url: str, timeout: int = 30) -> "LedgerClient":
        """Dial a node and make sure it answers."""
        provider = AsyncHTTPProvider(
            url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)}
        )
        client = cls(AsyncWeb3(provider), url)
        try:
            connected = await client.w3.is_connected()
        except TRANSIENT_ERRORS as e:
            await client.close()
            raise RPCError("connect", f"{url}: {e}", transient=True) from e

        if not connected:
            await client.close()
            raise RPCError("connect", f"could not connect to {url}", transient=True)

        logger.info("ledger_connected", url=url)
        return client

    async def close(self) -> None:
        """Release the provider's HTTP sessions."""
        await self.w3.provider.disconnect()

    async def _rpc(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except TRANSIENT_ERRORS as e:
            raise RPCError(operation, str(e) or type(e).__name__, transient=True) from e
        except (Web3Exception, ValueError) as e:
            raise RPCError(operation, str(e), transient=False) from e

    async def network_id(self) -> int:
        return int(await self._rpc("net_version", self.w3.net.version))

    async def chain_id(self) -> int:
        return await self._rpc("eth_chainId", self.w3.eth.chain_id)

    async def balance_at(self, address: str) -> int:
        return await self._rpc("eth_getBalance", self.w3.eth.get_balance(address))

    async def pending_nonce_at(self, address: str) -> int:
        return await self._rpc(
            "eth_getTransactionCount",
            self.w3.eth.get_transaction_count(address, "pending"),
        )

    async def storage_at(self, address: str, slot: int) -> bytes:
        value = await self._rpc(
            "eth_getStorageAt",
            self.w3.eth.get_storage_at(Web3.to_checksum_address(address), slot),
        )
        return bytes(value)

    async def header_by_number(self, number: Optional[int] = None) -> RawHeader:
        """Header at number, or the latest header when number is None."""
        block_id = "latest" if number is None else number
        block = await self._rpc("eth_getBlockByNumber", self.w3.eth.get_block(block_id))
        return RawHeader.from_block(block)

    async def gas_price(self) -> int:
        return await self._rpc("eth_gasPrice", self.w3.eth.gas_price)

    async def registration_events(self, chain_id: int) -> list[RegistrationEvent]:
        """RegisterWrkChain events for chain_id, from genesis to latest."""
        logs = await self._rpc(
            "eth_getLogs",
            self.root.events.RegisterWrkChain.get_logs(
                argument_filters={"chainId": chain_id},
                from_block=0,
                to_block="latest",
            ),
        )
        return [
            RegistrationEvent(
                chain_id=log["args"]["chainId"],
                genesis_hash=bytes(log["args"]["genesisHash"]),
                tx_hash=Web3.to_hex(log["transactionHash"]),
            )
            for log in logs
        ]

    async def build_contract_tx(
        self, fn_name: str, args: list[Any], params: dict[str, Any]
    ) -> dict[str, Any]:
        """Unsigned WRKChain Root call with fully specified tx params."""
        fn = getattr(self.root.functions, fn_name)(*args)
        return await self._rpc(f"build {fn_name}", fn.build_transaction(params))

    async def send_raw_transaction(self, raw: bytes) -> str:
        try:
            tx_hash = await self.w3.eth.send_raw_transaction(raw)
        except TRANSIENT_ERRORS as e:
            raise SubmissionError("raw", str(e) or type(e).__name__, ambiguous=True) from e
        except (Web3Exception, ValueError) as e:
            raise SubmissionError("raw", str(e)) from e
        return Web3.to_hex(tx_hash)


class MockLedgerClient:
    """
    In-memory ledger for tests and dry runs.

    Sent transactions are accepted but never mined: the pending nonce only
    moves when a test sets it, which is what an unconfirmed send looks like.
    A registerWrkChain send appends the matching RegisterWrkChain event.
    reply_error is raised after a send has been accepted, like a node that
    takes the transaction but times out before answering.
    """

    def __init__(self, network: int = 50005, chain: int = 50005) -> None:
        self.network = network
        self.chain = chain
        self.balances: dict[str, int] = {}
        self.pending_nonces: dict[str, int] = {}
        self.storage: dict[tuple[str, int], bytes] = {}
        self.headers: list[RawHeader] = []
        self.events: list[RegistrationEvent] = []
        self.sent: list[dict[str, Any]] = []
        self.send_error: Optional[Exception] = None
        self.reply_error: Optional[Exception] = None
        self.query_errors: deque[Exception] = deque()
        self.price = 1_000_000_000
        self._built: deque[tuple[str, list[Any], dict[str, Any]]] = deque()
        self.closed = False

    def _key(self, address: str) -> str:
        return Web3.to_checksum_address(address)

    def _maybe_fail(self) -> None:
        if self.query_errors:
            raise self.query_errors.popleft()

    def add_header(self, header: RawHeader) -> None:
        self.headers.append(header)

    async def close(self) -> None:
        self.closed = True

    async def network_id(self) -> int:
        self._maybe_fail()
        return self.network

    async def chain_id(self) -> int:
        return self.chain

    async def balance_at(self, address: str) -> int:
        self._maybe_fail()
        return self.balances.get(self._key(address), 0)

    async def pending_nonce_at(self, address: str) -> int:
        self._maybe_fail()
        return self.pending_nonces.get(self._key(address), 0)

    async def storage_at(self, address: str, slot: int) -> bytes:
        self._maybe_fail()
        return self.storage.get((self._key(address), slot), b"\x00" * 32)

    async def header_by_number(self, number: Optional[int] = None) -> RawHeader:
        self._maybe_fail()
        if not self.headers:
            raise RPCError("eth_getBlockByNumber", "no blocks")
        if number is None:
            return self.headers[-1]
        for header in self.headers:
            if header.height == number:
                return header
        raise RPCError("eth_getBlockByNumber", f"block {number} not found")

    async def gas_price(self) -> int:
        return self.price

    async def registration_events(self, chain_id: int) -> list[RegistrationEvent]:
        self._maybe_fail()
        return [e for e in self.events if e.chain_id == chain_id]

    async def build_contract_tx(
        self, fn_name: str, args: list[Any], params: dict[str, Any]
    ) -> dict[str, Any]:
        self._built.append((fn_name, list(args), dict(params)))
        tx = {k: v for k, v in params.items() if k != "from"}
        tx["to"] = Web3.to_checksum_address(WRKCHAIN_ROOT_CONTRACT_ADDRESS)
        tx["data"] = Web3.to_hex(Web3.keccak(text=fn_name)[:4])
        return tx

    async def send_raw_transaction(self, raw: bytes) -> str:
        fn_name, args, params = self._built.popleft()
        if self.send_error is not None:
            raise self.send_error

        tx_hash = Web3.to_hex(Web3.keccak(raw))
        self.sent.append(
            {
                "fn": fn_name,
                "args": args,
                "nonce": params["nonce"],
                "value": params.get("value", 0),
                "gas": params.get("gas"),
                "tx_hash": tx_hash,
            }
        )
        if fn_name == "registerWrkChain":
            self.events.append(
                RegistrationEvent(chain_id=args[0], genesis_hash=args[2], tx_hash=tx_hash)
            )
        if self.reply_error is not None:
            raise self.reply_error
        return tx_hash
