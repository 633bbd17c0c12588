from __future__ import annotations
import asyncio, httpx
from typing import Any
from loguru import logger
from ..domain.errors import ChainConnectionError, TransientRPCError
from ..domain.models import LogRecord
from ..domain.value_types import Address, Topic
from ..ports.rpc import ChainClient

CONNECT_ATTEMPTS = 3
CONNECT_RETRY_DELAY_S = 2.0

def _to_hex_block(n: int) -> str: return hex(int(n))
def _from_hex(x: Any) -> int: return int(x, 16) if isinstance(x, str) else int(x)

def _hex_to_bytes(s: str | None) -> bytes:
    if not s:
        return b""
    h = s[2:] if s[:2].lower() == "0x" else s
    if len(h) % 2: h = "0" + h
    return bytes.fromhex(h)

def _to_log_record(rl: dict[str, Any]) -> LogRecord:
    return LogRecord(
        address=Address(rl["address"].lower()),
        topics=tuple(Topic(t.lower()) for t in rl.get("topics", [])),
        data=_hex_to_bytes(rl.get("data")),
        block_number=_from_hex(rl["blockNumber"]),
        tx_hash=(rl.get("transactionHash") or "").lower(),
        log_index=_from_hex(rl["logIndex"]),
    )


class HttpxChainClient(ChainClient):
    def __init__(
        self,
        rpc_url: str,
        timeout_s: int = 20,
        max_conn: int = 16,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s
        self.max_conn = max_conn
        self.transport = transport
        self.client = self._new_client()

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(self.timeout_s),
            limits=httpx.Limits(max_connections=self.max_conn, max_keepalive_connections=max(1, self.max_conn//2)),
            transport=self.transport,
        )

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc":"2.0","id":1,"method":method,"params":params}
        try:
            r = await self.client.post(self.rpc_url, json=payload)
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransientRPCError(f"{method} failed: {type(e).__name__}: {e}") from e
        if "error" in data:
            err = data["error"]
            msg = err.get("message") if isinstance(err, dict) else str(err)
            code = err.get("code") if isinstance(err, dict) else None
            raise TransientRPCError(f"{method} RPC error code={code} message={msg}")
        if "result" not in data:
            raise TransientRPCError(f"{method} returned no result")
        return data["result"]

    async def latest_height(self) -> int:
        res = await self._call("eth_blockNumber", [])
        try:
            return _from_hex(res)
        except (TypeError, ValueError) as e:
            raise TransientRPCError(f"eth_blockNumber returned {res!r}") from e

    async def filter_logs(self, address: Address, from_block: int, to_block: int) -> list[LogRecord]:
        res = await self._call("eth_getLogs", [{
            "address": str(address).lower(),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
        }])
        try:
            return [_to_log_record(rl) for rl in res or []]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise TransientRPCError(f"eth_getLogs returned a malformed log: {e}") from e

    async def reconnect(self) -> None:
        # swap before closing: other scanners share this client
        old, self.client = self.client, self._new_client()
        await old.aclose()
        try:
            await _dial(self, CONNECT_ATTEMPTS, CONNECT_RETRY_DELAY_S)
        except ChainConnectionError as e:
            raise ChainConnectionError(f"failed to reconnect: {e}") from e

    async def aclose(self) -> None:
        await self.client.aclose()


async def _dial(client: HttpxChainClient, attempts: int, retry_delay_s: float) -> None:
    last: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            await client.latest_height()
            return
        except TransientRPCError as e:
            last = e
            logger.warning(f"RPC dial attempt {attempt}/{attempts} against {client.rpc_url} failed: {e}")
            if attempt < attempts:
                await asyncio.sleep(retry_delay_s)
    raise ChainConnectionError(f"failed to connect after {attempts} attempts: {last}")


async def connect(
    rpc_url: str,
    *,
    attempts: int = CONNECT_ATTEMPTS,
    retry_delay_s: float = CONNECT_RETRY_DELAY_S,
    timeout_s: int = 20,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpxChainClient:
    """Dial `rpc_url` and verify it answers eth_blockNumber; fatal after `attempts` tries."""
    client = HttpxChainClient(rpc_url, timeout_s=timeout_s, transport=transport)
    try:
        await _dial(client, attempts, retry_delay_s)
    except ChainConnectionError:
        await client.aclose()
        raise
    logger.info(f"Connected to RPC endpoint {rpc_url}")
    return client
