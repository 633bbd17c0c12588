"""Tests for the httpx JSON-RPC chain client (no network: httpx.MockTransport)."""

import json

import httpx
import pytest

from pointledger.adapters.rpc_httpx import HttpxChainClient, connect
from pointledger.domain.decoding import TRANSFER_T0
from pointledger.domain.errors import ChainConnectionError, TransientRPCError

from helpers import ALICE, BOB, TOKEN_A, address_topic

RPC_URL = "http://node.test:8545"

RAW_LOG = {
    "address": "0x35D8949372D46B7a3D5A56006AE77B215fc69bC0",
    "topics": [TRANSFER_T0, address_topic(ALICE), address_topic(BOB)],
    "data": "0x" + f"{1000:064x}",
    "blockNumber": "0x96",
    "transactionHash": "0x" + "AB" * 32,
    "logIndex": "0x2",
}


class FakeNode:
    """JSON-RPC handler: answers eth_blockNumber / eth_getLogs, optionally failing first."""

    def __init__(self, height: int = 150, failures: int = 0, logs=None) -> None:
        self.height = height
        self.failures = failures
        self.logs = logs if logs is not None else [RAW_LOG]
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if self.failures:
            self.failures -= 1
            return httpx.Response(503, text="upstream unavailable")
        if body["method"] == "eth_blockNumber":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": hex(self.height)})
        if body["method"] == "eth_getLogs":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": self.logs})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "method not found"}})


def _client(handler) -> HttpxChainClient:
    return HttpxChainClient(RPC_URL, transport=httpx.MockTransport(handler))


class TestCalls:
    @pytest.mark.asyncio
    async def test_latest_height(self):
        client = _client(FakeNode(height=0x1234))
        try:
            assert await client.latest_height() == 0x1234
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_filter_logs_params_and_parsing(self):
        node = FakeNode()
        client = _client(node)
        try:
            logs = await client.filter_logs(TOKEN_A, 100, 150)
        finally:
            await client.aclose()

        assert node.requests[-1]["params"] == [{"address": TOKEN_A, "fromBlock": "0x64", "toBlock": "0x96"}]
        assert len(logs) == 1
        log = logs[0]
        assert log.address == TOKEN_A
        assert log.topics[0] == TRANSFER_T0
        assert log.data == (1000).to_bytes(32, "big")
        assert log.block_number == 150
        assert log.log_index == 2
        assert log.tx_hash == "0x" + "ab" * 32
        assert log.event_id == "150:2"

    @pytest.mark.asyncio
    async def test_http_error_is_transient(self):
        client = _client(FakeNode(failures=1))
        try:
            with pytest.raises(TransientRPCError):
                await client.latest_height()
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_rpc_error_is_transient(self):
        def handler(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "query returned more than 10000 results"}})

        client = _client(handler)
        try:
            with pytest.raises(TransientRPCError, match="10000 results"):
                await client.filter_logs(TOKEN_A, 0, 1_000_000)
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_malformed_log_is_transient(self):
        client = _client(FakeNode(logs=[{"topics": []}]))
        try:
            with pytest.raises(TransientRPCError):
                await client.filter_logs(TOKEN_A, 0, 10)
        finally:
            await client.aclose()


    @pytest.mark.asyncio
    @pytest.mark.parametrize("log_index", [None, "absent"])
    async def test_log_without_index_is_transient(self, log_index):
        raw = dict(RAW_LOG)
        if log_index == "absent":
            del raw["logIndex"]
        else:
            raw["logIndex"] = log_index
        client = _client(FakeNode(logs=[raw, dict(RAW_LOG)]))
        try:
            with pytest.raises(TransientRPCError, match="malformed"):
                await client.filter_logs(TOKEN_A, 0, 200)
        finally:
            await client.aclose()

class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_retries_until_node_answers(self):
        node = FakeNode(failures=2)
        client = await connect(RPC_URL, retry_delay_s=0, transport=httpx.MockTransport(node))
        try:
            assert len(node.requests) == 3
            assert await client.latest_height() == 150
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_connect_gives_up_after_three_attempts(self):
        node = FakeNode(failures=100)
        with pytest.raises(ChainConnectionError):
            await connect(RPC_URL, retry_delay_s=0, transport=httpx.MockTransport(node))
        assert len(node.requests) == 3

    @pytest.mark.asyncio
    async def test_reconnect_keeps_endpoint(self):
        node = FakeNode()
        client = _client(node)
        try:
            await client.reconnect()
            assert client.rpc_url == RPC_URL
            assert await client.latest_height() == 150
        finally:
            await client.aclose()
