"""Tests for settings and the pool table loader."""

import json

import pytest

from pointledger.adapters.pools_json import load_pools, parse_pools
from pointledger.config import load_settings
from pointledger.domain.errors import ConfigError

from helpers import TOKEN_A, TOKEN_B


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    # keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)
    for name in ("RPC_URL", "START_BLOCK", "CONTRACTS", "CHUNK_SIZE", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("RPC_URL", "http://node.test:8545")

        s = load_settings()

        assert s.start_block == 0
        assert s.watched() == {"USD0++": TOKEN_A}
        policy = s.scan_policy()
        assert (policy.chunk_size, policy.poll_interval_s, policy.retry_delay_s) == (10_000, 13.0, 10.0)

    def test_contracts_from_env(self, monkeypatch):
        monkeypatch.setenv("RPC_URL", "http://node.test:8545")
        monkeypatch.setenv("START_BLOCK", "20000000")
        monkeypatch.setenv("CONTRACTS", json.dumps({"B": TOKEN_B.upper().replace("0X", "0x")}))

        s = load_settings()

        assert s.start_block == 20_000_000
        assert s.watched() == {"B": TOKEN_B}

    def test_missing_rpc_url(self):
        with pytest.raises(ConfigError):
            load_settings()

    def test_invalid_contract_address(self, monkeypatch):
        monkeypatch.setenv("RPC_URL", "http://node.test:8545")
        monkeypatch.setenv("CONTRACTS", json.dumps({"bad": "0x1234"}))

        with pytest.raises(ConfigError):
            load_settings()

    def test_negative_start_block(self, monkeypatch):
        monkeypatch.setenv("RPC_URL", "http://node.test:8545")
        monkeypatch.setenv("START_BLOCK", "-1")

        with pytest.raises(ConfigError):
            load_settings()


class TestPools:
    def test_parse_points_and_legacy_key(self):
        raw = json.dumps({"dataSources": [
            {"address": TOKEN_A.upper().replace("0X", "0x"), "name": "A", "pointsMultiplier": "2"},
            {"address": TOKEN_B, "name": "B", "pillsMultiplier": "3"},
        ]})

        pools = parse_pools(raw)

        assert pools[TOKEN_A].points_multiplier == 2
        assert pools[TOKEN_B].points_multiplier == 3
        assert pools[TOKEN_B].name == "B"

    def test_huge_multiplier(self):
        raw = json.dumps({"dataSources": [{"address": TOKEN_A, "name": "A", "pointsMultiplier": str(10**30)}]})

        assert parse_pools(raw)[TOKEN_A].points_multiplier == 10**30

    @pytest.mark.parametrize("multiplier", ["-1", "two", "1.5"])
    def test_invalid_multiplier(self, multiplier):
        raw = json.dumps({"dataSources": [{"address": TOKEN_A, "name": "A", "pointsMultiplier": multiplier}]})

        with pytest.raises(ConfigError):
            parse_pools(raw)

    def test_invalid_address(self):
        raw = json.dumps({"dataSources": [{"address": "0xnope", "name": "A", "pointsMultiplier": "1"}]})

        with pytest.raises(ConfigError):
            parse_pools(raw)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "pool.json"
        path.write_text(json.dumps({"dataSources": [{"address": TOKEN_A, "name": "A", "pointsMultiplier": "5"}]}))

        assert load_pools(str(path))[TOKEN_A].points_multiplier == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_pools(str(tmp_path / "absent.json"))
