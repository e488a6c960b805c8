"""
Tests for environment-driven settings.
"""

import math
from datetime import time as dtime

import pytest

from core.config import DEFAULT_RPC_URL, DEFAULT_TOKEN_CONTRACT, Settings
from core.errors import ConfigError
from core.tiers import DEFAULT_LADDER


class TestSettings:

    def test_defaults(self):
        s = Settings.from_env({})
        assert s.rpc_url == DEFAULT_RPC_URL
        assert s.token_contract == DEFAULT_TOKEN_CONTRACT
        assert s.ladder is DEFAULT_LADDER
        assert s.schedule_time == dtime(9, 0)
        assert s.schedule_tz == "Asia/Tokyo"
        assert s.batch_concurrency == 1
        assert s.role_color == 0x3498DB
        assert s.secrets() == []

    def test_overrides(self):
        s = Settings.from_env({
            "RPC_URL": "http://localhost:8545",
            "TOKEN_CONTRACT": "0x" + "ab" * 20,
            "RPC_TIMEOUT_SECONDS": "5",
            "SCHEDULE_TIME": "21:30",
            "SCHEDULE_TZ": "UTC",
            "BATCH_CONCURRENCY": "4",
            "ROLE_COLOR": "#ff0000",
            "TIER_LADDER": '[["Small", 10], ["Big", null]]',
            "DISCORD_TOKEN": "bot-token",
            "ADMIN_TOKEN": "admin-token",
            "PORT": "9000",
        })
        assert s.rpc_url == "http://localhost:8545"
        assert s.rpc_timeout_seconds == 5.0
        assert s.schedule_time == dtime(21, 30)
        assert s.batch_concurrency == 4
        assert s.role_color == 0xFF0000
        assert s.ladder.resolve(10) == "Big"
        assert s.ladder.rungs[-1].upper_bound == math.inf
        assert s.port == 9000
        assert s.secrets() == ["bot-token", "admin-token"]

    @pytest.mark.parametrize("env", [
        {"TOKEN_CONTRACT": "0xnope"},
        {"RPC_TIMEOUT_SECONDS": "fast"},
        {"RPC_TIMEOUT_SECONDS": "-1"},
        {"BATCH_CONCURRENCY": "0"},
        {"SCHEDULE_TIME": "noon"},
        {"TIER_LADDER": '[["Only", 100]]'},
        {"ROLE_COLOR": "blue"},
        {"PORT": "http"},
    ])
    def test_invalid(self, env):
        with pytest.raises(ConfigError):
            Settings.from_env(env)
