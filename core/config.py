"""
Runtime settings, read once from the environment (.env loaded by main.py).

Nothing here is module-level mutable state: main.py builds one Settings and
injects the endpoint, token and ladder into the components that need them.
"""

import os
from dataclasses import dataclass
from datetime import time as dtime
from typing import Mapping, Optional

from .abi import is_valid_address
from .errors import ConfigError
from .scheduler import parse_time_of_day
from .tiers import DEFAULT_LADDER, TierLadder

DEFAULT_RPC_URL = "https://rpc.zklink.io/"
DEFAULT_TOKEN_CONTRACT = "0xC967dabf591B1f4B86CFc74996EAD065867aF19E"   # ZKL


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


def _int(env: Mapping[str, str], key: str, default: int, base: int = 10) -> int:
    raw = env.get(key, "")
    if not raw.strip():
        return default
    try:
        return int(raw, base)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Immutable process configuration."""
    rpc_url: str = DEFAULT_RPC_URL
    token_contract: str = DEFAULT_TOKEN_CONTRACT
    rpc_timeout_seconds: float = 20.0
    pipeline_timeout_seconds: float = 60.0
    batch_concurrency: int = 1
    schedule_time: dtime = dtime(9, 0)
    schedule_tz: str = "Asia/Tokyo"
    ladder: TierLadder = DEFAULT_LADDER
    address_book_path: str = "data/address_book.json"
    discord_token: str = ""
    discord_guild_id: str = ""
    admin_token: str = ""
    role_color: int = 0x3498DB
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        token_contract = env.get("TOKEN_CONTRACT", "").strip() or DEFAULT_TOKEN_CONTRACT
        if not is_valid_address(token_contract):
            raise ConfigError(f"TOKEN_CONTRACT is not a valid address: {token_contract!r}")

        ladder_json = env.get("TIER_LADDER", "").strip()
        ladder = TierLadder.from_json(ladder_json) if ladder_json else DEFAULT_LADDER

        concurrency = _int(env, "BATCH_CONCURRENCY", 1)
        if concurrency < 1:
            raise ConfigError("BATCH_CONCURRENCY must be >= 1")

        role_color_raw = env.get("ROLE_COLOR", "").strip().lower()
        if role_color_raw.startswith("#"):
            role_color_raw = "0x" + role_color_raw[1:]
        role_color = _int({"ROLE_COLOR": role_color_raw}, "ROLE_COLOR", 0x3498DB, base=0)

        return cls(
            rpc_url=env.get("RPC_URL", "").strip() or DEFAULT_RPC_URL,
            token_contract=token_contract,
            rpc_timeout_seconds=_float(env, "RPC_TIMEOUT_SECONDS", 20.0),
            pipeline_timeout_seconds=_float(env, "PIPELINE_TIMEOUT_SECONDS", 60.0),
            batch_concurrency=concurrency,
            schedule_time=parse_time_of_day(env.get("SCHEDULE_TIME", "") or "09:00"),
            schedule_tz=env.get("SCHEDULE_TZ", "").strip() or "Asia/Tokyo",
            ladder=ladder,
            address_book_path=env.get("ADDRESS_BOOK_PATH", "").strip() or "data/address_book.json",
            discord_token=env.get("DISCORD_TOKEN", "").strip(),
            discord_guild_id=env.get("DISCORD_GUILD_ID", "").strip(),
            admin_token=env.get("ADMIN_TOKEN", "").strip(),
            role_color=role_color,
            host=env.get("HOST", "").strip() or "0.0.0.0",
            port=_int(env, "PORT", 8000),
        )

    def secrets(self) -> list[str]:
        """Values that must never appear in log output."""
        return [s for s in (self.discord_token, self.admin_token) if s]
