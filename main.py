"""
holder-tiers - main entry point

Loads configuration, wires the engine, starts the daily batch scheduler and
serves the admin API.

Usage:
    python main.py              # Start the service
"""

import os
import re
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class _SecretMaskingFilter(logging.Filter):
    """Redact configured secrets (bot token, admin token) from all log output."""

    def __init__(self, secrets: list[str]):
        super().__init__()
        self._pattern = re.compile("|".join(re.escape(s) for s in secrets)) if secrets else None

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if self._pattern is None:
            return True
        formatted = record.getMessage()
        if self._pattern.search(formatted):
            record.msg = self._pattern.sub("[REDACTED]", formatted)
            record.args = None
        return True


logger = logging.getLogger("tiers.main")


# ============================================================
# MODULE IMPORTS
# ============================================================

from core.address_book import JsonAddressBook
from core.config import Settings
from core.driver import ReconciliationDriver
from core.oracle import BalanceOracle
from core.reconciler import RoleReconciler
from core.rpc import RpcClient
from core.scheduler import BatchScheduler, DailySchedule
from guild.discord_rest import DiscordGuild
from api.server import create_app


# ============================================================
# WIRING
# ============================================================

settings = Settings.from_env()

_mask_filter = _SecretMaskingFilter(settings.secrets())
for _h in logging.root.handlers:
    _h.addFilter(_mask_filter)

Path(settings.address_book_path).parent.mkdir(parents=True, exist_ok=True)

rpc = RpcClient(settings.rpc_url, timeout_seconds=settings.rpc_timeout_seconds)
oracle = BalanceOracle(rpc, settings.token_contract)
guild = DiscordGuild(settings.discord_token, settings.discord_guild_id)
address_book = JsonAddressBook(settings.address_book_path)
reconciler = RoleReconciler(settings.ladder, role_color=settings.role_color)
driver = ReconciliationDriver(
    oracle=oracle,
    ladder=settings.ladder,
    reconciler=reconciler,
    address_book=address_book,
    roles=guild,
    members=guild,
    pipeline_timeout=settings.pipeline_timeout_seconds,
    batch_concurrency=settings.batch_concurrency,
)
scheduler = BatchScheduler(driver, DailySchedule(settings.schedule_time, settings.schedule_tz))


@asynccontextmanager
async def lifespan(app):
    """Startup: start the daily scheduler. Shutdown: stop it, close HTTP sessions."""
    scheduler.start()
    logger.info(f"RPC: {settings.rpc_url} | token: {settings.token_contract}")
    logger.info(f"Tiers: {[r.label for r in settings.ladder]}")
    logger.info(
        f"Daily batch at {settings.schedule_time.strftime('%H:%M')} {settings.schedule_tz} "
        f"| {len(address_book)} registered holders"
    )

    yield

    logger.info("Shutting down...")
    await scheduler.stop()
    await rpc.close()
    await guild.close()
    logger.info("Goodbye.")


def create_tiers_app():
    """Create the fully wired FastAPI app."""
    app = create_app(
        driver=driver,
        address_book=address_book,
        members=guild,
        admin_token=settings.admin_token,
    )
    app.router.lifespan_context = lifespan
    return app


# ============================================================
# ENTRY POINT
# ============================================================

app = create_tiers_app()

if __name__ == "__main__":
    reload = os.getenv("DEV", "").lower() in ("1", "true", "yes")
    logger.info(f"Starting server on {settings.host}:{settings.port} (reload={reload})")

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=LOG_LEVEL.lower(),
    )
