"""
Reconciliation Driver - balance -> tier -> role, per identity

Two entry points:
- check(text)    on-demand: resolve a member reference, reconcile, and
                 return ONE human-readable report. Never raises.
- run_batch()    scheduled: every registered holder, one at a time (or
                 bounded fan-out). One holder failing never stops the rest.

This is the only layer that terminally handles errors. Everything below
wraps and re-raises with context.

Each per-identity pipeline runs under a caller-imposed deadline. Hitting it
raises PipelineTimeoutError, which is distinct from a TransportError raised by
the RPC client's own HTTP timeout.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from .address_book import AddressBook
from .errors import HolderNotRegisteredError, PipelineTimeoutError, TierBotError
from .identity import MemberDirectory, resolve_identity
from .oracle import BalanceOracle, TokenBalance
from .reconciler import ReconcileResult, RoleDirectory, RoleReconciler
from .tiers import TierLadder, resolve_tier

logger = logging.getLogger("tiers.driver")

DEFAULT_PIPELINE_TIMEOUT_SECONDS = 60.0

MSG_NOT_FOUND = (
    "The specified user was not found. "
    "Please use a correct username#Discriminator, mention, or user ID."
)
MSG_NOT_REGISTERED = "The specified user's wallet address was not found."


@dataclass
class TierOutcome:
    """Successful reconciliation of one identity."""
    identity: str
    address: str
    snapshot: TokenBalance
    label: str
    result: ReconcileResult

    def to_dict(self) -> dict:
        return {
            "identity": self.identity,
            "address": self.address,
            "balance": str(self.snapshot.balance),
            "symbol": self.snapshot.symbol,
            "label": self.label,
            "roles_removed": list(self.result.removed),
            "role_added": self.result.added,
            "role_created": self.result.created,
        }


@dataclass
class CheckReport:
    """On-demand result: either an outcome or a single failure message."""
    ok: bool
    message: str
    identity: Optional[str] = None
    outcome: Optional[TierOutcome] = None
    error_type: str = ""


@dataclass
class HolderFailure:
    identity: str
    error_type: str
    error: str
    retryable: bool


@dataclass
class BatchReport:
    started_at: float
    finished_at: float = 0.0
    succeeded: list[TierOutcome] = field(default_factory=list)
    failed: list[HolderFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def summary(self) -> dict:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "total": self.total,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "failures": [
                {"identity": f.identity, "error_type": f.error_type,
                 "error": f.error, "retryable": f.retryable}
                for f in self.failed
            ],
        }


def describe_failure(error: Exception) -> str:
    """One-line, user-facing description of a pipeline failure."""
    if isinstance(error, HolderNotRegisteredError):
        return MSG_NOT_REGISTERED
    if isinstance(error, PipelineTimeoutError):
        return f"Balance check timed out after {error.timeout_seconds:g}s. Please try again later."
    if isinstance(error, TierBotError):
        return f"An error occurred while retrieving the token balance: {error}"
    return "An unexpected error occurred while checking the balance."


class ReconciliationDriver:
    """
    Orchestrates BalanceOracle -> resolve_tier -> RoleReconciler.

    Usage:
        driver = ReconciliationDriver(oracle, ladder, reconciler, book, guild, guild)
        report = await driver.check("<@1234>")
        batch = await driver.run_batch()
    """

    def __init__(self, oracle: BalanceOracle, ladder: TierLadder, reconciler: RoleReconciler,
                 address_book: AddressBook, roles: RoleDirectory, members: MemberDirectory,
                 pipeline_timeout: float = DEFAULT_PIPELINE_TIMEOUT_SECONDS,
                 batch_concurrency: int = 1):
        self.oracle = oracle
        self.ladder = ladder
        self.reconciler = reconciler
        self.address_book = address_book
        self.roles = roles
        self.members = members
        self.pipeline_timeout = pipeline_timeout
        self.batch_concurrency = max(1, int(batch_concurrency))

        self._batch_running: bool = False
        self.last_batch: Optional[BatchReport] = None

    @property
    def batch_running(self) -> bool:
        return self._batch_running

    # ============================================================
    # PIPELINE
    # ============================================================

    async def _pipeline(self, identity: str) -> TierOutcome:
        holder = self.address_book.get(identity)
        if holder is None:
            raise HolderNotRegisteredError(identity)

        logger.info(f"Fetching token balance for wallet address: {holder.address}")
        snapshot = await self.oracle.get_balance(holder.address)
        label = resolve_tier(snapshot.balance, self.ladder)
        logger.info(
            f"Fetched balance: {snapshot.balance} {snapshot.symbol} for {identity} -> {label}"
        )

        held, registry = await self.roles.member_roles(identity)
        result = await self.reconciler.reconcile(identity, held, label, registry, self.roles)
        return TierOutcome(
            identity=identity,
            address=holder.address,
            snapshot=snapshot,
            label=label,
            result=result,
        )

    async def reconcile_identity(self, identity: str) -> TierOutcome:
        """Run the full pipeline for one identity under the pipeline deadline."""
        try:
            return await asyncio.wait_for(self._pipeline(identity), timeout=self.pipeline_timeout)
        except asyncio.TimeoutError as e:
            raise PipelineTimeoutError(identity, self.pipeline_timeout) from e

    # ============================================================
    # ON-DEMAND
    # ============================================================

    async def check(self, text: str) -> CheckReport:
        """Resolve `text` to a member and reconcile it. Failures become a message."""
        try:
            identity = await resolve_identity(text, self.members)
        except Exception as e:
            logger.warning(f"Member lookup failed for input {text!r}: {e}")
            return CheckReport(ok=False, message=describe_failure(e), error_type=type(e).__name__)

        if identity is None:
            logger.info(f"User not found for input: {text}")
            return CheckReport(ok=False, message=MSG_NOT_FOUND, error_type="NotFound")

        logger.info(f"Fetching balance for User ID: {identity}")
        try:
            outcome = await self.reconcile_identity(identity)
        except Exception as e:
            if isinstance(e, TierBotError):
                logger.warning(f"Balance check failed for {identity}: {e}")
            else:
                logger.error(f"Balance check crashed for {identity}: {e}", exc_info=True)
            return CheckReport(
                ok=False,
                message=describe_failure(e),
                identity=identity,
                error_type=type(e).__name__,
            )

        message = (
            f"<@{identity}> has been assigned the role {outcome.label}. "
            f"Balance: {outcome.snapshot.balance} {outcome.snapshot.symbol}"
        )
        return CheckReport(ok=True, message=message, identity=identity, outcome=outcome)

    # ============================================================
    # BATCH
    # ============================================================

    async def _reconcile_into(self, identity: str, report: BatchReport) -> None:
        try:
            outcome = await self.reconcile_identity(identity)
        except Exception as e:
            if isinstance(e, TierBotError):
                logger.warning(f"Batch: {identity} failed: {type(e).__name__}: {e}")
            else:
                logger.error(f"Batch: {identity} crashed: {e}", exc_info=True)
            report.failed.append(HolderFailure(
                identity=identity,
                error_type=type(e).__name__,
                error=str(e),
                retryable=getattr(e, "retryable", False),
            ))
            return
        report.succeeded.append(outcome)

    async def run_batch(self) -> Optional[BatchReport]:
        """
        Reconcile every registered holder.
        Returns None without doing anything if a batch is already running.
        """
        if self._batch_running:
            logger.warning("Batch: previous run still in progress, skipping")
            return None

        self._batch_running = True
        report = BatchReport(started_at=time.time())
        try:
            identities = [h.identity for h in self.address_book.holders()]
            logger.info(f"Batch: reconciling {len(identities)} holders "
                        f"(concurrency={self.batch_concurrency})")

            if self.batch_concurrency == 1:
                for identity in identities:
                    await self._reconcile_into(identity, report)
            else:
                sem = asyncio.Semaphore(self.batch_concurrency)

                async def _bounded(identity: str):
                    async with sem:
                        await self._reconcile_into(identity, report)

                await asyncio.gather(*(_bounded(i) for i in identities))
        finally:
            self._batch_running = False
            report.finished_at = time.time()
            self.last_batch = report

        logger.info(
            f"Batch done: {len(report.succeeded)} ok, {len(report.failed)} failed "
            f"in {report.finished_at - report.started_at:.1f}s"
        )
        return report
