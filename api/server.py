"""
Holder Tiers API Server - FastAPI admin surface

Endpoints:
- POST /register        Link a member to a wallet address (upsert)
- POST /checkbalance    On-demand balance check + tier role sync for one member
- POST /reconcile       Run one batch reconciliation over all registered holders
- GET  /tiers           Tier ladder table
- GET  /health          Liveness + last batch summary

Mutating routes need `Authorization: Bearer <ADMIN_TOKEN>`.
Member references accept a mention (<@id>), a numeric id, or name[#discriminator].
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from core.abi import display_address, is_valid_address
from core.errors import TierBotError
from core.identity import clean_input, resolve_identity

logger = logging.getLogger("tiers.api")


# ============================================================
# MODELS
# ============================================================

class RegisterRequest(BaseModel):
    member: str = Field(..., max_length=200)
    wallet_address: str = Field(..., max_length=100)


class RegisterResponse(BaseModel):
    identity: str
    wallet_address: str
    message: str


class CheckRequest(BaseModel):
    member: str = Field(..., max_length=200)


class CheckResponse(BaseModel):
    ok: bool
    message: str
    identity: Optional[str] = None
    address: Optional[str] = None
    label: Optional[str] = None
    balance: Optional[str] = None
    symbol: Optional[str] = None
    roles_removed: list[str] = []
    role_added: Optional[str] = None
    role_created: bool = False
    error_type: str = ""


def create_app(driver, address_book, members, admin_token: str = "") -> FastAPI:
    """
    Create the FastAPI app wired to the reconciliation engine.

    driver:       ReconciliationDriver
    address_book: AddressBook
    members:      MemberDirectory used to resolve member references
    """
    app = FastAPI(
        title="holder-tiers",
        description="Token-balance tier roles for community members.",
        version="0.1.0",
    )

    def require_admin(authorization: str = Header(default="")):
        if not admin_token:
            raise HTTPException(503, "Admin token not configured")
        scheme, _, supplied = authorization.partition(" ")
        if scheme.lower() != "bearer" or not hmac.compare_digest(supplied.strip(), admin_token):
            raise HTTPException(401, "You do not have permission to execute this command.")

    # ============================================================
    # ROUTES
    # ============================================================

    @app.post("/register", response_model=RegisterResponse, dependencies=[Depends(require_admin)])
    async def register(req: RegisterRequest):
        """Register (or replace) the wallet address of a member."""
        member_input = clean_input(req.member)
        wallet = clean_input(req.wallet_address)

        try:
            identity = await resolve_identity(member_input, members)
        except TierBotError as e:
            logger.error(f"Member lookup failed for {member_input!r}: {e}")
            raise HTTPException(502, "Member lookup failed. Please try again later.")
        if not identity:
            logger.info(f"User not found for input: {member_input}")
            raise HTTPException(
                404,
                "The specified user was not found. Please use a correct "
                "username#Discriminator, mention, or user ID.",
            )

        if not is_valid_address(wallet):
            logger.info(f"Invalid wallet address provided: {wallet}")
            raise HTTPException(400, "Invalid wallet address.")

        try:
            holder = address_book.upsert(identity, wallet)
        except OSError as e:
            logger.error(f"Address book write failed: {e}")
            raise HTTPException(500, "A database error occurred.")

        return RegisterResponse(
            identity=holder.identity,
            wallet_address=display_address(holder.address),
            message=f"Wallet address for user <@{holder.identity}> has been registered.",
        )

    @app.post("/checkbalance", response_model=CheckResponse, dependencies=[Depends(require_admin)])
    async def check_balance(req: CheckRequest):
        """Check one member's balance and sync their tier role."""
        report = await driver.check(req.member)
        fields = {
            "ok": report.ok,
            "message": report.message,
            "identity": report.identity,
            "error_type": report.error_type,
        }
        if report.outcome is not None:
            fields.update(report.outcome.to_dict())
        return CheckResponse(**fields)

    @app.post("/reconcile", dependencies=[Depends(require_admin)])
    async def reconcile_all():
        """Run one batch reconciliation now."""
        report = await driver.run_batch()
        if report is None:
            raise HTTPException(409, "A batch reconciliation is already running.")
        return report.summary()

    @app.get("/tiers")
    async def tiers():
        return {"tiers": driver.ladder.to_table()}

    @app.get("/health")
    async def health():
        last = driver.last_batch
        return {
            "alive": True,
            "registered_holders": len(address_book.holders()),
            "batch_running": driver.batch_running,
            "last_batch": last.summary() if last else None,
        }

    return app
