"""
Role Reconciler - keep exactly one ladder role on an identity

Given the roles an identity holds right now and the freshly resolved tier,
computes and applies the minimal change:

  remove:  held ∩ ladder labels \\ {target}
  create:  target role, only if the guild has no role with that exact name
  add:     target role, only if not already held

Not transactional: a failure partway (say after a remove, before the add)
leaves the identity in an intermediate state. The driver treats the whole
reconciliation as failed and the next cycle converges it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from .errors import RoleSyncError, TierBotError
from .tiers import TierLadder

logger = logging.getLogger("tiers.reconciler")

DEFAULT_ROLE_COLOR = 0x3498DB   # blue


@dataclass(frozen=True)
class Role:
    """A role as known to the guild: opaque id + display name."""
    id: str
    name: str


# ============================================================
# ROLE DIRECTORY - collaborator contract
# ============================================================

class RoleDirectory(ABC):
    """
    Role membership API of the chat platform.

    The reconciler only needs these five operations; the concrete
    implementation (guild/discord_rest.py) owns session and rate limits.
    """

    @abstractmethod
    async def list_roles(self) -> list[Role]:
        """All roles defined on the guild."""
        ...

    @abstractmethod
    async def member_role_ids(self, identity: str) -> list[str]:
        """Ids of the roles the identity currently holds."""
        ...

    @abstractmethod
    async def create_role(self, name: str, color: int = DEFAULT_ROLE_COLOR,
                          reason: str = "") -> Role:
        ...

    @abstractmethod
    async def add_member_role(self, identity: str, role_id: str, reason: str = "") -> None:
        ...

    @abstractmethod
    async def remove_member_role(self, identity: str, role_id: str, reason: str = "") -> None:
        ...

    async def member_roles(self, identity: str) -> tuple[list[Role], list[Role]]:
        """(roles held by identity, full role registry) in one round of lookups."""
        registry = await self.list_roles()
        held_ids = set(await self.member_role_ids(identity))
        held = [r for r in registry if r.id in held_ids]
        return held, registry


@dataclass
class ReconcileResult:
    """What one reconciliation actually changed."""
    identity: str
    target_label: str
    removed: list[str] = field(default_factory=list)
    added: Optional[str] = None
    created: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.removed) or self.added is not None


class RoleReconciler:
    """
    Applies the exactly-one-tier invariant for one identity.

    Usage:
        reconciler = RoleReconciler(DEFAULT_LADDER)
        held, registry = await guild.member_roles(user_id)
        result = await reconciler.reconcile(user_id, held, "zklShark 🦈", registry, guild)
    """

    def __init__(self, ladder: TierLadder, role_color: int = DEFAULT_ROLE_COLOR):
        self.ladder = ladder
        self.role_color = role_color

    def plan_removals(self, current_roles: list[Role], target_label: str) -> list[Role]:
        return [
            r for r in current_roles
            if r.name in self.ladder.labels and r.name != target_label
        ]

    async def reconcile(self, identity: str, current_roles: list[Role], target_label: str,
                        role_registry: list[Role], directory: RoleDirectory) -> ReconcileResult:
        if target_label not in self.ladder.labels:
            raise ValueError(f"{target_label!r} is not a ladder label")

        result = ReconcileResult(identity=identity, target_label=target_label)

        for role in self.plan_removals(current_roles, target_label):
            try:
                await directory.remove_member_role(
                    identity, role.id, reason=f"Tier changed to {target_label}"
                )
            except TierBotError as e:
                raise RoleSyncError("remove", role.name, e) from e
            result.removed.append(role.name)
            logger.info(f"Removed role {role.name} from {identity}")

        if any(r.name == target_label for r in current_roles):
            return result

        target = next((r for r in role_registry if r.name == target_label), None)
        if target is None:
            logger.info(f"Role {target_label} does not exist. Creating new role.")
            try:
                target = await directory.create_role(
                    target_label,
                    color=self.role_color,
                    reason=f"Automatically created role {target_label}",
                )
            except TierBotError as e:
                raise RoleSyncError("create", target_label, e) from e
            result.created = True

        try:
            await directory.add_member_role(identity, target.id, reason="Token balance tier")
        except TierBotError as e:
            raise RoleSyncError("add", target_label, e) from e
        result.added = target_label
        logger.info(f"Assigned role {target_label} to {identity}")
        return result
