"""
Discord Guild Adapter - roles and members over the Discord REST API

Implements both collaborator contracts the engine consumes:
- RoleDirectory   (list / create roles, add / remove a member's role)
- MemberDirectory (fetch one member, list all members)

Only plain HTTPS calls with a bot token, no gateway connection. The bot needs
the Manage Roles permission and the Server Members intent for listing.

Rate limits: a 429 is waited out once (bounded by _MAX_RETRY_AFTER_SECONDS),
anything else non-2xx raises GuildApiError.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import quote

import aiohttp

from core.errors import GuildApiError
from core.identity import Member, MemberDirectory
from core.reconciler import DEFAULT_ROLE_COLOR, Role, RoleDirectory

logger = logging.getLogger("tiers.guild.discord")

_DISCORD_API_BASE = "https://discord.com/api/v10"
_MEMBER_PAGE_SIZE = 1000
_MAX_RETRY_AFTER_SECONDS = 10.0
# 400 is what Discord answers for an id that is not a valid snowflake
_MEMBER_MISSING_STATUSES = (400, 404)


def _member_from_payload(data: dict) -> Member:
    user = data.get("user", {})
    return Member(
        id=str(user.get("id", "")),
        username=user.get("username", ""),
        discriminator=str(user.get("discriminator", "0") or "0"),
        global_name=user.get("global_name") or data.get("nick"),
    )


class DiscordGuild(RoleDirectory, MemberDirectory):
    """
    One Discord guild, addressed by id.

    Usage:
        guild = DiscordGuild(os.getenv("DISCORD_TOKEN"), os.getenv("DISCORD_GUILD_ID"))
        roles = await guild.list_roles()
        await guild.close()
    """

    def __init__(self, token: str, guild_id: str, timeout_seconds: float = 15.0,
                 api_base: str = _DISCORD_API_BASE):
        self._token = token
        self.guild_id = str(guild_id)
        self.api_base = api_base.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

        if not token or not guild_id:
            logger.warning("Discord token or guild id not configured, role sync will fail")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bot {self._token}",
                    "User-Agent": "DiscordBot (holder-tiers, 0.1.0)",
                },
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, *, params: Optional[dict] = None,
                       json_body: Optional[dict] = None, reason: str = "",
                       missing_statuses: tuple = ()):
        session = await self._get_session()
        headers = {"X-Audit-Log-Reason": quote(reason)} if reason else {}
        url = f"{self.api_base}{path}"

        for attempt in range(2):
            try:
                async with session.request(method, url, params=params, json=json_body,
                                           headers=headers) as resp:
                    if resp.status == 429 and attempt == 0:
                        try:
                            data = await resp.json(content_type=None)
                            retry_after = float((data or {}).get("retry_after", 1.0))
                        except (ValueError, TypeError, AttributeError):
                            retry_after = 1.0
                        if retry_after <= _MAX_RETRY_AFTER_SECONDS:
                            logger.info(f"Discord rate limited on {method} {path}, waiting {retry_after:.2f}s")
                            await asyncio.sleep(retry_after)
                            continue
                    if resp.status in missing_statuses:
                        return None
                    if resp.status >= 400:
                        raise GuildApiError(resp.status, await resp.text())
                    if resp.status == 204:
                        return None
                    return await resp.json(content_type=None)
            except asyncio.TimeoutError as e:
                raise GuildApiError(0, f"timeout on {method} {path}") from e
            except aiohttp.ClientError as e:
                raise GuildApiError(0, f"{type(e).__name__}: {e}") from e

        raise GuildApiError(429, f"rate limited on {method} {path}")

    # ============================================================
    # MemberDirectory
    # ============================================================

    async def fetch_member(self, identity: str) -> Optional[Member]:
        data = await self._request(
            "GET", f"/guilds/{self.guild_id}/members/{identity}",
            missing_statuses=_MEMBER_MISSING_STATUSES,
        )
        return _member_from_payload(data) if data else None

    async def list_members(self) -> list[Member]:
        members: list[Member] = []
        after = "0"
        while True:
            page = await self._request(
                "GET", f"/guilds/{self.guild_id}/members",
                params={"limit": str(_MEMBER_PAGE_SIZE), "after": after},
            ) or []
            members.extend(_member_from_payload(m) for m in page)
            if len(page) < _MEMBER_PAGE_SIZE:
                break
            after = members[-1].id
        return members

    # ============================================================
    # RoleDirectory
    # ============================================================

    async def list_roles(self) -> list[Role]:
        data = await self._request("GET", f"/guilds/{self.guild_id}/roles") or []
        return [Role(id=str(r["id"]), name=r.get("name", "")) for r in data]

    async def member_role_ids(self, identity: str) -> list[str]:
        data = await self._request(
            "GET", f"/guilds/{self.guild_id}/members/{identity}", missing_statuses=(404,)
        )
        if data is None:
            raise GuildApiError(404, f"member {identity} is not on the guild")
        return [str(r) for r in data.get("roles", [])]

    async def create_role(self, name: str, color: int = DEFAULT_ROLE_COLOR,
                          reason: str = "") -> Role:
        data = await self._request(
            "POST", f"/guilds/{self.guild_id}/roles",
            json_body={"name": name, "color": color},
            reason=reason,
        )
        logger.info(f"Created role: {name}")
        return Role(id=str(data["id"]), name=data.get("name", name))

    async def add_member_role(self, identity: str, role_id: str, reason: str = "") -> None:
        await self._request(
            "PUT", f"/guilds/{self.guild_id}/members/{identity}/roles/{role_id}", reason=reason
        )

    async def remove_member_role(self, identity: str, role_id: str, reason: str = "") -> None:
        await self._request(
            "DELETE", f"/guilds/{self.guild_id}/members/{identity}/roles/{role_id}", reason=reason
        )
