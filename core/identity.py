"""
Identity resolution - free-form member reference -> member id

Accepted forms, tried in order:
  <@123456> / <@!123456>   mention, id taken as-is
  123456                   bare id, must exist on the guild
  alice / alice#1234       case-insensitive username (+ discriminator) match

Anything ambiguous or unknown resolves to None. Never a guess.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("tiers.identity")

MENTION_RE = re.compile(r"<@!?(\d+)>")
NUMERIC_ID_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class Member:
    """Guild member as seen by the resolver."""
    id: str
    username: str
    discriminator: str = "0"
    global_name: Optional[str] = None

    @property
    def tag(self) -> str:
        if self.discriminator and self.discriminator != "0":
            return f"{self.username}#{self.discriminator}"
        return self.username


class MemberDirectory(ABC):
    """Membership listing of the chat platform."""

    @abstractmethod
    async def fetch_member(self, identity: str) -> Optional[Member]:
        """Member by id, or None if not on the guild."""
        ...

    @abstractmethod
    async def list_members(self) -> list[Member]:
        ...


def clean_input(text: str) -> str:
    """Strip whitespace and quote characters users paste around names."""
    return re.sub(r"['\"]", "", text or "").strip()


def _match_by_name(members: list[Member], text: str) -> Optional[str]:
    name, sep, discriminator = text.partition("#")
    name = name.lower()
    if not name or (sep and not discriminator):
        return None

    if sep:
        matches = [
            m for m in members
            if m.username.lower() == name and m.discriminator == discriminator
        ]
    else:
        matches = [m for m in members if m.username.lower() == name]
        if not matches:
            matches = [
                m for m in members
                if m.global_name and m.global_name.lower() == name
            ]

    if len(matches) == 1:
        return matches[0].id
    if len(matches) > 1:
        tags = ", ".join(m.tag for m in matches)
        logger.info(f"Ambiguous member reference {text!r}: {len(matches)} matches ({tags})")
    return None


async def resolve_identity(text: str, directory: MemberDirectory) -> Optional[str]:
    """Resolve a mention, id, or name to a member id; None when not found."""
    text = clean_input(text)
    if not text:
        return None

    m = MENTION_RE.fullmatch(text)
    if m:
        return m.group(1)

    if NUMERIC_ID_RE.fullmatch(text):
        member = await directory.fetch_member(text)
        return member.id if member else None

    members = await directory.list_members()
    return _match_by_name(members, text)
