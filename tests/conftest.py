"""
Shared fixtures and in-memory collaborators for the engine tests.
"""

import itertools
from typing import Optional

import pytest

from core.address_book import MemoryAddressBook
from core.errors import GuildApiError
from core.identity import Member, MemberDirectory
from core.reconciler import DEFAULT_ROLE_COLOR, Role, RoleDirectory

BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"
SYMBOL_SELECTOR = "0x95d89b41"

TOKEN = "0xC967dabf591B1f4B86CFc74996EAD065867aF19E"
HOLDER_1 = "0x1111111111111111111111111111111111111111"
HOLDER_2 = "0x2222222222222222222222222222222222222222"
HOLDER_3 = "0x3333333333333333333333333333333333333333"


def hex_word(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def abi_string(text: str) -> str:
    """ABI encoding of a dynamic `string` return value."""
    data = text.encode("utf-8")
    padded = data + b"\x00" * ((32 - len(data) % 32) % 32)
    return (
        "0x"
        + (32).to_bytes(32, "big").hex()
        + len(data).to_bytes(32, "big").hex()
        + padded.hex()
    )


class FakeRpc:
    """
    Stands in for RpcClient. Answers by selector, optionally per holder
    (the last 40 hex digits of a balanceOf call).
    """

    def __init__(self, decimals: int = 18, symbol: str = "ZKL"):
        self.balances: dict[str, object] = {}
        self.decimals: object = hex_word(decimals)
        self.symbol: object = abi_string(symbol)
        self.calls: list[tuple[str, str]] = []

    def set_balance(self, holder: str, whole_tokens: int, decimals: int = 18):
        self.balances[holder.lower()] = hex_word(whole_tokens * 10 ** decimals)

    def fail_balance(self, holder: str, error: Exception):
        self.balances[holder.lower()] = error

    async def call(self, contract_address: str, data: str) -> str:
        self.calls.append((contract_address, data))
        selector = data[:10]
        if selector == BALANCE_OF_SELECTOR:
            holder = "0x" + data[-40:]
            answer = self.balances.get(holder, hex_word(0))
        elif selector == DECIMALS_SELECTOR:
            answer = self.decimals
        elif selector == SYMBOL_SELECTOR:
            answer = self.symbol
        else:
            raise AssertionError(f"unexpected selector {selector}")
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeGuild(RoleDirectory, MemberDirectory):
    """In-memory guild: roles, members and who holds what."""

    def __init__(self):
        self._ids = itertools.count(1000)
        self.roles: dict[str, Role] = {}
        self.members: dict[str, Member] = {}
        self.holdings: dict[str, set[str]] = {}
        self.log: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}

    # helpers
    def add_member(self, identity: str, username: str, discriminator: str = "0",
                   global_name: Optional[str] = None) -> Member:
        member = Member(id=identity, username=username, discriminator=discriminator,
                        global_name=global_name)
        self.members[identity] = member
        self.holdings.setdefault(identity, set())
        return member

    def add_role(self, name: str) -> Role:
        role = Role(id=str(next(self._ids)), name=name)
        self.roles[role.id] = role
        return role

    def held_names(self, identity: str) -> set[str]:
        return {self.roles[rid].name for rid in self.holdings.get(identity, set())}

    def _maybe_fail(self, op: str):
        if op in self.fail_on:
            raise self.fail_on[op]

    # MemberDirectory
    async def fetch_member(self, identity: str) -> Optional[Member]:
        return self.members.get(identity)

    async def list_members(self) -> list[Member]:
        return list(self.members.values())

    # RoleDirectory
    async def list_roles(self) -> list[Role]:
        self._maybe_fail("list")
        return list(self.roles.values())

    async def member_role_ids(self, identity: str) -> list[str]:
        if identity not in self.members:
            raise GuildApiError(404, f"member {identity} is not on the guild")
        return list(self.holdings[identity])

    async def create_role(self, name: str, color: int = DEFAULT_ROLE_COLOR, reason: str = "") -> Role:
        self._maybe_fail("create")
        role = self.add_role(name)
        self.log.append(("create", name))
        return role

    async def add_member_role(self, identity: str, role_id: str, reason: str = "") -> None:
        self._maybe_fail("add")
        self.holdings[identity].add(role_id)
        self.log.append(("add", identity, self.roles[role_id].name))

    async def remove_member_role(self, identity: str, role_id: str, reason: str = "") -> None:
        self._maybe_fail("remove")
        self.holdings[identity].discard(role_id)
        self.log.append(("remove", identity, self.roles[role_id].name))


@pytest.fixture
def fake_rpc():
    return FakeRpc()


@pytest.fixture
def guild():
    return FakeGuild()


@pytest.fixture
def address_book():
    return MemoryAddressBook()
