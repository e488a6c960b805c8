"""
Balance Oracle - token balance of one holder, normalized to whole tokens

Three dependent reads against the same token contract:
  1. balanceOf(holder)  -> raw integer balance
  2. decimals()         -> integer scale
  3. symbol()           -> display symbol

Known relaxation: each call targets "latest" independently, so the three
reads are not pinned to one block. decimals/symbol are contract constants,
so this only matters for the balance read itself.
"""

import logging
from dataclasses import dataclass

from .abi import (
    BALANCE_OF_SIGNATURE,
    DECIMALS_SIGNATURE,
    SYMBOL_SIGNATURE,
    encode_call,
    normalize_address,
    to_integer,
    to_text,
)
from .errors import BalanceQueryError, DecodeError, TierBotError

logger = logging.getLogger("tiers.oracle")

# ERC-20 declares decimals() as uint8
MAX_DECIMALS = 255


@dataclass(frozen=True)
class TokenBalance:
    """Point-in-time balance snapshot for one holder."""
    holder: str
    token: str
    raw_balance: int
    decimals: int
    symbol: str
    balance: int          # raw_balance // 10**decimals, truncated


def normalize_balance(raw_balance: int, decimals: int) -> int:
    """
    Whole-token balance using exact integer division.

    normalize_balance(123456789012345678901234567890, 18) == 123456789012
    """
    if raw_balance < 0 or decimals < 0:
        raise ValueError("balance and decimals must be non-negative")
    return raw_balance // (10 ** decimals)


class BalanceOracle:
    """
    Reads a holder's balance of one ERC-20 token through an RpcClient.

    Usage:
        oracle = BalanceOracle(rpc, "0xC967...")
        snap = await oracle.get_balance("0xHolder...")
        print(snap.balance, snap.symbol)
    """

    def __init__(self, rpc, token_contract: str):
        self.rpc = rpc
        self.token_contract = normalize_address(token_contract)

    async def _read(self, sub_call: str, signature: str, *args) -> str:
        try:
            data = encode_call(signature, *args)
            return await self.rpc.call(self.token_contract, data)
        except TierBotError as e:
            raise BalanceQueryError(sub_call, e) from e

    async def get_balance(self, holder: str) -> TokenBalance:
        """Query balance, decimals and symbol; first failure aborts the query."""
        raw_hex = await self._read("balance", BALANCE_OF_SIGNATURE, holder)
        try:
            raw_balance = to_integer(raw_hex)
        except TierBotError as e:
            raise BalanceQueryError("balance", e) from e

        decimals_hex = await self._read("decimals", DECIMALS_SIGNATURE)
        try:
            decimals = to_integer(decimals_hex)
            if decimals > MAX_DECIMALS:
                raise DecodeError(f"decimals {decimals} exceeds uint8 range")
        except TierBotError as e:
            raise BalanceQueryError("decimals", e) from e

        symbol_hex = await self._read("symbol", SYMBOL_SIGNATURE)
        symbol = to_text(symbol_hex)

        balance = normalize_balance(raw_balance, decimals)
        logger.debug(
            f"Balance {holder[:10]}... on {self.token_contract[:10]}...: "
            f"raw={raw_balance} decimals={decimals} -> {balance} {symbol}"
        )
        return TokenBalance(
            holder=normalize_address(holder),
            token=self.token_contract,
            raw_balance=raw_balance,
            decimals=decimals,
            symbol=symbol,
            balance=balance,
        )
