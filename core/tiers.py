"""
Tier Ladder - balance-driven role selection

A ladder is an ordered table of (label, exclusive upper bound) rungs.
A balance belongs to the first rung whose bound is strictly greater than it,
so a balance sitting exactly on a bound belongs to the NEXT rung up.

    balance:   0 ... 4999 | 5000 ... 9999 | 10000 ... 49999 | ...
    tier:      Holder     | Dolphin       | Shark           | ...
"""

import json
import math
from dataclasses import dataclass
from typing import Final, Tuple, Union

from .errors import ConfigError

Number = Union[int, float]


@dataclass(frozen=True)
class TierRung:
    """One row of the ladder."""
    label: str
    upper_bound: Number      # exclusive; math.inf for the top rung


class TierLadder:
    """Validated, immutable ladder. Always total over non-negative balances."""

    def __init__(self, rungs):
        rungs = tuple(rungs)
        if not rungs:
            raise ConfigError("tier ladder must have at least one rung")

        labels = [r.label for r in rungs]
        if any(not isinstance(label, str) or not label.strip() for label in labels):
            raise ConfigError("tier labels must be non-empty strings")
        if len(set(labels)) != len(labels):
            raise ConfigError(f"tier labels must be unique: {labels}")

        for lower, upper in zip(rungs, rungs[1:]):
            if not upper.upper_bound > lower.upper_bound:
                raise ConfigError(
                    f"tier bounds must strictly increase: "
                    f"{lower.label}={lower.upper_bound} then {upper.label}={upper.upper_bound}"
                )
        if rungs[-1].upper_bound != math.inf:
            raise ConfigError(f"top tier {rungs[-1].label!r} must be unbounded")
        if rungs[0].upper_bound <= 0:
            raise ConfigError(f"lowest tier {rungs[0].label!r} bound must be positive")

        self.rungs: Tuple[TierRung, ...] = rungs
        self.labels: frozenset = frozenset(labels)

    def __iter__(self):
        return iter(self.rungs)

    def __len__(self) -> int:
        return len(self.rungs)

    def __repr__(self) -> str:
        return f"TierLadder({[(r.label, r.upper_bound) for r in self.rungs]})"

    def resolve(self, balance: Number) -> str:
        return resolve_tier(balance, self)

    def to_table(self) -> list[dict]:
        """Rows for display: lower bound inclusive, upper bound exclusive (None = unbounded)."""
        rows = []
        lower = 0
        for rung in self.rungs:
            upper = None if rung.upper_bound == math.inf else rung.upper_bound
            rows.append({"label": rung.label, "min_balance": lower, "max_balance_exclusive": upper})
            lower = upper
        return rows

    @classmethod
    def from_pairs(cls, pairs) -> "TierLadder":
        """Build from [(label, bound), ...]; a None bound means unbounded."""
        rungs = []
        for item in pairs:
            try:
                label, bound = item
            except (TypeError, ValueError) as e:
                raise ConfigError(f"tier entry must be a [label, bound] pair: {item!r}") from e
            if bound is None:
                bound = math.inf
            elif isinstance(bound, bool) or not isinstance(bound, (int, float)):
                raise ConfigError(f"tier bound for {label!r} must be a number or null")
            rungs.append(TierRung(label=label, upper_bound=bound))
        return cls(rungs)

    @classmethod
    def from_json(cls, text: str) -> "TierLadder":
        try:
            pairs = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"TIER_LADDER is not valid JSON: {e}") from e
        if not isinstance(pairs, list):
            raise ConfigError("TIER_LADDER must be a JSON list of [label, bound] pairs")
        return cls.from_pairs(pairs)


def resolve_tier(balance: Number, ladder: TierLadder) -> str:
    """Label of the first rung whose upper bound is strictly greater than `balance`."""
    if balance < 0:
        raise ValueError(f"balance must be non-negative, got {balance}")
    for rung in ladder.rungs:
        if balance < rung.upper_bound:
            return rung.label
    # Unreachable for a validated ladder (top bound is inf)
    raise ValueError(f"no tier for balance {balance}")


# Holder ladder for the community token
DEFAULT_LADDER: Final[TierLadder] = TierLadder((
    TierRung(label="zklHolder 🟢", upper_bound=5_000),
    TierRung(label="zklDolphin 🐬", upper_bound=10_000),
    TierRung(label="zklShark 🦈", upper_bound=50_000),
    TierRung(label="zklWhale 🐋", upper_bound=100_000),
    TierRung(label="zklHumpback 🐳", upper_bound=math.inf),
))
