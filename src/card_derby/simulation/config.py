"""Configuration schema for races and batch simulations using msgspec."""

from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path

import msgspec

from card_derby.core.state import RaceRules
from card_derby.payout import Bet

RuleValue = int | float | str | bool


def build_rules(overrides: dict[str, RuleValue]) -> RaceRules:
    """Applies house-rule overrides on top of the default rules; unknown keys are ignored."""
    rules = RaceRules()
    for k, v in overrides.items():
        if not hasattr(rules, k):
            continue
        value = int(v)
        if value < 0:
            msg = f"House rule {k} must not be negative, got {value}."
            raise ValueError(msg)
        setattr(rules, k, value)
    return rules


class RaceConfig(msgspec.Struct, frozen=True):
    """
    Immutable representation of a single race setup.
    Serves as both the execution config and the deduplication key.
    """

    seed: int
    bets: tuple[Bet, ...] = ()
    rules: dict[str, RuleValue] = msgspec.field(default_factory=dict)

    def _canonical(self) -> dict[str, object]:
        data: dict[str, object] = {
            "seed": self.seed,
            "bets": [msgspec.to_builtins(b) for b in self.bets],
        }
        if self.rules:
            data["rules"] = dict(sorted(self.rules.items()))
        return data

    def compute_hash(self) -> str:
        """Compute stable SHA-256 hash of this configuration."""
        canonical = json.dumps(self._canonical(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @property
    def encoded(self) -> str:
        """Shareable config string (Base64)."""
        canonical = json.dumps(
            self._canonical(),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return base64.urlsafe_b64encode(canonical.encode("utf-8")).decode("ascii")

    @classmethod
    def from_encoded(cls, encoded: str) -> RaceConfig:
        """Decode from shareable string."""
        return msgspec.json.decode(base64.urlsafe_b64decode(encoded), type=cls)

    @property
    def repr(self) -> str:
        """String representation for logging."""
        bettors = ", ".join(b.repr for b in self.bets) or "no bets"
        return f"Seed {self.seed} - {bettors} - {self.encoded}"


class PartialRaceConfig(msgspec.Struct):
    """
    Partial configuration for loading from TOML files.
    """

    seed: int | None = None
    bets: list[Bet] | None = None
    rules: dict[str, RuleValue] | None = None


class SimulationConfig(msgspec.Struct):
    """TOML-backed configuration for batch race simulations."""

    races: int = 1000
    seed_offset: int = 0
    # Safety cap, above the 47 cards a race can draw
    max_draws_per_race: int = 100
    bets: list[Bet] = msgspec.field(default_factory=list)
    rules: dict[str, RuleValue] = msgspec.field(default_factory=dict)

    @classmethod
    def from_toml(cls, path: str) -> SimulationConfig:
        """Load configuration from a TOML file path."""
        with Path(path).open("rb") as f:
            return msgspec.toml.decode(f.read(), type=cls)
