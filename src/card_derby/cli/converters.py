from __future__ import annotations

import difflib

import cappa

from card_derby.core.types import MAX_DRINKS, MIN_DRINKS, SUIT_NAMES, SUITS, Suit
from card_derby.payout import Bet, clamp_drinks


def _normalize(s: str) -> str:
    """Normalize string: remove whitespace, dots, and convert to lowercase."""
    return s.strip().replace(" ", "").replace(".", "").lower()


SUIT_LOOKUP: dict[str, Suit] = {
    **{suit: suit for suit in SUITS},
    **{_normalize(name): suit for suit, name in SUIT_NAMES.items()},
    **{_normalize(name)[0]: suit for suit, name in SUIT_NAMES.items()},
}


def validate_suit(value: str) -> Suit:
    """
    Resolve a suit from its symbol, name or initial letter.
    Input "Hearts", "h" and "♥" all match "♥".
    """
    normalized_input = _normalize(value)
    if normalized_input in SUIT_LOOKUP:
        return SUIT_LOOKUP[normalized_input]

    matches = difflib.get_close_matches(normalized_input, list(SUIT_NAMES.values()), n=2, cutoff=0.5)
    msg = f"Suit '{value}' not found."
    if matches:
        msg += f" Did you mean: {', '.join(matches)}?"
    raise cappa.Exit(msg, code=1)


def parse_bets(values: list[str]) -> list[Bet]:
    """
    Parse bets given as NAME:SUIT[:DRINKS].
    Stakes outside the allowed range are clamped, like the bet picker does.
    """
    bets: list[Bet] = []
    for item in values:
        parts = item.split(":")
        if len(parts) not in (2, 3) or not parts[0].strip():
            msg = f"Invalid bet format '{item}'. Expected 'NAME:SUIT[:DRINKS]'."
            raise cappa.Exit(msg, code=1)

        name = parts[0].strip()
        suit = validate_suit(parts[1])
        drinks = MIN_DRINKS
        if len(parts) == 3:
            try:
                drinks = clamp_drinks(float(parts[2]))
            except (ValueError, OverflowError):
                msg = f"Invalid drink count '{parts[2]}' in bet '{item}' ({MIN_DRINKS}-{MAX_DRINKS})."
                raise cappa.Exit(msg, code=1)  # noqa: B904

        if any(b.name.lower() == name.lower() for b in bets):
            msg = f"Duplicate bettor '{name}'."
            raise cappa.Exit(msg, code=1)
        bets.append(Bet(name=name, suit=suit, drinks=drinks))
    return bets


def parse_house_rules(value: list[str]) -> dict[str, str | int | float]:
    """
    Parse a list of key=value strings into a dictionary.
    Supports basic type inference (int/float).
    """
    rules: dict[str, str | int | float] = {}
    for item in value:
        if "=" not in item:
            msg = f"Invalid house rule format '{item}'. Expected 'key=value'."
            raise cappa.Exit(
                msg,
                code=1,
            )

        k, v = item.split("=", 1)
        k = k.strip()
        v = v.strip()

        # Basic type inference
        if v.isdigit():
            rules[k] = int(v)
        else:
            try:
                rules[k] = float(v)
            except ValueError:
                rules[k] = v

    return rules
