from card_derby.core.cards import Card, parse_cards
from card_derby.core.events import (
    AdvanceEvent,
    RetreatEvent,
    RevealStageEvent,
    WinnerDeterminedEvent,
)
from card_derby.core.state import RaceState, starting_positions
from card_derby.engine.resolution import find_winner, resolve_draw

SIDE_STACK = parse_cards("♥2 ♦2 ♣2 ♠2 ♥3")


def make_state(positions=None, revealed_count=0, side_stack=SIDE_STACK, winner=None):
    return RaceState(
        positions={**starting_positions(), **(positions or {})},
        side_stack=list(side_stack),
        revealed_count=revealed_count,
        winner=winner,
        active=True,
    )


def test_single_advance_without_reveal():
    state = make_state()
    res = resolve_draw(state, Card("♥", "7"))

    assert res.events == [AdvanceEvent("♥")]
    assert res.positions == {"♥": 1, "♦": 0, "♣": 0, "♠": 0}
    assert res.revealed_count == 0
    assert res.winner is None


def test_resolution_does_not_mutate_the_state():
    state = make_state({"♥": 1, "♦": 1, "♣": 1})
    before = dict(state.positions)

    res = resolve_draw(state, Card("♠", "K"))

    assert state.positions == before
    assert state.revealed_count == 0
    assert res.positions["♠"] == 1


def test_stage_reveal_when_slowest_horse_passes_it():
    """All four horses reach 1: stage 0 reveals and its suit steps back."""
    state = make_state({"♥": 1, "♦": 1, "♣": 1})
    res = resolve_draw(state, Card("♠", "9"))

    assert res.events == [
        AdvanceEvent("♠"),
        RevealStageEvent(0, Card("♥", "2")),
        RetreatEvent("♥"),
    ]
    assert res.positions == {"♥": 0, "♦": 1, "♣": 1, "♠": 1}
    assert res.revealed_count == 1
    assert res.stages_revealed == 1


def test_no_reveal_while_min_position_equals_stage_index():
    state = make_state({"♥": 2, "♦": 2, "♣": 2, "♠": 1}, revealed_count=1)
    res = resolve_draw(state, Card("♥", "4"))

    assert res.events == [AdvanceEvent("♥")]
    assert res.revealed_count == 1


def test_cascading_reveals_from_a_lagging_state():
    """
    Min position is 3 after the advance while nothing is revealed yet.
    Stage 0 (♥) drops ♥ to 2, min is 2 > 1 so stage 1 (♦) reveals too,
    then min 2 is not > 2 and the cascade stops.
    """
    state = make_state({"♥": 3, "♦": 3, "♣": 3, "♠": 2})
    res = resolve_draw(state, Card("♠", "5"))

    assert res.events == [
        AdvanceEvent("♠"),
        RevealStageEvent(0, Card("♥", "2")),
        RetreatEvent("♥"),
        RevealStageEvent(1, Card("♦", "2")),
        RetreatEvent("♦"),
    ]
    assert res.positions == {"♥": 2, "♦": 2, "♣": 3, "♠": 3}
    assert res.revealed_count == 2


def test_cascade_stops_at_side_stack_end():
    state = make_state(
        {"♥": 5, "♦": 5, "♣": 5, "♠": 4},
        side_stack=parse_cards("♣4 ♣5"),
    )
    res = resolve_draw(state, Card("♠", "6"))

    reveals = [e for e in res.events if isinstance(e, RevealStageEvent)]
    assert [e.index for e in reveals] == [0, 1]
    assert res.revealed_count == 2
    assert res.positions["♣"] == 3


def test_short_side_stack_clamps_stage_count():
    state = make_state({"♥": 1, "♦": 1, "♣": 1}, side_stack=[])
    res = resolve_draw(state, Card("♠", "8"))

    assert res.events == [AdvanceEvent("♠")]
    assert res.revealed_count == 0


def test_direct_win_emits_advance_then_winner():
    state = make_state({"♥": 4})
    res = resolve_draw(state, Card("♥", "Q"))

    assert res.events == [AdvanceEvent("♥"), WinnerDeterminedEvent("♥")]
    assert res.winner == "♥"
    assert res.positions["♥"] == 5


def test_retreat_after_reaching_the_line_cancels_the_win():
    """♥ hits 5 but the stage it triggers is a ♥ card, so it falls back to 4."""
    state = make_state({"♥": 4, "♦": 1, "♣": 1, "♠": 1})
    res = resolve_draw(state, Card("♥", "J"))

    assert res.events == [
        AdvanceEvent("♥"),
        RevealStageEvent(0, Card("♥", "2")),
        RetreatEvent("♥"),
    ]
    assert res.winner is None
    assert res.positions["♥"] == 4


def test_tie_goes_to_first_suit_in_canonical_order():
    state = make_state({"♥": 4, "♦": 5})
    res = resolve_draw(state, Card("♥", "10"))

    winners = [e for e in res.events if isinstance(e, WinnerDeterminedEvent)]
    assert winners == [WinnerDeterminedEvent("♥")]
    assert res.winner == "♥"


def test_finished_race_is_not_resolved_further():
    state = make_state({"♠": 5}, winner="♠")
    res = resolve_draw(state, Card("♥", "2"))

    assert res.is_noop
    assert res.events == []
    assert res.winner == "♠"
    assert res.positions == state.positions
    assert state.positions["♥"] == 0


def test_same_cards_same_events():
    cards = parse_cards("♥2 ♦3 ♣4 ♠5 ♥6 ♦7")

    def play():
        state = make_state()
        events = []
        for card in cards:
            res = resolve_draw(state, card)
            events.extend(res.events)
            state.positions = res.positions
            state.revealed_count = res.revealed_count
            state.winner = res.winner
        return events

    assert play() == play()


def test_find_winner_ignores_horses_short_of_the_line():
    assert find_winner({"♥": 4, "♦": 4, "♣": 0, "♠": 3}) is None
    assert find_winner({"♥": 0, "♦": 0, "♣": 5, "♠": 5}) == "♣"
