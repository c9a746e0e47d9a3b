import logging
import random

from card_derby.core.cards import Card
from card_derby.core.events import (
    AdvanceEvent,
    RetreatEvent,
    RevealStageEvent,
    WinnerDeterminedEvent,
)
from card_derby.engine.race import RaceController

from tests.test_utils import RaceScenario

SIDE_STACK = "♥2 ♦2 ♣2 ♠2 ♥3"


def test_four_hearts_in_a_row(scenario: type[RaceScenario]):
    """Min position stays 0, so nothing is revealed."""
    game = scenario(deck="♥♥♥♥♦", side_stack=SIDE_STACK)

    game.run_draws(4)

    assert game.positions == {"♥": 4, "♦": 0, "♣": 0, "♠": 0}
    assert game.state.revealed_count == 0
    assert game.state.winner is None
    assert game.race.can_draw


def test_all_suits_at_one_reveal_first_stage(scenario: type[RaceScenario]):
    game = scenario(deck="♥♦♣♠", side_stack=SIDE_STACK)

    resolutions = game.run_draws(4)

    assert resolutions[-1].events == [
        AdvanceEvent("♠"),
        RevealStageEvent(0, Card("♥", "2")),
        RetreatEvent("♥"),
    ]
    assert game.positions == {"♥": 0, "♦": 1, "♣": 1, "♠": 1}
    assert game.state.revealed_count == 1
    assert game.state.revealed_cards == [Card("♥", "2")]


def test_direct_win(scenario: type[RaceScenario]):
    game = scenario(deck="♥♠", side_stack=SIDE_STACK, positions={"♥": 4})

    resolution = game.draw_and_settle()

    assert resolution is not None
    assert resolution.events == [AdvanceEvent("♥"), WinnerDeterminedEvent("♥")]
    assert game.applied == resolution.events
    assert game.state.winner == "♥"
    assert not game.race.can_draw


def test_draw_on_empty_deck_is_a_noop(scenario: type[RaceScenario]):
    game = scenario(deck="", side_stack=SIDE_STACK, positions={"♦": 2})
    snapshots = []
    game.race.subscribe(snapshots.append)

    assert game.draw() is None

    assert game.positions == {"♥": 0, "♦": 2, "♣": 0, "♠": 0}
    assert game.state.current_card is None
    assert game.applied == []
    assert snapshots == []
    assert not game.race.can_draw


def test_draw_after_winner_is_a_noop(scenario: type[RaceScenario]):
    game = scenario(deck="♥♦♦", side_stack=SIDE_STACK, positions={"♥": 4})
    game.draw_and_settle()
    deck_before = list(game.state.deck)

    assert game.draw() is None
    assert game.state.deck == deck_before
    assert game.positions["♦"] == 0


def test_draw_before_start_is_a_noop():
    race = RaceController(rng=random.Random(0), verbose=False)
    assert race.draw() is None
    assert not race.can_draw


def test_timeline_applies_state_over_time(scenario: type[RaceScenario]):
    game = scenario(deck="♠", side_stack=SIDE_STACK, positions={"♥": 1, "♦": 1, "♣": 1})

    game.draw()
    # Advance applies at once; the reveal is still pending
    assert game.positions["♠"] == 1
    assert game.state.revealed_count == 0
    assert game.state.current_card == Card("♠", "2")
    assert game.state.animation is not None
    assert game.state.animation.direction == "advance"
    assert game.race.is_animating
    assert not game.race.can_draw

    game.timers.advance(450)
    assert game.state.revealed_count == 1
    assert game.state.flashing_stages == [0]
    assert game.positions["♥"] == 1

    game.timers.advance(450)
    assert game.positions["♥"] == 0
    assert game.state.flashing_stages == []
    assert game.state.animation is not None
    assert game.state.animation.suit == "♥"
    assert game.state.animation.direction == "retreat"

    game.timers.advance(349)
    assert game.race.is_animating

    game.timers.advance(1)
    assert not game.race.is_animating
    assert game.state.animation is None


def test_winner_is_announced_at_settle(scenario: type[RaceScenario]):
    game = scenario(deck="♥", side_stack=SIDE_STACK, positions={"♥": 4})

    game.draw()
    assert game.positions["♥"] == 5
    assert game.state.winner is None

    game.timers.advance(350)
    assert game.state.winner == "♥"


def test_reset_mid_animation_drops_pending_steps(scenario: type[RaceScenario]):
    game = scenario(deck="♠♥", side_stack=SIDE_STACK, positions={"♥": 1, "♦": 1, "♣": 1})

    game.draw()
    game.race.reset()

    assert game.timers.run_all() == 0
    assert not game.race.is_animating
    assert not game.state.active
    assert game.positions == {"♥": 0, "♦": 0, "♣": 0, "♠": 0}
    assert game.state.revealed_count == 0


def test_close_cancels_the_timeline(scenario: type[RaceScenario]):
    game = scenario(deck="♠", side_stack=SIDE_STACK, positions={"♥": 1, "♦": 1, "♣": 1})
    game.draw()
    handle = game.race.timeline
    assert handle is not None

    game.race.close()

    assert handle.cancelled
    assert game.timers.run_all() == 0
    assert game.state.revealed_count == 0


def test_observers_see_every_step(scenario: type[RaceScenario]):
    game = scenario(deck="♠", side_stack=SIDE_STACK, positions={"♥": 1, "♦": 1, "♣": 1})
    snapshots = []
    unsubscribe = game.race.subscribe(snapshots.append)

    game.draw_and_settle()

    # advance, reveal, retreat, settle
    assert len(snapshots) == 4
    assert all(s.is_animating for s in snapshots[:-1])
    assert not snapshots[-1].is_animating
    assert snapshots[1].flashing_stages == (0,)
    assert snapshots[-1].positions == {"♥": 0, "♦": 1, "♣": 1, "♠": 1}
    assert snapshots[-1].revealed_cards == (Card("♥", "2"),)

    unsubscribe()
    game.race.reset()
    assert len(snapshots) == 4


def test_start_race_deals_side_stack_and_deck(scenario: type[RaceScenario]):
    game = scenario(seed=11)

    assert game.state.active
    assert len(game.state.side_stack) == 5
    assert len(game.state.deck) == 47
    assert not set(game.state.side_stack) & set(game.state.deck)
    assert game.positions == {"♥": 0, "♦": 0, "♣": 0, "♠": 0}


def test_start_race_clears_previous_race(scenario: type[RaceScenario]):
    game = scenario(seed=3)
    game.run_race()
    assert game.state.winner is not None

    game.race.start_race()

    assert game.state.winner is None
    assert game.state.draw_count == 0
    assert game.state.current_card is None
    assert len(game.state.deck) == 47


def test_winner_is_logged(scenario: type[RaceScenario], caplog):
    game = scenario(deck="♥", side_stack=SIDE_STACK, positions={"♥": 4})

    with caplog.at_level(logging.INFO, logger="card_derby"):
        game.draw_and_settle()

    assert "♥ (hearts) WINS THE RACE" in caplog.text
    assert "FINAL STANDINGS" in caplog.text


def test_quiet_race_does_not_log(scenario: type[RaceScenario], caplog):
    game = scenario(deck="♥", side_stack=SIDE_STACK, positions={"♥": 4}, verbose=False)

    with caplog.at_level(logging.DEBUG, logger="card_derby"):
        game.draw_and_settle()

    assert "WINS" not in caplog.text


def test_cancelled_winning_draw_still_ends_the_race(scenario: type[RaceScenario]):
    game = scenario(deck="♥♥", side_stack=SIDE_STACK, positions={"♥": 4})

    game.draw()
    handle = game.race.timeline
    assert handle is not None
    handle.cancel()

    assert game.state.winner == "♥"
    assert not game.race.can_draw
    assert game.draw_and_settle() is None
    assert game.positions["♥"] == 5
    assert game.applied.count(WinnerDeterminedEvent("♥")) == 1


def test_cancel_animation_keeps_the_winner(scenario: type[RaceScenario]):
    game = scenario(deck="♥♥", side_stack=SIDE_STACK, positions={"♥": 4})

    game.draw()
    game.race.cancel_animation()

    assert game.state.winner == "♥"
    assert game.state.animation is None
    assert game.draw() is None
    assert len(game.state.deck) == 1


def test_horse_left_on_the_line_is_declared_before_drawing(scenario: type[RaceScenario]):
    """A cascade cut short can leave a horse on 5 whose retreat never fired."""
    game = scenario(
        deck="♦",
        side_stack=SIDE_STACK,
        positions={"♥": 1, "♦": 5, "♣": 1, "♠": 1},
        revealed_count=1,
    )

    assert not game.race.can_draw
    assert game.draw() is None
    assert game.state.winner == "♦"
    assert game.positions["♦"] == 5
    assert len(game.state.deck) == 1
