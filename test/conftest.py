"""
Pytest fixtures for Pocket Duel tests.
"""

import os

# Cheap hashing for the API tests; must be set before backend.config is imported.
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402

from backend.engine.definitions import load_card_catalog, load_decks  # noqa: E402
from backend.engine.setup import new_battle_card  # noqa: E402
from backend.engine.state import GameState, PlayerState  # noqa: E402


@pytest.fixture(scope="session")
def catalog():
    return load_card_catalog()


@pytest.fixture(scope="session")
def decks(catalog):
    return load_decks(catalog)


@pytest.fixture
def make_card(catalog):
    """make_card(base_id, instance_id, **fields) -> fresh BattleCard with overrides applied."""
    def _make(base_id: str, instance_id: str, **fields):
        card = new_battle_card(catalog[base_id], instance_id)
        for key, value in fields.items():
            setattr(card, key, value)
        return card
    return _make


@pytest.fixture
def board(make_card) -> GameState:
    """
    Mid-match position, alice to move in the draw phase of turn 2.

    alice: active Bulbasaur (played turn 1); hand Bulbasaur, 2 Grass Energy, Ivysaur, Jigglypuff;
           deck 5 Grass Energy.
    bob:   active Charmander (played turn 1); hand Charmander, Fire Energy; deck 5 Fire Energy.
    Both players have 3 prize cards.
    """
    alice = PlayerState(
        player_id="alice",
        active_pokemon=make_card("A1-001", "a-bulba-1", turn_played=1),
        hand=[
            make_card("A1-001", "a-bulba-2"),
            make_card("E-GRASS", "a-grass-1"),
            make_card("E-GRASS", "a-grass-2"),
            make_card("A1-002", "a-ivy-1"),
            make_card("A1-195", "a-jiggly-1"),
        ],
        deck=[make_card("E-GRASS", f"a-deck-{i}") for i in range(5)],
        prize_cards=3,
    )
    bob = PlayerState(
        player_id="bob",
        active_pokemon=make_card("A1-033", "b-char-1", turn_played=1),
        hand=[
            make_card("A1-033", "b-char-2"),
            make_card("E-FIRE", "b-fire-1"),
        ],
        deck=[make_card("E-FIRE", f"b-deck-{i}") for i in range(5)],
        prize_cards=3,
    )
    return GameState(
        match_id="m-test",
        player_order=["alice", "bob"],
        players={"alice": alice, "bob": bob},
        current_player_id="alice",
        turn_number=2,
        phase="draw",
    )
