"""
Match setup: turn two deck lists into the opening GameState.
Deterministic: the same (match_id, decks, seed) always deals the same state.
"""

import hashlib
import random
from collections import Counter

from backend.engine import OPENING_HAND_SIZE, PRIZE_CARDS
from backend.engine.definitions import CardDefinition
from backend.engine.events import GameEvent
from backend.engine.reducer import start_turn
from backend.engine.state import BattleCard, GameState, PlayerState


def seed_from_match_id(match_id: str) -> int:
    """Stable 60-bit seed derived from the match id (hash() is salted per process)."""
    return int(hashlib.sha256(match_id.encode("utf-8")).hexdigest()[:15], 16)


def new_battle_card(card_def: CardDefinition, instance_id: str) -> BattleCard:
    """Create a fresh card instance at full HP."""
    return BattleCard(
        instance_id=instance_id,
        base_id=card_def.id,
        name=card_def.name,
        max_hp=card_def.hp,
        current_hp=card_def.hp,
    )


def build_deck(
    role: str,
    deck_list: list[str],
    catalog: dict[str, CardDefinition],
) -> list[BattleCard]:
    """
    Instantiate a deck list. Instance ids are "<role>-<base_id>-<nn>", unique per copy,
    so duplicate catalog cards stay distinguishable.
    """
    counters: Counter[str] = Counter()
    cards = []
    for base_id in deck_list:
        card_def = catalog.get(base_id)
        if card_def is None:
            raise ValueError(f"Unknown card in deck: {base_id}")
        counters[base_id] += 1
        cards.append(new_battle_card(card_def, f"{role}-{base_id}-{counters[base_id]:02d}"))
    return cards


def _deal_opening_hand(
    deck: list[BattleCard],
    catalog: dict[str, CardDefinition],
) -> tuple[list[BattleCard], list[BattleCard]]:
    """
    Take OPENING_HAND_SIZE cards from the top. The opening hand always holds a basic
    Pokémon: if none was dealt, the first basic in the deck swaps with the last hand card.
    """
    hand, rest = deck[:OPENING_HAND_SIZE], deck[OPENING_HAND_SIZE:]
    if not any(catalog[c.base_id].is_basic_pokemon for c in hand):
        for i, card in enumerate(rest):
            if catalog[card.base_id].is_basic_pokemon:
                rest[i], hand[-1] = hand[-1], card
                break
        else:
            raise ValueError("Deck has no basic Pokémon")
    return hand, rest


def initialize_game_state(
    match_id: str,
    player1_id: str,
    player2_id: str,
    deck1: list[str],
    deck2: list[str],
    catalog: dict[str, CardDefinition],
    seed: int | None = None,
) -> tuple[GameState, list[GameEvent]]:
    """
    Create the opening state of a match.

    Each deck is shuffled with a Random seeded from `seed` (default: derived from match_id),
    each player gets an opening hand with at least one basic Pokémon and PRIZE_CARDS prizes,
    and player1's first turn is started (draw phase, one card drawn).
    """
    if player1_id == player2_id:
        raise ValueError("A match needs two different players")
    rng = random.Random(seed if seed is not None else seed_from_match_id(match_id))

    players = {}
    for role, pid, deck_list in (("p1", player1_id, deck1), ("p2", player2_id, deck2)):
        deck = build_deck(role, deck_list, catalog)
        rng.shuffle(deck)
        hand, rest = _deal_opening_hand(deck, catalog)
        players[pid] = PlayerState(
            player_id=pid,
            hand=hand,
            deck=rest,
            prize_cards=PRIZE_CARDS,
        )

    state = GameState(
        match_id=match_id,
        player_order=[player1_id, player2_id],
        players=players,
        current_player_id=player1_id,
    )
    events: list[GameEvent] = []
    start_turn(state, player1_id, events)
    return state, events
