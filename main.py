"""
Main entry point for the Pocket Duel match engine.
Plays a full match between two greedy bots without a server or database,
printing the events of every action, then checks the result against a replay.
Usage: python main.py [deck1] [deck2] [seed]
"""

import sys

from backend.engine.actions import Action, action_from_request
from backend.engine.definitions import load_card_catalog, load_decks
from backend.engine.queries import get_available_actions
from backend.engine.reducer import apply_action, replay_from_actions
from backend.engine.setup import initialize_game_state
from backend.engine.state import GameState

MAX_ACTIONS = 500

# Greedy preference: develop the board, power up, then hit.
ACTION_PRIORITY = ["evolve", "play_basic", "attach_energy", "attack", "end_turn"]


def choose_action(state: GameState, player_id: str, catalog) -> Action:
    """Pick the first legal action by ACTION_PRIORITY (energy goes to the active Pokémon)."""
    legal = get_available_actions(state, player_id, catalog)["actions"]
    active = state.players[player_id].active_pokemon
    for action_type in ACTION_PRIORITY:
        options = [a for a in legal if a["type"] == action_type]
        if action_type == "attach_energy" and active is not None:
            options = [a for a in options if a["payload"]["target_id"] == active.instance_id] or options
        if action_type == "attack":
            options.reverse()  # strongest move last in the card text
        if options:
            return action_from_request(options[0]["type"], options[0]["payload"])
    return action_from_request("end_turn", {})


def print_board(state: GameState) -> None:
    for pid in state.player_order:
        p = state.players[pid]
        active = p.active_pokemon
        active_str = f"{active.name} {active.current_hp}/{active.max_hp} {active.energy_attached}" if active else "-"
        bench = ", ".join(c.name for c in p.bench if c) or "-"
        print(f"  {pid}: prizes {p.prize_cards} | hand {len(p.hand)} | deck {p.deck_count} | "
              f"active {active_str} | bench {bench}")


def main():
    deck1_id = sys.argv[1] if len(sys.argv) > 1 else "grass_starter"
    deck2_id = sys.argv[2] if len(sys.argv) > 2 else "fire_starter"
    seed = int(sys.argv[3]) if len(sys.argv) > 3 else 7

    print("Pocket Duel - demo match")
    print("=" * 60)
    catalog = load_card_catalog()
    decks = load_decks(catalog)

    initial, events = initialize_game_state(
        "demo", "ash", "misty", decks[deck1_id].cards, decks[deck2_id].cards, catalog, seed=seed,
    )
    print(f"ash ({decks[deck1_id].display_name}) vs misty ({decks[deck2_id].display_name}), seed {seed}")
    print_board(initial)

    state = initial
    history: list[tuple[str, Action, float]] = []
    for step in range(MAX_ACTIONS):
        if state.winner_id is not None:
            break
        player_id = state.current_player_id
        action = choose_action(state, player_id, catalog)
        state, events = apply_action(state, player_id, action, catalog, now=float(step))
        history.append((player_id, action, float(step)))

        print(f"\n[turn {state.turn_number}] {player_id}: {state.last_action.details}")
        for event in events:
            if event.type in ("combat_resolved", "knocked_out", "prize_taken", "status_damage", "match_won"):
                print(f"  - {event.type}: {event.payload}")
        if action.type == "end_turn":
            print_board(state)

    print("\n" + "=" * 60)
    if state.winner_id:
        print(f"Winner: {state.winner_id} ({state.win_reason}) after {len(history)} actions")
    else:
        print(f"No winner after {MAX_ACTIONS} actions")

    replayed, _ = replay_from_actions(initial, history, catalog)
    print("Replay matches:", replayed.to_json() == state.to_json())


if __name__ == "__main__":
    main()
