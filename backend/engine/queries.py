"""
Query functions for client integration.
These functions help a client understand what it may do and what it may see
without mutating match state.
"""

from dataclasses import dataclass
from typing import Any

from backend.engine.actions import Action, play_basic, attach_energy, evolve, attack, retreat, end_phase, end_turn
from backend.engine.definitions import CardDefinition
from backend.engine.errors import ActionError
from backend.engine.reducer import apply_action
from backend.engine.state import GameState


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error, "error_code": self.error_code}


# ===== Action Validation =====

def validate_action(
    state: GameState,
    player_id: str,
    action: Action,
    catalog: dict[str, CardDefinition],
) -> ValidationResult:
    """
    Validate an action without applying it.
    Runs the reducer on a copy, so the answer always agrees with apply_action.
    """
    try:
        apply_action(state, player_id, action, catalog)
    except ActionError as e:
        return ValidationResult(False, e.message, e.code)
    return ValidationResult(True)


def get_available_actions(
    state: GameState,
    player_id: str,
    catalog: dict[str, CardDefinition],
) -> dict[str, Any]:
    """
    Enumerate the legal actions for player_id right now.
    Returns {"can_act": bool, "phase": str, "actions": [action dicts]}.
    """
    out: dict[str, Any] = {"can_act": False, "phase": state.phase, "actions": []}
    if state.winner_id is not None or player_id != state.current_player_id:
        return out

    player = state.players[player_id]
    in_play_ids = [c.instance_id for c in player.in_play()]
    candidates: list[Action] = []
    for card in player.hand:
        card_def = catalog.get(card.base_id)
        if card_def is None:
            continue
        if card_def.is_basic_pokemon:
            candidates.append(play_basic(card.instance_id))
        elif card_def.is_energy:
            candidates.extend(attach_energy(card.instance_id, t) for t in in_play_ids)
        elif card_def.is_pokemon:
            candidates.extend(evolve(card.instance_id, t) for t in in_play_ids)
    if player.active_pokemon is not None:
        active_def = catalog.get(player.active_pokemon.base_id)
        moves = active_def.moves if active_def else []
        candidates.extend(attack(i) for i in range(len(moves)))
    candidates.extend(retreat(c.instance_id) for c in player.bench if c is not None)
    candidates.extend([end_phase(), end_turn()])

    legal = [a.to_dict() for a in candidates if validate_action(state, player_id, a, catalog).valid]
    out["can_act"] = bool(legal)
    out["actions"] = legal
    return out


# ===== Per-player view =====

def view_for_player(state: GameState, viewer_id: str | None) -> dict[str, Any]:
    """
    State dict safe to send to viewer_id.
    Decks are reduced to deck_count for everyone; the opponent's hand is reduced to hand_count.
    A viewer who is not a participant (spectator) sees no hands at all.
    """
    out = state.to_dict()
    for pid, pdata in out["players"].items():
        pdata.pop("deck", None)
        if pid != viewer_id:
            pdata["hand_count"] = len(pdata.pop("hand", []))
    return out
