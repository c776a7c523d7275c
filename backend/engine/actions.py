"""
Action definitions for the match.
Actions are immutable, deterministic instructions. The acting player is not part of
the action: it is supplied separately from the verified caller identity.
"""

from dataclasses import dataclass, field
from typing import Any

from backend.engine.errors import IllegalAction


@dataclass(frozen=True)
class Action:
    """Base action class. All actions have a type and a payload."""
    type: str  # e.g. "play_basic", "attach_energy", "attack", "retreat", "end_turn"
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": dict(self.payload)}


def play_basic(card_id: str, slot: int | None = None) -> Action:
    """
    Put a basic Pokémon from hand into play.
    Goes to the active spot if empty, else the lowest-index empty bench slot.
    slot is advisory: honoured only if it names an empty bench slot and the active spot is taken.
    """
    payload: dict[str, Any] = {"card_id": card_id}
    if slot is not None:
        payload["slot"] = slot
    return Action(type="play_basic", payload=payload)


def attach_energy(card_id: str, target_id: str) -> Action:
    """Attach an energy card from hand to one of your Pokémon. Once per turn."""
    return Action(type="attach_energy", payload={"card_id": card_id, "target_id": target_id})


def evolve(card_id: str, target_id: str) -> Action:
    """
    Evolve a Pokémon in play with a stage1/stage2 card from hand.
    The target must not have entered play or evolved this turn.
    """
    return Action(type="evolve", payload={"card_id": card_id, "target_id": target_id})


def attack(move_index: int) -> Action:
    """Use the active Pokémon's move at move_index against the opponent's active Pokémon."""
    return Action(type="attack", payload={"move_index": move_index})


def retreat(new_active_id: str) -> Action:
    """Swap the active Pokémon with a benched one. Once per turn."""
    return Action(type="retreat", payload={"new_active_id": new_active_id})


def end_phase() -> Action:
    """Advance one phase: draw -> main -> attack -> end."""
    return Action(type="end_phase")


def end_turn() -> Action:
    """End the current turn and pass to the opponent."""
    return Action(type="end_turn")


def surrender() -> Action:
    """Concede. Accepted from either participant at any time."""
    return Action(type="surrender")


# action_type -> (required payload keys with their types)
ACTION_SCHEMAS: dict[str, dict[str, type]] = {
    "play_basic": {"card_id": str},
    "attach_energy": {"card_id": str, "target_id": str},
    "evolve": {"card_id": str, "target_id": str},
    "attack": {"move_index": int},
    "retreat": {"new_active_id": str},
    "end_phase": {},
    "end_turn": {},
    "surrender": {},
}

ACTION_TYPES = list(ACTION_SCHEMAS)


def action_from_request(action_type: str, payload: dict[str, Any] | None) -> Action:
    """
    Build an Action from client-supplied data.
    Raises IllegalAction for unknown types or malformed payloads.
    Any player identity inside the payload is dropped; identity comes from auth.
    """
    schema = ACTION_SCHEMAS.get(action_type)
    if schema is None:
        raise IllegalAction(f"Unknown action type: {action_type}")
    payload = dict(payload or {})
    clean: dict[str, Any] = {}
    for key, expected in schema.items():
        value = payload.get(key)
        # bool is an int subclass; reject it for move_index
        if not isinstance(value, expected) or isinstance(value, bool):
            raise IllegalAction(f"{action_type}: '{key}' must be a {expected.__name__}")
        clean[key] = value
    if action_type == "play_basic" and payload.get("slot") is not None:
        slot = payload["slot"]
        if not isinstance(slot, int) or isinstance(slot, bool):
            raise IllegalAction("play_basic: 'slot' must be an int")
        clean["slot"] = slot
    return Action(type=action_type, payload=clean)
