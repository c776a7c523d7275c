"""
Match events for UI hooks and logging.
Events describe what happened during action processing.
Damage values are keyed by seat role ("p1"/"p2"), never by perspective.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

# Phase/Turn events
PHASE_CHANGED = "phase_changed"
TURN_STARTED = "turn_started"
TURN_ENDED = "turn_ended"
CARD_DRAWN = "card_drawn"

# Board events
CARD_PLAYED = "card_played"
ENERGY_ATTACHED = "energy_attached"
POKEMON_EVOLVED = "pokemon_evolved"
RETREATED = "retreated"
POKEMON_PROMOTED = "pokemon_promoted"

# Combat events
COMBAT_RESOLVED = "combat_resolved"
KNOCKED_OUT = "knocked_out"
STATUS_DAMAGE = "status_damage"
PRIZE_TAKEN = "prize_taken"

# Match end
MATCH_WON = "match_won"


# ===== Event Factory Functions =====

def phase_changed(old_phase: str, new_phase: str, player_id: str) -> GameEvent:
    return GameEvent(PHASE_CHANGED, {
        "old_phase": old_phase,
        "new_phase": new_phase,
        "player_id": player_id,
    })


def turn_started(turn_number: int, player_id: str) -> GameEvent:
    return GameEvent(TURN_STARTED, {"turn_number": turn_number, "player_id": player_id})


def turn_ended(turn_number: int, player_id: str) -> GameEvent:
    return GameEvent(TURN_ENDED, {"turn_number": turn_number, "player_id": player_id})


def card_drawn(player_id: str, reason: str) -> GameEvent:
    # No card id: draws are visible to the opponent only as a count
    return GameEvent(CARD_DRAWN, {"player_id": player_id, "reason": reason})


def card_played(player_id: str, instance_id: str, zone: str, slot: int | None) -> GameEvent:
    return GameEvent(CARD_PLAYED, {
        "player_id": player_id,
        "instance_id": instance_id,
        "zone": zone,  # "active" or "bench"
        "slot": slot,
    })


def energy_attached(player_id: str, energy_type: str, target_id: str) -> GameEvent:
    return GameEvent(ENERGY_ATTACHED, {
        "player_id": player_id,
        "energy_type": energy_type,
        "target_id": target_id,
    })


def pokemon_evolved(player_id: str, from_id: str, to_id: str) -> GameEvent:
    return GameEvent(POKEMON_EVOLVED, {"player_id": player_id, "from_id": from_id, "to_id": to_id})


def retreated(player_id: str, old_active_id: str, new_active_id: str) -> GameEvent:
    return GameEvent(RETREATED, {
        "player_id": player_id,
        "old_active_id": old_active_id,
        "new_active_id": new_active_id,
    })


def pokemon_promoted(player_id: str, instance_id: str, from_slot: int) -> GameEvent:
    return GameEvent(POKEMON_PROMOTED, {
        "player_id": player_id,
        "instance_id": instance_id,
        "from_slot": from_slot,
    })


def combat_resolved(
    attacker_role: str,
    move_name: str,
    dmg_p1: int,
    dmg_p2: int,
    ko_p1: bool,
    ko_p2: bool,
    debug: dict[str, Any],
) -> GameEvent:
    """
    Emitted once per attack. dmg_p1/dmg_p2 are damage received by each seat's active
    Pokémon, so any observer derives "damage to me" from its own role.
    debug carries the rarity inputs (debug_rarity_p1, mult_p1, ...) for tuning.
    """
    payload: dict[str, Any] = {
        "attacker_role": attacker_role,
        "move_name": move_name,
        "dmg_p1": dmg_p1,
        "dmg_p2": dmg_p2,
        "ko_p1": ko_p1,
        "ko_p2": ko_p2,
    }
    payload.update(debug)
    return GameEvent(COMBAT_RESOLVED, payload)


def knocked_out(player_id: str, instance_id: str, base_id: str, cause: str) -> GameEvent:
    return GameEvent(KNOCKED_OUT, {
        "player_id": player_id,
        "instance_id": instance_id,
        "base_id": base_id,
        "cause": cause,  # "attack", "recoil", "poison"
    })


def status_damage(player_id: str, instance_id: str, status: str, damage: int) -> GameEvent:
    return GameEvent(STATUS_DAMAGE, {
        "player_id": player_id,
        "instance_id": instance_id,
        "status": status,
        "damage": damage,
    })


def prize_taken(player_id: str, losing_player_id: str, prizes_left: int) -> GameEvent:
    return GameEvent(PRIZE_TAKEN, {
        "player_id": player_id,
        "losing_player_id": losing_player_id,
        "prizes_left": prizes_left,
    })


def match_won(winner_id: str, reason: str) -> GameEvent:
    return GameEvent(MATCH_WON, {"winner_id": winner_id, "reason": reason})
