"""
Match state representation.
State is treated as immutable by the reducer; mutations happen on deep copies.
Includes JSON serialization for the match row's game_state column.
"""

import json
from dataclasses import dataclass, field
from copy import deepcopy
from typing import Any

from backend.engine import BENCH_SIZE, PHASES, SCHEMA_VERSION


def _int(v: Any, default: int) -> int:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value]


@dataclass
class BattleCard:
    """A physical card copy inside one match (not the catalog definition)."""
    instance_id: str  # unique per copy in this match, e.g. "p1-A1-001-03"
    base_id: str  # catalog id, e.g. "A1-001"
    name: str
    max_hp: int = 0
    current_hp: int = 0
    energy_attached: list[str] = field(default_factory=list)  # multiset of energy tags
    status_conditions: list[str] = field(default_factory=list)  # kept sorted, used as a set
    is_evolved: bool = False
    turn_played: int | None = None  # turn the card entered play
    evolved_from: list["BattleCard"] = field(default_factory=list)  # pre-evolutions underneath

    @property
    def damage(self) -> int:
        return self.max_hp - self.current_hp

    def add_status(self, status: str) -> None:
        if status not in self.status_conditions:
            self.status_conditions = sorted(self.status_conditions + [status])

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "base_id": self.base_id,
            "name": self.name,
            "max_hp": self.max_hp,
            "current_hp": self.current_hp,
            "energy_attached": list(self.energy_attached),
            "status_conditions": list(self.status_conditions),
            "is_evolved": self.is_evolved,
            "turn_played": self.turn_played,
            "evolved_from": [c.to_dict() for c in self.evolved_from],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BattleCard":
        if not isinstance(data, dict):
            data = {}
        max_hp = _int(data.get("max_hp"), 0)
        current_hp = min(max(_int(data.get("current_hp"), max_hp), 0), max_hp)
        under = data.get("evolved_from") or []
        return cls(
            instance_id=str(data.get("instance_id") or ""),
            base_id=str(data.get("base_id") or ""),
            name=str(data.get("name") or ""),
            max_hp=max_hp,
            current_hp=current_hp,
            energy_attached=_str_list(data.get("energy_attached")),
            status_conditions=sorted(set(_str_list(data.get("status_conditions")))),
            is_evolved=bool(data.get("is_evolved", False)),
            turn_played=data.get("turn_played") if isinstance(data.get("turn_played"), int) else None,
            evolved_from=[cls.from_dict(c) for c in under if isinstance(c, dict)],
        )


@dataclass
class PlayerState:
    """One participant's zones. hand and deck are private to the owner."""
    player_id: str
    active_pokemon: BattleCard | None = None
    bench: list[BattleCard | None] = field(default_factory=lambda: [None] * BENCH_SIZE)
    hand: list[BattleCard] = field(default_factory=list)
    deck: list[BattleCard] = field(default_factory=list)  # top of deck is index 0
    discard_pile: list[BattleCard] = field(default_factory=list)
    prize_cards: int = 0

    @property
    def deck_count(self) -> int:
        return len(self.deck)

    def in_play(self) -> list[BattleCard]:
        """Active first, then bench in slot order."""
        cards = [self.active_pokemon] if self.active_pokemon else []
        return cards + [c for c in self.bench if c is not None]

    def has_pokemon_in_play(self) -> bool:
        return bool(self.in_play())

    def find_in_hand(self, instance_id: str) -> BattleCard | None:
        return next((c for c in self.hand if c.instance_id == instance_id), None)

    def bench_index(self, instance_id: str) -> int | None:
        for i, card in enumerate(self.bench):
            if card is not None and card.instance_id == instance_id:
                return i
        return None

    def first_empty_bench_slot(self) -> int | None:
        for i, card in enumerate(self.bench):
            if card is None:
                return i
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "active_pokemon": self.active_pokemon.to_dict() if self.active_pokemon else None,
            "bench": [c.to_dict() if c else None for c in self.bench],
            "hand": [c.to_dict() for c in self.hand],
            "deck": [c.to_dict() for c in self.deck],
            "deck_count": self.deck_count,
            "discard_pile": [c.to_dict() for c in self.discard_pile],
            "prize_cards": self.prize_cards,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerState":
        if not isinstance(data, dict):
            data = {}
        bench_raw = data.get("bench")
        if not isinstance(bench_raw, list):
            bench_raw = []
        bench = [BattleCard.from_dict(c) if isinstance(c, dict) else None for c in bench_raw[:BENCH_SIZE]]
        bench += [None] * (BENCH_SIZE - len(bench))
        active = data.get("active_pokemon")

        def _cards(key: str) -> list[BattleCard]:
            raw = data.get(key) or []
            if not isinstance(raw, list):
                return []
            return [BattleCard.from_dict(c) for c in raw if isinstance(c, dict)]

        return cls(
            player_id=str(data.get("player_id") or ""),
            active_pokemon=BattleCard.from_dict(active) if isinstance(active, dict) else None,
            bench=bench,
            hand=_cards("hand"),
            deck=_cards("deck"),
            discard_pile=_cards("discard_pile"),
            prize_cards=_int(data.get("prize_cards"), 0),
        )


@dataclass
class TurnFlags:
    """Once-per-turn limits. Cleared when a turn starts."""
    energy_attached: bool = False
    retreated: bool = False
    attacked: bool = False
    evolved: list[str] = field(default_factory=list)  # instance_ids evolved this turn

    def to_dict(self) -> dict[str, Any]:
        return {
            "energy_attached": self.energy_attached,
            "retreated": self.retreated,
            "attacked": self.attacked,
            "evolved": list(self.evolved),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TurnFlags":
        if not isinstance(data, dict):
            data = {}
        return cls(
            energy_attached=bool(data.get("energy_attached", False)),
            retreated=bool(data.get("retreated", False)),
            attacked=bool(data.get("attacked", False)),
            evolved=_str_list(data.get("evolved")),
        )


@dataclass
class LastAction:
    """Display/audit only. Never read by validation."""
    player_id: str
    type: str  # play_card | attach_energy | evolve | attack | retreat | end_phase | end_turn | surrender
    details: str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "type": self.type,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LastAction":
        try:
            ts = float(data.get("timestamp") or 0)
        except (TypeError, ValueError):
            ts = 0.0
        return cls(
            player_id=str(data.get("player_id") or ""),
            type=str(data.get("type") or ""),
            details=str(data.get("details") or ""),
            timestamp=ts,
        )


@dataclass
class GameState:
    """Complete state of one match."""
    match_id: str
    player_order: list[str]  # [player1_id, player2_id]; fixes the p1/p2 roles
    players: dict[str, PlayerState]  # player_id -> PlayerState
    current_player_id: str
    turn_number: int = 1
    phase: str = "draw"
    turn_flags: TurnFlags = field(default_factory=TurnFlags)
    last_action: LastAction | None = None
    last_event: dict[str, Any] | None = None
    winner_id: str | None = None
    win_reason: str | None = None  # prizes | no_pokemon | deck_out | surrender
    schema_version: int = SCHEMA_VERSION

    def copy(self) -> "GameState":
        """Return a deep copy of this game state."""
        return deepcopy(self)

    def opponent_of(self, player_id: str) -> str:
        p1, p2 = self.player_order
        return p2 if player_id == p1 else p1

    def role_of(self, player_id: str) -> str:
        """Fixed seat role, independent of whose perspective is rendered."""
        return "p1" if player_id == self.player_order[0] else "p2"

    def is_participant(self, player_id: str) -> bool:
        return player_id in self.players

    # ===== Serialization Methods =====

    def to_dict(self) -> dict[str, Any]:
        """Convert GameState to a dictionary for JSON serialization."""
        return {
            "schema_version": self.schema_version,
            "match_id": self.match_id,
            "turn_number": self.turn_number,
            "current_player_id": self.current_player_id,
            "phase": self.phase,
            "player_order": list(self.player_order),
            "players": {pid: ps.to_dict() for pid, ps in self.players.items()},
            "turn_flags": self.turn_flags.to_dict(),
            "last_action": self.last_action.to_dict() if self.last_action else None,
            "last_event": self.last_event,
            "winner_id": self.winner_id,
            "win_reason": self.win_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        """Create GameState from a dictionary."""
        version = _int(data.get("schema_version"), SCHEMA_VERSION)
        if version > SCHEMA_VERSION:
            raise ValueError(f"Unsupported game state schema version {version}")
        players_raw = data.get("players") or {}
        if not isinstance(players_raw, dict):
            players_raw = {}
        players = {
            str(pid): PlayerState.from_dict({**ps, "player_id": pid})
            for pid, ps in players_raw.items()
            if isinstance(ps, dict)
        }
        order = _str_list(data.get("player_order")) or list(players.keys())
        if len(order) != 2 or set(order) != set(players):
            raise ValueError("Game state must hold exactly two players matching player_order")
        phase = str(data.get("phase") or "draw")
        if phase not in PHASES:
            raise ValueError(f"Unknown phase {phase!r}")
        current = str(data.get("current_player_id") or order[0])
        if current not in players:
            raise ValueError(f"current_player_id {current} is not a participant")
        last_action = data.get("last_action")
        last_event = data.get("last_event")
        return cls(
            match_id=str(data.get("match_id") or ""),
            player_order=order,
            players=players,
            current_player_id=current,
            turn_number=_int(data.get("turn_number"), 1),
            phase=phase,
            turn_flags=TurnFlags.from_dict(data.get("turn_flags") or {}),
            last_action=LastAction.from_dict(last_action) if isinstance(last_action, dict) else None,
            last_event=last_event if isinstance(last_event, dict) else None,
            winner_id=data.get("winner_id"),
            win_reason=data.get("win_reason"),
            schema_version=SCHEMA_VERSION,
        )

    def to_json(self, indent: int | None = None) -> str:
        """Serialize GameState to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> "GameState":
        """Deserialize GameState from a JSON string."""
        return cls.from_dict(json.loads(json_str))
