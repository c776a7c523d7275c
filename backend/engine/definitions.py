"""
Static card catalog and starter decks.
All catalog data lives under data/: cards.json (base_id -> card) and decks.json (deck_id -> card list).
Definitions are immutable; BattleCard instances in a match reference them by base_id.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

DATA_DIR = Path(__file__).parent.parent / "data"
CARDS_PATH = DATA_DIR / "cards.json"
DECKS_PATH = DATA_DIR / "decks.json"

SUPERTYPES = ("pokemon", "energy")
STAGES = ("basic", "stage1", "stage2")


@dataclass
class MoveDefinition:
    """One attack printed on a Pokémon card."""
    name: str
    cost: list[str]  # energy tags; "colorless" is satisfied by any energy
    damage: int = 0
    recoil: int = 0  # damage dealt to the attacker itself
    inflicts: Optional[str] = None  # status applied to a surviving defender

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MoveDefinition":
        cost = data.get("cost") or []
        return cls(
            name=str(data.get("name") or ""),
            cost=[str(c) for c in cost] if isinstance(cost, list) else [],
            damage=int(data.get("damage") or 0),
            recoil=int(data.get("recoil") or 0),
            inflicts=data.get("inflicts"),
        )


@dataclass
class CardDefinition:
    """Defines immutable properties of a catalog card."""
    id: str  # base id, e.g. "A1-001"
    name: str
    supertype: str  # "pokemon" or "energy"
    rarity: str = "common"
    stage: str = "basic"
    evolves_from: Optional[str] = None  # name of the pre-evolution
    hp: int = 0
    type: Optional[str] = None
    weakness: Optional[str] = None
    moves: list[MoveDefinition] = field(default_factory=list)
    energy_type: Optional[str] = None  # energy cards only

    @property
    def is_pokemon(self) -> bool:
        return self.supertype == "pokemon"

    @property
    def is_basic_pokemon(self) -> bool:
        return self.is_pokemon and self.stage == "basic"

    @property
    def is_energy(self) -> bool:
        return self.supertype == "energy"

    @classmethod
    def from_dict(cls, card_id: str, data: dict[str, Any]) -> "CardDefinition":
        supertype = str(data.get("supertype") or "pokemon")
        if supertype not in SUPERTYPES:
            raise ValueError(f"Card {card_id}: unknown supertype {supertype!r}")
        stage = str(data.get("stage") or "basic")
        if stage not in STAGES:
            raise ValueError(f"Card {card_id}: unknown stage {stage!r}")
        moves = data.get("moves") or []
        return cls(
            id=card_id,
            name=str(data.get("name") or card_id),
            supertype=supertype,
            rarity=str(data.get("rarity") or "common"),
            stage=stage,
            evolves_from=data.get("evolves_from"),
            hp=int(data.get("hp") or 0),
            type=data.get("type"),
            weakness=data.get("weakness"),
            moves=[MoveDefinition.from_dict(m) for m in moves if isinstance(m, dict)],
            energy_type=data.get("energy_type"),
        )


@dataclass
class DeckDefinition:
    id: str
    display_name: str
    cards: list[str]  # base ids, one entry per copy, in file order

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "display_name": self.display_name, "size": len(self.cards)}


def load_card_catalog(path: Path | None = None) -> dict[str, CardDefinition]:
    """Load cards.json into {base_id: CardDefinition}."""
    with open(path or CARDS_PATH, "r") as f:
        raw = json.load(f)
    return {card_id: CardDefinition.from_dict(card_id, data) for card_id, data in raw.items()}


def load_decks(
    catalog: dict[str, CardDefinition],
    path: Path | None = None,
) -> dict[str, DeckDefinition]:
    """
    Load decks.json into {deck_id: DeckDefinition}.
    Every card must exist in the catalog and each deck needs at least one basic Pokémon.
    """
    with open(path or DECKS_PATH, "r") as f:
        raw = json.load(f)
    decks = {}
    for deck_id, data in raw.items():
        cards: list[str] = []
        for entry in data.get("cards") or []:
            card_id = entry.get("id")
            if card_id not in catalog:
                raise ValueError(f"Deck {deck_id}: unknown card {card_id}")
            cards.extend([card_id] * int(entry.get("count", 0)))
        if not any(catalog[c].is_basic_pokemon for c in cards):
            raise ValueError(f"Deck {deck_id} has no basic Pokémon")
        decks[deck_id] = DeckDefinition(
            id=deck_id,
            display_name=str(data.get("display_name") or deck_id),
            cards=cards,
        )
    return decks
