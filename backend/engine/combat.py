"""
Combat resolution.
Pure, deterministic functions of (attacker card, defender card, move). No randomness.
"""

from collections import Counter

from backend.engine import RARITY_MULTIPLIERS, WEAKNESS_BONUS
from backend.engine.definitions import CardDefinition, MoveDefinition

COLORLESS = "colorless"

# Statuses that stop a Pokémon from attacking or retreating
DISABLING_STATUSES = ("asleep", "paralyzed")


def has_required_energy(attached: list[str], cost: list[str]) -> bool:
    """
    True if the attached energy pays for the cost.
    Typed requirements are paid first; colorless requirements take any leftover energy.
    """
    available = Counter(attached)
    colorless_needed = 0
    for energy in cost:
        if energy == COLORLESS:
            colorless_needed += 1
            continue
        if available[energy] <= 0:
            return False
        available[energy] -= 1
    return sum(available.values()) >= colorless_needed


def rarity_multiplier(rarity: str) -> float:
    return RARITY_MULTIPLIERS.get(rarity, 1.0)


def calculate_damage(
    attacker: CardDefinition,
    defender: CardDefinition,
    move: MoveDefinition,
) -> int:
    """
    Damage dealt by move to the defender.

    base = move.damage scaled by the attacker's rarity multiplier, floored to a multiple of 10
    (integer arithmetic on percent so the curve never drifts on float rounding),
    then +WEAKNESS_BONUS when the defender is weak to the attacker's type.
    Moves with 0 base damage stay at 0.
    """
    if move.damage <= 0:
        return 0
    percent = round(rarity_multiplier(attacker.rarity) * 100)
    damage = (move.damage * percent // 1000) * 10
    if defender.weakness and defender.weakness == attacker.type:
        damage += WEAKNESS_BONUS
    return damage


def can_act(status_conditions: list[str]) -> bool:
    """False while asleep or paralyzed."""
    return not any(s in DISABLING_STATUSES for s in status_conditions)
