"""
Pocket Duel match engine.
Pure rules: typed state, actions, reducer. No web framework, database, or clock.
"""

SCHEMA_VERSION = 1

BENCH_SIZE = 5
OPENING_HAND_SIZE = 5
PRIZE_CARDS = 3  # Pocket format

WEAKNESS_BONUS = 20
POISON_DAMAGE = 10

# Attacker rarity -> damage multiplier. Result is floored to a multiple of 10.
RARITY_MULTIPLIERS = {
    "common": 1.0,
    "uncommon": 1.0,
    "rare": 1.1,
    "double_rare": 1.2,
    "illustration_rare": 1.25,
}

PHASES = ["draw", "main", "attack", "end"]
