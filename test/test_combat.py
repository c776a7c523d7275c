"""
Tests for combat math: energy costs, rarity scaling and weakness.
"""

import pytest

from backend.engine.combat import calculate_damage, can_act, has_required_energy, rarity_multiplier


class TestEnergyCost:
    @pytest.mark.parametrize("attached, cost, expected", [
        (["grass", "grass"], ["grass", "colorless"], True),
        (["grass", "fire"], ["grass", "colorless"], True),
        (["fire", "fire"], ["grass", "colorless"], False),
        (["grass"], ["grass", "colorless"], False),
        ([], [], True),
        (["lightning", "lightning"], ["lightning", "lightning"], True),
    ])
    def test_has_required_energy(self, attached, cost, expected):
        assert has_required_energy(attached, cost) is expected

    def test_typed_cost_is_paid_before_colorless(self):
        # the single fire must go to the fire requirement, not to colorless
        assert has_required_energy(["fire", "water"], ["colorless", "fire"])


class TestDamage:
    def test_common_attacker_deals_printed_damage(self, catalog):
        bulbasaur, charmander = catalog["A1-001"], catalog["A1-033"]
        assert calculate_damage(bulbasaur, charmander, bulbasaur.moves[0]) == 40

    def test_illustration_rare_is_scaled_and_floored(self, catalog):
        art_bulbasaur, charmander = catalog["A1-227"], catalog["A1-033"]
        # 40 * 1.25 = 50
        assert calculate_damage(art_bulbasaur, charmander, art_bulbasaur.moves[0]) == 50

    def test_rare_scaling_floors_to_tens(self, catalog):
        raichu, charmander = catalog["A1-095"], catalog["A1-033"]
        # 140 * 1.1 = 154 -> 150
        assert calculate_damage(raichu, charmander, raichu.moves[0]) == 150

    def test_weakness_bonus(self, catalog):
        pikachu, squirtle = catalog["A1-094"], catalog["A1-053"]
        assert calculate_damage(pikachu, squirtle, pikachu.moves[0]) == 40

    def test_zero_damage_move_stays_zero(self, catalog):
        jigglypuff, machop = catalog["A1-195"], catalog["A1-143"]
        assert calculate_damage(jigglypuff, machop, jigglypuff.moves[0]) == 0

    def test_unknown_rarity_is_neutral(self):
        assert rarity_multiplier("secret_rare") == 1.0


def test_can_act():
    assert can_act([])
    assert can_act(["poisoned"])
    assert not can_act(["asleep"])
    assert not can_act(["paralyzed", "poisoned"])
