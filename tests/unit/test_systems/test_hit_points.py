"""
Unit tests for the hit point roller.
"""

import random

import pytest
from engine.error_handler import InvariantViolation, ValidationError
from systems.character_creation.draft import ClassEntry
from systems.character_creation.hit_points import HitPointRoller


def fighter(level=1):
    return ClassEntry(name="Fighter", level=level, hit_die=10)


def wizard(level=1):
    return ClassEntry(name="Wizard", level=level, hit_die=6)


class TestRoll:
    """Tests for the first roll."""

    def test_single_fighter_level_one(self, rng):
        """d10 maximum + CON +2 = 12."""
        result = HitPointRoller(rng).roll([fighter()], constitution_modifier=2)
        assert result.total == 12
        assert result.per_class[0].dice == (10,)

    def test_multiclass_breakdown(self, rng):
        """Fighter 3 / Wizard 2: level 1 of each class is the maximum."""
        result = HitPointRoller(rng).roll([fighter(3), wizard(2)], constitution_modifier=1)
        fighter_hp, wizard_hp = result.per_class
        assert fighter_hp.dice[0] == 10 and len(fighter_hp.dice) == 3
        assert all(1 <= d <= 10 for d in fighter_hp.dice[1:])
        assert wizard_hp.dice[0] == 6 and len(wizard_hp.dice) == 2
        assert 1 <= wizard_hp.dice[1] <= 6
        assert fighter_hp.subtotal == sum(fighter_hp.dice) + 3
        assert wizard_hp.subtotal == sum(wizard_hp.dice) + 2
        assert result.total == fighter_hp.subtotal + wizard_hp.subtotal
        assert result.character_level == 5

    def test_race_bonus_is_flat_per_character_level(self, rng):
        """Dwarven Toughness adds character level once, not per class."""
        result = HitPointRoller(rng).roll([fighter(3), wizard(2)], 0, hp_bonus_per_level=1)
        assert result.race_bonus == 5
        assert result.total == sum(c.subtotal for c in result.per_class) + 5

    def test_total_never_below_level(self):
        """Even at the worst Constitution every level is worth at least 1 HP."""
        rng = random.Random(99)
        for _ in range(200):
            classes = [
                ClassEntry(name="Wizard", level=rng.randint(1, 10), hit_die=6),
                ClassEntry(name="Sorcerer", level=rng.randint(1, 10), hit_die=6),
            ]
            result = HitPointRoller(rng).roll(classes, constitution_modifier=-5)
            assert result.total >= sum(c.level for c in classes)
            for part in result.per_class:
                assert part.subtotal >= part.level

    def test_no_reroll(self, rng):
        roller = HitPointRoller(rng)
        roller.roll([fighter()], 0)
        with pytest.raises(ValidationError):
            roller.roll([fighter()], 0)

    def test_needs_a_class(self, rng):
        with pytest.raises(ValidationError):
            HitPointRoller(rng).roll([], 0)

    def test_total_level_over_twenty(self, rng):
        with pytest.raises(InvariantViolation):
            HitPointRoller(rng).roll([fighter(15), wizard(6)], 0)


class TestRecompute:
    """Tests for recompute keeping the raw dice."""

    def test_constitution_change_keeps_dice(self, rng):
        roller = HitPointRoller(rng)
        first = roller.roll([fighter(4)], constitution_modifier=0)
        again = roller.recompute([fighter(4)], constitution_modifier=2)
        assert again.per_class[0].dice == first.per_class[0].dice
        assert again.total == first.total + 8

    def test_level_down_then_up_reuses_die(self, rng):
        roller = HitPointRoller(rng)
        first = roller.roll([fighter(3)], 0)
        roller.recompute([fighter(2)], 0)
        back = roller.recompute([fighter(3)], 0)
        assert back.per_class[0].dice == first.per_class[0].dice

    def test_new_level_rolls_once(self, rng):
        roller = HitPointRoller(rng)
        roller.roll([fighter(1)], 0)
        up = roller.recompute([fighter(2)], 0)
        again = roller.recompute([fighter(2)], 0)
        assert up.per_class[0].dice == again.per_class[0].dice

    def test_recompute_before_roll(self, rng):
        with pytest.raises(ValidationError):
            HitPointRoller(rng).recompute([fighter()], 0)

    def test_snapshot_restore(self, rng):
        roller = HitPointRoller(rng)
        state = roller.snapshot()
        roller.roll([fighter(2)], 0)
        roller.restore(state)
        assert not roller.has_rolled
        roller.roll([fighter(2)], 0)
