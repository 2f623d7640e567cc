"""
Unit tests for decoding race / background rows into definitions.
"""

import pytest
from systems.catalog import normalize_equipment, normalize_skill, normalize_tool
from systems.character_creation.definitions import (
    ChoiceIncrease,
    CustomIncrease,
    DefinitionError,
    FixedIncrease,
    FixedMultiIncrease,
    decode_ability_increases,
    decode_proficiency_grant,
)


class TestDecodeAbilityIncreases:
    """Tests for the four ability increase shapes."""

    def test_list_is_fixed(self):
        """Legacy list rows decode to FixedIncrease."""
        inc = decode_ability_increases([{"ability": "Strength", "increase": 2}, {"ability": "CON", "increase": 1}])
        assert isinstance(inc, FixedIncrease)
        assert inc.increases == (("strength", 2), ("constitution", 1))

    def test_fixed_multi_drops_zero_rows(self):
        """fixed_multi keeps only non-zero abilities."""
        inc = decode_ability_increases({"type": "fixed_multi", "abilities": {"strength": 1, "wisdom": 0}})
        assert isinstance(inc, FixedMultiIncrease)
        assert inc.increases == (("strength", 1),)

    def test_choice_pattern_allows_duplicates(self):
        """A named pattern allows one ability to take two picks."""
        inc = decode_ability_increases(
            {"type": "choice", "choices": {"pattern": "three_ones", "count": 3, "increase": 1}}
        )
        assert isinstance(inc, ChoiceIncrease)
        assert inc.count == 3
        assert inc.per_ability_cap() == 2

    def test_custom_pool_excludes_fixed_ability(self):
        """Half-Elf style: the +2 ability is not in the +1 pool."""
        inc = decode_ability_increases(
            {"type": "custom", "fixed": {"ability": "Charisma", "increase": 2}, "choices": {"count": 2}}
        )
        assert isinstance(inc, CustomIncrease)
        assert inc.fixed == ("charisma", 2)
        assert "charisma" not in inc.choice.pool
        assert inc.choice.per_ability_cap() == 1

    def test_empty_is_none(self):
        assert decode_ability_increases(None) is None

    def test_unknown_type_raises(self):
        """Unknown shapes are a DefinitionError, not a silent skip."""
        with pytest.raises(DefinitionError):
            decode_ability_increases({"type": "mystery"})
        with pytest.raises(DefinitionError):
            decode_ability_increases({"type": "choice", "choices": {"count": 0}})


class TestDecodeProficiencyGrant:
    """Tests for proficiency grant shapes."""

    def test_list_and_string(self):
        assert decode_proficiency_grant(["Stealth"], normalize_skill).fixed == ("stealth",)
        assert decode_proficiency_grant("Sleight of Hand", normalize_skill).fixed == ("sleight_of_hand",)

    def test_fixed_plus_available(self):
        """fixed stays granted, available is the pool."""
        grant = decode_proficiency_grant(
            {"fixed": ["persuasion"], "available": ["arcana", "history"], "choice": {"count": 1, "from_selected": True}},
            normalize_skill,
        )
        assert grant.fixed == ("persuasion",)
        assert grant.options == ("arcana", "history")
        assert grant.choice_count == 1

    def test_from_selected_without_available_uses_fixed_as_pool(self):
        """from_selected with no available list means fixed is really the pool."""
        grant = decode_proficiency_grant(
            {"fixed": ["arcana", "religion", "survival"], "choice": {"count": 2, "from_selected": True}},
            normalize_skill,
        )
        assert grant.fixed == ()
        assert grant.options == ("arcana", "religion", "survival")
        assert grant.choice_count == 2

    def test_choice_without_options_allows_anything(self):
        grant = decode_proficiency_grant({"choice": {"count": 1}}, normalize_tool)
        assert grant.choice_count == 1
        assert grant.allows("Smith's Tools")


class TestDecodedRaces:
    """Tests against the registered race rows."""

    def test_hill_dwarf(self, race_def):
        race = race_def("hill_dwarf")
        assert race.speed == 25
        assert race.hp_bonus_per_level() == 1
        tools = race.feature("Tool Proficiency").tools
        assert tools.choice_count == 1
        assert "Smith's Tools" in tools.options

    def test_wood_elf_choice_feature(self, race_def):
        race = race_def("wood_elf")
        heritage = race.feature("Elven Heritage")
        assert [f.name for f in race.choice_features()] == ["Elven Heritage"]
        assert heritage.option("Fleet of Foot").speed_bonus == 5
        assert heritage.option("Wilderness Lore").skill_count == 1
        assert heritage.option("Elf Weapon Training").weapons == ("longswords", "shortswords")

    def test_high_elf_weapons_keep_tracked_categories_only(self, race_def):
        """Longbows are not an equipment flag; longswords are."""
        weapons = race_def("high_elf").feature("Elf Weapon Training").weapons
        assert "longswords" in weapons
        assert all(normalize_equipment(w) == w for w in weapons)

    def test_custom_lineage(self, race_def):
        race = race_def("custom_lineage")
        assert race.custom_lineage
        assert race.ability_choice().increase == 2


class TestDecodedBackgrounds:
    """Tests against the registered background rows."""

    def test_soldier_money_and_tables(self, background_def):
        bg = background_def("soldier")
        assert bg.money.as_dict() == {"gold": 10, "silver": 0, "copper": 0}
        assert bg.tools.fixed == ("Gaming Set",)
        assert bg.table("personality_traits")[0] == "I'm always polite and respectful."

    def test_haunted_one_pool(self, background_def):
        bg = background_def("haunted_one")
        assert bg.skills.fixed == ()
        assert bg.skills.choice_count == 2
        assert bg.money.silver == 1
