"""
Tests for the character creation wizard state machine.
"""

import asyncio
from dataclasses import replace

import pytest
from engine.catalog_client import InMemoryCatalog, LoadResult
from engine.error_handler import InvariantViolation, ValidationError
from engine.wizard import LINEAGE_SOURCE, RACE_SOURCE, CharacterWizard, WizardStep
from systems.stats import ABILITIES
from systems.character_creation.bonuses import BonusKind, SourceId, SourceKind
from systems.character_creation.draft import ProficiencyLevel
from systems.character_creation.sources import AsiMode

FIGHTER_4 = "fighter:4:ability_score_improvement"


def run(coro):
    return asyncio.run(coro)


def spend_points(wizard, strength=15, dexterity=15, constitution=15):
    wizard.set_base_score("strength", strength)
    wizard.set_base_score("dexterity", dexterity)
    wizard.set_base_score("constitution", constitution)


async def build_fighter(wizard):
    """A complete level 1 Human Fighter with a Soldier background."""
    await wizard.select_race("human")
    wizard.set_race_choices(language_picks=["Dwarvish"])
    await wizard.select_background("soldier")
    await wizard.add_class("fighter")
    wizard.set_class_skills(0, ["perception", "survival"])
    spend_points(wizard)
    wizard.roll_hit_points()
    wizard.set_name("  Bruenor   Battlehammer ")


class PrefixedIdCatalog(InMemoryCatalog):
    """A catalog whose class ids differ from the lowercased class names."""

    async def get_class_details(self, name):
        result = await super().get_class_details(name)
        if not result.ok:
            return result
        return LoadResult(data=replace(result.data, id=f"cls-{result.data.id}"))

    async def list_class_features(self, class_id, level, subclass=None, include_hidden=False):
        return await super().list_class_features(
            class_id.replace("cls-", "", 1), level, subclass, include_hidden
        )


class TestAbilityScenarios:
    """Race bonuses on top of point buy."""

    def test_human_all_tens(self, wizard):
        for ability in ABILITIES:
            wizard.set_base_score(ability, 10)
        assert run(wizard.select_race("human"))
        assert wizard.draft.point_buy.remaining() == 15
        for ability in ABILITIES:
            assert wizard.draft.abilities.get(ability) == 11
            assert wizard.draft.abilities.modifier(ability) == 0

    def test_half_elf_custom_increase(self, wizard):
        wizard.set_base_score("strength", 15)
        run(wizard.select_race("half_elf"))
        wizard.set_race_choices(ability_picks=["strength", "dexterity"])
        abilities = wizard.draft.abilities
        assert abilities.strength == 16
        assert abilities.dexterity == 9
        assert abilities.charisma == 10
        assert abilities.wisdom == 8

    def test_changing_picks_reverts_old_picks(self, wizard):
        run(wizard.select_race("half_elf"))
        wizard.set_race_choices(ability_picks=["strength", "dexterity"])
        wizard.set_race_choices(ability_picks=["wisdom", "intelligence"])
        abilities = wizard.draft.abilities
        assert (abilities.strength, abilities.dexterity) == (8, 8)
        assert (abilities.wisdom, abilities.intelligence) == (9, 9)

    def test_switching_race_reverts_exactly(self, wizard):
        run(wizard.select_race("half_orc"))
        run(wizard.select_race("high_elf"))
        abilities = wizard.draft.abilities
        assert abilities.strength == 8 and abilities.constitution == 8
        assert abilities.dexterity == 10 and abilities.intelligence == 9
        assert len(wizard.ledger.entries()) == 1

    def test_base_score_outside_budget(self, wizard):
        spend_points(wizard)
        with pytest.raises(ValidationError):
            wizard.set_base_score("wisdom", 9)
        assert wizard.draft.point_buy.base.wisdom == 8
        assert wizard.messages.last_message


class TestRaceSwitchProficiencies:
    def test_class_skill_survives_race_switch(self, wizard):
        """Half-Orc intimidation goes, High Elf perception comes, class athletics stays."""
        run(wizard.add_class("fighter"))
        wizard.set_class_skills(0, ["athletics", "survival"])
        run(wizard.select_race("half_orc"))
        skills = wizard.draft.skills
        assert skills["intimidation"].proficiency is ProficiencyLevel.PROFICIENT
        assert skills["athletics"].proficiency is ProficiencyLevel.PROFICIENT

        run(wizard.select_race("high_elf"))
        skills = wizard.draft.skills
        assert skills["intimidation"].proficiency is ProficiencyLevel.NONE
        assert skills["perception"].proficiency is ProficiencyLevel.PROFICIENT
        assert skills["athletics"].proficiency is ProficiencyLevel.PROFICIENT
        assert wizard.draft.equipment["longswords"]

    def test_race_skill_shared_with_class_stays(self, wizard):
        run(wizard.add_class("fighter"))
        wizard.set_class_skills(0, ["intimidation", "athletics"])
        run(wizard.select_race("half_orc"))
        run(wizard.select_race("human"))
        assert wizard.draft.skills["intimidation"].proficiency is ProficiencyLevel.PROFICIENT
        assert wizard.draft.skills["intimidation"].source == "class:0"

    def test_speed_and_traits_follow_race(self, wizard):
        run(wizard.select_race("hill_dwarf"))
        assert wizard.draft.speed == 25
        assert "Dwarven Toughness" in wizard.draft.traits
        run(wizard.select_race("wood_elf"))
        assert wizard.draft.speed == 35
        assert "Dwarven Toughness" not in wizard.draft.traits

    def test_leaving_custom_lineage_drops_its_trait(self, wizard):
        run(wizard.select_race("custom_lineage"))
        wizard.set_custom_lineage("darkvision")
        assert "Darkvision" in wizard.draft.traits
        run(wizard.select_race("human"))
        assert wizard.custom_lineage is None
        assert not wizard.ledger.is_active(LINEAGE_SOURCE)
        assert wizard.ledger.is_active(RACE_SOURCE)
        assert "Darkvision" not in wizard.draft.traits


class TestClasses:
    """Class entries, levels, subclasses and expertise."""

    def test_add_class_applies_source(self, wizard):
        assert run(wizard.add_class("fighter"))
        assert wizard.ledger.is_active(SourceId(SourceKind.CLASS_ENTRY, "0"))
        assert wizard.draft.saving_throws["strength"]
        assert wizard.draft.equipment["heavy_armor"]

    def test_duplicate_class_rejected(self, wizard):
        run(wizard.add_class("fighter"))
        with pytest.raises(ValidationError):
            run(wizard.add_class("Fighter"))
        assert len(wizard.draft.classes) == 1

    def test_total_level_cap(self, wizard):
        run(wizard.add_class("fighter", 15))
        with pytest.raises(ValidationError):
            run(wizard.add_class("wizard", 6))
        assert wizard.draft.character_level == 15

    def test_level_change_clears_subclass(self, wizard):
        run(wizard.add_class("wizard", 2))
        wizard.set_subclass(0, "School of Evocation")
        run(wizard.set_class_level(0, 1))
        assert wizard.draft.classes[0].subclass is None

    def test_subclass_too_early(self, wizard):
        run(wizard.add_class("fighter", 2))
        with pytest.raises(ValidationError):
            wizard.set_subclass(0, "Champion")

    def test_class_skill_outside_pool(self, wizard):
        run(wizard.add_class("fighter"))
        with pytest.raises(ValidationError):
            wizard.set_class_skills(0, ["arcana", "athletics"])
        assert wizard.draft.classes[0].selected_skills == []

    def test_expertise(self, wizard):
        run(wizard.add_class("rogue"))
        wizard.set_class_skills(0, ["stealth", "acrobatics", "perception", "insight"])
        assert wizard.expertise_slots(0) == 2
        wizard.set_class_expertise(0, ["stealth", "perception"])
        assert wizard.draft.skills["stealth"].proficiency is ProficiencyLevel.EXPERTISE
        with pytest.raises(ValidationError):
            wizard.set_class_expertise(0, ["arcana"])
        assert wizard.draft.skills["stealth"].proficiency is ProficiencyLevel.EXPERTISE

    def test_remove_class_shifts_later_entries(self, wizard):
        run(wizard.add_class("fighter"))
        run(wizard.add_class("rogue"))
        wizard.set_class_skills(1, ["stealth"])
        wizard.remove_class(0)
        assert [e.name for e in wizard.draft.classes] == ["Rogue"]
        assert wizard.ledger.is_active(SourceId(SourceKind.CLASS_ENTRY, "0"))
        assert not wizard.ledger.is_active(SourceId(SourceKind.CLASS_ENTRY, "1"))
        assert wizard.draft.skills["stealth"].proficiency is ProficiencyLevel.PROFICIENT
        assert not wizard.draft.equipment["heavy_armor"]
        assert not wizard.draft.saving_throws["strength"]

    def test_catalog_id_differs_from_name(self, rng):
        wizard = CharacterWizard(PrefixedIdCatalog(), rng=rng)
        assert run(wizard.add_class("fighter", 4))
        entry = wizard.draft.classes[0]
        assert entry.class_id == "cls-fighter"
        assert entry.name == "Fighter"
        assert "Choose a subclass for Fighter" in wizard.validate_step(WizardStep.CLASSES)
        assert wizard.draft.saving_throws["strength"]
        assert wizard.draft.equipment["heavy_armor"]

        wizard.set_class_skills(0, ["athletics", "survival"])
        assert wizard.draft.skills["athletics"].proficiency is ProficiencyLevel.PROFICIENT
        wizard.set_subclass(0, "Champion")
        assert wizard.validate_step(WizardStep.CLASSES) == []
        assert [c.class_id for c in wizard.asi_choices()] == ["cls-fighter"]
        assert wizard.validate_step(WizardStep.ASI) == [
            "Finish the Ability Score Improvement choice (Fighter level 4)"
        ]

        assert run(wizard.set_class_level(0, 5))
        assert entry.level == 5
        wizard.remove_class(0)
        assert wizard.draft.classes == []
        assert wizard.asi_choices() == []
        assert not wizard.draft.saving_throws["strength"]

    def test_duplicate_catalog_id_rejected(self, rng):
        wizard = CharacterWizard(PrefixedIdCatalog(), rng=rng)
        run(wizard.add_class("fighter"))
        with pytest.raises(ValidationError):
            run(wizard.add_class("Fighter"))
        assert len(wizard.draft.classes) == 1


class TestAsi:
    def test_plus_two_then_feat_reverts(self, wizard):
        """+2 DEX lands on DEX alone; switching to a feat removes exactly that +2."""
        spend_points(wizard)
        run(wizard.add_class("fighter", 4))
        before = {a: wizard.draft.abilities.get(a) for a in ABILITIES}

        wizard.choose_asi_ability_scores(FIGHTER_4, "dexterity")
        after = {a: wizard.draft.abilities.get(a) for a in ABILITIES}
        assert after["dexterity"] == before["dexterity"] + 2
        assert {a: v for a, v in after.items() if a != "dexterity"} == {
            a: v for a, v in before.items() if a != "dexterity"
        }

        wizard.set_asi_mode(FIGHTER_4, AsiMode.FEAT)
        assert {a: wizard.draft.abilities.get(a) for a in ABILITIES} == before
        wizard.choose_asi_feat(FIGHTER_4, wizard.define_feat("Sentinel"))
        assert [f.name for f in wizard.draft.feats] == ["Sentinel"]

    def test_level_drop_removes_asi(self, wizard):
        run(wizard.add_class("fighter", 4))
        wizard.choose_asi_ability_scores(FIGHTER_4, "strength")
        assert wizard.draft.abilities.strength == 10
        run(wizard.set_class_level(0, 3))
        assert wizard.asi_choices() == []
        assert wizard.draft.abilities.strength == 8

    def test_incomplete_asi_blocks_step(self, wizard):
        run(wizard.add_class("fighter", 4))
        problems = wizard.validate_step(WizardStep.ASI)
        assert problems == ["Finish the Ability Score Improvement choice (Fighter level 4)"]
        wizard.set_asi_selected(FIGHTER_4, False)
        assert wizard.validate_step(WizardStep.ASI) == []

    def test_empty_feat_name(self, wizard):
        with pytest.raises(ValidationError):
            wizard.define_feat("   ")

    def test_unknown_ability_is_refused(self, wizard):
        run(wizard.add_class("fighter", 4))
        with pytest.raises(ValidationError):
            wizard.choose_asi_ability_scores(FIGHTER_4, "luck")
        assert wizard.messages.last_message == "Unknown ability: luck"
        assert wizard.asi_choices()[0].first is None
        assert wizard.draft.abilities.strength == 8

    def test_ability_abbreviations_are_accepted(self, wizard):
        run(wizard.add_class("fighter", 4))
        wizard.choose_asi_ability_scores(FIGHTER_4, "STR", "Dexterity")
        assert wizard.draft.abilities.strength == 9
        assert wizard.draft.abilities.dexterity == 9

    def test_unknown_feature_id_is_refused(self, wizard):
        run(wizard.add_class("fighter", 4))
        with pytest.raises(ValidationError):
            wizard.set_asi_selected("nope", False)
        assert wizard.messages.last_message == "No Ability Score Improvement choice 'nope'"
        with pytest.raises(ValidationError):
            wizard.choose_asi_ability_scores("nope", "strength")
        with pytest.raises(ValidationError):
            wizard.choose_asi_feat("nope", wizard.define_feat("Sentinel"))
        assert wizard.asi_choices()[0].selected

    def test_unknown_mode_is_refused(self, wizard):
        run(wizard.add_class("fighter", 4))
        with pytest.raises(ValidationError):
            wizard.set_asi_mode(FIGHTER_4, "juggling")
        assert wizard.asi_choices()[0].mode is AsiMode.ABILITY_SCORES


class TestHitPoints:
    def test_roll_needs_spent_points(self, wizard):
        run(wizard.add_class("fighter"))
        with pytest.raises(ValidationError) as exc:
            wizard.roll_hit_points()
        assert exc.value.messages == ["Spend all point-buy points before rolling hit points (27 left)"]

    def test_constitution_change_recomputes(self, wizard):
        run(wizard.add_class("fighter"))
        spend_points(wizard)
        wizard.roll_hit_points()
        assert wizard.draft.max_hit_points == 12
        run(wizard.select_race("half_orc"))
        assert wizard.draft.max_hit_points == 13
        wizard.set_base_score("constitution", 13)
        assert wizard.draft.max_hit_points == 12

    def test_dwarven_toughness(self, wizard):
        run(wizard.add_class("fighter", 3))
        spend_points(wizard)
        run(wizard.select_race("hill_dwarf"))
        result = wizard.roll_hit_points()
        assert result.race_bonus == 3
        assert wizard.draft.max_hit_points == result.total

    def test_no_reroll(self, wizard):
        run(wizard.add_class("fighter"))
        spend_points(wizard)
        wizard.roll_hit_points()
        with pytest.raises(ValidationError):
            wizard.roll_hit_points()


class TestAsyncLoads:
    """Generation tokens drop stale and post-cancel results."""

    def test_stale_race_load_is_discarded(self, rng):
        catalog = InMemoryCatalog(delays={"get_race_details:half_orc": 0.05})
        wizard = CharacterWizard(catalog, rng=rng)

        async def scenario():
            return await asyncio.gather(wizard.select_race("half_orc"), wizard.select_race("human"))

        slow, fast = run(scenario())
        assert (slow, fast) == (False, True)
        assert wizard.draft.race_id == "human"
        assert wizard.draft.abilities.strength == 9
        assert len(wizard.ledger.bonuses(BonusKind.ABILITY)) == 6

    def test_cancel_drops_in_flight_load(self, rng):
        catalog = InMemoryCatalog(latency=0.02)
        wizard = CharacterWizard(catalog, rng=rng)

        async def scenario():
            task = asyncio.ensure_future(wizard.select_race("human"))
            await asyncio.sleep(0)
            wizard.cancel()
            return await task

        assert run(scenario()) is False
        assert wizard.closed
        assert not wizard.ledger.is_active(RACE_SOURCE)
        assert wizard.draft.race_id is None or wizard.draft.race_id == ""

    def test_closed_wizard_refuses_edits(self, wizard):
        wizard.cancel()
        with pytest.raises(ValidationError):
            wizard.set_name("Late")
        with pytest.raises(ValidationError):
            run(wizard.select_race("human"))

    def test_load_failure_leaves_state(self, catalog, rng):
        wizard = CharacterWizard(catalog, rng=rng)
        run(wizard.select_race("human"))
        catalog.fail("get_race_details")
        assert run(wizard.select_race("half_orc")) is False
        assert wizard.draft.race_id == "human"
        assert wizard.messages.last_message == "Could not load data. Try again."

        catalog.recover("get_race_details")
        assert run(wizard.select_race("half_orc"))

    def test_unknown_race_is_a_load_failure(self, wizard):
        assert run(wizard.select_race("dragon")) is False
        assert wizard.race is None


class TestTransactions:
    def test_rejected_choice_keeps_previous(self, wizard):
        run(wizard.select_race("half_elf"))
        wizard.set_race_choices(ability_picks=["strength", "dexterity"])
        with pytest.raises(ValidationError):
            wizard.set_race_choices(ability_picks=["charisma"])
        assert wizard.race_choices.ability_picks == ("strength", "dexterity")
        assert wizard.draft.abilities.strength == 9

    def test_invariant_violation_rolls_back(self, wizard, monkeypatch):
        run(wizard.add_class("fighter"))
        wizard.set_class_skills(0, ["athletics", "survival"])

        def broken(*args, **kwargs):
            raise InvariantViolation("aggregator exploded")

        monkeypatch.setattr(wizard.aggregator, "aggregate", broken)
        with pytest.raises(InvariantViolation):
            wizard.set_class_skills(0, ["perception", "history"])
        monkeypatch.undo()

        assert wizard.draft.classes[0].selected_skills == ["athletics", "survival"]
        assert wizard.ledger.is_active(SourceId(SourceKind.CLASS_ENTRY, "0"))
        assert wizard.draft.skills["athletics"].proficiency is ProficiencyLevel.PROFICIENT
        assert wizard.messages.last_message == "Something went wrong; your last change was undone."


class TestNavigation:
    def test_advance_requires_valid_step(self, wizard):
        with pytest.raises(ValidationError) as exc:
            wizard.advance()
        assert exc.value.messages == ["Choose a race"]
        assert wizard.step is WizardStep.RACE

    def test_go_to_only_over_validated_steps(self, wizard):
        run(wizard.select_race("half_orc"))
        assert wizard.advance() is WizardStep.BACKGROUND
        assert wizard.go_to(WizardStep.RACE) is WizardStep.RACE
        assert wizard.go_to(WizardStep.BACKGROUND) is WizardStep.BACKGROUND
        with pytest.raises(ValidationError):
            wizard.go_to(WizardStep.REVIEW)
        assert wizard.back() is WizardStep.RACE


class TestFinalize:
    def test_incomplete_finalize_changes_nothing(self, wizard):
        with pytest.raises(ValidationError) as exc:
            wizard.finalize()
        assert "Choose a race" in exc.value.messages
        assert "Enter a name" in exc.value.messages
        assert not wizard.closed
        assert wizard.record is None

    def test_finalize_builds_record(self, wizard):
        run(build_fighter(wizard))
        assert wizard.validate_all() == []
        record = wizard.finalize()

        assert wizard.closed
        assert record.name == "Bruenor Battlehammer"
        assert record.main_race_id == "human"
        assert record.level == 1
        assert record.max_hit_points == 13
        assert record.armor_class == 13
        assert record.initiative == 3
        assert record.speed == 30
        assert record.saving_throws == ("strength", "constitution")
        assert "heavy_armor" in record.equipment_proficiencies
        assert dict(record.money)["gold"] == 10
        assert "Dwarvish" in record.languages
        proficient = {s.name for s in record.skills if s.proficiency != ProficiencyLevel.NONE.value}
        assert {"perception", "survival", "athletics", "intimidation"} <= proficient

        with pytest.raises(ValidationError):
            wizard.set_name("Other")

    def test_secondary_race_is_recorded_without_bonuses(self, wizard):
        run(build_fighter(wizard))
        strength = wizard.draft.abilities.strength
        assert run(wizard.add_secondary_race("half_orc"))
        assert wizard.draft.abilities.strength == strength
        record = wizard.finalize()
        assert [r.id for r in record.races] == ["human", "half_orc"]
        assert [r.main for r in record.races] == [True, False]
