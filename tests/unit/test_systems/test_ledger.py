"""
Unit tests for the modifier ledger and the sources it records.
"""

import random

import pytest
from engine.error_handler import InvariantViolation, ValidationError
from systems.stats import ABILITIES
from systems.character_creation.ability_resolver import resolve
from systems.character_creation.bonuses import BonusKind, Contribution, SourceId, SourceKind
from systems.character_creation.draft import ClassEntry
from systems.character_creation.feats import get_feat
from systems.character_creation.ledger import ModifierLedger
from systems.character_creation.sources import (
    AsiFeatureSource,
    AsiMode,
    BackgroundChoices,
    BackgroundSource,
    ClassEntrySource,
    CustomLineageSource,
    RaceChoices,
    RaceSource,
)


def _totals(ledger):
    """target -> summed amount, per kind, across every active source."""
    out = {}
    for bonus in ledger.bonuses():
        key = (bonus.kind, bonus.target)
        out[key] = out.get(key, 0) + bonus.amount
    return out


class TestRaceSource:
    """Tests for race contributions."""

    def test_fixed_race_contribution(self, draft, race_def):
        """Half-Orc: +2 STR, +1 CON, intimidation, languages and traits."""
        contribution = RaceSource(race_def("half_orc")).contribute(draft)
        assert contribution.ability_totals() == {"strength": 2, "constitution": 1}
        assert contribution.targets(BonusKind.SKILL) == ["intimidation"]
        assert contribution.targets(BonusKind.LANGUAGE) == ["Common", "Orc"]
        assert "Relentless Endurance" in contribution.targets(BonusKind.TRAIT)
        assert contribution.of_kind(BonusKind.SPEED) == []

    def test_speed_and_hp_per_level(self, draft, race_def):
        """Hill Dwarf is 5 ft slower and gets +1 HP per level."""
        contribution = RaceSource(race_def("hill_dwarf")).contribute(draft)
        assert [b.amount for b in contribution.of_kind(BonusKind.SPEED)] == [-5]
        assert [b.amount for b in contribution.of_kind(BonusKind.HP_PER_LEVEL)] == [1]

    def test_choice_option_bonuses(self, draft, race_def):
        """Fleet of Foot adds 5 ft on top of the wood elf's 35."""
        choices = RaceChoices(feature_options=(("Elven Heritage", "Fleet of Foot"),))
        contribution = RaceSource(race_def("wood_elf"), choices).contribute(draft)
        assert sum(b.amount for b in contribution.of_kind(BonusKind.SPEED)) == 10
        assert "Fleet of Foot" in contribution.targets(BonusKind.TRAIT)

    def test_contribute_is_idempotent(self, draft, race_def):
        """Same context, same contribution."""
        source = RaceSource(race_def("half_elf"), RaceChoices(ability_picks=("strength", "dexterity")))
        assert source.contribute(draft) == source.contribute(draft)

    def test_class_overlap_is_recorded_not_dropped(self, draft, race_def):
        """A race skill the class already grants is still part of the contribution."""
        draft.classes.append(ClassEntry(name="Fighter", selected_skills=["intimidation"]))
        contribution = RaceSource(race_def("half_orc")).contribute(draft)
        bonus = contribution.of_kind(BonusKind.SKILL)[0]
        assert bonus.target == "intimidation"
        assert bonus.detail == "also granted by class"

    def test_validate_choices(self, race_def):
        """Half-Elf needs two non-CHA picks, two skills and a language."""
        race = race_def("half_elf")
        assert RaceSource(race).validate(complete=False) == []
        problems = RaceSource(race).validate(complete=True)
        assert any("Choose 2 abilities" in p for p in problems)
        assert any("Race skills" in p for p in problems)
        assert any("Race languages" in p for p in problems)

        bad = RaceSource(race, RaceChoices(ability_picks=("charisma",)))
        assert "Charisma already receives the fixed increase" in bad.validate()

    def test_validate_feature_option_names(self, race_def):
        source = RaceSource(race_def("wood_elf"), RaceChoices(feature_options=(("Elven Heritage", "Wings"),)))
        assert "Wings is not an option of Elven Heritage" in source.validate()


class TestOtherSources:
    """Tests for background, class, ASI and custom lineage sources."""

    def test_background_fixed_and_picks(self, draft, background_def):
        bg = background_def("knight_of_the_order")
        source = BackgroundSource(bg, BackgroundChoices(skill_picks=("history",), tool_picks=("Smith's Tools",)))
        contribution = source.contribute(draft)
        assert contribution.targets(BonusKind.SKILL) == ["persuasion", "history"]
        assert contribution.targets(BonusKind.TOOL) == ["Smith's Tools"]
        assert source.validate() == []

    def test_background_pick_outside_pool(self, background_def):
        bg = background_def("knight_of_the_order")
        problems = BackgroundSource(bg, BackgroundChoices(skill_picks=("stealth",))).validate()
        assert problems == ["Background skills: stealth is not an option"]

    def test_background_pick_of_fixed_skill(self, background_def):
        bg = background_def("knight_of_the_order")
        problems = BackgroundSource(bg, BackgroundChoices(skill_picks=("persuasion",))).validate()
        assert problems == ["Background skills: persuasion is already granted"]

    def test_class_entry_source(self, draft):
        source = ClassEntrySource(0, "rogue", ("stealth", "acrobatics"), ("stealth",))
        contribution = source.contribute(draft)
        assert source.source_id == SourceId(SourceKind.CLASS_ENTRY, "0")
        assert contribution.targets(BonusKind.SKILL) == ["stealth", "acrobatics"]
        assert contribution.targets(BonusKind.EXPERTISE) == ["stealth"]

    def test_asi_ability_split(self, draft):
        plus_two = AsiFeatureSource("f:4:asi", first="dexterity").contribute(draft)
        assert plus_two.ability_totals() == {"dexterity": 2}
        split = AsiFeatureSource("f:4:asi", first="dexterity", second="wisdom").contribute(draft)
        assert split.ability_totals() == {"dexterity": 1, "wisdom": 1}
        with pytest.raises(ValidationError):
            AsiFeatureSource("f:4:asi", first="dexterity", second="DEX").contribute(draft)

    def test_asi_cannot_pass_twenty(self, draft):
        """The draft is the context for the 20 cap."""
        draft.abilities.set("strength", 19)
        with pytest.raises(ValidationError):
            AsiFeatureSource("f:4:asi", first="strength").contribute(draft)
        assert AsiFeatureSource("f:4:asi", first="strength", second="wisdom").contribute(draft)

    def test_asi_feat_and_unselected(self, draft):
        feat = get_feat("Alert")
        contribution = AsiFeatureSource("f:4:asi", mode=AsiMode.FEAT, feat=feat).contribute(draft)
        assert contribution.targets(BonusKind.FEAT) == ["Alert"]
        assert AsiFeatureSource("f:4:asi", mode=AsiMode.UNSELECTED).contribute(draft).is_empty()

    def test_custom_lineage(self, draft):
        source = CustomLineageSource("skill_proficiency", skill="stealth", feat=get_feat("Lucky"))
        contribution = source.contribute(draft)
        assert contribution.targets(BonusKind.SKILL) == ["stealth"]
        assert contribution.targets(BonusKind.FEAT) == ["Lucky"]
        assert CustomLineageSource("skill_proficiency").validate() == ["Custom Lineage: choose a skill"]
        assert CustomLineageSource("wings").validate() != []


class TestModifierLedger:
    """Tests for apply / revert bookkeeping."""

    def test_apply_records_and_revert_returns_same(self, draft, race_def):
        ledger = ModifierLedger()
        source = RaceSource(race_def("human"))
        applied = ledger.apply(source, draft)
        assert ledger.is_active(source.source_id)
        assert source.source_id in ledger
        assert ledger.contribution_of(source.source_id) == applied
        assert ledger.source_of(source.source_id) is source

        reverted = ledger.revert(source.source_id, applied)
        assert reverted == applied
        assert len(ledger) == 0

    def test_double_apply_is_invariant_violation(self, draft, race_def):
        ledger = ModifierLedger()
        ledger.apply(RaceSource(race_def("human")), draft)
        with pytest.raises(InvariantViolation):
            ledger.apply(RaceSource(race_def("half_orc")), draft)

    def test_revert_of_inactive_source(self):
        with pytest.raises(InvariantViolation):
            ModifierLedger().revert(SourceId(SourceKind.RACE))

    def test_revert_with_mismatched_contribution(self, draft, race_def):
        """A caller holding a different contribution than the ledger is a bug."""
        ledger = ModifierLedger()
        ledger.apply(RaceSource(race_def("human")), draft)
        with pytest.raises(InvariantViolation):
            ledger.revert(SourceId(SourceKind.RACE), Contribution(SourceId(SourceKind.RACE)))
        assert ledger.is_active(SourceId(SourceKind.RACE))

    def test_revert_never_recomputes(self, draft, race_def):
        """Revert hands back what apply stored even when the context has moved."""
        ledger = ModifierLedger()
        applied = ledger.apply(RaceSource(race_def("half_orc")), draft)
        draft.classes.append(ClassEntry(name="Fighter", selected_skills=["intimidation"]))
        assert ledger.revert(SourceId(SourceKind.RACE)) == applied

    def test_entries_are_in_apply_order(self, draft, race_def, background_def):
        ledger = ModifierLedger()
        ledger.apply(BackgroundSource(background_def("sage")), draft)
        ledger.apply(RaceSource(race_def("human")), draft)
        assert [e.source_id.kind for e in ledger.entries()] == [SourceKind.BACKGROUND, SourceKind.RACE]
        assert ledger.entries()[0].sequence < ledger.entries()[1].sequence

    def test_snapshot_restore(self, draft, race_def):
        ledger = ModifierLedger()
        snap = ledger.snapshot()
        ledger.apply(RaceSource(race_def("human")), draft)
        ledger.restore(snap)
        assert len(ledger) == 0

    def test_revert_is_non_interfering(self, draft, race_def, background_def):
        """Random apply/revert of one source never disturbs the others' totals."""
        rng = random.Random(3)
        ledger = ModifierLedger()
        ledger.apply(BackgroundSource(background_def("criminal")), draft)
        ledger.apply(ClassEntrySource(0, "rogue", ("stealth", "insight")), draft)
        ledger.apply(AsiFeatureSource("rogue:4:asi", first="dexterity", second="wisdom"), draft)

        races = ["human", "half_elf", "half_orc", "hill_dwarf", "wood_elf", "harengon"]
        for _ in range(50):
            before = _totals(ledger)
            base_before = resolve(draft.point_buy.base, ledger.bonuses(BonusKind.ABILITY))
            source = RaceSource(race_def(rng.choice(races)))
            ledger.apply(source, draft)
            ledger.revert(source.source_id)
            assert _totals(ledger) == before
            after = resolve(draft.point_buy.base, ledger.bonuses(BonusKind.ABILITY))
            assert all(after.get(a) == base_before.get(a) for a in ABILITIES)
