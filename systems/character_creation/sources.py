# systems/character_creation/sources.py

"""Sources: the rule origins that contribute bonuses to a character.

Design:
- Each source is a frozen dataclass with a stable `source_id` and a pure
  `contribute(draft)` that returns the Contribution it would apply given the
  current draft. Nothing here mutates the draft; the ledger records the
  returned Contribution and the wizard folds it in.
- Each source also knows how to `validate` its own user choices so the
  wizard can refuse a bad edit before anything is applied.

Variants:
- RaceSource:          main race + the picks made for it
- BackgroundSource:    background + its proficiency picks
- ClassEntrySource:    one class entry (by index): chosen skills / expertise
- AsiFeatureSource:    one Ability Score Improvement feature's choice
- CustomLineageSource: Custom Lineage's variable trait and bonus feat
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from engine.error_handler import ValidationError

from ..classes import ClassDef
from ..stats import ABILITIES, AbilityScores, normalize_ability
from .ability_resolver import racial_ability_bonuses, validate_choice_picks
from .bonuses import AttributedBonus, BonusKind, Contribution, SourceId, SourceKind
from .definitions import (
    BASE_SPEED,
    BackgroundDefinition,
    CustomIncrease,
    ProficiencyGrant,
    RaceDefinition,
)
from .draft import CharacterDraft, ClassEntry
from .feats import FeatDefinition

ASI_MAX_SCORE = 20


def _grant_problems(
    label: str,
    grants: Sequence[ProficiencyGrant],
    picks: Sequence[str],
    complete: bool,
    extra_required: int = 0,
    any_allowed: bool = False,
) -> List[str]:
    """Check picks against one or more "choose N" grants sharing a pick list."""
    problems: List[str] = []
    required = sum(g.choice_count for g in grants) + extra_required
    fixed = {value for g in grants for value in g.fixed}
    open_pool = any_allowed or any(g.choice_count and not g.options for g in grants)
    pool = {value for g in grants for value in g.options}

    if len(set(picks)) != len(picks):
        problems.append(f"{label}: the same option was picked twice")
    if len(picks) > required:
        problems.append(f"{label}: choose at most {required} (got {len(picks)})")
    if complete and len(picks) < required:
        problems.append(f"{label}: choose {required} (got {len(picks)})")
    for pick in picks:
        if pick in fixed:
            problems.append(f"{label}: {pick} is already granted")
        elif not open_pool and pick not in pool:
            problems.append(f"{label}: {pick} is not an option")
    return problems


def _flag_bonuses(source_id: SourceId, kind: BonusKind, values: Iterable[str]) -> List[AttributedBonus]:
    out: List[AttributedBonus] = []
    seen = set()
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(AttributedBonus(source_id, kind, value))
    return out


def _ability_bonuses(source_id: SourceId, totals: dict) -> List[AttributedBonus]:
    return [
        AttributedBonus(source_id, BonusKind.ABILITY, ability, totals[ability])
        for ability in ABILITIES
        if totals.get(ability)
    ]


# --- Race ------------------------------------------------------------------------

@dataclass(frozen=True)
class RaceChoices:
    ability_picks: Tuple[str, ...] = ()
    skill_picks: Tuple[str, ...] = ()
    tool_picks: Tuple[str, ...] = ()
    language_picks: Tuple[str, ...] = ()
    # (feature name, chosen option name)
    feature_options: Tuple[Tuple[str, str], ...] = ()

    def option_for(self, feature_name: str) -> Optional[str]:
        for name, option in self.feature_options:
            if name == feature_name:
                return option
        return None


@dataclass(frozen=True)
class RaceSource:
    race: RaceDefinition
    choices: RaceChoices = RaceChoices()

    @property
    def source_id(self) -> SourceId:
        return SourceId(SourceKind.RACE)

    def _chosen_options(self):
        for feature in self.race.choice_features():
            name = self.choices.option_for(feature.name)
            option = feature.option(name) if name else None
            if option is not None:
                yield feature, option

    def validate(self, base: Optional[AbilityScores] = None, complete: bool = False) -> List[str]:
        problems: List[str] = []
        choice = self.race.ability_choice()
        if choice is not None:
            fixed = None
            if isinstance(self.race.ability_increases, CustomIncrease) and self.race.ability_increases.fixed:
                fixed = self.race.ability_increases.fixed[0]
            problems.extend(
                validate_choice_picks(choice, self.choices.ability_picks, fixed_ability=fixed,
                                      base=base, complete=complete)
            )
        elif self.choices.ability_picks:
            problems.append(f"{self.race.name} has no ability score choice")

        skill_grants = [f.skills for f in self.race.features]
        option_skill_count = 0
        option_skill_any = False
        for feature in self.race.choice_features():
            chosen = self.choices.option_for(feature.name)
            if chosen is None:
                if complete:
                    problems.append(f"Choose an option for {feature.name}")
                continue
            option = feature.option(chosen)
            if option is None:
                problems.append(f"{chosen} is not an option of {feature.name}")
            elif option.skill_count:
                option_skill_count += option.skill_count
                option_skill_any = True

        problems.extend(
            _grant_problems("Race skills", skill_grants, self.choices.skill_picks, complete,
                            extra_required=option_skill_count, any_allowed=option_skill_any)
        )
        problems.extend(
            _grant_problems("Race tools", [f.tools for f in self.race.features],
                            self.choices.tool_picks, complete)
        )
        problems.extend(
            _grant_problems("Race languages", [self.race.languages],
                            self.choices.language_picks, complete)
        )
        return problems

    def contribute(self, draft: CharacterDraft) -> Contribution:
        sid = self.source_id
        bonuses: List[AttributedBonus] = []

        totals = racial_ability_bonuses(self.race.ability_increases, self.choices.ability_picks)
        bonuses.extend(_ability_bonuses(sid, totals))

        speed = self.race.speed - BASE_SPEED
        speed += sum(f.speed_bonus for f in self.race.features)
        speed += sum(option.speed_bonus for _, option in self._chosen_options())
        if speed:
            bonuses.append(AttributedBonus(sid, BonusKind.SPEED, "walk", speed))

        class_skills = set(draft.class_granted_skills())
        skills: List[str] = []
        for feature in self.race.features:
            skills.extend(feature.skills.fixed)
        for _, option in self._chosen_options():
            skills.extend(option.skills)
        skills.extend(self.choices.skill_picks)
        for bonus in _flag_bonuses(sid, BonusKind.SKILL, skills):
            # Recorded either way; the aggregator decides who owns an overlap
            detail = "also granted by class" if bonus.target in class_skills else ""
            bonuses.append(AttributedBonus(sid, BonusKind.SKILL, bonus.target, 1, detail))

        equipment: List[str] = []
        for feature in self.race.features:
            equipment.extend(feature.weapons)
        for _, option in self._chosen_options():
            equipment.extend(option.weapons)
        bonuses.extend(_flag_bonuses(sid, BonusKind.EQUIPMENT, equipment))

        tools: List[str] = []
        for feature in self.race.features:
            tools.extend(feature.tools.fixed)
        tools.extend(self.choices.tool_picks)
        bonuses.extend(_flag_bonuses(sid, BonusKind.TOOL, tools))

        languages = list(self.race.languages.fixed)
        for feature in self.race.features:
            languages.extend(feature.languages)
        languages.extend(self.choices.language_picks)
        bonuses.extend(_flag_bonuses(sid, BonusKind.LANGUAGE, languages))

        hp_per_level = self.race.hp_bonus_per_level()
        if hp_per_level:
            bonuses.append(AttributedBonus(sid, BonusKind.HP_PER_LEVEL, "hit_points", hp_per_level))

        traits = [f.name for f in self.race.features if f.feature_type != "choice" and f.name]
        traits.extend(option.name for _, option in self._chosen_options())
        bonuses.extend(_flag_bonuses(sid, BonusKind.TRAIT, traits))

        return Contribution(sid, tuple(bonuses))


# --- Background --------------------------------------------------------------------

@dataclass(frozen=True)
class BackgroundChoices:
    skill_picks: Tuple[str, ...] = ()
    tool_picks: Tuple[str, ...] = ()
    language_picks: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BackgroundSource:
    background: BackgroundDefinition
    choices: BackgroundChoices = BackgroundChoices()

    @property
    def source_id(self) -> SourceId:
        return SourceId(SourceKind.BACKGROUND)

    def validate(self, complete: bool = False) -> List[str]:
        bg = self.background
        problems = _grant_problems("Background skills", [bg.skills], self.choices.skill_picks, complete)
        problems += _grant_problems("Background tools", [bg.tools], self.choices.tool_picks, complete)
        problems += _grant_problems("Background languages", [bg.languages],
                                    self.choices.language_picks, complete)
        return problems

    def contribute(self, draft: CharacterDraft) -> Contribution:
        sid = self.source_id
        bg = self.background
        bonuses: List[AttributedBonus] = []
        bonuses += _flag_bonuses(sid, BonusKind.SKILL, list(bg.skills.fixed) + list(self.choices.skill_picks))
        bonuses += _flag_bonuses(sid, BonusKind.TOOL, list(bg.tools.fixed) + list(self.choices.tool_picks))
        bonuses += _flag_bonuses(
            sid, BonusKind.LANGUAGE, list(bg.languages.fixed) + list(self.choices.language_picks)
        )
        return Contribution(sid, tuple(bonuses))


# --- Class entries -------------------------------------------------------------------

@dataclass(frozen=True)
class ClassEntrySource:
    """
    Skill picks and expertise of the class entry at `index`.

    Equipment and saving throws are deliberately absent: they depend on the set
    of classes and are recomputed fresh by the proficiency aggregator.
    """
    index: int
    class_id: str
    skills: Tuple[str, ...] = ()
    expertise: Tuple[str, ...] = ()

    @classmethod
    def from_entry(cls, index: int, entry: ClassEntry) -> "ClassEntrySource":
        return cls(
            index=index,
            class_id=entry.class_id,
            skills=tuple(entry.selected_skills),
            expertise=tuple(entry.expertise_skills),
        )

    @property
    def source_id(self) -> SourceId:
        return SourceId(SourceKind.CLASS_ENTRY, str(self.index))

    def required_skill_count(self, class_def: ClassDef) -> int:
        return class_def.skill_count if self.index == 0 else class_def.multiclass_skill_count

    def validate(self, class_def: ClassDef, complete: bool = False) -> List[str]:
        grant = ProficiencyGrant(
            choice_count=self.required_skill_count(class_def),
            options=tuple(class_def.skill_pool),
        )
        return _grant_problems(f"{class_def.name} skills", [grant], list(self.skills), complete)

    def contribute(self, draft: CharacterDraft) -> Contribution:
        sid = self.source_id
        bonuses = _flag_bonuses(sid, BonusKind.SKILL, self.skills)
        bonuses += _flag_bonuses(sid, BonusKind.EXPERTISE, self.expertise)
        return Contribution(sid, tuple(bonuses))


# --- Ability Score Improvements --------------------------------------------------------

class AsiMode(Enum):
    UNSELECTED = "unselected"
    ABILITY_SCORES = "ability_scores"
    FEAT = "feat"


@dataclass(frozen=True)
class AsiFeatureSource:
    feature_id: str
    mode: AsiMode = AsiMode.ABILITY_SCORES
    first: Optional[str] = None
    second: Optional[str] = None
    feat: Optional[FeatDefinition] = None

    @property
    def source_id(self) -> SourceId:
        return SourceId(SourceKind.ASI_FEATURE, self.feature_id)

    def ability_amounts(self) -> dict:
        if self.mode is not AsiMode.ABILITY_SCORES or not self.first:
            return {}
        first = normalize_ability(self.first)
        if not self.second:
            return {first: 2}
        second = normalize_ability(self.second)
        if first == second:
            raise ValidationError(["Pick two different abilities, or only one for +2"])
        return {first: 1, second: 1}

    def contribute(self, draft: CharacterDraft) -> Contribution:
        sid = self.source_id
        if self.mode is AsiMode.FEAT:
            if self.feat is None:
                return Contribution(sid)
            bonus = AttributedBonus(sid, BonusKind.FEAT, self.feat.name, 1, self.feat.description)
            return Contribution(sid, (bonus,))

        amounts = self.ability_amounts()
        for ability, amount in amounts.items():
            # draft.abilities excludes this source here: the previous choice was reverted first
            if draft.abilities.get(ability) + amount > ASI_MAX_SCORE:
                raise ValidationError(
                    [f"{ability.title()} cannot go above {ASI_MAX_SCORE} with an Ability Score Improvement"]
                )
        return Contribution(sid, tuple(_ability_bonuses(sid, amounts)))


# --- Custom Lineage ----------------------------------------------------------------------

LINEAGE_DARKVISION = "darkvision"
LINEAGE_SKILL = "skill_proficiency"


@dataclass(frozen=True)
class CustomLineageSource:
    option: str
    skill: Optional[str] = None
    feat: Optional[FeatDefinition] = None

    @property
    def source_id(self) -> SourceId:
        return SourceId(SourceKind.CUSTOM_LINEAGE)

    def validate(self, complete: bool = False) -> List[str]:
        problems: List[str] = []
        if self.option not in (LINEAGE_DARKVISION, LINEAGE_SKILL):
            problems.append("Custom Lineage: choose darkvision or a skill proficiency")
        elif self.option == LINEAGE_SKILL and not self.skill:
            problems.append("Custom Lineage: choose a skill")
        if complete and self.feat is None:
            problems.append("Custom Lineage: choose a feat")
        return problems

    def contribute(self, draft: CharacterDraft) -> Contribution:
        sid = self.source_id
        bonuses: List[AttributedBonus] = []
        if self.option == LINEAGE_DARKVISION:
            bonuses.append(AttributedBonus(sid, BonusKind.TRAIT, "Darkvision", 60))
        elif self.option == LINEAGE_SKILL and self.skill:
            bonuses.append(AttributedBonus(sid, BonusKind.SKILL, self.skill))
        if self.feat is not None:
            bonuses.append(AttributedBonus(sid, BonusKind.FEAT, self.feat.name, 1, self.feat.description))
        return Contribution(sid, tuple(bonuses))


Source = Union[RaceSource, BackgroundSource, ClassEntrySource, AsiFeatureSource, CustomLineageSource]
