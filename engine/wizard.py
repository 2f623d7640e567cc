"""
Character creation wizard.

Owns one CharacterDraft and everything derived from it for a single session:
the modifier ledger, the ASI resolver and the hit point roller. Every user
action is a named transition on CharacterWizard.

Ordering rules:
- replacing a source is revert -> settle -> apply -> settle, with no await in
  between, so the new source always sees the post-revert draft
- catalog loads take a per-slot generation token before awaiting; a result
  that comes back after the slot moved on (or the wizard closed) is dropped
- every mutating transition runs in a transaction: on a validation failure or
  an invariant violation the whole session state is rolled back
"""

import copy
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from engine.catalog_client import CatalogClient, ImageUploader
from engine.error_handler import InvariantViolation, ValidationError, log_error
from engine.message_log import MessageLog
from systems.catalog import normalize_language, normalize_skill, normalize_tool
from systems.classes import ClassDef, ClassFeature
from systems.stats import ABILITIES, normalize_ability
from systems.character_creation.ability_resolver import resolve
from systems.character_creation.asi import AsiChoice, AsiResolver
from systems.character_creation.bonuses import BonusKind, Contribution, SourceId, SourceKind
from systems.character_creation.definitions import BASE_SPEED, BackgroundDefinition, RaceDefinition
from systems.character_creation.draft import MAX_CHARACTER_LEVEL, CharacterDraft, ClassEntry
from systems.character_creation.feats import FeatDefinition, create_feat
from systems.character_creation.hit_points import HitPointResult, HitPointRoller
from systems.character_creation.ledger import ModifierLedger
from systems.character_creation.proficiencies import ProficiencyAggregator
from systems.character_creation.record import (
    CharacterCreationRecord,
    RecordClass,
    RecordRace,
    RecordSkill,
)
from systems.character_creation.sources import (
    AsiMode,
    BackgroundChoices,
    BackgroundSource,
    ClassEntrySource,
    CustomLineageSource,
    RaceChoices,
    RaceSource,
    Source,
)
from telemetry.logger import telemetry

logger = logging.getLogger("charforge.wizard")

RACE_SOURCE = SourceId(SourceKind.RACE)
BACKGROUND_SOURCE = SourceId(SourceKind.BACKGROUND)
LINEAGE_SOURCE = SourceId(SourceKind.CUSTOM_LINEAGE)

MAX_NAME_LENGTH = 64


class WizardStep(Enum):
    RACE = "race"
    BACKGROUND = "background"
    CLASSES = "classes"
    ABILITIES = "abilities"
    ASI = "asi"
    HIT_POINTS = "hit_points"
    DETAILS = "details"
    REVIEW = "review"


STEP_ORDER: Tuple[WizardStep, ...] = tuple(WizardStep)


def _class_source_id(index: int) -> SourceId:
    return SourceId(SourceKind.CLASS_ENTRY, str(index))


def _asi_source_id(feature_id: str) -> SourceId:
    return SourceId(SourceKind.ASI_FEATURE, feature_id)


def _normalize_all(values: Iterable[str], normalizer, label: str) -> Tuple[str, ...]:
    out = []
    bad = []
    for value in values or ():
        try:
            out.append(normalizer(value))
        except KeyError:
            bad.append(f"Unknown {label}: {value}")
    if bad:
        raise ValidationError(bad)
    return tuple(out)


class CharacterWizard:
    def __init__(
        self,
        catalog: CatalogClient,
        uploader: Optional[ImageUploader] = None,
        rng=None,
        messages: Optional[MessageLog] = None,
    ) -> None:
        self.catalog = catalog
        self.uploader = uploader
        self.messages = messages or MessageLog()

        self.draft = CharacterDraft()
        self.ledger = ModifierLedger()
        self.asi = AsiResolver()
        self.hit_points = HitPointRoller(rng)
        self.aggregator = ProficiencyAggregator()

        self.step: WizardStep = WizardStep.RACE
        self.validated: Set[WizardStep] = set()
        self.closed = False
        self.record: Optional[CharacterCreationRecord] = None

        self.race: Optional[RaceDefinition] = None
        self.race_choices = RaceChoices()
        self.custom_lineage: Optional[CustomLineageSource] = None
        self.background: Optional[BackgroundDefinition] = None
        self.background_choices = BackgroundChoices()
        self.class_defs: Dict[str, ClassDef] = {}
        self.class_features: Dict[str, List[ClassFeature]] = {}
        self.hp_result: Optional[HitPointResult] = None

        # contribution returned by each apply, handed back to the matching revert
        self._applied: Dict[SourceId, Contribution] = {}
        self._generations: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Plumbing: transactions, generations, settle
    # ------------------------------------------------------------------

    _STATE_FIELDS = (
        "draft", "step", "validated", "race", "race_choices", "custom_lineage",
        "background", "background_choices", "class_defs", "class_features",
        "hp_result", "_applied",
    )

    def _snapshot(self) -> dict:
        state = {name: copy.copy(getattr(self, name)) for name in self._STATE_FIELDS}
        state["draft"] = copy.deepcopy(self.draft)
        state["ledger"] = self.ledger.snapshot()
        state["asi"] = self.asi.snapshot()
        state["hit_points"] = self.hit_points.snapshot()
        return state

    def _restore(self, state: dict) -> None:
        for name in self._STATE_FIELDS:
            setattr(self, name, state[name])
        self.ledger.restore(state["ledger"])
        self.asi.restore(state["asi"])
        self.hit_points.restore(state["hit_points"])

    @contextmanager
    def _transaction(self, context: str):
        state = self._snapshot()
        try:
            yield
        except ValidationError as e:
            self._restore(state)
            logger.info("%s refused: %s", context, "; ".join(e.messages))
            self.messages.add_many(e.messages, severity="warning")
            raise
        except InvariantViolation as e:
            self._restore(state)
            log_error(e, context)
            self.messages.add(e.user_message, severity="error")
            raise

    def _reject(self, context: str, problems: Sequence[str]) -> None:
        logger.info("%s refused: %s", context, "; ".join(problems))
        self.messages.add_many(list(problems), severity="warning")
        raise ValidationError(problems)

    def _require_open(self, context: str) -> None:
        if self.closed:
            self._reject(context, ["This character wizard is closed"])

    def _begin_load(self, slot: str) -> int:
        self._generations[slot] = self._generations.get(slot, 0) + 1
        return self._generations[slot]

    def _is_current(self, slot: str, token: int) -> bool:
        return not self.closed and self._generations.get(slot) == token

    def _load_failed(self, context: str, error) -> None:
        logger.warning("%s: load failed: %s", context, error)
        self.messages.add(getattr(error, "user_message", str(error)), severity="warning")

    def _revert(self, source_id: SourceId) -> None:
        if not self.ledger.is_active(source_id):
            return
        self.ledger.revert(source_id, self._applied.pop(source_id, None))
        self._settle()

    def _apply(self, source: Source) -> Contribution:
        contribution = self.ledger.apply(source, self.draft)
        self._applied[source.source_id] = contribution
        self._settle()
        return contribution

    def _replace(self, source_id: SourceId, new_source: Optional[Source]) -> Optional[Contribution]:
        """Revert (and settle) the old source before the new one reads the draft."""
        self._revert(source_id)
        if new_source is None:
            return None
        return self._apply(new_source)

    def hp_bonus_per_level(self) -> int:
        return sum(b.amount for b in self.ledger.bonuses(BonusKind.HP_PER_LEVEL))

    def _settle(self) -> None:
        """Rewrite every derived draft field from point buy + the ledger."""
        draft = self.draft
        if draft.character_level > MAX_CHARACTER_LEVEL:
            raise InvariantViolation(f"Total level {draft.character_level} exceeds {MAX_CHARACTER_LEVEL}")

        draft.abilities = resolve(draft.point_buy.base, self.ledger.bonuses(BonusKind.ABILITY))

        sets = self.aggregator.aggregate(self.ledger.entries(), draft.classes, self.class_defs)
        draft.skills = sets.skills
        draft.tools = sets.tools
        draft.equipment = sets.equipment
        draft.languages = sets.languages
        draft.saving_throws = sets.saving_throws

        draft.speed = BASE_SPEED + sum(b.amount for b in self.ledger.bonuses(BonusKind.SPEED))
        draft.feats = [FeatDefinition(b.target, b.detail) for b in self.ledger.bonuses(BonusKind.FEAT)]
        draft.traits = [b.target for b in self.ledger.bonuses(BonusKind.TRAIT)]

        if self.hit_points.has_rolled:
            self.hp_result = self.hit_points.recompute(
                draft.classes, draft.abilities.modifier("constitution"), self.hp_bonus_per_level()
            )
            draft.max_hit_points = self.hp_result.total
            draft.current_hit_points = self.hp_result.total

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _set_step(self, step: WizardStep) -> WizardStep:
        if step is not self.step:
            telemetry.log("wizard_step", from_step=self.step.value, to_step=step.value)
            logger.debug("step %s -> %s", self.step.value, step.value)
        self.step = step
        return step

    def advance(self) -> WizardStep:
        self._require_open("advance")
        problems = self.validate_step(self.step)
        if problems:
            self._reject(f"advance from {self.step.value}", problems)
        self.validated.add(self.step)
        index = STEP_ORDER.index(self.step)
        if index + 1 < len(STEP_ORDER):
            return self._set_step(STEP_ORDER[index + 1])
        return self.step

    def back(self) -> WizardStep:
        index = STEP_ORDER.index(self.step)
        if index > 0:
            return self._set_step(STEP_ORDER[index - 1])
        return self.step

    def go_to(self, step: WizardStep) -> WizardStep:
        """Jump back freely; jump forward only over validated steps."""
        self._require_open("go_to")
        target = STEP_ORDER.index(step)
        current = STEP_ORDER.index(self.step)
        if target > current:
            skipped = [s for s in STEP_ORDER[:target] if s not in self.validated]
            if skipped:
                self._reject("go_to", [f"Complete the {s.value.replace('_', ' ')} step first" for s in skipped])
        return self._set_step(step)

    # ------------------------------------------------------------------
    # Race
    # ------------------------------------------------------------------

    async def select_race(self, race_id: str) -> bool:
        """Load and apply a main race. Returns False when the load was dropped or failed."""
        self._require_open("select_race")
        token = self._begin_load("race")
        result = await self.catalog.get_race_details(race_id)
        if not self._is_current("race", token):
            logger.info("Discarding stale race load %s", race_id)
            return False
        if not result.ok:
            self._load_failed("select_race", result.error)
            return False

        race = result.data
        with self._transaction("select_race"):
            self.race = race
            self.race_choices = RaceChoices()
            self.draft.race_id = race.id
            if race.id in self.draft.secondary_race_ids:
                self.draft.secondary_race_ids.remove(race.id)
            if not race.custom_lineage:
                self.custom_lineage = None
                self._revert(LINEAGE_SOURCE)
            self._replace(RACE_SOURCE, RaceSource(race, self.race_choices))
        return True

    def set_race_choices(
        self,
        ability_picks: Sequence[str] = (),
        skill_picks: Sequence[str] = (),
        tool_picks: Sequence[str] = (),
        language_picks: Sequence[str] = (),
        feature_options: Optional[Mapping[str, str]] = None,
    ) -> Contribution:
        self._require_open("set_race_choices")
        with self._transaction("set_race_choices"):
            if self.race is None:
                raise ValidationError(["Choose a race first"])
            choices = RaceChoices(
                ability_picks=_normalize_all(ability_picks, normalize_ability, "ability"),
                skill_picks=_normalize_all(skill_picks, normalize_skill, "skill"),
                tool_picks=tuple(normalize_tool(t) for t in tool_picks),
                language_picks=tuple(normalize_language(l) for l in language_picks),
                feature_options=tuple(sorted((feature_options or {}).items())),
            )
            source = RaceSource(self.race, choices)
            problems = source.validate(base=self.draft.point_buy.base, complete=False)
            if problems:
                raise ValidationError(problems)
            self.race_choices = choices
            return self._replace(RACE_SOURCE, source)

    async def add_secondary_race(self, race_id: str) -> bool:
        """Secondary races are recorded on the character; they carry no bonuses."""
        self._require_open("add_secondary_race")
        token = self._begin_load(f"secondary_race:{race_id}")
        result = await self.catalog.get_race_details(race_id)
        if not self._is_current(f"secondary_race:{race_id}", token):
            return False
        if not result.ok:
            self._load_failed("add_secondary_race", result.error)
            return False
        if race_id == self.draft.race_id:
            self._reject("add_secondary_race", [f"{result.data.name} is already the main race"])
        if race_id not in self.draft.secondary_race_ids:
            self.draft.secondary_race_ids.append(race_id)
        return True

    def remove_secondary_race(self, race_id: str) -> None:
        if race_id in self.draft.secondary_race_ids:
            self.draft.secondary_race_ids.remove(race_id)

    def set_custom_lineage(
        self,
        option: str,
        skill: Optional[str] = None,
        feat: Optional[FeatDefinition] = None,
    ) -> Contribution:
        self._require_open("set_custom_lineage")
        with self._transaction("set_custom_lineage"):
            if self.race is None or not self.race.custom_lineage:
                raise ValidationError(["The current race has no Custom Lineage choice"])
            if skill:
                skill = _normalize_all([skill], normalize_skill, "skill")[0]
            source = CustomLineageSource(option=option, skill=skill, feat=feat)
            problems = source.validate(complete=False)
            if problems:
                raise ValidationError(problems)
            self.custom_lineage = source
            return self._replace(LINEAGE_SOURCE, source)

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    async def select_background(self, background_id: str) -> bool:
        self._require_open("select_background")
        token = self._begin_load("background")
        result = await self.catalog.get_background_details(background_id)
        if not self._is_current("background", token):
            logger.info("Discarding stale background load %s", background_id)
            return False
        if not result.ok:
            self._load_failed("select_background", result.error)
            return False

        background = result.data
        with self._transaction("select_background"):
            self.background = background
            self.background_choices = BackgroundChoices()
            self.draft.background_id = background.id
            self._replace(BACKGROUND_SOURCE, BackgroundSource(background, self.background_choices))
        return True

    def set_background_choices(
        self,
        skill_picks: Sequence[str] = (),
        tool_picks: Sequence[str] = (),
        language_picks: Sequence[str] = (),
    ) -> Contribution:
        self._require_open("set_background_choices")
        with self._transaction("set_background_choices"):
            if self.background is None:
                raise ValidationError(["Choose a background first"])
            choices = BackgroundChoices(
                skill_picks=_normalize_all(skill_picks, normalize_skill, "skill"),
                tool_picks=tuple(normalize_tool(t) for t in tool_picks),
                language_picks=tuple(normalize_language(l) for l in language_picks),
            )
            source = BackgroundSource(self.background, choices)
            problems = source.validate(complete=False)
            if problems:
                raise ValidationError(problems)
            self.background_choices = choices
            return self._replace(BACKGROUND_SOURCE, source)

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    def _level_problems(self, level: int, other_levels: int) -> List[str]:
        if level < 1 or level > MAX_CHARACTER_LEVEL:
            return [f"Class level must be between 1 and {MAX_CHARACTER_LEVEL}"]
        if other_levels + level > MAX_CHARACTER_LEVEL:
            return [f"Total character level cannot exceed {MAX_CHARACTER_LEVEL}"]
        return []

    def _entry(self, index: int) -> ClassEntry:
        if index < 0 or index >= len(self.draft.classes):
            self._reject("class", [f"No class at position {index + 1}"])
        return self.draft.classes[index]

    def _sync_asi(self, class_id: str, level: int) -> None:
        created, destroyed = self.asi.sync_class_features(
            class_id, level, self.class_features.get(class_id, [])
        )
        for feature_id in destroyed:
            self._revert(_asi_source_id(feature_id))
        for feature_id in created:
            source = self.asi.source_for(feature_id)
            if source is not None:
                self._apply(source)

    async def add_class(self, class_id: str, level: int = 1) -> bool:
        self._require_open("add_class")
        key = str(class_id).strip().lower()
        problems = self._level_problems(level, self.draft.character_level)
        if any(key in (entry.class_id, entry.name.strip().lower()) for entry in self.draft.classes):
            problems.append(f"{class_id} is already one of your classes")
        if problems:
            self._reject("add_class", problems)

        slot = f"class:{key}"
        token = self._begin_load(slot)
        details = await self.catalog.get_class_details(key)
        if not self._is_current(slot, token):
            return False
        if not details.ok:
            self._load_failed("add_class", details.error)
            return False
        class_def = details.data
        features = await self.catalog.list_class_features(class_def.id, level)
        if not self._is_current(slot, token):
            return False
        if not features.ok:
            self._load_failed("add_class", features.error)
            return False

        with self._transaction("add_class"):
            # the draft may have moved while we were loading
            problems = self._level_problems(level, self.draft.character_level)
            if any(entry.class_id == class_def.id for entry in self.draft.classes):
                problems.append(f"{class_def.name} is already one of your classes")
            if problems:
                raise ValidationError(problems)

            entry = ClassEntry(name=class_def.name, level=level, hit_die=class_def.hit_die, class_id=class_def.id)
            self.draft.classes.append(entry)
            self.class_defs[class_def.id] = class_def
            self.class_features[class_def.id] = list(features.data)
            index = len(self.draft.classes) - 1
            self._apply(ClassEntrySource.from_entry(index, entry))
            self._sync_asi(class_def.id, level)
        return True

    async def set_class_level(self, index: int, level: int) -> bool:
        self._require_open("set_class_level")
        entry = self._entry(index)
        problems = self._level_problems(level, self.draft.character_level - entry.level)
        if problems:
            self._reject("set_class_level", problems)

        class_id = entry.class_id
        slot = f"class:{class_id}"
        token = self._begin_load(slot)
        features = await self.catalog.list_class_features(class_id, level, entry.subclass)
        if not self._is_current(slot, token):
            return False
        if not features.ok:
            self._load_failed("set_class_level", features.error)
            return False

        with self._transaction("set_class_level"):
            # find the entry again: classes may have been removed meanwhile
            matches = [i for i, e in enumerate(self.draft.classes) if e.class_id == class_id]
            if not matches:
                return False
            entry = self.draft.classes[matches[0]]
            problems = self._level_problems(level, self.draft.character_level - entry.level)
            if problems:
                raise ValidationError(problems)

            entry.level = level
            class_def = self.class_defs[class_id]
            if not class_def.requires_subclass(level):
                entry.subclass = None
            self.class_features[class_id] = list(features.data)
            self._sync_asi(class_id, level)
            self._settle()
        return True

    def set_subclass(self, index: int, subclass: Optional[str]) -> None:
        self._require_open("set_subclass")
        entry = self._entry(index)
        class_def = self.class_defs[entry.class_id]
        with self._transaction("set_subclass"):
            if subclass is not None:
                if subclass not in class_def.subclasses:
                    raise ValidationError([f"{subclass} is not a {class_def.name} subclass"])
                if entry.level < class_def.subclass_selection_level:
                    raise ValidationError(
                        [f"{class_def.name} picks a subclass at level {class_def.subclass_selection_level}"]
                    )
            entry.subclass = subclass

    def set_class_skills(self, index: int, skills: Sequence[str]) -> Contribution:
        self._require_open("set_class_skills")
        entry = self._entry(index)
        with self._transaction("set_class_skills"):
            picks = _normalize_all(skills, normalize_skill, "skill")
            class_def = self.class_defs[entry.class_id]
            source = ClassEntrySource(index, entry.class_id, picks, tuple(entry.expertise_skills))
            problems = source.validate(class_def, complete=False)
            if problems:
                raise ValidationError(problems)
            entry.selected_skills = list(picks)
            return self._replace(source.source_id, source)

    def class_name(self, class_id: str) -> str:
        class_def = self.class_defs.get(class_id)
        return class_def.name if class_def else class_id.title()

    def expertise_slots(self, index: int) -> int:
        entry = self.draft.classes[index]
        features = self.class_features.get(entry.class_id, [])
        return 2 * sum(1 for f in features if f.name == "Expertise" and f.level <= entry.level)

    def set_class_expertise(self, index: int, skills: Sequence[str]) -> Contribution:
        self._require_open("set_class_expertise")
        entry = self._entry(index)
        with self._transaction("set_class_expertise"):
            picks = _normalize_all(skills, normalize_skill, "skill")
            slots = self.expertise_slots(index)
            problems = []
            if len(picks) > slots:
                problems.append(f"{entry.name} can choose {slots} expertise skill(s)")
            proficient = set(self.draft.proficient_skills())
            problems += [f"Expertise needs proficiency in {s}" for s in picks if s not in proficient]
            if problems:
                raise ValidationError(problems)
            entry.expertise_skills = list(picks)
            source = ClassEntrySource.from_entry(index, entry)
            return self._replace(source.source_id, source)

    def remove_class(self, index: int) -> None:
        self._require_open("remove_class")
        entry = self._entry(index)
        with self._transaction("remove_class"):
            # later entries shift down one index: revert them all, then re-apply
            for i in reversed(range(index, len(self.draft.classes))):
                self._revert(_class_source_id(i))
            for feature_id in self.asi.remove_class(entry.class_id):
                self._revert(_asi_source_id(feature_id))

            del self.draft.classes[index]
            self.class_defs.pop(entry.class_id, None)
            self.class_features.pop(entry.class_id, None)

            for i in range(index, len(self.draft.classes)):
                self._apply(ClassEntrySource.from_entry(i, self.draft.classes[i]))
            self._settle()

    # ------------------------------------------------------------------
    # Abilities / ASI
    # ------------------------------------------------------------------

    def set_base_score(self, ability: str, value: int) -> None:
        self._require_open("set_base_score")
        with self._transaction("set_base_score"):
            ability = _normalize_all([ability], normalize_ability, "ability")[0]
            if not self.draft.point_buy.try_set_base(ability, value):
                raise ValidationError(
                    [f"Cannot set {ability.title()} to {value} "
                     f"({self.draft.point_buy.remaining()} point(s) left, scores 8-15)"]
                )
            self._settle()

    def _check_asi(self, feature_id: str) -> None:
        if feature_id not in self.asi.feature_ids():
            raise ValidationError([f"No Ability Score Improvement choice {feature_id!r}"])

    def _refresh_asi(self, feature_id: str) -> Optional[Contribution]:
        return self._replace(_asi_source_id(feature_id), self.asi.source_for(feature_id))

    def set_asi_selected(self, feature_id: str, selected: bool) -> Optional[Contribution]:
        self._require_open("set_asi_selected")
        with self._transaction("set_asi_selected"):
            self._check_asi(feature_id)
            self.asi.set_selected(feature_id, selected)
            return self._refresh_asi(feature_id)

    def set_asi_mode(self, feature_id: str, mode: AsiMode) -> Optional[Contribution]:
        self._require_open("set_asi_mode")
        with self._transaction("set_asi_mode"):
            self._check_asi(feature_id)
            try:
                mode = AsiMode(mode)
            except ValueError:
                raise ValidationError([f"Unknown Ability Score Improvement mode: {mode}"])
            self.asi.set_mode(feature_id, mode)
            return self._refresh_asi(feature_id)

    def choose_asi_ability_scores(
        self,
        feature_id: str,
        first: Optional[str],
        second: Optional[str] = None,
    ) -> Optional[Contribution]:
        self._require_open("choose_asi_ability_scores")
        with self._transaction("choose_asi_ability_scores"):
            self._check_asi(feature_id)
            picks = _normalize_all([a for a in (first, second) if a], normalize_ability, "ability")
            first = picks[0] if first else None
            second = picks[-1] if second else None
            self.asi.set_ability_scores(feature_id, first, second)
            return self._refresh_asi(feature_id)

    def choose_asi_feat(self, feature_id: str, feat: Optional[FeatDefinition]) -> Optional[Contribution]:
        self._require_open("choose_asi_feat")
        with self._transaction("choose_asi_feat"):
            self._check_asi(feature_id)
            self.asi.set_feat(feature_id, feat)
            return self._refresh_asi(feature_id)

    def define_feat(self, name: str, description: str = "") -> FeatDefinition:
        """Feat editor entry point; the result is passed to choose_asi_feat / set_custom_lineage."""
        try:
            return create_feat(name, description)
        except ValueError as e:
            self._reject("define_feat", [str(e)])

    def asi_choices(self) -> List[AsiChoice]:
        return self.asi.choices()

    # ------------------------------------------------------------------
    # Hit points
    # ------------------------------------------------------------------

    def roll_hit_points(self) -> HitPointResult:
        self._require_open("roll_hit_points")
        with self._transaction("roll_hit_points"):
            if not self.draft.point_buy.is_fully_spent():
                raise ValidationError(
                    [f"Spend all point-buy points before rolling hit points "
                     f"({self.draft.point_buy.remaining()} left)"]
                )
            result = self.hit_points.roll(
                self.draft.classes,
                self.draft.abilities.modifier("constitution"),
                self.hp_bonus_per_level(),
            )
            self.hp_result = result
            self.draft.max_hit_points = result.total
            self.draft.current_hit_points = result.total
            telemetry.log(
                "hp_roll",
                total=result.total,
                per_class={c.class_name: list(c.dice) for c in result.per_class},
            )
            return result

    # ------------------------------------------------------------------
    # Details
    # ------------------------------------------------------------------

    def set_name(self, name: str) -> None:
        self._require_open("set_name")
        clean = " ".join(str(name or "").split())
        if len(clean) > MAX_NAME_LENGTH:
            self._reject("set_name", [f"Names are limited to {MAX_NAME_LENGTH} characters"])
        self.draft.name = clean

    async def upload_image(self, path) -> bool:
        self._require_open("upload_image")
        if self.uploader is None:
            self._reject("upload_image", ["Image upload is not available"])
        token = self._begin_load("image")
        result = await self.uploader.upload(path)
        if not self._is_current("image", token):
            return False
        if not result.ok:
            self._load_failed("upload_image", result.error)
            return False
        self.draft.image_url = result.data["url"]
        return True

    # ------------------------------------------------------------------
    # Validation / completion
    # ------------------------------------------------------------------

    def validate_step(self, step: WizardStep) -> List[str]:
        draft = self.draft
        if step is WizardStep.RACE:
            if self.race is None or not draft.race_id:
                return ["Choose a race"]
            problems = RaceSource(self.race, self.race_choices).validate(
                base=draft.point_buy.base, complete=True
            )
            if self.race.custom_lineage:
                if self.custom_lineage is None:
                    problems.append("Custom Lineage: choose darkvision or a skill proficiency")
                else:
                    problems += self.custom_lineage.validate(complete=True)
            return problems

        if step is WizardStep.BACKGROUND:
            if self.background is None or not draft.background_id:
                return ["Choose a background"]
            return BackgroundSource(self.background, self.background_choices).validate(complete=True)

        if step is WizardStep.CLASSES:
            if not draft.classes:
                return ["Choose at least one class"]
            problems = []
            if draft.character_level > MAX_CHARACTER_LEVEL:
                problems.append(f"Total character level cannot exceed {MAX_CHARACTER_LEVEL}")
            for index, entry in enumerate(draft.classes):
                class_def = self.class_defs[entry.class_id]
                problems += ClassEntrySource.from_entry(index, entry).validate(class_def, complete=True)
                if class_def.requires_subclass(entry.level) and not entry.subclass:
                    problems.append(f"Choose a subclass for {class_def.name}")
            return problems

        if step is WizardStep.ABILITIES:
            if not draft.point_buy.is_fully_spent():
                return [f"Spend all point-buy points ({draft.point_buy.remaining()} left)"]
            return []

        if step is WizardStep.ASI:
            problems = []
            for feature_id in self.asi.incomplete():
                choice = self.asi.get(feature_id)
                problems.append(
                    f"Finish the {choice.feature_name} choice ({self.class_name(choice.class_id)} level {choice.level})"
                )
            return problems

        if step is WizardStep.HIT_POINTS:
            return [] if self.hit_points.has_rolled else ["Roll hit points"]

        if step is WizardStep.DETAILS:
            return [] if draft.name else ["Enter a name"]

        return []

    def validate_all(self) -> List[str]:
        problems: List[str] = []
        for step in STEP_ORDER:
            problems.extend(self.validate_step(step))
        return problems

    def finalize(self) -> CharacterCreationRecord:
        """All or nothing: either every step validates and a record is emitted, or nothing changes."""
        self._require_open("finalize")
        problems = self.validate_all()
        if problems:
            self._reject("finalize", problems)
        record = self.build_record()
        self.record = record
        self.closed = True
        telemetry.log("finalize", name=record.name, level=record.level, hp=record.max_hit_points)
        logger.info("Finalized %s (level %d)", record.name, record.level)
        self.messages.add(f"{record.name} is ready!", severity="success")
        return record

    def cancel(self) -> None:
        """Close the session and throw the draft away; in-flight loads are dropped."""
        self.closed = True
        for slot in list(self._generations):
            self._generations[slot] += 1
        self.draft = CharacterDraft()
        self.ledger = ModifierLedger()
        self.asi = AsiResolver()
        self.hit_points.reset()
        self._applied = {}
        logger.info("Character wizard cancelled")

    def build_record(self) -> CharacterCreationRecord:
        draft = self.draft
        background = self.background
        dex = draft.abilities.modifier("dexterity")
        races = []
        if draft.race_id:
            races.append(RecordRace(draft.race_id, main=True))
        races.extend(RecordRace(r) for r in draft.secondary_race_ids)

        return CharacterCreationRecord(
            name=draft.name,
            classes=tuple(
                RecordClass(e.name, e.level, e.hit_die, e.subclass or "") for e in draft.classes
            ),
            races=tuple(races),
            background_id=draft.background_id or "",
            ability_scores=tuple((a, draft.abilities.get(a)) for a in ABILITIES),
            skills=tuple(
                RecordSkill(s.name, s.ability, s.proficiency.value, s.source or "")
                for s in draft.skills.values()
            ),
            saving_throws=tuple(a for a in ABILITIES if draft.saving_throws.get(a)),
            tools=tuple(sorted((t, level.value) for t, level in draft.tools.items())),
            equipment_proficiencies=tuple(c for c, on in draft.equipment.items() if on),
            max_hit_points=draft.max_hit_points,
            current_hit_points=draft.current_hit_points,
            speed=draft.speed,
            armor_class=10 + dex,
            initiative=dex,
            feats=tuple((f.name, f.description) for f in draft.feats),
            languages=tuple(draft.languages),
            money=tuple(background.money.as_dict().items()) if background else (),
            equipment=tuple(background.equipment) if background else (),
            traits=tuple(draft.traits),
            image_url=draft.image_url,
        )
