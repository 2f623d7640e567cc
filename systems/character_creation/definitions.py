# systems/character_creation/definitions.py

"""Normalized race / background definitions.

Catalog rows arrive in several historical shapes (ability increases as a list,
as a fixed_multi map, as a choice block or as a custom fixed+choice block;
proficiencies as bare lists or as {fixed, available, choice} objects). The
decode_* functions below turn a raw row into one of a small set of frozen
dataclasses exactly once, at load time. Nothing past this module branches on
row shape.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..catalog import normalize_equipment, normalize_language, normalize_skill, normalize_tool
from ..stats import ABILITIES, normalize_ability

logger = logging.getLogger("charforge.definitions")

BASE_SPEED = 30


class DefinitionError(ValueError):
    """Raised when a catalog row cannot be decoded."""
    pass


# --- Ability score increase variants --------------------------------------------

@dataclass(frozen=True)
class FixedIncrease:
    """List rows like [{"ability": "Dexterity", "increase": 2}]."""
    increases: Tuple[Tuple[str, int], ...]


@dataclass(frozen=True)
class FixedMultiIncrease:
    """Per-ability map, e.g. Human +1 to everything."""
    increases: Tuple[Tuple[str, int], ...]


@dataclass(frozen=True)
class ChoiceIncrease:
    """
    Pick `count` abilities from `pool`, each pick worth `increase`.

    allow_duplicates=True is the "pattern" mode where one ability may be
    picked more than once; it is still capped at two picks per ability.
    """
    count: int
    increase: int = 1
    pool: Tuple[str, ...] = ABILITIES
    allow_duplicates: bool = False
    max_score: int = 20
    description: str = ""

    def per_ability_cap(self) -> int:
        return 2 if self.allow_duplicates else 1


@dataclass(frozen=True)
class CustomIncrease:
    """One unconditional fixed bonus plus an optional choice (Half-Elf, Custom Lineage)."""
    fixed: Optional[Tuple[str, int]] = None
    choice: Optional[ChoiceIncrease] = None


AbilityIncrease = Union[FixedIncrease, FixedMultiIncrease, ChoiceIncrease, CustomIncrease]


def _decode_choice(raw: Dict[str, Any], exclude: Tuple[str, ...] = ()) -> ChoiceIncrease:
    options = raw.get("options") or raw.get("abilities")
    if options:
        pool = tuple(normalize_ability(a) for a in options)
        flagged = [a for a in pool if a in exclude]
        if flagged:
            # The same ability getting the fixed bonus and a choice slot is not
            # something we generalize; picks of it are rejected by the validator.
            logger.warning(
                "Choice pool %s overlaps the fixed increase %s; those picks will be rejected",
                pool, flagged,
            )
    else:
        pool = tuple(a for a in ABILITIES if a not in exclude)
    count = int(raw.get("count") or 0)
    if count <= 0:
        raise DefinitionError(f"Ability choice needs a positive count: {raw!r}")
    return ChoiceIncrease(
        count=count,
        increase=int(raw.get("increase") or 1),
        pool=pool,
        allow_duplicates=bool(raw.get("pattern")),
        max_score=int(raw.get("max_score") or 20),
        description=str(raw.get("description") or ""),
    )


def decode_ability_increases(raw: Any) -> Optional[AbilityIncrease]:
    """Decode a race row's `ability_score_increases` into a tagged variant."""
    if not raw:
        return None

    if isinstance(raw, list):
        rows = []
        for item in raw:
            rows.append((normalize_ability(item.get("ability")), int(item.get("increase") or 1)))
        if len(rows) > 2:
            logger.warning("Fixed ability increase list has %d rows (expected at most 2)", len(rows))
        return FixedIncrease(increases=tuple(rows))

    if not isinstance(raw, dict):
        raise DefinitionError(f"Unrecognized ability increase shape: {raw!r}")

    kind = raw.get("type")
    if kind == "fixed_multi":
        abilities = raw.get("abilities") or {}
        increases = tuple(
            (normalize_ability(a), int(v)) for a, v in abilities.items() if int(v or 0) != 0
        )
        return FixedMultiIncrease(increases=increases)

    if kind == "choice":
        return _decode_choice(raw.get("choices") or {})

    if kind == "custom":
        fixed = None
        fixed_raw = raw.get("fixed")
        if fixed_raw:
            fixed = (normalize_ability(fixed_raw.get("ability")), int(fixed_raw.get("increase") or 1))
        choice = None
        choices_raw = raw.get("choices")
        if choices_raw:
            exclude = (fixed[0],) if fixed else ()
            choice = _decode_choice(choices_raw, exclude=exclude)
        return CustomIncrease(fixed=fixed, choice=choice)

    raise DefinitionError(f"Unknown ability increase type: {kind!r}")


# --- Proficiency grants -----------------------------------------------------------

@dataclass(frozen=True)
class ProficiencyGrant:
    """
    Fixed proficiencies plus an optional "choose N".

    An empty `options` with a positive `choice_count` means "any" (any skill,
    any tool, any language).
    """
    fixed: Tuple[str, ...] = ()
    choice_count: int = 0
    options: Tuple[str, ...] = ()

    def allows(self, value: str) -> bool:
        return not self.options or value in self.options


def decode_proficiency_grant(raw: Any, normalizer: Callable[[str], str]) -> ProficiencyGrant:
    if not raw:
        return ProficiencyGrant()

    if isinstance(raw, (list, tuple)):
        return ProficiencyGrant(fixed=tuple(normalizer(v) for v in raw))

    if isinstance(raw, str):
        return ProficiencyGrant(fixed=(normalizer(raw),))

    if not isinstance(raw, dict):
        raise DefinitionError(f"Unrecognized proficiency shape: {raw!r}")

    fixed = raw.get("fixed") or []
    if isinstance(fixed, str):
        fixed = [fixed]
    available = list(raw.get("available") or [])
    choice = raw.get("choice") or {}
    count = int(choice.get("count") or 0) if choice else 0

    # from_selected with nothing in `available` means the fixed list is really the pool
    if choice and choice.get("from_selected") and not available and fixed:
        available, fixed = list(fixed), []

    return ProficiencyGrant(
        fixed=tuple(normalizer(v) for v in fixed),
        choice_count=count,
        options=tuple(normalizer(v) for v in available),
    )


# --- Race features ----------------------------------------------------------------

@dataclass(frozen=True)
class FeatureOption:
    """One option of a race `choice` feature."""
    name: str
    type: str = "trait"
    description: str = ""
    speed_bonus: int = 0
    skills: Tuple[str, ...] = ()
    skill_count: int = 0
    weapons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RaceFeature:
    name: str
    feature_type: str = "trait"
    description: str = ""
    skills: ProficiencyGrant = field(default_factory=ProficiencyGrant)
    tools: ProficiencyGrant = field(default_factory=ProficiencyGrant)
    weapons: Tuple[str, ...] = ()
    languages: Tuple[str, ...] = ()
    hp_bonus_per_level: bool = False
    speed_bonus: int = 0
    darkvision_range: int = 0
    options: Tuple[FeatureOption, ...] = ()

    def option(self, name: str) -> Optional[FeatureOption]:
        for opt in self.options:
            if opt.name == name:
                return opt
        return None


def _equipment_list(values: Any) -> Tuple[str, ...]:
    out: List[str] = []
    for value in values or []:
        category = normalize_equipment(value)
        if category is None:
            logger.debug("Weapon proficiency %r is not a tracked equipment category", value)
            continue
        out.append(category)
    return tuple(out)


def decode_race_feature(raw: Dict[str, Any]) -> RaceFeature:
    ftype = raw.get("feature_type") or "trait"
    skills = ProficiencyGrant()
    tools = ProficiencyGrant()

    if ftype == "skill_proficiency":
        options = tuple(normalize_skill(s) for s in raw.get("skill_options") or [])
        if raw.get("feature_skill_type") == "choice":
            skills = ProficiencyGrant(choice_count=int(raw.get("max_selections") or 1), options=options)
        else:
            skills = ProficiencyGrant(fixed=options)
    elif ftype == "tool_proficiency":
        if raw.get("tool_choice_type") == "choice":
            tools = ProficiencyGrant(
                choice_count=int(raw.get("max_selections") or 1),
                options=tuple(normalize_tool(t) for t in raw.get("tool_options") or []),
            )
        else:
            tools = ProficiencyGrant(fixed=tuple(normalize_tool(t) for t in raw.get("tools") or []))

    options = []
    for opt in raw.get("options") or []:
        options.append(
            FeatureOption(
                name=str(opt.get("name") or ""),
                type=str(opt.get("type") or "trait"),
                description=str(opt.get("description") or ""),
                speed_bonus=int(opt.get("speed_bonus") or 0),
                skills=tuple(normalize_skill(s) for s in opt.get("skills") or []),
                skill_count=int(opt.get("skill_count") or 0) if opt.get("skill_choice") == "any" else 0,
                weapons=_equipment_list(opt.get("weapons")),
            )
        )

    return RaceFeature(
        name=str(raw.get("name") or ""),
        feature_type=ftype,
        description=str(raw.get("description") or ""),
        skills=skills,
        tools=tools,
        weapons=_equipment_list(raw.get("weapons")) if ftype == "weapon_proficiency" else (),
        languages=tuple(normalize_language(l) for l in raw.get("languages") or []),
        hp_bonus_per_level=bool(raw.get("hp_bonus_per_level")),
        speed_bonus=int(raw.get("speed_bonus") or 0),
        darkvision_range=int(raw.get("darkvision_range") or 0),
        options=tuple(options),
    )


# --- Races --------------------------------------------------------------------------

@dataclass(frozen=True)
class RaceDefinition:
    """
    A decoded race.

    - ability_increases: one of the tagged AbilityIncrease variants (or None)
    - features: decoded RaceFeature list
    - languages: fixed + choice language grant
    - custom_lineage: the race's variable trait is resolved by a separate
      CustomLineageSource (darkvision or a skill, plus a feat)
    """
    id: str
    name: str
    ability_increases: Optional[AbilityIncrease] = None
    speed: int = BASE_SPEED
    size: str = "Medium"
    features: Tuple[RaceFeature, ...] = ()
    languages: ProficiencyGrant = field(default_factory=ProficiencyGrant)
    image_url: str = ""
    custom_lineage: bool = False

    def feature(self, name: str) -> Optional[RaceFeature]:
        for feat in self.features:
            if feat.name == name:
                return feat
        return None

    def choice_features(self) -> List[RaceFeature]:
        return [f for f in self.features if f.feature_type == "choice" and f.options]

    def hp_bonus_per_level(self) -> int:
        return sum(1 for f in self.features if f.hp_bonus_per_level)

    def ability_choice(self) -> Optional[ChoiceIncrease]:
        if isinstance(self.ability_increases, ChoiceIncrease):
            return self.ability_increases
        if isinstance(self.ability_increases, CustomIncrease):
            return self.ability_increases.choice
        return None


def decode_race(row: Dict[str, Any]) -> RaceDefinition:
    if not row.get("id") or not row.get("name"):
        raise DefinitionError(f"Race row needs id and name: {row!r}")
    return RaceDefinition(
        id=str(row["id"]),
        name=str(row["name"]),
        ability_increases=decode_ability_increases(row.get("ability_score_increases")),
        speed=int(row.get("speed") or BASE_SPEED),
        size=str(row.get("size") or "Medium"),
        features=tuple(decode_race_feature(f) for f in row.get("features") or []),
        languages=decode_proficiency_grant(row.get("languages"), normalize_language),
        image_url=str(row.get("image_url") or ""),
        custom_lineage=bool(row.get("custom_lineage")),
    )


# --- Backgrounds ---------------------------------------------------------------------

@dataclass(frozen=True)
class Money:
    gold: int = 0
    silver: int = 0
    copper: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"gold": self.gold, "silver": self.silver, "copper": self.copper}


TABLE_FIELDS = ("defining_events", "personality_traits", "ideals", "bonds", "flaws")


@dataclass(frozen=True)
class BackgroundDefinition:
    """
    A decoded background: proficiency grants, starting kit and the numbered
    flavor tables (d8 personality traits, d6 ideals...).
    """
    id: str
    name: str
    description: str = ""
    skills: ProficiencyGrant = field(default_factory=ProficiencyGrant)
    tools: ProficiencyGrant = field(default_factory=ProficiencyGrant)
    languages: ProficiencyGrant = field(default_factory=ProficiencyGrant)
    equipment: Tuple[str, ...] = ()
    money: Money = field(default_factory=Money)
    tables: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    def table(self, name: str) -> Tuple[str, ...]:
        for key, rows in self.tables:
            if key == name:
                return rows
        return ()


def _decode_table(rows: Any) -> Tuple[str, ...]:
    entries: List[Tuple[int, str]] = []
    for index, row in enumerate(rows or []):
        if isinstance(row, dict):
            entries.append((int(row.get("number") or index + 1), str(row.get("text") or "")))
        else:
            entries.append((index + 1, str(row)))
    entries.sort(key=lambda e: e[0])
    return tuple(text for _, text in entries)


def decode_background(row: Dict[str, Any]) -> BackgroundDefinition:
    if not row.get("id") or not row.get("name"):
        raise DefinitionError(f"Background row needs id and name: {row!r}")
    money = row.get("money") or {}
    return BackgroundDefinition(
        id=str(row["id"]),
        name=str(row["name"]),
        description=str(row.get("description") or ""),
        skills=decode_proficiency_grant(row.get("skill_proficiencies"), normalize_skill),
        tools=decode_proficiency_grant(row.get("tool_proficiencies"), normalize_tool),
        languages=decode_proficiency_grant(row.get("languages"), normalize_language),
        equipment=tuple(str(e) for e in row.get("equipment") or []),
        money=Money(
            gold=int(money.get("gold") or 0),
            silver=int(money.get("silver") or 0),
            copper=int(money.get("copper") or 0),
        ),
        tables=tuple((name, _decode_table(row.get(name))) for name in TABLE_FIELDS if row.get(name)),
    )
