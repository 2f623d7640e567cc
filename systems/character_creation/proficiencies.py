# systems/character_creation/proficiencies.py

"""Merge proficiencies from every active source into the draft's final sets.

Priority rule, per skill / tool:
1. Any class source granting it wins; nothing but an explicit expertise bonus
   changes it after that.
2. Otherwise the most recently applied non-class source granting it owns it.

Equipment and saving throws are not tracked per class in the ledger: they
depend on the *set* of classes, so the class side is rebuilt fresh here
every time.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..catalog import SKILLS, empty_equipment, empty_saving_throws, normalize_equipment
from ..classes import ClassDef
from .bonuses import BonusKind
from .draft import ClassEntry, ProficiencyLevel, SkillEntry, default_skills
from .ledger import LedgerEntry

logger = logging.getLogger("charforge.proficiencies")


@dataclass
class ProficiencySets:
    skills: Dict[str, SkillEntry] = field(default_factory=default_skills)
    tools: Dict[str, ProficiencyLevel] = field(default_factory=dict)
    equipment: Dict[str, bool] = field(default_factory=empty_equipment)
    languages: List[str] = field(default_factory=list)
    saving_throws: Dict[str, bool] = field(default_factory=empty_saving_throws)


def _owners(entries: Sequence[LedgerEntry], kind: BonusKind) -> Dict[str, str]:
    """target -> label of the owning source, following the priority rule."""
    class_owner: Dict[str, str] = {}
    other_owner: Dict[str, str] = {}
    for entry in entries:
        for bonus in entry.contribution.of_kind(kind):
            if entry.source_id.is_class:
                class_owner.setdefault(bonus.target, entry.source_id.label)
            else:
                # Later entries overwrite: most recent wins
                other_owner[bonus.target] = entry.source_id.label
    owners = dict(other_owner)
    owners.update(class_owner)
    return owners


class ProficiencyAggregator:
    def aggregate(
        self,
        entries: Sequence[LedgerEntry],
        class_entries: Iterable[ClassEntry] = (),
        class_defs: Optional[Mapping[str, ClassDef]] = None,
    ) -> ProficiencySets:
        """
        Build fresh proficiency sets.

        entries must be in apply order (ModifierLedger.entries()). class_defs
        maps class id -> ClassDef for every class entry.
        """
        result = ProficiencySets()
        class_defs = class_defs or {}

        for skill, owner in _owners(entries, BonusKind.SKILL).items():
            slot = result.skills.get(skill)
            if slot is None:
                logger.warning("Ignoring proficiency in unknown skill %r from %s", skill, owner)
                continue
            slot.proficiency = ProficiencyLevel.PROFICIENT
            slot.source = owner

        for tool, owner in _owners(entries, BonusKind.TOOL).items():
            result.tools[tool] = ProficiencyLevel.PROFICIENT

        for entry in entries:
            for bonus in entry.contribution.of_kind(BonusKind.EXPERTISE):
                slot = result.skills.get(bonus.target)
                if slot is not None and slot.proficiency is not ProficiencyLevel.NONE:
                    slot.proficiency = ProficiencyLevel.EXPERTISE
                elif bonus.target in result.tools:
                    result.tools[bonus.target] = ProficiencyLevel.EXPERTISE
                else:
                    logger.debug("Expertise in %s from %s ignored: not proficient",
                                 bonus.target, entry.source_id)

        for entry in entries:
            for bonus in entry.contribution.of_kind(BonusKind.EQUIPMENT):
                category = normalize_equipment(bonus.target)
                if category is None:
                    logger.debug("Unknown equipment category %r from %s", bonus.target, entry.source_id)
                    continue
                result.equipment[category] = True

        for class_entry in class_entries:
            class_def = class_defs.get(class_entry.class_id)
            if class_def is None:
                continue
            for name in class_def.equipment:
                category = normalize_equipment(name)
                if category is not None:
                    result.equipment[category] = True
            for ability in class_def.saving_throws:
                result.saving_throws[ability] = True

        for entry in entries:
            for language in entry.contribution.targets(BonusKind.LANGUAGE):
                if language not in result.languages:
                    result.languages.append(language)

        return result


def skill_bonus(skill: str, ability_mod: int, proficiency: ProficiencyLevel, proficiency_bonus: int) -> int:
    """Total check bonus for a skill row on the review screen."""
    if skill not in SKILLS:
        raise KeyError(f"Unknown skill: {skill}")
    if proficiency is ProficiencyLevel.EXPERTISE:
        return ability_mod + 2 * proficiency_bonus
    if proficiency is ProficiencyLevel.PROFICIENT:
        return ability_mod + proficiency_bonus
    return ability_mod


def proficiency_bonus_for_level(level: int) -> int:
    return 2 + (max(1, level) - 1) // 4
