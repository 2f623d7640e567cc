# systems/character_creation/bonuses.py

"""Attributed bonuses: who contributed what to the draft."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class SourceKind(Enum):
    RACE = "race"
    BACKGROUND = "background"
    CLASS_ENTRY = "class"
    ASI_FEATURE = "asi"
    CUSTOM_LINEAGE = "custom_lineage"


@dataclass(frozen=True)
class SourceId:
    kind: SourceKind
    key: str = ""

    @property
    def is_class(self) -> bool:
        return self.kind is SourceKind.CLASS_ENTRY

    @property
    def label(self) -> str:
        return f"{self.kind.value}:{self.key}" if self.key else self.kind.value

    def __str__(self) -> str:
        return self.label


class BonusKind(Enum):
    ABILITY = "ability"
    SKILL = "skill"
    EXPERTISE = "expertise"
    TOOL = "tool"
    EQUIPMENT = "equipment"
    LANGUAGE = "language"
    SPEED = "speed"
    HP_PER_LEVEL = "hp_per_level"
    FEAT = "feat"
    TRAIT = "trait"


@dataclass(frozen=True)
class AttributedBonus:
    """
    One change a source makes to the draft.

    amount is the numeric part (ability +2, speed +5, hp per level +1); flag
    bonuses (skills, tools, languages...) use amount=1. detail carries extra
    text where the target alone is not enough (feat descriptions).
    """
    source_id: SourceId
    kind: BonusKind
    target: str
    amount: int = 1
    detail: str = ""


@dataclass(frozen=True)
class Contribution:
    """The exact bonus set one source applied. Immutable until reverted."""
    source_id: SourceId
    bonuses: Tuple[AttributedBonus, ...] = ()

    def of_kind(self, kind: BonusKind) -> List[AttributedBonus]:
        return [b for b in self.bonuses if b.kind is kind]

    def targets(self, kind: BonusKind) -> List[str]:
        return [b.target for b in self.bonuses if b.kind is kind]

    def ability_totals(self) -> Dict[str, int]:
        return sum_by_target(self.of_kind(BonusKind.ABILITY))

    def is_empty(self) -> bool:
        return not self.bonuses


def sum_by_target(bonuses: Iterable[AttributedBonus], kind: Optional[BonusKind] = None) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for bonus in bonuses:
        if kind is not None and bonus.kind is not kind:
            continue
        totals[bonus.target] = totals.get(bonus.target, 0) + bonus.amount
    return totals
