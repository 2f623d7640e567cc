# systems/character_creation/draft.py

"""The Character Draft: the mutable record under construction for one session."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..catalog import SKILLS, empty_equipment, empty_saving_throws
from ..stats import AbilityScores
from .definitions import BASE_SPEED
from .feats import FeatDefinition
from .point_buy import PointBuyAllocation

MAX_CHARACTER_LEVEL = 20


class ProficiencyLevel(Enum):
    NONE = "none"
    PROFICIENT = "proficient"
    EXPERTISE = "expertise"


@dataclass
class SkillEntry:
    name: str
    ability: str
    proficiency: ProficiencyLevel = ProficiencyLevel.NONE
    # Source id label that owns the proficiency ("class:0", "race", ...)
    source: Optional[str] = None


def default_skills() -> Dict[str, SkillEntry]:
    return {name: SkillEntry(name=name, ability=ability) for name, ability in SKILLS.items()}


@dataclass
class ClassEntry:
    """
    One class the character has levels in.

    - selected_skills: skills picked from the class pool (count depends on
      whether this is the first class or a multiclass)
    - expertise_skills: skills this class doubles proficiency in
    - class_id: the catalog id; defaults to the lowercased name when not given
    """
    name: str
    level: int = 1
    hit_die: int = 8
    subclass: Optional[str] = None
    selected_skills: List[str] = field(default_factory=list)
    expertise_skills: List[str] = field(default_factory=list)
    class_id: str = ""

    def __post_init__(self) -> None:
        if not self.class_id:
            self.class_id = self.name.strip().lower()


@dataclass
class CharacterDraft:
    """
    Everything the wizard is building.

    Derived fields (abilities, skills, saving_throws, equipment, tools,
    languages, speed, feats, traits, hit points) are rewritten on every
    settle from point_buy + the ledger; only point_buy, classes and the
    identity fields are edited directly.
    """
    name: str = ""
    point_buy: PointBuyAllocation = field(default_factory=PointBuyAllocation)
    abilities: AbilityScores = field(default_factory=AbilityScores)

    skills: Dict[str, SkillEntry] = field(default_factory=default_skills)
    saving_throws: Dict[str, bool] = field(default_factory=empty_saving_throws)
    equipment: Dict[str, bool] = field(default_factory=empty_equipment)
    tools: Dict[str, ProficiencyLevel] = field(default_factory=dict)
    languages: List[str] = field(default_factory=list)

    speed: int = BASE_SPEED
    max_hit_points: int = 0
    current_hit_points: int = 0

    feats: List[FeatDefinition] = field(default_factory=list)
    traits: List[str] = field(default_factory=list)
    classes: List[ClassEntry] = field(default_factory=list)

    race_id: Optional[str] = None
    secondary_race_ids: List[str] = field(default_factory=list)
    background_id: Optional[str] = None
    image_url: str = ""

    @property
    def character_level(self) -> int:
        return sum(entry.level for entry in self.classes)

    def class_granted_skills(self) -> List[str]:
        out: List[str] = []
        for entry in self.classes:
            for skill in entry.selected_skills:
                if skill not in out:
                    out.append(skill)
        return out

    def proficient_skills(self) -> List[str]:
        return [
            name for name, entry in self.skills.items()
            if entry.proficiency is not ProficiencyLevel.NONE
        ]
