# systems/character_creation/record.py

"""The immutable result of a finished character creation session."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..stats import ABILITIES


@dataclass(frozen=True)
class RecordClass:
    name: str
    level: int
    hit_die: int
    subclass: str = ""


@dataclass(frozen=True)
class RecordRace:
    id: str
    main: bool = False


@dataclass(frozen=True)
class RecordSkill:
    name: str
    ability: str
    proficiency: str
    source: str = ""


@dataclass(frozen=True)
class CharacterCreationRecord:
    """
    Everything the rest of the application gets about a new character.

    Keep this shape stable: it is built from the draft on finalize and the
    ledger internals never leak into it.
    """
    name: str
    classes: Tuple[RecordClass, ...]
    races: Tuple[RecordRace, ...]
    background_id: str
    ability_scores: Tuple[Tuple[str, int], ...]
    skills: Tuple[RecordSkill, ...]
    saving_throws: Tuple[str, ...]
    tools: Tuple[Tuple[str, str], ...]
    equipment_proficiencies: Tuple[str, ...]
    max_hit_points: int
    current_hit_points: int
    speed: int
    armor_class: int
    initiative: int
    feats: Tuple[Tuple[str, str], ...]
    languages: Tuple[str, ...]
    money: Tuple[Tuple[str, int], ...]
    equipment: Tuple[str, ...]
    traits: Tuple[str, ...] = ()
    image_url: str = ""

    @property
    def main_race_id(self) -> str:
        for race in self.races:
            if race.main:
                return race.id
        return ""

    @property
    def level(self) -> int:
        return sum(c.level for c in self.classes)

    def score(self, ability: str) -> int:
        return dict(self.ability_scores)[ability]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "classes": [
                {"name": c.name, "level": c.level, "hit_die": c.hit_die, "subclass": c.subclass}
                for c in self.classes
            ],
            "races": [{"id": r.id, "main": r.main} for r in self.races],
            "background_id": self.background_id,
            "ability_scores": {ability: dict(self.ability_scores)[ability] for ability in ABILITIES},
            "skills": {
                s.name: {"ability": s.ability, "proficiency": s.proficiency, "source": s.source}
                for s in self.skills
            },
            "saving_throws": list(self.saving_throws),
            "tools": dict(self.tools),
            "equipment_proficiencies": list(self.equipment_proficiencies),
            "hit_points": {"max": self.max_hit_points, "current": self.current_hit_points},
            "speed": self.speed,
            "armor_class": self.armor_class,
            "initiative": self.initiative,
            "feats": [{"name": n, "description": d} for n, d in self.feats],
            "languages": list(self.languages),
            "money": dict(self.money),
            "equipment": list(self.equipment),
            "traits": list(self.traits),
            "image_url": self.image_url,
        }
