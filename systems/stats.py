from dataclasses import dataclass, fields
from typing import Dict

ABILITIES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)

ABILITY_ABBREVIATIONS = {
    "strength": "STR",
    "dexterity": "DEX",
    "constitution": "CON",
    "intelligence": "INT",
    "wisdom": "WIS",
    "charisma": "CHA",
}


def normalize_ability(name: str) -> str:
    """
    Map "Strength", "STR", " str " etc. onto the canonical lowercase ability key.

    Raises KeyError for anything that is not one of the six abilities.
    """
    key = str(name or "").strip().lower()
    if key in ABILITIES:
        return key
    for ability, abbr in ABILITY_ABBREVIATIONS.items():
        if key == abbr.lower():
            return ability
    raise KeyError(f"Unknown ability: {name!r}")


def ability_modifier(score: int) -> int:
    # floor division keeps odd negatives right (7 -> -2)
    return (int(score) - 10) // 2


@dataclass
class AbilityScores:
    # Every ability starts at the point-buy floor
    strength: int = 8
    dexterity: int = 8
    constitution: int = 8
    intelligence: int = 8
    wisdom: int = 8
    charisma: int = 8

    def get(self, ability: str) -> int:
        return getattr(self, normalize_ability(ability))

    def set(self, ability: str, value: int) -> None:
        setattr(self, normalize_ability(ability), int(value))

    def modifier(self, ability: str) -> int:
        return ability_modifier(self.get(ability))

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> "AbilityScores":
        scores = cls()
        for ability, value in data.items():
            scores.set(ability, value)
        return scores

    def copy(self) -> "AbilityScores":
        return AbilityScores(**self.as_dict())
