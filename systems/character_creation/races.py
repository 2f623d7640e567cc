# systems/character_creation/races.py

"""Race catalog rows.

Rows are kept in the same loose shape the race editor stores them in
(several ability-increase layouts, feature dicts with optional fields). They
are decoded into RaceDefinition objects by the catalog when loaded, see
definitions.decode_race.
"""

from typing import Any, Dict, List

RaceRow = Dict[str, Any]

# --- Registry helpers ---------------------------------------------------------

_RACES: Dict[str, RaceRow] = {}


def register_race(row: RaceRow) -> RaceRow:
    """Register a raw race row."""
    race_id = row.get("id")
    if not race_id:
        raise ValueError(f"Race row has no id: {row!r}")
    if race_id in _RACES:
        raise ValueError(f"Race id already registered: {race_id}")
    _RACES[race_id] = row
    return row


def get_race_row(race_id: str) -> RaceRow:
    if race_id not in _RACES:
        raise KeyError(f"Race not found: {race_id}")
    return _RACES[race_id]


def all_race_rows() -> List[RaceRow]:
    return list(_RACES.values())


# --- Concrete races --------------------------------------------------------------

HUMAN = register_race(
    {
        "id": "human",
        "name": "Human",
        "speed": 30,
        "ability_score_increases": {
            "type": "fixed_multi",
            "abilities": {
                "strength": 1,
                "dexterity": 1,
                "constitution": 1,
                "intelligence": 1,
                "wisdom": 1,
                "charisma": 1,
            },
        },
        "languages": {"fixed": ["Common"], "choice": {"count": 1}},
        "features": [],
    }
)

HALF_ELF = register_race(
    {
        "id": "half_elf",
        "name": "Half-Elf",
        "speed": 30,
        # +2 CHA, then two different +1s among the other abilities
        "ability_score_increases": {
            "type": "custom",
            "fixed": {"ability": "Charisma", "increase": 2},
            "choices": {"count": 2, "increase": 1, "description": "Two other abilities +1"},
        },
        "languages": {"fixed": ["Common", "Elvish"], "choice": {"count": 1}},
        "features": [
            {"name": "Darkvision", "feature_type": "darkvision", "darkvision_range": 60},
            {"name": "Fey Ancestry", "feature_type": "trait"},
            {
                "name": "Skill Versatility",
                "feature_type": "skill_proficiency",
                "feature_skill_type": "choice",
                "skill_options": [
                    "acrobatics", "animal_handling", "arcana", "athletics", "deception",
                    "history", "insight", "intimidation", "investigation", "medicine",
                    "nature", "perception", "performance", "persuasion", "religion",
                    "sleight_of_hand", "stealth", "survival",
                ],
                "max_selections": 2,
            },
        ],
    }
)

HILL_DWARF = register_race(
    {
        "id": "hill_dwarf",
        "name": "Hill Dwarf",
        "speed": 25,
        "ability_score_increases": [
            {"ability": "Constitution", "increase": 2},
            {"ability": "Wisdom", "increase": 1},
        ],
        "languages": ["Common", "Dwarvish"],
        "features": [
            {"name": "Darkvision", "feature_type": "darkvision", "darkvision_range": 60},
            {"name": "Dwarven Resilience", "feature_type": "damage_resistance", "damage_types": ["poison"]},
            {
                "name": "Tool Proficiency",
                "feature_type": "tool_proficiency",
                "tool_choice_type": "choice",
                "tool_options": ["Smith's Tools", "Brewer's Supplies", "Mason's Tools"],
                "max_selections": 1,
            },
            {
                "name": "Dwarven Toughness",
                "feature_type": "trait",
                "hp_bonus_per_level": True,
            },
        ],
    }
)

HIGH_ELF = register_race(
    {
        "id": "high_elf",
        "name": "High Elf",
        "speed": 30,
        "ability_score_increases": [
            {"ability": "Dexterity", "increase": 2},
            {"ability": "Intelligence", "increase": 1},
        ],
        "languages": {"fixed": ["Common", "Elvish"], "choice": {"count": 1}},
        "features": [
            {"name": "Darkvision", "feature_type": "darkvision", "darkvision_range": 60},
            {
                "name": "Keen Senses",
                "feature_type": "skill_proficiency",
                "feature_skill_type": "fixed",
                "skill_options": ["perception"],
            },
            {
                "name": "Elf Weapon Training",
                "feature_type": "weapon_proficiency",
                "weapons": ["Longsword", "Shortsword", "Shortbow", "Longbow"],
            },
        ],
    }
)

WOOD_ELF = register_race(
    {
        "id": "wood_elf",
        "name": "Wood Elf",
        "speed": 35,
        "ability_score_increases": [
            {"ability": "Dexterity", "increase": 2},
            {"ability": "Wisdom", "increase": 1},
        ],
        "languages": ["Common", "Elvish"],
        "features": [
            {
                "name": "Keen Senses",
                "feature_type": "skill_proficiency",
                "feature_skill_type": "fixed",
                "skill_options": ["perception"],
            },
            {
                "name": "Elven Heritage",
                "feature_type": "choice",
                "options": [
                    {"type": "trait", "name": "Fleet of Foot", "speed_bonus": 5},
                    {"type": "skill_proficiency", "name": "Wilderness Lore", "skill_choice": "any", "skill_count": 1},
                    {"type": "weapon_proficiency", "name": "Elf Weapon Training", "weapons": ["longsword", "shortsword"]},
                ],
            },
        ],
    }
)

HALF_ORC = register_race(
    {
        "id": "half_orc",
        "name": "Half-Orc",
        "speed": 30,
        "ability_score_increases": [
            {"ability": "Strength", "increase": 2},
            {"ability": "Constitution", "increase": 1},
        ],
        "languages": ["Common", "Orc"],
        "features": [
            {"name": "Darkvision", "feature_type": "darkvision", "darkvision_range": 60},
            {
                "name": "Menacing",
                "feature_type": "skill_proficiency",
                "feature_skill_type": "fixed",
                "skill_options": ["intimidation"],
            },
            {"name": "Relentless Endurance", "feature_type": "trait", "uses_per_long_rest": 1},
        ],
    }
)

HARENGON = register_race(
    {
        "id": "harengon",
        "name": "Harengon",
        "speed": 30,
        # Three +1 picks; one ability may take two of them
        "ability_score_increases": {
            "type": "choice",
            "choices": {
                "pattern": "three_ones",
                "count": 3,
                "increase": 1,
                "description": "Increase one score by 2 and another by 1, or three scores by 1",
            },
        },
        "languages": {"fixed": ["Common"], "choice": {"count": 1}},
        "features": [
            {
                "name": "Hare-Trigger",
                "feature_type": "trait",
            },
            {
                "name": "Leporine Senses",
                "feature_type": "skill_proficiency",
                "feature_skill_type": "fixed",
                "skill_options": ["perception"],
            },
        ],
    }
)

CUSTOM_LINEAGE = register_race(
    {
        "id": "custom_lineage",
        "name": "Custom Lineage",
        "speed": 30,
        "custom_lineage": True,
        "ability_score_increases": {
            "type": "custom",
            "fixed": None,
            "choices": {"count": 1, "increase": 2, "description": "+2 to one ability"},
        },
        "languages": {"fixed": ["Common"], "choice": {"count": 1}},
        "features": [
            {"name": "Variable Trait", "feature_type": "trait"},
        ],
    }
)
