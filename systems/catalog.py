# systems/catalog.py

"""Read-only reference data for proficiencies.

- SKILLS: skill id -> governing ability
- EQUIPMENT_CATEGORIES: the fixed set of armor / weapon proficiency flags
- TOOLS / STANDARD_LANGUAGES: known tool kits and languages

Names coming from race / background / class rows are messy ("Thieves' Tools",
"sleight of hand", "Longsword"). Everything goes through the normalize_* helpers
below before it reaches the ledger so the rest of the engine only sees ids.
"""

import re
from typing import Dict, List, Optional

from .stats import ABILITIES

SKILLS: Dict[str, str] = {
    "acrobatics": "dexterity",
    "animal_handling": "wisdom",
    "arcana": "intelligence",
    "athletics": "strength",
    "deception": "charisma",
    "history": "intelligence",
    "insight": "wisdom",
    "intimidation": "charisma",
    "investigation": "intelligence",
    "medicine": "wisdom",
    "nature": "intelligence",
    "perception": "wisdom",
    "performance": "charisma",
    "persuasion": "charisma",
    "religion": "intelligence",
    "sleight_of_hand": "dexterity",
    "stealth": "dexterity",
    "survival": "wisdom",
}

EQUIPMENT_CATEGORIES = (
    "light_armor",
    "medium_armor",
    "heavy_armor",
    "shields",
    "simple_weapons",
    "martial_weapons",
    "firearms",
    "hand_crossbows",
    "longswords",
    "rapiers",
    "shortswords",
    "scimitars",
    "light_crossbows",
    "darts",
    "slings",
    "quarterstaffs",
)

# Singular / alternate spellings seen in weapon_proficiency rows
_EQUIPMENT_ALIASES: Dict[str, str] = {
    "shield": "shields",
    "simple": "simple_weapons",
    "martial": "martial_weapons",
    "firearm": "firearms",
    "hand_crossbow": "hand_crossbows",
    "longsword": "longswords",
    "rapier": "rapiers",
    "shortsword": "shortswords",
    "scimitar": "scimitars",
    "light_crossbow": "light_crossbows",
    "dart": "darts",
    "sling": "slings",
    "quarterstaff": "quarterstaffs",
}

TOOLS: List[str] = [
    "Alchemist's Supplies",
    "Brewer's Supplies",
    "Calligrapher's Supplies",
    "Carpenter's Tools",
    "Cartographer's Tools",
    "Cobbler's Tools",
    "Cook's Utensils",
    "Glassblower's Tools",
    "Jeweler's Tools",
    "Leatherworker's Tools",
    "Mason's Tools",
    "Painter's Supplies",
    "Potter's Tools",
    "Smith's Tools",
    "Tinker's Tools",
    "Weaver's Tools",
    "Woodcarver's Tools",
    "Disguise Kit",
    "Forgery Kit",
    "Gaming Set",
    "Herbalism Kit",
    "Musical Instrument",
    "Navigator's Tools",
    "Poisoner's Kit",
    "Thieves' Tools",
]

STANDARD_LANGUAGES: List[str] = [
    "Common",
    "Dwarvish",
    "Elvish",
    "Giant",
    "Gnomish",
    "Goblin",
    "Halfling",
    "Orc",
    "Abyssal",
    "Celestial",
    "Draconic",
    "Deep Speech",
    "Infernal",
    "Primordial",
    "Sylvan",
    "Undercommon",
]


def _slug(value: str) -> str:
    value = str(value or "").strip().lower()
    value = re.sub(r"['’]", "", value)
    value = re.sub(r"\s+", "_", value)
    return re.sub(r"[^a-z0-9_]", "", value)


def normalize_skill(name: str) -> str:
    """Return the skill id for a display name or id. Raises KeyError if unknown."""
    slug = _slug(name)
    if slug not in SKILLS:
        raise KeyError(f"Unknown skill: {name!r}")
    return slug


def skill_ability(name: str) -> str:
    return SKILLS[normalize_skill(name)]


def normalize_equipment(name: str) -> Optional[str]:
    """
    Map a weapon / armor name onto an equipment category.

    Returns None for names outside the fixed category set (those are not
    tracked as equipment flags).
    """
    slug = _slug(name)
    if slug in EQUIPMENT_CATEGORIES:
        return slug
    return _EQUIPMENT_ALIASES.get(slug)


def normalize_tool(name: str) -> str:
    """Match a tool name against the known list; unknown tools keep their trimmed name."""
    slug = _slug(name)
    for tool in TOOLS:
        if _slug(tool) == slug:
            return tool
    return str(name).strip()


def normalize_language(name: str) -> str:
    slug = _slug(name)
    for language in STANDARD_LANGUAGES:
        if _slug(language) == slug:
            return language
    return str(name).strip()


def empty_equipment() -> Dict[str, bool]:
    return {category: False for category in EQUIPMENT_CATEGORIES}


def empty_saving_throws() -> Dict[str, bool]:
    return {ability: False for ability in ABILITIES}
