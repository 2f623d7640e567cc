# systems/character_creation/backgrounds.py

"""Background catalog rows and helpers for character creation.

Backgrounds grant skill / tool / language proficiencies (fixed, a choice, or
both), starting equipment and money, and numbered flavor tables. Rows are stored
in the background editor's shape and decoded by definitions.decode_background.
"""

from typing import Any, Dict, List

BackgroundRow = Dict[str, Any]

# --- Registry helpers ---------------------------------------------------------

_BACKGROUNDS: Dict[str, BackgroundRow] = {}


def register_background(row: BackgroundRow) -> BackgroundRow:
    """Register a raw background row."""
    background_id = row.get("id")
    if not background_id:
        raise ValueError(f"Background row has no id: {row!r}")
    if background_id in _BACKGROUNDS:
        raise ValueError(f"Background id already registered: {background_id}")
    _BACKGROUNDS[background_id] = row
    return row


def get_background_row(background_id: str) -> BackgroundRow:
    """Get a background row by ID."""
    if background_id not in _BACKGROUNDS:
        raise KeyError(f"Background not found: {background_id}")
    return _BACKGROUNDS[background_id]


def all_background_rows() -> List[BackgroundRow]:
    """Get all registered background rows."""
    return list(_BACKGROUNDS.values())


# --- Concrete background definitions -------------------------------------------

SOLDIER = register_background(
    {
        "id": "soldier",
        "name": "Soldier",
        "description": "War has been your life for as long as you care to remember.",
        "skill_proficiencies": ["athletics", "intimidation"],
        "tool_proficiencies": {
            "fixed": ["Gaming Set"],
            "available": [],
        },
        "equipment": ["Insignia of rank", "Trophy from a fallen enemy", "Common clothes"],
        "money": {"gold": 10},
        "personality_traits": [
            {"number": 1, "text": "I'm always polite and respectful."},
            {"number": 2, "text": "I'm haunted by memories of war."},
        ],
        "ideals": [{"number": 1, "text": "Greater Good."}, {"number": 2, "text": "Responsibility."}],
        "bonds": ["I would still lay down my life for the people I served with."],
        "flaws": ["I made a terrible mistake in battle that cost many lives."],
    }
)

ACOLYTE = register_background(
    {
        "id": "acolyte",
        "name": "Acolyte",
        "description": "You have spent your life in the service of a temple.",
        "skill_proficiencies": ["insight", "religion"],
        "languages": {"fixed": [], "choice": {"count": 2}},
        "equipment": ["Holy symbol", "Prayer book", "5 sticks of incense", "Vestments"],
        "money": {"gold": 15},
        "personality_traits": ["I idolize a particular hero of my faith.", "I see omens in every event."],
        "ideals": ["Tradition.", "Charity."],
        "bonds": ["I owe my life to the priest who took me in."],
        "flaws": ["I am inflexible in my thinking."],
    }
)

SAGE = register_background(
    {
        "id": "sage",
        "name": "Sage",
        "description": "You spent years learning the lore of the multiverse.",
        "skill_proficiencies": ["arcana", "history"],
        "languages": {"choice": {"count": 2}},
        "equipment": ["Bottle of black ink", "Quill", "Small knife", "Letter from a dead colleague"],
        "money": {"gold": 10},
        "personality_traits": ["I use polysyllabic words.", "I've read every book in the world's greatest libraries."],
        "ideals": ["Knowledge."],
        "bonds": ["I have an ancient text that holds terrible secrets."],
        "flaws": ["I am easily distracted by the promise of information."],
    }
)

CRIMINAL = register_background(
    {
        "id": "criminal",
        "name": "Criminal",
        "description": "You are an experienced criminal with a history of breaking the law.",
        "skill_proficiencies": ["deception", "stealth"],
        "tool_proficiencies": ["Thieves' Tools", "Gaming Set"],
        "equipment": ["Crowbar", "Dark common clothes with a hood"],
        "money": {"gold": 15},
        "defining_events": ["Blackmailer", "Burglar", "Enforcer", "Fence"],
        "personality_traits": ["I always have a plan for what to do when things go wrong."],
        "ideals": ["Honor.", "Freedom."],
        "bonds": ["I'm trying to pay off an old debt I owe to a generous benefactor."],
        "flaws": ["When I see something valuable, I can't think about anything but how to steal it."],
    }
)

# Fixed persuasion plus one pick from a short list
KNIGHT_OF_THE_ORDER = register_background(
    {
        "id": "knight_of_the_order",
        "name": "Knight of the Order",
        "description": "You belong to an order of knights who have sworn oaths to achieve a certain goal.",
        "skill_proficiencies": {
            "fixed": ["persuasion"],
            "available": ["arcana", "history", "nature", "religion"],
            "choice": {"count": 1, "from_selected": True},
        },
        "tool_proficiencies": {"choice": {"count": 1}},
        "languages": {"choice": {"count": 1}},
        "equipment": ["Set of traveler's clothes", "Signet, banner, or seal"],
        "money": {"gold": 10},
    }
)

# No fixed skills: the listed four are the pool for two picks
HAUNTED_ONE = register_background(
    {
        "id": "haunted_one",
        "name": "Haunted One",
        "description": "You are haunted by something so terrible that you dare not speak of it.",
        "skill_proficiencies": {
            "fixed": ["arcana", "investigation", "religion", "survival"],
            "choice": {"count": 2, "from_selected": True},
        },
        "languages": {"choice": {"count": 2}},
        "equipment": ["Monster hunter's pack", "Trinket of special significance"],
        "money": {"silver": 1},
    }
)
