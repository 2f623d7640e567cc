# systems/classes.py

"""Class definitions and helpers for character creation / level up.

For now this is all Python code so it's easy to tweak while we build the tool.
Later we can move the raw data to JSON if we want external homebrew.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

ASI_LEVELS = (4, 8, 12, 16, 19)


@dataclass(frozen=True)
class ClassFeature:
    """
    A feature a class (or one of its subclasses) unlocks at `level`.

    Hidden features exist for bookkeeping (e.g. spell list markers) and are
    only returned when include_hidden is requested.
    """
    class_id: str
    name: str
    level: int
    description: str = ""
    subclass: Optional[str] = None
    hidden: bool = False

    @property
    def feature_id(self) -> str:
        slug = self.name.strip().lower().replace(" ", "_")
        return f"{self.class_id}:{self.level}:{slug}"


@dataclass
class ClassDef:
    id: str
    name: str
    description: str

    hit_die: int

    # Saving throw abilities granted by this class
    saving_throws: List[str]

    # "Choose N from pool" skill proficiencies at level 1
    skill_count: int
    skill_pool: List[str]

    # Equipment categories from systems.catalog.EQUIPMENT_CATEGORIES
    equipment: List[str]

    # Skills a character gains when this class is taken as a multiclass
    multiclass_skill_count: int = 0

    subclass_selection_level: int = 3
    subclasses: List[str] = field(default_factory=list)
    features: List[ClassFeature] = field(default_factory=list)

    starting_gold: int = 0

    def requires_subclass(self, level: int) -> bool:
        return bool(self.subclasses) and level >= self.subclass_selection_level

    def features_up_to(
        self,
        level: int,
        subclass: Optional[str] = None,
        include_hidden: bool = False,
    ) -> List[ClassFeature]:
        out = []
        for feature in self.features:
            if feature.level > level:
                continue
            if feature.subclass is not None and feature.subclass != subclass:
                continue
            if feature.hidden and not include_hidden:
                continue
            out.append(feature)
        return sorted(out, key=lambda f: (f.level, f.name))


# --- Registry helpers ---------------------------------------------------------

_CLASSES: Dict[str, ClassDef] = {}


def register_class(class_def: ClassDef) -> ClassDef:
    if class_def.id in _CLASSES:
        raise ValueError(f"Class id already registered: {class_def.id}")
    _CLASSES[class_def.id] = class_def
    return class_def


def get_class(class_id: str) -> ClassDef:
    key = str(class_id).strip().lower()
    if key not in _CLASSES:
        raise KeyError(f"Class not found: {class_id}")
    return _CLASSES[key]


def all_classes() -> List[ClassDef]:
    return list(_CLASSES.values())


def _features(
    class_id: str,
    named: List[Tuple[int, str]],
    asi_levels: Tuple[int, ...] = ASI_LEVELS,
    subclass_features: Optional[Dict[str, List[Tuple[int, str]]]] = None,
) -> List[ClassFeature]:
    """Build a feature table: named features + one ASI per asi level + subclass rows."""
    out = [ClassFeature(class_id=class_id, name=name, level=level) for level, name in named]
    out.extend(
        ClassFeature(class_id=class_id, name="Ability Score Improvement", level=level)
        for level in asi_levels
    )
    for subclass, rows in (subclass_features or {}).items():
        out.extend(
            ClassFeature(class_id=class_id, name=name, level=level, subclass=subclass)
            for level, name in rows
        )
    return out


ALL_SKILLS = [
    "acrobatics", "animal_handling", "arcana", "athletics", "deception", "history",
    "insight", "intimidation", "investigation", "medicine", "nature", "perception",
    "performance", "persuasion", "religion", "sleight_of_hand", "stealth", "survival",
]


# --- Concrete class definitions -----------------------------------------------

BARBARIAN = register_class(
    ClassDef(
        id="barbarian",
        name="Barbarian",
        description="A fierce warrior who channels primal rage.",
        hit_die=12,
        saving_throws=["strength", "constitution"],
        skill_count=2,
        skill_pool=["animal_handling", "athletics", "intimidation", "nature", "perception", "survival"],
        equipment=["light_armor", "medium_armor", "shields", "simple_weapons", "martial_weapons"],
        subclasses=["Path of the Berserker", "Path of the Totem Warrior"],
        features=_features(
            "barbarian",
            [(1, "Rage"), (1, "Unarmored Defense"), (2, "Reckless Attack"), (2, "Danger Sense"),
             (3, "Primal Path"), (5, "Extra Attack"), (5, "Fast Movement")],
            subclass_features={"Path of the Berserker": [(3, "Frenzy")]},
        ),
        starting_gold=10,
    )
)

BARD = register_class(
    ClassDef(
        id="bard",
        name="Bard",
        description="An inspiring magician whose power echoes the music of creation.",
        hit_die=8,
        saving_throws=["dexterity", "charisma"],
        skill_count=3,
        skill_pool=list(ALL_SKILLS),
        equipment=["light_armor", "simple_weapons", "hand_crossbows", "longswords", "rapiers", "shortswords"],
        multiclass_skill_count=1,
        subclasses=["College of Lore", "College of Valor"],
        features=_features(
            "bard",
            [(1, "Spellcasting"), (1, "Bardic Inspiration"), (2, "Jack of All Trades"),
             (2, "Song of Rest"), (3, "Bard College"), (3, "Expertise")],
        ),
        starting_gold=125,
    )
)

CLERIC = register_class(
    ClassDef(
        id="cleric",
        name="Cleric",
        description="A priestly champion who wields divine magic.",
        hit_die=8,
        saving_throws=["wisdom", "charisma"],
        skill_count=2,
        skill_pool=["history", "insight", "medicine", "persuasion", "religion"],
        equipment=["light_armor", "medium_armor", "shields", "simple_weapons"],
        subclass_selection_level=1,
        subclasses=["Life Domain", "Light Domain", "Tempest Domain"],
        features=_features(
            "cleric",
            [(1, "Spellcasting"), (1, "Divine Domain"), (2, "Channel Divinity"),
             (5, "Destroy Undead")],
            subclass_features={"Tempest Domain": [(1, "Wrath of the Storm")]},
        ),
        starting_gold=125,
    )
)

DRUID = register_class(
    ClassDef(
        id="druid",
        name="Druid",
        description="A priest of the Old Faith, wielding the powers of nature.",
        hit_die=8,
        saving_throws=["intelligence", "wisdom"],
        skill_count=2,
        skill_pool=["arcana", "animal_handling", "insight", "medicine", "nature", "perception",
                    "religion", "survival"],
        equipment=["light_armor", "medium_armor", "shields", "simple_weapons", "scimitars"],
        subclass_selection_level=2,
        subclasses=["Circle of the Land", "Circle of the Moon"],
        features=_features(
            "druid",
            [(1, "Druidic"), (1, "Spellcasting"), (2, "Wild Shape"), (2, "Druid Circle")],
        ),
        starting_gold=50,
    )
)

FIGHTER = register_class(
    ClassDef(
        id="fighter",
        name="Fighter",
        description="A master of martial combat, skilled with a variety of weapons and armor.",
        hit_die=10,
        saving_throws=["strength", "constitution"],
        skill_count=2,
        skill_pool=["acrobatics", "animal_handling", "athletics", "history", "insight",
                    "intimidation", "perception", "survival"],
        equipment=["light_armor", "medium_armor", "heavy_armor", "shields", "simple_weapons",
                   "martial_weapons"],
        subclasses=["Champion", "Battle Master", "Eldritch Knight"],
        features=_features(
            "fighter",
            [(1, "Fighting Style"), (1, "Second Wind"), (2, "Action Surge"),
             (3, "Martial Archetype"), (5, "Extra Attack"), (9, "Indomitable")],
            asi_levels=(4, 6, 8, 12, 14, 16, 19),
            subclass_features={
                "Champion": [(3, "Improved Critical"), (7, "Remarkable Athlete")],
                "Battle Master": [(3, "Combat Superiority")],
            },
        ),
        starting_gold=125,
    )
)

MONK = register_class(
    ClassDef(
        id="monk",
        name="Monk",
        description="A master of martial arts, harnessing the power of the body.",
        hit_die=8,
        saving_throws=["strength", "dexterity"],
        skill_count=2,
        skill_pool=["acrobatics", "athletics", "history", "insight", "religion", "stealth"],
        equipment=["simple_weapons", "shortswords"],
        subclasses=["Way of the Open Hand", "Way of Shadow"],
        features=_features(
            "monk",
            [(1, "Unarmored Defense"), (1, "Martial Arts"), (2, "Ki"),
             (2, "Unarmored Movement"), (3, "Monastic Tradition")],
        ),
        starting_gold=13,
    )
)

PALADIN = register_class(
    ClassDef(
        id="paladin",
        name="Paladin",
        description="A holy warrior bound to a sacred oath.",
        hit_die=10,
        saving_throws=["wisdom", "charisma"],
        skill_count=2,
        skill_pool=["athletics", "insight", "intimidation", "medicine", "persuasion", "religion"],
        equipment=["light_armor", "medium_armor", "heavy_armor", "shields", "simple_weapons",
                   "martial_weapons"],
        subclasses=["Oath of Devotion", "Oath of Vengeance"],
        features=_features(
            "paladin",
            [(1, "Divine Sense"), (1, "Lay on Hands"), (2, "Fighting Style"),
             (2, "Divine Smite"), (3, "Sacred Oath")],
        ),
        starting_gold=125,
    )
)

RANGER = register_class(
    ClassDef(
        id="ranger",
        name="Ranger",
        description="A warrior who combats threats on the edges of civilization.",
        hit_die=10,
        saving_throws=["strength", "dexterity"],
        skill_count=3,
        skill_pool=["animal_handling", "athletics", "insight", "investigation", "nature",
                    "perception", "stealth", "survival"],
        equipment=["light_armor", "medium_armor", "shields", "simple_weapons", "martial_weapons"],
        multiclass_skill_count=1,
        subclasses=["Hunter", "Beast Master"],
        features=_features(
            "ranger",
            [(1, "Favored Enemy"), (1, "Natural Explorer"), (2, "Fighting Style"),
             (2, "Spellcasting"), (3, "Ranger Archetype")],
        ),
        starting_gold=125,
    )
)

ROGUE = register_class(
    ClassDef(
        id="rogue",
        name="Rogue",
        description="A scoundrel who uses stealth and trickery to overcome obstacles.",
        hit_die=8,
        saving_throws=["dexterity", "intelligence"],
        skill_count=4,
        skill_pool=["acrobatics", "athletics", "deception", "insight", "intimidation",
                    "investigation", "perception", "performance", "persuasion",
                    "sleight_of_hand", "stealth"],
        equipment=["light_armor", "simple_weapons", "hand_crossbows", "longswords", "rapiers",
                   "shortswords"],
        multiclass_skill_count=1,
        subclasses=["Thief", "Assassin", "Arcane Trickster"],
        features=_features(
            "rogue",
            [(1, "Expertise"), (1, "Sneak Attack"), (1, "Thieves' Cant"),
             (2, "Cunning Action"), (3, "Roguish Archetype"), (5, "Uncanny Dodge")],
            asi_levels=(4, 8, 10, 12, 16, 19),
        ),
        starting_gold=100,
    )
)

SORCERER = register_class(
    ClassDef(
        id="sorcerer",
        name="Sorcerer",
        description="A spellcaster who draws on inherent magic from a gift or bloodline.",
        hit_die=6,
        saving_throws=["constitution", "charisma"],
        skill_count=2,
        skill_pool=["arcana", "deception", "insight", "intimidation", "persuasion", "religion"],
        equipment=["simple_weapons", "light_crossbows", "darts", "slings", "quarterstaffs"],
        subclass_selection_level=1,
        subclasses=["Draconic Bloodline", "Wild Magic"],
        features=_features(
            "sorcerer",
            [(1, "Spellcasting"), (1, "Sorcerous Origin"), (2, "Font of Magic"),
             (3, "Metamagic")],
        ),
        starting_gold=75,
    )
)

WARLOCK = register_class(
    ClassDef(
        id="warlock",
        name="Warlock",
        description="A wielder of magic derived from a bargain with an extraplanar entity.",
        hit_die=8,
        saving_throws=["wisdom", "charisma"],
        skill_count=2,
        skill_pool=["arcana", "deception", "history", "intimidation", "investigation", "nature",
                    "religion"],
        equipment=["light_armor", "simple_weapons"],
        subclass_selection_level=1,
        subclasses=["The Fiend", "The Great Old One", "The Archfey"],
        features=_features(
            "warlock",
            [(1, "Otherworldly Patron"), (1, "Pact Magic"), (2, "Eldritch Invocations"),
             (3, "Pact Boon")],
        ),
        starting_gold=100,
    )
)

WIZARD = register_class(
    ClassDef(
        id="wizard",
        name="Wizard",
        description="A scholarly magic-user capable of manipulating the structures of reality.",
        hit_die=6,
        saving_throws=["intelligence", "wisdom"],
        skill_count=2,
        skill_pool=["arcana", "history", "insight", "investigation", "medicine", "religion"],
        equipment=["simple_weapons", "light_crossbows", "darts", "slings", "quarterstaffs"],
        subclass_selection_level=2,
        subclasses=["School of Evocation", "School of Abjuration", "School of Divination"],
        features=_features(
            "wizard",
            [(1, "Spellcasting"), (1, "Arcane Recovery"), (2, "Arcane Tradition")],
        ) + [ClassFeature(class_id="wizard", name="Spellbook Index", level=1, hidden=True)],
        starting_gold=100,
    )
)

ARTIFICER = register_class(
    ClassDef(
        id="artificer",
        name="Artificer",
        description="A master of invention who uses ingenuity and magic to unlock extraordinary capabilities.",
        hit_die=8,
        saving_throws=["constitution", "intelligence"],
        skill_count=2,
        skill_pool=["arcana", "history", "investigation", "medicine", "nature", "perception",
                    "sleight_of_hand"],
        equipment=["light_armor", "medium_armor", "shields", "simple_weapons"],
        subclasses=["Alchemist", "Artillerist", "Battle Smith"],
        features=_features(
            "artificer",
            [(1, "Magical Tinkering"), (1, "Spellcasting"), (2, "Infuse Item"),
             (3, "Artificer Specialist")],
        ),
        starting_gold=75,
    )
)
