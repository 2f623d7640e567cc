# systems/character_creation/__init__.py

"""
Character creation engine.

This package contains the data structures and rules for building a character:
- Definitions: races / backgrounds decoded from catalog rows
- Sources + Ledger: which rule contributed which bonus, with exact revert
- Resolvers: ability scores, proficiencies, hit points, ASI / feat choices
- Point buy: the 27 point base score allocator
- Record: the immutable character handed to the rest of the application
"""

from .bonuses import (
    AttributedBonus,
    BonusKind,
    Contribution,
    SourceId,
    SourceKind,
)

from .definitions import (
    BackgroundDefinition,
    RaceDefinition,
    decode_background,
    decode_race,
)

from .feats import FeatDefinition, create_feat, get_feat, all_feats

from .draft import CharacterDraft, ClassEntry, ProficiencyLevel

from .point_buy import POINT_BUY_BUDGET, PointBuyAllocation, point_cost

from .sources import (
    AsiFeatureSource,
    AsiMode,
    BackgroundChoices,
    BackgroundSource,
    ClassEntrySource,
    CustomLineageSource,
    RaceChoices,
    RaceSource,
)

from .ledger import ModifierLedger

from .ability_resolver import resolve, would_exceed_cap

from .proficiencies import ProficiencyAggregator, ProficiencySets

from .hit_points import HitPointResult, HitPointRoller

from .asi import AsiChoice, AsiResolver, is_asi_feature

from .record import CharacterCreationRecord

__all__ = [
    # Bonuses
    "AttributedBonus",
    "BonusKind",
    "Contribution",
    "SourceId",
    "SourceKind",
    # Definitions
    "BackgroundDefinition",
    "RaceDefinition",
    "decode_background",
    "decode_race",
    # Feats
    "FeatDefinition",
    "create_feat",
    "get_feat",
    "all_feats",
    # Draft
    "CharacterDraft",
    "ClassEntry",
    "ProficiencyLevel",
    # Point buy
    "POINT_BUY_BUDGET",
    "PointBuyAllocation",
    "point_cost",
    # Sources
    "AsiFeatureSource",
    "AsiMode",
    "BackgroundChoices",
    "BackgroundSource",
    "ClassEntrySource",
    "CustomLineageSource",
    "RaceChoices",
    "RaceSource",
    # Ledger + resolvers
    "ModifierLedger",
    "resolve",
    "would_exceed_cap",
    "ProficiencyAggregator",
    "ProficiencySets",
    "HitPointResult",
    "HitPointRoller",
    "AsiChoice",
    "AsiResolver",
    "is_asi_feature",
    # Output
    "CharacterCreationRecord",
]
