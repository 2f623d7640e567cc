# systems/character_creation/feats.py

"""Feat definitions and the feat editor entry point.

Feats are freeform: a name and a description. A character picks one instead
of an ability split on an Ability Score Improvement, or as the bonus feat of a
Custom Lineage. Feats written in the editor go through create_feat so they are
validated the same way as the built-in ones.
"""

from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class FeatDefinition:
    """
    A feat reference held by an ASI choice or a custom lineage.

    - name: display name (also the lookup key, case-insensitive)
    - description: rules text
    """
    name: str
    description: str = ""

    @property
    def key(self) -> str:
        return self.name.strip().lower()


def create_feat(name: str, description: str = "") -> FeatDefinition:
    """Build a feat from editor input. Raises ValueError for an empty name."""
    clean = str(name or "").strip()
    if not clean:
        raise ValueError("Feat name cannot be empty")
    return FeatDefinition(name=clean, description=str(description or "").strip())


# --- Registry helpers ---------------------------------------------------------

_FEATS: Dict[str, FeatDefinition] = {}


def register_feat(feat: FeatDefinition) -> FeatDefinition:
    """Register a feat definition."""
    if feat.key in _FEATS:
        raise ValueError(f"Feat already registered: {feat.name}")
    _FEATS[feat.key] = feat
    return feat


def get_feat(name: str) -> FeatDefinition:
    """Get a feat by name."""
    key = str(name).strip().lower()
    if key not in _FEATS:
        raise KeyError(f"Feat not found: {name}")
    return _FEATS[key]


def all_feats() -> List[FeatDefinition]:
    """Get all registered feats."""
    return list(_FEATS.values())


# --- Concrete feat definitions -----------------------------------------------

ALERT = register_feat(
    create_feat("Alert", "+5 to initiative; you can't be surprised while conscious.")
)

TOUGH = register_feat(
    create_feat("Tough", "Your hit point maximum increases by an amount equal to twice your level.")
)

LUCKY = register_feat(
    create_feat("Lucky", "You have 3 luck points to reroll an attack roll, ability check, or saving throw.")
)

SENTINEL = register_feat(
    create_feat("Sentinel", "Creatures provoke opportunity attacks from you even if they Disengage.")
)

WAR_CASTER = register_feat(
    create_feat("War Caster", "Advantage on Constitution saves to maintain concentration.")
)

SKILLED = register_feat(
    create_feat("Skilled", "You gain proficiency in any combination of three skills or tools.")
)
