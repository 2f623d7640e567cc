# systems/character_creation/asi.py

"""Ability Score Improvement / feat choices.

Every ASI feature a class unlocks gets one AsiChoice. A selected choice is an
AsiFeatureSource in the ledger; the wizard reverts and re-applies it whenever
the choice changes, so switching from +2 DEX to a feat removes exactly the +2.

Per feature:
    Unselected -> AbilityScores -> Feat   (switchable while selected)
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple

from engine.error_handler import ValidationError

from ..classes import ClassFeature
from ..stats import normalize_ability
from .feats import FeatDefinition
from .sources import AsiFeatureSource, AsiMode

logger = logging.getLogger("charforge.asi")


def is_asi_feature(name: str) -> bool:
    lowered = str(name or "").lower()
    return "ability score improvement" in lowered or "asi" in lowered


@dataclass
class AsiChoice:
    feature_id: str
    class_id: str
    level: int
    feature_name: str = "Ability Score Improvement"
    selected: bool = True
    mode: AsiMode = AsiMode.ABILITY_SCORES
    first: Optional[str] = None
    second: Optional[str] = None
    feat: Optional[FeatDefinition] = None

    @property
    def is_complete(self) -> bool:
        if self.mode is AsiMode.ABILITY_SCORES:
            return self.first is not None
        if self.mode is AsiMode.FEAT:
            return self.feat is not None
        return False

    def to_source(self) -> AsiFeatureSource:
        return AsiFeatureSource(
            feature_id=self.feature_id,
            mode=self.mode,
            first=self.first,
            second=self.second,
            feat=self.feat,
        )

    def describe(self) -> str:
        if self.mode is AsiMode.FEAT:
            return f"Feat: {self.feat.name}" if self.feat else "Feat: (none)"
        if self.mode is AsiMode.ABILITY_SCORES:
            if self.first and self.second:
                return f"+1 {self.first.title()}, +1 {self.second.title()}"
            if self.first:
                return f"+2 {self.first.title()}"
            return "Ability scores: (none)"
        return "Unselected"


class AsiResolver:
    def __init__(self) -> None:
        self._choices: Dict[str, AsiChoice] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def sync_class_features(
        self,
        class_id: str,
        level: int,
        features: Iterable[ClassFeature],
    ) -> Tuple[List[str], List[str]]:
        """
        Create choices for ASI features unlocked at `level`, destroy the ones
        the class no longer reaches. Returns (created, destroyed) feature ids.
        """
        created: List[str] = []
        destroyed: List[str] = []
        unlocked = {}
        for feature in features:
            if feature.level <= level and is_asi_feature(feature.name):
                unlocked[feature.feature_id] = feature

        for feature_id, choice in list(self._choices.items()):
            if choice.class_id == class_id and feature_id not in unlocked:
                del self._choices[feature_id]
                destroyed.append(feature_id)

        for feature_id, feature in unlocked.items():
            if feature_id not in self._choices:
                self._choices[feature_id] = AsiChoice(
                    feature_id=feature_id,
                    class_id=class_id,
                    level=feature.level,
                    feature_name=feature.name,
                )
                created.append(feature_id)

        if created or destroyed:
            logger.debug("ASI sync %s level %d: +%s -%s", class_id, level, created, destroyed)
        return created, destroyed

    def remove_class(self, class_id: str) -> List[str]:
        return self.sync_class_features(class_id, 0, ())[1]

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def get(self, feature_id: str) -> AsiChoice:
        if feature_id not in self._choices:
            raise KeyError(f"No ASI choice for feature {feature_id!r}")
        return self._choices[feature_id]

    def set_selected(self, feature_id: str, selected: bool) -> AsiChoice:
        choice = self.get(feature_id)
        choice.selected = bool(selected)
        return choice

    def set_mode(self, feature_id: str, mode: AsiMode) -> AsiChoice:
        choice = self.get(feature_id)
        choice.mode = AsiMode(mode)
        return choice

    def set_ability_scores(
        self,
        feature_id: str,
        first: Optional[str],
        second: Optional[str] = None,
    ) -> AsiChoice:
        """Only `first` -> +2. Two different abilities -> +1 each."""
        first = normalize_ability(first) if first else None
        second = normalize_ability(second) if second else None
        if first is None and second is not None:
            raise ValidationError(["Choose the first ability before the second"])
        if first is not None and first == second:
            raise ValidationError(["Pick two different abilities, or only one for +2"])

        choice = self.get(feature_id)
        choice.mode = AsiMode.ABILITY_SCORES
        choice.first = first
        choice.second = second
        return choice

    def set_feat(self, feature_id: str, feat: Optional[FeatDefinition]) -> AsiChoice:
        choice = self.get(feature_id)
        choice.mode = AsiMode.FEAT
        choice.feat = feat
        return choice

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def choices(self) -> List[AsiChoice]:
        return sorted(self._choices.values(), key=lambda c: (c.class_id, c.level))

    def feature_ids(self) -> List[str]:
        return [c.feature_id for c in self.choices()]

    def source_for(self, feature_id: str) -> Optional[AsiFeatureSource]:
        choice = self._choices.get(feature_id)
        if choice is None or not choice.selected:
            return None
        return choice.to_source()

    def sources(self) -> List[AsiFeatureSource]:
        return [c.to_source() for c in self.choices() if c.selected]

    def incomplete(self) -> List[str]:
        return [c.feature_id for c in self.choices() if c.selected and not c.is_complete]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def snapshot(self) -> Tuple[AsiChoice, ...]:
        return tuple(replace(c) for c in self._choices.values())

    def restore(self, state: Tuple[AsiChoice, ...]) -> None:
        self._choices = {c.feature_id: replace(c) for c in state}

    def __len__(self) -> int:
        return len(self._choices)
