# systems/character_creation/hit_points.py

"""Multiclass hit point roller.

Rules:
- level 1 of every class is the hit die maximum (no roll)
- every later level is one die roll
- each level adds the Constitution modifier
- a class subtotal is never below its level (minimum 1 HP per level)
- race "HP per level" bonuses add character_level once, on top of the classes

The raw dice are the source of truth. They are rolled once per session and
cached per (class, level); recompute() re-applies the modifiers to the same
dice when Constitution or the race bonus changes.
"""

import random
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from engine.error_handler import InvariantViolation, ValidationError

from .draft import MAX_CHARACTER_LEVEL, ClassEntry


@dataclass(frozen=True)
class ClassHitPoints:
    class_name: str
    level: int
    die_size: int
    dice: Tuple[int, ...]
    constitution_modifier: int

    @property
    def subtotal(self) -> int:
        raw = sum(die + self.constitution_modifier for die in self.dice)
        return max(self.level, raw)


@dataclass(frozen=True)
class HitPointResult:
    per_class: Tuple[ClassHitPoints, ...]
    hp_bonus_per_level: int = 0

    @property
    def character_level(self) -> int:
        return sum(c.level for c in self.per_class)

    @property
    def race_bonus(self) -> int:
        return self.hp_bonus_per_level * self.character_level

    @property
    def total(self) -> int:
        return sum(c.subtotal for c in self.per_class) + self.race_bonus


@dataclass(frozen=True)
class RollerState:
    dice: Tuple[Tuple[Tuple[str, int], int], ...]
    rolled: bool
    rng_state: object


class HitPointRoller:
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()
        self._dice: Dict[Tuple[str, int], int] = {}
        self._rolled = False

    @property
    def has_rolled(self) -> bool:
        return self._rolled

    def _die(self, class_name: str, level: int, die_size: int) -> int:
        if level == 1:
            return die_size
        key = (class_name.lower(), level)
        if key not in self._dice:
            self._dice[key] = self.rng.randint(1, die_size)
        return self._dice[key]

    def _compute(
        self,
        class_entries: Iterable[ClassEntry],
        constitution_modifier: int,
        hp_bonus_per_level: int,
    ) -> HitPointResult:
        per_class = []
        for entry in class_entries:
            if entry.hit_die < 1:
                raise InvariantViolation(f"{entry.name} has an invalid hit die d{entry.hit_die}")
            dice = tuple(self._die(entry.name, n, entry.hit_die) for n in range(1, entry.level + 1))
            per_class.append(
                ClassHitPoints(
                    class_name=entry.name,
                    level=entry.level,
                    die_size=entry.hit_die,
                    dice=dice,
                    constitution_modifier=constitution_modifier,
                )
            )
        result = HitPointResult(per_class=tuple(per_class), hp_bonus_per_level=hp_bonus_per_level)
        if result.character_level > MAX_CHARACTER_LEVEL:
            raise InvariantViolation(f"Total level {result.character_level} exceeds {MAX_CHARACTER_LEVEL}")
        return result

    def roll(
        self,
        class_entries: Iterable[ClassEntry],
        constitution_modifier: int,
        hp_bonus_per_level: int = 0,
    ) -> HitPointResult:
        if self._rolled:
            raise ValidationError(["Hit points were already rolled for this character"])
        class_entries = list(class_entries)
        if not class_entries:
            raise ValidationError(["Add a class before rolling hit points"])
        result = self._compute(class_entries, constitution_modifier, hp_bonus_per_level)
        self._rolled = True
        return result

    def recompute(
        self,
        class_entries: Iterable[ClassEntry],
        constitution_modifier: int,
        hp_bonus_per_level: int = 0,
    ) -> HitPointResult:
        """Same dice, fresh modifiers. Levels never rolled before get one roll now."""
        if not self._rolled:
            raise ValidationError(["Roll hit points first"])
        return self._compute(list(class_entries), constitution_modifier, hp_bonus_per_level)

    def reset(self) -> None:
        self._dice.clear()
        self._rolled = False

    def snapshot(self) -> RollerState:
        return RollerState(
            dice=tuple(self._dice.items()),
            rolled=self._rolled,
            rng_state=self.rng.getstate(),
        )

    def restore(self, state: RollerState) -> None:
        self._dice = dict(state.dice)
        self._rolled = state.rolled
        self.rng.setstate(state.rng_state)
