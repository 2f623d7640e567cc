# systems/character_creation/ability_resolver.py

"""Helpers for turning point-buy bases and ledger bonuses into final ability scores."""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from engine.error_handler import InvariantViolation

from ..stats import ABILITIES, AbilityScores, normalize_ability
from .bonuses import AttributedBonus, BonusKind, sum_by_target
from .definitions import (
    AbilityIncrease,
    ChoiceIncrease,
    CustomIncrease,
    FixedIncrease,
    FixedMultiIncrease,
)


def resolve(base: AbilityScores, bonuses: Iterable[AttributedBonus]) -> AbilityScores:
    """
    Final score = point-buy base + every ABILITY bonus targeting that ability.

    Finals are never clamped (a +2 on a 15 base is 17). A negative final means
    a bonus was recorded wrong somewhere, which is an invariant violation.
    """
    totals = sum_by_target(bonuses, BonusKind.ABILITY)
    final = AbilityScores()
    for ability in ABILITIES:
        value = base.get(ability) + totals.get(ability, 0)
        if value < 0:
            raise InvariantViolation(f"{ability} resolved to a negative score ({value})")
        final.set(ability, value)
    return final


def would_exceed_cap(
    choice: ChoiceIncrease,
    picks: Sequence[str],
    candidate: str,
) -> bool:
    """
    Would adding `candidate` to this multi-slot choice break its per-ability cap?

    This only looks at picks inside the same choice; bonuses from other
    sources stack freely.
    """
    candidate = normalize_ability(candidate)
    already = sum(1 for p in picks if normalize_ability(p) == candidate)
    return already + 1 > choice.per_ability_cap()


def validate_choice_picks(
    choice: ChoiceIncrease,
    picks: Sequence[str],
    fixed_ability: Optional[str] = None,
    base: Optional[AbilityScores] = None,
    complete: bool = False,
) -> List[str]:
    """
    Return user-facing problems with a set of picks for one multi-slot choice.

    complete=False is used while the user is still picking (fewer picks than
    slots is fine); complete=True additionally requires every slot filled.
    """
    problems: List[str] = []
    normalized: List[str] = []
    for pick in picks:
        try:
            normalized.append(normalize_ability(pick))
        except KeyError:
            problems.append(f"Unknown ability: {pick}")

    if len(normalized) > choice.count:
        problems.append(f"Choose at most {choice.count} abilities (got {len(normalized)})")
    if complete and len(normalized) < choice.count:
        problems.append(f"Choose {choice.count} abilities (got {len(normalized)})")

    counts = Counter(normalized)
    for ability, n in counts.items():
        if fixed_ability is not None and ability == fixed_ability:
            problems.append(f"{ability.title()} already receives the fixed increase")
        elif ability not in choice.pool:
            problems.append(f"{ability.title()} cannot be chosen here")
        if n > choice.per_ability_cap():
            problems.append(
                f"{ability.title()} can be picked at most {choice.per_ability_cap()} time(s)"
            )
        if base is not None and base.get(ability) + n * choice.increase > choice.max_score:
            problems.append(f"{ability.title()} would exceed {choice.max_score}")
    return problems


def racial_ability_bonuses(increase: Optional[AbilityIncrease], picks: Sequence[str]) -> Dict[str, int]:
    """Ability -> bonus for any of the four increase variants plus the user's picks."""
    totals: Dict[str, int] = {}

    def _add(ability: str, amount: int) -> None:
        totals[ability] = totals.get(ability, 0) + amount

    if increase is None:
        return totals

    if isinstance(increase, (FixedIncrease, FixedMultiIncrease)):
        for ability, amount in increase.increases:
            _add(ability, amount)
        return totals

    choice = None
    if isinstance(increase, CustomIncrease):
        if increase.fixed is not None:
            _add(increase.fixed[0], increase.fixed[1])
        choice = increase.choice
    elif isinstance(increase, ChoiceIncrease):
        choice = increase

    if choice is not None:
        for pick in picks[: choice.count]:
            _add(normalize_ability(pick), choice.increase)
    return totals
