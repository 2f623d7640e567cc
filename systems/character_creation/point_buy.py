# systems/character_creation/point_buy.py

"""Point-buy allocation for character creation."""

from dataclasses import dataclass, field

from ..stats import ABILITIES, AbilityScores, normalize_ability

POINT_BUY_BUDGET = 27
POINT_BUY_MIN = 8
POINT_BUY_MAX = 15


def point_cost(value: int) -> int:
    """
    Points needed to raise a score from 8 to `value`.

    1 point per step 8 -> 13, 2 points per step 14 -> 15.
    """
    if value < POINT_BUY_MIN:
        return 0
    if value <= 13:
        return value - POINT_BUY_MIN
    return 5 + 2 * (value - 13)


@dataclass
class PointBuyAllocation:
    """
    Base ability scores bought with the 27-point budget.

    These are stored separately from racial / ASI bonuses; bonuses are never
    charged points, and nothing but try_set_base changes these values.
    """
    base: AbilityScores = field(default_factory=AbilityScores)

    def total_spent(self) -> int:
        """Calculate total points spent across all abilities."""
        return sum(point_cost(self.base.get(a)) for a in ABILITIES)

    def remaining(self) -> int:
        return POINT_BUY_BUDGET - self.total_spent()

    def is_fully_spent(self) -> bool:
        return self.total_spent() == POINT_BUY_BUDGET

    def try_set_base(self, ability: str, value: int) -> bool:
        """
        Set one base score. Returns False (and changes nothing) when the value
        is outside [8, 15] or an increase would overspend the budget.
        """
        ability = normalize_ability(ability)
        value = int(value)
        if value < POINT_BUY_MIN or value > POINT_BUY_MAX:
            return False

        current = self.base.get(ability)
        if value > current:
            delta = point_cost(value) - point_cost(current)
            if self.total_spent() + delta > POINT_BUY_BUDGET:
                return False

        self.base.set(ability, value)
        return True

    def can_increase(self, ability: str) -> bool:
        current = self.base.get(ability)
        if current >= POINT_BUY_MAX:
            return False
        return self.total_spent() + point_cost(current + 1) - point_cost(current) <= POINT_BUY_BUDGET

    def can_decrease(self, ability: str) -> bool:
        return self.base.get(ability) > POINT_BUY_MIN

    def reset(self) -> None:
        self.base = AbilityScores()

    def copy(self) -> "PointBuyAllocation":
        return PointBuyAllocation(base=self.base.copy())
